"""
Tests for stats and daily closing.
"""

import pytest
from datetime import timedelta

from conciliador.errors import ValidationError
from conciliador.models import ConciliacaoFiltros, TipoLancamento, TipoTransacao

from .factories import CARTORIO, CONTA, DIA, OUTRO_CARTORIO, make_item, make_lancamento

NEXT_DAY = DIA + timedelta(days=1)


@pytest.fixture
def ledger(store, linker):
    """
    Four statement lines on two days:
        item-1 conciliado, item-2 divergente (R$5,00), item-3 and item-4 pendente.
    """
    store.add_extrato_item(make_item("item-1", valor_centavos=15000))
    store.add_extrato_item(make_item("item-2", valor_centavos=-5000, tipo=TipoTransacao.DEBITO, descricao="TARIFA"))
    store.add_extrato_item(make_item("item-3", valor_centavos=2000))
    store.add_extrato_item(make_item("item-4", valor_centavos=3000, data_transacao=NEXT_DAY))

    store.add_lancamento(make_lancamento("lanc-1", valor_centavos=15000))
    store.add_lancamento(make_lancamento("lanc-2", valor_centavos=4500, tipo=TipoLancamento.DESPESA, descricao="Tarifa"))
    store.add_lancamento(make_lancamento("lanc-5", valor_centavos=1000, data=NEXT_DAY))

    linker.link(CARTORIO, "item-1", "lanc-1")
    linker.link(CARTORIO, "item-2", "lanc-2")
    return store


class TestStats:
    def test_counts_and_totals(self, service, ledger):
        stats = service.stats(CARTORIO)

        assert stats.conciliados == 1
        assert stats.divergentes == 1
        assert stats.pendentes == 2
        assert stats.total_extrato == 4
        assert stats.total_lancamentos == 3
        assert stats.taxa_conciliacao == 25.0
        assert stats.valor_total_extrato_centavos == 25000
        assert stats.valor_total_lancamentos_centavos == 20500
        assert stats.diferenca_valores_centavos == 4500
        assert stats.has_issues
        assert not stats.is_complete

    def test_counts_sum_to_total(self, service, ledger):
        stats = service.stats(CARTORIO)

        assert stats.conciliados + stats.pendentes + stats.divergentes == stats.total_extrato

    def test_filtered_by_day(self, service, ledger):
        stats = service.stats(CARTORIO, ConciliacaoFiltros.for_day(NEXT_DAY))

        assert stats.total_extrato == 1
        assert stats.pendentes == 1
        assert stats.total_lancamentos == 1
        assert stats.valor_total_extrato_centavos == 3000
        assert stats.valor_total_lancamentos_centavos == 1000

    def test_filtered_by_direction(self, service, ledger):
        stats = service.stats(CARTORIO, ConciliacaoFiltros(tipo_transacao=[TipoTransacao.DEBITO]))

        assert stats.total_extrato == 1
        assert stats.divergentes == 1

    def test_empty_cartorio(self, service, ledger):
        stats = service.stats(OUTRO_CARTORIO)

        assert stats.total_extrato == 0
        assert stats.taxa_conciliacao == 0.0

    def test_stats_follow_unlink(self, service, ledger):
        link = ledger.find_conciliacao_by_endpoint(CARTORIO, extrato_item_id="item-1")
        service.unlink(CARTORIO, link.id)

        stats = service.stats(CARTORIO)
        assert stats.conciliados == 0
        assert stats.pendentes == 3

    def test_pendentes_count(self, service, ledger):
        assert service.pendentes_count(CARTORIO) == 2
        assert service.pendentes_count(CARTORIO, conta_id=CONTA, day=DIA) == 1


class TestFechamentoDiario:
    def test_closing_for_day(self, service, ledger):
        fechamento = service.closing(CARTORIO, DIA)

        assert fechamento.data == DIA
        assert fechamento.total_conciliados == 1
        assert fechamento.total_divergentes == 1
        assert fechamento.total_pendentes == 1
        assert fechamento.total_itens == 3
        assert fechamento.valor_conciliado_centavos == 15000
        assert fechamento.valor_divergente_centavos == 5000
        assert fechamento.valor_pendente_centavos == 2000
        assert fechamento.diferenca_total_centavos == 500
        assert fechamento.percentual_conciliado == 33.33

    def test_closing_for_quiet_day(self, service, ledger):
        fechamento = service.closing(CARTORIO, DIA - timedelta(days=3))

        assert fechamento.total_itens == 0
        assert fechamento.percentual_conciliado == 0.0

    def test_closing_ignores_wider_period(self, service, ledger):
        filtros = ConciliacaoFiltros(data_inicio=DIA, data_fim=NEXT_DAY)

        fechamento = service.closing(CARTORIO, NEXT_DAY, filtros)

        assert fechamento.total_itens == 1
        assert fechamento.valor_pendente_centavos == 3000


class TestHistory:
    def test_newest_first(self, service, ledger):
        history = service.history(CARTORIO)

        assert {d.extrato_item.id for d in history} == {"item-1", "item-2"}
        stamps = [d.conciliacao.conciliado_em for d in history]
        assert stamps == sorted(stamps, reverse=True)
        by_item = {d.extrato_item.id: d for d in history}
        assert by_item["item-2"].lancamento.id == "lanc-2"
        assert by_item["item-2"].conciliacao.diferenca_centavos == 500

    def test_limit(self, service, ledger):
        assert len(service.history(CARTORIO, limit=1)) == 1

    def test_invalid_limit(self, service, ledger):
        with pytest.raises(ValidationError):
            service.history(CARTORIO, limit=0)

    def test_conciliacoes_do_dia(self, service, ledger):
        assert len(service.conciliacoes_do_dia(CARTORIO, DIA)) == 2
        assert service.conciliacoes_do_dia(CARTORIO, NEXT_DAY) == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
