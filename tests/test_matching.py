"""
Tests for the Matching Engine.
"""

import pytest
from datetime import timedelta

from conciliador.config import Settings
from conciliador.engine import MatchingEngine
from conciliador.errors import InvalidScopeError
from conciliador.models import MatchQuality, StatusLancamento, TipoTransacao

from .factories import DIA, OUTRO_CARTORIO, OUTRA_CONTA, CONTA, make_item, make_lancamento


@pytest.fixture
def item():
    return make_item("item-1", conta_id=CONTA)


class TestScoring:
    """Weighted factor scoring."""

    def test_exact_match_scores_excellent(self, engine, item):
        """Same amount, direction and day, similar description."""
        lanc = make_lancamento("lanc-1")

        suggestions = engine.suggest(item, [lanc])

        assert len(suggestions) == 1
        sugestao = suggestions[0]
        assert sugestao.score >= 90
        assert sugestao.qualidade == MatchQuality.EXCELENTE
        assert sugestao.dias_diferenca == 0
        assert "Valor idêntico" in sugestao.motivos
        assert "Tipo compatível" in sugestao.motivos
        assert "Mesmo dia" in sugestao.motivos
        assert "Descrição similar" in sugestao.motivos

    def test_near_amount_and_date_scores_lower(self, engine, item):
        """R$145,00 four days later stays a suggestion with a lower score."""
        exact = engine.score(item, make_lancamento("lanc-1"))
        near = engine.score(
            item,
            make_lancamento("lanc-2", valor_centavos=14500, data=DIA + timedelta(days=4)),
        )

        assert near is not None
        assert 30 <= near.score < exact.score
        assert "Valor dentro da tolerância" in near.motivos
        assert "Data próxima (4 dias)" in near.motivos
        assert "Valor idêntico" not in near.motivos

    def test_score_components(self, engine, item):
        candidate = engine.score(
            item,
            make_lancamento("lanc-2", valor_centavos=14500, data=DIA + timedelta(days=4)),
        )

        assert candidate.amount_fraction == pytest.approx(1 / 3)
        assert candidate.direction_fraction == 1.0
        assert candidate.date_fraction == pytest.approx(0.2)
        assert 0 < candidate.description_fraction <= 0.8
        assert candidate.days_apart == 4

    def test_direction_mismatch_loses_direction_points(self, engine):
        debito = make_item("item-2", valor_centavos=-15000, tipo=TipoTransacao.DEBITO)
        lanc = make_lancamento("lanc-1")

        candidate = engine.score(debito, lanc)

        assert candidate.direction_fraction == 0.0
        assert "Tipo compatível" not in candidate.motivos
        assert candidate.score == engine.score(make_item("item-3"), lanc).score - 15

    def test_amount_outside_tolerance_scores_zero_amount(self, engine, item):
        candidate = engine.score(item, make_lancamento("lanc-1", valor_centavos=20000))

        assert candidate.amount_fraction == 0.0
        assert not any(m.startswith("Valor") for m in candidate.motivos)

    def test_whole_word_containment_is_full_description_match(self, engine, item):
        candidate = engine.score(item, make_lancamento("lanc-1", descricao="João Silva"))

        assert candidate.description_fraction == 1.0
        assert "Descrição coincidente" in candidate.motivos
        assert candidate.score == 100

    def test_partial_word_is_not_containment(self, engine):
        item = make_item("item-1", descricao="TARIFA PACOTE")
        candidate = engine.score(item, make_lancamento("lanc-1", descricao="Tarifas"))

        assert candidate.description_fraction < 1.0

    def test_category_can_carry_description_match(self, engine, item):
        candidate = engine.score(
            item,
            make_lancamento("lanc-1", descricao="Outros", categoria="PIX João Silva"),
        )

        assert candidate.description_fraction == 1.0

    def test_blank_description_scores_zero(self, engine, item):
        candidate = engine.score(item, make_lancamento("lanc-1", descricao="***"))

        assert candidate.description_fraction == 0.0
        assert not any(m.startswith("Descrição") for m in candidate.motivos)

    def test_one_day_apart_uses_singular(self, engine, item):
        candidate = engine.score(item, make_lancamento("lanc-1", data=DIA - timedelta(days=1)))

        assert "Data próxima (1 dia)" in candidate.motivos


class TestCandidateFiltering:
    """Lancamentos that are never suggested."""

    def test_outside_date_window_excluded(self, engine, item):
        """Ten days apart exceeds the five-day window."""
        lanc = make_lancamento("lanc-1", data=DIA + timedelta(days=10))

        assert engine.score(item, lanc) is None
        assert engine.suggest(item, [lanc]) == []

    def test_window_edge_is_inclusive(self, engine, item):
        assert engine.score(item, make_lancamento("lanc-1", data=DIA + timedelta(days=5))) is not None
        assert engine.score(item, make_lancamento("lanc-2", data=DIA + timedelta(days=6))) is None

    def test_undated_records_excluded(self, engine, item):
        assert engine.score(item, make_lancamento("lanc-1", data=None)) is None
        assert engine.score(make_item("item-2", data_transacao=None), make_lancamento("lanc-2")) is None

    def test_cancelled_lancamento_excluded(self, engine, item):
        lanc = make_lancamento("lanc-1", status=StatusLancamento.CANCELADO)

        assert engine.score(item, lanc) is None

    def test_cancelled_lancamento_kept_when_configured(self, settings, item):
        engine = MatchingEngine(settings.model_copy(update={"exclude_cancelled_lancamentos": False}))
        lanc = make_lancamento("lanc-1", status=StatusLancamento.CANCELADO)

        assert engine.score(item, lanc) is not None

    def test_other_account_excluded(self, engine, item):
        assert engine.score(item, make_lancamento("lanc-1", conta_id=OUTRA_CONTA)) is None
        assert engine.score(item, make_lancamento("lanc-2", conta_id=CONTA)) is not None
        assert engine.score(item, make_lancamento("lanc-3", conta_id=None)) is not None

    def test_below_floor_omitted(self, engine, item):
        weak = make_lancamento(
            "lanc-1",
            valor_centavos=20000,
            data=DIA + timedelta(days=5),
            descricao="Aluguel",
        )

        assert engine.score(item, weak).score < 30
        assert engine.suggest(item, [weak]) == []
        assert engine.suggest(item, [weak], min_score=0) != []

    def test_other_cartorio_rejected(self, engine, item):
        lanc = make_lancamento("lanc-1", cartorio_id=OUTRO_CARTORIO)

        with pytest.raises(InvalidScopeError):
            engine.score(item, lanc)


class TestRanking:
    """Ordering and determinism."""

    def test_highest_score_first(self, engine, item):
        lancamentos = [
            make_lancamento("lanc-a"),
            make_lancamento("lanc-b", descricao="João Silva"),
            make_lancamento("lanc-c", valor_centavos=14500, data=DIA + timedelta(days=4)),
        ]

        ids = [s.lancamento.id for s in engine.suggest(item, lancamentos)]

        assert ids == ["lanc-b", "lanc-a", "lanc-c"]

    def test_ties_broken_by_lancamento_id(self, engine, item):
        lancamentos = [make_lancamento("lanc-2"), make_lancamento("lanc-1")]

        ids = [s.lancamento.id for s in engine.suggest(item, lancamentos)]

        assert ids == ["lanc-1", "lanc-2"]

    def test_equal_scores_prefer_closest_date(self, engine, item):
        """A one-day gap is offset by a R$0,60 amount gap on the same day."""
        lancamentos = [
            make_lancamento("lanc-1", data=DIA + timedelta(days=1)),
            make_lancamento("lanc-2", valor_centavos=14940),
        ]

        suggestions = engine.suggest(item, lancamentos)

        assert suggestions[0].score == suggestions[1].score
        assert [s.lancamento.id for s in suggestions] == ["lanc-2", "lanc-1"]
        assert [s.dias_diferenca for s in suggestions] == [0, 1]

    def test_suggest_is_deterministic(self, engine, item):
        lancamentos = [
            make_lancamento(f"lanc-{n}", valor_centavos=15000 - n * 100, data=DIA + timedelta(days=n % 3))
            for n in range(8)
        ]

        first = engine.suggest(item, lancamentos)
        second = engine.suggest(item, list(reversed(lancamentos)))

        assert [(s.lancamento.id, s.score) for s in first] == [
            (s.lancamento.id, s.score) for s in second
        ]

    def test_best_match(self, engine, item):
        assert engine.best_match(item, []) is None
        best = engine.best_match(item, [make_lancamento("lanc-a"), make_lancamento("lanc-b", descricao="João Silva")])
        assert best.lancamento.id == "lanc-b"

    def test_scores_bounded(self, engine, item):
        for candidate in engine.rank(item, [make_lancamento("lanc-1", descricao="PIX JOAO SILVA")], min_score=0):
            assert 0 <= candidate.score <= 100


class TestMatchQuality:
    @pytest.mark.parametrize("score,expected", [
        (100, MatchQuality.EXCELENTE),
        (90, MatchQuality.EXCELENTE),
        (89, MatchQuality.BOA),
        (75, MatchQuality.BOA),
        (74, MatchQuality.RAZOAVEL),
        (60, MatchQuality.RAZOAVEL),
        (59, MatchQuality.FRACA),
        (0, MatchQuality.FRACA),
    ])
    def test_bands(self, score, expected):
        assert MatchQuality.from_score(score) == expected


class TestSettingsValidation:
    def test_weights_must_sum_to_100(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, amount_weight=60)

    def test_threshold_not_below_floor(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, auto_accept_threshold=20, suggestion_min_score=30)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
