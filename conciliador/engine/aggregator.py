"""
Aggregator - tab counts and daily closing.

Pure pull-based recomputation over current record state; nothing is
cached or incrementally maintained.
"""

from datetime import date
from typing import Iterable, List, Optional

import structlog

from ..models import (
    Conciliacao,
    ConciliacaoFiltros,
    ConciliacaoStats,
    ExtratoItem,
    FechamentoDiario,
    Lancamento,
    StatusConciliacao,
)
from ..store import LedgerStore

logger = structlog.get_logger()


def _percent(part: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round(part / total * 100, 2)


def compute_stats(
    extrato_itens: List[ExtratoItem],
    lancamentos: List[Lancamento],
) -> ConciliacaoStats:
    """Counts per status over statement lines, value totals on both sides."""
    conciliados = sum(
        1 for i in extrato_itens if i.status_conciliacao == StatusConciliacao.CONCILIADO
    )
    pendentes = sum(
        1 for i in extrato_itens if i.status_conciliacao == StatusConciliacao.PENDENTE
    )
    divergentes = sum(
        1 for i in extrato_itens if i.status_conciliacao == StatusConciliacao.DIVERGENTE
    )
    valor_extrato = sum(i.valor_absoluto_centavos for i in extrato_itens)
    valor_lancamentos = sum(l.valor_absoluto_centavos for l in lancamentos)

    return ConciliacaoStats(
        conciliados=conciliados,
        pendentes=pendentes,
        divergentes=divergentes,
        taxa_conciliacao=_percent(conciliados, len(extrato_itens)),
        total_extrato=len(extrato_itens),
        total_lancamentos=len(lancamentos),
        valor_total_extrato_centavos=valor_extrato,
        valor_total_lancamentos_centavos=valor_lancamentos,
        diferenca_valores_centavos=valor_extrato - valor_lancamentos,
    )


def compute_fechamento(
    day: date,
    extrato_itens: List[ExtratoItem],
    conciliacoes: Iterable[Conciliacao],
) -> FechamentoDiario:
    """Daily closing over the statement lines dated ``day``."""
    itens = [i for i in extrato_itens if i.data_transacao == day]
    item_ids = {i.id for i in itens}

    totals = {status: 0 for status in StatusConciliacao}
    values = {status: 0 for status in StatusConciliacao}
    for item in itens:
        totals[item.status_conciliacao] += 1
        values[item.status_conciliacao] += item.valor_absoluto_centavos

    diferenca_total = sum(
        c.diferenca_centavos for c in conciliacoes if c.extrato_item_id in item_ids
    )

    return FechamentoDiario(
        data=day,
        total_conciliados=totals[StatusConciliacao.CONCILIADO],
        total_pendentes=totals[StatusConciliacao.PENDENTE],
        total_divergentes=totals[StatusConciliacao.DIVERGENTE],
        valor_conciliado_centavos=values[StatusConciliacao.CONCILIADO],
        valor_pendente_centavos=values[StatusConciliacao.PENDENTE],
        valor_divergente_centavos=values[StatusConciliacao.DIVERGENTE],
        diferenca_total_centavos=diferenca_total,
        percentual_conciliado=_percent(totals[StatusConciliacao.CONCILIADO], len(itens)),
    )


class Aggregator:
    """Reads current state from the Ledger Store and aggregates it."""

    def __init__(self, store: LedgerStore):
        self.store = store

    def compute_stats(
        self,
        cartorio_id: str,
        filtros: Optional[ConciliacaoFiltros] = None,
    ) -> ConciliacaoStats:
        filtros = filtros or ConciliacaoFiltros()
        snapshot = self.store.snapshot(cartorio_id)
        stats = compute_stats(
            snapshot.list_extrato_items(filtros),
            snapshot.list_lancamentos(filtros),
        )
        logger.debug(
            "Stats computed",
            cartorio_id=cartorio_id,
            total_extrato=stats.total_extrato,
            conciliados=stats.conciliados,
        )
        return stats

    def compute_fechamento_diario(
        self,
        cartorio_id: str,
        day: date,
        filtros: Optional[ConciliacaoFiltros] = None,
    ) -> FechamentoDiario:
        filtros = (filtros or ConciliacaoFiltros()).restricted_to_day(day)
        snapshot = self.store.snapshot(cartorio_id)
        return compute_fechamento(
            day,
            snapshot.list_extrato_items(filtros),
            snapshot.list_conciliacoes(),
        )
