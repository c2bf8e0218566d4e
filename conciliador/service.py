"""
Reconciliation service - entry point for collaborators.

Wires the Ledger Store, Matching Engine, Linker, Auto-Match Scheduler
and Aggregator together and exposes the operations used by the
reconciliation screens and by reporting:

- suggest / best_match: ranked suggestions for one statement line
- auto_match: greedy batch linking for one account
- link / unlink: manual reconciliation actions
- stats / closing: tab counts and daily closing
- history / conciliacoes_do_dia: detailed links for review
"""

from datetime import date
from typing import List, Optional

import structlog

from .config import Settings, get_settings
from .errors import InvalidScopeError, ValidationError
from .models import (
    AutoMatchResult,
    AutoMatchScope,
    Conciliacao,
    ConciliacaoDetalhada,
    ConciliacaoFiltros,
    ConciliacaoStats,
    FechamentoDiario,
    StatusConciliacao,
    SugestaoConciliacao,
)
from .engine import Aggregator, AutoMatchScheduler, Linker, MatchingEngine
from .store import LedgerSnapshot, LedgerStore
from .utils.audit_logger import AuditLogger

logger = structlog.get_logger()


class ConciliacaoService:
    """Facade over the reconciliation core for one Ledger Store."""

    def __init__(
        self,
        store: Optional[LedgerStore] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store or LedgerStore()
        self.audit = AuditLogger("conciliador", self.settings)
        self.engine = MatchingEngine(self.settings)
        self.linker = Linker(self.store, self.settings, self.audit)
        self.scheduler = AutoMatchScheduler(self.store, self.engine, self.linker, self.settings)
        self.aggregator = Aggregator(self.store)

    # -- suggestions --

    def suggest(
        self,
        cartorio_id: str,
        extrato_item_id: str,
        conta_id: Optional[str] = None,
    ) -> List[SugestaoConciliacao]:
        """Ranked suggestions for a statement line, highest score first."""
        snapshot = self.store.snapshot(cartorio_id)
        item = snapshot.get_extrato_item(extrato_item_id)
        if conta_id and item.conta_id != conta_id:
            raise InvalidScopeError(
                f"ExtratoItem '{item.id}' does not belong to account '{conta_id}'"
            )
        candidates = snapshot.list_lancamentos(ConciliacaoFiltros(
            status=(StatusConciliacao.PENDENTE,),
            conta_id=item.conta_id,
        ))
        candidates.sort(key=lambda l: l.id)
        return self.engine.suggest(item, candidates)

    def best_match(
        self,
        cartorio_id: str,
        extrato_item_id: str,
    ) -> Optional[SugestaoConciliacao]:
        suggestions = self.suggest(cartorio_id, extrato_item_id)
        return suggestions[0] if suggestions else None

    # -- linking --

    def auto_match(self, scope: AutoMatchScope) -> AutoMatchResult:
        return self.scheduler.execute(scope)

    async def auto_match_async(self, scope: AutoMatchScope) -> AutoMatchResult:
        return await self.scheduler.execute_async(scope)

    def link(
        self,
        cartorio_id: str,
        extrato_item_id: str,
        lancamento_id: str,
        observacao: Optional[str] = None,
        conta_id: Optional[str] = None,
    ) -> Conciliacao:
        return self.linker.link(
            cartorio_id,
            extrato_item_id,
            lancamento_id,
            observacao=observacao,
            conta_id=conta_id,
        )

    def unlink(self, cartorio_id: str, conciliacao_id: str) -> Conciliacao:
        return self.linker.unlink(cartorio_id, conciliacao_id)

    # -- reporting --

    def stats(
        self,
        cartorio_id: str,
        filtros: Optional[ConciliacaoFiltros] = None,
    ) -> ConciliacaoStats:
        return self.aggregator.compute_stats(cartorio_id, filtros)

    def closing(
        self,
        cartorio_id: str,
        day: date,
        filtros: Optional[ConciliacaoFiltros] = None,
    ) -> FechamentoDiario:
        return self.aggregator.compute_fechamento_diario(cartorio_id, day, filtros)

    def pendentes_count(
        self,
        cartorio_id: str,
        conta_id: Optional[str] = None,
        day: Optional[date] = None,
    ) -> int:
        """Pending statement lines, for badges."""
        filtros = ConciliacaoFiltros(
            data_inicio=day,
            data_fim=day,
            status=(StatusConciliacao.PENDENTE,),
            conta_id=conta_id,
        )
        return len(self.store.list_extrato_items(cartorio_id, filtros))

    def history(
        self,
        cartorio_id: str,
        filtros: Optional[ConciliacaoFiltros] = None,
        limit: int = 100,
    ) -> List[ConciliacaoDetalhada]:
        """
        Detailed links, newest first.

        ``data_inicio``/``data_fim`` apply to the day the link was made;
        ``conta_id`` to the statement line's account.
        """
        if limit <= 0:
            raise ValidationError("limit must be positive")
        filtros = filtros or ConciliacaoFiltros()
        snapshot = self.store.snapshot(cartorio_id)

        links = []
        for link in snapshot.list_conciliacoes():
            linked_on = link.conciliado_em.date()
            if filtros.data_inicio and linked_on < filtros.data_inicio:
                continue
            if filtros.data_fim and linked_on > filtros.data_fim:
                continue
            detalhe = self._detail(snapshot, link)
            if filtros.conta_id and detalhe.extrato_item.conta_id != filtros.conta_id:
                continue
            links.append(detalhe)

        links.sort(key=lambda d: (d.conciliacao.conciliado_em, d.conciliacao.id), reverse=True)
        return links[:limit]

    def conciliacoes_do_dia(
        self,
        cartorio_id: str,
        day: date,
        conta_id: Optional[str] = None,
    ) -> List[ConciliacaoDetalhada]:
        """Links whose statement line is dated ``day``, newest first."""
        snapshot = self.store.snapshot(cartorio_id)
        detalhes = [
            self._detail(snapshot, link)
            for link in snapshot.list_conciliacoes()
        ]
        detalhes = [
            d for d in detalhes
            if d.extrato_item.data_transacao == day
            and (conta_id is None or d.extrato_item.conta_id == conta_id)
        ]
        detalhes.sort(key=lambda d: (d.conciliacao.conciliado_em, d.conciliacao.id), reverse=True)
        return detalhes

    def _detail(self, snapshot: LedgerSnapshot, link: Conciliacao) -> ConciliacaoDetalhada:
        return ConciliacaoDetalhada(
            conciliacao=link,
            extrato_item=snapshot.get_extrato_item(link.extrato_item_id),
            lancamento=snapshot.get_lancamento(link.lancamento_id),
        )
