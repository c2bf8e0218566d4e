"""
Auto-Match Scheduler - greedy batch linking.

Builds the score matrix of a batch restricted to pairs at or above the
auto-accept threshold, then claims pairs in descending score order,
skipping any pair whose extrato item or lancamento was already claimed.
Greedy selection is a deliberate simplification over optimal bipartite
assignment: predictable, fast, and tie-broken exactly like suggestions.

Planning is pure. Committing delegates to the Linker one link at a
time; each link is atomic on its own.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Set, Tuple

import structlog

from ..config import Settings, get_settings
from ..errors import (
    AlreadyLinkedError,
    AutoMatchAbortedError,
    AutoMatchCancelledError,
    InvalidScopeError,
)
from ..models import (
    AuditAction,
    AuditEntry,
    AutoMatchResult,
    AutoMatchScope,
    ConciliacaoFiltros,
    ExtratoItem,
    OrigemConciliacao,
    PlannedLink,
    SkippedItem,
    StatusConciliacao,
)
from ..store import LedgerStore
from .linker import Linker
from .matching import CandidateScore, MatchingEngine

logger = structlog.get_logger()

REASON_NO_CANDIDATE = "Nenhum candidato acima do limiar de auto-conciliação"
REASON_CLAIMED_IN_BATCH = "Candidatos já reivindicados neste lote"
REASON_CONCURRENT_CLAIM = "Vinculado concorrentemente"


@dataclass(frozen=True)
class _Pair:
    item: ExtratoItem
    candidate: CandidateScore

    @property
    def sort_key(self):
        return (
            -self.candidate.score,
            self.candidate.days_apart,
            self.candidate.lancamento.id,
            self.item.id,
        )


class AutoMatchScheduler:
    """
    Commits a maximal greedy set of links for one batch.

    Claim bookkeeping is local to a call, so independent batches
    (different accounts or cartorios) may run concurrently.
    """

    def __init__(
        self,
        store: LedgerStore,
        engine: MatchingEngine,
        linker: Linker,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.engine = engine
        self.linker = linker
        self.settings = settings or get_settings()
        self.threshold = self.settings.auto_accept_threshold

    def plan(self, scope: AutoMatchScope) -> Tuple[List[PlannedLink], List[SkippedItem]]:
        """
        Compute the links this batch intends to create.

        Returns:
            (planned links in claim order, extrato items left unlinked)
        """
        items, lancamentos = self._load_batch(scope)

        pairs: List[_Pair] = []
        with_candidates: Set[str] = set()
        for item in items:
            for candidate in self.engine.rank(item, lancamentos, min_score=self.threshold):
                pairs.append(_Pair(item=item, candidate=candidate))
                with_candidates.add(item.id)
        pairs.sort(key=lambda p: p.sort_key)

        claimed_items: Set[str] = set()
        claimed_lancamentos: Set[str] = set()
        planned = []
        for pair in pairs:
            lancamento_id = pair.candidate.lancamento.id
            if pair.item.id in claimed_items or lancamento_id in claimed_lancamentos:
                continue
            claimed_items.add(pair.item.id)
            claimed_lancamentos.add(lancamento_id)
            planned.append(PlannedLink(
                extrato_item_id=pair.item.id,
                lancamento_id=lancamento_id,
                score=pair.candidate.score,
                dias_diferenca=pair.candidate.days_apart,
                motivos=list(pair.candidate.motivos),
            ))

        skipped = []
        for item in items:
            if item.id in claimed_items:
                continue
            reason = REASON_CLAIMED_IN_BATCH if item.id in with_candidates else REASON_NO_CANDIDATE
            skipped.append(SkippedItem(extrato_item_id=item.id, reason=reason))

        logger.info(
            "Auto-match planned",
            cartorio_id=scope.cartorio_id,
            conta_id=scope.conta_id,
            items=len(items),
            lancamentos=len(lancamentos),
            candidate_pairs=len(pairs),
            planned=len(planned),
        )
        return planned, skipped

    def execute(self, scope: AutoMatchScope) -> AutoMatchResult:
        """
        Plan and commit a batch.

        Concurrent claims (AlreadyLinkedError) are recorded as skipped and
        the batch continues. Any other Linker error aborts the rest of
        the batch with AutoMatchAbortedError carrying the committed ids.
        """
        result = AutoMatchResult()
        self._start(scope, result)
        for planned in result.planned:
            self._commit_one(scope, planned, result)
        return self._finish(scope, result)

    async def execute_async(self, scope: AutoMatchScope) -> AutoMatchResult:
        """
        Same as ``execute``, with planning and each link run in a worker
        thread so the event loop keeps serving other requests.

        Cancellation lands between links only: a link already in flight
        is allowed to finish. The batch then raises AutoMatchCancelledError
        carrying the ids committed so far.
        """
        result = AutoMatchResult()
        try:
            await asyncio.to_thread(self._start, scope, result)
            for planned in result.planned:
                await self._commit_off_loop(scope, planned, result)
        except asyncio.CancelledError:
            logger.warning(
                "Auto-match cancelled",
                job_id=result.job_id,
                committed=len(result.linked),
            )
            raise AutoMatchCancelledError(result.linked) from None
        return self._finish(scope, result)

    async def _commit_off_loop(
        self,
        scope: AutoMatchScope,
        planned: PlannedLink,
        result: AutoMatchResult,
    ) -> None:
        commit = asyncio.ensure_future(
            asyncio.to_thread(self._commit_one, scope, planned, result)
        )
        try:
            await asyncio.shield(commit)
        except asyncio.CancelledError:
            # Wait for the in-flight link so ``result.linked`` is exact
            await commit
            raise

    def _load_batch(self, scope: AutoMatchScope):
        self.store.get_conta(scope.cartorio_id, scope.conta_id)
        if scope.extrato_id:
            extrato = self.store.get_extrato(scope.cartorio_id, scope.extrato_id)
            if extrato.conta_id != scope.conta_id:
                raise InvalidScopeError(
                    f"Extrato '{extrato.id}' belongs to account '{extrato.conta_id}', "
                    f"not '{scope.conta_id}'"
                )

        snapshot = self.store.snapshot(scope.cartorio_id)
        items = sorted(
            snapshot.list_extrato_items(scope.to_filtros()),
            key=lambda i: i.id,
        )
        lancamentos = sorted(
            snapshot.list_lancamentos(
                ConciliacaoFiltros(
                    status=(StatusConciliacao.PENDENTE,),
                    conta_id=scope.conta_id,
                ),
            ),
            key=lambda l: l.id,
        )
        return items, lancamentos

    def _start(self, scope: AutoMatchScope, result: AutoMatchResult) -> None:
        planned, skipped = self.plan(scope)
        result.planned = planned
        result.skipped = list(skipped)

        self._audit(result, AuditEntry(
            action=AuditAction.AUTO_MATCH_STARTED,
            cartorio_id=scope.cartorio_id,
            message="Auto-match started",
            details={
                "job_id": result.job_id,
                "conta_id": scope.conta_id,
                "extrato_id": scope.extrato_id,
                "planned": len(planned),
                "threshold": self.threshold,
            },
        ))
        for item in skipped:
            self._audit_skip(scope, result, item)

    def _commit_one(
        self,
        scope: AutoMatchScope,
        planned: PlannedLink,
        result: AutoMatchResult,
    ) -> None:
        try:
            conciliacao = self.linker.link(
                scope.cartorio_id,
                planned.extrato_item_id,
                planned.lancamento_id,
                conta_id=scope.conta_id,
                origem=OrigemConciliacao.AUTOMATICA,
                score=planned.score,
            )
        except AlreadyLinkedError:
            item = SkippedItem(
                extrato_item_id=planned.extrato_item_id,
                reason=REASON_CONCURRENT_CLAIM,
            )
            result.skipped.append(item)
            self._audit_skip(scope, result, item)
            return
        except Exception as e:
            self._audit(result, AuditEntry(
                action=AuditAction.AUTO_MATCH_ABORTED,
                cartorio_id=scope.cartorio_id,
                extrato_item_ids=[planned.extrato_item_id],
                lancamento_ids=[planned.lancamento_id],
                message="Auto-match aborted",
                details={"job_id": result.job_id, "committed": len(result.linked)},
                success=False,
                error_message=str(e),
            ))
            raise AutoMatchAbortedError(
                result.linked, e, extrato_item_id=planned.extrato_item_id
            ) from e

        result.linked.append(conciliacao.id)

    def _finish(self, scope: AutoMatchScope, result: AutoMatchResult) -> AutoMatchResult:
        result.completed_at = datetime.utcnow()
        self._audit(result, AuditEntry(
            action=AuditAction.AUTO_MATCH_COMPLETED,
            cartorio_id=scope.cartorio_id,
            message="Auto-match complete",
            details={
                "job_id": result.job_id,
                "linked": len(result.linked),
                "skipped": len(result.skipped),
            },
        ))
        return result

    def _audit_skip(self, scope: AutoMatchScope, result: AutoMatchResult, item: SkippedItem) -> None:
        self._audit(result, AuditEntry(
            action=AuditAction.AUTO_MATCH_ITEM_SKIPPED,
            cartorio_id=scope.cartorio_id,
            extrato_item_ids=[item.extrato_item_id],
            message="Auto-match skipped item",
            details={"job_id": result.job_id, "reason": item.reason},
        ))

    def _audit(self, result: AutoMatchResult, entry: AuditEntry) -> None:
        result.audit_log.append(entry)
        self.linker.audit.log(entry)
