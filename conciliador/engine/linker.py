"""
Linker - the only writer of Conciliacao records.

Creates and deletes links and keeps both endpoints' status and
linkage fields in step with them. Each operation is one unit of work
on the Ledger Store: the link and both endpoints change together or
not at all.
"""

from dataclasses import replace
from typing import Optional

import structlog

from ..config import Settings, get_settings
from ..errors import AlreadyLinkedError, ConciliacaoError, InvalidScopeError
from ..models import (
    AuditAction,
    AuditEntry,
    Conciliacao,
    ExtratoItem,
    Lancamento,
    OrigemConciliacao,
    StatusConciliacao,
)
from ..store import LedgerStore
from ..utils.audit_logger import AuditLogger
from .state_machine import status_for_difference, transition

logger = structlog.get_logger()


def link_difference(extrato_item: ExtratoItem, lancamento: Lancamento) -> int:
    """Extrato magnitude minus lancamento magnitude, in cents."""
    return extrato_item.valor_absoluto_centavos - lancamento.valor_absoluto_centavos


class Linker:
    """
    Enforces the one-to-one link invariant and the status state machine.

    Both checks (endpoint still pendente, no other link on either side)
    run inside the same critical section as the write, so two concurrent
    ``link`` calls naming an overlapping endpoint cannot both succeed.
    """

    def __init__(
        self,
        store: LedgerStore,
        settings: Optional[Settings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.epsilon = self.settings.amount_epsilon_cents
        self.audit = audit_logger or AuditLogger("linker", self.settings)

    def link(
        self,
        cartorio_id: str,
        extrato_item_id: str,
        lancamento_id: str,
        observacao: Optional[str] = None,
        conta_id: Optional[str] = None,
        origem: OrigemConciliacao = OrigemConciliacao.MANUAL,
        score: Optional[int] = None,
    ) -> Conciliacao:
        """
        Link an extrato item to a lancamento.

        Args:
            cartorio_id: Tenant scope of the operation
            extrato_item_id: Statement line to link
            lancamento_id: Ledger entry to link
            observacao: Optional note stored on the link
            conta_id: Account scope; when given the statement line must belong to it
            origem: Manual action or auto-match batch
            score: Suggestion score that led to the link, if any

        Returns:
            The committed Conciliacao

        Raises:
            NotFoundError: an id does not resolve within the cartorio
            AlreadyLinkedError: an endpoint is not pendente
            InvalidScopeError: the records fall outside the account scope
        """
        try:
            with self.store.atomic(cartorio_id) as uow:
                item = uow.get_extrato_item(extrato_item_id)
                lancamento = uow.get_lancamento(lancamento_id)
                self._check_scope(item, lancamento, conta_id)

                if item.status_conciliacao != StatusConciliacao.PENDENTE:
                    raise AlreadyLinkedError("ExtratoItem", item.id)
                if lancamento.status_conciliacao != StatusConciliacao.PENDENTE:
                    raise AlreadyLinkedError("Lancamento", lancamento.id)

                diferenca = link_difference(item, lancamento)
                status = status_for_difference(diferenca, self.epsilon)

                uow.put_extrato_item(replace(
                    item,
                    status_conciliacao=transition(item.status_conciliacao, status),
                    lancamento_vinculado_id=lancamento.id,
                ))
                uow.put_lancamento(replace(
                    lancamento,
                    status_conciliacao=transition(lancamento.status_conciliacao, status),
                    extrato_item_vinculado_id=item.id,
                ))
                conciliacao = self._build_conciliacao(
                    cartorio_id, item, lancamento, diferenca, observacao, origem, score
                )
                uow.add_conciliacao(conciliacao)
        except ConciliacaoError as e:
            self.audit.log(AuditEntry(
                action=AuditAction.LINK_REJECTED,
                cartorio_id=cartorio_id,
                extrato_item_ids=[extrato_item_id],
                lancamento_ids=[lancamento_id],
                message="Link rejected",
                details={"error": e.code},
                success=False,
                error_message=str(e),
            ))
            raise

        self.audit.log(AuditEntry(
            action=AuditAction.LINK_CREATED,
            cartorio_id=cartorio_id,
            extrato_item_ids=[extrato_item_id],
            lancamento_ids=[lancamento_id],
            conciliacao_id=conciliacao.id,
            message="Link created",
            details={
                "status": status.value,
                "diferenca_centavos": diferenca,
                "origem": origem.value,
                "score": score,
            },
        ))
        return conciliacao

    def unlink(self, cartorio_id: str, conciliacao_id: str) -> Conciliacao:
        """
        Delete a link and reset both endpoints to pendente.

        Returns:
            The removed Conciliacao

        Raises:
            NotFoundError: the link does not exist within the cartorio
        """
        with self.store.atomic(cartorio_id) as uow:
            conciliacao = uow.get_conciliacao(conciliacao_id)
            item = uow.get_extrato_item(conciliacao.extrato_item_id)
            lancamento = uow.get_lancamento(conciliacao.lancamento_id)

            uow.delete_conciliacao(conciliacao.id)
            uow.put_extrato_item(replace(
                item,
                status_conciliacao=transition(item.status_conciliacao, StatusConciliacao.PENDENTE),
                lancamento_vinculado_id=None,
            ))
            uow.put_lancamento(replace(
                lancamento,
                status_conciliacao=transition(
                    lancamento.status_conciliacao, StatusConciliacao.PENDENTE
                ),
                extrato_item_vinculado_id=None,
            ))

        self.audit.log(AuditEntry(
            action=AuditAction.LINK_REMOVED,
            cartorio_id=cartorio_id,
            extrato_item_ids=[conciliacao.extrato_item_id],
            lancamento_ids=[conciliacao.lancamento_id],
            conciliacao_id=conciliacao.id,
            message="Link removed",
            details={"diferenca_centavos": conciliacao.diferenca_centavos},
        ))
        return conciliacao

    def _check_scope(
        self,
        item: ExtratoItem,
        lancamento: Lancamento,
        conta_id: Optional[str],
    ) -> None:
        if conta_id and item.conta_id != conta_id:
            raise InvalidScopeError(
                f"ExtratoItem '{item.id}' does not belong to account '{conta_id}'"
            )
        if lancamento.conta_id and item.conta_id and lancamento.conta_id != item.conta_id:
            raise InvalidScopeError(
                f"Lancamento '{lancamento.id}' belongs to account '{lancamento.conta_id}', "
                f"ExtratoItem '{item.id}' to '{item.conta_id}'"
            )

    def _build_conciliacao(
        self,
        cartorio_id: str,
        item: ExtratoItem,
        lancamento: Lancamento,
        diferenca: int,
        observacao: Optional[str],
        origem: OrigemConciliacao,
        score: Optional[int],
    ) -> Conciliacao:
        return Conciliacao(
            cartorio_id=cartorio_id,
            extrato_item_id=item.id,
            lancamento_id=lancamento.id,
            diferenca_centavos=diferenca,
            observacao=observacao,
            origem=origem,
            score=score,
        )
