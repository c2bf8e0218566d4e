"""
In-memory Ledger Store.

Holds contas, extratos, extrato items, lancamentos and conciliacoes per
cartorio. Status and linkage writes go exclusively through
``LedgerStore.atomic``, a unit of work that applies all staged writes
or none of them.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Dict, Iterator, List, Optional, Set

import structlog

from ..errors import AlreadyLinkedError, InvalidScopeError, NotFoundError, ValidationError
from ..models import (
    Conciliacao,
    ConciliacaoFiltros,
    ContaBancaria,
    Extrato,
    ExtratoItem,
    Lancamento,
    StatusConciliacao,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class _LinkState:
    """
    Committed state of one cartorio.

    Replaced as a whole on every commit so readers never observe a
    half-applied unit of work.
    """
    extrato_itens: Dict[str, ExtratoItem] = field(default_factory=dict)
    lancamentos: Dict[str, Lancamento] = field(default_factory=dict)
    conciliacoes: Dict[str, Conciliacao] = field(default_factory=dict)
    link_by_item: Dict[str, str] = field(default_factory=dict)
    link_by_lancamento: Dict[str, str] = field(default_factory=dict)


_EMPTY_STATE = _LinkState()


class _Tenant:
    def __init__(self):
        self.lock = threading.RLock()
        self.contas: Dict[str, ContaBancaria] = {}
        self.extratos: Dict[str, Extrato] = {}
        self.state = _LinkState()


class UnitOfWork:
    """
    Staged writes against one cartorio.

    Reads see staged writes first, then committed state. Nothing is
    visible to other callers until the surrounding ``atomic`` block
    exits without an exception.
    """

    def __init__(self, cartorio_id: str, state: _LinkState):
        self.cartorio_id = cartorio_id
        self._base = state
        self._items: Dict[str, ExtratoItem] = {}
        self._lancamentos: Dict[str, Lancamento] = {}
        self._added: Dict[str, Conciliacao] = {}
        self._deleted: Set[str] = set()

    # -- reads --

    def get_extrato_item(self, extrato_item_id: str) -> ExtratoItem:
        item = self._items.get(extrato_item_id) or self._base.extrato_itens.get(extrato_item_id)
        if item is None:
            raise NotFoundError("ExtratoItem", extrato_item_id)
        return item

    def get_lancamento(self, lancamento_id: str) -> Lancamento:
        lancamento = (
            self._lancamentos.get(lancamento_id)
            or self._base.lancamentos.get(lancamento_id)
        )
        if lancamento is None:
            raise NotFoundError("Lancamento", lancamento_id)
        return lancamento

    def get_conciliacao(self, conciliacao_id: str) -> Conciliacao:
        if conciliacao_id in self._deleted:
            raise NotFoundError("Conciliacao", conciliacao_id)
        link = self._added.get(conciliacao_id) or self._base.conciliacoes.get(conciliacao_id)
        if link is None:
            raise NotFoundError("Conciliacao", conciliacao_id)
        return link

    # -- writes --

    def put_extrato_item(self, item: ExtratoItem) -> None:
        self.get_extrato_item(item.id)
        self._items[item.id] = item

    def put_lancamento(self, lancamento: Lancamento) -> None:
        self.get_lancamento(lancamento.id)
        self._lancamentos[lancamento.id] = lancamento

    def add_conciliacao(self, link: Conciliacao) -> None:
        for other in self._live_links():
            if other.extrato_item_id == link.extrato_item_id:
                raise AlreadyLinkedError("ExtratoItem", link.extrato_item_id)
            if other.lancamento_id == link.lancamento_id:
                raise AlreadyLinkedError("Lancamento", link.lancamento_id)
        self._added[link.id] = link

    def delete_conciliacao(self, conciliacao_id: str) -> None:
        self.get_conciliacao(conciliacao_id)
        if conciliacao_id in self._added:
            del self._added[conciliacao_id]
        else:
            self._deleted.add(conciliacao_id)

    def _live_links(self) -> Iterator[Conciliacao]:
        for link_id, link in self._base.conciliacoes.items():
            if link_id not in self._deleted:
                yield link
        yield from self._added.values()

    @property
    def has_changes(self) -> bool:
        return bool(self._items or self._lancamentos or self._added or self._deleted)

    def build_state(self) -> _LinkState:
        """New committed state with every staged write applied."""
        base = self._base
        itens = dict(base.extrato_itens)
        itens.update(self._items)
        lancamentos = dict(base.lancamentos)
        lancamentos.update(self._lancamentos)

        conciliacoes = dict(base.conciliacoes)
        link_by_item = dict(base.link_by_item)
        link_by_lancamento = dict(base.link_by_lancamento)
        for link_id in self._deleted:
            link = conciliacoes.pop(link_id)
            link_by_item.pop(link.extrato_item_id, None)
            link_by_lancamento.pop(link.lancamento_id, None)
        for link in self._added.values():
            conciliacoes[link.id] = link
            link_by_item[link.extrato_item_id] = link.id
            link_by_lancamento[link.lancamento_id] = link.id

        return _LinkState(
            extrato_itens=itens,
            lancamentos=lancamentos,
            conciliacoes=conciliacoes,
            link_by_item=link_by_item,
            link_by_lancamento=link_by_lancamento,
        )


class LedgerSnapshot:
    """Read-only view over one committed state of a cartorio."""

    def __init__(self, state: _LinkState):
        self._state = state

    def list_extrato_items(self, filtros: Optional[ConciliacaoFiltros] = None) -> List[ExtratoItem]:
        itens = self._state.extrato_itens.values()
        if filtros is None:
            return list(itens)
        return [item for item in itens if filtros.matches_extrato_item(item)]

    def list_lancamentos(self, filtros: Optional[ConciliacaoFiltros] = None) -> List[Lancamento]:
        lancamentos = self._state.lancamentos.values()
        if filtros is None:
            return list(lancamentos)
        return [lanc for lanc in lancamentos if filtros.matches_lancamento(lanc)]

    def list_conciliacoes(self) -> List[Conciliacao]:
        return list(self._state.conciliacoes.values())

    def get_extrato_item(self, extrato_item_id: str) -> ExtratoItem:
        item = self._state.extrato_itens.get(extrato_item_id)
        if item is None:
            raise NotFoundError("ExtratoItem", extrato_item_id)
        return item

    def get_lancamento(self, lancamento_id: str) -> Lancamento:
        lancamento = self._state.lancamentos.get(lancamento_id)
        if lancamento is None:
            raise NotFoundError("Lancamento", lancamento_id)
        return lancamento

    def get_conciliacao(self, conciliacao_id: str) -> Conciliacao:
        link = self._state.conciliacoes.get(conciliacao_id)
        if link is None:
            raise NotFoundError("Conciliacao", conciliacao_id)
        return link

    def conciliacao_for_item(self, extrato_item_id: str) -> Optional[Conciliacao]:
        link_id = self._state.link_by_item.get(extrato_item_id)
        return self._state.conciliacoes.get(link_id) if link_id else None

    def conciliacao_for_lancamento(self, lancamento_id: str) -> Optional[Conciliacao]:
        link_id = self._state.link_by_lancamento.get(lancamento_id)
        return self._state.conciliacoes.get(link_id) if link_id else None


class LedgerStore:
    """
    Thread-safe repository of ledger records, partitioned by cartorio.

    Pure data access: the only rules enforced here are tenant scoping,
    the one-to-one link index and the all-or-nothing unit of work.
    """

    def __init__(self):
        self._tenants: Dict[str, _Tenant] = {}
        self._registry_lock = threading.Lock()

    def _tenant(self, cartorio_id: str) -> _Tenant:
        """The cartorio's partition, created on first ingestion."""
        with self._registry_lock:
            tenant = self._tenants.get(cartorio_id)
            if tenant is None:
                tenant = _Tenant()
                self._tenants[cartorio_id] = tenant
            return tenant

    def _existing(self, cartorio_id: str) -> Optional[_Tenant]:
        # Reads never allocate a partition for an unknown cartorio
        with self._registry_lock:
            return self._tenants.get(cartorio_id)

    # -- ingestion --

    def add_conta(self, conta: ContaBancaria) -> ContaBancaria:
        tenant = self._tenant(conta.cartorio_id)
        with tenant.lock:
            tenant.contas[conta.id] = conta
        return conta

    def add_extrato(self, extrato: Extrato) -> Extrato:
        tenant = self._tenant(extrato.cartorio_id)
        with tenant.lock:
            if extrato.conta_id and extrato.conta_id not in tenant.contas:
                raise NotFoundError("ContaBancaria", extrato.conta_id)
            tenant.extratos[extrato.id] = extrato
        return extrato

    def add_extrato_item(self, item: ExtratoItem) -> ExtratoItem:
        """Store a freshly ingested statement line, always as pendente."""
        tenant = self._tenant(item.cartorio_id)
        with tenant.lock:
            if item.id in tenant.state.extrato_itens:
                raise ValidationError(f"ExtratoItem '{item.id}' already exists")
            conta_id = item.conta_id
            extrato = tenant.extratos.get(item.extrato_id)
            if extrato is not None:
                if conta_id and conta_id != extrato.conta_id:
                    raise InvalidScopeError(
                        f"ExtratoItem '{item.id}' account {conta_id} differs from "
                        f"its extrato's account {extrato.conta_id}"
                    )
                conta_id = extrato.conta_id
            item = replace(
                item,
                conta_id=conta_id,
                status_conciliacao=StatusConciliacao.PENDENTE,
                lancamento_vinculado_id=None,
            )
            state = tenant.state
            itens = dict(state.extrato_itens)
            itens[item.id] = item
            tenant.state = replace(state, extrato_itens=itens)
        return item

    def add_lancamento(self, lancamento: Lancamento) -> Lancamento:
        """Store a new ledger entry, always as pendente."""
        tenant = self._tenant(lancamento.cartorio_id)
        with tenant.lock:
            if lancamento.id in tenant.state.lancamentos:
                raise ValidationError(f"Lancamento '{lancamento.id}' already exists")
            lancamento = replace(
                lancamento,
                status_conciliacao=StatusConciliacao.PENDENTE,
                extrato_item_vinculado_id=None,
            )
            state = tenant.state
            lancamentos = dict(state.lancamentos)
            lancamentos[lancamento.id] = lancamento
            tenant.state = replace(state, lancamentos=lancamentos)
        return lancamento

    # -- reads --

    def get_conta(self, cartorio_id: str, conta_id: str) -> ContaBancaria:
        tenant = self._existing(cartorio_id)
        conta = tenant.contas.get(conta_id) if tenant else None
        if conta is None:
            raise NotFoundError("ContaBancaria", conta_id)
        return conta

    def get_extrato(self, cartorio_id: str, extrato_id: str) -> Extrato:
        tenant = self._existing(cartorio_id)
        extrato = tenant.extratos.get(extrato_id) if tenant else None
        if extrato is None:
            raise NotFoundError("Extrato", extrato_id)
        return extrato

    def snapshot(self, cartorio_id: str) -> LedgerSnapshot:
        """Consistent read view of the cartorio's current committed state."""
        tenant = self._existing(cartorio_id)
        return LedgerSnapshot(tenant.state if tenant else _EMPTY_STATE)

    def get_extrato_item(self, cartorio_id: str, extrato_item_id: str) -> ExtratoItem:
        return self.snapshot(cartorio_id).get_extrato_item(extrato_item_id)

    def get_lancamento(self, cartorio_id: str, lancamento_id: str) -> Lancamento:
        return self.snapshot(cartorio_id).get_lancamento(lancamento_id)

    def get_conciliacao(self, cartorio_id: str, conciliacao_id: str) -> Conciliacao:
        return self.snapshot(cartorio_id).get_conciliacao(conciliacao_id)

    def find_conciliacao_by_endpoint(
        self,
        cartorio_id: str,
        extrato_item_id: Optional[str] = None,
        lancamento_id: Optional[str] = None,
    ) -> Optional[Conciliacao]:
        """The link attached to an extrato item or a lancamento, if any."""
        snapshot = self.snapshot(cartorio_id)
        if extrato_item_id is not None:
            return snapshot.conciliacao_for_item(extrato_item_id)
        if lancamento_id is not None:
            return snapshot.conciliacao_for_lancamento(lancamento_id)
        return None

    def list_extrato_items(
        self,
        cartorio_id: str,
        filtros: Optional[ConciliacaoFiltros] = None,
    ) -> List[ExtratoItem]:
        return self.snapshot(cartorio_id).list_extrato_items(filtros)

    def list_lancamentos(
        self,
        cartorio_id: str,
        filtros: Optional[ConciliacaoFiltros] = None,
    ) -> List[Lancamento]:
        return self.snapshot(cartorio_id).list_lancamentos(filtros)

    def list_conciliacoes(self, cartorio_id: str) -> List[Conciliacao]:
        return self.snapshot(cartorio_id).list_conciliacoes()

    # -- atomic writes --

    @contextmanager
    def atomic(self, cartorio_id: str) -> Iterator[UnitOfWork]:
        """
        Run a unit of work under the cartorio's lock.

        Staged writes are applied with a single state swap when the block
        exits normally. Any exception, cancellation included, discards them.
        A cartorio with nothing ingested has nothing to write.
        """
        tenant = self._existing(cartorio_id)
        if tenant is None:
            raise NotFoundError("Cartorio", cartorio_id)
        with tenant.lock:
            uow = UnitOfWork(cartorio_id, tenant.state)
            try:
                yield uow
            except BaseException:
                if uow.has_changes:
                    logger.debug("Unit of work rolled back", cartorio_id=cartorio_id)
                raise
            if uow.has_changes:
                tenant.state = uow.build_state()
