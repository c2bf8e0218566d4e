"""Ledger records: accounts, statements, statement lines and ledger entries."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional
from uuid import uuid4

from .enums import (
    StatusConciliacao,
    StatusLancamento,
    TipoConta,
    TipoLancamento,
    TipoTransacao,
)


@dataclass(frozen=True)
class ContaBancaria:
    """A bank account owned by a cartorio."""
    id: str = field(default_factory=lambda: str(uuid4()))
    cartorio_id: str = ""
    banco: str = ""
    agencia: str = ""
    conta: str = ""
    tipo: TipoConta = TipoConta.CORRENTE
    saldo_centavos: int = 0
    ativo: bool = True


@dataclass(frozen=True)
class Extrato:
    """One imported bank statement. Read-only to the reconciliation core."""
    id: str = field(default_factory=lambda: str(uuid4()))
    cartorio_id: str = ""
    conta_id: str = ""
    arquivo: str = ""
    periodo_inicio: Optional[date] = None
    periodo_fim: Optional[date] = None
    total_lancamentos: int = 0
    status: str = "processado"
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass(frozen=True)
class ExtratoItem:
    """
    One transaction line of a bank statement.

    Amounts are stored in CENTS. ``valor_centavos`` is signed as it
    appears on the statement (debits usually negative); matching and
    linking compare magnitudes.

    ``status_conciliacao`` and ``lancamento_vinculado_id`` are a
    projection of the Conciliacao record and are only written by the
    Linker: the link id is set iff the status is not PENDENTE.
    """
    id: str = field(default_factory=lambda: str(uuid4()))
    cartorio_id: str = ""
    extrato_id: str = ""
    conta_id: Optional[str] = None
    data_transacao: Optional[date] = None
    descricao: str = ""
    valor_centavos: int = 0
    tipo: TipoTransacao = TipoTransacao.CREDITO
    saldo_parcial_centavos: Optional[int] = None
    status_conciliacao: StatusConciliacao = StatusConciliacao.PENDENTE
    lancamento_vinculado_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def valor_absoluto_centavos(self) -> int:
        return abs(self.valor_centavos)

    @property
    def is_linked(self) -> bool:
        return self.lancamento_vinculado_id is not None


@dataclass(frozen=True)
class Lancamento:
    """
    One internal ledger entry (income or expense).

    ``conta_id`` is optional: an entry without an account may be matched
    against statement lines of any account of the same cartorio.
    Linkage fields mirror ExtratoItem and are written by the Linker only.
    """
    id: str = field(default_factory=lambda: str(uuid4()))
    cartorio_id: str = ""
    conta_id: Optional[str] = None
    data: Optional[date] = None
    descricao: str = ""
    tipo: TipoLancamento = TipoLancamento.RECEITA
    categoria: Optional[str] = None
    valor_centavos: int = 0
    status: StatusLancamento = StatusLancamento.PAGO
    status_conciliacao: StatusConciliacao = StatusConciliacao.PENDENTE
    extrato_item_vinculado_id: Optional[str] = None
    responsavel: Optional[str] = None
    observacoes: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def valor_absoluto_centavos(self) -> int:
        return abs(self.valor_centavos)

    @property
    def is_linked(self) -> bool:
        return self.extrato_item_vinculado_id is not None
