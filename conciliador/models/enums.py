"""Enumerations for the bank reconciliation core."""

from enum import Enum


class StatusConciliacao(str, Enum):
    """
    Reconciliation status of an extrato item or lancamento.

    PENDENTE: Not linked (initial state)
    CONCILIADO: Linked, amounts equal within epsilon
    DIVERGENTE: Linked, amounts differ beyond epsilon
    """
    PENDENTE = "pendente"
    CONCILIADO = "conciliado"
    DIVERGENTE = "divergente"

    @property
    def is_linked(self) -> bool:
        return self is not StatusConciliacao.PENDENTE


class TipoConta(str, Enum):
    """Kind of bank account."""
    CORRENTE = "corrente"
    POUPANCA = "poupanca"
    INVESTIMENTO = "investimento"


class TipoTransacao(str, Enum):
    """Direction of a bank statement line."""
    CREDITO = "credito"    # Money in
    DEBITO = "debito"      # Money out


class TipoLancamento(str, Enum):
    """Kind of ledger entry."""
    RECEITA = "receita"
    DESPESA = "despesa"


class StatusLancamento(str, Enum):
    """Payment status of a ledger entry."""
    PAGO = "pago"
    PENDENTE = "pendente"
    AGENDADO = "agendado"
    CANCELADO = "cancelado"


class OrigemConciliacao(str, Enum):
    """Who created a link."""
    MANUAL = "manual"
    AUTOMATICA = "automatica"


class MatchQuality(str, Enum):
    """Quality band of a suggestion score, for display."""
    EXCELENTE = "excelente"   # >= 90
    BOA = "boa"               # >= 75
    RAZOAVEL = "razoavel"     # >= 60
    FRACA = "fraca"

    @classmethod
    def from_score(cls, score: int) -> "MatchQuality":
        if score >= 90:
            return cls.EXCELENTE
        if score >= 75:
            return cls.BOA
        if score >= 60:
            return cls.RAZOAVEL
        return cls.FRACA


class AuditAction(str, Enum):
    """Type of audit action."""
    LINK_CREATED = "link_created"
    LINK_REMOVED = "link_removed"
    LINK_REJECTED = "link_rejected"
    AUTO_MATCH_STARTED = "auto_match_started"
    AUTO_MATCH_ITEM_SKIPPED = "auto_match_item_skipped"
    AUTO_MATCH_COMPLETED = "auto_match_completed"
    AUTO_MATCH_ABORTED = "auto_match_aborted"
