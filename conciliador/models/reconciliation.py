"""Reconciliation result models."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, List, Dict, Any
from uuid import uuid4

from .enums import AuditAction, MatchQuality, OrigemConciliacao
from .records import ExtratoItem, Lancamento


@dataclass(frozen=True)
class Conciliacao:
    """
    The link between exactly one ExtratoItem and exactly one Lancamento.

    Never updated in place: re-linking deletes and recreates it.
    """
    id: str = field(default_factory=lambda: str(uuid4()))
    cartorio_id: str = ""
    extrato_item_id: str = ""
    lancamento_id: str = ""

    # extrato magnitude - lancamento magnitude, in cents
    diferenca_centavos: int = 0
    observacao: Optional[str] = None

    # Audit
    conciliado_em: datetime = field(default_factory=datetime.utcnow)
    origem: OrigemConciliacao = OrigemConciliacao.MANUAL
    score: Optional[int] = None

    @property
    def is_exact(self) -> bool:
        """Check if amounts match exactly (no difference)."""
        return self.diferenca_centavos == 0

    @property
    def diferenca(self) -> float:
        return self.diferenca_centavos / 100.0


@dataclass(frozen=True)
class ConciliacaoDetalhada:
    """A link joined with both of its endpoints."""
    conciliacao: Conciliacao
    extrato_item: ExtratoItem
    lancamento: Lancamento


@dataclass(frozen=True)
class SugestaoConciliacao:
    """Ephemeral match recommendation. Never persisted."""
    lancamento: Lancamento
    score: int
    motivos: List[str] = field(default_factory=list)
    dias_diferenca: int = 0

    @property
    def qualidade(self) -> MatchQuality:
        return MatchQuality.from_score(self.score)


@dataclass(frozen=True)
class ConciliacaoStats:
    """Derived counts over a filtered population. Recomputed on demand."""
    conciliados: int = 0
    pendentes: int = 0
    divergentes: int = 0
    taxa_conciliacao: float = 0.0  # percent of extrato items conciliados
    total_extrato: int = 0
    total_lancamentos: int = 0
    valor_total_extrato_centavos: int = 0
    valor_total_lancamentos_centavos: int = 0
    diferenca_valores_centavos: int = 0

    @property
    def is_complete(self) -> bool:
        """Every statement line is conciliado."""
        return self.total_extrato > 0 and self.conciliados == self.total_extrato

    @property
    def has_issues(self) -> bool:
        return self.divergentes > 0


@dataclass(frozen=True)
class FechamentoDiario:
    """Daily closing aggregate for one calendar date."""
    data: date
    total_conciliados: int = 0
    total_pendentes: int = 0
    total_divergentes: int = 0
    valor_conciliado_centavos: int = 0
    valor_pendente_centavos: int = 0
    valor_divergente_centavos: int = 0
    diferenca_total_centavos: int = 0
    percentual_conciliado: float = 0.0

    @property
    def total_itens(self) -> int:
        return self.total_conciliados + self.total_pendentes + self.total_divergentes


@dataclass
class AuditEntry:
    """An entry in the audit log."""
    id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=datetime.utcnow)

    # Action
    action: AuditAction = AuditAction.LINK_CREATED

    # Context
    cartorio_id: Optional[str] = None
    extrato_item_ids: List[str] = field(default_factory=list)
    lancamento_ids: List[str] = field(default_factory=list)
    conciliacao_id: Optional[str] = None

    # Details
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    # Outcome
    success: bool = True
    error_message: Optional[str] = None


@dataclass(frozen=True)
class PlannedLink:
    """A link the auto-match scheduler intends to create."""
    extrato_item_id: str
    lancamento_id: str
    score: int
    dias_diferenca: int
    motivos: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class SkippedItem:
    """An extrato item the auto-match batch did not link, with the reason."""
    extrato_item_id: str
    reason: str


@dataclass
class AutoMatchResult:
    """Outcome of an auto-match batch."""
    job_id: str = field(default_factory=lambda: str(uuid4()))
    linked: List[str] = field(default_factory=list)  # Conciliacao ids
    skipped: List[SkippedItem] = field(default_factory=list)
    planned: List[PlannedLink] = field(default_factory=list)
    audit_log: List[AuditEntry] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def linked_count(self) -> int:
        return len(self.linked)
