"""Data models for the bank reconciliation core."""

from .enums import (
    StatusConciliacao,
    TipoConta,
    TipoTransacao,
    TipoLancamento,
    StatusLancamento,
    OrigemConciliacao,
    MatchQuality,
    AuditAction,
)
from .records import (
    ContaBancaria,
    Extrato,
    ExtratoItem,
    Lancamento,
)
from .reconciliation import (
    Conciliacao,
    ConciliacaoDetalhada,
    SugestaoConciliacao,
    ConciliacaoStats,
    FechamentoDiario,
    AuditEntry,
    PlannedLink,
    SkippedItem,
    AutoMatchResult,
)
from .filters import ConciliacaoFiltros, AutoMatchScope

__all__ = [
    # Enums
    "StatusConciliacao",
    "TipoConta",
    "TipoTransacao",
    "TipoLancamento",
    "StatusLancamento",
    "OrigemConciliacao",
    "MatchQuality",
    "AuditAction",
    # Records
    "ContaBancaria",
    "Extrato",
    "ExtratoItem",
    "Lancamento",
    # Reconciliation
    "Conciliacao",
    "ConciliacaoDetalhada",
    "SugestaoConciliacao",
    "ConciliacaoStats",
    "FechamentoDiario",
    "AuditEntry",
    "PlannedLink",
    "SkippedItem",
    "AutoMatchResult",
    # Filters
    "ConciliacaoFiltros",
    "AutoMatchScope",
]
