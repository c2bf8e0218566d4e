"""
Immutable filter and scope objects.

Every field has a documented default; an unset field never restricts.
Malformed ranges are rejected on construction with ValidationError.
"""

from dataclasses import dataclass, replace
from datetime import date
from typing import Iterable, Optional, Tuple

from ..errors import ValidationError
from ..utils.text import normalize_text
from .enums import StatusConciliacao, TipoLancamento, TipoTransacao
from .records import ExtratoItem, Lancamento


def _check_period(data_inicio: Optional[date], data_fim: Optional[date]) -> None:
    if data_inicio and data_fim and data_fim < data_inicio:
        raise ValidationError(
            f"data_fim {data_fim.isoformat()} is before data_inicio {data_inicio.isoformat()}"
        )


def _in_period(day: Optional[date], data_inicio: Optional[date], data_fim: Optional[date]) -> bool:
    if data_inicio is None and data_fim is None:
        return True
    if day is None:
        return False
    if data_inicio and day < data_inicio:
        return False
    if data_fim and day > data_fim:
        return False
    return True


@dataclass(frozen=True)
class ConciliacaoFiltros:
    """
    Filter over extrato items and lancamentos.

    Attributes:
        data_inicio: First day included (default: unbounded)
        data_fim: Last day included (default: unbounded)
        status: Reconciliation statuses kept (default: all)
        conta_id: Bank account (default: all). Lancamentos without an
            account are never excluded by this field.
        extrato_id: Statement, applies to extrato items only (default: all)
        busca: Search term over description, category and amount (default: none)
        tipo_lancamento: Ledger entry kinds kept (default: all)
        tipo_transacao: Statement line directions kept (default: all)
        valor_minimo_centavos: Lower bound on the amount magnitude (default: none)
        valor_maximo_centavos: Upper bound on the amount magnitude (default: none)
    """
    data_inicio: Optional[date] = None
    data_fim: Optional[date] = None
    status: Tuple[StatusConciliacao, ...] = ()
    conta_id: Optional[str] = None
    extrato_id: Optional[str] = None
    busca: str = ""
    tipo_lancamento: Tuple[TipoLancamento, ...] = ()
    tipo_transacao: Tuple[TipoTransacao, ...] = ()
    valor_minimo_centavos: Optional[int] = None
    valor_maximo_centavos: Optional[int] = None

    def __post_init__(self):
        # Accept any iterable for the multi-valued fields
        for name, enum_cls in (
            ("status", StatusConciliacao),
            ("tipo_lancamento", TipoLancamento),
            ("tipo_transacao", TipoTransacao),
        ):
            object.__setattr__(self, name, _as_enum_tuple(getattr(self, name), enum_cls))
        object.__setattr__(self, "busca", (self.busca or "").strip())

        _check_period(self.data_inicio, self.data_fim)

        for name in ("valor_minimo_centavos", "valor_maximo_centavos"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValidationError(f"{name} must not be negative")
        if (
            self.valor_minimo_centavos is not None
            and self.valor_maximo_centavos is not None
            and self.valor_maximo_centavos < self.valor_minimo_centavos
        ):
            raise ValidationError("valor_maximo_centavos is below valor_minimo_centavos")

    @classmethod
    def for_day(cls, day: date, **kwargs) -> "ConciliacaoFiltros":
        return cls(data_inicio=day, data_fim=day, **kwargs)

    def restricted_to_day(self, day: date) -> "ConciliacaoFiltros":
        """Same filter, narrowed to a single calendar day."""
        return replace(self, data_inicio=day, data_fim=day)

    @property
    def active_count(self) -> int:
        """Number of active optional filters, as shown on the filter badge."""
        count = 0
        if self.status:
            count += 1
        if self.tipo_lancamento:
            count += 1
        if self.tipo_transacao:
            count += 1
        if self.valor_minimo_centavos is not None:
            count += 1
        if self.valor_maximo_centavos is not None:
            count += 1
        return count

    def matches_extrato_item(self, item: ExtratoItem) -> bool:
        if not _in_period(item.data_transacao, self.data_inicio, self.data_fim):
            return False
        if self.status and item.status_conciliacao not in self.status:
            return False
        if self.conta_id and item.conta_id != self.conta_id:
            return False
        if self.extrato_id and item.extrato_id != self.extrato_id:
            return False
        if self.tipo_transacao and item.tipo not in self.tipo_transacao:
            return False
        if not self._value_in_range(item.valor_absoluto_centavos):
            return False
        return self._matches_search(item.descricao, None, item.valor_absoluto_centavos)

    def matches_lancamento(self, lancamento: Lancamento) -> bool:
        if not _in_period(lancamento.data, self.data_inicio, self.data_fim):
            return False
        if self.status and lancamento.status_conciliacao not in self.status:
            return False
        if self.conta_id and lancamento.conta_id and lancamento.conta_id != self.conta_id:
            return False
        if self.tipo_lancamento and lancamento.tipo not in self.tipo_lancamento:
            return False
        if not self._value_in_range(lancamento.valor_absoluto_centavos):
            return False
        return self._matches_search(
            lancamento.descricao, lancamento.categoria, lancamento.valor_absoluto_centavos
        )

    def _value_in_range(self, cents: int) -> bool:
        if self.valor_minimo_centavos is not None and cents < self.valor_minimo_centavos:
            return False
        if self.valor_maximo_centavos is not None and cents > self.valor_maximo_centavos:
            return False
        return True

    def _matches_search(self, descricao: str, categoria: Optional[str], cents: int) -> bool:
        if not self.busca:
            return True
        term = normalize_text(self.busca)
        if term and term in normalize_text(descricao):
            return True
        if term and categoria and term in normalize_text(categoria):
            return True
        # Amount search, e.g. "150" or "150.00" or "150,00"
        raw = self.busca.replace(",", ".")
        return raw in f"{cents / 100:.2f}"


@dataclass(frozen=True)
class AutoMatchScope:
    """
    The batch an auto-match run works on.

    One cartorio and one account; optionally one statement and/or one
    period of transaction dates.
    """
    cartorio_id: str
    conta_id: str
    extrato_id: Optional[str] = None
    data_inicio: Optional[date] = None
    data_fim: Optional[date] = None

    def __post_init__(self):
        if not self.cartorio_id:
            raise ValidationError("cartorio_id is required")
        if not self.conta_id:
            raise ValidationError("conta_id is required")
        _check_period(self.data_inicio, self.data_fim)

    def to_filtros(self) -> ConciliacaoFiltros:
        """Filter selecting the pending statement lines of this batch."""
        return ConciliacaoFiltros(
            data_inicio=self.data_inicio,
            data_fim=self.data_fim,
            status=(StatusConciliacao.PENDENTE,),
            conta_id=self.conta_id,
            extrato_id=self.extrato_id,
        )


def _as_enum_tuple(values: Optional[Iterable], enum_cls) -> tuple:
    if not values:
        return ()
    if isinstance(values, (str, enum_cls)):
        values = [values]
    try:
        return tuple(enum_cls(v) for v in values)
    except ValueError as e:
        raise ValidationError(str(e)) from e
