"""
Status state machine for linkable records.

    pendente --link--> conciliado | divergente
    conciliado | divergente --unlink--> pendente

No other transition is legal. A linked record is corrected by
unlinking and linking again, never by moving between the two linked
states directly.
"""

from typing import Dict, FrozenSet

from ..errors import InvalidTransitionError
from ..models import StatusConciliacao

_ALLOWED: Dict[StatusConciliacao, FrozenSet[StatusConciliacao]] = {
    StatusConciliacao.PENDENTE: frozenset({
        StatusConciliacao.CONCILIADO,
        StatusConciliacao.DIVERGENTE,
    }),
    StatusConciliacao.CONCILIADO: frozenset({StatusConciliacao.PENDENTE}),
    StatusConciliacao.DIVERGENTE: frozenset({StatusConciliacao.PENDENTE}),
}


def can_transition(current: StatusConciliacao, target: StatusConciliacao) -> bool:
    return target in _ALLOWED[current]


def transition(current: StatusConciliacao, target: StatusConciliacao) -> StatusConciliacao:
    """Return ``target`` if the move is legal, else raise InvalidTransitionError."""
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"cannot move from {current.value} to {target.value}"
        )
    return target


def status_for_difference(diferenca_cents: int, epsilon_cents: int = 0) -> StatusConciliacao:
    """Linked status implied by the difference between the two amounts."""
    if abs(diferenca_cents) <= epsilon_cents:
        return StatusConciliacao.CONCILIADO
    return StatusConciliacao.DIVERGENTE
