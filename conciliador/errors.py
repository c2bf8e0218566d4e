"""Error kinds raised by the reconciliation core."""

import asyncio
from typing import List, Optional


class ConciliacaoError(Exception):
    """Base class for every error the reconciliation core raises."""

    code = "conciliacao_error"


class NotFoundError(ConciliacaoError):
    """An id does not resolve within the caller's tenant scope."""

    code = "not_found"

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} '{record_id}' not found")


class AlreadyLinkedError(ConciliacaoError):
    """An endpoint is no longer pendente (concurrent or stale claim)."""

    code = "already_linked"

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} '{record_id}' is already linked")


class InvalidScopeError(ConciliacaoError):
    """Records belong to a different account than the operation's scope."""

    code = "invalid_scope"


class ValidationError(ConciliacaoError):
    """Malformed filter or scope, e.g. an end date before the start date."""

    code = "validation_error"


class InvalidTransitionError(ConciliacaoError):
    """A status change the state machine does not allow."""

    code = "invalid_transition"


class AutoMatchAbortedError(ConciliacaoError):
    """
    An auto-match batch stopped on an unexpected Linker error.

    Links committed before the failure stay committed; their ids are
    carried here so the caller can report partial success.
    """

    code = "auto_match_aborted"

    def __init__(
        self,
        committed: List[str],
        cause: Exception,
        extrato_item_id: Optional[str] = None,
    ):
        self.committed = list(committed)
        self.cause = cause
        self.extrato_item_id = extrato_item_id
        super().__init__(
            f"auto-match aborted after {len(self.committed)} link(s): {cause}"
        )

    @property
    def committed_count(self) -> int:
        return len(self.committed)


class AutoMatchCancelledError(asyncio.CancelledError):
    """
    An async auto-match batch was cancelled between two links.

    Still a CancelledError, so task cancellation behaves as usual; the
    links committed before the cancellation are carried in ``committed``.
    """

    def __init__(self, committed: List[str]):
        self.committed = list(committed)
        super().__init__(f"auto-match cancelled after {len(self.committed)} link(s)")

    @property
    def committed_count(self) -> int:
        return len(self.committed)
