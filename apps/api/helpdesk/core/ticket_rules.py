from types import MappingProxyType

from ..models.ticket import TicketStatus

S = TicketStatus

# state -> allowed next states. CLOSED / CANCELLED are terminal.
ALLOWED_TRANSITIONS = MappingProxyType({
    S.OPEN: frozenset({S.IN_PROGRESS, S.CANCELLED}),
    S.IN_PROGRESS: frozenset({S.PENDING_USER, S.RESOLVED, S.CANCELLED}),
    S.PENDING_USER: frozenset({S.IN_PROGRESS, S.RESOLVED, S.CANCELLED}),
    S.RESOLVED: frozenset({S.CLOSED, S.IN_PROGRESS}),
    S.CLOSED: frozenset(),
    S.CANCELLED: frozenset(),
})

TERMINAL_STATUSES = frozenset(s for s, nxt in ALLOWED_TRANSITIONS.items() if not nxt)

# statuses from which the requester may close the ticket themselves
USER_CLOSABLE_STATUSES = frozenset({S.RESOLVED, S.PENDING_USER})


def _as_status(value: str) -> TicketStatus | None:
    try:
        return TicketStatus(value)
    except ValueError:
        return None


def can_transition(current: str, new: str) -> bool:
    cur = _as_status(current)
    nxt = _as_status(new)
    if cur is None or nxt is None:
        return False
    return nxt in ALLOWED_TRANSITIONS[cur]


def is_terminal(status: str) -> bool:
    return _as_status(status) in TERMINAL_STATUSES
