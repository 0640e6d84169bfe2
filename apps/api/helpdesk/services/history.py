"""Audit trail entries for ticket mutations.

Inside the engines a change is one of the frozen dataclasses below; it turns
into the generic ``old_value``/``new_value`` JSON only when the row is built
for the history store.
"""
from dataclasses import dataclass
from typing import Any, Union

from ..models.history import ChangeType, TicketHistory
from ..models.message import MessageAuthorType
from ..repositories.base import TicketHistoryStore

# change types an end-user may see on their own ticket
USER_VISIBLE_CHANGES = frozenset({
    ChangeType.STATUS_CHANGE.value,
    ChangeType.ASSIGNEE_CHANGE.value,
    ChangeType.TEAM_CHANGE.value,
})


@dataclass(frozen=True)
class StatusChange:
    old: str
    new: str
    comment: str = ""
    change_type = ChangeType.STATUS_CHANGE

    def values(self) -> tuple[dict[str, Any], dict[str, Any]]:
        return {"status": self.old}, {"status": self.new, "comment": self.comment}


@dataclass(frozen=True)
class PriorityChange:
    old: str
    new: str
    change_type = ChangeType.PRIORITY_CHANGE

    def values(self) -> tuple[dict[str, Any], dict[str, Any]]:
        return {"priority": self.old}, {"priority": self.new}


@dataclass(frozen=True)
class AssigneeChange:
    old: str | None
    new: str | None
    change_type = ChangeType.ASSIGNEE_CHANGE

    def values(self) -> tuple[dict[str, Any], dict[str, Any]]:
        return {"assignee_staff_id": self.old}, {"assignee_staff_id": self.new}


@dataclass(frozen=True)
class TeamChange:
    old: str | None
    new: str | None
    change_type = ChangeType.TEAM_CHANGE

    def values(self) -> tuple[dict[str, Any], dict[str, Any]]:
        return {"team_id": self.old}, {"team_id": self.new}


@dataclass(frozen=True)
class DepartmentChange:
    old: str
    new: str
    change_type = ChangeType.DEPARTMENT_CHANGE

    def values(self) -> tuple[dict[str, Any], dict[str, Any]]:
        return {"department_id": self.old}, {"department_id": self.new}


@dataclass(frozen=True)
class TagsChange:
    old: tuple[str, ...]
    new: tuple[str, ...]
    change_type = ChangeType.TAGS_CHANGE

    def values(self) -> tuple[dict[str, Any], dict[str, Any]]:
        return {"tags": list(self.old)}, {"tags": list(self.new)}


Change = Union[StatusChange, PriorityChange, AssigneeChange, TeamChange, DepartmentChange, TagsChange]


def build_entry(
    ticket_id: str,
    change: Change,
    *,
    actor_type: MessageAuthorType,
    actor_id: str | None,
) -> TicketHistory:
    old_value, new_value = change.values()
    return TicketHistory(
        ticket_id=ticket_id,
        changed_by_type=actor_type.value,
        changed_by_id=actor_id,
        change_type=change.change_type.value,
        old_value=old_value,
        new_value=new_value,
    )


def record_change(
    store: TicketHistoryStore,
    ticket_id: str,
    change: Change,
    *,
    actor_type: MessageAuthorType,
    actor_id: str | None,
) -> TicketHistory:
    return store.create(build_entry(ticket_id, change, actor_type=actor_type, actor_id=actor_id))


def decode_entry(entry: TicketHistory) -> Change:
    """Rebuild the typed change from a stored row."""
    old = entry.old_value or {}
    new = entry.new_value or {}
    kind = ChangeType(entry.change_type)
    if kind is ChangeType.STATUS_CHANGE:
        return StatusChange(old=old.get("status"), new=new.get("status"), comment=new.get("comment") or "")
    if kind is ChangeType.PRIORITY_CHANGE:
        return PriorityChange(old=old.get("priority"), new=new.get("priority"))
    if kind is ChangeType.ASSIGNEE_CHANGE:
        return AssigneeChange(old=old.get("assignee_staff_id"), new=new.get("assignee_staff_id"))
    if kind is ChangeType.TEAM_CHANGE:
        return TeamChange(old=old.get("team_id"), new=new.get("team_id"))
    if kind is ChangeType.DEPARTMENT_CHANGE:
        return DepartmentChange(old=old.get("department_id"), new=new.get("department_id"))
    return TagsChange(old=tuple(old.get("tags") or ()), new=tuple(new.get("tags") or ()))


def is_user_visible(entry: TicketHistory) -> bool:
    return entry.change_type in USER_VISIBLE_CHANGES
