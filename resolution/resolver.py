"""
resolver.py
------------
Review-session state for resolving duplicate groups.

A reviewer resolves each group one of two ways:
    - keep one:  the chosen transaction is marked reviewed, the rest deleted
    - keep both: every transaction is marked reviewed (false positive)

Either way the group leaves the active result set. The last resolution can be
undone, which restores the previous statuses and puts the group back where it
was. State belongs to one ResolutionManager instance; nothing is global, so
concurrent sessions never see each other's history.

Members are tracked by their position in the group, not by transaction id:
a "Duplicate Transaction ID" group holds several records sharing one id, and
each of them is resolved separately.

Writing the new statuses back to the ledger is the caller's job.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from core.models import DuplicateGroup

logger = logging.getLogger(__name__)


KEEP_ONE = "keep_one"
KEEP_BOTH = "keep_both"


@dataclass
class ResolutionRecord:
    """One resolution action, kept for undo and audit."""
    action: str                      # "keep_one" | "keep_both"
    group: DuplicateGroup
    group_position: int              # Index in the active list before removal
    kept_transaction_ids: List[str]
    deleted_transaction_ids: List[str]
    previous_statuses: List[str]     # Member statuses by position, before the action
    kept_positions: List[int] = field(default_factory=list)
    deleted_positions: List[int] = field(default_factory=list)
    resolved_at: datetime = field(default_factory=datetime.now)


class ResolutionManager:
    """
    Holds the duplicate groups of one review session.

    The manager works on its own copies of the groups; the caller's groups
    and transactions are never modified. Member statuses are updated in place
    on those copies, so active_groups, group() and history all show current
    statuses.

    Usage:
        manager = ResolutionManager(groups)
        manager.keep_one("GRP-abc-0", "TXN-001")
        manager.keep_one("GRP-abc-3", 1)      # by member position
        manager.undo_last()
    """

    def __init__(self, groups: Sequence[DuplicateGroup]):
        self._groups: List[DuplicateGroup] = [
            replace(g, transactions=list(g.transactions)) for g in groups
        ]
        self._by_id: Dict[str, DuplicateGroup] = {g.id: g for g in self._groups}
        self._history: List[ResolutionRecord] = []

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    @property
    def active_groups(self) -> List[DuplicateGroup]:
        return list(self._groups)

    @property
    def history(self) -> List[ResolutionRecord]:
        """Resolution records, most recent first."""
        return list(reversed(self._history))

    def group(self, group_id: str) -> DuplicateGroup:
        """Any group of the session, active or resolved."""
        if group_id not in self._by_id:
            raise KeyError(f"No duplicate group with id {group_id}")
        return self._by_id[group_id]

    def statuses(self, group_id: str) -> List[str]:
        """Member statuses of a group, in member order."""
        return [t.status for t in self.group(group_id).transactions]

    def keep_one(self, group_id: str, keep: str | int) -> ResolutionRecord:
        """
        Keep one member of the group and mark the others deleted.

        Args:
            keep: Member position in the group, or a transaction id. An id
                shared by several members selects the first of them.

        Raises:
            KeyError: Unknown group, or no such member in the group.
        """
        position, group = self._find_active_group(group_id)
        keep_index = self._member_index(group, keep)
        deleted_positions = [i for i in range(len(group)) if i != keep_index]

        record = ResolutionRecord(
            action=KEEP_ONE,
            group=group,
            group_position=position,
            kept_transaction_ids=[group.transactions[keep_index].id],
            deleted_transaction_ids=[group.transactions[i].id for i in deleted_positions],
            previous_statuses=self._snapshot(group),
            kept_positions=[keep_index],
            deleted_positions=deleted_positions,
        )

        self._set_status(group, keep_index, "reviewed")
        for i in deleted_positions:
            self._set_status(group, i, "deleted")

        return self._commit(record)

    def keep_both(self, group_id: str) -> ResolutionRecord:
        """
        Dismiss the group as a false positive; every member is kept.

        Raises:
            KeyError: Unknown group.
        """
        position, group = self._find_active_group(group_id)
        record = ResolutionRecord(
            action=KEEP_BOTH,
            group=group,
            group_position=position,
            kept_transaction_ids=group.transaction_ids,
            deleted_transaction_ids=[],
            previous_statuses=self._snapshot(group),
            kept_positions=list(range(len(group))),
        )

        for i in range(len(group)):
            self._set_status(group, i, "reviewed")

        return self._commit(record)

    def undo_last(self) -> ResolutionRecord:
        """
        Reverse the most recent resolution.

        Raises:
            LookupError: Nothing to undo.
        """
        if not self._history:
            raise LookupError("No resolution to undo")

        record = self._history.pop()
        for i, status in enumerate(record.previous_statuses):
            self._set_status(record.group, i, status)

        position = min(record.group_position, len(self._groups))
        self._groups.insert(position, record.group)

        logger.info(f"Undid {record.action} on group {record.group.id}")
        return record

    def last_resolution(self) -> Optional[ResolutionRecord]:
        return self._history[-1] if self._history else None

    # -------------------------------------------------------------------------
    # INTERNAL
    # -------------------------------------------------------------------------

    def _find_active_group(self, group_id: str) -> tuple[int, DuplicateGroup]:
        for position, group in enumerate(self._groups):
            if group.id == group_id:
                return position, group
        raise KeyError(f"No active duplicate group with id {group_id}")

    @staticmethod
    def _member_index(group: DuplicateGroup, keep: str | int) -> int:
        if isinstance(keep, int) and not isinstance(keep, bool):
            if 0 <= keep < len(group):
                return keep
            raise KeyError(f"Group {group.id} has no member at position {keep}")
        for i, txn in enumerate(group.transactions):
            if txn.id == keep:
                return i
        raise KeyError(f"Transaction {keep} is not in group {group.id}")

    @staticmethod
    def _snapshot(group: DuplicateGroup) -> List[str]:
        return [t.status for t in group.transactions]

    @staticmethod
    def _set_status(group: DuplicateGroup, index: int, status: str) -> None:
        # Transactions are frozen; swap in an updated copy
        group.transactions[index] = replace(group.transactions[index], status=status)

    def _commit(self, record: ResolutionRecord) -> ResolutionRecord:
        del self._groups[record.group_position]
        self._history.append(record)
        logger.info(
            f"Resolved group {record.group.id} ({record.action}): "
            f"kept={record.kept_transaction_ids} deleted={record.deleted_transaction_ids}"
        )
        return record
