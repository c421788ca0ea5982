"""
Working Set (Group Editor)

In-memory collection of the groups of one batch, keyed by group id, and
the operator edits allowed on it: approve, reject, move/split/attach
sources, and notes.

Structural edits validate everything before mutating anything and run
under one lock, so a source is never observed in two groups or in none.
"""

import logging
import threading
from typing import Callable, Dict, List, Optional, TypeVar

from bulk_import.errors import (
    GroupNotFoundError,
    InvalidTransitionError,
    SourceNotFoundError,
)
from bulk_import.models.group import (
    CoherenceAnalysis,
    DiscrepancyAnalysis,
    Draft,
    Group,
    GroupKind,
    GroupStatus,
    TERMINAL_STATUSES,
)
from bulk_import.models.sources import ExistingUnitSummary, SourceRef, SourceType

logger = logging.getLogger(__name__)

T = TypeVar("T")

DRAFT_FIELDS = ("title", "content")


class WorkingSet:
    """
    The groups of a batch, keyed by id, in display order.

    Getters return copies; every change goes through a method so the
    invariants of the working set hold after each call.
    """

    def __init__(self, groups: Optional[List[Group]] = None):
        self._groups: Dict[str, Group] = {}
        self._lock = threading.RLock()
        if groups:
            self.load(groups)

    # Reading

    def __len__(self) -> int:
        return len(self._groups)

    def __contains__(self, group_id: str) -> bool:
        return group_id in self._groups

    def get(self, group_id: str) -> Group:
        with self._lock:
            return self._require(group_id).model_copy(deep=True)

    def groups(self) -> List[Group]:
        with self._lock:
            return [g.model_copy(deep=True) for g in self._groups.values()]

    def ids_with_status(self, status: GroupStatus) -> List[str]:
        with self._lock:
            return [g.id for g in self._groups.values() if g.status == status]

    def counts(self) -> Dict[str, int]:
        with self._lock:
            counts = {s.value: 0 for s in GroupStatus}
            for group in self._groups.values():
                counts[group.status.value] += 1
            return counts

    def find_by_unit(self, existing_unit_id: str) -> Optional[Group]:
        """Return the open group targeting an existing unit, if any."""
        with self._lock:
            group = self._open_group_for_unit(existing_unit_id)
            return group.model_copy(deep=True) if group else None

    def _open_group_for_unit(self, existing_unit_id: str) -> Optional[Group]:
        # Finished groups (done, error, rejected) are never attach targets
        return next(
            (
                g
                for g in self._groups.values()
                if g.existing_unit_id == existing_unit_id
                and g.status not in TERMINAL_STATUSES
            ),
            None,
        )

    def owner_of(self, ref: SourceRef) -> Optional[str]:
        """Id of the group holding a source, if any."""
        with self._lock:
            for group in self._groups.values():
                if group.has_source(ref):
                    return group.id
            return None

    # Loading

    def load(self, groups: List[Group]) -> None:
        """
        Replace the working set.

        Raises:
            ValueError: If a URL or document appears in more than one group
        """
        seen: Dict[str, str] = {}
        for group in groups:
            for ref in group.source_refs():
                key = str(ref)
                if key in seen and seen[key] != group.id:
                    raise ValueError(
                        f"Source {ref.value} is in groups {seen[key]} and {group.id}"
                    )
                seen[key] = group.id

        with self._lock:
            self._groups = {g.id: g for g in groups}
        logger.info(f"Working set loaded with {len(groups)} groups")

    def clear(self) -> None:
        with self._lock:
            self._groups = {}

    # Status edits

    def approve(self, group_id: str) -> Group:
        return self._transition_pending(group_id, GroupStatus.APPROVED)

    def reject(self, group_id: str) -> Group:
        return self._transition_pending(group_id, GroupStatus.REJECTED)

    def unapprove(self, group_id: str) -> Group:
        with self._lock:
            group = self._require(group_id)
            if group.status != GroupStatus.APPROVED:
                raise InvalidTransitionError(
                    f"Group {group_id} is {group.status.value}, only approved groups can be unapproved"
                )
            group.transition_to(GroupStatus.PENDING)
            return group.model_copy(deep=True)

    def approve_all(self) -> List[str]:
        """
        Approve every pending group; other groups are left untouched.

        Returns:
            Ids of the groups that were approved
        """
        with self._lock:
            approved = []
            for group in self._groups.values():
                if group.status == GroupStatus.PENDING:
                    group.transition_to(GroupStatus.APPROVED)
                    approved.append(group.id)
            logger.info(f"Approved {len(approved)} pending groups")
            return approved

    def _transition_pending(self, group_id: str, status: GroupStatus) -> Group:
        with self._lock:
            group = self._require(group_id)
            self._require_pending(group)
            group.transition_to(status)
            logger.info(f"Group {group_id} -> {status.value}")
            return group.model_copy(deep=True)

    # Content edits

    def set_notes(self, group_id: str, notes: str) -> Group:
        with self._lock:
            group = self._require(group_id)
            self._require_editable(group)
            group.notes = notes
            return group.model_copy(deep=True)

    def rename(self, group_id: str, title: str) -> Group:
        if not title.strip():
            raise ValueError("Title cannot be empty")
        with self._lock:
            group = self._require(group_id)
            self._require_editable(group)
            group.title = title.strip()
            return group.model_copy(deep=True)

    # Structural edits

    def move_source(self, ref: SourceRef, from_id: str, to_id: str) -> Group:
        """
        Move a source from one pending group to another.

        The source group is deleted if it ends up empty.

        Returns:
            The destination group after the move
        """
        with self._lock:
            source_group = self._require(from_id)
            target_group = self._require(to_id)
            if from_id == to_id:
                return target_group.model_copy(deep=True)

            self._require_pending(source_group)
            self._require_pending(target_group)
            self._require_source(source_group, ref)

            self._transfer(ref, source_group, target_group)
            logger.info(f"Moved {ref} from {from_id} to {to_id}")
            return target_group.model_copy(deep=True)

    def split_new(self, ref: SourceRef, from_id: str, new_title: str) -> Group:
        """
        Move a source out of its group into a brand-new pending create group.

        Returns:
            The new group
        """
        if not new_title.strip():
            raise ValueError("Title cannot be empty")

        with self._lock:
            source_group = self._require(from_id)
            self._require_pending(source_group)
            self._require_source(source_group, ref)

            new_group = Group(kind=GroupKind.CREATE, title=new_title.strip())
            self._groups[new_group.id] = new_group
            self._transfer(ref, source_group, new_group)
            logger.info(f"Split {ref} from {from_id} into new group {new_group.id}")
            return new_group.model_copy(deep=True)

    def attach_to_existing(
        self, ref: SourceRef, from_id: str, unit: ExistingUnitSummary
    ) -> Group:
        """
        Move a source into the group that updates an existing unit,
        creating that group if no open group targets the unit yet.

        Returns:
            The group that now holds the source
        """
        with self._lock:
            source_group = self._require(from_id)
            self._require_pending(source_group)
            self._require_source(source_group, ref)

            target = self._open_group_for_unit(unit.id)
            if target is not None:
                if target.id == from_id:
                    return target.model_copy(deep=True)
                self._require_pending(target)
            else:
                target = Group(
                    kind=GroupKind.UPDATE,
                    title=unit.title,
                    existing_unit_id=unit.id,
                    prior_content=unit.content,
                    prior_title=unit.title,
                )
                self._groups[target.id] = target

            self._transfer(ref, source_group, target)
            logger.info(f"Attached {ref} to unit {unit.id} via group {target.id}")
            return target.model_copy(deep=True)

    def _transfer(self, ref: SourceRef, source: Group, target: Group) -> None:
        # Callers hold the lock and have validated both groups
        if ref.type == SourceType.URL:
            source.urls.remove(ref.value)
            target.urls.append(ref.value)
        else:
            document = next(d for d in source.documents if d.id == ref.value)
            source.documents = [d for d in source.documents if d.id != ref.value]
            target.documents.append(document)

        if source.source_count == 0:
            del self._groups[source.id]
            logger.info(f"Removed empty group {source.id}")

    # Pipeline updates (generation, review, commit)

    def mutate(self, group_id: str, fn: Callable[[Group], T]) -> T:
        """Apply fn to the live group under the lock and return its result."""
        with self._lock:
            return fn(self._require(group_id))

    def transition(self, group_id: str, status: GroupStatus, **fields) -> Group:
        """
        Move a group to a new status, setting extra fields in the same step.
        """
        with self._lock:
            group = self._require(group_id)
            group.transition_to(status)
            for name, value in fields.items():
                setattr(group, name, value)
            return group.model_copy(deep=True)

    def annotate(
        self,
        group_id: str,
        discrepancy: Optional[DiscrepancyAnalysis] = None,
        coherence: Optional[CoherenceAnalysis] = None,
    ) -> None:
        """Attach advisory analyses; groups removed meanwhile are ignored."""
        with self._lock:
            group = self._groups.get(group_id)
            if group is None:
                logger.debug(f"Group {group_id} gone before analysis finished")
                return
            if discrepancy is not None:
                group.discrepancy = discrepancy
            if coherence is not None:
                group.coherence = coherence

    def edit_draft(self, group_id: str, field: str, value: str) -> Group:
        if field not in DRAFT_FIELDS:
            raise ValueError(f"Draft field must be one of {DRAFT_FIELDS}")
        with self._lock:
            group = self._require(group_id)
            if group.status not in (GroupStatus.READY_FOR_REVIEW, GroupStatus.REVIEWED):
                raise InvalidTransitionError(
                    f"Draft of group {group_id} cannot be edited while {group.status.value}"
                )
            draft: Draft = group.draft
            setattr(draft, field, value)
            return group.model_copy(deep=True)

    # Validation helpers

    def _require(self, group_id: str) -> Group:
        group = self._groups.get(group_id)
        if group is None:
            raise GroupNotFoundError(f"Group not found: {group_id}")
        return group

    @staticmethod
    def _require_pending(group: Group) -> None:
        if group.status != GroupStatus.PENDING:
            raise InvalidTransitionError(
                f"Group {group.id} is {group.status.value}, expected pending"
            )

    @staticmethod
    def _require_editable(group: Group) -> None:
        if group.status not in (GroupStatus.PENDING, GroupStatus.APPROVED):
            raise InvalidTransitionError(
                f"Group {group.id} is {group.status.value} and can no longer be edited"
            )

    @staticmethod
    def _require_source(group: Group, ref: SourceRef) -> None:
        if not group.has_source(ref):
            raise SourceNotFoundError(f"{ref} is not in group {group.id}")

    def is_settled(self) -> bool:
        """True when every group is in a terminal status."""
        with self._lock:
            return all(g.status in TERMINAL_STATUSES for g in self._groups.values())
