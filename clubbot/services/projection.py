"""
Optimistic projection — the per-session view of registrations shown to a user.

The view is updated as soon as the user asks for a change, before the store
confirms it. Every entry says whether its value is backed by the store
(confirmed) or only shown locally (locally-ahead). The projection is never
consulted for decisions with external side effects; it is a display model.

A projection belongs to one Telegram user session: the registry creates it
on demand and drops it on /cancel.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Union

from clubbot.models.models import SyncState
from clubbot.services.exceptions import StoreError
from clubbot.services.schemas import RegistrationSnapshot
from clubbot.services.write_chain import Transition

Key = Union[int, str]


@dataclass
class ProjectionEntry:
    key: Key
    view: RegistrationSnapshot
    persisted: Optional[RegistrationSnapshot] = None
    pending: Optional[Transition] = None
    last_error: Optional[str] = None
    last_error_class: Optional[str] = None

    @property
    def sync_state(self) -> str:
        return self.view.sync_state

    @property
    def is_locally_ahead(self) -> bool:
        return self.view.sync_state == SyncState.LOCALLY_AHEAD


class OptimisticProjection:
    def __init__(self, owner_id: Optional[int] = None) -> None:
        self.owner_id = owner_id
        self._entries: Dict[Key, ProjectionEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ProjectionEntry]:
        return iter(list(self._entries.values()))

    @staticmethod
    def local_key() -> str:
        """Key for a submission that has no store identifier yet."""
        return f"local-{uuid.uuid4()}"

    def get(self, key: Key) -> Optional[ProjectionEntry]:
        return self._entries.get(key)

    def view(self, key: Key) -> Optional[RegistrationSnapshot]:
        entry = self._entries.get(key)
        return entry.view if entry else None

    def remember(self, record: RegistrationSnapshot) -> ProjectionEntry:
        """Store a freshly read record without a pending change."""
        entry = self._entries.get(record.id)
        confirmed = record.model_copy(update={"sync_state": SyncState.CONFIRMED})
        if entry is None or not entry.is_locally_ahead:
            entry = ProjectionEntry(key=record.id, view=confirmed, persisted=confirmed)
            self._entries[record.id] = entry
        else:
            entry.persisted = confirmed
        return entry

    def apply(
        self,
        key: Key,
        base: RegistrationSnapshot,
        transition: Transition,
    ) -> ProjectionEntry:
        """Show the target immediately, marked locally-ahead."""
        entry = self._entries.get(key)
        if entry is None:
            entry = ProjectionEntry(key=key, view=base)
            self._entries[key] = entry
        if base.sync_state == SyncState.CONFIRMED and base.id is not None:
            entry.persisted = base
        view = transition.apply_to(entry.view if entry.is_locally_ahead else base)
        entry.view = view.model_copy(update={"sync_state": SyncState.LOCALLY_AHEAD})
        entry.pending = transition
        entry.last_error = None
        entry.last_error_class = None
        return entry

    def confirm(
        self,
        key: Key,
        record: RegistrationSnapshot,
    ) -> ProjectionEntry:
        """
        The store accepted the write. A local create entry is re-keyed to
        the identifier the store assigned.
        """
        confirmed = record.model_copy(update={"sync_state": SyncState.CONFIRMED})
        self._entries.pop(key, None)
        entry = ProjectionEntry(key=record.id, view=confirmed, persisted=confirmed)
        self._entries[record.id] = entry
        return entry

    def mark_failed(
        self,
        key: Key,
        error: Optional[StoreError],
    ) -> Optional[ProjectionEntry]:
        """Persistence failed; the view stays as the user last saw it."""
        entry = self._entries.get(key)
        if entry is not None:
            entry.last_error = str(error) if error else "no write strategy was attempted"
            entry.last_error_class = error.error_class if error else None
        return entry

    def revert(self, key: Key) -> Optional[ProjectionEntry]:
        """
        Drop the pending change. The view falls back to the last persisted
        value; an entry that was never stored is removed.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.persisted is None:
            self.discard(key)
            return None
        return self.confirm(key, entry.persisted)

    def locally_ahead(self) -> List[ProjectionEntry]:
        return [e for e in self._entries.values() if e.is_locally_ahead]

    def discard(self, key: Key) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()


class ProjectionRegistry:
    """Owns one projection per user session."""

    def __init__(self) -> None:
        self._projections: Dict[int, OptimisticProjection] = {}

    def for_owner(self, owner_id: int) -> OptimisticProjection:
        projection = self._projections.get(owner_id)
        if projection is None:
            projection = OptimisticProjection(owner_id)
            self._projections[owner_id] = projection
        return projection

    def drop(self, owner_id: int) -> None:
        self._projections.pop(owner_id, None)

    def all(self) -> List[OptimisticProjection]:
        return list(self._projections.values())
