"""
Unit tests — Optimistic projection and its per-session registry.
"""
from __future__ import annotations

from clubbot.models.models import RegistrationStatus, SyncState
from clubbot.services.exceptions import ErrorClass, StoreError
from clubbot.services.projection import OptimisticProjection, ProjectionRegistry
from clubbot.services.schemas import RegistrationSnapshot
from clubbot.services.write_chain import Transition


def _stored(**overrides) -> RegistrationSnapshot:
    data = dict(id=42, player_name="Pau", status=RegistrationStatus.PENDING, processed=False)
    data.update(overrides)
    return RegistrationSnapshot(**data)


class TestApply:
    def test_apply_shows_target_locally_ahead(self, projection) -> None:
        entry = projection.apply(42, _stored(), Transition(42, RegistrationStatus.REJECTED, False))

        assert entry.view.status == RegistrationStatus.REJECTED
        assert entry.view.player_name == "Pau"
        assert entry.is_locally_ahead
        assert entry.persisted.status == RegistrationStatus.PENDING
        assert projection.locally_ahead() == [entry]

    def test_second_change_builds_on_the_shown_view(self, projection) -> None:
        projection.apply(42, _stored(), Transition(42, RegistrationStatus.REJECTED, False))
        entry = projection.apply(
            42, _stored(), Transition(42, RegistrationStatus.REJECTED, False, comments="sense pagament")
        )

        assert entry.view.status == RegistrationStatus.REJECTED
        assert entry.view.comments == "sense pagament"
        assert entry.pending.comments == "sense pagament"

    def test_mark_failed_keeps_the_view(self, projection) -> None:
        projection.apply(42, _stored(), Transition(42, RegistrationStatus.ACCEPTED, False))
        entry = projection.mark_failed(42, StoreError("denied", ErrorClass.AUTH))

        assert entry.view.status == RegistrationStatus.ACCEPTED
        assert entry.is_locally_ahead
        assert entry.last_error_class == ErrorClass.AUTH

    def test_mark_failed_unknown_key(self, projection) -> None:
        assert projection.mark_failed(7, None) is None


class TestConfirm:
    def test_confirm_replaces_view_with_record(self, projection) -> None:
        projection.apply(42, _stored(), Transition(42, RegistrationStatus.ACCEPTED, False))
        entry = projection.confirm(42, _stored(status=RegistrationStatus.ACCEPTED))

        assert entry.sync_state == SyncState.CONFIRMED
        assert entry.pending is None
        assert projection.locally_ahead() == []

    def test_confirm_rekeys_local_create(self, projection) -> None:
        key = projection.local_key()
        projection.apply(
            key,
            RegistrationSnapshot(sync_state=SyncState.LOCALLY_AHEAD),
            Transition(None, RegistrationStatus.PENDING, False, fields={"player_name": "Pau"}),
        )
        assert projection.view(key).player_name == "Pau"

        projection.confirm(key, _stored(id=9))

        assert projection.get(key) is None
        assert projection.view(9).sync_state == SyncState.CONFIRMED
        assert len(projection) == 1

    def test_local_keys_are_unique(self) -> None:
        assert OptimisticProjection.local_key() != OptimisticProjection.local_key()


class TestRevert:
    def test_revert_restores_persisted_value(self, projection) -> None:
        projection.apply(42, _stored(), Transition(42, RegistrationStatus.ACCEPTED, False))
        entry = projection.revert(42)

        assert entry.view.status == RegistrationStatus.PENDING
        assert entry.sync_state == SyncState.CONFIRMED
        assert entry.pending is None
        assert projection.locally_ahead() == []

    def test_revert_drops_unsaved_create(self, projection) -> None:
        key = projection.local_key()
        projection.apply(
            key,
            RegistrationSnapshot(sync_state=SyncState.LOCALLY_AHEAD),
            Transition(None, RegistrationStatus.PENDING, False, fields={"player_name": "Pau"}),
        )

        assert projection.revert(key) is None
        assert len(projection) == 0


class TestRemember:
    def test_remember_stores_confirmed_copy(self, projection) -> None:
        entry = projection.remember(_stored(sync_state=SyncState.LOCALLY_AHEAD))
        assert entry.sync_state == SyncState.CONFIRMED
        assert entry.persisted == entry.view

    def test_remember_does_not_hide_a_pending_change(self, projection) -> None:
        projection.apply(42, _stored(), Transition(42, RegistrationStatus.REJECTED, False))
        entry = projection.remember(_stored(comments="llegit"))

        assert entry.view.status == RegistrationStatus.REJECTED
        assert entry.is_locally_ahead
        assert entry.persisted.comments == "llegit"

    def test_discard_and_clear(self, projection) -> None:
        projection.remember(_stored())
        projection.remember(_stored(id=43))
        projection.discard(42)
        assert projection.get(42) is None
        projection.clear()
        assert len(projection) == 0


class TestRegistry:
    def test_one_projection_per_owner(self) -> None:
        registry = ProjectionRegistry()
        first = registry.for_owner(1)

        assert registry.for_owner(1) is first
        assert registry.for_owner(2) is not first
        assert first.owner_id == 1
        assert len(registry.all()) == 2

    def test_drop_forgets_the_session(self) -> None:
        registry = ProjectionRegistry()
        old = registry.for_owner(1)
        registry.drop(1)
        registry.drop(1)

        assert registry.for_owner(1) is not old
