from __future__ import annotations

import pytest
from sqlalchemy import select

import teamhealth.db as app_db
from conftest import add_team, add_user
from teamhealth.errors import ConflictError, NotFoundError, TransactionError, ValidationError
from teamhealth.hierarchy import HierarchyLevelStore
from teamhealth.models import HierarchyLevel, User
from teamhealth.scope import SupervisorScopeResolver
from teamhealth.schemas import Permissions


def ordered_ids(db) -> list[str]:
    return list(db.scalars(select(HierarchyLevel.id).order_by(HierarchyLevel.position)))


def positions(db) -> list[int]:
    return list(db.scalars(select(HierarchyLevel.position).order_by(HierarchyLevel.position)))


def test_create_appends_after_the_last_level(seeded_db):
    store = HierarchyLevelStore(seeded_db)

    level = store.create("Intern", Permissions(can_take_survey=True), color="#000000")

    assert level.position == 6
    assert level.can_take_survey is True
    assert level.can_configure_system is False
    assert positions(seeded_db) == [1, 2, 3, 4, 5, 6]


def test_create_at_explicit_position_pushes_lower_levels_down(seeded_db):
    store = HierarchyLevelStore(seeded_db)

    store.create("Senior Director", position=2, level_id="level-sd")

    assert ordered_ids(seeded_db) == ["level-1", "level-sd", "level-2", "level-3", "level-4", "level-5"]
    assert positions(seeded_db) == [1, 2, 3, 4, 5, 6]


def test_create_rejects_blank_name_and_out_of_range_position(seeded_db):
    store = HierarchyLevelStore(seeded_db)

    with pytest.raises(ValidationError) as blank:
        store.create("   ")
    assert "name" in blank.value.field_errors

    with pytest.raises(ValidationError) as out_of_range:
        store.create("Floating", position=9)
    assert "position" in out_of_range.value.field_errors
    assert positions(seeded_db) == [1, 2, 3, 4, 5]


def test_create_rejects_existing_id(seeded_db):
    with pytest.raises(ConflictError):
        HierarchyLevelStore(seeded_db).create("Duplicate", level_id="level-3")


def test_move_swaps_with_neighbour(seeded_db):
    store = HierarchyLevelStore(seeded_db)

    store.move("level-3", "up")
    assert ordered_ids(seeded_db) == ["level-1", "level-3", "level-2", "level-4", "level-5"]

    store.move("level-3", "down")
    store.move("level-3", "down")
    assert ordered_ids(seeded_db) == ["level-1", "level-2", "level-4", "level-3", "level-5"]
    assert positions(seeded_db) == [1, 2, 3, 4, 5]


def test_move_at_boundary_is_a_no_op(seeded_db):
    store = HierarchyLevelStore(seeded_db)

    store.move("level-1", "up")
    store.move("level-5", "down")

    assert ordered_ids(seeded_db) == ["level-1", "level-2", "level-3", "level-4", "level-5"]


def test_move_rejects_unknown_direction_and_level(seeded_db):
    store = HierarchyLevelStore(seeded_db)

    with pytest.raises(ValidationError):
        store.move("level-2", "sideways")
    with pytest.raises(NotFoundError):
        store.move("level-missing", "up")


def test_move_to_reorders_the_band_between_old_and_new_position(seeded_db):
    store = HierarchyLevelStore(seeded_db)

    store.move_to("level-5", 2)
    assert ordered_ids(seeded_db) == ["level-1", "level-5", "level-2", "level-3", "level-4"]

    store.move_to("level-1", 5)
    assert ordered_ids(seeded_db) == ["level-5", "level-2", "level-3", "level-4", "level-1"]
    assert positions(seeded_db) == [1, 2, 3, 4, 5]

    with pytest.raises(ValidationError):
        store.move_to("level-2", 0)


def test_delete_closes_the_gap(seeded_db):
    store = HierarchyLevelStore(seeded_db)

    store.delete("level-2")

    assert ordered_ids(seeded_db) == ["level-1", "level-3", "level-4", "level-5"]
    assert positions(seeded_db) == [1, 2, 3, 4]


def test_delete_refuses_levels_in_use_and_the_team_member_level(seeded_db):
    add_user(seeded_db, "manager", level_id="level-3")
    store = HierarchyLevelStore(seeded_db)

    with pytest.raises(ConflictError) as in_use:
        store.delete("level-3")
    assert "1 assigned users" in str(in_use.value)

    with pytest.raises(ValidationError):
        store.delete("level-5")
    with pytest.raises(NotFoundError):
        store.delete("level-missing")

    assert positions(seeded_db) == [1, 2, 3, 4, 5]


def test_update_changes_name_and_permissions(seeded_db):
    store = HierarchyLevelStore(seeded_db)

    level = store.update("level-4", name="Squad Lead", permissions=Permissions(can_export_data=True))

    assert level.name == "Squad Lead"
    assert level.position == 4
    assert level.can_export_data is True
    assert level.can_take_survey is False


def test_contiguity_holds_across_mixed_edits(seeded_db):
    store = HierarchyLevelStore(seeded_db)

    store.create("Principal", position=1, level_id="level-p")
    store.move("level-4", "up")
    store.delete("level-2")
    store.create("Associate", level_id="level-a")
    store.move_to("level-a", 3)

    assert positions(seeded_db) == [1, 2, 3, 4, 5, 6]
    assert ordered_ids(seeded_db) == ["level-p", "level-1", "level-a", "level-4", "level-3", "level-5"]


def test_delete_rejects_a_level_still_recorded_in_a_supervisor_chain(seeded_db):
    add_user(seeded_db, "lead_1", level_id="level-4")
    add_team(seeded_db, "team-a", "Team A", team_lead_id="lead_1")
    SupervisorScopeResolver(seeded_db).rebuild_chain("team-a", [("lead_1", "level-4")])
    seeded_db.get(User, "lead_1").hierarchy_level_id = "level-3"
    seeded_db.commit()

    with pytest.raises(ConflictError, match="supervisor chain"):
        HierarchyLevelStore(seeded_db).delete("level-4")

    assert positions(seeded_db) == [1, 2, 3, 4, 5]
    assert "level-4" in ordered_ids(seeded_db)


def test_concurrent_delete_waits_for_an_open_create(seeded_db, monkeypatch):
    other_engine = app_db.make_engine(app_db.DATABASE_URL, busy_timeout=0.1)
    other = app_db.make_session_factory(other_engine)()
    blocked: list[Exception] = []
    original = HierarchyLevelStore._locked_max_position

    def interleaved(self):
        top = original(self)
        if self.db is seeded_db and not blocked:
            # A second writer arrives while the create holds the bottom row.
            try:
                HierarchyLevelStore(other).delete("level-2")
            except TransactionError as exc:
                blocked.append(exc)
        return top

    monkeypatch.setattr(HierarchyLevelStore, "_locked_max_position", interleaved)
    try:
        created = HierarchyLevelStore(seeded_db).create("Intern", level_id="level-x")

        assert len(blocked) == 1
        assert created.position == 6
        assert positions(seeded_db) == [1, 2, 3, 4, 5, 6]
        seeded_db.rollback()

        HierarchyLevelStore(other).delete("level-2")
        assert positions(other) == [1, 2, 3, 4, 5]
        assert ordered_ids(other) == ["level-1", "level-3", "level-4", "level-5", "level-x"]
    finally:
        other.close()
        other_engine.dispose()
