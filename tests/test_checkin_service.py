import pytest

from checkin_backend.database import (
    CheckIn,
    CheckinService,
    DatabaseManager,
    Guest,
    ImportMode,
    ImportRow,
    ImportService,
    ToggleStatus,
    UndoKind,
    UndoStatus,
)
from checkin_backend.database import checkin_service
from checkin_backend.errors import GuestNotFoundError, InvalidActionError


@pytest.fixture
def service(db, undo_stack, fixed_clock):
    return CheckinService(db, undo_stack)


@pytest.fixture
def guest_id(seed_guests):
    return seed_guests(("Pat Host", "Jane Smith"))["Jane Smith"]


def open_events(db, guest_id):
    with db.get_session() as session:
        return session.query(CheckIn).filter(
            CheckIn.guest_id == guest_id, CheckIn.out_ts.is_(None)
        ).count()


def event_count(db, guest_id):
    with db.get_session() as session:
        return session.query(CheckIn).filter(CheckIn.guest_id == guest_id).count()


def test_check_in_creates_open_event_and_undo(service, db, undo_stack, guest_id):
    result = service.check_in(guest_id, "door-1")

    assert result.status == ToggleStatus.CHECKED_IN
    assert result.timestamp.endswith(" PM")
    assert result.undo.kind == UndoKind.CHECK_IN
    assert open_events(db, guest_id) == 1
    assert len(undo_stack) == 1

    history = service.guest_history(guest_id)
    assert history[0]["in_ts"] == result.timestamp
    assert history[0]["in_by"] == "door-1"
    assert history[0]["out_ts"] is None


def test_check_in_twice_is_already_in(service, db, undo_stack, guest_id):
    service.check_in(guest_id)
    result = service.check_in(guest_id)

    assert result.status == ToggleStatus.ALREADY_IN
    assert result.undo is None
    assert event_count(db, guest_id) == 1
    assert len(undo_stack) == 1


def test_check_out_closes_the_open_event(service, db, guest_id):
    first = service.check_in(guest_id, "door-1")
    result = service.check_out(guest_id, "door-2")

    assert result.status == ToggleStatus.CHECKED_OUT
    assert result.checkin_id == first.checkin_id
    assert result.undo.kind == UndoKind.CHECK_OUT
    assert service.guest_state(guest_id) == (False, True)

    event = service.guest_history(guest_id)[0]
    assert event["out_ts"] == result.timestamp
    assert event["in_ts"] == first.timestamp != result.timestamp
    assert event["out_by"] == "door-2"


def test_check_out_never_checked_in(service, undo_stack, guest_id):
    result = service.check_out(guest_id)
    assert result.status == ToggleStatus.NEVER_CHECKED_IN
    assert len(undo_stack) == 0


def test_check_out_with_history_but_not_present(service, undo_stack, guest_id):
    service.check_in(guest_id)
    service.check_out(guest_id)
    result = service.check_out(guest_id)
    assert result.status == ToggleStatus.NOT_CHECKED_IN
    assert len(undo_stack) == 2


def test_forced_check_out_creates_one_closed_event(service, db, guest_id):
    result = service.check_out(guest_id, "door-1", force=True)

    assert result.status == ToggleStatus.CHECKED_OUT
    assert result.undo.kind == UndoKind.FORCED_CHECK_OUT
    history = service.guest_history(guest_id)
    assert len(history) == 1
    assert history[0]["in_ts"] == history[0]["out_ts"]
    assert history[0]["in_by"] == history[0]["out_by"] == "door-1"
    assert open_events(db, guest_id) == 0


def test_forced_check_out_of_present_guest_is_a_normal_check_out(service, guest_id):
    service.check_in(guest_id)
    result = service.check_out(guest_id, force=True)
    assert result.undo.kind == UndoKind.CHECK_OUT
    assert len(service.guest_history(guest_id)) == 1


def test_undo_check_in_removes_event(service, db, guest_id):
    service.check_in(guest_id)
    assert service.undo_last() == UndoStatus.REVERTED_CHECK_IN
    assert event_count(db, guest_id) == 0
    assert service.guest_state(guest_id) == (False, False)


def test_undo_check_out_reopens_same_event(service, guest_id):
    checked_in = service.check_in(guest_id)
    service.check_out(guest_id)

    assert service.undo_last() == UndoStatus.REVERTED_CHECK_OUT
    history = service.guest_history(guest_id)
    assert len(history) == 1
    assert history[0]["id"] == checked_in.checkin_id
    assert history[0]["out_ts"] is None
    assert history[0]["out_by"] is None
    assert service.guest_state(guest_id) == (True, True)


def test_undo_forced_check_out_deletes_synthetic_event(service, db, guest_id):
    service.check_out(guest_id, force=True)
    assert service.undo_last() == UndoStatus.REVERTED_CHECK_OUT
    assert event_count(db, guest_id) == 0


def test_sequential_undos_then_empty(service, db, guest_id):
    service.check_in(guest_id)
    service.check_out(guest_id)
    service.check_in(guest_id)

    assert service.undo_last() == UndoStatus.REVERTED_CHECK_IN
    assert service.undo_last() == UndoStatus.REVERTED_CHECK_OUT
    assert service.undo_last() == UndoStatus.REVERTED_CHECK_IN
    assert service.undo_last() == UndoStatus.EMPTY
    assert event_count(db, guest_id) == 0


def test_undo_storage_failure_keeps_action(service, db, undo_stack, guest_id, monkeypatch):
    service.check_in(guest_id)

    def broken(action):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(service, "_apply_undo", broken)
    with pytest.raises(RuntimeError):
        service.undo_last()
    assert len(undo_stack) == 1
    assert event_count(db, guest_id) == 1


def test_toggle_dispatch(service, guest_id):
    assert service.toggle(guest_id, "IN").status == ToggleStatus.CHECKED_IN
    assert service.toggle(guest_id, " out ").status == ToggleStatus.CHECKED_OUT
    with pytest.raises(InvalidActionError):
        service.toggle(guest_id, "sideways")


def test_unknown_guest(service, undo_stack):
    with pytest.raises(GuestNotFoundError):
        service.toggle(9999, "in")
    assert len(undo_stack) == 0


def test_at_most_one_open_event_after_any_sequence(service, db, guest_id):
    for action, force in [("in", False), ("in", False), ("out", True), ("out", True),
                          ("in", False), ("out", False), ("in", False), ("in", False)]:
        service.toggle(guest_id, action, force=force)
        assert open_events(db, guest_id) <= 1
    while service.undo_last() != UndoStatus.EMPTY:
        assert open_events(db, guest_id) <= 1


def test_shared_stack_undoes_in_the_recording_database(db, tmp_path, undo_stack, fixed_clock, seed_guests):
    other_db = DatabaseManager(tmp_path / "other.db")
    try:
        ImportService(other_db).import_rows([ImportRow(guest_names="Ann Lee")])
        seed_guests((None, "Ann Lee"))
        with db.get_session() as session:
            here_id = session.query(Guest.id).scalar()
        with other_db.get_session() as session:
            there_id = session.query(Guest.id).scalar()

        here = CheckinService(db, undo_stack)
        there = CheckinService(other_db, undo_stack)
        there.check_in(there_id)
        pushed = here.check_in(here_id)
        assert pushed.undo.db_path == db.db_path

        # undo requested against the other database still reverts the latest action
        assert there.undo_last() == UndoStatus.REVERTED_CHECK_IN
        assert here.guest_state(here_id) == (False, False)
        assert there.guest_state(there_id) == (True, True)

        assert here.undo_last() == UndoStatus.REVERTED_CHECK_IN
        assert there.guest_state(there_id) == (False, False)
    finally:
        other_db.close()


def test_undo_of_vanished_event_logs_warning(service, db, guest_id, caplog):
    service.check_in(guest_id)
    ImportService(db).import_rows([], ImportMode.REPLACE)

    caplog.set_level("WARNING", logger=checkin_service.__name__)
    assert service.undo_last() == UndoStatus.REVERTED_CHECK_IN
    assert "no longer exists" in caplog.text
