import pytest
from sqlalchemy.exc import SQLAlchemyError

from checkin_backend.database import CheckIn, Guest, ImportMode, ImportRow, ImportService
from checkin_backend.database import import_service


@pytest.fixture
def importer(db, fixed_clock):
    return ImportService(db)


def guests(db):
    with db.get_session() as session:
        return sorted(
            (g.display_name, g.member_host) for g in session.query(Guest).all()
        )


def events(db):
    with db.get_session() as session:
        rows = session.query(Guest.display_name, CheckIn).join(CheckIn, CheckIn.guest_id == Guest.id).all()
        return {name: event.to_dict() for name, event in rows}


def test_multi_name_rows_expand_to_guests(importer, db):
    summary = importer.import_rows([
        ImportRow(member_name="Pat Host", guest_names="Jane Smith and John Doe, BOB JONES"),
        ImportRow(member_name=None, guest_names="Walk In"),
    ])

    assert summary.to_dict() == {"inserted": 4, "total_rows": 2}
    assert guests(db) == [
        ("Bob Jones", "Pat Host"),
        ("Jane Smith", "Pat Host"),
        ("John Doe", "Pat Host"),
        ("Walk In", None),
    ]


def test_append_dedupes_case_insensitively(importer, db):
    importer.import_rows([ImportRow(member_name="Pat Host", guest_names="Jane Smith")])
    summary = importer.import_rows([
        ImportRow(member_name="PAT HOST", guest_names="jane smith"),
        ImportRow(member_name="Other Host", guest_names="Jane Smith"),
    ], ImportMode.APPEND)

    assert summary.inserted == 1
    assert summary.total_rows == 2
    assert guests(db) == [("Jane Smith", "Other Host"), ("Jane Smith", "Pat Host")]


def test_dedupe_treats_missing_and_blank_host_alike(importer, db):
    importer.import_rows([ImportRow(member_name=None, guest_names="Solo")])
    summary = importer.import_rows([ImportRow(member_name="   ", guest_names="SOLO")])
    assert summary.inserted == 0


def test_duplicates_within_one_import_are_skipped(importer, db):
    summary = importer.import_rows([
        ImportRow(member_name="Pat", guest_names="Amy & amy"),
    ])
    assert summary.inserted == 1


def test_rows_without_names_still_count(importer):
    summary = importer.import_rows([ImportRow(member_name="Pat", guest_names=" , & ")])
    assert summary.to_dict() == {"inserted": 0, "total_rows": 1}


def test_reconstructed_history(importer, db):
    importer.import_rows([
        ImportRow(member_name="A", guest_names="Open Visit", check_in="Y", check_in_time="6:15 PM"),
        ImportRow(member_name="A", guest_names="Closed Visit", check_in="Y", check_in_time="6:15 PM",
                  check_out="Y", check_out_time="9:45 PM"),
        ImportRow(member_name="A", guest_names="Flag Only", check_in="yes"),
        ImportRow(member_name="A", guest_names="No History"),
    ])
    history = events(db)

    assert history["Open Visit"]["in_ts"] == "06:15:00 PM"
    assert history["Open Visit"]["out_ts"] is None
    assert history["Open Visit"]["in_by"] == "import"
    assert history["Open Visit"]["out_by"] is None

    assert history["Closed Visit"]["out_ts"] == "09:45:00 PM"
    assert history["Closed Visit"]["out_by"] == "import"

    # flag without a time uses the import's "now"
    assert history["Flag Only"]["in_ts"] == "06:00:01 PM"
    assert "No History" not in history


def test_skipped_duplicates_get_no_new_history(importer, db):
    importer.import_rows([ImportRow(member_name="A", guest_names="Jane")])
    importer.import_rows([ImportRow(member_name="A", guest_names="Jane", check_in="Y")])
    assert events(db) == {}


def test_replace_clears_guests_and_their_events(importer, db):
    importer.import_rows([ImportRow(member_name="A", guest_names="Old Guest", check_in="Y")])
    summary = importer.import_rows(
        [ImportRow(member_name="B", guest_names="New Guest")],
        mode="replace",
    )

    assert summary.inserted == 1
    assert guests(db) == [("New Guest", "B")]
    with db.get_session() as session:
        assert session.query(CheckIn).count() == 0


def test_replace_with_no_rows_empties_the_store(importer, db):
    importer.import_rows([ImportRow(member_name="A", guest_names="Old Guest")])
    summary = importer.import_rows([], ImportMode.REPLACE)
    assert summary.to_dict() == {"inserted": 0, "total_rows": 0}
    assert guests(db) == []


def test_failure_rolls_back_whole_import(importer, db, monkeypatch):
    importer.import_rows([ImportRow(member_name="A", guest_names="Keeper")])

    calls = []
    original = ImportService._add_visit

    def flaky(self, session, guest_id, visit):
        calls.append(guest_id)
        if len(calls) == 2:
            raise SQLAlchemyError("disk I/O error")
        return original(self, session, guest_id, visit)

    monkeypatch.setattr(ImportService, "_add_visit", flaky)

    with pytest.raises(SQLAlchemyError):
        importer.import_rows([
            ImportRow(member_name="B", guest_names="First", check_in="Y"),
            ImportRow(member_name="B", guest_names="Second", check_in="Y"),
        ], ImportMode.REPLACE)

    assert guests(db) == [("Keeper", "A")]
    assert events(db) == {}


def test_import_csv_text(importer, db):
    text = (
        "Member Name,Guest Names,Check In Y/N,Check In Time,Check Out Y/N,Check Out Time\n"
        "Pat Host,Jane & Bob,Y,18:30,,\n"
    )
    summary = importer.import_csv(text)
    assert summary.to_dict() == {"inserted": 2, "total_rows": 1}
    assert events(db)["Jane"]["in_ts"] == "06:30:00 PM"


def test_unknown_mode_rejected(importer):
    with pytest.raises(ValueError):
        importer.import_rows([], "merge")


def test_import_logs_summary(importer, caplog):
    caplog.set_level("INFO", logger=import_service.__name__)
    importer.import_rows([ImportRow(member_name="A", guest_names="Jane")])
    assert "1 guests inserted from 1 rows" in caplog.text
