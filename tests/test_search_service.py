import pytest

from checkin_backend.database import CheckinService, ImportRow, SearchService
from checkin_backend.database.search_service import build_prefix_query, clamp_limit, search_tokens


@pytest.fixture
def search(db):
    return SearchService(db)


@pytest.fixture
def party(seed_guests):
    return seed_guests(
        ("Alice Member", "John Doe and Jo Park"),
        ("Bob Member", "Bob Jo, Mary Smith"),
        (None, "Zed Walker"),
    )


def names(results):
    return sorted(r["display_name"] for r in results)


def test_search_tokens_strip_punctuation_and_non_ascii():
    assert search_tokens('  Jo-Ann "O\'Neil" café ') == ["joann", "oneil", "caf"]
    assert search_tokens("*** ---") == []


def test_build_prefix_query():
    assert build_prefix_query(["jo", "sm"]) == 'display_name:"jo"* AND display_name:"sm"*'


@pytest.mark.parametrize("limit, expected", [(None, 25), (10, 10), (0, 0), (-5, 0), (500, 100)])
def test_clamp_limit(limit, expected):
    assert clamp_limit(limit, 25, 100) == expected


def test_prefix_matches_any_word(search, party):
    assert names(search.search_guests("jo")) == ["Bob Jo", "Jo Park", "John Doe"]


def test_every_token_must_match(search, party):
    assert names(search.search_guests("jo pa")) == ["Jo Park"]


def test_member_host_is_not_searched_for_guests(search, party):
    assert search.search_guests("alice") == []


def test_substring_fallback(search, party):
    assert names(search.search_guests("ohn")) == ["John Doe"]


def test_fallback_escapes_like_wildcards(search, party):
    assert search.search_guests("o%k") == []


def test_empty_query_lists_alphabetically(search, party):
    results = search.search_guests("   ")
    assert [r["display_name"] for r in results] == [
        "Bob Jo", "Jo Park", "John Doe", "Mary Smith", "Zed Walker",
    ]
    assert [r["display_name"] for r in search.search_guests("", limit=2)] == ["Bob Jo", "Jo Park"]


def test_results_carry_presence_flags(db, search, party, undo_stack):
    service = CheckinService(db, undo_stack)
    service.check_in(party["Jo Park"])
    service.check_in(party["Bob Jo"])
    service.check_out(party["Bob Jo"])

    by_name = {r["display_name"]: r for r in search.search_guests("jo")}
    assert by_name["Jo Park"]["is_checked_in"] is True
    assert by_name["Bob Jo"]["is_checked_in"] is False
    assert by_name["Bob Jo"]["has_history"] is True
    assert by_name["John Doe"]["has_history"] is False
    assert by_name["Jo Park"]["member_host"] == "Alice Member"


def test_search_index_follows_replace_import(search, seed_guests):
    seed_guests(("A", "Old Name"))
    seed_guests(("B", "New Name"), mode="replace")
    assert search.search_guests("old") == []
    assert names(search.search_guests("new")) == ["New Name"]


def test_member_search_orders_by_present_then_total(db, search, party, undo_stack):
    CheckinService(db, undo_stack).check_in(party["Mary Smith"])

    results = search.search_members("member")
    assert results == [
        {"member_host": "Bob Member", "total_guests": 2, "present_guests": 1},
        {"member_host": "Alice Member", "total_guests": 2, "present_guests": 0},
    ]


def test_member_search_requires_every_token(search, party):
    assert [r["member_host"] for r in search.search_members("ali mem")] == ["Alice Member"]
    assert search.search_members("ali bob") == []


def test_member_search_ignores_guests_without_host(search, party):
    hosts = [r["member_host"] for r in search.search_members("")]
    assert None not in hosts
    assert len(hosts) == 2


def test_member_search_treats_input_as_data(search, party):
    assert search.search_members("' OR 1=1 --") == []


def test_guests_for_member(search, party):
    assert names(search.guests_for_member("alice MEMBER")) == ["Jo Park", "John Doe"]
    assert search.guests_for_member("Alice") == []
    assert search.guests_for_member("  ") == []


def test_search_on_large_list_respects_limit(search, seed_guests):
    seed_guests(*[ImportRow(member_name="Host", guest_names=f"Guest Number{i:03d}") for i in range(150)])
    assert len(search.search_guests("guest")) == 25
    assert len(search.search_guests("guest", limit=1000)) == 100


def test_rebuilt_index_still_finds_guests(db, search, party):
    db.rebuild_search_index()
    assert names(search.search_guests("mar sm")) == ["Mary Smith"]
