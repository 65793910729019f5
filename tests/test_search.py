"""Tests for entry filtering (search.py)."""

import pytest

from categories import create_category
from entries import create_entry, list_entries
from models import Category, Entry
from search import filter_entries


@pytest.fixture
def rust_and_go(app, user):
    systems = create_category("Systems")
    create_entry(user.id, "Rust ownership", "Moves and borrows", category_ids=[systems.id])
    create_entry(user.id, "Go channels", "about Rust too")
    create_entry(user.id, "Gardening", "Tomatoes")
    return systems.id, list_entries(user.id)


def _titles(entries):
    return sorted(entry.title for entry in entries)


class TestFilterEntries:
    def test_no_filters_keeps_everything(self, rust_and_go):
        _, entries = rust_and_go
        assert filter_entries(entries) == entries
        assert filter_entries(entries, "", None) == entries

    @pytest.mark.parametrize("term", ["rust", "RUST", "Rust", "rUsT"])
    def test_search_matches_title_or_content_any_case(self, rust_and_go, term):
        _, entries = rust_and_go
        assert _titles(filter_entries(entries, term)) == ["Go channels", "Rust ownership"]

    def test_category_filter(self, rust_and_go):
        systems_id, entries = rust_and_go
        assert _titles(filter_entries(entries, category_id=systems_id)) == ["Rust ownership"]
        assert _titles(filter_entries(entries, category_id=str(systems_id))) == ["Rust ownership"]

    def test_search_and_category_combine_with_and(self, rust_and_go):
        systems_id, entries = rust_and_go
        assert _titles(filter_entries(entries, "rust", systems_id)) == ["Rust ownership"]
        assert filter_entries(entries, "tomatoes", systems_id) == []

    def test_unmatched_term(self, rust_and_go):
        _, entries = rust_and_go
        assert filter_entries(entries, "haskell") == []

    def test_malformed_category_matches_nothing(self, rust_and_go):
        _, entries = rust_and_go
        assert filter_entries(entries, category_id="abc") == []

    def test_preserves_order_and_input(self, rust_and_go):
        _, entries = rust_and_go
        before = list(entries)

        result = filter_entries(entries, "o")

        assert entries == before
        assert result == [e for e in before if "o" in e.title.lower() or "o" in e.content.lower()]
        assert filter_entries(entries, "o") == result


def test_works_on_unsaved_entries():
    tag = Category(id=7, name="Tag")
    tagged = Entry(title="Alpha", content="first", categories=[tag])
    plain = Entry(title="Beta", content="second")

    assert filter_entries([tagged, plain], "ALPHA") == [tagged]
    assert filter_entries([tagged, plain], category_id=7) == [tagged]
    assert filter_entries([tagged, plain], "second", 7) == []
