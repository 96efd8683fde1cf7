import pytest

from field_span_codec import CellUpdate
from messages import FindMatches, FindMatchesResult, FindOptions, Match
from query_sequencer import (
    INVALID_REGEX_STATUS,
    QuerySequencer,
    apply_preserved_case,
    build_pattern,
    execute_find,
    find_matches,
    replace_in_value,
    replacement_updates,
)
from sequencing import SequenceNumber


def test_literal_queries_are_escaped():
    assert not build_pattern("a.b").search("axb")
    assert build_pattern("a.b", FindOptions(regex=True)).search("axb")


def test_invalid_regex_yields_none():
    assert build_pattern("(", FindOptions(regex=True)) is None
    assert build_pattern("(") is not None


def test_whole_word_and_match_case():
    assert not build_pattern("cat", FindOptions(whole_word=True)).search("concat")
    assert build_pattern("cat", FindOptions(whole_word=True)).search("a cat!")
    assert build_pattern("cat").search("CAT")
    assert not build_pattern("cat", FindOptions(match_case=True)).search("CAT")


def test_find_matches_skips_hidden_rows_and_reports_absolute_rows():
    rows = [["skip cat"], ["cat", "dog"], ["Cat"], [""]]
    matches = find_matches(rows, build_pattern("cat"), hidden_rows=1)
    assert matches == [Match(1, 0, "cat"), Match(2, 0, "Cat")]


def test_execute_find_reads_the_text():
    result = execute_find(4, "cat", None, "a,cat\ncat,b\n", ",")
    assert result.request_id == 4
    assert [(m.row, m.col) for m in result.matches] == [(0, 1), (1, 0)]
    assert result.invalid_regex is False


def test_execute_find_invalid_regex_and_empty_query():
    assert execute_find(1, "[", FindOptions(regex=True), "a", ",").invalid_regex
    assert execute_find(2, "", None, "a", ",").matches == ()


class TestStaleResponses:
    def setup_method(self):
        self.sent = []
        self.applied = []
        self.seq = QuerySequencer(self.sent.append, self.applied.append)

    def test_older_result_arriving_late_is_discarded(self):
        a = self.seq.find("a")
        b = self.seq.find("b")
        assert [m.request_id for m in self.sent] == [a, b]
        assert isinstance(self.sent[0], FindMatches)

        assert self.seq.accept(FindMatchesResult(b, (Match(0, 0, "b"),)))
        assert not self.seq.accept(FindMatchesResult(a, (Match(0, 0, "a"),)))
        assert self.seq.current.request_id == b
        assert [r.request_id for r in self.applied] == [b]

    def test_result_for_superseded_query_is_discarded_even_if_first(self):
        a = self.seq.find("a")
        self.seq.find("ab")
        assert not self.seq.accept(FindMatchesResult(a))
        assert self.seq.current is None
        assert self.seq.status == ""

    def test_invalid_regex_status(self):
        rid = self.seq.find("(", FindOptions(regex=True))
        self.seq.accept(FindMatchesResult(rid, invalid_regex=True))
        assert self.seq.status == INVALID_REGEX_STATUS


def test_sequence_number_rejects_non_ints():
    seq = SequenceNumber()
    first = seq.next()
    assert seq.is_latest(first)
    assert not seq.is_latest(True)
    assert not seq.is_latest("1")
    assert seq.next() == first + 1
    assert not seq.is_latest(first)


@pytest.mark.parametrize(
    "matched, replacement, expected",
    [
        ("HELLO", "world", "WORLD"),
        ("hello", "World", "world"),
        ("Hello", "world", "World"),
        ("hELLo", "Earth", "Earth"),
        ("123", "abc", "abc"),
    ],
)
def test_apply_preserved_case(matched, replacement, expected):
    assert apply_preserved_case(matched, replacement) == expected


def test_replace_one_versus_all():
    pattern = build_pattern("cat")
    assert replace_in_value("cat cat", pattern, "dog", replace_all=False) == "dog cat"
    assert replace_in_value("cat cat", pattern, "dog", replace_all=True) == "dog dog"
    assert replace_in_value("Cat CAT", pattern, "dog", preserve_case=True) == "Dog DOG"


def test_regex_replacement_expands_groups():
    pattern = build_pattern(r"(\d+)-(\d+)", FindOptions(regex=True))
    assert replace_in_value("10-20", pattern, r"\2-\1", regex=True) == "20-10"


def test_replacement_updates_all_and_one():
    text = "cat,dog\ncatcat,x\n"
    updates, invalid = replacement_updates(text, ",", "cat", "cow", replace_all=True)
    assert not invalid
    assert updates == [CellUpdate(0, 0, "cow"), CellUpdate(1, 0, "cowcow")]

    updates, _ = replacement_updates(text, ",", "cat", "cow", row=1, col=0)
    assert updates == [CellUpdate(1, 0, "cowcat")]

    updates, _ = replacement_updates(text, ",", "cat", "cow")
    assert updates == [CellUpdate(0, 0, "cow")]


def test_replacement_updates_invalid_regex():
    assert replacement_updates("a", ",", "(", "b", FindOptions(regex=True)) == ([], True)
