import pytest

from field_span_codec import (
    UNREPRESENTABLE,
    CellUpdate,
    apply_updates,
    as_cell_update,
    cell_text,
    parse_rows,
    parse_spans,
    serialize_rows,
)


def test_parse_quoted_and_plain_fields():
    parsed = parse_spans('a,b\n"c,d",e\n', ",")
    assert parsed.rows == [["a", "b"], ["c,d", "e"]]
    assert parsed.line_terminator == "\n"
    assert parsed.trailing_newline is True
    assert [s.quoted for s in parsed.spans[1]] == [True, False]
    assert parsed.spans[1][0].start == 4
    assert parsed.spans[1][0].end == 9


def test_parse_doubled_quotes_and_embedded_newlines():
    rows = parse_rows('"he said ""hi""",x\r\na,"l1\r\nl2"', ",")
    assert rows == [['he said "hi"', "x"], ["a", "l1\r\nl2"]]


def test_parse_empty_text_has_no_rows():
    parsed = parse_spans("", ",")
    assert parsed.rows == []
    assert parsed.line_terminator is None


def test_parse_blank_line_is_a_row_with_one_empty_field():
    assert parse_rows("a\n\nb", ",") == [["a"], [""], ["b"]]


def test_edit_keeps_quoting_of_untouched_fields():
    text = '"id","value","note"\r\n"1","FOOBAR / 0 ","keep"\r\n'
    patched = apply_updates(text, ",", [CellUpdate(1, 2, "changed")])
    assert patched == '"id","value","note"\r\n"1","FOOBAR / 0 ","changed"\r\n'


def test_edit_keeps_whitespace_padding_elsewhere():
    text = "a, b ,c\n1, 2 ,3\n"
    assert apply_updates(text, ",", [CellUpdate(1, 0, "9")]) == "a, b ,c\n9, 2 ,3\n"


def test_pipe_separated_batch():
    text = '"a"|b|c\n"x"|y|z\n'
    patched = apply_updates(text, "|", [CellUpdate(0, 1, "B"), CellUpdate(1, 0, "X")])
    assert patched == '"a"|B|c\n"X"|y|z\n'


def test_batch_order_does_not_matter():
    text = "a,b,c\n1,2,3\n"
    updates = [CellUpdate(0, 0, "first"), CellUpdate(1, 2, "last"), CellUpdate(0, 2, "mid")]
    forward = apply_updates(text, ",", updates)
    backward = apply_updates(text, ",", list(reversed(updates)))
    assert forward == backward == "first,b,mid\n1,2,last\n"


def test_value_needing_quotes_gets_quoted():
    assert apply_updates("a,b\n", ",", [CellUpdate(0, 1, "x,y")]) == 'a,"x,y"\n'
    assert apply_updates("a,b\n", ",", [CellUpdate(0, 1, 'say "hi"')]) == 'a,"say ""hi"""\n'


def test_missing_target_is_unrepresentable():
    result = apply_updates("a,b\n", ",", [CellUpdate(0, 0, "z"), CellUpdate(5, 0, "x")])
    assert result is UNREPRESENTABLE
    assert not result


def test_unchanged_value_returns_text_as_is():
    text = '"a",b\n'
    assert apply_updates(text, ",", [CellUpdate(0, 0, "a")]) == text


def test_last_write_to_a_cell_wins():
    assert apply_updates("a,b\n", ",", [CellUpdate(0, 0, "p"), CellUpdate(0, 0, "q")]) == "q,b\n"


def test_patched_text_parses_to_expected_grid():
    text = 'x, "y" ,z\n"1",2,3\n'
    before = parse_rows(text, ",")
    patched = apply_updates(text, ",", [CellUpdate(1, 1, "two"), CellUpdate(0, 2, "zed")])
    expected = [list(r) for r in before]
    expected[1][1] = "two"
    expected[0][2] = "zed"
    assert parse_rows(patched, ",") == expected
    assert patched.startswith('x, "y" ,')


def test_serialize_rows_quotes_only_when_needed():
    assert serialize_rows([["a", "b,c"], ["d"]], ",") == 'a,"b,c"\r\nd'
    assert serialize_rows([["a"]], ",", "\n", trailing_newline=True) == "a\n"
    assert serialize_rows([], ",") == ""


@pytest.mark.parametrize(
    "value, expected",
    [(None, ""), (float("nan"), ""), ("nan", "nan"), (3, "3"), ("x", "x")],
)
def test_cell_text(value, expected):
    assert cell_text(value) == expected


def test_as_cell_update_accepts_dicts_and_tuples():
    assert as_cell_update({"row": 1, "col": 2, "value": "v"}) == CellUpdate(1, 2, "v")
    assert as_cell_update((0, 0, None)) == CellUpdate(0, 0, "")
