import time
import unittest

import pytest

from document import Document
from grid_mutator import (
    GridMutator,
    compare_sort_keys,
    effective_header,
    insert_columns,
    insert_rows,
    reorder_columns,
    reorder_index_order,
    reorder_rows,
    sort_keys,
    sort_order,
    sort_rows,
    write_cells,
)


class VirtualCellTests(unittest.TestCase):
    def test_empty_write_to_virtual_row_is_noop(self):
        doc = Document("a\n")
        result = GridMutator(doc).edit(1, 0, "")
        self.assertFalse(result.changed)
        self.assertEqual(doc.text, "a\n")
        self.assertEqual(doc.version, 0)

    def test_empty_write_to_virtual_column_is_noop(self):
        doc = Document("a,b\n")
        GridMutator(doc).edit(0, 2, "")
        self.assertEqual(doc.text, "a,b\n")

    def test_value_in_virtual_row_materializes_then_trims_back(self):
        doc = Document("a\n")
        mutator = GridMutator(doc)
        created = mutator.edit(1, 0, "b")
        self.assertTrue(created.structural)
        self.assertEqual(doc.text, "a\nb\n")
        cleared = mutator.edit(1, 0, "")
        self.assertTrue(cleared.structural)
        self.assertEqual(mutator.rows(), [["a"]])
        self.assertEqual(doc.text, "a\n")

    def test_empty_trailing_row_is_trimmed_on_edit(self):
        doc = Document("a\n\n")
        mutator = GridMutator(doc)
        self.assertEqual(mutator.rows(), [["a"], [""]])
        mutator.edit(1, 0, "")
        self.assertEqual(mutator.rows(), [["a"]])

    def test_value_far_past_the_end_pads_rows_and_cells(self):
        doc = Document("a,b\n")
        GridMutator(doc).edit(2, 3, "x")
        self.assertEqual(doc.text, "a,b\n\n,,,x\n")

    def test_write_cells_reports_created_cells(self):
        rows = [["a"]]
        outcome = write_cells(rows, [(0, 2, "z")])
        self.assertTrue(outcome.created_col)
        self.assertFalse(outcome.created_row)
        self.assertEqual(rows, [["a", "", "z"]])


class ValueEditTests(unittest.TestCase):
    def test_plain_edit_patches_in_place(self):
        doc = Document('"id","value","note"\r\n"1","FOOBAR / 0 ","keep"\r\n')
        result = GridMutator(doc).edit(1, 2, "changed")
        self.assertTrue(result.changed)
        self.assertFalse(result.structural)
        self.assertEqual(doc.text, '"id","value","note"\r\n"1","FOOBAR / 0 ","changed"\r\n')

    def test_same_value_does_not_bump_version(self):
        doc = Document("a,b\n")
        GridMutator(doc).edit(0, 1, "b")
        self.assertEqual(doc.version, 0)

    def test_replace_cells_drops_out_of_range_and_unchanged(self):
        doc = Document("a,b\nc,d\n")
        result = GridMutator(doc).replace_cells(
            [{"row": 0, "col": 0, "value": "A"}, {"row": 9, "col": 0, "value": "x"}, (1, 1, "d")]
        )
        self.assertEqual(len(result.applied), 1)
        self.assertEqual(doc.text, "A,b\nc,d\n")

    def test_replace_cells_with_nothing_to_do(self):
        doc = Document("a,b\n")
        self.assertFalse(GridMutator(doc).replace_cells([(0, 0, "a")]).changed)
        self.assertFalse(GridMutator(doc).replace_cells([]).changed)

    def test_paste_single_value_fills_selection(self):
        doc = Document("a,b\nc,d\n")
        result, bounds = GridMutator(doc).paste([["z"]], 0, 0, selection=(1, 1, 0, 0))
        self.assertTrue(result.changed)
        self.assertEqual(bounds, (0, 0, 1, 1))
        self.assertEqual(doc.text, "z,z\nz,z\n")

    def test_paste_block_grows_grid(self):
        doc = Document("a\n")
        result, bounds = GridMutator(doc).paste([["1", "2"], ["3", "4"]], 0, 1)
        self.assertTrue(result.structural)
        self.assertEqual(bounds, (0, 1, 1, 2))
        self.assertEqual(doc.text, "a,1,2\n,3,4\n")


class StructureTests(unittest.TestCase):
    def test_insert_rows_uses_grid_width(self):
        rows = insert_rows([["a", "b"], ["c"]], 1, 2)
        self.assertEqual(rows, [["a", "b"], ["", ""], ["", ""], ["c"]])

    def test_insert_rows_regenerates_document(self):
        doc = Document("a,b\nc,d\n")
        result = GridMutator(doc).insert_rows(1)
        self.assertTrue(result.structural)
        self.assertEqual(doc.text, "a,b\n,\nc,d\n")

    def test_insert_rows_at_end_is_trimmed_away(self):
        doc = Document("a\n")
        self.assertFalse(GridMutator(doc).insert_rows(5, 3).changed)
        self.assertEqual(doc.text, "a\n")

    def test_delete_rows_ignores_duplicates_and_out_of_range(self):
        doc = Document("a\nb\nc\n")
        GridMutator(doc).delete_rows([0, 0, 5, -1])
        self.assertEqual(doc.text, "b\nc\n")

    def test_delete_rows_with_no_valid_index_is_noop(self):
        doc = Document("a\n")
        self.assertFalse(GridMutator(doc).delete_rows([7]).changed)

    def test_delete_columns_descending(self):
        doc = Document("a,b,c\n1,2,3\n")
        GridMutator(doc).delete_columns([0, 2])
        self.assertEqual(doc.text, "b\n2\n")

    def test_insert_columns_leaves_short_rows(self):
        self.assertEqual(insert_columns([["a", "b"], ["1"]], 1), [["a", "", "b"], ["1"]])
        doc = Document("a,b\n1\n")
        GridMutator(doc).insert_columns(1)
        self.assertEqual(doc.text, "a,,b\n1\n")


@pytest.mark.parametrize(
    "length, indices, before, expected",
    [
        (6, [1, 2], 5, [0, 3, 4, 1, 2, 5]),
        (6, [2, 3], 0, [2, 3, 0, 1, 4, 5]),
        (5, [2, 3], 2, [0, 1, 2, 3, 4]),
        (5, [3, 3, -1, 99, 1], 5, [0, 2, 4, 1, 3]),
        (4, [1], 99, [0, 2, 3, 1]),
        (4, [], 0, [0, 1, 2, 3]),
    ],
)
def test_reorder_index_order(length, indices, before, expected):
    assert reorder_index_order(length, indices, before) == expected


def test_reorder_rows_moves_block():
    rows = [[f"r{i}"] for i in range(5)]
    assert reorder_rows(rows, [1, 2], 4) == [["r0"], ["r3"], ["r1"], ["r2"], ["r4"]]


def test_reorder_columns_moves_block():
    assert reorder_columns([["A", "B", "C", "D"]], [1, 2], 4) == [["A", "D", "B", "C"]]


def test_reorder_columns_pads_then_trims_short_rows():
    rows = reorder_columns([["a", "b", "c"], ["x"], ["y", "z"]], [2], 0)
    assert rows == [["c", "a", "b"], ["", "x"], ["", "y", "z"]]


def test_reorder_to_own_anchor_leaves_document_alone():
    doc = Document("a\nb\nc\n")
    assert not GridMutator(doc).reorder_rows([1], 1).changed
    assert doc.version == 0


class SortTests(unittest.TestCase):
    rows = [
        ["2024-03-01", "a"],
        ["2023-12-31", "b"],
        ["", "c"],
        ["2024-01-15", "d"],
    ]

    def test_dates_ascending_with_blank_last(self):
        out = sort_rows(self.rows, 0, ascending=True)
        self.assertEqual([r[1] for r in out], ["b", "d", "a", "c"])

    def test_dates_descending_keeps_blank_last(self):
        out = sort_rows(self.rows, 0, ascending=False)
        self.assertEqual([r[1] for r in out], ["a", "d", "b", "c"])

    def test_numbers_compare_numerically(self):
        out = sort_rows([["10"], ["9"], ["100"]], 0)
        self.assertEqual(out, [["9"], ["10"], ["100"]])

    def test_text_is_case_insensitive(self):
        out = sort_rows([["banana"], ["Apple"], ["cherry"]], 0)
        self.assertEqual(out, [["Apple"], ["banana"], ["cherry"]])

    def test_sort_is_stable(self):
        out = sort_rows([["1", "x"], ["1", "y"], ["0", "z"]], 0)
        self.assertEqual([r[1] for r in out], ["z", "x", "y"])

    def test_header_and_hidden_rows_stay_put(self):
        rows = [["meta"], ["name"], ["b"], ["a"]]
        out = sort_rows(rows, 0, header=True, hidden_rows=1)
        self.assertEqual(out, [["meta"], ["name"], ["a"], ["b"]])

    def test_sparse_sibling_column_never_becomes_nan(self):
        doc = Document("b\na,x\nc\n")
        result = GridMutator(doc).sort_column(0)
        self.assertTrue(result.structural)
        self.assertEqual(doc.text, "a,x\nb\nc\n")
        self.assertNotIn("nan", doc.text)

    def test_virtual_row_is_never_sorted_in(self):
        doc = Document("b\na\n\n")
        GridMutator(doc).sort_column(0, ascending=False)
        self.assertEqual(doc.text, "b\na\n")

    def test_empties_compare_after_values_in_both_directions(self):
        empty, value, blank = sort_keys(["", "a", " "])
        for ascending in (True, False):
            self.assertEqual(compare_sort_keys(empty, value, ascending), 1)
            self.assertEqual(compare_sort_keys(value, blank, ascending), -1)
            self.assertEqual(compare_sort_keys(empty, blank, ascending), 0)

    def test_sort_keys_prefer_dates_then_numbers(self):
        early, late, ten, two = sort_keys(["2024/01/02", "2024-01-10", "10kg", "2kg"])
        self.assertEqual(compare_sort_keys(early, late), -1)
        self.assertEqual(compare_sort_keys(ten, two), 1)
        self.assertEqual(compare_sort_keys(ten, two, ascending=False), -1)

    def test_literal_nan_text_is_written_back_empty(self):
        out = sort_rows([["b", "NaN"], ["a", "nan"], ["c", "Nana"]], 0)
        self.assertEqual(out, [["a", ""], ["b", ""], ["c", "Nana"]])

    def test_large_date_column_sorts_quickly(self):
        rows = [[f"2024-01-{day % 28 + 1:02d}", str(day)] for day in range(50_000)]
        started = time.perf_counter()
        out = sort_rows(rows, 0, ascending=False)
        self.assertLess(time.perf_counter() - started, 10.0)
        self.assertEqual(out[0][0], "2024-01-28")
        self.assertEqual(out[-1][0], "2024-01-01")

    def test_sort_order_descending(self):
        self.assertEqual(sort_order(["2", "", "10", "1"], ascending=False), [2, 0, 3, 1])


class HeaderInferenceTests(unittest.TestCase):
    def test_override_wins(self):
        self.assertFalse(effective_header([["name"], ["12"]], override=False))
        self.assertTrue(effective_header([["a"], ["b"]], override=True))

    def test_type_difference_means_header(self):
        self.assertTrue(effective_header([["name", "age"], ["bob", "12"], ["amy", "40"]]))

    def test_matching_types_means_no_header(self):
        self.assertFalse(effective_header([["a", "b"], ["c", "d"]]))

    def test_lone_visible_row_is_a_header(self):
        self.assertTrue(effective_header([["only"]]))

    def test_hidden_rows_are_skipped(self):
        rows = [["meta", "x"], ["name", "age"], ["bob", "12"]]
        self.assertTrue(effective_header(rows, hidden_rows=1))

    def test_nothing_visible(self):
        self.assertFalse(effective_header([]))
        self.assertFalse(effective_header([["a"]], hidden_rows=3))
