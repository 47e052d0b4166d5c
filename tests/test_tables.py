import pytest

from reportdraft.models import CellStyle, MergeRegion, RangeSnapshot
from reportdraft.sheets import InMemoryTableSource
from reportdraft.tables import (
    EMPTY_TABLE,
    TableRenderer,
    build_merge_map,
    clean_range,
    parse_a1,
    quote_sheet_name,
    render_grid,
    resolve_column_widths,
    trim_trailing_empty_rows,
)

SHEET_ID = "1AbCdEfGhIjKlMnOpQrStUvWxYz0123456789"


def snapshot(values, merges=None, widths=None, start_row=1, start_col=1, hidden=None):
    num_cols = max(len(r) for r in values) if values else 0
    return RangeSnapshot(
        values=values,
        styles=[[CellStyle() for _ in row] for row in values],
        column_widths=widths if widths is not None else [80] * num_cols,
        row_heights=[21] * len(values),
        merges=merges or [],
        start_row=start_row,
        start_col=start_col,
        hidden_columns=hidden or [],
    )


@pytest.mark.parametrize("raw, expected", [
    ("Data!A1:B10", "'Data'!A1:B10"),
    ("'My Sheet'!A1:B10", "'My Sheet'!A1:B10"),
    ("Named_Range", "Named_Range"),
    ("O'Brien!A1", "'O''Brien'!A1"),
])
def test_quote_sheet_name(raw, expected):
    assert quote_sheet_name(raw) == expected


def test_clean_range_strips_markup_smart_quotes_and_punctuation():
    assert clean_range("<span>‘Data’!A1:B2</span>.") == "'Data'!A1:B2"
    assert clean_range("Data!A1:B2&nbsp;") == "Data!A1:B2"


def test_parse_a1():
    assert parse_a1("'My Sheet'!B2:D10") == ("My Sheet", 2, 2, 10, 4)
    assert parse_a1("Data!AA1") == ("Data", 1, 27, 1, 27)
    with pytest.raises(ValueError):
        parse_a1("Data!A1:B2:C3")


def test_trailing_empty_rows_are_dropped():
    assert trim_trailing_empty_rows([["a"], [""], ["b"], ["  "], [""]]) == 3
    assert trim_trailing_empty_rows([[""], [""]]) == 0


def test_merge_anchor_carries_span_and_covered_cells_skip():
    meta = build_merge_map([MergeRegion(row=2, col=2, num_rows=2, num_cols=3)], 2, 2, 3, 3)
    assert (meta[0][0].row_span, meta[0][0].col_span) == (2, 3)
    covered = [(r, c) for r in range(3) for c in range(3) if meta[r][c].skip]
    assert covered == [(0, 1), (0, 2), (1, 0), (1, 1), (1, 2)]


def test_merge_partially_outside_range_is_clipped():
    meta = build_merge_map([MergeRegion(row=1, col=1, num_rows=2, num_cols=2)], 2, 1, 2, 2)
    # The anchor lies above the range; only the covered cells are visible
    assert meta[0][0].skip and meta[0][1].skip
    assert not meta[1][0].skip


def test_rendered_merge_emits_one_cell_for_the_region():
    values = [["Title", "", ""], ["a", "b", "c"]]
    out = render_grid(snapshot(values, merges=[MergeRegion(1, 1, 1, 3)]))
    assert 'colspan="3"' in out
    assert out.count("<td") == 4
    assert "width: 240px" in out


def test_hidden_or_missing_widths_fall_back_to_default():
    snap = snapshot([["a", "b", "c"]], widths=[50, None, 70], hidden=[False, False, True])
    assert resolve_column_widths(snap, 3) == [50, 100, 100]


def test_empty_range_renders_placeholder():
    assert render_grid(snapshot([["", ""], ["", ""]])) == EMPTY_TABLE


def test_cell_text_is_escaped():
    out = render_grid(snapshot([["<b>x</b> & y"]]))
    assert "&lt;b&gt;x&lt;/b&gt; &amp; y" in out


def test_renderer_expands_tag_inside_paragraph():
    source = InMemoryTableSource()
    source.add(SHEET_ID, "Data!A1:B2", snapshot([["h1", "h2"], ["1", "2"]]))
    renderer = TableRenderer(source)

    markup = f"<p>[Table] Sheet: https://docs.google.com/spreadsheets/d/{SHEET_ID}/edit, range: Data!A1:B2</p>"
    out = renderer.expand(markup)
    assert "<table" in out and ">h2</td>" in out
    assert source.requests == [(SHEET_ID, "'Data'!A1:B2")]


def test_renderer_bad_sheet_link_renders_error_box():
    out = TableRenderer(InMemoryTableSource()).expand("<p>[Table] Sheet: nope, range: Data!A1</p>")
    assert "[Table Error: Invalid Sheet Link]" in out


def test_renderer_fetch_failure_renders_error_box():
    out = TableRenderer(InMemoryTableSource()).expand(f"<p>[Table] Sheet: {SHEET_ID}, range: Data!A1</p>")
    assert "Table Error" in out
    assert "not found" in out


def test_markup_without_table_tags_is_unchanged():
    assert TableRenderer(InMemoryTableSource()).expand("<p>hello</p>") == "<p>hello</p>"
