# reportdraft/tables.py

"""
Expands ``[Table] Sheet: <id-or-url>, range: <A1>`` tags into fixed-layout
HTML tables that mirror the spreadsheet range: values, per-cell styling,
column widths, row heights and merged cells.
"""

import html
import logging
import re
from typing import List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from reportdraft.data_sources import extract_source_id
from reportdraft.models import CellMeta, CellStyle, MergeRegion, RangeSnapshot

LOGGER = logging.getLogger(__name__)

# The range runs up to the enclosing paragraph's closing tag
TABLE_TAG_RE = re.compile(r"\[Table\]\s*Sheet:\s*(.*?),\s*range:\s(.*?)(?=</p>)", flags=re.IGNORECASE)

A1_CELL_RE = re.compile(r"^\$?([A-Za-z]+)\$?(\d+)$")

DEFAULT_COLUMN_WIDTH = 100
DEFAULT_ROW_HEIGHT = 21
BORDER = "1px solid #cccccc"

ERROR_BOX = "<p style='color:red; background:#ffe6e6; padding:5px;'>{}</p>"
EMPTY_TABLE = "<p><i>(Table contains no data)</i></p>"


# -------------------------
# Range string handling
# -------------------------

def clean_range(raw: str) -> str:
    """Strip markup, smart quotes, NBSPs and trailing punctuation from a range."""
    text = raw or ""
    if "<" in text or "&" in text:
        text = BeautifulSoup(text, "html.parser").get_text()
    text = (
        text.replace("\u2018", "'")
        .replace("\u2019", "'")
        .replace("\u00a0", " ")
        .strip()
    )
    if text and text[-1] in ".,;":
        text = text[:-1].strip()
    return text


def quote_sheet_name(range_a1: str) -> str:
    """
    Data!A1:B10       -> 'Data'!A1:B10
    'My Sheet'!A1:B10 -> unchanged
    Named ranges (no '!') are returned as-is.
    """
    if range_a1.startswith("'"):
        return range_a1

    bang = range_a1.rfind("!")
    if bang == -1:
        return range_a1

    sheet = range_a1[:bang].replace("'", "''")
    return f"'{sheet}'!{range_a1[bang + 1:]}"


def split_sheet_name(range_a1: str) -> Tuple[Optional[str], str]:
    bang = range_a1.rfind("!")
    if bang == -1:
        return None, range_a1
    sheet = range_a1[:bang]
    if len(sheet) >= 2 and sheet[0] == sheet[-1] == "'":
        sheet = sheet[1:-1].replace("''", "'")
    return sheet, range_a1[bang + 1:]


def column_number(letters: str) -> int:
    n = 0
    for ch in letters.upper():
        n = n * 26 + (ord(ch) - ord("A") + 1)
    return n


def parse_a1(range_a1: str) -> Tuple[Optional[str], int, int, int, int]:
    """
    Parse ``'Sheet'!B2:D10`` into (sheet, first_row, first_col, last_row, last_col),
    all 1-based and inclusive.
    """
    sheet, cells = split_sheet_name(range_a1)
    parts = cells.split(":")
    if len(parts) > 2:
        raise ValueError(f"Invalid A1 range: {range_a1}")

    corners = []
    for part in parts:
        m = A1_CELL_RE.match(part.strip())
        if not m:
            raise ValueError(f"Invalid A1 range: {range_a1}")
        corners.append((int(m.group(2)), column_number(m.group(1))))

    (r1, c1), (r2, c2) = corners[0], corners[-1]
    return sheet, min(r1, r2), min(c1, c2), max(r1, r2), max(c1, c2)


# -------------------------
# Grid geometry
# -------------------------

def trim_trailing_empty_rows(values: Sequence[Sequence[str]]) -> int:
    """Number of rows left after dropping fully blank rows from the bottom."""
    last = len(values) - 1
    while last >= 0:
        if any(str(cell).strip() for cell in values[last]):
            break
        last -= 1
    return last + 1


def build_merge_map(
    merges: Sequence[MergeRegion],
    start_row: int,
    start_col: int,
    num_rows: int,
    num_cols: int,
) -> List[List[CellMeta]]:
    """
    Translate sheet merges into range-local span metadata.

    The anchor (top-left) cell carries the full span; every other covered
    cell inside the grid is marked ``skip``.
    """
    meta = [[CellMeta() for _ in range(num_cols)] for _ in range(num_rows)]

    for merge in merges:
        top = merge.row - start_row
        left = merge.col - start_col
        for r in range(merge.num_rows):
            for c in range(merge.num_cols):
                row, col = top + r, left + c
                if not (0 <= row < num_rows and 0 <= col < num_cols):
                    continue
                if r == 0 and c == 0:
                    meta[row][col].row_span = merge.num_rows
                    meta[row][col].col_span = merge.num_cols
                else:
                    meta[row][col].skip = True
    return meta


def resolve_column_widths(snapshot: RangeSnapshot, num_cols: int) -> List[int]:
    widths = []
    for c in range(num_cols):
        w = snapshot.column_widths[c] if c < len(snapshot.column_widths) else None
        hidden = c < len(snapshot.hidden_columns) and snapshot.hidden_columns[c]
        if hidden:
            LOGGER.warning("Table warning: column %s is hidden, using default %spx", c, DEFAULT_COLUMN_WIDTH)
            w = DEFAULT_COLUMN_WIDTH
        elif not w:
            LOGGER.warning("Table warning: column %s has no width, using default %spx", c, DEFAULT_COLUMN_WIDTH)
            w = DEFAULT_COLUMN_WIDTH
        widths.append(int(w))
    return widths


def _num(value) -> str:
    return f"{float(value):g}"


# -------------------------
# Rendering
# -------------------------

def render_grid(snapshot: RangeSnapshot) -> str:
    row_count = trim_trailing_empty_rows(snapshot.values)
    if row_count == 0:
        return EMPTY_TABLE

    values = snapshot.values[:row_count]
    styles = snapshot.styles[:row_count]
    num_cols = max(len(r) for r in values)

    widths = resolve_column_widths(snapshot, num_cols)
    meta = build_merge_map(snapshot.merges, snapshot.start_row, snapshot.start_col, row_count, num_cols)

    parts = [
        f'<table style="table-layout: fixed; width: {sum(widths)}px; border-collapse: collapse; '
        f'border: {BORDER}; font-family: Arial, sans-serif; font-size: 10pt;">',
        "<colgroup>",
    ]
    parts.extend(f'<col style="width: {w}px;">' for w in widths)
    parts.append("</colgroup>")

    for i in range(row_count):
        height = snapshot.row_heights[i] if i < len(snapshot.row_heights) else DEFAULT_ROW_HEIGHT
        parts.append(f'<tr style="height: {height}px;">')

        for j in range(num_cols):
            cell = meta[i][j]
            if cell.skip:
                continue

            text = values[i][j] if j < len(values[i]) else ""
            style = styles[i][j] if i < len(styles) and j < len(styles[i]) else CellStyle()
            width = sum(widths[j:j + cell.col_span])

            span_attrs = ""
            if cell.row_span > 1:
                span_attrs += f' rowspan="{cell.row_span}"'
            if cell.col_span > 1:
                span_attrs += f' colspan="{cell.col_span}"'

            css = ";".join([
                f"border: {BORDER}",
                "padding: 4px 6px",
                "overflow: hidden",
                f"width: {width}px",
                f"min-width: {width}px",
                f"max-width: {width}px",
                f"background-color: {style.background}",
                f"color: {style.font_color}",
                f"font-weight: {style.font_weight}",
                f"font-size: {_num(style.font_size)}pt",
                f"font-family: {style.font_family or 'Arial'}, sans-serif",
                f"text-align: {style.horizontal_alignment}",
                f"vertical-align: {style.vertical_alignment}",
                "white-space: pre-wrap",
            ])
            parts.append(f'<td{span_attrs} style="{css}">{html.escape(str(text), quote=False)}</td>')

        parts.append("</tr>")

    parts.append("</table>")
    return "".join(parts)


class TableRenderer:
    """Replaces table tags in body markup with rendered ranges."""

    def __init__(self, source):
        self.source = source

    def render_range(self, source_id: str, range_a1: str) -> str:
        LOGGER.info('Table: fetching "%s" from %s', range_a1, source_id)
        snapshot = self.source.fetch_range(source_id, range_a1)
        return render_grid(snapshot)

    def render_tag(self, source_ref: str, raw_range: str) -> str:
        try:
            source_id = extract_source_id(source_ref)
            if not source_id:
                LOGGER.error("Table error: could not find a sheet id in: %s", source_ref)
                return ERROR_BOX.format("[Table Error: Invalid Sheet Link]")

            range_a1 = quote_sheet_name(clean_range(raw_range))
            return self.render_range(source_id, range_a1)
        except Exception as exc:
            LOGGER.error("Table error: %s", exc)
            return ERROR_BOX.format(f"(Table Error: {html.escape(str(exc))})")

    def expand(self, markup: str) -> str:
        if not markup or "[table]" not in markup.lower():
            return markup or ""
        return TABLE_TAG_RE.sub(lambda m: self.render_tag(m.group(1), m.group(2)), markup)
