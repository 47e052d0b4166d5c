# reportdraft/sheets.py

import logging
from typing import Any, Dict, List, Protocol, Tuple

from reportdraft.models import CellStyle, MergeRegion, RangeSnapshot
from reportdraft.tables import quote_sheet_name

LOGGER = logging.getLogger(__name__)


class TableSource(Protocol):
    def fetch_range(self, source_id: str, range_a1: str) -> RangeSnapshot:
        ...


class InMemoryTableSource:
    """Ranges registered up front, keyed by (source id, quoted A1 range)."""

    def __init__(self):
        self._ranges: Dict[Tuple[str, str], RangeSnapshot] = {}
        self.requests: List[Tuple[str, str]] = []

    def add(self, source_id: str, range_a1: str, snapshot: RangeSnapshot) -> None:
        self._ranges[(source_id, quote_sheet_name(range_a1))] = snapshot

    def fetch_range(self, source_id: str, range_a1: str) -> RangeSnapshot:
        self.requests.append((source_id, range_a1))
        try:
            return self._ranges[(source_id, quote_sheet_name(range_a1))]
        except KeyError:
            raise LookupError(f"Range {range_a1} not found in {source_id}") from None


# -------------------------
# Google Sheets API v4
# -------------------------

GRID_FIELDS = (
    "sheets(merges,"
    "data(startRow,startColumn,rowMetadata(pixelSize),columnMetadata(pixelSize,hiddenByUser),"
    "rowData(values(formattedValue,effectiveFormat(backgroundColor,backgroundColorStyle,"
    "textFormat,horizontalAlignment,verticalAlignment)))))"
)


def _hex_color(color: Dict[str, float], default: str) -> str:
    if not color:
        return default
    rgb = [round(float(color.get(k, 0.0)) * 255) for k in ("red", "green", "blue")]
    return "#{:02x}{:02x}{:02x}".format(*rgb)


def _style_color(fmt: Dict[str, Any], key: str, default: str) -> str:
    styled = (fmt.get(key + "Style") or {}).get("rgbColor")
    return _hex_color(styled or fmt.get(key) or {}, default)


def cell_style_from_format(fmt: Dict[str, Any]) -> CellStyle:
    text = fmt.get("textFormat") or {}
    return CellStyle(
        background=_style_color(fmt, "backgroundColor", "#ffffff"),
        font_color=_style_color(text, "foregroundColor", "#000000"),
        font_weight="bold" if text.get("bold") else "normal",
        font_size=text.get("fontSize", 10),
        font_family=text.get("fontFamily") or "Arial",
        horizontal_alignment=(fmt.get("horizontalAlignment") or "LEFT").lower(),
        vertical_alignment=(fmt.get("verticalAlignment") or "BOTTOM").lower(),
    )


class GoogleSheetsTableSource:
    """Reads values, formats, geometry and merges with one spreadsheets.get call."""

    def __init__(self, service):
        self.service = service

    def fetch_range(self, source_id: str, range_a1: str) -> RangeSnapshot:
        response = self.service.spreadsheets().get(
            spreadsheetId=source_id,
            ranges=[range_a1],
            includeGridData=True,
            fields=GRID_FIELDS,
        ).execute()

        sheets = response.get("sheets") or []
        if not sheets or not sheets[0].get("data"):
            raise LookupError(f"Range {range_a1} returned no grid data")

        sheet = sheets[0]
        grid = sheet["data"][0]
        row_meta = grid.get("rowMetadata", [])
        col_meta = grid.get("columnMetadata", [])
        row_data = grid.get("rowData", [])

        num_rows = len(row_meta) or len(row_data)
        num_cols = len(col_meta)
        start_row = grid.get("startRow", 0) + 1
        start_col = grid.get("startColumn", 0) + 1

        values: List[List[str]] = []
        styles: List[List[CellStyle]] = []
        for r in range(num_rows):
            cells = row_data[r].get("values", []) if r < len(row_data) else []
            value_row, style_row = [], []
            for c in range(num_cols):
                cell = cells[c] if c < len(cells) else {}
                value_row.append(cell.get("formattedValue", ""))
                style_row.append(cell_style_from_format(cell.get("effectiveFormat") or {}))
            values.append(value_row)
            styles.append(style_row)

        merges = []
        for m in sheet.get("merges", []):
            region = MergeRegion(
                row=m.get("startRowIndex", 0) + 1,
                col=m.get("startColumnIndex", 0) + 1,
                num_rows=m.get("endRowIndex", 0) - m.get("startRowIndex", 0),
                num_cols=m.get("endColumnIndex", 0) - m.get("startColumnIndex", 0),
            )
            if _intersects(region, start_row, start_col, num_rows, num_cols):
                merges.append(region)

        LOGGER.debug("Fetched %sx%s grid with %s merges from %s", num_rows, num_cols, len(merges), range_a1)
        return RangeSnapshot(
            values=values,
            styles=styles,
            column_widths=[m.get("pixelSize") for m in col_meta],
            row_heights=[m.get("pixelSize", 21) for m in row_meta],
            merges=merges,
            start_row=start_row,
            start_col=start_col,
            hidden_columns=[bool(m.get("hiddenByUser")) for m in col_meta],
        )


def _intersects(region: MergeRegion, start_row: int, start_col: int, num_rows: int, num_cols: int) -> bool:
    return (
        region.row < start_row + num_rows
        and region.row + region.num_rows > start_row
        and region.col < start_col + num_cols
        and region.col + region.num_cols > start_col
    )
