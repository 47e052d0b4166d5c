# reportdraft/data_sources.py

import csv
import io
import logging
import re
import ssl
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple

import certifi

from reportdraft.errors import SourceLookupError

LOGGER = logging.getLogger(__name__)

GS_HOST = "docs.google.com"

# Spreadsheet / document ids are long opaque tokens (~44 chars)
SOURCE_ID_RE = re.compile(r"[-\w]{25,}")

Rows = List[Dict[str, str]]


# -------------------------------------------------
# Public API
# -------------------------------------------------

def extract_source_id(ref: str) -> Optional[str]:
    """Pull the spreadsheet id out of a URL, smart chip text or bare id."""
    m = SOURCE_ID_RE.search(ref or "")
    return m.group(0) if m else None


def load_csv(path: str) -> Tuple[Rows, List[str]]:
    """
    Load and normalize rows from a local CSV file.

    Returns:
        rows: list of normalized row dictionaries
        headers: ordered list of lowercase column headers
    """
    with open(path, mode="r", encoding="utf-8-sig", newline="") as f:
        return _parse_reader(csv.DictReader(f))


def load_google_sheet(sheet_url: str, timeout: int = 20) -> Tuple[Rows, List[str]]:
    """
    Load and normalize rows from a public Google Sheets URL.

    Accepts standard sharing links with optional gid.
    """
    export_url = _gsheet_to_export_csv_url(sheet_url)
    if not export_url:
        raise ValueError("Invalid Google Sheets URL")

    csv_text = _fetch_gsheet_csv_text(export_url, timeout=timeout)
    return _parse_csv_text(csv_text)


def load_google_sheet_tab(sheet_ref: str, tab_name: str, timeout: int = 20) -> Tuple[Rows, List[str]]:
    """Load one named tab of a shared spreadsheet given its id or URL."""
    ssid = extract_source_id(sheet_ref)
    if not ssid:
        raise ValueError(f"No spreadsheet id in '{sheet_ref}'")

    q = urllib.parse.urlencode({"tqx": "out:csv", "sheet": tab_name})
    export_url = f"https://{GS_HOST}/spreadsheets/d/{ssid}/gviz/tq?{q}"
    csv_text = _fetch_gsheet_csv_text(export_url, timeout=timeout)
    return _parse_csv_text(csv_text)


# -------------------------------------------------
# Directory sources
# -------------------------------------------------

class DirectorySource(Protocol):
    def load_rows(self, source_id: str, tab_name: str) -> Tuple[Rows, List[str]]:
        ...


class CsvDirectorySource:
    """A local folder standing in for a spreadsheet: one ``<tab>.csv`` per tab."""

    def load_rows(self, source_id: str, tab_name: str) -> Tuple[Rows, List[str]]:
        folder = Path(source_id).expanduser()
        path = folder / f"{tab_name}.csv"
        if not path.is_file():
            available = sorted(p.stem for p in folder.glob("*.csv")) if folder.is_dir() else []
            raise SourceLookupError(
                f"Tab '{tab_name}' not found in {folder}. Available: {', '.join(available) or 'none'}"
            )
        return load_csv(str(path))


class GoogleSheetDirectorySource:
    def __init__(self, timeout: int = 20):
        self.timeout = timeout

    def load_rows(self, source_id: str, tab_name: str) -> Tuple[Rows, List[str]]:
        return load_google_sheet_tab(source_id, tab_name, timeout=self.timeout)


class InMemoryDirectorySource:
    """Tabs given as ``{source_id: {tab: [row dicts]}}``."""

    def __init__(self, tabs: Dict[str, Dict[str, Rows]]):
        self.tabs = tabs
        self.load_count = 0

    def load_rows(self, source_id: str, tab_name: str) -> Tuple[Rows, List[str]]:
        self.load_count += 1
        sheet = self.tabs.get(source_id)
        if sheet is None or tab_name not in sheet:
            raise SourceLookupError(f"Tab '{tab_name}' not found in {source_id}")
        rows = [_normalize_row(r) for r in sheet[tab_name]]
        headers: List[str] = []
        for r in rows:
            for h in r:
                if h not in headers:
                    headers.append(h)
        return rows, headers


def directory_source_for(source_id: str):
    """Local folders are read as CSV tabs, anything else as a shared spreadsheet."""
    if Path(source_id).expanduser().is_dir():
        return CsvDirectorySource()
    return GoogleSheetDirectorySource()


# -------------------------------------------------
# Internal helpers
# -------------------------------------------------

def _normalize_row(row: Dict) -> Dict[str, str]:
    return {
        str(k).strip().lower(): str(v if v is not None else "").strip()
        for k, v in (row.items() if row else [])
    }


def _parse_reader(reader: csv.DictReader) -> Tuple[Rows, List[str]]:
    headers = [str(h).strip().lower() for h in (reader.fieldnames or [])]
    rows = [_normalize_row(row) for row in reader]
    return rows, headers


def _parse_csv_text(csv_text: str) -> Tuple[Rows, List[str]]:
    return _parse_reader(csv.DictReader(io.StringIO(csv_text)))


def _gsheet_to_export_csv_url(url: str) -> str:
    try:
        parsed = urllib.parse.urlparse(url)
    except ValueError:
        return ""

    if GS_HOST not in parsed.netloc:
        return ""

    m = re.search(r"/spreadsheets/d/([a-zA-Z0-9\-_]+)", parsed.path)
    if not m:
        return ""

    ssid = m.group(1)

    gid = "0"
    if parsed.fragment:
        mg = re.search(r"gid=(\d+)", parsed.fragment)
        if mg:
            gid = mg.group(1)

    q = urllib.parse.urlencode({"format": "csv", "gid": gid})
    return f"https://{GS_HOST}/spreadsheets/d/{ssid}/export?{q}"


def _fetch_gsheet_csv_text(export_csv_url: str, timeout: int = 20) -> str:
    req = urllib.request.Request(
        export_csv_url,
        headers={
            "User-Agent": (
                "Mozilla/5.0 (X11; Linux x86_64) "
                "AppleWebKit/537.36 (KHTML, like Gecko) "
                "Chrome/122.0 Safari/537.36"
            )
        },
        method="GET",
    )

    context = ssl.create_default_context(cafile=certifi.where())

    LOGGER.debug("Fetching %s", export_csv_url)
    with urllib.request.urlopen(req, timeout=timeout, context=context) as resp:
        if resp.status != 200:
            raise RuntimeError(f"HTTP {resp.status}")

        data = resp.read()

        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError:
            return data.decode("utf-8", errors="replace")
