import pytest

from reportdraft import data_sources
from reportdraft.data_sources import (
    CsvDirectorySource,
    GoogleSheetDirectorySource,
    InMemoryDirectorySource,
    directory_source_for,
    extract_source_id,
    load_csv,
    load_google_sheet,
    load_google_sheet_tab,
)
from reportdraft.errors import SourceLookupError

SHEET_ID = "1AbCdEfGhIjKlMnOpQrStUvWxYz0123456789"


def test_load_csv_normalizes_headers_and_values(tmp_path):
    path = tmp_path / "people.csv"
    path.write_text("\ufeffEmail , Site_wise_role\n a@example.com ,ops_lead\n", encoding="utf-8")

    rows, headers = load_csv(str(path))
    assert headers == ["email", "site_wise_role"]
    assert rows == [{"email": "a@example.com", "site_wise_role": "ops_lead"}]


def test_csv_directory_source_reads_tab_files(tmp_path):
    (tmp_path / "Combined_Long.csv").write_text("email,role\na@example.com,x\n", encoding="utf-8")
    source = directory_source_for(str(tmp_path))
    assert isinstance(source, CsvDirectorySource)

    rows, _ = source.load_rows(str(tmp_path), "Combined_Long")
    assert rows[0]["email"] == "a@example.com"

    with pytest.raises(SourceLookupError, match="Available: Combined_Long"):
        source.load_rows(str(tmp_path), "Missing")


def test_non_folder_ids_are_read_as_shared_sheets():
    assert isinstance(directory_source_for(SHEET_ID), GoogleSheetDirectorySource)


def test_extract_source_id():
    url = f"https://docs.google.com/spreadsheets/d/{SHEET_ID}/edit#gid=0"
    assert extract_source_id(url) == SHEET_ID
    assert extract_source_id(SHEET_ID) == SHEET_ID
    assert extract_source_id("short") is None


def test_load_google_sheet_uses_export_url(monkeypatch):
    seen = []

    def fake_fetch(url, timeout=20):
        seen.append(url)
        return "Name,Email\nAna,ana@example.com\n"

    monkeypatch.setattr(data_sources, "_fetch_gsheet_csv_text", fake_fetch)
    rows, headers = load_google_sheet(f"https://docs.google.com/spreadsheets/d/{SHEET_ID}/edit#gid=42")

    assert seen == [f"https://docs.google.com/spreadsheets/d/{SHEET_ID}/export?format=csv&gid=42"]
    assert headers == ["name", "email"]
    assert rows[0]["email"] == "ana@example.com"


def test_load_google_sheet_rejects_other_hosts():
    with pytest.raises(ValueError):
        load_google_sheet("https://example.com/spreadsheets/d/abc")


def test_load_google_sheet_tab_queries_by_tab_name(monkeypatch):
    seen = []
    monkeypatch.setattr(data_sources, "_fetch_gsheet_csv_text",
                        lambda url, timeout=20: seen.append(url) or "a\n1\n")
    load_google_sheet_tab(SHEET_ID, "WFM Emails")
    assert seen[0].endswith(f"/d/{SHEET_ID}/gviz/tq?tqx=out%3Acsv&sheet=WFM+Emails")


def test_in_memory_source_counts_loads_and_lowercases_headers():
    source = InMemoryDirectorySource({"s": {"t": [{"Email": "a@x.io", "Role": "r"}]}})
    rows, headers = source.load_rows("s", "t")
    assert headers == ["email", "role"]
    assert source.load_count == 1
    with pytest.raises(SourceLookupError):
        source.load_rows("s", "missing")
