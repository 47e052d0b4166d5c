from types import SimpleNamespace

from reportdraft.data_sources import InMemoryDirectorySource
from reportdraft.links import build_link_map, heal_link_tags, inject_links, load_link_map

LINKS = {"Daily_Report": "https://example.com/daily"}


def link_config(**overrides):
    values = dict(
        link_repository_source_id="links",
        link_repository_tab_name="current_files",
        link_key_column="Mapping",
        link_url_column="File_Link",
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_known_key_becomes_anchor():
    out = inject_links("See $LINK:Daily_Report, TEXT:the report$ now", LINKS)
    assert out.startswith('See <a href="https://example.com/daily"')
    assert ">the report</a> now" in out


def test_missing_key_renders_visible_marker():
    out = inject_links("$LINK:Missing_Key, TEXT:x$", LINKS)
    assert "[MISSING LINK: Missing_Key]" in out
    assert "<a " not in out


def test_url_key_is_used_directly():
    out = inject_links("$LINK:https://example.com/sheet, TEXT:sheet$", {})
    assert 'href="https://example.com/sheet"' in out


def test_markup_inside_tag_is_healed():
    text = "$LINK:<b>Daily_Report</b>, TEXT:<i>report</i>$"
    assert heal_link_tags(text) == "$LINK:Daily_Report, TEXT:report$"
    assert ">report</a>" in inject_links(text, LINKS)


def test_text_without_tags_is_untouched():
    assert inject_links("no links here", LINKS) == "no links here"
    assert inject_links("", LINKS) == ""


def test_build_link_map_skips_incomplete_rows():
    rows = [
        {"mapping": "A", "file_link": "https://a"},
        {"mapping": "B", "file_link": ""},
        {"mapping": "", "file_link": "https://c"},
    ]
    assert build_link_map(rows, "Mapping", "File_Link") == {"A": "https://a"}


def test_load_link_map_from_directory_source():
    source = InMemoryDirectorySource({
        "links": {"current_files": [{"Mapping": "A", "File_Link": "https://a"}]},
    })
    assert load_link_map(source, link_config()) == {"A": "https://a"}


def test_load_link_map_failure_yields_empty_map():
    source = InMemoryDirectorySource({"links": {"current_files": [{"Key": "A", "Url": "https://a"}]}})
    assert load_link_map(source, link_config()) == {}
    assert load_link_map(source, link_config(link_repository_tab_name="nope")) == {}
