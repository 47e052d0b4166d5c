# reportdraft/links.py

"""
Managed links: ``$LINK:<key>, TEXT:<label>$`` tags resolved against a
key -> URL repository kept in a spreadsheet tab.
"""

import html
import logging
import re
from typing import Dict, Iterable, List, Mapping

from bs4 import BeautifulSoup

from reportdraft.errors import SourceLookupError

LOGGER = logging.getLogger(__name__)

HEAL_RE = re.compile(r"\$LINK:([\s\S]*?),\s*TEXT:([\s\S]*?)\$")
LINK_RE = re.compile(r"\$LINK:(.*?),\s*TEXT:(.*?)\$")
URL_RE = re.compile(r"^https?://", flags=re.IGNORECASE)

LINK_STYLE = "color: #1155cc; text-decoration: underline;"
MISSING_STYLE = "background-color: #ffcccc; color: #cc0000; padding: 2px 5px; border-radius: 3px;"


def _strip_markup(part: str) -> str:
    if "<" in part or "&" in part:
        part = BeautifulSoup(part, "html.parser").get_text()
    return " ".join(part.split())


def heal_link_tags(text: str) -> str:
    """$<b>LINK:Key</b>, TEXT:Label$ -> $LINK:Key, TEXT:Label$"""
    return HEAL_RE.sub(
        lambda m: "$LINK:" + _strip_markup(m.group(1)) + ", TEXT:" + _strip_markup(m.group(2)) + "$",
        text,
    )


def render_link(url: str, label: str) -> str:
    return f'<a href="{html.escape(url)}" style="{LINK_STYLE}">{label}</a>'


def render_missing_link(key: str) -> str:
    return f'<span style="{MISSING_STYLE}">[MISSING LINK: {html.escape(key)}]</span>'


def inject_links(text: str, link_map: Mapping[str, str]) -> str:
    """
    Replace every link tag with an anchor.

    Lookup order: the repository key, then the key itself when it is already
    a URL (e.g. produced by {{THIS_SHEET}}), else a visible missing-link marker.
    """
    if not text:
        return ""
    if "$LINK" not in text:
        return text

    healed = heal_link_tags(text)

    def _sub(match):
        key = match.group(1).strip()
        label = match.group(2).strip()

        url = link_map.get(key)
        if not url and URL_RE.match(key):
            url = key
            LOGGER.info("Link bypass: using direct URL for [%s]", label)

        if url:
            return render_link(url, label)

        LOGGER.warning("Missing link key: [%s]", key)
        return render_missing_link(key)

    return LINK_RE.sub(_sub, healed)


# -------------------------
# Repository loading
# -------------------------

def build_link_map(rows: Iterable[Dict[str, str]], key_column: str, url_column: str) -> Dict[str, str]:
    """Build key -> URL from header-indexed rows (headers are lower-cased)."""
    key_col = key_column.strip().lower()
    url_col = url_column.strip().lower()

    link_map: Dict[str, str] = {}
    for row in rows:
        key = str(row.get(key_col) or "").strip()
        url = str(row.get(url_col) or "").strip()
        if key and url:
            link_map[key] = url
    return link_map


def load_link_map(source, config) -> Dict[str, str]:
    """
    Load the link repository described by ``config``.

    Never raises: an unreadable repository yields an empty map and every
    tag renders as a missing link.
    """
    source_id = config.link_repository_source_id
    tab = config.link_repository_tab_name
    LOGGER.info("Links: loading repository [%s] tab '%s'", source_id, tab)

    try:
        rows, headers = source.load_rows(source_id, tab)
        _require_columns(headers, [config.link_key_column, config.link_url_column], tab)
    except Exception as exc:
        LOGGER.error("Links: repository unavailable: %s", exc)
        return {}

    link_map = build_link_map(rows, config.link_key_column, config.link_url_column)
    LOGGER.info("Links: loaded %s links", len(link_map))
    return link_map


def _require_columns(headers: List[str], columns: List[str], tab: str) -> None:
    for col in columns:
        if col.strip().lower() not in headers:
            raise SourceLookupError(
                f"Column '{col}' not found in tab '{tab}'. Available: {', '.join(headers) or 'none'}"
            )
