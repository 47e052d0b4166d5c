# reportdraft/recipients.py

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from reportdraft.errors import SourceLookupError

LOGGER = logging.getLogger(__name__)

_KEY_EDGES_RE = re.compile(r"^[\('\"]+|[\)'\"]+$")


def parse_recipient_keys(raw: str) -> List[str]:
    """Split a raw [TO]/[CC] string into role keys and addresses."""
    if not raw:
        return []
    keys = [_KEY_EDGES_RE.sub("", item.strip()) for item in raw.split(",")]
    return [k for k in keys if k]


def dedupe(items) -> List[str]:
    seen = set()
    out = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            out.append(item)
    return out


# -------------------------
# Per-run directory cache
# -------------------------

@dataclass
class DirectoryEntry:
    rows: List[Dict[str, str]]
    email_column: str
    tag_columns: List[str] = field(default_factory=list)


class DirectoryCache:
    """
    Holds the directory for one pipeline execution (or one batch).

    Only one source identity is kept; asking for a different identity
    drops the cached rows so an override never reads another source's data.
    """

    def __init__(self):
        self._identity: Optional[Tuple[str, str]] = None
        self._entry: Optional[DirectoryEntry] = None

    def get(self, identity: Tuple[str, str]) -> Optional[DirectoryEntry]:
        if identity != self._identity:
            return None
        return self._entry

    def put(self, identity: Tuple[str, str], entry: DirectoryEntry) -> None:
        self._identity = identity
        self._entry = entry


class RecipientResolver:
    """
    Maps role keys and literal addresses to a deduplicated address list.

    A directory row matches when any of its tag columns equals any
    requested role key.
    """

    def __init__(self, source, config, cache: Optional[DirectoryCache] = None):
        self.source = source
        self.config = config
        self.cache = cache if cache is not None else DirectoryCache()

    def _identity(self) -> Tuple[str, str]:
        return (self.config.directory_source_id, self.config.recipients_tab_name)

    def _load(self) -> DirectoryEntry:
        identity = self._identity()
        entry = self.cache.get(identity)
        if entry is not None:
            return entry

        source_id, tab = identity
        LOGGER.info("Directory: fetching fresh data from [%s]", tab)
        rows, headers = self.source.load_rows(source_id, tab)

        email_col = self.config.recipient_email_column.strip().lower()
        if email_col not in headers:
            raise SourceLookupError(
                f"Column '{self.config.recipient_email_column}' not found. Available: {', '.join(headers)}"
            )
        tag_cols = [c.strip().lower() for c in self.config.recipient_tag_columns]
        tag_cols = [c for c in tag_cols if c in headers]
        if not tag_cols:
            raise SourceLookupError(
                f"None of the tag columns {list(self.config.recipient_tag_columns)} were found"
            )

        entry = DirectoryEntry(rows=rows, email_column=email_col, tag_columns=tag_cols)
        self.cache.put(identity, entry)
        LOGGER.info("Directory: cached %s rows", len(rows))
        return entry

    def resolve(self, *keys_or_addresses: str) -> List[str]:
        if not keys_or_addresses:
            return []

        try:
            entry = self._load()
        except Exception as exc:
            LOGGER.error("Directory error: %s", exc)
            return []

        direct = [a for a in keys_or_addresses if "@" in a]
        lookups = {a for a in keys_or_addresses if "@" not in a}

        found = [
            row.get(entry.email_column, "")
            for row in entry.rows
            if any(row.get(col, "") in lookups for col in entry.tag_columns)
        ]
        return dedupe(found + direct)

    def resolve_raw(self, raw: str) -> List[str]:
        keys = parse_recipient_keys(raw)
        return self.resolve(*keys) if keys else []
