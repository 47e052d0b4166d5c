# reportdraft/preview.py

import html
import re

PREVIEW_LENGTH = 200

# Order matters: structural tags become whitespace before the rest are stripped
_PLAIN_TEXT_RULES = [
    (re.compile(r"<br\s*/?>", re.IGNORECASE), "\n"),
    (re.compile(r"</p>", re.IGNORECASE), "\n"),
    (re.compile(r"<li[^>]*>", re.IGNORECASE), "• "),
    (re.compile(r"</li>", re.IGNORECASE), "\n"),
    (re.compile(r"</tr>", re.IGNORECASE), "\n"),
    (re.compile(r"<t[dh][^>]*>", re.IGNORECASE), "\t"),
    (re.compile(r"<[^>]+>"), ""),
]

_BLANK_RUN_RE = re.compile(r"\n{3,}")


def markup_to_plain_text(markup: str) -> str:
    """Plain-text alternative for an HTML body: line breaks, bullets and tab-separated cells."""
    if not markup:
        return ""
    text = markup
    for pattern, replacement in _PLAIN_TEXT_RULES:
        text = pattern.sub(replacement, text)
    text = html.unescape(text).replace("\u00a0", " ")
    return _BLANK_RUN_RE.sub("\n\n", text).strip()


def body_preview(markup: str, length: int = PREVIEW_LENGTH) -> str:
    return (markup or "")[:length] + "..."
