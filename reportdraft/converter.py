# reportdraft/converter.py

"""
Turns document blocks into email-safe HTML and splits a template document
into its [SUBJECT] / [BODY] / [TO] / [CC] sections.
"""

import html
import logging
from typing import Dict, List, Optional, Sequence

from reportdraft.errors import TemplateNotFoundError
from reportdraft.links import inject_links
from reportdraft.models import (
    DocTable,
    HorizontalRule,
    ListItem,
    Paragraph,
    RawTemplate,
    Template,
    TextRun,
)

LOGGER = logging.getLogger(__name__)

SECTION_MARKERS = {
    "[SUBJECT]": "subject",
    "[BODY]": "body",
    "[TO]": "to",
    "[CC]": "cc",
}

PARAGRAPH_OPEN = "<p style='margin: 0; padding: 0;'>"
RULE = "<hr style='border: 0; border-top: 1px solid #cccccc; margin: 15px 0;'>"
DOC_TABLE_OPEN = "<table style='border-collapse: collapse; border: 1px solid #cccccc; margin: 10px 0;'>"

DEFAULT_FOREGROUND = "#000000"
DEFAULT_BACKGROUND = "#ffffff"


# ============================================================
# runs
# ============================================================

def _color_style(run: TextRun) -> str:
    style = ""
    if run.foreground and run.foreground.lower() != DEFAULT_FOREGROUND:
        style += f"color:{run.foreground};"
    if run.background and run.background.lower() != DEFAULT_BACKGROUND:
        style += f"background-color:{run.background};"
    return style


def _open_tags(run: TextRun) -> str:
    tags = ""
    if run.link:
        tags += f"<a href='{html.escape(run.link)}'>"
    style = _color_style(run)
    if style:
        tags += f"<span style='{style}'>"
    if run.bold:
        tags += "<b>"
    return tags


def _close_tags(run: TextRun) -> str:
    tags = ""
    if run.bold:
        tags += "</b>"
    if _color_style(run):
        tags += "</span>"
    if run.link:
        tags += "</a>"
    return tags


def runs_to_markup(runs: Sequence[TextRun]) -> str:
    """Consecutive runs with the same style share one set of tags."""
    out = []
    current: Optional[TextRun] = None
    for run in runs:
        if not run.text:
            continue
        if current is None or run.style_key() != current.style_key():
            if current is not None:
                out.append(_close_tags(current))
            out.append(_open_tags(run))
            current = run
        out.append(html.escape(run.text, quote=False))
    if current is not None:
        out.append(_close_tags(current))
    return "".join(out)


# ============================================================
# blocks
# ============================================================

def _doc_table_markup(table: DocTable) -> str:
    parts = [DOC_TABLE_OPEN]
    for row in table.rows:
        parts.append("<tr>")
        for c, cell in enumerate(row):
            background = cell.background or DEFAULT_BACKGROUND
            css = (
                f"border: 1px solid #cccccc; padding: 8px; background-color: {background}; "
                f"vertical-align: {cell.vertical_alignment};"
            )
            if c < len(table.column_widths) and table.column_widths[c]:
                css += f" width: {table.column_widths[c]:g}pt;"
            parts.append(f'<td style="{css}">')
            parts.append(blocks_to_markup(cell.blocks))
            parts.append("</td>")
        parts.append("</tr>")
    parts.append("</table>")
    return "".join(parts)


def block_to_markup(block) -> str:
    if isinstance(block, Paragraph):
        if block.text == "":
            return "<br>"
        return PARAGRAPH_OPEN + runs_to_markup(block.runs) + "</p>"
    if isinstance(block, ListItem):
        return "<li>" + runs_to_markup(block.runs) + "</li>"
    if isinstance(block, HorizontalRule):
        return RULE
    if isinstance(block, DocTable):
        return _doc_table_markup(block)
    return ""


class _ListTracker:
    """Opens and closes <ul>/<ol> as the list id changes between blocks."""

    def __init__(self, out: List[str]):
        self.out = out
        self.list_id: Optional[str] = None
        self.tag: Optional[str] = None

    def feed(self, block) -> None:
        if isinstance(block, ListItem):
            if block.list_id != self.list_id:
                self.close()
                self.tag = "ol" if block.ordered else "ul"
                self.list_id = block.list_id
                self.out.append(f"<{self.tag}>")
        else:
            self.close()

    def close(self) -> None:
        if self.list_id is not None:
            self.out.append(f"</{self.tag}>")
        self.list_id = None
        self.tag = None


def blocks_to_markup(blocks: Sequence) -> str:
    out: List[str] = []
    lists = _ListTracker(out)
    for block in blocks:
        lists.feed(block)
        out.append(block_to_markup(block))
    lists.close()
    return "".join(out)


# ============================================================
# sections
# ============================================================

def parse_sections(blocks: Sequence) -> RawTemplate:
    """
    Linear scan over the blocks; a bare marker paragraph switches mode.

    The subject is the first non-empty line after [SUBJECT]; [TO] and [CC]
    lines are joined with commas; [BODY] blocks are converted to markup.
    """
    raw = RawTemplate()
    mode = "none"
    to_parts: List[str] = []
    cc_parts: List[str] = []
    body: List[str] = []
    lists = _ListTracker(body)

    for block in blocks:
        text = block.text.strip()

        marker = SECTION_MARKERS.get(text)
        if marker:
            mode = marker
            if marker == "subject":
                raw.has_subject_marker = True
            elif marker == "body":
                raw.has_body_marker = True
            continue

        if mode == "subject" and text:
            raw.subject = text
            mode = "none"
        elif mode == "to" and text:
            to_parts.append(text.rstrip(","))
        elif mode == "cc" and text:
            cc_parts.append(text.rstrip(","))
        elif mode == "body":
            lists.feed(block)
            body.append(block_to_markup(block))

    lists.close()
    raw.body = "".join(body)
    raw.to = ",".join(to_parts)
    raw.cc = ",".join(cc_parts)
    return raw


# ============================================================
# compiler
# ============================================================

class TemplateCompiler:
    """
    Fetches a named template section and runs the tag passes over it:
    dictionary tags, then link tags, then table tags on the body; dictionary
    tags only on the subject.
    """

    def __init__(self, documents, dictionary, tables):
        self.documents = documents
        self.dictionary = dictionary
        self.tables = tables

    def fetch_raw(self, template_name: str, document_id: str) -> RawTemplate:
        blocks = self.documents.get_section(document_id, template_name)
        if blocks is None:
            available = self.documents.list_sections(document_id)
            LOGGER.error("Template '%s' not found in %s. Available: %s",
                         template_name, document_id, ", ".join(available) or "none")
            raise TemplateNotFoundError(template_name, available)
        return parse_sections(blocks)

    def compile(self, raw: RawTemplate, link_map: Optional[Dict[str, str]] = None) -> Template:
        subject = self.dictionary.substitute(raw.subject)
        body = self.dictionary.substitute(raw.body)
        body = inject_links(body, link_map or {})
        body = self.tables.expand(body)
        return Template(subject=subject, body=body, to=raw.to, cc=raw.cc)

    def fetch(self, template_name: str, document_id: str,
              link_map: Optional[Dict[str, str]] = None) -> Template:
        raw = self.fetch_raw(template_name, document_id)
        LOGGER.info("Template '%s' fetched", template_name)
        return self.compile(raw, link_map)
