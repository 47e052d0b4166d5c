# reportdraft/documents.py

"""
Template document sources.

A document is a set of named sections (tabs); each section is an ordered
list of blocks. Local templates are Markdown files: the document id is a
directory and every ``*.md`` file below it is one section named after the
file stem.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Protocol

import markdown
from bs4 import BeautifulSoup, NavigableString, Tag

from reportdraft.converter import SECTION_MARKERS
from reportdraft.models import (
    DocTable,
    DocTableCell,
    HorizontalRule,
    ListItem,
    Paragraph,
    TextRun,
)

LOGGER = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = ["tables"]
HEADINGS = {"h1", "h2", "h3", "h4", "h5", "h6"}


class DocumentSource(Protocol):
    def get_section(self, document_id: str, name: str) -> Optional[List]:
        ...

    def list_sections(self, document_id: str) -> List[str]:
        ...


def paragraphs_from_text(text: str) -> List[Paragraph]:
    """One plain paragraph per line."""
    return [Paragraph([TextRun(line)] if line else []) for line in text.splitlines()]


class InMemoryDocumentSource:
    def __init__(self, documents: Optional[Dict[str, Dict[str, List]]] = None):
        self.documents = documents if documents is not None else {}

    def add_section(self, document_id: str, name: str, blocks: List) -> None:
        self.documents.setdefault(document_id, {})[name] = blocks

    def add_text(self, document_id: str, name: str, text: str) -> None:
        self.add_section(document_id, name, paragraphs_from_text(text))

    def get_section(self, document_id: str, name: str) -> Optional[List]:
        return self.documents.get(document_id, {}).get(name)

    def list_sections(self, document_id: str) -> List[str]:
        return list(self.documents.get(document_id, {}))


# ============================================================
# Markdown
# ============================================================

def _inline_runs(node: Tag, bold: bool = False, link: Optional[str] = None) -> List[TextRun]:
    runs: List[TextRun] = []
    for child in node.children:
        if isinstance(child, NavigableString):
            text = str(child)
            if text:
                runs.append(TextRun(text, bold=bold, link=link))
            continue
        if not isinstance(child, Tag) or child.name in ("ul", "ol"):
            continue
        if child.name in ("strong", "b"):
            runs.extend(_inline_runs(child, True, link))
        elif child.name == "a":
            runs.extend(_inline_runs(child, bold, child.get("href") or link))
        elif child.name == "br":
            runs.append(TextRun("\n", bold=bold, link=link))
        else:
            runs.extend(_inline_runs(child, bold, link))
    return runs


def _split_lines(runs: List[TextRun]) -> List[List[TextRun]]:
    """A line break inside a Markdown paragraph starts a new document paragraph."""
    lines: List[List[TextRun]] = [[]]
    for run in runs:
        pieces = run.text.split("\n")
        for i, piece in enumerate(pieces):
            if i > 0:
                lines.append([])
            if piece:
                lines[-1].append(TextRun(piece, run.bold, run.foreground, run.background, run.link))
    return lines


def _list_items(node: Tag, counter: List[int]) -> List:
    counter[0] += 1
    list_id = f"list-{counter[0]}"
    ordered = node.name == "ol"
    items: List = []
    nested: List = []
    for li in node.find_all("li", recursive=False):
        runs = _inline_runs(li)
        for run in runs:
            run.text = run.text.replace("\n", " ")
        if runs:
            runs[0].text = runs[0].text.lstrip()
            runs[-1].text = runs[-1].text.rstrip()
        runs = [r for r in runs if r.text]
        items.append(ListItem(runs=runs, list_id=list_id, ordered=ordered))
        for sub in li.find_all(["ul", "ol"], recursive=False):
            nested.extend(_list_items(sub, counter))
    return items + nested


def _table(node: Tag) -> DocTable:
    rows = []
    for tr in node.find_all("tr"):
        row = []
        for cell in tr.find_all(["th", "td"], recursive=False):
            runs = _inline_runs(cell, bold=cell.name == "th")
            row.append(DocTableCell(blocks=[Paragraph(runs)]))
        rows.append(row)
    return DocTable(rows=rows)


def markdown_to_blocks(text: str) -> List:
    """
    Parse Markdown into document blocks.

    A blank line between two paragraphs becomes an empty paragraph (rendered
    as a line break), except right after a section marker.
    """
    html_text = markdown.markdown(text, extensions=MARKDOWN_EXTENSIONS)
    soup = BeautifulSoup(html_text, "html.parser")

    blocks: List = []
    counter = [0]
    previous_was_paragraph = False

    for node in soup.children:
        if not isinstance(node, Tag):
            continue

        if node.name == "p" or node.name in HEADINGS or node.name in ("blockquote", "pre"):
            bold = node.name in HEADINGS
            if previous_was_paragraph and blocks and blocks[-1].text.strip() not in SECTION_MARKERS:
                blocks.append(Paragraph())
            for line in _split_lines(_inline_runs(node, bold=bold)):
                blocks.append(Paragraph(line))
            previous_was_paragraph = True
            continue

        previous_was_paragraph = False
        if node.name in ("ul", "ol"):
            blocks.extend(_list_items(node, counter))
        elif node.name == "hr":
            blocks.append(HorizontalRule())
        elif node.name == "table":
            blocks.append(_table(node))
        else:
            LOGGER.debug("Skipping unsupported markdown element <%s>", node.name)

    return blocks


class MarkdownDocumentSource:
    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def _files(self, document_id: str) -> Dict[str, Path]:
        root = Path(document_id).expanduser()
        if not root.is_dir():
            LOGGER.error("Template folder not found: %s", root)
            return {}
        files: Dict[str, Path] = {}
        # First match wins, mirroring a depth-first tab search
        for path in sorted(root.rglob("*.md")):
            files.setdefault(path.stem, path)
        return files

    def list_sections(self, document_id: str) -> List[str]:
        return list(self._files(document_id))

    def get_section(self, document_id: str, name: str) -> Optional[List]:
        path = self._files(document_id).get(name)
        if path is None:
            return None
        LOGGER.debug("Reading template section %s", path)
        return markdown_to_blocks(path.read_text(encoding=self.encoding))
