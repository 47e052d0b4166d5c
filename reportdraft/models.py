# reportdraft/models.py

"""Dataclasses shared by the template, rendering and delivery layers."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union


# ============================================================
# document blocks
# ============================================================

@dataclass(slots=True)
class TextRun:
    """A span of characters sharing one style."""

    text: str
    bold: bool = False
    foreground: Optional[str] = None
    background: Optional[str] = None
    link: Optional[str] = None

    def style_key(self) -> tuple:
        return (self.link, self.foreground, self.background, self.bold)


@dataclass(slots=True)
class Paragraph:
    runs: List[TextRun] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(r.text for r in self.runs)


@dataclass(slots=True)
class ListItem:
    runs: List[TextRun] = field(default_factory=list)
    list_id: str = ""
    ordered: bool = False

    @property
    def text(self) -> str:
        return "".join(r.text for r in self.runs)


@dataclass(slots=True)
class HorizontalRule:
    @property
    def text(self) -> str:
        return ""


@dataclass(slots=True)
class DocTableCell:
    blocks: List["Block"] = field(default_factory=list)
    background: Optional[str] = None
    vertical_alignment: str = "top"

    @property
    def text(self) -> str:
        return " ".join(b.text for b in self.blocks)


@dataclass(slots=True)
class DocTable:
    rows: List[List[DocTableCell]] = field(default_factory=list)
    column_widths: List[float] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join("\t".join(c.text for c in row) for row in self.rows)


Block = Union[Paragraph, ListItem, HorizontalRule, DocTable]


# ============================================================
# templates
# ============================================================

@dataclass(slots=True)
class RawTemplate:
    """Sections of a template document before any tag processing."""

    subject: str = ""
    body: str = ""
    to: str = ""
    cc: str = ""
    has_subject_marker: bool = False
    has_body_marker: bool = False


@dataclass(slots=True)
class Template:
    subject: str
    body: str
    to: str
    cc: str


# ============================================================
# spreadsheet ranges
# ============================================================

@dataclass(slots=True)
class CellStyle:
    background: str = "#ffffff"
    font_color: str = "#000000"
    font_weight: str = "normal"
    font_size: float = 10
    font_family: str = "Arial"
    horizontal_alignment: str = "left"
    vertical_alignment: str = "bottom"


@dataclass(slots=True)
class MergeRegion:
    """A merged block in sheet coordinates (1-based row/column)."""

    row: int
    col: int
    num_rows: int
    num_cols: int


@dataclass(slots=True)
class RangeSnapshot:
    """Everything the table renderer needs to know about one A1 range."""

    values: List[List[str]]
    styles: List[List[CellStyle]]
    column_widths: List[Optional[int]]
    row_heights: List[int]
    merges: List[MergeRegion] = field(default_factory=list)
    start_row: int = 1
    start_col: int = 1
    hidden_columns: List[bool] = field(default_factory=list)


@dataclass(slots=True)
class CellMeta:
    row_span: int = 1
    col_span: int = 1
    skip: bool = False


# ============================================================
# dictionary tags
# ============================================================

@dataclass(slots=True)
class DictionaryTag:
    command: str
    args: List[str] = field(default_factory=list)

    def arg(self, index: int, default: str = "Today") -> str:
        if index < len(self.args) and self.args[index] != "":
            return self.args[index]
        return default


@dataclass(slots=True)
class TagOk:
    value: str


@dataclass(slots=True)
class TagFailed:
    marker: str
    error: str


TagResult = Union[TagOk, TagFailed]


# ============================================================
# mailbox
# ============================================================

@dataclass(slots=True)
class OutgoingMessage:
    to: str
    cc: str
    subject: str
    html_body: str
    plain_body: str


@dataclass(slots=True)
class Draft:
    id: str
    subject: str
    to: str = ""
    cc: str = ""
    thread_id: Optional[str] = None
    html_body: str = ""
    plain_body: str = ""


@dataclass(slots=True)
class Thread:
    id: str
    subject: str
    participants: List[str] = field(default_factory=list)


class DeliveryAction(str, Enum):
    UPDATE_DRAFT = "update_draft"
    REPLY_ON_THREAD = "reply_on_thread"
    CREATE_NEW = "create_new"


@dataclass(slots=True)
class DeliveryTarget:
    action: DeliveryAction
    draft_id: Optional[str] = None
    thread_id: Optional[str] = None
    matched_subject: Optional[str] = None


# ============================================================
# results
# ============================================================

@dataclass(slots=True)
class DeliveryResult:
    success: bool
    template_name: str
    action: Optional[DeliveryAction] = None
    draft_id: Optional[str] = None
    sent_message_id: Optional[str] = None
    recipients_to: List[str] = field(default_factory=list)
    recipients_cc: List[str] = field(default_factory=list)
    simulation: Optional[Dict[str, Any]] = None
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "template_name": self.template_name,
            "action": self.action.value if self.action else None,
            "draft_id": self.draft_id,
            "sent_message_id": self.sent_message_id,
            "recipients_to": list(self.recipients_to),
            "recipients_cc": list(self.recipients_cc),
            "simulation": self.simulation,
            "warnings": list(self.warnings),
            "error": self.error,
        }


@dataclass(slots=True)
class BatchResult:
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    results: List[DeliveryResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": list(self.errors),
            "results": [r.to_dict() for r in self.results],
        }


@dataclass(slots=True)
class ExecutionRecord:
    """Single row of the execution log."""

    timestamp: datetime
    status: str
    template_name: str
    draft_id: Optional[str] = None
    duration_ms: int = 0
    recipients: str = ""
    error: Optional[str] = None
    dry_run: bool = False
    test_mode: bool = False
