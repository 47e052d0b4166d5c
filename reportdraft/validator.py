# reportdraft/validator.py

"""Checks a template section for authoring mistakes before anything runs."""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from bs4 import BeautifulSoup

from reportdraft.converter import SECTION_MARKERS
from reportdraft.data_sources import SOURCE_ID_RE
from reportdraft.resolver import COMMAND_NAMES
from reportdraft.tables import clean_range, parse_a1

LOGGER = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DICTIONARY_TAG_RE = re.compile(r"\{\{([^}]+)\}\}")
PLACEHOLDER_NAME_RE = re.compile(r"^[A-Z_]+$")
TABLE_TAG_RE = re.compile(r"\[Table\]\s*Sheet:\s*([^,]+),\s*range:\s*(.+)$", re.IGNORECASE)
LINK_SHAPE_RE = re.compile(r"\$LINK:[^,]+,\s*TEXT:")
NAMED_RANGE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")

MAX_SUBJECT_LENGTH = 100


@dataclass(slots=True)
class ValidationReport:
    valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {"valid": self.valid, "errors": list(self.errors), "warnings": list(self.warnings)}


def validate_recipients(line: str) -> List[str]:
    errors = []
    items = [s.strip() for s in line.split(",") if s.strip()]
    if not items:
        return ["No recipients specified"]
    for item in items:
        # Role keys (no @) are resolved at run time
        if "@" in item and not EMAIL_RE.match(re.sub(r"[\('\"\)\s]", "", item)):
            errors.append(f'Invalid email format: "{item}"')
    return errors


def validate_dictionary_tags(content: str) -> List[str]:
    errors = []
    for match in DICTIONARY_TAG_RE.finditer(content):
        full = match.group(1).strip()
        text = BeautifulSoup(full, "html.parser").get_text() if "<" in full else full
        command = text.split(":")[0].strip().upper()
        if command not in COMMAND_NAMES and not PLACEHOLDER_NAME_RE.match(command):
            errors.append(f'Unknown dictionary command: "{command}" in tag "{{{{{full}}}}}"')
        if "{{" in full:
            errors.append(f'Malformed tag (nested braces): "{{{{{full}}}}}"')
    return errors


def _is_valid_range(range_ref: str) -> bool:
    # named ranges are passed through to the sheet as-is
    if NAMED_RANGE_RE.match(range_ref):
        return True
    try:
        parse_a1(range_ref)
    except ValueError:
        return False
    return True


def validate_table_tag(line: str) -> List[str]:
    match = TABLE_TAG_RE.search(line)
    if not match:
        return []

    errors = []
    sheet_ref = match.group(1).strip()
    if not SOURCE_ID_RE.search(sheet_ref):
        errors.append(f'Table tag: Invalid sheet reference "{sheet_ref}"')

    range_ref = clean_range(match.group(2))
    if not _is_valid_range(range_ref):
        errors.append(f"Table tag: Invalid range \"{range_ref}\". Expected format: 'Sheet'!A1:D10")
    return errors


def _content_warnings(content: str) -> List[str]:
    warnings = []
    if "{DATE:" in content and "{{DATE:" not in content:
        warnings.append("Found single-brace {DATE:...} - did you mean {{DATE:...}}?")
    if "$LINK" in content and not LINK_SHAPE_RE.search(content):
        warnings.append("$LINK tag found but may be malformed. Expected format: $LINK:Key, TEXT:Label$")
    return warnings


def validate_template(blocks: Sequence) -> ValidationReport:
    report = ValidationReport()
    mode = "none"
    has_subject = has_body = False
    subject = ""
    body_lines: List[str] = []

    for block in blocks:
        text = block.text.strip()
        marker = SECTION_MARKERS.get(text)
        if marker:
            mode = marker
            has_subject = has_subject or marker == "subject"
            has_body = has_body or marker == "body"
            continue

        if mode == "subject" and text:
            subject = text
            mode = "none"
        elif mode == "body":
            body_lines.append(block.text)
        elif mode in ("to", "cc") and text:
            problems = validate_recipients(text)
            if problems:
                report.errors.append(f"[{mode.upper()}] section: {', '.join(problems)}")

    if not has_subject:
        report.errors.append("Missing required tag: [SUBJECT]")
    if not has_body:
        report.errors.append("Missing required tag: [BODY]")
    if has_subject and not subject:
        report.errors.append("[SUBJECT] tag is present but empty")
    if has_body and not "".join(body_lines).strip():
        report.warnings.append("[BODY] tag is present but appears to be empty")

    content = subject + "\n" + "\n".join(body_lines)
    report.errors.extend(validate_dictionary_tags(content))
    for line in body_lines:
        report.errors.extend(validate_table_tag(line))
    report.warnings.extend(_content_warnings(content))
    if len(subject) > MAX_SUBJECT_LENGTH:
        report.warnings.append(
            f"Subject line is very long (>{MAX_SUBJECT_LENGTH} chars) - may be truncated in email clients"
        )

    report.valid = not report.errors
    return report


def validate_section(source, document_id: str, name: str) -> ValidationReport:
    LOGGER.info('Validating template: "%s"', name)
    blocks = source.get_section(document_id, name)
    if blocks is None:
        available = source.list_sections(document_id)
        return ValidationReport(valid=False, errors=[
            f"Tab '{name}' not found in document",
            f"Available tabs: {', '.join(available) or 'None found'}",
        ])

    report = validate_template(blocks)
    if report.valid and not report.warnings:
        LOGGER.info('Template "%s" is valid', name)
    elif report.valid:
        LOGGER.warning('Template "%s" has warnings: %s', name, ", ".join(report.warnings))
    else:
        LOGGER.error('Template "%s" has errors: %s', name, ", ".join(report.errors))
    return report


def validate_templates(source, document_id: str, names: Sequence[str]) -> Dict[str, Any]:
    LOGGER.info("Batch validating %s templates...", len(names))
    results = {"valid": [], "invalid": [], "total": len(names)}
    for name in names:
        report = validate_section(source, document_id, name)
        entry = {"name": name, "warnings": report.warnings}
        if report.valid:
            results["valid"].append(entry)
        else:
            entry["errors"] = report.errors
            results["invalid"].append(entry)
    LOGGER.info("Validation complete: %s valid, %s invalid", len(results["valid"]), len(results["invalid"]))
    return results
