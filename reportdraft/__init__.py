# reportdraft/__init__.py
"""
ReportDraft - template compilation and idempotent draft delivery.

This module provides the core functionality for:
- Compiling templates (dictionary tags, $LINK$ tags, [Table] tags)
- Resolving recipients from a role directory
- Recycling drafts, replying on threads or creating new drafts

Public API:
-----------
Configuration:
    AppConfig.load(overrides, settings_path) -> AppConfig

Compilation:
    DictionaryEngine(clock, time_zone, ...).substitute(text) -> str
    inject_links(text, link_map) -> str
    TableRenderer(source).expand(markup) -> str
    TemplateCompiler(documents, dictionary, tables).fetch(name, document_id, link_map) -> Template

Recipients:
    RecipientResolver(source, config, cache).resolve(*keys_or_addresses) -> List[str]

Delivery:
    DeliveryOrchestrator(config, documents, tables, directory, mailbox).generate_draft(name) -> DeliveryResult
    DeliveryOrchestrator(...).generate_batch(names) -> BatchResult

Validation:
    validate_templates(source, document_id, names) -> Dict

The core has no network dependencies; Google services are plugged in
through reportdraft.sheets, reportdraft.mailbox and reportdraft.google_api.
"""

from reportdraft.config import AppConfig
from reportdraft.converter import TemplateCompiler, parse_sections
from reportdraft.errors import (
    ConfigError,
    DeliveryError,
    NoRecipientsError,
    ReportDraftError,
    SourceLookupError,
    TemplateNotFoundError,
)
from reportdraft.generator import DeliveryOrchestrator, RunContext
from reportdraft.links import inject_links
from reportdraft.models import BatchResult, DeliveryAction, DeliveryResult, Template
from reportdraft.recipients import DirectoryCache, RecipientResolver
from reportdraft.resolver import DictionaryEngine
from reportdraft.tables import TableRenderer
from reportdraft.validator import validate_template, validate_templates

__all__ = [
    # Configuration
    "AppConfig",
    # Compilation
    "DictionaryEngine",
    "inject_links",
    "TableRenderer",
    "TemplateCompiler",
    "parse_sections",
    # Recipients
    "DirectoryCache",
    "RecipientResolver",
    # Delivery
    "DeliveryOrchestrator",
    "RunContext",
    "DeliveryAction",
    "DeliveryResult",
    "BatchResult",
    "Template",
    # Validation
    "validate_template",
    "validate_templates",
    # Errors
    "ReportDraftError",
    "ConfigError",
    "TemplateNotFoundError",
    "SourceLookupError",
    "NoRecipientsError",
    "DeliveryError",
]
