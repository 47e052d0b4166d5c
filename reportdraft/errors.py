# reportdraft/errors.py

from typing import List, Optional


class ReportDraftError(Exception):
    """Base class for every error raised by the report pipeline."""


class ConfigError(ReportDraftError):
    """One or more required configuration values are missing or invalid."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("Invalid configuration: " + "; ".join(self.errors))


class TemplateNotFoundError(ReportDraftError):
    def __init__(self, name: str, available: Optional[List[str]] = None):
        self.name = name
        self.available = list(available or [])
        listing = ", ".join(self.available) or "None found"
        super().__init__(f"Template '{name}' not found. Available: {listing}")


class SourceLookupError(ReportDraftError):
    """A tab or column could not be found in a spreadsheet-like source."""


class NoRecipientsError(ReportDraftError):
    def __init__(self, template_name: str):
        self.template_name = template_name
        super().__init__(f"Template '{template_name}' resolved to zero recipients")


class DeliveryError(ReportDraftError):
    """A mailbox action (create, update, reply, send) failed."""
