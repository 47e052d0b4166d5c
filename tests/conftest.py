"""
Shared fixtures: an in-memory template document, directory, link
repository, spreadsheet and mailbox wired into one orchestrator.
"""

from datetime import datetime, timezone

import pytest

from reportdraft.config import AppConfig
from reportdraft.data_sources import InMemoryDirectorySource
from reportdraft.documents import InMemoryDocumentSource
from reportdraft.generator import DeliveryOrchestrator
from reportdraft.mailbox import InMemoryMailbox
from reportdraft.sheets import InMemoryTableSource

DOC_ID = "templates"
DIRECTORY_ID = "directory-sheet"
LINKS_ID = "link-sheet"

# 2026-01-19 09:00 in Kuala Lumpur (a Monday)
MONDAY_MORNING = datetime(2026, 1, 19, 1, 0, tzinfo=timezone.utc)

OPS_UPDATE = """[SUBJECT]
Ops Update - {{DATE:today}}
[TO]
ops_lead
[CC]
qa@example.com
[BODY]
{{GREETING}} team,
Report: $LINK:Daily_Report, TEXT:daily report$
"""


class FakeTimer:
    """monotonic() that only moves when sleep() is called."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class RecordingLog:
    def __init__(self):
        self.records = []

    def append(self, record):
        self.records.append(record)

    def statuses(self):
        return [r.status for r in self.records]


def make_config(**overrides):
    base = {
        "template_document_id": DOC_ID,
        "directory_source_id": DIRECTORY_ID,
        "link_repository_source_id": LINKS_ID,
        "operator_email": "operator@example.com",
        "batch_pacing_seconds": 0,
    }
    base.update(overrides)
    return AppConfig().with_overrides(base)


@pytest.fixture
def documents():
    docs = InMemoryDocumentSource()
    docs.add_text(DOC_ID, "Ops_Update", OPS_UPDATE)
    return docs


@pytest.fixture
def directory():
    return InMemoryDirectorySource({
        DIRECTORY_ID: {
            "Combined_Long": [
                {"email": "lead@example.com", "Site_wise_role": "ops_lead", "workflow_wise_role": ""},
                {"email": "second@example.com", "Site_wise_role": "", "workflow_wise_role": "ops_lead"},
                {"email": "analyst@example.com", "Site_wise_role": "analyst", "workflow_wise_role": ""},
            ],
            "WFM_Emails": [
                {"UserEmail": "operator@example.com", "Name": "Dana Lee", "Role": "Ops Analyst",
                 "PrimaryEmail": "dana@example.com", "SecondaryEmail": ""},
            ],
        },
        LINKS_ID: {
            "current_files": [
                {"Mapping": "Daily_Report", "File_Link": "https://example.com/daily"},
            ],
        },
    })


@pytest.fixture
def tables():
    return InMemoryTableSource()


@pytest.fixture
def mailbox():
    return InMemoryMailbox(address="operator@example.com")


@pytest.fixture
def timer():
    return FakeTimer()


@pytest.fixture
def execution_log():
    return RecordingLog()


@pytest.fixture
def build(documents, tables, directory, mailbox, timer, execution_log):
    """Factory: build(**config_overrides) -> DeliveryOrchestrator."""

    def _build(**overrides):
        return DeliveryOrchestrator(
            make_config(**overrides),
            documents,
            tables,
            directory,
            mailbox,
            clock=lambda: MONDAY_MORNING,
            sleep=timer.sleep,
            monotonic=timer.monotonic,
            execution_log=execution_log,
        )

    return _build
