import pytest
from conftest import DOC_ID, MONDAY_MORNING, OPS_UPDATE, make_config

from reportdraft.errors import ConfigError, DeliveryError, NoRecipientsError
from reportdraft.generator import DeliveryOrchestrator, RunContext
from reportdraft.mailbox import InMemoryMailbox
from reportdraft.models import DeliveryAction

SUBJECT = "Ops Update - 19-Jan-2026"


def add_reports(documents, count):
    names = []
    for i in range(1, count + 1):
        name = f"Report_{i}"
        documents.add_text(DOC_ID, name, OPS_UPDATE.replace("Ops Update", f"Report {i}"))
        names.append(name)
    return names


# ============================================================
# single run
# ============================================================

def test_first_run_creates_draft_with_resolved_content(build, mailbox, execution_log):
    result = build().generate_draft("Ops_Update")

    assert result.success
    assert result.action is DeliveryAction.CREATE_NEW
    assert result.recipients_to == ["lead@example.com", "second@example.com"]
    assert result.recipients_cc == ["qa@example.com"]

    draft = mailbox.drafts[result.draft_id]
    assert draft.subject == SUBJECT
    assert draft.to == "lead@example.com,second@example.com"
    assert "Good Morning team," in draft.html_body
    assert 'href="https://example.com/daily"' in draft.html_body
    assert "Dana Lee" in draft.html_body
    assert "Good Morning team," in draft.plain_body
    assert "<p" not in draft.plain_body
    assert execution_log.statuses() == ["CREATED"]


def test_second_run_updates_instead_of_duplicating(build, mailbox, execution_log):
    first = build().generate_draft("Ops_Update")
    second = build().generate_draft("Ops_Update")

    assert second.action is DeliveryAction.UPDATE_DRAFT
    assert second.draft_id == first.draft_id
    assert len(mailbox.drafts) == 1
    assert execution_log.statuses() == ["CREATED", "UPDATED"]


def test_existing_thread_gets_reply_all_draft(build, mailbox):
    thread = mailbox.add_thread(SUBJECT, ["operator@example.com", "boss@example.com"])
    result = build().generate_draft("Ops_Update")

    assert result.action is DeliveryAction.REPLY_ON_THREAD
    assert any("Reply-all mode active" in w for w in result.warnings)
    draft = mailbox.drafts[result.draft_id]
    assert draft.thread_id == thread.id
    assert draft.to == "boss@example.com"
    assert draft.subject == "Re: " + SUBJECT

    # The reply draft is recycled on the next run
    again = build().generate_draft("Ops_Update")
    assert again.action is DeliveryAction.UPDATE_DRAFT
    assert again.draft_id == result.draft_id


def test_auto_reply_threads_are_skipped(build, mailbox):
    real = mailbox.add_thread(SUBJECT, ["boss@example.com"])
    mailbox.add_thread("Automatic reply: " + SUBJECT, ["bot@example.com"])

    result = build().generate_draft("Ops_Update")
    assert result.action is DeliveryAction.REPLY_ON_THREAD
    assert mailbox.drafts[result.draft_id].thread_id == real.id


def test_only_auto_reply_thread_creates_new(build, mailbox):
    mailbox.add_thread("Out of Office: " + SUBJECT, ["bot@example.com"])
    assert build().generate_draft("Ops_Update").action is DeliveryAction.CREATE_NEW


def test_dry_run_decides_without_touching_mailbox(build, mailbox, execution_log):
    result = build(dry_run=True).generate_draft("Ops_Update")

    assert result.success
    assert result.draft_id is None
    assert mailbox.drafts == {}
    sim = result.simulation
    assert sim["subject"] == SUBJECT
    assert sim["action"] == "create_new"
    assert sim["recipients_to"] == "lead@example.com,second@example.com"
    assert sim["body_preview"].endswith("...")
    assert execution_log.statuses() == ["DRY_RUN"]


def test_send_mode_sends_and_next_run_replies(build, mailbox, execution_log):
    sent = build(email_action="send").generate_draft("Ops_Update")

    assert sent.sent_message_id
    assert mailbox.drafts == {}
    assert mailbox.sent[0]["subject"] == SUBJECT

    follow_up = build().generate_draft("Ops_Update")
    assert follow_up.action is DeliveryAction.REPLY_ON_THREAD
    assert execution_log.statuses() == ["SENT", "CREATED"]


def test_test_mode_redirects_all_mail_to_operator(build, mailbox):
    result = build(test_mode=True).generate_draft("Ops_Update")
    assert result.recipients_to == ["operator@example.com"]
    assert result.recipients_cc == []
    assert mailbox.drafts[result.draft_id].cc == ""


def test_test_mode_never_replies_on_existing_thread(build, mailbox):
    mailbox.add_thread(SUBJECT, ["operator@example.com", "ceo@example.com"])

    result = build(test_mode=True, email_action="send").generate_draft("Ops_Update")

    assert result.action is DeliveryAction.CREATE_NEW
    assert mailbox.sent[0]["to"] == "operator@example.com"
    assert mailbox.sent[0]["cc"] == ""
    assert "ceo@example.com" not in mailbox.sent[0]["to"]


def test_zero_recipients_raises_and_is_logged(build, documents, mailbox, execution_log):
    documents.add_text(DOC_ID, "Nobody", "[SUBJECT]\nHello\n[TO]\nno_such_role\n[BODY]\nHi")
    with pytest.raises(NoRecipientsError):
        build().generate_draft("Nobody")
    assert mailbox.drafts == {}
    assert execution_log.statuses() == ["ERROR"]


def test_missing_template_returns_failed_result(build, execution_log):
    result = build().generate_draft("Does_Not_Exist")
    assert not result.success
    assert "Available: Ops_Update" in result.error
    assert execution_log.statuses() == ["ERROR"]


def test_invalid_config_is_rejected_before_any_work(build, mailbox):
    with pytest.raises(ConfigError) as info:
        build(test_mode=True, operator_email="").generate_draft("Ops_Update")
    assert "operator_email is required in test mode" in info.value.errors
    assert mailbox.drafts == {}


class BrokenMailbox(InMemoryMailbox):
    def create_draft(self, message):
        raise RuntimeError("quota exceeded")


def test_mailbox_failure_becomes_delivery_error(documents, tables, directory, execution_log):
    orchestrator = DeliveryOrchestrator(
        make_config(), documents, tables, directory, BrokenMailbox(),
        clock=lambda: MONDAY_MORNING, execution_log=execution_log,
    )
    with pytest.raises(DeliveryError, match="quota exceeded"):
        orchestrator.generate_draft("Ops_Update")
    assert execution_log.statuses() == ["ERROR"]


class UnsearchableMailbox(InMemoryMailbox):
    def search_threads(self, subject, limit):
        raise RuntimeError("search unavailable")


def test_dry_run_reports_search_failure_with_preview(documents, tables, directory, execution_log):
    orchestrator = DeliveryOrchestrator(
        make_config(dry_run=True), documents, tables, directory, UnsearchableMailbox(),
        clock=lambda: MONDAY_MORNING, execution_log=execution_log,
    )
    result = orchestrator.generate_draft("Ops_Update")

    assert result.success
    assert result.action is None
    assert result.simulation["subject"] == SUBJECT
    assert result.simulation["action"] is None
    assert "search unavailable" in result.simulation["error"]
    assert result.simulation["body_preview"].endswith("...")
    assert execution_log.statuses() == ["DRY_RUN"]


def test_search_failure_outside_dry_run_is_raised(documents, tables, directory):
    orchestrator = DeliveryOrchestrator(
        make_config(), documents, tables, directory, UnsearchableMailbox(),
        clock=lambda: MONDAY_MORNING,
    )
    with pytest.raises(DeliveryError, match="search unavailable"):
        orchestrator.generate_draft("Ops_Update")


def test_signature_section_is_compiled_and_filled(build, documents, mailbox):
    documents.add_text(DOC_ID, "Signature_Template",
                       "[BODY]\n{{Sender_Name}} | {{Sender_Role}} | {{DATE:today}}")
    result = build().generate_draft("Ops_Update")
    assert "Dana Lee | Ops Analyst | 19-Jan-2026" in mailbox.drafts[result.draft_id].html_body


def test_empty_subject_skips_matching(build, mailbox):
    mailbox.add_thread("anything", ["x@example.com"])
    target = build().decide("")
    assert target.action is DeliveryAction.CREATE_NEW


def test_run_context_shares_directory_between_runs(build, directory):
    orchestrator = build()
    context = RunContext()
    orchestrator.generate_draft("Ops_Update", context)
    orchestrator.generate_draft("Ops_Update", context)
    # links + recipients + sender profile, each read once
    assert directory.load_count == 3


# ============================================================
# batch
# ============================================================

def test_batch_continues_past_missing_template(build, documents, mailbox, execution_log):
    names = add_reports(documents, 4)
    names.insert(2, "Missing_Report")

    batch = build().generate_batch(names)

    assert (batch.successful, batch.failed, batch.skipped) == (4, 1, 0)
    assert batch.errors[0].startswith("Missing_Report:")
    assert len(mailbox.drafts) == 4
    assert execution_log.statuses() == [
        "BATCH_CREATED", "BATCH_CREATED", "BATCH_ERROR", "BATCH_CREATED", "BATCH_CREATED", "BATCH_COMPLETE",
    ]


def test_batch_loads_directory_once(build, documents, directory):
    build().generate_batch(add_reports(documents, 5))
    assert directory.load_count == 3


def test_batch_skips_items_once_time_budget_is_spent(build, documents, mailbox):
    names = add_reports(documents, 5)
    batch = build(batch_pacing_seconds=200, batch_time_budget_seconds=300).generate_batch(names)

    assert (batch.successful, batch.failed, batch.skipped) == (2, 0, 3)
    assert len(mailbox.drafts) == 2


def test_batch_paces_between_items_only(build, documents, timer):
    build(batch_pacing_seconds=0.5).generate_batch(add_reports(documents, 3))
    assert timer.sleeps == [0.5, 0.5]


def test_batch_rerun_updates_existing_drafts(build, documents, mailbox):
    names = add_reports(documents, 3)
    build().generate_batch(names)
    batch = build().generate_batch(names)

    assert len(mailbox.drafts) == 3
    assert {r.action for r in batch.results} == {DeliveryAction.UPDATE_DRAFT}
