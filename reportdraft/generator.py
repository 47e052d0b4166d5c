# reportdraft/generator.py

"""
Delivery pipeline: fetch a template, resolve its tags and recipients, then
recycle an existing draft, reply on an existing thread or create a new
draft. At most one live draft exists per resolved subject.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

from reportdraft.converter import TemplateCompiler
from reportdraft.errors import DeliveryError, NoRecipientsError, TemplateNotFoundError
from reportdraft.execution_log import NullExecutionLog
from reportdraft.links import load_link_map
from reportdraft.models import (
    BatchResult,
    DeliveryAction,
    DeliveryResult,
    DeliveryTarget,
    ExecutionRecord,
    OutgoingMessage,
)
from reportdraft.preview import body_preview, markup_to_plain_text
from reportdraft.recipients import DirectoryCache, RecipientResolver, parse_recipient_keys
from reportdraft.resolver import DictionaryEngine
from reportdraft.signature import SenderProfile, SignatureBuilder
from reportdraft.tables import TableRenderer

LOGGER = logging.getLogger(__name__)

AUTO_REPLY_RE = re.compile(r"^(Automatic reply|OOO|Out of Office|Absence Notice):", re.IGNORECASE)

SIGNATURE_SEPARATOR = "<br><br>"


# ============================================================
# per-invocation state
# ============================================================

@dataclass
class RunContext:
    """State shared by one run, or by every item of one batch."""

    directory_cache: DirectoryCache = field(default_factory=DirectoryCache)
    link_map: Optional[Dict[str, str]] = None
    logo_cache: Dict[str, str] = field(default_factory=dict)
    sender_profile: Optional[SenderProfile] = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# orchestrator
# ============================================================

class DeliveryOrchestrator:
    def __init__(
        self,
        config,
        documents,
        tables,
        directory,
        mailbox,
        *,
        link_source=None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
        execution_log=None,
    ):
        self.config = config
        self.directory = directory
        self.link_source = link_source or directory
        self.mailbox = mailbox
        self.clock = clock or _utc_now
        self.sleep = sleep
        self.monotonic = monotonic
        self.execution_log = execution_log or NullExecutionLog()

        self.dictionary = DictionaryEngine(
            clock=self.clock,
            time_zone=config.time_zone,
            time_zones=config.time_zone_table(),
            active_spreadsheet_url=config.active_spreadsheet_url,
        )
        self.compiler = TemplateCompiler(documents, self.dictionary, TableRenderer(tables))
        self.signature = SignatureBuilder(self.compiler, directory, config)

    # -------------------------
    # Public API
    # -------------------------

    def generate_draft(self, template_name: str, context: Optional[RunContext] = None) -> DeliveryResult:
        """
        Run the full pipeline for one template.

        A missing template returns a failed result. Zero recipients and
        mailbox failures are logged and re-raised.
        """
        self.config.require_valid()
        context = context or RunContext()
        started = self.monotonic()

        if self.config.dry_run:
            LOGGER.info("DRY RUN MODE: no drafts will be created")
        if self.config.test_mode:
            LOGGER.info("TEST MODE: all mail goes to %s only", self.config.operator_email)
        LOGGER.info('Starting report generation for: "%s"', template_name)
        LOGGER.info("Doc source: %s", self.config.template_document_id)

        try:
            result = self._deliver(template_name, context)
        except TemplateNotFoundError as exc:
            LOGGER.error("Runner stopped: %s", exc)
            self._record("ERROR", template_name, started, error=str(exc))
            return DeliveryResult(success=False, template_name=template_name, error=str(exc))
        except (NoRecipientsError, DeliveryError) as exc:
            self._record("ERROR", template_name, started, error=str(exc))
            raise

        self._record(self._status_for(result), template_name, started, result=result)
        return result

    def generate_batch(self, template_names: Sequence[str]) -> BatchResult:
        """
        Deliver several templates with one shared directory cache and link map.

        Items are never started once the time budget is spent; the rest are
        counted as skipped. One item failing does not stop the batch.
        """
        self.config.require_valid()
        context = RunContext()
        batch = BatchResult()
        names = list(template_names)
        budget = self.config.batch_time_budget_seconds
        started = self.monotonic()

        LOGGER.info("Batch processing: %s templates", len(names))
        self._link_map(context)

        for i, name in enumerate(names):
            if self.monotonic() - started > budget:
                batch.skipped = len(names) - i
                LOGGER.warning("Approaching execution time limit. Skipping remaining %s templates.", batch.skipped)
                break

            item_started = self.monotonic()
            LOGGER.info("--- Processing %s/%s: %s ---", i + 1, len(names), name)
            try:
                result = self._deliver(name, context)
            except Exception as exc:
                LOGGER.error('Failed to process "%s": %s', name, exc)
                self._record("BATCH_ERROR", name, item_started, error=str(exc))
                batch.failed += 1
                batch.errors.append(f"{name}: {exc}")
                batch.results.append(DeliveryResult(success=False, template_name=name, error=str(exc)))
                continue

            self._record("BATCH_" + self._status_for(result), name, item_started, result=result)
            batch.successful += 1
            batch.results.append(result)

            if i < len(names) - 1:
                self.sleep(self.config.batch_pacing_seconds)

        summary = f"Batch: {batch.successful} success, {batch.failed} failed, {batch.skipped} skipped"
        self._record("BATCH_COMPLETE", "BATCH_SUMMARY", started, error=summary)
        LOGGER.info("Batch complete: %s successful, %s failed, %s skipped (time limit)",
                    batch.successful, batch.failed, batch.skipped)
        return batch

    # -------------------------
    # Decide
    # -------------------------

    def decide(self, subject: str) -> DeliveryTarget:
        """
        Existing draft whose subject contains ``subject`` -> update it.
        Else the first matching thread that is not an auto-reply -> reply all.
        Else create a new draft.
        Test mode never replies on a thread.
        """
        if not subject:
            LOGGER.warning("Empty subject: skipping draft and thread matching")
            return DeliveryTarget(DeliveryAction.CREATE_NEW)

        try:
            for draft in self.mailbox.list_drafts():
                if draft.subject and subject in draft.subject:
                    return DeliveryTarget(DeliveryAction.UPDATE_DRAFT, draft_id=draft.id,
                                          thread_id=draft.thread_id, matched_subject=draft.subject)

            # a reply-all would reach the thread's participants
            if self.config.test_mode:
                LOGGER.info("TEST MODE: not replying on existing threads")
                return DeliveryTarget(DeliveryAction.CREATE_NEW)

            for thread in self.mailbox.search_threads(subject, self.config.thread_search_limit):
                if AUTO_REPLY_RE.match(thread.subject or ""):
                    LOGGER.debug("Skipping auto-reply thread: %s", thread.subject)
                    continue
                return DeliveryTarget(DeliveryAction.REPLY_ON_THREAD, thread_id=thread.id,
                                      matched_subject=thread.subject)
        except Exception as exc:
            LOGGER.error("Mailbox search failed: %s", exc)
            raise DeliveryError(f"Mailbox search failed: {exc}") from exc

        return DeliveryTarget(DeliveryAction.CREATE_NEW)

    # -------------------------
    # Pipeline
    # -------------------------

    def _link_map(self, context: RunContext) -> Dict[str, str]:
        if context.link_map is None:
            context.link_map = load_link_map(self.link_source, self.config)
        return context.link_map

    def _resolve_recipients(self, template, context: RunContext):
        resolver = RecipientResolver(self.directory, self.config, context.directory_cache)
        to = resolver.resolve(*parse_recipient_keys(template.to))
        cc = resolver.resolve(*parse_recipient_keys(template.cc))
        return to, cc

    def _deliver(self, template_name: str, context: RunContext) -> DeliveryResult:
        template = self.compiler.fetch(template_name, self.config.template_document_id, self._link_map(context))

        to, cc = self._resolve_recipients(template, context)
        if not to and not cc:
            LOGGER.error('No recipients resolved for "%s" (To: %s, Cc: %s)', template_name, template.to, template.cc)
            raise NoRecipientsError(template_name)

        if self.config.test_mode:
            original_to, original_cc = to, cc
            to, cc = [self.config.operator_email], []
            LOGGER.warning('TEST MODE: recipients overridden from To "%s" / Cc "%s" to "%s"',
                           ",".join(original_to), ",".join(original_cc), to[0])

        signature = self.signature.build(self.config.operator_email, context)
        html_body = template.body + SIGNATURE_SEPARATOR + signature
        message = OutgoingMessage(
            to=",".join(to),
            cc=",".join(cc),
            subject=template.subject,
            html_body=html_body,
            plain_body=markup_to_plain_text(html_body),
        )

        warnings: List[str] = []
        try:
            target = self.decide(template.subject)
        except DeliveryError as exc:
            if not self.config.dry_run:
                raise
            # a dry run still reports the preview
            return DeliveryResult(
                success=True,
                template_name=template_name,
                recipients_to=to,
                recipients_cc=cc,
                simulation=self._simulation(template_name, template, message, None, str(exc)),
                warnings=[str(exc)],
            )

        if target.action is DeliveryAction.REPLY_ON_THREAD and to:
            warning = (f"Reply-all mode active. Template TO recipients ({message.to}) "
                       "will be ignored in favor of thread participants.")
            LOGGER.warning(warning)
            warnings.append(warning)

        result = DeliveryResult(
            success=True,
            template_name=template_name,
            action=target.action,
            recipients_to=to,
            recipients_cc=cc,
            warnings=warnings,
        )

        if self.config.dry_run:
            result.simulation = self._simulation(template_name, template, message, target)
            LOGGER.info("DRY RUN: would %s for \"%s\"", target.action.value.replace("_", " "), template.subject)
            return result

        result.draft_id = self._act(target, message)

        if self.config.email_action == "send":
            try:
                result.sent_message_id = self.mailbox.send_draft(result.draft_id)
            except Exception as exc:
                LOGGER.error("Failed to send draft %s: %s", result.draft_id, exc)
                raise DeliveryError(f"Failed to send draft {result.draft_id}: {exc}") from exc
            LOGGER.info("Draft %s sent", result.draft_id)

        return result

    @staticmethod
    def _simulation(template_name: str, template, message: OutgoingMessage,
                    target: Optional[DeliveryTarget], error: Optional[str] = None) -> Dict[str, object]:
        simulation = {
            "template_name": template_name,
            "subject": template.subject,
            "recipients_to": message.to,
            "recipients_cc": message.cc,
            "action": target.action.value if target else None,
            "matched_subject": target.matched_subject if target else None,
            "body_preview": body_preview(message.html_body),
        }
        if error:
            simulation["error"] = error
        return simulation

    def _act(self, target: DeliveryTarget, message: OutgoingMessage) -> str:
        action = target.action
        try:
            if action is DeliveryAction.UPDATE_DRAFT:
                LOGGER.info('Found existing draft for "%s". Updating...', message.subject)
                draft = self.mailbox.update_draft(target.draft_id, message)
                LOGGER.info("Draft updated successfully.")
            elif action is DeliveryAction.REPLY_ON_THREAD:
                draft = self.mailbox.create_reply_all_draft(target.thread_id, message)
                LOGGER.info("New draft created (reply mode) on existing thread.")
            else:
                draft = self.mailbox.create_draft(message)
                LOGGER.info("New draft created (new thread).")
        except Exception as exc:
            LOGGER.error("Failed to %s: %s", action.value.replace("_", " "), exc)
            raise DeliveryError(f"Failed to {action.value.replace('_', ' ')}: {exc}") from exc
        return draft.id

    # -------------------------
    # Execution log
    # -------------------------

    @staticmethod
    def _status_for(result: DeliveryResult) -> str:
        if result.simulation is not None:
            return "DRY_RUN"
        if result.sent_message_id:
            return "SENT"
        if result.action is DeliveryAction.UPDATE_DRAFT:
            return "UPDATED"
        return "CREATED"

    def _record(self, status: str, template_name: str, started: float,
                result: Optional[DeliveryResult] = None, error: Optional[str] = None) -> None:
        self.execution_log.append(ExecutionRecord(
            timestamp=self.clock(),
            status=status,
            template_name=template_name,
            draft_id=result.draft_id if result else None,
            duration_ms=int((self.monotonic() - started) * 1000),
            recipients=",".join(result.recipients_to) if result else "",
            error=error,
            dry_run=self.config.dry_run,
            test_mode=self.config.test_mode,
        ))
