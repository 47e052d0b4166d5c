# reportdraft/mailbox.py

import base64
import itertools
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import getaddresses
from typing import Dict, List, Optional, Protocol

from reportdraft.models import Draft, OutgoingMessage, Thread

LOGGER = logging.getLogger(__name__)

REPLY_PREFIX = "Re: "


class Mailbox(Protocol):
    def list_drafts(self) -> List[Draft]:
        ...

    def create_draft(self, message: OutgoingMessage) -> Draft:
        ...

    def update_draft(self, draft_id: str, message: OutgoingMessage) -> Draft:
        ...

    def search_threads(self, subject: str, limit: int = 5) -> List[Thread]:
        ...

    def create_reply_all_draft(self, thread_id: str, message: OutgoingMessage) -> Draft:
        ...

    def send_draft(self, draft_id: str) -> str:
        ...


def reply_subject(subject: str) -> str:
    if subject.lower().startswith(REPLY_PREFIX.lower()):
        return subject
    return REPLY_PREFIX + subject


def _split_addresses(value: str) -> List[str]:
    return [addr for _, addr in getaddresses([value or ""]) if addr]


# ============================================================
# in-memory mailbox
# ============================================================

class InMemoryMailbox:
    """
    Mailbox kept in dictionaries.

    Thread search is a case-insensitive phrase match on the subject, like a
    ``subject:"..."`` query. Sending a draft moves it into its thread.
    """

    def __init__(self, address: str = "me@example.com"):
        self.address = address
        self.drafts: Dict[str, Draft] = {}
        self.threads: Dict[str, Thread] = {}
        self.sent: List[Dict[str, str]] = []
        self._ids = itertools.count(1)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def add_thread(self, subject: str, participants: Optional[List[str]] = None) -> Thread:
        thread = Thread(id=self._next_id("thread"), subject=subject, participants=list(participants or []))
        self.threads[thread.id] = thread
        return thread

    def list_drafts(self) -> List[Draft]:
        return list(self.drafts.values())

    def create_draft(self, message: OutgoingMessage) -> Draft:
        draft = Draft(
            id=self._next_id("draft"),
            subject=message.subject,
            to=message.to,
            cc=message.cc,
            html_body=message.html_body,
            plain_body=message.plain_body,
        )
        self.drafts[draft.id] = draft
        return draft

    def update_draft(self, draft_id: str, message: OutgoingMessage) -> Draft:
        current = self.drafts.get(draft_id)
        if current is None:
            raise LookupError(f"Draft {draft_id} not found")
        updated = Draft(
            id=draft_id,
            subject=message.subject,
            to=message.to,
            cc=message.cc,
            thread_id=current.thread_id,
            html_body=message.html_body,
            plain_body=message.plain_body,
        )
        self.drafts[draft_id] = updated
        return updated

    def search_threads(self, subject: str, limit: int = 5) -> List[Thread]:
        needle = subject.lower()
        found = [t for t in reversed(list(self.threads.values())) if needle in t.subject.lower()]
        return found[:limit]

    def create_reply_all_draft(self, thread_id: str, message: OutgoingMessage) -> Draft:
        thread = self.threads.get(thread_id)
        if thread is None:
            raise LookupError(f"Thread {thread_id} not found")
        to = [p for p in thread.participants if p != self.address]
        draft = Draft(
            id=self._next_id("draft"),
            subject=reply_subject(thread.subject),
            to=",".join(to),
            cc=message.cc,
            thread_id=thread_id,
            html_body=message.html_body,
            plain_body=message.plain_body,
        )
        self.drafts[draft.id] = draft
        return draft

    def send_draft(self, draft_id: str) -> str:
        draft = self.drafts.pop(draft_id, None)
        if draft is None:
            raise LookupError(f"Draft {draft_id} not found")

        participants = [self.address] + _split_addresses(draft.to) + _split_addresses(draft.cc)
        if draft.thread_id and draft.thread_id in self.threads:
            thread = self.threads[draft.thread_id]
            for p in participants:
                if p not in thread.participants:
                    thread.participants.append(p)
        else:
            thread = self.add_thread(draft.subject, list(dict.fromkeys(participants)))

        message_id = self._next_id("msg")
        self.sent.append({"id": message_id, "thread_id": thread.id, "subject": draft.subject,
                          "to": draft.to, "cc": draft.cc})
        return message_id


# ============================================================
# Gmail API v1
# ============================================================

def build_mime(message: OutgoingMessage, headers: Optional[Dict[str, str]] = None) -> str:
    """multipart/alternative with a plain-text and an HTML part, base64url encoded."""
    mime = MIMEMultipart("alternative")
    mime["to"] = message.to
    if message.cc:
        mime["cc"] = message.cc
    mime["subject"] = message.subject
    for name, value in (headers or {}).items():
        if value:
            mime[name] = value

    mime.attach(MIMEText(message.plain_body, "plain", "utf-8"))
    mime.attach(MIMEText(message.html_body, "html", "utf-8"))
    return base64.urlsafe_b64encode(mime.as_bytes()).decode("utf-8")


def _header(headers: List[Dict[str, str]], name: str) -> str:
    for h in headers:
        if h.get("name", "").lower() == name.lower():
            return h.get("value", "")
    return ""


class GmailMailbox:
    def __init__(self, service, user_id: str = "me"):
        self.service = service
        self.user_id = user_id
        self._address: Optional[str] = None

    @property
    def address(self) -> str:
        if self._address is None:
            profile = self.service.users().getProfile(userId=self.user_id).execute()
            self._address = profile.get("emailAddress", "")
        return self._address

    def _draft_from_response(self, response: Dict, message: Optional[OutgoingMessage] = None) -> Draft:
        msg = response.get("message", {})
        headers = msg.get("payload", {}).get("headers", [])
        return Draft(
            id=response["id"],
            subject=message.subject if message else _header(headers, "Subject"),
            to=message.to if message else _header(headers, "To"),
            cc=message.cc if message else _header(headers, "Cc"),
            thread_id=msg.get("threadId"),
            html_body=message.html_body if message else "",
            plain_body=message.plain_body if message else "",
        )

    def list_drafts(self) -> List[Draft]:
        drafts_api = self.service.users().drafts()
        drafts: List[Draft] = []
        page_token = None
        while True:
            response = drafts_api.list(userId=self.user_id, pageToken=page_token).execute()
            for item in response.get("drafts", []):
                full = drafts_api.get(userId=self.user_id, id=item["id"], format="metadata").execute()
                drafts.append(self._draft_from_response(full))
            page_token = response.get("nextPageToken")
            if not page_token:
                break
        LOGGER.debug("Listed %s drafts", len(drafts))
        return drafts

    def create_draft(self, message: OutgoingMessage) -> Draft:
        body = {"message": {"raw": build_mime(message)}}
        response = self.service.users().drafts().create(userId=self.user_id, body=body).execute()
        LOGGER.info("Gmail draft created: %s", response.get("id"))
        return self._draft_from_response(response, message)

    def update_draft(self, draft_id: str, message: OutgoingMessage) -> Draft:
        drafts_api = self.service.users().drafts()
        current = drafts_api.get(userId=self.user_id, id=draft_id, format="minimal").execute()
        payload = {"raw": build_mime(message)}
        thread_id = current.get("message", {}).get("threadId")
        if thread_id:
            payload["threadId"] = thread_id
        response = drafts_api.update(
            userId=self.user_id, id=draft_id, body={"id": draft_id, "message": payload}
        ).execute()
        LOGGER.info("Gmail draft updated: %s", draft_id)
        return self._draft_from_response(response, message)

    def _thread_metadata(self, thread_id: str) -> Dict:
        return self.service.users().threads().get(
            userId=self.user_id,
            id=thread_id,
            format="metadata",
            metadataHeaders=["Subject", "From", "To", "Cc", "Message-ID"],
        ).execute()

    def search_threads(self, subject: str, limit: int = 5) -> List[Thread]:
        query = 'subject:"{}"'.format(subject.replace('"', ""))
        response = self.service.users().threads().list(
            userId=self.user_id, q=query, maxResults=limit
        ).execute()

        threads: List[Thread] = []
        for item in response.get("threads", [])[:limit]:
            meta = self._thread_metadata(item["id"])
            messages = meta.get("messages", [])
            if not messages:
                continue
            first_headers = messages[0].get("payload", {}).get("headers", [])
            participants: List[str] = []
            for m in messages:
                headers = m.get("payload", {}).get("headers", [])
                for name in ("From", "To", "Cc"):
                    for addr in _split_addresses(_header(headers, name)):
                        if addr not in participants:
                            participants.append(addr)
            threads.append(Thread(id=item["id"], subject=_header(first_headers, "Subject"),
                                  participants=participants))
        return threads

    def create_reply_all_draft(self, thread_id: str, message: OutgoingMessage) -> Draft:
        meta = self._thread_metadata(thread_id)
        messages = meta.get("messages", [])
        if not messages:
            raise LookupError(f"Thread {thread_id} has no messages")

        first_headers = messages[0].get("payload", {}).get("headers", [])
        last_headers = messages[-1].get("payload", {}).get("headers", [])
        me = self.address.lower()

        to: List[str] = []
        for name in ("From", "To"):
            for addr in _split_addresses(_header(last_headers, name)):
                if addr.lower() != me and addr not in to:
                    to.append(addr)
        cc = [a for a in _split_addresses(_header(last_headers, "Cc")) if a.lower() != me and a not in to]
        cc += [a for a in _split_addresses(message.cc) if a not in cc and a not in to]

        reply = OutgoingMessage(
            to=", ".join(to),
            cc=", ".join(cc),
            subject=reply_subject(_header(first_headers, "Subject")),
            html_body=message.html_body,
            plain_body=message.plain_body,
        )
        message_id = _header(last_headers, "Message-ID")
        raw = build_mime(reply, {"In-Reply-To": message_id, "References": message_id})
        body = {"message": {"raw": raw, "threadId": thread_id}}
        response = self.service.users().drafts().create(userId=self.user_id, body=body).execute()
        LOGGER.info("Gmail reply-all draft created on thread %s", thread_id)
        return self._draft_from_response(response, reply)

    def send_draft(self, draft_id: str) -> str:
        response = self.service.users().drafts().send(
            userId=self.user_id, body={"id": draft_id}
        ).execute()
        message_id = response.get("id", "")
        LOGGER.info("Gmail draft %s sent as message %s", draft_id, message_id)
        return message_id
