# reportdraft/signature.py

import base64
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Dict

from reportdraft.converter import parse_sections

LOGGER = logging.getLogger(__name__)

DEFAULT_SIGNATURE = "{{Sender_Name}}<br>{{Sender_Role}}<br>{{Signature_Logo}}"
LOGO_TAG = '<img src="data:{mime};base64,{data}" width="200" style="display:block; height:auto;">'


@dataclass(slots=True)
class SenderProfile:
    name: str = "Automation Team"
    role: str = "Automation"
    primary_email: str = ""
    secondary_email: str = ""


def load_sender_profile(source, config, user_email: str) -> SenderProfile:
    """Row of the sender-profiles tab whose UserEmail matches ``user_email``."""
    profile = SenderProfile()
    if not user_email:
        return profile

    try:
        rows, _ = source.load_rows(config.directory_source_id, config.sender_profiles_tab_name)
    except Exception as exc:
        LOGGER.warning("Signature: sender profiles unavailable: %s", exc)
        return profile

    wanted = user_email.strip().lower()
    for row in rows:
        if row.get("useremail", "").strip().lower() == wanted:
            return SenderProfile(
                name=row.get("name") or profile.name,
                role=row.get("role") or profile.role,
                primary_email=row.get("primaryemail", ""),
                secondary_email=row.get("secondaryemail", ""),
            )

    LOGGER.info("Signature: no sender profile for %s, using defaults", user_email)
    return profile


def logo_tag(path: str, cache: Dict[str, str]) -> str:
    """Inline <img> with the logo as a base64 data URI, memoized in ``cache``."""
    if not path:
        return ""
    if path in cache:
        return cache[path]

    try:
        data = Path(path).expanduser().read_bytes()
    except OSError as exc:
        LOGGER.warning("Signature: logo unavailable: %s", exc)
        tag = ""
    else:
        mime = mimetypes.guess_type(path)[0] or "image/png"
        tag = LOGO_TAG.format(mime=mime, data=base64.b64encode(data).decode("ascii"))

    cache[path] = tag
    return tag


def render_signature(markup: str, profile: SenderProfile, logo: str) -> str:
    return (
        markup.replace("{{Sender_Name}}", profile.name)
        .replace("{{Sender_Role}}", profile.role)
        .replace("{{First_Email}}", profile.primary_email)
        .replace("{{Second_Email}}", profile.secondary_email)
        .replace("{{Signature_Logo}}", logo)
    )


class SignatureBuilder:
    """
    Builds the signature block from the template document's signature
    section (or a default), the sender's profile row and the logo.
    """

    def __init__(self, compiler, directory, config):
        self.compiler = compiler
        self.directory = directory
        self.config = config

    def template_markup(self) -> str:
        blocks = self.compiler.documents.get_section(
            self.config.template_document_id, self.config.signature_template_tab
        )
        if blocks is None:
            LOGGER.info("Signature: section '%s' not found, using default", self.config.signature_template_tab)
            return DEFAULT_SIGNATURE
        return self.compiler.compile(parse_sections(blocks)).body

    def build(self, user_email: str, context) -> str:
        if context.sender_profile is None:
            context.sender_profile = load_sender_profile(self.directory, self.config, user_email)
        logo = logo_tag(self.config.logo_file_id, context.logo_cache)
        return render_signature(self.template_markup(), context.sender_profile, logo)
