# reportdraft/config.py

"""
Runtime configuration.

Values are layered: dataclass defaults, then ``settings.json`` in the
per-user data directory, then ``REPORTDRAFT_*`` environment variables,
then explicit overrides (e.g. from the CLI or a schedule).
"""

import dataclasses
import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from appdirs import user_data_dir

from reportdraft.errors import ConfigError

LOGGER = logging.getLogger(__name__)

APP_NAME = "ReportDraft"
APP_AUTHOR = "ReportDraft"
APP_DIR = user_data_dir(APP_NAME, APP_AUTHOR)

SETTINGS_FILE = os.path.join(APP_DIR, "settings.json")
ENV_PREFIX = "REPORTDRAFT_"

EMAIL_ACTIONS = ("draft", "send")

# Required identifiers still holding one of these count as missing
PLACEHOLDER_RE = re.compile(r"^PASTE_[A-Z_]+$")

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _env_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(slots=True)
class AppConfig:
    """Every option the pipeline recognizes, with working defaults."""

    # Template document (a folder of Markdown sections)
    template_document_id: str = "PASTE_TEMPLATE_DOC_ID"
    signature_template_tab: str = "Signature_Template"

    # Recipient directory
    directory_source_id: str = "PASTE_DIRECTORY_SHEET_ID"
    recipients_tab_name: str = "Combined_Long"
    sender_profiles_tab_name: str = "WFM_Emails"
    recipient_email_column: str = "email"
    recipient_tag_columns: List[str] = field(default_factory=lambda: ["Site_wise_role", "workflow_wise_role"])

    # Link repository
    link_repository_source_id: str = "PASTE_LINK_SHEET_ID"
    link_repository_tab_name: str = "current_files"
    link_key_column: str = "Mapping"
    link_url_column: str = "File_Link"

    # Branding
    logo_file_id: str = ""

    # Modes
    dry_run: bool = False
    test_mode: bool = False
    email_action: str = "draft"
    operator_email: str = ""

    # Dictionary
    time_zone: str = "Asia/Kuala_Lumpur"
    time_zones: Dict[str, List[str]] = field(default_factory=lambda: {
        "MYT": ["Asia/Kuala_Lumpur", "MYT"],
        "BKK": ["Asia/Bangkok", "ICT"],
    })
    active_spreadsheet_url: str = ""

    # Delivery
    thread_search_limit: int = 5
    batch_time_budget_seconds: float = 300.0
    batch_pacing_seconds: float = 0.5

    # Local state
    execution_log_path: str = field(default_factory=lambda: os.path.join(APP_DIR, "execution_log.csv"))
    google_token_path: str = field(default_factory=lambda: os.path.join(APP_DIR, "token.json"))
    schedule_path: str = field(default_factory=lambda: os.path.join(APP_DIR, "schedules.json"))

    # -------------------------
    # Loading
    # -------------------------

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in dataclasses.fields(cls)]

    @classmethod
    def load(
        cls,
        overrides: Optional[Mapping[str, Any]] = None,
        settings_path: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "AppConfig":
        environ = os.environ if environ is None else environ
        path = settings_path or environ.get(ENV_PREFIX + "SETTINGS") or SETTINGS_FILE

        config = cls()
        config = config.with_overrides(load_settings_file(path))
        config = config.with_overrides(_env_values(environ))
        return config.with_overrides(overrides or {})

    def with_overrides(self, overrides: Mapping[str, Any]) -> "AppConfig":
        """Copy with ``overrides`` applied; camelCase keys are accepted."""
        known = set(self.field_names())
        changes: Dict[str, Any] = {}
        for raw_key, value in overrides.items():
            key = normalize_key(raw_key)
            if key not in known:
                LOGGER.warning("Ignoring unknown setting '%s'", raw_key)
                continue
            changes[key] = _coerce(key, value)
        return dataclasses.replace(self, **changes) if changes else self

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    def time_zone_table(self) -> Dict[str, tuple]:
        return {alias.upper(): tuple(zone) for alias, zone in self.time_zones.items()}

    # -------------------------
    # Validation
    # -------------------------

    def require_valid(self) -> "AppConfig":
        errors = validate_config(self)
        if errors:
            for e in errors:
                LOGGER.error("Config: %s", e)
            raise ConfigError(errors)
        return self


def normalize_key(key: str) -> str:
    key = key.strip()
    if "_" not in key:
        key = _CAMEL_RE.sub("_", key)
    return key.lower()


def _coerce(key: str, value: Any) -> Any:
    defaults = AppConfig()
    current = getattr(defaults, key)

    if isinstance(current, bool):
        return _env_bool(value) if isinstance(value, str) else bool(value)
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    if isinstance(current, list):
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return list(value)
    if isinstance(current, dict):
        return json.loads(value) if isinstance(value, str) else dict(value)
    return "" if value is None else str(value)


def _env_values(environ: Mapping[str, str]) -> Dict[str, str]:
    values = {}
    for name in AppConfig.field_names():
        raw = environ.get(ENV_PREFIX + name.upper())
        if raw is not None and raw.strip():
            values[name] = raw.strip()
    return values


def load_settings_file(path: str) -> Dict[str, Any]:
    """Settings JSON as a dict; a missing or unreadable file yields {}."""
    p = Path(path).expanduser()
    if not p.exists():
        return {}
    try:
        with open(p, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        LOGGER.warning("Could not read settings %s: %s", p, exc)
        return {}
    if not isinstance(data, dict):
        LOGGER.warning("Settings %s is not a JSON object, ignoring", p)
        return {}
    return data


def _is_missing(value: str) -> bool:
    return not value or not value.strip() or bool(PLACEHOLDER_RE.match(value.strip()))


def validate_config(config: AppConfig) -> List[str]:
    """Every problem at once, so nothing is partially applied."""
    errors: List[str] = []

    for name in ("template_document_id", "directory_source_id", "link_repository_source_id"):
        if _is_missing(getattr(config, name)):
            errors.append(f"{name} is not set")

    for name in (
        "recipients_tab_name",
        "sender_profiles_tab_name",
        "link_repository_tab_name",
        "signature_template_tab",
        "recipient_email_column",
        "link_key_column",
        "link_url_column",
    ):
        if not str(getattr(config, name) or "").strip():
            errors.append(f"{name} is empty")

    if not config.recipient_tag_columns or not all(str(c).strip() for c in config.recipient_tag_columns):
        errors.append("recipient_tag_columns must be a non-empty list")

    if config.email_action not in EMAIL_ACTIONS:
        errors.append(f"email_action must be one of {', '.join(EMAIL_ACTIONS)}")

    if config.test_mode and "@" not in (config.operator_email or ""):
        errors.append("operator_email is required in test mode")

    if config.batch_time_budget_seconds <= 0:
        errors.append("batch_time_budget_seconds must be positive")
    if config.batch_pacing_seconds < 0:
        errors.append("batch_pacing_seconds cannot be negative")
    if config.thread_search_limit < 1:
        errors.append("thread_search_limit must be at least 1")

    return errors


# -------------------------
# Persistence
# -------------------------

def atomic_save_json(path: str, data: Any) -> None:
    """
    Write JSON through a temp file in the same directory, then os.replace it
    over the destination so readers never see a half-written file.
    """
    p = Path(path).expanduser()
    parent = p.parent
    parent.mkdir(parents=True, exist_ok=True)

    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=str(parent),
            prefix=p.name + ".",
            suffix=".tmp",
            delete=False,
        ) as f:
            tmp_path = Path(f.name)
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())

        os.replace(str(tmp_path), str(p))
    except Exception:
        if tmp_path and tmp_path.exists():
            tmp_path.unlink()
        raise


def save_settings(values: Mapping[str, Any], path: Optional[str] = None) -> str:
    """Merge ``values`` into the settings file and return its path."""
    path = path or os.environ.get(ENV_PREFIX + "SETTINGS") or SETTINGS_FILE
    known = set(AppConfig.field_names())

    data = load_settings_file(path)
    for raw_key, value in values.items():
        key = normalize_key(raw_key)
        if key not in known:
            raise ConfigError([f"Unknown setting '{raw_key}'"])
        data[key] = _coerce(key, value)

    atomic_save_json(path, data)
    LOGGER.info("Settings saved to %s", path)
    return path
