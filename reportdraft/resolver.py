# reportdraft/resolver.py

import logging
import re
from datetime import date, datetime, timezone
from enum import Enum
from typing import Callable, Dict, Optional, Tuple
from zoneinfo import ZoneInfo

from bs4 import BeautifulSoup

from reportdraft.dates import add_months, format_date, resolve_date_token
from reportdraft.models import DictionaryTag, TagFailed, TagOk, TagResult

LOGGER = logging.getLogger(__name__)

TAG_RE = re.compile(r"\{\{(.*?)\}\}", flags=re.DOTALL)

ERROR_MARKER = "ERROR"
RANGE_SEPARATOR = " - "
DEFAULT_PATTERN = "dd-MMM-yyyy"

# alias -> (IANA zone, suffix label); the first entry is the default
DEFAULT_TIME_ZONES: Dict[str, Tuple[str, str]] = {
    "MYT": ("Asia/Kuala_Lumpur", "MYT"),
    "BKK": ("Asia/Bangkok", "ICT"),
}


class Command(Enum):
    DATE = "DATE"
    RANGE = "RANGE"
    TIME = "TIME"
    MONTHNAME = "MONTHNAME"
    DATE_FORMAT = "DATE_FORMAT"
    GREETING = "GREETING"
    BILLING_CYCLE = "BILLING_CYCLE"
    THIS_SHEET = "THIS_SHEET"
    PASSTHROUGH = "PASSTHROUGH"


COMMAND_NAMES: Dict[str, Command] = {
    "DATE": Command.DATE,
    "RANGE": Command.RANGE,
    "TIME": Command.TIME,
    "MONTHNAME": Command.MONTHNAME,
    "DATE_FORMAT": Command.DATE_FORMAT,
    "GREETING": Command.GREETING,
    "RAMCO": Command.BILLING_CYCLE,
    "BILLING_CYCLE": Command.BILLING_CYCLE,
    "THIS_SHEET": Command.THIS_SHEET,
    "ACTIVE_SPREADSHEET_LINK": Command.THIS_SHEET,
}


def parse_command(name: str) -> Command:
    return COMMAND_NAMES.get((name or "").strip().upper(), Command.PASSTHROUGH)


# -------------------------
# Date pattern translation
# -------------------------

_PATTERN_TOKEN_RE = re.compile(r"'[^']*'|y+|M+|d+|E+|H+|h+|m+|s+|a")


def _pattern_piece(token: str, dt: datetime) -> str:
    letter, width = token[0], len(token)
    if letter == "'":
        return token[1:-1] or "'"
    if letter == "y":
        return dt.strftime("%y") if width == 2 else str(dt.year)
    if letter == "M":
        if width >= 4:
            return dt.strftime("%B")
        if width == 3:
            return dt.strftime("%b")
        return f"{dt.month:02d}" if width == 2 else str(dt.month)
    if letter == "d":
        return f"{dt.day:02d}" if width >= 2 else str(dt.day)
    if letter == "E":
        return dt.strftime("%A") if width >= 4 else dt.strftime("%a")
    if letter == "H":
        return f"{dt.hour:02d}" if width >= 2 else str(dt.hour)
    if letter == "h":
        hour12 = dt.hour % 12 or 12
        return f"{hour12:02d}" if width >= 2 else str(hour12)
    if letter == "m":
        return f"{dt.minute:02d}" if width >= 2 else str(dt.minute)
    if letter == "s":
        return f"{dt.second:02d}" if width >= 2 else str(dt.second)
    return "AM" if dt.hour < 12 else "PM"


def format_pattern(value, pattern: str) -> str:
    """
    Render a date with a spreadsheet-style pattern such as ``dd-MMM-yyyy``.

    Patterns that already contain ``%`` are handed to strftime unchanged.
    """
    dt = value if isinstance(value, datetime) else datetime(value.year, value.month, value.day)
    if "%" in pattern:
        return dt.strftime(pattern)
    return _PATTERN_TOKEN_RE.sub(lambda m: _pattern_piece(m.group(0), dt), pattern)


# -------------------------
# Tag healing / parsing
# -------------------------

def _clean_inner(inner: str) -> str:
    if "<" in inner or "&" in inner:
        inner = BeautifulSoup(inner, "html.parser").get_text()
    return " ".join(inner.split())


def heal_tags(text: str) -> str:
    """Strip markup and collapse whitespace inside every {{...}} span."""
    if not text or "{{" not in text:
        return text or ""
    return TAG_RE.sub(lambda m: "{{" + _clean_inner(m.group(1)) + "}}", text)


def parse_tag(content: str) -> DictionaryTag:
    parts = [p.strip() for p in content.split(":")]
    return DictionaryTag(command=parts[0].upper(), args=parts[1:])


class DictionaryEngine:
    """
    Resolves ``{{COMMAND:arg1:arg2}}`` tags in template text.

    Commands:
    {{DATE:token}}                 dd-MMM-yyyy
    {{RANGE:token:token}}          two dates joined by " - "
    {{TIME[:zone]}}                now, rounded to 15 minutes, with zone label
    {{MONTHNAME[:offset|token]}}   e.g. "January 2026"
    {{DATE_FORMAT:token:pattern}}
    {{GREETING}}                   Good Morning / Afternoon / Evening
    {{RAMCO[:PREVIOUS]}}           16th-to-15th billing cycle
    {{THIS_SHEET}}                 configured spreadsheet link

    Anything else is left exactly as written.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        time_zone: str = "Asia/Kuala_Lumpur",
        time_zones: Optional[Dict[str, Tuple[str, str]]] = None,
        active_spreadsheet_url: str = "",
    ):
        self.tz = ZoneInfo(time_zone)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.time_zones = dict(time_zones or DEFAULT_TIME_ZONES)
        self.active_spreadsheet_url = active_spreadsheet_url

        self._handlers = {
            Command.DATE: self._date,
            Command.RANGE: self._range,
            Command.TIME: self._time,
            Command.MONTHNAME: self._month_name,
            Command.DATE_FORMAT: self._date_format,
            Command.GREETING: self._greeting,
            Command.BILLING_CYCLE: self._billing_cycle,
            Command.THIS_SHEET: self._this_sheet,
        }
        missing = set(Command) - set(self._handlers) - {Command.PASSTHROUGH}
        if missing:
            raise RuntimeError(f"Unhandled dictionary commands: {sorted(c.name for c in missing)}")

    # -------------------------
    # Clock
    # -------------------------

    def now(self) -> datetime:
        dt = self._clock()
        if dt.tzinfo is None:
            return dt.replace(tzinfo=self.tz)
        return dt.astimezone(self.tz)

    def today(self) -> date:
        return self.now().date()

    # -------------------------
    # Substitution
    # -------------------------

    def substitute(self, text: str) -> str:
        if not text or "{{" not in text:
            return text or ""

        # heal per span; passthrough keeps the span exactly as authored
        def _sub(match):
            tag = parse_tag(_clean_inner(match.group(1)))
            result = self.resolve_tag(tag, match.group(0))
            if isinstance(result, TagFailed):
                return result.marker
            return result.value

        return TAG_RE.sub(_sub, text)

    def resolve_tag(self, tag: DictionaryTag, original: str) -> TagResult:
        command = parse_command(tag.command)
        if command is Command.PASSTHROUGH:
            return TagOk(original)
        try:
            return TagOk(self._handlers[command](tag))
        except Exception as exc:
            LOGGER.error("Dictionary error processing [%s]: %s", original, exc)
            return TagFailed(ERROR_MARKER, str(exc))

    # -------------------------
    # Command handlers
    # -------------------------

    def _resolve(self, token: str) -> date:
        return resolve_date_token(token, self.today())

    def _date(self, tag: DictionaryTag) -> str:
        return format_date(self._resolve(tag.arg(0)))

    def _range(self, tag: DictionaryTag) -> str:
        start = format_date(self._resolve(tag.arg(0)))
        end = format_date(self._resolve(tag.arg(1)))
        return start + RANGE_SEPARATOR + end

    def _time(self, tag: DictionaryTag) -> str:
        alias = tag.arg(0, default="").upper()
        default_zone = next(iter(self.time_zones.values()))
        zone_name, label = self.time_zones.get(alias, default_zone)

        now = self.now().astimezone(ZoneInfo(zone_name))
        quarter = 15 * 60
        seconds = round(now.timestamp() / quarter) * quarter
        rounded = datetime.fromtimestamp(seconds, tz=ZoneInfo(zone_name))
        return f"{format_pattern(rounded, 'h:mm a')} {label}"

    def _month_name(self, tag: DictionaryTag) -> str:
        param = tag.arg(0)
        try:
            offset = int(param)
        except ValueError:
            target = self._resolve(param)
        else:
            target = add_months(self.today().replace(day=1), offset)
        return format_pattern(target, "MMMM yyyy")

    def _date_format(self, tag: DictionaryTag) -> str:
        # resolved day, current time of day
        target = datetime.combine(self._resolve(tag.arg(0)), self.now().timetz())
        pattern = ":".join(tag.args[1:]).strip() if len(tag.args) > 1 else ""
        return format_pattern(target, pattern or DEFAULT_PATTERN)

    def _greeting(self, tag: DictionaryTag) -> str:
        hour = self.now().hour
        if hour < 12:
            return "Good Morning"
        if hour < 18:
            return "Good Afternoon"
        return "Good Evening"

    def _billing_cycle(self, tag: DictionaryTag) -> str:
        offset = -1 if tag.arg(0).upper() == "PREVIOUS" else 0
        start, end = billing_cycle(self.today(), offset)
        return format_date(start) + RANGE_SEPARATOR + format_date(end)

    def _this_sheet(self, tag: DictionaryTag) -> str:
        if not self.active_spreadsheet_url:
            LOGGER.warning("Dictionary warning: no active spreadsheet URL configured")
            return "#"
        return self.active_spreadsheet_url


def billing_cycle(today: date, offset: int = 0) -> Tuple[date, date]:
    """Cycle running from the 16th of one month to the 15th of the next."""
    anchor = today.replace(day=1)
    if today.day < 16:
        anchor = add_months(anchor, -1)
    start = add_months(anchor, offset).replace(day=16)
    end = add_months(start, 1).replace(day=15)
    return start, end
