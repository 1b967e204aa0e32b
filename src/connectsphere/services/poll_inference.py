"""Post-close heuristic — let a decided poll update its event.

Learn: Polls like "When should we meet?" or "Where should we go?" decide
event details. When such a poll closes, the winning option is turned into
an event change:
- question mentions time/when  + option parses as a date → starts_at
- question mentions where/location                       → location_text

Both may apply ("When and where?") as long as the option parses. Anything
that doesn't parse is simply "no update"; this never raises.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from dateutil import parser as date_parser

TIME_WORDS = ("time", "when")
PLACE_WORDS = ("where", "location")


def _mentions(question: str, words: tuple[str, ...]) -> bool:
    lowered = question.lower()
    return any(word in lowered for word in words)


def parse_when(text: str) -> Optional[datetime]:
    """Parse free-text date/time. Naive results are taken as UTC."""
    try:
        parsed = date_parser.parse(text)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def infer_event_update(question: str, winning_text: Optional[str]) -> Optional[dict[str, Any]]:
    """Event changes implied by a closed poll, or None."""
    if not winning_text or not winning_text.strip():
        return None

    changes: dict[str, Any] = {}
    if _mentions(question, TIME_WORDS):
        when = parse_when(winning_text)
        if when is not None:
            changes["starts_at"] = when
    if _mentions(question, PLACE_WORDS):
        changes["location_text"] = winning_text.strip()
    return changes or None
