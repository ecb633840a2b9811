"""Classification of Exotel call statuses for dashboards.

Exotel reports ``completed`` for inbound calls that only rang, and
``AnsweredBy`` is unreliable there. A recording URL is the one dependable
signal that a conversation happened, so ``completed`` is resolved through a
recording / answered-by / duration heuristic.
"""

import math
from dataclasses import dataclass
from typing import Any, Optional

SUCCESS = "success"
FAILED = "failed"
ABANDONED = "abandoned"
IN_PROGRESS = "in_progress"
UNKNOWN = "unknown"

# Completed calls shorter than this without a recording are treated as missed.
MISSED_CALL_THRESHOLD_SECONDS = 60


@dataclass(frozen=True)
class CallStatusInfo:
    display_status: str
    category: str
    description: str


_DIRECT = {
    "no-answer": CallStatusInfo("no-answer", ABANDONED, "Call was not answered"),
    "busy": CallStatusInfo("busy", FAILED, "Line was busy"),
    "failed": CallStatusInfo("failed", FAILED, "Call failed due to technical error"),
    "canceled": CallStatusInfo("canceled", ABANDONED, "Call was canceled before being answered"),
    "in-progress": CallStatusInfo("in-progress", IN_PROGRESS, "Call is currently ongoing"),
    "ringing": CallStatusInfo("ringing", IN_PROGRESS, "Call is ringing"),
    "answered": CallStatusInfo("answered", IN_PROGRESS, "Call has been answered and is in progress"),
    "queued": CallStatusInfo("queued", IN_PROGRESS, "Call is queued to be placed"),
    "initiated": CallStatusInfo("initiated", IN_PROGRESS, "Call has been initiated"),
}

_ALIASES = {
    "no_answer": "no-answer",
    "noanswer": "no-answer",
    "cancelled": "canceled",
    "in_progress": "in-progress",
    "inprogress": "in-progress",
}


def parse_duration(value: Any) -> Optional[int]:
    """Whole seconds from a provider duration string, or None when unusable."""
    if value is None:
        return None
    text = str(value).strip()
    if text in ("", "null", "undefined"):
        return None
    try:
        parsed = float(text)
    except ValueError:
        return None
    if not math.isfinite(parsed):
        return None
    return math.floor(parsed)


def map_call_status(
    status: Optional[str],
    answered_by: Optional[str] = None,
    recording_url: Optional[str] = None,
    duration: Optional[int] = None,
) -> CallStatusInfo:
    normalized = (status or "").strip().lower()
    normalized = _ALIASES.get(normalized, normalized)
    if normalized in _DIRECT:
        return _DIRECT[normalized]

    if normalized == "completed":
        if recording_url:
            return CallStatusInfo(
                "completed", SUCCESS, "Call was answered and completed successfully"
            )
        if answered_by in ("machine", "voicemail"):
            return CallStatusInfo("voicemail", ABANDONED, "Call went to voicemail")
        if duration and duration < MISSED_CALL_THRESHOLD_SECONDS:
            return CallStatusInfo("missed", ABANDONED, "Call rang but was not answered")
        if duration and duration >= MISSED_CALL_THRESHOLD_SECONDS:
            return CallStatusInfo(
                "completed-unrecorded", SUCCESS, "Call completed (no recording available)"
            )
        return CallStatusInfo("completed", UNKNOWN, "Call completed with unknown outcome")

    return CallStatusInfo(normalized or "unknown", UNKNOWN, "Status unknown or not recognized")


def classify_record(record: Any) -> CallStatusInfo:
    return map_call_status(
        record.status,
        record.answered_by,
        record.recording_url,
        parse_duration(record.duration),
    )
