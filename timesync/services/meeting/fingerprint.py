"""
Dedup fingerprints for meeting instances.

Key format: ``{user}_{subject}_{subject}_{start}`` where ``user`` is the
lowercased acting user, ``subject`` is the normalized subject and ``start``
is the UTC start timestamp. The subject is written twice because existing
ledgers were keyed that way; changing it would re-post every stored meeting.
"""

import re
from datetime import datetime

from timesync.models.domain.meeting_domain import format_timestamp, parse_datetime

UNNAMED_SUBJECT = "unnamed-meeting"

_WHITESPACE_RE = re.compile(r"\s+")
_PUNCTUATION_RE = re.compile(r"[^\w\s-]")


def normalize_subject(subject: str | None) -> str:
    """Trim, collapse whitespace, strip punctuation except hyphen, lowercase."""
    if not subject:
        return UNNAMED_SUBJECT
    text = _WHITESPACE_RE.sub(" ", subject.strip())
    text = _PUNCTUATION_RE.sub("", text)
    text = _WHITESPACE_RE.sub(" ", text).strip().lower()
    return text or UNNAMED_SUBJECT


def normalize_start(start: datetime | str | None) -> str:
    """Render the start time the same way regardless of input format or offset."""
    parsed = parse_datetime(start)
    if parsed is not None:
        return format_timestamp(parsed)
    return str(start).strip() if start else ""


def generate_fingerprint(user_id: str, subject: str | None, start: datetime | str | None) -> str:
    """Stable key for one meeting instance of one user."""
    normalized = normalize_subject(subject)
    return f"{user_id.strip().lower()}_{normalized}_{normalized}_{normalize_start(start)}"


def split_legacy_key(key: str, user_id: str) -> tuple[str, str] | None:
    """
    Recover (subject, start) from a doubled-subject key written by older code.

    Older writers did not lowercase the subject and kept the raw start string,
    so the parts have to be recovered before the key can be regenerated.
    Returns None when the key does not have the doubled-subject shape.
    """
    prefix = f"{user_id.strip().lower()}_"
    if not key.lower().startswith(prefix):
        return None

    rest = key[len(prefix):]
    # subject may itself contain underscores; find the split where both copies agree
    for length in range(1, len(rest) // 2 + 1):
        if rest[length:length + 1] != "_":
            continue
        first = rest[:length]
        second = rest[length + 1:2 * length + 1]
        if first == second and rest[2 * length + 1:2 * length + 2] == "_":
            start = rest[2 * length + 2:]
            if start:
                return first, start
    return None


def canonicalize_key(key: str, user_id: str) -> str | None:
    """Canonical fingerprint for a legacy doubled-subject key, or None if unparseable."""
    parts = split_legacy_key(key, user_id)
    if parts is None:
        return None
    subject, start = parts
    return generate_fingerprint(user_id, subject, start)
