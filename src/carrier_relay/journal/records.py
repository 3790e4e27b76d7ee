"""
Raw Journal Records.

A journal file is UTF-8 text with one JSON object per line. Each object has
at least a ``timestamp`` string and an ``event`` tag; everything else is
event-specific. Lines that do not decode to such an object are skipped
without complaint: the last line of a file the game is still writing is
routinely truncated.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from ..core.logging import get_logger

logger = get_logger(__name__)


def canonical_json(payload: dict[str, Any]) -> str:
    """Serialize a payload with sorted keys and compact separators."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class RawJournalRecord:
    """
    One journal line, as read.

    Identity for deduplication is (timestamp, event_type, payload): two
    physical lines decoding to the same object are the same record, whatever
    their key order or whitespace.
    """

    timestamp: str
    event_type: str
    payload: dict[str, Any] = field(hash=False, compare=False)
    identity_key: str = field(default="", compare=True)

    def __post_init__(self) -> None:
        if not self.identity_key:
            digest = hashlib.sha256()
            digest.update(self.timestamp.encode("utf-8"))
            digest.update(b"\x1f")
            digest.update(self.event_type.encode("utf-8"))
            digest.update(b"\x1f")
            digest.update(canonical_json(self.payload).encode("utf-8"))
            object.__setattr__(self, "identity_key", digest.hexdigest())

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> RawJournalRecord:
        """
        Build a record from a decoded journal object.

        Raises:
            ValueError: If timestamp or event is missing or not a string
        """
        timestamp = payload.get("timestamp")
        event_type = payload.get("event")
        if not isinstance(timestamp, str) or not isinstance(event_type, str):
            raise ValueError("journal object needs string 'timestamp' and 'event'")
        return cls(timestamp=timestamp, event_type=event_type, payload=payload)

    def to_json(self) -> str:
        """Canonical JSON of the payload, as stored in the event log."""
        return canonical_json(self.payload)


def parse_line(line: str) -> RawJournalRecord | None:
    """
    Parse one journal line.

    Returns:
        RawJournalRecord, or None for blank, truncated or non-journal lines
    """
    stripped = line.strip()
    if not stripped:
        return None

    try:
        payload = json.loads(stripped)
    except (ValueError, RecursionError):
        # JSONDecodeError, oversized integer literals, pathological nesting
        logger.debug("Skipping undecodable journal line (%d chars)", len(stripped))
        return None

    if not isinstance(payload, dict):
        return None

    try:
        return RawJournalRecord.from_payload(payload)
    except (ValueError, RecursionError):
        logger.debug("Skipping journal object without timestamp/event")
        return None


def iter_records(content: str) -> Iterator[tuple[RawJournalRecord | None, str]]:
    """
    Split file content on line feeds and parse each line, in file order.

    Only LF (with an optional preceding CR) ends a record; U+2028, U+2029
    and U+0085 may appear unescaped inside JSON strings. Yields (record,
    line) pairs so callers can count what was skipped; blank lines are not
    yielded.
    """
    for line in content.split("\n"):
        line = line.removesuffix("\r")
        if not line.strip():
            continue
        yield parse_line(line), line
