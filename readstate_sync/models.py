"""
Value types shared by the readers, writers and the sync coordinator
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import pytz

# Oldest possible timestamp: used for missing records and unparseable dates
EPOCH_MIN = datetime(1970, 1, 1, tzinfo=pytz.utc)

# Coordinate the vendor's own software writes when jumping straight to a chapter
CHAPTER_START_COORDINATE = b"kobo.1.1"
TOKEN_SEPARATOR = b"#"


def clamp_percent(value) -> float:
    """Clamp a percent fraction to [0.0, 1.0], treating junk as 0.0"""
    try:
        percent = float(value)
    except (TypeError, ValueError):
        return 0.0
    if percent != percent:  # NaN
        return 0.0
    return max(0.0, min(1.0, percent))


class ReadStatus(enum.IntEnum):
    """Vendor read_status column values"""

    UNREAD = 0
    READING = 1
    FINISHED = 2

    @classmethod
    def from_percent(cls, percent: float) -> "ReadStatus":
        percent = clamp_percent(percent)
        if percent >= 1.0:
            return cls.FINISHED
        if percent > 0.0:
            return cls.READING
        return cls.UNREAD


@dataclass(frozen=True)
class PositionToken:
    """
    Opaque vendor reading position.

    The raw bytes are compared and copied but never decomposed. The only way
    to mint a new token is ``chapter_start``.
    """

    raw: bytes

    @classmethod
    def chapter_start(cls, chapter_id: str) -> "PositionToken":
        return cls(chapter_id.encode("utf-8") + TOKEN_SEPARATOR + CHAPTER_START_COORDINATE)

    @classmethod
    def from_column(cls, value) -> Optional["PositionToken"]:
        """Wrap a chapter_token column value, which SQLite may hand back as str or bytes"""
        if value is None or value == "" or value == b"":
            return None
        if isinstance(value, str):
            value = value.encode("utf-8")
        return cls(bytes(value))

    def __repr__(self) -> str:
        return f"PositionToken({self.raw!r})"


@dataclass(frozen=True)
class ReadingProgress:
    """Progress of one book on one side, rebuilt fresh on every query"""

    book_id: str
    percent: float
    timestamp: datetime
    status: ReadStatus
    position_token: Optional[PositionToken] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "percent", clamp_percent(self.percent))

    @classmethod
    def empty(cls, book_id: str) -> "ReadingProgress":
        """Zero record used when a side has nothing stored for the book"""
        return cls(book_id=book_id, percent=0.0, timestamp=EPOCH_MIN, status=ReadStatus.UNREAD)

    @property
    def is_complete(self) -> bool:
        return self.status == ReadStatus.FINISHED or self.percent >= 1.0


class SyncAction(enum.Enum):
    NO_SYNC_NEEDED = "no_sync_needed"
    PUSH_VENDOR_TO_HOST = "push_vendor_to_host"
    PUSH_HOST_TO_VENDOR = "push_host_to_vendor"


@dataclass(frozen=True)
class SyncDecision:
    """Directive produced by the decision maker for one book"""

    action: SyncAction
    percent: Optional[float] = None
    status: Optional[ReadStatus] = None
    reason: str = ""

    @classmethod
    def no_sync(cls, reason: str) -> "SyncDecision":
        return cls(SyncAction.NO_SYNC_NEEDED, reason=reason)

    @classmethod
    def push_vendor_to_host(cls, percent: float, status: ReadStatus, reason: str = "") -> "SyncDecision":
        return cls(SyncAction.PUSH_VENDOR_TO_HOST, percent=clamp_percent(percent), status=status, reason=reason)

    @classmethod
    def push_host_to_vendor(cls, percent: float, reason: str = "") -> "SyncDecision":
        return cls(SyncAction.PUSH_HOST_TO_VENDOR, percent=clamp_percent(percent), reason=reason)

    @property
    def needs_write(self) -> bool:
        return self.action != SyncAction.NO_SYNC_NEEDED


class SyncPhase(enum.Enum):
    """Per-book pass state machine"""

    START = "start"
    FETCHED = "fetched"
    DECIDED = "decided"
    APPLIED = "applied"
    SKIPPED = "skipped"
    DONE = "done"


class OutcomeKind(enum.Enum):
    NO_SYNC_NEEDED = "no_sync_needed"
    SYNCED_TO_HOST = "synced_to_host"
    SYNCED_TO_VENDOR = "synced_to_vendor"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class BookOutcome:
    """Result of one book's sync pass"""

    book_id: str
    kind: OutcomeKind
    reason: str = ""
    decision: Optional[SyncDecision] = None
    phase: SyncPhase = SyncPhase.DONE
    duration: float = field(default=0.0, compare=False)

    @property
    def failed(self) -> bool:
        return self.kind == OutcomeKind.FAILED
