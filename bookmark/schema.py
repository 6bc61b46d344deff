"""
Persisted record models for Bookmark.

Pydantic models for everything written under the storage root:
snapshot files, the snapshot catalog (index.json), the trigger
bookkeeping state (state.json) and the decision/file trails.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

UNKNOWN = "Unknown"
NO_STATUS = "No status available"

STATE_VERSION = "1.0.0"
INDEX_VERSION = "1.0.0"
TRAIL_VERSION = "1.0.0"


class SnapshotTrigger(str, Enum):
    """What caused a snapshot to be captured."""

    PRE_COMPACT = "pre_compact"
    TIME_INTERVAL = "time_interval"
    MANUAL = "manual"
    SESSION_END = "session_end"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class FileOperation(str, Enum):
    READ = "read"
    WRITE = "write"
    EDIT = "edit"
    CREATE = "create"
    DELETE = "delete"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class _Record(BaseModel):
    """Base for persisted records: tolerate keys written by other versions."""

    model_config = {
        "use_enum_values": True,
        "extra": "ignore",
    }


class Decision(_Record):
    """A technical decision, with its rationale when one was stated."""

    description: str = Field(max_length=200)
    rationale: str | None = None


class OpenItem(_Record):
    """Outstanding work still to be done."""

    description: str = Field(max_length=200)
    priority: Priority = Priority.LOW


class FileActivity(_Record):
    """Accumulated activity on a single path."""

    path: str
    operations: list[FileOperation] = Field(default_factory=list)
    lines_changed: int = Field(default=0, ge=0)


class ErrorEntry(_Record):
    """An error seen in tool output. ``resolved`` is never inferred."""

    message: str
    tool: str | None = None
    resolved: bool = False


class Snapshot(_Record):
    """
    Immutable record of session state at one point in time.

    ``prior_snapshot_id`` is a weak back-reference used only to rebuild
    a chain by lookup.
    """

    snapshot_id: str
    timestamp: float
    session_id: str
    project_path: str

    # Trigger metadata
    trigger: SnapshotTrigger
    compaction_cycle: int = 0
    context_remaining_pct: float = 1.0
    token_estimate: int = 0

    # Extracted content
    intent: str = UNKNOWN
    progress: str = UNKNOWN
    current_status: str = NO_STATUS
    decisions: list[Decision] = Field(default_factory=list)
    open_items: list[OpenItem] = Field(default_factory=list)
    unknowns: list[str] = Field(default_factory=list)
    files_changed: list[FileActivity] = Field(default_factory=list)
    errors_encountered: list[ErrorEntry] = Field(default_factory=list)
    tools_summary: dict[str, int] = Field(default_factory=dict)
    user_sentiment: Sentiment = Sentiment.NEUTRAL

    # Continuity chain
    prior_snapshot_id: str | None = None

    model_config = {
        "use_enum_values": True,
        "extra": "ignore",
        "frozen": True,
    }

    def has_content(self) -> bool:
        """True if extraction found anything worth restoring."""
        return bool(
            self.decisions
            or self.open_items
            or self.files_changed
            or self.unknowns
            or self.intent != UNKNOWN
            or self.progress != UNKNOWN
        )


class SnapshotEntry(_Record):
    """Lightweight catalog summary of a snapshot."""

    id: str
    timestamp: float
    trigger: SnapshotTrigger
    compaction_cycle: int = 0
    context_remaining_pct: float = 1.0
    token_estimate: int = 0
    decisions_count: int = 0
    files_changed_count: int = 0
    open_items_count: int = 0

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> "SnapshotEntry":
        return cls(
            id=snapshot.snapshot_id,
            timestamp=snapshot.timestamp,
            trigger=snapshot.trigger,
            compaction_cycle=snapshot.compaction_cycle,
            context_remaining_pct=snapshot.context_remaining_pct,
            token_estimate=snapshot.token_estimate,
            decisions_count=len(snapshot.decisions),
            files_changed_count=len(snapshot.files_changed),
            open_items_count=len(snapshot.open_items),
        )


class IndexStats(_Record):
    total_snapshots: int = 0
    compaction_cycles: int = 0
    last_compaction: float = 0.0
    last_snapshot: float = 0.0
    last_time_based: float = 0.0


class SnapshotIndex(_Record):
    """
    Snapshot catalog for index.json.

    Entries are ordered most-recent-first and capped at the configured
    maximum active count.
    """

    version: str = INDEX_VERSION
    project_path: str = ""
    last_updated: float = 0.0
    stats: IndexStats = Field(default_factory=IndexStats)
    snapshots: list[SnapshotEntry] = Field(default_factory=list)


class TrailStatus(str, Enum):
    ACTIVE = "active"
    SUPERSEDED = "superseded"


class TrailDecision(_Record):
    """A decision in the persistent trail, kept after being superseded."""

    timestamp: float
    topic: str
    description: str
    rationale: str | None = None
    status: TrailStatus = TrailStatus.ACTIVE
    superseded_by: float | None = None


class DecisionTrail(_Record):
    version: str = TRAIL_VERSION
    decisions: list[TrailDecision] = Field(default_factory=list)


class FileTrail(_Record):
    """Project-relative file activity accumulated across captures."""

    version: str = TRAIL_VERSION
    files: list[FileActivity] = Field(default_factory=list)


class SessionEntry(_Record):
    """History entry for a session that has ended or been replaced."""

    session_id: str
    started: float
    ended: float | None = None
    compaction_count: int = 0
    snapshots_taken: int = 0


class TriggerState(_Record):
    """
    Trigger bookkeeping for state.json.

    ``current_threshold`` is derived from the compaction count (see
    threshold.adaptive.get_threshold).
    ``session_history`` is most-recent-first.
    ``transcript_offset`` is the byte position in ``transcript_path`` already
    covered by a snapshot; the next capture starts there.
    """

    version: str = STATE_VERSION
    session_id: str = ""
    session_started: float = 0.0
    compaction_count: int = 0
    current_threshold: float = 0.20
    last_snapshot_time: float = 0.0
    last_event_time: float = 0.0
    snapshot_interval_minutes: int = 20
    snapshots_this_session: int = 0
    transcript_path: str = ""
    transcript_offset: int = 0
    session_history: list[SessionEntry] = Field(default_factory=list)


__all__ = [
    "UNKNOWN",
    "NO_STATUS",
    "SnapshotTrigger",
    "Priority",
    "FileOperation",
    "Sentiment",
    "Decision",
    "OpenItem",
    "FileActivity",
    "ErrorEntry",
    "Snapshot",
    "SnapshotEntry",
    "IndexStats",
    "SnapshotIndex",
    "TrailStatus",
    "TrailDecision",
    "DecisionTrail",
    "FileTrail",
    "SessionEntry",
    "TriggerState",
]
