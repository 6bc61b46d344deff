"""
Snapshot storage under the project's bookmark root.

Layout:
    <root>/
        state.json          trigger bookkeeping (threshold.state)
        index.json          snapshot catalog, most recent first
        LATEST.md           compact restoration digest
        CONTEXT.md          trailhead (trails.writer)
        snapshots/SNAP_*.json
        archive/SNAP_*.json
        trails/
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import time
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from ..persistence import atomic_write_text, read_json, read_text
from ..schema import (
    IndexStats,
    Snapshot,
    SnapshotEntry,
    SnapshotIndex,
    SnapshotTrigger,
)

logger = logging.getLogger(__name__)

SNAPSHOT_ID_PATTERN = re.compile(r"^SNAP_\d{8}_\d{6}(?:_\d{2,})?$")
MAX_ID_SUFFIX = 99


def is_valid_snapshot_id(snapshot_id: str) -> bool:
    """Reject anything that is not a plain snapshot id (including path traversal)."""
    return bool(SNAPSHOT_ID_PATTERN.match(snapshot_id or ""))


class SnapshotStore:
    """
    Reads and writes snapshots, the catalog and LATEST.md.

    Snapshot files are written once per id and never modified afterwards.
    The catalog is last-writer-wins.
    """

    def __init__(self, root: Path, max_active: int = 50):
        """
        Initialize snapshot store.

        Args:
            root: Storage root (see module docstring for layout)
            max_active: Catalog entries kept in index.json
        """
        self.root = Path(root)
        self.max_active = max_active

    @property
    def snapshots_dir(self) -> Path:
        return self.root / "snapshots"

    @property
    def archive_dir(self) -> Path:
        return self.root / "archive"

    @property
    def trails_dir(self) -> Path:
        return self.root / "trails"

    @property
    def index_path(self) -> Path:
        return self.root / "index.json"

    @property
    def latest_path(self) -> Path:
        return self.root / "LATEST.md"

    def exists(self) -> bool:
        return self.root.is_dir()

    def ensure_dirs(self) -> None:
        for directory in (self.root, self.snapshots_dir, self.archive_dir, self.trails_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def _snapshot_path(self, snapshot_id: str) -> Path:
        return self.snapshots_dir / f"{snapshot_id}.json"

    # -------------------------------------------------------------------------
    # Identifiers
    # -------------------------------------------------------------------------

    def allocate_id(self, now: float | None = None) -> str:
        """
        Reserve a unique snapshot id for the given wall-clock second.

        The id's file is created exclusively, so two captures in the same
        second (even from separate processes) get ``SNAP_..._HHMMSS`` and
        ``SNAP_..._HHMMSS_01``.

        Raises:
            FileExistsError: If every suffix for this second is taken
        """
        self.ensure_dirs()
        now = time.time() if now is None else now
        base = datetime.fromtimestamp(now).strftime("SNAP_%Y%m%d_%H%M%S")

        for n in range(MAX_ID_SUFFIX + 1):
            candidate = base if n == 0 else f"{base}_{n:02d}"
            if (self.archive_dir / f"{candidate}.json").exists():
                continue
            try:
                fd = os.open(self._snapshot_path(candidate), os.O_CREAT | os.O_EXCL | os.O_WRONLY)
            except FileExistsError:
                continue
            os.close(fd)
            return candidate

        raise FileExistsError(f"No free snapshot id left for {base}")

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def save(self, snapshot: Snapshot) -> Path:
        """Write the snapshot file and add it to the catalog."""
        if not is_valid_snapshot_id(snapshot.snapshot_id):
            raise ValueError(f"Invalid snapshot id: {snapshot.snapshot_id!r}")
        self.ensure_dirs()

        path = self._snapshot_path(snapshot.snapshot_id)
        atomic_write_text(path, snapshot.model_dump_json(indent=2))
        self._update_index(snapshot)
        return path

    def load(self, snapshot_id: str) -> Snapshot | None:
        """
        Load a snapshot by id, from active storage or the archive.

        Returns:
            Snapshot, or None if the id is invalid, missing or unreadable
        """
        if not is_valid_snapshot_id(snapshot_id):
            logger.debug(f"Rejected snapshot id {snapshot_id!r}")
            return None

        for directory in (self.snapshots_dir, self.archive_dir):
            data = read_json(directory / f"{snapshot_id}.json")
            if not isinstance(data, dict):
                continue
            try:
                return Snapshot.model_validate(data)
            except ValidationError as e:
                logger.warning(f"Invalid snapshot {snapshot_id}: {e}")
                return None
        return None

    def _snapshot_ids_on_disk(self) -> list[str]:
        """Active snapshot ids, oldest first."""
        if not self.snapshots_dir.is_dir():
            return []
        ids = [p.stem for p in self.snapshots_dir.glob("SNAP_*.json") if is_valid_snapshot_id(p.stem)]
        return sorted(ids)

    def load_latest(self) -> Snapshot | None:
        """Most recent snapshot per the catalog, else per the directory listing."""
        index = self.load_index()
        candidates = [e.id for e in index.snapshots] if index else []
        candidates += list(reversed(self._snapshot_ids_on_disk()))

        for snapshot_id in candidates:
            snapshot = self.load(snapshot_id)
            if snapshot is not None:
                return snapshot
        return None

    def load_chain(self, max_length: int = 5) -> list[Snapshot]:
        """
        Recent snapshots linked by ``prior_snapshot_id``.

        Walks back from the latest snapshot while the session stays the
        same, stopping at a missing link, a cycle, or ``max_length``.

        Returns:
            Snapshots in chronological order (oldest first)
        """
        latest = self.load_latest()
        if latest is None:
            return []

        chain = [latest]
        seen = {latest.snapshot_id}
        current = latest
        while len(chain) < max_length and current.prior_snapshot_id:
            if current.prior_snapshot_id in seen:
                logger.debug(f"Snapshot chain cycle at {current.prior_snapshot_id}")
                break
            prior = self.load(current.prior_snapshot_id)
            if prior is None or prior.session_id != latest.session_id:
                break
            chain.append(prior)
            seen.add(prior.snapshot_id)
            current = prior

        chain.reverse()
        return chain

    def count(self) -> int:
        return len(self._snapshot_ids_on_disk())

    def list_snapshots(self, limit: int = 10) -> list[SnapshotEntry]:
        index = self.load_index()
        if index is None:
            return []
        return index.snapshots[:limit]

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    def load_index(self) -> SnapshotIndex | None:
        data = read_json(self.index_path)
        if not isinstance(data, dict):
            return None
        try:
            return SnapshotIndex.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Discarding invalid snapshot index: {e}")
            return None

    def _update_index(self, snapshot: Snapshot) -> None:
        index = self.load_index() or SnapshotIndex(
            project_path=snapshot.project_path,
            stats=IndexStats(),
        )

        entries = [e for e in index.snapshots if e.id != snapshot.snapshot_id]
        entries.insert(0, SnapshotEntry.from_snapshot(snapshot))
        index.snapshots = entries[: self.max_active]

        stats = index.stats
        stats.total_snapshots = len(index.snapshots)
        stats.last_snapshot = snapshot.timestamp
        if snapshot.trigger == SnapshotTrigger.PRE_COMPACT.value:
            stats.compaction_cycles = snapshot.compaction_cycle
            stats.last_compaction = snapshot.timestamp
        elif snapshot.trigger == SnapshotTrigger.TIME_INTERVAL.value:
            stats.last_time_based = snapshot.timestamp

        index.last_updated = time.time()
        atomic_write_text(self.index_path, index.model_dump_json(indent=2))

    # -------------------------------------------------------------------------
    # LATEST.md
    # -------------------------------------------------------------------------

    def write_latest(self, content: str) -> None:
        atomic_write_text(self.latest_path, content)

    def read_latest(self) -> str | None:
        return read_text(self.latest_path)

    # -------------------------------------------------------------------------
    # Archival
    # -------------------------------------------------------------------------

    def archive_stale(self, max_age_days: int = 30, now: float | None = None) -> list[str]:
        """
        Move old or uncatalogued snapshot files into archive/.

        A snapshot is stale when it is older than ``max_age_days`` or has
        fallen out of the catalog.

        Returns:
            Ids of the archived snapshots
        """
        now = time.time() if now is None else now
        cutoff = now - max_age_days * 86400

        index = self.load_index()
        catalogued = {e.id for e in index.snapshots} if index else None

        archived = []
        for snapshot_id in self._snapshot_ids_on_disk():
            path = self._snapshot_path(snapshot_id)
            snapshot = self.load(snapshot_id)
            timestamp = snapshot.timestamp if snapshot else path.stat().st_mtime
            dropped = catalogued is not None and snapshot_id not in catalogued
            if timestamp >= cutoff and not dropped:
                continue

            self.archive_dir.mkdir(parents=True, exist_ok=True)
            shutil.move(str(path), str(self.archive_dir / path.name))
            archived.append(snapshot_id)

        if archived and index is not None:
            moved = set(archived)
            index.snapshots = [e for e in index.snapshots if e.id not in moved]
            index.stats.total_snapshots = len(index.snapshots)
            index.last_updated = now
            atomic_write_text(self.index_path, index.model_dump_json(indent=2))

        if archived:
            logger.debug(f"Archived {len(archived)} snapshot(s)")
        return archived


__all__ = ["SNAPSHOT_ID_PATTERN", "SnapshotStore", "is_valid_snapshot_id"]
