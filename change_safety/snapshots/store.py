"""
Snapshot Store — write-once, on-disk backups of files before a change.

Behavioral Contract:
- One JSON file per snapshot id under the project-local snapshot directory
- Write-once: a snapshot file is created exclusively and never rewritten
- Restore writes back byte-identical content for every recorded path
  (UTF-8, newline translation disabled) and is idempotent
- A missing restore target is reported as a partial failure; the remaining
  paths are still restored
- Expiry is lazy: expired snapshots are deleted when they are accessed or listed
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from pydantic import ValidationError

from change_safety.errors import SnapshotError
from change_safety.ids import new_id
from change_safety.models.execution import RestoreResult
from change_safety.models.snapshot import Snapshot

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(days=7)

# The snapshot directory ignores itself; git status never lists it
GITIGNORE_CONTENT = "*\n"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def read_exact(path: Path) -> str:
    with open(path, "r", encoding="utf-8", newline="") as f:
        return f.read()


def write_exact(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)


class SnapshotStore:
    """Persists and restores pre-change file contents for one project."""

    def __init__(
        self,
        project_path: Path,
        snapshot_dir: str = ".change-safety/snapshots",
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.project_path = Path(project_path).resolve()
        self.snapshot_dir = self.project_path / snapshot_dir
        self.ttl = ttl
        self._clock = clock

    def _snapshot_file(self, snapshot_id: str) -> Path:
        if not snapshot_id or "/" in snapshot_id or "\\" in snapshot_id or snapshot_id.startswith("."):
            raise SnapshotError(f"Invalid snapshot id: {snapshot_id!r}")
        return self.snapshot_dir / f"{snapshot_id}.json"

    def resolve(self, rel_path: str) -> Path:
        """Absolute path for a project-relative path; refuses paths outside the project."""
        target = (self.project_path / rel_path).resolve()
        if target != self.project_path and self.project_path not in target.parents:
            raise SnapshotError(f"Path escapes project root: {rel_path}")
        return target

    def _ensure_gitignore(self) -> None:
        gitignore = self.snapshot_dir / ".gitignore"
        if not gitignore.exists():
            gitignore.write_text(GITIGNORE_CONTENT, encoding="utf-8")

    # --- Writing ---

    def take(self, paths: Iterable[str], snapshot_id: Optional[str] = None) -> str:
        """Record the current contents of ``paths`` and return the snapshot id."""
        snapshot_id = snapshot_id or new_id("snap")
        files: Dict[str, Optional[str]] = {}

        try:
            for rel_path in paths:
                target = self.resolve(rel_path)
                files[rel_path] = read_exact(target) if target.exists() else None
        except (OSError, UnicodeDecodeError) as e:
            raise SnapshotError(f"Cannot read {rel_path}: {e}") from e

        snapshot = Snapshot(id=snapshot_id, created_at=self._clock(), files=files)
        snapshot_file = self._snapshot_file(snapshot_id)
        try:
            self.snapshot_dir.mkdir(parents=True, exist_ok=True)
            self._ensure_gitignore()
            with open(snapshot_file, "x", encoding="utf-8") as f:
                f.write(snapshot.model_dump_json(indent=2))
        except FileExistsError as e:
            raise SnapshotError(f"Snapshot {snapshot_id} already exists") from e
        except OSError as e:
            raise SnapshotError(f"Cannot write snapshot {snapshot_id}: {e}") from e

        logger.info("Snapshot %s taken (%d files)", snapshot_id, len(files))
        return snapshot_id

    # --- Reading ---

    def _load(self, snapshot_file: Path) -> Snapshot:
        try:
            return Snapshot.model_validate_json(snapshot_file.read_text(encoding="utf-8"))
        except (OSError, ValidationError, json.JSONDecodeError) as e:
            raise SnapshotError(f"Unreadable snapshot {snapshot_file.name}: {e}") from e

    def get(self, snapshot_id: str) -> Optional[Snapshot]:
        """Load a snapshot; expired snapshots are deleted and reported as absent."""
        snapshot_file = self._snapshot_file(snapshot_id)
        if not snapshot_file.exists():
            return None
        snapshot = self._load(snapshot_file)
        if snapshot.is_expired(self._clock(), self.ttl):
            logger.info("Snapshot %s expired, removing", snapshot_id)
            snapshot_file.unlink(missing_ok=True)
            return None
        return snapshot

    def list_snapshots(self) -> List[Snapshot]:
        """All live snapshots, oldest first. Expired ones are swept on the way."""
        self.sweep_expired()
        if not self.snapshot_dir.exists():
            return []
        snapshots = []
        for snapshot_file in sorted(self.snapshot_dir.glob("*.json")):
            try:
                snapshots.append(self._load(snapshot_file))
            except SnapshotError:
                logger.warning("Skipping unreadable snapshot %s", snapshot_file.name)
        return sorted(snapshots, key=lambda s: (s.created_at, s.id))

    # --- Restoring and expiry ---

    def restore(self, snapshot_id: str) -> RestoreResult:
        """Write every recorded path back to its original state."""
        try:
            snapshot = self.get(snapshot_id)
        except SnapshotError as e:
            return RestoreResult(snapshot_id=snapshot_id, success=False, error=str(e))
        if snapshot is None:
            return RestoreResult(
                snapshot_id=snapshot_id,
                success=False,
                error=f"Snapshot not found for {snapshot_id}",
            )

        restored, removed, missing, failed = [], [], [], []
        for rel_path, content in snapshot.files.items():
            try:
                target = self.resolve(rel_path)
                if content is None:
                    if target.exists():
                        target.unlink()
                        removed.append(rel_path)
                    continue
                if not target.exists():
                    missing.append(rel_path)
                    continue
                write_exact(target, content)
                restored.append(rel_path)
            except (OSError, SnapshotError) as e:
                logger.error("Could not restore %s from %s: %s", rel_path, snapshot_id, e)
                failed.append(rel_path)

        success = not missing and not failed
        error = None
        if not success:
            error = (
                f"Partial restore of {snapshot_id}: "
                f"missing={missing} failed={failed}"
            )
            logger.error(error)
        else:
            logger.info("Restored snapshot %s", snapshot_id)

        return RestoreResult(
            snapshot_id=snapshot_id,
            success=success,
            restored_paths=restored,
            removed_paths=removed,
            missing_paths=missing,
            failed_paths=failed,
            error=error,
        )

    def expire(self, snapshot_id: str) -> bool:
        """Delete a snapshot now. Returns False if it did not exist."""
        snapshot_file = self._snapshot_file(snapshot_id)
        if not snapshot_file.exists():
            return False
        snapshot_file.unlink()
        return True

    def sweep_expired(self) -> int:
        """Delete every expired snapshot; returns how many were removed."""
        if not self.snapshot_dir.exists():
            return 0
        now = self._clock()
        removed = 0
        for snapshot_file in self.snapshot_dir.glob("*.json"):
            try:
                snapshot = self._load(snapshot_file)
            except SnapshotError:
                continue
            if snapshot.is_expired(now, self.ttl):
                snapshot_file.unlink(missing_ok=True)
                removed += 1
        if removed:
            logger.info("Swept %d expired snapshots", removed)
        return removed
