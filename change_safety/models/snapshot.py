"""Snapshot — immutable on-disk backup of the files a change touches."""

from datetime import datetime, timedelta
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict


class Snapshot(BaseModel):
    """
    Original contents keyed by project-relative path.

    A ``None`` value records a path that did not exist when the snapshot was
    taken; restoring the snapshot removes that file again.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    created_at: datetime
    files: Dict[str, Optional[str]]

    def is_expired(self, now: datetime, ttl: timedelta) -> bool:
        return now - self.created_at >= ttl
