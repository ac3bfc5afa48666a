"""
Portable progress snapshot (file-based sync format).

Wire format (JSON, camelCase):

    {
      "version": "1.0",
      "exportDate": "2024-05-01T18:30:00+00:00",
      "appVersion": "1.0.0",
      "progress": [{"catalogId": 1, "status": "learning", ...}],
      "history": [{"catalogId": 1, "reviewDate": "...", "quality": 2, ...}]
    }

Timestamps without an offset are read as UTC.
"""

from __future__ import annotations

from datetime import date, datetime
from pathlib import Path
from typing import Any, Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from cometode.delivery.scheduler import derive_status
from cometode.errors import SnapshotValidationError

SNAPSHOT_VERSION = "1.0"


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ProgressEntry(_WireModel):
    """Learning state of one reviewed problem."""

    catalog_id: int
    status: Literal["new", "learning", "reviewing"]
    repetitions: int = Field(ge=0)
    interval: int = Field(ge=0)
    ease_factor: float = Field(ge=1.3)
    next_review_date: date | None = None
    first_learned_at: datetime | None = None
    last_reviewed_at: datetime | None = None
    total_reviews: int = Field(ge=0)

    @field_validator("next_review_date", mode="before")
    @classmethod
    def _date_only(cls, value: Any) -> Any:
        # Full timestamps are truncated to their date
        if isinstance(value, str) and len(value) > 10:
            return value[:10]
        return value

    @model_validator(mode="after")
    def _status_matches_repetitions(self) -> ProgressEntry:
        if self.status == "new":
            if self.repetitions:
                raise ValueError("status 'new' requires repetitions=0")
        elif self.status != derive_status(self.repetitions):
            raise ValueError(
                f"status '{self.status}' does not match repetitions={self.repetitions}"
            )
        return self


class HistoryEntry(_WireModel):
    """One review event."""

    catalog_id: int
    review_date: datetime
    quality: int = Field(ge=0, le=3)
    interval_before: int | None = None
    interval_after: int | None = None
    ease_factor_before: float | None = None
    ease_factor_after: float | None = None


class Snapshot(_WireModel):
    """Versioned export of all reviewed progress plus full history."""

    version: str
    export_date: datetime
    app_version: str | None = None
    progress: list[ProgressEntry]
    history: list[HistoryEntry]

    @property
    def exported_count(self) -> int:
        return len(self.progress)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


def parse_snapshot(data: dict[str, Any] | str | bytes) -> Snapshot:
    """
    Validate a snapshot from a decoded dict or raw JSON.

    Raises:
        SnapshotValidationError: Missing or invalid fields, or unparseable JSON
    """
    try:
        if isinstance(data, (str, bytes)):
            snapshot = Snapshot.model_validate_json(data)
        else:
            snapshot = Snapshot.model_validate(data)
    except ValidationError as e:
        raise SnapshotValidationError(f"Invalid snapshot: {e.error_count()} error(s): {e}") from e
    except UnicodeDecodeError as e:
        raise SnapshotValidationError(f"Invalid snapshot: not UTF-8 ({e.reason})") from e

    if snapshot.version.split(".")[0] != SNAPSHOT_VERSION.split(".")[0]:
        logger.warning(f"Snapshot format {snapshot.version} differs from {SNAPSHOT_VERSION}")
    return snapshot


def load_snapshot_file(path: Path) -> Snapshot:
    """Read and validate a snapshot file. OSError propagates to the caller."""
    return parse_snapshot(Path(path).read_bytes())


def write_snapshot_file(path: Path, snapshot: Snapshot) -> Path:
    """
    Write a snapshot, replacing any existing file.

    The content goes to a sibling temp file first so readers never see a
    half-written snapshot.
    """
    path = Path(path)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(snapshot.to_json(), encoding="utf-8")
    tmp.replace(path)
    logger.debug(f"Snapshot written to {path}")
    return path
