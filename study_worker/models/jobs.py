# =============================================================================
# Job Record — the worker's view of a job row
# =============================================================================
#
# The processor never touches ORM objects. The repository maps each row to
# a JobRecord: the fields the core needs (id, status, input) plus a
# `parameters` dict holding everything artifact-specific (title, subject,
# quiz settings, ...), which is passed through untouched to generation and
# artifact creation.
# =============================================================================

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from study_worker.db.models import JobStatus


class JobRecord(BaseModel):
    """A job as fetched for processing."""

    model_config = ConfigDict(frozen=True)

    id: str
    status: JobStatus = JobStatus.PENDING
    text: str | None = None
    file_url: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None

    @property
    def has_file_reference(self) -> bool:
        return bool(self.file_url and self.file_url.strip())

    @property
    def has_text(self) -> bool:
        return bool(self.text and self.text.strip())
