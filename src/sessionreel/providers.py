"""Collaborator interfaces consumed by the pipeline.

The pipeline never constructs clients itself. A Collaborators bundle is
built once at process start (see local.build_local_collaborators) and
handed to every stage.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from .config import Settings


# ── Document store ─────────────────────────────────────────────────

class ArrayUnion:
    """Update sentinel: append values not already present (structural equality)."""

    def __init__(self, *values):
        self.values = list(values)

    def __repr__(self):
        return f"ArrayUnion({self.values!r})"


class _ServerTimestamp:
    def __repr__(self):
        return "SERVER_TIMESTAMP"


# Update sentinel: the store substitutes its own write time.
SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class Condition:
    field: str
    operator: str
    value: Any


@dataclass(frozen=True)
class DocumentSnapshot:
    id: str
    path: str
    data: dict


class DocumentStore(Protocol):
    async def get(self, path: str) -> dict | None: ...

    async def query(self, collection: str, conditions: list[Condition],
                    limit: int = 0) -> list[DocumentSnapshot]: ...

    async def create(self, collection: str, data: dict,
                     with_timestamps: bool = True) -> str:
        """Add a document with a generated id. Returns its path."""
        ...

    async def update(self, path: str, data: dict) -> None:
        """Merge data into an existing document. ArrayUnion appends must be atomic."""
        ...


# ── Object storage ─────────────────────────────────────────────────

class ObjectStorage(Protocol):
    async def upload(self, local_path: str | Path, path: str,
                     content_type: str | None = None,
                     metadata: dict | None = None) -> None: ...

    async def download(self, path: str, local_dest: str | Path) -> None: ...

    async def set_metadata(self, path: str, metadata: dict) -> None: ...

    def preview_url(self, path: str, token: str) -> str:
        """Unauthenticated URL addressable only with the object's access token."""
        ...

    def uri(self, path: str) -> str:
        """Location understood by the transcoding service."""
        ...

    def https_url(self, path: str) -> str: ...

    def readable_url(self, path: str) -> str:
        """Location the media probe can open directly."""
        ...


# ── Transcoding / media ────────────────────────────────────────────

class TranscoderService(Protocol):
    def location_path(self) -> str: ...

    async def create_job(self, request: dict, timeout: float) -> str:
        """Submit a job. Returns the full job name (…/jobs/<id>)."""
        ...

    async def get_job_state(self, job_id: str) -> str: ...


class MediaProbe(Protocol):
    async def duration(self, source: str) -> float: ...


class FrameExtractor(Protocol):
    async def extract_frame(self, local_media_path: str | Path,
                            local_output_path: str | Path) -> None: ...


@dataclass
class Collaborators:
    settings: Settings
    store: DocumentStore
    storage: ObjectStorage
    transcoder: TranscoderService
    probe: MediaProbe
    extractor: FrameExtractor
