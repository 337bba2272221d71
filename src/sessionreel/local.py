"""Local collaborators for running the whole pipeline on one machine.

  LocalObjectStorage   objects are files under a root directory
  MemoryDocumentStore  documents in memory, optionally snapshotted to YAML
  LocalTranscoder      merge jobs rendered by ffmpeg in background tasks

The transcoder honors transcoder.OUTPUT_PROFILE so local output matches
what the hosted service produces: every input is scaled/padded to the
profile resolution and frame rate, then all inputs are concatenated.
"""

import asyncio
import copy
import logging
import shutil
import uuid
from datetime import datetime, timezone
from pathlib import Path
from urllib.parse import quote

import imageio_ffmpeg
import yaml

from .config import Settings
from .media import MoviepyFrameExtractor, MoviepyMediaProbe
from .models import JobState
from .providers import SERVER_TIMESTAMP, ArrayUnion, Collaborators, Condition, DocumentSnapshot
from .transcoder import OUTPUT_PROFILE

logger = logging.getLogger(__name__)

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()

UNKNOWN_JOB_STATE = "STATE_UNSPECIFIED"


# ── Object storage ─────────────────────────────────────────────────

class LocalObjectStorage:
    """Object paths map to files under root. Metadata is kept in memory."""

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self.metadata: dict[str, dict] = {}

    def local_path(self, path: str) -> Path:
        return self.root / path.lstrip("/")

    async def upload(self, local_path, path, content_type=None, metadata=None):
        dest = self.local_path(path)
        dest.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(shutil.copyfile, local_path, dest)
        meta = dict(metadata or {})
        if content_type:
            meta["contentType"] = content_type
        self.metadata[path] = meta
        logger.debug("Stored %s (%d bytes)", path, dest.stat().st_size)

    async def download(self, path, local_dest):
        src = self.local_path(path)
        if not src.exists():
            raise FileNotFoundError(f"Object not found: {path}")
        Path(local_dest).parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(shutil.copyfile, src, local_dest)

    async def set_metadata(self, path, metadata):
        if not self.local_path(path).exists():
            raise FileNotFoundError(f"Object not found: {path}")
        self.metadata.setdefault(path, {}).update(metadata)

    def preview_url(self, path, token):
        return f"{self.local_path(path).as_uri()}?token={quote(token)}"

    def uri(self, path):
        # String join keeps a trailing slash on folder paths.
        return f"{self.root}/{path.lstrip('/')}"

    def https_url(self, path):
        return self.local_path(path).as_uri()

    def readable_url(self, path):
        return str(self.local_path(path))


# ── Document store ─────────────────────────────────────────────────

def _now():
    return datetime.now(timezone.utc)


_OPERATORS = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a is not None and a < b,
    "<=": lambda a, b: a is not None and a <= b,
    ">": lambda a, b: a is not None and a > b,
    ">=": lambda a, b: a is not None and a >= b,
    "in": lambda a, b: a in b,
    "array-contains": lambda a, b: isinstance(a, list) and b in a,
}


def _matches(data: dict, condition: Condition) -> bool:
    if condition.operator not in _OPERATORS:
        raise ValueError(f"Unsupported query operator: '{condition.operator}'")
    return _OPERATORS[condition.operator](data.get(condition.field), condition.value)


class MemoryDocumentStore:
    """Documents keyed by slash path ('col/id/subcol/id').

    Writes hold a lock, so ArrayUnion appends from concurrent invocations
    never overwrite each other. If snapshot_path is set the whole store is
    loaded from it on start and written back after each write.
    """

    def __init__(self, snapshot_path: str | Path | None = None):
        self.snapshot_path = Path(snapshot_path) if snapshot_path else None
        self._docs: dict[str, dict] = {}
        self._lock = asyncio.Lock()
        if self.snapshot_path and self.snapshot_path.exists():
            with open(self.snapshot_path) as f:
                self._docs = yaml.safe_load(f) or {}

    def put(self, path: str, data: dict) -> None:
        """Seed a document directly (setup and tests)."""
        self._docs[path] = copy.deepcopy(data)
        self._save()

    def _save(self) -> None:
        if self.snapshot_path is None:
            return
        self.snapshot_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.snapshot_path, "w") as f:
            yaml.safe_dump(self._docs, f, sort_keys=True)

    async def get(self, path):
        doc = self._docs.get(path)
        return copy.deepcopy(doc) if doc is not None else None

    async def query(self, collection, conditions, limit=0):
        prefix = collection.rstrip("/") + "/"
        results = []
        for path, data in self._docs.items():
            if not path.startswith(prefix) or "/" in path[len(prefix):]:
                continue
            if all(_matches(data, c) for c in conditions):
                results.append(DocumentSnapshot(
                    id=path[len(prefix):], path=path, data=copy.deepcopy(data),
                ))
                if limit and len(results) >= limit:
                    break
        return results

    async def create(self, collection, data, with_timestamps=True):
        doc = copy.deepcopy(data)
        if with_timestamps:
            now = _now()
            doc["createdAt"] = now
            doc["updatedAt"] = now
        path = f"{collection.rstrip('/')}/{uuid.uuid4().hex[:20]}"
        async with self._lock:
            self._docs[path] = doc
            self._save()
        logger.debug("New document %s", path)
        return path

    async def update(self, path, data):
        async with self._lock:
            if path not in self._docs:
                raise KeyError(f"Document not found: {path}")
            doc = self._docs[path]
            for key, value in data.items():
                if isinstance(value, ArrayUnion):
                    current = list(doc.get(key) or [])
                    for item in value.values:
                        if item not in current:
                            current.append(copy.deepcopy(item))
                    doc[key] = current
                elif value is SERVER_TIMESTAMP:
                    doc[key] = _now()
                else:
                    doc[key] = copy.deepcopy(value)
            self._save()
        logger.debug("Updated document %s", path)


# ── Transcoder ─────────────────────────────────────────────────────

def _strip_file_scheme(uri: str) -> str:
    return uri[len("file://"):] if uri.startswith("file://") else uri


def build_concat_command(input_paths: list[str], output_path: str,
                         profile: dict = OUTPUT_PROFILE) -> list[str]:
    """ffmpeg command concatenating inputs (video + audio) at the output profile.

    Each input is normalized first (scale + pad to the profile size,
    square pixels, profile fps, 44.1kHz stereo audio) so concat sees
    identical stream parameters.
    """
    video = profile["video"]
    w, h, fps = video["width_pixels"], video["height_pixels"], video["frame_rate"]

    filter_parts = []
    concat_in = ""
    for i in range(len(input_paths)):
        filter_parts.append(
            f"[{i}:v]scale={w}:{h}:force_original_aspect_ratio=decrease,"
            f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2,setsar=1,fps={fps}[v{i}]"
        )
        filter_parts.append(
            f"[{i}:a]aformat=sample_rates=44100:channel_layouts=stereo[a{i}]"
        )
        concat_in += f"[v{i}][a{i}]"
    filter_parts.append(f"{concat_in}concat=n={len(input_paths)}:v=1:a=1[vout][aout]")

    inputs = []
    for p in input_paths:
        inputs.extend(["-i", p])

    return [
        _FFMPEG, "-y",
        *inputs,
        "-filter_complex", ";".join(filter_parts),
        "-map", "[vout]", "-map", "[aout]",
        "-c:v", "libx264", "-b:v", str(video["bitrate_bps"]), "-pix_fmt", "yuv420p",
        "-c:a", profile["audio"]["codec"], "-b:a", str(profile["audio"]["bitrate_bps"]),
        "-movflags", "+faststart",
        output_path,
    ]


class LocalTranscoder:
    """Accepts merge requests and renders each one in a background task.

    Jobs go PENDING -> RUNNING -> SUCCEEDED | FAILED. Unknown job ids
    report STATE_UNSPECIFIED.
    """

    def __init__(self, project: str = "local", region: str = "local"):
        self.project = project
        self.region = region
        self._states: dict[str, str] = {}
        self._tasks: set[asyncio.Task] = set()

    def location_path(self):
        return f"projects/{self.project}/locations/{self.region}"

    @staticmethod
    def _plan(request: dict) -> tuple[list[str], str]:
        """Resolve (input paths in edit order, output path) from a request."""
        config = request["job"]["config"]
        uris = {i["key"]: _strip_file_scheme(i["uri"]) for i in config["inputs"]}

        ordered = []
        for atom in config["edit_list"]:
            if atom.get("start_time_offset") or atom.get("end_time_offset"):
                raise ValueError(
                    f"Edit atom {atom['key']}: time offsets are not supported locally"
                )
            for key in atom["inputs"]:
                if key not in uris:
                    raise ValueError(f"Edit atom {atom['key']}: unknown input '{key}'")
                ordered.append(uris[key])

        out_dir = _strip_file_scheme(request["job"]["output_uri"]).rstrip("/")
        output_name = config["mux_streams"][0]["key"]
        return ordered, f"{out_dir}/{output_name}.mp4"

    async def create_job(self, request, timeout):
        input_paths, output_path = self._plan(request)
        job_id = uuid.uuid4().hex
        self._states[job_id] = JobState.PENDING
        task = asyncio.create_task(self._render(job_id, input_paths, output_path))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return f"{self.location_path()}/jobs/{job_id}"

    async def _render(self, job_id: str, input_paths: list[str], output_path: str):
        self._states[job_id] = JobState.RUNNING
        try:
            Path(output_path).parent.mkdir(parents=True, exist_ok=True)
            cmd = build_concat_command(input_paths, output_path)
            logger.info("Job %s: merging %d inputs -> %s",
                        job_id, len(input_paths), output_path)

            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await proc.communicate()
        except Exception:
            # Every job must reach a terminal state.
            self._states[job_id] = JobState.FAILED
            logger.exception("Job %s failed before ffmpeg finished", job_id)
            return
        if proc.returncode == 0:
            self._states[job_id] = JobState.SUCCEEDED
        else:
            self._states[job_id] = JobState.FAILED
            tail = stderr.decode(errors="replace").strip().splitlines()[-5:]
            logger.error("Job %s failed (ffmpeg exit %d): %s",
                         job_id, proc.returncode, " | ".join(tail))

    async def get_job_state(self, job_id):
        return self._states.get(job_id, UNKNOWN_JOB_STATE)


def build_local_collaborators(settings: Settings, root: str | Path,
                              snapshot_path: str | Path | None = None) -> Collaborators:
    """Wire local backends for one process."""
    return Collaborators(
        settings=settings,
        store=MemoryDocumentStore(snapshot_path),
        storage=LocalObjectStorage(root),
        transcoder=LocalTranscoder(settings.transcoder_project, settings.region),
        probe=MoviepyMediaProbe(),
        extractor=MoviepyFrameExtractor(),
    )
