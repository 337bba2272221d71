"""Runtime configuration: defaults, optional YAML file, env overrides.

Config file schema (every key optional, unknown keys rejected):
  env: dev                          # prod | dev | develop | test | demo
  bucket_name: "my-bucket.appspot.com"
  https_base_url: "https://storage.cloud.google.com"
  preview_url_root: "https://firebasestorage.googleapis.com"
  project_id: "my-project"
  region: us-central1
  transcoder_timeout_s: 300
  poll_max_attempts: 15
  poll_base_delay: 0.5
  thumbnail_save_retries: 2
  sessions_directory: sessions
  ...

Precedence: defaults < YAML file < environment (.env is loaded first).
"""

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path

import yaml
from dotenv import load_dotenv


VALID_ENVS = {"prod", "dev", "develop", "test", "demo"}

# Environment variable -> Settings field.
ENV_OVERRIDES = {
    "APP_ENV": "env",
    "STORAGE_BUCKET": "bucket_name",
    "PROJECT_ID": "project_id",
    "GCLOUD_PROJECT": "project_name",
    "SESSIONREEL_REGION": "region",
}

LOG_FORMAT = "%(asctime)s %(levelname)s:%(name)s:%(message)s"


@dataclass(frozen=True)
class Settings:
    env: str = "dev"

    # Object storage
    bucket_name: str = "sessionreel-local"
    https_base_url: str = "https://storage.cloud.google.com"
    preview_url_root: str = "https://firebasestorage.googleapis.com"
    response_directory: str = "patient_response"
    sessions_directory: str = "sessions"
    thumbnail_directory: str = "Thumbnails"

    # Project / transcoder
    project_id: str = "sessionreel-local"
    project_name: str = ""
    region: str = "us-central1"
    transcoder_timeout_s: float = 300.0
    poll_max_attempts: int = 15
    poll_base_delay: float = 0.5

    # Document store
    organization_collection: str = "organizations"
    patient_response_collection: str = "patient_response"
    sessions_collection: str = "sessions"
    section_answers_collection: str = "sectionAnswers"

    # Responses
    video_answer_type: str = "video"
    new_session_status: str = "New"
    question_label_word: str = "Question"
    max_title_words: int = 10

    # Retry
    thumbnail_save_retries: int = 2
    retry_base_delay: float = 0.5

    @property
    def transcoder_project(self) -> str:
        """Project used in transcoder location paths."""
        return self.project_name or self.project_id


_POSITIVE_NUMBERS = ("transcoder_timeout_s", "poll_base_delay", "retry_base_delay")
_NON_NEGATIVE_INTS = ("poll_max_attempts", "thumbnail_save_retries")
_NON_EMPTY = (
    "bucket_name", "sessions_directory", "thumbnail_directory",
    "response_directory", "sessions_collection", "organization_collection",
    "patient_response_collection", "video_answer_type", "new_session_status",
)


def _coerce(name: str, value, default):
    """Coerce a raw YAML/env value to the type of the field default."""
    if isinstance(default, bool):
        return bool(value)
    if isinstance(default, int):
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"Config: {name} must be an integer, got {value!r}")
    if isinstance(default, float):
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValueError(f"Config: {name} must be a number, got {value!r}")
    return str(value) if value is not None else ""


def validate_settings(settings: Settings) -> Settings:
    """Check value ranges. Returns the settings unchanged.

    Raises:
        ValueError: First invalid field found.
    """
    if settings.env not in VALID_ENVS:
        raise ValueError(
            f"Config: invalid env '{settings.env}'. Valid: {sorted(VALID_ENVS)}"
        )
    for name in _POSITIVE_NUMBERS:
        if getattr(settings, name) <= 0:
            raise ValueError(f"Config: {name} must be > 0, got {getattr(settings, name)!r}")
    for name in _NON_NEGATIVE_INTS:
        if getattr(settings, name) < 0:
            raise ValueError(f"Config: {name} must be >= 0, got {getattr(settings, name)!r}")
    if settings.max_title_words < 1:
        raise ValueError(
            f"Config: max_title_words must be >= 1, got {settings.max_title_words!r}"
        )
    for name in _NON_EMPTY:
        if not getattr(settings, name):
            raise ValueError(f"Config: {name} must not be empty")
    return settings


def load_config(path: str | Path | None = None, environ=None) -> Settings:
    """Build Settings from defaults, an optional YAML file and the environment.

    Args:
        path: Optional YAML config file.
        environ: Mapping used for overrides. Defaults to os.environ after
            loading a .env file from the working directory.

    Returns:
        Validated Settings.

    Raises:
        ValueError: Unknown keys or invalid values.
        FileNotFoundError: path given but missing.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    defaults = Settings()
    known = {f.name: getattr(defaults, f.name) for f in fields(Settings)}
    values = {}

    if path is not None:
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"Config file not found: {p}")
        with open(p) as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Config: {p} must contain a mapping at the top level")
        unknown = sorted(set(raw) - set(known))
        if unknown:
            raise ValueError(f"Config: unknown key(s): {', '.join(unknown)}")
        for name, value in raw.items():
            values[name] = _coerce(name, value, known[name])

    for env_name, field_name in ENV_OVERRIDES.items():
        if environ.get(env_name):
            values[field_name] = _coerce(field_name, environ[env_name], known[field_name])

    return validate_settings(replace(defaults, **values))


def configure_logging(settings: Settings) -> None:
    """Send pipeline logs to stderr. Verbose outside prod."""
    level = logging.INFO if settings.env == "prod" else logging.DEBUG
    root = logging.getLogger("sessionreel")
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    # Our handler already writes each record once.
    root.propagate = False
