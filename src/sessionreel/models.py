"""Typed records flowing through the pipeline.

Everything here is a frozen dataclass. Records that end up in the document
store expose to_dict(), which produces the stored camelCase shape. The store's
array-union append only skips a section whose dict is identical to one
already stored. Every assembly mints a fresh preview token, so reprocessing
the same answers appends a second section.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class TranscribedWord:
    word: str
    start_time: float
    end_time: float

    def to_dict(self) -> dict:
        return {"word": self.word, "startTime": self.start_time, "endTime": self.end_time}


@dataclass(frozen=True)
class AnswerClip:
    """One submitted video answer, validated at ingestion."""

    answer_id: str
    question_id: str
    question_title: str
    media_url: str
    media_filename: str
    answer_type: str
    transcript: str = ""
    transcribed_words: tuple[TranscribedWord, ...] = ()
    confidence: float | None = None


@dataclass(frozen=True)
class ChapterTime:
    start_time: float
    end_time: float

    def to_dict(self) -> dict:
        return {"startTime": self.start_time, "endTime": self.end_time}


@dataclass(frozen=True)
class Chapter:
    """Timed segment of a merged section video, one per answer."""

    answer_id: str
    question_title: str
    transcript: str
    time: ChapterTime

    def to_dict(self) -> dict:
        return {
            "answerId": self.answer_id,
            "questionTitle": self.question_title,
            "transcript": self.transcript,
            "time": self.time.to_dict(),
        }


@dataclass(frozen=True)
class SectionMetadata:
    section_id: str
    section_name: str = ""
    subtitle: str = ""


@dataclass(frozen=True)
class SessionSection:
    section_id: str
    section_name: str
    subtitle: str
    chapters: tuple[Chapter, ...]
    media_url: str
    storage_media_url_path: str
    tenant_id: str

    @property
    def video_filename(self) -> str:
        """Basename of the merged video object."""
        return self.storage_media_url_path.rsplit("/", 1)[-1]

    def to_dict(self) -> dict:
        return {
            "sectionId": self.section_id,
            "sectionName": self.section_name,
            "subtitle": self.subtitle,
            "chapters": [c.to_dict() for c in self.chapters],
            "mediaUrl": self.media_url,
            "storageMediaUrlPath": self.storage_media_url_path,
            "tenantId": self.tenant_id,
        }


@dataclass(frozen=True)
class Patient:
    name: str = ""
    email: str = ""
    phone: str = ""

    def to_dict(self) -> dict:
        return {"name": self.name, "email": self.email, "phone": self.phone}


@dataclass(frozen=True)
class SessionIdentity:
    """Who a session belongs to and where its answers live.

    response_ref_id is the patient response document id (the session
    lookup key); response_id is the questionnaire draft id, or the series
    id when there is no draft, and names the storage folder.
    """

    tenant_id: str
    response_ref_id: str
    response_id: str
    user_id: str
    document_id: str
    patient: Patient = field(default_factory=Patient)


@dataclass(frozen=True)
class JobInput:
    key: str
    uri: str

    def to_dict(self) -> dict:
        return {"key": self.key, "uri": self.uri}


@dataclass(frozen=True)
class EditAtom:
    key: str
    inputs: tuple[str, ...]
    start_time_offset: float | None = None
    end_time_offset: float | None = None

    def to_dict(self) -> dict:
        atom = {"key": self.key, "inputs": list(self.inputs)}
        if self.start_time_offset:
            atom["start_time_offset"] = self.start_time_offset
        if self.end_time_offset:
            atom["end_time_offset"] = self.end_time_offset
        return atom


class JobState:
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    IN_PROGRESS = frozenset({PENDING, RUNNING})


@dataclass(frozen=True)
class TranscodeJob:
    """A submitted merge job. Lives only for the duration of one merge."""

    job_id: str
    inputs: tuple[JobInput, ...]
    edit_atoms: tuple[EditAtom, ...]
    state: str = JobState.PENDING
