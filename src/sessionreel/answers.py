"""Answer ingestion. Validates raw answer records into typed AnswerClips.

Raw section-answers document (as written by the upstream form processor):
  sectionId: "sec-1"
  sectionName: "Intro"
  sectionSubtitle: "About you"
  answers:
    - answerId: "a-1"
      questionId: "q-1"
      questionTitle: "Tell us about yourself"   # or questionLabel / questionTranscription
      answerType: video
      videoFilename: "a-1.mp4"
      videoUrl: "gs://bucket/org/patient_response/resp/user/a-1.mp4"  # set by URL mapping
      transcript: "..."
      transcribedWords: [{word, start_time, end_time}, ...]
      transcribedConfidence: 0.93

This is the only place that reads raw answer fields. Everything downstream
takes AnswerClip / SectionMetadata / Patient.
"""

from .errors import ValidationError
from .models import AnswerClip, Patient, SectionMetadata, TranscribedWord

REQUIRED_ANSWER_FIELDS = ("answerId", "questionId", "answerType", "videoFilename", "videoUrl")


def _optional_str(value) -> str:
    return value if isinstance(value, str) else ""


def resolve_question_title(
    title,
    label,
    transcription,
    label_word: str = "Question",
    max_words: int = 10,
) -> str:
    """Pick a display title for a question.

    Preference: explicit title, then the label with label_word removed,
    then the first max_words words of the spoken question, then "".
    """
    if isinstance(title, str) and title.strip():
        return title
    if isinstance(label, str) and label:
        return label.replace(label_word, "", 1).strip()
    if isinstance(transcription, str) and transcription:
        return " ".join(transcription.split(" ")[:max_words])
    return ""


def _parse_words(raw, index: int) -> tuple[TranscribedWord, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise ValidationError(f"Answer {index}: transcribedWords must be a list")

    words = []
    for j, w in enumerate(raw):
        if not isinstance(w, dict) or "word" not in w:
            raise ValidationError(f"Answer {index}: transcribed word {j} missing 'word'")
        start = w.get("start_time", w.get("startTime"))
        end = w.get("end_time", w.get("endTime"))
        try:
            start = float(start)
            end = float(end)
        except (TypeError, ValueError):
            raise ValidationError(
                f"Answer {index}: transcribed word {j} needs numeric start/end times"
            )
        if end < start:
            raise ValidationError(
                f"Answer {index}: transcribed word {j} ends ({end}) before it starts ({start})"
            )
        words.append(TranscribedWord(word=str(w["word"]), start_time=start, end_time=end))
    return tuple(words)


def _parse_confidence(raw, index: int) -> float | None:
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValidationError(f"Answer {index}: transcribedConfidence must be a number")
    if not 0 <= raw <= 1:
        raise ValidationError(
            f"Answer {index}: transcribedConfidence must be within [0, 1], got {raw}"
        )
    return float(raw)


def parse_answer_clip(
    record: dict,
    index: int = 0,
    label_word: str = "Question",
    max_title_words: int = 10,
) -> AnswerClip:
    """Validate one raw answer record (already URL-mapped) into an AnswerClip.

    Raises:
        ValidationError: Missing/invalid fields, naming the answer index.
    """
    if not isinstance(record, dict):
        raise ValidationError(f"Answer {index}: expected a mapping, got {type(record).__name__}")

    for name in REQUIRED_ANSWER_FIELDS:
        value = record.get(name)
        if not isinstance(value, str) or not value:
            raise ValidationError(f"Answer {index}: missing required field '{name}'")

    return AnswerClip(
        answer_id=record["answerId"],
        question_id=record["questionId"],
        question_title=resolve_question_title(
            record.get("questionTitle"),
            record.get("questionLabel"),
            record.get("questionTranscription"),
            label_word=label_word,
            max_words=max_title_words,
        ),
        media_url=record["videoUrl"],
        media_filename=record["videoFilename"],
        answer_type=record["answerType"],
        transcript=_optional_str(record.get("transcript")),
        transcribed_words=_parse_words(record.get("transcribedWords"), index),
        confidence=_parse_confidence(record.get("transcribedConfidence"), index),
    )


def parse_answer_clips(records: list[dict], **kwargs) -> list[AnswerClip]:
    """Validate a list of records, keeping order. Duplicate answer ids are rejected."""
    clips = []
    seen = set()
    for i, record in enumerate(records):
        clip = parse_answer_clip(record, i, **kwargs)
        if clip.answer_id in seen:
            raise ValidationError(f"Duplicate answer id: '{clip.answer_id}'")
        seen.add(clip.answer_id)
        clips.append(clip)
    return clips


def parse_section_metadata(section_answers: dict) -> SectionMetadata:
    """Read section id/name/subtitle and check the answers list is present.

    Raises:
        ValidationError: Missing sectionId or answers.
    """
    if not isinstance(section_answers, dict):
        raise ValidationError("Section answers: expected a mapping")
    section_id = section_answers.get("sectionId")
    if not isinstance(section_id, str) or not section_id:
        raise ValidationError("Section answers: missing required field 'sectionId'")
    if not isinstance(section_answers.get("answers"), list):
        raise ValidationError(f"Section {section_id}: 'answers' must be a list")

    return SectionMetadata(
        section_id=section_id,
        section_name=_optional_str(section_answers.get("sectionName")),
        subtitle=_optional_str(section_answers.get("sectionSubtitle")),
    )


def parse_patient(record: dict) -> Patient:
    return Patient(
        name=_optional_str(record.get("name")),
        email=_optional_str(record.get("email")),
        phone=_optional_str(record.get("phone")),
    )
