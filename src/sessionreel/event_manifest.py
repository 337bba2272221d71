"""Event manifest loader for local runs of one section-answers event.

The manifest stands in for the upstream form processor: it names the
respondent, the section, and a local source file for every video answer.
Follows the same ${var} path resolution as the rest of the CLI.

Event manifest schema:
  paths:
    clips: "/data/recordings"
  tenant: org-1
  response:
    id: resp-1                      # patient response document id
    userId: user-1
    seriesId: series-1              # and/or questionnaireDraftId
    name: "Jane Doe"
    email: "jane@example.com"
    phone: "555-0100"
  section:
    documentId: sec-doc-1           # section answers document id
    sectionId: intro
    sectionName: "Introduction"
    sectionSubtitle: "About you"
    answers:
      - answerId: a-1
        questionId: q-1
        questionTitle: "Tell us about yourself"
        answerType: video
        source: "${clips}/a-1.mp4"  # required for video answers
        transcript: "..."
"""

from pathlib import Path

import yaml

from .common import resolve_path_vars

VIDEO_ANSWER_TYPE = "video"


def _require(mapping: dict, key: str, where: str):
    if key not in mapping or mapping[key] in (None, ""):
        raise ValueError(f"{where}: missing required field '{key}'")
    return mapping[key]


def load_event_manifest(manifest_path: str | Path) -> dict:
    """Load, validate, and normalize an event manifest.

    Processing pipeline:
      1. Parse YAML.
      2. Validate tenant, response and section blocks.
      3. Resolve ${path} variables in answer sources.
      4. Default videoFilename to <answerId>.mp4; check for duplicate ids.

    Returns:
        Dict with tenant, response_doc_id, response (document data),
        document_id, section (section answers document data) and
        sources (videoFilename -> local source path).

    Raises:
        ValueError: Missing/invalid fields.
    """
    with open(manifest_path) as f:
        raw = yaml.safe_load(f) or {}

    tenant = str(_require(raw, "tenant", "Event manifest"))
    response = dict(_require(raw, "response", "Event manifest"))
    section = dict(_require(raw, "section", "Event manifest"))
    paths = raw.get("paths", {})

    response_doc_id = str(_require(response, "id", "Event manifest response"))
    _require(response, "userId", "Event manifest response")
    if not (response.get("questionnaireDraftId") or response.get("seriesId")):
        raise ValueError(
            "Event manifest response: needs 'questionnaireDraftId' or 'seriesId'"
        )

    response_doc = {k: v for k, v in response.items() if k not in ("id", "questionnaireDraftId")}
    if response.get("questionnaireDraftId"):
        response_doc["questionnaireDraftRef"] = {"id": str(response["questionnaireDraftId"])}

    document_id = str(_require(section, "documentId", "Event manifest section"))
    _require(section, "sectionId", "Event manifest section")
    answers = section.get("answers")
    if not isinstance(answers, list) or not answers:
        raise ValueError("Event manifest section: 'answers' must be a non-empty list")

    sources = {}
    normalized = []
    seen_ids = set()
    for i, answer in enumerate(answers):
        answer = dict(answer)
        aid = str(_require(answer, "answerId", f"Answer {i}"))
        if aid in seen_ids:
            raise ValueError(f"Duplicate answer id: '{aid}'")
        seen_ids.add(aid)
        answer["answerId"] = aid

        source = answer.pop("source", None)
        if answer.get("answerType") == VIDEO_ANSWER_TYPE:
            if not source:
                raise ValueError(f"Answer {i} ({aid}): video answers need a 'source'")
            filename = answer.setdefault("videoFilename", f"{aid}.mp4")
            sources[filename] = resolve_path_vars(str(source), paths)
        normalized.append(answer)

    section_doc = {k: v for k, v in section.items() if k != "documentId"}
    section_doc["answers"] = normalized

    return {
        "tenant": tenant,
        "response_doc_id": response_doc_id,
        "response": response_doc,
        "document_id": document_id,
        "section": section_doc,
        "sources": sources,
    }


def validate_event_sources(config: dict) -> None:
    """Check that every answer source file exists on disk.

    Raises:
        FileNotFoundError: Lists all missing files.
    """
    missing = [s for s in config["sources"].values() if not Path(s).exists()]
    if missing:
        msg = f"Missing {len(missing)} answer source file(s):\n"
        for p in missing:
            msg += f"  - {p}\n"
        raise FileNotFoundError(msg)
