"""Trigger boundary for "section answers written" events.

Event shape:
  params:
    organizationId: tenant id
    responseDocId:  patient response document id
    documentId:     section answers document id
  after: section answers document data, or None if it was deleted

The patient response document
({organizations}/{org}/{patient_response}/{responseDocId}) supplies the
respondent's contact details and the response/series ids.
"""

import logging

from .answers import parse_patient, parse_section_metadata
from .errors import ValidationError
from .models import SessionIdentity
from .providers import Collaborators
from .session import assemble_session

logger = logging.getLogger(__name__)


def patient_response_path(settings, tenant_id: str, response_doc_id: str) -> str:
    return (
        f"{settings.organization_collection}/{tenant_id}/"
        f"{settings.patient_response_collection}/{response_doc_id}"
    )


def is_valid_event_trigger(event: dict) -> bool:
    """True if the written document still exists after the event."""
    return bool(event) and event.get("after") is not None


def build_session_identity(params: dict, response_doc_id: str, response: dict) -> SessionIdentity:
    """Derive the session identity from event params and the patient response.

    Raises:
        ValidationError: Missing ids.
    """
    for name in ("organizationId", "documentId"):
        if not params.get(name):
            raise ValidationError(f"Event: missing required param '{name}'")

    draft = response.get("questionnaireDraftRef") or {}
    draft_id = draft.get("id") if isinstance(draft, dict) else None
    response_id = draft_id or response.get("seriesId")
    if not response_id:
        raise ValidationError(
            f"Patient response {response_doc_id}: needs questionnaireDraftRef.id or seriesId"
        )
    user_id = response.get("userId")
    if not user_id:
        raise ValidationError(f"Patient response {response_doc_id}: missing 'userId'")

    logger.debug("Response %s uses %s id %s", response_doc_id,
                 "draft" if draft_id else "series", response_id)
    return SessionIdentity(
        tenant_id=params["organizationId"],
        response_ref_id=response_doc_id,
        response_id=response_id,
        user_id=user_id,
        document_id=params["documentId"],
        patient=parse_patient(response),
    )


async def handle_section_answers_write(event: dict, deps: Collaborators) -> None:
    """Run session assembly for one section-answers write event. Never raises."""
    if not is_valid_event_trigger(event):
        logger.warning("No new data to process")
        return None

    settings = deps.settings
    params = event.get("params") or {}
    try:
        response_doc_id = params.get("responseDocId")
        if not response_doc_id:
            raise ValidationError("Event: missing required param 'responseDocId'")

        response_path = patient_response_path(
            settings, params.get("organizationId"), response_doc_id,
        )
        response = await deps.store.get(response_path)
        if response is None:
            raise ValidationError(f"Patient response not found: {response_path}")

        identity = build_session_identity(params, response_doc_id, response)
        section_answers = event["after"]
        section = parse_section_metadata(section_answers)
    except Exception:
        logger.exception("Rejected section answers event %s", params.get("documentId"))
        return None

    await assemble_session(section_answers["answers"], section, identity, deps)
    logger.info("Section %s processing completed", section.section_id)
    return None
