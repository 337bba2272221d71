"""Tests for the section-answers trigger boundary."""

import logging

import pytest

from sessionreel.errors import ValidationError
from sessionreel.handler import (
    build_session_identity,
    handle_section_answers_write,
    is_valid_event_trigger,
    patient_response_path,
)
from sessionreel.providers import Condition
from sessionreel.session import sessions_collection

from conftest import raw_answer

PARAMS = {"organizationId": "org-1", "responseDocId": "resp-doc-1", "documentId": "sec-doc-1"}

RESPONSE = {
    "userId": "user-1",
    "seriesId": "series-1",
    "name": "Jane Doe",
    "email": "jane@example.com",
    "phone": "555-0100",
}


def _event(after):
    return {"params": dict(PARAMS), "after": after}


def _section_doc():
    return {
        "sectionId": "intro",
        "sectionName": "Introduction",
        "sectionSubtitle": "About you",
        "answers": [raw_answer("a-1"), raw_answer("a-2")],
    }


class TestIsValidEventTrigger:
    def test_document_written(self):
        assert is_valid_event_trigger(_event({"sectionId": "x"}))

    def test_document_deleted(self):
        assert not is_valid_event_trigger(_event(None))

    def test_empty_event(self):
        assert not is_valid_event_trigger({})


class TestPatientResponsePath:
    def test_path(self, settings):
        assert patient_response_path(settings, "org-1", "r1") == (
            "organizations/org-1/patient_response/r1"
        )


class TestBuildSessionIdentity:
    def test_series_id(self):
        identity = build_session_identity(PARAMS, "resp-doc-1", RESPONSE)
        assert identity.tenant_id == "org-1"
        assert identity.response_ref_id == "resp-doc-1"
        assert identity.response_id == "series-1"
        assert identity.user_id == "user-1"
        assert identity.document_id == "sec-doc-1"
        assert identity.patient.name == "Jane Doe"

    def test_draft_id_preferred(self):
        response = {**RESPONSE, "questionnaireDraftRef": {"id": "draft-9"}}
        assert build_session_identity(PARAMS, "r", response).response_id == "draft-9"

    def test_needs_response_id(self):
        response = {k: v for k, v in RESPONSE.items() if k != "seriesId"}
        with pytest.raises(ValidationError, match="questionnaireDraftRef.id or seriesId"):
            build_session_identity(PARAMS, "r", response)

    def test_needs_user_id(self):
        response = {k: v for k, v in RESPONSE.items() if k != "userId"}
        with pytest.raises(ValidationError, match="userId"):
            build_session_identity(PARAMS, "r", response)

    def test_needs_tenant(self):
        params = {k: v for k, v in PARAMS.items() if k != "organizationId"}
        with pytest.raises(ValidationError, match="organizationId"):
            build_session_identity(params, "r", RESPONSE)


class TestHandleSectionAnswersWrite:
    @pytest.mark.asyncio
    async def test_creates_session(self, deps):
        deps.store.put(patient_response_path(deps.settings, "org-1", "resp-doc-1"), RESPONSE)
        await handle_section_answers_write(_event(_section_doc()), deps)

        sessions = await deps.store.query(
            sessions_collection(deps.settings, "org-1"),
            [Condition("responseRefID", "==", "resp-doc-1")],
        )
        assert len(sessions) == 1
        section = sessions[0].data["sections"][0]
        assert section["sectionId"] == "intro"
        assert section["subtitle"] == "About you"
        assert [c["answerId"] for c in section["chapters"]] == ["a-1", "a-2"]

    @pytest.mark.asyncio
    async def test_deleted_document_ignored(self, deps, caplog):
        with caplog.at_level(logging.WARNING, logger="sessionreel"):
            await handle_section_answers_write(_event(None), deps)
        assert "No new data" in caplog.text
        assert deps.transcoder.requests == []

    @pytest.mark.asyncio
    async def test_missing_response_document(self, deps, caplog):
        with caplog.at_level(logging.ERROR, logger="sessionreel"):
            await handle_section_answers_write(_event(_section_doc()), deps)
        assert "Patient response not found" in caplog.text
        assert deps.transcoder.requests == []

    @pytest.mark.asyncio
    async def test_malformed_section_rejected(self, deps, caplog):
        deps.store.put(patient_response_path(deps.settings, "org-1", "resp-doc-1"), RESPONSE)
        with caplog.at_level(logging.ERROR, logger="sessionreel"):
            await handle_section_answers_write(_event({"answers": []}), deps)
        assert "sectionId" in caplog.text

    @pytest.mark.asyncio
    async def test_missing_response_doc_id(self, deps, caplog):
        event = _event(_section_doc())
        del event["params"]["responseDocId"]
        with caplog.at_level(logging.ERROR, logger="sessionreel"):
            await handle_section_answers_write(event, deps)
        assert "responseDocId" in caplog.text
