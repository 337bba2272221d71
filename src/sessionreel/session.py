"""Session assembly — one inbound section of answers becomes one SessionSection,
appended to the respondent's Session (created on first section).

Pipeline for one section:
  1. Keep video answers, attach their storage URIs, validate into AnswerClips.
  2. Probe durations -> chapter timeline.
  3. Merge the clips with the transcoding service and wait for SUCCEEDED.
  4. Give the merged video an access token -> preview URL.
  5. Upsert the session; on creation only, generate the thumbnail.

Storage layout (tenant-scoped):
  {tenant}/{response_directory}/{response_id}/{user_id}/{answer}.mp4   answer clips
  {tenant}/{sessions_directory}/{doc}_{response}_{section}.mp4         merged sections
  {tenant}/{thumbnail_directory}/{doc}_{response}_{section}_thumbnail.jpg

The lookup-then-create in upsert_session is two round trips and is not
transactional. Two first sections racing can create two sessions; the
store's per-document ArrayUnion keeps concurrent appends to an existing
session safe.
"""

import logging
from dataclasses import dataclass

from .answers import parse_answer_clips
from .chapters import generate_session_chapters
from .common import join_storage_path, new_access_token
from .models import SectionMetadata, SessionIdentity, SessionSection
from .providers import SERVER_TIMESTAMP, ArrayUnion, Collaborators, Condition
from .responses import NO_MATCHING_RESPONSES, FilterOptions, UrlOptions, get_filtered_response
from .retry import RetryPolicy
from .thumbnail import TOKEN_METADATA_KEY, run_thumbnail_pipeline
from .transcoder import merge_video

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpsertResult:
    path: str
    created: bool


# ── Paths ──────────────────────────────────────────────────────────

def response_path(settings, identity: SessionIdentity) -> str:
    return join_storage_path(
        identity.tenant_id, settings.response_directory,
        identity.response_id, identity.user_id, trailing_slash=True,
    )


def sessions_path(settings, tenant_id: str) -> str:
    return join_storage_path(tenant_id, settings.sessions_directory, trailing_slash=True)


def output_file_name(identity: SessionIdentity, section_id: str) -> str:
    return f"{identity.document_id}_{identity.response_id}_{section_id}"


def sessions_collection(settings, tenant_id: str) -> str:
    return f"{settings.organization_collection}/{tenant_id}/{settings.sessions_collection}"


# ── Section generation ─────────────────────────────────────────────

async def generate_preview_url(deps: Collaborators, video_path: str) -> str:
    """Attach a fresh access token to the object and return its preview URL."""
    token = new_access_token()
    await deps.storage.set_metadata(video_path, {TOKEN_METADATA_KEY: token})
    url = deps.storage.preview_url(video_path, token)
    logger.info("Preview URL generated for %s", video_path)
    return url


async def generate_session_section(
    section_answers: list[dict],
    section: SectionMetadata,
    identity: SessionIdentity,
    deps: Collaborators,
):
    """Build the SessionSection for one section of answers.

    Returns:
        SessionSection, or NO_MATCHING_RESPONSES if the section has no
        video answers.

    Raises:
        ValidationError, MediaProbeError, TranscodeFailure, RetryExhausted,
        or store/storage errors from the collaborators.
    """
    settings = deps.settings
    clips_path = response_path(settings, identity)
    logger.info("Section %s: %d answers", section.section_id, len(section_answers))

    records = get_filtered_response(
        section_answers,
        FilterOptions("answerType", settings.video_answer_type),
        include_url=True,
        url_options=UrlOptions(
            filename="videoFilename",
            storage_path=deps.storage.uri(clips_path),
            url_attribute_name="videoUrl",
        ),
    )
    if records is NO_MATCHING_RESPONSES:
        return NO_MATCHING_RESPONSES

    clips = parse_answer_clips(
        records,
        label_word=settings.question_label_word,
        max_title_words=settings.max_title_words,
    )

    chapters = await generate_session_chapters(clips, deps.probe, deps.storage, clips_path)
    logger.info("Chapter generation completed for section %s", section.section_id)

    out_dir = sessions_path(settings, identity.tenant_id)
    out_name = output_file_name(identity, section.section_id)
    job = await merge_video(
        deps.transcoder,
        clips,
        output_uri=deps.storage.uri(out_dir),
        output_name=out_name,
        timeout=settings.transcoder_timeout_s,
        policy=RetryPolicy(settings.poll_max_attempts, settings.poll_base_delay),
    )
    logger.info("Video responses merged, job %s: %s", job.job_id, job.state)

    video_path = join_storage_path(out_dir, f"{out_name}.mp4")
    preview_url = await generate_preview_url(deps, video_path)

    return SessionSection(
        section_id=section.section_id,
        section_name=section.section_name,
        subtitle=section.subtitle,
        chapters=tuple(chapters),
        media_url=preview_url,
        storage_media_url_path=deps.storage.https_url(video_path),
        tenant_id=identity.tenant_id,
    )


# ── Upsert ─────────────────────────────────────────────────────────

async def upsert_session(deps: Collaborators, identity: SessionIdentity,
                         section: SessionSection) -> UpsertResult:
    """Append section to the identity's session, creating the session if needed."""
    settings = deps.settings
    collection = sessions_collection(settings, identity.tenant_id)
    existing = await deps.store.query(
        collection,
        [Condition("responseRefID", "==", identity.response_ref_id)],
        limit=1,
    )

    if existing:
        path = existing[0].path
        await deps.store.update(path, {
            "sections": ArrayUnion(section.to_dict()),
            "updatedAt": SERVER_TIMESTAMP,
        })
        logger.info("Session %s updated with section %s", path, section.section_id)
        return UpsertResult(path=path, created=False)

    path = await deps.store.create(collection, {
        "status": settings.new_session_status,
        "patient": identity.patient.to_dict(),
        "sections": [section.to_dict()],
        "responseRefID": identity.response_ref_id,
        "isDeleted": False,
    }, with_timestamps=True)
    logger.info("New session created: %s", path)
    return UpsertResult(path=path, created=True)


# ── Entry point ────────────────────────────────────────────────────

async def assemble_session(
    section_answers: list[dict],
    section: SectionMetadata,
    identity: SessionIdentity,
    deps: Collaborators,
) -> None:
    """Process one inbound section end to end.

    Never raises: every failure is logged with its cause and the
    invocation ends. Re-running for the same event builds a new section
    with a fresh preview token and appends it again.
    Only a byte-identical section is a no-op in the store's union append.
    """
    settings = deps.settings
    try:
        result = await generate_session_section(section_answers, section, identity, deps)
        if result is NO_MATCHING_RESPONSES:
            logger.warning("Section %s has no video answers; nothing to process",
                           section.section_id)
            return None

        upsert = await upsert_session(deps, identity, result)
        if not upsert.created:
            return None

        video_path = join_storage_path(
            sessions_path(settings, identity.tenant_id), result.video_filename,
        )
        await run_thumbnail_pipeline(
            deps.store, deps.storage, deps.extractor,
            video_path=video_path,
            thumbnail_directory=join_storage_path(identity.tenant_id, settings.thumbnail_directory),
            session_path=upsert.path,
            save_retries=settings.thumbnail_save_retries,
            base_delay=settings.retry_base_delay,
        )
        logger.info("Thumbnail generated and saved to session %s", upsert.path)
    except Exception:
        logger.exception(
            "Session assembly failed for section %s (response %s)",
            section.section_id, identity.response_ref_id,
        )
    return None
