"""CLI for assembly — run one section-answers event end to end, locally.

Answer source files are copied into a local object-storage root, the
patient response is seeded into a YAML-snapshotted document store, and
the section event is handled exactly as a deployed trigger would handle it.
Running the same manifest for another section (same response id) appends
to the existing session.

Usage:
    sessionreel assemble --event section-event.yaml --root .sessionreel/
    sessionreel assemble --event event.yaml --root out/ --config config.yaml
    sessionreel assemble --event event.yaml --validate
"""

import argparse
import asyncio
from pathlib import Path

import yaml

from .common import join_storage_path
from .config import configure_logging, load_config
from .event_manifest import load_event_manifest, validate_event_sources
from .handler import build_session_identity, handle_section_answers_write, patient_response_path
from .local import build_local_collaborators
from .providers import Condition
from .session import response_path, sessions_collection

STORE_SNAPSHOT = "documents.yaml"
OBJECTS_DIR = "objects"


async def run_event(config: dict, settings, root: str | Path) -> dict | None:
    """Stage the event's files and documents under root, then handle it.

    Returns:
        The session document for the event's response, or None if no
        session exists after handling (assembly failed or had nothing to do).
    """
    root = Path(root)
    deps = build_local_collaborators(
        settings, root / OBJECTS_DIR, snapshot_path=root / STORE_SNAPSHOT,
    )
    tenant = config["tenant"]
    response_doc_id = config["response_doc_id"]

    deps.store.put(
        patient_response_path(settings, tenant, response_doc_id), config["response"],
    )

    params = {
        "organizationId": tenant,
        "responseDocId": response_doc_id,
        "documentId": config["document_id"],
    }
    identity = build_session_identity(params, response_doc_id, config["response"])
    clips_path = response_path(settings, identity)
    for filename, source in config["sources"].items():
        await deps.storage.upload(
            source, join_storage_path(clips_path, filename), content_type="video/mp4",
        )
        print(f"  STAGE  {source} -> {clips_path}{filename}")

    await handle_section_answers_write({"params": params, "after": config["section"]}, deps)

    sessions = await deps.store.query(
        sessions_collection(settings, tenant),
        [Condition("responseRefID", "==", response_doc_id)],
        limit=1,
    )
    return sessions[0].data if sessions else None


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Assemble a session section from a local event manifest.",
    )
    parser.add_argument(
        "--event", required=True,
        help="Path to YAML event manifest",
    )
    parser.add_argument(
        "--root", default=".sessionreel",
        help="Working directory for local storage and documents (default: .sessionreel)",
    )
    parser.add_argument(
        "--config", default=None,
        help="Optional YAML config file",
    )
    parser.add_argument(
        "--validate", action="store_true",
        help="Validate manifest only — check sources, don't render",
    )
    parsed = parser.parse_args(args)

    config = load_event_manifest(parsed.event)
    validate_event_sources(config)

    if parsed.validate:
        section = config["section"]
        print(f"Event manifest valid: section {section['sectionId']}, "
              f"{len(section['answers'])} answers, {len(config['sources'])} videos")
        for filename, source in config["sources"].items():
            print(f"  {filename} <- {source}")
        print("All sources verified.")
        return

    settings = load_config(parsed.config)
    configure_logging(settings)

    print(f"Assembling section {config['section']['sectionId']} "
          f"for response {config['response_doc_id']}")
    session = asyncio.run(run_event(config, settings, parsed.root))

    if session is None:
        print("\nNo session was written. See the log for the cause.")
        raise SystemExit(1)

    print(f"\nSession: {len(session['sections'])} section(s), status {session['status']}")
    for sec in session["sections"]:
        print(f"  [{sec['sectionId']}] {len(sec['chapters'])} chapters  {sec['mediaUrl']}")
    if session.get("thumbnailImage"):
        print(f"  thumbnail: {session['thumbnailImage']}")
    print(yaml.safe_dump(session["sections"][-1]["chapters"], sort_keys=False))


if __name__ == "__main__":
    main()
