"""Thumbnail pipeline: first frame of a merged session video, stored and linked.

Stages:
  1. Download the merged video to a temp directory.
  2. Extract one still (first frame) as JPEG.
  3. Upload it with a random access token in its metadata.
  4. Write its preview URL and storage path onto the session document.

Stages 1-3 fail fast. Stage 4 is retried (document store writes are the
flaky part and are safe to repeat).
"""

import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path

from .common import join_storage_path, new_access_token
from .errors import ThumbnailError
from .providers import DocumentStore, FrameExtractor, ObjectStorage
from .retry import DEFAULT_BASE_DELAY, with_retries

logger = logging.getLogger(__name__)

THUMBNAIL_CONTENT_TYPE = "image/jpeg"
TOKEN_METADATA_KEY = "firebaseStorageDownloadTokens"
DEFAULT_SAVE_RETRIES = 2


@dataclass(frozen=True)
class ThumbnailUpload:
    path: str
    token: str


def thumbnail_filename(video_filename: str) -> str:
    """'abc_resp_sec.mp4' -> 'abc_resp_sec_thumbnail.jpg'."""
    return f"{video_filename.split('.')[0]}_thumbnail.jpg"


async def generate_thumbnail_image(
    storage: ObjectStorage,
    extractor: FrameExtractor,
    video_path: str,
    work_dir: str | Path,
) -> Path:
    """Download video_path and extract its first frame into work_dir.

    Returns:
        Local path of the JPEG.

    Raises:
        ThumbnailError: The extractor wrote nothing.
    """
    work_dir = Path(work_dir)
    video_filename = video_path.rsplit("/", 1)[-1]
    local_video = work_dir / video_filename

    try:
        await storage.download(video_path, local_video)
    except Exception:
        logger.warning("Error while downloading %s", video_path)
        raise
    logger.info("File downloaded to %s", local_video)

    local_image = work_dir / thumbnail_filename(video_filename)
    try:
        await extractor.extract_frame(local_video, local_image)
    except Exception as exc:
        logger.warning("Error while generating thumbnail: %s", exc)
        raise

    if not local_image.exists():
        raise ThumbnailError(f"No thumbnail written for {video_path}")
    return local_image


async def upload_thumbnail(storage: ObjectStorage, local_image: str | Path,
                           directory: str) -> ThumbnailUpload:
    """Upload the image under directory with a fresh access token."""
    token = new_access_token()
    path = join_storage_path(directory, Path(local_image).name)
    await storage.upload(
        local_image, path,
        content_type=THUMBNAIL_CONTENT_TYPE,
        metadata={TOKEN_METADATA_KEY: token},
    )
    logger.info("Thumbnail uploaded to %s", path)
    return ThumbnailUpload(path=path, token=token)


async def save_thumbnail_to_session(store: DocumentStore, storage: ObjectStorage,
                                    session_path: str, upload: ThumbnailUpload) -> dict:
    """Write thumbnail URLs onto the session document. Returns the update."""
    data = {
        "thumbnailImage": storage.preview_url(upload.path, upload.token),
        "storageThumbnailImagePath": storage.https_url(upload.path),
    }
    await store.update(session_path, data)
    return data


async def run_thumbnail_pipeline(
    store: DocumentStore,
    storage: ObjectStorage,
    extractor: FrameExtractor,
    video_path: str,
    thumbnail_directory: str,
    session_path: str,
    save_retries: int = DEFAULT_SAVE_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
) -> dict:
    """Generate, upload and attach a session thumbnail.

    Args:
        video_path: Storage path of the merged session video.
        thumbnail_directory: Storage folder for thumbnails.
        session_path: Document path of the owning session.
        save_retries: Extra attempts for the document update.

    Returns:
        The fields written to the session document.
    """
    with tempfile.TemporaryDirectory(prefix="sessionreel-thumb-") as work_dir:
        local_image = await generate_thumbnail_image(storage, extractor, video_path, work_dir)
        upload = await upload_thumbnail(storage, local_image, thumbnail_directory)

    save = with_retries(save_thumbnail_to_session, save_retries, base_delay=base_delay)
    data = await save(store, storage, session_path, upload)
    logger.info("Thumbnail url saved to %s", session_path)
    return data
