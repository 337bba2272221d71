"""Error taxonomy for the session assembly pipeline.

Only TransientIOError is meant to be retried in-process (and only where a
stage wraps itself in retry.with_retries). Everything else fails the
invocation, which is logged at the trigger boundary and left to upstream
redelivery.
"""


class SessionReelError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(SessionReelError, ValueError):
    """Malformed or incomplete input. Never retried."""


class TransientIOError(SessionReelError):
    """Network, document store or object storage flakiness."""


class MediaProbeError(SessionReelError):
    """Media duration could not be read for a clip."""

    def __init__(self, source: str, reason: str = ""):
        self.source = source
        msg = f"Could not probe media duration: {source}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class TranscodeFailure(SessionReelError):
    """Transcoding job reached FAILED or reported an unrecognized state."""

    def __init__(self, state: str, job_id: str | None = None):
        self.state = state
        self.job_id = job_id
        if job_id:
            super().__init__(f"Transcode job {job_id} ended in state {state}")
        else:
            super().__init__(f"Transcode job ended in state {state}")


class RetryExhausted(SessionReelError):
    """Job polling ran out of attempts before a terminal state."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"max retries exceeded for job {job_id}")


class ThumbnailError(SessionReelError):
    """Frame extraction produced no image."""
