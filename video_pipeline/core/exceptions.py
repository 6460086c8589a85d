"""Pipeline error taxonomy.

Adapters wrap library exceptions (botocore, aiokafka, yt-dlp, OSError) into
these types at the boundary so workers only ever reason about pipeline errors.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for every error raised by the pipeline.

    Attributes:
        key: Blob key involved in the failure, if any
        reference: Source reference involved in the failure, if any
        cause: Underlying library exception
    """

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        reference: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.key = key
        self.reference = reference
        self.cause = cause
        super().__init__(message)


class UsageError(PipelineError):
    """Bad invocation of the executable (missing or unknown run mode)."""


class DownloadError(PipelineError):
    """External downloader failed to produce a media file."""


class StoreError(PipelineError):
    """Blob store operation failed."""


class StoreReadError(StoreError):
    """Blob store read failed, including key not found."""


class StoreWriteError(StoreError):
    """Blob store write failed (unreadable source or uncreatable destination)."""


class EncodeError(PipelineError):
    """External encoder failed for one target format."""

    def __init__(
        self,
        message: str,
        format: Optional[str] = None,
        key: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.format = format
        super().__init__(message, key=key, cause=cause)


class TranscodeJoinError(EncodeError):
    """One or more concurrent conversions of a single video failed.

    Raised only after every conversion has settled, so ``errors`` holds the
    complete set of per-format failures.
    """

    def __init__(self, key: str, errors: list[EncodeError]):
        self.errors = errors
        formats = ", ".join(e.format or "?" for e in errors)
        super().__init__(
            f"{len(errors)} conversion(s) failed for {key}: {formats}",
            format=errors[0].format if errors else None,
            key=key,
            cause=errors[0] if errors else None,
        )


class PublishError(PipelineError):
    """Event bus append failed."""
