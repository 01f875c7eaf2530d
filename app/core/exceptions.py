"""Application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class UpstreamAPIError(AppException):
    """Call-tracking provider API error."""

    pass


class UpstreamRateLimitError(UpstreamAPIError):
    """Call-tracking provider rate limit exceeded."""

    pass


class UpstreamResponseError(UpstreamAPIError):
    """Upstream answered with a body of unknown shape."""

    pass


class DiscoveryError(UpstreamAPIError):
    """No endpoint/auth combination produced a usable response.

    ``attempts`` holds the full probe trail, one entry per tried combination.
    """

    def __init__(
        self,
        message: str,
        attempts: list[Any] | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.attempts = list(attempts or [])


class DatabaseError(AppException):
    """Database operation error."""

    pass


class SyncError(AppException):
    """Synchronization error."""

    pass


class ProcessingError(AppException):
    """Enrichment of a single call failed."""

    pass


class RecordingUnavailableError(ProcessingError):
    """No recording URL could be resolved for a call."""

    pass


class RecordingDownloadError(ProcessingError):
    """The recording could not be downloaded."""

    pass


class TranscriptionError(ProcessingError):
    """The transcription collaborator rejected or failed the audio."""

    pass


class AnalysisError(ProcessingError):
    """The analysis collaborator failed on a transcript."""

    pass


class CallNotFoundError(AppException):
    """Call record does not exist in the store."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, details)
        self.status_code = 404


class InvalidStatusTransition(AppException):
    """Illegal call lifecycle transition."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, details)
        self.status_code = 409


class WebhookConfigError(AppException):
    """Webhook configuration is missing or invalid."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, details)
        self.status_code = 400


class WebhookDeliveryError(AppException):
    """Outbound webhook delivery failed."""

    pass
