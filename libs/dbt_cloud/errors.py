# =============================================================================
# dbt Cloud Errors
# =============================================================================
# Error taxonomy for requests, polling and artifact transcoding.
# =============================================================================

from typing import Optional

__all__ = [
    "DbtCloudError",
    "TransientNetworkError",
    "PermanentNetworkError",
    "MissingArtifactError",
    "PollTimeoutError",
    "PollCancelledError",
    "RemoteJobFailedError",
    "ArtifactParseError",
]


class DbtCloudError(RuntimeError):
    """
    Base class for dbt Cloud errors.

    Carries the context needed to diagnose a failure from logs alone.

    Attributes:
        run_id: Run the error relates to, when known
        status: Last known run status, when known
        status_code: Last HTTP status code, when available
    """

    def __init__(
        self,
        message: str,
        *,
        run_id: Optional[int] = None,
        status: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.run_id = run_id
        self.status = status
        self.status_code = status_code


class TransientNetworkError(DbtCloudError):
    """Retryable failure (HTTP 429, 5xx, transport error) after the retry budget ran out."""

    def __init__(
        self, message: str, *, attempts: int = 1, deadline_exceeded: bool = False, **kwargs
    ) -> None:
        super().__init__(message, **kwargs)
        self.attempts = attempts
        self.deadline_exceeded = deadline_exceeded


class PermanentNetworkError(DbtCloudError):
    """Non-retryable HTTP failure (4xx other than 429)."""

    def __init__(self, message: str, *, response_text: str = "", **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.response_text = response_text


class MissingArtifactError(PermanentNetworkError):
    """Requested artifact does not exist for the run."""

    def __init__(self, message: str, *, path: str, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.path = path


class PollTimeoutError(DbtCloudError):
    """The poll deadline passed while the run was still not complete."""

    def __init__(self, message: str, *, max_duration: float, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.max_duration = max_duration


class PollCancelledError(DbtCloudError):
    """The poll session was cancelled by its caller."""


class RemoteJobFailedError(DbtCloudError):
    """The run reached a terminal Error or Cancelled status."""

    def __init__(self, message: str, *, duration_humanized: str = "", **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.duration_humanized = duration_humanized


class ArtifactParseError(DbtCloudError):
    """An artifact is malformed or holds a value outside the known vocabulary."""

    def __init__(self, message: str, *, artifact: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.artifact = artifact
