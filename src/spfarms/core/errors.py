"""Common SPFarms-specific exceptions."""

from __future__ import annotations

from collections.abc import Iterable


class SPFarmsError(Exception):
    """Base class for every error raised by the harvest client."""


class SPFarmsValueError(SPFarmsError, ValueError):
    """Raised when SPFarms detects invalid user-provided data."""


class TransitionBlockedError(SPFarmsValueError):
    """Raised when a stage transition fails its pre-flight checks.

    No request has been sent when this is raised.
    """

    def __init__(self, message: str, missing_strain_ids: Iterable[int] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.missing_strain_ids = tuple(missing_strain_ids)


class InvalidTransitionError(SPFarmsError):
    """Raised when an action is not the legal next step for a harvest's status."""


class ApiError(SPFarmsError):
    """Raised when a request to the SPFarms API fails.

    ``status_code`` is ``None`` for network failures (timeouts, refused connections).
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class SessionExpiredError(ApiError):
    """Raised on HTTP 401; the configured token must be refreshed."""


class TransitionError(ApiError):
    """Raised when a stage transition request (or one of its weight records) fails.

    ``recorded_strain_ids`` lists the strains whose weight records were persisted
    before the failure; those records are not rolled back.
    """

    def __init__(
        self,
        message: str,
        *,
        action: str,
        status_code: int | None = None,
        recorded_strain_ids: Iterable[int] = (),
    ) -> None:
        super().__init__(message, status_code)
        self.action = action
        self.recorded_strain_ids = tuple(recorded_strain_ids)


__all__ = [
    "SPFarmsError",
    "SPFarmsValueError",
    "TransitionBlockedError",
    "InvalidTransitionError",
    "ApiError",
    "SessionExpiredError",
    "TransitionError",
]
