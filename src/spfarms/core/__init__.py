"""Core utilities shared across SPFarms modules."""

from .errors import (
    ApiError,
    InvalidTransitionError,
    SessionExpiredError,
    SPFarmsError,
    SPFarmsValueError,
    TransitionBlockedError,
    TransitionError,
)

__all__ = [
    "SPFarmsError",
    "SPFarmsValueError",
    "TransitionBlockedError",
    "InvalidTransitionError",
    "ApiError",
    "SessionExpiredError",
    "TransitionError",
]
