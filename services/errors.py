"""
Error types shared by the reporting services, plus the translation table
that turns raw backend auth messages into user-facing copy.
"""

from typing import List, Optional, Tuple


class ReporterError(Exception):
    """Base class for every error surfaced to the user as a message."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ReporterError):
    """Client-side validation failure; never reaches the backend."""


class RateLimitedError(ReporterError):
    """A control was triggered again before its minimum interval elapsed."""

    def __init__(self, message: str = "Please wait before trying again"):
        super().__init__(message)


class SubmissionInProgressError(ReporterError):
    """A submission from the same control is still in flight."""

    def __init__(self, message: str = "A submission is already in progress"):
        super().__init__(message)


class GeolocationError(ReporterError):
    """The device denied or could not produce a location fix."""


class BackendError(ReporterError):
    """Failure reported by the backend-as-a-service or by the network."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthError(BackendError):
    """Auth provider rejected the request; message is already user-facing."""


# Substring of the raw message -> friendlier copy. First match wins.
AUTH_ERROR_MESSAGES: List[Tuple[str, str]] = [
    ("Invalid login credentials", "Invalid email or password. Please check your credentials."),
    ("Email not confirmed", "Please check your email and click the verification link."),
    ("rate limit", "Too many attempts. Please wait a minute and try again."),
    ("User already registered", "This email is already registered. Please sign in instead."),
]


def friendly_auth_message(message: Optional[str]) -> str:
    """
    Translate a raw auth error message into user-facing copy.

    Unknown messages pass through verbatim.
    """
    if not message:
        return "An error occurred"
    for needle, friendly in AUTH_ERROR_MESSAGES:
        if needle in message:
            return friendly
    return message
