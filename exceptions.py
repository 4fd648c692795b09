#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Exception hierarchy for Trailhead Ingest.

Every error the ingest services raise on purpose derives from AppBaseError and
carries a machine-readable code plus the HTTP status the admin API answers
with. TransientError subclasses may be retried; CriticalError subclasses end
the whole run.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class AppBaseError(Exception):
    """Root of the ingest errors.

    Attributes:
        message: Text shown to the operator and stored on failed jobs
        error_code: Stable identifier sent in the X-Error-Code header
        http_status_code: Status used when the error reaches the admin API
        retry_after: Seconds a client should wait before trying again, if known
    """

    def __init__(self, message: str, error_code: Optional[str] = None,
                 http_status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
                 retry_after: Optional[int] = None):
        self.message = message
        self.error_code = error_code or self.__class__.__name__.upper()
        self.http_status_code = http_status_code
        self.retry_after = retry_after
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error_code": self.error_code, "error_message": self.message}

    def to_http_exception(self) -> HTTPException:
        """Build the HTTPException the admin API raises for this error."""
        headers = {"X-Error-Code": self.error_code}
        if self.retry_after:
            headers["Retry-After"] = str(self.retry_after)
        return HTTPException(status_code=self.http_status_code, detail=self.message, headers=headers)


class TransientError(AppBaseError):
    """A failure worth another attempt (timeouts, 5xx, throttling)."""


class CriticalError(AppBaseError):
    """A failure no retry can fix; the current run stops."""


# --- YouTube Data API ---

class QuotaExceededError(CriticalError):
    """The daily Data API quota is used up."""

    def __init__(self, message: str = "YouTube API quota exceeded"):
        super().__init__(message, error_code="QUOTA_EXCEEDED",
                         http_status_code=status.HTTP_403_FORBIDDEN,
                         retry_after=3600)  # quota resets daily; ask for an hour


class APIConfigurationError(CriticalError):
    """The API key is missing or was rejected."""

    def __init__(self, message: str = "API configuration error"):
        super().__init__(message, error_code="API_CONFIG_ERROR",
                         http_status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


class ResourceNotFoundError(AppBaseError):
    """Unknown channel, video or job."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, error_code="RESOURCE_NOT_FOUND",
                         http_status_code=status.HTTP_404_NOT_FOUND)


class RateLimitedError(TransientError):
    """The provider throttled or blocked us (HTTP 429, captcha page)."""

    def __init__(self, message: str = "API rate limit reached", retry_after: int = 30):
        super().__init__(message, error_code="RATE_LIMITED",
                         http_status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                         retry_after=retry_after)


class TimeoutExceededError(TransientError):
    def __init__(self, message: str = "Operation timed out"):
        super().__init__(message, error_code="TIMEOUT",
                         http_status_code=status.HTTP_504_GATEWAY_TIMEOUT,
                         retry_after=10)


class InvalidInputError(AppBaseError):
    """Malformed channel reference or request parameter."""

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, error_code="INVALID_INPUT",
                         http_status_code=status.HTTP_400_BAD_REQUEST)


# --- Captions ---

class NoCaptionsError(AppBaseError):
    """The video has no caption track matching the request. Not retried."""

    def __init__(self, message: str = "No captions available"):
        super().__init__(message, error_code="NO_CAPTIONS",
                         http_status_code=status.HTTP_404_NOT_FOUND)


class CaptionFetchError(TransientError):
    """A caption download failed for a reason that is neither throttling nor absence."""

    def __init__(self, message: str = "Caption download failed"):
        super().__init__(message, error_code="CAPTION_FETCH_FAILED",
                         http_status_code=status.HTTP_502_BAD_GATEWAY)


# --- Storage ---

class PersistenceError(AppBaseError):
    """The video store could not be read or written."""

    def __init__(self, message: str = "Persistence failure"):
        super().__init__(message, error_code="PERSISTENCE_ERROR",
                         http_status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


# --- Helpers ---

def handle_exception(exception: Exception) -> HTTPException:
    """Map any exception raised under a route to the HTTPException to send.

    Args:
        exception: Error caught by the route handler

    Returns:
        HTTPException: With X-Error-Code (and Retry-After when known) set
    """
    if isinstance(exception, HTTPException):
        return exception
    if isinstance(exception, AppBaseError):
        return exception.to_http_exception()
    if isinstance(exception, ValueError):
        return InvalidInputError(str(exception)).to_http_exception()

    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Internal server error: {type(exception).__name__}",
        headers={"X-Error-Code": "INTERNAL_SERVER_ERROR"},
    )


def is_systemic_error(exception: Exception) -> bool:
    """True for failures that invalidate a whole run (credentials, quota), not one video."""
    return isinstance(exception, (APIConfigurationError, QuotaExceededError))
