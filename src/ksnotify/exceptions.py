# src/ksnotify/exceptions.py
"""
Exception types raised by ksnotify.

Every failure inside the pipeline is terminal for the run; these classes only
carry enough context (offending variable, platform call, counts) for the
operator to diagnose the problem from the log line alone.
"""
from typing import Any, Dict, Optional


class KsnotifyError(Exception):
    """Base exception for ksnotify. All custom exceptions inherit from this class."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        context = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"{self.message} ({context})"


class DiffParseError(KsnotifyError):
    """Raised when the input cannot be split into a well-formed block sequence."""


class ConfigurationError(KsnotifyError):
    """
    Raised for missing or invalid configuration, such as unset CI variables,
    missing tokens or an unknown CI kind. Always raised before any network call.
    """

    def __init__(self, message: str, config_key: Optional[str] = None, config_value: Optional[str] = None):
        details = {}
        if config_key:
            details["config_key"] = config_key
        if config_value:
            details["config_value"] = config_value
        super().__init__(message, details)
        self.config_key = config_key


class ThreadResolutionError(KsnotifyError):
    """Raised when the commit SHA fallback finds no open pull/merge request."""

    def __init__(self, message: str, commit_sha: Optional[str] = None):
        super().__init__(message, {"commit_sha": commit_sha} if commit_sha else None)
        self.commit_sha = commit_sha


class SCMAPIError(KsnotifyError):
    """Raised when a call to the code hosting platform fails (network, auth, rate limit, ...)."""

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        response_text: Optional[str] = None,
    ):
        details: Dict[str, Any] = {}
        if method:
            details["method"] = method
        if url:
            details["url"] = url
        if status_code is not None:
            details["status_code"] = status_code
        if response_text:
            details["response"] = response_text[:500]
        super().__init__(message, details)
        self.status_code = status_code
