"""Hierarchical exception types for the revvision pipeline."""

from __future__ import annotations


class RevvisionError(Exception):
    """Base exception for all revvision errors."""


# ── Session ─────────────────────────────────────────────────────


class AuthenticationError(RevvisionError):
    """No usable Google credential (missing, invalid, or revoked)."""


# ── Input ───────────────────────────────────────────────────────


class InputValidationError(RevvisionError):
    """Request rejected before any remote call was made."""


class InvalidTransitionError(RevvisionError):
    """An entry update violates the status state machine."""


# ── Frame-Extractor ─────────────────────────────────────────────


class ExtractionError(RevvisionError):
    """Frame extraction failed (corrupt source, missing backend, empty frame)."""


# ── Remote services ─────────────────────────────────────────────


class RemoteServiceError(RevvisionError):
    """A remote call failed.

    ``network`` is True when the request never produced an HTTP response
    (DNS, connect, timeout); False when the service answered with an error.
    """

    def __init__(self, message: str, *, network: bool = False, status_code: int | None = None) -> None:
        super().__init__(message)
        self.network = network
        self.status_code = status_code


class OAuthError(RemoteServiceError):
    """Google token endpoint or userinfo call failed."""


class StorageError(RemoteServiceError):
    """Google Drive call failed."""


class TaggingError(RemoteServiceError):
    """Tag generation call failed."""


class RefinementError(RemoteServiceError):
    """Tag refinement call failed."""
