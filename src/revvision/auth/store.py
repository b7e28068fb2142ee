"""Credential record persistence.

The record lives in exactly one HTTP-only cookie. The cookie value is the
record's JSON, base64url-encoded so it survives cookie quoting untouched.

This module intentionally avoids logging token values.
"""

from __future__ import annotations

import base64
import binascii
import logging

from fastapi import Response

from revvision.shared.models import CredentialRecord

logger = logging.getLogger(__name__)


def encode_record(record: CredentialRecord) -> str:
    """Serialise a record into a cookie-safe string."""
    raw = record.model_dump_json(exclude_none=True).encode("utf-8")
    # Padding is dropped: "=" would force the cookie value into quotes.
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_record(value: str) -> CredentialRecord:
    """Parse a cookie value produced by :func:`encode_record`.

    Raises:
        ValueError: If the value is not a valid encoded record.
    """
    try:
        padded = value + "=" * (-len(value) % 4)
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValueError("credential cookie is not valid base64") from exc
    # pydantic.ValidationError is a ValueError subclass.
    return CredentialRecord.model_validate_json(raw)


class MemoryCredentialStore:
    """Process-local store, used for background pipeline work and tests.

    Implements the ``CredentialStore`` protocol.
    """

    def __init__(self, record: CredentialRecord | None = None) -> None:
        self._record = record

    def get(self) -> CredentialRecord | None:
        return self._record

    def set(self, record: CredentialRecord) -> None:
        self._record = record

    def clear(self) -> None:
        self._record = None


class CookieCredentialStore:
    """Request-scoped store backed by the ``google-tokens`` cookie.

    Implements the ``CredentialStore`` protocol.

    Reads come from the incoming cookie value; writes are buffered and
    flushed onto the outgoing response by :meth:`apply`.
    """

    def __init__(
        self,
        raw_value: str | None,
        *,
        cookie_name: str = "google-tokens",
        max_age_seconds: int = 90 * 24 * 3600,
        secure: bool = False,
    ) -> None:
        self._raw = raw_value or None
        self._cookie_name = cookie_name
        self._max_age = max_age_seconds
        self._secure = secure
        self._cached: CredentialRecord | None = None
        self._dirty = False

    @property
    def cookie_name(self) -> str:
        return self._cookie_name

    @property
    def dirty(self) -> bool:
        return self._dirty

    def get(self) -> CredentialRecord | None:
        if self._cached is not None:
            return self._cached
        if self._raw is None:
            return None
        self._cached = decode_record(self._raw)
        return self._cached

    def set(self, record: CredentialRecord) -> None:
        self._cached = record
        self._raw = encode_record(record)
        self._dirty = True

    def clear(self) -> None:
        if self._raw is not None or self._cached is not None:
            logger.info("clearing stored credential cookie")
        self._cached = None
        self._raw = None
        self._dirty = True

    def apply(self, response: Response) -> None:
        """Write any pending change onto ``response`` as Set-Cookie headers."""
        if not self._dirty:
            return
        if self._raw is None:
            response.delete_cookie(self._cookie_name, path="/")
            return
        response.set_cookie(
            self._cookie_name,
            self._raw,
            max_age=self._max_age,
            path="/",
            httponly=True,
            secure=self._secure,
            samesite="lax",
        )
