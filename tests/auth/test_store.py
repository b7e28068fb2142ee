"""Tests for credential record persistence."""

from __future__ import annotations

import base64

import pytest
from fastapi.responses import JSONResponse

from revvision.auth.store import CookieCredentialStore, MemoryCredentialStore, decode_record, encode_record
from revvision.shared.models import CredentialRecord


class TestEncoding:
    def test_encoded_value_is_cookie_safe(self, valid_record: CredentialRecord) -> None:
        value = encode_record(valid_record)
        assert ";" not in value
        assert " " not in value
        assert '"' not in value
        assert decode_record(value) == valid_record

    def test_decode_rejects_garbage(self) -> None:
        with pytest.raises(ValueError):
            decode_record("not-base64-json!!")

    def test_decode_rejects_json_without_access_token(self) -> None:
        value = base64.urlsafe_b64encode(b'{"refresh_token": "r"}').decode()
        with pytest.raises(ValueError):
            decode_record(value)


class TestMemoryCredentialStore:
    def test_set_get_clear(self, valid_record: CredentialRecord) -> None:
        store = MemoryCredentialStore()
        assert store.get() is None
        store.set(valid_record)
        assert store.get() == valid_record
        store.clear()
        assert store.get() is None


class TestCookieCredentialStore:
    def test_reads_incoming_cookie(self, valid_record: CredentialRecord) -> None:
        store = CookieCredentialStore(encode_record(valid_record))
        assert store.get() == valid_record
        assert not store.dirty

    def test_empty_cookie_is_missing(self) -> None:
        assert CookieCredentialStore("").get() is None

    def test_malformed_cookie_raises_value_error(self) -> None:
        with pytest.raises(ValueError):
            CookieCredentialStore("%%%").get()

    def test_untouched_store_sets_no_cookie(self, valid_record: CredentialRecord) -> None:
        store = CookieCredentialStore(encode_record(valid_record))
        response = JSONResponse({})
        store.apply(response)
        assert "set-cookie" not in response.headers

    def test_set_writes_http_only_cookie(self, valid_record: CredentialRecord) -> None:
        store = CookieCredentialStore(None, cookie_name="google-tokens", max_age_seconds=7776000, secure=True)
        store.set(valid_record)
        response = JSONResponse({})
        store.apply(response)

        header = response.headers["set-cookie"]
        assert header.startswith(f"google-tokens={encode_record(valid_record)}")
        assert "HttpOnly" in header
        assert "Max-Age=7776000" in header
        assert "Path=/" in header
        assert "Secure" in header
        assert "samesite=lax" in header.lower()

    def test_clear_deletes_cookie(self, valid_record: CredentialRecord) -> None:
        store = CookieCredentialStore(encode_record(valid_record))
        store.clear()
        assert store.get() is None
        response = JSONResponse({})
        store.apply(response)
        header = response.headers["set-cookie"]
        assert header.startswith("google-tokens=")
        assert "Max-Age=0" in header
