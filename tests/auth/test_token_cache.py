# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Tests for the persisted credential."""

import json
import logging
import stat
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from quotemail.auth.token_cache import CachedCredential, TokenCache
from quotemail.logging import SecretFilter


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class TestCachedCredential:
    """Tests for CachedCredential."""

    def test_from_token_response(self) -> None:
        """Expiry is computed from expires_in; other fields kept."""
        cred = CachedCredential.from_token_response(
            {
                "access_token": "at",
                "refresh_token": "rt",
                "expires_in": 3600,
                "token_type": "Bearer",
                "scope": "Mail.Read",
            },
            NOW,
        )
        assert cred.access_token == "at"
        assert cred.refresh_token == "rt"
        assert cred.expires_on == NOW + timedelta(hours=1)
        assert cred.extra == {"token_type": "Bearer", "scope": "Mail.Read"}

    def test_missing_expires_in_is_expired(self) -> None:
        """A response without expires_in is already expired."""
        cred = CachedCredential.from_token_response({"access_token": "at"}, NOW)
        assert cred.refresh_token is None
        assert not cred.is_valid(NOW)

    def test_is_valid_boundary(self) -> None:
        """A token is invalid at its exact expiry instant."""
        cred = CachedCredential("at", NOW)
        assert cred.is_valid(NOW - timedelta(seconds=1))
        assert not cred.is_valid(NOW)

    def test_dict_shape(self) -> None:
        """The on-disk shape uses camelCase keys and ISO timestamps."""
        cred = CachedCredential("at", NOW, "rt", {"token_type": "Bearer"})
        data = cred.to_dict()
        assert data == {
            "token_type": "Bearer",
            "accessToken": "at",
            "refreshToken": "rt",
            "expiresOn": "2026-03-01T12:00:00+00:00",
        }
        assert CachedCredential.from_dict(data) == cred

    def test_naive_timestamp_is_utc(self) -> None:
        """A timestamp without offset is read as UTC."""
        cred = CachedCredential.from_dict(
            {"accessToken": "at", "expiresOn": "2026-03-01T12:00:00"}
        )
        assert cred.expires_on == NOW


class TestTokenCache:
    """Tests for TokenCache."""

    def test_missing_file(self, tmp_path: Path) -> None:
        """No file means no credential."""
        assert TokenCache(tmp_path / "none.json").load() is None

    def test_save_then_load(self, tmp_path: Path) -> None:
        """A saved credential loads back unchanged."""
        cache = TokenCache(tmp_path / "state" / "token.json")
        cred = CachedCredential("at", NOW, "rt")
        cache.save(cred)
        assert cache.load() == cred

    def test_save_owner_only(self, tmp_path: Path) -> None:
        """The cache file is readable by the owner only."""
        cache = TokenCache(tmp_path / "token.json")
        cache.save(CachedCredential("at", NOW))
        assert stat.S_IMODE(cache.path.stat().st_mode) == 0o600

    def test_save_replaces_whole_record(self, tmp_path: Path) -> None:
        """Saving drops fields from the previous record."""
        cache = TokenCache(tmp_path / "token.json")
        cache.save(CachedCredential("old", NOW, "rt-old", {"stale": 1}))
        cache.save(CachedCredential("new", NOW))
        data = json.loads(cache.path.read_text())
        assert "stale" not in data
        assert data["refreshToken"] is None

    def test_tokens_registered_as_secrets(self, tmp_path: Path) -> None:
        """Loaded tokens are redacted from logs."""
        path = tmp_path / "token.json"
        path.write_text(
            json.dumps(
                {
                    "accessToken": "at-secret",
                    "refreshToken": "rt-secret",
                    "expiresOn": NOW.isoformat(),
                }
            )
        )
        TokenCache(path).load()
        assert {"at-secret", "rt-secret"} <= SecretFilter._secrets

    @pytest.mark.parametrize(
        "content",
        [
            "not json",
            "[]",
            '{"accessToken": "at"}',
            '{"accessToken": "at", "expiresOn": "yesterday"}',
        ],
    )
    def test_corrupt_file_ignored(
        self,
        tmp_path: Path,
        content: str,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Unreadable records are logged and treated as absent."""
        path = tmp_path / "token.json"
        path.write_text(content)
        with caplog.at_level(logging.WARNING):
            assert TokenCache(path).load() is None
        assert "Ignoring unreadable token cache" in caplog.text

    def test_clear(self, tmp_path: Path) -> None:
        """Clearing removes the file and reports whether it existed."""
        cache = TokenCache(tmp_path / "token.json")
        cache.save(CachedCredential("at", NOW))
        assert cache.clear() is True
        assert not cache.path.exists()
        assert cache.clear() is False
