"""
Tests for password hashing and group authentication.
"""

import pytest

from GroupChat.core.server.auth import (
    INVALID_CREDENTIALS,
    GroupAuthenticator,
    hash_password,
    verify_admin_password,
    verify_password,
)
from GroupChat.test.conftest import GROUP_PASSWORD, TEST_ROUNDS


class TestPasswordHashing:
    """bcrypt primitive."""

    def test_hash_and_verify(self):
        hashed = hash_password("hunter22", rounds=TEST_ROUNDS)

        assert hashed != "hunter22"
        assert verify_password("hunter22", hashed) is True
        assert verify_password("hunter23", hashed) is False

    def test_salted(self):
        assert hash_password("same", rounds=TEST_ROUNDS) != hash_password("same", rounds=TEST_ROUNDS)

    def test_malformed_hash_never_matches(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False


class TestAdminPassword:
    """Shared admin secret."""

    def test_match(self):
        assert verify_admin_password("letmein", expected="letmein") is True

    def test_mismatch(self):
        assert verify_admin_password("wrong", expected="letmein") is False

    def test_missing_header(self):
        assert verify_admin_password(None, expected="letmein") is False

    def test_unset_secret_rejects_everything(self):
        assert verify_admin_password("", expected="") is False
        assert verify_admin_password("anything", expected="") is False

    def test_reads_config(self, monkeypatch):
        from GroupChat.config import config
        monkeypatch.setattr(config, "ADMIN_PASSWORD", "from-env")

        assert verify_admin_password("from-env") is True


class TestGroupAuthenticator:
    """Join authentication against the store."""

    @pytest.mark.asyncio
    async def test_success(self, store, make_group):
        group = make_group("team")

        result = await GroupAuthenticator(store).authenticate("team", GROUP_PASSWORD)

        assert result.success is True
        assert result.group_id == group.id
        assert result.group_name == "team"

    @pytest.mark.asyncio
    async def test_failures_are_indistinguishable(self, store, make_group):
        make_group("team")
        make_group("closed")
        store.update_group("closed", is_active=False)
        authenticator = GroupAuthenticator(store)

        wrong_password = await authenticator.authenticate("team", "nope")
        unknown_group = await authenticator.authenticate("ghost", GROUP_PASSWORD)
        inactive_group = await authenticator.authenticate("closed", GROUP_PASSWORD)

        for result in (wrong_password, unknown_group, inactive_group):
            assert result.success is False
            assert result.error_message == INVALID_CREDENTIALS
            assert result.group_id is None
