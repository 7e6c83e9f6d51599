"""Tests for password hashing, bearer tokens, account lockout and verification."""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from src.middleware.auth import hash_password, issue_token, read_token, user_from_token, verify_password
from src.models.request import LoginInput, RegisterInput
from src.models.user import User
from src.services.accounts import AccountService
from src.services.errors import DispatchError, Forbidden, Unauthorized, ValidationFailed
from src.services.notifications import NotificationDispatcher
from src.services.users import UserRepository

SECRET = "test-secret"


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


class TestPasswords:
    def test_round_trip(self) -> None:
        stored = hash_password("correct horse", iterations=1000)
        assert stored.startswith("pbkdf2_sha256$1000$")
        assert verify_password("correct horse", stored)
        assert not verify_password("wrong horse", stored)

    def test_salted(self) -> None:
        assert hash_password("same", iterations=1000) != hash_password("same", iterations=1000)

    def test_malformed_hash_never_verifies(self) -> None:
        assert not verify_password("anything", "")
        assert not verify_password("anything", "md5$1$abc$def")


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class TestTokens:
    def test_issue_and_read(self) -> None:
        token = issue_token("user-1", secret=SECRET, ttl_seconds=60, now=1_000)
        assert read_token(token, secret=SECRET, now=1_030) == "user-1"

    def test_expired(self) -> None:
        token = issue_token("user-1", secret=SECRET, ttl_seconds=60, now=1_000)
        with pytest.raises(Unauthorized, match="expired"):
            read_token(token, secret=SECRET, now=1_061)

    def test_wrong_secret(self) -> None:
        token = issue_token("user-1", secret=SECRET, ttl_seconds=60, now=1_000)
        with pytest.raises(Unauthorized, match="Invalid"):
            read_token(token, secret="other", now=1_001)

    def test_tampered_user_id(self) -> None:
        _, expiry, signature = issue_token("user-1", secret=SECRET, ttl_seconds=60, now=1_000).split(".")
        with pytest.raises(Unauthorized):
            read_token(f"user-2.{expiry}.{signature}", secret=SECRET, now=1_001)

    @pytest.mark.parametrize("token", ["", "abc", "a.b", "a.b.c.d"])
    def test_malformed(self, token: str) -> None:
        with pytest.raises(Unauthorized):
            read_token(token, secret=SECRET)

    async def test_user_from_token(self, users: UserRepository, traveller: User) -> None:
        user = await user_from_token(issue_token(traveller.user_id), users)
        assert user.user_id == traveller.user_id

    async def test_deactivated_user_rejected(self, users: UserRepository, traveller: User) -> None:
        traveller.is_active = False
        await users.save(traveller)
        with pytest.raises(Unauthorized):
            await user_from_token(issue_token(traveller.user_id), users)

    async def test_missing_token(self, users: UserRepository) -> None:
        with pytest.raises(Unauthorized):
            await user_from_token(None, users)


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


def _registration(**overrides) -> RegisterInput:
    fields = {
        "first_name": "Lena",
        "last_name": "Vogel",
        "email": "Lena@Example.com",
        "password": "s3cret-pass",
        "phone": "+49 30 1234567",
        "country": "DE",
        "emergency_contact": {"name": "Max Vogel", "phone": "+49 170 0000000"},
    }
    fields.update(overrides)
    return RegisterInput(**fields)


@pytest.fixture
def sms() -> AsyncMock:
    return AsyncMock(spec=NotificationDispatcher)


@pytest.fixture
def accounts(users: UserRepository, sms: AsyncMock) -> AccountService:
    return AccountService(users, max_attempts=3, lock_seconds=600, dispatcher=sms)


def _sent_code(sms: AsyncMock) -> str:
    _, body = sms.send_sms.await_args.args
    return re.search(r"code is ([A-Za-z0-9_-]+)", body).group(1)


class TestAccounts:
    async def test_register_returns_usable_token(self, accounts: AccountService, users: UserRepository) -> None:
        user, token = await accounts.register(_registration())
        assert user.email == "lena@example.com"
        assert user.password_hash != "s3cret-pass"
        assert user.emergency_contact.can_receive_sms
        assert (await user_from_token(token, users)).user_id == user.user_id

    async def test_duplicate_email(self, accounts: AccountService) -> None:
        await accounts.register(_registration())
        with pytest.raises(ValidationFailed):
            await accounts.register(_registration(email="lena@example.com"))

    async def test_login_success_resets_counter(self, accounts: AccountService, users: UserRepository) -> None:
        user, _ = await accounts.register(_registration())
        with pytest.raises(Unauthorized):
            await accounts.login(LoginInput(email="lena@example.com", password="nope"))
        assert (await users.require(user.user_id)).login_attempts == 1

        logged_in, token = await accounts.login(LoginInput(email="lena@example.com", password="s3cret-pass"))
        assert token
        stored = await users.require(logged_in.user_id)
        assert stored.login_attempts == 0
        assert stored.last_login is not None

    async def test_lockout_after_max_attempts(self, accounts: AccountService, users: UserRepository) -> None:
        user, _ = await accounts.register(_registration())
        for _ in range(3):
            with pytest.raises(Unauthorized):
                await accounts.login(LoginInput(email="lena@example.com", password="nope"))

        stored = await users.require(user.user_id)
        assert stored.is_locked
        assert stored.lock_until - datetime.now(UTC) <= timedelta(seconds=600)

        with pytest.raises(Forbidden):
            await accounts.login(LoginInput(email="lena@example.com", password="s3cret-pass"))

    async def test_unknown_email(self, accounts: AccountService) -> None:
        with pytest.raises(Unauthorized):
            await accounts.login(LoginInput(email="nobody@example.com", password="x"))


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


class TestVerification:
    async def test_registration_texts_a_code_to_the_traveller(self, accounts: AccountService, sms: AsyncMock) -> None:
        user, _ = await accounts.register(_registration())

        sms.send_sms.assert_awaited_once()
        to, body = sms.send_sms.await_args.args
        assert to == "+49 30 1234567"
        assert body.endswith("It expires in 24 hours.")
        assert not user.is_verified
        assert user.verification_code_hash is not None
        assert user.verification_code_hash != _sent_code(sms)

    async def test_correct_code_verifies_once(
        self, accounts: AccountService, sms: AsyncMock, users: UserRepository
    ) -> None:
        user, _ = await accounts.register(_registration())
        code = _sent_code(sms)

        verified = await accounts.verify(user.user_id, code)

        assert verified.is_verified
        stored = await users.require(user.user_id)
        assert stored.is_verified
        assert stored.verification_code_hash is None
        # A second redemption is harmless.
        assert (await accounts.verify(user.user_id, code)).is_verified

    async def test_wrong_code(self, accounts: AccountService, users: UserRepository) -> None:
        user, _ = await accounts.register(_registration())
        with pytest.raises(ValidationFailed) as excinfo:
            await accounts.verify(user.user_id, "not-the-code")
        assert [e.field for e in excinfo.value.errors] == ["code"]
        assert not (await users.require(user.user_id)).is_verified

    async def test_expired_code(self, accounts: AccountService, sms: AsyncMock, users: UserRepository) -> None:
        user, _ = await accounts.register(_registration())
        stored = await users.require(user.user_id)
        stored.verification_expires = datetime.now(UTC) - timedelta(seconds=1)
        await users.save(stored)

        with pytest.raises(ValidationFailed, match="expired"):
            await accounts.verify(user.user_id, _sent_code(sms))

    async def test_resend_replaces_the_old_code(self, accounts: AccountService, sms: AsyncMock) -> None:
        user, _ = await accounts.register(_registration())
        first = _sent_code(sms)

        await accounts.resend_verification(user.user_id)
        second = _sent_code(sms)

        assert sms.send_sms.await_count == 2
        assert first != second
        with pytest.raises(ValidationFailed):
            await accounts.verify(user.user_id, first)
        assert (await accounts.verify(user.user_id, second)).is_verified

    async def test_resend_for_verified_account_sends_nothing(
        self, accounts: AccountService, sms: AsyncMock, traveller: User
    ) -> None:
        refreshed = await accounts.resend_verification(traveller.user_id)
        assert refreshed.is_verified
        sms.send_sms.assert_not_awaited()

    async def test_send_failure_keeps_the_account(
        self, accounts: AccountService, sms: AsyncMock, users: UserRepository
    ) -> None:
        sms.send_sms.side_effect = DispatchError("sms", "gateway down")

        user, token = await accounts.register(_registration())

        assert token
        assert (await users.require(user.user_id)).verification_code_hash is not None
