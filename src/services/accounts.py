"""Registration, password login with lockout, and account verification.

A new account is unverified. Registration texts a one-time code to the
traveller's own phone; redeeming it through ``verify`` proves the number
is theirs and unlocks the community write endpoints.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import UTC, datetime, timedelta

import structlog

from src.middleware.auth import hash_password, issue_token, verify_password
from src.models.request import LoginInput, RegisterInput
from src.models.user import PersonalContact, User
from src.services.errors import FieldError, Forbidden, Unauthorized, ValidationFailed
from src.services.notifications import NotificationDispatcher, mask_phone
from src.services.users import UserRepository

logger = structlog.get_logger(__name__)

_INVALID_CODE = "Invalid or expired verification code"


def _code_hash(code: str) -> str:
    return hashlib.sha256(code.encode()).hexdigest()


class AccountService:
    __slots__ = ("_dispatcher", "_lock_for", "_max_attempts", "_users", "_verification_ttl")

    def __init__(
        self,
        users: UserRepository,
        *,
        max_attempts: int = 5,
        lock_seconds: int = 2 * 3600,
        dispatcher: NotificationDispatcher | None = None,
        verification_ttl_seconds: int = 24 * 3600,
    ) -> None:
        self._users = users
        self._max_attempts = max_attempts
        self._lock_for = timedelta(seconds=lock_seconds)
        self._dispatcher = dispatcher or NotificationDispatcher()
        self._verification_ttl = timedelta(seconds=verification_ttl_seconds)

    async def register(self, data: RegisterInput) -> tuple[User, str]:
        if await self._users.get_by_email(data.email) is not None:
            raise ValidationFailed(
                [FieldError(field="email", message="User already exists with this email")],
                "User already exists with this email",
            )

        contact = None
        if data.emergency_contact is not None:
            contact = PersonalContact(**data.emergency_contact.model_dump())

        user = User(
            first_name=data.first_name,
            last_name=data.last_name,
            email=str(data.email),
            phone=data.phone,
            country=data.country,
            password_hash=hash_password(data.password),
            emergency_contact=contact,
        )
        code = self._new_code(user)
        await self._users.create(user)
        await self._send_code(user, code)
        return user, issue_token(user.user_id)

    async def login(self, data: LoginInput) -> tuple[User, str]:
        user = await self._users.get_by_email(data.email)
        if user is None:
            raise Unauthorized("Invalid credentials")
        if user.is_locked:
            logger.warning("accounts.login_locked", user_id=user.user_id)
            raise Forbidden("Account temporarily locked due to too many failed login attempts")
        if not user.is_active:
            raise Unauthorized("Account is deactivated")

        if not verify_password(data.password, user.password_hash):
            user.login_attempts += 1
            if user.login_attempts >= self._max_attempts:
                user.lock_until = datetime.now(UTC) + self._lock_for
                user.login_attempts = 0
                logger.warning("accounts.locked", user_id=user.user_id)
            await self._users.save(user)
            raise Unauthorized("Invalid credentials")

        user.login_attempts = 0
        user.lock_until = None
        user.last_login = datetime.now(UTC)
        await self._users.save(user)
        logger.info("accounts.login", user_id=user.user_id)
        return user, issue_token(user.user_id)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def verify(self, user_id: str, code: str) -> User:
        """Redeem a verification code; verifying twice is a no-op.

        Raises
        ------
        ValidationFailed
            For a wrong, expired or already-used code.
        """
        user = await self._users.require(user_id)
        if user.is_verified:
            return user

        expected = user.verification_code_hash
        expires = user.verification_expires
        if (
            expected is None
            or expires is None
            or expires <= datetime.now(UTC)
            or not hmac.compare_digest(_code_hash(code.strip()), expected)
        ):
            logger.info("accounts.verification_rejected", user_id=user_id)
            raise ValidationFailed([FieldError(field="code", message=_INVALID_CODE)], _INVALID_CODE)

        user.is_verified = True
        user.verification_code_hash = None
        user.verification_expires = None
        user.updated_at = datetime.now(UTC)
        await self._users.save(user)
        logger.info("accounts.verified", user_id=user_id)
        return user

    async def resend_verification(self, user_id: str) -> User:
        """Replace any outstanding code with a fresh one and text it again."""
        user = await self._users.require(user_id)
        if user.is_verified:
            return user
        code = self._new_code(user)
        await self._users.save(user)
        await self._send_code(user, code)
        return user

    def _new_code(self, user: User) -> str:
        code = secrets.token_urlsafe(16)
        user.verification_code_hash = _code_hash(code)
        user.verification_expires = datetime.now(UTC) + self._verification_ttl
        return code

    async def _send_code(self, user: User, code: str) -> None:
        hours = max(1, round(self._verification_ttl.total_seconds() / 3600))
        message = f"Your Travault verification code is {code}. It expires in {hours} hours."
        try:
            await self._dispatcher.send_sms(user.phone, message)
        except Exception as exc:
            # The account exists either way; the traveller can ask for a new code.
            logger.warning(
                "accounts.verification_send_failed",
                user_id=user.user_id,
                to=mask_phone(user.phone),
                error=str(exc),
            )
