"""Session service: explicit sign-in contexts with a defined lifecycle.

A SessionContext is created at sign-in, looked up on every request through a
signed token, refreshed on demand and torn down at sign-out.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from pydantic import BaseModel, Field

from src.core import auth_client, db_client
from src.core.config import settings
from src.core.db_client import RecordNotFoundError
from src.core.errors import AuthenticationError
from src.core.logging import span
from src.domain.user import UserRole


logger = logging.getLogger(__name__)

SESSIONS = "sessions"

serializer = URLSafeTimedSerializer(str(settings.secret_key), salt="growthally-session")


class SessionContext(BaseModel):
    """The signed-in user a workflow operation acts for."""

    session_id: str = Field(..., description="Session record id")
    user_id: str = Field(..., description="Identity and profile id")
    role: UserRole = Field(..., description="parent or child")
    email: str = Field(..., description="Sign-in email")
    is_administrator: bool = Field(default=False, description="May manage the announcement")
    expires_at: str = Field(..., description="Expiry timestamp (ISO format)")
    profile: dict[str, Any] = Field(default_factory=dict, description="Profile snapshot taken at sign-in or refresh")


def _expiry() -> str:
    expires_at = datetime.now(UTC) + timedelta(seconds=settings.session_max_age_seconds)
    return expires_at.isoformat().replace("+00:00", "Z")


def is_expired(session: dict[str, Any]) -> bool:
    """Check if a session record has passed its expiry time."""
    expires_at = datetime.fromisoformat(session["expires_at"].replace("Z", "+00:00"))
    return datetime.now(UTC) > expires_at


def _to_context(session: dict[str, Any], profile: dict[str, Any]) -> SessionContext:
    return SessionContext(
        session_id=session["id"],
        user_id=session["identity_id"],
        role=session["role"],
        email=session["email"],
        is_administrator=settings.is_administrator(session["email"]),
        expires_at=session["expires_at"],
        profile=profile,
    )


async def _sign_in(*, email: str, password: str, role: UserRole) -> SessionContext:
    identity_id = await auth_client.authenticate(email=email, secret=password)

    try:
        profile = await db_client.get_record(collection="profiles", record_id=identity_id)
    except RecordNotFoundError as e:
        logger.warning("Sign-in for identity %s without a profile", identity_id)
        raise AuthenticationError("Account has no profile") from e

    # Guard: Parents and children sign in through separate doors
    if profile["role"] != role:
        logger.warning("Sign-in role mismatch for %s: expected %s, got %s", identity_id, role, profile["role"])
        msg = f"This account cannot sign in as a {role}"
        raise AuthenticationError(msg)

    session = await db_client.create_record(
        collection=SESSIONS,
        data={
            "identity_id": identity_id,
            "role": role,
            "email": auth_client.normalize_email(email),
            "expires_at": _expiry(),
        },
    )
    logger.info("Signed in %s %s", role, identity_id, extra={"operation": "sign_in"})
    return _to_context(session, profile)


async def sign_in_parent(*, email: str, password: str) -> SessionContext:
    """Sign in a parent account.

    Raises:
        AuthenticationError: If the credentials are wrong or the account is not a parent
    """
    with span("session_service.sign_in_parent"):
        return await _sign_in(email=email, password=password, role=UserRole.PARENT)


async def sign_in_child(*, email: str, password: str) -> SessionContext:
    """Sign in a child account.

    Raises:
        AuthenticationError: If the credentials are wrong or the account is not a child
    """
    with span("session_service.sign_in_child"):
        return await _sign_in(email=email, password=password, role=UserRole.CHILD)


async def get_session(*, session_id: str) -> SessionContext:
    """Load an active session. Expired sessions are deleted.

    Raises:
        AuthenticationError: If the session does not exist, has expired or its profile is gone
    """
    with span("session_service.get_session"):
        try:
            session = await db_client.get_record(collection=SESSIONS, record_id=session_id)
        except RecordNotFoundError as e:
            raise AuthenticationError("Session not found") from e

        if is_expired(session):
            await db_client.delete_record(collection=SESSIONS, record_id=session_id)
            logger.info("Deleted expired session", extra={"operation": "delete_expired_session"})
            raise AuthenticationError("Session expired")

        try:
            profile = await db_client.get_record(collection="profiles", record_id=session["identity_id"])
        except RecordNotFoundError as e:
            raise AuthenticationError("Account no longer exists") from e

        return _to_context(session, profile)


async def refresh_session(*, session_id: str) -> SessionContext:
    """Extend a session's expiry and reload its profile snapshot.

    Raises:
        AuthenticationError: If the session is not active
    """
    with span("session_service.refresh_session"):
        context = await get_session(session_id=session_id)
        session = await db_client.update_record(
            collection=SESSIONS,
            record_id=session_id,
            data={"expires_at": _expiry()},
        )
        logger.info("Refreshed session", extra={"operation": "refresh_session"})
        return _to_context(session, context.profile)


async def sign_out(*, session_id: str) -> bool:
    """End a session. Returns True if the session existed."""
    with span("session_service.sign_out"):
        try:
            await db_client.delete_record(collection=SESSIONS, record_id=session_id)
        except RecordNotFoundError:
            return False
        logger.info("Signed out", extra={"operation": "sign_out"})
        return True


def issue_token(context: SessionContext) -> str:
    """Sign a session id into a bearer token."""
    return serializer.dumps({"sid": context.session_id})


async def resolve_token(token: str) -> SessionContext:
    """Verify a bearer token and load its session.

    Raises:
        AuthenticationError: If the token is forged, expired or its session has ended
    """
    try:
        data = serializer.loads(token, max_age=settings.session_max_age_seconds)
    except SignatureExpired as e:
        raise AuthenticationError("Session token expired") from e
    except BadSignature as e:
        raise AuthenticationError("Invalid session token") from e

    if not isinstance(data, dict) or "sid" not in data:
        raise AuthenticationError("Invalid session token")
    return await get_session(session_id=data["sid"])
