"""Authentication identity service backed by the document store."""

import logging
import secrets
import string
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite
from passlib.context import CryptContext

from src.core import db_client
from src.core.config import constants
from src.core.db_client import DuplicateRecordError, RecordNotFoundError
from src.core.errors import AuthenticationError, IdentityExistsError
from src.core.logging import span


logger = logging.getLogger(__name__)

IDENTITIES_COLLECTION = "auth_identities"
_SECRET_ALPHABET = string.ascii_lowercase + string.digits
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=constants.PASSWORD_HASH_ROUNDS)


def generate_secret(length: int = constants.CHILD_SECRET_LENGTH) -> str:
    """Generate a random lowercase alphanumeric initial secret."""
    return "".join(secrets.choice(_SECRET_ALPHABET) for _ in range(length))


def normalize_email(email: str) -> str:
    """Lower-case and trim an email address."""
    return email.strip().lower()


def _identity_data(email: str, secret: str) -> dict[str, str]:
    return {"email": normalize_email(email), "secret_hash": pwd_context.hash(secret)}


async def create_identity(*, email: str, secret: str) -> str:
    """Create an identity on the shared connection.

    Returns:
        The new identity id

    Raises:
        IdentityExistsError: If the email is already registered
    """
    with span("auth_client.create_identity"):
        try:
            record = await db_client.create_record(collection=IDENTITIES_COLLECTION, data=_identity_data(email, secret))
        except DuplicateRecordError as e:
            raise IdentityExistsError(normalize_email(email)) from e

        logger.info("Created identity", extra={"identity_id": record["id"]})
        return record["id"]


async def delete_identity(*, identity_id: str) -> None:
    """Delete an identity.

    Raises:
        RecordNotFoundError: If the identity does not exist
    """
    with span("auth_client.delete_identity"):
        await db_client.delete_record(collection=IDENTITIES_COLLECTION, record_id=identity_id)
        logger.info("Deleted identity", extra={"identity_id": identity_id})


async def get_identity(*, identity_id: str) -> dict[str, str]:
    """Fetch an identity's public fields (no secret material)."""
    record = await db_client.get_record(collection=IDENTITIES_COLLECTION, record_id=identity_id)
    return {"id": record["id"], "email": record["email"]}


async def authenticate(*, email: str, secret: str) -> str:
    """Check credentials and return the identity id.

    Raises:
        AuthenticationError: If the email is unknown or the secret is wrong
    """
    with span("auth_client.authenticate"):
        record = await db_client.get_first_record(
            collection=IDENTITIES_COLLECTION,
            filter_query=f'email = "{db_client.sanitize_param(normalize_email(email))}"',
        )
        if record is None:
            logger.warning("Authentication failed: unknown identity")
            raise AuthenticationError("Invalid email or password")

        if not pwd_context.verify(secret, record["secret_hash"]):
            logger.warning("Authentication failed: bad secret", extra={"identity_id": record["id"]})
            raise AuthenticationError("Invalid email or password")

        return record["id"]


async def change_secret(*, identity_id: str, secret: str) -> None:
    """Replace an identity's secret."""
    with span("auth_client.change_secret"):
        await db_client.update_record(
            collection=IDENTITIES_COLLECTION,
            record_id=identity_id,
            data={"secret_hash": pwd_context.hash(secret)},
        )
        logger.info("Changed identity secret", extra={"identity_id": identity_id})


class IsolatedAuthContext:
    """Identity operations on a private connection, separate from the caller's session."""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn
        self.created_identity_ids: list[str] = []

    async def create_identity(self, *, email: str, secret: str) -> str:
        """Create an identity and remember it for cleanup on failure."""
        identity_id = db_client.new_record_id()
        data = {"id": identity_id, **_identity_data(email, secret)}
        timestamp = db_client.now_timestamp()
        try:
            await self._conn.execute(
                f"INSERT INTO {IDENTITIES_COLLECTION} "  # noqa: S608
                "(id, email, secret_hash, created, updated) "
                "VALUES (?, ?, ?, ?, ?)",
                (data["id"], data["email"], data["secret_hash"], timestamp, timestamp),
            )
            await self._conn.commit()
        except aiosqlite.IntegrityError as e:
            await self._conn.rollback()
            raise IdentityExistsError(data["email"]) from e

        self.created_identity_ids.append(identity_id)
        logger.info("Created identity in isolated context", extra={"identity_id": identity_id})
        return identity_id

    async def delete_identity(self, *, identity_id: str) -> None:
        """Delete an identity through the private connection."""
        cursor = await self._conn.execute(
            f"DELETE FROM {IDENTITIES_COLLECTION} WHERE id = ?",  # noqa: S608
            (identity_id,),
        )
        await self._conn.commit()
        if cursor.rowcount == 0:
            msg = f"Record not found in {IDENTITIES_COLLECTION}: {identity_id}"
            raise RecordNotFoundError(msg)
        if identity_id in self.created_identity_ids:
            self.created_identity_ids.remove(identity_id)


@asynccontextmanager
async def isolated_auth_context() -> AsyncIterator[IsolatedAuthContext]:
    """Run identity creation in a throwaway context.

    Identities created inside the block are deleted if the block raises, and
    the private connection is always discarded on exit.
    """
    conn = await db_client.open_connection()
    context = IsolatedAuthContext(conn)
    try:
        yield context
    except BaseException:
        for identity_id in list(reversed(context.created_identity_ids)):
            try:
                await context.delete_identity(identity_id=identity_id)
                logger.info("Rolled back identity from failed isolated context", extra={"identity_id": identity_id})
            except (aiosqlite.Error, RecordNotFoundError):
                logger.exception("Failed to clean up identity %s", identity_id)
        raise
    finally:
        await conn.close()
