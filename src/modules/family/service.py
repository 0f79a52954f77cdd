"""Family service for parent registration, child provisioning and roster management."""

import logging
from typing import Any

from src.core import auth_client, db_client, live_query
from src.core.config import constants, settings
from src.core.db_client import DatabaseError, RecordNotFoundError, sanitize_param
from src.core.logging import span
from src.domain.create_models import ChildCreate, ParentCreate
from src.domain.update_models import ProfileUpdate
from src.domain.user import UserRole


logger = logging.getLogger(__name__)

PROFILES = "profiles"
ROSTER = "children"


async def get_profile(*, user_id: str) -> dict[str, Any]:
    """Fetch a profile by identity id.

    Raises:
        RecordNotFoundError: If no profile exists for the id
    """
    return await db_client.get_record(collection=PROFILES, record_id=user_id)


async def require_parent(*, parent_id: str) -> dict[str, Any]:
    """Fetch a profile and check it belongs to a parent.

    Raises:
        PermissionError: If the profile is missing or not a parent
    """
    try:
        profile = await get_profile(user_id=parent_id)
    except RecordNotFoundError as e:
        msg = f"Unknown parent {parent_id}"
        raise PermissionError(msg) from e
    if profile["role"] != UserRole.PARENT:
        msg = f"User {parent_id} is not a parent"
        raise PermissionError(msg)
    return profile


async def require_child(*, child_id: str) -> dict[str, Any]:
    """Fetch a profile and check it belongs to a child.

    Raises:
        PermissionError: If the profile is missing or not a child
    """
    try:
        profile = await get_profile(user_id=child_id)
    except RecordNotFoundError as e:
        msg = f"Unknown child {child_id}"
        raise PermissionError(msg) from e
    if profile["role"] != UserRole.CHILD:
        msg = f"User {child_id} is not a child"
        raise PermissionError(msg)
    return profile


async def register_parent(*, data: ParentCreate) -> dict[str, Any]:
    """Register a parent account.

    Creates the authentication identity, then a parent profile sharing its id.
    If the profile cannot be written the identity is deleted again.

    Args:
        data: Validated registration details

    Returns:
        Created parent profile

    Raises:
        IdentityExistsError: If the email is already registered
        db_client.DatabaseError: If the profile cannot be written
    """
    with span("family_service.register_parent"):
        identity_id = await auth_client.create_identity(email=data.email, secret=data.password)

        profile_data = {
            "role": UserRole.PARENT,
            "email": data.email,
            "display_name": data.name,
            "name": data.name,
            "gender": data.gender,
            "age": data.age,
            "phone": data.phone,
        }
        try:
            profile = await db_client.create_record(collection=PROFILES, data=profile_data, record_id=identity_id)
        except DatabaseError:
            logger.error("Parent profile creation failed, removing identity %s", identity_id)
            await auth_client.delete_identity(identity_id=identity_id)
            raise

        logger.info("Registered parent %s", identity_id)
        return profile


async def provision_child(*, parent_id: str, data: ChildCreate) -> dict[str, Any]:
    """Create a child account owned by a parent.

    The child's identity is created in an isolated auth context so the parent's
    own session is untouched. Profile and roster entry are then written in one
    atomic batch; if that fails the isolated context deletes the identity.

    Args:
        parent_id: Acting parent's profile id
        data: Validated child details

    Returns:
        Dict with the child `profile`, the `roster_entry` and the generated
        `initial_secret` (shown to the parent once)

    Raises:
        PermissionError: If parent_id is not a parent
        IdentityExistsError: If the generated email is already in use
        db_client.DatabaseError: If the records cannot be written
    """
    with span("family_service.provision_child"):
        await require_parent(parent_id=parent_id)

        email = f"{data.email_prefix}@{settings.child_email_domain}"
        initial_secret = auth_client.generate_secret()

        async with auth_client.isolated_auth_context() as auth:
            child_id = await auth.create_identity(email=email, secret=initial_secret)

            profile, roster_entry = await db_client.atomic_batch(
                [
                    db_client.create_op(
                        PROFILES,
                        {
                            "role": UserRole.CHILD,
                            "email": email,
                            "display_name": data.name,
                            "name": data.name,
                            "gender": data.gender,
                            "age": data.age,
                            "parent_id": parent_id,
                            "points": 0,
                            "hobbies": data.hobbies,
                        },
                        record_id=child_id,
                    ),
                    db_client.create_op(
                        ROSTER,
                        {
                            "parent_id": parent_id,
                            "profile_id": child_id,
                            "name": data.name,
                            "email": email,
                            "points": 0,
                            "initial_secret": initial_secret,
                            "gender": data.gender,
                            "age": data.age,
                            "hobbies": data.hobbies,
                        },
                    ),
                ]
            )

        logger.info("Provisioned child %s for parent %s", child_id, parent_id)
        return {"profile": profile, "roster_entry": roster_entry, "initial_secret": initial_secret}


async def list_children(*, parent_id: str) -> list[dict[str, Any]]:
    """List a parent's roster entries, ordered by name."""
    with span("family_service.list_children"):
        return await db_client.list_records(
            collection=ROSTER,
            filter_query=f'parent_id = "{sanitize_param(parent_id)}"',
            sort="name",
            per_page=constants.FULL_LIST_PER_PAGE,
        )


async def get_child(*, parent_id: str, child_id: str) -> dict[str, Any]:
    """Get the roster entry for one of a parent's children.

    Raises:
        RecordNotFoundError: If the child is not on this parent's roster
    """
    entry = await find_roster_entry(child_id=child_id)
    if entry is None or entry["parent_id"] != parent_id:
        msg = f"Child {child_id} not found on roster of {parent_id}"
        raise RecordNotFoundError(msg)
    return entry


async def find_roster_entry(*, child_id: str) -> dict[str, Any] | None:
    """Find the roster mirror of a child profile, or None."""
    return await db_client.get_first_record(
        collection=ROSTER,
        filter_query=f'profile_id = "{sanitize_param(child_id)}"',
    )


def watch_children(*, parent_id: str) -> live_query.Subscription:
    """Live feed of a parent's roster."""
    return live_query.subscribe(
        collection=ROSTER,
        filter_query=f'parent_id = "{sanitize_param(parent_id)}"',
        sort="name",
    )


async def remove_child(*, parent_id: str, child_id: str) -> None:
    """Remove a child from the roster, then best-effort delete the profile and identity.

    Raises:
        RecordNotFoundError: If the child is not on this parent's roster
    """
    with span("family_service.remove_child"):
        entry = await get_child(parent_id=parent_id, child_id=child_id)
        await db_client.delete_record(collection=ROSTER, record_id=entry["id"])
        logger.info("Removed child %s from roster of %s", child_id, parent_id)

        try:
            await db_client.delete_record(collection=PROFILES, record_id=child_id)
        except (RecordNotFoundError, DatabaseError):
            logger.exception("Failed to delete profile of removed child %s", child_id)

        try:
            await auth_client.delete_identity(identity_id=child_id)
        except (RecordNotFoundError, DatabaseError):
            logger.exception("Failed to delete identity of removed child %s", child_id)


async def update_profile(*, user_id: str, update: ProfileUpdate) -> dict[str, Any]:
    """Edit a profile's display attributes.

    For a child, the roster mirror's name and demographics are updated in the
    same atomic batch.

    Args:
        user_id: Profile id being edited
        update: Fields to change (unset fields are left alone)

    Returns:
        Updated profile

    Raises:
        ValueError: If nothing is being changed or a field does not apply to the role
        RecordNotFoundError: If the profile does not exist
    """
    with span("family_service.update_profile"):
        profile = await get_profile(user_id=user_id)
        changes = update.model_dump(exclude_none=True)

        # Guard: Nothing to do
        if not changes:
            msg = "No profile fields to update"
            raise ValueError(msg)

        if profile["role"] == UserRole.PARENT:
            if "hobbies" in changes:
                msg = "Hobbies only apply to child profiles"
                raise ValueError(msg)
            if "age" in changes and changes["age"] < constants.MIN_PARENT_AGE:
                msg = f"Parents must be at least {constants.MIN_PARENT_AGE} years old"
                raise ValueError(msg)
            if "display_name" in changes:
                changes["name"] = changes["display_name"]
            (updated,) = await db_client.atomic_batch([db_client.merge_op(PROFILES, user_id, changes)])
            logger.info("Updated parent profile %s", user_id)
            return updated or {}

        if "age" in changes and not constants.MIN_CHILD_AGE <= changes["age"] <= constants.MAX_CHILD_AGE:
            msg = f"Child age must be between {constants.MIN_CHILD_AGE} and {constants.MAX_CHILD_AGE}"
            raise ValueError(msg)
        changes.pop("phone", None)
        if not changes:
            msg = "Phone only applies to parent profiles"
            raise ValueError(msg)

        ops = [db_client.merge_op(PROFILES, user_id, changes)]
        entry = await find_roster_entry(child_id=user_id)
        mirror_changes = {k: v for k, v in changes.items() if k in {"gender", "age", "hobbies"}}
        if "display_name" in changes:
            mirror_changes["name"] = changes["display_name"]
        if entry is not None and mirror_changes:
            ops.append(db_client.merge_op(ROSTER, entry["id"], mirror_changes))
        elif entry is None:
            logger.warning("Child %s has no roster entry, updating profile only", user_id)

        updated, *_ = await db_client.atomic_batch(ops)
        logger.info("Updated child profile %s", user_id)
        return updated or {}
