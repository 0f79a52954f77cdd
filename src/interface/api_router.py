"""JSON API for parents, children and administrators."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Header, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from src.core.db_client import DatabaseError, RecordNotFoundError
from src.core.errors import AuthenticationError, ErrorCode, GrowthAllyError, classify_error_with_response
from src.domain.announcement import Announcement
from src.domain.create_models import (
    AnnouncementUpdate,
    ChildCreate,
    ParentCreate,
    RewardCreate,
    TaskCreate,
    TaskSubmission,
)
from src.domain.task import TaskStatus, VerificationDecision
from src.domain.update_models import ProfileUpdate
from src.domain.user import UserRole
from src.modules.announcements import service as announcement_service
from src.modules.family import service as family_service
from src.modules.rewards import service as reward_service
from src.modules.tasks import service as task_service
from src.modules.tasks import verification
from src.services import points_service, session_service
from src.services.session_service import SessionContext


logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/auth", tags=["auth"])
parent_router = APIRouter(prefix="/parent", tags=["parent"])
child_router = APIRouter(prefix="/child", tags=["child"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])

STATUS_BY_ERROR_CODE = {
    ErrorCode.ERR_VALIDATION: 422,
    ErrorCode.ERR_STATE_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.ERR_INSUFFICIENT_POINTS: status.HTTP_409_CONFLICT,
    ErrorCode.ERR_IDENTITY_EXISTS: status.HTTP_409_CONFLICT,
    ErrorCode.ERR_INTEGRITY: status.HTTP_409_CONFLICT,
    ErrorCode.ERR_AUTHENTICATION_FAILED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.ERR_PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorCode.ERR_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.ERR_BACKEND_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.ERR_UNKNOWN: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class SignInRequest(BaseModel):
    """Credentials for parent or child sign-in."""

    email: str
    password: str


class VerifyRequest(BaseModel):
    """Reviewer decision on a completed task."""

    decision: VerificationDecision
    feedback: str | None = Field(default=None, description="Reviewer comment")


async def handle_workflow_error(request: Request, exc: Exception) -> JSONResponse:
    """Turn a typed workflow failure into a JSON error response."""
    response = classify_error_with_response(exc)
    status_code = STATUS_BY_ERROR_CODE.get(response.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    log = logger.error if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR else logger.warning
    log("request_failed", extra={"path": request.url.path, "code": response.code, "error": str(exc)})
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))


def install_error_handlers(app: FastAPI) -> None:
    """Register handlers for every exception type the workflows raise."""
    for exc_type in (GrowthAllyError, PermissionError, RecordNotFoundError, DatabaseError, ValueError):
        app.add_exception_handler(exc_type, handle_workflow_error)


def _bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise AuthenticationError("Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Authorization header must be 'Bearer <token>'")
    return token.strip()


async def current_session(authorization: str | None = Header(default=None)) -> SessionContext:
    """Resolve the caller's session from a bearer token."""
    return await session_service.resolve_token(_bearer_token(authorization))


async def require_parent_session(session: SessionContext = Depends(current_session)) -> SessionContext:
    """Require a signed-in parent."""
    if session.role != UserRole.PARENT:
        raise PermissionError("Parent account required")
    return session


async def require_child_session(session: SessionContext = Depends(current_session)) -> SessionContext:
    """Require a signed-in child."""
    if session.role != UserRole.CHILD:
        raise PermissionError("Child account required")
    return session


def _session_payload(session: SessionContext) -> dict[str, Any]:
    return {"token": session_service.issue_token(session), "session": session.model_dump(mode="json")}


# Authentication and profile


@auth_router.post("/parent/register", status_code=status.HTTP_201_CREATED)
async def register_parent(data: ParentCreate) -> dict[str, Any]:
    """Register a parent account."""
    return await family_service.register_parent(data=data)


@auth_router.post("/parent/login")
async def sign_in_parent(credentials: SignInRequest) -> dict[str, Any]:
    """Sign in a parent and return a bearer token."""
    session = await session_service.sign_in_parent(email=credentials.email, password=credentials.password)
    return _session_payload(session)


@auth_router.post("/child/login")
async def sign_in_child(credentials: SignInRequest) -> dict[str, Any]:
    """Sign in a child and return a bearer token."""
    session = await session_service.sign_in_child(email=credentials.email, password=credentials.password)
    return _session_payload(session)


@auth_router.get("/session")
async def get_session(session: SessionContext = Depends(current_session)) -> dict[str, Any]:
    """Return the caller's session."""
    return session.model_dump(mode="json")


@auth_router.post("/refresh")
async def refresh_session(session: SessionContext = Depends(current_session)) -> dict[str, Any]:
    """Extend the caller's session and return a fresh token."""
    refreshed = await session_service.refresh_session(session_id=session.session_id)
    return _session_payload(refreshed)


@auth_router.post("/logout")
async def sign_out(session: SessionContext = Depends(current_session)) -> dict[str, Any]:
    """End the caller's session."""
    await session_service.sign_out(session_id=session.session_id)
    return {"signed_out": True}


@auth_router.patch("/profile")
async def update_profile(
    update: ProfileUpdate,
    session: SessionContext = Depends(current_session),
) -> dict[str, Any]:
    """Edit the caller's profile."""
    return await family_service.update_profile(user_id=session.user_id, update=update)


@auth_router.get("/announcement")
async def get_announcement(_session: SessionContext = Depends(current_session)) -> dict[str, Any] | None:
    """Return the active announcement, if any."""
    record = await announcement_service.get_active_announcement()
    return Announcement.model_validate(record).model_dump(mode="json") if record else None


# Parent


@parent_router.get("/children")
async def list_children(session: SessionContext = Depends(require_parent_session)) -> list[dict[str, Any]]:
    """List the parent's children."""
    return await family_service.list_children(parent_id=session.user_id)


@parent_router.post("/children", status_code=status.HTTP_201_CREATED)
async def provision_child(
    data: ChildCreate,
    session: SessionContext = Depends(require_parent_session),
) -> dict[str, Any]:
    """Create a child account; the response carries the initial password once."""
    return await family_service.provision_child(parent_id=session.user_id, data=data)


@parent_router.get("/children/{child_id}")
async def get_child(child_id: str, session: SessionContext = Depends(require_parent_session)) -> dict[str, Any]:
    """Return one roster entry."""
    return await family_service.get_child(parent_id=session.user_id, child_id=child_id)


@parent_router.delete("/children/{child_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_child(child_id: str, session: SessionContext = Depends(require_parent_session)) -> None:
    """Remove a child account."""
    await family_service.remove_child(parent_id=session.user_id, child_id=child_id)


@parent_router.get("/children/{child_id}/audit")
async def audit_child(child_id: str, session: SessionContext = Depends(require_parent_session)) -> dict[str, Any]:
    """Compare a child's balance against task and redemption history."""
    await family_service.get_child(parent_id=session.user_id, child_id=child_id)
    return await points_service.audit_child_points(child_id=child_id)


@parent_router.get("/tasks")
async def list_parent_tasks(
    task_status: TaskStatus | None = None,
    session: SessionContext = Depends(require_parent_session),
) -> list[dict[str, Any]]:
    """List the parent's tasks."""
    return await task_service.list_parent_tasks(parent_id=session.user_id, status=task_status)


@parent_router.post("/tasks", status_code=status.HTTP_201_CREATED)
async def create_task(data: TaskCreate, session: SessionContext = Depends(require_parent_session)) -> dict[str, Any]:
    """Create a task."""
    return await task_service.create_task(parent_id=session.user_id, data=data)


@parent_router.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(task_id: str, session: SessionContext = Depends(require_parent_session)) -> None:
    """Delete a task."""
    await task_service.delete_task(parent_id=session.user_id, task_id=task_id)


@parent_router.post("/tasks/{task_id}/verify")
async def verify_task(
    task_id: str,
    body: VerifyRequest,
    session: SessionContext = Depends(require_parent_session),
) -> dict[str, Any]:
    """Approve or reject a completed task."""
    return await verification.verify_task(
        parent_id=session.user_id,
        task_id=task_id,
        decision=body.decision,
        feedback=body.feedback,
    )


@parent_router.get("/rewards")
async def list_rewards(session: SessionContext = Depends(require_parent_session)) -> list[dict[str, Any]]:
    """List the parent's rewards."""
    return await reward_service.list_rewards(parent_id=session.user_id)


@parent_router.post("/rewards", status_code=status.HTTP_201_CREATED)
async def create_reward(
    data: RewardCreate,
    session: SessionContext = Depends(require_parent_session),
) -> dict[str, Any]:
    """Create a reward."""
    return await reward_service.create_reward(parent_id=session.user_id, data=data)


@parent_router.delete("/rewards/{reward_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_reward(reward_id: str, session: SessionContext = Depends(require_parent_session)) -> None:
    """Delete a reward."""
    await reward_service.delete_reward(parent_id=session.user_id, reward_id=reward_id)


@parent_router.get("/redemptions")
async def list_family_redemptions(session: SessionContext = Depends(require_parent_session)) -> list[dict[str, Any]]:
    """List every redemption made by the parent's children."""
    return await reward_service.list_family_redemptions(parent_id=session.user_id)


# Child


@child_router.get("/tasks")
async def list_child_tasks(
    task_status: TaskStatus | None = None,
    session: SessionContext = Depends(require_child_session),
) -> list[dict[str, Any]]:
    """List the child's tasks."""
    return await task_service.list_child_tasks(child_id=session.user_id, status=task_status)


@child_router.post("/tasks/{task_id}/submit")
async def submit_task(
    task_id: str,
    submission: TaskSubmission,
    session: SessionContext = Depends(require_child_session),
) -> dict[str, Any]:
    """Mark a task completed."""
    return await task_service.submit_task(child_id=session.user_id, task_id=task_id, submission=submission)


@child_router.get("/rewards")
async def list_child_rewards(session: SessionContext = Depends(require_child_session)) -> list[dict[str, Any]]:
    """List the rewards the child can redeem."""
    return await reward_service.list_child_rewards(child_id=session.user_id)


@child_router.post("/rewards/{reward_id}/redeem", status_code=status.HTTP_201_CREATED)
async def redeem_reward(
    reward_id: str,
    idempotency_key: str | None = Header(default=None),
    session: SessionContext = Depends(require_child_session),
) -> dict[str, Any]:
    """Redeem a reward; an Idempotency-Key header makes retries safe."""
    return await reward_service.redeem_reward(
        child_id=session.user_id,
        reward_id=reward_id,
        idempotency_key=idempotency_key,
    )


@child_router.get("/redemptions")
async def list_redemptions(session: SessionContext = Depends(require_child_session)) -> list[dict[str, Any]]:
    """List the child's redemption history."""
    return await reward_service.list_redemptions(child_id=session.user_id)


# Administrator


@admin_router.put("/announcement")
async def set_announcement(
    data: AnnouncementUpdate,
    session: SessionContext = Depends(current_session),
) -> dict[str, Any]:
    """Replace the site-wide announcement."""
    record = await announcement_service.set_announcement(session=session, data=data)
    return Announcement.model_validate(record).model_dump(mode="json")


routers = [auth_router, parent_router, child_router, admin_router]
