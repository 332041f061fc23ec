from fastapi import Depends, Request
from typing_extensions import Annotated

from tasklist.cache.layer import UserTaskCache
from tasklist.services.audit import AuditSink
from tasklist.services.identity import IdentityService
from tasklist.services.task_service import TaskService


def get_identity_service(request: Request) -> IdentityService:
    return request.app.state.identity


def get_task_service(request: Request) -> TaskService:
    return request.app.state.task_service


def get_audit_sink(request: Request) -> AuditSink:
    return request.app.state.audit


def get_cache(request: Request) -> UserTaskCache:
    return request.app.state.cache


async def get_current_user_id(
    request: Request,
    identity: IdentityService = Depends(get_identity_service),
) -> str:
    """
    Resolve the Authorization header to a user id.

    Raises:
        AuthenticationError: If token is missing, malformed, invalid or expired
    """
    user_id = identity.resolve(request.headers.get("Authorization"))
    request.state.user_id = user_id
    return user_id


CurrentUser = Annotated[str, Depends(get_current_user_id)]
TaskServiceDep = Annotated[TaskService, Depends(get_task_service)]
IdentityDep = Annotated[IdentityService, Depends(get_identity_service)]
AuditDep = Annotated[AuditSink, Depends(get_audit_sink)]
CacheDep = Annotated[UserTaskCache, Depends(get_cache)]
