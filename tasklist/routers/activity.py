from fastapi import APIRouter

from tasklist.dependencies import AuditDep, CurrentUser
from tasklist.models import RecentActivity

router = APIRouter(prefix="/api/logs", tags=["activity"])


@router.get("/recent", response_model=RecentActivity)
async def recent_activity(user_id: CurrentUser, audit: AuditDep):
    """The caller's own most recent audit records (no cross-user view)"""
    return RecentActivity(rows=await audit.recent(user_id))
