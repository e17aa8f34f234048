from typing import List, Optional

from fastapi import APIRouter, Query

from restbridge.schemas.models import GroupRecord, UserRecord
from restbridge.services.user_group_service import UserGroupService


def get_router(user_group_service: UserGroupService) -> APIRouter:
    router = APIRouter()

    @router.get("/users", response_model=List[UserRecord])
    async def list_users(
        session_id: str = Query(..., min_length=1),
        pattern: Optional[str] = None,
    ) -> List[UserRecord]:
        return await user_group_service.list_users(session_id, pattern)

    @router.get("/users/{user_name}", response_model=UserRecord)
    async def get_user(user_name: str, session_id: str = Query(..., min_length=1)) -> UserRecord:
        return await user_group_service.get_user(session_id, user_name)

    @router.get("/users/{user_name}/groups", response_model=List[GroupRecord])
    async def get_groups_for_user(
        user_name: str, session_id: str = Query(..., min_length=1)
    ) -> List[GroupRecord]:
        return await user_group_service.get_groups_for_user(session_id, user_name)

    @router.get("/groups", response_model=List[GroupRecord])
    async def list_groups(
        session_id: str = Query(..., min_length=1),
        pattern: Optional[str] = None,
    ) -> List[GroupRecord]:
        return await user_group_service.list_groups(session_id, pattern)

    @router.get("/groups/{group_name}", response_model=GroupRecord)
    async def get_group(group_name: str, session_id: str = Query(..., min_length=1)) -> GroupRecord:
        return await user_group_service.get_group(session_id, group_name)

    @router.get("/groups/{group_name}/parents", response_model=List[GroupRecord])
    async def get_parent_groups(
        group_name: str, session_id: str = Query(..., min_length=1)
    ) -> List[GroupRecord]:
        """Groups that contain ``group_name`` as a member group."""
        return await user_group_service.get_parent_groups(session_id, group_name)

    return router
