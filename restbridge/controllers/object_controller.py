from typing import List, Optional

from fastapi import APIRouter, Query, Response

from restbridge.schemas.api import CreateObjectRequest, UpdateObjectRequest
from restbridge.schemas.models import ObjectRecord, TypeDescriptor
from restbridge.services.object_service import DEFAULT_VERSION_LABEL, ObjectService
from restbridge.services.type_service import TypeService


def get_router(object_service: ObjectService, type_service: TypeService) -> APIRouter:
    router = APIRouter()

    @router.get("/objects/{object_id}", response_model=ObjectRecord)
    async def get_object(object_id: str, session_id: str = Query(..., min_length=1)) -> ObjectRecord:
        """Object properties plus the caller's permissions, in one backend batch."""
        return await object_service.get_object(session_id, object_id)

    @router.post("/objects/{object_id}", response_model=ObjectRecord)
    async def update_object(object_id: str, payload: UpdateObjectRequest) -> ObjectRecord:
        return await object_service.update_object(payload.session_id, object_id, payload.attributes)

    @router.post("/objects", response_model=ObjectRecord, status_code=201)
    async def create_object(payload: CreateObjectRequest) -> ObjectRecord:
        return await object_service.create_object(
            payload.session_id,
            payload.object_type,
            object_name=payload.object_name,
            folder_path=payload.folder_path,
            attributes=payload.attributes,
        )

    @router.delete("/objects/{object_id}", status_code=204)
    async def delete_object(
        object_id: str,
        session_id: str = Query(..., min_length=1),
        all_versions: bool = False,
    ) -> Response:
        await object_service.delete_object(session_id, object_id, all_versions)
        return Response(status_code=204)

    @router.get("/cabinets", response_model=List[ObjectRecord])
    async def get_cabinets(session_id: str = Query(..., min_length=1)) -> List[ObjectRecord]:
        return await object_service.get_cabinets(session_id)

    @router.get("/objects/{folder_id}/contents", response_model=List[ObjectRecord])
    async def list_folder_contents(
        folder_id: str, session_id: str = Query(..., min_length=1)
    ) -> List[ObjectRecord]:
        return await object_service.list_folder_contents(session_id, folder_id)

    @router.put("/objects/{object_id}/lock", response_model=ObjectRecord)
    async def checkout(object_id: str, session_id: str = Query(..., min_length=1)) -> ObjectRecord:
        return await object_service.checkout(session_id, object_id)

    @router.delete("/objects/{object_id}/lock", status_code=204)
    async def cancel_checkout(object_id: str, session_id: str = Query(..., min_length=1)) -> Response:
        await object_service.cancel_checkout(session_id, object_id)
        return Response(status_code=204)

    @router.post("/objects/{object_id}/versions", response_model=ObjectRecord)
    async def checkin(
        object_id: str,
        session_id: str = Query(..., min_length=1),
        version_label: str = DEFAULT_VERSION_LABEL,
    ) -> ObjectRecord:
        """Check in a new version; the result carries the new version's id."""
        return await object_service.checkin(session_id, object_id, version_label)

    @router.get("/types", response_model=List[TypeDescriptor])
    async def list_types(
        session_id: str = Query(..., min_length=1),
        pattern: Optional[str] = None,
    ) -> List[TypeDescriptor]:
        return await type_service.list_types(session_id, pattern)

    @router.get("/types/{type_name}", response_model=TypeDescriptor)
    async def get_type(type_name: str, session_id: str = Query(..., min_length=1)) -> TypeDescriptor:
        return await type_service.get_type(session_id, type_name)

    return router
