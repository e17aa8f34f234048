from typing import Any, Dict

from fastapi import APIRouter, Query, Response

from restbridge.schemas.api import (
    ConnectRequest,
    ConnectResponse,
    DisconnectRequest,
    DqlAvailabilityResponse,
    DqlRequest,
)
from restbridge.schemas.models import QueryResult, SessionInfo
from restbridge.services.dql_service import DqlService, availability_message
from restbridge.services.session_manager import SessionManager

SERVICE_NAME = "rest-bridge"
SERVICE_VERSION = "1.0.0"


def get_router(session_manager: SessionManager, dql_service: DqlService) -> APIRouter:
    router = APIRouter()

    @router.post("/connect", response_model=ConnectResponse)
    async def connect(payload: ConnectRequest) -> ConnectResponse:
        session_id, repo_info = await session_manager.connect(
            payload.repository, payload.endpoint, payload.username, payload.password
        )
        return ConnectResponse(session_id=session_id, repository_info=repo_info)

    @router.post("/disconnect", status_code=204)
    async def disconnect(payload: DisconnectRequest) -> Response:
        await session_manager.disconnect(payload.session_id)
        return Response(status_code=204)

    @router.get("/session/{session_id}", response_model=SessionInfo)
    async def get_session_info(session_id: str) -> SessionInfo:
        return session_manager.get_session_info(session_id)

    @router.get("/session/{session_id}/valid")
    async def is_session_valid(session_id: str) -> bool:
        return session_manager.is_valid(session_id)

    @router.post("/dql", response_model=QueryResult)
    async def execute_dql(payload: DqlRequest) -> QueryResult:
        """
        Execute a DQL query across every result page.

        Aggregate queries (GROUP BY, COUNT without r_object_id, ...) are
        rejected with 400; a backend with DQL disabled answers 503.
        """
        return await dql_service.execute_query(payload.session_id, payload.query, payload.max_rows)

    @router.get("/dql/available", response_model=DqlAvailabilityResponse)
    async def is_dql_available(session_id: str = Query(..., min_length=1)) -> DqlAvailabilityResponse:
        available = await dql_service.is_dql_available(session_id)
        return DqlAvailabilityResponse(available=available, message=availability_message(available))

    @router.get("/status")
    async def status() -> Dict[str, Any]:
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "backend": "REST",
            "description": "Documentum REST Services bridge",
        }

    return router


def get_health_router() -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    async def health() -> Dict[str, Any]:
        return {"status": "UP"}

    return router
