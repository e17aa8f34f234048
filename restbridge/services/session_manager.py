import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

import httpx

from restbridge.config import Settings, settings as default_settings
from restbridge.schemas.models import RepositoryInfo, SessionInfo
from .backend_client import BackendClient
from .errors import (
    BackendStatusError,
    GatewayConnectionError,
    RestBridgeError,
    SessionNotFoundError,
)

logger = logging.getLogger(__name__)

_TRAILING_SLASHES = re.compile(r"/+$")


class DqlAvailability(str, Enum):
    UNKNOWN = "unknown"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Session:
    session_id: str
    repository: str
    endpoint: str
    username: str
    password: str = field(repr=False)
    client: BackendClient = field(repr=False)
    server_version: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    last_activity: datetime = field(default_factory=_utcnow)
    dql_availability: DqlAvailability = DqlAvailability.UNKNOWN

    def info(self) -> SessionInfo:
        return SessionInfo(
            session_id=self.session_id,
            connected=True,
            repository=self.repository,
            user=self.username,
            endpoint=self.endpoint,
            session_start=self.created_at,
            last_activity=self.last_activity,
            server_version=self.server_version,
        )


def normalize_endpoint(endpoint: Optional[str]) -> str:
    if endpoint is None or not endpoint.strip():
        raise GatewayConnectionError("REST endpoint URL is required")
    return _TRAILING_SLASHES.sub("", endpoint.strip())


class SessionManager:
    """
    Owns every live backend session of the process.

    Sessions live in a plain dict touched only from the event loop, so a
    lookup never waits on another session's backend traffic. The expiry
    sweep runs as a background task started by ``start()``.
    """

    def __init__(
        self,
        config: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = config or default_settings
        # Injected into every BackendClient; tests pass an httpx.MockTransport.
        self._transport = transport
        self._sessions: Dict[str, Session] = {}
        self._sweeper: Optional[asyncio.Task] = None

    # ---------- Public API ----------

    async def connect(
        self,
        repository: str,
        endpoint: str,
        username: str,
        password: str,
    ) -> tuple[str, RepositoryInfo]:
        """
        Validate the endpoint and credentials with one repository-info call,
        then register a new session.
        """
        endpoint = normalize_endpoint(endpoint)
        logger.info("Connecting to repository %s via REST endpoint %s", repository, endpoint)

        client = BackendClient(
            endpoint, username, password, config=self.settings, transport=self._transport
        )
        try:
            response = await client.get_json(f"/repositories/{repository}", retry=False)
            if response is None:
                raise GatewayConnectionError("No response from REST endpoint")
        except BackendStatusError as e:
            await client.aclose()
            if e.status_code == 401:
                raise GatewayConnectionError("Authentication failed. Check your credentials.") from e
            if e.status_code == 404:
                raise GatewayConnectionError(f'Repository "{repository}" not found.') from e
            raise GatewayConnectionError(
                f"REST connection failed: {e.status_code} - {e.body[:200]}"
            ) from e
        except GatewayConnectionError:
            await client.aclose()
            raise
        except RestBridgeError as e:
            await client.aclose()
            raise GatewayConnectionError(f"REST connection failed: {e.message}") from e

        repo_info = extract_repository_info(response, repository, endpoint)
        session_id = self._new_session_id()
        self._sessions[session_id] = Session(
            session_id=session_id,
            repository=repository,
            endpoint=endpoint,
            username=username,
            password=password,
            client=client,
            server_version=repo_info.server_version,
        )
        logger.info(
            "REST session %s established for user %s on repository %s",
            session_id,
            username,
            repository,
        )
        return session_id, repo_info

    async def disconnect(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        await session.client.aclose()
        logger.info("REST session %s disconnected", session_id)

    def get_session_info(self, session_id: str) -> SessionInfo:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session.info()

    def is_valid(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get_session(self, session_id: str) -> Session:
        """Resolve a session for a backend-calling operation and extend its life."""
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        session.last_activity = _utcnow()
        return session

    def session_count(self) -> int:
        return len(self._sessions)

    async def expire_sweep(self, now: Optional[datetime] = None) -> List[str]:
        """
        Remove every session idle for longer than the configured timeout.
        Returns the ids that were removed.
        """
        cutoff = (now or _utcnow()) - timedelta(seconds=self.settings.session_timeout_seconds)
        expired: List[Session] = []
        # Iterate a snapshot; handlers may add or remove sessions meanwhile.
        for session_id, session in list(self._sessions.items()):
            if session.last_activity < cutoff and self._sessions.get(session_id) is session:
                del self._sessions[session_id]
                expired.append(session)

        for session in expired:
            logger.info("Cleaning up expired REST session: %s", session.session_id)
            await session.client.aclose()
        return [s.session_id for s in expired]

    # ---------- Background sweep ----------

    def start(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_forever(), name="restbridge-session-sweeper")

    async def aclose(self) -> None:
        """Stop the sweep and drop every session (process shutdown)."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None

        sessions = list(self._sessions.values())
        self._sessions.clear()
        logger.info("Shutting down REST Bridge - clearing %d sessions", len(sessions))
        for session in sessions:
            await session.client.aclose()

    async def _sweep_forever(self) -> None:
        interval = self.settings.session_cleanup_interval_seconds
        while True:
            await asyncio.sleep(interval)
            try:
                await self.expire_sweep()
            except Exception:
                logger.exception("Session expiry sweep failed")

    def _new_session_id(self) -> str:
        while True:
            session_id = f"rest-{uuid4()}"
            if session_id not in self._sessions:
                return session_id


def extract_repository_info(response: Dict[str, Any], repository: str, endpoint: str) -> RepositoryInfo:
    server_version = None
    servers = response.get("servers")
    if isinstance(servers, list) and servers and isinstance(servers[0], dict):
        server_version = servers[0].get("version")

    repo_id = response.get("id")
    return RepositoryInfo(
        name=repository,
        id=str(repo_id) if repo_id is not None else None,
        server_version=server_version,
        endpoint=endpoint,
    )
