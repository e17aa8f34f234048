import logging
import time
from typing import Any, Dict, List, Mapping, Optional

from restbridge.config import Settings, settings as default_settings
from restbridge.schemas.models import ColumnDescriptor, QueryResult
from .backend_client import DOCUMENTUM_JSON, JsonMap
from .errors import (
    AggregateQueryNotSupportedError,
    BackendStatusError,
    DqlError,
    DqlNotAvailableError,
    GatewayConnectionError,
    RestBridgeError,
)
from .normalizer import extract_columns, extract_rows
from .pagination import fetch_all_pages
from .query_classifier import is_aggregate_failure, is_aggregate_query, is_dql_disabled
from .session_manager import DqlAvailability, Session, SessionManager

logger = logging.getLogger(__name__)

PROBE_QUERY = "SELECT r_object_id FROM dm_docbase_config"


class DqlService:
    def __init__(self, session_manager: SessionManager, config: Settings | None = None) -> None:
        self.session_manager = session_manager
        self.settings = config or default_settings

    async def execute_query(self, session_id: str, query: str, max_rows: int = 0) -> QueryResult:
        """
        Run ``query`` across every result page.

        Aggregate queries are refused before the session is even resolved.
        With ``max_rows`` above zero it doubles as the page size and caps
        the returned rows.
        """
        logger.debug("Executing DQL via REST: %s", query)
        if is_aggregate_query(query):
            logger.warning("Aggregate query detected, not supported via REST: %s", query)
            raise AggregateQueryNotSupportedError(query)

        session = self.session_manager.get_session(session_id)
        if not await self._ensure_available(session):
            raise DqlNotAvailableError()

        items_per_page = max_rows if max_rows > 0 else self.settings.items_per_page
        started = time.monotonic()
        columns: List[ColumnDescriptor] = []

        async def fetch_page(page: int, per_page: int) -> Optional[JsonMap]:
            return await self._run(session, query, per_page, page)

        def extract_page(page: Mapping[str, Any]) -> List[Dict[str, Any]]:
            rows = extract_rows(page)
            # Columns come from the first page that has any rows.
            if rows and not columns:
                columns.extend(extract_columns(page))
            return rows

        try:
            pages = await fetch_all_pages(
                fetch_page,
                extract_page,
                items_per_page=items_per_page,
                max_pages=self.settings.max_pages,
                limit=max_rows if max_rows > 0 else None,
            )
        except BackendStatusError as e:
            raise self._translate_failure(session, query, e) from e
        except (GatewayConnectionError, DqlError):
            raise
        except RestBridgeError as e:
            raise DqlError(f"DQL execution failed: {e.message}", e.details) from e

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.debug(
            "DQL query returned %d rows in %dms (fetched %d pages)",
            len(pages.items),
            elapsed_ms,
            pages.pages_fetched,
        )
        return QueryResult(
            columns=columns,
            rows=pages.items,
            row_count=len(pages.items),
            has_more=pages.has_more,
            execution_time_ms=elapsed_ms,
        )

    async def is_dql_available(self, session_id: str) -> bool:
        session = self.session_manager.get_session(session_id)
        return await self._ensure_available(session)

    async def _ensure_available(self, session: Session) -> bool:
        """Probe once per session; a failed probe means unavailable, never an error."""
        if session.dql_availability is DqlAvailability.UNKNOWN:
            logger.debug("Checking DQL availability for session %s", session.session_id)
            try:
                response = await self._run(session, PROBE_QUERY, 1, 1)
            except RestBridgeError as e:
                logger.info("DQL is not available: %s", e.details or e.message)
                response = None
            session.dql_availability = (
                DqlAvailability.AVAILABLE if response is not None else DqlAvailability.UNAVAILABLE
            )
            logger.info(
                "DQL is %s for session %s",
                "available" if response is not None else "not available",
                session.session_id,
            )
        return session.dql_availability is DqlAvailability.AVAILABLE

    async def _run(self, session: Session, query: str, items_per_page: int, page: int) -> Optional[JsonMap]:
        params: Mapping[str, Any] = {"dql": query, "items-per-page": items_per_page, "page": page}
        return await session.client.get_json(
            f"/repositories/{session.repository}", params=params, accept=DOCUMENTUM_JSON
        )

    def _translate_failure(self, session: Session, query: str, e: BackendStatusError) -> RestBridgeError:
        if e.status_code in (400, 404):
            if is_dql_disabled(e.body):
                session.dql_availability = DqlAvailability.UNAVAILABLE
                return DqlNotAvailableError(e.body[:500])
            if is_aggregate_failure(e.body):
                logger.warning("Server-side aggregate query error detected: %s", e.body[:500])
                return AggregateQueryNotSupportedError(query)
        return DqlError(f"DQL execution failed: {e.body[:500] or e.message}", e.details)


def availability_message(available: bool) -> str:
    if available:
        return "DQL is available on this server"
    return (
        "DQL is not available on this server. "
        "Use native REST endpoints for users, groups, types, etc."
    )

