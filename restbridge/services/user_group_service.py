import logging
from typing import Callable, List, Mapping, Optional, TypeVar

from restbridge.config import Settings, settings as default_settings
from restbridge.schemas.models import GroupRecord, UserRecord
from .backend_client import JsonMap
from .errors import BackendStatusError, ObjectNotFoundError
from .normalizer import entry_contents, extract_group, extract_user
from .pagination import fetch_all_pages
from .session_manager import Session, SessionManager

logger = logging.getLogger(__name__)

R = TypeVar("R")


class UserGroupService:
    """Users and groups through the native REST collections, no DQL needed."""

    def __init__(self, session_manager: SessionManager, config: Settings | None = None) -> None:
        self.session_manager = session_manager
        self.settings = config or default_settings

    async def list_users(self, session_id: str, pattern: Optional[str] = None) -> List[UserRecord]:
        session = self.session_manager.get_session(session_id)
        logger.debug("Listing users via REST, pattern: %s", pattern)
        return await self._list(session, "users", "user_name", pattern, extract_user, lambda u: u.user_name)

    async def get_user(self, session_id: str, user_name: str) -> UserRecord:
        session = self.session_manager.get_session(session_id)
        raw = await self._get(session, "users", user_name, "User")
        return extract_user(raw)

    async def list_groups(self, session_id: str, pattern: Optional[str] = None) -> List[GroupRecord]:
        session = self.session_manager.get_session(session_id)
        logger.debug("Listing groups via REST, pattern: %s", pattern)
        return await self._list(session, "groups", "group_name", pattern, extract_group, lambda g: g.group_name)

    async def get_group(self, session_id: str, group_name: str) -> GroupRecord:
        session = self.session_manager.get_session(session_id)
        raw = await self._get(session, "groups", group_name, "Group")
        return extract_group(raw)

    async def get_groups_for_user(self, session_id: str, user_name: str) -> List[GroupRecord]:
        """Every group listing ``user_name`` among its direct members."""
        groups = await self.list_groups(session_id)
        return [g for g in groups if user_name in g.users_names]

    async def get_parent_groups(self, session_id: str, group_name: str) -> List[GroupRecord]:
        """Every group that has ``group_name`` as a member group."""
        groups = await self.list_groups(session_id)
        return [g for g in groups if group_name in g.groups_names]

    # ---------- internals ----------

    async def _get(self, session: Session, collection: str, name: str, kind: str) -> JsonMap:
        try:
            raw = await session.client.get_json(f"/repositories/{session.repository}/{collection}/{name}")
        except BackendStatusError as e:
            if e.status_code == 404:
                raise ObjectNotFoundError(name, kind=kind) from e
            raise
        if raw is None:
            raise ObjectNotFoundError(name, kind=kind)
        return raw

    async def _list(
        self,
        session: Session,
        collection: str,
        name_column: str,
        pattern: Optional[str],
        extract: Callable[[Mapping], R],
        key: Callable[[R], str],
    ) -> List[R]:
        params = {"inline": "true"}
        if pattern:
            params["filter"] = f"starts-with({name_column},'{pattern}')"

        async def fetch_page(page: int, per_page: int) -> Optional[JsonMap]:
            return await session.client.get_json(
                f"/repositories/{session.repository}/{collection}",
                params={**params, "items-per-page": per_page, "page": page},
            )

        pages = await fetch_all_pages(
            fetch_page,
            lambda page: [extract(content) for content in entry_contents(page)],
            items_per_page=self.settings.items_per_page,
            max_pages=self.settings.max_pages,
            key=key,
        )
        return pages.items
