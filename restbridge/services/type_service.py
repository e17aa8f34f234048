import logging
from typing import Dict, FrozenSet, List, Optional

from restbridge.config import Settings, settings as default_settings
from restbridge.schemas.models import TypeDescriptor
from .backend_client import JsonMap
from .errors import BackendStatusError, ObjectNotFoundError, RestBridgeError
from .normalizer import attribute_names, entry_contents, extract_type, parent_type_name
from .pagination import fetch_all_pages
from .session_manager import Session, SessionManager

logger = logging.getLogger(__name__)


class InheritanceCache:
    """
    Attribute names of a type's own schema, keyed by type name.

    Filled lazily and never invalidated: type schemas are assumed stable for
    the life of the process. Concurrent fills of the same key compute the
    same value, so the last write simply wins. Failed lookups are not stored.
    """

    def __init__(self) -> None:
        self._names: Dict[str, FrozenSet[str]] = {}

    def get(self, type_name: str) -> Optional[FrozenSet[str]]:
        return self._names.get(type_name)

    def put(self, type_name: str, names: FrozenSet[str]) -> None:
        self._names[type_name] = names

    def __contains__(self, type_name: str) -> bool:
        return type_name in self._names

    def __len__(self) -> int:
        return len(self._names)


class TypeService:
    def __init__(
        self,
        session_manager: SessionManager,
        config: Settings | None = None,
        cache: InheritanceCache | None = None,
    ) -> None:
        self.session_manager = session_manager
        self.settings = config or default_settings
        self.cache = cache or InheritanceCache()

    async def get_type(self, session_id: str, type_name: str) -> TypeDescriptor:
        session = self.session_manager.get_session(session_id)
        logger.debug("Getting type info via REST: %s", type_name)

        raw = await self.fetch_raw(session, type_name)
        if raw is None:
            raise ObjectNotFoundError(type_name, kind="Type")
        inherited = await self.inherited_attribute_names(session, raw)
        return extract_type(raw, inherited)

    async def list_types(self, session_id: str, pattern: Optional[str] = None) -> List[TypeDescriptor]:
        session = self.session_manager.get_session(session_id)
        logger.debug("Listing types via REST, pattern: %s", pattern)

        params: Dict[str, object] = {"inline": "true"}
        if pattern:
            params["filter"] = f"starts-with(name,'{pattern}')"

        async def fetch_page(page: int, per_page: int) -> Optional[JsonMap]:
            return await session.client.get_json(
                f"/repositories/{session.repository}/types",
                params={**params, "items-per-page": per_page, "page": page},
                timeout=self.settings.type_timeout_seconds,
            )

        pages = await fetch_all_pages(
            fetch_page,
            entry_contents,
            items_per_page=self.settings.items_per_page,
            max_pages=self.settings.max_pages,
            key=lambda raw: raw.get("name"),
        )

        types = []
        for raw in pages.items:
            inherited = await self.inherited_attribute_names(session, raw)
            types.append(extract_type(raw, inherited))
        return types

    async def fetch_raw(self, session: Session, type_name: str) -> Optional[JsonMap]:
        """Raw type JSON; a backend 404 raises ObjectNotFoundError."""
        try:
            return await session.client.get_json(
                f"/repositories/{session.repository}/types/{type_name}",
                timeout=self.settings.type_timeout_seconds,
            )
        except BackendStatusError as e:
            if e.status_code == 404:
                raise ObjectNotFoundError(type_name, kind="Type") from e
            raise

    async def inherited_attribute_names(self, session: Session, raw: JsonMap) -> FrozenSet[str]:
        """
        Attribute names declared by the direct parent of ``raw``.

        Only one level is consulted. Any failure to resolve the parent yields
        an empty set, so no attribute is tagged inherited.
        """
        parent = parent_type_name(raw)
        if not parent:
            return frozenset()

        cached = self.cache.get(parent)
        if cached is not None:
            return cached

        names = await self._lookup_attribute_names(session, parent)
        if names is None:
            return frozenset()
        self.cache.put(parent, names)
        logger.debug("Type has %d inherited attributes from parent %s", len(names), parent)
        return names

    async def _lookup_attribute_names(self, session: Session, type_name: str) -> Optional[FrozenSet[str]]:
        try:
            raw = await self.fetch_raw(session, type_name)
        except RestBridgeError as e:
            logger.debug("Could not fetch parent type %s: %s", type_name, e.message)
            return None
        if raw is None:
            return None
        return attribute_names(raw)

    async def repeating_attribute_names(self, session: Session, type_name: str) -> Optional[FrozenSet[str]]:
        """Repeating attributes of ``type_name``, or None when the type cannot be read."""
        try:
            raw = await self.fetch_raw(session, type_name)
        except RestBridgeError as e:
            logger.debug("Could not fetch type %s: %s", type_name, e.message)
            return None
        if raw is None:
            return None
        return extract_type(raw).repeating_attribute_names()
