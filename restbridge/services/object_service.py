import logging
import re
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from restbridge.config import Settings, settings as default_settings
from restbridge.schemas.models import ObjectRecord
from . import batch
from .backend_client import JsonMap
from .batch import BatchOp, BatchStep
from .errors import BackendStatusError, ObjectNotFoundError, RestBridgeError
from .normalizer import (
    PermissionInfo,
    apply_permissions,
    entries_of,
    extract_entries,
    extract_object,
    extract_permissions,
    last_path_segment,
    normalize_attributes,
)
from .pagination import fetch_all_pages
from .session_manager import Session, SessionManager
from .type_service import TypeService

logger = logging.getLogger(__name__)

DEFAULT_OBJECT_TYPE = "dm_sysobject"
DEFAULT_VERSION_LABEL = "CURRENT"

_OBJECT_ID = re.compile(r"^[0-9a-fA-F]{16}$")


def collection_for_type(object_type: str) -> str:
    """Backend collection a new object of ``object_type`` is posted to."""
    if object_type == "dm_folder" or object_type.endswith("_folder"):
        return "folders"
    if object_type == "dm_cabinet" or object_type.endswith("_cabinet"):
        return "cabinets"
    return "documents"


class ObjectService:
    def __init__(
        self,
        session_manager: SessionManager,
        type_service: TypeService,
        config: Settings | None = None,
    ) -> None:
        self.session_manager = session_manager
        self.type_service = type_service
        self.settings = config or default_settings
        # Repeating attribute names per type; same lifetime policy as the inheritance cache.
        self._repeating: Dict[str, FrozenSet[str]] = {}

    # ---------- reads ----------

    async def get_object(self, session_id: str, object_id: str) -> ObjectRecord:
        session = self.session_manager.get_session(session_id)
        logger.debug("Getting object %s via REST batch", object_id)

        response = await self._post_batch(
            session, batch.object_with_permissions(session.repository, object_id), object_id
        )
        results = batch.parse_batch_response(response)
        record = batch.extract_batch_object(results, BatchOp.GET_OBJECT, object_id)
        return await self._with_repeating_lists(session, record)

    async def get_cabinets(self, session_id: str) -> List[ObjectRecord]:
        session = self.session_manager.get_session(session_id)
        return await self._list_entries(session, f"/repositories/{session.repository}/cabinets")

    async def list_folder_contents(self, session_id: str, folder_id: str) -> List[ObjectRecord]:
        session = self.session_manager.get_session(session_id)
        logger.debug("Listing folder contents by ID %s via REST", folder_id)
        try:
            return await self._list_entries(
                session, f"/repositories/{session.repository}/folders/{folder_id}/objects"
            )
        except BackendStatusError as e:
            if e.status_code == 404:
                raise ObjectNotFoundError(folder_id, kind="Folder") from e
            raise

    # ---------- writes ----------

    async def update_object(
        self, session_id: str, object_id: str, attributes: Mapping[str, Any]
    ) -> ObjectRecord:
        session = self.session_manager.get_session(session_id)
        logger.debug("Updating object %s via REST batch", object_id)

        object_type = await self._object_type(session, object_id)
        repeating = await self.repeating_attributes(session, object_type)
        write = BatchStep(
            BatchOp.UPDATE_OBJECT,
            "POST",
            batch.object_uri(session.repository, object_id),
            {"properties": normalize_attributes(attributes, repeating)},
        )
        response = await self._post_batch(
            session, batch.write_with_permissions(session.repository, object_id, write), object_id
        )
        record = batch.extract_batch_object(
            batch.parse_batch_response(response), BatchOp.UPDATE_OBJECT, object_id
        )
        return await self._with_repeating_lists(session, record)

    async def checkout(self, session_id: str, object_id: str) -> ObjectRecord:
        session = self.session_manager.get_session(session_id)
        logger.debug("Checking out object %s via REST batch", object_id)

        write = BatchStep(BatchOp.CHECKOUT, "PUT", f"{batch.object_uri(session.repository, object_id)}/lock")
        response = await self._post_batch(
            session, batch.write_with_permissions(session.repository, object_id, write), object_id
        )
        record = batch.extract_batch_object(batch.parse_batch_response(response), BatchOp.CHECKOUT, object_id)
        return await self._with_repeating_lists(session, record)

    async def cancel_checkout(self, session_id: str, object_id: str) -> None:
        session = self.session_manager.get_session(session_id)
        logger.debug("Cancelling checkout of object %s via REST", object_id)
        try:
            await session.client.delete(f"{batch.object_uri(session.repository, object_id)}/lock")
        except BackendStatusError as e:
            if e.status_code == 404:
                raise ObjectNotFoundError(object_id) from e
            raise

    async def checkin(
        self, session_id: str, object_id: str, version_label: Optional[str] = DEFAULT_VERSION_LABEL
    ) -> ObjectRecord:
        session = self.session_manager.get_session(session_id)
        logger.debug("Checking in object %s via REST batch with label %s", object_id, version_label)

        entity: Dict[str, Any] = {}
        if version_label:
            entity["properties"] = {"r_version_label": [version_label]}

        response = await self._post_batch(
            session, batch.checkin_batch(session.repository, object_id, entity), object_id
        )
        record = batch.extract_batch_object(batch.parse_batch_response(response), BatchOp.CHECKIN, object_id)
        record = await self._with_repeating_lists(session, record)
        # The new version may carry a different id than the checked-out one.
        return apply_permissions(record, await self.fetch_permissions(session, record.object_id))

    async def create_object(
        self,
        session_id: str,
        object_type: str,
        object_name: Optional[str] = None,
        folder_path: Optional[str] = None,
        attributes: Optional[Mapping[str, Any]] = None,
    ) -> ObjectRecord:
        session = self.session_manager.get_session(session_id)
        logger.debug("Creating object of type %s via REST", object_type)

        repeating = await self.repeating_attributes(session, object_type) if attributes else frozenset()
        properties: Dict[str, Any] = {"r_object_type": object_type}
        if object_name is not None:
            properties["object_name"] = object_name
        properties.update(normalize_attributes(attributes, repeating))

        collection = collection_for_type(object_type)
        if collection == "cabinets":
            path = f"/repositories/{session.repository}/cabinets"
        else:
            folder_id = await self.resolve_folder_id(session, folder_path)
            path = f"/repositories/{session.repository}/folders/{folder_id}/{collection}"

        response = await session.client.post_json(path, {"properties": properties})
        if response is None:
            raise RestBridgeError("REST_ERROR", "No response from create")

        record = await self._with_repeating_lists(session, extract_object(response))
        logger.info("Created %s %s (%s)", object_type, record.object_id, record.name)
        return apply_permissions(record, await self.fetch_permissions(session, record.object_id))

    async def delete_object(self, session_id: str, object_id: str, all_versions: bool = False) -> None:
        session = self.session_manager.get_session(session_id)
        logger.debug("Deleting object %s via REST (all_versions=%s)", object_id, all_versions)
        try:
            await session.client.delete(
                batch.object_uri(session.repository, object_id),
                params={"del-version": "all" if all_versions else "selected"},
            )
        except BackendStatusError as e:
            if e.status_code == 404:
                raise ObjectNotFoundError(object_id) from e
            raise

    # ---------- helpers ----------

    async def resolve_folder_id(self, session: Session, folder_path: Optional[str]) -> str:
        """A 16-hex-digit value is taken as an id as-is; anything else is a path."""
        if not folder_path:
            raise RestBridgeError("REST_ERROR", "Folder path is required for non-cabinet objects")
        if _OBJECT_ID.match(folder_path):
            return folder_path

        response = await session.client.get_json(
            f"/repositories/{session.repository}/folders",
            params={"folder-path": folder_path},
        )
        entries = entries_of(response) if response else []
        if entries:
            folder_id = last_path_segment(entries[0].get("id"))
            if folder_id:
                return folder_id
        raise ObjectNotFoundError(folder_path, kind="Folder")

    async def fetch_permissions(self, session: Session, object_id: str) -> Optional[PermissionInfo]:
        """Best-effort permissions read; None when the backend cannot supply them."""
        if not object_id:
            return None
        try:
            response = await session.client.get_json(
                f"{batch.object_uri(session.repository, object_id)}/permissions"
            )
        except BackendStatusError as e:
            if e.status_code == 404:
                logger.debug("No permissions available for object %s", object_id)
            else:
                logger.warning("Failed to fetch permissions for %s: %s", object_id, e.message)
            return None
        except RestBridgeError as e:
            logger.warning("Failed to fetch permissions for %s: %s", object_id, e.message)
            return None
        return extract_permissions(response) if response else None

    async def repeating_attributes(self, session: Session, type_name: str) -> FrozenSet[str]:
        cached = self._repeating.get(type_name)
        if cached is not None:
            return cached
        names = await self.type_service.repeating_attribute_names(session, type_name)
        if names is None:
            logger.warning("Failed to get type info for %s, attributes will not be normalized", type_name)
            return frozenset()
        self._repeating[type_name] = names
        logger.debug("Cached %d repeating attributes for type %s", len(names), type_name)
        return names

    async def _with_repeating_lists(self, session: Session, record: ObjectRecord) -> ObjectRecord:
        """Backends may send a single-valued repeating attribute as a bare scalar."""
        if not record.attributes or not record.type:
            return record
        repeating = await self.repeating_attributes(session, record.type)
        return record.model_copy(update={"attributes": normalize_attributes(record.attributes, repeating)})

    async def _list_entries(self, session: Session, path: str) -> List[ObjectRecord]:
        async def fetch_page(page: int, per_page: int) -> Optional[JsonMap]:
            return await session.client.get_json(path, params={"items-per-page": per_page, "page": page})

        pages = await fetch_all_pages(
            fetch_page,
            extract_entries,
            items_per_page=self.settings.items_per_page,
            max_pages=self.settings.max_pages,
            key=lambda record: record.object_id,
        )
        return pages.items

    async def _object_type(self, session: Session, object_id: str) -> str:
        try:
            response = await session.client.get_json(batch.object_uri(session.repository, object_id))
        except RestBridgeError as e:
            logger.warning(
                "Failed to get object type for %s, defaulting to %s: %s",
                object_id,
                DEFAULT_OBJECT_TYPE,
                e.message,
            )
            return DEFAULT_OBJECT_TYPE
        record = extract_object(response) if response else None
        return record.type if record is not None and record.type else DEFAULT_OBJECT_TYPE

    async def _post_batch(self, session: Session, payload: Mapping[str, Any], object_id: str) -> JsonMap:
        try:
            response = await session.client.post_json(batch.batches_path(session.repository), payload)
        except BackendStatusError as e:
            if e.status_code == 404:
                raise ObjectNotFoundError(object_id) from e
            raise
        if response is None:
            raise RestBridgeError("REST_ERROR", "No response from batch request")
        return response
