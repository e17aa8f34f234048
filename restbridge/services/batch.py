"""
Documentum REST batch requests: one round trip carrying a primary object
operation and, where ordering allows, the follow-up permissions read.

Operations are correlated by ``BatchOp`` rather than free-form strings; the
response is parsed into a map keyed by the same tag.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from restbridge.schemas.models import ObjectRecord
from .backend_client import DOCUMENTUM_JSON
from .errors import ObjectNotFoundError, RestBridgeError
from .normalizer import PermissionInfo, apply_permissions, extract_object, extract_permissions

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = (200, 201)


class BatchOp(str, Enum):
    GET_OBJECT = "getObject"
    GET_PERMISSIONS = "getPermissions"
    UPDATE_OBJECT = "updateObject"
    CHECKOUT = "checkout"
    CHECKIN = "checkin"


@dataclass(frozen=True)
class BatchStep:
    op: BatchOp
    method: str
    uri: str
    entity: Optional[Mapping[str, Any]] = None

    def to_request(self) -> Dict[str, Any]:
        request: Dict[str, Any] = {"method": self.method, "uri": self.uri}
        if self.entity is not None:
            # The batch endpoint expects the sub-request body as an encoded string.
            request["entity"] = json.dumps(self.entity)
            request["headers"] = [{"name": "Content-Type", "value": DOCUMENTUM_JSON}]
        return {"id": self.op.value, "request": request}


@dataclass(frozen=True)
class BatchOperationResult:
    op: BatchOp
    status: Optional[int]
    entity: Optional[str]

    @property
    def ok(self) -> bool:
        return self.status in SUCCESS_STATUSES


def object_uri(repository: str, object_id: str) -> str:
    return f"/repositories/{repository}/objects/{object_id}"


def batches_path(repository: str) -> str:
    return f"/repositories/{repository}/batches"


def build_batch(steps: List[BatchStep], *, sequential: bool) -> Dict[str, Any]:
    return {
        "transactional": False,
        "sequential": sequential,
        "on-error": "CONTINUE",
        "operations": [step.to_request() for step in steps],
    }


def permissions_step(repository: str, object_id: str) -> BatchStep:
    return BatchStep(BatchOp.GET_PERMISSIONS, "GET", f"{object_uri(repository, object_id)}/permissions")


def object_with_permissions(repository: str, object_id: str) -> Dict[str, Any]:
    """Pure read: the two GETs may run in any order."""
    return build_batch(
        [
            BatchStep(BatchOp.GET_OBJECT, "GET", object_uri(repository, object_id)),
            permissions_step(repository, object_id),
        ],
        sequential=False,
    )


def write_with_permissions(repository: str, object_id: str, write: BatchStep) -> Dict[str, Any]:
    """The write must land before the permissions read, so execution is sequential."""
    return build_batch([write, permissions_step(repository, object_id)], sequential=True)


def checkin_batch(repository: str, object_id: str, entity: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    # The new version gets its own id, so its permissions are read afterwards.
    uri = f"{object_uri(repository, object_id)}/versions?object-id={object_id}"
    return build_batch([BatchStep(BatchOp.CHECKIN, "POST", uri, entity)], sequential=False)


# ---------- response parsing ----------


def parse_batch_response(response: Optional[Mapping[str, Any]]) -> Dict[BatchOp, BatchOperationResult]:
    results: Dict[BatchOp, BatchOperationResult] = {}
    operations = (response or {}).get("operations")
    if not isinstance(operations, list):
        return results

    for operation in operations:
        if not isinstance(operation, dict):
            continue
        try:
            op = BatchOp(operation.get("id"))
        except ValueError:
            logger.debug("Ignoring batch operation with unknown id %r", operation.get("id"))
            continue
        body = operation.get("response")
        if not isinstance(body, dict):
            continue
        status = body.get("status")
        entity = body.get("entity")
        results[op] = BatchOperationResult(
            op=op,
            status=status if isinstance(status, int) else None,
            entity=entity if isinstance(entity, str) else None,
        )
    return results


def parse_entity(result: BatchOperationResult) -> Optional[Dict[str, Any]]:
    """Decode a sub-operation's entity string; failures are logged and yield None."""
    if result.entity is None:
        return None
    try:
        data = json.loads(result.entity)
    except ValueError as e:
        logger.warning("Failed to parse %s response: %s", result.op.value, e)
        return None
    if not isinstance(data, dict):
        logger.warning("Unexpected %s response of type %s", result.op.value, type(data).__name__)
        return None
    return data


def permissions_from(results: Mapping[BatchOp, BatchOperationResult]) -> Optional[PermissionInfo]:
    """Permissions sub-result if it succeeded; any failure leaves the record unenriched."""
    result = results.get(BatchOp.GET_PERMISSIONS)
    if result is None:
        return None
    if result.status != 200:
        logger.warning("Permissions lookup in batch returned status %s", result.status)
        return None
    data = parse_entity(result)
    return extract_permissions(data) if data is not None else None


def extract_batch_object(
    results: Mapping[BatchOp, BatchOperationResult],
    primary: BatchOp,
    object_id: str,
) -> ObjectRecord:
    """
    Build the record from the ``primary`` sub-result and merge the
    permissions sub-result into it when one is present.

    A primary 404 raises ObjectNotFoundError and any other primary status
    of 400 or more a generic RestBridgeError. A batch without a usable
    primary entity is a failure too: not-found for reads, generic for writes.
    """
    result = results.get(primary)
    record: Optional[ObjectRecord] = None

    if result is not None:
        if result.status == 404:
            raise ObjectNotFoundError(object_id)
        if result.status is not None and result.status >= 400:
            raise RestBridgeError(
                "REST_ERROR",
                f"{_describe(primary)} failed with status {result.status}",
                (result.entity or "")[:500] or None,
            )
        if result.ok:
            data = parse_entity(result)
            if data is not None:
                record = extract_object(data)

    if record is None:
        if primary is BatchOp.GET_OBJECT:
            raise ObjectNotFoundError(object_id)
        raise RestBridgeError("REST_ERROR", f"No valid response from {_describe(primary).lower()}")

    return apply_permissions(record, permissions_from(results))


def _describe(op: BatchOp) -> str:
    return {
        BatchOp.GET_OBJECT: "Object lookup",
        BatchOp.UPDATE_OBJECT: "Write operation",
        BatchOp.CHECKOUT: "Checkout",
        BatchOp.CHECKIN: "Checkin",
    }.get(op, op.value)
