import json

import pytest

from restbridge.services import batch
from restbridge.services.batch import BatchOp, BatchStep
from restbridge.services.errors import ObjectNotFoundError, RestBridgeError

OBJ = {"properties": {"r_object_id": "0900000180000001", "r_object_type": "dm_document", "object_name": "a"}}
PERMS = {"basic-permission": "Read", "extend-permissions": "execute_proc"}


def _envelope(*ops):
    return {
        "operations": [
            {"id": op_id, "response": {"status": status, **({"entity": entity} if entity is not None else {})}}
            for op_id, status, entity in ops
        ]
    }


def test_paths() -> None:
    assert batch.batches_path("repo") == "/repositories/repo/batches"
    assert batch.object_uri("repo", "0900000180000001") == "/repositories/repo/objects/0900000180000001"


def test_read_batch_is_unordered_with_two_gets() -> None:
    payload = batch.object_with_permissions("repo", "0900000180000001")

    assert payload["transactional"] is False
    assert payload["sequential"] is False
    assert payload["on-error"] == "CONTINUE"
    assert [op["id"] for op in payload["operations"]] == ["getObject", "getPermissions"]
    assert payload["operations"][1]["request"] == {
        "method": "GET",
        "uri": "/repositories/repo/objects/0900000180000001/permissions",
    }


def test_write_batch_is_sequential_and_encodes_entity() -> None:
    write = BatchStep(BatchOp.UPDATE_OBJECT, "POST", "/repositories/repo/objects/x", {"properties": {"title": "t"}})

    payload = batch.write_with_permissions("repo", "x", write)

    assert payload["sequential"] is True
    first = payload["operations"][0]
    assert first["id"] == "updateObject"
    assert json.loads(first["request"]["entity"]) == {"properties": {"title": "t"}}
    assert first["request"]["headers"] == [
        {"name": "Content-Type", "value": "application/vnd.emc.documentum+json"}
    ]
    assert payload["operations"][1]["id"] == "getPermissions"


def test_checkin_batch_has_no_permissions_step() -> None:
    payload = batch.checkin_batch("repo", "x", {"properties": {"r_version_label": ["CURRENT"]}})

    [op] = payload["operations"]
    assert op["id"] == "checkin"
    assert op["request"]["uri"] == "/repositories/repo/objects/x/versions?object-id=x"


def test_checkout_step_carries_no_entity() -> None:
    request = BatchStep(BatchOp.CHECKOUT, "PUT", "/lock").to_request()
    assert "entity" not in request["request"]
    assert "headers" not in request["request"]


def test_results_are_keyed_by_operation_tag() -> None:
    results = batch.parse_batch_response(
        _envelope(("getObject", 200, json.dumps(OBJ)), ("somethingElse", 200, "{}"), ("getPermissions", 500, None))
    )

    assert set(results) == {BatchOp.GET_OBJECT, BatchOp.GET_PERMISSIONS}
    assert results[BatchOp.GET_PERMISSIONS].status == 500
    assert batch.parse_batch_response(None) == {}


def test_object_and_permissions_are_merged() -> None:
    results = batch.parse_batch_response(
        _envelope(("getObject", 200, json.dumps(OBJ)), ("getPermissions", 200, json.dumps(PERMS)))
    )

    record = batch.extract_batch_object(results, BatchOp.GET_OBJECT, "0900000180000001")

    assert record.name == "a"
    assert record.permission_level == 3
    assert record.permission_label == "READ"
    assert record.extended_permissions == ["execute_proc"]


def test_primary_404_is_not_found() -> None:
    results = batch.parse_batch_response(_envelope(("getObject", 404, "{}"), ("getPermissions", 404, "{}")))
    with pytest.raises(ObjectNotFoundError):
        batch.extract_batch_object(results, BatchOp.GET_OBJECT, "missing")


def test_primary_failure_is_generic_error() -> None:
    results = batch.parse_batch_response(_envelope(("updateObject", 409, '{"message":"locked"}')))
    with pytest.raises(RestBridgeError) as exc:
        batch.extract_batch_object(results, BatchOp.UPDATE_OBJECT, "x")
    assert exc.value.code == "REST_ERROR"
    assert "409" in exc.value.message
    assert not isinstance(exc.value, ObjectNotFoundError)


def test_unparseable_permissions_entity_is_skipped() -> None:
    results = batch.parse_batch_response(
        _envelope(("checkout", 200, json.dumps(OBJ)), ("getPermissions", 200, "not json"))
    )

    record = batch.extract_batch_object(results, BatchOp.CHECKOUT, "x")

    assert record.object_id == "0900000180000001"
    assert record.permission_level is None
    assert record.extended_permissions is None


def test_missing_primary_entity_fails() -> None:
    read = batch.parse_batch_response(_envelope(("getObject", 200, "garbage")))
    with pytest.raises(ObjectNotFoundError):
        batch.extract_batch_object(read, BatchOp.GET_OBJECT, "x")

    write = batch.parse_batch_response(_envelope(("getPermissions", 200, json.dumps(PERMS))))
    with pytest.raises(RestBridgeError, match="No valid response"):
        batch.extract_batch_object(write, BatchOp.CHECKIN, "x")
