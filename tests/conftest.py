"""Shared fixtures: an in-memory Documentum REST backend behind httpx.MockTransport."""

from __future__ import annotations

import base64
import json
from typing import Any

import httpx
import pytest

from restbridge.config import Settings
from restbridge.services.session_manager import SessionManager

ENDPOINT = "http://dctm.test/dctm-rest"
REPOSITORY = "testrepo"
USERNAME = "dmadmin"
PASSWORD = "secret"

FOLDER_ID = "0b00000180000001"
CABINET_ID = "0c00000180000001"
DOC_ID = "0900000180000001"

PARENT_TYPE_URL = f"{ENDPOINT}/repositories/{REPOSITORY}/types/"


def _type(name: str, parent: str | None, props: list[dict[str, Any]], category: str = "") -> dict[str, Any]:
    raw: dict[str, Any] = {"name": name, "category": category, "properties": props}
    if parent:
        raw["parent"] = PARENT_TYPE_URL + parent
    return raw


def _name_of(content: dict[str, Any], key: str) -> Any:
    props = content.get("properties")
    return (props if isinstance(props, dict) else content).get(key, "")


def _prop(name: str, type_: str = "STRING", *, repeating: bool = False, length: int = 32, **extra: Any) -> dict[str, Any]:
    return {"name": name, "type": type_, "length": length, "repeating": repeating, **extra}


class FakeDocumentum:
    """Just enough of Documentum REST Services for the gateway's calls."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.batches: list[dict[str, Any]] = []
        self.dql_enabled = True
        self.dql_error: tuple[int, str] | None = None
        # When set, each inner list is served as one DQL result page.
        self.dql_pages: list[list[dict[str, Any]]] | None = None
        self.dql_rows: list[dict[str, Any]] = [
            {"r_object_id": f"09000001800000{i:02d}", "object_name": f"doc-{i}", "r_content_size": i * 10}
            for i in range(1, 6)
        ]
        self.permission: Any = "Write"
        self.extended_permissions = "execute_proc,change_location"
        self.permissions_status = 200
        self.fail_type_lookups: set[str] = set()
        self.next_id = 2

        self.objects: dict[str, dict[str, Any]] = {
            DOC_ID: {
                "r_object_id": DOC_ID,
                "r_object_type": "dm_document",
                "object_name": "report.pdf",
                "keywords": ["finance"],
                "i_folder_id": [FOLDER_ID],
            },
            FOLDER_ID: {
                "r_object_id": FOLDER_ID,
                "r_object_type": "dm_folder",
                "object_name": "Reports",
                "r_folder_path": ["/Finance/Reports"],
            },
            CABINET_ID: {
                "r_object_id": CABINET_ID,
                "r_object_type": "dm_cabinet",
                "object_name": "Finance",
            },
        }
        self.types: dict[str, dict[str, Any]] = {
            "dm_sysobject": _type(
                "dm_sysobject",
                None,
                [_prop("object_name", length=255), _prop("keywords", repeating=True), _prop("r_object_type")],
                category="standard",
            ),
            "dm_document": _type(
                "dm_document",
                "dm_sysobject",
                [
                    _prop("object_name", length=255),
                    _prop("keywords", repeating=True),
                    _prop("r_object_type"),
                    _prop("a_content_type", notnull=True),
                ],
                category="standard",
            ),
            "dm_folder": _type(
                "dm_folder",
                "dm_sysobject",
                [_prop("object_name", length=255), _prop("r_folder_path", repeating=True)],
                category="standard",
            ),
            "custom_doc": _type(
                "custom_doc",
                "dm_document",
                [
                    _prop("object_name", length=255),
                    _prop("keywords", repeating=True, inherited=False),
                    _prop("a_content_type"),
                    _prop("project_codes", repeating=True),
                    _prop("priority", "INTEGER", length=0),
                ],
            ),
        }
        self.users: dict[str, dict[str, Any]] = {
            "alice": {
                "r_object_id": "1100000180000001",
                "user_name": "alice",
                "user_os_name": "alice",
                "user_address": "alice@example.com",
                "user_state": 0,
                "default_folder": "/alice",
                "user_group_name": "finance",
                "r_is_superuser": False,
            },
            "dmadmin": {
                "r_object_id": "1100000180000002",
                "user_name": "dmadmin",
                "user_state": 0,
                "r_is_superuser": True,
            },
        }
        self.groups: dict[str, dict[str, Any]] = {
            "finance": {
                "r_object_id": "1200000180000001",
                "group_name": "finance",
                "description": "Finance team",
                "group_class": "group",
                "users_names": ["alice", "bob"],
                "groups_names": [],
            },
            "all_staff": {
                "r_object_id": "1200000180000002",
                "group_name": "all_staff",
                "group_class": "group",
                "users_names": ["carol"],
                "groups_names": ["finance"],
            },
            "admins": {
                "r_object_id": "1200000180000003",
                "group_name": "admins",
                "users_names": ["dmadmin"],
                "groups_names": None,
            },
        }

    # ---------- transport ----------

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._authorized(request):
            return httpx.Response(401, json={"status": 401, "message": "Unauthorized"})
        path = request.url.path
        prefix = httpx.URL(ENDPOINT).path
        if path.startswith(prefix):
            path = path[len(prefix):]
        body = json.loads(request.content) if request.content else None
        status, payload = self.dispatch(request.method, path, dict(request.url.params), body)
        if payload is None:
            return httpx.Response(status)
        if isinstance(payload, str):
            return httpx.Response(status, text=payload)
        return httpx.Response(status, json=payload)

    def paths(self, method: str | None = None) -> list[str]:
        prefix = httpx.URL(ENDPOINT).path
        return [
            r.url.path[len(prefix):]
            for r in self.requests
            if method is None or r.method == method
        ]

    def dql_queries(self) -> list[str]:
        return [r.url.params["dql"] for r in self.requests if "dql" in r.url.params]

    def _authorized(self, request: httpx.Request) -> bool:
        expected = base64.b64encode(f"{USERNAME}:{PASSWORD}".encode()).decode()
        return request.headers.get("Authorization") == f"Basic {expected}"

    # ---------- routing ----------

    def dispatch(self, method: str, path: str, params: dict[str, str], body: Any) -> tuple[int, Any]:
        parts = [p for p in path.split("/") if p]
        if len(parts) < 2 or parts[0] != "repositories":
            return 404, {"message": "no such resource"}
        if parts[1] != REPOSITORY:
            return 404, {"message": f"Repository {parts[1]} not found"}
        rest = parts[2:]

        if not rest:
            if "dql" in params:
                return self._dql(params)
            return 200, {"id": 1234, "name": REPOSITORY, "servers": [{"name": "cs1", "version": "23.4.0000.0120"}]}
        head = rest[0]
        if head == "batches" and method == "POST":
            return self._batch(body)
        if head == "objects":
            return self._objects(method, rest[1:], params, body)
        if head == "cabinets":
            if method == "POST":
                return self._create(body, None)
            return 200, self._feed((o for o in self.objects.values() if o["r_object_type"] == "dm_cabinet"), params)
        if head == "folders":
            return self._folders(method, rest[1:], params, body)
        if head == "types":
            if len(rest) == 2:
                if rest[1] in self.fail_type_lookups:
                    return 500, {"message": "type lookup exploded"}
                found = self.types.get(rest[1])
                return (200, found) if found else (404, {"message": "type not found"})
            return self._inline_page(list(self.types.values()), params, "name")
        if head == "users":
            if len(rest) == 2:
                found = self.users.get(rest[1])
                return (200, {"properties": found}) if found else (404, {"message": "user not found"})
            return self._inline_page([{"properties": u} for u in self.users.values()], params, "user_name")
        if head == "groups":
            if len(rest) == 2:
                found = self.groups.get(rest[1])
                return (200, {"content": {"properties": found}}) if found else (404, {"message": "group not found"})
            return self._inline_page([{"properties": g} for g in self.groups.values()], params, "group_name")
        return 404, {"message": "no such resource"}

    def _objects(self, method: str, rest: list[str], params: dict[str, str], body: Any) -> tuple[int, Any]:
        object_id = rest[0]
        obj = self.objects.get(object_id)
        if obj is None:
            return 404, {"message": f"Object {object_id} not found"}
        sub = rest[1] if len(rest) > 1 else None

        if sub is None and method == "GET":
            return 200, {"properties": obj, "links": []}
        if sub is None and method == "POST":
            obj.update(body["properties"])
            return 200, {"properties": obj}
        if sub is None and method == "DELETE":
            del self.objects[object_id]
            return 204, None
        if sub == "permissions":
            if self.permissions_status != 200:
                return self.permissions_status, {"message": "permissions unavailable"}
            return 200, {"basic-permission": self.permission, "extend-permissions": self.extended_permissions}
        if sub == "lock" and method == "PUT":
            obj["r_lock_owner"] = USERNAME
            return 200, {"properties": obj}
        if sub == "lock" and method == "DELETE":
            obj.pop("r_lock_owner", None)
            return 204, None
        if sub == "versions" and method == "POST":
            new_id = self._new_id("09")
            new_obj = dict(obj, r_object_id=new_id)
            new_obj.pop("r_lock_owner", None)
            labels = ((body or {}).get("properties") or {}).get("r_version_label")
            if labels:
                new_obj["r_version_label"] = labels
            self.objects[new_id] = new_obj
            return 201, {"content": {"properties": new_obj}}
        return 405, {"message": "method not allowed"}

    def _folders(self, method: str, rest: list[str], params: dict[str, str], body: Any) -> tuple[int, Any]:
        if not rest:
            wanted = params.get("folder-path")
            matches = [
                o for o in self.objects.values()
                if wanted in (o.get("r_folder_path") or [])
            ]
            return 200, self._feed(matches, params)
        folder_id = rest[0]
        if folder_id not in self.objects:
            return 404, {"message": "folder not found"}
        if method == "GET" and rest[1:] == ["objects"]:
            children = [o for o in self.objects.values() if folder_id in (o.get("i_folder_id") or [])]
            return 200, self._feed(children, params)
        if method == "POST" and rest[1:] in (["documents"], ["folders"]):
            return self._create(body, folder_id)
        return 405, {"message": "method not allowed"}

    def _create(self, body: Any, folder_id: str | None) -> tuple[int, Any]:
        props = dict(body["properties"])
        new_id = self._new_id("0b" if "folder" in props["r_object_type"] else "09")
        props["r_object_id"] = new_id
        if folder_id:
            props["i_folder_id"] = [folder_id]
        self.objects[new_id] = props
        return 201, {"properties": props}

    def _batch(self, body: dict[str, Any]) -> tuple[int, Any]:
        self.batches.append(body)
        results = []
        for operation in body["operations"]:
            request = operation["request"]
            url = httpx.URL(request["uri"])
            entity = json.loads(request["entity"]) if request.get("entity") else None
            status, payload = self.dispatch(request["method"], url.path, dict(url.params), entity)
            response: dict[str, Any] = {"status": status}
            if payload is not None:
                response["entity"] = json.dumps(payload)
            results.append({"id": operation["id"], "response": response})
        return 200, {"operations": results}

    def _dql(self, params: dict[str, str]) -> tuple[int, Any]:
        if not self.dql_enabled:
            return 400, {"status": 400, "message": "DQL query is disabled on this server"}
        if self.dql_error is not None:
            return self.dql_error
        query = params["dql"]
        if "dm_docbase_config" in query:
            rows = [{"r_object_id": "3c00000180000103"}]
        elif self.dql_pages is not None:
            return 200, self._scripted_page(params)
        else:
            rows = self.dql_rows
        return 200, self._page([{"content": {"properties": r}} for r in rows], params)

    # ---------- payload shapes ----------

    def _feed(self, objects: Any, params: dict[str, str]) -> dict[str, Any]:
        return self._page(
            [
                {
                    "id": f"{ENDPOINT}/repositories/{REPOSITORY}/objects/{o['r_object_id']}",
                    "title": o["object_name"],
                    "summary": f"{o['r_object_type']} {o['r_object_id']}",
                }
                for o in objects
            ],
            params,
        )

    def _inline_page(self, contents: list[dict[str, Any]], params: dict[str, str], name_key: str) -> tuple[int, Any]:
        filter_expr = params.get("filter")
        if filter_expr:
            prefix = filter_expr.split("'")[1]
            contents = [c for c in contents if str(_name_of(c, name_key)).startswith(prefix)]
        return 200, self._page([{"content": c} for c in contents], params)

    def _page(self, entries: list[dict[str, Any]], params: dict[str, str]) -> dict[str, Any]:
        per_page = int(params.get("items-per-page", 100))
        page = int(params.get("page", 1))
        start = (page - 1) * per_page
        chunk = entries[start:start + per_page]
        links = [{"rel": "self", "href": "..."}]
        if start + per_page < len(entries):
            links.append({"rel": "next", "href": "..."})
        return {"entries": chunk, "links": links}

    def _scripted_page(self, params: dict[str, str]) -> dict[str, Any]:
        assert self.dql_pages is not None
        page = int(params.get("page", 1))
        rows = self.dql_pages[page - 1] if page <= len(self.dql_pages) else []
        links = [{"rel": "self", "href": "..."}]
        if page < len(self.dql_pages):
            links.append({"rel": "next", "href": "..."})
        return {"entries": [{"content": {"properties": r}} for r in rows], "links": links}

    def _new_id(self, prefix: str) -> str:
        self.next_id += 1
        return f"{prefix}000001800000{self.next_id:02d}"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        timeout_seconds=5.0,
        type_timeout_seconds=5.0,
        session_cleanup_interval_seconds=3600.0,
        max_pages=50,
        items_per_page=2,
        retry_attempts=1,
        retry_backoff_base=0.0,
    )


@pytest.fixture
def backend() -> FakeDocumentum:
    return FakeDocumentum()


@pytest.fixture
def session_manager(settings: Settings, backend: FakeDocumentum) -> SessionManager:
    return SessionManager(settings, transport=backend.transport())


async def connect(session_manager: SessionManager) -> str:
    session_id, _ = await session_manager.connect(REPOSITORY, ENDPOINT + "/", USERNAME, PASSWORD)
    return session_id
