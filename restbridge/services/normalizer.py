"""
Conversion of Documentum REST JSON into the gateway's record types.

The backend answers in three shapes, decoded explicitly before extraction:

* ``SingleObject``: ``{"properties": {...}}`` or
  ``{"content": {"properties": {...}}}``; a map with neither key is taken
  to be the property map itself.
* ``ListEntry``: ``{"title", "summary", "id"}`` as returned by cabinet and
  folder listings, where ``id`` is a URL ending in the object id and
  ``summary`` reads ``"<type_name> <object_id>"``.
* batch envelopes, handled in ``restbridge.services.batch``.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Union

from restbridge.schemas.models import (
    AttributeDescriptor,
    ColumnDescriptor,
    GroupRecord,
    ObjectRecord,
    TypeDescriptor,
    UserRecord,
)
from restbridge.utils.permissions import (
    UNKNOWN_LEVEL,
    is_known_level,
    label_to_level,
    level_to_label,
)

logger = logging.getLogger(__name__)

SYSTEM_TYPE_PREFIXES = ("dm_", "dmi_")


@dataclass(frozen=True)
class SingleObject:
    properties: Dict[str, Any]


@dataclass(frozen=True)
class ListEntry:
    title: str
    summary: str
    id: str


EntryPayload = Union[SingleObject, ListEntry]


@dataclass(frozen=True)
class PermissionInfo:
    level: Optional[int] = None
    label: Optional[str] = None
    extended: List[str] = field(default_factory=list)


# ---------- decoding ----------


def decode_single_object(raw: Mapping[str, Any]) -> SingleObject:
    content = raw.get("content")
    source = content if isinstance(content, dict) else raw
    properties = source.get("properties")
    if isinstance(properties, dict):
        return SingleObject(dict(properties))
    if source is raw:
        return SingleObject({k: v for k, v in raw.items() if k not in ("links", "content")})
    return SingleObject({})


def decode_entry(raw: Mapping[str, Any]) -> EntryPayload:
    """Inline listings carry full properties; plain feeds only the entry header."""
    content = raw.get("content")
    if isinstance(content, dict) and isinstance(content.get("properties"), dict):
        return SingleObject(dict(content["properties"]))
    return ListEntry(
        title=_as_str(raw.get("title")),
        summary=_as_str(raw.get("summary")),
        id=_as_str(raw.get("id")),
    )


def entries_of(page: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    entries = page.get("entries")
    if not isinstance(entries, list):
        return []
    return [e for e in entries if isinstance(e, dict)]


def entry_contents(page: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    """``content`` maps of an inline listing page; entries without one are skipped."""
    return [e["content"] for e in entries_of(page) if isinstance(e.get("content"), dict)]


def last_path_segment(url: Optional[str]) -> str:
    if not url or "/" not in url:
        return ""
    return url.rstrip("/").rsplit("/", 1)[-1] if not url.endswith("/") else ""


# ---------- objects ----------


def to_object_record(payload: EntryPayload) -> ObjectRecord:
    if isinstance(payload, ListEntry):
        type_name = payload.summary.split(" ", 1)[0] if " " in payload.summary else ""
        return ObjectRecord(
            object_id=last_path_segment(payload.id),
            type=type_name,
            name=payload.title,
        )
    props = payload.properties
    return ObjectRecord(
        object_id=_as_str(props.get("r_object_id")),
        type=_as_str(props.get("r_object_type")),
        name=_as_str(props.get("object_name")),
        attributes=props,
    )


def extract_object(raw: Mapping[str, Any]) -> ObjectRecord:
    return to_object_record(decode_single_object(raw))


def extract_entry(raw: Mapping[str, Any]) -> ObjectRecord:
    return to_object_record(decode_entry(raw))


def extract_entries(page: Mapping[str, Any]) -> List[ObjectRecord]:
    return [extract_entry(e) for e in entries_of(page)]


# ---------- permissions ----------


def extract_permissions(raw: Mapping[str, Any]) -> PermissionInfo:
    """
    Reconcile ``basic-permission`` (label or number) into level + label and
    split ``extend-permissions``. Unrecognized values leave both empty.
    """
    level: Optional[int] = None
    label: Optional[str] = None

    basic = raw.get("basic-permission")
    if isinstance(basic, str) and basic.strip().isdigit():
        basic = int(basic.strip())

    if isinstance(basic, bool):
        pass
    elif isinstance(basic, str):
        candidate = label_to_level(basic)
        if candidate != UNKNOWN_LEVEL:
            level, label = candidate, basic.strip().upper()
    elif isinstance(basic, (int, float)):
        candidate = int(basic)
        if is_known_level(candidate):
            level, label = candidate, level_to_label(candidate)

    extended: List[str] = []
    ext = raw.get("extend-permissions")
    if isinstance(ext, str):
        extended = [part.strip() for part in ext.split(",") if part.strip()]
    elif isinstance(ext, list):
        extended = [str(part).strip() for part in ext if str(part).strip()]

    return PermissionInfo(level=level, label=label, extended=extended)


def apply_permissions(record: ObjectRecord, permissions: Optional[PermissionInfo]) -> ObjectRecord:
    if permissions is None:
        return record
    update: Dict[str, Any] = {"extended_permissions": list(permissions.extended)}
    if permissions.level is not None:
        update["permission_level"] = permissions.level
        update["permission_label"] = permissions.label
    return record.model_copy(update=update)


# ---------- attributes ----------


def normalize_attributes(
    attributes: Optional[Mapping[str, Any]],
    repeating: Iterable[str],
) -> Dict[str, Any]:
    """Wrap scalar values of repeating attributes in a one-element list."""
    if not attributes:
        return dict(attributes or {})
    repeating_names = frozenset(repeating)
    normalized: Dict[str, Any] = {}
    for name, value in attributes.items():
        if name in repeating_names and value is not None and not isinstance(value, (list, tuple)):
            logger.debug("Normalized repeating attribute %s from scalar to list", name)
            normalized[name] = [value]
        elif isinstance(value, tuple):
            normalized[name] = list(value)
        else:
            normalized[name] = value
    return normalized


# ---------- types ----------


def parent_type_name(raw: Mapping[str, Any]) -> str:
    parent = raw.get("parent")
    return last_path_segment(parent) if isinstance(parent, str) else ""


def attribute_names(raw: Mapping[str, Any]) -> FrozenSet[str]:
    props = raw.get("properties")
    if not isinstance(props, list):
        return frozenset()
    return frozenset(p["name"] for p in props if isinstance(p, dict) and isinstance(p.get("name"), str))


def extract_type(raw: Mapping[str, Any], inherited_names: Iterable[str] = ()) -> TypeDescriptor:
    name = _as_str(raw.get("name"))
    category = _as_str(raw.get("category"))
    parent_names = frozenset(inherited_names)

    attributes: List[AttributeDescriptor] = []
    props = raw.get("properties")
    for prop in props if isinstance(props, list) else []:
        if not isinstance(prop, dict):
            continue
        attr_name = _as_str(prop.get("name"))
        length = prop.get("length")
        explicit = prop.get("inherited")
        default = prop.get("default")
        attributes.append(
            AttributeDescriptor(
                name=attr_name,
                data_type=prop.get("type"),
                length=int(length) if isinstance(length, (int, float)) and not isinstance(length, bool) else 0,
                repeating=prop.get("repeating") is True,
                required=prop.get("notnull") is True,
                default_value=str(default) if default is not None else None,
                inherited=explicit if isinstance(explicit, bool) else attr_name in parent_names,
            )
        )

    return TypeDescriptor(
        name=name,
        super_type=parent_type_name(raw),
        system_type=category == "standard" or name.startswith(SYSTEM_TYPE_PREFIXES),
        category=category,
        attributes=attributes,
    )


# ---------- users and groups ----------


def _property_source(raw: Mapping[str, Any]) -> Mapping[str, Any]:
    return decode_single_object(raw).properties


def extract_user(raw: Mapping[str, Any]) -> UserRecord:
    props = _property_source(raw)
    state = props.get("user_state")
    return UserRecord(
        object_id=_as_str(props.get("r_object_id")),
        user_name=_as_str(props.get("user_name")),
        user_os_name=_as_str(props.get("user_os_name")),
        user_address=_as_str(props.get("user_address")),
        user_state="" if state is None else str(state),
        default_folder=_as_str(props.get("default_folder")),
        user_group_name=_as_str(props.get("user_group_name")),
        super_user=props.get("r_is_superuser") is True,
    )


def extract_group(raw: Mapping[str, Any]) -> GroupRecord:
    props = _property_source(raw)
    return GroupRecord(
        object_id=_as_str(props.get("r_object_id")),
        group_name=_as_str(props.get("group_name")),
        description=_as_str(props.get("description")),
        group_class=_as_str(props.get("group_class")),
        group_admin=_as_str(props.get("group_admin")),
        is_private=props.get("is_private") is True,
        users_names=_str_list(props.get("users_names")),
        groups_names=_str_list(props.get("groups_names")),
    )


# ---------- query results ----------


def extract_rows(page: Mapping[str, Any]) -> List[Dict[str, Any]]:
    rows = []
    for content in entry_contents(page):
        props = content.get("properties")
        if isinstance(props, dict):
            rows.append(dict(props))
    return rows


def infer_type(value: Any) -> str:
    if value is None:
        return "STRING"
    if isinstance(value, list):
        return infer_type(value[0]) if value else "STRING"
    if isinstance(value, bool):
        return "BOOLEAN"
    if isinstance(value, int):
        return "INTEGER"
    if isinstance(value, float):
        return "DOUBLE"
    return "STRING"


def extract_columns(page: Optional[Mapping[str, Any]]) -> List[ColumnDescriptor]:
    """Columns of the first row of ``page``; later pages are assumed alike."""
    if not page:
        return []
    rows = extract_rows(page)
    if not rows:
        return []
    return [
        ColumnDescriptor(name=name, type=infer_type(value), length=0, repeating=isinstance(value, list))
        for name, value in rows[0].items()
    ]


# ---------- helpers ----------


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _str_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(v) for v in value if v is not None]
    if isinstance(value, str) and value:
        return [value]
    return []
