"""
Syntactic checks applied to DQL before and after it reaches the backend.

Documentum REST Services materializes every result row as an object view
keyed by ``r_object_id``; aggregate projections have no such id and fail
server-side. ``is_aggregate_query`` rejects the obvious cases up front.
It is a heuristic, not a parser: anything it lets through is caught later
by ``is_aggregate_failure`` on the backend's error body.
"""

from typing import Optional

AGGREGATE_FUNCTIONS = ("COUNT(", "SUM(", "AVG(", "MIN(", "MAX(")
IDENTITY_COLUMN = "R_OBJECT_ID"


def is_aggregate_query(query: Optional[str]) -> bool:
    if not query:
        return False

    upper = query.upper().strip()
    if "GROUP BY" in upper:
        return True

    select_index = upper.find("SELECT")
    if select_index < 0:
        return False
    from_index = upper.find("FROM", select_index)
    if from_index < 0:
        return False

    projection = upper[select_index:from_index]
    if IDENTITY_COLUMN in projection:
        return False
    return any(func in projection for func in AGGREGATE_FUNCTIONS)


def is_aggregate_failure(body: Optional[str]) -> bool:
    """True when a backend error body shows the aggregate-result failure."""
    if not body:
        return False
    lowered = body.lower()
    return "queryresultitemview" in lowered or (
        "failed to instantiate" in lowered and "id=null" in lowered
    )


def is_dql_disabled(body: Optional[str]) -> bool:
    if not body:
        return False
    lowered = body.lower()
    return "dql" in lowered and ("disabled" in lowered or "not supported" in lowered)
