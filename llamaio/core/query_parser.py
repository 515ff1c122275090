"""Interpret untrusted list-query parameters into a bounded read query.

Supported parameters (all optional, all strings):

    where   JSON filter object, e.g. {"completed": false}
    sort    JSON field -> direction object, e.g. {"deadline": 1}
    select  JSON field -> include/exclude object, e.g. {"name": 1}
    skip    leading results to omit
    limit   maximum number of results
    count   "true" to return the number of matches instead of the records

Malformed where/sort/select clauses are dropped with a warning; they never
fail the request.
"""

import json
import logging
import re
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from llamaio.core import filters


logger = logging.getLogger(__name__)

_LEADING_INT_PATTERN = re.compile(r"^\s*([+-]?\d+)")


class ReadQuery(BaseModel):
    """Structured read query consumed by the entity store."""

    model_config = ConfigDict(frozen=True)

    where: dict[str, Any] = Field(default_factory=dict, description="Validated filter predicate")
    sort: list[tuple[str, int]] = Field(default_factory=list, description="Ordered (field, direction) pairs")
    projection: dict[str, bool] | None = Field(default=None, description="Field include/exclude flags")
    skip: int = Field(default=0, ge=0, description="Leading results to omit")
    limit: int | None = Field(default=None, gt=0, description="Maximum results, None for unbounded")
    count_only: bool = Field(default=False, description="Return the match count instead of records")
    warnings: list[str] = Field(default_factory=list, description="Clauses dropped as malformed")


def _parse_json_clause(
    params: Mapping[str, str],
    name: str,
    validate: Callable[[Any], Any],
    warnings: list[str],
) -> Any:
    """Parse and validate a JSON clause, returning None if absent or malformed."""
    raw = params.get(name)
    if not raw:
        return None

    try:
        return validate(json.loads(raw))
    except (ValueError, TypeError) as e:
        # json.JSONDecodeError is a ValueError
        warning = f"Invalid '{name}' parameter ignored: {e}"
        warnings.append(warning)
        logger.warning("query_clause_ignored", extra={"parameter": name, "value": raw, "error": str(e)})
        return None


def parse_int(value: str | None) -> int | None:
    """Parse the leading integer of a string, returning None if there is none."""
    if value is None:
        return None
    match = _LEADING_INT_PATTERN.match(str(value))
    return int(match.group(1)) if match else None


def parse_projection(raw: str | None) -> dict[str, bool] | None:
    """Parse a standalone `select` parameter, as used by fetch-by-id routes."""
    return _parse_json_clause({"select": raw or ""}, "select", filters.validate_projection, []) or None


def parse_read_query(params: Mapping[str, str], *, default_limit: int | None = None) -> ReadQuery:
    """Build a ReadQuery from flat query-string parameters.

    Args:
        params: Query parameters (e.g. request.query_params)
        default_limit: Limit applied when `limit` is absent or not a positive integer

    Returns:
        ReadQuery; never raises for malformed input
    """
    warnings: list[str] = []

    where = _parse_json_clause(params, "where", filters.validate_predicate, warnings)
    sort = _parse_json_clause(params, "sort", filters.validate_sort, warnings)
    projection = _parse_json_clause(params, "select", filters.validate_projection, warnings)

    skip = parse_int(params.get("skip")) or 0
    limit = parse_int(params.get("limit"))
    if limit is None or limit <= 0:
        limit = default_limit

    return ReadQuery(
        where=where or {},
        sort=sort or [],
        projection=projection or None,
        skip=max(skip, 0),
        limit=limit,
        count_only=params.get("count") == "true",
        warnings=warnings,
    )
