"""Document filter, sort and projection evaluation.

Filters use a small document-query dialect:

    {"completed": false}                           equality
    {"pendingTasks": "<task id>"}                  array contains
    {"deadline": {"$gte": "2024-01-01"}}           operator expression
    {"$or": [{"name": "a"}, {"name": "b"}]}        logical operators

Every structure is validated up front by the ``validate_*`` functions so that
evaluation never meets an unknown operator.
"""

import re
from collections.abc import Callable
from typing import Any


COMPARISON_OPERATORS = frozenset({"$eq", "$ne", "$gt", "$gte", "$lt", "$lte", "$in", "$nin", "$exists", "$regex"})
LOGICAL_OPERATORS = frozenset({"$and", "$or", "$nor"})

_SORT_DIRECTIONS: dict[Any, int] = {
    1: 1,
    -1: -1,
    "1": 1,
    "-1": -1,
    "asc": 1,
    "ascending": 1,
    "desc": -1,
    "descending": -1,
}

_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}
_MAX_REGEX_LENGTH = 100

SortSpec = list[tuple[str, int]]


def _is_number(value: object) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _validate_field_name(field: object) -> None:
    if not isinstance(field, str) or not field or field.startswith("$"):
        msg = f"Invalid field name: {field!r}"
        raise ValueError(msg)


def _regex_flags(options: object) -> int:
    if not isinstance(options, str):
        msg = f"$options must be a string, got {type(options).__name__}"
        raise ValueError(msg)
    flags = 0
    for option in options:
        if option not in _REGEX_FLAGS:
            msg = f"Unsupported regex option: {option}"
            raise ValueError(msg)
        flags |= _REGEX_FLAGS[option]
    return flags


def _has_nested_quantifier(pattern: str) -> bool:
    """Return True if a quantified group itself repeats or alternates, as in ``(a+)+`` or ``(a|aa)*``.

    Such patterns backtrack exponentially on near-miss input.
    """
    group_stack: list[bool] = []
    closed_repeating = False
    in_class = False
    index = 0
    while index < len(pattern):
        char = pattern[index]
        index += 1
        if char == "\\":
            index += 1
            closed_repeating = False
            continue
        if in_class:
            in_class = char != "]"
            continue
        if char in "+*{":
            if closed_repeating:
                return True
            if group_stack:
                group_stack[-1] = True
        elif char == "|" and group_stack:
            group_stack[-1] = True
        elif char == "(":
            group_stack.append(False)
        elif char == ")" and group_stack:
            closed_repeating = group_stack.pop()
            if closed_repeating and group_stack:
                group_stack[-1] = True
            continue
        elif char == "[":
            in_class = True
        closed_repeating = False
    return False


def _validate_operator_expression(expression: dict[str, Any]) -> None:
    for operator, operand in expression.items():
        if operator == "$options":
            if "$regex" not in expression:
                raise ValueError("$options requires $regex")
            _regex_flags(operand)
            continue
        if operator not in COMPARISON_OPERATORS:
            msg = f"Unsupported operator: {operator}"
            raise ValueError(msg)
        if operator in ("$in", "$nin") and not isinstance(operand, list):
            msg = f"{operator} requires an array"
            raise ValueError(msg)
        if operator == "$regex":
            if not isinstance(operand, str):
                raise ValueError("$regex requires a string pattern")
            try:
                re.compile(operand, _regex_flags(expression.get("$options", "")))
            except re.error as e:
                msg = f"Invalid $regex pattern: {e}"
                raise ValueError(msg) from e
            if len(operand) > _MAX_REGEX_LENGTH:
                msg = f"$regex pattern exceeds {_MAX_REGEX_LENGTH} characters"
                raise ValueError(msg)
            if _has_nested_quantifier(operand):
                raise ValueError("$regex pattern repeats a group that already repeats")


def _is_operator_expression(value: object) -> bool:
    return isinstance(value, dict) and bool(value) and all(str(key).startswith("$") for key in value)


def validate_predicate(predicate: object) -> dict[str, Any]:
    """Validate a filter predicate, returning it unchanged.

    Raises:
        ValueError: If the predicate is not an object, names an unknown
            operator or gives an operator a badly-shaped operand
    """
    if not isinstance(predicate, dict):
        msg = f"Filter must be an object, got {type(predicate).__name__}"
        raise ValueError(msg)

    for key, value in predicate.items():
        if key in LOGICAL_OPERATORS:
            if not isinstance(value, list) or not value:
                msg = f"{key} requires a non-empty array"
                raise ValueError(msg)
            for clause in value:
                validate_predicate(clause)
            continue

        _validate_field_name(key)
        if isinstance(value, dict) and any(str(k).startswith("$") for k in value):
            if not _is_operator_expression(value):
                msg = f"Cannot mix operators and fields in the expression for {key}"
                raise ValueError(msg)
            _validate_operator_expression(value)

    return predicate


def validate_sort(sort: object) -> SortSpec:
    """Convert a field -> direction mapping into an ordered sort specification.

    Raises:
        ValueError: If sort is not an object or a direction is not recognised
    """
    if not isinstance(sort, dict):
        msg = f"Sort must be an object, got {type(sort).__name__}"
        raise ValueError(msg)

    spec: SortSpec = []
    for field, direction in sort.items():
        _validate_field_name(field)
        key = direction.lower() if isinstance(direction, str) else direction
        if isinstance(key, bool) or key not in _SORT_DIRECTIONS:
            msg = f"Invalid sort direction for {field}: {direction!r}"
            raise ValueError(msg)
        spec.append((field, _SORT_DIRECTIONS[key]))
    return spec


def validate_projection(projection: object) -> dict[str, bool]:
    """Normalize a field -> include/exclude mapping.

    Raises:
        ValueError: If projection is not an object, a flag is not 0/1/bool, or
            inclusion and exclusion are mixed (other than for ``_id``)
    """
    if not isinstance(projection, dict):
        msg = f"Select must be an object, got {type(projection).__name__}"
        raise ValueError(msg)

    normalized: dict[str, bool] = {}
    for field, flag in projection.items():
        _validate_field_name(field)
        if flag not in (0, 1):  # also admits True/False
            msg = f"Invalid select flag for {field}: {flag!r}"
            raise ValueError(msg)
        normalized[field] = bool(flag)

    modes = {include for field, include in normalized.items() if field != "_id"}
    if len(modes) > 1:
        raise ValueError("Select cannot mix inclusion and exclusion")
    return normalized


def _equals(stored: object, expected: object) -> bool:
    if isinstance(stored, list) and not isinstance(expected, list):
        return any(_equals(item, expected) for item in stored)
    if isinstance(stored, bool) or isinstance(expected, bool):
        return isinstance(stored, bool) and isinstance(expected, bool) and stored == expected
    return stored == expected


def _compare(stored: object, expected: object, compare: Callable[[Any, Any], bool]) -> bool:
    if isinstance(stored, list):
        return any(_compare(item, expected, compare) for item in stored)
    comparable = (_is_number(stored) and _is_number(expected)) or (
        isinstance(stored, str) and isinstance(expected, str)
    )
    return comparable and compare(stored, expected)


def _regex_matches(stored: object, pattern: str, options: str) -> bool:
    if isinstance(stored, list):
        return any(_regex_matches(item, pattern, options) for item in stored)
    return isinstance(stored, str) and re.search(pattern, stored, _regex_flags(options)) is not None


def _matches_operator(record: dict[str, Any], field: str, operator: str, operand: Any, expression: dict) -> bool:
    stored = record.get(field)
    if operator == "$eq":
        return _equals(stored, operand)
    if operator == "$ne":
        return not _equals(stored, operand)
    if operator == "$gt":
        return _compare(stored, operand, lambda a, b: a > b)
    if operator == "$gte":
        return _compare(stored, operand, lambda a, b: a >= b)
    if operator == "$lt":
        return _compare(stored, operand, lambda a, b: a < b)
    if operator == "$lte":
        return _compare(stored, operand, lambda a, b: a <= b)
    if operator == "$in":
        return any(_equals(stored, candidate) for candidate in operand)
    if operator == "$nin":
        return not any(_equals(stored, candidate) for candidate in operand)
    if operator == "$exists":
        return (field in record) == bool(operand)
    if operator == "$regex":
        return _regex_matches(stored, operand, expression.get("$options", ""))
    # $options is consumed by $regex
    return True


def matches(record: dict[str, Any], predicate: dict[str, Any] | None) -> bool:
    """Return True if the record satisfies a validated predicate."""
    if not predicate:
        return True

    for key, value in predicate.items():
        if key == "$and":
            if not all(matches(record, clause) for clause in value):
                return False
        elif key == "$or":
            if not any(matches(record, clause) for clause in value):
                return False
        elif key == "$nor":
            if any(matches(record, clause) for clause in value):
                return False
        elif _is_operator_expression(value):
            if not all(_matches_operator(record, key, op, operand, value) for op, operand in value.items()):
                return False
        elif not _equals(record.get(key), value):
            return False

    return True


def _sort_key(value: object) -> tuple[int, Any]:
    """Order values by type bracket first so mixed types never compare."""
    if value is None:
        return (0, 0)
    if _is_number(value):
        return (1, value)
    if isinstance(value, str):
        return (2, value)
    if isinstance(value, list):
        return (4, [_sort_key(item) for item in value])
    if isinstance(value, bool):
        return (5, value)
    return (3, str(value))


def sort_records(records: list[dict[str, Any]], sort: SortSpec | None) -> list[dict[str, Any]]:
    """Sort records by a validated sort specification (stable, multi-key)."""
    if not sort:
        return records

    ordered = list(records)
    # Apply keys from least to most significant; sorted() is stable
    for field, direction in reversed(sort):
        ordered.sort(key=lambda r, f=field: _sort_key(r.get(f)), reverse=direction < 0)
    return ordered


def project_record(record: dict[str, Any], projection: dict[str, bool] | None) -> dict[str, Any]:
    """Apply a validated projection to a record."""
    if not projection:
        return record

    include_id = projection.get("_id", True)
    included = {field for field, include in projection.items() if include and field != "_id"}

    if included:
        projected = {field: record[field] for field in record if field in included}
        if include_id and "_id" in record:
            projected = {"_id": record["_id"], **projected}
        return projected

    excluded = {field for field, include in projection.items() if not include}
    return {field: value for field, value in record.items() if field not in excluded}
