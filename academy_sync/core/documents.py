"""
Filter matching and update application for JSON documents.

Implements the subset of Mongo query and update semantics the consistency
engine relies on, so a relational table of JSON bodies can stand in for a
document collection:

Filters:
    {"field": value}            equality; an array field matches when it contains value
    {"a.b": value}              dotted path, descends into arrays of sub-documents
    {"field": {"$in": [...]}}   also $nin, $ne, $exists
    {"$or": [filter, ...]}      any sub-filter matches (also $and)

Updates:
    $set, $unset, $addToSet, $pull, $push
"""

from copy import deepcopy
from typing import Any

from academy_sync.core.exceptions import MalformedDocumentException

Filter = dict[str, Any]
Update = dict[str, dict[str, Any]]


def values_at(document: dict, path: str) -> list[Any]:
    """Collect every value reachable at a dotted path."""
    current: list[Any] = [document]
    for part in path.split("."):
        found = []
        for value in current:
            if isinstance(value, dict):
                if part in value:
                    found.append(value[part])
            elif isinstance(value, list):
                for item in value:
                    if isinstance(item, dict) and part in item:
                        found.append(item[part])
        current = found
    return current


def _equals(candidates: list[Any], expected: Any) -> bool:
    if not candidates:
        # {"field": None} matches a missing field
        return expected is None
    for candidate in candidates:
        if candidate == expected:
            return True
        if isinstance(candidate, list) and expected in candidate:
            return True
    return False


def _is_operator(condition: Any) -> bool:
    return (
        isinstance(condition, dict)
        and len(condition) > 0
        and all(key.startswith("$") for key in condition)
    )


def _check_operator(operator: str, candidates: list[Any], operand: Any) -> bool:
    if operator == "$in":
        return any(_equals(candidates, value) for value in operand)
    if operator == "$nin":
        return not any(_equals(candidates, value) for value in operand)
    if operator == "$ne":
        return not _equals(candidates, operand)
    if operator == "$exists":
        return bool(candidates) == bool(operand)
    raise ValueError(f"Unsupported query operator: {operator}")


def matches(document: dict, query: Filter | None) -> bool:
    """
    Check whether a document satisfies a filter.

    Args:
        document: Document body
        query: Filter; None or empty matches everything

    Returns:
        True if every clause of the filter holds
    """
    for key, condition in (query or {}).items():
        if key == "$or":
            if not any(matches(document, sub) for sub in condition):
                return False
            continue
        if key == "$and":
            if not all(matches(document, sub) for sub in condition):
                return False
            continue

        candidates = values_at(document, key)
        if _is_operator(condition):
            for operator, operand in condition.items():
                if not _check_operator(operator, candidates, operand):
                    return False
        elif not _equals(candidates, condition):
            return False
    return True


def project(document: dict, fields: list[str] | None) -> dict:
    """Return only the requested top-level fields (all fields when None)."""
    if fields is None:
        return deepcopy(document)
    return {field: deepcopy(document[field]) for field in fields if field in document}


def _array_field(document: dict, field: str) -> list:
    value = document.get(field)
    if value is None:
        value = []
        document[field] = value
    if not isinstance(value, list):
        raise MalformedDocumentException(
            f"Field '{field}' is {type(value).__name__}, expected an array"
        )
    return value


def _pull_matches(item: Any, condition: Any) -> bool:
    if _is_operator(condition):
        return all(
            _check_operator(operator, [item], operand)
            for operator, operand in condition.items()
        )
    if isinstance(condition, dict):
        return isinstance(item, dict) and matches(item, condition)
    return item == condition


def apply_update(document: dict, update: Update) -> tuple[dict, bool]:
    """
    Apply update operators to a copy of a document.

    Operators are applied in the order they appear in the update.

    Args:
        document: Original document body (left untouched)
        update: Mapping of operator to {field: operand}

    Returns:
        Tuple of (updated copy, whether anything changed)

    Raises:
        MalformedDocumentException: If an array operator targets a non-array field
        ValueError: If an unsupported operator is used
    """
    updated = deepcopy(document)

    for operator, fields in update.items():
        for field, operand in fields.items():
            if operator == "$set":
                updated[field] = deepcopy(operand)
            elif operator == "$unset":
                updated.pop(field, None)
            elif operator == "$addToSet":
                values = _array_field(updated, field)
                if operand not in values:
                    values.append(deepcopy(operand))
            elif operator == "$push":
                _array_field(updated, field).append(deepcopy(operand))
            elif operator == "$pull":
                if field in updated and updated[field] is not None:
                    values = _array_field(updated, field)
                    updated[field] = [v for v in values if not _pull_matches(v, operand)]
            else:
                raise ValueError(f"Unsupported update operator: {operator}")

    return updated, updated != document
