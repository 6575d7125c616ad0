"""Flatten, expand and serialize container records.

Pure functions, no I/O. Values are rendered per their declared ``Kind``:
strings as-is, integers in base 10, booleans as ``true``/``false``, lists and
mappings as compact JSON. ``None`` leaves and keys missing from the record
produce no flat entry.
"""

import json
from collections.abc import Mapping
from typing import Any

from ..errors import MalformedRecordError
from .schema import CONTAINER_LAYOUT, FlatField, Kind

_MISSING = object()


def _dump_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True)


def _lookup(record: Mapping[str, Any], path: tuple[str, ...]) -> Any:
    """Follow ``path`` into nested mappings."""
    value: Any = record
    for depth, key in enumerate(path):
        if value is None:
            return _MISSING
        if not isinstance(value, Mapping):
            raise MalformedRecordError(
                f"Expected a mapping at {'.'.join(path[:depth]) or '<root>'}, "
                f"got {type(value).__name__}"
            )
        value = value.get(key, _MISSING)
        if value is _MISSING:
            return _MISSING
    return value


def _assign(out: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    node = out
    for key in path[:-1]:
        node = node.setdefault(key, {})
    node[path[-1]] = value


def _render(field: FlatField, value: Any) -> str:
    if field.kind is Kind.BOOLEAN:
        return "true" if value else "false"
    if field.kind is Kind.INTEGER:
        try:
            return str(int(value))
        except (TypeError, ValueError) as e:
            raise MalformedRecordError(f"{field.key}: expected an integer, got {value!r}") from e
    if field.kind is Kind.JSON:
        try:
            return _dump_json(value)
        except (TypeError, ValueError) as e:
            raise MalformedRecordError(f"{field.key}: value is not JSON serializable") from e
    return str(value)


def _parse(field: FlatField, raw: str) -> Any:
    if field.kind is Kind.BOOLEAN:
        return raw == "true"
    if field.kind is Kind.INTEGER:
        return int(raw)
    if field.kind is Kind.JSON:
        return json.loads(raw)
    return raw


def flatten(record: Mapping[str, Any], layout: tuple[FlatField, ...]) -> dict[str, str]:
    """Flatten a nested record into a string map according to ``layout``.

    Raises:
        MalformedRecordError: If a value does not match its declared kind.
    """
    flat: dict[str, str] = {}
    for field in layout:
        value = _lookup(record, field.path)
        if value is _MISSING or value is None:
            continue
        flat[field.key] = _render(field, value)
    return flat


def flatten_container(container: Mapping[str, Any]) -> dict[str, str]:
    """Flatten a Docker inspect payload."""
    return flatten(container, CONTAINER_LAYOUT)


def expand_fields(
    fields: Mapping[str, str], layout: tuple[FlatField, ...] = CONTAINER_LAYOUT
) -> dict[str, Any]:
    """Rebuild the nested record from its flat form.

    Keys not declared by ``layout`` are ignored.

    Raises:
        MalformedRecordError: If a stored value cannot be parsed back.
    """
    out: dict[str, Any] = {}
    for field in layout:
        raw = fields.get(field.key)
        if raw is None:
            continue
        try:
            value = _parse(field, raw)
        except ValueError as e:
            raise MalformedRecordError(f"{field.key}: cannot parse {raw!r}") from e
        _assign(out, field.path, value)
    return out


def project(
    record: Mapping[str, Any], layout: tuple[FlatField, ...] = CONTAINER_LAYOUT
) -> dict[str, Any]:
    """Restrict a record to the leaves declared by ``layout``.

    The result is what ``expand_fields(flatten(record))`` yields, so it is the
    common ground on which the flat and blob representations are compared.
    """
    return expand_fields(flatten(record, layout), layout)


def encode_blob(record: Mapping[str, Any]) -> str:
    """Serialize the full record as compact JSON with sorted keys."""
    try:
        return _dump_json(record)
    except (TypeError, ValueError) as e:
        raise MalformedRecordError(f"Record is not JSON serializable: {e}") from e


def decode_blob(blob: str) -> dict[str, Any]:
    """Parse a blob written by ``encode_blob``."""
    try:
        value = json.loads(blob)
    except ValueError as e:
        raise MalformedRecordError(f"Invalid container blob: {e}") from e
    if not isinstance(value, dict):
        raise MalformedRecordError("Container blob is not a JSON object")
    return value
