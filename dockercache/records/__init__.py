"""Container record codec.

Turns a nested Docker inspect payload into the two stored representations:
a flat string map for hash storage and a compact JSON blob.
"""

from .codec import (
    decode_blob,
    encode_blob,
    expand_fields,
    flatten,
    flatten_container,
    project,
)
from .schema import CONTAINER_LAYOUT, CONTAINER_SCHEMA, FlatField, Kind, compile_schema

__all__ = [
    "CONTAINER_LAYOUT",
    "CONTAINER_SCHEMA",
    "FlatField",
    "Kind",
    "compile_schema",
    "decode_blob",
    "encode_blob",
    "expand_fields",
    "flatten",
    "flatten_container",
    "project",
]
