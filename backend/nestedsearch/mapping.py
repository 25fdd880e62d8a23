"""
Index mapping schema as a plain tree of field nodes.

A schema is written declaratively, e.g.::

    Mapping(properties={
        "id": long_(),
        "user": nested(id=long_(), first=keyword(), last=keyword()),
    })

and rendered with ``Mapping.to_dict()`` into the body Elasticsearch expects
under ``mappings``.
"""
from __future__ import annotations

from typing import Any, Dict, Iterator, Literal, Set, Union

from pydantic import BaseModel, Field

ScalarType = Literal["long", "integer", "keyword", "text"]


class ScalarField(BaseModel):
    type: ScalarType
    index: bool = True
    fielddata: bool = False  # text only

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.type}
        if not self.index:
            out["index"] = False
        if self.fielddata:
            out["fielddata"] = True
        return out


class NestedField(BaseModel):
    type: Literal["nested"] = "nested"
    properties: Dict[str, FieldNode] = Field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "nested",
            "properties": {name: node.to_dict() for name, node in self.properties.items()},
        }


FieldNode = Union[NestedField, ScalarField]
NestedField.model_rebuild()


class Mapping(BaseModel):
    properties: Dict[str, FieldNode] = Field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"properties": {name: node.to_dict() for name, node in self.properties.items()}}

    def nested_paths(self) -> Set[str]:
        return nested_paths_from_properties(self.to_dict()["properties"])

    def is_nested_path(self, path: str) -> bool:
        return path in self.nested_paths()


# ---- declarative shorthands ----
def long_(index: bool = True) -> ScalarField:
    return ScalarField(type="long", index=index)


def integer(index: bool = True) -> ScalarField:
    return ScalarField(type="integer", index=index)


def keyword(index: bool = True) -> ScalarField:
    return ScalarField(type="keyword", index=index)


def text(fielddata: bool = False, index: bool = True) -> ScalarField:
    return ScalarField(type="text", index=index, fielddata=fielddata)


def nested(**fields: FieldNode) -> NestedField:
    return NestedField(properties=fields)


# ---- raw (live) mapping helpers ----
def _walk_nested(props: Dict[str, Any], prefix: str) -> Iterator[str]:
    for name, node in (props or {}).items():
        if not isinstance(node, dict) or node.get("type") != "nested":
            continue
        path = f"{prefix}{name}"
        yield path
        yield from _walk_nested(node.get("properties", {}), f"{path}.")


def nested_paths_from_properties(props: Dict[str, Any]) -> Set[str]:
    """
    Dotted paths whose every segment is a nested node, from a raw
    ``properties`` dict (as rendered here or as returned by _mapping).
    """
    return set(_walk_nested(props, ""))
