"""
Nested query mapper.

Wraps a ``bool.must`` list of ``match`` clauses in a ``nested`` envelope
bound to a path, runs it with sort/paging/total-hits options and turns each
hit's ``_source`` into the caller's result type::

    mapper = NestedQueryMapper(es)
    groups = mapper.nested_query(
        "groups", "user",
        must(match("user.first", "junshen"), match("user.last", "wu")),
        ChildScoreMode.NONE, "id", 0, 10, True, UserGroup,
    )
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar, Union

from elasticsearch import BadRequestError, Elasticsearch
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .errors import DeserializationError, QueryError
from .es_utils import client_errors, get_mappings
from .mapping import nested_paths_from_properties

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChildScoreMode(str, Enum):
    """How matching child documents contribute to the parent's score."""

    NONE = "none"
    AVG = "avg"
    MAX = "max"
    SUM = "sum"
    MIN = "min"


class Match(BaseModel):
    field: str
    value: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"match": {self.field: {"query": self.value}}}


class Bool(BaseModel):
    must: List[Match] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"bool": {"must": [m.to_dict() for m in self.must]}}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Bool":
        """Accept ``{"bool": {"must": [{"match": {field: value}}]}}``; nothing else."""
        unsupported = QueryError(f"Only bool.must of match clauses is supported, got {raw!r}")
        try:
            if set(raw) != {"bool"} or set(raw["bool"]) != {"must"}:
                raise unsupported
            clauses = raw["bool"]["must"]
            if isinstance(clauses, dict):
                clauses = [clauses]
            out = []
            for clause in clauses:
                if set(clause) != {"match"}:
                    raise unsupported
                ((field, value),) = clause["match"].items()
                if isinstance(value, dict):
                    # match options (operator, fuzziness, ...) would be dropped
                    if set(value) != {"query"}:
                        raise unsupported
                    value = value["query"]
                out.append(Match(field=field, value=value))
        except (KeyError, TypeError, ValueError) as e:
            raise unsupported from e
        return cls(must=out)


def match(field: str, value: Any) -> Match:
    return Match(field=field, value=value)


def must(*clauses: Match) -> Bool:
    return Bool(must=list(clauses))


class NestedQuery(BaseModel):
    index: str
    nested_path: str
    query: Bool
    child_score_mode: ChildScoreMode = ChildScoreMode.NONE
    sort_field: Optional[str] = "id"
    sort_order: Literal["asc", "desc"] = "asc"
    offset: int = 0
    limit: int = 10
    track_total_hits: bool = True

    def check(self) -> None:
        if self.offset < 0:
            raise QueryError(f"offset must be >= 0, got {self.offset}")
        if self.limit <= 0:
            raise QueryError(f"limit must be > 0, got {self.limit}")
        if not self.nested_path:
            raise QueryError("nested_path is empty")
        if not self.query.must:
            raise QueryError("query has no match clauses")
        prefix = self.nested_path + "."
        for m in self.query.must:
            if not m.field.startswith(prefix):
                raise QueryError(f"field {m.field!r} is not under nested path {self.nested_path!r}")

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "query": {
                "nested": {
                    "path": self.nested_path,
                    "score_mode": self.child_score_mode.value,
                    "query": self.query.to_dict(),
                }
            },
            "from": self.offset,
            "size": self.limit,
            "track_total_hits": self.track_total_hits,
        }
        if self.sort_field:
            body["sort"] = [{self.sort_field: {"order": self.sort_order}}]
        return body


class NestedQueryResult(BaseModel):
    items: List[Any] = Field(default_factory=list)
    total: Optional[int] = None


def _total(hits: Dict[str, Any]) -> Optional[int]:
    total = hits.get("total")
    if isinstance(total, dict):
        return total.get("value")
    return total


class NestedQueryMapper:
    def __init__(self, es: Elasticsearch, verify_mapping: bool = True):
        self.es = es
        self.verify_mapping = verify_mapping

    def nested_query(
        self,
        index: str,
        nested_path: str,
        query: Union[Bool, Dict[str, Any]],
        child_score_mode: Union[ChildScoreMode, str],
        sort_field: Optional[str],
        offset: int,
        limit: int,
        track_total_hits: bool,
        result_type: Type[T],
    ) -> List[T]:
        return self.nested_query_page(
            index, nested_path, query, child_score_mode, sort_field,
            offset, limit, track_total_hits, result_type,
        ).items

    def nested_query_page(
        self,
        index: str,
        nested_path: str,
        query: Union[Bool, Dict[str, Any]],
        child_score_mode: Union[ChildScoreMode, str],
        sort_field: Optional[str],
        offset: int,
        limit: int,
        track_total_hits: bool,
        result_type: Type[T],
    ) -> NestedQueryResult:
        if isinstance(query, dict):
            query = Bool.from_dict(query)
        try:
            q = NestedQuery(
                index=index,
                nested_path=nested_path,
                query=query,
                child_score_mode=ChildScoreMode(child_score_mode),
                sort_field=sort_field,
                offset=offset,
                limit=limit,
                track_total_hits=track_total_hits,
            )
        except ValueError as e:
            # pydantic's ValidationError is a ValueError too
            raise QueryError(str(e)) from e
        return self.execute(q, result_type)

    def execute(self, q: NestedQuery, result_type: Type[T]) -> NestedQueryResult:
        q.check()
        if self.verify_mapping:
            self._check_path(q.index, q.nested_path)

        body = q.to_body()
        logger.debug("nested query on %s: %s", q.index, body)
        with client_errors(f"search({q.index})"):
            try:
                resp = self.es.search(index=q.index, body=body)
            except BadRequestError as e:
                raise QueryError(f"nested query on {q.index} rejected: {e}") from e

        hits = resp["hits"]
        adapter = TypeAdapter(result_type)
        items: List[T] = []
        for h in hits["hits"][: q.limit]:
            try:
                items.append(adapter.validate_python(h["_source"]))
            except (KeyError, ValidationError) as e:
                raise DeserializationError(
                    f"hit {h.get('_id')} in {q.index} is not a {getattr(result_type, '__name__', result_type)}: {e}",
                    hit_id=h.get("_id"),
                ) from e

        total = _total(hits)
        logger.info("nested query on %s path=%s -> %d item(s), total=%s", q.index, q.nested_path, len(items), total)
        return NestedQueryResult(items=items, total=total)

    def _check_path(self, index: str, nested_path: str) -> None:
        # an alias or pattern searches every concrete index behind it
        for concrete, props in get_mappings(self.es, index).items():
            paths = nested_paths_from_properties(props)
            if nested_path not in paths:
                raise QueryError(
                    f"{nested_path!r} is not a nested path of {concrete} (known: {sorted(paths) or 'none'})"
                )
