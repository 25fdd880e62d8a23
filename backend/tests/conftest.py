# backend/tests/conftest.py
from __future__ import annotations

import itertools

import pytest
from elastic_transport import ApiResponseMeta, HttpHeaders, NodeConfig
from elasticsearch import BadRequestError, NotFoundError

from backend.nestedsearch.mapping import nested_paths_from_properties

_KNOWN_TYPES = {"long", "integer", "keyword", "text", "nested", "object", "date", "float", "boolean"}


def api_error(cls, status: int, message: str):
    """Build an elasticsearch ApiError the way the transport would."""
    meta = ApiResponseMeta(
        status=status,
        http_version="1.1",
        headers=HttpHeaders(),
        duration=0.0,
        node=NodeConfig("http", "localhost", 9200),
    )
    cause = {"type": "exception", "reason": message}
    return cls(message, meta=meta, body={"error": {"root_cause": [cause], **cause}, "status": status})


def _check_properties(props: dict, prefix: str = ""):
    for name, node in (props or {}).items():
        if not isinstance(node, dict):
            raise api_error(BadRequestError, 400, "mapper_parsing_exception")
        typ = node.get("type", "object")
        if typ not in _KNOWN_TYPES:
            raise api_error(BadRequestError, 400, f"mapper_parsing_exception: no handler for type [{typ}] on [{prefix}{name}]")
        _check_properties(node.get("properties", {}), f"{prefix}{name}.")


def _children(source, segments):
    """All objects reachable from `source` along `segments`, flattening lists."""
    nodes = [source]
    for seg in segments:
        nxt = []
        for n in nodes:
            v = n.get(seg) if isinstance(n, dict) else None
            if isinstance(v, list):
                nxt.extend(v)
            elif v is not None:
                nxt.append(v)
        nodes = nxt
    return nodes


# ---------- Fake Elasticsearch ----------
class _FakeIndices:
    def __init__(self, es: "FakeES"):
        self._es = es

    def exists(self, index: str) -> bool:
        return index in self._es._mappings

    def create(self, index: str, mappings: dict | None = None, settings: dict | None = None, **_):
        if index in self._es._mappings:
            raise api_error(BadRequestError, 400, f"resource_already_exists_exception [{index}]")
        mappings = mappings or {"properties": {}}
        _check_properties(mappings.get("properties", {}))
        self._es._mappings[index] = mappings
        self._es._visible[index] = {}
        self._es._pending[index] = {}
        return {"acknowledged": True, "index": index}

    def delete(self, index: str):
        self._es._require(index)
        for store in (self._es._mappings, self._es._visible, self._es._pending):
            store.pop(index, None)
        return {"acknowledged": True}

    def refresh(self, index: str):
        self._es._require(index)
        self._es._visible[index].update(self._es._pending[index])
        self._es._pending[index] = {}
        return {"_shards": {"failed": 0}}

    def get_mapping(self, index: str):
        self._es._require(index)
        return {index: {"mappings": self._es._mappings[index]}}


class FakeES:
    """
    In-memory stand-in for the parts of Elasticsearch this package touches:
      - indices.exists/create/delete/refresh/get_mapping
      - index/get/delete
      - search() for nested bool.must match queries with sort and paging
    Written documents only become searchable after a refresh.
    """
    def __init__(self):
        self._indices = _FakeIndices(self)
        self._mappings: dict[str, dict] = {}
        self._visible: dict[str, dict] = {}
        self._pending: dict[str, dict] = {}
        self._ids = itertools.count(1)
        self.last_search: dict | None = None

    @property
    def indices(self):
        return self._indices

    def _require(self, index: str):
        if index not in self._mappings:
            raise api_error(NotFoundError, 404, f"index_not_found_exception [{index}]")

    def ping(self) -> bool:
        return True

    def index(self, index: str, document: dict, id: str | None = None, refresh=False, **_):
        if index not in self._mappings:
            self._indices.create(index=index)
        doc_id = id or str(next(self._ids))
        self._pending[index][doc_id] = document
        if refresh:
            self._indices.refresh(index=index)
        return {"_id": doc_id, "result": "created"}

    def get(self, index: str, id: str):
        self._require(index)
        # realtime get sees unrefreshed writes
        for store in (self._pending[index], self._visible[index]):
            if id in store:
                return {"_id": id, "found": True, "_source": store[id]}
        raise api_error(NotFoundError, 404, f"document [{id}] missing")

    def delete(self, index: str, id: str, refresh=False, **_):
        self._require(index)
        found = self._pending[index].pop(id, None) or self._visible[index].pop(id, None)
        if found is None:
            raise api_error(NotFoundError, 404, f"document [{id}] missing")
        return {"_id": id, "result": "deleted"}

    def search(self, index: str, body: dict):
        self._require(index)
        self.last_search = body
        nested = body["query"]["nested"]
        path = nested["path"]
        if path not in nested_paths_from_properties(self._mappings[index].get("properties", {})):
            raise api_error(BadRequestError, 400, f"failed to find nested object under path [{path}]")

        clauses = []
        for clause in nested["query"]["bool"]["must"]:
            ((field, m),) = clause["match"].items()
            clauses.append((field[len(path) + 1:], m["query"]))

        def matches(source: dict) -> bool:
            for child in _children(source, path.split(".")):
                if all(child.get(f) == v or str(child.get(f)) == str(v) for f, v in clauses):
                    return True
            return False

        found = [(doc_id, src) for doc_id, src in self._visible[index].items() if matches(src)]
        for order in reversed(body.get("sort", [])):
            ((field, opts),) = order.items()
            found.sort(key=lambda d: d[1].get(field), reverse=opts.get("order") == "desc")

        start = body.get("from", 0)
        page = found[start:start + body.get("size", 10)]
        hits = {"hits": [{"_id": doc_id, "_score": None, "_source": src} for doc_id, src in page]}
        if body.get("track_total_hits", True):
            hits["total"] = {"value": len(found), "relation": "eq"}
        return {"hits": hits}


@pytest.fixture
def fake_es() -> FakeES:
    return FakeES()
