from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException
from pydantic import BaseModel

from .config import configure_logging, load_settings
from .errors import ClientError, DeserializationError, QueryError
from .es_utils import (
    add_document,
    create_index,
    delete_index,
    get_es,
    index_exists,
    refresh as refresh_barrier,
)
from .query import Bool, ChildScoreMode, Match, NestedQueryMapper

# --------------------
# Config
# --------------------
SETTINGS = load_settings()
configure_logging(SETTINGS.log_level)

app = FastAPI(title="Nested search over Elasticsearch", version="0.1.0")


# --------------------
# Models
# --------------------
class MatchIn(BaseModel):
    field: str
    value: Any


class NestedQueryIn(BaseModel):
    nested_path: str
    must: List[MatchIn]
    score_mode: ChildScoreMode = ChildScoreMode.NONE
    sort_field: Optional[str] = "id"
    offset: int = 0
    limit: int = 10
    track_total_hits: bool = True


class NestedQueryOut(BaseModel):
    hits: List[Dict[str, Any]]
    count: int
    total: Optional[int] = None


def _fail(e: Exception) -> HTTPException:
    if isinstance(e, QueryError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, DeserializationError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, ClientError) and e.status and 400 <= e.status < 500:
        return HTTPException(status_code=e.status, detail=str(e))
    return HTTPException(status_code=502, detail=str(e))


# --------------------
# Routes
# --------------------
@app.get("/healthz")
def healthz():
    try:
        es = get_es(SETTINGS)
        ok = es.ping()
        return {"status": "ok", "elasticsearch": ok}
    except Exception as e:
        return {"status": "degraded", "error": str(e)}


@app.get("/indices/{name}")
def exists(name: str):
    try:
        return {"index": name, "exists": index_exists(get_es(SETTINGS), name)}
    except ClientError as e:
        raise _fail(e)


@app.put("/indices/{name}")
def create(name: str, mappings: Dict[str, Any] = Body(...)):
    try:
        create_index(get_es(SETTINGS), name, mappings)
    except ClientError as e:
        raise _fail(e)
    return {"index": name, "created": True}


@app.delete("/indices/{name}")
def delete(name: str):
    try:
        delete_index(get_es(SETTINGS), name)
    except ClientError as e:
        raise _fail(e)
    return {"index": name, "deleted": True}


@app.post("/indices/{name}/_refresh")
def refresh_index(name: str):
    try:
        refresh_barrier(get_es(SETTINGS), name)
    except ClientError as e:
        raise _fail(e)
    return {"index": name, "refreshed": True}


@app.post("/indices/{name}/documents")
def add(name: str, document: Dict[str, Any] = Body(...), refresh: bool = False):
    try:
        doc_id = add_document(get_es(SETTINGS), name, document, refresh=refresh)
    except ClientError as e:
        raise _fail(e)
    return {"index": name, "id": doc_id}


@app.post("/indices/{name}/nested_query", response_model=NestedQueryOut)
def nested_query(name: str, body: NestedQueryIn):
    mapper = NestedQueryMapper(get_es(SETTINGS))
    query = Bool(must=[Match(field=m.field, value=m.value) for m in body.must])
    try:
        page = mapper.nested_query_page(
            name, body.nested_path, query, body.score_mode, body.sort_field,
            body.offset, body.limit, body.track_total_hits, Dict[str, Any],
        )
    except (QueryError, DeserializationError, ClientError) as e:
        raise _fail(e)
    return {"hits": page.items, "count": len(page.items), "total": page.total}
