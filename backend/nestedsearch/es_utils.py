from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, Optional, Type, TypeVar, Union

from elasticsearch import ApiError, Elasticsearch, TransportError
from elasticsearch.helpers import BulkIndexError, bulk
from pydantic import BaseModel, ValidationError
from pydantic_core import PydanticSerializationError

from .config import Settings, load_settings
from .errors import ClientError, DeserializationError
from .mapping import Mapping

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)
Document = Union[BaseModel, Dict[str, Any]]


def get_es(settings: Optional[Settings] = None) -> Elasticsearch:
    settings = settings or load_settings()
    kwargs: Dict[str, Any] = {
        "verify_certs": settings.verify_certs,
        "request_timeout": settings.request_timeout,
        "max_retries": settings.max_retries,
        "retry_on_timeout": settings.retry_on_timeout,
    }
    if settings.elastic_username:
        kwargs["basic_auth"] = (settings.elastic_username, settings.elastic_password or "")
    return Elasticsearch(hosts=[settings.elastic_url], **kwargs)


@contextmanager
def client_errors(action: str) -> Iterator[None]:
    """Re-raise anything coming out of the client as ClientError."""
    try:
        yield
    except ApiError as e:
        raise ClientError(f"{action} failed: {e}", status=e.meta.status) from e
    except TransportError as e:
        raise ClientError(f"{action} failed: {e}") from e


def to_source(document: Document) -> Dict[str, Any]:
    if isinstance(document, BaseModel):
        try:
            return document.model_dump(mode="json", exclude_none=True)
        except PydanticSerializationError as e:
            raise ClientError(f"Cannot serialize {type(document).__name__} as a document: {e}") from e
    if isinstance(document, dict):
        return document
    raise ClientError(f"Cannot serialize {type(document).__name__} as a document")


# ---------- indices ----------
def index_exists(es: Elasticsearch, name: str) -> bool:
    with client_errors(f"exists({name})"):
        return bool(es.indices.exists(index=name))


def create_index(
    es: Elasticsearch,
    name: str,
    mapping: Union[Mapping, Dict[str, Any]],
    settings: Optional[Dict[str, Any]] = None,
) -> None:
    body = mapping.to_dict() if isinstance(mapping, Mapping) else mapping
    with client_errors(f"create({name})"):
        if settings:
            es.indices.create(index=name, mappings=body, settings=settings)
        else:
            es.indices.create(index=name, mappings=body)
    logger.info("created index %s", name)


def recreate_index(
    es: Elasticsearch,
    name: str,
    mapping: Union[Mapping, Dict[str, Any]],
    settings: Optional[Dict[str, Any]] = None,
) -> None:
    if index_exists(es, name):
        delete_index(es, name)
    create_index(es, name, mapping, settings=settings)


def delete_index(es: Elasticsearch, name: str) -> None:
    with client_errors(f"delete({name})"):
        es.indices.delete(index=name)
    logger.info("deleted index %s", name)


def refresh(es: Elasticsearch, name: str) -> None:
    with client_errors(f"refresh({name})"):
        es.indices.refresh(index=name)


def get_mappings(es: Elasticsearch, name: str) -> Dict[str, Dict[str, Any]]:
    """Live ``properties`` tree of every concrete index behind a name, alias or pattern."""
    with client_errors(f"get_mapping({name})"):
        resp = es.indices.get_mapping(index=name)
    return {concrete: resp[concrete].get("mappings", {}).get("properties", {}) for concrete in resp}


def get_mapping(es: Elasticsearch, name: str) -> Dict[str, Any]:
    """Live ``properties`` tree of a single index."""
    mappings = get_mappings(es, name)
    if len(mappings) > 1:
        raise ClientError(f"{name} resolves to {len(mappings)} indices: {sorted(mappings)}")
    return next(iter(mappings.values()), {})


# ---------- documents ----------
def add_document(
    es: Elasticsearch,
    index: str,
    document: Document,
    doc_id: Optional[str] = None,
    refresh: bool = False,
) -> str:
    source = to_source(document)
    with client_errors(f"index({index})"):
        resp = es.index(index=index, id=doc_id, document=source, refresh=refresh)
    logger.debug("indexed %s into %s", resp["_id"], index)
    return resp["_id"]


def add_documents(es: Elasticsearch, index: str, documents: Iterable[Document], refresh: bool = True) -> int:
    actions = [{"_index": index, "_source": to_source(d)} for d in documents]
    if not actions:
        return 0
    try:
        with client_errors(f"bulk({index})"):
            bulk(es, actions)
            if refresh:
                es.indices.refresh(index=index)
    except BulkIndexError as e:
        raise ClientError(f"bulk({index}) failed: {len(e.errors)} document(s) rejected") from e
    logger.info("indexed %d documents into %s", len(actions), index)
    return len(actions)


def get_document(
    es: Elasticsearch,
    index: str,
    doc_id: str,
    model: Optional[Type[T]] = None,
) -> Union[T, Dict[str, Any]]:
    with client_errors(f"get({index}/{doc_id})"):
        resp = es.get(index=index, id=doc_id)
    source = resp["_source"]
    if model is None:
        return source
    try:
        return model.model_validate(source)
    except ValidationError as e:
        raise DeserializationError(f"{index}/{doc_id} is not a {model.__name__}: {e}", hit_id=doc_id) from e


def delete_document(es: Elasticsearch, index: str, doc_id: str, refresh: bool = False) -> None:
    with client_errors(f"delete({index}/{doc_id})"):
        es.delete(index=index, id=doc_id, refresh=refresh)
