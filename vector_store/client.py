"""
Vector Store Client - protocol adapter to the similarity-search backend

Owns the collection lifecycle and exposes add / upsert / query / get /
delete-by-id / delete-by-filter over batched records.

Design:
- One collection, cosine metric bound at creation, resolved once to a handle
  and cached for the process lifetime
- Resolution failure at start-up is logged and deferred; the handle is
  resolved lazily on first use. Concurrent first use may resolve twice,
  which is harmless because get-or-create is idempotent on the backend
- Mutations raise VectorStoreError; queries log and return []
- Records are validated (array lengths, ids, embedding dimension) before any
  backend call. The client never splits batches; callers choose batch sizes
- Two backends share this behaviour: ChromaHttpClient speaks the REST
  contract, ChromaLocalClient drives an in-process chromadb client

Usage:
    from vector_store.client import create_client
    from vector_store.models import StoreConfig

    client = create_client(StoreConfig(backend="ephemeral"))
    client.initialize()
    client.upsert(["X-1"], [vector], ["[id] X-1\\n"], [{"source": "youtrack"}])
    hits = client.query(vector, k=5, where={"source": "youtrack"})
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Sequence, Union

import chromadb

from .exceptions import (
    CollectionUnavailableError,
    DimensionMismatchError,
    RecordValidationError,
    VectorStoreError,
)
from .http_client import get_json, post_json
from .models import (
    CollectionHandle,
    CollectionState,
    RecordMetadata,
    SearchResult,
    StoreConfig,
    VectorRecord,
    flatten_metadata,
    to_metadata_value,
)

logger = logging.getLogger(__name__)

QUERY_INCLUDE = ["documents", "metadatas", "distances"]
GET_INCLUDE = ["documents", "metadatas"]

MetadataInput = Optional[Union[RecordMetadata, Mapping[str, Any]]]


def build_where(filters: Optional[Mapping[str, Any]]) -> Optional[dict[str, Any]]:
    """
    Translate an exact-match filter into a backend `where` clause.

    A single pair stays a flat equality map; several pairs are AND-ed.
    """
    if not filters:
        return None
    flat = {str(key): to_metadata_value(value) for key, value in filters.items()}
    if len(flat) == 1:
        return flat
    return {"$and": [{key: value} for key, value in flat.items()]}


def _first_row(rows: Any) -> list:
    if not rows:
        return []
    return list(rows[0] or [])


def _at(values: Sequence, index: int) -> Any:
    if values is None or index >= len(values):
        return None
    return values[index]


def parse_query_response(raw: Mapping[str, Any]) -> list[SearchResult]:
    """
    Parse the column-oriented query response for the first query vector.

    Hits without a distance cannot be ranked and are dropped.
    """
    ids = _first_row(raw.get("ids"))
    if not ids:
        return []

    documents = _first_row(raw.get("documents"))
    distances = _first_row(raw.get("distances"))
    metadatas = _first_row(raw.get("metadatas"))

    results: list[SearchResult] = []
    for i, record_id in enumerate(ids):
        distance = _at(distances, i)
        if distance is None:
            logger.warning("Dropping query hit without distance: %s", record_id)
            continue
        results.append(SearchResult(
            id=str(record_id),
            document=_at(documents, i) or "",
            distance=float(distance),
            metadata=flatten_metadata(_at(metadatas, i) or {}),
        ))
    return results


def parse_get_response(raw: Mapping[str, Any]) -> list[SearchResult]:
    """Parse a get-by-id response (flat columns, no distances)."""
    ids = list(raw.get("ids") or [])
    documents = raw.get("documents") or []
    metadatas = raw.get("metadatas") or []
    return [
        SearchResult(
            id=str(record_id),
            document=_at(documents, i) or "",
            distance=0.0,
            metadata=flatten_metadata(_at(metadatas, i) or {}),
        )
        for i, record_id in enumerate(ids)
    ]


class VectorStoreClient(ABC):
    """
    Backend-independent client behaviour.

    Subclasses implement collection resolution and one raw call per wire
    operation; everything else (validation, lazy resolution, error policy,
    response parsing) lives here.
    """

    backend_name = "abstract"

    def __init__(
        self,
        collection_name: str,
        distance_metric: str = "cosine",
        embedding_dimension: Optional[int] = None,
    ):
        self.collection_name = collection_name
        self.distance_metric = distance_metric
        self._dimension = embedding_dimension
        self._handle: Optional[CollectionHandle] = None
        self._state = CollectionState.UNINITIALIZED

    # ------------------------------------------------------------------
    # Backend hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _resolve_collection(self, name: str, metric: str) -> CollectionHandle:
        """Get-or-create the collection and return its handle."""

    @abstractmethod
    def _call(self, handle: CollectionHandle, operation: str, payload: dict[str, Any]) -> Any:
        """Send one wire operation ("add", "upsert", "query", "get", "delete")."""

    @abstractmethod
    def _count(self, handle: CollectionHandle) -> int:
        """Return the number of records in the collection."""

    # ------------------------------------------------------------------
    # Collection lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> CollectionState:
        return self._state

    @property
    def handle(self) -> Optional[CollectionHandle]:
        return self._handle

    @property
    def dimension(self) -> Optional[int]:
        """Collection embedding dimension (configured or learned from the first write)."""
        return self._dimension

    def initialize(self) -> bool:
        """
        Resolve the collection at start-up without failing the process.

        Returns:
            True if the collection is ready, False if resolution was deferred.
        """
        try:
            handle = self.ensure_ready()
        except CollectionUnavailableError as e:
            logger.warning("Vector store initialization deferred - will retry on first use: %s", e)
            return False
        logger.info("Collection '%s' ready (id: %s, backend: %s)", handle.name, handle.id, self.backend_name)
        return True

    def ensure_collection(
        self,
        name: Optional[str] = None,
        metric: Optional[str] = None,
    ) -> CollectionHandle:
        """Idempotent get-or-create. Caches the handle of the configured collection."""
        return self._resolve(name or self.collection_name, metric or self.distance_metric)

    def ensure_ready(self, operation: str = "ensure_collection") -> CollectionHandle:
        """Return the cached handle, resolving it lazily if needed."""
        handle = self._handle
        if handle is not None:
            return handle
        return self._resolve(self.collection_name, self.distance_metric, operation)

    def _resolve(
        self,
        name: str,
        metric: str,
        operation: str = "ensure_collection",
    ) -> CollectionHandle:
        is_default = name == self.collection_name
        if is_default and self._handle is None:
            self._state = CollectionState.RESOLVING
        try:
            handle = self._resolve_collection(name, metric)
        except Exception as exc:
            if is_default and self._handle is None:
                self._state = CollectionState.UNINITIALIZED
            raise CollectionUnavailableError(name, operation=operation, original_error=exc) from exc

        if is_default:
            self._handle = handle
            self._state = CollectionState.READY
        return handle

    def _reset_handle(self) -> None:
        # Next call re-resolves; get-or-create makes this safe.
        self._handle = None
        self._state = CollectionState.UNINITIALIZED

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(
        self,
        ids: Sequence[str],
        embeddings: Sequence[Sequence[float]],
        documents: Sequence[str],
        metadatas: Optional[Sequence[MetadataInput]] = None,
    ) -> None:
        """
        Insert fresh records. Fails for the whole batch if any id already exists.
        """
        payload = self._write_payload(ids, embeddings, documents, metadatas)
        handle = self.ensure_ready("add")

        existing = self._existing_ids(handle, payload["ids"])
        if existing:
            raise VectorStoreError(
                "add",
                message="Record ids already exist",
                ids=existing,
            )

        self._mutate(handle, "add", payload, payload["ids"])

    def upsert(
        self,
        ids: Sequence[str],
        embeddings: Sequence[Sequence[float]],
        documents: Sequence[str],
        metadatas: Optional[Sequence[MetadataInput]] = None,
    ) -> None:
        """Insert or fully replace records by id."""
        payload = self._write_payload(ids, embeddings, documents, metadatas)
        handle = self.ensure_ready("upsert")
        self._mutate(handle, "upsert", payload, payload["ids"])

    def add_records(self, records: Sequence[VectorRecord]) -> None:
        self.add(*self._columns(records))

    def upsert_records(self, records: Sequence[VectorRecord]) -> None:
        self.upsert(*self._columns(records))

    def delete_by_ids(self, ids: Sequence[str]) -> None:
        ids = [str(record_id) for record_id in ids]
        if not ids:
            return
        handle = self.ensure_ready("delete")
        self._mutate(handle, "delete", {"ids": ids}, ids)

    def delete_by_filter(self, where: Mapping[str, Any]) -> None:
        """Delete every record whose metadata matches all key/value pairs."""
        where_clause = build_where(where)
        if not where_clause:
            raise RecordValidationError("Refusing to delete with an empty filter")
        handle = self.ensure_ready("delete")
        self._mutate(handle, "delete", {"where": where_clause}, [])
        logger.info("Deleted records matching %s", dict(where))

    def _mutate(
        self,
        handle: CollectionHandle,
        operation: str,
        payload: dict[str, Any],
        ids: Sequence[str],
    ) -> None:
        try:
            self._call(handle, operation, payload)
        except Exception as exc:
            logger.error("Vector store %s failed (%d ids): %s", operation, len(ids), exc)
            self._reset_handle()
            raise VectorStoreError(operation, ids=ids, original_error=exc) from exc

        embeddings = payload.get("embeddings")
        if embeddings and self._dimension is None:
            self._dimension = len(embeddings[0])

    def _existing_ids(self, handle: CollectionHandle, ids: list[str]) -> list[str]:
        try:
            raw = self._call(handle, "get", {"ids": ids, "include": []})
        except Exception as exc:
            self._reset_handle()
            raise VectorStoreError("add", message="Existence check failed", ids=ids, original_error=exc) from exc
        return [str(record_id) for record_id in (raw or {}).get("ids") or []]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query(
        self,
        embedding: Sequence[float],
        k: int,
        where: Optional[Mapping[str, Any]] = None,
    ) -> list[SearchResult]:
        """
        Similarity search.

        Returns at most k results in ascending distance order. Any failure,
        including an unavailable collection, yields an empty list.
        """
        if k <= 0:
            return []

        try:
            vector = [float(v) for v in embedding]
            self._check_dimensions([vector])
            handle = self.ensure_ready("query")

            payload: dict[str, Any] = {
                "query_embeddings": [vector],
                "n_results": k,
                "include": list(QUERY_INCLUDE),
            }
            where_clause = build_where(where)
            if where_clause:
                payload["where"] = where_clause

            raw = self._call(handle, "query", payload)
            results = parse_query_response(raw or {})[:k]
        except Exception as exc:
            logger.error("Query failed: n_results=%d, filter=%s: %s", k, where, exc)
            if not isinstance(exc, RecordValidationError):
                self._reset_handle()
            return []

        logger.info(
            "Query: n_results=%d, filter=%s -> %d results, distances=%s",
            k, where, len(results), [f"{r.distance:.4f}" for r in results],
        )
        return results

    def get(self, ids: Sequence[str]) -> list[SearchResult]:
        """Look up records by id; missing ids are omitted. Failures yield []."""
        ids = [str(record_id) for record_id in ids]
        if not ids:
            return []
        try:
            handle = self.ensure_ready("get")
            raw = self._call(handle, "get", {"ids": ids, "include": list(GET_INCLUDE)})
        except Exception as exc:
            logger.error("Get by ids failed (%d ids): %s", len(ids), exc)
            return []
        return parse_get_response(raw or {})

    def count(self) -> int:
        handle = self.ensure_ready("count")
        try:
            return int(self._count(handle))
        except Exception as exc:
            self._reset_handle()
            raise VectorStoreError("count", original_error=exc) from exc

    def health_check(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "backend": self.backend_name,
            "collection": self.collection_name,
            "vector_store_ok": False,
            "records_stored": None,
            "error": "",
        }
        try:
            result["records_stored"] = self.count()
            result["vector_store_ok"] = True
        except VectorStoreError as e:
            result["error"] = str(e)
        result["state"] = self._state.value
        return result

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _write_payload(
        self,
        ids: Sequence[str],
        embeddings: Sequence[Sequence[float]],
        documents: Sequence[str],
        metadatas: Optional[Sequence[MetadataInput]],
    ) -> dict[str, Any]:
        ids = [str(record_id) for record_id in ids]
        if not ids:
            raise RecordValidationError("No records to write")

        lengths = {len(ids), len(embeddings), len(documents)}
        if metadatas is not None:
            lengths.add(len(metadatas))
        if len(lengths) != 1:
            raise RecordValidationError(
                "ids, embeddings, documents and metadatas must have the same length"
            )

        blank = [i for i, record_id in enumerate(ids) if not record_id.strip()]
        if blank:
            raise RecordValidationError("Record ids must not be blank", details=f"positions: {blank}")

        seen: set[str] = set()
        duplicates: set[str] = set()
        for record_id in ids:
            if record_id in seen:
                duplicates.add(record_id)
            seen.add(record_id)
        if duplicates:
            raise RecordValidationError("Duplicate ids in one call", details=", ".join(sorted(duplicates)))

        vectors = [[float(v) for v in embedding] for embedding in embeddings]
        self._check_dimensions(vectors, ids)

        payload: dict[str, Any] = {
            "ids": ids,
            "embeddings": vectors,
            "documents": [document or "" for document in documents],
        }
        if metadatas is not None:
            payload["metadatas"] = [flatten_metadata(metadata) for metadata in metadatas]
        return payload

    def _check_dimensions(
        self,
        vectors: Sequence[Sequence[float]],
        ids: Optional[Sequence[str]] = None,
    ) -> None:
        expected = self._dimension or (len(vectors[0]) if vectors else 0)
        for i, vector in enumerate(vectors):
            if not vector or len(vector) != expected:
                raise DimensionMismatchError(
                    expected=expected,
                    actual=len(vector),
                    record_id=ids[i] if ids else None,
                )

    @staticmethod
    def _columns(records: Sequence[VectorRecord]) -> tuple[list, list, list, list]:
        return (
            [r.id for r in records],
            [r.embedding for r in records],
            [r.document for r in records],
            [r.metadata for r in records],
        )


class ChromaHttpClient(VectorStoreClient):
    """
    Client for a ChromaDB server speaking the v1 REST contract.

    Every call is a JSON POST (or GET for count/heartbeat) with a bounded
    timeout.
    """

    backend_name = "http"

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        collection_name: str = "knowledge",
        distance_metric: str = "cosine",
        embedding_dimension: Optional[int] = None,
        timeout: float = 30.0,
        api_prefix: str = "/api/v1",
    ):
        super().__init__(collection_name, distance_metric, embedding_dimension)
        self.base_url = base_url.rstrip("/")
        self.api_prefix = api_prefix
        self.timeout = timeout

    def _url(self, path: str) -> str:
        return f"{self.base_url}{self.api_prefix}{path}"

    def _resolve_collection(self, name: str, metric: str) -> CollectionHandle:
        body = {
            "name": name,
            "get_or_create": True,
            "metadata": {"distance_metric": metric, "hnsw:space": metric},
        }
        response = post_json(self._url("/collections"), body, timeout=self.timeout)
        collection_id = str((response or {}).get("id") or "")
        if not collection_id:
            raise RuntimeError(f"Collection response without id: {response}")
        return CollectionHandle(name=name, id=collection_id, metric=metric)

    def _call(self, handle: CollectionHandle, operation: str, payload: dict[str, Any]) -> Any:
        url = self._url(f"/collections/{handle.id}/{operation}")
        return post_json(url, payload, timeout=self.timeout)

    def _count(self, handle: CollectionHandle) -> int:
        return int(get_json(self._url(f"/collections/{handle.id}/count"), timeout=self.timeout))

    def heartbeat(self) -> bool:
        try:
            get_json(self._url("/heartbeat"), timeout=self.timeout)
        except Exception as exc:
            logger.warning("ChromaDB heartbeat failed: %s", exc)
            return False
        return True


class ChromaLocalClient(VectorStoreClient):
    """
    Client for an in-process chromadb database (on-disk or in-memory).

    Payloads are the same dicts the REST client sends; they map one-to-one
    onto chromadb Collection method arguments.
    """

    backend_name = "local"

    def __init__(
        self,
        collection_name: str = "knowledge",
        distance_metric: str = "cosine",
        embedding_dimension: Optional[int] = None,
        persist_directory: Optional[str] = None,
        chroma_client: Optional[chromadb.ClientAPI] = None,
    ):
        """
        Args:
            persist_directory: On-disk location; an in-memory client is used if None.
            chroma_client: Optional pre-created chromadb client (for testing).
        """
        super().__init__(collection_name, distance_metric, embedding_dimension)
        self.persist_directory = persist_directory
        self._client = chroma_client

    def _get_client(self) -> chromadb.ClientAPI:
        if self._client is None:
            if self.persist_directory:
                self._client = chromadb.PersistentClient(path=self.persist_directory)
            else:
                self._client = chromadb.EphemeralClient()
        return self._client

    def _resolve_collection(self, name: str, metric: str) -> CollectionHandle:
        collection = self._get_client().get_or_create_collection(
            name=name,
            metadata={"hnsw:space": metric},
        )
        return CollectionHandle(name=name, id=str(collection.id), metric=metric, native=collection)

    def _call(self, handle: CollectionHandle, operation: str, payload: dict[str, Any]) -> Any:
        collection = handle.native
        if operation == "query":
            available = collection.count()
            if available == 0:
                return {"ids": [[]], "documents": [[]], "metadatas": [[]], "distances": [[]]}
            payload = {**payload, "n_results": min(payload["n_results"], available)}
        return getattr(collection, operation)(**payload)

    def _count(self, handle: CollectionHandle) -> int:
        return handle.native.count()


def create_client(config: StoreConfig) -> VectorStoreClient:
    """Build the client for the configured backend."""
    if config.backend == "http":
        return ChromaHttpClient(
            base_url=config.base_url,
            collection_name=config.collection_name,
            distance_metric=config.distance_metric,
            embedding_dimension=config.embedding_dimension,
            timeout=config.request_timeout_seconds,
        )
    return ChromaLocalClient(
        collection_name=config.collection_name,
        distance_metric=config.distance_metric,
        embedding_dimension=config.embedding_dimension,
        persist_directory=config.persist_directory if config.backend == "persistent" else None,
    )
