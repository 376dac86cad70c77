"""OpenSearch implementation of the search backend capability set."""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Mapping, Sequence

from opensearchpy import OpenSearch, helpers
from opensearchpy.exceptions import ConnectionError as OpenSearchConnectionError
from opensearchpy.exceptions import NotFoundError, TransportError
from opensearchpy.helpers import BulkIndexError

from ragstore.config import Settings
from ragstore.exceptions import BulkWriteError, StoreConnectionError
from ragstore.metrics.observability import DiagnosticsSink, StructlogDiagnostics

KNN_MODELS_INDEX = ".opensearch-knn-models"
KNN_MODELS_PATH = "/_plugins/_knn/models"
EXISTING_IDS_CHUNK = 1_000


def create_client(settings: Settings) -> OpenSearch:
    """Build an OpenSearch client from settings."""

    http_auth = None
    if settings.username and settings.password:
        http_auth = (settings.username, settings.password)
    return OpenSearch(
        hosts=settings.hosts_list,
        http_auth=http_auth,
        verify_certs=settings.verify_certs,
        ssl_show_warn=False,
        timeout=settings.timeout,
    )


class OpenSearchBackend:
    """Search backend over ``opensearch-py``."""

    def __init__(
        self,
        client: OpenSearch,
        *,
        hosts: Sequence[str] = (),
        diagnostics: DiagnosticsSink | None = None,
    ) -> None:
        self._client = client
        self._hosts = list(hosts)
        self._diagnostics = diagnostics or StructlogDiagnostics("ragstore.backend")

    @classmethod
    def from_settings(
        cls, settings: Settings, *, diagnostics: DiagnosticsSink | None = None
    ) -> "OpenSearchBackend":
        return cls(create_client(settings), hosts=settings.hosts_list, diagnostics=diagnostics)

    @property
    def client(self) -> OpenSearch:
        return self._client

    def probe(self, index: str) -> None:
        try:
            self._client.indices.get(index=index)
        except NotFoundError:
            self._diagnostics.emit("debug", "index.not_created", index=index)
        except OpenSearchConnectionError as exc:
            hosts = ", ".join(self._hosts) or "<unknown>"
            raise StoreConnectionError(
                f"Initial connection to OpenSearch failed with error '{exc}'. "
                f"Make sure an OpenSearch instance is running at `{hosts}` and that it has "
                "finished booting (can take > 30s)."
            ) from exc

    def index_exists(self, index: str, *, headers: Mapping[str, str] | None = None) -> bool:
        if self.is_alias(index):
            self._diagnostics.emit("debug", "index.alias_detected", index=index)
        return bool(self._client.indices.exists(index=index, headers=headers))

    def is_alias(self, name: str) -> bool:
        return bool(self._client.indices.exists_alias(name=name))

    def get_index(
        self, index: str, *, headers: Mapping[str, str] | None = None
    ) -> Mapping[str, Mapping[str, Any]] | None:
        try:
            return self._client.indices.get(index=index, headers=headers)
        except NotFoundError:
            return None

    def create_index(
        self, index: str, body: Mapping[str, Any], *, headers: Mapping[str, str] | None = None
    ) -> None:
        self._client.indices.create(index=index, body=body, headers=headers)

    def delete_index(self, index: str) -> None:
        self._client.indices.delete(index=index, ignore=[400, 404])

    def put_mapping(
        self, index: str, body: Mapping[str, Any], *, headers: Mapping[str, str] | None = None
    ) -> None:
        self._client.indices.put_mapping(index=index, body=body, headers=headers)

    def bulk(
        self,
        actions: Sequence[Mapping[str, Any]],
        *,
        refresh: str = "wait_for",
        headers: Mapping[str, str] | None = None,
    ) -> int:
        try:
            success, _ = helpers.bulk(self._client, actions, refresh=refresh, headers=headers)
        except BulkIndexError as exc:
            raise BulkWriteError(f"Bulk request rejected {len(exc.errors)} action(s)", exc.errors) from exc
        except (OpenSearchConnectionError, TransportError) as exc:
            raise BulkWriteError(f"Bulk request failed: {exc}") from exc
        return int(success)

    def scan(
        self,
        index: str,
        body: Mapping[str, Any],
        *,
        size: int,
        scroll: str,
        headers: Mapping[str, str] | None = None,
    ) -> Iterator[dict[str, Any]]:
        return helpers.scan(
            self._client,
            query=dict(body),
            index=index,
            size=size,
            scroll=scroll,
            headers=headers,
            scroll_kwargs={"headers": headers},
        )

    def existing_ids(
        self, index: str, ids: Iterable[str], *, headers: Mapping[str, str] | None = None
    ) -> set[str]:
        candidates = list(dict.fromkeys(ids))
        found: set[str] = set()
        for start in range(0, len(candidates), EXISTING_IDS_CHUNK):
            chunk = candidates[start : start + EXISTING_IDS_CHUNK]
            response = self._client.mget(index=index, body={"ids": chunk}, _source=False, headers=headers)
            for doc in response.get("docs", []):
                if doc.get("found"):
                    found.add(str(doc["_id"]))
        return found

    def count(self, index: str, *, headers: Mapping[str, str] | None = None) -> int:
        response = self._client.count(index=index, headers=headers)
        return int(response["count"])

    def list_models(self) -> list[str]:
        if not self._client.indices.exists(index=KNN_MODELS_INDEX):
            return []
        response = self._client.transport.perform_request(
            "GET",
            f"{KNN_MODELS_PATH}/_search",
            body={"query": {"match_all": {}}, "_source": ["model_id"]},
        )
        model_ids = [hit["_source"]["model_id"] for hit in response.get("hits", {}).get("hits", [])]
        return list(dict.fromkeys(model_ids))

    def delete_model(self, model_id: str) -> None:
        self._client.transport.perform_request("DELETE", f"{KNN_MODELS_PATH}/{model_id}")


__all__ = ["EXISTING_IDS_CHUNK", "KNN_MODELS_INDEX", "OpenSearchBackend", "create_client"]
