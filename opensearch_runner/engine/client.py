"""REST client of the search engine.

Requests are prepared by `EngineClient.prepare_*` methods, optionally customized by the caller
and then sent by `EngineClient.execute`. HTTP error statuses are not raised, the response is
returned and it's up to the caller to check the relevant success predicate
(e.g. `EngineResponse.acknowledged`).
"""

import dataclasses
import json
import logging
import typing as tp

import requests

from opensearch_runner.utils import http_client

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120

JSON_CONTENT = "application/json"
YAML_CONTENT = "application/yaml"
SMILE_CONTENT = "application/smile"

SMILE_HEADER = (":", ")", "\n")


def content_type(source: str) -> str | None:
    """Detect content type of the source by looking at its beginning.

    >>> content_type('{"a": 1}')
    'application/json'
    >>> content_type("---\\na: 1")
    'application/yaml'
    >>> content_type("a=1") is None
    True
    """
    head = source[:20]
    if not head:
        return None

    if head[0] == "{":
        return JSON_CONTENT
    if len(head) > 2 and tuple(head[:3]) == SMILE_HEADER:
        return SMILE_CONTENT
    if head.startswith("---"):
        return YAML_CONTENT

    # Allow leading whitespace before JSON
    stripped = head.lstrip()
    if stripped.startswith("{"):
        return JSON_CONTENT
    return None


def _param_value(value: tp.Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list | tuple):
        return ",".join(str(v) for v in value)
    return str(value)


@dataclasses.dataclass
class EngineRequest:
    """Request to the engine REST API that can be customized before it is executed."""

    method: str
    path: str
    params: dict[str, tp.Any] = dataclasses.field(default_factory=dict)
    body: tp.Any = None
    headers: dict[str, str] = dataclasses.field(default_factory=dict)

    def set_param(self, key: str, value: tp.Any) -> "EngineRequest":
        if value is None:
            self.params.pop(key, None)
        else:
            self.params[key] = value
        return self

    def set_params(self, **params: tp.Any) -> "EngineRequest":
        for key, value in params.items():
            self.set_param(key, value)
        return self

    def set_body(self, body: tp.Any) -> "EngineRequest":
        self.body = body
        return self

    def update_body(self, **fields: tp.Any) -> "EngineRequest":
        """Add fields to a dictionary body."""
        body = self.body if isinstance(self.body, dict) else {}
        body.update(fields)
        self.body = body
        return self

    def set_source(self, source: str | dict) -> "EngineRequest":
        """Set body from a dictionary or from a string with detected content type."""
        if isinstance(source, dict):
            self.body = source
            return self

        ctype = content_type(source)
        if ctype:
            self.headers["Content-Type"] = ctype
        self.body = source
        return self


RequestBuilder = tp.Callable[[EngineRequest], EngineRequest]


@dataclasses.dataclass(frozen=True)
class EngineResponse:
    status_code: int
    body: dict[str, tp.Any]
    request: EngineRequest | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def acknowledged(self) -> bool:
        return bool(self.body.get("acknowledged"))

    @property
    def result(self) -> str | None:
        return self.body.get("result")

    @property
    def found(self) -> bool:
        return bool(self.body.get("found"))

    @property
    def exists(self) -> bool:
        return self.status_code == 200

    @property
    def timed_out(self) -> bool:
        return bool(self.body.get("timed_out"))

    @property
    def status(self) -> str | None:
        return self.body.get("status")

    @property
    def shard_failures(self) -> list[dict[str, tp.Any]]:
        shards = self.body.get("_shards") or {}
        return list(shards.get("failures") or [])

    @property
    def hits(self) -> list[dict[str, tp.Any]]:
        return list((self.body.get("hits") or {}).get("hits") or [])

    @property
    def total_hits(self) -> int:
        total = (self.body.get("hits") or {}).get("total") or 0
        if isinstance(total, dict):
            return int(total.get("value") or 0)
        return int(total)

    def __str__(self) -> str:
        return f"{self.status_code} {json.dumps(self.body)}"


def _index_path(indices: tp.Iterable[str] | str, endpoint: str) -> str:
    if isinstance(indices, str):
        indices = [indices] if indices else []
    joined = ",".join(indices)
    return f"/{joined}/{endpoint}" if joined else f"/{endpoint}"


class EngineClient:
    """Client for REST API of a single node."""

    def __init__(
        self,
        base_url: str,
        *,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or http_client.get_session()
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.base_url}>"

    def execute(self, request: EngineRequest) -> EngineResponse:
        """Send the request and return the response, HTTP error statuses are not raised."""
        kwargs: dict[str, tp.Any] = {
            "params": {k: _param_value(v) for k, v in request.params.items()},
            "headers": dict(request.headers),
            "timeout": self.timeout,
        }
        if request.body is not None:
            if isinstance(request.body, str | bytes):
                kwargs["headers"].setdefault("Content-Type", JSON_CONTENT)
                kwargs["data"] = request.body
            else:
                kwargs["json"] = request.body

        url = f"{self.base_url}{request.path}"
        LOGGER.debug(f"{request.method} {url} {kwargs['params']}")
        resp = self.session.request(request.method, url, **kwargs)

        body: dict[str, tp.Any] = {}
        if request.method != "HEAD" and resp.content:
            try:
                decoded = resp.json()
            except ValueError:
                decoded = {"text": resp.text}
            body = decoded if isinstance(decoded, dict) else {"items": decoded}

        return EngineResponse(status_code=resp.status_code, body=body, request=request)

    def ping(self) -> bool:
        """Check that the node answers on its HTTP port."""
        try:
            resp = self.session.get(f"{self.base_url}/", timeout=5)
        except requests.exceptions.RequestException:
            return False
        return resp.ok

    # Cluster

    def prepare_cluster_health(self, indices: tp.Iterable[str] = ()) -> EngineRequest:
        path = "/_cluster/health"
        joined = ",".join(indices)
        return EngineRequest("GET", f"{path}/{joined}" if joined else path)

    def prepare_cluster_state(self) -> EngineRequest:
        return EngineRequest("GET", "/_cluster/state")

    def prepare_pending_tasks(self) -> EngineRequest:
        return EngineRequest("GET", "/_cluster/pending_tasks")

    def cluster_health(self, indices: tp.Iterable[str] = (), **params: tp.Any) -> EngineResponse:
        return self.execute(self.prepare_cluster_health(indices).set_params(**params))

    def cluster_state(self) -> EngineResponse:
        return self.execute(self.prepare_cluster_state())

    def pending_tasks(self) -> EngineResponse:
        return self.execute(self.prepare_pending_tasks())

    # Indices

    def prepare_create_index(self, index: str) -> EngineRequest:
        return EngineRequest("PUT", f"/{index}")

    def prepare_delete_index(self, index: str) -> EngineRequest:
        return EngineRequest("DELETE", f"/{index}")

    def prepare_index_exists(self, index: str) -> EngineRequest:
        return EngineRequest("HEAD", f"/{index}")

    def prepare_open_index(self, index: str) -> EngineRequest:
        return EngineRequest("POST", f"/{index}/_open")

    def prepare_close_index(self, index: str) -> EngineRequest:
        return EngineRequest("POST", f"/{index}/_close")

    def prepare_put_mapping(self, index: str) -> EngineRequest:
        return EngineRequest("PUT", f"/{index}/_mapping")

    def prepare_flush(self, indices: tp.Iterable[str] = ()) -> EngineRequest:
        return EngineRequest("POST", _index_path(indices, "_flush"))

    def prepare_refresh(self, indices: tp.Iterable[str] = ()) -> EngineRequest:
        return EngineRequest("POST", _index_path(indices, "_refresh"))

    def prepare_force_merge(self, indices: tp.Iterable[str] = ()) -> EngineRequest:
        return EngineRequest("POST", _index_path(indices, "_forcemerge"))

    def prepare_upgrade(self, indices: tp.Iterable[str] = ()) -> EngineRequest:
        return EngineRequest("POST", _index_path(indices, "_upgrade"))

    def prepare_get_aliases(self, alias: str) -> EngineRequest:
        return EngineRequest("GET", f"/_alias/{alias}")

    def prepare_update_aliases(self) -> EngineRequest:
        return EngineRequest("POST", "/_aliases", body={"actions": []})

    # Documents

    def prepare_index(self, index: str, doc_id: str | None = None) -> EngineRequest:
        if doc_id is None:
            return EngineRequest("POST", f"/{index}/_doc")
        return EngineRequest("PUT", f"/{index}/_doc/{doc_id}")

    def prepare_delete(self, index: str, doc_id: str) -> EngineRequest:
        return EngineRequest("DELETE", f"/{index}/_doc/{doc_id}")

    def prepare_search(self, index: str = "") -> EngineRequest:
        return EngineRequest("POST", _index_path(index, "_search"), body={})
