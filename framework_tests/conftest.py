import dataclasses
import pathlib as pl
import typing as tp

import pytest

from opensearch_runner.cluster_management import configs
from opensearch_runner.cluster_management import manager
from opensearch_runner.engine import client as engine_client
from opensearch_runner.engine import node as engine_node


@dataclasses.dataclass
class FakeEngine:
    """In-memory stand-in for the REST API of a running cluster."""

    cluster_name: str = "cluster-runner"
    health_status: str = "green"
    health_timed_out: bool = False
    cluster_manager: str = "Node 1"
    shard_failures: list[dict] = dataclasses.field(default_factory=list)
    fail_start: set[str] = dataclasses.field(default_factory=set)
    indices: set[str] = dataclasses.field(default_factory=set)
    docs: dict[tuple[str, str], tp.Any] = dataclasses.field(default_factory=dict)
    requests: list[engine_client.EngineRequest] = dataclasses.field(default_factory=list)
    nodes: list["FakeNode"] = dataclasses.field(default_factory=list)

    def handle(self, request: engine_client.EngineRequest) -> engine_client.EngineResponse:
        self.requests.append(request)
        parts = [p for p in request.path.split("/") if p]
        status, body = self._route(request.method, parts, request)
        return engine_client.EngineResponse(status_code=status, body=body, request=request)

    def _route(
        self, method: str, parts: list[str], request: engine_client.EngineRequest
    ) -> tuple[int, dict]:
        # Cluster
        if parts[:2] == ["_cluster", "health"]:
            code = 408 if self.health_timed_out else 200
            return code, {"status": self.health_status, "timed_out": self.health_timed_out}
        if parts == ["_cluster", "state"]:
            return 200, {
                "cluster_name": self.cluster_name,
                "cluster_manager_node": "manager-id",
                "nodes": {"manager-id": {"name": self.cluster_manager}},
            }
        if parts == ["_cluster", "pending_tasks"]:
            return 200, {"tasks": []}

        # Aliases
        if parts and parts[0] == "_alias":
            return 200, {}
        if parts == ["_aliases"]:
            return 200, {"acknowledged": True}

        # Shard operations
        if parts and parts[-1] in ("_flush", "_refresh", "_forcemerge", "_upgrade"):
            return 200, {"_shards": {"total": 2, "failures": list(self.shard_failures)}}

        if parts and parts[-1] == "_search":
            index = parts[0] if len(parts) > 1 else ""
            hits = [
                {"_index": i, "_id": d, "_source": s}
                for (i, d), s in self.docs.items()
                if not index or i == index
            ]
            size = (request.body or {}).get("size", 10)
            total = {"value": len(hits)}
            return 200, {"timed_out": False, "hits": {"total": total, "hits": hits[:size]}}

        # Documents
        if len(parts) == 3 and parts[1] == "_doc":
            key = (parts[0], parts[2])
            if method == "PUT":
                result = "updated" if key in self.docs else "created"
                self.docs[key] = request.body
                self.indices.add(parts[0])
                return (200 if result == "updated" else 201), {"result": result}
            if method == "DELETE":
                if self.docs.pop(key, None) is None:
                    return 404, {"result": "not_found"}
                return 200, {"result": "deleted"}

        # Indices
        if len(parts) == 2 and parts[1] in ("_open", "_close", "_mapping"):
            if parts[0] not in self.indices:
                return 404, {"error": "index_not_found_exception"}
            return 200, {"acknowledged": True}
        if len(parts) == 1:
            index = parts[0]
            if method == "HEAD":
                return (200 if index in self.indices else 404), {}
            if method == "PUT":
                if index in self.indices:
                    return 400, {"error": "resource_already_exists_exception"}
                self.indices.add(index)
                return 200, {"acknowledged": True, "index": index}
            if method == "DELETE":
                if index not in self.indices:
                    return 404, {"error": "index_not_found_exception"}
                self.indices.discard(index)
                return 200, {"acknowledged": True}

        return 400, {"error": f"unsupported request {method} {request.path}"}


class FakeClient(engine_client.EngineClient):
    def __init__(self, engine: FakeEngine, base_url: str) -> None:
        super().__init__(base_url)
        self.engine = engine

    def execute(self, request: engine_client.EngineRequest) -> engine_client.EngineResponse:
        return self.engine.handle(request)

    def ping(self) -> bool:
        return True


class FakeNode:
    def __init__(
        self,
        environment: engine_node.NodeEnvironment,
        plugins: tuple = (),
        *,
        engine: FakeEngine,
    ) -> None:
        self.environment = environment
        self.plugins = tuple(plugins)
        self.engine = engine
        self.started = False
        self.closed = False
        self.close_error: OSError | None = None
        self.await_error: BaseException | None = None
        self.closes_in_time = True

    def __repr__(self) -> str:
        return f"<FakeNode: {self.environment.node_name}>"

    @property
    def settings(self) -> tp.Mapping[str, tp.Any]:
        return self.environment.settings

    def start(self) -> None:
        if self.environment.node_name in self.engine.fail_start:
            msg = f"{self.environment.node_name} failed validation"
            raise engine_node.NodeValidationError(msg)
        self.started = True

    def close(self) -> None:
        if self.close_error is not None:
            raise self.close_error
        self.closed = True

    def is_closed(self) -> bool:
        return not self.started or self.closed

    def await_close(self, timeout: float) -> bool:  # noqa: ARG002
        if self.await_error is not None:
            raise self.await_error
        return self.closes_in_time

    def client(self) -> FakeClient:
        return FakeClient(self.engine, f"http://localhost:{self.settings.get('http.port')}")

    def get_instance(self, service_cls: type) -> tp.Any:
        return service_cls(self)


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def node_factory(engine: FakeEngine) -> tp.Callable[..., FakeNode]:
    def _factory(environment: engine_node.NodeEnvironment, plugins: tuple) -> FakeNode:
        node = FakeNode(environment, plugins, engine=engine)
        engine.nodes.append(node)
        return node

    return _factory


@pytest.fixture
def make_runner(
    tmp_path: pl.Path, node_factory: tp.Callable[..., FakeNode]
) -> tp.Callable[..., manager.ClusterRunner]:
    """Return function for creating cluster runners that start fake nodes."""

    def _make(**kwargs: tp.Any) -> manager.ClusterRunner:
        kwargs.setdefault("base_path", str(tmp_path / "cluster"))
        kwargs.setdefault("max_http_port", -1)
        kwargs.setdefault("module_types", ())
        config = configs.ClusterConfig(**kwargs)
        return manager.ClusterRunner(config, node_factory=node_factory)

    return _make
