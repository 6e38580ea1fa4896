import contextlib
import pathlib as pl
import typing as tp

import hypothesis
import hypothesis.strategies as st
import pytest

from opensearch_runner.cluster_management import common
from opensearch_runner.cluster_management import manager
from opensearch_runner.cluster_management import nodes
from opensearch_runner.cluster_management import ports
from opensearch_runner.cluster_management import settings as node_settings
from opensearch_runner.cluster_management import workspace
from opensearch_runner.engine import node as engine_node
from opensearch_runner.tests import common as tests_common
from opensearch_runner.utils import framework_log

MakeRunner = tp.Callable[..., manager.ClusterRunner]


class TestBuild:
    @hypothesis.given(num=st.integers(min_value=1, max_value=5))
    @tests_common.hypothesis_settings(max_examples=10)
    def test_distinct_nodes(self, make_runner: MakeRunner, tmp_path: pl.Path, num: int):
        runner = make_runner(num_of_node=num, base_path=str(tmp_path / f"cluster{num}"))
        assert runner.is_closed()

        runner.build()
        records = runner.supervisor.records
        try:
            assert runner.node_size == num
            assert not runner.is_closed()
            assert [r.ordinal for r in records] == list(range(1, num + 1))
            assert len({r.http_port for r in records}) == num
            assert len({r.paths.home for r in records}) == num
            assert [r.name for r in records] == [f"Node {i}" for i in range(1, num + 1)]
        finally:
            runner.close()
            runner.clean()

    def test_port_from_base(self, make_runner: MakeRunner, monkeypatch: pytest.MonkeyPatch):
        def _refused(*args, **kwargs):
            raise ConnectionRefusedError

        monkeypatch.setattr(ports.socket, "create_connection", _refused)
        runner = make_runner(num_of_node=1, base_http_port=9250, max_http_port=9299)
        runner.build()
        assert runner.supervisor.records[0].http_port == 9251
        assert runner.get_node(0).settings["http.port"] == "9251"

    def test_port_exhausted(self, make_runner: MakeRunner, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(
            ports.socket, "create_connection", lambda *args, **kwargs: contextlib.nullcontext()
        )
        runner = make_runner(num_of_node=1, base_http_port=9250, max_http_port=9250)
        with pytest.raises(ports.PortExhaustedError, match="The http port 9251 is unavailable"):
            runner.build()

    def test_workspace_layout(self, make_runner: MakeRunner, tmp_path: pl.Path):
        runner = make_runner(num_of_node=2).build()
        base = tmp_path / "cluster"
        assert runner.base_path == base
        for i in (1, 2):
            assert (base / f"node_{i}" / "config" / "opensearch.yml").is_file()
            assert (base / f"node_{i}" / "config" / "log4j2.properties").is_file()
            assert (base / f"node_{i}" / "data").is_dir()
            assert (base / f"node_{i}" / "logs").is_dir()
            assert (base / f"node_{i}" / "modules").is_dir()
            assert (base / f"node_{i}" / "plugins").is_dir()

        node = runner.get_node(1)
        assert node.settings["path.home"] == str(base / "node_2")
        assert node.settings["cluster.name"] == "cluster-runner"
        assert node.settings["node.roles"] == ("cluster_manager", "data")

    def test_temporary_base_path(self, make_runner: MakeRunner):
        runner = make_runner(num_of_node=1, base_path=None).build()
        try:
            assert runner.base_path is not None
            assert runner.base_path.name.startswith("opensearch-cluster")
            assert (runner.base_path / "node_1").is_dir()
        finally:
            runner.close()
            runner.clean()
        assert not runner.base_path.exists()

    def test_from_args(self, node_factory, tmp_path: pl.Path):
        runner = manager.ClusterRunner(node_factory=node_factory)
        runner.build(
            [
                "-basePath",
                str(tmp_path / "cluster"),
                "-numOfNode",
                "1",
                "-maxHttpPort",
                "-1",
                "-clusterName",
                "args-cluster",
                "-moduleTypes",
                "",
            ]
        )
        assert runner.cluster_name == "args-cluster"
        assert runner.get_node(0).settings["cluster.name"] == "args-cluster"

    def test_on_build_callback(self, make_runner: MakeRunner):
        def _callback(ordinal: int, settings: node_settings.Settings) -> None:
            settings.put("http.port", 9300 + ordinal)
            settings.put("node.name", f"custom-{ordinal}")
            settings.put_list("discovery.seed_hosts", "localhost:9301")

        runner = make_runner(num_of_node=2).on_build(_callback).build()
        records = runner.supervisor.records
        assert [r.http_port for r in records] == [9301, 9302]
        assert [r.name for r in records] == ["custom-1", "custom-2"]
        assert runner.get_node_by_name("custom-2") is records[1].node
        assert runner.get_node_by_name("Node 1") is None

    def test_modules_mirrored(self, make_runner: MakeRunner, tmp_path: pl.Path, engine):
        modules_src = tmp_path / "modules_src"
        (modules_src / "custom").mkdir(parents=True)
        (modules_src / "custom" / "module.jar").write_text("jar")

        def _callback(ordinal: int, settings: node_settings.Settings) -> None:
            if ordinal == 1:
                settings.put("path.modules", str(modules_src))

        runner = make_runner(num_of_node=2, module_types=("reindex",))
        runner.on_build(_callback).build()

        home = tmp_path / "cluster" / "node_1"
        assert (home / "modules" / "custom" / "module.jar").read_text() == "jar"
        assert "path.modules" not in runner.get_node(0).settings
        # The default modules are not loaded when modules were mirrored
        assert engine.nodes[0].plugins == ()
        assert [p.name for p in engine.nodes[1].plugins] == ["reindex"]

    def test_provisioning_error_not_wrapped(self, make_runner: MakeRunner, tmp_path: pl.Path):
        conf_file = tmp_path / "conf"
        conf_file.write_text("")
        runner = make_runner(num_of_node=1, conf_path=str(conf_file))
        with pytest.raises(workspace.ProvisioningError, match="Could not create: "):
            runner.build()

    def test_node_start_error(self, make_runner: MakeRunner, engine):
        engine.fail_start.add("Node 2")
        runner = make_runner(num_of_node=3)
        with pytest.raises(nodes.NodeStartError, match="Failed to start node 2") as excinfo:
            runner.build()

        assert excinfo.value.ordinal == 2
        assert isinstance(excinfo.value.__cause__, engine_node.NodeValidationError)
        # Already started node is not rolled back
        assert runner.node_size == 1
        assert not runner.get_node(0).is_closed()

    def test_framework_log(self, make_runner: MakeRunner, tmp_path: pl.Path):
        runner = make_runner(num_of_node=1).build()
        runner.close()
        log_path = framework_log.get_framework_log_path(tmp_path / "cluster")
        for handler in runner._framework_logger.handlers:
            handler.flush()
        content = log_path.read_text()
        assert "Node 1 started on port 9201" in content
        assert "Node 1 closed" in content
        runner.clean()

    def test_summary_printed(self, make_runner: MakeRunner, capsys: pytest.CaptureFixture):
        make_runner(num_of_node=1, cluster_name="printed").build()
        out = capsys.readouterr().out
        assert "Cluster Name: printed" in out
        assert "Num Of Node:  1" in out
        assert "Node Name:      Node 1" in out
        assert "HTTP Port:      9201" in out


class TestLifecycle:
    def test_close_subset(self, make_runner: MakeRunner):
        runner = make_runner(num_of_node=3).build()
        runner.get_node(0).close()
        runner.get_node(2).close()
        assert not runner.is_closed()

        runner.get_node(1).close()
        assert runner.is_closed()

    def test_close_all(self, make_runner: MakeRunner, capsys: pytest.CaptureFixture):
        runner = make_runner(num_of_node=2).build()
        runner.close()
        assert runner.is_closed()
        assert "Closed all nodes." in capsys.readouterr().out
        # Closing again is a no-op
        runner.close()
        assert runner.is_closed()

    def test_context_manager(self, make_runner: MakeRunner):
        with make_runner(num_of_node=1) as runner:
            runner.build()
            assert not runner.is_closed()
        assert runner.is_closed()

    def test_restart(self, make_runner: MakeRunner):
        runner = make_runner(num_of_node=2).build()
        old_record = runner.supervisor.records[0]

        assert not runner.start_node(-1)
        assert not runner.start_node(2)
        assert not runner.start_node(0)

        old_record.node.close()
        assert runner.start_node(0)

        new_record = runner.supervisor.records[0]
        assert new_record.node is not old_record.node
        assert not new_record.node.is_closed()
        assert new_record.environment is old_record.environment
        assert new_record.plugins == old_record.plugins
        assert runner.get_node_index(new_record.node) == 0
        assert runner.get_node_index(old_record.node) == -1

    def test_restart_failure(
        self, make_runner: MakeRunner, engine, capsys: pytest.CaptureFixture
    ):
        runner = make_runner(num_of_node=1).build()
        node = runner.get_node(0)
        node.close()
        engine.fail_start.add("Node 1")

        assert not runner.start_node(0)
        assert runner.get_node(0) is node
        assert "Failed to start Node 1: Node 1 failed validation" in capsys.readouterr().out

    def test_lookups(self, make_runner: MakeRunner):
        runner = make_runner(num_of_node=2).build()
        assert runner.get_node(-1) is None
        assert runner.get_node(2) is None
        assert runner.get_node_by_name(None) is None
        assert runner.get_node_by_name("Node 3") is None
        assert runner.get_node_by_name("Node 2") is runner.get_node(1)
        assert list(runner.supervisor) == [runner.get_node(0), runner.get_node(1)]

    def test_any_available(self, make_runner: MakeRunner):
        runner = make_runner(num_of_node=2).build()
        assert runner.node() is runner.get_node(0)

        runner.get_node(0).close()
        assert runner.node() is runner.get_node(1)

        runner.get_node(1).close()
        with pytest.raises(common.AllNodesClosedError, match="All nodes are closed."):
            runner.node()

    def test_any_available_no_nodes(self, make_runner: MakeRunner):
        runner = make_runner(num_of_node=0)
        with pytest.raises(common.AllNodesClosedError):
            runner.node()
        runner.build()
        assert runner.is_closed()
        with pytest.raises(common.AllNodesClosedError):
            runner.node()

    def test_shutdown_errors_collected(self, make_runner: MakeRunner):
        runner = make_runner(num_of_node=3).build()
        runner.get_node(0).close_error = OSError("disk failure")
        runner.get_node(1).close_error = PermissionError("denied")

        with pytest.raises(nodes.ShutdownError) as excinfo:
            runner.close()

        assert str(excinfo.value) == "disk failure\ndenied"
        assert len(excinfo.value.errors) == 2
        assert runner.get_node(2).is_closed()

    def test_shutdown_interrupted(self, make_runner: MakeRunner):
        runner = make_runner(num_of_node=2).build()
        runner.get_node(0).await_error = KeyboardInterrupt()
        runner.close()
        assert runner.get_node(0).is_closed()
        assert runner.get_node(1).is_closed()

    def test_shutdown_timeout(self, make_runner: MakeRunner, capsys: pytest.CaptureFixture):
        runner = make_runner(num_of_node=2).build()
        runner.get_node(0).closes_in_time = False
        runner.close()
        out = capsys.readouterr().out
        assert "Failed to close node: Node 1" in out
        assert "Closed all nodes." in out
        assert runner.get_node(1).is_closed()

    def test_clean(self, make_runner: MakeRunner, tmp_path: pl.Path):
        runner = make_runner(num_of_node=2).build()
        runner.close()
        runner.clean()
        assert not (tmp_path / "cluster").exists()
        runner.clean()

    def test_clean_not_built(self, make_runner: MakeRunner):
        make_runner().clean()


class TestTopology:
    def test_cluster_manager(self, make_runner: MakeRunner, engine):
        engine.cluster_manager = "Node 2"
        runner = make_runner(num_of_node=3).build()

        assert runner.cluster_manager_node() is runner.get_node(1)
        assert runner.non_cluster_manager_node() is runner.get_node(0)

        runner.get_node(0).close()
        assert runner.non_cluster_manager_node() is runner.get_node(2)

    def test_unknown_cluster_manager(self, make_runner: MakeRunner, engine):
        engine.cluster_manager = "other"
        runner = make_runner(num_of_node=1).build()
        assert runner.cluster_manager_node() is None
        assert runner.non_cluster_manager_node() is runner.get_node(0)

    def test_cluster_service(self, make_runner: MakeRunner, engine):
        engine.cluster_manager = "Node 2"
        runner = make_runner(num_of_node=2, cluster_name="topology").build()

        service = runner.cluster_service()
        assert service.node is runner.get_node(1)
        assert service.local_node_name == "Node 2"
        assert service.cluster_name == "topology"
        assert service.cluster_manager_node_name() == "Node 2"
