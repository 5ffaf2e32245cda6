from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

import pytest

from cpmkeeper.core.constraint_extractor import (
    ConstraintIndex,
    build_constraint_index,
    collect_lock_graphs,
    read_lock_graph,
)
from cpmkeeper.models import LockGraph, Package, ProjectInfo


def _graph(nodes: Dict[str, Dict[str, str]], target: str = "net8.0") -> LockGraph:
    return LockGraph.from_assets(
        {
            "targets": {
                target: {key: {"dependencies": deps} for key, deps in nodes.items()}
            }
        }
    )


def _write_assets(project_dir: Path, assets: Any) -> str:
    project_dir.mkdir(parents=True, exist_ok=True)
    (project_dir / "obj").mkdir(exist_ok=True)
    (project_dir / "obj" / "project.assets.json").write_text(
        json.dumps(assets) if not isinstance(assets, str) else assets,
        encoding="utf-8",
    )
    return str(project_dir / f"{project_dir.name}.csproj")


@pytest.mark.unit
class TestConstraintIndex:
    """Tests for ConstraintIndex.add precedence and lookups."""

    def test_first_requirement_recorded(self) -> None:
        index = ConstraintIndex()
        index.add("Parent", "System.Memory", "4.5.5")

        constraint = index.get("system.memory")
        assert constraint is not None
        assert constraint.package_id == "System.Memory"
        assert constraint.required_version == "4.5.5"
        assert constraint.is_exact is False
        assert constraint.required_by == ["Parent"]

    def test_exact_replaces_minimum(self) -> None:
        index = ConstraintIndex()
        index.add("A", "X", "[1.0.0, )")
        index.add("B", "X", "[2.0.0]")

        constraint = index.get("X")
        assert constraint.is_exact is True
        assert constraint.required_version == "2.0.0"
        assert constraint.version_range == "[2.0.0]"
        assert constraint.required_by == ["A", "B"]

    def test_minimum_never_replaces_exact(self) -> None:
        index = ConstraintIndex()
        index.add("A", "X", "[2.0.0]")
        index.add("B", "X", "[3.0.0, )")

        assert index.get("X").required_version == "2.0.0"

    def test_first_of_same_kind_kept(self) -> None:
        index = ConstraintIndex()
        index.add("A", "X", "[1.0.0]")
        index.add("B", "X", "[2.0.0]")

        assert index.get("X").required_version == "1.0.0"

    def test_duplicate_parent_not_repeated(self) -> None:
        index = ConstraintIndex()
        index.add("A", "X", "1.0")
        index.add("A", "X", "1.0")

        assert index.get("X").required_by == ["A"]

    def test_finalize_caps_required_by(self) -> None:
        index = ConstraintIndex()
        for i in range(8):
            index.add(f"P{i}", "X", "1.0")

        index.finalize()

        assert index.get("X").required_by == ["P0", "P1", "P2", "and 5 more"]

    def test_container_protocol(self) -> None:
        index = ConstraintIndex()
        index.add("A", "X", "1.0")
        index.add("A", "Y", "1.0")

        assert "x" in index
        assert "Z" not in index
        assert 42 not in index
        assert len(index) == 2
        assert [c.package_id for c in index] == ["X", "Y"]


@pytest.mark.unit
class TestBuildConstraintIndex:
    """Tests for build_constraint_index."""

    def test_only_central_targets_considered(self) -> None:
        graph = _graph(
            {
                "Humanizer/2.14.1": {"Humanizer.Core": "[2.14.1]"},
                "Serilog.Sinks.File/5.0.0": {"Serilog": "2.10.0"},
            }
        )

        index = build_constraint_index([graph], [Package("Humanizer.Core", "3.0.1")])

        assert len(index) == 1
        assert index.get("Humanizer.Core").is_exact is True

    def test_self_loops_ignored(self) -> None:
        graph = _graph({"Serilog/3.1.1": {"Serilog": "[3.1.1]"}})

        index = build_constraint_index([graph], [Package("Serilog", "3.1.1")])

        assert len(index) == 0

    def test_missing_graphs_skipped(self) -> None:
        graph = _graph({"A/1.0": {"X": "1.0"}})

        index = build_constraint_index([None, graph, None], [Package("X", "1.0")])

        assert index.get("X").required_by == ["A"]

    def test_eight_satellites(self) -> None:
        nodes = {
            f"Humanizer.Core.{c}/2.14.1": {"Humanizer.Core": "[2.14.1]"}
            for c in ["af", "ar", "bg", "cs", "da", "de", "el", "es"]
        }

        index = build_constraint_index(
            [_graph(nodes)], [Package("Humanizer.Core", "3.0.1")]
        )

        constraint = index.get("Humanizer.Core")
        assert constraint.required_version == "2.14.1"
        assert len(constraint.required_by) == 4
        assert constraint.required_by[-1] == "and 5 more"


@pytest.mark.integration
class TestReadLockGraph:
    """Tests for reading project.assets.json from disk."""

    def test_reads_graph(self, tmp_path: Path) -> None:
        project = _write_assets(
            tmp_path / "Api",
            {"targets": {"net8.0": {"A/1.0": {"dependencies": {"B": "2.0"}}}}},
        )

        graph = read_lock_graph(project)

        assert graph is not None
        assert [n.package_id for n in graph.nodes()] == ["A"]

    def test_missing_file(self, tmp_path: Path) -> None:
        assert read_lock_graph(str(tmp_path / "Api" / "Api.csproj")) is None

    def test_invalid_json(self, tmp_path: Path) -> None:
        project = _write_assets(tmp_path / "Api", "{not json")
        assert read_lock_graph(project) is None

    def test_bom_prefixed_file(self, tmp_path: Path) -> None:
        project_dir = tmp_path / "Api"
        (project_dir / "obj").mkdir(parents=True)
        (project_dir / "obj" / "project.assets.json").write_bytes(
            b"\xef\xbb\xbf" + json.dumps({"targets": {}}).encode("utf-8")
        )

        graph = read_lock_graph(str(project_dir / "Api.csproj"))

        assert graph is not None
        assert graph.targets == {}


@pytest.mark.unit
class TestCollectLockGraphs:
    @pytest.mark.asyncio
    async def test_reader_results_in_project_order(self) -> None:
        graph = _graph({"A/1.0": {}})
        projects = [ProjectInfo("p1", "P1"), ProjectInfo("p2", "P2")]

        def reader(path: str) -> Optional[LockGraph]:
            return graph if path == "p2" else None

        assert await collect_lock_graphs(projects, reader) == [None, graph]

    @pytest.mark.asyncio
    async def test_reader_exception_becomes_none(self) -> None:
        projects = [ProjectInfo("p1", "P1")]

        def reader(path: str) -> Optional[LockGraph]:
            raise PermissionError(path)

        assert await collect_lock_graphs(projects, reader) == [None]

    @pytest.mark.asyncio
    async def test_no_projects(self) -> None:
        assert await collect_lock_graphs([]) == []
