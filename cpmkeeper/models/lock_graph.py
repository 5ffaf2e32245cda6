"""
Typed view of a project's dependency lock graph.

``dotnet restore`` writes ``obj/project.assets.json`` next to every
project. Its ``targets`` section maps each target framework to nodes
keyed ``"<Id>/<Version>"``, each listing the dependency ranges it
declares. Only that part of the file is modelled here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Tuple

from cpmkeeper.models.package import normalize_id


@dataclass(frozen=True)
class LockNode:
    """A resolved package in the lock graph and its outgoing edges."""

    package_id: str
    version: str
    dependencies: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_entry(cls, key: str, entry: Any) -> "LockNode":
        package_id, _, version = key.partition("/")
        raw_deps = entry.get("dependencies") if isinstance(entry, Mapping) else None
        deps = (
            {str(name): str(rng) for name, rng in raw_deps.items()}
            if isinstance(raw_deps, Mapping)
            else {}
        )
        return cls(package_id=package_id, version=version, dependencies=deps)

    def edges(self) -> Iterator[Tuple[str, str]]:
        """Yield ``(dependency_id, range)`` pairs, skipping self-loops."""
        own = normalize_id(self.package_id)
        for dep_name, dep_range in self.dependencies.items():
            if normalize_id(dep_name) != own:
                yield dep_name, dep_range


@dataclass(frozen=True)
class LockGraph:
    """All nodes of one project's lock graph, grouped by target."""

    targets: Dict[str, List[LockNode]] = field(default_factory=dict)

    @classmethod
    def from_assets(cls, assets: Any) -> "LockGraph":
        """Build a graph from a parsed ``project.assets.json`` document."""
        raw_targets = assets.get("targets") if isinstance(assets, Mapping) else None
        if not isinstance(raw_targets, Mapping):
            return cls()

        targets: Dict[str, List[LockNode]] = {}
        for target_name, nodes in raw_targets.items():
            if not isinstance(nodes, Mapping):
                continue
            targets[str(target_name)] = [
                LockNode.from_entry(str(key), entry) for key, entry in nodes.items()
            ]
        return cls(targets=targets)

    def nodes(self) -> Iterator[LockNode]:
        for target_nodes in self.targets.values():
            yield from target_nodes
