"""Transitive constraint extraction from lock graphs.

For every centrally-managed package, find the strictest requirement that
other resolved packages place on it. Requirements come from the
``dependencies`` ranges in each project's ``obj/project.assets.json``.

Extraction runs in two phases:

1. **Read** every project's lock graph concurrently (file I/O in the
   default executor). Missing or broken files contribute nothing.
2. **Reduce** the graphs sequentially into a fresh
   :class:`ConstraintIndex`.

Exact pins (``[X]`` / ``[X, X]``) replace a previously seen minimum, never
the reverse; between two requirements of the same kind the first one
seen is kept.
"""

from __future__ import annotations

import json
import asyncio
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Set

from cpmkeeper.core.conflict_detector import cap_names
from cpmkeeper.exceptions import FileOperationError
from cpmkeeper.models.conflict import TransitiveConstraint
from cpmkeeper.models.lock_graph import LockGraph, LockNode
from cpmkeeper.models.package import Package, ProjectInfo, normalize_id
from cpmkeeper.utils.filesystem import lock_file_path, safe_read_file
from cpmkeeper.utils.logger import get_logger
from cpmkeeper.utils.version_utils import parse_version_range

logger = get_logger("constraint_extractor")

__all__ = [
    "ConstraintIndex",
    "LockGraph",
    "LockNode",
    "LockGraphReader",
    "build_constraint_index",
    "collect_lock_graphs",
    "read_lock_graph",
]

#: Callable that loads one project's lock graph, or ``None`` if unavailable.
LockGraphReader = Callable[[str], Optional[LockGraph]]


# ---------------------------------------------------------------------------
# Index
# ---------------------------------------------------------------------------


class ConstraintIndex:
    """Constraints keyed by lowercase package id.

    Example::

        >>> index = ConstraintIndex()
        >>> index.add("Humanizer.Core.af", "Humanizer.Core", "[2.14.1]")
        >>> index.get("humanizer.core").is_exact
        True
    """

    def __init__(self) -> None:
        self._constraints: Dict[str, TransitiveConstraint] = {}

    def add(self, parent_id: str, package_id: str, version_range: str) -> None:
        """Record that *parent_id* requires *package_id* within *version_range*."""
        requirement = parse_version_range(version_range)
        key = normalize_id(package_id)
        existing = self._constraints.get(key)

        if existing is None:
            self._constraints[key] = TransitiveConstraint(
                package_id=package_id,
                required_version=requirement.version,
                version_range=version_range,
                is_exact=requirement.is_exact,
                required_by=[parent_id],
            )
            return

        if parent_id not in existing.required_by:
            existing.required_by.append(parent_id)

        if requirement.is_exact and not existing.is_exact:
            existing.required_version = requirement.version
            existing.version_range = version_range
            existing.is_exact = True

    def finalize(self) -> None:
        """Collapse long ``required_by`` lists."""
        for constraint in self._constraints.values():
            constraint.required_by = cap_names(constraint.required_by)

    def get(self, package_id: str) -> Optional[TransitiveConstraint]:
        return self._constraints.get(normalize_id(package_id))

    def values(self) -> List[TransitiveConstraint]:
        return list(self._constraints.values())

    def __contains__(self, package_id: object) -> bool:
        return isinstance(package_id, str) and normalize_id(package_id) in self._constraints

    def __iter__(self) -> Iterator[TransitiveConstraint]:
        return iter(list(self._constraints.values()))

    def __len__(self) -> int:
        return len(self._constraints)


# ---------------------------------------------------------------------------
# Read phase
# ---------------------------------------------------------------------------


def read_lock_graph(project_path: str) -> Optional[LockGraph]:
    """Load the lock graph written by ``dotnet restore`` for a project.

    Returns ``None`` if the file is missing, unreadable or not JSON.
    """
    path = lock_file_path(project_path)
    try:
        content = safe_read_file(path)
        assets = json.loads(content)
    except (FileOperationError, ValueError) as exc:
        logger.debug("No lock graph for %s: %s", project_path, exc)
        return None
    return LockGraph.from_assets(assets)


async def collect_lock_graphs(
    projects: Sequence[ProjectInfo],
    reader: LockGraphReader = read_lock_graph,
) -> List[Optional[LockGraph]]:
    """Read the lock graphs of all *projects* concurrently.

    Reader failures are logged and yield ``None`` for that project.
    """
    loop = asyncio.get_running_loop()
    results = await asyncio.gather(
        *(loop.run_in_executor(None, reader, project.path) for project in projects),
        return_exceptions=True,
    )

    graphs: List[Optional[LockGraph]] = []
    for project, result in zip(projects, results):
        if isinstance(result, BaseException):
            logger.debug("Skipping lock graph for %s: %s", project.name, result)
            graphs.append(None)
        else:
            graphs.append(result)
    return graphs


# ---------------------------------------------------------------------------
# Reduce phase
# ---------------------------------------------------------------------------


def build_constraint_index(
    graphs: Iterable[Optional[LockGraph]],
    central_packages: Sequence[Package],
) -> ConstraintIndex:
    """Reduce lock graphs into a new :class:`ConstraintIndex`.

    Only edges that point at a centrally-managed package are considered;
    self-loops are skipped by :meth:`LockNode.edges`.
    """
    central: Set[str] = {pkg.key for pkg in central_packages}
    index = ConstraintIndex()

    for graph in graphs:
        if graph is None:
            continue
        for node in graph.nodes():
            for dep_name, dep_range in node.edges():
                if normalize_id(dep_name) in central:
                    index.add(node.package_id, dep_name, dep_range)

    index.finalize()
    return index
