"""Read-only loader for a Central Package Management workspace.

A CPM workspace has one ``Directory.Packages.props`` declaring package
versions in labelled ``ItemGroup`` elements::

    <Project>
      <PropertyGroup>
        <ManagePackageVersionsCentrally>true</ManagePackageVersionsCentrally>
      </PropertyGroup>
      <ItemGroup Label="Logging">
        <PackageVersion Include="Serilog" Version="3.1.1" />
      </ItemGroup>
    </Project>

and any number of ``*.csproj`` files that reference packages without a
version. :class:`CentralManifest` loads both and answers the queries the
analysis layer needs. It never writes to disk.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Tuple, Union

from cpmkeeper.constants import CENTRAL_MANIFEST_FILE, PROJECT_FILE_SUFFIX
from cpmkeeper.exceptions import FileOperationError, ManifestError
from cpmkeeper.models.package import (
    ItemGroup,
    Package,
    ProjectInfo,
    VersionOverride,
    normalize_id,
)
from cpmkeeper.utils.filesystem import find_files, safe_read_file
from cpmkeeper.utils.logger import get_logger

logger = get_logger("manifest")

__all__ = ["CentralManifest", "parse_props_content", "parse_project_content"]

PathLike = Union[str, Path]


# ---------------------------------------------------------------------------
# XML helpers
# ---------------------------------------------------------------------------


def _local(tag: str) -> str:
    """Strip an ``{namespace}`` prefix (legacy MSBuild files carry one)."""
    return tag.split("}", 1)[-1]


def _children(element: ET.Element, name: str) -> Iterator[ET.Element]:
    for child in element:
        if isinstance(child.tag, str) and _local(child.tag) == name:
            yield child


def _descendants(element: ET.Element, name: str) -> Iterator[ET.Element]:
    for child in element.iter():
        if isinstance(child.tag, str) and _local(child.tag) == name:
            yield child


def parse_props_content(content: str) -> Tuple[bool, List[ItemGroup]]:
    """Parse ``Directory.Packages.props`` text.

    Returns:
        ``(manage_centrally, item_groups)``. Item groups without any
        complete ``PackageVersion`` are omitted.

    Raises:
        ManifestError: The content is not well-formed XML or the root is
            not ``<Project>``.
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as exc:
        raise ManifestError(f"Invalid XML in {CENTRAL_MANIFEST_FILE}: {exc}") from exc

    if _local(root.tag) != "Project":
        raise ManifestError(f"{CENTRAL_MANIFEST_FILE} has no <Project> root element")

    manage_centrally = False
    for group in _children(root, "PropertyGroup"):
        for flag in _children(group, "ManagePackageVersionsCentrally"):
            manage_centrally = (flag.text or "").strip().lower() == "true"

    item_groups: List[ItemGroup] = []
    for group in _children(root, "ItemGroup"):
        label = group.get("Label")
        packages = [
            Package(name=name, version=version, label=label)
            for name, version in (
                (pv.get("Include"), pv.get("Version"))
                for pv in _children(group, "PackageVersion")
            )
            if name and version
        ]
        if packages:
            item_groups.append(ItemGroup(label=label, packages=packages))

    return manage_centrally, item_groups


def parse_project_content(content: str) -> Tuple[Set[str], Dict[str, str]]:
    """Parse a project file's package references.

    Returns:
        ``(referenced_ids, versioned_overrides)`` where the second maps
        ids that carry a local ``Version`` attribute to that version.

    Raises:
        ET.ParseError: The content is not well-formed XML.
    """
    root = ET.fromstring(content)
    names: Set[str] = set()
    overrides: Dict[str, str] = {}

    for ref in _descendants(root, "PackageReference"):
        name = ref.get("Include")
        if not name:
            continue
        names.add(name)
        version = ref.get("Version")
        if version:
            overrides[name] = version

    return names, overrides


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------


class CentralManifest:
    """In-memory view of ``Directory.Packages.props`` and its projects.

    Args:
        props_path: Location of the central manifest, if one was found.
        item_groups: Parsed ``ItemGroup`` elements.
        projects: Parsed project files.
        manage_centrally: Value of ``ManagePackageVersionsCentrally``.
    """

    def __init__(
        self,
        props_path: Optional[Path] = None,
        item_groups: Optional[List[ItemGroup]] = None,
        projects: Optional[List[ProjectInfo]] = None,
        *,
        manage_centrally: bool = False,
    ) -> None:
        self.props_path = props_path
        self.item_groups: List[ItemGroup] = item_groups or []
        self.projects: List[ProjectInfo] = projects or []
        self.manage_centrally = manage_centrally

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, root: PathLike) -> "CentralManifest":
        """Discover and parse the manifest and all projects below *root*.

        Raises:
            ManifestError: No manifest exists below *root*, or it cannot
                be read or parsed.
        """
        root_path = Path(root).resolve()
        props_path = cls.find_props_file(root_path)
        if props_path is None:
            raise ManifestError(
                f"{CENTRAL_MANIFEST_FILE} not found", file_path=str(root_path)
            )

        try:
            content = safe_read_file(props_path)
        except FileOperationError as exc:
            raise ManifestError(str(exc), file_path=str(props_path)) from exc

        try:
            manage_centrally, item_groups = parse_props_content(content)
        except ManifestError as exc:
            raise ManifestError(exc.message, file_path=str(props_path)) from exc

        projects = cls._scan_projects(root_path)
        manifest = cls(
            props_path,
            item_groups,
            projects,
            manage_centrally=manage_centrally,
        )
        logger.info(
            "Loaded %d package(s) in %d group(s) and %d project(s)",
            len(manifest.get_all_packages()),
            len(item_groups),
            len(projects),
        )
        return manifest

    @staticmethod
    def find_props_file(root: Path) -> Optional[Path]:
        """Return the central manifest in *root*, else the first one below it."""
        direct = root / CENTRAL_MANIFEST_FILE
        if direct.is_file():
            return direct
        found = find_files(root, name=CENTRAL_MANIFEST_FILE)
        return found[0] if found else None

    @staticmethod
    def _scan_projects(root: Path) -> List[ProjectInfo]:
        projects: List[ProjectInfo] = []
        for path in find_files(root, suffix=PROJECT_FILE_SUFFIX):
            try:
                names, overrides = parse_project_content(safe_read_file(path))
            except (FileOperationError, ET.ParseError) as exc:
                logger.warning("Skipping unreadable project %s: %s", path, exc)
                continue
            projects.append(
                ProjectInfo(
                    path=str(path),
                    name=path.name[: -len(PROJECT_FILE_SUFFIX)],
                    declared_package_names=names,
                    versioned_overrides=overrides,
                )
            )
        return projects

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_all_packages(self) -> List[Package]:
        return [pkg for group in self.item_groups for pkg in group.packages]

    def get_package(self, name: str) -> Optional[Package]:
        """Case-insensitive lookup of a centrally declared package."""
        key = normalize_id(name)
        for pkg in self.get_all_packages():
            if pkg.key == key:
                return pkg
        return None

    def get_packages_by_label(self, label: Optional[str] = None) -> List[Package]:
        """Return packages of the groups labelled *label* (``None`` = unlabelled)."""
        return [
            pkg
            for group in self.item_groups
            if group.label == label
            for pkg in group.packages
        ]

    def get_labels(self) -> List[str]:
        return [group.label for group in self.item_groups if group.label is not None]

    def get_all_projects(self) -> List[ProjectInfo]:
        """Return projects sorted by name."""
        return sorted(self.projects, key=lambda p: p.name.lower())

    def get_package_usage(self, name: str) -> List[str]:
        """Names of the projects referencing *name*."""
        return [p.name for p in self.get_all_projects() if p.references(name)]

    def find_version_overrides(self) -> List[VersionOverride]:
        """Project references that set a local ``Version`` on a central package.

        Under CPM this is a build error (NU1008); the restore reports it
        per reference, this lists them all up front.
        """
        overrides: List[VersionOverride] = []
        for project in self.get_all_projects():
            for package_id, local_version in sorted(project.versioned_overrides.items()):
                central = self.get_package(package_id)
                if central is None:
                    continue
                overrides.append(
                    VersionOverride(
                        project=project.name,
                        package_id=package_id,
                        local_version=local_version,
                        central_version=central.version,
                    )
                )
        return overrides

    def get_workspace_root(self) -> Optional[str]:
        """Directory containing the central manifest."""
        return str(self.props_path.parent) if self.props_path else None

    def get_solution_path(self) -> Optional[str]:
        """First ``*.sln`` file in the workspace root, if any."""
        root = self.get_workspace_root()
        if root is None:
            return None
        solutions = sorted(Path(root).glob("*.sln"))
        return str(solutions[0]) if solutions else None
