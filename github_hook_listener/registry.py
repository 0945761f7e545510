"""
VCS Registry Module

Projects, build configurations and VCS roots of the CI server, as seen
by the webhook listener. The listener only depends on the ProjectManager
and VcsManager protocols; InMemoryRegistry implements both and can be
loaded from a JSON file.
"""

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from github_hook_listener.repository_info import (
    RepositoryInfo,
    get_vcs_root_github_info,
)

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class VcsRoot:
    id: int
    external_id: str
    vcs_name: str
    properties: Dict[str, str] = field(default_factory=dict)
    # Seconds; None means the server-wide default applies
    modification_check_interval: Optional[int] = None

    @property
    def use_default_modification_check_interval(self) -> bool:
        return self.modification_check_interval is None


@dataclass(eq=False)
class VcsRootInstance:
    """A VCS root as attached to build configurations."""

    id: int
    parent: VcsRoot

    @property
    def vcs_name(self) -> str:
        return self.parent.vcs_name

    @property
    def properties(self) -> Dict[str, str]:
        return self.parent.properties


@dataclass(eq=False)
class Project:
    id: str
    archived: bool = False


@dataclass(eq=False)
class BuildType:
    id: str
    project: Project
    vcs_root_instances: List[VcsRootInstance] = field(default_factory=list)


class ProjectManager(Protocol):
    def all_build_types(self) -> List[BuildType]:
        ...


class VcsManager(Protocol):
    def all_registered_vcs_roots(self) -> List[VcsRoot]:
        ...

    def set_modification_check_interval(self, root: VcsRoot, seconds: int):
        ...


class InMemoryRegistry:
    """
    Thread-safe registry of projects and VCS roots.

    Readers get list snapshots, so callers can iterate while other
    requests register or remove entries. A registry loaded from a file
    writes setting changes back to it.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = path
        self._lock = threading.RLock()
        self._roots: Dict[str, VcsRoot] = {}
        self._instances: Dict[str, VcsRootInstance] = {}
        self._projects: Dict[str, Project] = {}
        self._build_types: Dict[str, BuildType] = {}

    def register_vcs_root(self, root: VcsRoot) -> VcsRootInstance:
        with self._lock:
            self._roots[root.external_id] = root
            instance = VcsRootInstance(id=root.id, parent=root)
            self._instances[root.external_id] = instance
            return instance

    def register_build_type(
        self, build_type_id: str, project: Project, root_external_ids: List[str]
    ) -> BuildType:
        with self._lock:
            instances = []
            for external_id in root_external_ids:
                instance = self._instances.get(external_id)
                if instance is None:
                    logger.warning(
                        f"Build configuration {build_type_id} refers to unknown VCS root {external_id}, skipping it"
                    )
                    continue
                instances.append(instance)
            build_type = BuildType(build_type_id, project, instances)
            self._projects[project.id] = project
            self._build_types[build_type_id] = build_type
            return build_type

    def register_project(self, project: Project):
        with self._lock:
            self._projects[project.id] = project

    def set_modification_check_interval(self, root: VcsRoot, seconds: int):
        with self._lock:
            root.modification_check_interval = seconds
            self.save()

    def all_build_types(self) -> List[BuildType]:
        with self._lock:
            return list(self._build_types.values())

    def all_registered_vcs_roots(self) -> List[VcsRoot]:
        with self._lock:
            return list(self._roots.values())

    def find_vcs_roots(self, info: RepositoryInfo) -> List[VcsRoot]:
        """Registered roots pointing to the given repository."""
        return [
            root
            for root in self.all_registered_vcs_roots()
            if get_vcs_root_github_info(root) == info
        ]

    def find_projects(self, roots: List[VcsRoot]) -> List[Project]:
        """Projects with a build configuration attached to any of the roots."""
        wanted = {id(root) for root in roots}
        projects = {}
        for build_type in self.all_build_types():
            if any(id(i.parent) in wanted for i in build_type.vcs_root_instances):
                projects[build_type.project.id] = build_type.project
        return list(projects.values())

    @classmethod
    def load(cls, path: Path) -> "InMemoryRegistry":
        """
        Load a registry from JSON.

        Format:
            {"vcs_roots": [{"id", "external_id", "vcs_name", "properties",
                            "modification_check_interval"}],
             "projects": [{"id", "archived",
                           "build_types": [{"id", "vcs_roots": [external ids]}]}]}
        """
        registry = cls(path)
        if not path.exists():
            logger.warning(f"Registry file {path} not found, starting with an empty registry")
            return registry

        with open(path, "r") as f:
            data = json.load(f)

        for root_data in data.get("vcs_roots", []):
            registry.register_vcs_root(
                VcsRoot(
                    id=root_data["id"],
                    external_id=root_data["external_id"],
                    vcs_name=root_data.get("vcs_name", ""),
                    properties=root_data.get("properties", {}),
                    modification_check_interval=root_data.get(
                        "modification_check_interval"
                    ),
                )
            )
        for project_data in data.get("projects", []):
            project = Project(project_data["id"], project_data.get("archived", False))
            registry.register_project(project)
            for bt_data in project_data.get("build_types", []):
                registry.register_build_type(
                    bt_data["id"], project, bt_data.get("vcs_roots", [])
                )

        logger.info(
            f"Loaded {len(registry._roots)} VCS roots and {len(registry._build_types)} build configurations from {path}"
        )
        return registry

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            build_types: Dict[str, List[Dict[str, Any]]] = {}
            for bt in self._build_types.values():
                build_types.setdefault(bt.project.id, []).append(
                    {
                        "id": bt.id,
                        "vcs_roots": [i.parent.external_id for i in bt.vcs_root_instances],
                    }
                )
            return {
                "vcs_roots": [
                    {
                        "id": root.id,
                        "external_id": root.external_id,
                        "vcs_name": root.vcs_name,
                        "properties": root.properties,
                        "modification_check_interval": root.modification_check_interval,
                    }
                    for root in self._roots.values()
                ],
                "projects": [
                    {
                        "id": project.id,
                        "archived": project.archived,
                        "build_types": build_types.get(project.id, []),
                    }
                    for project in self._projects.values()
                ],
            }

    def save(self):
        """Write the registry back to its file; no-op for in-code registries."""
        if self.path is None:
            return
        with self._lock:
            tmp_path = self.path.with_name(self.path.name + ".tmp")
            with open(tmp_path, "w") as f:
                json.dump(self.to_dict(), f, indent=2)
            os.replace(tmp_path, self.path)
        logger.debug(f"Saved registry to {self.path}")
