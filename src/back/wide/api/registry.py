"""Project registry: maps project keys to project descriptors.

The registry document is loaded once at startup and is read-only afterwards,
so one instance is shared by every request and shell session.
"""
from __future__ import annotations

import hashlib
import json
import logging
import os
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigurationError, Unauthorized

logger = logging.getLogger(__name__)


class RegistryError(RuntimeError):
    """Raised when the registry document cannot be loaded."""


@dataclass(frozen=True)
class ProjectDescriptor:
    """One configured project."""
    key: str
    name: str | None
    folder: str | None
    root_folder: Path | None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Client-facing view of the project (never includes the key)."""
        data: dict[str, Any] = dict(self.extra)
        data['name'] = self.name
        data['folder'] = self.folder
        return data


def hash_key(key: str, salt: str) -> str:
    """Salted MD5 digest used when key hashing is enabled."""
    return hashlib.md5((key + salt).encode('utf-8')).hexdigest()


def _root_for(workspace_root: Path, folder: str | None) -> Path | None:
    if not folder:
        return None
    return Path(os.path.normpath(os.path.abspath(Path(workspace_root) / folder)))


class ProjectRegistry(Mapping[str, ProjectDescriptor]):
    """Immutable key -> ProjectDescriptor mapping."""

    def __init__(self, projects: Mapping[str, ProjectDescriptor] | None = None):
        self._projects = dict(projects or {})

    @classmethod
    def from_document(cls, document: Mapping[str, Any], workspace_root: Path) -> 'ProjectRegistry':
        """Build a registry from a parsed registry document."""
        projects = document.get('projects')
        if not projects:
            logger.warning("Config doesn't have any projects")
            return cls()
        if not isinstance(projects, Mapping):
            raise RegistryError("'projects' must be an object mapping keys to projects")

        descriptors = {}
        for key, raw in projects.items():
            if not isinstance(raw, Mapping):
                raise RegistryError(f'Project {key!r} must be an object')
            folder = raw.get('folder')
            descriptors[key] = ProjectDescriptor(
                key=key,
                name=raw.get('name'),
                folder=folder,
                root_folder=_root_for(workspace_root, folder),
                extra={k: v for k, v in raw.items() if k not in ('name', 'folder')},
            )
        return cls(descriptors)

    def lookup(self, key: str | None) -> ProjectDescriptor | None:
        if not key:
            return None
        return self._projects.get(key)

    def __getitem__(self, key: str) -> ProjectDescriptor:
        return self._projects[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._projects)

    def __len__(self) -> int:
        return len(self._projects)


def authorize(
    registry: ProjectRegistry,
    key: str | None,
    key_salt: str | None = None,
) -> ProjectDescriptor:
    """Resolve a client key to a usable project.

    Args:
        registry: Project registry
        key: Client-supplied project key
        key_salt: When not None, the key is hashed with this salt first

    Raises:
        Unauthorized: Missing or unknown key
        ConfigurationError: Project has no folder configured
    """
    if not key:
        raise Unauthorized('key missing')
    if key_salt is not None:
        key = hash_key(key, key_salt)
    project = registry.lookup(key)
    if project is None:
        raise Unauthorized('wrong key')
    if project.root_folder is None:
        raise ConfigurationError('folder missing from project config')
    return project


def load_registry(path: Path | str, workspace_root: Path | str) -> ProjectRegistry:
    """Load the registry document from disk.

    Raises:
        RegistryError: If the document is missing or is not valid JSON
    """
    path = Path(path)
    if not path.is_file():
        raise RegistryError(f'Registry document not found: {path}')
    try:
        document = json.loads(path.read_text(encoding='utf-8'))
    except (OSError, json.JSONDecodeError) as e:
        raise RegistryError(f'Cannot read registry document {path}: {e}') from e
    if not isinstance(document, Mapping):
        raise RegistryError(f'Registry document must be a JSON object: {path}')

    registry = ProjectRegistry.from_document(document, Path(workspace_root))
    logger.info('Loaded %d project(s) from %s', len(registry), path)
    return registry
