"""Capabilities the converter consumes from the host solution/package model.

The host owns the project graph and the package manager. The converter only
talks to it through these interfaces, which keeps IDE bindings, the filesystem
binding and the in-memory test doubles interchangeable.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

from nuget_converter.conversion.models import UninstallResult

logger = logging.getLogger(__name__)

PACKAGES_CONFIG = 'packages.config'
PROJECT_JSON = 'project.json'
PROJECT_LOCK_JSON = 'project.lock.json'


class ProjectItem(Protocol):
  name: str

  @property
  def file_names(self) -> Sequence[str]: ...

  def delete(self) -> None: ...


class Project(Protocol):
  name: str

  @property
  def full_name(self) -> str:
    """Full path of the project file; raises when the host cannot resolve it."""
    ...

  def items(self) -> Iterable[ProjectItem]: ...

  def save(self) -> None: ...


class Solution(Protocol):
  @property
  def full_name(self) -> str: ...

  def projects(self) -> List[Project]: ...

  def close(self) -> None: ...

  def open(self, path: str) -> None: ...


class PackageQueryService(Protocol):
  def installed_packages(self, project: Project) -> Iterable[Tuple[str, str]]: ...


class PackageInstaller(Protocol):
  def install(self, project: Project, package_id: str, version: str) -> None: ...


class PackageUninstaller(Protocol):
  def uninstall(self, project: Project, package_id: str) -> UninstallResult: ...


class PackageRestorer(Protocol):
  def restore(self, project: Project) -> None: ...


def resolve_identity(project: Project) -> Optional[str]:
  """Return the project's full path, or None when the host cannot provide it."""
  try:
    full_name = project.full_name
  except Exception as exc:
    logger.debug('Identity unavailable for %s: %s', getattr(project, 'name', '?'), exc)
    return None
  return full_name or None


def find_project_item(project: Optional[Project], name: str) -> Optional[ProjectItem]:
  if project is None:
    return None
  try:
    items = project.items()
  except Exception as exc:
    logger.debug('Could not enumerate items of %s: %s', getattr(project, 'name', '?'), exc)
    return None
  if items is None:
    return None
  for item in items:
    if item.name.lower() == name.lower():
      return item
  return None


def get_packages_config(project: Optional[Project]) -> Optional[ProjectItem]:
  return find_project_item(project, PACKAGES_CONFIG)


def get_project_json(project: Optional[Project]) -> Optional[ProjectItem]:
  return find_project_item(project, PROJECT_JSON)
