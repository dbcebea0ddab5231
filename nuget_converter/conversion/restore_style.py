from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from nuget_converter.conversion.host import Project, Solution, resolve_identity
from nuget_converter.conversion.msbuild import MSBUILD_NS, ProjectDocument, qualified
from nuget_converter.conversion.progress import ProgressReporter

logger = logging.getLogger(__name__)

RESTORE_PROJECT_STYLE = 'RestoreProjectStyle'
PACKAGE_REFERENCE = 'PackageReference'


class RestoreStyleError(Exception):
  """The project file could not be switched to PackageReference restore."""


def _load(path: Path | str) -> ProjectDocument:
  try:
    return ProjectDocument.load(path)
  except ET.ParseError as exc:
    raise RestoreStyleError(f'{path} is not a well-formed project file: {exc}') from exc


def has_restore_project_style(path: Path | str) -> bool:
  document = _load(path)
  return document.first(RESTORE_PROJECT_STYLE, MSBUILD_NS) is not None


def add_restore_project_style(path: Path | str) -> None:
  """Append ``<RestoreProjectStyle>PackageReference</RestoreProjectStyle>`` to the first PropertyGroup."""
  document = _load(path)
  group = document.first('PropertyGroup', MSBUILD_NS)
  if group is None:
    raise RestoreStyleError(f'{path} has no PropertyGroup in the {MSBUILD_NS} namespace')
  element = ET.Element(qualified(RESTORE_PROJECT_STYLE, MSBUILD_NS))
  element.text = PACKAGE_REFERENCE
  document.append_child(group, element)
  document.save()


@dataclass
class ProjectInfo:
  full_name: Optional[str]
  name: str


@dataclass
class RefreshOutcome:
  changed: List[str] = field(default_factory=list)
  failed: List[str] = field(default_factory=list)


class RestoreStyleMutator:
  """Switches project files to PackageReference restore inside a solution reload."""

  def __init__(self, progress: ProgressReporter, skip_existing: bool = False) -> None:
    self.progress = progress
    self.skip_existing = skip_existing

  def apply(self, path: str, name: str) -> bool:
    if has_restore_project_style(path):
      self.progress.warn(f"'{name}' already declares {RESTORE_PROJECT_STYLE}")
      if self.skip_existing:
        return False
    add_restore_project_style(path)
    return True

  def refresh_solution(self, solution: Solution, projects: Iterable[Project]) -> RefreshOutcome:
    """Close the solution, rewrite every project file, then reopen it.

    The host caches project state, so the files are only rewritten while the
    solution is closed. A project file that cannot be rewritten is reported in
    ``failed`` and left for manual editing; the solution is reopened either way.
    """
    infos = [ProjectInfo(resolve_identity(project), project.name) for project in projects]
    solution_path = solution.full_name
    outcome = RefreshOutcome()

    solution.close()
    try:
      for info in infos:
        if not info.full_name:
          continue
        self.progress.status(f"Fixing restore style in '{info.name}'")
        try:
          if self.apply(info.full_name, info.name):
            outcome.changed.append(info.name)
        except (RestoreStyleError, OSError) as exc:
          logger.warning('Restore style not updated for %s: %s', info.name, exc)
          outcome.failed.append(info.name)
    finally:
      solution.open(solution_path)
    return outcome
