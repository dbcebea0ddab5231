from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional

from nuget_converter.conversion.host import (
  PROJECT_LOCK_JSON,
  Project,
  get_packages_config,
  get_project_json
)
from nuget_converter.conversion.progress import ProgressReporter

logger = logging.getLogger(__name__)


class DependencyFileCleaner:
  """Delete legacy package manifests once their packages have been removed."""

  def __init__(self, progress: Optional[ProgressReporter] = None) -> None:
    self.progress = progress

  def remove_all(self, projects: Iterable[Project]) -> None:
    for project in projects:
      if self.progress:
        self.progress.status(f"Removing dependency files for '{project.name}'")
      self.remove_dependency_files(project)

  def remove_dependency_files(self, project: Project) -> List[str]:
    removed: List[str] = []

    packages_config = get_packages_config(project)
    if packages_config is not None:
      packages_config.delete()
      removed.append(packages_config.name)

    project_json = get_project_json(project)
    if project_json is not None:
      lock_file = self._lock_file_for(project_json.file_names)
      project_json.delete()
      removed.append(project_json.name)
      if lock_file is not None and lock_file.exists():
        try:
          lock_file.unlink()
          removed.append(lock_file.name)
        except OSError as exc:
          logger.warning('Failed to delete %s: %s', lock_file, exc)

    project.save()
    if removed:
      logger.debug('Removed %s from %s', ', '.join(removed), project.name)
    return removed

  def _lock_file_for(self, file_names) -> Optional[Path]:
    if not file_names:
      return None
    return Path(file_names[0]).parent / PROJECT_LOCK_JSON
