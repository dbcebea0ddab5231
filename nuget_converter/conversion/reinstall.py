from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from nuget_converter.conversion.cancellation import CancellationToken
from nuget_converter.conversion.host import PackageInstaller, Project, resolve_identity
from nuget_converter.conversion.models import InstallFailure, ProjectPackageSnapshot
from nuget_converter.conversion.progress import ProgressReporter

logger = logging.getLogger(__name__)


class PackageReinstallEngine:
  """Replays a package snapshot as PackageReference installs."""

  def __init__(self, installer: PackageInstaller, progress: ProgressReporter) -> None:
    self.installer = installer
    self.progress = progress
    self.reinstalled: List[str] = []

  def install_packages(
    self,
    projects: Iterable[Project],
    snapshot: ProjectPackageSnapshot,
    token: Optional[CancellationToken] = None
  ) -> Dict[str, List[InstallFailure]]:
    token = token or CancellationToken()
    failures: Dict[str, List[InstallFailure]] = {}
    self.reinstalled = []

    for project in projects:
      identity = resolve_identity(project)
      if identity is None:
        continue
      token.throw_if_cancellation_requested()

      packages = snapshot.take(identity)
      if packages is None:
        continue

      self.progress.status(f'Adding PackageReferences: {project.name}')
      for package in packages:
        try:
          self.installer.install(project, package.id, package.version)
        except Exception as exc:
          logger.debug('Install of %s %s into %s failed', package.id, package.version, project.name, exc_info=True)
          self.progress.warn(f'Exception installing {package.id} ({exc})')
          failures.setdefault(project.name, []).append(InstallFailure(package=package, error=str(exc)))
      self.reinstalled.append(project.name)
      self.progress.advance()

    return failures
