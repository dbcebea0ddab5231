from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from nuget_converter.config import settings
from nuget_converter.conversion.cancellation import CancellationToken, ConversionCancelled
from nuget_converter.conversion.cleanup import DependencyFileCleaner
from nuget_converter.conversion.eligibility import eligible_projects, needs_conversion
from nuget_converter.conversion.host import (
  PackageInstaller,
  PackageQueryService,
  PackageRestorer,
  PackageUninstaller,
  Project,
  Solution,
  resolve_identity
)
from nuget_converter.conversion.models import (
  PHASE_LABELS,
  ConversionResult,
  PackageRecord,
  Phase,
  ProjectPackageSnapshot
)
from nuget_converter.conversion.progress import ProgressReporter, ProgressSink
from nuget_converter.conversion.reinstall import PackageReinstallEngine
from nuget_converter.conversion.removal import PackageRemovalEngine
from nuget_converter.conversion.restore_style import RestoreStyleMutator

logger = logging.getLogger(__name__)

MANUAL_RESTORE_STYLE_MESSAGE = 'Exception while working with restore style property. Do this manually.'


@dataclass
class PackageServices:
  query: PackageQueryService
  installer: PackageInstaller
  uninstaller: PackageUninstaller
  restorer: PackageRestorer


class ConversionOrchestrator:
  """Runs the six conversion phases against one solution.

  Phases run strictly one after another and projects are handled one at a
  time, because the host project model is not safe for concurrent mutation
  and the restore style phase closes the whole solution.
  """

  def __init__(
    self,
    services: PackageServices,
    settle_seconds: Optional[float] = None,
    removal_failure_pause_seconds: Optional[float] = None,
    skip_existing_restore_style: Optional[bool] = None,
    sinks: Iterable[ProgressSink] = ()
  ) -> None:
    self.services = services
    self.settle_seconds = settings.settle_seconds if settle_seconds is None else settle_seconds
    self.removal_failure_pause_seconds = (
      settings.removal_failure_pause_seconds
      if removal_failure_pause_seconds is None
      else removal_failure_pause_seconds
    )
    self.skip_existing_restore_style = (
      settings.skip_existing_restore_style
      if skip_existing_restore_style is None
      else skip_existing_restore_style
    )
    self.sinks: List[ProgressSink] = list(sinks)

  def needs_conversion(self, solution: Solution) -> bool:
    return needs_conversion(solution)

  async def convert(
    self,
    solution: Solution,
    token: Optional[CancellationToken] = None,
    sink: Optional[ProgressSink] = None
  ) -> ConversionResult:
    return await asyncio.to_thread(self.run, solution, token, sink)

  def run(
    self,
    solution: Solution,
    token: Optional[CancellationToken] = None,
    sink: Optional[ProgressSink] = None
  ) -> ConversionResult:
    token = token or CancellationToken()
    progress = ProgressReporter(self.sinks + ([sink] if sink else []))
    result = ConversionResult()
    try:
      self._run_phases(solution, token, progress, result)
    except ConversionCancelled as exc:
      result.cancelled = True
      progress.warn('Conversion cancelled')
      raise ConversionCancelled(str(exc), result=result) from exc
    return result

  def _run_phases(
    self,
    solution: Solution,
    token: CancellationToken,
    progress: ProgressReporter,
    result: ConversionResult
  ) -> None:
    progress.phase(PHASE_LABELS[Phase.ENUMERATE])
    projects = eligible_projects(solution)
    result.projects = [project.name for project in projects]
    progress.set_total(len(projects) * 2 + 1)
    progress.set_indeterminate(False)
    progress.set_count(1)
    result.completed_phases.append(Phase.ENUMERATE)

    progress.phase(PHASE_LABELS[Phase.RESTORE])
    self._restore_all(projects, progress)
    result.completed_phases.append(Phase.RESTORE)

    progress.phase(PHASE_LABELS[Phase.SNAPSHOT_REMOVE])
    snapshot = ProjectPackageSnapshot()
    try:
      self._remove_and_cache(projects, snapshot, progress, token, result)
    finally:
      # Packages already uninstalled must stay visible in a partial result.
      result.snapshot = snapshot.as_dict()
    token.throw_if_cancellation_requested()
    result.completed_phases.append(Phase.SNAPSHOT_REMOVE)

    progress.phase(PHASE_LABELS[Phase.CLEAN])
    DependencyFileCleaner(progress).remove_all(projects)
    result.completed_phases.append(Phase.CLEAN)

    self._settle(token)

    progress.phase(PHASE_LABELS[Phase.MUTATE_RELOAD])
    self._refresh_solution(solution, projects, progress, result)
    result.completed_phases.append(Phase.MUTATE_RELOAD)

    self._settle(token)

    progress.phase(PHASE_LABELS[Phase.REINSTALL])
    engine = PackageReinstallEngine(self.services.installer, progress)
    result.install_failures = engine.install_packages(projects, snapshot, token)
    result.reinstalled_projects = engine.reinstalled
    result.completed_phases.append(Phase.REINSTALL)

  def _restore_all(self, projects: Iterable[Project], progress: ProgressReporter) -> None:
    for project in projects:
      try:
        self.services.restorer.restore(project)
      except Exception as exc:
        progress.warn(f"Restore failed for '{project.name}': {exc}")

  def _remove_and_cache(
    self,
    projects: List[Project],
    snapshot: ProjectPackageSnapshot,
    progress: ProgressReporter,
    token: CancellationToken,
    result: ConversionResult
  ) -> None:
    removal = PackageRemovalEngine(
      self.services.uninstaller,
      progress,
      failure_pause_seconds=self.removal_failure_pause_seconds
    )
    total = len(projects)

    for project in projects:
      token.throw_if_cancellation_requested()
      progress.status(
        f"{progress.state.count}/{total} Retrieving and removing old package format for '{project.name}'"
      )
      packages = [
        PackageRecord(package_id, version)
        for package_id, version in self.services.query.installed_packages(project)
      ]
      identity = resolve_identity(project)
      if identity is None:
        progress.warn(f'{project.name} not modified, missing fullname')
        result.skipped_projects.append(project.name)
      elif identity in snapshot:
        progress.warn(f'{project.name} listed twice in the solution; packages already cached')
      else:
        snapshot.record(identity, packages)
        outcome = removal.remove(project, [package.id for package in packages], token)
        result.removals.append(outcome)
      progress.advance()

  def _refresh_solution(
    self,
    solution: Solution,
    projects: List[Project],
    progress: ProgressReporter,
    result: ConversionResult
  ) -> None:
    mutator = RestoreStyleMutator(progress, skip_existing=self.skip_existing_restore_style)
    try:
      outcome = mutator.refresh_solution(solution, projects)
    except Exception:
      logger.exception('Restore style phase failed')
      progress.warn(MANUAL_RESTORE_STYLE_MESSAGE)
      result.manual_actions.append(MANUAL_RESTORE_STYLE_MESSAGE)
      return
    for name in outcome.failed:
      message = f"Add <RestoreProjectStyle>PackageReference</RestoreProjectStyle> to '{name}' manually."
      progress.warn(message)
      result.manual_actions.append(message)

  def _settle(self, token: CancellationToken) -> None:
    if self.settle_seconds > 0:
      logger.debug('Waiting %.1fs for the host to settle', self.settle_seconds)
      token.wait(self.settle_seconds)
