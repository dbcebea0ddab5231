from __future__ import annotations

import logging
import time
from collections import deque
from typing import Callable, Deque, Dict, Iterable, Optional

from nuget_converter.conversion.cancellation import CancellationToken
from nuget_converter.conversion.host import Project, PackageUninstaller
from nuget_converter.conversion.models import RemovalOutcome, UninstallResult, UninstallStatus
from nuget_converter.conversion.progress import ProgressReporter

logger = logging.getLogger(__name__)


def should_requeue(status: UninstallStatus, failures: int, max_retry: int) -> bool:
  if status == UninstallStatus.REMOVED:
    return False
  return failures < max_retry


class PackageRemovalEngine:
  """Uninstalls a project's packages, retrying failures in later passes.

  Uninstall order matters when packages depend on each other. Instead of
  ordering them up front, a failed package goes to the back of the queue so
  its dependents get a chance to be removed first. With ``n`` packages each
  one may fail ``n`` times before being dropped and the whole pass is capped
  at ``(n + 1) * n`` attempts.
  """

  def __init__(
    self,
    uninstaller: PackageUninstaller,
    progress: ProgressReporter,
    failure_pause_seconds: float = 0.0,
    sleep: Callable[[float], None] = time.sleep
  ) -> None:
    self.uninstaller = uninstaller
    self.progress = progress
    self.failure_pause_seconds = failure_pause_seconds
    self._sleep = sleep

  def remove_packages(self, project: Project, ids: Iterable[str], token: Optional[CancellationToken] = None) -> bool:
    return self.remove(project, ids, token).succeeded

  def remove(self, project: Project, ids: Iterable[str], token: Optional[CancellationToken] = None) -> RemovalOutcome:
    token = token or CancellationToken()
    queue: Deque[str] = deque(ids)
    max_retry = len(queue) + 1
    max_attempts = max_retry * len(queue)
    retry_counts: Dict[str, int] = {}
    dropped = []
    attempts = 0

    while queue and attempts < max_attempts:
      attempts += 1
      token.throw_if_cancellation_requested()
      package_id = queue.popleft()

      self.progress.log(f'Trying to uninstall {package_id} (attempt {attempts})')
      result = self._uninstall(project, package_id)
      if result.succeeded:
        self.progress.log(f'Uninstalled {package_id}')
        continue

      if result.status == UninstallStatus.INVALID_OPERATION:
        self.progress.log(f'{package_id} cannot be uninstalled yet')
      else:
        self.progress.log(f'Failed to uninstall {package_id}')
      if result.message:
        logger.debug('Uninstall of %s in %s failed: %s', package_id, project.name, result.message)

      key = package_id.lower()
      retry_counts[key] = retry_counts.get(key, 0) + 1
      if should_requeue(result.status, retry_counts[key], max_retry):
        self.progress.log(f'{package_id} added back to queue')
        queue.append(package_id)
      else:
        dropped.append(package_id)

    outcome = RemovalOutcome(
      project=project.name,
      succeeded=not queue and not dropped,
      attempts=attempts,
      attempt_limit_reached=bool(queue),
      dropped=dropped + list(queue),
      retry_counts=retry_counts
    )
    if not outcome.succeeded:
      self.progress.warn(f'Could not uninstall all packages in {project.name}')
      if self.failure_pause_seconds > 0:
        self._sleep(self.failure_pause_seconds)
    return outcome

  def _uninstall(self, project: Project, package_id: str) -> UninstallResult:
    try:
      return self.uninstaller.uninstall(project, package_id)
    except Exception as exc:
      return UninstallResult.failed(str(exc))
