from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple


class Phase(Enum):
  ENUMERATE = auto()
  RESTORE = auto()
  SNAPSHOT_REMOVE = auto()
  CLEAN = auto()
  MUTATE_RELOAD = auto()
  REINSTALL = auto()


PHASE_ORDER = [
  Phase.ENUMERATE,
  Phase.RESTORE,
  Phase.SNAPSHOT_REMOVE,
  Phase.CLEAN,
  Phase.MUTATE_RELOAD,
  Phase.REINSTALL
]


PHASE_LABELS = {
  Phase.ENUMERATE: '1/6: Get Projects',
  Phase.RESTORE: '2/6: Restore packages in the projects',
  Phase.SNAPSHOT_REMOVE: '3/6: Remove and cache Packages',
  Phase.CLEAN: '4/6: Remove old dependencyfiles',
  Phase.MUTATE_RELOAD: "5/6: Add new 'use packagereference' property to projectfiles",
  Phase.REINSTALL: '6/6: Add packages as packagereferences to projectfiles'
}


@dataclass(frozen=True)
class PackageRecord:
  id: str
  version: str

  def as_dict(self) -> Dict[str, str]:
    return {'id': self.id, 'version': self.version}


class ProjectPackageSnapshot:
  """Installed packages per project identity, keyed case-insensitively."""

  def __init__(self) -> None:
    self._entries: Dict[str, Tuple[str, Tuple[PackageRecord, ...]]] = {}

  def record(self, identity: str, packages: Iterable[PackageRecord]) -> None:
    key = identity.lower()
    if key in self._entries:
      raise ValueError(f'Snapshot already holds packages for {identity}')
    self._entries[key] = (identity, tuple(packages))

  def get(self, identity: str) -> Optional[Sequence[PackageRecord]]:
    entry = self._entries.get(identity.lower())
    return entry[1] if entry else None

  def take(self, identity: str) -> Optional[Sequence[PackageRecord]]:
    entry = self._entries.pop(identity.lower(), None)
    return entry[1] if entry else None

  def identities(self) -> List[str]:
    return [identity for identity, _ in self._entries.values()]

  def __contains__(self, identity: object) -> bool:
    return isinstance(identity, str) and identity.lower() in self._entries

  def __len__(self) -> int:
    return len(self._entries)

  def __iter__(self) -> Iterator[str]:
    return iter(self.identities())

  def as_dict(self) -> Dict[str, List[Dict[str, str]]]:
    return {
      identity: [package.as_dict() for package in packages]
      for identity, packages in self._entries.values()
    }


class UninstallStatus(Enum):
  REMOVED = auto()
  INVALID_OPERATION = auto()  # not currently safe to remove, e.g. still depended upon
  FAILED = auto()


@dataclass(frozen=True)
class UninstallResult:
  status: UninstallStatus
  message: Optional[str] = None

  @property
  def succeeded(self) -> bool:
    return self.status == UninstallStatus.REMOVED

  @classmethod
  def removed(cls) -> 'UninstallResult':
    return cls(UninstallStatus.REMOVED)

  @classmethod
  def invalid_operation(cls, message: Optional[str] = None) -> 'UninstallResult':
    return cls(UninstallStatus.INVALID_OPERATION, message)

  @classmethod
  def failed(cls, message: Optional[str] = None) -> 'UninstallResult':
    return cls(UninstallStatus.FAILED, message)


@dataclass
class RemovalOutcome:
  project: str
  succeeded: bool
  attempts: int
  attempt_limit_reached: bool
  dropped: List[str] = field(default_factory=list)
  retry_counts: Dict[str, int] = field(default_factory=dict)


@dataclass
class InstallFailure:
  package: PackageRecord
  error: str


@dataclass(frozen=True)
class ProgressEvent:
  field: str  # phase, total, count, is_indeterminate, status, log
  value: Any


PROGRESS_FIELDS = ('phase', 'total', 'count', 'is_indeterminate', 'status', 'log')


@dataclass
class ConversionProgress:
  phase: str = ''
  total: int = 0
  count: int = 0
  is_indeterminate: bool = True
  status: str = ''
  log: str = ''

  def apply(self, event: ProgressEvent) -> None:
    if event.field not in PROGRESS_FIELDS:
      raise ValueError(f'Unknown progress field: {event.field}')
    setattr(self, event.field, event.value)

  @property
  def percentage(self) -> float:
    if self.is_indeterminate or self.total <= 0:
      return 0.0
    return min(1.0, self.count / self.total)

  def as_dict(self) -> Dict[str, Any]:
    return {
      'phase': self.phase,
      'total': self.total,
      'count': self.count,
      'is_indeterminate': self.is_indeterminate,
      'status': self.status,
      'log': self.log,
      'percentage': self.percentage
    }


@dataclass
class ConversionResult:
  projects: List[str] = field(default_factory=list)
  snapshot: Dict[str, List[Dict[str, str]]] = field(default_factory=dict)
  skipped_projects: List[str] = field(default_factory=list)
  removals: List[RemovalOutcome] = field(default_factory=list)
  install_failures: Dict[str, List[InstallFailure]] = field(default_factory=dict)
  reinstalled_projects: List[str] = field(default_factory=list)
  manual_actions: List[str] = field(default_factory=list)
  completed_phases: List[Phase] = field(default_factory=list)
  cancelled: bool = False

  def summary(self) -> Dict[str, Any]:
    return {
      'projects': self.projects,
      'snapshot': self.snapshot,
      'skipped_projects': self.skipped_projects,
      'removals': [
        {
          'project': outcome.project,
          'succeeded': outcome.succeeded,
          'attempts': outcome.attempts,
          'attempt_limit_reached': outcome.attempt_limit_reached,
          'dropped': outcome.dropped
        }
        for outcome in self.removals
      ],
      'install_failures': {
        project: [{'package': failure.package.as_dict(), 'error': failure.error} for failure in failures]
        for project, failures in self.install_failures.items()
      },
      'reinstalled_projects': self.reinstalled_projects,
      'manual_actions': self.manual_actions,
      'completed_phases': [phase.name for phase in self.completed_phases],
      'cancelled': self.cancelled
    }
