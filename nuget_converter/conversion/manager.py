from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from nuget_converter.config import settings
from nuget_converter.conversion.cancellation import CancellationToken, ConversionCancelled
from nuget_converter.conversion.eligibility import eligible_projects
from nuget_converter.conversion.host import Solution
from nuget_converter.conversion.models import ConversionProgress, ConversionResult, ProgressEvent
from nuget_converter.conversion.orchestrator import ConversionOrchestrator, PackageServices
from nuget_converter.conversion.progress import ProgressChannel
from nuget_converter.hosts.packages import open_solution

logger = logging.getLogger(__name__)

LOG_HISTORY = 200

SolutionFactory = Callable[[Path], Tuple[Solution, PackageServices]]
ProgressListener = Callable[[ProgressEvent], None]


@dataclass
class ConversionSession:
  session_id: str
  solution_path: Path
  token: CancellationToken = field(default_factory=CancellationToken)
  progress: ConversionProgress = field(default_factory=ConversionProgress)
  status: str = 'running'  # running, completed, cancelled, failed
  result: Optional[ConversionResult] = None
  error: Optional[str] = None
  log_lines: List[str] = field(default_factory=list)
  created_at: float = field(default_factory=time.time)
  updated_at: float = field(default_factory=time.time)
  task: Optional[asyncio.Task] = None

  @property
  def finished(self) -> bool:
    return self.status != 'running'


class ConversionManager:
  """Runs conversions as background sessions and keeps their reports."""

  def __init__(
    self,
    event_logger=None,
    report_dir: Optional[Path] = None,
    solution_factory: Optional[SolutionFactory] = None,
    settle_seconds: Optional[float] = None
  ) -> None:
    self.event_logger = event_logger
    self.report_dir = Path(report_dir or settings.report_dir)
    self.report_dir.mkdir(parents=True, exist_ok=True)
    self.solution_factory = solution_factory or (lambda path: open_solution(path, nuget_exe=settings.nuget_exe))
    self.settle_seconds = settle_seconds
    self.sessions: Dict[str, ConversionSession] = {}

  def active_sessions(self) -> List[str]:
    return [session_id for session_id, session in self.sessions.items() if not session.finished]

  def check(self, solution_path: Path) -> Dict[str, Any]:
    solution, _ = self.solution_factory(Path(solution_path))
    projects = eligible_projects(solution)
    return {
      'solution': solution.full_name,
      'needs_conversion': bool(projects),
      'projects': [project.name for project in projects]
    }

  def start_session(
    self,
    solution_path: Path,
    settle_seconds: Optional[float] = None,
    skip_existing_restore_style: Optional[bool] = None,
    listener: Optional[ProgressListener] = None
  ) -> ConversionSession:
    solution, services = self.solution_factory(Path(solution_path))
    session = ConversionSession(session_id=str(uuid.uuid4()), solution_path=Path(solution.full_name))
    orchestrator = ConversionOrchestrator(
      services,
      settle_seconds=self.settle_seconds if settle_seconds is None else settle_seconds,
      skip_existing_restore_style=skip_existing_restore_style
    )
    self.sessions[session.session_id] = session
    session.task = asyncio.create_task(self._run_session(session, orchestrator, solution, listener))
    logger.info('Started conversion session %s for %s', session.session_id, session.solution_path)
    if self.event_logger:
      self.event_logger.log_event(
        'session_start',
        'Conversion session started',
        {'session_id': session.session_id, 'solution': str(session.solution_path)}
      )
    return session

  async def _run_session(
    self,
    session: ConversionSession,
    orchestrator: ConversionOrchestrator,
    solution: Solution,
    listener: Optional[ProgressListener]
  ) -> None:
    channel = ProgressChannel()
    pump = asyncio.create_task(self._pump(session, channel, listener))
    # Status only leaves 'running' once the report is about to be written.
    status = 'failed'
    work = asyncio.ensure_future(orchestrator.convert(solution, session.token, channel))
    try:
      session.result = await asyncio.shield(work)
      status = 'completed'
    except ConversionCancelled as exc:
      logger.info('Conversion session %s cancelled', session.session_id)
      status = 'cancelled'
      session.result = exc.result
    except asyncio.CancelledError:
      # The worker thread cannot be interrupted; stop it at its next checkpoint
      # and keep what it got done before the report is written.
      session.token.cancel()
      session.result = await self._wait_for_worker(session, work)
      status = 'completed' if session.result and not session.result.cancelled else 'cancelled'
      raise
    except Exception as err:
      logger.exception('Conversion session %s failed: %s', session.session_id, err)
      session.error = str(err)
      if self.event_logger:
        self.event_logger.log_error('session_failed', {'session_id': session.session_id, 'error': str(err)})
    finally:
      channel.close()
      await pump
      session.status = status
      session.updated_at = time.time()
      self._persist_report(session)
      if self.event_logger:
        self.event_logger.log_event(
          'session_end',
          f'Conversion session {session.status}',
          {'session_id': session.session_id, 'status': session.status}
        )

  async def _wait_for_worker(self, session: ConversionSession, work: asyncio.Future) -> Optional[ConversionResult]:
    try:
      return await work
    except ConversionCancelled as exc:
      return exc.result
    except Exception as err:
      logger.exception('Conversion session %s failed while cancelling: %s', session.session_id, err)
      session.error = str(err)
      return None

  async def _pump(self, session: ConversionSession, channel: ProgressChannel, listener: Optional[ProgressListener]) -> None:
    async for event in channel.events():
      session.progress.apply(event)
      session.updated_at = time.time()
      if event.field == 'log':
        session.log_lines.append(event.value)
        del session.log_lines[:-LOG_HISTORY]
        if self.event_logger:
          self.event_logger.log_event('conversion_log', event.value, {'session_id': session.session_id})
      if listener:
        try:
          listener(event)
        except Exception:
          logger.exception('Progress listener failed')

  def cancel_session(self, session_id: str) -> bool:
    session = self.sessions.get(session_id)
    if not session or session.finished:
      return False
    session.token.cancel()
    return True

  async def wait(self, session_id: str) -> ConversionSession:
    session = self.sessions[session_id]
    if session.task:
      await session.task
    return session

  def get_summary(self, session_id: str) -> Optional[Dict[str, Any]]:
    session = self.sessions.get(session_id)
    if session:
      return self._session_payload(session)
    return self.load_report(session_id)

  def load_report(self, session_id: str) -> Optional[Dict[str, Any]]:
    path = self._report_path(session_id)
    if not path.exists():
      return None
    try:
      return json.loads(path.read_text(encoding='utf-8'))
    except json.JSONDecodeError:
      logger.warning('Malformed conversion report: %s', path)
      return None

  def _report_path(self, session_id: str) -> Path:
    return self.report_dir / f'{Path(session_id).name}.json'

  def _session_payload(self, session: ConversionSession) -> Dict[str, Any]:
    return {
      'session_id': session.session_id,
      'solution': str(session.solution_path),
      'status': session.status,
      'error': session.error,
      'progress': session.progress.as_dict(),
      'log': session.log_lines[-20:],
      'result': session.result.summary() if session.result else None,
      'created_at': session.created_at,
      'updated_at': session.updated_at
    }

  def _persist_report(self, session: ConversionSession) -> None:
    payload = self._session_payload(session)
    payload['log'] = session.log_lines
    try:
      self._report_path(session.session_id).write_text(json.dumps(payload, indent=2), encoding='utf-8')
    except OSError as exc:
      logger.warning('Could not write report for %s: %s', session.session_id, exc)
      if self.event_logger:
        self.event_logger.log_error('report_write_failed', {'session_id': session.session_id, 'error': str(exc)})

  async def close(self) -> None:
    for session in self.sessions.values():
      if not session.finished:
        session.token.cancel()
    tasks = [session.task for session in self.sessions.values() if session.task and not session.task.done()]
    if tasks:
      await asyncio.gather(*tasks, return_exceptions=True)
