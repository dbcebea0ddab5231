from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from nuget_converter.config import settings

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

EXIT_CODES = {'completed': 0, 'failed': 1, 'cancelled': 130}


def build_manager(settle_seconds: Optional[float] = None):
  from nuget_converter.conversion.manager import ConversionManager
  from nuget_converter.logging.event_logger import EventLogger

  event_logger = EventLogger(settings.log_dir)
  return ConversionManager(event_logger=event_logger, report_dir=settings.report_dir, settle_seconds=settle_seconds)


def parse_global_args() -> argparse.ArgumentParser:
  parser = argparse.ArgumentParser(prog='nuget-convert', description='packages.config / project.json to PackageReference converter')
  sub = parser.add_subparsers(dest='command', required=True)

  p_check = sub.add_parser('check', help='Report whether a solution still uses legacy package manifests')
  p_check.add_argument('--solution', required=True)
  p_check.add_argument('--json', action='store_true')

  p_convert = sub.add_parser('convert', help='Convert a solution and wait for completion')
  p_convert.add_argument('--solution', required=True)
  p_convert.add_argument('--settle-seconds', type=float, default=None)
  p_convert.add_argument('--skip-existing-restore-style', action='store_true')
  p_convert.add_argument('--json', action='store_true')

  p_report = sub.add_parser('report', help='Show the report of a finished conversion')
  p_report.add_argument('--session-id', required=True)

  p_events = sub.add_parser('events', help='Show recent conversion events')
  p_events.add_argument('--limit', type=int, default=50)
  p_events.add_argument('--session-id')

  return parser


def _solution_path(raw: str) -> Optional[Path]:
  path = Path(raw).expanduser().resolve()
  if not path.is_file():
    print(f'Solution {path} does not exist.', file=sys.stderr)
    return None
  return path


def cmd_check(manager, solution: str, as_json: bool) -> int:
  from nuget_converter.hosts.filesystem import SolutionError
  path = _solution_path(solution)
  if path is None:
    return 2
  try:
    result = manager.check(path)
  except SolutionError as exc:
    print(str(exc), file=sys.stderr)
    return 2
  if as_json:
    print(json.dumps(result, indent=2))
  elif result['needs_conversion']:
    print(f"Solution: {result['solution']}")
    print(f"Projects to convert: {', '.join(result['projects'])}")
  else:
    print(f"Solution: {result['solution']}")
    print('Nothing to convert.')
  return 0


def _print_event(event) -> None:
  if event.field == 'phase':
    print(f'== {event.value}')
  elif event.field == 'status':
    print(f'   {event.value}')
  elif event.field == 'log':
    print(f'     {event.value}')


async def _run_convert(manager, path: Path, ns: argparse.Namespace) -> Dict[str, Any]:
  listener = None if ns.json else _print_event
  session = manager.start_session(
    path,
    skip_existing_restore_style=True if ns.skip_existing_restore_style else None,
    listener=listener
  )
  try:
    await manager.wait(session.session_id)
  except asyncio.CancelledError:
    manager.cancel_session(session.session_id)
    raise
  return manager.get_summary(session.session_id)


def cmd_convert(ns: argparse.Namespace) -> int:
  from nuget_converter.hosts.filesystem import SolutionError
  path = _solution_path(ns.solution)
  if path is None:
    return 2
  manager = build_manager(settle_seconds=ns.settle_seconds)
  try:
    summary = asyncio.run(_run_convert(manager, path, ns))
  except SolutionError as exc:
    print(str(exc), file=sys.stderr)
    return 2
  except KeyboardInterrupt:
    print('Conversion interrupted.', file=sys.stderr)
    return EXIT_CODES['cancelled']
  if ns.json:
    print(json.dumps(summary, indent=2))
  else:
    _print_summary(summary)
  return EXIT_CODES.get(summary['status'], 1)


def _print_summary(summary: Dict[str, Any]) -> None:
  result = summary.get('result') or {}
  print(f"Session {summary['session_id']}: {summary['status']}")
  if summary.get('error'):
    print(f"Error: {summary['error']}")
  skipped: List[str] = result.get('skipped_projects') or []
  if skipped:
    print(f"Skipped (no project path): {', '.join(skipped)}")
  for removal in result.get('removals') or []:
    if not removal['succeeded']:
      print(f"Not uninstalled in {removal['project']}: {', '.join(removal['dropped'])}")
  for project, failures in (result.get('install_failures') or {}).items():
    names = ', '.join(f"{failure['package']['id']} {failure['package']['version']}" for failure in failures)
    print(f'Not reinstalled in {project}: {names}')
  for action in result.get('manual_actions') or []:
    print(f'Manual action: {action}')


def cmd_report(manager, session_id: str) -> int:
  report = manager.load_report(session_id)
  if not report:
    print('Report not found.', file=sys.stderr)
    return 2
  print(json.dumps(report, indent=2))
  return 0


def cmd_events(limit: int, session_id: Optional[str]) -> int:
  from nuget_converter.logging.event_logger import EventLogger
  entries = EventLogger(settings.log_dir).recent(limit, session_id=session_id)
  for entry in entries:
    print(json.dumps(entry))
  return 0


def main(argv: Optional[List[str]] = None) -> int:
  parser = parse_global_args()
  ns = parser.parse_args(argv)
  cmd = ns.command
  if cmd == 'convert':
    return cmd_convert(ns)
  if cmd == 'events':
    return cmd_events(ns.limit, ns.session_id)
  manager = build_manager()
  if cmd == 'check':
    return cmd_check(manager, ns.solution, ns.json)
  if cmd == 'report':
    return cmd_report(manager, ns.session_id)
  return 1


if __name__ == '__main__':
  raise SystemExit(main())
