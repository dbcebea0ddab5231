"""Entry point for the converter HTTP service."""
import argparse
import logging
from typing import List, Optional

import uvicorn

from nuget_converter.config import settings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
  parser = argparse.ArgumentParser(
    prog='nuget-convert-server',
    description='HTTP service that runs PackageReference conversions in the background.'
  )
  parser.add_argument('--host', default=settings.backend_host)
  parser.add_argument('--port', type=int, default=settings.backend_port)
  parser.add_argument('--log-level', type=str.lower, default=settings.log_level)
  parser.add_argument('--settle-seconds', type=float, default=settings.settle_seconds,
                      help='Default pause before and after the solution reload.')
  parser.add_argument('--nuget', dest='nuget_exe', default=settings.nuget_exe,
                      help='nuget executable used for restores; looked up on PATH when omitted.')
  parser.add_argument('--reload', action='store_true', help='Restart on code changes (development only).')
  return parser


def main(argv: Optional[List[str]] = None) -> None:
  args = build_parser().parse_args(argv)
  # Only takes effect in-process; --reload workers read the environment instead.
  settings.settle_seconds = args.settle_seconds
  settings.nuget_exe = args.nuget_exe
  logger.info('Reports and event log under %s', settings.data_dir)
  uvicorn.run(
    'nuget_converter.api.app:app',
    host=args.host,
    port=args.port,
    log_level=args.log_level,
    reload=args.reload
  )


if __name__ == '__main__':
  main()
