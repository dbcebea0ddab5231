import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from nuget_converter.api.globals import conversion_manager, event_logger
from nuget_converter.api.routes import conversion, system
from nuget_converter.config import settings
from nuget_converter.hosts.filesystem import SolutionError

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

API_VERSION = '0.1.0'

app = FastAPI(
  title='PackageReference Converter',
  version=API_VERSION,
  description='Moves packages.config and project.json solutions to PackageReference items.'
)

app.include_router(system.router, tags=['System'])
app.include_router(conversion.router, tags=['Conversion'])


@app.exception_handler(SolutionError)
async def solution_error_handler(request: Request, exc: SolutionError):
  logger.warning('Solution error on %s: %s', request.url.path, exc)
  return JSONResponse(status_code=400, content={'message': 'Invalid solution', 'detail': str(exc)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
  logger.error('Unhandled error on %s', request.url.path, exc_info=exc)
  event_logger.log_error('api_error', {'path': request.url.path, 'error': str(exc)})
  return JSONResponse(status_code=500, content={'message': 'Internal Server Error', 'detail': str(exc)})


@app.on_event('startup')
async def on_startup() -> None:
  logger.info('Converter API on %s:%s, data in %s', settings.backend_host, settings.backend_port, settings.data_dir)


@app.on_event('shutdown')
async def on_shutdown() -> None:
  await conversion_manager.close()


@app.get('/')
async def root():
  return {'message': f'PackageReference Converter API v{API_VERSION}', 'docs': '/docs'}
