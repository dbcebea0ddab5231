from typing import Dict, Any, Optional
from pathlib import Path

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from nuget_converter.api.globals import conversion_manager, event_logger
from nuget_converter.api.utils import serialize_session

router = APIRouter()

class SolutionPayload(BaseModel):
  solution_path: str = Field(..., description='Absolute path to the .sln file.')

class ConversionStartPayload(BaseModel):
  solution_path: str = Field(..., description='Absolute path to the .sln file.')
  settle_seconds: Optional[float] = Field(default=None, ge=0.0, description='Pause around the solution reload.')
  skip_existing_restore_style: Optional[bool] = Field(
    default=None,
    description='Leave project files that already declare RestoreProjectStyle untouched.'
  )

class ConversionControlPayload(BaseModel):
  session_id: str

def _solution_path(raw: str) -> Path:
  path = Path(raw).expanduser().resolve()
  if not path.is_file() or path.suffix.lower() != '.sln':
    raise HTTPException(status_code=400, detail='Solution path does not point to a .sln file.')
  return path

@router.post('/conversion/check')
async def conversion_check(payload: SolutionPayload) -> Dict[str, Any]:
  return conversion_manager.check(_solution_path(payload.solution_path))

@router.post('/conversion/start')
async def conversion_start(payload: ConversionStartPayload) -> Dict[str, Any]:
  session = conversion_manager.start_session(
    _solution_path(payload.solution_path),
    settle_seconds=payload.settle_seconds,
    skip_existing_restore_style=payload.skip_existing_restore_style
  )
  return {'session_id': session.session_id, 'session': serialize_session(session)}

@router.post('/conversion/cancel')
async def conversion_cancel(payload: ConversionControlPayload) -> Dict[str, Any]:
  if not conversion_manager.cancel_session(payload.session_id):
    raise HTTPException(status_code=404, detail='Session not found or already finished.')
  return {'session_id': payload.session_id, 'status': 'cancelling'}

@router.get('/conversion/status/{session_id}')
async def conversion_status(session_id: str) -> Dict[str, Any]:
  summary = conversion_manager.get_summary(session_id)
  if not summary:
    raise HTTPException(status_code=404, detail='Session not found.')
  return {'session_id': session_id, 'summary': summary}

@router.get('/conversion/report/{session_id}')
async def conversion_report(session_id: str) -> Dict[str, Any]:
  report = conversion_manager.load_report(session_id)
  if not report:
    raise HTTPException(status_code=404, detail='Report not available yet.')
  return report

@router.get('/conversion/events')
async def conversion_events(limit: int = 200, session_id: Optional[str] = None) -> Dict[str, Any]:
  return {'entries': event_logger.recent(limit, session_id=session_id)}
