from typing import Any, Dict, Optional

from nuget_converter.conversion.manager import ConversionSession


def serialize_session(session: Optional[ConversionSession]) -> Optional[Dict[str, Any]]:
  if not session:
    return None
  return {
    'session_id': session.session_id,
    'solution': str(session.solution_path),
    'status': session.status,
    'progress': session.progress.as_dict(),
    'error': session.error
  }
