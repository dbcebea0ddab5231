from __future__ import annotations

import json
import logging
import threading
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Deque, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)


class EventLogger:
  """Append-only JSON lines log shared by the API, the CLI and conversion sessions."""

  def __init__(self, base_dir: Path, filename: str = 'events.log') -> None:
    self.base_dir = Path(base_dir)
    self.base_dir.mkdir(parents=True, exist_ok=True)
    self.log_file = self.base_dir / filename
    self._lock = threading.Lock()

  def log_event(self, category: str, message: str, payload: Dict[str, Any] | None = None) -> Dict[str, Any]:
    entry = {
      'timestamp': datetime.now(timezone.utc).isoformat(),
      'category': category,
      'message': message,
      'payload': payload or {}
    }
    line = json.dumps(entry, default=str)
    with self._lock, self.log_file.open('a', encoding='utf-8') as handle:
      handle.write(line + '\n')
    return entry

  def log_error(self, message: str, payload: Dict[str, Any] | None = None) -> Dict[str, Any]:
    return self.log_event('error', message, payload)

  def entries(self) -> Iterator[Dict[str, Any]]:
    if not self.log_file.exists():
      return
    with self.log_file.open(encoding='utf-8') as handle:
      for line in handle:
        line = line.strip()
        if not line:
          continue
        try:
          yield json.loads(line)
        except json.JSONDecodeError:
          logger.warning('Skipping malformed event line in %s', self.log_file)

  def recent(self, limit: int = 200, session_id: Optional[str] = None) -> List[Dict[str, Any]]:
    if limit <= 0:
      return []
    tail: Deque[Dict[str, Any]] = deque(maxlen=limit)
    for entry in self.entries():
      if session_id and entry.get('payload', {}).get('session_id') != session_id:
        continue
      tail.append(entry)
    return list(tail)
