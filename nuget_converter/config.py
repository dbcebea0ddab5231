from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class Settings:
  """Global converter configuration derived from environment variables."""

  backend_host: str = os.getenv('CONVERTER_HOST', '127.0.0.1')
  backend_port: int = int(os.getenv('CONVERTER_PORT', '6120'))
  log_level: str = os.getenv('CONVERTER_LOG_LEVEL', 'info')
  data_dir: Path = Path(os.getenv('CONVERTER_DATA_DIR', './data')).resolve()
  settle_seconds: float = float(os.getenv('CONVERTER_SETTLE_SECONDS', '3'))
  removal_failure_pause_seconds: float = float(os.getenv('CONVERTER_REMOVAL_FAILURE_PAUSE', '2'))
  skip_existing_restore_style: bool = os.getenv('CONVERTER_SKIP_EXISTING_RESTORE_STYLE', 'false').lower() == 'true'
  nuget_exe: Optional[str] = os.getenv('CONVERTER_NUGET_EXE')

  @property
  def log_dir(self) -> Path:
    return self.data_dir / 'logs'

  @property
  def report_dir(self) -> Path:
    return self.data_dir / 'reports'

  def ensure_directories(self) -> None:
    self.data_dir.mkdir(parents=True, exist_ok=True)
    self.log_dir.mkdir(parents=True, exist_ok=True)
    self.report_dir.mkdir(parents=True, exist_ok=True)


settings = Settings()
settings.ensure_directories()
