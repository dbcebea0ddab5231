import platform
import shutil
import sys
from typing import Any, Dict

import psutil
from fastapi import APIRouter

from nuget_converter.api.globals import conversion_manager
from nuget_converter.config import settings

router = APIRouter()


@router.get('/health')
async def health() -> Dict[str, Any]:
  return {'status': 'ok', 'active_sessions': conversion_manager.active_sessions()}


@router.get('/system/info')
async def system_info() -> Dict[str, Any]:
  memory = psutil.virtual_memory()
  return {
    'platform': platform.platform(),
    'python_version': sys.version.split()[0],
    'cpu_count': psutil.cpu_count(logical=True),
    'cpu_percent': psutil.cpu_percent(interval=None),
    'memory_percent': round(memory.percent, 1),
    'nuget': settings.nuget_exe or shutil.which('nuget'),
    'data_dir': str(settings.data_dir),
    'settle_seconds': settings.settle_seconds
  }
