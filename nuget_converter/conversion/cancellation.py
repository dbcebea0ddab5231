from __future__ import annotations

import threading
from typing import Optional


class ConversionCancelled(Exception):
  """Raised at a cancellation checkpoint once cancellation was requested."""

  def __init__(self, message: str = 'Conversion was cancelled', result=None) -> None:
    super().__init__(message)
    self.result = result


class CancellationToken:
  """Cooperative cancellation signal shared between a caller and the pipeline."""

  def __init__(self) -> None:
    self._event = threading.Event()

  @property
  def cancellation_requested(self) -> bool:
    return self._event.is_set()

  def cancel(self) -> None:
    self._event.set()

  def throw_if_cancellation_requested(self) -> None:
    if self._event.is_set():
      raise ConversionCancelled('Conversion was cancelled')

  def wait(self, timeout: Optional[float]) -> bool:
    """Block up to ``timeout`` seconds; returns True if cancelled meanwhile."""
    return self._event.wait(timeout)
