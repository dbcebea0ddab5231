from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Callable, Iterable, List, Optional

from nuget_converter.conversion.models import ConversionProgress, ProgressEvent

logger = logging.getLogger(__name__)

ProgressSink = Callable[[ProgressEvent], None]

_CLOSED = object()


class ProgressChannel:
  """Hands progress events from the worker thread to an asyncio consumer."""

  def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
    self._loop = loop or asyncio.get_running_loop()
    self._queue: asyncio.Queue = asyncio.Queue()
    self._closed = False

  def publish(self, event: ProgressEvent) -> None:
    self._post(event)

  __call__ = publish

  def close(self) -> None:
    if self._closed:
      return
    self._closed = True
    self._post(_CLOSED)

  def _post(self, item: object) -> None:
    try:
      self._loop.call_soon_threadsafe(self._queue.put_nowait, item)
    except RuntimeError:
      logger.debug('Progress consumer loop is closed; dropping %r', item)

  async def events(self) -> AsyncIterator[ProgressEvent]:
    while True:
      item = await self._queue.get()
      if item is _CLOSED:
        return
      yield item


class ProgressReporter:
  """Single writer of conversion progress; fans events out to the sinks."""

  def __init__(self, sinks: Iterable[ProgressSink] = ()) -> None:
    self.state = ConversionProgress()
    self._sinks: List[ProgressSink] = list(sinks)

  def add_sink(self, sink: ProgressSink) -> None:
    self._sinks.append(sink)

  def _emit(self, field: str, value) -> None:
    event = ProgressEvent(field, value)
    self.state.apply(event)
    for sink in self._sinks:
      try:
        sink(event)
      except Exception:
        logger.exception('Progress sink failed for %s', field)

  def phase(self, label: str) -> None:
    logger.info('Phase %s', label)
    self._emit('phase', label)

  def set_total(self, total: int) -> None:
    self._emit('total', total)

  def set_count(self, count: int) -> None:
    self._emit('count', count)

  def advance(self) -> None:
    self._emit('count', self.state.count + 1)

  def set_indeterminate(self, indeterminate: bool) -> None:
    self._emit('is_indeterminate', indeterminate)

  def status(self, message: str) -> None:
    logger.info(message)
    self._emit('status', message)

  def log(self, message: str) -> None:
    logger.info(message)
    self._emit('log', message)

  def warn(self, message: str) -> None:
    logger.warning(message)
    self._emit('log', message)
