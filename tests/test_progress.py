"""Tests for progress state, fan-out and the thread to asyncio channel."""

import asyncio

import pytest

from nuget_converter.conversion.cancellation import CancellationToken, ConversionCancelled
from nuget_converter.conversion.models import ConversionProgress, PackageRecord, ProgressEvent, ProjectPackageSnapshot
from nuget_converter.conversion.progress import ProgressChannel, ProgressReporter


class TestConversionProgress:
  def test_apply_updates_field(self):
    progress = ConversionProgress()
    progress.apply(ProgressEvent('total', 5))
    progress.apply(ProgressEvent('count', 2))
    progress.apply(ProgressEvent('is_indeterminate', False))

    assert progress.percentage == pytest.approx(0.4)
    assert progress.as_dict()['total'] == 5

  def test_indeterminate_progress_has_no_percentage(self):
    progress = ConversionProgress(total=5, count=3)
    assert progress.percentage == 0.0

  def test_unknown_field_is_rejected(self):
    with pytest.raises(ValueError):
      ConversionProgress().apply(ProgressEvent('eta', 10))


class TestProjectPackageSnapshot:
  def test_lookup_is_case_insensitive(self):
    snapshot = ProjectPackageSnapshot()
    snapshot.record('C:/src/Core/Core.csproj', [PackageRecord('A', '1.0')])

    assert 'c:/SRC/core/core.csproj' in snapshot
    assert snapshot.get('C:/SRC/CORE/CORE.CSPROJ') == (PackageRecord('A', '1.0'),)
    assert snapshot.identities() == ['C:/src/Core/Core.csproj']

  def test_duplicate_identity_is_rejected(self):
    snapshot = ProjectPackageSnapshot()
    snapshot.record('Core.csproj', [])

    with pytest.raises(ValueError):
      snapshot.record('core.csproj', [])

  def test_take_consumes_entry(self):
    snapshot = ProjectPackageSnapshot()
    snapshot.record('Core.csproj', [PackageRecord('A', '1.0')])

    assert snapshot.take('core.csproj') == (PackageRecord('A', '1.0'),)
    assert snapshot.take('core.csproj') is None
    assert len(snapshot) == 0


class TestCancellationToken:
  def test_throw_after_cancel(self):
    token = CancellationToken()
    token.throw_if_cancellation_requested()

    token.cancel()

    assert token.cancellation_requested
    with pytest.raises(ConversionCancelled):
      token.throw_if_cancellation_requested()

  def test_wait_returns_early_when_cancelled(self):
    token = CancellationToken()
    token.cancel()

    assert token.wait(30) is True

  def test_wait_times_out(self):
    assert CancellationToken().wait(0.01) is False


class TestProgressReporter:
  def test_events_reach_every_sink_and_state(self):
    first, second = [], []
    reporter = ProgressReporter([first.append])
    reporter.add_sink(second.append)

    reporter.set_count(1)
    reporter.advance()
    reporter.status('Working')

    assert reporter.state.count == 2
    assert reporter.state.status == 'Working'
    assert first == second
    assert [event.field for event in first] == ['count', 'count', 'status']

  def test_failing_sink_does_not_stop_others(self):
    received = []

    def broken(event):
      raise RuntimeError('sink down')

    reporter = ProgressReporter([broken, received.append])
    reporter.log('hello')

    assert received == [ProgressEvent('log', 'hello')]

  def test_warn_is_published_as_log(self):
    received = []
    ProgressReporter([received.append]).warn('careful')

    assert received == [ProgressEvent('log', 'careful')]


class TestProgressChannel:
  @pytest.mark.asyncio
  async def test_events_published_from_worker_thread_arrive_in_order(self):
    channel = ProgressChannel()
    reporter = ProgressReporter([channel])

    def work():
      reporter.phase('1/6: Get Projects')
      reporter.set_total(3)
      reporter.log('done')
      channel.close()

    await asyncio.to_thread(work)
    received = [event async for event in channel.events()]

    assert received == [
      ProgressEvent('phase', '1/6: Get Projects'),
      ProgressEvent('total', 3),
      ProgressEvent('log', 'done')
    ]

  @pytest.mark.asyncio
  async def test_close_is_idempotent(self):
    channel = ProgressChannel()
    channel.publish(ProgressEvent('status', 'x'))
    channel.close()
    channel.close()

    received = [event async for event in channel.events()]

    assert received == [ProgressEvent('status', 'x')]
