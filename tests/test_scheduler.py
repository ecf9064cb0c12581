"""Tests for the push scheduler loop and its failure handling."""
import logging
import threading
import time

import pytest
from prometheus_client import CollectorRegistry
from prometheus_client.samples import Sample

from rwpusher import wire
from rwpusher.client import RemoteWriteClient
from rwpusher.errors import GatherError, RemoteRejected, TransportError
from rwpusher.metrics import PusherMetrics, ServiceMetrics
from rwpusher.registry import RegistryGatherer
from rwpusher.scheduler import PushScheduler
from rwpusher.series import ErrorKind, MetricFamily, MetricType, PusherState
from rwpusher.wire import decode_write_request, decompress


class FakeGatherer:
    def __init__(self, families=None, error=None):
        self.families = families if families is not None else [
            MetricFamily("alert", MetricType.GAUGE, [Sample("alert", {"reason": "test"}, 1, None)]),
        ]
        self.error = error
        self.calls = 0

    def gather(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.families


class BlockingGatherer(FakeGatherer):
    """Blocks inside gather() until released."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def gather(self):
        self.entered.set()
        self.release.wait(5)
        return super().gather()


class FakeClient:
    def __init__(self, error=None):
        self.payloads = []
        self.error = error

    def store(self, payload):
        if self.error is not None:
            raise self.error
        self.payloads.append(payload)


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_push_once_delivers_snapshot():
    client = FakeClient()
    pusher = PushScheduler(FakeGatherer(), client, interval_s=1)

    outcome = pusher.push_once()

    assert outcome.success
    assert outcome.series_count == 1
    assert outcome.error_kind is None
    assert pusher.state is PusherState.IDLE
    assert pusher.push_count == 1
    series = decode_write_request(decompress(client.payloads[0]))
    assert series[0].name == "alert"
    assert series[0].labels == (("reason", "test"),)


@pytest.mark.parametrize("gatherer, client, kind", [
    (FakeGatherer(error=GatherError("registry down")), FakeClient(), ErrorKind.GATHER),
    (
        FakeGatherer([MetricFamily("x", "histogram", [Sample("x_bucket", {}, 1, None)])]),
        FakeClient(),
        ErrorKind.EXTRACTION,
    ),
    (FakeGatherer(), FakeClient(TransportError("connection refused")), ErrorKind.TRANSPORT),
    (FakeGatherer(), FakeClient(RemoteRejected(500, "boom")), ErrorKind.REMOTE_REJECTED),
])
def test_stage_failures_skip_cycle(gatherer, client, kind):
    pusher = PushScheduler(gatherer, client, interval_s=1)

    outcome = pusher.push_once()

    assert not outcome.success
    assert outcome.error_kind is kind
    assert client.payloads == []
    assert pusher.state is PusherState.IDLE
    assert pusher.last_outcome is outcome


def test_compress_failure_skips_cycle(monkeypatch):
    def broken_compress(data):
        raise RuntimeError("no")

    monkeypatch.setattr(wire.snappy, "compress", broken_compress)
    client = FakeClient()

    outcome = PushScheduler(FakeGatherer(), client, interval_s=1).push_once()

    assert outcome.error_kind is ErrorKind.COMPRESS
    assert outcome.series_count == 1
    assert client.payloads == []


def test_encode_failure_skips_cycle():
    """A timestamp beyond the int64 range fails encoding and nothing is sent."""
    families = [MetricFamily("alert", MetricType.GAUGE, [Sample("alert", {}, 1, 1e16)])]
    client = FakeClient()
    pusher = PushScheduler(FakeGatherer(families), client, interval_s=1)

    outcome = pusher.push_once()

    assert not outcome.success
    assert outcome.error_kind is ErrorKind.ENCODE
    assert outcome.series_count == 1
    assert client.payloads == []
    assert pusher.state is PusherState.IDLE


@pytest.mark.parametrize("family", [
    MetricFamily("alert", MetricType.GAUGE, 42),
    MetricFamily(None, MetricType.GAUGE, [Sample("alert", {}, 1, None)]),
])
def test_malformed_family_shape_skips_cycle(family):
    client = FakeClient()
    pusher = PushScheduler(FakeGatherer([family]), client, interval_s=1)

    outcome = pusher.push_once()

    assert not outcome.success
    assert outcome.error_kind is ErrorKind.EXTRACTION
    assert client.payloads == []
    assert pusher.push_count == 1
    assert pusher.last_outcome is outcome
    assert pusher.state is PusherState.IDLE


def test_one_log_line_per_cycle(caplog):
    pusher = PushScheduler(FakeGatherer(), FakeClient(TransportError("unreachable")), interval_s=1)

    with caplog.at_level(logging.INFO, logger="rwpusher.scheduler"):
        pusher.push_once()

    messages = [r.getMessage() for r in caplog.records if r.name == "rwpusher.scheduler"]
    assert messages == ["Push failed (transport): unreachable"]


def test_self_metrics_recorded():
    registry = CollectorRegistry()
    pusher = PushScheduler(
        FakeGatherer(), FakeClient(), interval_s=1, self_metrics=PusherMetrics(registry)
    )
    pusher.push_once()
    pusher.client = FakeClient(TransportError("down"))
    pusher.push_once()

    assert registry.get_sample_value("remote_write_pushes_total") == 2.0
    assert registry.get_sample_value("remote_write_series_pushed_total") == 1.0
    assert registry.get_sample_value(
        "remote_write_push_failures_total", {"kind": "transport"}
    ) == 1.0
    assert registry.get_sample_value(
        "remote_write_push_failures_total", {"kind": "gather"}
    ) == 0.0


def test_invalid_interval():
    with pytest.raises(ValueError):
        PushScheduler(FakeGatherer(), FakeClient(), interval_s=0)


def test_wait_next_reports_cancellation():
    pusher = PushScheduler(FakeGatherer(), FakeClient(), interval_s=0.01)
    assert pusher.wait_next() is True
    pusher.stop()
    assert pusher.wait_next() is False


def test_loop_pushes_every_interval():
    client = FakeClient()
    pusher = PushScheduler(FakeGatherer(), client, interval_s=0.01)

    pusher.start()
    assert wait_until(lambda: len(client.payloads) >= 3)
    pusher.stop(timeout=5)

    assert pusher.state is PusherState.STOPPED
    assert pusher.push_count >= 3


def test_stop_while_idle_never_pushes():
    """Cancelling between ticks stops without starting another push."""
    gatherer = FakeGatherer()
    pusher = PushScheduler(gatherer, FakeClient(), interval_s=60)

    pusher.start()
    start = time.monotonic()
    pusher.stop(timeout=5)

    assert time.monotonic() - start < 5
    assert pusher.state is PusherState.STOPPED
    assert pusher.push_count == 0
    assert gatherer.calls == 0


def test_stop_while_pushing_lets_cycle_finish():
    """Cancelling mid-push waits for the in-flight cycle to complete."""
    gatherer = BlockingGatherer()
    client = FakeClient()
    pusher = PushScheduler(gatherer, client, interval_s=0.01)

    pusher.start()
    assert gatherer.entered.wait(5)
    assert pusher.state is PusherState.PUSHING

    stopper = threading.Thread(target=pusher.stop, kwargs={"timeout": 5})
    stopper.start()
    time.sleep(0.05)
    assert pusher.push_count == 0

    gatherer.release.set()
    stopper.join(5)

    assert pusher.push_count == 1
    assert pusher.last_outcome.success
    assert len(client.payloads) == 1
    assert gatherer.calls == 1
    assert pusher.state is PusherState.STOPPED


def test_unexpected_error_does_not_kill_loop():
    gatherer = FakeGatherer(error=RuntimeError("bug"))
    pusher = PushScheduler(gatherer, FakeClient(), interval_s=0.01)

    pusher.start()
    assert wait_until(lambda: gatherer.calls >= 2)
    pusher.stop(timeout=5)

    assert pusher.state is PusherState.STOPPED


def test_end_to_end_against_receiver(receiver):
    metrics = ServiceMetrics(CollectorRegistry())
    metrics.set_alert(1)
    client = RemoteWriteClient(receiver.url, timeout_s=5)
    pusher = PushScheduler(RegistryGatherer(metrics.registry), client, interval_s=1)

    outcome = pusher.push_once()
    client.close()

    assert outcome.success
    series = decode_write_request(decompress(receiver.requests[0]["body"]))
    assert len(series) == outcome.series_count
    alert = [ts for ts in series if ts.name == "alert"]
    assert alert[0].labels == (("reason", "test"),)
    assert alert[0].samples[0][0] == 1.0
