from chat_client.domain.exceptions import TransportError
from chat_client.domain.models import ConnectionState
from chat_client.session.connection import ConnectionManager


class FakeHandle:
    def __init__(self, listener):
        self.listener = listener
        self.sent = []
        self.closed = 0

    def send(self, data):
        self.sent.append(data)

    def close(self):
        self.closed += 1


class FakeTransport:
    def __init__(self):
        self.handles = []
        self.urls = []

    def connect(self, url, listener):
        self.urls.append(url)
        handle = FakeHandle(listener)
        self.handles.append(handle)
        return handle

    @property
    def last(self):
        return self.handles[-1]


class FakeTimer:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    def __init__(self):
        self.timers = []

    def call_later(self, delay, callback):
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self):
        return [t for t in self.timers if not t.cancelled]

    def fire(self):
        timer = self.pending[-1]
        self.timers.remove(timer)
        timer.callback()


def _make(max_attempts=3):
    transport = FakeTransport()
    scheduler = FakeScheduler()
    manager = ConnectionManager(
        url="ws://localhost:8080/chat",
        transport=transport,
        scheduler=scheduler,
        max_attempts=max_attempts,
        retry_delay=2.0,
    )
    states = []
    manager.subscribe(lambda old, new: states.append(new))
    return manager, transport, scheduler, states


def test_open_connects_and_is_idempotent():
    manager, transport, _, states = _make()
    manager.open()
    assert manager.state is ConnectionState.CONNECTING
    manager.open()
    assert len(transport.handles) == 1
    transport.last.listener.on_open()
    assert manager.is_connected
    manager.open()
    assert len(transport.handles) == 1
    assert transport.urls == ["ws://localhost:8080/chat"]
    assert states == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]


def test_send_only_when_connected():
    manager, transport, _, _ = _make()
    assert manager.send('{"query": "early"}') is False
    manager.open()
    assert manager.send('{"query": "connecting"}') is False
    transport.last.listener.on_open()
    assert manager.send('{"query": "hello"}') is True
    assert transport.last.sent == ['{"query": "hello"}']


def test_frames_forwarded_in_order():
    manager, transport, _, _ = _make()
    received = []
    manager.set_frame_listener(received.append)
    manager.open()
    transport.last.listener.on_open()
    for raw in ["a", "b", "c"]:
        transport.last.listener.on_message(raw)
    assert received == ["a", "b", "c"]


def test_reconnect_succeeds_on_first_retry():
    manager, transport, scheduler, states = _make()
    manager.open()
    transport.last.listener.on_open()
    transport.last.listener.on_close()
    assert manager.state is ConnectionState.RETRYING
    assert len(scheduler.pending) == 1
    assert scheduler.pending[0].delay == 2.0

    scheduler.fire()
    assert manager.attempts == 1
    assert manager.state is ConnectionState.CONNECTING
    transport.last.listener.on_open()
    assert manager.state is ConnectionState.CONNECTED
    assert manager.attempts == 0
    assert scheduler.pending == []
    assert states[-3:] == [ConnectionState.RETRYING, ConnectionState.CONNECTING, ConnectionState.CONNECTED]


def test_error_then_close_schedules_one_timer():
    manager, transport, scheduler, _ = _make()
    manager.open()
    transport.last.listener.on_open()
    handle = transport.last
    handle.listener.on_error(ConnectionResetError("reset"))
    handle.listener.on_close()
    assert len(scheduler.pending) == 1
    assert handle.closed == 1
    assert manager.attempts == 0


def test_retries_exhausted_then_failed():
    manager, transport, scheduler, states = _make()
    manager.open()
    transport.last.listener.on_open()
    transport.last.listener.on_close()

    for attempt in range(1, 4):
        assert len(scheduler.pending) == 1
        scheduler.fire()
        assert manager.attempts == attempt
        transport.last.listener.on_error(OSError("refused"))
        transport.last.listener.on_close()

    assert manager.state is ConnectionState.FAILED
    assert not manager.is_connected
    assert scheduler.pending == []
    assert len(transport.handles) == 4
    assert states[-1] is ConnectionState.FAILED

    # terminal: close is a no-op and late events are ignored
    manager.close()
    transport.last.listener.on_close()
    assert manager.state is ConnectionState.FAILED
    assert scheduler.pending == []


def test_initial_connect_failure_retries():
    manager, transport, scheduler, _ = _make()
    manager.open()
    transport.last.listener.on_error(OSError("refused"))
    assert manager.state is ConnectionState.RETRYING
    scheduler.fire()
    transport.last.listener.on_open()
    assert manager.is_connected


def test_close_cancels_timer_and_silences_callbacks():
    manager, transport, scheduler, states = _make()
    received = []
    manager.set_frame_listener(received.append)
    manager.open()
    transport.last.listener.on_open()
    handle = transport.last
    handle.listener.on_close()
    timer = scheduler.pending[0]

    manager.close()
    assert timer.cancelled
    assert manager.state is ConnectionState.DISCONNECTED
    count = len(states)

    handle.listener.on_message('{"answer": "late"}')
    handle.listener.on_open()
    handle.listener.on_close()
    manager.close()
    assert received == []
    assert len(states) == count
    assert manager.state is ConnectionState.DISCONNECTED


def test_close_while_connected_closes_handle():
    manager, transport, scheduler, _ = _make()
    manager.open()
    transport.last.listener.on_open()
    manager.close()
    manager.close()
    assert transport.last.closed == 1
    assert scheduler.timers == []
    assert manager.send('{"query": "x"}') is False


def test_open_after_failed_starts_fresh():
    manager, transport, scheduler, _ = _make(max_attempts=0)
    manager.open()
    transport.last.listener.on_close()
    assert manager.state is ConnectionState.FAILED
    assert scheduler.timers == []
    manager.open()
    assert manager.state is ConnectionState.CONNECTING
    transport.last.listener.on_open()
    assert manager.is_connected


def test_rejected_url_goes_through_retry_policy():
    class RejectingTransport:
        calls = 0

        def connect(self, url, listener):
            RejectingTransport.calls += 1
            raise TransportError(code="INVALID_URL", message=url)

    scheduler = FakeScheduler()
    manager = ConnectionManager("http://wrong", RejectingTransport(), scheduler, max_attempts=1)
    manager.open()
    assert manager.state is ConnectionState.RETRYING
    assert manager.retry_pending
    scheduler.fire()
    assert manager.state is ConnectionState.FAILED
    assert not manager.retry_pending
    assert RejectingTransport.calls == 2


def test_failing_state_observer_does_not_stop_retry():
    manager, transport, scheduler, states = _make()

    def explode(old, new):
        raise RuntimeError("observer bug")

    manager.subscribe(explode)
    manager.open()
    transport.last.listener.on_open()
    transport.last.listener.on_close()
    assert manager.state is ConnectionState.RETRYING
    assert len(scheduler.pending) == 1
    # observers registered after the failing one still run
    late = []
    manager.subscribe(lambda old, new: late.append(new))
    scheduler.fire()
    transport.last.listener.on_open()
    assert manager.is_connected
    assert late == [ConnectionState.CONNECTING, ConnectionState.CONNECTED]
    assert states[-1] is ConnectionState.CONNECTED
