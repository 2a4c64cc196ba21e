"""连接管理模块。

ConnectionManager 独占 transport 句柄与重连定时器，所有状态迁移都经过
一张 (状态, 事件) -> 处理函数 的迁移表：

- OPEN: 调用 open()，或重连定时器到期。
- ESTABLISHED: transport 握手成功。
- LOST: transport 出错或意外关闭。
- CLOSE: 调用 close()。

迁移表中不存在的组合一律忽略，例如已连接时再次 open()、
FAILED 之后的 close()，以及同一次失败先后触发的 error 与 close。
重连采用固定间隔，最多 max_attempts 次；耗尽后进入 FAILED，不再自动恢复。
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from chat_client.domain.exceptions import TransportError
from chat_client.domain.models import ConnectionState, RetryState
from chat_client.infrastructure.logging.logger import logger
from chat_client.transport.base import Scheduler, Transport, TransportHandle


StateListener = Callable[[ConnectionState, ConnectionState], None]
FrameListener = Callable[[str], None]


class ConnectionEvent(str, Enum):
    OPEN = "open"
    ESTABLISHED = "established"
    LOST = "lost"
    CLOSE = "close"


_S = ConnectionState
_E = ConnectionEvent

_TRANSITIONS: Dict[Tuple[ConnectionState, ConnectionEvent], str] = {
    (_S.DISCONNECTED, _E.OPEN): "_do_connect",
    (_S.RETRYING, _E.OPEN): "_do_connect",
    (_S.FAILED, _E.OPEN): "_do_restart",
    (_S.CONNECTING, _E.ESTABLISHED): "_do_established",
    (_S.CONNECTING, _E.LOST): "_do_lost",
    (_S.CONNECTED, _E.LOST): "_do_lost",
    (_S.CONNECTING, _E.CLOSE): "_do_shutdown",
    (_S.CONNECTED, _E.CLOSE): "_do_shutdown",
    (_S.RETRYING, _E.CLOSE): "_do_shutdown",
}


class _ConnectionListener:
    """Forwards transport callbacks of one connection attempt.

    Callbacks from a superseded or closed attempt are dropped.
    """

    def __init__(self, manager: "ConnectionManager", generation: int):
        self._manager = manager
        self._generation = generation

    def _current(self) -> bool:
        return self._manager._generation == self._generation

    def on_open(self) -> None:
        if self._current():
            self._manager._dispatch(ConnectionEvent.ESTABLISHED)

    def on_message(self, raw: str) -> None:
        if self._current():
            self._manager._deliver(raw)

    def on_error(self, error: Optional[BaseException]) -> None:
        if self._current():
            self._manager._dispatch(ConnectionEvent.LOST, reason=repr(error) if error else "error")

    def on_close(self) -> None:
        if self._current():
            self._manager._dispatch(ConnectionEvent.LOST, reason="closed")


class ConnectionManager:
    def __init__(
        self,
        url: str,
        transport: Transport,
        scheduler: Scheduler,
        max_attempts: int = 3,
        retry_delay: float = 2.0,
        on_frame: Optional[FrameListener] = None,
    ):
        self._url = url
        self._transport = transport
        self._scheduler = scheduler
        self._retry_delay = retry_delay
        self._retry = RetryState(max_attempts=max_attempts)
        self._state = ConnectionState.DISCONNECTED
        self._handle: Optional[TransportHandle] = None
        self._generation = 0
        self._on_frame = on_frame
        self._listeners: List[StateListener] = []

    # ---- 只读状态 ----

    @property
    def url(self) -> str:
        return self._url

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def attempts(self) -> int:
        return self._retry.attempts

    @property
    def retry_pending(self) -> bool:
        return self._retry.pending_timer is not None

    def set_frame_listener(self, on_frame: Optional[FrameListener]) -> None:
        self._on_frame = on_frame

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """订阅状态变化，回调参数为 (旧状态, 新状态)。"""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ---- 公共操作 ----

    def open(self) -> None:
        self._dispatch(ConnectionEvent.OPEN)

    def close(self) -> None:
        self._dispatch(ConnectionEvent.CLOSE)

    def send(self, frame: str) -> bool:
        """发送一帧已编码的 JSON；未连接时静默丢弃并返回 False。"""

        if self._state is not ConnectionState.CONNECTED or self._handle is None:
            self._log(logging.INFO, "Dropped outbound frame while not connected")
            return False
        self._handle.send(frame)
        return True

    # ---- 状态机 ----

    def _dispatch(self, event: ConnectionEvent, **fields: Any) -> None:
        handler_name = _TRANSITIONS.get((self._state, event))
        if handler_name is None:
            self._log(logging.DEBUG, "Ignored connection event", event=event.value, **fields)
            return
        getattr(self, handler_name)(**fields)

    def _do_connect(self, **_: Any) -> None:
        self._retry.cancel_timer()
        self._generation += 1
        self._set_state(ConnectionState.CONNECTING)
        listener = _ConnectionListener(self, self._generation)
        try:
            self._handle = self._transport.connect(self._url, listener)
        except TransportError as e:
            self._log(logging.WARNING, "Transport rejected connection", code=e.code, error=e.message)
            self._dispatch(ConnectionEvent.LOST, reason=e.code)

    def _do_restart(self, **fields: Any) -> None:
        self._log(logging.INFO, "Reopening after exhausted retries", attempts=self._retry.attempts)
        self._retry.attempts = 0
        self._do_connect(**fields)

    def _do_established(self, **_: Any) -> None:
        self._retry.attempts = 0
        self._retry.cancel_timer()
        self._set_state(ConnectionState.CONNECTED)

    def _do_lost(self, reason: str = "", **_: Any) -> None:
        self._release_handle()
        if self._retry.exhausted:
            self._set_state(ConnectionState.FAILED, reason=reason)
            self._log(logging.ERROR, "Connection retries exhausted", attempts=self._retry.attempts)
            return
        if self._retry.pending_timer is None:
            self._retry.pending_timer = self._scheduler.call_later(self._retry_delay, self._on_retry_due)
        self._set_state(ConnectionState.RETRYING, reason=reason)

    def _do_shutdown(self, **_: Any) -> None:
        self._retry.cancel_timer()
        self._release_handle()
        self._set_state(ConnectionState.DISCONNECTED)

    def _on_retry_due(self) -> None:
        self._retry.pending_timer = None
        if self._state is not ConnectionState.RETRYING:
            return
        self._retry.attempts += 1
        self._log(
            logging.INFO,
            "Reconnecting",
            attempt=self._retry.attempts,
            max_attempts=self._retry.max_attempts,
        )
        self.open()

    def _deliver(self, raw: str) -> None:
        if self._on_frame is not None:
            self._on_frame(raw)

    def _release_handle(self) -> None:
        # bump the generation first so the handle's own close callbacks are ignored
        self._generation += 1
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.close()

    def _set_state(self, new_state: ConnectionState, **fields: Any) -> None:
        # callers finish their own bookkeeping first; listeners only observe
        old_state, self._state = self._state, new_state
        if old_state is new_state:
            return
        self._log(logging.INFO, "Connection state changed", old=old_state.value, new=new_state.value, **fields)
        for listener in list(self._listeners):
            try:
                listener(old_state, new_state)
            except Exception:
                logger.exception("Connection state listener failed", extra={"extra": {"url": self._url}})

    def _log(self, level: int, message: str, **fields: Any) -> None:
        payload: Dict[str, Any] = {"url": self._url}
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
