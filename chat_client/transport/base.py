"""Transport 抽象接口。

ConnectionManager 不直接依赖具体的 WebSocket 库，而是依赖此协议：

- Transport.connect(url, listener) 异步建立连接，立即返回 TransportHandle。
- 连接建立、收到消息、出错、关闭都通过 TransportListener 回调通知，
  并且回调总是在事件循环线程上按投递顺序执行。
- Scheduler 负责重连定时器，asyncio 的事件循环本身就满足该协议。
"""

from typing import Callable, Optional, Protocol

from chat_client.domain.models import TimerHandle


class TransportListener(Protocol):
    def on_open(self) -> None:
        ...

    def on_message(self, raw: str) -> None:
        ...

    def on_error(self, error: Optional[BaseException]) -> None:
        ...

    def on_close(self) -> None:
        ...


class TransportHandle(Protocol):
    def send(self, data: str) -> None:
        ...

    def close(self) -> None:
        """关闭连接；可重复调用，关闭后不再触发任何回调。"""

        ...


class Transport(Protocol):
    def connect(self, url: str, listener: TransportListener) -> TransportHandle:
        ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        ...
