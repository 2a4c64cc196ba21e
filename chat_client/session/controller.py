"""会话控制器。

SessionController 是唯一暴露给 UI 的组件：

1. send_query 负责输入校验与“同一时间只有一轮在途”的门控。
2. 出站请求交给 ConnectionManager，入站帧交给 StreamAccumulator。
3. UI 通过 subscribe_messages / subscribe_connectivity 观察状态变化。

语音识别等其他输入源拿到最终文本后同样调用 send_query，
与键盘输入共享同一条路径和同一个 busy 门控。
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional, Tuple

from chat_client.domain.conversation import MessagesListener
from chat_client.domain.frames import encode_query
from chat_client.domain.models import ConnectionState, Message, Sender, TurnContext, new_message_id
from chat_client.infrastructure.logging.logger import logger
from chat_client.session.accumulator import StreamAccumulator
from chat_client.session.connection import ConnectionManager, StateListener
from chat_client.session.store import ConversationStore


class SessionController:
    def __init__(self, connection: ConnectionManager, store: ConversationStore):
        self._connection = connection
        self._store = store
        self._turn = TurnContext()
        self._accumulator = StreamAccumulator(store, self._turn, on_activity=self._on_response_activity)
        self._connection.set_frame_listener(self._accumulator.consume)
        self._connection.subscribe(self._on_connection_state)
        self._closed = False

    # ---- 只读视图 ----

    @property
    def messages(self) -> Tuple[Message, ...]:
        return self._store.all()

    @property
    def busy(self) -> bool:
        return self._turn.busy

    @property
    def active_message_id(self) -> Optional[str]:
        return self._turn.active_message_id

    @property
    def connection_state(self) -> ConnectionState:
        return self._connection.state

    @property
    def is_connected(self) -> bool:
        return self._connection.is_connected

    def subscribe_messages(self, listener: MessagesListener) -> Callable[[], None]:
        return self._store.subscribe(listener)

    def subscribe_connectivity(self, listener: StateListener) -> Callable[[], None]:
        return self._connection.subscribe(listener)

    # ---- 生命周期 ----

    def start(self) -> None:
        self._closed = False
        self._connection.open()

    def close(self) -> None:
        """关闭会话：关闭连接并取消重连定时器。"""

        self._closed = True
        self._connection.close()
        self._end_turn("session closed")

    def reset_conversation(self) -> None:
        self._end_turn("conversation reset")
        self._store.reset()

    # ---- 输入 ----

    def send_query(self, text: str) -> bool:
        """提交一次提问。

        空白输入或上一轮仍在等待首个响应时直接忽略，返回 False。
        未连接时消息仍会记录，但请求被丢弃，本轮立即结束。
        """

        if not text or not text.strip():
            return False
        if self._turn.busy:
            self._log(logging.INFO, "Rejected query while busy")
            return False
        if self._closed:
            return False

        self._turn.busy = True
        self._store.append(Message(id=new_message_id(), sender=Sender.USER, text=text))
        placeholder = self._accumulator.begin_turn()
        sent = self._connection.send(encode_query(text))
        self._log(logging.INFO, "Submitted query", message_id=placeholder.id, sent=sent)
        if not sent:
            self._end_turn("not connected")
        return True

    # ---- 回调 ----

    def _on_response_activity(self) -> None:
        self._turn.busy = False

    def _on_connection_state(self, old: ConnectionState, new: ConnectionState) -> None:
        if old is ConnectionState.CONNECTED and new is not ConnectionState.CONNECTED:
            self._end_turn(f"connection {new.value}")

    def _end_turn(self, reason: str) -> None:
        if not self._turn.busy and self._turn.active_message_id is None:
            return
        self._log(logging.INFO, "Turn ended", reason=reason, message_id=self._turn.active_message_id)
        self._turn.busy = False
        self._accumulator.end_turn()

    def _log(self, level: int, message: str, **fields: Any) -> None:
        payload: Dict[str, Any] = {"state": self._connection.state.value, "busy": self._turn.busy}
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})
