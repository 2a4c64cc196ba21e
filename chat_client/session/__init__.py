"""流式对话会话引擎。

- connection: ConnectionManager，连接生命周期与重连策略。
- store: ConversationStore，有序消息序列与持久化。
- accumulator: StreamAccumulator，把分片回答拼成一条消息。
- controller: SessionController，唯一面向 UI 的入口。
"""

from chat_client.session.accumulator import StreamAccumulator
from chat_client.session.connection import ConnectionEvent, ConnectionManager
from chat_client.session.controller import SessionController
from chat_client.session.store import ConversationStore

__all__ = [
    "ConnectionEvent",
    "ConnectionManager",
    "ConversationStore",
    "SessionController",
    "StreamAccumulator",
]
