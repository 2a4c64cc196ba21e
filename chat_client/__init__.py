"""Chat Client 顶层包。

该包提供流式对话前端的会话引擎：维护到 /chat 端点的 WebSocket 长连接、
把分片返回的回答拼接为完整消息、持久化对话记录，并在断线时有限次自动重连。
"""

from chat_client.api.service import create_session
from chat_client.session.controller import SessionController

__all__ = ["SessionController", "create_session"]
