"""会话引擎的核心数据模型。

- Message: 对话中的一条消息（用户提问、机器人回答或错误）。
- ConnectionState: 连接状态机的状态枚举。
- RetryState: 断线重连计数与定时器。
- TurnContext: 当前一轮问答是否仍在等待响应。

持久化格式只依赖 Message.to_record / Message.from_record，
UI 层只读取这些结构。
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Protocol
from uuid import uuid4


class Sender(str, Enum):
    USER = "user"
    BOT = "bot"


class ErrorKind(str, Enum):
    """错误消息的类别，展示样式由表现层决定。"""

    APPLICATION = "application"  # 后端返回的 {"error": ...}
    PARSE = "parse"  # 无法解析的入站帧


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RETRYING = "retrying"
    FAILED = "failed"


def new_message_id() -> str:
    return f"m-{uuid4().hex}"


@dataclass(frozen=True)
class Message:
    """一条对话消息，不可变；流式追加通过 ConversationStore.update_text 替换。

    - id: 会话内唯一的不透明标识。
    - sender: user 或 bot。
    - text: 纯文本内容。
    - error: 非空时表示这是一条独立的错误消息。
    """

    id: str
    sender: Sender
    text: str
    error: Optional[ErrorKind] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {"id": self.id, "sender": self.sender.value, "text": self.text}
        if self.error is not None:
            record["error"] = self.error.value
        return record

    @classmethod
    def from_record(cls, data: Any) -> "Message":
        """从持久化记录还原消息，结构不合法时抛出 ValueError。"""

        if not isinstance(data, dict):
            raise ValueError("message record must be an object")
        msg_id = data.get("id")
        text = data.get("text")
        if not isinstance(msg_id, str) or not msg_id:
            raise ValueError("message record has no id")
        if not isinstance(text, str):
            raise ValueError(f"message {msg_id} has no text")
        error = data.get("error")
        return cls(
            id=msg_id,
            sender=Sender(data.get("sender")),
            text=text,
            error=ErrorKind(error) if error is not None else None,
        )


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


@dataclass
class RetryState:
    max_attempts: int = 3
    attempts: int = 0
    pending_timer: Optional[TimerHandle] = None

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def cancel_timer(self) -> None:
        if self.pending_timer is not None:
            self.pending_timer.cancel()
            self.pending_timer = None


@dataclass
class TurnContext:
    """当前一轮问答的上下文。

    busy 只表示“正在等待第一条响应”，并不代表回答已经结束；
    active_message_id 指向正在累积的机器人消息。
    """

    active_message_id: Optional[str] = None
    busy: bool = False
