"""统一业务异常模型。

会话引擎内部跨模块抛出的错误都继承自 BusinessError，
便于 UI 层统一捕获与提示。所有错误对正在运行的会话都不是致命的。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_WRITE_ERROR"）。
        message: 用户可读错误信息。
        extra: 其他补充字段（例如 message_id、url 等）。
    """

    def __init__(self, code: str, message: str, **extra):
        self.code = code
        self.message = message
        self.extra = extra
        super().__init__(message)


class TransportError(BusinessError):
    """连接失败或连接意外关闭，由 ConnectionManager 的重试策略处理。"""


class FrameParseError(BusinessError):
    """入站帧无法解析（非 JSON 或结构不符合协议）。

    Attributes:
        raw: 原始帧内容，会原样作为错误消息展示。
    """

    def __init__(self, code: str, message: str, raw: str = "", **extra):
        self.raw = raw
        super().__init__(code, message, **extra)


class MessageNotFoundError(BusinessError):
    """按 id 更新消息时找不到对应消息。"""


class StorageError(BusinessError):
    """持久化读写失败。"""


class ValidationError(BusinessError):
    """参数或配置校验失败。"""
