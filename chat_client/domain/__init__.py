"""领域层模型与协议。

包含：
- models: Message / ConnectionState / RetryState / TurnContext。
- frames: /chat 端点的入站与出站帧编解码。
- conversation: 消息序列与持久化存储的协议。
- exceptions: 业务异常类型定义。
"""
