"""异常类型

ParseError 不在这里: 意图解析失败是返回值而不是异常。
"""

__all__ = ["KairosError", "StoreError", "LLMError", "DeliveryFailure"]


class KairosError(Exception):
    pass


class StoreError(KairosError):
    """存储层读写失败(包括数据库尚未初始化)"""


class LLMError(KairosError):
    """语言理解服务调用失败, 已耗尽重试"""


class DeliveryFailure(KairosError):
    """消息网关发送失败"""

    def __init__(self, user_id: int, reason: str = "") -> None:
        super().__init__(f"向用户 {user_id} 发送消息失败: {reason}")
        self.user_id = user_id
        self.reason = reason
