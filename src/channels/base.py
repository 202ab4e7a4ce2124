from abc import ABC, abstractmethod

from datamodel import ChannelType

__all__ = ["MessageGateway"]


class MessageGateway(ABC):
    """消息网关: 向用户发送文本。入站消息通过事件总线的 io.message_received 分发。"""

    channel_type: ChannelType

    @abstractmethod
    async def send(self, user_id: int, text: str) -> bool:
        """发送成功返回 True; 失败只记录日志并返回 False, 不抛异常、不重试"""
