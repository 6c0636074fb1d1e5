"""ValidAI - Conversation Session

需求收集对话会话

- 用户消息先追加到记录，再发送给模型
- 模型回复成功则追加回复，失败则追加通用错误提示（会话不中断）
"""
from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID, uuid4

from validai.models.project_schemas import ChatMessage, ChatRole
from validai.services.ai_service import AIService, AIServiceError

logger = logging.getLogger(__name__)

GREETING = (
    "Hello! I'm your Validation Agent. Briefly describe the feature or "
    "platform update you want to validate today."
)
EMPTY_REPLY = "I didn't catch that. Could you clarify?"
ERROR_REPLY = "I encountered an error. Please check your connection or API key."

# 记录条数超过该值才允许提取需求（问候语 + 至少一轮对话）
MIN_MESSAGES_FOR_EXTRACTION = 2


class ConversationSession:
    """单次需求收集对话"""

    def __init__(self, ai_service: AIService, session_id: Optional[UUID] = None):
        self.session_id = session_id or uuid4()
        self.ai_service = ai_service
        self._messages: list[ChatMessage] = [ChatMessage(role=ChatRole.MODEL, text=GREETING)]

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    @property
    def can_extract(self) -> bool:
        return len(self._messages) > MIN_MESSAGES_FOR_EXTRACTION

    async def send(self, text: str) -> ChatMessage:
        """
        发送用户消息并返回模型回复（或错误提示）

        Raises:
            ValueError: 消息为空
        """
        if not text or not text.strip():
            raise ValueError("消息不能为空")

        history = list(self._messages)
        self._messages.append(ChatMessage(role=ChatRole.USER, text=text))

        try:
            reply_text = await self.ai_service.chat(history, text)
            reply = ChatMessage(role=ChatRole.MODEL, text=reply_text or EMPTY_REPLY)
        except AIServiceError as e:
            logger.error(f"对话调用失败 (session={self.session_id}): {e}")
            reply = ChatMessage(role=ChatRole.MODEL, text=ERROR_REPLY)

        self._messages.append(reply)
        return reply

    def transcript_text(self) -> str:
        """拼接为 ROLE: text 行，用于需求提取"""
        return "\n".join(f"{m.role.value.upper()}: {m.text}" for m in self._messages)

