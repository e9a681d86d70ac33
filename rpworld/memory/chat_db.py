"""
聊天记录仓库

聊天记录不缓存。保存消息后把消息交给向量记忆管道异步向量化，
向量化的成败不影响保存结果。
"""
from typing import Any, Dict, List, Optional, Union
from sqlalchemy.orm import Session
from loguru import logger

from rpworld.db.crud import chat_message_crud, vector_record_crud
from rpworld.memory.repository import StoreContext, coerce_model
from rpworld.memory.schemas import ChatMessageData
from rpworld.memory.vector_memory import VectorMemoryPipeline
from rpworld.world.status import OperationStatus


class ChatRepository:
    """聊天记录仓库"""

    def __init__(
        self,
        context: StoreContext,
        status: OperationStatus,
        pipeline: VectorMemoryPipeline,
    ):
        self.context = context
        self.status = status
        self.pipeline = pipeline

    async def get_chat_history(self, session_id: str) -> List[ChatMessageData]:
        """按时间顺序返回会话的聊天记录"""
        async with self.status.track("get_chat_history", loading=False):
            store = self.context.current_store()
            return await store.run(
                lambda session: [
                    ChatMessageData.from_record(m)
                    for m in chat_message_crud.get_by_session(session, session_id)
                ]
            )

    async def get_message(self, message_id: int) -> Optional[ChatMessageData]:
        async with self.status.track("get_message", loading=False):
            store = self.context.current_store()

            def work(session: Session) -> Optional[ChatMessageData]:
                record = chat_message_crud.get_by_id(session, message_id)
                return ChatMessageData.from_record(record) if record is not None else None

            return await store.run(work)

    async def list_sessions(self) -> List[str]:
        async with self.status.track("list_sessions", loading=False):
            store = self.context.current_store()
            return await store.run(chat_message_crud.list_sessions)

    async def save_message(self, message: Union[ChatMessageData, Dict[str, Any]]) -> ChatMessageData:
        """
        保存聊天消息，并安排后台向量化（不等待）

        Returns:
            保存后的消息（含 ID）
        """
        async with self.status.track("save_message"):
            data = coerce_model(ChatMessageData, message, "message")
            store = self.context.current_store()

            def work(session: Session) -> ChatMessageData:
                record = chat_message_crud.upsert(session, data.id, **data.to_columns())
                return ChatMessageData.from_record(record)

            saved = await store.run(work)

        if self.context.is_current(store):
            self.pipeline.schedule(saved)
        return saved

    async def delete_chat_history(self, session_id: str) -> int:
        """
        删除会话的全部消息及其向量记录

        Returns:
            删除的消息数量
        """
        async with self.status.track("delete_chat_history"):
            store = self.context.current_store()

            def work(session: Session) -> int:
                vectors = vector_record_crud.delete_by_session(session, session_id)
                messages = chat_message_crud.delete_by_session(session, session_id)
                logger.debug(f"会话 {session_id} 已删除 {messages} 条消息、{vectors} 条向量记录")
                return messages

            return await store.run(work)
