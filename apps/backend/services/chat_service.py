"""
Chat Service
============
Threads and messages exchanged between a lawyer and the document agent.

Messages are stored in OpenAI chat format so a thread can be replayed
to the model as-is.
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, select

from database import ChatMessageModel, ChatThreadModel
from exceptions import ThreadNotFoundError
from logging_config import get_logger
from services.base import DatabaseService

logger = get_logger(__name__)


def message_to_dict(message: ChatMessageModel) -> Dict[str, Any]:
    """OpenAI message plus storage metadata (id, position, created_at)."""
    result = message.to_openai()
    result["id"] = message.id
    result["position"] = message.position
    result["created_at"] = message.created_at
    return result


def filter_orphaned_tool_messages(messages: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Drop tool plumbing that lost its counterpart.

    Tool results without a matching call are removed. Tool calls without a
    result are stripped from their assistant message, and an assistant
    message left with neither text nor calls is removed.
    """
    messages = list(messages)
    call_ids = set()
    result_ids = set()
    for message in messages:
        for call in message.get("tool_calls") or []:
            call_ids.add(call.get("id"))
        if message.get("role") == "tool" and message.get("tool_call_id"):
            result_ids.add(message["tool_call_id"])

    cleaned = []
    for message in messages:
        role = message.get("role")
        if role == "tool":
            if message.get("tool_call_id") in call_ids:
                cleaned.append(message)
            continue

        tool_calls = message.get("tool_calls")
        if not tool_calls:
            cleaned.append(message)
            continue

        answered = [call for call in tool_calls if call.get("id") in result_ids]
        if answered:
            cleaned.append({**message, "tool_calls": answered})
        elif message.get("content"):
            cleaned.append({key: value for key, value in message.items() if key != "tool_calls"})

    return cleaned


def to_ui_messages(messages: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """User and assistant text messages, as shown in the chat panel."""
    ui_messages = []
    for message in messages:
        if message.get("role") not in ("user", "assistant"):
            continue
        content = (message.get("content") or "").strip()
        if not content:
            continue
        ui_messages.append({
            "id": message.get("id"),
            "role": message["role"],
            "content": content,
            "position": message.get("position", 0),
            "created_at": message.get("created_at"),
        })
    return ui_messages


class ChatService(DatabaseService):
    """
    Persistence for chat threads.

    Usage:
        async with ChatService() as chat:
            thread = await chat.create_thread(user_id, title="Document: nda.docx")
            await chat.save_message(thread.id, "user", "Hello")
    """

    async def create_thread(
        self,
        user_id: str,
        title: Optional[str] = None,
        summary: Optional[str] = None,
    ) -> ChatThreadModel:
        thread = ChatThreadModel(user_id=user_id, title=title, summary=summary)
        self.session.add(thread)
        await self.session.flush()
        logger.info("Created chat thread", thread_id=thread.id, user_id=user_id)
        return thread

    async def get_thread(self, thread_id: str) -> Optional[ChatThreadModel]:
        return await self.session.get(ChatThreadModel, thread_id)

    async def require_thread(self, thread_id: str) -> ChatThreadModel:
        thread = await self.get_thread(thread_id)
        if thread is None:
            raise ThreadNotFoundError(thread_id)
        return thread

    async def save_message(
        self,
        thread_id: str,
        role: str,
        content: Optional[str] = None,
        tool_calls: Optional[List[Dict[str, Any]]] = None,
        tool_call_id: Optional[str] = None,
        name: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> ChatMessageModel:
        """Append a message at the end of a thread."""
        await self.require_thread(thread_id)

        result = await self.session.execute(
            select(func.max(ChatMessageModel.position)).where(ChatMessageModel.thread_id == thread_id)
        )
        last_position = result.scalar()

        message = ChatMessageModel(
            thread_id=thread_id,
            position=0 if last_position is None else last_position + 1,
            role=role,
            content=content,
            tool_calls=tool_calls or None,
            tool_call_id=tool_call_id,
            name=name,
            user_id=user_id,
        )
        self.session.add(message)
        await self.session.flush()
        return message

    async def list_messages(
        self,
        thread_id: str,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[ChatMessageModel], bool]:
        """
        One page of messages in thread order.

        Returns:
            (messages, is_done) where is_done means no later page exists.
        """
        await self.require_thread(thread_id)

        total = (await self.session.execute(
            select(func.count()).select_from(ChatMessageModel).where(ChatMessageModel.thread_id == thread_id)
        )).scalar_one()

        result = await self.session.execute(
            select(ChatMessageModel)
            .where(ChatMessageModel.thread_id == thread_id)
            .order_by(ChatMessageModel.position)
            .offset(offset)
            .limit(limit)
        )
        messages = list(result.scalars().all())
        return messages, offset + len(messages) >= total

    async def recent_messages(self, thread_id: str, limit: int) -> List[Dict[str, Any]]:
        """The last `limit` messages as OpenAI dicts, orphans removed."""
        result = await self.session.execute(
            select(ChatMessageModel)
            .where(ChatMessageModel.thread_id == thread_id)
            .order_by(ChatMessageModel.position.desc())
            .limit(limit)
        )
        messages = [message_to_dict(message) for message in reversed(result.scalars().all())]
        return filter_orphaned_tool_messages(messages)

    async def delete_thread(self, thread_id: str) -> bool:
        thread = await self.get_thread(thread_id)
        if thread is None:
            return False
        await self.session.execute(delete(ChatMessageModel).where(ChatMessageModel.thread_id == thread_id))
        await self.session.delete(thread)
        await self.session.flush()
        logger.info("Deleted chat thread", thread_id=thread_id)
        return True
