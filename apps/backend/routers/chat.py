"""
Chat Router
===========
Conversation with the document agent. Answers are generated in the
background; clients poll the thread messages.
"""

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from dependencies import get_current_user
from exceptions import DocumentNotFoundError, ThreadNotFoundError, ValidationError
from logging_config import get_logger
from schemas import ChatMessageAccepted, ChatRequest, MessagesPage, UIMessage
from services.agent import generate_response
from services.chat_service import ChatService, filter_orphaned_tool_messages, message_to_dict, to_ui_messages
from services.document_service import DocumentService

logger = get_logger(__name__)

router = APIRouter()


@router.post("/messages", status_code=202, response_model=ChatMessageAccepted)
async def send_message(
    request: ChatRequest,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user),
):
    """Store the user's message and schedule the agent's answer."""
    async with DocumentService() as documents:
        doc = await documents.require_document(request.document_id)
    if doc.uploaded_by_id != user_id:
        raise DocumentNotFoundError(request.document_id)
    if doc.thread_id != request.thread_id:
        raise ValidationError("Thread does not belong to this document", field="thread_id", value=request.thread_id)

    async with ChatService() as chat:
        message = await chat.save_message(
            request.thread_id,
            role="user",
            content=request.prompt,
            user_id=user_id,
        )

    background_tasks.add_task(generate_response, request.document_id, request.thread_id)
    logger.info("Chat message accepted", thread_id=request.thread_id, message_id=message.id)

    return ChatMessageAccepted(message_id=message.id, thread_id=request.thread_id)


@router.get("/threads/{thread_id}/messages", response_model=MessagesPage)
async def list_thread_messages(
    thread_id: str,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    user_id: str = Depends(get_current_user),
):
    """One page of user facing messages; tool plumbing is hidden."""
    async with ChatService() as chat:
        thread = await chat.require_thread(thread_id)
        if thread.user_id != user_id:
            raise ThreadNotFoundError(thread_id)
        messages, is_done = await chat.list_messages(thread_id, offset=offset, limit=limit)

    cleaned = filter_orphaned_tool_messages(message_to_dict(message) for message in messages)
    return MessagesPage(
        page=[UIMessage(**message) for message in to_ui_messages(cleaned)],
        offset=offset,
        limit=limit,
        is_done=is_done,
    )
