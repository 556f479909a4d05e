# synapse/chat.py
import logging
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from synapse.auth import CurrentUser
from synapse.errors import CallableError
from synapse.gemini import GenerationError, generate_with_timeout
from synapse.models import Message

logger = logging.getLogger(__name__)

AI_SENDER_ID = "ai-assistant"
AI_SENDER_NAME = "AI Assistant"


async def add_message(
    session: AsyncSession,
    chat_id: str,
    sender_id: str,
    sender: str,
    content: str,
    is_bot: bool = False,
    is_system: bool = False,
) -> Message:
    msg = Message(
        chat_id=chat_id,
        sender_id=sender_id,
        sender=sender,
        content=content,
        is_bot=is_bot,
        is_system=is_system,
    )
    session.add(msg)
    await session.commit()
    await session.refresh(msg)
    return msg


async def list_messages(session: AsyncSession, chat_id: str, limit: int = 100) -> List[Message]:
    res = await session.execute(
        select(Message).where(Message.chat_id == chat_id).order_by(Message.timestamp.asc(), Message.id).limit(limit)
    )
    return list(res.scalars().all())


def validate_chat_request(user: Optional[CurrentUser], message: Any) -> None:
    if user is None:
        raise CallableError("unauthenticated", "The function must be called while authenticated.")
    if not isinstance(message, str) or len(message) == 0:
        raise CallableError("invalid-argument", 'The function must be called with a non-empty "message" string.')


async def relay_chat_message(
    user: Optional[CurrentUser],
    message: Any,
    generator,
    session: AsyncSession,
    chat_id: str,
    timeout: float = 60.0,
) -> str:
    """
    Forward one user message to the text generator and store the reply in chat_id.
    The call is stateless: no history or system prompt goes with it. On failure
    nothing is written and the caller gets an 'internal' error.
    """
    validate_chat_request(user, message)

    try:
        text = await generate_with_timeout(generator, message, timeout)
    except GenerationError:
        logger.error("AI chat relay failed for user=%s chat=%s", user.uid, chat_id)
        raise CallableError("internal", "Failed to get a response from the AI. Please try again later.")

    await add_message(session, chat_id, AI_SENDER_ID, AI_SENDER_NAME, text, is_bot=True)
    return text
