"""
Anna routes: AI assistant conversations and real-time agent sessions.

These handlers call blocking HTTP clients, so they are plain functions and
run in the threadpool.
"""

import itertools
import logging
from typing import Iterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from messenger.agent import AgentClient, AgentInstance, ensure_agent
from messenger.ai import AnnaClient
from messenger.auth import get_agent_client, get_anna_client, get_current_user, get_kv
from messenger.crud import anna as anna_crud
from messenger.errors import NotFoundError, UpstreamError
from messenger.kvstore import KeyValueStore
from messenger.models import AnnaConversation, User
from messenger.schemas import (
    AgentSessionRequest,
    AgentSessionResponse,
    AnnaMessageRequest,
    AnnaReplyResponse,
    ConversationCreateRequest,
    ConversationResponse,
    ModeUpdateRequest,
    StatusResponse,
)
from messenger.storage import SessionLocal, get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/anna", tags=["anna"])

INSTANCE_OWNER_PREFIX = "agent_instance:"


def _append_user_turn(db: Session, conversation: AnnaConversation, content: str) -> list[dict]:
    turns = list(conversation.messages or []) + [anna_crud.make_turn("user", content)]
    anna_crud.update_conversation(db, conversation, messages=turns)
    return turns


# =============================================================================
# Conversations
# =============================================================================

@router.post("/conversations", response_model=ConversationResponse, status_code=201)
def start_conversation(
    body: ConversationCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationResponse:
    return ConversationResponse.model_validate(anna_crud.create_conversation(db, user.id, body.mode))


@router.get("/conversations", response_model=list[ConversationResponse])
def list_conversations(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ConversationResponse]:
    """The caller's conversations, most recently updated first."""
    return [ConversationResponse.model_validate(c) for c in anna_crud.get_user_conversations(db, user.id)]


@router.get("/conversations/{conversation_id}", response_model=ConversationResponse)
def read_conversation(
    conversation_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationResponse:
    return ConversationResponse.model_validate(anna_crud.get_conversation(db, conversation_id, user.id))


@router.put("/conversations/{conversation_id}/mode", response_model=ConversationResponse)
def change_mode(
    conversation_id: str,
    body: ModeUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConversationResponse:
    conversation = anna_crud.get_conversation(db, conversation_id, user.id)
    return ConversationResponse.model_validate(
        anna_crud.update_conversation(db, conversation, mode=body.mode)
    )


@router.post("/conversations/{conversation_id}/messages", response_model=AnnaReplyResponse)
def ask(
    conversation_id: str,
    body: AnnaMessageRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: AnnaClient = Depends(get_anna_client),
) -> AnnaReplyResponse:
    """
    Send a message to Anna and wait for the whole reply.

    The user turn is stored before the AI call, so it survives an
    upstream failure (502).
    """
    conversation = anna_crud.get_conversation(db, conversation_id, user.id)
    turns = _append_user_turn(db, conversation, body.content)

    reply = client.get_response(turns, conversation.mode)
    if reply:
        turns = turns + [anna_crud.make_turn("model", reply)]
        anna_crud.update_conversation(db, conversation, messages=turns)

    logger.info(f"Anna replied in {conversation_id}: {len(reply)} chars")
    return AnnaReplyResponse(reply=reply, conversation=ConversationResponse.model_validate(conversation))


@router.post(
    "/conversations/{conversation_id}/messages/stream",
    response_class=StreamingResponse,
    responses={200: {"content": {"text/plain": {}}, "description": "Reply text as it is generated"}},
)
def ask_streaming(
    conversation_id: str,
    body: AnnaMessageRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    client: AnnaClient = Depends(get_anna_client),
) -> StreamingResponse:
    """
    Send a message to Anna and stream the reply as plain text.

    The first chunk is fetched before the response starts, so a provider
    that is down still yields a 502. The model turn is stored once the
    stream completes.
    """
    conversation = anna_crud.get_conversation(db, conversation_id, user.id)
    turns = _append_user_turn(db, conversation, body.content)

    chunks = client.stream_response(turns, conversation.mode)
    first = next(chunks, None)
    head = [first] if first is not None else []

    def relay() -> Iterator[str]:
        received = []
        try:
            for text in itertools.chain(head, chunks):
                received.append(text)
                yield text
        except UpstreamError as e:
            logger.error(f"Anna stream aborted in {conversation_id}: {e}")
        finally:
            reply = "".join(received)
            if reply:
                # The request session may already be closed once streaming runs
                with SessionLocal() as session:
                    stored = session.get(AnnaConversation, conversation_id)
                    if stored is not None:
                        anna_crud.update_conversation(
                            session,
                            stored,
                            messages=list(stored.messages or []) + [anna_crud.make_turn("model", reply)],
                        )
            logger.info(f"Anna streamed in {conversation_id}: {len(reply)} chars")

    return StreamingResponse(relay(), media_type="text/plain; charset=utf-8")


# =============================================================================
# Real-time agent sessions
# =============================================================================

def _session_response(instance: AgentInstance, agent_id=None) -> AgentSessionResponse:
    return AgentSessionResponse(
        instance_id=instance.instance_id,
        agent_id=agent_id,
        room_id=instance.room_id,
        user_id=instance.user_id,
        status=instance.status,
        agent_status=instance.agent_status,
    )


def _require_instance_owner(kv: KeyValueStore, instance_id: str, user_id: str) -> None:
    if kv.get(INSTANCE_OWNER_PREFIX + instance_id) != user_id:
        raise NotFoundError("agent session not found")


@router.post("/agent/sessions", response_model=AgentSessionResponse, status_code=201)
def start_agent_session(
    body: AgentSessionRequest,
    user: User = Depends(get_current_user),
    kv: KeyValueStore = Depends(get_kv),
    client: AgentClient = Depends(get_agent_client),
) -> AgentSessionResponse:
    """
    Put Anna into a real-time room and wait until she is ready.

    An instance still starting after the start timeout is torn down and
    reported as 502.
    """
    agent_id = ensure_agent(client, kv)
    instance = client.create_instance(agent_id, body.room_id, user.id, digital_human=body.digital_human)
    kv.set(INSTANCE_OWNER_PREFIX + instance.instance_id, user.id)

    try:
        ready = client.wait_until_ready(instance.instance_id)
    except UpstreamError:
        try:
            client.delete_instance(instance.instance_id)
        except UpstreamError as e:
            logger.warning(f"Could not clean up agent instance {instance.instance_id}: {e}")
        kv.delete(INSTANCE_OWNER_PREFIX + instance.instance_id)
        raise

    # the status poll carries no room or user, keep those from the create call
    instance.status, instance.agent_status = ready.status, ready.agent_status
    return _session_response(instance, agent_id)


@router.get("/agent/sessions/{instance_id}", response_model=AgentSessionResponse)
def read_agent_session(
    instance_id: str,
    user: User = Depends(get_current_user),
    kv: KeyValueStore = Depends(get_kv),
    client: AgentClient = Depends(get_agent_client),
) -> AgentSessionResponse:
    _require_instance_owner(kv, instance_id, user.id)
    return _session_response(client.get_instance_status(instance_id))


@router.post("/agent/sessions/{instance_id}/interrupt", response_model=StatusResponse)
def interrupt_agent(
    instance_id: str,
    user: User = Depends(get_current_user),
    kv: KeyValueStore = Depends(get_kv),
    client: AgentClient = Depends(get_agent_client),
) -> StatusResponse:
    """Stop Anna mid-sentence."""
    _require_instance_owner(kv, instance_id, user.id)
    client.interrupt(instance_id)
    return StatusResponse(status="ok")


@router.delete("/agent/sessions/{instance_id}", response_model=StatusResponse)
def end_agent_session(
    instance_id: str,
    user: User = Depends(get_current_user),
    kv: KeyValueStore = Depends(get_kv),
    client: AgentClient = Depends(get_agent_client),
) -> StatusResponse:
    _require_instance_owner(kv, instance_id, user.id)
    client.delete_instance(instance_id)
    kv.delete(INSTANCE_OWNER_PREFIX + instance_id)
    return StatusResponse(status="ok")
