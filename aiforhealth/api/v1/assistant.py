from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional, List, Tuple

from ...core.database import get_db
from ...api.deps import get_current_user, pagination_params
from ...models.ai_conversation import ConversationStatus
from ...models.user import User
from ...schemas.assistant import (
    ConversationCreate, MessageCreate, ConversationStatusUpdate, ChatMessageResponse,
    ConversationSummary, ConversationResponse, ConversationListResponse, ExchangeResponse,
    SymptomCheckRequest, SymptomCheckResponse
)
from ...schemas.common import Pagination, MessageResponse
from ...services.assistant_service import AssistantService

router = APIRouter(prefix="/ai-assistant", tags=["AI Assistant"])

@router.post("/conversations", response_model=ConversationResponse, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    conversation_data: ConversationCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    conversation = AssistantService(db).create_conversation(current_user, conversation_data)
    return ConversationResponse.from_orm(conversation)

@router.get("/conversations", response_model=ConversationListResponse)
async def list_conversations(
    status_filter: Optional[ConversationStatus] = Query(None, alias="status"),
    paging: Tuple[int, int] = Depends(pagination_params),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    page, limit = paging
    conversations, total = AssistantService(db).list_conversations(
        current_user, status_filter, page, limit
    )
    return ConversationListResponse(
        conversations=[ConversationSummary.from_orm(c) for c in conversations],
        pagination=Pagination.build(page, limit, total),
    )

@router.get("/history", response_model=List[ChatMessageResponse])
async def message_history(
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Most recent messages across all of the caller's conversations."""
    messages = AssistantService(db).history(current_user, limit)
    return [ChatMessageResponse.from_orm(m) for m in messages]

@router.post("/symptom-check", response_model=SymptomCheckResponse)
async def symptom_check(
    request_data: SymptomCheckRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return AssistantService(db).check_symptoms(request_data)

@router.get("/conversations/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return ConversationResponse.from_orm(AssistantService(db).get(current_user, conversation_id))

@router.post("/conversations/{conversation_id}/messages", response_model=ExchangeResponse)
async def send_message(
    conversation_id: int,
    message_data: MessageCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Store the user's message and the assistant's reply."""
    user_message, reply = AssistantService(db).send_message(
        current_user, conversation_id, message_data.content
    )
    return ExchangeResponse(
        conversation_id=conversation_id,
        user_message=ChatMessageResponse.from_orm(user_message),
        assistant_message=ChatMessageResponse.from_orm(reply),
    )

@router.patch("/conversations/{conversation_id}/status", response_model=ConversationResponse)
async def update_conversation_status(
    conversation_id: int,
    status_data: ConversationStatusUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    conversation = AssistantService(db).update_status(current_user, conversation_id, status_data.status)
    return ConversationResponse.from_orm(conversation)

@router.delete("/conversations/{conversation_id}", response_model=MessageResponse)
async def delete_conversation(
    conversation_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    AssistantService(db).delete(current_user, conversation_id)
    return {"message": "Conversation deleted"}
