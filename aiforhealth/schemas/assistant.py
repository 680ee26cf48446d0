from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Dict, Any, Literal

from ..models.ai_conversation import ConversationStatus, MessageRole
from .common import Pagination

class ConversationCreate(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    initial_message: Optional[str] = Field(None, min_length=1, max_length=4000)
    symptoms: List[str] = []
    medical_history: List[str] = []
    current_medications: List[str] = []

class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=4000)

class ConversationStatusUpdate(BaseModel):
    status: ConversationStatus

class ChatMessageResponse(BaseModel):
    id: int
    role: MessageRole
    content: str
    timestamp: datetime
    meta: Optional[Dict[str, Any]] = Field(None, serialization_alias="metadata")

    class Config:
        from_attributes = True

class ConversationSummary(BaseModel):
    id: int
    title: str
    status: ConversationStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ConversationResponse(ConversationSummary):
    symptoms: Optional[List[str]] = None
    medical_history: Optional[List[str]] = None
    current_medications: Optional[List[str]] = None
    messages: List[ChatMessageResponse] = []

class ConversationListResponse(BaseModel):
    conversations: List[ConversationSummary]
    pagination: Pagination

class ExchangeResponse(BaseModel):
    conversation_id: int
    user_message: ChatMessageResponse
    assistant_message: ChatMessageResponse

class SymptomCheckRequest(BaseModel):
    symptoms: List[str] = Field(..., min_length=1)
    duration: Optional[str] = Field(None, max_length=100)
    severity: Optional[Literal["mild", "moderate", "severe"]] = None
    age: Optional[int] = Field(None, ge=0, le=130)

class SymptomCheckResponse(BaseModel):
    urgency: Literal["emergency", "urgent", "routine"]
    suggested_specialty: str
    suggested_actions: List[str]
    matched_keywords: List[str] = []
    disclaimer: str
