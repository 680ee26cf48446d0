from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Text, JSON, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from ..core.database import Base

class ConversationStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"

class MessageRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"

DEFAULT_TITLE = "New Conversation"

class AIConversation(Base):
    __tablename__ = "ai_conversations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False, default=DEFAULT_TITLE)
    status = Column(SQLEnum(ConversationStatus), nullable=False, default=ConversationStatus.ACTIVE, index=True)

    # Context shared with the assistant
    symptoms = Column(JSON, default=list)
    medical_history = Column(JSON, default=list)
    current_medications = Column(JSON, default=list)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), index=True)

    user = relationship("User")
    messages = relationship(
        "AIMessage",
        back_populates="conversation",
        order_by="AIMessage.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<AIConversation(id={self.id}, user_id={self.user_id}, title='{self.title}')>"

class AIMessage(Base):
    __tablename__ = "ai_messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(Integer, ForeignKey("ai_conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(SQLEnum(MessageRole), nullable=False)
    content = Column(Text, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow)
    meta = Column("metadata", JSON, default=dict)

    conversation = relationship("AIConversation", back_populates="messages")

    def __repr__(self):
        return f"<AIMessage(id={self.id}, role='{self.role}')>"

def title_from_message(content: str) -> str:
    content = content.strip()
    return content[:30] + "..." if len(content) > 30 else content
