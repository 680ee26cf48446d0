from sqlalchemy.orm import Session
from fastapi import HTTPException, status
from datetime import datetime
from typing import Optional, List, Tuple, Dict, Any
import logging

import httpx

from ..core.config import settings
from ..core.security import UserRole
from ..models.ai_conversation import (
    AIConversation, AIMessage, ConversationStatus, MessageRole, DEFAULT_TITLE, title_from_message
)
from ..models.user import User
from ..schemas.assistant import ConversationCreate, SymptomCheckRequest

logger = logging.getLogger(__name__)

DISCLAIMER = (
    "This information is for general guidance only and is not a medical diagnosis. "
    "Consult a healthcare professional for medical advice. In an emergency, call your "
    "local emergency number."
)

SYSTEM_PROMPT = (
    "You are a careful health assistant for a clinic booking service. Give general "
    "guidance without diagnosing, and recommend urgent care whenever symptoms could "
    "be serious."
)

EMERGENCY_KEYWORDS = [
    "severe", "unbearable", "worst pain ever", "can't breathe", "chest pain",
    "difficulty breathing", "unconscious", "bleeding heavily", "severe headache",
    "sudden onset", "high fever", "vomiting blood", "severe allergic reaction",
]

URGENT_KEYWORDS = ["fever", "persistent", "worsening", "vomiting", "dizziness", "infection"]

SPECIALTY_BY_SYMPTOM = {
    "headache": "Neurology",
    "chest pain": "Cardiology",
    "fever": "Internal Medicine",
    "cough": "Pulmonology",
    "stomach pain": "Gastroenterology",
}

DEFAULT_SPECIALTY = "General Practice"

def triage(text: str) -> Dict[str, Any]:
    """Keyword triage of free text into urgency and a suggested specialty."""
    lowered = text.lower()
    emergency = [k for k in EMERGENCY_KEYWORDS if k in lowered]
    urgent = [k for k in URGENT_KEYWORDS if k in lowered]

    specialty = DEFAULT_SPECIALTY
    for symptom, candidate in SPECIALTY_BY_SYMPTOM.items():
        if symptom in lowered:
            specialty = candidate
            break

    if emergency:
        urgency = "emergency"
        actions = [
            "Call emergency services or go to the nearest emergency department now",
            "Do not drive yourself if you feel faint or short of breath",
        ]
    elif urgent:
        urgency = "urgent"
        actions = [
            f"Book an appointment with {specialty} within 24 hours",
            "Monitor your symptoms and seek emergency care if they get worse",
        ]
    else:
        urgency = "routine"
        actions = [
            f"Book a routine appointment with {specialty}",
            "Rest and keep a note of how your symptoms change",
        ]

    return {
        "urgency": urgency,
        "suggested_specialty": specialty,
        "suggested_actions": actions,
        "matched_keywords": emergency or urgent,
        "disclaimer": DISCLAIMER,
    }

def fallback_reply(text: str) -> str:
    result = triage(text)
    if result["urgency"] == "emergency":
        opening = "Your symptoms may need immediate attention."
    elif result["urgency"] == "urgent":
        opening = "Your symptoms should be looked at soon."
    else:
        opening = "Thanks for the details."
    steps = " ".join(f"{action}." for action in result["suggested_actions"])
    return f"{opening} A {result['suggested_specialty']} specialist would be a good fit. {steps} {DISCLAIMER}"

class AssistantService:
    def __init__(self, db: Session, client: Optional[httpx.Client] = None):
        self.db = db
        self.client = client

    # Conversations

    def _query(self, user: User):
        query = self.db.query(AIConversation)
        if user.role != UserRole.ADMIN:
            query = query.filter(AIConversation.user_id == user.id)
        return query

    def get(self, user: User, conversation_id: int) -> AIConversation:
        conversation = self._query(user).filter(AIConversation.id == conversation_id).first()
        if not conversation:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Conversation not found"
            )
        return conversation

    def list_conversations(
        self,
        user: User,
        status_filter: Optional[ConversationStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[AIConversation], int]:
        query = self._query(user)
        if status_filter:
            query = query.filter(AIConversation.status == status_filter)
        total = query.count()
        conversations = (
            query.order_by(AIConversation.updated_at.desc(), AIConversation.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return conversations, total

    def history(self, user: User, limit: int = 50) -> List[AIMessage]:
        """Most recent messages across the user's conversations, oldest first."""
        messages = (
            self.db.query(AIMessage)
            .join(AIConversation, AIMessage.conversation_id == AIConversation.id)
            .filter(AIConversation.user_id == user.id)
            .order_by(AIMessage.id.desc())
            .limit(limit)
            .all()
        )
        return list(reversed(messages))

    def create_conversation(self, user: User, data: ConversationCreate) -> AIConversation:
        if data.title:
            title = data.title
        elif data.initial_message:
            title = title_from_message(data.initial_message)
        else:
            title = DEFAULT_TITLE

        conversation = AIConversation(
            user_id=user.id,
            title=title,
            symptoms=data.symptoms,
            medical_history=data.medical_history,
            current_medications=data.current_medications,
        )
        self.db.add(conversation)
        self.db.flush()

        if data.initial_message:
            self._exchange(conversation, data.initial_message)

        self.db.commit()
        self.db.refresh(conversation)
        return conversation

    def send_message(self, user: User, conversation_id: int, content: str) -> Tuple[AIMessage, AIMessage]:
        conversation = self.get(user, conversation_id)
        if conversation.status != ConversationStatus.ACTIVE:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Conversation is not active"
            )
        if conversation.title == DEFAULT_TITLE and not conversation.messages:
            conversation.title = title_from_message(content)

        user_message, reply = self._exchange(conversation, content)
        conversation.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(user_message)
        self.db.refresh(reply)
        return user_message, reply

    def update_status(self, user: User, conversation_id: int, new_status: ConversationStatus) -> AIConversation:
        conversation = self.get(user, conversation_id)
        conversation.status = new_status
        self.db.commit()
        self.db.refresh(conversation)
        return conversation

    def delete(self, user: User, conversation_id: int) -> None:
        conversation = self.get(user, conversation_id)
        self.db.delete(conversation)
        self.db.commit()

    # Replies

    def _exchange(self, conversation: AIConversation, content: str) -> Tuple[AIMessage, AIMessage]:
        user_message = AIMessage(role=MessageRole.USER, content=content)
        conversation.messages.append(user_message)

        reply_text, meta = self._reply(conversation)
        reply = AIMessage(role=MessageRole.ASSISTANT, content=reply_text, meta=meta)
        conversation.messages.append(reply)
        self.db.flush()
        return user_message, reply

    def _context_prompt(self, conversation: AIConversation) -> str:
        parts = [SYSTEM_PROMPT]
        if conversation.symptoms:
            parts.append("Reported symptoms: " + ", ".join(conversation.symptoms))
        if conversation.medical_history:
            parts.append("Medical history: " + ", ".join(conversation.medical_history))
        if conversation.current_medications:
            parts.append("Current medications: " + ", ".join(conversation.current_medications))
        return "\n".join(parts)

    def _reply(self, conversation: AIConversation) -> Tuple[str, Dict[str, Any]]:
        latest = conversation.messages[-1].content
        if not settings.AI_API_URL:
            return fallback_reply(latest), {"source": "triage", "urgency": triage(latest)["urgency"]}

        messages = [{"role": "system", "content": self._context_prompt(conversation)}]
        messages += [
            {"role": MessageRole(m.role).value, "content": m.content}
            for m in conversation.messages
            if m.role != MessageRole.SYSTEM
        ]
        headers = {"Authorization": f"Bearer {settings.AI_API_KEY}"} if settings.AI_API_KEY else {}
        client = self.client or httpx.Client(timeout=settings.AI_TIMEOUT_SECONDS)
        try:
            response = client.post(
                settings.AI_API_URL,
                json={"model": settings.AI_MODEL, "messages": messages},
                headers=headers,
            )
            response.raise_for_status()
            text = response.json()["choices"][0]["message"]["content"]
        except (httpx.HTTPError, KeyError, IndexError, ValueError) as e:
            logger.error("Assistant endpoint failed, using triage reply: %s", e)
            return fallback_reply(latest), {"source": "triage", "error": str(e)[:200]}
        finally:
            if self.client is None:
                client.close()

        return text, {"source": "model", "model": settings.AI_MODEL}

    def check_symptoms(self, data: SymptomCheckRequest) -> Dict[str, Any]:
        text = " ".join(data.symptoms)
        if data.severity == "severe":
            text += " severe"
        return triage(text)
