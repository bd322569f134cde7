"""Tutoring API request and response models."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ConversationMode(StrEnum):
    LANGUAGE_LESSON = "language_lesson"
    GRAMMAR_LESSON = "grammar_lesson"
    TOPIC_LESSON = "topic_lesson"
    FREE_CONVERSATION = "free_conversation"
    INTERVIEW = "interview"
    VERB_CHALLENGE = "verb_challenge"
    NOUN_CHALLENGE = "noun_challenge"
    SITUATION_SIMULATION = "situation_simulation"


class CreateConversationRequest(BaseModel):
    difficulty: str = "beginner"
    native_language: str = "en"
    target_language: str = "es"
    learning_objective: str = ""
    conversation_mode: ConversationMode = ConversationMode.LANGUAGE_LESSON
    tempo: float = Field(0.75, gt=0)
    is_muted: bool = False


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    conversation_id: str | None = None
    tempo: float = Field(0.75, gt=0)
    difficulty: str = "beginner"
    native_language: str = "en"
    target_language: str = "es"
    learning_objective: str = ""
    is_muted: bool = False
    conversation_mode: ConversationMode = ConversationMode.LANGUAGE_LESSON


class ConversationResponse(BaseModel):
    """Conversation state returned by the tutor."""

    model_config = {"extra": "allow"}

    conversation_id: str
    history: list[dict[str, Any]] = Field(default_factory=list)
    response: str | None = None
    has_audio: bool = False
    message_index: int | None = None
