from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Intent(str, Enum):
	CHITCHAT = "chitchat"
	ANALYZE_SESSION = "session-analysis"
	GENERATE_EXERCISE = "session-suggest"


ImprovementTrend = Literal["improving", "stable", "declining"]
Difficulty = Literal["beginner", "intermediate", "advanced"]


class StructuredResponse(BaseModel):
	# Serialized at the HTTP boundary with exactly these three keys (by alias)
	model_config = ConfigDict(populate_by_name=True, frozen=True)

	intent: Intent
	generated_text: Optional[str] = Field(default=None, alias="typing-text")
	reply: str = Field(alias="response", min_length=1)

	@model_validator(mode="after")
	def _check_intent_consistency(self) -> "StructuredResponse":
		if self.generated_text is not None and self.intent is not Intent.GENERATE_EXERCISE:
			raise ValueError(f"intent {self.intent.value!r} cannot carry typing-text")
		if not self.reply.strip():
			raise ValueError("response cannot be blank")
		return self

	def to_wire(self) -> Dict[str, Optional[str]]:
		return self.model_dump(mode="json", by_alias=True)


class ConversationTurn(BaseModel):
	role: Literal["user", "assistant", "system"]
	content: str
	timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SessionRecord(BaseModel):
	wpm: float = Field(ge=0)
	accuracy: float = Field(ge=0, le=100)
	key_error_map: Dict[str, int] = Field(default_factory=dict)


class PerformanceSnapshot(BaseModel):
	total_sessions: int = Field(default=0, ge=0)
	average_wpm: float = Field(default=0, ge=0)
	average_accuracy: float = Field(default=0, ge=0, le=100)
	weak_keys: List[str] = Field(default_factory=list)
	improvement_trend: ImprovementTrend = "stable"
	sessions: List[SessionRecord] = Field(default_factory=list)


class KeystrokeError(BaseModel):
	position: int = Field(ge=0)
	expected: str
	typed: str
	timestamp: float = 0


class SessionErrors(BaseModel):
	key_error_map: Dict[str, int] = Field(default_factory=dict)
	detailed_errors: List[KeystrokeError] = Field(default_factory=list)


class SessionSummary(BaseModel):
	wpm: float = Field(ge=0)
	accuracy: float = Field(ge=0, le=100)
	error_count: int = Field(default=0, ge=0)
	time_elapsed: float = Field(default=0, ge=0)
	key_error_map: Dict[str, int] = Field(default_factory=dict)
	detailed_errors: List[KeystrokeError] = Field(default_factory=list)
	exercise_text: Optional[str] = None


class TypingExercise(BaseModel):
	id: str
	text: str
	difficulty: Difficulty
	focus_keys: Optional[List[str]] = None
	generated_by: Literal["ai", "preset"]
	created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
