from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..errors import LogicFailure
from ..models import (
	ConversationTurn,
	Difficulty,
	PerformanceSnapshot,
	SessionErrors,
	SessionSummary,
	TypingExercise,
)
from ..service import TutorService

router = APIRouter(prefix="/ai", tags=["ai"])

# Replaced at startup by main.py; tests override it through dependency_overrides
_service: Optional[TutorService] = None


def set_tutor_service(service: Optional[TutorService]) -> None:
	global _service
	_service = service


def get_tutor_service() -> TutorService:
	if _service is None:
		raise HTTPException(status_code=503, detail="tutor service not initialised")
	return _service


class ChatRequest(BaseModel):
	message: str
	performance: PerformanceSnapshot = Field(default_factory=PerformanceSnapshot)
	history: List[ConversationTurn] = Field(default_factory=list)
	last_session_errors: Optional[SessionErrors] = None


class TextResponse(BaseModel):
	text: str


class ExerciseRequest(BaseModel):
	prompt: str = ""
	difficulty: Difficulty = "beginner"
	focus_keys: Optional[List[str]] = None


@router.post("/chat")
async def chat(req: ChatRequest, service: TutorService = Depends(get_tutor_service)) -> Dict[str, Any]:
	try:
		response = await service.classify_and_respond(
			req.message,
			req.performance,
			req.history,
			req.last_session_errors,
		)
	except LogicFailure as e:
		raise HTTPException(status_code=400, detail=str(e))
	return response.to_wire()


@router.post("/chat/plain", response_model=TextResponse)
async def chat_plain(req: ChatRequest, service: TutorService = Depends(get_tutor_service)):
	text = await service.chat_with_user(req.message, req.performance, req.last_session_errors)
	return TextResponse(text=text)


@router.post("/session-analysis", response_model=TextResponse)
async def session_analysis(summary: SessionSummary, service: TutorService = Depends(get_tutor_service)):
	return TextResponse(text=await service.analyze_session(summary))


@router.post("/performance-analysis", response_model=TextResponse)
async def performance_analysis(snapshot: PerformanceSnapshot, service: TutorService = Depends(get_tutor_service)):
	return TextResponse(text=await service.analyze_performance(snapshot))


@router.post("/exercise", response_model=TypingExercise)
async def exercise(req: ExerciseRequest, service: TutorService = Depends(get_tutor_service)):
	return await service.generate_exercise(req.prompt, req.difficulty, req.focus_keys)


@router.get("/status")
def status(service: TutorService = Depends(get_tutor_service)) -> Dict[str, Any]:
	return service.status()
