"""The tutor's entry points.

``TutorService.classify_and_respond`` is the structured chat pipeline: the
provider is asked for a JSON payload, which is extracted, validated and made
intent-consistent, retried on format problems and replaced by deterministic
content whenever the provider is unavailable. The remaining methods are the
plain-text operations built on the same gate.
"""
from __future__ import annotations

import asyncio
import logging
import re
import uuid
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence

from .analysis import (
	analyze_session_errors,
	format_number,
	generate_recommendations,
	has_actionable_recommendation,
	mentions_metrics,
	offers_practice,
)
from .circuit import FailureTracker
from .errors import ErrorKind, LogicFailure, ProviderFailure, classify_error
from .extraction import parse_payload
from .fallbacks import (
	adjust_text_to_word_count,
	drill_reply,
	fallback_chat_reply,
	generate_exercise_text,
	generate_key_drill,
	is_valid_drill_text,
	performance_summary_text,
	preset_exercise,
	session_summary_text,
	static_fallback_response,
)
from .gemini_client import LanguageModelProvider
from .models import (
	ConversationTurn,
	Intent,
	PerformanceSnapshot,
	SessionErrors,
	SessionSummary,
	StructuredResponse,
	TypingExercise,
)
from .prompts import (
	PLAIN_CHAT_SYSTEM_PROMPT,
	SESSION_ANALYSIS_SYSTEM_PROMPT,
	STRUCTURED_SYSTEM_PROMPT,
	build_plain_chat_prompt,
	build_session_analysis_prompt,
	build_structured_prompt,
)
from .requests import (
	DEFAULT_WORD_COUNT,
	classify_message_intent,
	extract_drill_keys,
	extract_word_count,
	has_explicit_word_count,
	is_typing_related,
	within_word_count,
)
from .resilience import ResilientInvoker
from .settings import Settings, settings as default_settings
from .validation import enforce_intent_invariants, validate_payload


logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

OFF_TOPIC_REPLY = (
	"I'm here to help you improve your typing skills! Try asking for a typing exercise, "
	"practice suggestions, or performance analysis."
)
CHITCHAT_REDIRECT = (
	"Let's focus on improving your typing skills! Would you like me to generate a practice exercise "
	"or analyze your recent performance?"
)


class PerformanceSource(Protocol):
	"""Whatever stores session history for the current user."""

	def get_performance_snapshot(self) -> PerformanceSnapshot:
		...

	def get_last_session_errors(self) -> Optional[SessionErrors]:
		...


def _check_inputs(
	message: object,
	performance: object,
	history: object,
	last_session_errors: object,
) -> None:
	if not isinstance(message, str):
		raise LogicFailure(f"message must be a string, got {type(message).__name__}")
	if not isinstance(performance, PerformanceSnapshot):
		raise LogicFailure(f"performance must be a PerformanceSnapshot, got {type(performance).__name__}")
	if history is not None:
		if isinstance(history, (str, bytes)) or not isinstance(history, Sequence):
			raise LogicFailure("history must be a sequence of ConversationTurn")
		if not all(isinstance(turn, ConversationTurn) for turn in history):
			raise LogicFailure("history must be a sequence of ConversationTurn")
	if last_session_errors is not None and not isinstance(last_session_errors, SessionErrors):
		raise LogicFailure(f"last_session_errors must be SessionErrors, got {type(last_session_errors).__name__}")


def _mentions_key(reply: str, key: str) -> bool:
	return re.search(rf"(?<![a-z]){re.escape(key.lower())}(?![a-z])", reply.lower()) is not None


class TutorService:
	def __init__(
		self,
		provider: LanguageModelProvider,
		*,
		tracker: Optional[FailureTracker] = None,
		config: Optional[Settings] = None,
		sleep: Sleep = asyncio.sleep,
	) -> None:
		self.config = config or default_settings
		self.provider = provider
		self.tracker = tracker or FailureTracker(
			self.config.failure_threshold,
			self.config.failure_cooldown_seconds,
		)
		self.invoker = ResilientInvoker(self.tracker)
		self._sleep = sleep

	async def _call_provider(self, system_prompt: str, user_prompt: str, timeout: Optional[float]) -> str:
		limit = timeout if timeout is not None else self.config.provider_timeout_seconds
		try:
			return await asyncio.wait_for(self.provider.generate(system_prompt, user_prompt), limit)
		except asyncio.TimeoutError as exc:
			raise ProviderFailure(f"Provider call timed out after {limit:.0f}s") from exc

	# ---- Structured chat ----

	async def classify_and_respond(
		self,
		message: str,
		performance: PerformanceSnapshot,
		history: Optional[Sequence[ConversationTurn]] = None,
		last_session_errors: Optional[SessionErrors] = None,
		*,
		timeout: Optional[float] = None,
	) -> StructuredResponse:
		"""Answer one user message with an intent-consistent structured response.

		Provider and format failures never escape: the former are answered by
		the static fallback straight away, the latter are retried with a stricter
		instruction and, once retries run out, answered by the best fallback for
		the message. Wrong argument types raise LogicFailure.
		"""
		_check_inputs(message, performance, history, last_session_errors)
		history = list(history or [])

		def static_fallback() -> StructuredResponse:
			return static_fallback_response(message, performance, last_session_errors)

		max_retries = self.config.max_retries
		last_error: Optional[Exception] = None
		for attempt in range(max_retries + 1):
			user_prompt = build_structured_prompt(
				message,
				performance,
				history,
				last_session_errors,
				window=self.config.history_window,
				attempt=attempt,
			)

			async def primary(user_prompt: str = user_prompt) -> StructuredResponse:
				raw = await self._call_provider(STRUCTURED_SYSTEM_PROMPT, user_prompt, timeout)
				return enforce_intent_invariants(validate_payload(parse_payload(raw)))

			try:
				response = await self.invoker.call(primary, static_fallback, "classify_and_respond")
			except Exception as exc:
				if classify_error(exc) is not ErrorKind.FORMAT:
					raise
				last_error = exc
				if attempt < max_retries:
					delay = self.config.retry_backoff_seconds * (attempt + 1)
					logger.info(
						"Structured response attempt %d/%d failed (%s), retrying in %.1fs",
						attempt + 1, max_retries + 1, exc, delay,
					)
					await self._sleep(delay)
				continue
			if attempt > 0:
				logger.info("Structured response succeeded on attempt %d", attempt + 1)
			return self._post_process(response, message, performance, last_session_errors)

		logger.error("All structured response attempts failed (%s), using fallback", last_error)
		return await self._exhausted_fallback(message, performance, last_session_errors)

	async def respond_from_source(
		self,
		source: PerformanceSource,
		message: str,
		history: Optional[Sequence[ConversationTurn]] = None,
		*,
		timeout: Optional[float] = None,
	) -> StructuredResponse:
		return await self.classify_and_respond(
			message,
			source.get_performance_snapshot(),
			history,
			source.get_last_session_errors(),
			timeout=timeout,
		)

	async def _exhausted_fallback(
		self,
		message: str,
		performance: PerformanceSnapshot,
		last_session_errors: Optional[SessionErrors],
	) -> StructuredResponse:
		intent = classify_message_intent(message)
		if intent is Intent.GENERATE_EXERCISE:
			response = static_fallback_response(message, performance, last_session_errors)
		else:
			# A plain-text answer still beats a canned one when the provider is up
			reply = await self.chat_with_user(message, performance, last_session_errors)
			response = StructuredResponse(intent=intent, generated_text=None, reply=reply)
		return self._post_process(response, message, performance, last_session_errors)

	def _post_process(
		self,
		response: StructuredResponse,
		message: str,
		performance: PerformanceSnapshot,
		last_session_errors: Optional[SessionErrors],
	) -> StructuredResponse:
		if response.intent is Intent.GENERATE_EXERCISE:
			return self._finish_exercise(response, message)
		if response.intent is Intent.ANALYZE_SESSION:
			return self._finish_analysis(response, performance, last_session_errors)
		return self._finish_chitchat(response)

	def _finish_exercise(self, response: StructuredResponse, message: str) -> StructuredResponse:
		text = response.generated_text
		reply = response.reply
		requested = extract_word_count(message) if has_explicit_word_count(message) else None
		keys = extract_drill_keys(message)

		if keys:
			if not is_valid_drill_text(text, keys) or (requested and not within_word_count(text, requested)):
				logger.warning("Drill text does not match keys %s, regenerating", ", ".join(keys))
				text = generate_key_drill(keys, word_count=requested)
				reply = drill_reply(keys)
			else:
				# Keys are matched case-insensitively but always returned lower-case
				text = text.lower()
		elif text is None:
			logger.warning("Exercise text missing, filling from practice sentences")
			text = generate_exercise_text(requested or DEFAULT_WORD_COUNT, message)
		elif requested and not within_word_count(text, requested):
			logger.warning("Exercise has %d words, %d requested, adjusting", len(text.split()), requested)
			text = adjust_text_to_word_count(text, requested)

		return StructuredResponse(intent=Intent.GENERATE_EXERCISE, generated_text=text, reply=reply)

	def _finish_analysis(
		self,
		response: StructuredResponse,
		performance: PerformanceSnapshot,
		last_session_errors: Optional[SessionErrors],
	) -> StructuredResponse:
		original = response.reply
		lowered = original.lower()
		reply = original

		if performance.total_sessions > 0:
			if not mentions_metrics(original, performance):
				reply = (
					f"Based on your {performance.total_sessions} sessions, you're averaging "
					f"{format_number(performance.average_wpm)} WPM with {format_number(performance.average_accuracy)}% "
					f"accuracy ({performance.improvement_trend} trend). {reply}"
				)
			if not has_actionable_recommendation(original):
				recommendations = generate_recommendations(performance, last_session_errors)
				if recommendations:
					reply += f" Here are specific areas to focus on: {', '.join(recommendations[:2])}."

		if last_session_errors and last_session_errors.key_error_map:
			errors = analyze_session_errors(last_session_errors)
			keys = errors.problem_key_names[:3]
			if keys and not any(_mentions_key(original, key) for key in keys):
				reply += (
					f" Your last session showed specific issues with the '{', '.join(keys)}' keys. "
					"I recommend practicing targeted drills for these keys to improve your accuracy."
				)
			if errors.problem_fingers and "finger" not in lowered:
				reply += f" Focus on {errors.problem_fingers[0]} finger positioning to reduce errors."
			if "speed" not in lowered and "accuracy" not in lowered:
				reply += f" {errors.speed_vs_accuracy}."

		if not offers_practice(reply):
			if performance.weak_keys:
				reply += (
					" Would you like me to generate a targeted exercise focusing on your weak keys: "
					f"{', '.join(performance.weak_keys[:3])}?"
				)
			else:
				reply += " Would you like me to create a practice exercise tailored to your current skill level?"

		return StructuredResponse(intent=Intent.ANALYZE_SESSION, generated_text=None, reply=reply)

	def _finish_chitchat(self, response: StructuredResponse) -> StructuredResponse:
		lowered = response.reply.lower()
		reply = response.reply
		if "typing" not in lowered and "exercise" not in lowered:
			reply = f"{reply} {CHITCHAT_REDIRECT}"
		return StructuredResponse(intent=Intent.CHITCHAT, generated_text=None, reply=reply)

	# ---- Plain-text operations ----

	async def chat_with_user(
		self,
		message: str,
		performance: PerformanceSnapshot,
		last_session_errors: Optional[SessionErrors] = None,
		*,
		timeout: Optional[float] = None,
	) -> str:
		if not is_typing_related(message):
			return OFF_TOPIC_REPLY

		def fallback() -> str:
			logger.info("Using fallback chat response")
			return fallback_chat_reply(message, performance, last_session_errors)

		async def primary() -> str:
			text = await self._call_provider(
				PLAIN_CHAT_SYSTEM_PROMPT,
				build_plain_chat_prompt(message, performance, last_session_errors),
				timeout,
			)
			return text.strip()

		reply = await self.invoker.call(primary, fallback, "chat_with_user")
		return reply or fallback()

	async def analyze_session(self, summary: SessionSummary, *, timeout: Optional[float] = None) -> str:
		async def primary() -> str:
			text = await self._call_provider(
				SESSION_ANALYSIS_SYSTEM_PROMPT,
				build_session_analysis_prompt(summary),
				timeout,
			)
			return text.strip()

		reply = await self.invoker.call(primary, lambda: session_summary_text(summary), "analyze_session")
		return reply or session_summary_text(summary)

	async def analyze_performance(self, snapshot: PerformanceSnapshot) -> str:
		if not self.tracker.is_available():
			return performance_summary_text(snapshot)
		response = await self.classify_and_respond(
			"Analyze my typing performance and provide improvement suggestions",
			snapshot,
		)
		return response.reply

	async def generate_exercise(
		self,
		prompt: str,
		difficulty: str = "beginner",
		focus_keys: Optional[List[str]] = None,
	) -> TypingExercise:
		if not self.tracker.is_available():
			return preset_exercise(difficulty, focus_keys)
		request = f"Generate a {difficulty} typing exercise: {prompt}"
		if focus_keys:
			request += f" focusing on keys: {', '.join(focus_keys)}"
		response = await self.classify_and_respond(request, PerformanceSnapshot())
		if response.intent is Intent.GENERATE_EXERCISE and response.generated_text:
			return TypingExercise(
				id=uuid.uuid4().hex,
				text=response.generated_text,
				difficulty=difficulty if difficulty in ("beginner", "intermediate", "advanced") else "beginner",
				focus_keys=focus_keys or None,
				generated_by="ai",
			)
		return preset_exercise(difficulty, focus_keys)

	def status(self) -> dict:
		return self.tracker.status()
