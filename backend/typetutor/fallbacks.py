"""Provider-free content.

Everything here is a pure function of its arguments: the same request always
yields the same text, so degraded answers are reproducible and testable.
"""
from __future__ import annotations

import uuid
from typing import List, Optional, Sequence, Tuple

from .analysis import format_number, top_error_keys
from .models import Intent, PerformanceSnapshot, SessionErrors, SessionSummary, StructuredResponse, TypingExercise
from .requests import (
	DEFAULT_WORD_COUNT,
	MAX_DRILL_KEYS,
	classify_message_intent,
	extract_drill_keys,
	extract_word_count,
	has_explicit_word_count,
)


PRACTICE_SENTENCES = [
	"The quick brown fox jumps over the lazy dog. This classic sentence helps practice all letters of the alphabet while building typing speed and accuracy.",
	"Practice makes perfect when learning to type efficiently. Focus on proper finger placement and maintain steady rhythm throughout your typing session.",
	"Consistent daily practice will improve your typing skills significantly. Remember to keep your wrists straight and fingers curved over the home row keys.",
	"Typing accuracy is more important than speed when you are learning. Build muscle memory first, then gradually increase your words per minute.",
	"Professional typists maintain excellent posture while typing. Sit up straight, keep feet flat on the floor, and position your screen at eye level.",
]

EXTENSION_PHRASES = [
	"Keep practicing to improve your typing skills.",
	"Focus on accuracy before speed.",
	"Maintain proper finger positioning.",
	"Practice makes perfect.",
	"Build muscle memory through repetition.",
	"Stay focused and type steadily.",
	"Remember to keep your wrists straight.",
	"Take breaks when needed.",
	"Consistency is key to improvement.",
	"Type with confidence and precision.",
]

PRESET_EXERCISES = {
	"beginner": "The quick brown fox jumps over the lazy dog. This sentence contains every letter of the alphabet. Practice typing slowly and focus on accuracy first. Speed will come naturally with practice. Keep your fingers on the home row keys.",
	"intermediate": "Practice makes perfect! Keep typing to improve your speed and accuracy. Remember to maintain proper finger positioning on the home row keys. Take breaks when needed, but try to maintain a steady rhythm throughout your typing session.",
	"advanced": "Advanced typing requires precision, speed, and consistent practice across various text types. Master complex punctuation, keyboard symbols like @#$%&*, and technical terminology. Develop muscle memory through deliberate practice while maintaining exceptional accuracy standards.",
}

TYPING_TIPS = [
	"Keep your fingers on the home row keys (ASDF and JKL;).",
	"Focus on accuracy first - speed will come naturally.",
	"Practice regularly, even just 10-15 minutes daily.",
	"Use proper posture: sit up straight, feet flat on floor.",
	"Don't look at the keyboard - build muscle memory.",
]

DEFAULT_DRILL_LENGTH = 80
MAX_DRILL_LENGTH = 200


def _pick(options: Sequence[str], seed: str) -> str:
	return options[sum(map(ord, seed)) % len(options)]


def service_unavailable_message(operation: str) -> str:
	base = "I'm temporarily experiencing connectivity issues."
	if operation == "chat":
		return f"{base} I can still help with basic typing guidance. Try asking for preset exercises or general typing tips."
	if operation == "exercise":
		return f"{base} I'll provide you with a preset typing exercise instead."
	if operation == "analysis":
		return f"{base} I can provide basic performance feedback, but detailed analysis is temporarily unavailable."
	return f"{base} Please try again in a few minutes."


def adjust_text_to_word_count(text: str, word_count: int) -> str:
	"""Truncate, or extend with fixed phrases, until ``text`` has exactly ``word_count`` words."""
	words = text.split()
	if len(words) >= word_count:
		return " ".join(words[:word_count])
	index = 0
	while len(words) < word_count:
		phrase = EXTENSION_PHRASES[index % len(EXTENSION_PHRASES)].split()
		words.extend(phrase[: word_count - len(words)])
		index += 1
	return " ".join(words)


def generate_exercise_text(word_count: int, seed: str = "") -> str:
	return adjust_text_to_word_count(_pick(PRACTICE_SENTENCES, seed), max(1, word_count))


def _normalize_keys(keys: Sequence[str]) -> List[str]:
	normalized: List[str] = []
	for key in keys:
		key = key.strip().lower()
		if len(key) == 1 and not key.isspace() and key not in normalized:
			normalized.append(key)
	return normalized[:MAX_DRILL_KEYS]


def drill_patterns(keys: Sequence[str]) -> List[str]:
	keys = _normalize_keys(keys)
	patterns: List[str] = []
	for key in keys:
		patterns += [key * 3, key * 4]
	for i, first in enumerate(keys):
		for second in keys[i + 1 :]:
			patterns += [first + second + first, second + first + second, first * 2 + second, second * 2 + first]
	for i in range(len(keys) - 2):
		a, b, c = keys[i : i + 3]
		patterns += [a + b + c + a, c + b + a + c, a + c + b + a]
	for key in keys:
		patterns.append(key * 5)
	if len(keys) >= 2:
		everything = "".join(keys)
		patterns += [everything, everything[::-1]]
	return patterns


def generate_key_drill(
	keys: Sequence[str],
	target_length: int = DEFAULT_DRILL_LENGTH,
	*,
	word_count: Optional[int] = None,
) -> str:
	"""Space separated drill patterns built only from ``keys``.

	With ``word_count`` the result has exactly that many patterns; otherwise
	patterns are added while they fit in ``target_length`` characters. Patterns
	are never split and repeat in order when the set runs out.
	"""
	patterns = drill_patterns(keys)
	if not patterns:
		return ""
	if word_count is not None:
		return " ".join(patterns[i % len(patterns)] for i in range(max(1, word_count)))

	limit = max(1, min(target_length, MAX_DRILL_LENGTH))
	chosen: List[str] = [patterns[0]]
	length = len(patterns[0])
	index = 1
	while length + 1 + len(patterns[index % len(patterns)]) <= limit:
		pattern = patterns[index % len(patterns)]
		chosen.append(pattern)
		length += 1 + len(pattern)
		index += 1
	return " ".join(chosen)


def is_valid_drill_text(text: Optional[str], keys: Sequence[str]) -> bool:
	keys = _normalize_keys(keys)
	if not text or not keys:
		return False
	allowed = set(keys) | {" "}
	lowered = text.lower()
	return all(char in allowed for char in lowered) and any(key in lowered for key in keys)


def drill_reply(keys: Sequence[str]) -> str:
	return f"Here's a drill for the keys: {', '.join(_normalize_keys(keys))}. Focus on accuracy and build muscle memory!"


def exercise_reply(text: str) -> str:
	return f"Here's a {len(text.split())}-word exercise for you to practice. Focus on accuracy first!"


def fallback_exercise_for(message: str) -> Tuple[str, str]:
	"""Typing text and a matching reply for an exercise request, without a provider."""
	requested = extract_word_count(message)
	keys = extract_drill_keys(message)
	if keys:
		if has_explicit_word_count(message):
			text = generate_key_drill(keys, word_count=requested)
		else:
			text = generate_key_drill(keys)
		return text, drill_reply(keys)
	text = generate_exercise_text(requested or DEFAULT_WORD_COUNT, message)
	return text, exercise_reply(text)


def session_summary_text(summary: SessionSummary) -> str:
	"""Short fixed-template summary of one finished session."""
	lines = [f"Session: {format_number(summary.wpm)} WPM, {summary.accuracy:.1f}% accuracy"]
	keys = top_error_keys(summary.key_error_map)
	if keys:
		total = sum(summary.key_error_map[key] for key in keys)
		lines += [
			f"Problem keys: {', '.join(keys)} ({total} errors)",
			"Focus on finger placement for these keys",
			f"Try a drill with: {', '.join(keys)} keys",
		]
	else:
		lines += [
			"Great accuracy! No major problem keys identified",
			"Keep practicing to maintain consistency",
		]
	return "\n".join(lines)


def performance_summary_text(snapshot: PerformanceSnapshot) -> str:
	if snapshot.total_sessions == 0:
		return (
			"Welcome to typing practice! Start with focusing on accuracy over speed. "
			"Keep your fingers on the home row keys and practice regularly."
		)
	parts = [
		f"Performance Summary: {format_number(snapshot.average_wpm)} WPM at "
		f"{format_number(snapshot.average_accuracy)}% accuracy over {snapshot.total_sessions} sessions."
	]
	if snapshot.average_wpm < 25:
		parts.append("Focus on building basic typing speed through daily practice.")
	elif snapshot.average_wpm < 40:
		parts.append("Good progress on speed! Continue practicing to reach 40+ WPM.")
	else:
		parts.append("Excellent typing speed!")
	if snapshot.average_accuracy < 85:
		parts.append("Prioritize accuracy over speed - slow down and focus on correct key presses.")
	elif snapshot.average_accuracy < 95:
		parts.append("Good accuracy foundation - work on eliminating remaining errors.")
	else:
		parts.append("Outstanding accuracy!")
	if snapshot.weak_keys:
		parts.append(f"Focus on practicing these challenging keys: {', '.join(snapshot.weak_keys[:3])}.")
	if snapshot.improvement_trend == "improving":
		parts.append("You're making great progress - keep up the consistent practice!")
	elif snapshot.improvement_trend == "declining":
		parts.append("Take a break and focus on fundamentals - proper finger positioning and accuracy.")
	else:
		parts.append("Try different exercise types to break through your current plateau.")
	return " ".join(parts)


def fallback_chat_reply(
	message: str,
	snapshot: PerformanceSnapshot,
	last_session_errors: Optional[SessionErrors] = None,
) -> str:
	lowered = message.lower()
	if any(word in lowered for word in ("exercise", "practice", "challenge")):
		return "I'd be happy to help! Ask me to 'generate an exercise' or specify what you'd like to practice (like 'beginner exercise' or 'practice keys a s d')."

	if any(word in lowered for word in ("performance", "how am i", "progress")):
		if snapshot.total_sessions == 0:
			return "You're just getting started! Focus on accuracy first, then speed will naturally improve with practice."
		reply = f"You're averaging {format_number(snapshot.average_wpm)} WPM at {format_number(snapshot.average_accuracy)}% accuracy. "
		if snapshot.average_accuracy < 90:
			return reply + "Focus on accuracy before speed."
		if snapshot.average_wpm < 40:
			return reply + "Great accuracy! Now work on building speed."
		return reply + "Excellent progress! Keep practicing consistently."

	if any(word in lowered for word in ("improve", "better", "tips")):
		tip = _pick(TYPING_TIPS, message)
		if snapshot.weak_keys:
			return f"Practice your weak keys: {', '.join(snapshot.weak_keys[:3])}. {tip}"
		return tip

	if (
		last_session_errors
		and last_session_errors.key_error_map
		and any(word in lowered for word in ("error", "mistake", "wrong"))
	):
		keys = top_error_keys(last_session_errors.key_error_map)
		return f"Your most problematic keys are: {', '.join(keys)}. Try practicing these keys specifically with targeted drills."

	return f"{service_unavailable_message('chat')} For now, try asking for specific exercises or typing tips!"


def static_fallback_response(
	message: str,
	snapshot: PerformanceSnapshot,
	last_session_errors: Optional[SessionErrors] = None,
) -> StructuredResponse:
	"""Complete structured answer built without any provider call."""
	intent = classify_message_intent(message)

	if intent is Intent.GENERATE_EXERCISE:
		text, reply = fallback_exercise_for(message)
		return StructuredResponse(
			intent=intent,
			generated_text=text,
			reply=f"{service_unavailable_message('exercise')} {reply}",
		)

	if intent is Intent.ANALYZE_SESSION:
		if snapshot.total_sessions > 0:
			reply = (
				f"{service_unavailable_message('analysis')} Your current stats: "
				f"{format_number(snapshot.average_wpm)} WPM, {format_number(snapshot.average_accuracy)}% accuracy "
				f"over {snapshot.total_sessions} sessions."
			)
			if last_session_errors and last_session_errors.key_error_map:
				reply += f" Problem keys last session: {', '.join(top_error_keys(last_session_errors.key_error_map))}."
		else:
			reply = f"{service_unavailable_message('analysis')} Start practicing to build your typing history!"
		return StructuredResponse(intent=intent, generated_text=None, reply=reply)

	return StructuredResponse(
		intent=intent,
		generated_text=None,
		reply=f"{service_unavailable_message('chat')} I can still provide basic typing guidance and preset exercises.",
	)


def preset_exercise(
	difficulty: str,
	focus_keys: Optional[Sequence[str]] = None,
	word_count: Optional[int] = None,
) -> TypingExercise:
	if difficulty not in PRESET_EXERCISES:
		difficulty = "beginner"
	text = PRESET_EXERCISES[difficulty]
	keys = _normalize_keys(focus_keys or [])
	if keys:
		key_string = " ".join(keys)
		text = (
			f"Practice these specific keys: {key_string}. Focus on building muscle memory for {key_string} combinations. "
			f"Repeat these patterns: {generate_key_drill(keys, 40)}. Remember to keep your fingers positioned correctly "
			f"and maintain steady rhythm while typing {key_string} sequences."
		)
	if word_count:
		text = adjust_text_to_word_count(text, word_count)
	return TypingExercise(
		id=uuid.uuid4().hex,
		text=text,
		difficulty=difficulty,
		focus_keys=keys or None,
		generated_by="preset",
	)
