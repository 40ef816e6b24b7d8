from __future__ import annotations
from typing import Optional, Sequence

from .analysis import format_number, format_performance_context, top_error_keys, top_substitutions
from .models import ConversationTurn, PerformanceSnapshot, SessionErrors, SessionSummary


STRUCTURED_SYSTEM_PROMPT = """
You are an AI typing tutor. Reply with ONE JSON object containing exactly these keys:
{
  "intent": "chitchat" | "session-analysis" | "session-suggest",
  "typing-text": string | null,
  "response": string
}

Intent classification:
- "chitchat": off-topic questions, general conversation, anything not about typing practice.
- "session-analysis": requests for feedback on performance, progress reviews, "how am I doing".
- "session-suggest": requests for exercises, practice text, challenges, key drills or a word count.

typing-text rules:
- Only "session-suggest" carries typing-text. For the other intents it MUST be null.
- Use exactly the number of words the user asked for, or 30-40 words when unspecified. Count carefully.
- Use standard keyboard characters only.
- If the user names a theme (cooking, sports, nature, technology...), the text must be about that theme.

Key drills (highest priority):
- Any request containing "drill" or naming specific keys is "session-suggest".
- Extract the keys from the message (e.g. "g o d" from "drill with g o d").
- typing-text may contain ONLY those keys and spaces: patterns such as "aaa sss ddd asa dad asad".
- Never produce normal sentences for a drill, and describe the same drill in "response".

response rules:
- chitchat: acknowledge briefly and steer back to typing practice.
- session-analysis: cite the actual metrics from the performance context (WPM, accuracy, sessions, trend),
  name the problem keys, give concrete actionable recommendations and offer a targeted exercise.
- session-suggest: one or two short encouraging sentences, e.g. "Here's a 20 word exercise. Take your time!"

Return only the JSON object. No markdown, no text before or after it.
""".strip()

RETRY_INSTRUCTION = (
	"IMPORTANT: Previous response had formatting issues. Ensure your response is ONLY valid JSON "
	"with no additional text before or after the JSON object."
)

PLAIN_CHAT_SYSTEM_PROMPT = """
You are a concise typing tutor. Give brief, helpful answers about typing improvement.
- Keep responses under 50 words.
- Focus on actionable typing advice.
- Encourage the user to ask for an "exercise" or "challenge" when they want practice text.
""".strip()

SESSION_ANALYSIS_SYSTEM_PROMPT = """
You are a typing performance analyst. Summarise the session in exactly 4 plain lines, no bullets or lists:
Line 1: "Session complete: X WPM at Y% accuracy"
Line 2: "Problem keys: <the specific keys from the error data>"
Line 3: "These keys caused <number> errors total"
Line 4: "Try a drill with: <same keys> keys"
Use the exact error data provided and mention the keys by name.
""".strip()


def format_conversation_history(history: Sequence[ConversationTurn], window: int = 5) -> str:
	recent = list(history)[-window:] if window > 0 else []
	if not recent:
		return "No previous conversation history."
	return "\n".join(f"{turn.role.upper()}: {turn.content}" for turn in recent)


def build_structured_prompt(
	message: str,
	snapshot: PerformanceSnapshot,
	history: Sequence[ConversationTurn],
	last_session_errors: Optional[SessionErrors] = None,
	*,
	window: int = 5,
	attempt: int = 0,
) -> str:
	prompt = (
		"CONVERSATION HISTORY:\n"
		f"{format_conversation_history(history, window)}\n\n"
		"PERFORMANCE CONTEXT:\n"
		f"{format_performance_context(snapshot, last_session_errors)}\n\n"
		f"USER MESSAGE: {message}\n\n"
		"Respond with valid JSON following the exact format specified in the system prompt."
	)
	if attempt > 0:
		prompt = f"{prompt}\n\n{RETRY_INSTRUCTION}"
	return prompt


def build_plain_chat_prompt(
	message: str,
	snapshot: PerformanceSnapshot,
	last_session_errors: Optional[SessionErrors] = None,
) -> str:
	if snapshot.total_sessions > 0:
		context = (
			f"User context: {snapshot.total_sessions} sessions completed, "
			f"{format_number(snapshot.average_wpm)} WPM average, {format_number(snapshot.average_accuracy)}% accuracy"
		)
	else:
		context = "New user with no typing history"
	if last_session_errors and last_session_errors.key_error_map:
		ranked = sorted(last_session_errors.key_error_map.items(), key=lambda item: (-item[1], item[0]))[:5]
		context += "\nLast session problematic keys: " + ", ".join(f"{key} ({count} errors)" for key, count in ranked)
		mistakes = top_substitutions(last_session_errors)
		if mistakes:
			context += f"\nCommon typing mistakes: {', '.join(mistakes)}"
	return f"{context}\n\nUser message: {message}"


def build_session_analysis_prompt(summary: SessionSummary) -> str:
	keys = top_error_keys(summary.key_error_map)
	lines = [
		"Analyze this typing session:",
		f"- WPM: {format_number(summary.wpm)}",
		f"- Accuracy: {summary.accuracy:.1f}%",
		f"- Total Errors: {summary.error_count}",
		f"- Time: {format_number(summary.time_elapsed)}s",
	]
	if keys:
		lines += [
			"ERROR ANALYSIS (USE THIS DATA):",
			f"- Problematic keys: {', '.join(keys)}",
			f"- These keys caused {sum(summary.key_error_map[key] for key in keys)} errors total",
		]
		mistakes = top_substitutions(SessionErrors(key_error_map=summary.key_error_map, detailed_errors=summary.detailed_errors))
		if mistakes:
			lines.append(f"- Common mistakes: {', '.join(mistakes)}")
		lines.append("Reference the specific problematic keys by name in your response.")
	else:
		lines.append("No specific problematic keys identified - excellent accuracy!")
	return "\n".join(lines)
