from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from .errors import FormatFailure
from .models import Intent, StructuredResponse


logger = logging.getLogger(__name__)


TEXT_KEY = "typing-text"
REPLY_KEY = "response"
ALLOWED_KEYS = ("intent", TEXT_KEY, REPLY_KEY)
VALID_INTENTS = [intent.value for intent in Intent]

MIN_TYPING_TEXT_CHARS = 10
MAX_TYPING_TEXT_CHARS = 500

_DISALLOWED_CHARS_RE = re.compile(r"[^a-zA-Z0-9\s.,!?;:'\"()\-/@#$%&*]")
_WHITESPACE_RE = re.compile(r"\s+")


def validate_payload(data: Any) -> Dict[str, Any]:
	"""Check required fields, types and the intent enumeration.

	Unexpected keys are logged and dropped. Raises FormatFailure listing every
	problem found.
	"""
	if not isinstance(data, dict):
		raise FormatFailure("Response validation failed: response is not a valid object")

	errors: List[str] = []
	intent = data.get("intent")
	if not intent:
		errors.append("missing required field: intent")
	elif not isinstance(intent, str):
		errors.append('field "intent" must be a string')
	elif intent not in VALID_INTENTS:
		errors.append(f'invalid intent value "{intent}", must be one of: {", ".join(VALID_INTENTS)}')

	reply = data.get(REPLY_KEY)
	if reply is None:
		errors.append(f"missing required field: {REPLY_KEY}")
	elif not isinstance(reply, str):
		errors.append(f'field "{REPLY_KEY}" must be a string')
	elif not reply.strip():
		errors.append(f'field "{REPLY_KEY}" cannot be empty')

	if TEXT_KEY not in data:
		errors.append(f"missing required field: {TEXT_KEY}")
	elif data[TEXT_KEY] is not None and not isinstance(data[TEXT_KEY], str):
		errors.append(f'field "{TEXT_KEY}" must be null or a string')

	if errors:
		raise FormatFailure(f"Response validation failed: {', '.join(errors)}")

	unexpected = [key for key in data if key not in ALLOWED_KEYS]
	if unexpected:
		logger.warning("Unexpected fields in response ignored: %s", ", ".join(unexpected))
	return {key: data[key] for key in ALLOWED_KEYS}


def sanitize_typing_text(text: str) -> Optional[str]:
	"""Clean provider typing text. None means too short to use and needs a fallback fill."""
	cleaned = text.strip()
	if _DISALLOWED_CHARS_RE.search(cleaned):
		logger.warning("Typing text contains characters outside the keyboard set, cleaning")
		cleaned = _DISALLOWED_CHARS_RE.sub("", cleaned)
	cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()

	if len(cleaned) < MIN_TYPING_TEXT_CHARS:
		logger.warning("Typing text too short (%d chars), marking for fallback", len(cleaned))
		return None

	if len(cleaned) > MAX_TYPING_TEXT_CHARS:
		logger.warning("Typing text too long (%d chars), truncating", len(cleaned))
		cleaned = cleaned[:MAX_TYPING_TEXT_CHARS].rstrip()
		# Cut at a word boundary unless that would lose too much
		last_space = cleaned.rfind(" ")
		if last_space > MAX_TYPING_TEXT_CHARS * 0.8:
			cleaned = cleaned[:last_space]
	return cleaned


def enforce_intent_invariants(payload: Dict[str, Any]) -> StructuredResponse:
	"""Force the typing-text field to agree with the intent.

	Must only be given payloads that passed validate_payload. For
	session-suggest a None result means the text still has to be filled.
	"""
	intent = Intent(payload["intent"])
	text = payload.get(TEXT_KEY)

	if intent is not Intent.GENERATE_EXERCISE:
		if text:
			logger.warning("%s intent carried typing-text, dropping it", intent.value)
		text = None
	elif not text or not text.strip():
		logger.warning("session-suggest intent missing typing-text, marking for fallback")
		text = None
	else:
		text = sanitize_typing_text(text)

	return StructuredResponse(intent=intent, generated_text=text, reply=payload[REPLY_KEY].strip())
