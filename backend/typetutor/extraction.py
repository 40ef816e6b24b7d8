from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional

from .errors import FormatFailure


logger = logging.getLogger(__name__)


_CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_LABEL_RE = re.compile(r"(?:JSON|Response)\s*:\s*(\{[\s\S]*\})", re.IGNORECASE)

_SMART_QUOTES = {
	"“": '"',
	"”": '"',
	"„": '"',
	"‘": "'",
	"’": "'",
}
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_SINGLE_QUOTED_KEY_RE = re.compile(r"([{,]\s*)'([^'\n]+)'(\s*:)")
_SINGLE_QUOTED_VALUE_RE = re.compile(r"(:\s*)'([^'\n]*)'(\s*[,}\]])")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][\w-]*)(\s*:)")
_PYTHON_LITERALS_RE = re.compile(r"(:\s*)(None|True|False)(\s*[,}\]])")


def is_balanced(candidate: str) -> bool:
	return candidate.count("{") == candidate.count("}") and candidate.count("[") == candidate.count("]")


def _outermost_span(text: str) -> Optional[str]:
	first = text.find("{")
	last = text.rfind("}")
	if first != -1 and last != -1 and last > first:
		return text[first : last + 1]
	return None


def _fenced_block(text: str) -> Optional[str]:
	match = _CODE_BLOCK_RE.search(text)
	if match:
		return _outermost_span(match.group(1))
	return None


def _labelled(text: str) -> Optional[str]:
	match = _LABEL_RE.search(text)
	if match:
		return _outermost_span(match.group(1))
	return None


_STRATEGIES: List[Callable[[str], Optional[str]]] = [_outermost_span, _fenced_block, _labelled]


def extract_candidate(text: str) -> Optional[str]:
	"""Return the first structurally balanced payload candidate found in ``text``."""
	for strategy in _STRATEGIES:
		candidate = strategy(text)
		if candidate and is_balanced(candidate):
			return candidate.strip()
	return None


def _loads(text: str) -> bool:
	try:
		json.loads(text)
	except json.JSONDecodeError:
		return False
	return True


def _normalize_quotes(text: str) -> str:
	for smart, plain in _SMART_QUOTES.items():
		text = text.replace(smart, plain)
	return text


def _convert_single_quotes(text: str) -> str:
	if "'" not in text:
		return text
	text = _SINGLE_QUOTED_KEY_RE.sub(r'\1"\2"\3', text)
	return _SINGLE_QUOTED_VALUE_RE.sub(r'\1"\2"\3', text)


def _python_literals(text: str) -> str:
	literals = {"None": "null", "True": "true", "False": "false"}
	return _PYTHON_LITERALS_RE.sub(lambda m: m.group(1) + literals[m.group(2)] + m.group(3), text)


# Applied cumulatively; the text is re-parsed after each stage
_REPAIR_STAGES: List[Callable[[str], str]] = [
	_normalize_quotes,
	lambda text: _TRAILING_COMMA_RE.sub(r"\1", text),
	_convert_single_quotes,
	_python_literals,
	lambda text: _BARE_KEY_RE.sub(r'\1"\2"\3', text),
]


def repair(text: str) -> Optional[str]:
	"""Best-effort syntactic repair of a JSON object. Returns None when unrepairable."""
	repaired = _outermost_span(_normalize_quotes(text.strip()))
	if repaired is None:
		return None
	for stage in _REPAIR_STAGES:
		repaired = stage(repaired)
		if _loads(repaired):
			logger.info("Repaired malformed JSON payload")
			return repaired
	logger.warning("JSON repair attempt failed")
	return None


def parse_payload(raw: str) -> Dict[str, Any]:
	"""Extract and parse the structured payload from raw provider text.

	Raises FormatFailure when no candidate can be found or parsed.
	"""
	candidate = extract_candidate(raw or "")
	if candidate is None:
		raise FormatFailure("No valid JSON structure found in response")
	try:
		data = json.loads(candidate)
	except json.JSONDecodeError as exc:
		repaired = repair(candidate)
		if repaired is None:
			raise FormatFailure(f"Malformed JSON payload: {exc}") from exc
		data = json.loads(repaired)
	if not isinstance(data, dict):
		raise FormatFailure("Malformed JSON payload: expected an object")
	return data
