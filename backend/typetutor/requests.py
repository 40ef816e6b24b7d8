"""Heuristics over the raw user message.

Used when the provider cannot classify for us, and to check what the provider
produced against what the user actually asked for.
"""
from __future__ import annotations

import math
import re
from itertools import takewhile
from typing import List, Optional

from .models import Intent


MIN_WORD_COUNT = 5
MAX_WORD_COUNT = 200
DEFAULT_WORD_COUNT = 35
MAX_DRILL_KEYS = 8

_SUGGEST_WORDS = ("exercise", "practice", "drill", "challenge", "generate", "give me")
_ANALYSIS_WORDS = ("performance", "analysis", "analyze", "analyse", "how am i", "progress", "improve", "feedback", "stats")
_WORD_COUNT_HINT_RE = re.compile(r"\d+\s*-?\s*words?\b", re.IGNORECASE)

_EXPLICIT_COUNT_PATTERNS = [
	re.compile(r"(\d+)\s*-?\s*words?\b", re.IGNORECASE),
	re.compile(r"(?:length|size)\s*(?:of\s*)?(\d+)\b", re.IGNORECASE),
]

# Checked in order: the more specific phrasings first
_QUALITATIVE_LENGTHS = [
	(re.compile(r"\b(?:very|extremely|super|ultra)\s+(?:short|quick|brief)\b|\b(?:micro|nano)\b", re.IGNORECASE), 20),
	(re.compile(r"\b(?:short|quick|brief|small|tiny|mini|concise)\b|\bjust a (?:few|little)\b", re.IGNORECASE), 30),
	(re.compile(r"\b(?:very|extremely|super|ultra)\s+(?:long|extended|lengthy)\b|\b(?:massive|huge|enormous)\b", re.IGNORECASE), 100),
	(re.compile(r"\b(?:long|extended|lengthy|large|big|substantial|comprehensive|detailed|thorough|extensive)\b", re.IGNORECASE), 70),
	(re.compile(r"\b(?:medium|normal|standard|regular|typical|average|moderate)\b", re.IGNORECASE), 35),
]

_DRILL_KEY_PATTERNS = [
	re.compile(r"(?:drill|practice|practise)\s+(?:the\s+)?(?:keys?|letters?)\s*[:\-]?\s*([a-zA-Z,\s]+)", re.IGNORECASE),
	re.compile(r"drill\s+(?:with|using|on|for)\s+(?:the\s+)?(?:keys?|letters?)?\s*[:\-]?\s*([a-zA-Z,\s]+)", re.IGNORECASE),
	re.compile(r"(?:practice|practise|drill)\s+(?:the\s+)?([a-zA-Z,\s]+?)\s+(?:keys?|letters?)\b", re.IGNORECASE),
	re.compile(r"(?:key|finger)\s+(?:drill|exercise|practice)\s+(?:with|for|on)?\s*([a-zA-Z,\s]+)", re.IGNORECASE),
]

_TYPING_WORDS = (
	"typing", "type", "exercise", "practice", "wpm", "speed", "accuracy", "keyboard", "keys",
	"fingers", "challenge", "lesson", "improve", "text", "words", "characters", "performance", "stats", "drill",
)


def classify_message_intent(message: str) -> Intent:
	lowered = message.lower()
	if any(word in lowered for word in _SUGGEST_WORDS) or _WORD_COUNT_HINT_RE.search(lowered):
		return Intent.GENERATE_EXERCISE
	if any(word in lowered for word in _ANALYSIS_WORDS):
		return Intent.ANALYZE_SESSION
	return Intent.CHITCHAT


def extract_word_count(message: str) -> Optional[int]:
	"""Word count the user asked for, clamped to 5..200; None when unspecified."""
	for pattern in _EXPLICIT_COUNT_PATTERNS:
		match = pattern.search(message)
		if match:
			return max(MIN_WORD_COUNT, min(MAX_WORD_COUNT, int(match.group(1))))
	for pattern, count in _QUALITATIVE_LENGTHS:
		if pattern.search(message):
			return count
	return None


def has_explicit_word_count(message: str) -> bool:
	return any(pattern.search(message) for pattern in _EXPLICIT_COUNT_PATTERNS)


def extract_drill_keys(message: str) -> List[str]:
	"""Single keys named in a drill request, lower-cased, first 8, order kept.

	The captured text must open with a run of single letters. A lone letter
	followed by ordinary words ("a focus on accuracy") is an article, not a key.
	"""
	for pattern in _DRILL_KEY_PATTERNS:
		match = pattern.search(message)
		if not match:
			continue
		tokens = [token.lower() for token in re.split(r"[,\s]+", match.group(1)) if token]
		run = list(takewhile(lambda token: len(token) == 1 and token.isalpha(), tokens))
		if not run or (len(run) < 2 and len(run) < len(tokens)):
			continue
		keys: List[str] = []
		for token in run:
			if token not in keys:
				keys.append(token)
		return keys[:MAX_DRILL_KEYS]
	return []


def is_typing_related(message: str) -> bool:
	lowered = message.lower()
	return any(word in lowered for word in _TYPING_WORDS) or len(message) < 50


def count_words(text: Optional[str]) -> int:
	if not text:
		return 0
	return len(text.split())


def word_count_tolerance(requested: int) -> int:
	return max(1, math.ceil(requested * 0.05))


def within_word_count(text: Optional[str], requested: int) -> bool:
	return abs(count_words(text) - requested) <= word_count_tolerance(requested)
