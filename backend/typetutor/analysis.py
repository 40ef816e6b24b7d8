from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .models import PerformanceSnapshot, SessionErrors, SessionRecord


FINGER_BY_KEY: Dict[str, str] = {
	"q": "left pinky", "a": "left pinky", "z": "left pinky",
	"w": "left ring", "s": "left ring", "x": "left ring",
	"e": "left middle", "d": "left middle", "c": "left middle",
	"r": "left index", "f": "left index", "v": "left index", "t": "left index", "g": "left index", "b": "left index",
	"y": "right index", "h": "right index", "n": "right index", "u": "right index", "j": "right index", "m": "right index",
	"i": "right middle", "k": "right middle", ",": "right middle",
	"o": "right ring", "l": "right ring", ".": "right ring",
	"p": "right pinky", ";": "right pinky", "/": "right pinky",
}

ACTIONABLE_WORDS = (
	"practice", "focus on", "work on", "try", "exercise", "drill",
	"improve", "target", "concentrate", "emphasize", "prioritize",
)
PRACTICE_OFFER_WORDS = (
	"exercise", "drill", "practice", "typing text", "challenge",
	"would you like", "shall i generate", "let me create",
)


def format_number(value: float) -> str:
	"""45.0 -> '45', 91.25 -> '91.2'."""
	if float(value).is_integer():
		return str(int(value))
	return f"{value:.1f}"


def top_error_keys(key_error_map: Dict[str, int], limit: int = 3) -> List[str]:
	ranked = sorted(key_error_map.items(), key=lambda item: (-item[1], item[0]))
	return [key for key, _ in ranked[:limit]]


def top_substitutions(errors: SessionErrors, limit: int = 3) -> List[str]:
	substitutions = Counter(f"'{e.expected}' -> '{e.typed}'" for e in errors.detailed_errors)
	return [f"{pattern} ({count}x)" for pattern, count in substitutions.most_common(limit)]


@dataclass
class RecentSessionAnalysis:
	wpm_min: float = 0
	wpm_max: float = 0
	accuracy_min: float = 0
	accuracy_max: float = 0
	wpm_trend: str = "stable"
	accuracy_trend: str = "stable"
	consistent_errors: List[str] = field(default_factory=list)
	improvement_areas: List[str] = field(default_factory=list)
	strength_areas: List[str] = field(default_factory=list)


def _trend(first: float, second: float, margin: float) -> str:
	if second > first * (1 + margin):
		return "improving"
	if second < first * (1 - margin):
		return "declining"
	return "stable"


def analyze_recent_sessions(sessions: Sequence[SessionRecord]) -> RecentSessionAnalysis:
	if not sessions:
		return RecentSessionAnalysis()
	wpms = [s.wpm for s in sessions]
	accuracies = [s.accuracy for s in sessions]
	result = RecentSessionAnalysis(
		wpm_min=min(wpms), wpm_max=max(wpms),
		accuracy_min=min(accuracies), accuracy_max=max(accuracies),
	)

	# Compare the older half against the newer half
	mid = len(sessions) // 2
	if mid:
		older, newer = sessions[:mid], sessions[mid:]
		result.wpm_trend = _trend(
			sum(s.wpm for s in older) / len(older), sum(s.wpm for s in newer) / len(newer), 0.05
		)
		result.accuracy_trend = _trend(
			sum(s.accuracy for s in older) / len(older), sum(s.accuracy for s in newer) / len(newer), 0.02
		)

	totals: Counter = Counter()
	for session in sessions:
		totals.update(session.key_error_map)
	result.consistent_errors = [
		key for key, count in sorted(totals.items(), key=lambda item: (-item[1], item[0]))
		if count >= len(sessions) * 0.6
	][:5]

	if result.wpm_max - result.wpm_min > 15:
		result.improvement_areas.append("speed consistency")
	if result.accuracy_max - result.accuracy_min > 10:
		result.improvement_areas.append("accuracy consistency")
	if len(result.consistent_errors) > 3:
		result.improvement_areas.append(f"key accuracy ({', '.join(result.consistent_errors[:3])})")
	if result.wpm_max < 30:
		result.improvement_areas.append("overall typing speed")
	if result.accuracy_min < 85:
		result.improvement_areas.append("accuracy fundamentals")

	if result.accuracy_min > 90:
		result.strength_areas.append("high accuracy maintenance")
	if result.wpm_min > 40:
		result.strength_areas.append("consistent speed")
	if result.wpm_trend == "improving":
		result.strength_areas.append("speed improvement")
	if result.accuracy_trend == "improving":
		result.strength_areas.append("accuracy improvement")
	return result


@dataclass
class ErrorAnalysis:
	problem_keys: List[str] = field(default_factory=list)
	error_patterns: List[str] = field(default_factory=list)
	finger_issues: List[str] = field(default_factory=list)
	speed_vs_accuracy: str = ""

	@property
	def problem_key_names(self) -> List[str]:
		return [entry.split(" ")[0] for entry in self.problem_keys]

	@property
	def problem_fingers(self) -> List[str]:
		return [" ".join(entry.split(" ")[:2]) for entry in self.finger_issues]


def analyze_session_errors(errors: SessionErrors) -> ErrorAnalysis:
	analysis = ErrorAnalysis()
	ranked = sorted(errors.key_error_map.items(), key=lambda item: (-item[1], item[0]))[:5]
	analysis.problem_keys = [f"{key} ({count} errors)" for key, count in ranked]

	if errors.detailed_errors:
		analysis.error_patterns = top_substitutions(errors)
		# A slip counts against a finger only when another finger pressed the key
		finger_errors: Counter = Counter()
		for error in errors.detailed_errors:
			expected = FINGER_BY_KEY.get(error.expected.lower())
			typed = FINGER_BY_KEY.get(error.typed.lower())
			if expected and typed and expected != typed:
				finger_errors[expected] += 1
		analysis.finger_issues = [f"{finger} ({count} errors)" for finger, count in finger_errors.most_common(3)]

	total = sum(errors.key_error_map.values())
	if total > 20:
		analysis.speed_vs_accuracy = "Focus on accuracy - too many errors suggest typing too fast"
	elif total < 5:
		analysis.speed_vs_accuracy = "Good accuracy - can focus on increasing speed"
	else:
		analysis.speed_vs_accuracy = "Balanced speed and accuracy - continue current approach"
	return analysis


def group_keys_by_finger(keys: Sequence[str]) -> Dict[str, List[str]]:
	groups: Dict[str, List[str]] = {}
	for key in keys:
		finger = FINGER_BY_KEY.get(key.lower())
		if finger:
			groups.setdefault(finger, []).append(key)
	return groups


def generate_recommendations(
	snapshot: PerformanceSnapshot,
	last_session_errors: Optional[SessionErrors] = None,
) -> List[str]:
	recommendations: List[str] = []

	if snapshot.average_wpm < 25:
		recommendations.append("Focus on building basic typing speed through daily practice")
	elif snapshot.average_wpm < 40:
		recommendations.append("Work on increasing speed while maintaining accuracy above 90%")
	elif snapshot.average_wpm > 60:
		recommendations.append("Excellent speed - focus on maintaining consistency across different text types")

	if snapshot.average_accuracy < 85:
		recommendations.append("Prioritize accuracy over speed - slow down and focus on correct key presses")
	elif snapshot.average_accuracy < 95:
		recommendations.append("Work on eliminating remaining error patterns")

	for finger, keys in group_keys_by_finger(snapshot.weak_keys).items():
		if len(keys) > 1:
			recommendations.append(f"Practice {finger} finger positioning with keys: {', '.join(keys)}")

	if snapshot.improvement_trend == "declining":
		recommendations.append("Take a break and focus on fundamentals - accuracy and proper finger positioning")
	elif snapshot.improvement_trend == "stable":
		recommendations.append("Try challenging exercises or different text types to break through the plateau")

	if last_session_errors and last_session_errors.key_error_map:
		keys = top_error_keys(last_session_errors.key_error_map)
		recommendations.append(f"Practice targeted drills for your most problematic keys: {', '.join(keys)}")
	return recommendations


def format_performance_context(
	snapshot: PerformanceSnapshot,
	last_session_errors: Optional[SessionErrors] = None,
) -> str:
	if snapshot.total_sessions == 0:
		return "New user with no typing history. This is their first interaction with the typing tutor."

	lines = [
		"User Statistics:",
		f"- Total Sessions: {snapshot.total_sessions}",
		f"- Average WPM: {format_number(snapshot.average_wpm)}",
		f"- Average Accuracy: {format_number(snapshot.average_accuracy)}%",
		f"- Improvement Trend: {snapshot.improvement_trend}",
	]
	if snapshot.weak_keys:
		lines.append(f"- Historically Weak Keys: {', '.join(snapshot.weak_keys)}")

	if snapshot.sessions:
		recent = snapshot.sessions[-5:]
		summary = analyze_recent_sessions(recent)
		lines += [
			f"Recent Session Analysis (last {len(recent)} sessions):",
			f"- WPM Range: {format_number(summary.wpm_min)}-{format_number(summary.wpm_max)} (trend: {summary.wpm_trend})",
			f"- Accuracy Range: {format_number(summary.accuracy_min)}%-{format_number(summary.accuracy_max)}% (trend: {summary.accuracy_trend})",
		]
		if summary.consistent_errors:
			lines.append(f"- Most Consistent Errors: {', '.join(summary.consistent_errors)}")
		if summary.improvement_areas:
			lines.append(f"- Key Improvement Areas: {', '.join(summary.improvement_areas)}")
		if summary.strength_areas:
			lines.append(f"- Strength Areas: {', '.join(summary.strength_areas)}")

	if last_session_errors and last_session_errors.key_error_map:
		errors = analyze_session_errors(last_session_errors)
		lines += [
			"",
			"LAST SESSION ERROR ANALYSIS:",
			f"- Total Errors: {sum(last_session_errors.key_error_map.values())}",
			f"- Problematic Keys: {', '.join(errors.problem_keys)}",
		]
		if errors.error_patterns:
			lines.append(f"- Error Patterns: {', '.join(errors.error_patterns)}")
		if errors.finger_issues:
			lines.append(f"- Finger Position Issues: {', '.join(errors.finger_issues)}")
		lines.append(f"- Speed vs Accuracy: {errors.speed_vs_accuracy}")

	recommendations = generate_recommendations(snapshot, last_session_errors)
	if recommendations:
		lines += ["", "RECOMMENDED FOCUS AREAS:"] + [f"- {rec}" for rec in recommendations]

	lines += [
		"",
		"Use this data for specific, actionable recommendations that reference the actual metrics.",
	]
	return "\n".join(lines)


def mentions_metrics(reply: str, snapshot: PerformanceSnapshot) -> bool:
	return format_number(snapshot.average_wpm) in reply and format_number(snapshot.average_accuracy) in reply


def has_actionable_recommendation(reply: str) -> bool:
	lowered = reply.lower()
	return any(word in lowered for word in ACTIONABLE_WORDS)


def offers_practice(reply: str) -> bool:
	lowered = reply.lower()
	return any(word in lowered for word in PRACTICE_OFFER_WORDS)
