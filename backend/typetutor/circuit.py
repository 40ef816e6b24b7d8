from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .errors import ErrorKind


logger = logging.getLogger(__name__)


@dataclass
class FailureState:
	consecutive_failures: int = 0
	last_failure_time: Optional[float] = None


class FailureTracker:
	"""Counts consecutive provider failures and decides whether calls may go out.

	Closed while fewer than ``threshold`` failures are on record. Once open, calls
	are denied until ``cooldown_seconds`` have passed since the last failure; the
	first admission after that resets the counter and lets a trial call through.
	"""

	def __init__(
		self,
		threshold: int = 3,
		cooldown_seconds: float = 300.0,
		*,
		clock: Callable[[], float] = time.monotonic,
	) -> None:
		if threshold < 1:
			raise ValueError("threshold must be at least 1")
		self.threshold = threshold
		self.cooldown_seconds = cooldown_seconds
		self._clock = clock
		self._state = FailureState()
		self._lock = threading.Lock()

	@property
	def state(self) -> FailureState:
		with self._lock:
			return FailureState(self._state.consecutive_failures, self._state.last_failure_time)

	def _is_open(self) -> bool:
		return self._state.consecutive_failures >= self.threshold

	def _cooled_down(self) -> bool:
		last = self._state.last_failure_time
		return last is None or self._clock() - last >= self.cooldown_seconds

	def is_available(self) -> bool:
		with self._lock:
			return not self._is_open() or self._cooled_down()

	def acquire(self) -> bool:
		"""Admission check used right before a provider call."""
		with self._lock:
			if not self._is_open():
				return True
			if not self._cooled_down():
				remaining = self.cooldown_seconds - (self._clock() - (self._state.last_failure_time or 0))
				logger.warning(
					"Provider temporarily unavailable after %d consecutive failures (%.0fs of cooldown left)",
					self._state.consecutive_failures,
					max(remaining, 0),
				)
				return False
			logger.info("Provider cooldown expired, allowing a trial call")
			self._state = FailureState()
			return True

	def record_failure(self, kind: ErrorKind = ErrorKind.PROVIDER) -> bool:
		if kind is not ErrorKind.PROVIDER:
			return False
		with self._lock:
			self._state.consecutive_failures += 1
			self._state.last_failure_time = self._clock()
			count = self._state.consecutive_failures
		logger.error("Provider failure recorded (%d/%d)", count, self.threshold)
		if count == self.threshold:
			logger.warning("Provider entering cooldown for %.0fs", self.cooldown_seconds)
		return True

	def record_success(self) -> None:
		with self._lock:
			previous = self._state.consecutive_failures
			self._state = FailureState()
		if previous:
			logger.info("Provider restored after %d failures", previous)

	def status(self) -> Dict[str, Any]:
		with self._lock:
			return {
				"available": not self._is_open() or self._cooled_down(),
				"consecutive_failures": self._state.consecutive_failures,
				"threshold": self.threshold,
				"cooldown_seconds": self.cooldown_seconds,
			}
