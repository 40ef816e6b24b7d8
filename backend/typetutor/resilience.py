from __future__ import annotations

import inspect
import logging
from typing import Awaitable, Callable, TypeVar, Union

from .circuit import FailureTracker
from .errors import ErrorKind, classify_error


logger = logging.getLogger(__name__)

T = TypeVar("T")

Fallback = Callable[[], Union[T, Awaitable[T]]]


class ResilientInvoker:
	"""Single gate for provider calls.

	The tracker decides whether the primary runs at all. Provider-class failures
	are recorded and answered by the fallback; every other error goes back to the
	caller unrecorded.
	"""

	def __init__(self, tracker: FailureTracker) -> None:
		self.tracker = tracker

	async def call(
		self,
		primary: Callable[[], Awaitable[T]],
		fallback: Fallback,
		operation: str,
	) -> T:
		if not self.tracker.acquire():
			logger.info("%s: provider unavailable, using fallback", operation)
			return await _resolve(fallback())
		try:
			result = await primary()
		except Exception as exc:
			kind = classify_error(exc)
			if kind is not ErrorKind.PROVIDER:
				logger.debug("%s: %s error passed through: %s", operation, kind.value, exc)
				raise
			self.tracker.record_failure(kind)
			logger.warning("%s: provider failure (%s), using fallback", operation, exc)
			return await _resolve(fallback())
		self.tracker.record_success()
		return result


async def _resolve(value):
	if inspect.isawaitable(value):
		return await value
	return value
