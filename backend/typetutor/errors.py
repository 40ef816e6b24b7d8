"""Error taxonomy for the tutor pipeline.

Every error raised inside the pipeline is tagged with the kind of failure it
represents at the point it is raised:

- ``PROVIDER``: the language-model provider is unreachable or refusing us
  (network, timeout, rate limit, auth, quota). Counted by the circuit breaker.
- ``FORMAT``: the provider answered but the payload could not be extracted or
  failed validation. Retried, never counted against the breaker.
- ``LOGIC``: a contract violation by the caller or a programming error.
  Propagated as-is.

Third-party errors that arrive untyped are classified by type first and by
message pattern only as a last resort.
"""
from __future__ import annotations

import asyncio
import json
import re
from enum import Enum
from typing import Optional

import httpx


class ErrorKind(str, Enum):
	PROVIDER = "provider"
	FORMAT = "format"
	LOGIC = "logic"


class TutorError(Exception):
	kind: ErrorKind = ErrorKind.LOGIC

	def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
		super().__init__(message)
		self.status_code = status_code


class ProviderFailure(TutorError):
	kind = ErrorKind.PROVIDER


class FormatFailure(TutorError):
	kind = ErrorKind.FORMAT


class LogicFailure(TutorError):
	kind = ErrorKind.LOGIC


_PROVIDER_PATTERN = re.compile(
	r"network|connection|timeout|timed out|rate limit|service unavailable|internal server error"
	r"|bad gateway|gateway timeout|authentication|unauthorized|forbidden|api key|quota|billing",
	re.IGNORECASE,
)

_FORMAT_PATTERN = re.compile(
	r"unexpected token|unexpected end of json|malformed|invalid json|no valid json|json structure"
	r"|expecting value|expecting property name|parsing",
	re.IGNORECASE,
)


def classify_error(exc: BaseException) -> ErrorKind:
	if isinstance(exc, TutorError):
		return exc.kind
	if isinstance(exc, (asyncio.TimeoutError, TimeoutError, httpx.TransportError, httpx.HTTPStatusError)):
		return ErrorKind.PROVIDER
	if isinstance(exc, json.JSONDecodeError):
		return ErrorKind.FORMAT
	message = str(exc)
	if _PROVIDER_PATTERN.search(message):
		return ErrorKind.PROVIDER
	if _FORMAT_PATTERN.search(message):
		return ErrorKind.FORMAT
	return ErrorKind.LOGIC


def is_provider_failure(exc: BaseException) -> bool:
	return classify_error(exc) is ErrorKind.PROVIDER


def is_format_failure(exc: BaseException) -> bool:
	return classify_error(exc) is ErrorKind.FORMAT
