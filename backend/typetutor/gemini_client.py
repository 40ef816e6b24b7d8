from __future__ import annotations
import logging
import httpx
from typing import Any, Dict, Optional, Protocol

from .errors import ProviderFailure
from .settings import Settings, settings as default_settings


logger = logging.getLogger(__name__)


class LanguageModelProvider(Protocol):
	async def generate(self, system_prompt: str, user_prompt: str) -> str:
		...


class GeminiClient:
	"""Gemini REST client with an optional OpenRouter secondary.

	Every failure leaves this class as ProviderFailure so callers never see raw
	httpx errors or response-shape surprises.
	"""

	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		config: Optional[Settings] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		config = config or default_settings
		self.api_key = api_key or config.gemini_api_key
		self.model = model or config.gemini_model
		self.provider = config.gemini_provider
		if self.provider == "vertex":
			region = config.vertex_region
			project = config.vertex_project or "placeholder-project"
			# Vertex AI Generative REST endpoint (API key via header)
			self.base_url = base_url or (
				f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}/publishers/google/models/{self.model}:generateContent"
			)
			self._auth_in_query = False
		else:
			# Google AI Studio (Generative Language API)
			self.base_url = base_url or f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"
			self._auth_in_query = True
		timeout = config.provider_timeout_seconds
		self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
		self._fallback_client: Optional[httpx.AsyncClient] = None
		self._openrouter_api_key = config.openrouter_api_key
		self._openrouter_model = config.openrouter_model
		self._openrouter_base_url = config.openrouter_base_url
		self._openrouter_headers = {
			"Authorization": f"Bearer {self._openrouter_api_key}" if self._openrouter_api_key else "",
			"Content-Type": "application/json",
			"HTTP-Referer": config.openrouter_referer,
			"X-Title": config.openrouter_title,
		}
		if self._openrouter_api_key:
			self._fallback_client = httpx.AsyncClient(timeout=timeout, transport=transport)

	@property
	def configured(self) -> bool:
		return bool(self.api_key) or self._fallback_client is not None

	async def generate(self, system_prompt: str, user_prompt: str) -> str:
		primary_error: Optional[ProviderFailure] = None
		if self.api_key:
			try:
				return await self._generate_gemini(system_prompt, user_prompt)
			except ProviderFailure as err:
				primary_error = err
		else:
			primary_error = ProviderFailure("GEMINI_API_KEY is not configured")
		if self._fallback_client is None:
			raise primary_error
		logger.warning("Gemini call failed (%s), trying OpenRouter", primary_error)
		return await self._generate_openrouter(system_prompt, user_prompt, primary_error)

	async def _generate_gemini(self, system_prompt: str, user_prompt: str) -> str:
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		payload: Dict[str, Any] = {
			"systemInstruction": {"parts": [{"text": system_prompt}]},
			"contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
		}
		try:
			r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
			r.raise_for_status()
		except httpx.HTTPStatusError as http_err:
			status = http_err.response.status_code
			raise ProviderFailure(f"Gemini request failed with status {status}", status_code=status) from http_err
		except httpx.RequestError as net_err:
			raise ProviderFailure(f"Gemini connection error: {net_err}") from net_err
		try:
			data = r.json()
			return data["candidates"][0]["content"]["parts"][0]["text"]
		except (ValueError, KeyError, IndexError, TypeError) as err:
			raise ProviderFailure(f"Unexpected Gemini response: {r.text[:200]}") from err

	async def _generate_openrouter(self, system_prompt: str, user_prompt: str, primary_error: ProviderFailure) -> str:
		headers = {k: v for k, v in self._openrouter_headers.items() if v}
		payload: Dict[str, Any] = {
			"model": self._openrouter_model,
			"messages": [
				{"role": "system", "content": system_prompt},
				{"role": "user", "content": user_prompt},
			],
		}
		try:
			r = await self._fallback_client.post(self._openrouter_base_url, headers=headers, json=payload)
			r.raise_for_status()
			data = r.json()
			return data["choices"][0]["message"]["content"]
		except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as fallback_err:
			raise ProviderFailure(
				f"Gemini primary call failed ({primary_error}); fallback via OpenRouter also failed"
			) from fallback_err

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback_client is not None:
			await self._fallback_client.aclose()
