"""
Generation providers as ordered strategy objects.

Each provider reports whether it is ``available()`` (credential present) and
makes one ``attempt(request)`` returning a ``ProviderResult``: raw text on
success or a failure reason (``no_key``, ``timeout``, ``api_error``,
``empty_response``). Parsing and validation belong to the cascade.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import List, Optional

import httpx
import structlog

from bouchenator.core.config import GenerationConfig, get_settings
from bouchenator.core.exceptions import TimeoutError as BouchenatorTimeoutError
from bouchenator.generation.gemini_config import get_gemini_api_version, get_gemini_model
from bouchenator.utils.reliability import elapsed_ms, with_timeout

logger = structlog.get_logger("generation")

REASON_NO_KEY = "no_key"
REASON_TIMEOUT = "timeout"
REASON_API_ERROR = "api_error"
REASON_EMPTY = "empty_response"

MIN_RESPONSE_CHARS = 10


@dataclass
class GenerationRequest:
    """
    One prompt to run through the cascade.

    ``system_prompt`` holds the instructions and ``context`` the subject
    material; SDK and REST providers join them with ``context_header``.
    ``hint`` is set by the cascade on a retry.
    """

    stage: str
    system_prompt: str
    context: str
    temperature: float = 0.8
    max_tokens: int = 4096
    timeout: float = 60.0
    json_mode: bool = True
    context_header: str = "--- COMPANY CONTEXT ---"
    hint: Optional[str] = None

    def system_text(self) -> str:
        if self.hint:
            return f"{self.system_prompt}\n\n{self.hint}"
        return self.system_prompt

    def combined_prompt(self) -> str:
        return f"{self.system_text()}\n\n{self.context_header}\n{self.context}"


@dataclass
class ProviderResult:
    provider: str
    ok: bool
    text: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None
    model: Optional[str] = None
    duration_ms: int = 0


class Provider:
    """Base strategy: subclasses implement ``available`` and ``_call``."""

    name = "provider"

    def __init__(self, config: Optional[GenerationConfig] = None):
        self.config = config or get_settings().generation

    def available(self) -> bool:
        raise NotImplementedError

    def model_for(self, request: GenerationRequest) -> Optional[str]:
        return None

    async def _call(self, request: GenerationRequest) -> Optional[str]:
        raise NotImplementedError

    async def attempt(self, request: GenerationRequest) -> ProviderResult:
        model = self.model_for(request)
        if not self.available():
            return ProviderResult(provider=self.name, ok=False, reason=REASON_NO_KEY, model=model)

        t0 = time.perf_counter()
        try:
            text = await with_timeout(self._call(request), request.timeout, f"{self.name} {request.stage}")
        except BouchenatorTimeoutError as e:
            result = ProviderResult(provider=self.name, ok=False, reason=REASON_TIMEOUT, error=str(e),
                                    model=model, duration_ms=elapsed_ms(t0))
        except Exception as e:
            # Provider SDKs raise their own hierarchies; all of them mean "try the next provider".
            result = ProviderResult(provider=self.name, ok=False, reason=REASON_API_ERROR,
                                    error=f"{type(e).__name__}: {e}"[:300], model=model,
                                    duration_ms=elapsed_ms(t0))
        else:
            if not text or len(text.strip()) < MIN_RESPONSE_CHARS:
                result = ProviderResult(provider=self.name, ok=False, reason=REASON_EMPTY,
                                        error="empty response", model=model, duration_ms=elapsed_ms(t0))
            else:
                result = ProviderResult(provider=self.name, ok=True, text=text, model=model,
                                        duration_ms=elapsed_ms(t0))

        logger.info(
            "generation_attempt",
            provider=self.name,
            stage=request.stage,
            model=model,
            api_version=get_gemini_api_version(self.config) if self.name.startswith("gemini") else None,
            duration_ms=result.duration_ms,
            outcome="ok" if result.ok else result.reason,
            retry=bool(request.hint),
        )
        return result


class GeminiSDKProvider(Provider):
    """Primary structured-output provider via ``google-generativeai``."""

    name = "gemini"

    def available(self) -> bool:
        return bool(self.config.gemini_api_key)

    def model_for(self, request: GenerationRequest) -> Optional[str]:
        return get_gemini_model(request.stage, self.config)

    async def _call(self, request: GenerationRequest) -> Optional[str]:
        import google.generativeai as genai

        genai.configure(api_key=self.config.gemini_api_key)
        generation_config = {
            "temperature": request.temperature,
            "max_output_tokens": request.max_tokens,
        }
        if request.json_mode:
            generation_config["response_mime_type"] = "application/json"
        model = genai.GenerativeModel(
            model_name=self.model_for(request),
            generation_config=generation_config,
        )
        response = await model.generate_content_async(request.combined_prompt())
        return response.text


class OpenAIProvider(Provider):
    """Secondary general-purpose provider via the ``openai`` SDK."""

    name = "openai"

    def available(self) -> bool:
        return bool(self.config.openai_api_key)

    def model_for(self, request: GenerationRequest) -> Optional[str]:
        return self.config.openai_model

    async def _call(self, request: GenerationRequest) -> Optional[str]:
        from openai import AsyncOpenAI

        client = AsyncOpenAI(api_key=self.config.openai_api_key, timeout=request.timeout)
        response = await client.chat.completions.create(
            model=self.config.openai_model,
            messages=[
                {"role": "system", "content": request.system_text()},
                {"role": "user", "content": request.context},
            ],
            temperature=self.config.openai_temperature,
            max_tokens=self.config.openai_max_tokens,
        )
        if not response.choices:
            return None
        return response.choices[0].message.content


class GeminiRESTProvider(Provider):
    """The primary provider reached over plain REST with httpx."""

    name = "gemini-rest"

    def __init__(self, client: Optional[httpx.AsyncClient] = None,
                 config: Optional[GenerationConfig] = None):
        super().__init__(config)
        self.client = client

    def available(self) -> bool:
        return bool(self.config.gemini_api_key)

    def model_for(self, request: GenerationRequest) -> Optional[str]:
        return get_gemini_model(request.stage, self.config)

    def endpoint(self, request: GenerationRequest) -> str:
        base = self.config.gemini_rest_url.rstrip("/")
        return f"{base}/{get_gemini_api_version(self.config)}/models/{self.model_for(request)}:generateContent"

    async def _call(self, request: GenerationRequest) -> Optional[str]:
        body = {
            "contents": [{"parts": [{"text": request.combined_prompt()}]}],
            "generationConfig": {"temperature": 0.8, "maxOutputTokens": 4096},
        }
        params = {"key": self.config.gemini_api_key}
        if self.client is not None:
            response = await self.client.post(self.endpoint(request), params=params, json=body,
                                               timeout=request.timeout)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.post(self.endpoint(request), params=params, json=body,
                                             timeout=request.timeout)
        response.raise_for_status()
        data = response.json()
        candidates = data.get("candidates") or []
        if not candidates:
            return None
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return parts[0].get("text") if parts else None


def default_providers(client: Optional[httpx.AsyncClient] = None,
                      config: Optional[GenerationConfig] = None) -> List[Provider]:
    """Gemini SDK, then OpenAI, then Gemini REST."""
    return [GeminiSDKProvider(config), OpenAIProvider(config), GeminiRESTProvider(client, config)]
