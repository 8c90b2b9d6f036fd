"""
LLM Client: Provider Adapters with a Single Review Contract

Normalizes each AI vendor's generation call into one shape:

    await adapter.generate(model_id, prompt, api_key, max_output_tokens)
        -> list[GeneratedReview]

Each adapter owns exactly one vendor's endpoint, authentication scheme and
response envelope:
- OpenAI: chat completions, bearer token (official SDK)
- Groq: OpenAI-compatible chat completions on a separate host (official SDK)
- Anthropic: messages API, x-api-key + anthropic-version headers (official SDK)
- Google: Generative Language generateContent, key as query parameter (httpx)

The API key is an explicit argument on every call. SDK clients are built per
call around a shared httpx connection pool so no credential is held in
ambient state between requests.

Failure taxonomy:
- MissingProviderCredentialsError: blank key, raised before any network I/O
- MalformedProviderResponseError: content is not a JSON review array
- ProviderUpstreamError: HTTP, network or timeout failure (retryable subset
  is retried with exponential backoff)
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Optional, Type

import httpx
from anthropic import AnthropicError, AsyncAnthropic
from anthropic import APIConnectionError as AnthropicConnectionError
from anthropic import APIStatusError as AnthropicStatusError
from anthropic import APITimeoutError as AnthropicTimeoutError
from loguru import logger
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI, OpenAIError
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from config.constants import DEFAULT_BASE_URLS, DEFAULT_MODELS, SYSTEM_PROMPT
from config.settings import LLMSettings, get_settings
from core.enums import ProviderName
from core.exceptions import (
    MalformedProviderResponseError,
    MissingProviderCredentialsError,
    ProviderError,
    ProviderUpstreamError,
)
from core.models import GeneratedReview, ModelInfo

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)
_RETRYABLE_STATUS_CODES = frozenset({408, 409, 429})


def _is_retryable_status(status_code: Optional[int]) -> bool:
    if status_code is None:
        return False
    return status_code in _RETRYABLE_STATUS_CODES or status_code >= 500


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ProviderUpstreamError) and exc.retryable


def _extract_vendor_message(body: Any) -> Optional[str]:
    """Pull a human-readable message out of a vendor error body."""
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if body.get("message"):
            return str(body["message"])
    elif isinstance(body, str) and body:
        return body
    return None


def _clamp_score(value: Any) -> int:
    try:
        score = int(float(value))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, score))


# ============================================================================
# RESPONSE NORMALIZATION
# ============================================================================


def parse_review_payload(content: Optional[str], provider: str) -> list[GeneratedReview]:
    """
    Parse vendor message content into reviews.

    Accepts a JSON array of review objects, an object with a ``reviews`` array,
    or a single review object; Markdown code fences are tolerated. Each review
    needs a non-empty string ``text``.

    Raises:
        MalformedProviderResponseError: On any other shape
    """
    if content is None or not content.strip():
        raise MalformedProviderResponseError(
            "Provider returned empty content", provider=provider, raw_text=content
        )

    stripped = content.strip()
    fenced = _CODE_FENCE.match(stripped)
    if fenced:
        stripped = fenced.group(1)

    try:
        payload = json.loads(stripped)
    except json.JSONDecodeError as e:
        raise MalformedProviderResponseError(
            f"Provider response is not valid JSON: {e.msg}",
            provider=provider,
            raw_text=content,
        ) from e

    if isinstance(payload, dict):
        payload = payload["reviews"] if isinstance(payload.get("reviews"), list) else [payload]
    if not isinstance(payload, list):
        raise MalformedProviderResponseError(
            "Expected a JSON array of reviews", provider=provider, raw_text=content
        )

    reviews: list[GeneratedReview] = []
    for item in payload:
        text = item.get("text") if isinstance(item, dict) else None
        if not isinstance(text, str) or not text.strip():
            raise MalformedProviderResponseError(
                "Review item is missing a 'text' field", provider=provider, raw_text=content
            )
        keywords = item.get("keywords_used")
        if not isinstance(keywords, list):
            keywords = []
        reviews.append(
            GeneratedReview(
                text=text.strip(),
                keywords_used=[k for k in keywords if isinstance(k, str)],
                seo_score=_clamp_score(item.get("seo_score")),
            )
        )
    return reviews


# ============================================================================
# ADAPTER CONTRACT
# ============================================================================


class AbstractProviderAdapter(ABC):
    """
    One vendor's generation and model-listing calls.

    Subclasses implement ``_complete`` (return the raw message content string)
    and ``list_models``. Credential checks, retries and payload parsing live
    here so every vendor behaves identically at the boundary.
    """

    provider: ProviderName

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        *,
        base_url: Optional[str] = None,
        default_model: Optional[str] = None,
        timeout: float = 60.0,
        max_retries: int = 2,
        temperature: float = 0.8,
        retry_wait_min: float = 1.0,
        retry_wait_max: float = 10.0,
    ):
        self.base_url = (base_url or DEFAULT_BASE_URLS[self.provider]).rstrip("/")
        self.default_model = default_model or DEFAULT_MODELS[self.provider]
        self.timeout = timeout
        self.max_retries = max_retries
        self.temperature = temperature
        self.retry_wait_min = retry_wait_min
        self.retry_wait_max = retry_wait_max

        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

        logger.debug(
            f"{self.__class__.__name__} initialized | base_url={self.base_url} | "
            f"timeout={timeout}s | max_retries={max_retries}"
        )

    @property
    def name(self) -> str:
        return self.provider.value

    def _require_api_key(self, api_key: Optional[str]) -> str:
        if not api_key or not api_key.strip():
            raise MissingProviderCredentialsError(provider=self.name)
        return api_key.strip()

    async def generate(
        self,
        model_id: Optional[str],
        prompt: str,
        api_key: Optional[str],
        max_output_tokens: int = 2000,
    ) -> list[GeneratedReview]:
        """
        Generate reviews for a rendered prompt.

        Returns:
            Reviews as reported by the model (scores are not trusted downstream)

        Raises:
            MissingProviderCredentialsError: Blank key; no request is sent
            MalformedProviderResponseError: Content is not a review array
            ProviderUpstreamError: Vendor, network or timeout failure
        """
        key = self._require_api_key(api_key)
        model = model_id or self.default_model

        @retry(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=self.retry_wait_min, max=self.retry_wait_max),
            retry=retry_if_exception(_is_retryable),
            before_sleep=self._log_retry,
            reraise=True,
        )
        async def _execute() -> str:
            return await self._complete(model, prompt, key, max_output_tokens)

        logger.debug(f"Provider call | provider={self.name} | model={model}")
        content = await _execute()
        return parse_review_payload(content, provider=self.name)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"Retrying provider call | provider={self.name} | "
            f"attempt={retry_state.attempt_number} | error={type(exc).__name__}"
        )

    @abstractmethod
    async def _complete(self, model_id: str, prompt: str, api_key: str, max_output_tokens: int) -> str:
        """Perform one vendor call and return the message content string."""

    @abstractmethod
    async def list_models(self, api_key: str) -> list[ModelInfo]:
        """List models currently offered by the vendor. May raise."""

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()


# ============================================================================
# SDK-BACKED ADAPTERS
# ============================================================================


def _translate_sdk_error(exc: Exception, provider: str) -> ProviderError:
    """Map openai/anthropic SDK exceptions onto the provider taxonomy."""
    if isinstance(exc, (APITimeoutError, AnthropicTimeoutError)):
        return ProviderUpstreamError(
            f"{provider} request timed out", provider=provider, retryable=True
        )
    if isinstance(exc, (APIStatusError, AnthropicStatusError)):
        vendor_message = _extract_vendor_message(exc.body) or exc.message
        return ProviderUpstreamError(
            f"{provider} returned HTTP {exc.status_code}",
            provider=provider,
            status_code=exc.status_code,
            vendor_message=vendor_message,
            retryable=_is_retryable_status(exc.status_code),
        )
    if isinstance(exc, (APIConnectionError, AnthropicConnectionError)):
        return ProviderUpstreamError(
            f"Could not reach {provider}", provider=provider, retryable=True
        )
    return ProviderUpstreamError(
        f"{provider} request failed", provider=provider, vendor_message=str(exc)
    )


class OpenAIAdapter(AbstractProviderAdapter):
    """OpenAI chat completions with bearer authentication."""

    provider = ProviderName.OPENAI

    def _client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=0,  # Retries are handled by the adapter
            http_client=self._http_client,
        )

    async def _complete(self, model_id: str, prompt: str, api_key: str, max_output_tokens: int) -> str:
        try:
            response = await self._client(api_key).chat.completions.create(
                model=model_id,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_tokens=max_output_tokens,
            )
        except OpenAIError as e:
            raise _translate_sdk_error(e, self.name) from e

        if not response.choices:
            raise MalformedProviderResponseError(
                "Response contained no choices", provider=self.name
            )
        return response.choices[0].message.content

    def _include_model(self, model_id: str) -> bool:
        return "gpt" in model_id and "instruct" not in model_id and "search" not in model_id

    def _to_model_info(self, model: Any) -> ModelInfo:
        return ModelInfo(id=model.id, name=model.id, provider=self.provider)

    async def list_models(self, api_key: str) -> list[ModelInfo]:
        key = self._require_api_key(api_key)
        try:
            page = await self._client(key).models.list()
        except OpenAIError as e:
            raise _translate_sdk_error(e, self.name) from e

        models = [self._to_model_info(m) for m in page.data if m.id and self._include_model(m.id)]
        # Latest models first
        return sorted(models, key=lambda m: m.id, reverse=True)


class GroqAdapter(OpenAIAdapter):
    """Groq's OpenAI-compatible endpoint on its own host."""

    provider = ProviderName.GROQ

    def _include_model(self, model_id: str) -> bool:
        return "whisper" not in model_id

    def _to_model_info(self, model: Any) -> ModelInfo:
        return ModelInfo(
            id=model.id,
            name=model.id,
            provider=self.provider,
            context_length=getattr(model, "context_window", None),
        )


class AnthropicAdapter(AbstractProviderAdapter):
    """Anthropic messages API with x-api-key and version headers."""

    provider = ProviderName.ANTHROPIC

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None, *, anthropic_version: str = "2023-06-01", **kwargs):
        super().__init__(http_client, **kwargs)
        self.anthropic_version = anthropic_version

    def _client(self, api_key: str) -> AsyncAnthropic:
        return AsyncAnthropic(
            api_key=api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=0,
            default_headers={"anthropic-version": self.anthropic_version},
            http_client=self._http_client,
        )

    async def _complete(self, model_id: str, prompt: str, api_key: str, max_output_tokens: int) -> str:
        try:
            response = await self._client(api_key).messages.create(
                model=model_id,
                max_tokens=max_output_tokens,
                system=SYSTEM_PROMPT,
                temperature=self.temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except AnthropicError as e:
            raise _translate_sdk_error(e, self.name) from e

        return "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )

    async def list_models(self, api_key: str) -> list[ModelInfo]:
        key = self._require_api_key(api_key)
        try:
            page = await self._client(key).models.list()
        except AnthropicError as e:
            raise _translate_sdk_error(e, self.name) from e

        return [
            ModelInfo(
                id=m.id,
                name=getattr(m, "display_name", None) or m.id,
                provider=self.provider,
            )
            for m in page.data
        ]


# ============================================================================
# RAW HTTP ADAPTER
# ============================================================================


class GoogleAdapter(AbstractProviderAdapter):
    """
    Google Generative Language generateContent.

    The key travels as a query parameter, so error messages are built from
    status codes and vendor bodies only; httpx exception text (which embeds
    the request URL) is never surfaced.
    """

    provider = ProviderName.GOOGLE

    async def _request(self, method: str, path: str, api_key: str, **kwargs) -> dict[str, Any]:
        try:
            response = await self._http_client.request(
                method,
                f"{self.base_url}/{path}",
                params={"key": api_key},
                timeout=self.timeout,
                **kwargs,
            )
        except httpx.TimeoutException as e:
            raise ProviderUpstreamError(
                f"{self.name} request timed out", provider=self.name, retryable=True
            ) from e
        except httpx.HTTPError as e:
            raise ProviderUpstreamError(
                f"Could not reach {self.name}: {type(e).__name__}",
                provider=self.name,
                retryable=True,
            ) from e

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = response.text
            raise ProviderUpstreamError(
                f"{self.name} returned HTTP {response.status_code}",
                provider=self.name,
                status_code=response.status_code,
                vendor_message=_extract_vendor_message(body),
                retryable=_is_retryable_status(response.status_code),
            )

        try:
            return response.json()
        except ValueError as e:
            raise MalformedProviderResponseError(
                "Response body is not JSON", provider=self.name, raw_text=response.text
            ) from e

    async def _complete(self, model_id: str, prompt: str, api_key: str, max_output_tokens: int) -> str:
        data = await self._request(
            "POST",
            f"models/{model_id}:generateContent",
            api_key,
            json={
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": {
                    "temperature": self.temperature,
                    "maxOutputTokens": max_output_tokens,
                },
            },
        )
        try:
            parts = data["candidates"][0]["content"]["parts"]
            return "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedProviderResponseError(
                "Response contained no candidate text",
                provider=self.name,
                raw_text=json.dumps(data)[:2000],
            ) from e

    async def list_models(self, api_key: str) -> list[ModelInfo]:
        key = self._require_api_key(api_key)
        data = await self._request("GET", "models", key)

        models = []
        for model in data.get("models", []):
            name = model.get("name", "")
            methods = model.get("supportedGenerationMethods") or []
            if "generateContent" not in methods or "gemini" not in name:
                continue
            model_id = name.replace("models/", "")
            models.append(
                ModelInfo(
                    id=model_id,
                    name=model.get("displayName") or model_id,
                    provider=self.provider,
                    context_length=model.get("inputTokenLimit"),
                )
            )
        return models


# ============================================================================
# REGISTRY
# ============================================================================

ADAPTER_CLASSES: dict[ProviderName, Type[AbstractProviderAdapter]] = {
    ProviderName.OPENAI: OpenAIAdapter,
    ProviderName.ANTHROPIC: AnthropicAdapter,
    ProviderName.GROQ: GroqAdapter,
    ProviderName.GOOGLE: GoogleAdapter,
}


def get_provider_adapter(
    provider: str,
    settings: Optional[LLMSettings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    **kwargs,
) -> AbstractProviderAdapter:
    """
    Build the adapter for ``provider`` (case-insensitive).

    Raises:
        ValueError: If the provider is not supported
    """
    try:
        name = ProviderName.parse(provider)
    except ValueError:
        supported = ", ".join(p.value for p in ProviderName)
        raise ValueError(
            f"Unsupported LLM provider: {provider}. Supported providers: {supported}"
        ) from None

    settings = settings or get_settings().llm
    options: dict[str, Any] = {
        "base_url": settings.base_url_for(name),
        "default_model": settings.model_for(name),
        "timeout": settings.request_timeout,
        "max_retries": settings.max_retries,
        "temperature": settings.temperature,
        "retry_wait_min": settings.retry_wait_min,
        "retry_wait_max": settings.retry_wait_max,
    }
    if name == ProviderName.ANTHROPIC:
        options["anthropic_version"] = settings.anthropic_version
    options.update(kwargs)

    return ADAPTER_CLASSES[name](http_client=http_client, **options)


def build_adapter_registry(
    settings: Optional[LLMSettings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> dict[ProviderName, AbstractProviderAdapter]:
    """One adapter per supported vendor, sharing ``http_client``."""
    return {
        name: get_provider_adapter(name.value, settings=settings, http_client=http_client)
        for name in ProviderName
    }
