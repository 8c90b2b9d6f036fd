"""
Unit Tests for Provider Adapters
================================

Wire-level tests against httpx.MockTransport covering:
- Request shape and authentication per vendor
- Normalization of each vendor envelope into GeneratedReview
- Credential guard (no request is sent without a key)
- Error mapping and retry of transient failures
- Model listing filters
- Adapter registry construction
"""

import json

import httpx
import pytest

from config.constants import SYSTEM_PROMPT
from config.settings import LLMSettings
from core.enums import ProviderName
from core.exceptions import (
    MalformedProviderResponseError,
    MissingProviderCredentialsError,
    ProviderUpstreamError,
)
from infrastructure.llm_client import (
    AbstractProviderAdapter,
    AnthropicAdapter,
    GoogleAdapter,
    GroqAdapter,
    OpenAIAdapter,
    build_adapter_registry,
    get_provider_adapter,
    parse_review_payload,
)

API_KEY = "sk-test-0123456789"
REVIEWS_JSON = json.dumps(
    [
        {"text": "Tidy crew, fair price.", "keywords_used": ["fair price"], "seo_score": 88},
        {"text": "New cabinets look great.", "keywords_used": [], "seo_score": 140},
    ]
)

FAST_RETRY = {"retry_wait_min": 0.0, "retry_wait_max": 0.0}


class RecordingTransport:
    """Callable MockTransport handler that records requests and replays responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses[min(len(self.requests), len(self.responses)) - 1]
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def openai_completion(content) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "id": "chatcmpl-1",
            "object": "chat.completion",
            "created": 1700000000,
            "model": "gpt-4",
            "choices": [
                {
                    "index": 0,
                    "message": {"role": "assistant", "content": content},
                    "finish_reason": "stop",
                }
            ],
        },
    )


def anthropic_message(text: str) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "id": "msg_1",
            "type": "message",
            "role": "assistant",
            "model": "claude-3-sonnet-20240229",
            "content": [{"type": "text", "text": text}],
            "stop_reason": "end_turn",
            "stop_sequence": None,
            "usage": {"input_tokens": 10, "output_tokens": 20},
        },
    )


def google_candidates(text: str) -> httpx.Response:
    return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


# ============================================================================
# PAYLOAD NORMALIZATION
# ============================================================================


class TestParseReviewPayload:
    def test_array_of_reviews(self):
        reviews = parse_review_payload(REVIEWS_JSON, provider="openai")

        assert [r.text for r in reviews] == ["Tidy crew, fair price.", "New cabinets look great."]
        assert reviews[0].keywords_used == ["fair price"]
        assert reviews[0].seo_score == 88

    def test_model_score_is_clamped(self):
        reviews = parse_review_payload(REVIEWS_JSON, provider="openai")
        assert reviews[1].seo_score == 100

    def test_code_fences_are_stripped(self):
        fenced = f"```json\n{REVIEWS_JSON}\n```"
        assert len(parse_review_payload(fenced, provider="openai")) == 2

    def test_object_with_reviews_array(self):
        content = json.dumps({"reviews": [{"text": "Solid work."}]})
        reviews = parse_review_payload(content, provider="groq")

        assert reviews[0].text == "Solid work."
        assert reviews[0].keywords_used == []
        assert reviews[0].seo_score == 0

    def test_single_review_object(self):
        content = json.dumps({"text": "Solid work.", "seo_score": "not a number", "keywords_used": "x"})
        reviews = parse_review_payload(content, provider="google")

        assert reviews[0].seo_score == 0
        assert reviews[0].keywords_used == []

    @pytest.mark.parametrize(
        "content",
        [
            None,
            "   ",
            "Here are your reviews!",
            json.dumps([{"content": "wrong field"}]),
            json.dumps([{"text": "   "}]),
            json.dumps("just a string"),
        ],
    )
    def test_malformed_content(self, content):
        with pytest.raises(MalformedProviderResponseError) as exc_info:
            parse_review_payload(content, provider="openai")
        assert exc_info.value.provider == "openai"

    def test_malformed_error_keeps_raw_text(self):
        with pytest.raises(MalformedProviderResponseError) as exc_info:
            parse_review_payload("not json", provider="anthropic")
        assert exc_info.value.raw_text == "not json"
        assert exc_info.value.context["response_preview"] == "not json"


# ============================================================================
# CREDENTIAL GUARD
# ============================================================================


class TestCredentialGuard:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider", [p.value for p in ProviderName])
    @pytest.mark.parametrize("api_key", [None, "", "   "])
    async def test_missing_key_fails_before_network(self, provider, api_key):
        transport = RecordingTransport(httpx.Response(500))
        adapter = get_provider_adapter(provider, settings=LLMSettings(), http_client=transport.client())

        with pytest.raises(MissingProviderCredentialsError):
            await adapter.generate(None, "prompt", api_key)

        assert transport.call_count == 0

    @pytest.mark.asyncio
    async def test_list_models_requires_key(self):
        transport = RecordingTransport(httpx.Response(500))
        adapter = GoogleAdapter(transport.client())

        with pytest.raises(MissingProviderCredentialsError):
            await adapter.list_models("")
        assert transport.call_count == 0


# ============================================================================
# OPENAI / GROQ
# ============================================================================


class TestOpenAIAdapter:
    @pytest.mark.asyncio
    async def test_generate_sends_chat_completion(self):
        transport = RecordingTransport(openai_completion(REVIEWS_JSON))
        adapter = OpenAIAdapter(transport.client(), temperature=0.8)

        reviews = await adapter.generate("gpt-4o-mini", "Write reviews", API_KEY, 1500)

        assert len(reviews) == 2
        request = transport.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/v1/chat/completions"
        assert request.headers["authorization"] == f"Bearer {API_KEY}"
        body = json.loads(request.content)
        assert body["model"] == "gpt-4o-mini"
        assert body["max_tokens"] == 1500
        assert body["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
        assert body["messages"][1] == {"role": "user", "content": "Write reviews"}

    @pytest.mark.asyncio
    async def test_default_model_used_when_none_given(self):
        transport = RecordingTransport(openai_completion(REVIEWS_JSON))
        adapter = OpenAIAdapter(transport.client())

        await adapter.generate(None, "Write reviews", API_KEY)

        assert json.loads(transport.requests[0].content)["model"] == "gpt-4"

    @pytest.mark.asyncio
    async def test_null_content_is_malformed(self):
        transport = RecordingTransport(openai_completion(None))
        adapter = OpenAIAdapter(transport.client())

        with pytest.raises(MalformedProviderResponseError):
            await adapter.generate(None, "Write reviews", API_KEY)

    @pytest.mark.asyncio
    async def test_auth_error_carries_vendor_message(self):
        transport = RecordingTransport(
            httpx.Response(
                401,
                json={"error": {"message": "Incorrect API key provided", "type": "invalid_request_error"}},
            )
        )
        adapter = OpenAIAdapter(transport.client(), max_retries=3, **FAST_RETRY)

        with pytest.raises(ProviderUpstreamError) as exc_info:
            await adapter.generate(None, "Write reviews", API_KEY)

        error = exc_info.value
        assert error.status_code == 401
        assert error.vendor_message == "Incorrect API key provided"
        assert error.retryable is False
        # Client errors are not retried
        assert transport.call_count == 1

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self):
        transport = RecordingTransport(
            httpx.Response(503, json={"error": {"message": "overloaded"}}),
            openai_completion(REVIEWS_JSON),
        )
        adapter = OpenAIAdapter(transport.client(), max_retries=2, **FAST_RETRY)

        reviews = await adapter.generate(None, "Write reviews", API_KEY)

        assert len(reviews) == 2
        assert transport.call_count == 2

    @pytest.mark.asyncio
    async def test_retries_exhausted_reraises_last_error(self):
        transport = RecordingTransport(httpx.Response(429, json={"error": {"message": "rate limited"}}))
        adapter = OpenAIAdapter(transport.client(), max_retries=3, **FAST_RETRY)

        with pytest.raises(ProviderUpstreamError) as exc_info:
            await adapter.generate(None, "Write reviews", API_KEY)

        assert exc_info.value.status_code == 429
        assert exc_info.value.retryable is True
        assert transport.call_count == 3

    @pytest.mark.asyncio
    async def test_timeout_maps_to_retryable_upstream_error(self):
        transport = RecordingTransport(httpx.ReadTimeout("timed out"))
        adapter = OpenAIAdapter(transport.client(), max_retries=1)

        with pytest.raises(ProviderUpstreamError) as exc_info:
            await adapter.generate(None, "Write reviews", API_KEY)

        assert exc_info.value.retryable is True
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_list_models_filters_and_sorts(self):
        transport = RecordingTransport(
            httpx.Response(
                200,
                json={
                    "object": "list",
                    "data": [
                        {"id": "gpt-4", "object": "model", "created": 1, "owned_by": "openai"},
                        {"id": "gpt-3.5-turbo-instruct", "object": "model", "created": 1, "owned_by": "openai"},
                        {"id": "whisper-1", "object": "model", "created": 1, "owned_by": "openai"},
                        {"id": "gpt-4o", "object": "model", "created": 1, "owned_by": "openai"},
                    ],
                },
            )
        )
        adapter = OpenAIAdapter(transport.client())

        models = await adapter.list_models(API_KEY)

        assert [m.id for m in models] == ["gpt-4o", "gpt-4"]
        assert all(m.provider == ProviderName.OPENAI for m in models)
        assert transport.requests[0].url.path == "/v1/models"


class TestGroqAdapter:
    @pytest.mark.asyncio
    async def test_uses_groq_host(self):
        transport = RecordingTransport(openai_completion(REVIEWS_JSON))
        adapter = GroqAdapter(transport.client())

        await adapter.generate(None, "Write reviews", API_KEY)

        request = transport.requests[0]
        assert request.url.host == "api.groq.com"
        assert request.url.path == "/openai/v1/chat/completions"
        assert json.loads(request.content)["model"] == "llama-3.3-70b-versatile"

    @pytest.mark.asyncio
    async def test_list_models_excludes_whisper(self):
        transport = RecordingTransport(
            httpx.Response(
                200,
                json={
                    "object": "list",
                    "data": [
                        {
                            "id": "llama-3.3-70b-versatile",
                            "object": "model",
                            "created": 1,
                            "owned_by": "Meta",
                            "context_window": 131072,
                        },
                        {"id": "whisper-large-v3", "object": "model", "created": 1, "owned_by": "OpenAI"},
                    ],
                },
            )
        )
        adapter = GroqAdapter(transport.client())

        models = await adapter.list_models(API_KEY)

        assert [m.id for m in models] == ["llama-3.3-70b-versatile"]
        assert models[0].context_length == 131072


# ============================================================================
# ANTHROPIC
# ============================================================================


class TestAnthropicAdapter:
    @pytest.mark.asyncio
    async def test_generate_sends_messages_request(self):
        transport = RecordingTransport(anthropic_message(REVIEWS_JSON))
        adapter = AnthropicAdapter(transport.client())

        reviews = await adapter.generate(None, "Write reviews", API_KEY, 1200)

        assert len(reviews) == 2
        request = transport.requests[0]
        assert request.url.path == "/v1/messages"
        assert request.headers["x-api-key"] == API_KEY
        assert request.headers["anthropic-version"] == "2023-06-01"
        body = json.loads(request.content)
        assert body["model"] == "claude-3-sonnet-20240229"
        assert body["system"] == SYSTEM_PROMPT
        assert body["max_tokens"] == 1200
        assert body["messages"] == [{"role": "user", "content": "Write reviews"}]

    @pytest.mark.asyncio
    async def test_error_body_is_unwrapped(self):
        transport = RecordingTransport(
            httpx.Response(
                400,
                json={"type": "error", "error": {"type": "invalid_request_error", "message": "model not found"}},
            )
        )
        adapter = AnthropicAdapter(transport.client())

        with pytest.raises(ProviderUpstreamError) as exc_info:
            await adapter.generate("claude-x", "Write reviews", API_KEY)

        assert exc_info.value.status_code == 400
        assert exc_info.value.vendor_message == "model not found"

    @pytest.mark.asyncio
    async def test_list_models_uses_display_names(self):
        transport = RecordingTransport(
            httpx.Response(
                200,
                json={
                    "data": [
                        {
                            "id": "claude-3-5-sonnet-20241022",
                            "type": "model",
                            "display_name": "Claude 3.5 Sonnet",
                            "created_at": "2024-10-22T00:00:00Z",
                        }
                    ],
                    "has_more": False,
                    "first_id": "claude-3-5-sonnet-20241022",
                    "last_id": "claude-3-5-sonnet-20241022",
                },
            )
        )
        adapter = AnthropicAdapter(transport.client())

        models = await adapter.list_models(API_KEY)

        assert models[0].id == "claude-3-5-sonnet-20241022"
        assert models[0].name == "Claude 3.5 Sonnet"


# ============================================================================
# GOOGLE
# ============================================================================


class TestGoogleAdapter:
    @pytest.mark.asyncio
    async def test_generate_passes_key_as_query_parameter(self):
        transport = RecordingTransport(google_candidates(REVIEWS_JSON))
        adapter = GoogleAdapter(transport.client(), temperature=0.5)

        reviews = await adapter.generate(None, "Write reviews", API_KEY, 900)

        assert len(reviews) == 2
        request = transport.requests[0]
        assert request.url.path == "/v1beta/models/gemini-pro:generateContent"
        assert request.url.params["key"] == API_KEY
        body = json.loads(request.content)
        assert body["contents"] == [{"parts": [{"text": "Write reviews"}]}]
        assert body["generationConfig"] == {"temperature": 0.5, "maxOutputTokens": 900}

    @pytest.mark.asyncio
    async def test_missing_candidates_is_malformed(self):
        transport = RecordingTransport(httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}}))
        adapter = GoogleAdapter(transport.client())

        with pytest.raises(MalformedProviderResponseError):
            await adapter.generate(None, "Write reviews", API_KEY)

    @pytest.mark.asyncio
    async def test_error_never_exposes_key(self):
        transport = RecordingTransport(
            httpx.Response(400, json={"error": {"code": 400, "message": "API key not valid"}})
        )
        adapter = GoogleAdapter(transport.client())

        with pytest.raises(ProviderUpstreamError) as exc_info:
            await adapter.generate(None, "Write reviews", API_KEY)

        error = exc_info.value
        assert error.vendor_message == "API key not valid"
        assert API_KEY not in str(error)
        assert API_KEY not in json.dumps(error.to_dict(), default=str)

    @pytest.mark.asyncio
    async def test_connect_timeout_is_retryable(self):
        transport = RecordingTransport(httpx.ConnectTimeout("timed out"))
        adapter = GoogleAdapter(transport.client(), max_retries=2, **FAST_RETRY)

        with pytest.raises(ProviderUpstreamError) as exc_info:
            await adapter.generate(None, "Write reviews", API_KEY)

        assert exc_info.value.retryable is True
        assert transport.call_count == 2

    @pytest.mark.asyncio
    async def test_list_models_filters_generate_content(self):
        transport = RecordingTransport(
            httpx.Response(
                200,
                json={
                    "models": [
                        {
                            "name": "models/gemini-1.5-pro",
                            "displayName": "Gemini 1.5 Pro",
                            "inputTokenLimit": 2000000,
                            "supportedGenerationMethods": ["generateContent", "countTokens"],
                        },
                        {"name": "models/embedding-001", "supportedGenerationMethods": ["embedContent"]},
                    ]
                },
            )
        )
        adapter = GoogleAdapter(transport.client())

        models = await adapter.list_models(API_KEY)

        assert [m.id for m in models] == ["gemini-1.5-pro"]
        assert models[0].context_length == 2000000


# ============================================================================
# REGISTRY
# ============================================================================


class TestAdapterRegistry:
    @pytest.mark.parametrize(
        "provider,adapter_cls",
        [
            ("openai", OpenAIAdapter),
            ("Anthropic", AnthropicAdapter),
            ("GROQ", GroqAdapter),
            ("google", GoogleAdapter),
        ],
    )
    def test_get_provider_adapter(self, provider, adapter_cls):
        adapter = get_provider_adapter(provider, settings=LLMSettings(), http_client=httpx.AsyncClient())
        assert isinstance(adapter, adapter_cls)
        assert isinstance(adapter, AbstractProviderAdapter)

    def test_unknown_provider_raises_value_error(self):
        with pytest.raises(ValueError, match="Unsupported LLM provider: mistral"):
            get_provider_adapter("mistral", settings=LLMSettings())

    def test_settings_flow_into_adapter(self):
        settings = LLMSettings(groq_model="mixtral-8x7b-32768", request_timeout=12.0, max_retries=4)
        adapter = get_provider_adapter("groq", settings=settings, http_client=httpx.AsyncClient())

        assert adapter.default_model == "mixtral-8x7b-32768"
        assert adapter.timeout == 12.0
        assert adapter.max_retries == 4

    def test_registry_shares_http_client(self):
        client = httpx.AsyncClient()
        registry = build_adapter_registry(LLMSettings(), client)

        assert set(registry) == set(ProviderName)
        assert all(adapter._http_client is client for adapter in registry.values())
