"""
Tests for generators: credential lookup, response decoding and the mapping
of SDK and HTTP failures onto service errors.

SDK clients are replaced with stand-ins and requests.post is patched, so
nothing leaves the process.
"""

import base64
from types import SimpleNamespace

import anthropic
import httpx
import openai
import pytest
import requests

from hablare.codecs import pack_floats
from hablare.errors import (
    MissingCredentialsError,
    NetworkError,
    ProviderError,
    RateLimitError,
    UnexpectedResponseFormatError,
)
from hablare.providers import (
    AnthropicGenerator,
    AudioPayload,
    ElevenLabsGenerator,
    OpenAIGenerator,
    resolve_api_key,
)
from hablare.result import Failure, Success

_REQUEST = httpx.Request("POST", "https://api.example.test/v1")


def _response(status: int, headers: dict = None) -> httpx.Response:
    return httpx.Response(status, headers=headers or {}, request=_REQUEST)


def _raising(exc):
    def create(**kwargs):
        raise exc
    return create


def _openai_with(**endpoints) -> OpenAIGenerator:
    """OpenAIGenerator whose client endpoints are the given callables."""
    generator = OpenAIGenerator(api_key="test-key")
    generator._client = SimpleNamespace(
        chat=SimpleNamespace(completions=SimpleNamespace(create=endpoints.get("chat"))),
        images=SimpleNamespace(generate=endpoints.get("images")),
        embeddings=SimpleNamespace(create=endpoints.get("embeddings")),
    )
    return generator


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

class TestCredentials:

    def test_explicit_key_wins(self, monkeypatch):
        monkeypatch.setenv("HABLARE_OPENAI_API_KEY", "from-hablare")
        assert resolve_api_key("openai", "explicit", "OPENAI_API_KEY") == "explicit"

    def test_hablare_variable_before_standard(self, monkeypatch):
        monkeypatch.setenv("HABLARE_OPENAI_API_KEY", "from-hablare")
        monkeypatch.setenv("OPENAI_API_KEY", "from-standard")
        assert resolve_api_key("openai", None, "OPENAI_API_KEY") == "from-hablare"

    def test_standard_variable(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "from-standard")
        assert resolve_api_key("openai", None, "OPENAI_API_KEY") == "from-standard"

    def test_missing_key_names_variables(self):
        with pytest.raises(MissingCredentialsError, match="HABLARE_OPENAI_API_KEY or OPENAI_API_KEY"):
            resolve_api_key("openai", None, "OPENAI_API_KEY")

    def test_missing_key_is_returned_not_raised(self):
        result = OpenAIGenerator().text("hi", {"model": "gpt-4"})
        assert isinstance(result, Failure)
        assert isinstance(result.error, MissingCredentialsError)
        assert result.error.is_recoverable is False


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------

class TestOpenAIGenerator:

    def test_text(self):
        calls = []

        def chat(**kwargs):
            calls.append(kwargs)
            return SimpleNamespace(
                choices=[SimpleNamespace(message=SimpleNamespace(content="Hello!"))],
                model="gpt-4-0613",
                usage=SimpleNamespace(prompt_tokens=3, completion_tokens=2, total_tokens=5),
            )

        result = _openai_with(chat=chat).text("Hi", {
            "model": "gpt-4", "temperature": 0.5, "max_tokens": 100,
            "system_prompt": "Be kind", "stop_sequences": ["END"],
        })
        payload = result.unwrap()
        assert payload.text == "Hello!"
        assert payload.total_tokens == 5
        sent = calls[0]
        assert sent["messages"][0] == {"role": "system", "content": "Be kind"}
        assert sent["messages"][1] == {"role": "user", "content": "Hi"}
        assert sent["stop"] == ["END"]
        assert "top_p" not in sent

    def test_text_without_choices(self):
        chat = lambda **kwargs: SimpleNamespace(choices=[], model="gpt-4", usage=None)
        result = _openai_with(chat=chat).text("Hi", {"model": "gpt-4"})
        assert isinstance(result.error, UnexpectedResponseFormatError)

    def test_image_decodes_base64(self):
        calls = []

        def images(**kwargs):
            calls.append(kwargs)
            item = SimpleNamespace(b64_json=base64.b64encode(b"PNGDATA").decode(), revised_prompt="r")
            return SimpleNamespace(data=[item])

        result = _openai_with(images=images).image("cat", {
            "model": "dall-e-3", "size": "1024x1024", "quality": "hd", "style": "natural", "n": 1,
        })
        assert result.unwrap().image == b"PNGDATA"
        assert result.unwrap().revised_prompt == "r"
        assert calls[0]["response_format"] == "b64_json"
        assert calls[0]["quality"] == "hd"

    def test_dalle2_omits_dalle3_parameters(self):
        calls = []

        def images(**kwargs):
            calls.append(kwargs)
            item = SimpleNamespace(b64_json=base64.b64encode(b"x").decode(), revised_prompt=None)
            return SimpleNamespace(data=[item])

        _openai_with(images=images).image("cat", {"model": "dall-e-2", "size": "512x512", "quality": "standard"})
        assert "quality" not in calls[0]
        assert "style" not in calls[0]

    def test_image_invalid_base64(self):
        images = lambda **kwargs: SimpleNamespace(data=[SimpleNamespace(b64_json="!!!", revised_prompt=None)])
        result = _openai_with(images=images).image("cat", {"model": "dall-e-3", "size": "1024x1024"})
        assert isinstance(result.error, UnexpectedResponseFormatError)

    def test_image_missing_data(self):
        images = lambda **kwargs: SimpleNamespace(data=[])
        result = _openai_with(images=images).image("cat", {"model": "dall-e-3", "size": "1024x1024"})
        assert isinstance(result.error, UnexpectedResponseFormatError)

    def test_embedding_floats(self):
        calls = []

        def embeddings(**kwargs):
            calls.append(kwargs)
            return SimpleNamespace(
                data=[SimpleNamespace(embedding=[0.5, 0.25])],
                model="text-embedding-3-small",
                usage=SimpleNamespace(total_tokens=4),
            )

        payload = _openai_with(embeddings=embeddings).embedding("hello", {
            "model": "text-embedding-3-small", "dimensions": 2, "encoding_format": "float",
        }).unwrap()
        assert payload.vector == [0.5, 0.25]
        assert payload.token_count == 4
        assert calls[0]["dimensions"] == 2

    def test_embedding_base64(self):
        encoded = base64.b64encode(pack_floats([1.0, 2.0, 3.0])).decode()
        embeddings = lambda **kwargs: SimpleNamespace(
            data=[SimpleNamespace(embedding=encoded)], model="m", usage=None,
        )
        payload = _openai_with(embeddings=embeddings).embedding("x", {
            "model": "m", "encoding_format": "base64",
        }).unwrap()
        assert payload.vector == [1.0, 2.0, 3.0]
        assert payload.token_count is None

    def test_timeout(self):
        result = _openai_with(chat=_raising(openai.APITimeoutError(request=_REQUEST))).text("x", {"model": "m"})
        assert isinstance(result.error, NetworkError)
        assert result.error.timed_out is True
        assert result.error.retry_delay == 5.0

    def test_connection_error(self):
        error = openai.APIConnectionError(request=_REQUEST)
        result = _openai_with(chat=_raising(error)).text("x", {"model": "m"})
        assert isinstance(result.error, NetworkError)
        assert result.error.timed_out is False

    def test_rate_limit(self):
        error = openai.RateLimitError("slow down", response=_response(429, {"retry-after": "7"}), body=None)
        result = _openai_with(chat=_raising(error)).text("x", {"model": "m"})
        assert isinstance(result.error, RateLimitError)
        assert result.error.retry_after == 7.0
        assert result.error.is_recoverable

    def test_status_error(self):
        error = openai.InternalServerError("boom", response=_response(500), body=None)
        result = _openai_with(images=_raising(error)).image("x", {"model": "dall-e-3", "size": "1024x1024"})
        assert isinstance(result.error, ProviderError)
        assert result.error.code == "500"


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------

class TestAnthropicGenerator:

    def _generator(self, create) -> AnthropicGenerator:
        generator = AnthropicGenerator(api_key="test-key")
        generator._client = SimpleNamespace(messages=SimpleNamespace(create=create))
        return generator

    def test_text_blocks_joined(self):
        calls = []

        def create(**kwargs):
            calls.append(kwargs)
            return SimpleNamespace(
                content=[
                    SimpleNamespace(type="text", text="Hel"),
                    SimpleNamespace(type="tool_use"),
                    SimpleNamespace(type="text", text="lo"),
                ],
                model="claude-3-haiku-20240307",
                usage=SimpleNamespace(input_tokens=5, output_tokens=2),
            )

        payload = self._generator(create).text("Hi", {
            "model": "claude-3-haiku-20240307", "max_tokens": 50, "system_prompt": "terse",
        }).unwrap()
        assert payload.text == "Hello"
        assert payload.total_tokens == 7
        assert calls[0]["system"] == "terse"

    def test_no_text(self):
        create = lambda **kwargs: SimpleNamespace(content=[], model="m", usage=None)
        result = self._generator(create).text("Hi", {"model": "m", "max_tokens": 5})
        assert isinstance(result.error, UnexpectedResponseFormatError)

    def test_rate_limit(self):
        error = anthropic.RateLimitError("slow", response=_response(429), body=None)
        result = self._generator(_raising(error)).text("Hi", {"model": "m", "max_tokens": 5})
        assert isinstance(result.error, RateLimitError)
        assert result.error.retry_after is None

    def test_connection_error(self):
        error = anthropic.APIConnectionError(request=_REQUEST)
        result = self._generator(_raising(error)).text("Hi", {"model": "m", "max_tokens": 5})
        assert isinstance(result.error, NetworkError)


# ---------------------------------------------------------------------------
# ElevenLabs
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, status_code: int, content: bytes = b"", headers: dict = None):
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}
        self.text = content.decode("utf-8", errors="replace")

    @property
    def ok(self) -> bool:
        return self.status_code < 400


_SPEECH_PARAMS = {
    "voice_id": "voice-1", "model_id": "eleven_monolingual_v1",
    "stability": 0.5, "similarity_boost": 0.75, "output_format": "mp3",
}


class TestElevenLabsGenerator:

    @pytest.fixture
    def post_returns(self, monkeypatch):
        """Patch requests.post; returns the list of captured calls."""
        calls = []

        def install(response=None, exc=None):
            def fake_post(url, **kwargs):
                calls.append((url, kwargs))
                if exc is not None:
                    raise exc
                return response
            monkeypatch.setattr(requests, "post", fake_post)
            return calls
        return install

    def test_success(self, post_returns):
        calls = post_returns(FakeResponse(200, b"ID3audio"))
        result = ElevenLabsGenerator(api_key="k").speech("Hello", _SPEECH_PARAMS)
        assert result.unwrap() == AudioPayload(audio=b"ID3audio", format="mp3")
        url, kwargs = calls[0]
        assert url == "https://api.elevenlabs.io/v1/text-to-speech/voice-1"
        assert kwargs["headers"]["xi-api-key"] == "k"
        assert kwargs["headers"]["Accept"] == "audio/mpeg"
        assert kwargs["json"]["text"] == "Hello"
        assert kwargs["json"]["voice_settings"] == {"stability": 0.5, "similarity_boost": 0.75}
        assert kwargs["timeout"] == (10, 120)

    def test_key_from_environment(self, post_returns, monkeypatch):
        monkeypatch.setenv("ELEVENLABS_API_KEY", "env-key")
        calls = post_returns(FakeResponse(200, b"x"))
        ElevenLabsGenerator().speech("Hello", _SPEECH_PARAMS)
        assert calls[0][1]["headers"]["xi-api-key"] == "env-key"

    def test_missing_key_skips_request(self, post_returns):
        calls = post_returns(FakeResponse(200, b"x"))
        result = ElevenLabsGenerator().speech("Hello", _SPEECH_PARAMS)
        assert isinstance(result.error, MissingCredentialsError)
        assert calls == []

    def test_rate_limited(self, post_returns):
        post_returns(FakeResponse(429, b"", {"retry-after": "3"}))
        result = ElevenLabsGenerator(api_key="k").speech("Hello", _SPEECH_PARAMS)
        assert isinstance(result.error, RateLimitError)
        assert result.error.retry_delay == 3.0

    def test_http_error(self, post_returns):
        post_returns(FakeResponse(401, b'{"detail": "invalid key"}'))
        result = ElevenLabsGenerator(api_key="k").speech("Hello", _SPEECH_PARAMS)
        assert isinstance(result.error, ProviderError)
        assert result.error.code == "401"
        assert "invalid key" in str(result.error)

    def test_empty_body(self, post_returns):
        post_returns(FakeResponse(200, b""))
        result = ElevenLabsGenerator(api_key="k").speech("Hello", _SPEECH_PARAMS)
        assert isinstance(result.error, UnexpectedResponseFormatError)

    def test_timeout(self, post_returns):
        post_returns(exc=requests.Timeout("read timed out"))
        result = ElevenLabsGenerator(api_key="k").speech("Hello", _SPEECH_PARAMS)
        assert isinstance(result, Failure)
        assert result.error.timed_out is True

    def test_connection_error(self, post_returns):
        post_returns(exc=requests.ConnectionError("refused"))
        result = ElevenLabsGenerator(api_key="k").speech("Hello", _SPEECH_PARAMS)
        assert isinstance(result.error, NetworkError)
        assert result.error.timed_out is False

    def test_custom_base_url(self, post_returns):
        calls = post_returns(FakeResponse(200, b"x"))
        result = ElevenLabsGenerator(api_key="k", base_url="http://localhost:9000/v1/").speech("Hi", _SPEECH_PARAMS)
        assert isinstance(result, Success)
        assert calls[0][0] == "http://localhost:9000/v1/text-to-speech/voice-1"
