"""
Generators: the network calls behind each requestor.

A generator is any callable `(prompt, params) -> Result[payload, ServiceError]`.
Requestors never see provider wire shapes, only the decoded payloads
defined here. SDK and HTTP exceptions are mapped onto the ServiceError
taxonomy and returned as Failure values; no retries are attempted.

Authentication (checked in priority order):
1. api_key parameter (if provided)
2. HABLARE_<PROVIDER>_API_KEY
3. The provider's standard variable (OPENAI_API_KEY, ANTHROPIC_API_KEY,
   ELEVENLABS_API_KEY)
"""

import base64
import binascii
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .codecs import unpack_floats
from .errors import (
    MissingCredentialsError,
    NetworkError,
    ProviderError,
    RateLimitError,
    ServiceError,
    UnexpectedResponseFormatError,
)
from .result import Failure, Result, Success

logger = logging.getLogger(__name__)

# (prompt, params) -> Result[payload, ServiceError]
GenerateFn = Callable[[str, dict[str, Any]], Result]

ELEVENLABS_BASE_URL = "https://api.elevenlabs.io/v1"
ELEVENLABS_ACCEPT = "audio/mpeg"
ELEVENLABS_FORMAT = "mp3"


# -----------------------------------------------------------------------------
# Payloads
# -----------------------------------------------------------------------------

@dataclass
class TextPayload:
    text: Optional[str]
    model: Optional[str] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


@dataclass
class AudioPayload:
    audio: Optional[bytes]
    format: str = "mp3"


@dataclass
class ImagePayload:
    image: Optional[bytes]
    revised_prompt: Optional[str] = None


@dataclass
class EmbeddingPayload:
    vector: Optional[list[float]]
    token_count: Optional[int] = None
    model: Optional[str] = None


# -----------------------------------------------------------------------------
# Shared helpers
# -----------------------------------------------------------------------------

def resolve_api_key(provider: str, api_key: Optional[str], standard_var: str) -> str:
    """Find an API key or raise MissingCredentialsError naming the variables."""
    hablare_var = f"HABLARE_{provider.upper()}_API_KEY"
    key = api_key or os.environ.get(hablare_var) or os.environ.get(standard_var)
    if not key:
        raise MissingCredentialsError(
            f"{provider} API key required. Set {hablare_var} or {standard_var}"
        )
    return key


def _retry_after(headers) -> Optional[float]:
    if headers is None:
        return None
    value = headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except ValueError:
        return None


def _map_sdk_error(e: Exception, sdk, provider: str) -> ServiceError:
    """
    Map an openai/anthropic SDK exception onto the service error taxonomy.

    Both SDKs expose the same exception names, so one mapping serves both.
    """
    if isinstance(e, sdk.APITimeoutError):
        return NetworkError(f"{provider} request timed out", timed_out=True)
    if isinstance(e, sdk.APIConnectionError):
        return NetworkError(f"{provider} connection failed: {e}")
    if isinstance(e, sdk.RateLimitError):
        response = getattr(e, "response", None)
        return RateLimitError(
            f"{provider} rate limit exceeded: {e}",
            retry_after=_retry_after(getattr(response, "headers", None)),
        )
    if isinstance(e, sdk.APIStatusError):
        return ProviderError(f"{provider} API error: {e}", code=str(e.status_code))
    return ProviderError(f"{provider} error: {e}")


# -----------------------------------------------------------------------------
# OpenAI
# -----------------------------------------------------------------------------

class OpenAIGenerator:
    """
    Text, image and embedding endpoints of the OpenAI API.

    The client is created on first use, so constructing a generator never
    fails for lack of credentials; the request returns the failure instead.
    """

    def __init__(self, api_key: Optional[str] = None, timeout: float = 120.0):
        self._api_key = api_key
        self._timeout = timeout
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                from openai import OpenAI
            except ImportError:
                raise RuntimeError("OpenAIGenerator requires 'openai' library")
            key = resolve_api_key("openai", self._api_key, "OPENAI_API_KEY")
            self._client = OpenAI(api_key=key, timeout=self._timeout)
        return self._client

    def text(self, prompt: str, params: dict[str, Any]) -> Result:
        import openai

        messages = []
        if params.get("system_prompt"):
            messages.append({"role": "system", "content": params["system_prompt"]})
        messages.append({"role": "user", "content": prompt})
        kwargs: dict[str, Any] = {
            "model": params["model"],
            "messages": messages,
            "temperature": params.get("temperature"),
            "max_tokens": params.get("max_tokens"),
            "top_p": params.get("top_p"),
            "frequency_penalty": params.get("frequency_penalty"),
            "presence_penalty": params.get("presence_penalty"),
        }
        if params.get("stop_sequences"):
            kwargs["stop"] = params["stop_sequences"]
        kwargs = {k: v for k, v in kwargs.items() if v is not None}

        try:
            response = self._get_client().chat.completions.create(**kwargs)
        except ServiceError as e:
            return Failure(e)
        except openai.OpenAIError as e:
            return Failure(_map_sdk_error(e, openai, "OpenAI"))

        if not response.choices:
            return Failure(UnexpectedResponseFormatError("OpenAI response has no choices"))
        usage = response.usage
        return Success(TextPayload(
            text=response.choices[0].message.content,
            model=response.model,
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
            total_tokens=usage.total_tokens if usage else None,
        ))

    def image(self, prompt: str, params: dict[str, Any]) -> Result:
        import openai

        kwargs: dict[str, Any] = {
            "model": params["model"],
            "prompt": prompt,
            "size": params["size"],
            "n": params.get("n", 1),
            "response_format": "b64_json",
        }
        # quality and style are DALL-E 3 parameters
        if params["model"] == "dall-e-3":
            kwargs["quality"] = params.get("quality", "standard")
            kwargs["style"] = params.get("style", "vivid")

        try:
            response = self._get_client().images.generate(**kwargs)
        except ServiceError as e:
            return Failure(e)
        except openai.OpenAIError as e:
            return Failure(_map_sdk_error(e, openai, "OpenAI"))

        if not response.data or not response.data[0].b64_json:
            return Failure(UnexpectedResponseFormatError("OpenAI image response has no image data"))
        item = response.data[0]
        try:
            image = base64.b64decode(item.b64_json, validate=True)
        except binascii.Error as e:
            return Failure(UnexpectedResponseFormatError(f"Image data is not valid base64: {e}"))
        return Success(ImagePayload(image=image, revised_prompt=item.revised_prompt))

    def embedding(self, prompt: str, params: dict[str, Any]) -> Result:
        import openai

        kwargs: dict[str, Any] = {
            "model": params["model"],
            "input": prompt,
            "encoding_format": params.get("encoding_format", "float"),
        }
        if params.get("dimensions") is not None:
            kwargs["dimensions"] = params["dimensions"]
        if params.get("user"):
            kwargs["user"] = params["user"]

        try:
            response = self._get_client().embeddings.create(**kwargs)
        except ServiceError as e:
            return Failure(e)
        except openai.OpenAIError as e:
            return Failure(_map_sdk_error(e, openai, "OpenAI"))

        if not response.data:
            return Failure(UnexpectedResponseFormatError("OpenAI embedding response has no data"))
        raw = response.data[0].embedding
        if isinstance(raw, str):
            try:
                packed = base64.b64decode(raw, validate=True)
            except binascii.Error as e:
                return Failure(UnexpectedResponseFormatError(f"Embedding is not valid base64: {e}"))
            vector = unpack_floats(packed, len(packed) // 4)
        else:
            vector = [float(v) for v in raw]
        usage = response.usage
        return Success(EmbeddingPayload(
            vector=vector,
            token_count=usage.total_tokens if usage else None,
            model=response.model,
        ))


# -----------------------------------------------------------------------------
# Anthropic
# -----------------------------------------------------------------------------

class AnthropicGenerator:
    """Messages endpoint of the Anthropic API."""

    def __init__(self, api_key: Optional[str] = None, timeout: float = 120.0):
        self._api_key = api_key
        self._timeout = timeout
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                from anthropic import Anthropic
            except ImportError:
                raise RuntimeError("AnthropicGenerator requires 'anthropic' library")
            key = resolve_api_key("anthropic", self._api_key, "ANTHROPIC_API_KEY")
            self._client = Anthropic(api_key=key, timeout=self._timeout)
        return self._client

    def text(self, prompt: str, params: dict[str, Any]) -> Result:
        import anthropic

        kwargs: dict[str, Any] = {
            "model": params["model"],
            "max_tokens": params["max_tokens"],
            "messages": [{"role": "user", "content": prompt}],
        }
        if params.get("temperature") is not None:
            kwargs["temperature"] = params["temperature"]
        if params.get("system_prompt"):
            kwargs["system"] = params["system_prompt"]
        if params.get("stop_sequences"):
            kwargs["stop_sequences"] = params["stop_sequences"]

        try:
            response = self._get_client().messages.create(**kwargs)
        except ServiceError as e:
            return Failure(e)
        except anthropic.AnthropicError as e:
            return Failure(_map_sdk_error(e, anthropic, "Anthropic"))

        parts = [block.text for block in response.content if getattr(block, "type", None) == "text"]
        if not parts:
            return Failure(UnexpectedResponseFormatError("Anthropic response has no text content"))
        usage = response.usage
        prompt_tokens = usage.input_tokens if usage else None
        completion_tokens = usage.output_tokens if usage else None
        total = None
        if prompt_tokens is not None and completion_tokens is not None:
            total = prompt_tokens + completion_tokens
        return Success(TextPayload(
            text="".join(parts),
            model=response.model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total,
        ))


# -----------------------------------------------------------------------------
# ElevenLabs
# -----------------------------------------------------------------------------

class ElevenLabsGenerator:
    """Text-to-speech endpoint of the ElevenLabs API, called over HTTP."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = ELEVENLABS_BASE_URL,
        timeout: tuple = (10, 120),  # (connect, read)
    ):
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout

    def speech(self, prompt: str, params: dict[str, Any]) -> Result:
        import requests

        try:
            key = resolve_api_key("elevenlabs", self._api_key, "ELEVENLABS_API_KEY")
        except MissingCredentialsError as e:
            return Failure(e)

        url = f"{self.base_url}/text-to-speech/{params['voice_id']}"
        try:
            response = requests.post(
                url,
                headers={"xi-api-key": key, "Accept": ELEVENLABS_ACCEPT},
                json={
                    "text": prompt,
                    "model_id": params["model_id"],
                    "voice_settings": {
                        "stability": params["stability"],
                        "similarity_boost": params["similarity_boost"],
                    },
                },
                timeout=self._timeout,
            )
        except requests.Timeout:
            return Failure(NetworkError("ElevenLabs request timed out", timed_out=True))
        except requests.RequestException as e:
            return Failure(NetworkError(f"ElevenLabs connection failed: {e}"))

        if response.status_code == 429:
            return Failure(RateLimitError(
                "ElevenLabs rate limit exceeded",
                retry_after=_retry_after(response.headers),
            ))
        if not response.ok:
            detail = response.text[:200] if response.text else ""
            return Failure(ProviderError(
                f"ElevenLabs API error: HTTP {response.status_code}. {detail}",
                code=str(response.status_code),
            ))
        if not response.content:
            return Failure(UnexpectedResponseFormatError("ElevenLabs response has no audio data"))
        logger.debug("ElevenLabs returned %d bytes", len(response.content))
        return Success(AudioPayload(audio=response.content, format=ELEVENLABS_FORMAT))
