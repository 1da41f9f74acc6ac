"""
Text requestors: OpenAI chat models and Anthropic Claude models.

Both share TextGenerationConfig but validate it against their own API
limits (OpenAI accepts temperature up to 2.0, Anthropic up to 1.0).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from ..errors import UnexpectedResponseFormatError
from ..formats import ProviderCategory
from ..output_types import OutputFileType
from ..providers import AnthropicGenerator, GenerateFn, OpenAIGenerator, TextPayload
from ..records import GeneratedTextRecord
from ..typed_data import GeneratedTextData
from .base import BaseRequestor, check_range

MAX_TOKENS_LIMIT = 4096
TEXT_ESTIMATED_MAX_SIZE = 1_000_000


@dataclass
class TextGenerationConfig:
    """Sampling parameters for text generation."""
    temperature: float = 0.7
    max_tokens: int = 2048
    top_p: float = 1.0
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0
    system_prompt: Optional[str] = None
    stop_sequences: Optional[list[str]] = None

    @classmethod
    def conservative(cls) -> "TextGenerationConfig":
        """Focused, deterministic output."""
        return cls(temperature=0.3, max_tokens=1024, top_p=0.9)

    @classmethod
    def creative(cls) -> "TextGenerationConfig":
        """Varied output with a push away from repetition."""
        return cls(temperature=1.2, max_tokens=4096, top_p=0.95, presence_penalty=0.6)

    def to_params(self) -> dict[str, Any]:
        return {
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "top_p": self.top_p,
            "frequency_penalty": self.frequency_penalty,
            "presence_penalty": self.presence_penalty,
            "system_prompt": self.system_prompt,
            "stop_sequences": list(self.stop_sequences) if self.stop_sequences else None,
        }


class _TextRequestor(BaseRequestor[GeneratedTextData, GeneratedTextRecord, TextGenerationConfig]):
    category = ProviderCategory.TEXT
    record_type = GeneratedTextRecord

    # per-token price in USD, set by subclasses
    _cost_per_token: float = 0.0

    def __init__(self, model_id: str, model_name: str, *, generator: Optional[GenerateFn] = None,
                 output_file_type: Optional[OutputFileType] = None):
        self.model = model_id
        super().__init__(
            requestor_id=f"{self.provider_id}.text.{model_id}",
            display_name=f"{self._provider_name} {model_name}",
            generator=generator,
            output_file_type=output_file_type,
            estimated_max_size=TEXT_ESTIMATED_MAX_SIZE,
        )

    @classmethod
    def default_output_file_type(cls) -> OutputFileType:
        return OutputFileType.plain_text()

    def default_configuration(self) -> TextGenerationConfig:
        return TextGenerationConfig()

    def build_parameters(self, configuration: TextGenerationConfig) -> dict[str, Any]:
        params = configuration.to_params()
        params["model"] = self.model
        return params

    def make_typed_data(
        self, prompt: str, configuration: TextGenerationConfig, payload: TextPayload
    ) -> GeneratedTextData:
        if payload.text is None:
            raise UnexpectedResponseFormatError("Response does not contain text")
        return GeneratedTextData(
            text=payload.text,
            model=self.model,
            token_count=payload.total_tokens,
            prompt_tokens=payload.prompt_tokens,
            completion_tokens=payload.completion_tokens,
        )

    def estimate_cost(self, data: GeneratedTextData) -> Optional[float]:
        if data.token_count is None:
            return None
        return data.token_count * self._cost_per_token


# -----------------------------------------------------------------------------
# OpenAI
# -----------------------------------------------------------------------------

class GPTModel(str, Enum):
    GPT4 = "gpt-4"
    GPT4_TURBO = "gpt-4-turbo-preview"
    GPT35_TURBO = "gpt-3.5-turbo"

    @property
    def display_name(self) -> str:
        return {
            "gpt-4": "GPT-4",
            "gpt-4-turbo-preview": "GPT-4 Turbo",
            "gpt-3.5-turbo": "GPT-3.5 Turbo",
        }[self.value]

    @property
    def cost_per_token(self) -> float:
        return {
            "gpt-4": 0.00003,
            "gpt-4-turbo-preview": 0.00001,
            "gpt-3.5-turbo": 0.000002,
        }[self.value]


class OpenAITextRequestor(_TextRequestor):
    provider_id = "openai"
    _provider_name = "OpenAI"

    def __init__(self, model: GPTModel = GPTModel.GPT4, *, generator: Optional[GenerateFn] = None,
                 output_file_type: Optional[OutputFileType] = None):
        model = GPTModel(model)
        self._cost_per_token = model.cost_per_token
        super().__init__(model.value, model.display_name,
                         generator=generator, output_file_type=output_file_type)

    def default_generator(self) -> GenerateFn:
        return OpenAIGenerator().text

    def validate_configuration(self, configuration: TextGenerationConfig) -> None:
        check_range("temperature", configuration.temperature, 0.0, 2.0)
        check_range("max_tokens", configuration.max_tokens, 1, MAX_TOKENS_LIMIT)
        check_range("top_p", configuration.top_p, 0.0, 1.0)
        check_range("frequency_penalty", configuration.frequency_penalty, -2.0, 2.0)
        check_range("presence_penalty", configuration.presence_penalty, -2.0, 2.0)


# -----------------------------------------------------------------------------
# Anthropic
# -----------------------------------------------------------------------------

class ClaudeModel(str, Enum):
    OPUS = "claude-3-opus-20240229"
    SONNET = "claude-3-sonnet-20240229"
    HAIKU = "claude-3-haiku-20240307"

    @property
    def display_name(self) -> str:
        return {
            "claude-3-opus-20240229": "Claude 3 Opus",
            "claude-3-sonnet-20240229": "Claude 3 Sonnet",
            "claude-3-haiku-20240307": "Claude 3 Haiku",
        }[self.value]

    @property
    def cost_per_token(self) -> float:
        return {
            "claude-3-opus-20240229": 0.000015,
            "claude-3-sonnet-20240229": 0.000003,
            "claude-3-haiku-20240307": 0.00000025,
        }[self.value]


class AnthropicTextRequestor(_TextRequestor):
    provider_id = "anthropic"
    _provider_name = "Anthropic"

    def __init__(self, model: ClaudeModel = ClaudeModel.SONNET, *, generator: Optional[GenerateFn] = None,
                 output_file_type: Optional[OutputFileType] = None):
        model = ClaudeModel(model)
        self._cost_per_token = model.cost_per_token
        super().__init__(model.value, model.display_name,
                         generator=generator, output_file_type=output_file_type)

    def default_generator(self) -> GenerateFn:
        return AnthropicGenerator().text

    def validate_configuration(self, configuration: TextGenerationConfig) -> None:
        # The messages API has no frequency/presence penalties
        check_range("temperature", configuration.temperature, 0.0, 1.0)
        check_range("max_tokens", configuration.max_tokens, 1, MAX_TOKENS_LIMIT)
        check_range("top_p", configuration.top_p, 0.0, 1.0)
