"""
Requestors and their discovery.

Each provider exposes its requestor list; `build_registry()` collects them
in declaration order, applying any threshold and generator settings from a
store config.
"""

import logging
from typing import Optional

from ..config import StoreConfig
from ..output_types import OutputFileType
from ..providers import AnthropicGenerator, ElevenLabsGenerator, OpenAIGenerator
from .audio import AudioGenerationConfig, ElevenLabsAudioRequestor
from .base import (
    BaseRequestor,
    Requestor,
    RequestorRegistry,
    RequestOutput,
    check_range,
)
from .embedding import EmbeddingConfig, EmbeddingModel, OpenAIEmbeddingRequestor
from .image import (
    DalleModel,
    ImageGenerationConfig,
    ImageQuality,
    ImageSize,
    ImageStyle,
    OpenAIImageRequestor,
)
from .text import (
    AnthropicTextRequestor,
    ClaudeModel,
    GPTModel,
    OpenAITextRequestor,
    TextGenerationConfig,
)

logger = logging.getLogger(__name__)

__all__ = [
    "Requestor",
    "BaseRequestor",
    "RequestOutput",
    "RequestorRegistry",
    "check_range",
    "TextGenerationConfig",
    "GPTModel",
    "ClaudeModel",
    "OpenAITextRequestor",
    "AnthropicTextRequestor",
    "AudioGenerationConfig",
    "ElevenLabsAudioRequestor",
    "ImageGenerationConfig",
    "ImageSize",
    "ImageQuality",
    "ImageStyle",
    "DalleModel",
    "OpenAIImageRequestor",
    "EmbeddingConfig",
    "EmbeddingModel",
    "OpenAIEmbeddingRequestor",
    "openai_requestors",
    "anthropic_requestors",
    "elevenlabs_requestors",
    "build_registry",
    "get_registry",
]


def _output_type(requestor_class, config: Optional[StoreConfig]) -> Optional[OutputFileType]:
    if config is None:
        return None
    return config.apply_thresholds(requestor_class.default_output_file_type())


def openai_requestors(config: Optional[StoreConfig] = None) -> list[BaseRequestor]:
    """Text, image and embedding requestors backed by one OpenAI generator."""
    generator = OpenAIGenerator(**(config.provider_params("openai") if config else {}))
    requestors: list[BaseRequestor] = []
    for model in GPTModel:
        requestors.append(OpenAITextRequestor(
            model, generator=generator.text,
            output_file_type=_output_type(OpenAITextRequestor, config),
        ))
    for model in DalleModel:
        requestors.append(OpenAIImageRequestor(
            model, generator=generator.image,
            output_file_type=_output_type(OpenAIImageRequestor, config),
        ))
    for model in EmbeddingModel:
        requestors.append(OpenAIEmbeddingRequestor(
            model, generator=generator.embedding,
            output_file_type=_output_type(OpenAIEmbeddingRequestor, config),
        ))
    return requestors


def anthropic_requestors(config: Optional[StoreConfig] = None) -> list[BaseRequestor]:
    generator = AnthropicGenerator(**(config.provider_params("anthropic") if config else {}))
    return [
        AnthropicTextRequestor(
            model, generator=generator.text,
            output_file_type=_output_type(AnthropicTextRequestor, config),
        )
        for model in ClaudeModel
    ]


def elevenlabs_requestors(config: Optional[StoreConfig] = None) -> list[BaseRequestor]:
    generator = ElevenLabsGenerator(**(config.provider_params("elevenlabs") if config else {}))
    return [
        ElevenLabsAudioRequestor(
            generator=generator.speech,
            output_file_type=_output_type(ElevenLabsAudioRequestor, config),
        )
    ]


def build_registry(config: Optional[StoreConfig] = None) -> RequestorRegistry:
    """Registry of every built-in requestor."""
    registry = RequestorRegistry()
    registry.register_all(openai_requestors(config))
    registry.register_all(anthropic_requestors(config))
    registry.register_all(elevenlabs_requestors(config))
    logger.debug("Registered %d requestors", len(registry))
    return registry


# Global registry instance, built on first use
_registry: Optional[RequestorRegistry] = None


def get_registry() -> RequestorRegistry:
    """Get the global requestor registry with built-in defaults."""
    global _registry
    if _registry is None:
        _registry = build_registry()
    return _registry
