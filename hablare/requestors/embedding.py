"""
Embedding requestors: OpenAI text-embedding models.

Vectors are kept inline as packed float32 unless they are large enough to
cross the output threshold, in which case the full binary vector layout is
written to `data.bin`.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from ..errors import ConfigurationError, UnexpectedResponseFormatError
from ..formats import ProviderCategory
from ..output_types import DEFAULT_MEDIA_THRESHOLD, OutputFileType
from ..providers import EmbeddingPayload, GenerateFn, OpenAIGenerator
from ..records import GeneratedEmbeddingRecord
from ..typed_data import GeneratedEmbeddingData
from .base import BaseRequestor, check_range

EMBEDDING_ESTIMATED_MAX_SIZE = 1_000_000
ENCODING_FORMATS = ("float", "base64")


class EmbeddingModel(str, Enum):
    SMALL = "text-embedding-3-small"
    LARGE = "text-embedding-3-large"
    ADA = "text-embedding-ada-002"

    @property
    def display_name(self) -> str:
        return {
            "text-embedding-3-small": "Embedding 3 Small",
            "text-embedding-3-large": "Embedding 3 Large",
            "text-embedding-ada-002": "Ada 002",
        }[self.value]

    @property
    def default_dimensions(self) -> int:
        return 3072 if self is EmbeddingModel.LARGE else 1536

    @property
    def minimum_dimensions(self) -> Optional[int]:
        return {
            "text-embedding-3-small": 512,
            "text-embedding-3-large": 256,
            "text-embedding-ada-002": None,
        }[self.value]

    @property
    def supports_custom_dimensions(self) -> bool:
        return self.minimum_dimensions is not None

    @property
    def cost_per_1m_tokens(self) -> float:
        return {
            "text-embedding-3-small": 0.02,
            "text-embedding-3-large": 0.13,
            "text-embedding-ada-002": 0.10,
        }[self.value]


@dataclass
class EmbeddingConfig:
    """
    Embedding request settings.

    `dimensions` of None requests the model's default size.
    """
    model: EmbeddingModel = EmbeddingModel.SMALL
    dimensions: Optional[int] = None
    encoding_format: str = "float"
    user: Optional[str] = None

    @classmethod
    def high_quality(cls) -> "EmbeddingConfig":
        return cls(model=EmbeddingModel.LARGE)

    @classmethod
    def performance(cls) -> "EmbeddingConfig":
        """Small model, reduced to 512 dimensions."""
        return cls(model=EmbeddingModel.SMALL, dimensions=512)

    @classmethod
    def legacy(cls) -> "EmbeddingConfig":
        return cls(model=EmbeddingModel.ADA)


class OpenAIEmbeddingRequestor(BaseRequestor[GeneratedEmbeddingData, GeneratedEmbeddingRecord, EmbeddingConfig]):
    provider_id = "openai"
    category = ProviderCategory.EMBEDDING
    record_type = GeneratedEmbeddingRecord

    def __init__(self, model: EmbeddingModel = EmbeddingModel.SMALL, *, generator: Optional[GenerateFn] = None,
                 output_file_type: Optional[OutputFileType] = None):
        self.model = EmbeddingModel(model)
        super().__init__(
            requestor_id=f"openai.embedding.{self.model.value}",
            display_name=f"OpenAI {self.model.display_name}",
            generator=generator,
            output_file_type=output_file_type,
            estimated_max_size=EMBEDDING_ESTIMATED_MAX_SIZE,
        )

    @classmethod
    def default_output_file_type(cls) -> OutputFileType:
        return OutputFileType.binary(ProviderCategory.EMBEDDING, "bin", DEFAULT_MEDIA_THRESHOLD)

    def default_generator(self) -> GenerateFn:
        return OpenAIGenerator().embedding

    def default_configuration(self) -> EmbeddingConfig:
        return EmbeddingConfig(model=self.model)

    def validate_configuration(self, configuration: EmbeddingConfig) -> None:
        try:
            model = EmbeddingModel(configuration.model)
        except ValueError as e:
            raise ConfigurationError(f"Unknown embedding model: {configuration.model}", field="model") from e
        if model is not self.model:
            raise ConfigurationError(
                f"model {model.value} does not match requestor model {self.model.value}",
                field="model",
            )
        if configuration.dimensions is not None:
            if not model.supports_custom_dimensions:
                raise ConfigurationError(
                    f"{model.value} does not support custom dimensions",
                    field="dimensions",
                )
            check_range(
                "dimensions",
                configuration.dimensions,
                model.minimum_dimensions,
                model.default_dimensions,
                context=f"for {model.value}",
            )
        if configuration.encoding_format not in ENCODING_FORMATS:
            raise ConfigurationError(
                f"encoding_format must be one of {', '.join(ENCODING_FORMATS)}, "
                f"got {configuration.encoding_format}",
                field="encoding_format",
            )

    def build_parameters(self, configuration: EmbeddingConfig) -> dict[str, Any]:
        return {
            "model": self.model.value,
            "dimensions": configuration.dimensions,
            "encoding_format": configuration.encoding_format,
            "user": configuration.user,
        }

    def make_typed_data(
        self, prompt: str, configuration: EmbeddingConfig, payload: EmbeddingPayload
    ) -> GeneratedEmbeddingData:
        if not payload.vector:
            raise UnexpectedResponseFormatError("Response does not contain an embedding vector")
        expected = configuration.dimensions or self.model.default_dimensions
        if len(payload.vector) != expected:
            raise UnexpectedResponseFormatError(
                f"Embedding has {len(payload.vector)} dimensions, expected {expected}"
            )
        return GeneratedEmbeddingData(
            embedding=list(payload.vector),
            dimensions=len(payload.vector),
            model=self.model.value,
            input_text=prompt,
            token_count=payload.token_count,
        )

    def estimate_cost(self, data: GeneratedEmbeddingData) -> Optional[float]:
        tokens = data.token_count
        if tokens is None:
            # about 4 characters per token
            tokens = len(data.input_text or "") // 4
        return tokens / 1_000_000 * self.model.cost_per_1m_tokens
