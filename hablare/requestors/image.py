"""
Image requestors: OpenAI DALL-E 2 and DALL-E 3.

The two models accept different size/quality combinations; validation
rejects anything the model would refuse rather than adjusting it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from ..errors import ConfigurationError, UnexpectedResponseFormatError
from ..formats import ProviderCategory
from ..output_types import OutputFileType
from ..providers import GenerateFn, ImagePayload, OpenAIGenerator
from ..records import GeneratedImageRecord
from ..typed_data import GeneratedImageData, ImageFormat
from .base import BaseRequestor

IMAGE_ESTIMATED_MAX_SIZE = 10_000_000


class ImageSize(str, Enum):
    SQUARE_256 = "256x256"
    SQUARE_512 = "512x512"
    SQUARE_1024 = "1024x1024"
    WIDE_16X9 = "1792x1024"
    PORTRAIT_9X16 = "1024x1792"

    @property
    def width(self) -> int:
        return int(self.value.split("x")[0])

    @property
    def height(self) -> int:
        return int(self.value.split("x")[1])

    @property
    def is_square(self) -> bool:
        return self.width == self.height

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    @property
    def aspect_ratio_description(self) -> str:
        if self.is_square:
            return "1:1 (Square)"
        if self is ImageSize.WIDE_16X9:
            return "16:9 (Widescreen)"
        return "9:16 (Portrait)"


class ImageQuality(str, Enum):
    STANDARD = "standard"
    HD = "hd"


class ImageStyle(str, Enum):
    VIVID = "vivid"
    NATURAL = "natural"


@dataclass
class ImageGenerationConfig:
    """
    Size, quality and style for one image.

    `number_of_images` must be 1: a request returns a single result.
    """
    size: ImageSize = ImageSize.SQUARE_1024
    quality: ImageQuality = ImageQuality.STANDARD
    style: ImageStyle = ImageStyle.VIVID
    number_of_images: int = 1

    @classmethod
    def hd(cls) -> "ImageGenerationConfig":
        return cls(quality=ImageQuality.HD)

    @classmethod
    def natural(cls) -> "ImageGenerationConfig":
        return cls(style=ImageStyle.NATURAL)

    @classmethod
    def widescreen(cls) -> "ImageGenerationConfig":
        return cls(size=ImageSize.WIDE_16X9, quality=ImageQuality.HD)

    @classmethod
    def portrait(cls) -> "ImageGenerationConfig":
        return cls(size=ImageSize.PORTRAIT_9X16, quality=ImageQuality.HD)

    @classmethod
    def storyboard(cls) -> "ImageGenerationConfig":
        """Widescreen frames with a natural look."""
        return cls(size=ImageSize.WIDE_16X9, quality=ImageQuality.STANDARD, style=ImageStyle.NATURAL)


class DalleModel(str, Enum):
    DALLE2 = "dall-e-2"
    DALLE3 = "dall-e-3"

    @property
    def display_name(self) -> str:
        return "DALL-E 2" if self is DalleModel.DALLE2 else "DALL-E 3"

    @property
    def supported_sizes(self) -> tuple[ImageSize, ...]:
        if self is DalleModel.DALLE2:
            return (ImageSize.SQUARE_256, ImageSize.SQUARE_512, ImageSize.SQUARE_1024)
        return (ImageSize.SQUARE_1024, ImageSize.WIDE_16X9, ImageSize.PORTRAIT_9X16)

    def cost(self, size: ImageSize, quality: ImageQuality) -> float:
        """Price in USD of one image."""
        if self is DalleModel.DALLE3:
            if quality is ImageQuality.HD:
                return 0.08 if size.is_square else 0.12
            return 0.04
        return {
            ImageSize.SQUARE_256: 0.016,
            ImageSize.SQUARE_512: 0.018,
        }.get(size, 0.02)


class OpenAIImageRequestor(BaseRequestor[GeneratedImageData, GeneratedImageRecord, ImageGenerationConfig]):
    provider_id = "openai"
    category = ProviderCategory.IMAGE
    record_type = GeneratedImageRecord

    def __init__(self, model: DalleModel = DalleModel.DALLE3, *, generator: Optional[GenerateFn] = None,
                 output_file_type: Optional[OutputFileType] = None):
        self.model = DalleModel(model)
        super().__init__(
            requestor_id=f"openai.image.{self.model.value}",
            display_name=f"OpenAI {self.model.display_name}",
            generator=generator,
            output_file_type=output_file_type,
            estimated_max_size=IMAGE_ESTIMATED_MAX_SIZE,
        )

    @classmethod
    def default_output_file_type(cls) -> OutputFileType:
        return OutputFileType.png()

    def default_generator(self) -> GenerateFn:
        return OpenAIGenerator().image

    def default_configuration(self) -> ImageGenerationConfig:
        return ImageGenerationConfig()

    def validate_configuration(self, configuration: ImageGenerationConfig) -> None:
        try:
            size = ImageSize(configuration.size)
            quality = ImageQuality(configuration.quality)
            ImageStyle(configuration.style)
        except ValueError as e:
            raise ConfigurationError(f"Invalid image configuration: {e}") from e
        if configuration.number_of_images != 1:
            raise ConfigurationError(
                f"number_of_images must be between 1 and 1, got {configuration.number_of_images}",
                field="number_of_images",
                valid_range=(1, 1),
            )
        if size not in self.model.supported_sizes:
            allowed = ", ".join(s.value for s in self.model.supported_sizes)
            raise ConfigurationError(
                f"size {size.value} is not supported by {self.model.display_name}; "
                f"supported sizes: {allowed}",
                field="size",
                valid_range=tuple(s.value for s in self.model.supported_sizes),
            )
        if self.model is DalleModel.DALLE2 and quality is ImageQuality.HD:
            raise ConfigurationError(
                "quality hd is only supported by DALL-E 3", field="quality"
            )

    def build_parameters(self, configuration: ImageGenerationConfig) -> dict[str, Any]:
        return {
            "model": self.model.value,
            "size": ImageSize(configuration.size).value,
            "quality": ImageQuality(configuration.quality).value,
            "style": ImageStyle(configuration.style).value,
            "n": configuration.number_of_images,
        }

    def make_typed_data(
        self, prompt: str, configuration: ImageGenerationConfig, payload: ImagePayload
    ) -> GeneratedImageData:
        if not payload.image:
            raise UnexpectedResponseFormatError("Response does not contain image data")
        size = ImageSize(configuration.size)
        return GeneratedImageData(
            image_data=payload.image,
            format=ImageFormat.PNG,
            width=size.width,
            height=size.height,
            model=self.model.value,
            revised_prompt=payload.revised_prompt,
        )

    def estimate_cost(self, data: GeneratedImageData) -> Optional[float]:
        # Quality is not carried on the result; priced as standard
        try:
            size = ImageSize(f"{data.width}x{data.height}")
        except ValueError:
            return None
        return self.model.cost(size, ImageQuality.STANDARD)
