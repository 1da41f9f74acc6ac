"""
Audio requestor: ElevenLabs text-to-speech.
"""

from dataclasses import dataclass
from typing import Any, Optional

from ..errors import ConfigurationError, UnexpectedResponseFormatError
from ..formats import ProviderCategory
from ..output_types import OutputFileType
from ..providers import AudioPayload, ElevenLabsGenerator, GenerateFn
from ..records import GeneratedAudioRecord
from ..storage import TypedDataFileReference
from ..typed_data import AudioFormat, GeneratedAudioData
from .base import BaseRequestor, check_range

DEFAULT_VOICE_ID = "21m00Tcm4TlvDq8ikWAM"
DEFAULT_VOICE_NAME = "Rachel"
DEFAULT_MODEL_ID = "eleven_monolingual_v1"

# USD per character of input text
COST_PER_CHARACTER = 0.0003

AUDIO_ESTIMATED_MAX_SIZE = 10_000_000

# The text-to-speech endpoint is asked for audio/mpeg
SUPPORTED_OUTPUT_FORMATS = (AudioFormat.MP3,)


@dataclass
class AudioGenerationConfig:
    """Voice and delivery settings for speech synthesis."""
    voice_id: str = DEFAULT_VOICE_ID
    voice_name: str = DEFAULT_VOICE_NAME
    model_id: str = DEFAULT_MODEL_ID
    stability: float = 0.5
    similarity_boost: float = 0.75
    output_format: AudioFormat = AudioFormat.MP3

    @classmethod
    def stable(cls, voice_id: str = DEFAULT_VOICE_ID, voice_name: str = DEFAULT_VOICE_NAME) -> "AudioGenerationConfig":
        """Consistent, even delivery."""
        return cls(voice_id=voice_id, voice_name=voice_name, stability=0.75, similarity_boost=0.5)

    @classmethod
    def expressive(cls, voice_id: str = DEFAULT_VOICE_ID, voice_name: str = DEFAULT_VOICE_NAME) -> "AudioGenerationConfig":
        """More variation, closer to the source voice."""
        return cls(voice_id=voice_id, voice_name=voice_name, stability=0.25, similarity_boost=0.9)


def check_output_format(value) -> AudioFormat:
    """Return `value` as an AudioFormat the endpoint can deliver, or raise ConfigurationError."""
    try:
        audio_format = AudioFormat(value)
    except ValueError:
        audio_format = None
    if audio_format not in SUPPORTED_OUTPUT_FORMATS:
        allowed = tuple(f.value for f in SUPPORTED_OUTPUT_FORMATS)
        raise ConfigurationError(
            f"output_format must be one of {', '.join(allowed)}, got {getattr(value, 'value', value)}",
            field="output_format",
            valid_range=allowed,
        )
    return audio_format


class ElevenLabsAudioRequestor(BaseRequestor[GeneratedAudioData, GeneratedAudioRecord, AudioGenerationConfig]):
    provider_id = "elevenlabs"
    category = ProviderCategory.AUDIO
    record_type = GeneratedAudioRecord

    def __init__(self, *, generator: Optional[GenerateFn] = None,
                 output_file_type: Optional[OutputFileType] = None):
        super().__init__(
            requestor_id="elevenlabs.audio.tts",
            display_name="ElevenLabs Text-to-Speech",
            generator=generator,
            output_file_type=output_file_type,
            estimated_max_size=AUDIO_ESTIMATED_MAX_SIZE,
        )

    @classmethod
    def default_output_file_type(cls) -> OutputFileType:
        return OutputFileType.mp3()

    def default_generator(self) -> GenerateFn:
        return ElevenLabsGenerator().speech

    def default_configuration(self) -> AudioGenerationConfig:
        return AudioGenerationConfig()

    def validate_configuration(self, configuration: AudioGenerationConfig) -> None:
        if not configuration.voice_id:
            raise ConfigurationError("voice_id cannot be empty", field="voice_id")
        check_range("stability", configuration.stability, 0.0, 1.0)
        check_range("similarity_boost", configuration.similarity_boost, 0.0, 1.0)
        if not configuration.model_id:
            raise ConfigurationError("model_id cannot be empty", field="model_id")
        check_output_format(configuration.output_format)

    def build_parameters(self, configuration: AudioGenerationConfig) -> dict[str, Any]:
        return {
            "voice_id": configuration.voice_id,
            "model_id": configuration.model_id,
            "stability": configuration.stability,
            "similarity_boost": configuration.similarity_boost,
            "output_format": check_output_format(configuration.output_format).value,
        }

    def make_typed_data(
        self, prompt: str, configuration: AudioGenerationConfig, payload: AudioPayload
    ) -> GeneratedAudioData:
        if not payload.audio:
            raise UnexpectedResponseFormatError("Response does not contain audio data")
        try:
            audio_format = AudioFormat(payload.format)
        except ValueError:
            raise UnexpectedResponseFormatError(f"Unknown audio format: {payload.format}")
        return GeneratedAudioData(
            audio_data=payload.audio,
            format=audio_format,
            voice_id=configuration.voice_id,
            voice_name=configuration.voice_name,
            model=configuration.model_id,
        )

    def estimate_cost(self, data: GeneratedAudioData) -> Optional[float]:
        # Billing is per input character, which the typed data doesn't carry;
        # approximate from the audio size (about 10 characters per KB of mp3).
        if data.audio_data is None:
            return None
        return len(data.audio_data) / 1000.0 * 10.0 * COST_PER_CHARACTER

    def make_record(
        self,
        data: GeneratedAudioData,
        file_reference: Optional[TypedDataFileReference],
        request_id: str,
        *,
        prompt: Optional[str] = None,
    ) -> GeneratedAudioRecord:
        record = super().make_record(data, file_reference, request_id, prompt=prompt)
        if prompt:
            record.estimated_cost = len(prompt) * COST_PER_CHARACTER
        return record
