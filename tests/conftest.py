"""
Shared pytest fixtures for hablare tests.

Provides mock generators so no test talks to a real provider.
"""

import hashlib
from pathlib import Path
from typing import Any, Optional

import pytest

from hablare.providers import AudioPayload, EmbeddingPayload, ImagePayload, TextPayload
from hablare.result import Failure, Success
from hablare.storage import BundleStorage

PNG_HEADER = b"\x89PNG\r\n\x1a\n"
MP3_HEADER = b"ID3\x03\x00"

_CREDENTIAL_VARS = (
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "ELEVENLABS_API_KEY",
    "HABLARE_OPENAI_API_KEY",
    "HABLARE_ANTHROPIC_API_KEY",
    "HABLARE_ELEVENLABS_API_KEY",
)


class MockGenerator:
    """
    Deterministic stand-in for a provider endpoint.

    Records every (prompt, params) call. Returns `failure` if one is set,
    otherwise whatever `make_payload` builds.
    """

    def __init__(self, make_payload, failure: Optional[Exception] = None):
        self._make_payload = make_payload
        self.failure = failure
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def __call__(self, prompt: str, params: dict[str, Any]):
        self.calls.append((prompt, params))
        if self.failure is not None:
            return Failure(self.failure)
        return Success(self._make_payload(prompt, params))


def text_generator(text: Optional[str] = None) -> MockGenerator:
    """Echoes the prompt back unless a fixed text is given."""
    def make(prompt, params):
        body = text if text is not None else f"Response to: {prompt}"
        return TextPayload(
            text=body,
            model=params.get("model"),
            prompt_tokens=len(prompt.split()),
            completion_tokens=len(body.split()),
            total_tokens=len(prompt.split()) + len(body.split()),
        )
    return MockGenerator(make)


def image_generator(size: int = 1_000) -> MockGenerator:
    def make(prompt, params):
        body = PNG_HEADER + bytes(size - len(PNG_HEADER))
        return ImagePayload(image=body, revised_prompt=f"revised: {prompt}")
    return MockGenerator(make)


def audio_generator(size: int = 2_000) -> MockGenerator:
    def make(prompt, params):
        body = MP3_HEADER + bytes(size - len(MP3_HEADER))
        return AudioPayload(audio=body, format=params.get("output_format", "mp3"))
    return MockGenerator(make)


def hashed_vector(text: str, dimensions: int) -> list[float]:
    """Deterministic vector from a text hash; values are exact in float32."""
    digest = hashlib.md5(text.encode()).digest()
    return [digest[i % len(digest)] / 256.0 for i in range(dimensions)]


def embedding_generator() -> MockGenerator:
    """Returns vectors of the requested size, or the model's default size."""
    def make(prompt, params):
        dimensions = params.get("dimensions")
        if dimensions is None:
            dimensions = 3072 if params["model"] == "text-embedding-3-large" else 1536
        return EmbeddingPayload(
            vector=hashed_vector(prompt, dimensions),
            token_count=len(prompt.split()),
            model=params["model"],
        )
    return MockGenerator(make)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep tests away from real credentials and the user's store."""
    for var in _CREDENTIAL_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("HABLARE_STORE_PATH", str(tmp_path / "default-store"))


@pytest.fixture
def bundle_root(tmp_path) -> Path:
    root = tmp_path / "bundle"
    root.mkdir()
    return root


@pytest.fixture
def bundle(bundle_root) -> BundleStorage:
    return BundleStorage(bundle_root, bundle_identifier="test-bundle")


@pytest.fixture
def area(bundle):
    """A fresh storage area inside the test bundle."""
    return bundle.create_storage_area("req-1")


@pytest.fixture
def mock_text_generator():
    return text_generator()


@pytest.fixture
def mock_image_generator():
    return image_generator()


@pytest.fixture
def mock_audio_generator():
    return audio_generator()


@pytest.fixture
def mock_embedding_generator():
    return embedding_generator()
