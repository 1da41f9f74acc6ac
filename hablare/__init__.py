"""
hablare: provider-agnostic content generation.

Requestors turn a prompt into text, audio, images or embeddings; results
are kept inline or written to per-request storage areas and persisted as
records.

Quick start:
    from hablare import get_registry, StorageAreaReference

    requestor = get_registry().require("openai.text.gpt-4")
    area = StorageAreaReference.temporary()
    result = requestor.request("Write a haiku", requestor.default_configuration(), area)
"""

__version__ = "0.1.0"

from .errors import (
    ConfigurationError,
    HablareError,
    MissingContentError,
    PersistenceError,
    ServiceError,
    TypedDataError,
)
from .formats import ProviderCategory, SerializationFormat
from .output_types import OutputFileType
from .records import (
    GeneratedAudioRecord,
    GeneratedEmbeddingRecord,
    GeneratedImageRecord,
    GeneratedRecord,
    GeneratedTextRecord,
)
from .requestors import Requestor, RequestorRegistry, RequestOutput, build_registry, get_registry
from .result import Failure, Result, Success
from .storage import BundleStorage, StorageAreaReference, TypedDataFileReference

__all__ = [
    "__version__",
    "HablareError",
    "ServiceError",
    "ConfigurationError",
    "PersistenceError",
    "TypedDataError",
    "MissingContentError",
    "ProviderCategory",
    "SerializationFormat",
    "OutputFileType",
    "GeneratedRecord",
    "GeneratedTextRecord",
    "GeneratedAudioRecord",
    "GeneratedImageRecord",
    "GeneratedEmbeddingRecord",
    "Requestor",
    "RequestorRegistry",
    "RequestOutput",
    "build_registry",
    "get_registry",
    "Success",
    "Failure",
    "Result",
    "StorageAreaReference",
    "BundleStorage",
    "TypedDataFileReference",
]
