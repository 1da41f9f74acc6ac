"""
The requestor contract and the registry that indexes requestors.

A requestor is one (provider, content type) generation capability. It is
parameterized by three shapes: the transient typed data it returns, the
record that typed data becomes, and its configuration. Using Protocol for
structural subtyping - BaseRequestor is a convenience, not a requirement.
"""

import logging
from dataclasses import dataclass
from typing import (
    Any,
    ClassVar,
    Generic,
    Iterable,
    Iterator,
    Optional,
    Protocol,
    TypeVar,
    runtime_checkable,
)

from ..errors import (
    ConfigurationError,
    PersistenceError,
    TypedDataError,
    UnexpectedResponseFormatError,
)
from ..formats import ProviderCategory
from ..output_types import OutputFileType
from ..providers import GenerateFn
from ..records import GeneratedRecord
from ..result import Failure, Result, Success
from ..storage import DEFAULT_DATA_BASENAME, StorageAreaReference, TypedDataFileReference
from ..typed_data import TypedData

logger = logging.getLogger(__name__)

TD = TypeVar("TD", bound=TypedData)
R = TypeVar("R", bound=GeneratedRecord)
C = TypeVar("C")


@dataclass
class RequestOutput(Generic[TD]):
    """
    What a successful request hands back.

    When the payload went to file, `data` has its content field set to
    None and `file_reference` points at the written file.
    """
    data: TD
    file_reference: Optional[TypedDataFileReference] = None

    @property
    def is_file_stored(self) -> bool:
        return self.file_reference is not None


# -----------------------------------------------------------------------------
# Protocol
# -----------------------------------------------------------------------------

@runtime_checkable
class Requestor(Protocol[TD, R, C]):
    """
    One generation capability.

    Identity (`requestor_id` is `{provider_id}.{category}.{variant}`):
        requestor_id, display_name, provider_id, category,
        output_file_type, schema, estimated_max_size

    Category and output file type never change after construction.
    """

    @property
    def requestor_id(self) -> str: ...

    @property
    def display_name(self) -> str: ...

    @property
    def provider_id(self) -> str: ...

    @property
    def category(self) -> ProviderCategory: ...

    @property
    def output_file_type(self) -> OutputFileType: ...

    @property
    def schema(self) -> Optional[str]: ...

    @property
    def estimated_max_size(self) -> Optional[int]: ...

    def default_configuration(self) -> C:
        """A fresh default configuration; pure and deterministic."""
        ...

    def validate_configuration(self, configuration: C) -> None:
        """
        Check every bounded field.

        Raises:
            ConfigurationError: naming the offending field and its valid
                range; values are never clamped
        """
        ...

    def request(
        self,
        prompt: str,
        configuration: C,
        storage_area: StorageAreaReference,
    ) -> Result:
        """
        Generate content. The only blocking call.

        Returns Success(RequestOutput) or Failure(ServiceError); expected
        failures are never raised.
        """
        ...

    def make_record(
        self,
        data: TD,
        file_reference: Optional[TypedDataFileReference],
        request_id: str,
    ) -> R:
        """Convert a result into its persistable record (pure)."""
        ...


# -----------------------------------------------------------------------------
# Shared implementation
# -----------------------------------------------------------------------------

class BaseRequestor(Generic[TD, R, C]):
    """
    Shared request flow: validate, call the generator, build typed data,
    then place the payload inline or in the storage area.

    Subclasses set `provider_id`, `category` and `record_type`, and
    implement `default_configuration`, `validate_configuration`,
    `build_parameters`, `make_typed_data` and `default_output_file_type`.
    """

    provider_id: ClassVar[str]
    category: ClassVar[ProviderCategory]
    record_type: ClassVar[type]
    schema: Optional[str] = None

    def __init__(
        self,
        *,
        requestor_id: str,
        display_name: str,
        generator: Optional[GenerateFn] = None,
        output_file_type: Optional[OutputFileType] = None,
        estimated_max_size: Optional[int] = None,
    ):
        output_file_type = output_file_type or self.default_output_file_type()
        if output_file_type.category is not self.category:
            raise ValueError(
                f"Output file type category {output_file_type.category.value} "
                f"does not match requestor category {self.category.value}"
            )
        self._requestor_id = requestor_id
        self._display_name = display_name
        self._generator = generator
        self._output_file_type = output_file_type
        self._estimated_max_size = estimated_max_size

    @property
    def requestor_id(self) -> str:
        return self._requestor_id

    @property
    def display_name(self) -> str:
        return self._display_name

    @property
    def output_file_type(self) -> OutputFileType:
        return self._output_file_type

    @property
    def estimated_max_size(self) -> Optional[int]:
        return self._estimated_max_size

    # Hooks

    @classmethod
    def default_output_file_type(cls) -> OutputFileType:
        raise NotImplementedError

    def default_configuration(self) -> C:
        raise NotImplementedError

    def validate_configuration(self, configuration: C) -> None:
        raise NotImplementedError

    def build_parameters(self, configuration: C) -> dict[str, Any]:
        """Parameters passed to the generator alongside the prompt."""
        raise NotImplementedError

    def make_typed_data(self, prompt: str, configuration: C, payload: Any) -> TD:
        """
        Build typed data from a generator payload.

        Raises:
            UnexpectedResponseFormatError: the payload lacks required content
        """
        raise NotImplementedError

    def default_generator(self) -> GenerateFn:
        raise NotImplementedError

    def estimate_cost(self, data: TD) -> Optional[float]:
        return None

    def validate_prompt(self, prompt: str) -> None:
        if not prompt or not prompt.strip():
            raise ConfigurationError("Prompt cannot be empty", field="prompt")

    # Request flow

    def request(
        self,
        prompt: str,
        configuration: C,
        storage_area: StorageAreaReference,
    ) -> Result:
        try:
            self.validate_configuration(configuration)
            self.validate_prompt(prompt)
        except ConfigurationError as e:
            logger.debug("%s rejected configuration: %s", self.requestor_id, e)
            return Failure(e)

        if self._generator is None:
            self._generator = self.default_generator()

        logger.info("Requesting %s for %s", self.requestor_id, storage_area.request_id)
        result = self._generator(prompt, self.build_parameters(configuration))
        if isinstance(result, Failure):
            logger.warning("%s failed: %s", self.requestor_id, result.error)
            return result

        try:
            data = self.make_typed_data(prompt, configuration, result.value)
        except UnexpectedResponseFormatError as e:
            logger.warning("%s returned an unusable payload: %s", self.requestor_id, e)
            return Failure(e)

        return self.place(data, storage_area)

    def place(self, data: TD, storage_area: StorageAreaReference) -> Result:
        """
        Keep `data` inline or write its payload into the storage area.

        The output file type decides from the payload size. A failed write
        is returned as PersistenceError, never dropped.
        """
        size = data.data_size
        if not data.has_content() or not self.output_file_type.should_store_as_file(size):
            return Success(RequestOutput(data))

        file_name = f"{DEFAULT_DATA_BASENAME}.{self.output_file_type.file_extension}"
        try:
            reference = storage_area.write(
                file_name,
                data.file_bytes(),
                self.output_file_type.mime_type,
                include_checksum=True,
            )
        except TypedDataError as e:
            error = PersistenceError(f"Failed to store {self.requestor_id} output: {e}")
            error.__cause__ = e
            logger.error("%s", error)
            return Failure(error)

        logger.info("Stored %d bytes for %s at %s", size, self.requestor_id, reference.relative_path)
        return Success(RequestOutput(data.without_content(), reference))

    def make_record(
        self,
        data: TD,
        file_reference: Optional[TypedDataFileReference],
        request_id: str,
        *,
        prompt: Optional[str] = None,
    ) -> R:
        kwargs: dict[str, Any] = {}
        if prompt is not None:
            kwargs["prompt"] = prompt
        return self.record_type.from_data(
            data,
            id=request_id,
            provider_id=self.provider_id,
            requestor_id=self.requestor_id,
            file_reference=file_reference,
            estimated_cost=self.estimate_cost(data),
            **kwargs,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.requestor_id!r})"


def check_range(field: str, value, low, high, *, context: str = "") -> None:
    """Raise ConfigurationError unless low <= value <= high."""
    if value is None or not (low <= value <= high):
        raise ConfigurationError.out_of_range(field, low, high, value, context=context)


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------

class RequestorRegistry:
    """
    Indexes requestors by id, by category and by provider.

    Populated once and read-only afterwards. Listings follow registration
    order.

    Example:
        registry = RequestorRegistry()
        registry.register_all(openai_requestors())
        registry.get("openai.text.gpt-4")
    """

    def __init__(self):
        self._requestors: dict[str, Any] = {}

    def register(self, requestor: Requestor) -> None:
        rid = requestor.requestor_id
        if rid in self._requestors:
            raise ValueError(f"Requestor already registered: '{rid}'")
        self._requestors[rid] = requestor

    def register_all(self, requestors: Iterable[Requestor]) -> None:
        for requestor in requestors:
            self.register(requestor)

    def get(self, requestor_id: str) -> Optional[Requestor]:
        return self._requestors.get(requestor_id)

    def require(self, requestor_id: str) -> Requestor:
        """Like get(), but raises a ValueError listing what is available."""
        requestor = self._requestors.get(requestor_id)
        if requestor is None:
            available = ", ".join(self._requestors) or "none"
            raise ValueError(
                f"Unknown requestor: '{requestor_id}'. Available requestors: {available}"
            )
        return requestor

    def by_category(self, category: ProviderCategory) -> list[Requestor]:
        return [r for r in self._requestors.values() if r.category is category]

    def by_provider(self, provider_id: str) -> list[Requestor]:
        return [r for r in self._requestors.values() if r.provider_id == provider_id]

    def list_ids(self) -> list[str]:
        return list(self._requestors)

    def providers(self) -> list[str]:
        """Provider ids in order of first registration."""
        return list(dict.fromkeys(r.provider_id for r in self._requestors.values()))

    def __contains__(self, requestor_id: str) -> bool:
        return requestor_id in self._requestors

    def __iter__(self) -> Iterator[Requestor]:
        return iter(self._requestors.values())

    def __len__(self) -> int:
        return len(self._requestors)
