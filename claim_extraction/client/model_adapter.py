"""
Model adapter contract and the OpenAI-compatible implementation.

Every extraction backend, text or vision, is called through the same
contract: a prompt plus document content in, an ``AdapterResponse`` out,
or one of the typed ``ModelAdapterError`` failures. Adapters never retry
on their own; callers decide the retry and fallback policy.
"""

import asyncio
import hashlib
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    RateLimitError,
)

from claim_extraction.client.errors import (
    AdapterMalformedOutputError,
    AdapterRateLimitError,
    AdapterTimeoutError,
    AdapterUnavailableError,
    ModelAdapterError,
)
from claim_extraction.client.file_poller import FilePoller, PollState
from claim_extraction.client.response_parser import parse_confidence
from claim_extraction.config import get_logger, get_settings
from claim_extraction.schemas import DocumentContent, ExpectedType


logger = get_logger(__name__)


__all__ = [
    "AdapterMalformedOutputError",
    "AdapterRateLimitError",
    "AdapterRequest",
    "AdapterResponse",
    "AdapterTimeoutError",
    "AdapterUnavailableError",
    "MessageRole",
    "ModelAdapter",
    "ModelAdapterError",
    "OpenAIModelAdapter",
]


class MessageRole(str, Enum):
    """Chat message roles."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


# OpenAI file status -> poll state
_FILE_STATUS_STATES: dict[str, PollState] = {
    "uploaded": PollState.PROCESSING,
    "processed": PollState.READY,
    "error": PollState.FAILED,
}


@dataclass(frozen=True, slots=True)
class AdapterRequest:
    """
    Immutable container for one adapter call.

    Attributes:
        prompt: Instruction text for the model.
        content: Text, page images, or whole-document bytes to analyze.
        expected_type: Type the answer will be normalized to.
        field_id: Field the call answers.
        page_number: One-indexed page, or None for multi-page content.
        system_prompt: Optional system context.
        max_tokens: Response token cap (adapter default when None).
        temperature: Sampling temperature (adapter default when None).
        request_id: Unique identifier for this request.
    """

    prompt: str
    content: DocumentContent
    expected_type: ExpectedType = ExpectedType.TEXT
    field_id: str = ""
    page_number: int | None = None
    system_prompt: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    request_id: str = field(default_factory=lambda: f"req_{time.time_ns() // 1000}")


@dataclass(frozen=True, slots=True)
class AdapterResponse:
    """
    Uniform result of an adapter call.

    Attributes:
        response: Raw text returned by the model.
        confidence: Confidence stated by the model (default when absent).
        tokens_used: Total tokens consumed.
        elapsed_ms: Wall-clock latency.
        model_id: Identifier of the model that answered.
    """

    response: str
    confidence: float
    tokens_used: int
    elapsed_ms: int
    model_id: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "response": self.response,
            "confidence": self.confidence,
            "tokens_used": self.tokens_used,
            "elapsed_ms": self.elapsed_ms,
            "model_id": self.model_id,
        }


class ModelAdapter(ABC):
    """Uniform call contract for any text- or vision-capable backend."""

    supports_vision: bool = True

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Identifier reported on every response."""

    @abstractmethod
    async def analyze(self, request: AdapterRequest) -> AdapterResponse:
        """
        Run one extraction call.

        Raises:
            ModelAdapterError: Any typed adapter failure.
        """

    async def close(self) -> None:
        """Release backend resources."""


class OpenAIModelAdapter(ModelAdapter):
    """
    Adapter for OpenAI-compatible chat completion backends.

    Page images are sent as ``image_url`` parts, extracted text is appended
    to the prompt, and whole documents are uploaded through the Files API
    and referenced by ``file_id`` once the backend reports them processed.

    Example:
        adapter = OpenAIModelAdapter(model="gpt-4o")
        response = await adapter.analyze(
            AdapterRequest(prompt="Is the policy signed?", content=content)
        )
    """

    def __init__(
        self,
        model: str | None = None,
        base_url: str | None = None,
        api_key: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        timeout: int | None = None,
        supports_vision: bool = True,
        poll_interval_seconds: float | None = None,
        poll_max_attempts: int | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            model: Model identifier. Defaults to the primary model setting.
            base_url: API base URL. Defaults to settings.
            api_key: API key. Defaults to settings.
            max_tokens: Default response token cap. Defaults to settings.
            temperature: Default temperature. Defaults to settings.
            timeout: Transport timeout in seconds. Defaults to settings.
            supports_vision: Whether the model accepts images.
            poll_interval_seconds: Delay between upload readiness checks.
            poll_max_attempts: Maximum upload readiness checks.
            client: Pre-built async client (mainly for tests).
        """
        settings = get_settings()

        self._model = model or settings.model.primary_model
        self._base_url = (base_url or str(settings.model.base_url)).rstrip("/")
        self._api_key = api_key or settings.model.api_key.get_secret_value() or "not-needed"
        self._max_tokens = max_tokens or settings.model.max_tokens
        self._temperature = (
            temperature if temperature is not None else settings.model.temperature
        )
        self._timeout = timeout or settings.model.timeout
        self._poll_interval = (
            poll_interval_seconds
            if poll_interval_seconds is not None
            else settings.model.file_poll_interval_seconds
        )
        self._poll_max_attempts = poll_max_attempts or settings.model.file_poll_max_attempts
        self.supports_vision = supports_vision

        self._client = client or AsyncOpenAI(
            base_url=self._base_url,
            api_key=self._api_key,
            timeout=httpx.Timeout(float(self._timeout), connect=10.0),
            max_retries=0,  # Retry policy belongs to the caller
        )
        self._uploaded_files: dict[str, str] = {}
        self._upload_lock = asyncio.Lock()

        logger.info(
            "model_adapter_initialized",
            model=self._model,
            base_url=self._base_url,
            supports_vision=supports_vision,
        )

    @property
    def model_id(self) -> str:
        return self._model

    async def analyze(self, request: AdapterRequest) -> AdapterResponse:
        """
        Send one chat completion request.

        Args:
            request: AdapterRequest to send.

        Returns:
            AdapterResponse with the raw model text.

        Raises:
            AdapterUnavailableError: Connection failure or rejected request.
            AdapterRateLimitError: Backend rate limit hit.
            AdapterTimeoutError: Transport timeout.
            AdapterMalformedOutputError: Empty or missing completion.
        """
        if request.content.has_images and not self.supports_vision:
            raise AdapterUnavailableError(
                f"Model {self._model} does not accept image content",
                model_id=self._model,
            )

        start_time = time.perf_counter()
        file_id = None
        if request.content.document_bytes:
            file_id = await self.upload_document(
                request.content.document_bytes, request.content.file_name
            )

        messages = self._build_messages(request, file_id)

        try:
            completion = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                max_tokens=request.max_tokens or self._max_tokens,
                temperature=(
                    request.temperature
                    if request.temperature is not None
                    else self._temperature
                ),
            )
        except Exception as e:
            raise self._translate_error(e) from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        if not completion.choices:
            raise AdapterMalformedOutputError(
                "Completion contained no choices", model_id=self._model
            )
        content = completion.choices[0].message.content or ""
        if not content.strip():
            raise AdapterMalformedOutputError(
                "Completion content was empty", model_id=self._model
            )

        tokens = completion.usage.total_tokens if completion.usage else 0
        response = AdapterResponse(
            response=content,
            confidence=parse_confidence(content),
            tokens_used=tokens,
            elapsed_ms=latency_ms,
            model_id=completion.model or self._model,
        )

        logger.info(
            "model_request_complete",
            request_id=request.request_id,
            field_id=request.field_id,
            page=request.page_number,
            model=response.model_id,
            latency_ms=latency_ms,
            tokens=tokens,
        )
        return response

    def _build_messages(
        self, request: AdapterRequest, file_id: str | None
    ) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []

        if request.system_prompt:
            messages.append(
                {
                    "role": MessageRole.SYSTEM.value,
                    "content": request.system_prompt,
                }
            )

        user_content: list[dict[str, Any]] = []
        if file_id:
            user_content.append({"type": "file", "file": {"file_id": file_id}})
        for image in request.content.images:
            user_content.append(
                {
                    "type": "image_url",
                    "image_url": {"url": image, "detail": "high"},
                }
            )

        prompt = request.prompt
        if request.content.text:
            prompt = f"{prompt}\n\nDOCUMENT CONTENT:\n{request.content.text}"
        user_content.append({"type": "text", "text": prompt})

        messages.append({"role": MessageRole.USER.value, "content": user_content})
        return messages

    def _translate_error(self, error: Exception) -> ModelAdapterError:
        """Map an openai exception onto the adapter taxonomy."""
        # APITimeoutError subclasses APIConnectionError; check it first.
        if isinstance(error, APITimeoutError):
            return AdapterTimeoutError(
                f"Request to {self._model} timed out: {error}", model_id=self._model
            )
        if isinstance(error, RateLimitError):
            return AdapterRateLimitError(
                f"Rate limited by {self._model}: {error}", model_id=self._model
            )
        if isinstance(error, APIConnectionError):
            return AdapterUnavailableError(
                f"Connection to {self._model} failed: {error}", model_id=self._model
            )
        if isinstance(error, APIStatusError):
            return AdapterUnavailableError(
                f"{self._model} rejected the request ({error.status_code}): {error}",
                model_id=self._model,
            )
        if isinstance(error, ModelAdapterError):
            return error
        return AdapterUnavailableError(
            f"Request to {self._model} failed: {error}", model_id=self._model
        )

    async def upload_document(self, data: bytes, file_name: str) -> str:
        """
        Upload a PDF once and wait until the backend has processed it.

        Uploads are cached by content hash for the lifetime of the adapter.

        Returns:
            The backend file id.
        """
        digest = hashlib.sha256(data).hexdigest()

        async with self._upload_lock:
            cached = self._uploaded_files.get(digest)
            if cached:
                return cached

            try:
                uploaded = await self._client.files.create(
                    file=(file_name, data, "application/pdf"),
                    purpose="user_data",
                )
            except Exception as e:
                raise self._translate_error(e) from e

            logger.info(
                "document_uploaded",
                file_id=uploaded.id,
                file_name=file_name,
                size_kb=round(len(data) / 1024, 1),
            )

            async def fetch_state() -> PollState:
                try:
                    status = await self._client.files.retrieve(uploaded.id)
                except Exception as e:
                    raise self._translate_error(e) from e
                return _FILE_STATUS_STATES.get(status.status, PollState.PENDING)

            poller = FilePoller(
                uploaded.id,
                fetch_state,
                max_attempts=self._poll_max_attempts,
                interval_seconds=self._poll_interval,
            )
            await poller.wait_until_ready()

            self._uploaded_files[digest] = uploaded.id
            return uploaded.id

    async def close(self) -> None:
        """Close the underlying client."""
        await self._client.close()
        logger.debug("model_adapter_closed", model=self._model)
