"""
Pytest Configuration and Shared Fixtures.

Provides scripted model adapters, an in-memory document source and an
embedding client fake shared by the unit and integration tests.
"""

from typing import Callable, Sequence

import pytest

from claim_extraction.client import AdapterRequest, AdapterResponse, ModelAdapter
from claim_extraction.config import get_settings
from claim_extraction.schemas import (
    DocumentContent,
    DocumentProfile,
    ProcessingMode,
)


# =============================================================================
# Fakes
# =============================================================================


Responder = Callable[[AdapterRequest], "str | tuple[str, float] | Exception"]


class FakeAdapter(ModelAdapter):
    """
    Model adapter answering from a script.

    The responder receives each request and returns the response text, a
    (text, confidence) pair, or an exception instance to raise.
    """

    def __init__(
        self,
        responder: Responder | str,
        model: str = "fake-model",
        confidence: float = 0.85,
    ) -> None:
        self._responder = responder
        self._model = model
        self._confidence = confidence
        self.requests: list[AdapterRequest] = []

    @property
    def model_id(self) -> str:
        return self._model

    @property
    def call_count(self) -> int:
        return len(self.requests)

    async def analyze(self, request: AdapterRequest) -> AdapterResponse:
        self.requests.append(request)
        outcome = (
            self._responder(request) if callable(self._responder) else self._responder
        )
        if isinstance(outcome, Exception):
            raise outcome
        text, confidence = outcome if isinstance(outcome, tuple) else (outcome, self._confidence)
        return AdapterResponse(
            response=text,
            confidence=confidence,
            tokens_used=10,
            elapsed_ms=5,
            model_id=self._model,
        )


class FakeDocument:
    """
    In-memory DocumentSource.

    Page content carries the page text and a placeholder data URI per
    rendered page, so tests can see which pages a call covered.
    """

    def __init__(
        self,
        page_texts: Sequence[str],
        file_size_bytes: int = 500 * 1024,
        file_name: str = "claim.pdf",
    ) -> None:
        self._texts = list(page_texts)
        self.file_size_bytes = file_size_bytes
        self.file_name = file_name
        self.rendered: list[int] = []

    @property
    def page_count(self) -> int:
        return len(self._texts)

    def profile(self) -> DocumentProfile:
        return DocumentProfile(
            file_name=self.file_name,
            file_size_bytes=self.file_size_bytes,
            page_count=self.page_count,
            text_length=sum(len(t) for t in self._texts),
        )

    def page_text(self, page_number: int) -> str:
        return self._texts[page_number - 1]

    def page_texts(self) -> list[str]:
        return list(self._texts)

    async def page_content(self, page_number: int, mode: ProcessingMode) -> DocumentContent:
        return await self.pages_content([page_number], mode)

    async def pages_content(
        self, page_numbers: Sequence[int], mode: ProcessingMode
    ) -> DocumentContent:
        pages = tuple(page_numbers)
        text = None
        if mode in (ProcessingMode.TEXT, ProcessingMode.DUAL):
            text = "\n\n".join(
                f"--- Page {n} ---\n{self.page_text(n)}" for n in pages if self.page_text(n)
            ) or None
        images: tuple[str, ...] = ()
        if mode != ProcessingMode.TEXT or text is None:
            self.rendered.extend(pages)
            images = tuple(f"data:image/png;base64,page{n}" for n in pages)
        return DocumentContent(text=text, images=images, file_name=self.file_name, pages=pages)

    async def range_content(self, first_page: int, last_page: int) -> DocumentContent:
        return DocumentContent(
            document_bytes=f"%PDF-{first_page}-{last_page}".encode(),
            file_name=f"claim_pages_{first_page}-{last_page}.pdf",
            pages=tuple(range(first_page, last_page + 1)),
        )

    def document_content(self) -> DocumentContent:
        return DocumentContent(
            document_bytes=b"%PDF-1.7 fake",
            file_name=self.file_name,
            pages=tuple(range(1, self.page_count + 1)),
        )


class FakeEmbeddings:
    """
    Embedding client keyed on words: each vector counts a fixed vocabulary.

    Texts sharing vocabulary words get high cosine similarity; texts with
    none of them get a zero vector.
    """

    VOCABULARY = ("policy", "signature", "premium", "coverage", "exclusion", "date", "insured", "flood")

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    @property
    def dimensions(self) -> int:
        return len(self.VOCABULARY)

    def zero_vector(self) -> list[float]:
        return [0.0] * self.dimensions

    async def embed_many(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [
            [float(text.lower().count(word)) for word in self.VOCABULARY] for text in texts
        ]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Settings are rebuilt per test so environment overrides apply."""
    monkeypatch.setenv("APP_ENV", "testing")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_adapter() -> type[FakeAdapter]:
    """Factory for scripted model adapters."""
    return FakeAdapter


@pytest.fixture
def make_document() -> type[FakeDocument]:
    """Factory for in-memory documents."""
    return FakeDocument


@pytest.fixture
def fake_embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture
def text_pages() -> list[str]:
    """Twenty pages of text-rich policy content."""
    pages = [
        "DECLARATIONS. Policy Number: POL-12345. Named Insured: Acme Roofing LLC. "
        "Policy Period: 04/11/2025 to 04/11/2026. " + "Coverage detail. " * 40
    ]
    pages.extend(f"Page {n} terms and conditions. " + "General wording. " * 40 for n in range(2, 19))
    pages.append("Authorized representative signature: J. Smith. " + "Closing text. " * 40)
    pages.append("Insured signature line. Signed 04/12/2025. " + "Closing text. " * 40)
    return pages


# =============================================================================
# Pytest Configuration
# =============================================================================


def pytest_configure(config):
    """Pytest configuration hook."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow running tests")


def pytest_collection_modifyitems(config, items):
    """Add markers based on test location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
