"""
PDF document access using PyMuPDF.

Handles PDF validation, text extraction, size/density profiling, page
rendering at configurable DPI, and page-range sub-document cutting for
split processing. Exposes everything through the ``DocumentSource``
protocol consumed by the extraction orchestrator.
"""

import asyncio
import base64
import io
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

import fitz  # PyMuPDF
from PIL import Image

from claim_extraction.config import get_logger, get_settings
from claim_extraction.schemas import DocumentContent, DocumentProfile, ProcessingMode


logger = get_logger(__name__)


class PDFProcessingError(Exception):
    """Base exception for PDF processing errors."""

    pass


class PDFValidationError(PDFProcessingError):
    """Raised when PDF validation fails."""

    pass


class PDFEncryptionError(PDFProcessingError):
    """Raised when PDF is encrypted and cannot be processed."""

    pass


@dataclass(frozen=True, slots=True)
class PageImage:
    """
    Immutable container for a rendered page image.

    Attributes:
        page_number: One-indexed page number.
        image_bytes: PNG image data as bytes.
        width: Image width in pixels.
        height: Image height in pixels.
        dpi: Resolution in dots per inch.
    """

    page_number: int
    image_bytes: bytes
    width: int
    height: int
    dpi: int

    @property
    def base64_encoded(self) -> str:
        """Get base64-encoded image data for API transmission."""
        return base64.b64encode(self.image_bytes).decode("utf-8")

    @property
    def data_uri(self) -> str:
        """Get data URI for embedding in API requests."""
        return f"data:image/png;base64,{self.base64_encoded}"

    @property
    def size_kb(self) -> float:
        return len(self.image_bytes) / 1024

    def to_pil_image(self) -> Image.Image:
        """Convert to PIL Image for further processing."""
        return Image.open(io.BytesIO(self.image_bytes))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation (without raw bytes)."""
        return {
            "page_number": self.page_number,
            "width": self.width,
            "height": self.height,
            "dpi": self.dpi,
            "size_kb": self.size_kb,
        }


class PDFDocument:
    """
    An open PDF exposed as a ``DocumentSource``.

    Page text is extracted once on first use. Rendering runs in a worker
    thread; access to the underlying PyMuPDF document is serialized.

    Example:
        with PDFDocument.open(Path("claim.pdf")) as document:
            profile = document.profile()
            content = await document.page_content(1, ProcessingMode.VISUAL)
    """

    def __init__(
        self,
        data: bytes,
        file_name: str = "document.pdf",
        dpi: int | None = None,
        max_file_size_mb: int | None = None,
    ) -> None:
        """
        Open a PDF from bytes.

        Args:
            data: Raw PDF bytes.
            file_name: Name used in logs and uploads.
            dpi: Resolution for page rendering. Defaults to settings value.
            max_file_size_mb: Maximum file size in MB. Defaults to settings value.

        Raises:
            PDFValidationError: If the bytes are not a usable PDF.
            PDFEncryptionError: If the PDF is encrypted.
        """
        settings = get_settings()

        self._dpi = dpi or settings.pdf.dpi
        max_bytes = (
            max_file_size_mb * 1024 * 1024
            if max_file_size_mb
            else settings.pdf.max_file_size_bytes
        )

        if len(data) > max_bytes:
            raise PDFValidationError(
                f"File size ({len(data) / (1024 * 1024):.2f} MB) exceeds "
                f"limit ({max_bytes / (1024 * 1024):.2f} MB)"
            )
        if not data.startswith(b"%PDF-"):
            raise PDFValidationError(
                "Invalid PDF header. File may be corrupted or not a PDF."
            )

        try:
            self._doc = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise PDFValidationError(f"Failed to open PDF: {e}") from e

        if self._doc.is_encrypted:
            self._doc.close()
            raise PDFEncryptionError(
                "PDF is encrypted. Please provide an unencrypted document."
            )

        self._data = data
        self.file_name = file_name
        # Calculate zoom factor for target DPI (72 is PDF base DPI)
        self._matrix = fitz.Matrix(self._dpi / 72.0, self._dpi / 72.0)
        self._lock = threading.Lock()
        self._texts: list[str] | None = None

        logger.debug(
            "pdf_document_opened",
            file_name=file_name,
            page_count=self._doc.page_count,
            size_mb=round(len(data) / (1024 * 1024), 2),
            dpi=self._dpi,
        )

    @classmethod
    def open(cls, file_path: Path, **kwargs: Any) -> "PDFDocument":
        """
        Open a PDF file from disk.

        Raises:
            PDFValidationError: If the file is missing or not a PDF.
        """
        if not file_path.exists():
            raise PDFValidationError(f"File not found: {file_path}")
        if file_path.suffix.lower() != ".pdf":
            raise PDFValidationError(
                f"Invalid file extension: {file_path.suffix}. Expected .pdf"
            )
        return cls(file_path.read_bytes(), file_name=file_path.name, **kwargs)

    def __enter__(self) -> "PDFDocument":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        with self._lock:
            if not self._doc.is_closed:
                self._doc.close()

    @property
    def page_count(self) -> int:
        return self._doc.page_count

    def _check_page(self, page_number: int) -> None:
        if not 1 <= page_number <= self.page_count:
            raise PDFProcessingError(
                f"Page {page_number} out of range (1-{self.page_count})"
            )

    def page_texts(self) -> list[str]:
        """Extracted text of every page, in page order."""
        if self._texts is None:
            with self._lock:
                self._texts = [page.get_text("text") for page in self._doc]
        return list(self._texts)

    def page_text(self, page_number: int) -> str:
        self._check_page(page_number)
        return self.page_texts()[page_number - 1]

    def profile(self) -> DocumentProfile:
        """Size, page count and extractable text length of the document."""
        return DocumentProfile(
            file_name=self.file_name,
            file_size_bytes=len(self._data),
            page_count=self.page_count,
            text_length=sum(len(text.strip()) for text in self.page_texts()),
        )

    def render_page(self, page_number: int) -> PageImage:
        """
        Render a single page to a PNG image.

        Args:
            page_number: One-indexed page number.

        Raises:
            PDFProcessingError: If page rendering fails.
        """
        self._check_page(page_number)
        try:
            with self._lock:
                pixmap = self._doc[page_number - 1].get_pixmap(
                    matrix=self._matrix,
                    colorspace=fitz.csRGB,
                    alpha=False,
                )

            img = Image.frombytes("RGB", (pixmap.width, pixmap.height), pixmap.samples)
            img_buffer = io.BytesIO()
            img.save(img_buffer, format="PNG", optimize=True)

            page_image = PageImage(
                page_number=page_number,
                image_bytes=img_buffer.getvalue(),
                width=pixmap.width,
                height=pixmap.height,
                dpi=self._dpi,
            )
        except PDFProcessingError:
            raise
        except Exception as e:
            raise PDFProcessingError(f"Failed to render page {page_number}: {e}") from e

        logger.debug(
            "page_rendered",
            page_number=page_number,
            width=page_image.width,
            height=page_image.height,
            size_kb=round(page_image.size_kb, 1),
        )
        return page_image

    async def render_page_async(self, page_number: int) -> PageImage:
        return await asyncio.to_thread(self.render_page, page_number)

    async def page_content(
        self, page_number: int, mode: ProcessingMode
    ) -> DocumentContent:
        return await self.pages_content([page_number], mode)

    async def pages_content(
        self, page_numbers: Sequence[int], mode: ProcessingMode
    ) -> DocumentContent:
        """
        Build adapter content for a set of pages.

        Text mode sends extracted text, visual mode sends page images, dual
        mode sends both. A text-mode page with no extractable text is sent
        as an image instead.
        """
        pages = tuple(page_numbers)
        text = None
        if mode in (ProcessingMode.TEXT, ProcessingMode.DUAL):
            sections = [
                f"--- Page {number} ---\n{self.page_text(number).strip()}"
                for number in pages
                if self.page_text(number).strip()
            ]
            text = "\n\n".join(sections) or None

        images: tuple[str, ...] = ()
        if mode != ProcessingMode.TEXT or text is None:
            rendered = await asyncio.gather(
                *(self.render_page_async(number) for number in pages)
            )
            images = tuple(image.data_uri for image in rendered)

        return DocumentContent(
            text=text,
            images=images,
            file_name=self.file_name,
            pages=pages,
        )

    def range_bytes(self, first_page: int, last_page: int) -> bytes:
        """
        Cut an inclusive page range into a standalone PDF.

        Raises:
            PDFProcessingError: If the range is invalid or cutting fails.
        """
        self._check_page(first_page)
        self._check_page(last_page)
        if first_page > last_page:
            raise PDFProcessingError(f"Invalid page range {first_page}-{last_page}")

        try:
            with self._lock:
                part = fitz.open()
                try:
                    part.insert_pdf(
                        self._doc, from_page=first_page - 1, to_page=last_page - 1
                    )
                    return part.tobytes(garbage=3, deflate=True)
                finally:
                    part.close()
        except Exception as e:
            raise PDFProcessingError(
                f"Failed to cut pages {first_page}-{last_page}: {e}"
            ) from e

    async def range_content(self, first_page: int, last_page: int) -> DocumentContent:
        data = await asyncio.to_thread(self.range_bytes, first_page, last_page)
        stem = Path(self.file_name).stem
        return DocumentContent(
            document_bytes=data,
            file_name=f"{stem}_pages_{first_page}-{last_page}.pdf",
            pages=tuple(range(first_page, last_page + 1)),
        )

    def document_content(self) -> DocumentContent:
        return DocumentContent(
            document_bytes=self._data,
            file_name=self.file_name,
            pages=tuple(range(1, self.page_count + 1)),
        )
