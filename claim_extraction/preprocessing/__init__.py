"""
Document preprocessing.

Opens, validates, profiles and renders PDF documents.
"""

from claim_extraction.preprocessing.pdf_document import (
    PageImage,
    PDFDocument,
    PDFEncryptionError,
    PDFProcessingError,
    PDFValidationError,
)


__all__ = [
    "PageImage",
    "PDFDocument",
    "PDFEncryptionError",
    "PDFProcessingError",
    "PDFValidationError",
]
