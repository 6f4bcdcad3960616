"""
Resume ingestion: text extraction, field extraction and outline generation.
"""

from mock_interview.ingestion.resume_ingestion import (
    ResumeIngestionService,
    UnsupportedResumeFormat,
    extract_text_from_bytes,
    extract_text_from_file,
)

__all__ = [
    "ResumeIngestionService",
    "UnsupportedResumeFormat",
    "extract_text_from_bytes",
    "extract_text_from_file",
]
