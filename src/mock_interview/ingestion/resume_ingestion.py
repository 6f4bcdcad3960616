"""
Resume ingestion module.

Turns an uploaded resume (PDF, DOCX, plain text or a PNG/JPEG scan) into
text, runs the LLM field extraction on it and generates the interview
outline from the result. Images and PDFs without a text layer go through
Tesseract OCR (the `ocr` extra).
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import BinaryIO

from mock_interview.agents.outline_generator import OutlineGenerator
from mock_interview.agents.resume_parser import ResumeParseError, ResumeParser
from mock_interview.models.llm_client import LLMClient, LLMClientBase
from mock_interview.session.schemas import InterviewOutline, ResumeProfile, SectionedResume

logger = logging.getLogger(__name__)

TEXT_SUFFIXES = {".txt", ".md", ".text"}
IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg"}
SUPPORTED_SUFFIXES = {".pdf", ".docx", *TEXT_SUFFIXES, *IMAGE_SUFFIXES}
OCR_RESOLUTION = 300


class UnsupportedResumeFormat(ValueError):
    """Raised for uploads whose type cannot be read as text (.doc, .gif, ...)."""


def _read_docx(source: str | Path | BinaryIO) -> str:
    """
    Read text content from a .docx file, including table cells.

    Raises:
        ImportError: If python-docx is not installed.
    """
    try:
        from docx import Document
    except ImportError:
        raise ImportError(
            "python-docx is required to read .docx files. "
            "Install it with: pip install python-docx"
        )

    doc = Document(str(source) if isinstance(source, Path) else source)
    parts = [para.text for para in doc.paragraphs if para.text.strip()]
    for table in doc.tables:
        for row in table.rows:
            for cell in row.cells:
                if cell.text.strip():
                    parts.append(cell.text)
    return "\n".join(parts)


def _read_pdf(source: str | Path | BinaryIO) -> str:
    """
    Read the text layer of a PDF, page by page. Falls back to OCR when no
    page has any text.

    Raises:
        ImportError: If pdfplumber is not installed, or OCR is needed and unavailable.
    """
    try:
        import pdfplumber
    except ImportError:
        raise ImportError(
            "pdfplumber is required to read .pdf files. "
            "Install it with: pip install pdfplumber"
        )

    pages: list[str] = []
    with pdfplumber.open(source) as pdf:
        for page in pdf.pages:
            page_text = page.extract_text() or ""
            if page_text.strip():
                pages.append(page_text)
        if pages:
            return "\n".join(pages)

        logger.info(f"PDF has no text layer, running OCR on {len(pdf.pages)} page(s)")
        for page in pdf.pages:
            page_image = page.to_image(resolution=OCR_RESOLUTION).original
            page_text = _ocr_image(page_image)
            if page_text.strip():
                pages.append(page_text)
    return "\n".join(pages)


def _ocr_image(image) -> str:
    """
    Run Tesseract over a PIL image.

    Raises:
        ImportError: If pytesseract or the tesseract binary is missing.
    """
    try:
        import pytesseract
    except ImportError:
        raise ImportError(
            "pytesseract is required to read scanned resumes. "
            "Install it with: pip install 'mock-interview[ocr]'"
        )

    try:
        return pytesseract.image_to_string(image)
    except pytesseract.TesseractNotFoundError as exc:
        raise ImportError(f"tesseract binary not found: {exc}") from exc


def _read_image(source: BinaryIO) -> str:
    """
    OCR a PNG or JPEG resume.

    Raises:
        ValueError: If the data is not a readable image.
        ImportError: If Pillow or pytesseract is not installed.
    """
    try:
        from PIL import Image, UnidentifiedImageError
    except ImportError:
        raise ImportError(
            "Pillow is required to read image resumes. "
            "Install it with: pip install 'mock-interview[ocr]'"
        )

    try:
        image = Image.open(source)
    except UnidentifiedImageError as exc:
        raise ValueError(f"Unreadable image: {exc}") from exc
    with image:
        return _ocr_image(image.convert("RGB"))


def _suffix_for(filename: str | None, content_type: str | None = None) -> str:
    suffix = Path(filename or "").suffix.lower()
    if suffix:
        return suffix
    if content_type == "application/pdf":
        return ".pdf"
    if content_type == "application/vnd.openxmlformats-officedocument.wordprocessingml.document":
        return ".docx"
    if content_type == "image/png":
        return ".png"
    if content_type in ("image/jpeg", "image/jpg"):
        return ".jpg"
    if content_type and content_type.startswith("text/"):
        return ".txt"
    return ""


def extract_text_from_bytes(data: bytes, filename: str | None, content_type: str | None = None) -> str:
    """
    Extract resume text from an uploaded file body.

    Raises:
        UnsupportedResumeFormat: If the type is not PDF, DOCX, plain text or PNG/JPEG.
        ValueError: If the document has no extractable text, even after OCR.
        ImportError: If the reader for the type is not installed.
    """
    suffix = _suffix_for(filename, content_type)
    if suffix not in SUPPORTED_SUFFIXES:
        raise UnsupportedResumeFormat(
            f"Unsupported resume type {suffix or content_type or 'unknown'!r}; upload a PDF, DOCX, text or PNG/JPEG file"
        )

    if suffix == ".pdf":
        text = _read_pdf(io.BytesIO(data))
    elif suffix == ".docx":
        text = _read_docx(io.BytesIO(data))
    elif suffix in IMAGE_SUFFIXES:
        text = _read_image(io.BytesIO(data))
    else:
        text = data.decode("utf-8", errors="replace")

    text = text.strip()
    if not text:
        raise ValueError(f"No extractable text in {filename or 'upload'}")
    return text


def extract_text_from_file(file_path: str | Path) -> str:
    """
    Extract resume text from a file on disk.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        UnsupportedResumeFormat: If the type is not PDF, DOCX, plain text or PNG/JPEG.
        ValueError: If the file has no extractable text.
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Resume file not found: {path}")
    return extract_text_from_bytes(path.read_bytes(), path.name)


class ResumeIngestionService:
    """
    Service for ingesting resumes and preparing an interview.

    Uses the resume parser for field extraction and the outline generator
    for the question list.
    """

    def __init__(
        self,
        llm_client: LLMClientBase | None = None,
        question_count: int | None = None,
    ) -> None:
        """
        Initialize the resume ingestion service.

        Args:
            llm_client: LLM client shared by both agents. Creates default if None.
            question_count: Outline length (uses config if not provided).
        """
        self._llm_client = llm_client or LLMClient()
        self._parser = ResumeParser(llm_client=self._llm_client)
        self._outline_generator = OutlineGenerator(llm_client=self._llm_client, question_count=question_count)

    async def ingest_from_text(
        self,
        raw_text: str,
        sectioned: bool = False,
    ) -> ResumeProfile | SectionedResume:
        """
        Parse resume text into a profile.

        Args:
            raw_text: Raw resume text.
            sectioned: Return name/role/sections instead of the flat field set.

        Raises:
            ResumeParseError: If the model output is unusable.
        """
        if not raw_text or not raw_text.strip():
            raise ResumeParseError("Resume text is required.")
        logger.info(f"Ingesting resume ({len(raw_text)} chars, sectioned={sectioned})")
        if sectioned:
            return await self._parser.parse_sectioned(raw_text)
        return await self._parser.parse(raw_text)

    async def ingest_from_file(
        self,
        file_path: str | Path,
        sectioned: bool = False,
    ) -> ResumeProfile | SectionedResume:
        """Read a resume file and parse it. See ``extract_text_from_file`` for errors."""
        raw_text = extract_text_from_file(file_path)
        logger.info(f"Ingesting resume from file: {file_path}")
        return await self.ingest_from_text(raw_text, sectioned=sectioned)

    async def generate_outline(self, resume: ResumeProfile | SectionedResume) -> InterviewOutline:
        return await self._outline_generator.generate(resume)

    async def prepare_interview(
        self,
        file_path: str | Path,
        sectioned: bool = False,
    ) -> tuple[ResumeProfile | SectionedResume, InterviewOutline]:
        """Resume file in, profile and outline out."""
        resume = await self.ingest_from_file(file_path, sectioned=sectioned)
        outline = await self.generate_outline(resume)
        return resume, outline
