import io
import json
import sys

import pytest

from mock_interview.ingestion import resume_ingestion
from mock_interview.ingestion.resume_ingestion import (
    ResumeIngestionService,
    UnsupportedResumeFormat,
    extract_text_from_bytes,
    extract_text_from_file,
)
from mock_interview.models.llm_client import LLMClientBase, LLMResponse, Message
from mock_interview.session.schemas import ResumeProfile, SectionedResume


class FakeLLM(LLMClientBase):
    def __init__(self, *replies: str) -> None:
        self._replies = list(replies)

    async def chat(self, messages: list[Message], temperature: float = 0.7, **kwargs) -> LLMResponse:
        return LLMResponse(content=self._replies.pop(0), model="fake")


def test_extract_plain_text_bytes() -> None:
    assert extract_text_from_bytes(b"\n Ada Lovelace \n", "resume.md") == "Ada Lovelace"


def test_content_type_is_used_without_suffix() -> None:
    assert extract_text_from_bytes(b"Ada", None, "text/plain") == "Ada"
    with pytest.raises(UnsupportedResumeFormat):
        extract_text_from_bytes(b"...", None, "application/msword")


@pytest.mark.parametrize("filename", ["resume.gif", "resume.doc", "resume"])
def test_unsupported_types(filename) -> None:
    with pytest.raises(UnsupportedResumeFormat):
        extract_text_from_bytes(b"data", filename)


def test_empty_document_is_rejected() -> None:
    with pytest.raises(ValueError, match="No extractable text"):
        extract_text_from_bytes(b"   \n", "resume.txt")


def _image_bytes(fmt: str = "PNG") -> bytes:
    image_module = pytest.importorskip("PIL.Image")
    buffer = io.BytesIO()
    image_module.new("RGB", (120, 60), "white").save(buffer, fmt)
    return buffer.getvalue()


def test_image_resume_goes_through_ocr(monkeypatch) -> None:
    data = _image_bytes()
    seen = []

    def fake_ocr(image) -> str:
        seen.append(image.size)
        return "  Ada Lovelace\nEngineer \n"

    monkeypatch.setattr(resume_ingestion, "_ocr_image", fake_ocr)

    assert extract_text_from_bytes(data, "resume.png") == "Ada Lovelace\nEngineer"
    assert extract_text_from_bytes(_image_bytes("JPEG"), None, "image/jpeg") == "Ada Lovelace\nEngineer"
    assert seen == [(120, 60), (120, 60)]


def test_unreadable_image_is_rejected() -> None:
    pytest.importorskip("PIL")
    with pytest.raises(ValueError, match="Unreadable image"):
        extract_text_from_bytes(b"not an image", "resume.jpg")


def test_image_without_ocr_backend_names_the_extra(monkeypatch) -> None:
    data = _image_bytes()
    monkeypatch.setitem(sys.modules, "pytesseract", None)

    with pytest.raises(ImportError, match=r"mock-interview\[ocr\]"):
        extract_text_from_bytes(data, "resume.png")


def test_scanned_pdf_falls_back_to_ocr(monkeypatch) -> None:
    pytest.importorskip("pdfplumber")
    calls = []

    def fake_ocr(image) -> str:
        calls.append(image)
        return "Ada Lovelace"

    monkeypatch.setattr(resume_ingestion, "_ocr_image", fake_ocr)

    assert extract_text_from_bytes(_image_bytes("PDF"), "scan.pdf") == "Ada Lovelace"
    assert len(calls) == 1


def test_scanned_pdf_with_nothing_recognised_is_rejected(monkeypatch) -> None:
    pytest.importorskip("pdfplumber")
    monkeypatch.setattr(resume_ingestion, "_ocr_image", lambda image: " ")

    with pytest.raises(ValueError, match="No extractable text"):
        extract_text_from_bytes(_image_bytes("PDF"), "scan.pdf")


def test_extract_docx_paragraphs_and_tables(tmp_path) -> None:
    docx = pytest.importorskip("docx")
    doc = docx.Document()
    doc.add_paragraph("Ada Lovelace")
    doc.add_paragraph("Engineer")
    table = doc.add_table(rows=1, cols=2)
    table.cell(0, 0).text = "Python"
    table.cell(0, 1).text = "SQL"
    path = tmp_path / "resume.docx"
    doc.save(str(path))

    text = extract_text_from_file(path)

    assert text.splitlines() == ["Ada Lovelace", "Engineer", "Python", "SQL"]


def test_missing_file(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        extract_text_from_file(tmp_path / "nope.pdf")


@pytest.mark.asyncio
async def test_prepare_interview_parses_and_outlines(tmp_path) -> None:
    path = tmp_path / "resume.txt"
    path.write_text("Ada Lovelace\nEngineer\nPython, SQL", encoding="utf-8")
    llm = FakeLLM(
        json.dumps({"name": "Ada Lovelace", "role": "Engineer", "skills": "Python, SQL"}),
        json.dumps({"title": "Engineer Interview", "category": "Technical", "questions": ["Q1", "Q2"]}),
    )
    service = ResumeIngestionService(llm_client=llm, question_count=2)

    resume, outline = await service.prepare_interview(path)

    assert isinstance(resume, ResumeProfile)
    assert resume.name == "Ada Lovelace"
    assert outline.questions == ["Q1", "Q2"]


@pytest.mark.asyncio
async def test_ingest_sectioned() -> None:
    llm = FakeLLM(json.dumps({"name": "Ada", "role": "Engineer", "sections": [{"title": "Skills", "content": "Math"}]}))
    service = ResumeIngestionService(llm_client=llm, question_count=2)

    resume = await service.ingest_from_text("Ada\nSkills: Math", sectioned=True)

    assert isinstance(resume, SectionedResume)
    assert resume.sections[0].title == "Skills"
