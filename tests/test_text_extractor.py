"""Unit tests for TextExtractor."""
import sys
sys.path.insert(0, 'backend')

import zipfile
from io import BytesIO

import pytest

from models.upload import UploadedFile
from services.errors import ExtractionError
from services.text_extractor import TextExtractor

WORD_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"
DRAWING_NS = "http://schemas.openxmlformats.org/drawingml/2006/main"


def build_docx(paragraphs):
    body = "".join(
        f"<w:p><w:r><w:t>{text}</w:t></w:r></w:p>" for text in paragraphs
    )
    document = f'<w:document xmlns:w="{WORD_NS}"><w:body>{body}</w:body></w:document>'
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("word/document.xml", document)
    return buffer.getvalue()


def build_pptx(slides):
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for number, lines in slides.items():
            paragraphs = "".join(f"<a:p><a:r><a:t>{line}</a:t></a:r></a:p>" for line in lines)
            archive.writestr(
                f"ppt/slides/slide{number}.xml",
                f'<p:sld xmlns:p="urn:p" xmlns:a="{DRAWING_NS}"><p:txBody>{paragraphs}</p:txBody></p:sld>'
            )
    return buffer.getvalue()


class TestTextExtractor:
    """Test suite for document text extraction."""

    def setup_method(self):
        self.extractor = TextExtractor()

    def test_extract_txt(self):
        upload = UploadedFile("notes.txt", "Lecture 3: thermodynamics".encode("utf-8"))
        assert self.extractor.extract(upload) == "Lecture 3: thermodynamics"

    def test_extract_txt_with_invalid_bytes(self):
        upload = UploadedFile("notes.TXT", b"valid \xff text")
        text = self.extractor.extract(upload)
        assert text.startswith("valid ")
        assert text.endswith(" text")

    def test_extract_docx(self):
        upload = UploadedFile("essay.docx", build_docx(["Introduction", "Main argument"]))
        assert self.extractor.extract(upload) == "Introduction\nMain argument"

    def test_extract_pptx_orders_slides_numerically(self):
        upload = UploadedFile("deck.pptx", build_pptx({
            10: ["Summary"],
            2: ["Definitions", "Examples"],
            1: ["Title slide"],
        }))
        text = self.extractor.extract(upload)
        assert text == "Title slide\n\nDefinitions\nExamples\n\nSummary"

    def test_unsupported_format(self):
        with pytest.raises(ExtractionError, match="Unsupported file format: doc"):
            self.extractor.extract(UploadedFile("legacy.doc", b"\xd0\xcf\x11\xe0"))

    def test_corrupt_file(self):
        with pytest.raises(ExtractionError, match="Failed to read broken.docx"):
            self.extractor.extract(UploadedFile("broken.docx", b"not a zip archive"))
