import fitz  # PyMuPDF
import logging
from pathlib import Path
from dataclasses import dataclass

logger = logging.getLogger(__name__)

TEXT_SUFFIXES = (".txt", ".md")


@dataclass
class DocumentText:
    """Plain text of a document plus the key its progress is stored under."""
    key: str
    title: str
    text: str

    @property
    def word_count(self) -> int:
        return len(self.text.split())


class UnsupportedDocument(ValueError):
    pass


class PDFHandler:
    """Turns uploaded files into plain text using PyMuPDF for PDFs."""

    def extract(self, path: str | Path) -> DocumentText:
        path = Path(path)
        return self.extract_from_bytes(path.read_bytes(), filename=path.name)

    def extract_from_bytes(self, data: bytes, filename: str = "upload.pdf") -> DocumentText:
        suffix = Path(filename).suffix.lower()
        if suffix == ".pdf":
            text = self._pdf_text(data)
        elif suffix in TEXT_SUFFIXES:
            text = data.decode("utf-8", errors="replace")
        else:
            raise UnsupportedDocument(f"Unsupported file type: {suffix or filename}")

        result = DocumentText(key=filename, title=Path(filename).stem, text=text)
        logger.info("Extracted %d words from uploaded %s", result.word_count, filename)
        return result

    def _pdf_text(self, data: bytes) -> str:
        doc = fitz.open(stream=data, filetype="pdf")
        pages = [page.get_text("text").strip() for page in doc]
        doc.close()
        return "\n\n".join(p for p in pages if p)


def from_pasted_text(text: str, title: str) -> DocumentText:
    return DocumentText(key=title, title=title, text=text)
