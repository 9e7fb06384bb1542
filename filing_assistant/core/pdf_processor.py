"""PDF processing functionality"""

import logging
import re
from dataclasses import dataclass

import fitz

from filing_assistant.exceptions import PDFExtractionError

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


@dataclass
class ExtractedText:
    text: str
    pages: int


def is_pdf(name: str, content_type: str = "") -> bool:
    """Accept uploads declared as PDF or carrying a .pdf extension"""
    if content_type:
        return content_type == PDF_CONTENT_TYPE
    return name.lower().endswith(".pdf")


class PDFProcessor:
    """Handles PDF text extraction and cleaning"""

    def extract_text(self, data: bytes, doc_name: str) -> ExtractedText:
        """Extract cleaned text; pages are separated by blank lines"""
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise PDFExtractionError(f"Could not open {doc_name}: {e}") from e

        try:
            pages = []
            for page_num in range(len(doc)):
                page = doc.load_page(page_num)
                cleaned_text = self.clean_text(page.get_text())
                if cleaned_text:
                    pages.append(cleaned_text)
            page_count = len(doc)
        except Exception as e:
            raise PDFExtractionError(f"Error reading {doc_name}: {e}") from e
        finally:
            doc.close()

        logger.info("Extracted %d/%d non-empty pages from %s", len(pages), page_count, doc_name)
        return ExtractedText(text="\n\n".join(pages).strip(), pages=page_count)

    def clean_text(self, text: str) -> str:
        """Clean extracted text"""
        text = re.sub(r"\n\s*\n", "\n\n", text)
        text = re.sub(r" +", " ", text)
        text = re.sub(r"^\s*\d+\s*$", "", text, flags=re.MULTILINE)
        text = re.sub(r"\n{3,}", "\n\n", text)
        return text.strip()
