"""Output generation for rosters (PDF, text)."""

from dutyroster.output.pdf_generator import PDFGenerator
from dutyroster.output.report import ReportGenerator

__all__ = [
    "PDFGenerator",
    "ReportGenerator",
]
