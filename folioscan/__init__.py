"""
folioscan - Turn photographed book pages into an ordered document

The pipeline:
1. Registering page images in a project
2. Recognizing each page with a vision LLM (with retry on upstream failures)
3. Reading the printed page number (Arabic or Roman)
4. Ordering pages by page number, and placing late pages
5. Retrying failed pages in batches
6. Handing completed pages, in order, to the export layer
"""

__version__ = "1.0.0"

from .config import ScanConfig
from .labels import PageLabel, extract_page_label
from .models import Page, PageStatus, Project
from .pipeline import ScanPipeline

__all__ = [
    "ScanConfig",
    "ScanPipeline",
    "Page",
    "PageLabel",
    "PageStatus",
    "Project",
    "extract_page_label",
]
