"""
Notebook document context
"""

from .document import NotebookDocument, DocumentContext
from .url_resolver import UrlResolver

__all__ = ["NotebookDocument", "DocumentContext", "UrlResolver"]
