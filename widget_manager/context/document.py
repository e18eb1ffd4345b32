"""
Notebook documents and the context a widget manager is created for
"""

import json
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Union

from .. import config
from ..events import EventBus
from ..kernel.session import Session
from .url_resolver import UrlResolver

logger = logging.getLogger(__name__)


class NotebookDocument:
    """In-memory notebook with its metadata"""
    
    def __init__(self, metadata: Optional[Dict[str, Any]] = None, cells: Optional[list] = None,
                 nbformat: int = 4, nbformat_minor: int = 5):
        self.metadata: Dict[str, Any] = metadata if metadata is not None else {}
        self.cells = cells if cells is not None else []
        self.nbformat = nbformat
        self.nbformat_minor = nbformat_minor
        
    @property
    def widget_state(self) -> Optional[Dict[str, Any]]:
        """The persisted widget state blob, if the notebook has one"""
        widgets = self.metadata.get(config.DOCUMENT_CONFIG["metadata_key"])
        if not isinstance(widgets, dict):
            return None
        return widgets.get(config.DOCUMENT_CONFIG["state_mimetype"])
        
    def set_widget_state(self, blob: Optional[Dict[str, Any]]):
        """Store (or with None, remove) the persisted widget state blob"""
        key = config.DOCUMENT_CONFIG["metadata_key"]
        if blob is None:
            self.metadata.pop(key, None)
            return
        self.metadata[key] = {config.DOCUMENT_CONFIG["state_mimetype"]: blob}
        
    def to_dict(self) -> Dict[str, Any]:
        return {
            "cells": self.cells,
            "metadata": self.metadata,
            "nbformat": self.nbformat,
            "nbformat_minor": self.nbformat_minor,
        }
        
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NotebookDocument":
        return cls(
            metadata=data.get("metadata", {}),
            cells=data.get("cells", []),
            nbformat=data.get("nbformat", 4),
            nbformat_minor=data.get("nbformat_minor", 5),
        )
        
    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "NotebookDocument":
        """Load an .ipynb file"""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        logger.debug(f"Loaded notebook {path}")
        return cls.from_dict(data)
        
    def save(self, path: Union[str, Path]) -> str:
        """Write the notebook as .ipynb JSON"""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=1, ensure_ascii=False)
            f.write("\n")
        logger.info(f"Saved notebook {path}")
        return str(path)


class DocumentContext:
    """A notebook together with its session, URL resolver and event bus"""
    
    def __init__(self,
                 model: Optional[NotebookDocument] = None,
                 session: Optional[Session] = None,
                 path: str = "",
                 url_resolver: Optional[UrlResolver] = None,
                 event_bus: Optional[EventBus] = None):
        self.events = event_bus or (session.events if session is not None else EventBus())
        self.model = model or NotebookDocument()
        self.session = session or Session(event_bus=self.events, name=path)
        self.path = path
        self.url_resolver = url_resolver or UrlResolver(path)
        
    @classmethod
    def from_file(cls, path: Union[str, Path], **kwargs) -> "DocumentContext":
        return cls(model=NotebookDocument.from_file(path), path=str(path), **kwargs)
