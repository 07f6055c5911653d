"""
Document Source: External Reader Documents

Contract for the reader's external document store, plus a local-directory
implementation. Callers always go through the "document_source"
ResilienceWrapper; implementations raise DocumentSourceError on failure.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Sequence

from loguru import logger

from core.exceptions import DocumentSourceError
from core.models import DocumentMetadata

_MIME_TYPES = {
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".html": "text/html",
    ".csv": "text/csv",
}


class DocumentSource(ABC):
    """Read-only access to the reader's external documents."""

    @abstractmethod
    async def list_documents(self, limit: int = 10) -> List[DocumentMetadata]:
        """Most recently modified documents first."""

    @abstractmethod
    async def fetch_content(self, document: DocumentMetadata) -> str:
        """Plain-text content of one document."""


class LocalDirectoryDocumentSource(DocumentSource):
    """
    Documents stored as text files under a directory tree.

    Document ids are paths relative to the root.
    """

    def __init__(self, root_dir: Path, extensions: Sequence[str] = tuple(_MIME_TYPES)):
        self.root_dir = Path(root_dir)
        self.extensions = {ext.lower() for ext in extensions}

    async def list_documents(self, limit: int = 10) -> List[DocumentMetadata]:
        return await asyncio.to_thread(self._list_sync, limit)

    def _list_sync(self, limit: int) -> List[DocumentMetadata]:
        if not self.root_dir.is_dir():
            raise DocumentSourceError(f"Document directory not found: {self.root_dir}")

        files = [
            p for p in self.root_dir.rglob("*") if p.is_file() and p.suffix.lower() in self.extensions
        ]
        files.sort(key=lambda p: p.stat().st_mtime, reverse=True)

        documents = []
        for path in files[:limit]:
            stat = path.stat()
            documents.append(
                DocumentMetadata(
                    id=str(path.relative_to(self.root_dir)),
                    name=path.stem,
                    mime_type=_MIME_TYPES.get(path.suffix.lower(), "text/plain"),
                    modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                    size=stat.st_size,
                )
            )

        logger.debug(f"Listed {len(documents)} documents under {self.root_dir}")
        return documents

    async def fetch_content(self, document: DocumentMetadata) -> str:
        path = (self.root_dir / document.id).resolve()
        if self.root_dir.resolve() not in path.parents:
            raise DocumentSourceError(f"Document outside source root: {document.id}", retryable=False)

        try:
            return await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")
        except OSError as e:
            raise DocumentSourceError(f"Could not read {document.id}: {e}", cause=e) from e


__all__ = ["DocumentSource", "LocalDirectoryDocumentSource"]
