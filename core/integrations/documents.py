"""Document store integration: the engine only asks whether a document exists."""

import logging
from typing import Iterable, Optional

import httpx

logger = logging.getLogger(__name__)


class DocumentStoreError(Exception):
    """The document store could not answer."""


class DocumentStore:
    async def exists(self, document_id: str) -> bool:
        raise NotImplementedError


class InMemoryDocumentStore(DocumentStore):
    """Set-backed store for tests and local runs."""

    def __init__(self, document_ids: Optional[Iterable[str]] = None):
        self.document_ids = set(document_ids or ())

    def add(self, document_id: str) -> None:
        self.document_ids.add(document_id)

    async def exists(self, document_id: str) -> bool:
        return document_id in self.document_ids


class HttpDocumentStore(DocumentStore):
    """
    Document service client.

    ``HEAD {base_url}/documents/{id}``: 2xx means present, 404 means absent.
    """

    def __init__(self, base_url: str, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def exists(self, document_id: str) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.head(f"{self.base_url}/documents/{document_id}")
        except httpx.HTTPError as e:
            logger.error(f"Document store request failed for {document_id}: {e}")
            raise DocumentStoreError(str(e)) from e

        if response.status_code == 404:
            return False
        if response.is_success:
            return True
        raise DocumentStoreError(
            f"Unexpected status {response.status_code} checking document {document_id}"
        )
