"""Remote document store client.

This module provides:
- DocumentStore: The async create/update/delete/get contract
- HTTPDocumentStore: REST implementation built on httpx
- APIError hierarchy, each error tagged with its ErrorCategory

REST layout:
    POST   /api/collections/{collection}/documents        create
    PUT    /api/collections/{collection}/documents/{id}   update (merge)
    GET    /api/collections/{collection}/documents/{id}   read
    DELETE /api/collections/{collection}/documents/{id}   delete
"""

from __future__ import annotations

import logging
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from fleetsync.core.config import ServerConfig
from fleetsync.core.types import ErrorCategory

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors."""

    category = ErrorCategory.API

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """Authentication failed."""

    category = ErrorCategory.AUTHENTICATION


class PermissionDeniedError(APIError):
    """Authenticated but not allowed to touch the document."""

    category = ErrorCategory.AUTHORIZATION


class ValidationError(APIError):
    """Document rejected by the server."""

    category = ErrorCategory.DATA_VALIDATION


class NotFoundError(APIError):
    """Resource not found."""

    category = ErrorCategory.DATABASE


class ServerUnavailableError(APIError):
    """Server could not be reached or failed to answer."""

    category = ErrorCategory.NETWORK


class DocumentStore(Protocol):
    """Async contract of the remote document store."""

    async def create(self, collection_path: str, document_id: str, payload: Any) -> None: ...

    async def update(self, collection_path: str, document_id: str, payload: Any) -> None: ...

    async def delete(self, collection_path: str, document_id: str) -> None: ...

    async def get(self, collection_path: str, document_id: str) -> dict[str, Any] | None:
        """Return the document data, or None if it does not exist."""
        ...


class HTTPDocumentStore:
    """HTTP client for the remote document store."""

    def __init__(
        self,
        config: ServerConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Server URL, token and timeout.
            transport: Optional httpx transport, defaults to a network transport.
        """
        self._config = config
        if not config.is_secure:
            logger.warning(
                "Document store %s is not using HTTPS; the API token is sent in clear text",
                config.server_url,
            )
        self._client = httpx.AsyncClient(
            base_url=config.server_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            headers={"Authorization": f"Bearer {config.token}"},
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> HTTPDocumentStore:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    @staticmethod
    def _document_url(collection_path: str, document_id: str | None = None) -> str:
        url = f"/api/collections/{quote(collection_path, safe='/')}/documents"
        if document_id is not None:
            url += f"/{quote(document_id, safe='')}"
        return url

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, turning transport failures into ServerUnavailableError."""
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise ServerUnavailableError(f"Connection to document store failed: {e}") from e
        return self._handle_response(response)

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code == 401:
            raise AuthenticationError("Invalid or expired token", 401)
        if response.status_code == 403:
            raise PermissionDeniedError(self._detail(response, "Permission denied"), 403)
        if response.status_code == 404:
            raise NotFoundError("Resource not found", 404)
        if response.status_code in (400, 422):
            raise ValidationError(
                self._detail(response, "Invalid document"), response.status_code
            )
        if response.status_code >= 500:
            raise ServerUnavailableError(
                self._detail(response, "Server error"), response.status_code
            )
        if response.status_code >= 400:
            raise APIError(self._detail(response, "Unknown error"), response.status_code)
        return response

    @staticmethod
    def _detail(response: httpx.Response, default: str) -> str:
        try:
            return str(response.json().get("detail", default))
        except ValueError:
            return default

    # === Document operations ===

    async def create(self, collection_path: str, document_id: str, payload: Any) -> None:
        """Create a document.

        Args:
            collection_path: Collection of the document.
            document_id: Document identifier.
            payload: Document data.
        """
        await self._request(
            "POST",
            self._document_url(collection_path),
            json={"id": document_id, "data": payload},
        )

    async def update(self, collection_path: str, document_id: str, payload: Any) -> None:
        """Create or merge-update a document."""
        await self._request(
            "PUT",
            self._document_url(collection_path, document_id),
            json=payload,
        )

    async def delete(self, collection_path: str, document_id: str) -> None:
        """Delete a document. Deleting a missing document is not an error."""
        try:
            await self._request("DELETE", self._document_url(collection_path, document_id))
        except NotFoundError:
            logger.debug("Document %s/%s already deleted", collection_path, document_id)

    async def get(self, collection_path: str, document_id: str) -> dict[str, Any] | None:
        """Get a document.

        Returns:
            Document data, or None if the document does not exist.
        """
        try:
            response = await self._request(
                "GET", self._document_url(collection_path, document_id)
            )
        except NotFoundError:
            return None
        result: dict[str, Any] = response.json()
        return result
