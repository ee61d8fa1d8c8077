"""API client for the gemindex File Search store service."""

from __future__ import annotations

import json
import logging
import mimetypes
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from .exceptions import (
    ErrorKind,
    GemindexAPIError,
    GemindexClientError,
    GemindexConnectionError,
    GemindexTransientError,
)
from .models import RemoteFile, UploadOutcome
from .utils import DEFAULT_ENDPOINT

logger = logging.getLogger(__name__)

# Status codes that will not succeed when repeated unchanged
CLIENT_ERROR_STATUSES = frozenset({400, 401, 403, 404, 405, 409, 410, 413, 415, 422})

# Status codes worth retrying
TRANSIENT_ERROR_STATUSES = frozenset({408, 425, 429})


class RemoteStoreClient(Protocol):
    """Contract the sync engine relies on for talking to a remote store."""

    def list_files(self, store: str) -> list[RemoteFile]: ...

    def upload_file(
        self, store: str, file_path: Path, display_name: str
    ) -> UploadOutcome: ...

    def delete_file(self, store: str, name: str) -> None: ...


def classify_status(status_code: int) -> ErrorKind:
    """Map an HTTP status code to an error classification.

    Args:
        status_code: HTTP response status code (>= 400)

    Returns:
        ErrorKind for the status

    Examples:
        >>> classify_status(403)
        <ErrorKind.CLIENT: 'client'>
        >>> classify_status(503)
        <ErrorKind.TRANSIENT: 'transient'>
    """
    if status_code in TRANSIENT_ERROR_STATUSES or status_code >= 500:
        return ErrorKind.TRANSIENT
    if status_code in CLIENT_ERROR_STATUSES or 400 <= status_code < 500:
        return ErrorKind.CLIENT
    return ErrorKind.TRANSIENT


def _error_for(kind: ErrorKind, message: str, status_code: int) -> GemindexAPIError:
    if kind == ErrorKind.CLIENT:
        return GemindexClientError(message, status_code=status_code)
    return GemindexTransientError(message, status_code=status_code)


class GemindexClient:
    """Client for the gemindex store API.

    Implements :class:`RemoteStoreClient` on top of ``httpx``. The client does
    not retry on its own; every failure is classified with an
    :class:`~gemindex.exceptions.ErrorKind` and retry policy is left to the
    caller.
    """

    def __init__(
        self,
        endpoint: str | None = None,
        token: str | None = None,
        timeout: float = 60.0,
    ):
        """Initialize API client.

        Args:
            endpoint: Base URL of the API server (default: http://localhost:4000)
            token: Optional bearer token
            timeout: Transport timeout in seconds (default: 60.0)
        """
        self.endpoint = (endpoint or DEFAULT_ENDPOINT).rstrip("/")
        self.token = token
        self.timeout = timeout
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        """Get or create the httpx client."""
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.Client(
                headers=headers,
                timeout=httpx.Timeout(self.timeout),
                follow_redirects=True,
            )
        return self._client

    def close(self) -> None:
        """Close the client and release connections."""
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None

    def __enter__(self) -> GemindexClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _files_url(self, store: str) -> str:
        return f"{self.endpoint}/api/stores/{quote(store, safe='')}/files"

    def _connection_error(self, error: httpx.RequestError) -> GemindexConnectionError:
        message = (
            f"Cannot connect to API server at {self.endpoint}\n\n"
            "Possible solutions:\n"
            "  1. Check if the API server is running\n"
            "  2. Verify the endpoint URL in your config file\n"
            "  3. Check your network connection\n\n"
            f"Original error: {error}"
        )
        return GemindexConnectionError(message, endpoint=self.endpoint)

    @staticmethod
    def _error_message(response: httpx.Response, default: str) -> str:
        """Extract an error message from a failed response.

        Args:
            response: Failed HTTP response
            default: Message used when the body carries none

        Returns:
            Error message including the status code
        """
        message = default
        try:
            if response.content:
                data = response.json()
                if isinstance(data, dict):
                    detail = (
                        data.get("message") or data.get("error") or data.get("detail")
                    )
                    if isinstance(detail, dict):
                        detail = detail.get("message")
                    if detail:
                        message = str(detail)
        except ValueError:
            text = response.text.strip()
            if text:
                message = text[:200]
        return f"HTTP {response.status_code}: {message}"

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, translating transport failures.

        Raises:
            GemindexConnectionError: If the server cannot be reached
            GemindexTransientError: If the request times out after connecting
        """
        client = self._get_client()
        try:
            return client.request(method, url, **kwargs)
        except (httpx.ConnectTimeout, httpx.PoolTimeout) as e:
            raise self._connection_error(e) from e
        except httpx.TimeoutException as e:
            raise GemindexTransientError(f"Request timed out: {e}") from e
        except httpx.RequestError as e:
            raise self._connection_error(e) from e

    # =========================
    # Store Operations
    # =========================

    def list_files(self, store: str) -> list[RemoteFile]:
        """List documents in a store.

        Args:
            store: Store name

        Returns:
            List of RemoteFile objects

        Raises:
            GemindexAPIError: If the listing fails
        """
        response = self._send("GET", self._files_url(store))
        if response.is_error:
            kind = classify_status(response.status_code)
            message = self._error_message(response, "Failed to list files")
            raise _error_for(
                kind, f"Failed to list files: {message}", response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise GemindexTransientError(
                "Invalid JSON response from server while listing files"
            ) from e

        # Both {"files": [...]} and a bare list are accepted
        if isinstance(data, list):
            files = data
        elif isinstance(data, dict):
            files = data.get("files") or []
        else:
            files = None
        if not isinstance(files, list) or not all(isinstance(f, dict) for f in files):
            raise GemindexTransientError(
                "Unexpected response from server while listing files"
            )

        remote_files = [RemoteFile.from_api_response(f) for f in files]
        logger.debug("Listed %d remote file(s) in store %s", len(remote_files), store)
        return remote_files

    def upload_file(
        self, store: str, file_path: Path, display_name: str
    ) -> UploadOutcome:
        """Upload a file to a store.

        The display name is sent explicitly in the ``config`` form field so the
        server records it as the document's original file name.

        Args:
            store: Store name
            file_path: Local file to upload
            display_name: Identity to record for the document

        Returns:
            UploadOutcome describing success or the classified failure
        """
        mime_type = mimetypes.guess_type(display_name)[0] or "application/octet-stream"
        try:
            with open(file_path, "rb") as f:
                response = self._send(
                    "POST",
                    self._files_url(store),
                    files={"file": (Path(display_name).name, f, mime_type)},
                    data={"config": json.dumps({"displayName": display_name})},
                )
        except GemindexAPIError as e:
            return UploadOutcome.failed(str(e), e.kind)
        except OSError as e:
            return UploadOutcome.failed(
                f"Cannot read {file_path}: {e}", ErrorKind.CLIENT
            )

        if response.is_error:
            return UploadOutcome.failed(
                self._error_message(response, "Upload failed"),
                classify_status(response.status_code),
            )
        logger.debug("Uploaded %s to store %s", display_name, store)
        return UploadOutcome.ok()

    def delete_file(self, store: str, name: str) -> None:
        """Delete a document from a store.

        Deleting a document that no longer exists is treated as success.

        Args:
            store: Store name
            name: Remote document identifier

        Raises:
            GemindexAPIError: If the deletion fails
        """
        url = f"{self._files_url(store)}/{quote(name, safe='')}"
        response = self._send("DELETE", url)
        if response.status_code == 404:
            logger.debug("Document %s already gone", name)
            return
        if response.is_error:
            kind = classify_status(response.status_code)
            message = self._error_message(response, "Failed to delete file")
            raise _error_for(
                kind, f"Failed to delete file: {message}", response.status_code
            )
        logger.debug("Deleted %s from store %s", name, store)
