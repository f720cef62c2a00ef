"""HTTP transport for the remote file store's sync API.

Handles network communication with retry logic. The API is:

- ``GET  /api/sync``  -> ``{"remoteMeta": snapshot | null}``
- ``POST /api/sync``  with an ``action`` of ``pushFiles``, ``pullDirect``
  or ``resolve``
- ``GET  /api/settings/edit-history?filePath=...``  -> ``{"entries": [...]}``
- ``DELETE /api/settings/edit-history`` with ``{"filePath": ...}``
"""

import asyncio
import logging
from typing import Any

import httpx

from .meta import RemoteSnapshot

logger = logging.getLogger(__name__)


class RemoteClient:
    """Client for the remote metadata, push and pull endpoints.

    Every call returns ``(data, error)``; network failures never raise.
    """

    def __init__(
        self,
        remote_url: str | None = None,
        max_retries: int = 3,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
    ):
        """Initialize the remote client.

        Args:
            remote_url: Base URL of the sync API (e.g., "http://localhost:8132").
            max_retries: Maximum retry attempts.
            timeout: Request timeout in seconds.
            headers: Extra headers sent with every request (e.g. auth).
        """
        self.remote_url = remote_url
        self.max_retries = max_retries
        self.timeout = timeout
        self.headers = headers or {}
        self.consecutive_failures = 0

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        json_data: Any = None,
        params: dict[str, str] | None = None,
    ) -> tuple[Any, str | None]:
        """Make HTTP request with exponential backoff retry.

        Args:
            method: HTTP method (GET, POST, DELETE).
            path: URL path to append to remote_url.
            json_data: Optional JSON body.
            params: Optional query parameters.

        Returns:
            Tuple of (response_data, error_message).
        """
        if not self.remote_url:
            return None, "No remote URL configured"

        url = f"{self.remote_url.rstrip('/')}{path}"
        backoff = 1.0

        async with httpx.AsyncClient(timeout=self.timeout, headers=self.headers) as client:
            for attempt in range(self.max_retries):
                try:
                    if method == "GET":
                        response = await client.get(url, params=params)
                    elif method == "POST":
                        response = await client.post(url, json=json_data, params=params)
                    elif method == "DELETE":
                        # httpx.delete() takes no body
                        response = await client.request(
                            "DELETE", url, json=json_data, params=params
                        )
                    else:
                        return None, f"Unsupported method: {method}"

                    if response.status_code == 200:
                        self.consecutive_failures = 0
                        return response.json(), None

                    elif response.status_code >= 500:
                        logger.warning(
                            f"Server error {response.status_code}, "
                            f"attempt {attempt + 1}/{self.max_retries}"
                        )
                    else:
                        # Client error, don't retry
                        return None, f"HTTP {response.status_code}: {response.text}"

                except httpx.ConnectError:
                    logger.warning(
                        f"Connection failed, attempt {attempt + 1}/{self.max_retries}"
                    )
                except httpx.TimeoutException:
                    logger.warning(
                        f"Request timeout, attempt {attempt + 1}/{self.max_retries}"
                    )
                except (httpx.HTTPError, ValueError) as e:
                    logger.error(f"Request error: {e}")
                    return None, str(e)

                if attempt < self.max_retries - 1:
                    await asyncio.sleep(backoff)
                    backoff *= 2

        self.consecutive_failures += 1
        return None, f"Connection failed: max retries ({self.max_retries}) exceeded"

    async def fetch_snapshot(self) -> tuple[RemoteSnapshot | None, str | None]:
        """Fetch the current remote metadata snapshot.

        Returns:
            (snapshot, error). A remote without sync metadata yields
            (None, None).
        """
        data, error = await self._request_with_retry("GET", "/api/sync")
        if error:
            return None, error
        meta = (data or {}).get("remoteMeta")
        if not meta:
            return None, None
        try:
            return RemoteSnapshot.from_dict(meta), None
        except (KeyError, TypeError, AttributeError) as e:
            return None, f"Malformed remote snapshot: {e}"

    async def push_files(
        self,
        files: list[dict[str, str]],
        snapshot: RemoteSnapshot | None,
    ) -> tuple[dict[str, Any] | None, str | None]:
        """Upload file contents.

        Args:
            files: ``[{"fileId": ..., "content": ...}]``.
            snapshot: Snapshot the push was computed against.

        Returns:
            ``({"results": [...], "remoteMeta": ..., "skippedFileIds": [...]}, error)``.
        """
        return await self._request_with_retry(
            "POST",
            "/api/sync",
            {
                "action": "pushFiles",
                "files": files,
                "remoteMeta": snapshot.to_dict() if snapshot else None,
            },
        )

    async def pull_files(
        self, file_ids: list[str]
    ) -> tuple[list[dict[str, Any]] | None, str | None]:
        """Download file contents as ``[{"fileId": ..., "content": ...}]``."""
        data, error = await self._request_with_retry(
            "POST", "/api/sync", {"action": "pullDirect", "fileIds": file_ids}
        )
        if error:
            return None, error
        return (data or {}).get("files", []), None

    async def resolve_conflict(
        self, file_id: str, choice: str, content: str | None
    ) -> tuple[dict[str, Any] | None, str | None]:
        """Settle a conflict on the remote side.

        With ``choice == "local"`` the remote copy is overwritten with
        ``content``; with ``"remote"`` the local copy is backed up remotely and
        the response carries the remote content as ``file``.
        """
        return await self._request_with_retry(
            "POST",
            "/api/sync",
            {
                "action": "resolve",
                "fileId": file_id,
                "choice": choice,
                "localContent": content,
            },
        )

    async def fetch_history(
        self, file_path: str
    ) -> tuple[list[dict[str, Any]] | None, str | None]:
        """Fetch the remote edit history of one file.

        Entries carry ``id``, ``timestamp``, ``source``, ``diff`` and
        ``stats``, oldest first.
        """
        data, error = await self._request_with_retry(
            "GET", "/api/settings/edit-history", params={"filePath": file_path}
        )
        if error:
            return None, error
        entries = (data or {}).get("entries") or []
        if not isinstance(entries, list):
            return None, "Malformed edit history response"
        return entries, None

    async def clear_history(self, file_path: str) -> tuple[bool, str | None]:
        """Drop the remote edit history of one file."""
        data, error = await self._request_with_retry(
            "DELETE", "/api/settings/edit-history", {"filePath": file_path}
        )
        if error:
            return False, error
        return bool((data or {}).get("success")), None
