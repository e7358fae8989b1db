"""Client for the conversation history API.

Handles bearer authentication and retries with exponential backoff. Rate
limiting (429) and server errors (5xx) are retried, as are connection
failures and timeouts; other client errors fail immediately.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from ..credentials import TokenProvider
from ..errors import DeliveryError
from ..sync.delta import Delta
from ..sync.hashing import dumps
from ..sync.state import utc_now

logger = logging.getLogger(__name__)


@dataclass
class SyncResponse:
    """Server response to a session upload."""

    success: bool
    processed: int = 0
    session_id: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncResponse":
        return cls(
            success=bool(data.get("success")),
            processed=data.get("processed") or 0,
            session_id=data.get("sessionId") or "",
        )


def _is_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class HistoryClient:
    """Client for listing remote conversation hashes and uploading deltas."""

    def __init__(
        self,
        endpoint: str,
        machine_id: str,
        token_provider: TokenProvider,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            endpoint: Base URL of the history API.
            machine_id: Identifier of this machine, sent with every request.
            token_provider: Source of bearer tokens.
            timeout: Request timeout in seconds.
            max_retries: Retries after the first attempt.
            backoff_seconds: Initial backoff, doubled after each retry.
            transport: Optional httpx transport, mainly for tests.
        """
        self.endpoint = endpoint.rstrip("/")
        self.machine_id = machine_id
        self.token_provider = token_provider
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.endpoint,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HistoryClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _request(self, method: str, path: str, json_data: Any = None) -> httpx.Response:
        token = await self.token_provider.get_token()
        client = await self._get_client()
        content = None if json_data is None else dumps(json_data).encode("utf-8")
        return await client.request(
            method,
            path,
            content=content,
            headers={
                "Authorization": f"Bearer {token}",
                "X-Machine-ID": self.machine_id,
                "Content-Type": "application/json",
            },
        )

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        json_data: Any = None,
    ) -> Any:
        """Make an HTTP request with exponential backoff retry.

        Args:
            method: HTTP method (GET, POST).
            path: URL path appended to the endpoint.
            json_data: Optional JSON body.

        Returns:
            Decoded JSON response body.

        Raises:
            DeliveryError: If the request fails after all retries or with a
                non-retryable status.
            CredentialError: If no token is available.
        """
        attempts = self.max_retries + 1
        backoff = self.backoff_seconds
        last_error: DeliveryError | None = None

        for attempt in range(attempts):
            if attempt > 0:
                # Cancellation interrupts the wait immediately
                await asyncio.sleep(backoff)
                backoff *= 2

            try:
                response = await self._request(method, path, json_data)
            except (httpx.ConnectError, httpx.TimeoutException) as e:
                logger.warning(
                    f"{method} {path} failed ({type(e).__name__}), "
                    f"attempt {attempt + 1}/{attempts}"
                )
                last_error = DeliveryError(f"{method} {path}: {e}")
                continue
            except httpx.HTTPError as e:
                raise DeliveryError(f"{method} {path}: {e}") from e

            if response.is_success:
                try:
                    return response.json()
                except ValueError as e:
                    raise DeliveryError(
                        f"{method} {path}: invalid JSON response",
                        status_code=response.status_code,
                    ) from e

            error = DeliveryError(
                f"HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
            if not _is_retryable(response.status_code):
                raise error

            logger.warning(
                f"{method} {path} returned {response.status_code}, "
                f"attempt {attempt + 1}/{attempts}"
            )
            last_error = error

        raise DeliveryError(
            f"max retries exceeded: {last_error}",
            status_code=last_error.status_code if last_error else None,
        )

    async def get_conversation_hashes(self) -> dict[str, str]:
        """Fetch the content hash of every conversation the server has.

        Returns:
            Mapping of session ID to content hash.
        """
        data = await self._request_with_retry("GET", "/conversations")
        if not isinstance(data, dict):
            raise DeliveryError("GET /conversations: unexpected response body")

        hashes = {}
        for conversation in data.get("conversations") or []:
            if not isinstance(conversation, dict):
                continue
            session_id = conversation.get("sessionId")
            if session_id:
                hashes[session_id] = conversation.get("hash") or ""

        logger.debug(f"Server reported {data.get('total', len(hashes))} conversations")
        return hashes

    async def sync_session(self, delta: Delta) -> SyncResponse:
        """Upload the new messages of one session.

        Args:
            delta: Messages to upload with their session identity.

        Returns:
            The server's SyncResponse.
        """
        payload = {
            "machineId": self.machine_id,
            "sessionId": delta.session_id,
            "projectPath": delta.project_path,
            "messages": [m.to_dict() for m in delta.messages],
            "timestamp": utc_now(),
        }

        data = await self._request_with_retry("POST", "/sync", payload)
        if not isinstance(data, dict):
            raise DeliveryError("POST /sync: unexpected response body")
        return SyncResponse.from_dict(data)
