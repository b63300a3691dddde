"""HTTP clients for the remote analysis backend (files, vector stores, threads).

The clients perform exactly one HTTP call per method and translate failures
into the remote error taxonomy; retries are applied by the callers through the
backoff engine.
"""

from typing import Any, Dict, List, Optional

import httpx

from app.core.config import OpenAISettings
from app.core.exceptions import (
    APITimeoutError,
    PermanentRemoteError,
    TransientRemoteError,
)
from app.models.compliance import IndexStatusSnapshot
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BaseOpenAIClient:
    """Base client for backend API interactions.

    Handles headers, timeouts, response decoding and error translation.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            api_key: API key for authentication
            base_url: Base URL for the API
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self.logger = LOGGER

    @classmethod
    def from_settings(
        cls, config: OpenAISettings, transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        return cls(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.request_timeout,
            transport=transport,
        )

    def _headers(self, json_body: bool = True) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "assistants=v2",
        }
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def _request(
        self,
        method: str,
        endpoint: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Perform one HTTP call and return the decoded JSON body.

        Raises:
            APITimeoutError: The request timed out
            TransientRemoteError: Connection failure, HTTP 429 or 5xx
            PermanentRemoteError: Any other 4xx response
        """
        url = f"{self.base_url}{endpoint}"
        self.logger.debug(f"Calling backend API: {method} {url}")

        try:
            async with httpx.AsyncClient(
                timeout=timeout or self.timeout, transport=self._transport
            ) as client:
                response = await client.request(
                    method,
                    url,
                    headers=self._headers(json_body=files is None),
                    json=payload,
                    params=params,
                    files=files,
                    data=data,
                )
                response.raise_for_status()
                return response.json() if response.content else {}

        except httpx.HTTPStatusError as e:
            raise self._translate_status_error(e, method, endpoint) from e
        except httpx.TimeoutException as e:
            self.logger.warning(f"Backend API timeout: {method} {endpoint}")
            raise APITimeoutError(f"Request to {endpoint} timed out", original_error=e) from e
        except httpx.TransportError as e:
            self.logger.warning(f"Backend API connection error: {method} {endpoint}: {e}")
            raise TransientRemoteError(
                f"connection error calling {endpoint}: {e}", original_error=e
            ) from e

    def _translate_status_error(self, error: httpx.HTTPStatusError, method: str, endpoint: str):
        status_code = error.response.status_code
        detail = self._error_detail(error.response)
        message = f"OpenAI API Error: {status_code} - {detail}"

        self.logger.warning(
            f"Backend API HTTP error on {method} {endpoint}",
            extra={"status_code": status_code, "error_body": detail[:500]},
        )

        if status_code == 429 or status_code >= 500:
            return TransientRemoteError(message, status_code=status_code, original_error=error)
        return PermanentRemoteError(message, status_code=status_code, original_error=error)

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text
        error_info = body.get("error") if isinstance(body, dict) else None
        if isinstance(error_info, dict):
            return f"{error_info.get('code') or 'unknown'}: {error_info.get('message') or error_info}"
        return str(body)


class RemoteFileClient(BaseOpenAIClient):
    """Uploaded file storage on the backend."""

    def __init__(self, *args, upload_timeout: float = 600, **kwargs):
        super().__init__(*args, **kwargs)
        self.upload_timeout = upload_timeout

    @classmethod
    def from_settings(
        cls, config: OpenAISettings, transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        return cls(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.request_timeout,
            upload_timeout=config.upload_timeout,
            transport=transport,
        )

    async def upload(self, content: bytes, filename: str, purpose: str = "assistants") -> str:
        """Upload file bytes and return the remote file id."""
        data = await self._request(
            "POST",
            "/files",
            files={"file": (filename, content, "application/pdf")},
            data={"purpose": purpose},
            timeout=self.upload_timeout,
        )
        self.logger.info(f"Uploaded file to backend: {data.get('id')}")
        return data["id"]

    async def delete(self, file_id: str) -> bool:
        data = await self._request("DELETE", f"/files/{file_id}")
        return bool(data.get("deleted", True))

    async def get_details(self, file_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/files/{file_id}")


class RemoteIndexClient(BaseOpenAIClient):
    """Vector stores used as the per-document semantic index."""

    async def create(self, name: str, expires_after_days: int = 30) -> str:
        """Create an index that expires after a period of inactivity."""
        data = await self._request(
            "POST",
            "/vector_stores",
            payload={
                "name": name,
                "expires_after": {"anchor": "last_active_at", "days": expires_after_days},
            },
        )
        self.logger.info(f"Created vector store: {data.get('id')}")
        return data["id"]

    async def attach(self, index_id: str, file_id: str) -> Dict[str, Any]:
        return await self._request(
            "POST", f"/vector_stores/{index_id}/files", payload={"file_id": file_id}
        )

    async def get_status(self, index_id: str) -> IndexStatusSnapshot:
        data = await self._request("GET", f"/vector_stores/{index_id}")
        return IndexStatusSnapshot.from_payload(data)

    async def delete(self, index_id: str) -> bool:
        data = await self._request("DELETE", f"/vector_stores/{index_id}")
        return bool(data.get("deleted", True))


class ConversationClient(BaseOpenAIClient):
    """Threads, messages and runs against the checklist assistant."""

    def __init__(self, *args, assistant_id: str = "", model: Optional[str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.assistant_id = assistant_id
        self.model = model

    @classmethod
    def from_settings(
        cls, config: OpenAISettings, transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        return cls(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.request_timeout,
            assistant_id=config.assistant_id,
            model=config.model,
            transport=transport,
        )

    async def create_conversation(self, index_ids: List[str]) -> str:
        """Create a thread bound to the given vector stores."""
        data = await self._request(
            "POST",
            "/threads",
            payload={"tool_resources": {"file_search": {"vector_store_ids": list(index_ids)}}},
        )
        return data["id"]

    async def post_message(self, conversation_id: str, content: str) -> str:
        data = await self._request(
            "POST",
            f"/threads/{conversation_id}/messages",
            payload={"role": "user", "content": content},
        )
        return data["id"]

    async def start_run(self, conversation_id: str, tools: List[Dict[str, Any]]) -> str:
        payload: Dict[str, Any] = {"assistant_id": self.assistant_id, "tools": tools}
        if self.model:
            payload["model"] = self.model
        data = await self._request("POST", f"/threads/{conversation_id}/runs", payload=payload)
        return data["id"]

    async def get_run(self, conversation_id: str, run_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/threads/{conversation_id}/runs/{run_id}")

    async def acknowledge(
        self, conversation_id: str, run_id: str, call_ids: List[str]
    ) -> Dict[str, Any]:
        """Submit a no-op output for each pending tool call."""
        return await self._request(
            "POST",
            f"/threads/{conversation_id}/runs/{run_id}/submit_tool_outputs",
            payload={
                "tool_outputs": [
                    {"tool_call_id": call_id, "output": "acknowledged"} for call_id in call_ids
                ]
            },
        )

    async def list_messages(self, conversation_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        data = await self._request(
            "GET", f"/threads/{conversation_id}/messages", params={"limit": limit}
        )
        return data.get("data") or []
