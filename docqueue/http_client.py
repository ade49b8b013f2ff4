"""HTTP client for calling back into the host application."""

import json
from typing import Any, Dict, Optional

import aiohttp

from docqueue.errors import RemoteHttpError


class AppHttpClient:
    """JSON POST client for the host application's task endpoints."""

    def __init__(
        self,
        base_url: str,
        secret: Optional[str] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize HTTP client.

        Args:
            base_url: Base URL of the host application (e.g., "http://localhost:3000")
            secret: Optional bearer secret sent in the Authorization header
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.secret = secret
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.secret:
            headers["Authorization"] = f"Bearer {self.secret}"
        return headers

    async def post_json(
        self, path: str, body: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        POST a JSON body and return the decoded JSON response.

        Raises:
            RemoteHttpError: If the request fails, the status is 400 or above,
                or the body is not a JSON object
        """
        url = f"{self.base_url}/{path.lstrip('/')}"

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            try:
                async with session.post(
                    url, json=body or {}, headers=self._headers()
                ) as resp:
                    response_body = await resp.text()

                    if resp.status >= 400:
                        raise RemoteHttpError(
                            status_code=resp.status,
                            message=f"POST {path} failed: {response_body or resp.reason}",
                            response_body=response_body,
                        )

                    try:
                        data = json.loads(response_body)
                    except ValueError as e:
                        raise RemoteHttpError(
                            status_code=resp.status,
                            message=f"POST {path} returned invalid JSON",
                            response_body=response_body,
                        ) from e

                    if not isinstance(data, dict):
                        raise RemoteHttpError(
                            status_code=resp.status,
                            message=f"POST {path} returned {type(data).__name__}, expected a JSON object",
                            response_body=response_body,
                        )
                    return data

            except aiohttp.ClientError as e:
                raise RemoteHttpError(
                    status_code=0,
                    message=f"Network error: {str(e)}",
                ) from e
