"""Remote script invoker for the FileMaker OData script endpoint."""

from __future__ import annotations

import json
import logging

import httpx

from src.config import BackendConfig
from src.models import RemoteResponse

logger = logging.getLogger(__name__)


class RemoteCallError(Exception):
    """Raised when the outbound call could not complete.

    The message is safe to relay to callers: it never contains credentials
    or the underlying exception text.
    """


class ScriptInvoker:
    """Issues one POST per invocation and returns the decoded response.

    A non-2xx status with a JSON body is a normal return; interpreting it
    is left to the normalizer.
    """

    def __init__(
        self,
        config: BackendConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport

    @property
    def configured(self) -> bool:
        return self._config.configured

    @property
    def url(self) -> str:
        base = self._config.server.rstrip("/")
        return f"{base}/fmi/odata/v4/{self._config.database}/Script.{self._config.script}"

    async def invoke(self, script_param: str) -> RemoteResponse:
        if not self.configured:
            raise RemoteCallError("Remote backend is not configured")

        payload = {"scriptParameterValue": script_param}
        auth = httpx.BasicAuth(self._config.username, self._config.password)
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._config.timeout_seconds,
            ) as client:
                resp = await client.post(
                    self.url,
                    json=payload,
                    auth=auth,
                    headers={"Content-Type": "application/json"},
                )
        except httpx.TimeoutException as exc:
            logger.warning("Remote script call timed out: %s", type(exc).__name__)
            raise RemoteCallError("Remote script call timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("Remote script call failed: %s", type(exc).__name__)
            raise RemoteCallError("Remote script backend unavailable") from exc

        try:
            body = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.warning(
                "Remote script returned a non-JSON body (status %d)", resp.status_code,
            )
            raise RemoteCallError(
                f"Remote script returned an invalid response (status {resp.status_code})"
            ) from exc

        return RemoteResponse(status_code=resp.status_code, body=body)
