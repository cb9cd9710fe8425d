"""
Async HTTP client for the public tax registries, built on aiohttp.

Each instance talks to one registry. Calls are made once; callers decide
whether a failed lookup falls back to stored data. Every call is reported
through `record_registry_call`, and transport failures surface as
`RegistryUnavailableError`.
"""

import asyncio
import time
from typing import Optional, Dict, Any, Awaitable, Callable
import aiohttp

from ledgercrm.core.exceptions import RegistryUnavailableError
from ledgercrm.core.integrations.observability import record_registry_call


class HttpClient:
    """aiohttp session wrapper bound to a single registry."""

    def __init__(self, registry: str, base_url: str, timeout: int = 10):
        """
        Args:
            registry: Short registry name used in logs and errors ("vies", "whitelist")
            base_url: Endpoint root for all requests
            timeout: Total request timeout in seconds
        """
        self.registry = registry
        self.base_url = base_url
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    def _build_url(self, path: str) -> str:
        if not path:
            return self.base_url
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    async def _call(
        self,
        method: str,
        path: str,
        read: Callable[[aiohttp.ClientResponse], Awaitable[Any]],
        **kwargs: Any,
    ) -> Any:
        session = await self._get_session()
        started = time.monotonic()

        def elapsed_ms() -> int:
            return int((time.monotonic() - started) * 1000)

        try:
            async with session.request(method, self._build_url(path), **kwargs) as response:
                # SOAP faults come back as HTTP 500 with a readable body
                if response.status >= 400 and response.content_type not in ("text/xml", "application/soap+xml"):
                    response.raise_for_status()
                body = await read(response)
        except asyncio.TimeoutError as e:
            record_registry_call(self.registry, "timeout", elapsed_ms())
            raise RegistryUnavailableError(self.registry, "timeout", timed_out=True) from e
        except aiohttp.ClientError as e:
            record_registry_call(self.registry, "error", elapsed_ms(), str(e))
            raise RegistryUnavailableError(self.registry, str(e)) from e
        except ValueError as e:
            # Undecodable body on a 2xx answer (JSONDecodeError, UnicodeDecodeError)
            record_registry_call(self.registry, "error", elapsed_ms(), f"malformed response: {e}")
            raise RegistryUnavailableError(self.registry, f"malformed response: {e}") from e

        record_registry_call(self.registry, "ok", elapsed_ms())
        return body

    async def get_json(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """GET `path` and decode the JSON body."""
        return await self._call(
            "GET",
            path,
            lambda r: r.json(content_type=None),
            params=params,
            headers={"Accept": "application/json"},
        )

    async def post_soap(self, envelope: str, path: str = "") -> str:
        """POST a SOAP envelope and return the raw response text."""
        return await self._call(
            "POST",
            path,
            lambda r: r.text(),
            data=envelope.encode("utf-8"),
            headers={"Content-Type": "text/xml; charset=utf-8", "SOAPAction": ""},
        )
