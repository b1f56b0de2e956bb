"""
Remote TTM Server
Read-only backend that asks another translation memory service over HTTP.

The remote side answers ``GET {url}/api/ttm/query`` with
``{"ttmserver": [{"source": ..., "target": ..., "quality": ...}, ...]}``.
"""
import logging
from typing import Dict, List, Mapping, Optional

import httpx

from ..base import TTMServer, sort_suggestions
from ..exceptions import ConfigurationError, PermanentQueryError, QueryTimeoutError, TransientBackendError
from ..models import BackendConfig, Suggestion

logger = logging.getLogger(__name__)

QUERY_PATH = "/api/ttm/query"


class RemoteTTMServer(TTMServer):
    """Queries a public translation memory of another installation."""

    def __init__(
        self,
        config: BackendConfig,
        wiki_id: str = "default",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
        async_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(config, wiki_id)
        if not config.url:
            raise ConfigurationError(f"'{config.name}': remote service needs a url", service=config.name)
        self.base_url = config.url.rstrip("/")
        self.timeout = httpx.Timeout(config.timeout or timeout)
        self._transport = transport
        self._async_transport = async_transport

    def _params(self, source_language: str, target_language: str, text: str) -> Dict[str, str]:
        return {"source": source_language, "target": target_language, "text": text}

    def query(self, source_language: str, target_language: str, text: str) -> List[Suggestion]:
        if not text or not text.strip():
            return []
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                resp = client.get(
                    f"{self.base_url}{QUERY_PATH}",
                    params=self._params(source_language, target_language, text),
                )
        except httpx.TimeoutException as e:
            raise QueryTimeoutError(f"{self.name}: remote query timed out", service=self.name) from e
        except httpx.RequestError as e:
            raise TransientBackendError(f"{self.name}: remote query failed: {e}", service=self.name) from e
        return self._parse(resp)

    async def query_async(self, source_language: str, target_language: str, text: str) -> List[Suggestion]:
        if not text or not text.strip():
            return []
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._async_transport) as client:
                resp = await client.get(
                    f"{self.base_url}{QUERY_PATH}",
                    params=self._params(source_language, target_language, text),
                )
        except httpx.TimeoutException as e:
            raise QueryTimeoutError(f"{self.name}: remote query timed out", service=self.name) from e
        except httpx.RequestError as e:
            raise TransientBackendError(f"{self.name}: remote query failed: {e}", service=self.name) from e
        return self._parse(resp)

    def _parse(self, resp: httpx.Response) -> List[Suggestion]:
        if resp.status_code >= 500 or resp.status_code == 429:
            raise TransientBackendError(
                f"{self.name}: remote returned HTTP {resp.status_code}", service=self.name
            )
        if resp.status_code != 200:
            raise PermanentQueryError(f"{self.name}: remote returned HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise TransientBackendError(f"{self.name}: invalid JSON from remote", service=self.name) from e

        items = data.get("ttmserver", []) if isinstance(data, Mapping) else None
        if not isinstance(items, list):
            raise TransientBackendError(f"{self.name}: malformed response from remote", service=self.name)
        try:
            suggestions = [Suggestion.from_dict(item) for item in items if isinstance(item, Mapping)]
        except (TypeError, ValueError) as e:
            raise TransientBackendError(
                f"{self.name}: malformed suggestion from remote: {e}", service=self.name
            ) from e
        return sort_suggestions(suggestions)

    def expand_location(self, suggestion: Suggestion) -> str:
        return suggestion.uri or suggestion.location
