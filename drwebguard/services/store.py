"""ElasticsearchStore: persistence of scan results into the Malice index.

Results are upserted into the shared Malice scan document, keyed by scan id
(``MALICE_SCANID`` or the file's SHA-256), under
``plugins.av.drweb``::

    POST /<index>/_update/<scan_id>
    {"doc": {"plugins": {"av": {"drweb": {...}}}}, "doc_as_upsert": true}

Other plugins write sibling keys into the same document, so a partial
update is used rather than a full document replace.

Usage::

    store = ElasticsearchStore("http://elasticsearch:9200")
    await store.store_plugin_results(scan_id, outcome.as_dict())
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from drwebguard.core.exceptions import DrWebError

logger = logging.getLogger(__name__)

PLUGIN_NAME = "drweb"
PLUGIN_CATEGORY = "av"

#: Maximum seconds to wait for a single request to Elasticsearch.
_HTTP_TIMEOUT = 10.0


class StoreError(DrWebError):
    """Raised when results cannot be written to Elasticsearch."""


class ElasticsearchStore:
    """Writes plugin results into the Malice Elasticsearch index.

    Args:
        url: Base URL of the Elasticsearch cluster.
        index: Index holding the Malice scan documents.
        http_client: Optional shared :class:`httpx.AsyncClient`.  When
            ``None`` a client is created per call.
    """

    def __init__(
        self,
        url: str,
        index: str = "malice",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._index = index
        self._http_client = http_client

    async def store_plugin_results(self, scan_id: str, data: dict[str, Any]) -> None:
        """Upsert *data* as this plugin's results for *scan_id*.

        Raises:
            StoreError: On a network error or non-2xx response.
        """
        endpoint = f"{self._url}/{self._index}/_update/{scan_id}"
        payload = build_upsert_payload(data)
        try:
            await self._post(endpoint, payload)
        except httpx.HTTPStatusError as exc:
            raise StoreError(
                f"failed to index malice/{PLUGIN_NAME} results: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.RequestError as exc:
            raise StoreError(f"failed to index malice/{PLUGIN_NAME} results: {exc}") from exc

        logger.info("stored results scan_id=%s index=%s", scan_id, self._index)

    async def _post(self, endpoint: str, payload: dict[str, Any]) -> None:
        if self._http_client is not None:
            response = await self._http_client.post(endpoint, json=payload, timeout=_HTTP_TIMEOUT)
            response.raise_for_status()
        else:
            async with httpx.AsyncClient(timeout=_HTTP_TIMEOUT) as client:
                response = await client.post(endpoint, json=payload)
                response.raise_for_status()


def build_upsert_payload(data: dict[str, Any]) -> dict[str, Any]:
    return {
        "doc": {"plugins": {PLUGIN_CATEGORY: {PLUGIN_NAME: data}}},
        "doc_as_upsert": True,
    }
