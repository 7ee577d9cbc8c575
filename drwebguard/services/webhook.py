"""WebhookNotifier: POST scan results back to the Malice endpoint.

Delivery is best effort: failures are logged at WARNING level and never
propagate to the caller, so a broken callback cannot turn a finished scan
into an error.

Usage::

    notifier = WebhookNotifier(endpoint="http://malice:8080/results", proxy="")
    await notifier.send(scan_id, outcome.to_json_dict())
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

#: Maximum seconds to wait for the webhook to answer.
_HTTP_TIMEOUT = 10.0

MALICE_ID_HEADER = "X-Malice-ID"


class WebhookNotifier:
    """Sends scan results to the Malice webhook.

    Args:
        endpoint: Webhook URL (``MALICE_ENDPOINT``).
        proxy: Optional proxy URL (``MALICE_PROXY``).
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        endpoint: str,
        proxy: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._proxy = proxy or None
        self._transport = transport

    async def send(self, scan_id: str, payload: dict[str, Any]) -> bool:
        """POST *payload* with the ``X-Malice-ID`` header.

        Returns:
            ``True`` on a 2xx response, ``False`` otherwise.
        """
        if not self._endpoint:
            logger.warning("webhook callback requested but MALICE_ENDPOINT is not set")
            return False

        headers = {MALICE_ID_HEADER: scan_id}
        client_kwargs: dict[str, Any] = {"timeout": _HTTP_TIMEOUT}
        if self._transport is not None:
            client_kwargs["transport"] = self._transport
        elif self._proxy:
            client_kwargs["proxy"] = self._proxy

        try:
            async with httpx.AsyncClient(**client_kwargs) as client:
                response = await client.post(self._endpoint, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "webhook delivery failed (HTTP %d) scan_id=%s endpoint=%s",
                exc.response.status_code,
                scan_id,
                self._endpoint,
            )
            return False
        except httpx.RequestError as exc:
            logger.warning(
                "webhook network error scan_id=%s endpoint=%s: %s",
                scan_id,
                self._endpoint,
                exc,
            )
            return False

        logger.info("webhook delivered scan_id=%s status=%d", scan_id, response.status_code)
        return True
