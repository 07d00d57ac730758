from __future__ import annotations

from typing import Any

import httpx

from agenda_auth.domain.entities.recovery_token import RecoveryChannel
from agenda_auth.domain.exceptions import NotificationTransportError


def post(
    *,
    channel: RecoveryChannel,
    provider: str,
    url: str,
    timeout_seconds: float,
    transport: httpx.BaseTransport | None = None,
    **kwargs: Any,
) -> httpx.Response:
    try:
        with httpx.Client(timeout=timeout_seconds, transport=transport) as client:
            response = client.post(url, **kwargs)
    except httpx.HTTPError as exc:
        raise NotificationTransportError(f"{provider} request failed: {exc}", channel=channel.value) from exc

    if response.status_code >= 400:
        raise NotificationTransportError(
            f"{provider} rejected the message: status={response.status_code} body={response.text[:200]}",
            channel=channel.value,
        )
    return response
