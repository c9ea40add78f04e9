"""Push delivery: device token registry and HTTP transport."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, DefaultDict

import httpx

from notification_engine.config import Settings
from notification_engine.domain.exceptions import TransportError

logger = logging.getLogger(__name__)

SUPPORTED_PLATFORMS = frozenset({"web", "android", "ios"})


@dataclass(frozen=True)
class DeviceRegistration:
    token: str
    platform: str


class DeviceTokenRegistry:
    """Process-local map of user ids to registered device tokens.

    Registrations are lost on restart and are not shared between processes.
    """

    def __init__(self) -> None:
        self._devices: DefaultDict[str, dict[str, str]] = defaultdict(dict)

    def subscribe(self, user_id: str, token: str, platform: str) -> DeviceRegistration:
        normalized = platform.strip().lower()
        if normalized not in SUPPORTED_PLATFORMS:
            allowed = ", ".join(sorted(SUPPORTED_PLATFORMS))
            raise ValueError(f"platform must be one of {allowed}")
        if not token.strip():
            raise ValueError("device token cannot be empty")
        self._devices[user_id][token.strip()] = normalized
        logger.info("Registered %s device for user %s", normalized, user_id)
        return DeviceRegistration(token=token.strip(), platform=normalized)

    def unsubscribe(self, user_id: str, token: str) -> bool:
        devices = self._devices.get(user_id)
        if not devices or token not in devices:
            return False
        devices.pop(token)
        if not devices:
            self._devices.pop(user_id, None)
        return True

    def devices_for(self, user_id: str) -> list[DeviceRegistration]:
        return [
            DeviceRegistration(token=token, platform=platform)
            for token, platform in self._devices.get(user_id, {}).items()
        ]


class HttpPushTransport:
    """Send push messages to a single device through an HTTP push gateway.

    When no endpoint is configured the delivery is simulated and logged.
    """

    def __init__(
        self,
        endpoint_url: str | None,
        *,
        server_key: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint_url = endpoint_url
        self._server_key = server_key
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpPushTransport":
        return cls(
            settings.push_endpoint_url,
            server_key=settings.push_server_key,
            timeout=settings.push_timeout_seconds,
        )

    async def send_to_device(
        self,
        *,
        device_token: str,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
    ) -> bool:
        if not self._endpoint_url:
            logger.info("Push endpoint not configured; simulating delivery to %s", device_token)
            return True

        headers = {"Content-Type": "application/json"}
        if self._server_key:
            headers["Authorization"] = f"key={self._server_key}"
        message = {
            "to": device_token,
            "notification": {"title": title, "body": body},
            "data": data or {},
        }
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(self._endpoint_url, json=message, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TransportError(
                f"Push gateway rejected delivery ({exc.response.status_code})"
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Push gateway unreachable: {exc}") from exc
        return True


__all__ = [
    "DeviceRegistration",
    "DeviceTokenRegistry",
    "HttpPushTransport",
    "SUPPORTED_PLATFORMS",
]
