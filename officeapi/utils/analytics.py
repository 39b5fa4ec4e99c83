import asyncio
from typing import Any, Optional

import httpx
from loguru import logger

from .constants import Server, _Server


class Analytics:
    """
    Fire-and-forget event sender for the Google Analytics measurement protocol.

    Sending never blocks the caller and its failures never reach it: they are
    logged and dropped.

    Args:
        client: HTTP client used for sending, closed by `aclose`.
        measurement_id: Google Analytics measurement ID. Disabled when empty.
        api_secret: Measurement protocol API secret. Disabled when empty.
        endpoint: Collection URL.
        app_name: Added to the parameters of every event.
        app_version: Added to the parameters of every event.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        measurement_id: Optional[str],
        api_secret: Optional[str],
        endpoint: str = Server.GA_ENDPOINT,
        app_name: str = Server.APP_NAME,
        app_version: str = Server.APP_VERSION,
    ) -> None:
        self.client = client
        self.measurement_id = measurement_id
        self.api_secret = api_secret
        self.endpoint = endpoint
        self.app_name = app_name
        self.app_version = app_version
        self._pending: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: _Server = Server) -> "Analytics":
        return cls(
            client=httpx.AsyncClient(timeout=5.0),
            measurement_id=settings.GA_MEASUREMENT_ID,
            api_secret=settings.GA_API_SECRET,
            endpoint=settings.GA_ENDPOINT,
            app_name=settings.APP_NAME,
            app_version=settings.APP_VERSION,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.measurement_id and self.api_secret)

    def track(self, event: str, **params: Any) -> None:
        """
        Schedule an event to be sent in the background and return immediately.

        Must be called from a running event loop.

        Args:
            event: Event name, letters, digits and underscores only.
            **params: Extra event parameters.
        """
        if not self.enabled:
            logger.trace(f"Analytics disabled, dropping event '{event}'")
            return
        task = asyncio.get_running_loop().create_task(self._send(event, params))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, event: str, params: dict[str, Any]) -> None:
        payload = {
            "client_id": "anonymous",
            "events": [
                {
                    "name": event,
                    "params": {
                        "app_name": self.app_name,
                        "app_version": self.app_version,
                        **params,
                    },
                }
            ],
        }
        try:
            response = await self.client.post(
                self.endpoint,
                params={
                    "measurement_id": self.measurement_id,
                    "api_secret": self.api_secret,
                },
                json=payload,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error(f"Failed to send event '{event}' to Google Analytics: {exc}")
            return
        logger.debug(f"Sent event '{event}' to Google Analytics")

    async def flush(self) -> None:
        """Wait until every scheduled event has been sent or dropped."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def aclose(self) -> None:
        """Flush pending events, then close the HTTP client."""
        await self.flush()
        await self.client.aclose()
