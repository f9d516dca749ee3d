"""wicked portal API client.

Wraps the subset of the portal REST API needed for provisioning:
- Machine user lookup/creation
- Applications (get, create, patch)
- Subscriptions (list, create, delete)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from wicked.autodeploy import __version__
from wicked.autodeploy.errors import GatewayError, GatewayNotFoundError, decode_body
from wicked.autodeploy.gateway.models import (
    Application,
    ApplicationPatch,
    Subscription,
    SubscriptionRequest,
)

if TYPE_CHECKING:
    from wicked.autodeploy.config import ProvisionSettings

logger = logging.getLogger(__name__)

# Custom id prefix the portal uses for machine users
MACHINE_USER_PREFIX = "internal:"


class WickedClient:
    """Async client for the wicked portal API."""

    def __init__(
        self,
        settings: ProvisionSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._machine_user_id: str | None = None

    async def __aenter__(self) -> "WickedClient":
        self._client = httpx.AsyncClient(
            base_url=self._settings.wicked_api_url,
            timeout=self._settings.http_timeout,
            headers={
                "User-Agent": f"{self._settings.user_agent}/{__version__}",
                "Accept": "application/json",
            },
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def machine_user_id(self) -> str | None:
        return self._machine_user_id

    # -------------------------------------------------------------------------
    # Initialization
    # -------------------------------------------------------------------------

    async def initialize(self) -> None:
        """Check that the portal API is reachable."""
        logger.info("Initializing wicked: %s", self._settings.wicked_api_url)
        await self._request("GET", "/ping")

    async def init_machine_user(self, name: str) -> str:
        """Act as the machine user ``name``, creating it if necessary.

        Returns the machine user id.
        """
        custom_id = f"{MACHINE_USER_PREFIX}{name}"
        try:
            users = await self._request(
                "GET", "/users", params={"customId": custom_id}
            )
        except GatewayNotFoundError:
            users = []

        if users:
            if (
                not isinstance(users, list)
                or len(users) != 1
                or not isinstance(users[0], dict)
                or "id" not in users[0]
            ):
                raise GatewayError(
                    f"Unexpected answer looking up machine user {custom_id}",
                    body=users,
                )
            user_id = users[0]["id"]
            logger.debug("Found machine user %s (id=%s)", custom_id, user_id)
        else:
            created = await self._request(
                "POST",
                "/users",
                json={
                    "customId": custom_id,
                    "firstName": "Machine-User",
                    "lastName": name,
                    "email": f"{name}@wicked.haufe.io",
                    "validated": True,
                    "groups": ["admin"],
                },
            )
            if not isinstance(created, dict) or "id" not in created:
                raise GatewayError(
                    f"Creating machine user {custom_id} returned no id",
                    body=created,
                )
            user_id = created["id"]
            logger.info("Created machine user %s (id=%s)", custom_id, user_id)

        self._machine_user_id = user_id
        return user_id

    # -------------------------------------------------------------------------
    # HTTP helpers
    # -------------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        if self._machine_user_id:
            return {"X-Authenticated-UserId": self._machine_user_id}
        return {}

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        if self._client is None:
            raise GatewayError("Client is not open; use 'async with'")

        logger.debug("wicked: %s %s", method, path)
        try:
            response = await self._client.request(
                method, path, json=json, params=params, headers=self._headers()
            )
        except httpx.HTTPError as e:
            raise GatewayError(f"{method} {path} failed: {e}") from e

        return self._handle_response(response)

    def _handle_response(self, response: httpx.Response) -> Any:
        """Decode a response, raising on anything but 2xx."""
        body = decode_body(response)

        if response.status_code == 404:
            raise GatewayNotFoundError(
                f"Resource not found: {response.request.url}",
                status_code=404,
                body=body,
            )

        if not response.is_success:
            raise GatewayError(
                f"Unexpected response {response.status_code} from "
                f"{response.request.method} {response.request.url}",
                status_code=response.status_code,
                body=body,
            )

        return body

    # -------------------------------------------------------------------------
    # Applications
    # -------------------------------------------------------------------------

    async def get_application(self, app_id: str) -> Application | None:
        """Get an application, or None if it does not exist."""
        try:
            data = await self._request("GET", f"/applications/{quote(app_id)}")
        except GatewayNotFoundError:
            return None
        return Application.model_validate(data)

    async def create_application(self, application: Application) -> None:
        logger.debug("Creating application: %s", application.id)
        await self._request(
            "POST",
            "/applications",
            json=application.to_wire(),
        )

    async def patch_application(self, app_id: str, patch: ApplicationPatch) -> None:
        logger.debug("Patching application: %s", app_id)
        await self._request(
            "PATCH",
            f"/applications/{quote(app_id)}",
            json=patch.to_wire(),
        )

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    async def get_subscriptions(self, app_id: str) -> list[Subscription]:
        """List all subscriptions of an application."""
        data = await self._request(
            "GET", f"/applications/{quote(app_id)}/subscriptions"
        )
        return [Subscription.model_validate(s) for s in data or []]

    async def create_subscription(
        self, app_id: str, request: SubscriptionRequest
    ) -> Subscription:
        """Create a subscription and return it with its issued credentials."""
        logger.debug("Creating subscription: %s -> %s", app_id, request.api)
        data = await self._request(
            "POST",
            f"/applications/{quote(app_id)}/subscriptions",
            json=request.to_wire(),
        )
        return Subscription.model_validate(data)

    async def delete_subscription(self, app_id: str, api_id: str) -> None:
        logger.debug("Deleting subscription: %s -> %s", app_id, api_id)
        await self._request(
            "DELETE",
            f"/applications/{quote(app_id)}/subscriptions/{quote(api_id)}",
        )
