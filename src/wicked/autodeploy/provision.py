"""Reconcile the application, subscription and secret for one app/API pair.

Each step fetches the current remote state, compares it with the desired
state and issues the smallest set of writes that converges the two. Steps
run strictly one after another; the first failure aborts the run.

Subscription plan changes
-------------------------
A subscription whose plan differs from the desired one is deleted and a new
one is created in the same pass, so the secret step always receives fresh
credentials.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from wicked.autodeploy.audit import AuditLogger
from wicked.autodeploy.errors import CredentialShapeError
from wicked.autodeploy.gateway.models import (
    Application,
    ApplicationPatch,
    Subscription,
    SubscriptionRequest,
)

if TYPE_CHECKING:
    from wicked.autodeploy.config import ProvisionSettings

logger = logging.getLogger(__name__)


class Gateway(Protocol):
    async def get_application(self, app_id: str) -> Application | None: ...

    async def create_application(self, application: Application) -> None: ...

    async def patch_application(self, app_id: str, patch: ApplicationPatch) -> None: ...

    async def get_subscriptions(self, app_id: str) -> list[Subscription]: ...

    async def create_subscription(
        self, app_id: str, request: SubscriptionRequest
    ) -> Subscription: ...

    async def delete_subscription(self, app_id: str, api_id: str) -> None: ...


class SecretStore(Protocol):
    async def get(self, path: str) -> Any: ...

    async def post(self, path: str, body: Any) -> Any: ...

    async def delete(self, path: str) -> Any: ...


@dataclass
class SubscriptionOutcome:
    """Subscription to use for the secret, and how it was obtained."""

    subscription: Subscription
    action: str  # "created", "unchanged", "recreated"


@dataclass
class ProvisionResult:
    """What a provisioning run did."""

    application: str | None = None  # "created", "patched", "unchanged"
    subscription: str | None = None  # "created", "unchanged", "recreated"
    secret: str | None = None  # "created", "replaced", "skipped"
    secret_keys: list[str] = field(default_factory=list)

    def summary(self) -> str:
        lines = []
        if self.application:
            lines.append(f"Application: {self.application}")
        if self.subscription:
            lines.append(f"Subscription: {self.subscription}")
        if self.secret:
            line = f"Secret: {self.secret}"
            if self.secret_keys:
                line += f" ({', '.join(self.secret_keys)})"
            lines.append(line)
        if not lines:
            lines.append("Nothing was done")
        return "\n".join(lines)


# -----------------------------------------------------------------------------
# Application
# -----------------------------------------------------------------------------


def _application_matches(
    current: Application, redirect_uris: list[str], client_type: str
) -> bool:
    if "|".join(current.redirect_uris) != "|".join(redirect_uris):
        return False
    return current.client_type == client_type


async def reconcile_application(
    gateway: Gateway,
    app_id: str,
    redirect_uris: list[str],
    client_type: str,
    audit: AuditLogger | None = None,
) -> str:
    """Create the application, or patch it if it has drifted.

    Returns "created", "patched" or "unchanged".
    """
    audit = audit or AuditLogger(enabled=False)
    logger.info("Create application if not present")

    current = await gateway.get_application(app_id)

    if current is None:
        logger.info("Creating application...")
        await gateway.create_application(
            Application(
                id=app_id,
                name=f"{app_id} (auto generated)",
                client_type=client_type,
                redirect_uris=list(redirect_uris),
            )
        )
        audit.log_change(
            "application_created",
            app_id=app_id,
            client_type=client_type,
            redirect_uris=list(redirect_uris),
        )
        return "created"

    logger.info("Application is already present.")
    if _application_matches(current, redirect_uris, client_type):
        logger.info("Application does not need patch.")
        return "unchanged"

    logger.info("** Application has changed, patching...")
    await gateway.patch_application(
        app_id,
        ApplicationPatch(
            id=app_id,
            client_type=client_type,
            redirect_uris=list(redirect_uris),
        ),
    )
    audit.log_change(
        "application_patched",
        app_id=app_id,
        client_type=client_type,
        redirect_uris=list(redirect_uris),
        previous_client_type=current.client_type,
        previous_redirect_uris=current.redirect_uris,
    )
    return "patched"


# -----------------------------------------------------------------------------
# Subscription
# -----------------------------------------------------------------------------


async def reconcile_subscription(
    gateway: Gateway,
    app_id: str,
    api_id: str,
    plan_id: str,
    audit: AuditLogger | None = None,
) -> SubscriptionOutcome:
    """Make sure ``app_id`` is subscribed to ``api_id`` under ``plan_id``."""
    audit = audit or AuditLogger(enabled=False)
    logger.info("Creating subscription if not present...")

    subscriptions = await gateway.get_subscriptions(app_id)
    current = next((s for s in subscriptions if s.api == api_id), None)

    action = "created"
    if current is not None:
        logger.info("Subscription is present.")
        if current.plan == plan_id:
            logger.info("Subscription is correct, not changing.")
            return SubscriptionOutcome(subscription=current, action="unchanged")

        logger.info("** Plan ID has changed, deleting...")
        await gateway.delete_subscription(app_id, api_id)
        audit.log_change(
            "subscription_deleted",
            app_id=app_id,
            api_id=api_id,
            plan=current.plan,
        )
        action = "recreated"

    logger.info("Creating subscription...")
    created = await gateway.create_subscription(
        app_id,
        SubscriptionRequest(application=app_id, api=api_id, plan=plan_id),
    )
    audit.log_change(
        "subscription_created",
        app_id=app_id,
        api_id=api_id,
        plan=plan_id,
    )
    return SubscriptionOutcome(subscription=created, action=action)


# -----------------------------------------------------------------------------
# Secret
# -----------------------------------------------------------------------------


def build_secret_data(subscription: Subscription) -> dict[str, str]:
    """Credentials of a subscription as Kubernetes secret string data.

    Raises:
        CredentialShapeError: the subscription holds neither credential shape.
    """
    if subscription.client_id and subscription.client_secret:
        return {
            "client_id": subscription.client_id,
            "client_secret": subscription.client_secret,
        }
    if subscription.apikey:
        return {"api_key": subscription.apikey}

    message = "Subscription contains neither client_id and client_secret nor apikey"
    logger.error(
        "%s: application=%s api=%s plan=%s",
        message,
        subscription.application,
        subscription.api,
        subscription.plan,
    )
    raise CredentialShapeError(
        message,
        body={
            "application": subscription.application,
            "api": subscription.api,
            "plan": subscription.plan,
        },
    )


async def upsert_secret(
    cluster: SecretStore,
    subscription: Subscription,
    secret_name: str,
    namespace: str,
    audit: AuditLogger | None = None,
) -> str:
    """Replace the secret ``secret_name`` with the subscription's credentials.

    The secret is deleted if present and then created again; its contents are
    never compared. Returns "replaced" or "created".
    """
    audit = audit or AuditLogger(enabled=False)

    string_data = build_secret_data(subscription)

    secrets_path = f"namespaces/{namespace}/secrets"
    secret_path = f"{secrets_path}/{secret_name}"

    action = "created"
    existing = await cluster.get(secret_path)
    if existing:
        await cluster.delete(secret_path)
        audit.log_change(
            "secret_deleted", namespace=namespace, secret_name=secret_name
        )
        action = "replaced"

    await cluster.post(
        secrets_path,
        {
            "metadata": {"name": secret_name},
            "stringData": string_data,
        },
    )
    audit.log_change(
        "secret_created",
        namespace=namespace,
        secret_name=secret_name,
        keys=sorted(string_data),
    )
    return action


# -----------------------------------------------------------------------------
# Run
# -----------------------------------------------------------------------------


async def run_provisioning(
    settings: ProvisionSettings,
    gateway: Gateway,
    cluster: SecretStore | None,
    audit: AuditLogger | None = None,
) -> ProvisionResult:
    """Run all steps for the configured app/API pair.

    ``cluster`` None skips the Kubernetes secret.
    """
    result = ProvisionResult()

    result.application = await reconcile_application(
        gateway,
        settings.app_id,
        settings.redirect_uris,
        settings.client_type,
        audit=audit,
    )

    outcome = await reconcile_subscription(
        gateway,
        settings.app_id,
        settings.api_id,
        settings.plan_id,
        audit=audit,
    )
    result.subscription = outcome.action

    if cluster is None:
        logger.warning(
            "Detected env var IGNORE_K8S - not upserting Kubernetes secret."
        )
        result.secret = "skipped"
        return result

    result.secret = await upsert_secret(
        cluster,
        outcome.subscription,
        settings.secret_name,
        settings.namespace,
        audit=audit,
    )
    result.secret_keys = sorted(build_secret_data(outcome.subscription))
    return result
