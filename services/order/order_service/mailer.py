"""
Order Service — Notification Dispatcher

Mailer Service (POST /send) にメールを 1 通送る。

  Success         → 店長 (store manager) 宛て: 新しい注文の概要
  InternalFailure → 管理者 (admin) 宛て: 障害の概要

SEND_MAILS が無効のときは何も送らずに Sent(delivered=False) を返す。
送信失敗は NotificationFailure として送出し、握りつぶすかどうかは呼び出し側が決める。
"""

import logging
from dataclasses import dataclass
from enum import Enum

import httpx

from .errors import NotificationFailure
from .models import EmailMessage, Order, OrderRequest

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    SUCCESS = "success"
    INTERNAL_FAILURE = "internal_failure"


@dataclass(frozen=True)
class NotificationContext:
    request: OrderRequest
    order: Order | None = None
    error: BaseException | None = None


@dataclass(frozen=True)
class Sent:
    message: EmailMessage
    delivered: bool


class NotificationDispatcher:
    def __init__(
        self,
        client: httpx.AsyncClient,
        mailer_url: str,
        enabled: bool,
        store_manager_email: str,
        admin_email: str,
        timeout_seconds: float,
    ):
        self.client = client
        self.mailer_url = mailer_url.rstrip("/")
        self.enabled = enabled
        self.store_manager_email = store_manager_email
        self.admin_email = admin_email
        self.timeout = timeout_seconds

    def build_message(
        self, kind: NotificationKind, context: NotificationContext
    ) -> EmailMessage:
        req = context.request
        if kind is NotificationKind.SUCCESS:
            order = context.order
            return EmailMessage(
                subject=f"New order {order.id}",
                body=(
                    f"A new {order.mode.value} order was placed.\n"
                    f"Order: {order.id}\n"
                    f"User: {order.user_id}\n"
                    f"Product: {order.product_id}\n"
                    f"Created at: {order.created_at.isoformat()}"
                ),
                recipient_address=self.store_manager_email,
            )

        error_name = type(context.error).__name__ if context.error else "unknown"
        return EmailMessage(
            subject=f"Order creation failed for user {req.user_id}",
            body=(
                "An order could not be created after the user was validated.\n"
                f"User: {req.user_id}\n"
                f"Product: {req.product_id}\n"
                f"Mode: {req.mode.value}\n"
                f"Error: {error_name}: {context.error}"
            ),
            recipient_address=self.admin_email,
        )

    async def notify(
        self, kind: NotificationKind, context: NotificationContext
    ) -> Sent:
        message = self.build_message(kind, context)
        if not self.enabled:
            logger.info("Mail sending disabled, skipping %s notification", kind.value)
            return Sent(message=message, delivered=False)

        try:
            resp = await self.client.post(
                f"{self.mailer_url}/send",
                json=message.model_dump(by_alias=True),
                timeout=self.timeout,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NotificationFailure(f"Mailer unreachable: {e!r}") from e

        if not resp.is_success:
            raise NotificationFailure(f"Mailer responded with {resp.status_code}")

        logger.info(
            "Sent %s notification to %s", kind.value, message.recipient_address
        )
        return Sent(message=message, delivered=True)
