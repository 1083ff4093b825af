"""
Order Service — 注文作成オーケストレーター

ユーザー検証 → 保存 → 通知 を順番に実行し、結果を HTTP ステータスに対応づける。

  ┌──────────────────────────────────────────────────────────────┐
  │  1. User Service でユーザーを検証                              │
  │     ├─ 見つからない (404)    → 何もせず 404                    │
  │     └─ 応答なし / 接続失敗  → 何もせず 503                    │
  │  2. 注文を保存                                                 │
  │     └─ 失敗 → 管理者にメール → 500                            │
  │  3. 店長にメールし、OrderCreated を発行 → 200                 │
  └──────────────────────────────────────────────────────────────┘

通知とイベント発行の失敗は結果を変えない（ログに残して握りつぶす）。
イベント発行は Redis が応答しなければ打ち切る。
ユーザー検証が確定するまでは保存も通知も行わない。
"""

import logging
from dataclasses import dataclass
from enum import Enum

import httpx

from .config import Settings
from .errors import NotificationFailure
from .events import OrderEventPublisher
from .mailer import NotificationContext, NotificationDispatcher, NotificationKind
from .models import Order, OrderRequest
from .order_store import OrderStore
from .user_client import (
    RetryPolicy,
    ServiceUnavailable,
    UserNotFound,
    UserValidationClient,
)

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    CREATED = "created"
    USER_NOT_FOUND = "user_not_found"
    UNAVAILABLE = "unavailable"
    INTERNAL_FAILURE = "internal_failure"


HTTP_STATUS = {
    Outcome.CREATED: 200,
    Outcome.USER_NOT_FOUND: 404,
    Outcome.UNAVAILABLE: 503,
    Outcome.INTERNAL_FAILURE: 500,
}


@dataclass(frozen=True)
class OrderCreationResult:
    outcome: Outcome
    order: Order | None = None
    detail: str = ""

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.outcome]


class OrderOrchestrator:
    """注文作成フローのオーケストレーター。リクエスト間で状態を共有しない。"""

    def __init__(
        self,
        users: UserValidationClient,
        store: OrderStore,
        notifier: NotificationDispatcher,
        events: OrderEventPublisher | None = None,
    ):
        self.users = users
        self.store = store
        self.notifier = notifier
        self.events = events

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        client: httpx.AsyncClient,
        store: OrderStore,
        events: OrderEventPublisher | None = None,
    ) -> "OrderOrchestrator":
        users = UserValidationClient(
            client,
            str(settings.user_service_url),
            settings.http_timeout_seconds,
            retry=RetryPolicy(
                max_attempts=settings.user_retry_max_attempts,
                backoff_ms=settings.user_retry_backoff_ms,
            ),
        )
        notifier = NotificationDispatcher(
            client,
            str(settings.mailer_url),
            enabled=settings.send_mails,
            store_manager_email=settings.store_manager_email,
            admin_email=settings.admin_email,
            timeout_seconds=settings.http_timeout_seconds,
        )
        return cls(users, store, notifier, events)

    async def create_order(self, request: OrderRequest) -> OrderCreationResult:
        # ── Step 1: ユーザー検証 ────────────────────
        # ここで正規化されなかった例外はそのまま呼び出し元に伝播する
        validation = await self.users.validate(request.user_id)

        if isinstance(validation, UserNotFound):
            logger.info("Rejected order: user %s not found", request.user_id)
            return OrderCreationResult(
                Outcome.USER_NOT_FOUND, detail=f"User {request.user_id} not found"
            )

        if isinstance(validation, ServiceUnavailable):
            return OrderCreationResult(
                Outcome.UNAVAILABLE,
                detail=f"User service unavailable ({validation.reason})",
            )

        # ── Step 2: 注文を保存 ──────────────────────
        try:
            order = await self.store.add_order(request)
        except Exception as e:
            logger.exception("Failed to store order for user %s", request.user_id)
            await self._notify(
                NotificationKind.INTERNAL_FAILURE,
                NotificationContext(request=request, error=e),
            )
            return OrderCreationResult(
                Outcome.INTERNAL_FAILURE, detail="Order could not be created"
            )

        # ── Step 3: 店長に通知・イベント発行 ────────
        await self._notify(
            NotificationKind.SUCCESS,
            NotificationContext(request=request, order=order),
        )
        await self._publish(order)
        return OrderCreationResult(Outcome.CREATED, order=order)

    async def _notify(
        self, kind: NotificationKind, context: NotificationContext
    ) -> None:
        try:
            await self.notifier.notify(kind, context)
        except NotificationFailure:
            logger.exception("Failed to send %s notification", kind.value)

    async def _publish(self, order: Order) -> None:
        if self.events is None:
            return
        try:
            await self.events.order_created(order)
        except Exception:
            logger.exception("Failed to publish OrderCreated for %s", order.id)
