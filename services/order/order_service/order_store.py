"""
Order Service — Order Store

ユーザー検証を通過した注文を PostgreSQL に保存する。

1 件の注文は 1 トランザクションで書き込む。失敗したらロールバックして
StorageFailure を送出する（部分書き込みなし・リトライなし）。
"""

import logging
from datetime import datetime, timezone
from typing import Protocol
from uuid import UUID, uuid4

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import sessionmaker

from .errors import StorageFailure
from .models import Order, OrderMode, OrderRequest

logger = logging.getLogger(__name__)

CREATE_ORDERS_TABLE = """
    CREATE TABLE IF NOT EXISTS orders (
        id          VARCHAR(36) PRIMARY KEY,
        user_id     INTEGER     NOT NULL,
        product_id  INTEGER     NOT NULL,
        mode        VARCHAR(16) NOT NULL,
        created_at  TIMESTAMP WITH TIME ZONE NOT NULL
    )
"""


class OrderStore(Protocol):
    async def add_order(self, request: OrderRequest) -> Order: ...

    async def get_order(self, order_id: UUID) -> Order | None: ...


class SqlOrderStore:
    """SQLAlchemy (async) による OrderStore 実装"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def add_order(self, request: OrderRequest) -> Order:
        order = Order(
            id=uuid4(),
            user_id=request.user_id,
            product_id=request.product_id,
            mode=request.mode,
            created_at=datetime.now(timezone.utc),
        )
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await session.execute(
                        text("""
                            INSERT INTO orders (id, user_id, product_id, mode, created_at)
                            VALUES (:id, :user_id, :product_id, :mode, :created_at)
                        """),
                        {
                            "id": str(order.id),
                            "user_id": order.user_id,
                            "product_id": order.product_id,
                            "mode": order.mode.value,
                            "created_at": order.created_at,
                        },
                    )
        except (SQLAlchemyError, OSError) as e:
            raise StorageFailure(
                f"Failed to persist order for user {request.user_id}"
            ) from e

        logger.info("Order %s stored (user_id=%s)", order.id, order.user_id)
        return order

    async def get_order(self, order_id: UUID) -> Order | None:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    text("SELECT * FROM orders WHERE id = :id"),
                    {"id": str(order_id)},
                )
                row = result.fetchone()
        except (SQLAlchemyError, OSError) as e:
            raise StorageFailure(f"Failed to load order {order_id}") from e

        if not row:
            return None
        return Order(
            id=UUID(str(row.id)),
            user_id=row.user_id,
            product_id=row.product_id,
            mode=OrderMode(row.mode),
            created_at=row.created_at,
        )


async def ensure_schema(engine: AsyncEngine) -> None:
    """orders テーブルがなければ作成する。"""
    async with engine.begin() as conn:
        await conn.execute(text(CREATE_ORDERS_TABLE))
