"""
Order Service — FastAPI エントリーポイント

POST /order で注文作成フロー（ユーザー検証 → 保存 → 通知）を実行する。
外部サービスへの HTTP クライアント、DB エンジン、Redis プールは
lifespan で作成し、アプリ終了時に閉じる。
"""

import logging
from contextlib import asynccontextmanager
from uuid import UUID

import httpx
import redis.asyncio as aioredis
from fastapi import Depends, FastAPI, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from .config import get_settings
from .errors import StorageFailure
from .events import OrderEventPublisher
from .models import Order, OrderRequest
from .orchestrator import OrderOrchestrator, Outcome
from .order_store import OrderStore, SqlOrderStore, ensure_schema

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    engine = create_async_engine(settings.database_url, echo=False)
    await ensure_schema(engine)
    async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    http_client = httpx.AsyncClient()
    redis_pool = (
        aioredis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=settings.http_timeout_seconds,
            socket_connect_timeout=settings.http_timeout_seconds,
        )
        if settings.redis_url
        else None
    )

    store = SqlOrderStore(async_session)
    app.state.http_client = http_client
    app.state.order_store = store
    app.state.orchestrator = OrderOrchestrator.from_settings(
        settings,
        http_client,
        store,
        OrderEventPublisher(redis_pool, timeout_seconds=settings.http_timeout_seconds)
        if redis_pool is not None
        else None,
    )
    logger.info(
        "Order service started (timeout=%sms, send_mails=%s)",
        settings.http_timeout, settings.send_mails,
    )
    yield
    await http_client.aclose()
    if redis_pool is not None:
        await redis_pool.aclose()
    await engine.dispose()


app = FastAPI(title="Order Service", lifespan=lifespan)


def get_orchestrator(request: Request) -> OrderOrchestrator:
    return request.app.state.orchestrator


def get_order_store(request: Request) -> OrderStore:
    return request.app.state.order_store


# ── Endpoints ────────────────────────────────────

@app.post("/order", response_model=Order)
async def create_order(
    req: OrderRequest,
    orchestrator: OrderOrchestrator = Depends(get_orchestrator),
):
    """
    注文作成

    404: ユーザーが存在しない / 503: User Service が応答しない /
    500: 保存に失敗（管理者に通知済み）
    """
    result = await orchestrator.create_order(req)
    if result.outcome is not Outcome.CREATED:
        raise HTTPException(result.status_code, result.detail)
    return result.order


@app.get("/order/{order_id}", response_model=Order)
async def get_order(
    order_id: UUID,
    store: OrderStore = Depends(get_order_store),
):
    try:
        order = await store.get_order(order_id)
    except StorageFailure:
        logger.exception("Failed to load order %s", order_id)
        raise HTTPException(500, "Order could not be loaded")
    if not order:
        raise HTTPException(404, "Order not found")
    return order


@app.get("/health")
async def health():
    return {"status": "ok", "service": "order-service"}
