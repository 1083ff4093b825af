"""
Order Service — User Validation Client

User Service に GET /user/{user_id} を投げてユーザーの存在を確認する。

  200 → UserFound
  404 → UserNotFound
  タイムアウト / 接続失敗 / その他のステータス → ServiceUnavailable

タイムアウトと 404 は意味が違う: 前者は「答えが返ってこなかった」、
後者は「そのユーザーはいない」。呼び出し元は両者を区別して扱う。

リトライはデフォルトで行わない (max_attempts=1)。RetryPolicy を渡した場合のみ、
retry_statuses に含まれるステータスを上限回数まで再試行する。
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Union

import httpx

from .models import User

logger = logging.getLogger(__name__)


# ── 検証結果 ─────────────────────────────────────

@dataclass(frozen=True)
class UserFound:
    user: User


@dataclass(frozen=True)
class UserNotFound:
    user_id: int


@dataclass(frozen=True)
class ServiceUnavailable:
    reason: str
    status_code: int | None = None


ValidationResult = Union[UserFound, UserNotFound, ServiceUnavailable]


# ── リトライ方針 ─────────────────────────────────

@dataclass(frozen=True)
class RetryPolicy:
    """
    ユーザー検証呼び出しのリトライ方針

    タイムアウトと接続失敗は再試行しない。
    Retry-After ヘッダ (秒) があれば backoff より優先し、max_backoff_ms で頭打ちにする。
    """
    max_attempts: int = 1
    backoff_ms: int = 100
    max_backoff_ms: int = 5000
    retry_statuses: frozenset[int] = field(default_factory=lambda: frozenset({503}))

    def should_retry(self, status_code: int, attempt: int) -> bool:
        return status_code in self.retry_statuses and attempt < self.max_attempts

    def delay_seconds(self, response: httpx.Response, attempt: int) -> float:
        delay_ms = self.backoff_ms * 2 ** (attempt - 1)
        retry_after = response.headers.get("Retry-After")
        if retry_after is not None:
            try:
                delay_ms = float(retry_after) * 1000
            except ValueError:
                pass
        return min(delay_ms, self.max_backoff_ms) / 1000


class UserValidationClient:
    """User Service への問い合わせ。validate 1 回につき HTTP 呼び出しは 1 回 (リトライ時を除く)。"""

    def __init__(
        self,
        client: httpx.AsyncClient,
        user_service_url: str,
        timeout_seconds: float,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.user_service_url = user_service_url.rstrip("/")
        self.timeout = timeout_seconds
        self.retry = retry or RetryPolicy()
        self._sleep = sleep

    async def validate(self, user_id: int) -> ValidationResult:
        url = f"{self.user_service_url}/user/{user_id}"
        attempt = 0

        while True:
            attempt += 1
            try:
                # 期限を過ぎたら応答を待たずに打ち切る（in-flight の呼び出しはキャンセル）
                resp = await asyncio.wait_for(
                    self.client.get(url, timeout=self.timeout),
                    timeout=self.timeout,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException):
                logger.warning(
                    "User service timed out after %.3fs (user_id=%s)", self.timeout, user_id
                )
                return ServiceUnavailable("timeout")
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                logger.warning("User service unreachable (user_id=%s): %r", user_id, e)
                return ServiceUnavailable(f"unreachable: {e.__class__.__name__}")

            if resp.status_code == 404:
                return UserNotFound(user_id)

            if resp.is_success:
                try:
                    user = User.model_validate(resp.json())
                except ValueError:
                    logger.warning("Malformed user payload for user_id=%s", user_id)
                    return ServiceUnavailable("malformed response", resp.status_code)
                return UserFound(user)

            if self.retry.should_retry(resp.status_code, attempt):
                delay = self.retry.delay_seconds(resp, attempt)
                logger.info(
                    "User service returned %s, retrying in %.3fs (attempt %d/%d)",
                    resp.status_code, delay, attempt, self.retry.max_attempts,
                )
                await self._sleep(delay)
                continue

            logger.warning(
                "User service returned %s (user_id=%s)", resp.status_code, user_id
            )
            return ServiceUnavailable(f"status {resp.status_code}", resp.status_code)
