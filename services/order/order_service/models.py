"""
Order Service — リクエスト / エンティティ / メールのモデル

JSON 上は camelCase (userId, productId, createdAt, recipientAddress)、
Python 側は snake_case で扱う。
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

EMAIL_PATTERN = r"^[\w\-.]+@([\w-]+\.)+[\w-]{2,4}$"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderMode(str, Enum):
    DRAFT = "draft"
    APPROVED = "approved"


class OrderRequest(CamelModel):
    """注文作成リクエスト（永続化はしない）"""
    user_id: int
    product_id: int
    mode: OrderMode


class Order(CamelModel):
    """
    永続化された注文

    ユーザーの存在が確認できた場合にのみ Order Store が作成する。
    このフローでは作成後に変更されない。
    """
    model_config = ConfigDict(frozen=True)

    id: UUID
    user_id: int
    product_id: int
    mode: OrderMode
    created_at: datetime


class User(BaseModel):
    """User Service が返すユーザー（キャッシュしない）"""
    id: int
    name: str


class EmailMessage(CamelModel):
    subject: str = Field(min_length=1)
    body: str = Field(min_length=1)
    recipient_address: str = Field(pattern=EMAIL_PATTERN)
