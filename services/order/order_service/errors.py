"""
Order Service — 例外定義

ユーザー検証の結果 (見つかった / 存在しない / 応答なし) は例外ではなく
user_client の戻り値で表現する。ここには検証成功後に起こる障害だけを置く。

  InternalFailure     → 500 + 管理者へメール通知
  StorageFailure      → InternalFailure の永続化版
  NotificationFailure → ログのみ (レスポンスには影響させない)
"""


class OrderServiceError(Exception):
    """Order Service の例外の基底クラス"""


class InternalFailure(OrderServiceError):
    """ユーザー検証成功後に発生した想定外の障害"""


class StorageFailure(InternalFailure):
    """注文の永続化に失敗した（部分書き込みは発生しない）"""


class NotificationFailure(OrderServiceError):
    """メール送信に失敗した（呼び出し元には伝播させない）"""
