"""订阅者存储

职责：
- 以邮箱为键保存订阅者（同一邮箱最多一条记录，比较时不区分大小写）
- 持久化到 `DATA_DIR/subscribers.json`；未给出路径时仅保存在内存
- 写入操作由互斥锁串行化，查重与插入在同一临界区内完成
"""

from __future__ import annotations

import json
import os
import threading
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Dict, List, Optional

from waitlist.utils.logging import log, err


class StorageError(Exception):
    """订阅者数据无法读取或写入。"""


class DuplicateEmailError(StorageError):
    """邮箱已存在。"""

    def __init__(self, email: str):
        super().__init__(f"Email already subscribed: {email}")
        self.email = email


@dataclass
class Subscriber:
    id: int
    email: str
    created_at: str  # ISO 8601

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> Subscriber:
        return cls(id=int(data["id"]), email=data["email"], created_at=data["created_at"])


def email_key(email: str) -> str:
    return email.strip().lower()


class SubscriberStore:
    """订阅者存储（JSON 文件）"""

    def __init__(self, path: Optional[str] = None):
        """初始化存储

        Args:
            path: JSON 文件路径；为 None 时不落盘
        """
        self.path = path
        self._lock = threading.Lock()
        self._by_email: Dict[str, Subscriber] = {}
        self._next_id = 1
        self._load()

    def _load(self) -> None:
        """从文件加载订阅者"""
        if not self.path or not os.path.exists(self.path):
            return
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            for item in data.get("subscribers", []):
                sub = Subscriber.from_dict(item)
                self._by_email[email_key(sub.email)] = sub
                self._next_id = max(self._next_id, sub.id + 1)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            err(f"Failed to load subscribers from {self.path}: {e}")
            raise StorageError(f"Cannot read {self.path}: {e}") from e
        log(f"Loaded {len(self._by_email)} subscribers")

    def _save(self) -> None:
        if not self.path:
            return
        parent = os.path.dirname(self.path)
        tmp = self.path + ".tmp"
        data = {"subscribers": [s.to_dict() for s in self._ordered()]}
        try:
            if parent:
                os.makedirs(parent, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except OSError as e:
            raise StorageError(f"Cannot write {self.path}: {e}") from e

    def _ordered(self) -> List[Subscriber]:
        return sorted(self._by_email.values(), key=lambda s: s.id)

    def get_subscriber_by_email(self, email: str) -> Optional[Subscriber]:
        with self._lock:
            return self._by_email.get(email_key(email))

    def create_subscriber(self, email: str) -> Subscriber:
        """新增订阅者；邮箱已存在时抛出 DuplicateEmailError。"""
        key = email_key(email)
        with self._lock:
            if key in self._by_email:
                raise DuplicateEmailError(key)
            sub = Subscriber(
                id=self._next_id,
                email=key,
                created_at=datetime.now(timezone.utc).isoformat(),
            )
            self._by_email[key] = sub
            try:
                self._save()
            except StorageError:
                del self._by_email[key]
                raise
            self._next_id += 1
        return sub

    def list_subscribers(self) -> List[Subscriber]:
        with self._lock:
            return self._ordered()

    def count(self) -> int:
        with self._lock:
            return len(self._by_email)
