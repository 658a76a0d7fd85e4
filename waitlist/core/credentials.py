"""GitHub 访问令牌解析

顺序：
1. 缓存中尚未过期的令牌；
2. 环境变量 `GITHUB_PAT`；
3. 凭据连接器（`REPLIT_CONNECTORS_HOSTNAME` + `REPL_IDENTITY`/`WEB_REPL_RENEWAL`），
   结果连同过期时间写入缓存。

缓存是显式状态：由调用方持有（服务端放在 `app.state`）并传入，
模块本身不保存任何全局变量。
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import httpx

from waitlist.core.config import Settings
from waitlist.utils.logging import log


class CredentialsError(Exception):
    """无法获取 GitHub 访问令牌。"""


@dataclass
class TokenCache:
    access_token: str = ""
    expires_at: Optional[datetime] = None

    def valid(self, now: Optional[datetime] = None) -> bool:
        """令牌存在且带有未来的过期时间才视为有效。"""
        if not self.access_token or self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return self.expires_at > now

    def store(self, token: str, expires_at: Optional[datetime]) -> None:
        self.access_token = token
        self.expires_at = expires_at

    def clear(self) -> None:
        self.access_token = ""
        self.expires_at = None


def _parse_expiry(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def fetch_connector_token(
    settings: Settings,
    transport: Optional[httpx.BaseTransport] = None,
) -> tuple:
    """向连接器查询 GitHub 令牌，返回 `(token, expires_at)`。"""
    if not settings.connector_identity:
        raise CredentialsError("X_REPLIT_TOKEN not found for repl/depl")
    if not settings.connector_hostname:
        raise CredentialsError("REPLIT_CONNECTORS_HOSTNAME is not set")

    url = f"https://{settings.connector_hostname}/api/v2/connection"
    params = {"include_secrets": "true", "connector_names": "github"}
    headers = {
        "Accept": "application/json",
        "X_REPLIT_TOKEN": settings.connector_identity,
    }
    with httpx.Client(timeout=30, transport=transport) as client:
        resp = client.get(url, params=params, headers=headers)
        resp.raise_for_status()
        items = resp.json().get("items") or []

    conn_settings = (items[0].get("settings") or {}) if items else {}
    token = conn_settings.get("access_token") or (
        ((conn_settings.get("oauth") or {}).get("credentials") or {}).get("access_token")
    )
    if not token:
        raise CredentialsError("GitHub not connected")
    return token, _parse_expiry(conn_settings.get("expires_at"))


def resolve_access_token(
    settings: Settings,
    cache: TokenCache,
    transport: Optional[httpx.BaseTransport] = None,
) -> str:
    """返回可用的 GitHub 访问令牌，必要时刷新 cache。"""
    if cache.valid():
        return cache.access_token
    if settings.github_pat:
        return settings.github_pat
    token, expires_at = fetch_connector_token(settings, transport=transport)
    cache.store(token, expires_at)
    log("Fetched GitHub token from connector")
    return token
