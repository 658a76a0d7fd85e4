from __future__ import annotations

"""Web API 与落地页

职责：
- 订阅：`POST /api/subscribers`（400 邮箱格式错误 / 409 已订阅 / 201 成功）；
- 同步：`POST /api/sync-github`，将工作目录快照推送到 GitHub；
- 状态：`GET /api/status`，订阅人数与同步目标摘要；
- 静态落地页挂载到 `/`（在所有 API 路由之后）。

注意：
- 令牌缓存保存在 `app.state.token_cache`，每次同步显式传入；
- 若配置了 SYNC_TOKEN，同步请求必须携带相同的 `X-Sync-Token` 头。
"""

import hmac
import os
from typing import Dict, Optional

import httpx
from email_validator import EmailNotValidError, validate_email
from fastapi import FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, field_validator

from waitlist.core.config import Settings, load_settings
from waitlist.core.credentials import TokenCache
from waitlist.core.repo_sync import run_sync
from waitlist.core.storage import DuplicateEmailError, SubscriberStore
from waitlist.utils.logging import log, err

INVALID_EMAIL_MESSAGE = "Please enter a valid email address"


class SubscriberIn(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def _valid_email(cls, value: str) -> str:
        try:
            return validate_email(value.strip(), check_deliverability=False, test_environment=True).normalized
        except EmailNotValidError:
            raise ValueError(INVALID_EMAIL_MESSAGE)


def _first_error_message(errors) -> str:
    """取第一条校验错误的可读信息（去掉 pydantic 的 `Value error, ` 前缀）。"""
    if not errors:
        return "Invalid request"
    msg = str(errors[0].get("msg") or "Invalid request")
    prefix = "Value error, "
    if msg.startswith(prefix):
        msg = msg[len(prefix):]
    return msg


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[SubscriberStore] = None,
    github_transport: Optional[httpx.BaseTransport] = None,
) -> FastAPI:
    """创建 FastAPI 应用实例。

    参数：
    - settings: 运行时配置，默认从环境变量加载；
    - store: 订阅者存储，默认使用 `DATA_DIR/subscribers.json`；
    - github_transport: 可选的 httpx transport，同步时用于访问 GitHub 与凭据连接器。
    """
    st = settings or load_settings()

    app = FastAPI(title="Waitlist", version="1.0.0")
    app.state.settings = st
    app.state.store = store if store is not None else SubscriberStore(st.subscribers_file)
    app.state.token_cache = TokenCache()
    app.state.github_transport = github_transport

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse({"message": _first_error_message(exc.errors())}, status_code=400)

    @app.post("/api/subscribers", status_code=201)
    def api_create_subscriber(payload: SubscriberIn):
        """新增订阅者。"""
        store: SubscriberStore = app.state.store
        if store.get_subscriber_by_email(payload.email):
            return JSONResponse({"message": "Email already subscribed"}, status_code=409)
        try:
            sub = store.create_subscriber(payload.email)
        except DuplicateEmailError:
            return JSONResponse({"message": "Email already subscribed"}, status_code=409)
        log(f"New subscriber #{sub.id}")
        return {"success": True, "message": "Successfully subscribed!"}

    @app.post("/api/sync-github")
    def api_sync_github(x_sync_token: Optional[str] = Header(default=None)):
        """将工作目录全量快照作为一个提交推送到 GitHub。"""
        st: Settings = app.state.settings
        if st.sync_token and not hmac.compare_digest((x_sync_token or "").encode(), st.sync_token.encode()):
            return JSONResponse({"success": False, "error": "Unauthorized"}, status_code=401)

        result = run_sync(st, app.state.token_cache, transport=app.state.github_transport)
        if result.success:
            return result.to_dict()
        return JSONResponse(result.to_dict(), status_code=500)

    @app.get("/api/status")
    def api_status() -> Dict:
        """返回运行时状态（JSON）。"""
        st: Settings = app.state.settings
        return {
            "subscribers": app.state.store.count(),
            "repo": st.github_repo,
            "branch": st.branch,
            "base_dir": st.base_dir,
            "excludes": st.excludes,
        }

    # 静态文件挂载必须在最后，避免拦截 API 路由
    web_dir = os.path.join(os.path.dirname(__file__), "web")
    if os.path.isdir(web_dir):
        app.mount("/", StaticFiles(directory=web_dir, html=True), name="web")

    return app


def serve(host: Optional[str] = None, port: Optional[int] = None) -> int:
    """启动 Uvicorn 服务，默认监听 HOST:PORT（0.0.0.0:5000）。

    若缺少 uvicorn 依赖，将打印提示并返回非零退出码。
    """
    try:
        import uvicorn
    except ImportError:
        err("缺少 uvicorn 依赖，请先安装：pip install uvicorn")
        return 1

    st = load_settings()
    app = create_app(settings=st)
    uvicorn.run(app, host=host or st.host, port=port or st.port)
    return 0
