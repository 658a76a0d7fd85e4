"""GitHub REST / Git Data API 封装

职责：
- 查询与创建仓库
- 读取、创建、移动分支引用（ref）
- 创建 blob / tree / commit
- 通过 Contents API 写入单个文件（用于初始化空仓库）

所有非 2xx 响应统一抛出 `GitHubAPIError`，由调用方决定是否在本地恢复。
不做重试：每一步都阻塞等待上一次远端调用的结果。
"""

from __future__ import annotations

from typing import Optional, List, Dict, Any

import httpx

from waitlist.utils.logging import log

API_URL = "https://api.github.com"


class GitHubAPIError(Exception):
    """GitHub 返回非 2xx 状态码。"""

    def __init__(self, status: int, message: str, method: str = "", path: str = ""):
        super().__init__(message)
        self.status = status
        self.message = message
        self.method = method
        self.path = path

    def __str__(self) -> str:
        if self.method:
            return f"{self.message} ({self.method} {self.path} -> {self.status})"
        return self.message


class GitHubAPI:
    """GitHub API 客户端

    可作为上下文管理器使用，退出时关闭底层 httpx 连接。
    """

    def __init__(
        self,
        token: str,
        timeout: int = 60,
        base_url: str = API_URL,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """初始化 API 客户端

        Args:
            token: GitHub 访问令牌（PAT 或 OAuth token）
            timeout: 请求超时时间（秒）
            base_url: API 根地址，GitHub Enterprise 可覆盖
            transport: 自定义 httpx transport（测试时注入）
        """
        self.token = token
        self.headers = {
            "Authorization": f"token {token}",
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "Waitlist-Sync/1.0",
        }
        self._client = httpx.Client(
            base_url=base_url,
            headers=self.headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> GitHubAPI:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """发送请求并返回 JSON；失败时抛出 GitHubAPIError。"""
        resp = self._client.request(method, path, **kwargs)
        if resp.is_success:
            return resp.json() if resp.content else {}
        try:
            message = resp.json().get("message") or resp.reason_phrase
        except (ValueError, AttributeError):
            message = resp.text or resp.reason_phrase
        raise GitHubAPIError(resp.status_code, message, method, path)

    # -------- 仓库 --------
    def get_repo(self, owner: str, repo: str) -> Dict[str, Any]:
        return self._request("GET", f"/repos/{owner}/{repo}")

    def create_repo(self, name: str, description: str = "", private: bool = False) -> Dict[str, Any]:
        """为当前认证用户创建仓库（不自动初始化）。"""
        data = {
            "name": name,
            "description": description,
            "private": private,
            "auto_init": False,
        }
        repo = self._request("POST", "/user/repos", json=data)
        log(f"✓ Created repository: {repo.get('full_name', name)}")
        return repo

    # -------- 引用 --------
    def get_ref(self, owner: str, repo: str, ref: str) -> Dict[str, Any]:
        """读取引用，ref 形如 `heads/main`。

        空仓库返回 409，引用不存在返回 404。
        """
        return self._request("GET", f"/repos/{owner}/{repo}/git/ref/{ref}")

    def create_ref(self, owner: str, repo: str, ref: str, sha: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/refs",
            json={"ref": f"refs/{ref}", "sha": sha},
        )

    def update_ref(self, owner: str, repo: str, ref: str, sha: str, force: bool = False) -> Dict[str, Any]:
        return self._request(
            "PATCH",
            f"/repos/{owner}/{repo}/git/refs/{ref}",
            json={"sha": sha, "force": force},
        )

    # -------- 对象 --------
    def get_commit(self, owner: str, repo: str, sha: str) -> Dict[str, Any]:
        return self._request("GET", f"/repos/{owner}/{repo}/git/commits/{sha}")

    def create_blob(self, owner: str, repo: str, content: str, encoding: str) -> str:
        """上传 blob，返回其 sha。encoding 为 `utf-8` 或 `base64`。"""
        data = self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/blobs",
            json={"content": content, "encoding": encoding},
        )
        return data["sha"]

    def create_tree(
        self,
        owner: str,
        repo: str,
        tree: List[Dict[str, Any]],
        base_tree: Optional[str] = None,
    ) -> str:
        """创建 tree，若给出 base_tree 则在其基础上叠加。返回 tree sha。"""
        payload: Dict[str, Any] = {"tree": tree}
        if base_tree:
            payload["base_tree"] = base_tree
        data = self._request("POST", f"/repos/{owner}/{repo}/git/trees", json=payload)
        return data["sha"]

    def create_commit(
        self,
        owner: str,
        repo: str,
        message: str,
        tree: str,
        parents: List[str],
    ) -> str:
        data = self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/commits",
            json={"message": message, "tree": tree, "parents": parents},
        )
        return data["sha"]

    # -------- Contents API --------
    def put_file_contents(
        self,
        owner: str,
        repo: str,
        path: str,
        message: str,
        content_b64: str,
        branch: str,
    ) -> Dict[str, Any]:
        """创建或更新单个文件（对空仓库同样有效）。

        Returns:
            响应对象，其中 `commit.sha` 为新提交
        """
        return self._request(
            "PUT",
            f"/repos/{owner}/{repo}/contents/{path}",
            json={"message": message, "content": content_b64, "branch": branch},
        )
