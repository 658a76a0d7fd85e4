"""工作目录 → GitHub 全量快照同步

流程（Git Data API，一次调用产生一个提交）：
1) 确认目标仓库存在，不存在则尝试创建；
2) 解析目标分支的当前提交与 tree：
   - 空仓库（409）：通过 Contents API 写入 README 作为初始提交；
   - 分支不存在（404）：退回检查 `master`，仍不可用则同样写入 README；
3) 遍历工作目录（应用黑名单），逐个上传 blob；
4) 在旧 tree 之上创建新 tree，再创建以旧提交为父的新提交；
5) 移动（或新建）分支引用到新提交。

任何未预期的远端或文件系统错误都会中止整个操作，并以
`SyncResult(success=False, error=...)` 返回。
"""

from __future__ import annotations

import base64
import os
from dataclasses import dataclass
from typing import Iterable, List, Optional

import httpx

from waitlist.core.config import Settings, DEFAULT_BRANCH, DEFAULT_COMMIT_MESSAGE, DEFAULT_DESCRIPTION
from waitlist.core.credentials import TokenCache, resolve_access_token
from waitlist.core.github_api import GitHubAPI, GitHubAPIError
from waitlist.core.snapshot import TreeEntry, list_files, read_blob_payload
from waitlist.utils.logging import log, err


@dataclass
class SyncResult:
    success: bool
    commit_sha: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        if self.success:
            return {"success": True, "commitSha": self.commit_sha}
        return {"success": False, "error": self.error}


@dataclass
class BaseCommit:
    """同步前分支的起点。"""
    commit_sha: Optional[str] = None
    tree_sha: Optional[str] = None
    # False 表示目标分支引用尚不存在，最后需要新建而非移动
    ref_exists: bool = True


def readme_content(repo: str, description: str) -> str:
    return f"# {repo}\n\n{description}\n"


def initialize_empty_repo(api: GitHubAPI, owner: str, repo: str, branch: str, description: str) -> str:
    """用 Contents API 写入 README（对空仓库有效），返回初始提交 sha。"""
    log("Initializing empty repository with README...")
    content = base64.b64encode(readme_content(repo, description).encode("utf-8")).decode("ascii")
    resp = api.put_file_contents(
        owner,
        repo,
        "README.md",
        "Initial commit: Add README",
        content,
        branch,
    )
    log("Repository initialized with README")
    return resp["commit"]["sha"]


def ensure_repo_exists(api: GitHubAPI, owner: str, repo: str, description: str) -> bool:
    """确认仓库存在且可访问；404 时尝试创建。

    创建失败返回 False；其它错误向上抛出。
    """
    try:
        api.get_repo(owner, repo)
        log(f"Repository {owner}/{repo} exists and is accessible")
        return True
    except GitHubAPIError as e:
        if e.status != 404:
            raise
    log(f"Repository {owner}/{repo} not found, attempting to create...")
    try:
        api.create_repo(repo, description=description, private=False)
    except GitHubAPIError as e:
        err(f"Failed to create repository: {e}")
        return False
    log(f"Repository {owner}/{repo} created successfully")
    return True


def _base_from_commit(api: GitHubAPI, owner: str, repo: str, sha: str, ref_exists: bool = True) -> BaseCommit:
    commit = api.get_commit(owner, repo, sha)
    return BaseCommit(commit_sha=sha, tree_sha=commit["tree"]["sha"], ref_exists=ref_exists)


def resolve_base(api: GitHubAPI, owner: str, repo: str, branch: str, description: str) -> BaseCommit:
    """解析目标分支当前的提交与 tree，必要时初始化空仓库。"""
    try:
        ref = api.get_ref(owner, repo, f"heads/{branch}")
        return _base_from_commit(api, owner, repo, ref["object"]["sha"])
    except GitHubAPIError as e:
        if e.status == 409:
            log("Repository is empty (409), initializing with README...")
            sha = initialize_empty_repo(api, owner, repo, branch, description)
            return _base_from_commit(api, owner, repo, sha)
        if e.status != 404:
            raise

    # 分支不存在：尝试 master
    try:
        ref = api.get_ref(owner, repo, "heads/master")
    except GitHubAPIError as e:
        if e.status not in (404, 409):
            raise
        log("Repository is empty, initializing with README...")
        sha = initialize_empty_repo(api, owner, repo, branch, description)
        return _base_from_commit(api, owner, repo, sha)
    log(f"Branch {branch} not found, basing snapshot on master")
    return _base_from_commit(api, owner, repo, ref["object"]["sha"], ref_exists=False)


def upload_blobs(api: GitHubAPI, owner: str, repo: str, base_dir: str, files: List[str]) -> List[TreeEntry]:
    """逐个上传文件内容，返回对应的 tree 项。"""
    entries: List[TreeEntry] = []
    for rel in files:
        content, encoding = read_blob_payload(os.path.join(base_dir, rel), rel)
        sha = api.create_blob(owner, repo, content, encoding)
        entries.append(TreeEntry(path=rel, sha=sha))
    return entries


def full_sync_to_github(
    api: GitHubAPI,
    owner: str,
    repo: str,
    branch: str = DEFAULT_BRANCH,
    commit_message: str = DEFAULT_COMMIT_MESSAGE,
    base_dir: Optional[str] = None,
    excludes: Iterable[str] = (),
    description: str = DEFAULT_DESCRIPTION,
) -> SyncResult:
    """将 base_dir 的完整快照作为一个新提交推送到 `owner/repo` 的 branch。"""
    base_dir = base_dir or os.getcwd()
    try:
        if not ensure_repo_exists(api, owner, repo, description):
            return SyncResult(success=False, error="Repository does not exist and could not be created")

        base = resolve_base(api, owner, repo, branch, description)

        files = list_files(base_dir, excludes)
        log(f"Found {len(files)} files to sync")

        entries = upload_blobs(api, owner, repo, base_dir, files)

        tree_sha = api.create_tree(
            owner,
            repo,
            [e.to_dict() for e in entries],
            base_tree=base.tree_sha,
        )
        parents = [base.commit_sha] if base.commit_sha else []
        commit_sha = api.create_commit(owner, repo, commit_message, tree_sha, parents)

        if base.ref_exists:
            api.update_ref(owner, repo, f"heads/{branch}", commit_sha)
        else:
            api.create_ref(owner, repo, f"heads/{branch}", commit_sha)

        log(f"Successfully synced to GitHub: {commit_sha}")
        return SyncResult(success=True, commit_sha=commit_sha)
    except Exception as e:
        err(f"GitHub sync error: {e}")
        return SyncResult(success=False, error=str(e))


def run_sync(
    settings: Settings,
    token_cache: TokenCache,
    transport: Optional[httpx.BaseTransport] = None,
) -> SyncResult:
    """按配置执行一次同步：解析令牌 → 打开客户端 → 全量同步。"""
    target = settings.owner_and_repo
    if target is None:
        return SyncResult(success=False, error="GITHUB_REPO must be set as owner/repo")
    owner, repo = target

    try:
        token = resolve_access_token(settings, token_cache, transport=transport)
    except Exception as e:
        err(f"GitHub sync error: {e}")
        return SyncResult(success=False, error=str(e))

    with GitHubAPI(token, transport=transport) as api:
        return full_sync_to_github(
            api,
            owner,
            repo,
            branch=settings.branch,
            commit_message=settings.commit_message,
            base_dir=settings.base_dir,
            excludes=settings.excludes,
            description=settings.description,
        )
