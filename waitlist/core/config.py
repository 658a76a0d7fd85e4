"""配置加载

职责：
- 读取环境变量（GITHUB_PAT/GITHUB_REPO/GIT_BRANCH/SYNC_BASE_DIR/EXCLUDE_PATHS/DATA_DIR 等）。
- 从 `DATA_DIR/sync-config.json` 读取黑名单覆盖项（若存在）。
- 内置排除项（版本库元数据、依赖缓存、构建产物、环境文件、日志）始终生效；
  若数据目录位于同步根目录之下，也会被自动排除，避免订阅者邮箱被推送到远端。
"""

import os
from dataclasses import dataclass
from typing import List, Dict, Any, Optional


DEFAULT_BRANCH = "main"
DEFAULT_COMMIT_MESSAGE = "Sync from waitlist server"
DEFAULT_DATA_DIR = "data"
DEFAULT_DESCRIPTION = "Coming Soon"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 5000

# DATA_DIR 下由服务写入的文件
DATA_FILES = ("subscribers.json", "subscribers.json.tmp", "sync-config.json")

# 同步时强制排除（无论用户如何配置都会排除）
# `*xxx` 按后缀匹配；不含 `/` 的名称匹配任意一级路径；含 `/` 的按前缀匹配
SYSTEM_EXCLUDES = [
    ".git",
    "node_modules",
    "__pycache__",
    ".venv",
    "venv",
    ".pytest_cache",
    ".mypy_cache",
    ".cache",
    ".config",
    ".upm",
    "dist",
    "build",
    ".env",
    ".env.local",
    "*.log",
    "*.pyc",
    ".breakpoints",
    ".replit",
    "replit.nix",
]


@dataclass
class Settings:
    github_pat: str
    github_repo: str  # owner/repo
    branch: str
    commit_message: str
    base_dir: str
    excludes: List[str]
    data_dir: str
    description: str
    # 凭据连接器（未配置 GITHUB_PAT 时使用）
    connector_hostname: str
    connector_identity: str  # 形如 "repl xxx" / "depl xxx"，为空表示不可用
    sync_token: str
    host: str
    port: int

    @property
    def subscribers_file(self) -> str:
        return os.path.join(self.data_dir, "subscribers.json")

    @property
    def owner_and_repo(self) -> Optional[tuple]:
        """将 `owner/repo` 拆分为二元组，格式不合法返回 None。"""
        parts = [p for p in self.github_repo.strip().strip("/").split("/") if p]
        if len(parts) != 2:
            return None
        return parts[0], parts[1]


def _load_file_overrides(data_dir: str) -> Dict[str, Any]:
    """从 `DATA_DIR/sync-config.json` 读取覆盖项（若存在）。

    目前仅识别 `excludes: List[str]`。不存在或解析失败时返回空对象。
    """
    import json

    cfg_path = os.path.join(data_dir, "sync-config.json")
    try:
        with open(cfg_path, "r", encoding="utf-8") as f:
            obj = json.load(f)
            if isinstance(obj, dict):
                return obj
    except FileNotFoundError:
        pass
    except (OSError, ValueError):
        from waitlist.utils.logging import err

        err(f"Ignoring unreadable {cfg_path}")
    return {}


def _connector_identity() -> str:
    if os.environ.get("REPL_IDENTITY"):
        return "repl " + os.environ["REPL_IDENTITY"]
    if os.environ.get("WEB_REPL_RENEWAL"):
        return "depl " + os.environ["WEB_REPL_RENEWAL"]
    return ""


def _data_dir_excludes(base_dir: str, data_dir: str) -> List[str]:
    """数据目录位于 base_dir 之内时需要追加的排除项（相对根目录锚定）。

    - 子目录：整个目录，如 `data/`；
    - 与 base_dir 相同：逐个排除数据文件，如 `./subscribers.json`。
    """
    rel = os.path.relpath(data_dir, base_dir)
    if rel == os.pardir or rel.startswith(os.pardir + os.sep):
        return []
    if rel == os.curdir:
        return ["./" + name for name in DATA_FILES]
    return [rel.replace(os.sep, "/") + "/"]


def load_settings() -> Settings:
    """加载运行时配置。

    优先级：环境变量默认值 → 文件覆盖（仅 excludes）→ 强制系统排除项。
    返回 Settings 数据类实例。
    """
    base_dir = os.path.abspath(os.environ.get("SYNC_BASE_DIR") or os.getcwd())
    data_dir = os.path.abspath(os.environ.get("DATA_DIR", DEFAULT_DATA_DIR))

    excludes = os.environ.get("EXCLUDE_PATHS", "").strip().split()

    # 覆盖：从文件读取 excludes
    overrides = _load_file_overrides(data_dir)
    if isinstance(overrides.get("excludes"), list):
        ex = [str(x).strip() for x in overrides["excludes"] if str(x).strip()]
        if ex:
            excludes = ex

    for sys_ex in SYSTEM_EXCLUDES:
        if sys_ex not in excludes:
            excludes.append(sys_ex)

    for data_ex in _data_dir_excludes(base_dir, data_dir):
        if data_ex not in excludes:
            excludes.append(data_ex)

    return Settings(
        github_pat=os.environ.get("GITHUB_PAT", ""),
        github_repo=os.environ.get("GITHUB_REPO", ""),
        branch=os.environ.get("GIT_BRANCH") or DEFAULT_BRANCH,
        commit_message=os.environ.get("SYNC_COMMIT_MESSAGE") or DEFAULT_COMMIT_MESSAGE,
        base_dir=base_dir,
        excludes=excludes,
        data_dir=data_dir,
        description=os.environ.get("REPO_DESCRIPTION") or DEFAULT_DESCRIPTION,
        connector_hostname=os.environ.get("REPLIT_CONNECTORS_HOSTNAME", ""),
        connector_identity=_connector_identity(),
        sync_token=os.environ.get("SYNC_TOKEN", ""),
        host=os.environ.get("HOST") or DEFAULT_HOST,
        port=int(os.environ.get("PORT") or DEFAULT_PORT),
    )
