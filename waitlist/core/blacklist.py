from __future__ import annotations

"""黑名单：

职责：
- 判断相对同步根目录的路径是否应排除在快照之外（纯函数，便于单测）。

匹配规则：
- `*.log`：以 `*` 开头的条目按后缀匹配；
- `node_modules`：不含 `/` 的条目匹配路径中的任意一级；
- `docs/private`、`data/`：含 `/` 的条目相对根目录按路径前缀匹配（`a/b` 命中 `a/b` 与其子路径）。
"""

from typing import Iterable


def normalize(rel_path: str) -> str:
    """统一为不带前导 `./` 与首尾 `/` 的 POSIX 相对路径。"""
    rel = rel_path.replace("\\", "/")
    while rel.startswith("./"):
        rel = rel[2:]
    return rel.strip("/")


def is_excluded(rel_path: str, excludes: Iterable[str]) -> bool:
    """判断给定路径（相对同步根目录）是否命中黑名单。"""
    rel = normalize(rel_path)
    parts = rel.split("/")
    for ex in excludes:
        ex = ex.strip()
        if not ex:
            continue
        if ex.startswith("*"):
            if rel.endswith(ex[1:]):
                return True
            continue
        exn = normalize(ex)
        if "/" in ex:
            if rel == exn or rel.startswith(exn + "/"):
                return True
        elif exn in parts:
            return True
    return False
