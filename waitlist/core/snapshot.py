"""工作目录快照

职责：
- 遍历同步根目录，列出所有未被黑名单排除的文件；
- 按扩展名判断是否为二进制文件；
- 读取文件内容并确定上传 blob 时使用的编码（utf-8 / base64）。
"""

from __future__ import annotations

import base64
import os
from dataclasses import dataclass
from typing import Iterable, List, Tuple

from waitlist.core.blacklist import is_excluded

BINARY_EXTENSIONS = (
    ".png", ".jpg", ".jpeg", ".gif", ".ico", ".webp",
    ".pdf", ".zip", ".tar", ".gz",
    ".woff", ".woff2", ".ttf", ".eot",
    ".mp3", ".mp4", ".wasm",
)


@dataclass
class TreeEntry:
    """Git tree 中的一项（仅 blob）。"""
    path: str
    sha: str
    mode: str = "100644"
    type: str = "blob"

    def to_dict(self) -> dict:
        return {"path": self.path, "mode": self.mode, "type": self.type, "sha": self.sha}


def list_files(base_dir: str, excludes: Iterable[str]) -> List[str]:
    """返回 base_dir 下所有需要同步的文件（POSIX 相对路径，已排序）。

    被排除的目录不会继续向下遍历；指向目录的符号链接不跟随。
    """
    excludes = list(excludes)
    files: List[str] = []
    for root, dirs, names in os.walk(base_dir):
        rel_root = os.path.relpath(root, base_dir)
        rel_root = "" if rel_root == "." else rel_root.replace(os.sep, "/")

        kept = []
        for d in dirs:
            rel = f"{rel_root}/{d}" if rel_root else d
            if not is_excluded(rel, excludes):
                kept.append(d)
        dirs[:] = kept

        for name in names:
            rel = f"{rel_root}/{name}" if rel_root else name
            if is_excluded(rel, excludes):
                continue
            if not os.path.isfile(os.path.join(root, name)):
                # 悬空链接、FIFO 等
                continue
            files.append(rel)
    files.sort()
    return files


def is_binary_file(path: str) -> bool:
    return path.lower().endswith(BINARY_EXTENSIONS)


def read_blob_payload(full_path: str, rel_path: str) -> Tuple[str, str]:
    """读取文件并返回 `(content, encoding)`。

    二进制扩展名一律 base64；其余按 UTF-8 文本上传，
    解码失败时退回 base64 以保证字节不被改写。
    """
    with open(full_path, "rb") as f:
        data = f.read()
    if not is_binary_file(rel_path):
        try:
            return data.decode("utf-8"), "utf-8"
        except UnicodeDecodeError:
            pass
    return base64.b64encode(data).decode("ascii"), "base64"
