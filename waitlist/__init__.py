"""Waitlist 包："即将上线"落地页 + 邮箱候补名单 + GitHub 快照同步。

推荐直接运行：
  `python -m waitlist serve`  → 启动 Web 服务（API + 落地页，默认端口 5000）。
  `python -m waitlist sync`   → 将当前工作目录作为一个提交推送到 GitHub。

包含模块：
- `waitlist.server`：FastAPI 应用（订阅、同步、状态接口与静态页面）。
- `waitlist.cli`：命令行入口。
- `waitlist.core.*`：配置、订阅者存储、凭据、GitHub API、快照与同步流程。
"""

__version__ = "1.0.0"
