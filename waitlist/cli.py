"""命令行入口

- `waitlist serve`：启动 Web 服务（API + 落地页）；
- `waitlist sync`：执行一次工作目录 → GitHub 快照同步，失败时退出码为 1。
"""

import click

from waitlist.core.config import load_settings
from waitlist.core.credentials import TokenCache
from waitlist.core.repo_sync import run_sync


@click.group()
@click.version_option(version="1.0.0")
def cli():
    """Coming-soon waitlist server and GitHub snapshot sync."""


@cli.command()
@click.option("--host", default=None, help="Bind address (default: $HOST or 0.0.0.0)")
@click.option("--port", type=int, default=None, help="Bind port (default: $PORT or 5000)")
def serve(host, port):
    """Run the web server."""
    from waitlist.server import serve as run_server

    raise SystemExit(run_server(host=host, port=port))


@cli.command()
@click.option("--repo", default=None, help="Target repository as owner/repo (default: $GITHUB_REPO)")
@click.option("--branch", default=None, help="Target branch (default: $GIT_BRANCH or main)")
@click.option("--message", "-m", default=None, help="Commit message")
def sync(repo, branch, message):
    """Push the working directory to GitHub as a single commit."""
    st = load_settings()
    if repo:
        st.github_repo = repo
    if branch:
        st.branch = branch
    if message:
        st.commit_message = message

    result = run_sync(st, TokenCache())
    if not result.success:
        click.echo(f"Sync failed: {result.error}", err=True)
        raise SystemExit(1)
    click.echo(result.commit_sha)


if __name__ == "__main__":
    cli()
