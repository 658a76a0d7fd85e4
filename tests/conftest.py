import base64
import hashlib
import json
import os

import httpx
import pytest

from waitlist.core.config import SYSTEM_EXCLUDES, Settings


class FakeGitHub:
    """In-memory stand-in for the GitHub REST + Git Data API of one repository."""

    def __init__(self, owner="octo", repo="landing", exists=True, can_create=True):
        self.owner = owner
        self.repo = repo
        self.exists = exists
        self.can_create = can_create
        self.blobs = {}  # sha -> (bytes, encoding)
        self.trees = {}  # sha -> {path: blob sha}
        self.commits = {}  # sha -> {"tree", "parents", "message"}
        self.refs = {}  # "heads/main" -> commit sha
        self.calls = []
        self.failures = {}  # (method, path) -> (status, message)
        self._counter = 0

    # -------- helpers for tests --------
    def _sha(self, kind):
        self._counter += 1
        return hashlib.sha1(f"{kind}:{self._counter}".encode()).hexdigest()

    def _put_blob(self, data, encoding="utf-8"):
        sha = self._sha("blob")
        self.blobs[sha] = (data, encoding)
        return sha

    def _put_tree(self, entries, base_tree=None):
        files = dict(self.trees[base_tree]) if base_tree else {}
        files.update(entries)
        sha = self._sha("tree")
        self.trees[sha] = files
        return sha

    def _put_commit(self, message, tree, parents):
        sha = self._sha("commit")
        self.commits[sha] = {"message": message, "tree": tree, "parents": list(parents)}
        return sha

    def seed(self, files, branch="main"):
        """Create a commit holding `files` ({path: bytes}) and point `branch` at it."""
        entries = {path: self._put_blob(data) for path, data in files.items()}
        tree = self._put_tree(entries)
        parent = self.refs.get(f"heads/{branch}")
        sha = self._put_commit("seed", tree, [parent] if parent else [])
        self.refs[f"heads/{branch}"] = sha
        return sha

    def head(self, branch="main"):
        return self.refs.get(f"heads/{branch}")

    def files_at(self, commit_sha):
        tree = self.trees[self.commits[commit_sha]["tree"]]
        return {path: self.blobs[sha][0] for path, sha in tree.items()}

    def encodings_at(self, commit_sha):
        tree = self.trees[self.commits[commit_sha]["tree"]]
        return {path: self.blobs[sha][1] for path, sha in tree.items()}

    def transport(self):
        return httpx.MockTransport(self.handle)

    # -------- request routing --------
    def handle(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path
        self.calls.append((method, path))
        body = json.loads(request.content) if request.content else {}

        if (method, path) in self.failures:
            status, message = self.failures[(method, path)]
            return httpx.Response(status, json={"message": message})

        if method == "POST" and path == "/user/repos":
            if not self.can_create:
                return httpx.Response(403, json={"message": "Resource not accessible by integration"})
            self.exists = True
            self.repo = body["name"]
            return httpx.Response(201, json={"full_name": f"{self.owner}/{self.repo}"})

        prefix = f"/repos/{self.owner}/{self.repo}"
        if not path.startswith(prefix) or not self.exists:
            return httpx.Response(404, json={"message": "Not Found"})
        sub = path[len(prefix):]

        if method == "GET" and sub == "":
            return httpx.Response(200, json={"full_name": f"{self.owner}/{self.repo}"})

        if method == "GET" and sub.startswith("/git/ref/"):
            if not self.commits:
                return httpx.Response(409, json={"message": "Git Repository is empty."})
            ref = sub[len("/git/ref/"):]
            if ref not in self.refs:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json={"ref": f"refs/{ref}", "object": {"sha": self.refs[ref]}})

        if method == "GET" and sub.startswith("/git/commits/"):
            sha = sub[len("/git/commits/"):]
            if sha not in self.commits:
                return httpx.Response(404, json={"message": "Not Found"})
            commit = self.commits[sha]
            return httpx.Response(200, json={
                "sha": sha,
                "tree": {"sha": commit["tree"]},
                "parents": [{"sha": p} for p in commit["parents"]],
            })

        if method == "POST" and sub == "/git/blobs":
            if body["encoding"] == "base64":
                data = base64.b64decode(body["content"])
            else:
                data = body["content"].encode("utf-8")
            return httpx.Response(201, json={"sha": self._put_blob(data, body["encoding"])})

        if method == "POST" and sub == "/git/trees":
            entries = {item["path"]: item["sha"] for item in body["tree"]}
            return httpx.Response(201, json={"sha": self._put_tree(entries, body.get("base_tree"))})

        if method == "POST" and sub == "/git/commits":
            sha = self._put_commit(body["message"], body["tree"], body["parents"])
            return httpx.Response(201, json={"sha": sha})

        if method == "PATCH" and sub.startswith("/git/refs/"):
            ref = sub[len("/git/refs/"):]
            if ref not in self.refs:
                return httpx.Response(422, json={"message": "Reference does not exist"})
            self.refs[ref] = body["sha"]
            return httpx.Response(200, json={"ref": f"refs/{ref}", "object": {"sha": body["sha"]}})

        if method == "POST" and sub == "/git/refs":
            ref = body["ref"][len("refs/"):]
            if ref in self.refs:
                return httpx.Response(422, json={"message": "Reference already exists"})
            self.refs[ref] = body["sha"]
            return httpx.Response(201, json={"ref": body["ref"], "object": {"sha": body["sha"]}})

        if method == "PUT" and sub.startswith("/contents/"):
            file_path = sub[len("/contents/"):]
            ref = f"heads/{body['branch']}"
            parent = self.refs.get(ref)
            if parent is None and self.commits:
                # the contents API only creates a branch in an empty repository
                return httpx.Response(404, json={"message": f"Branch {body['branch']} not found"})
            base_tree = self.commits[parent]["tree"] if parent else None
            blob = self._put_blob(base64.b64decode(body["content"]))
            tree = self._put_tree({file_path: blob}, base_tree)
            sha = self._put_commit(body["message"], tree, [parent] if parent else [])
            self.refs[ref] = sha
            return httpx.Response(201, json={"content": {"path": file_path}, "commit": {"sha": sha}})

        return httpx.Response(404, json={"message": "Not Found"})


@pytest.fixture
def github():
    return FakeGitHub()


@pytest.fixture
def github_factory():
    return FakeGitHub


@pytest.fixture
def site_dir(tmp_path):
    """A small working directory with files that must and must not be synced."""
    root = tmp_path / "site"
    files = {
        "package.json": b'{"name": "landing"}\n',
        "server/routes.py": b"ROUTES = []\n",
        "client/index.html": "<h1>Bientôt</h1>\n".encode("utf-8"),
        "client/logo.png": b"\x89PNG\r\n\x1a\n\x00\x01\x02",
        "node_modules/react/index.js": b"module.exports = {}\n",
        ".git/HEAD": b"ref: refs/heads/main\n",
        ".env": b"GITHUB_PAT=secret\n",
        "dist/bundle.js": b"bundle\n",
        "server.log": b"started\n",
    }
    for rel, data in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    return root


@pytest.fixture
def make_settings(tmp_path):
    def factory(**overrides):
        values = dict(
            github_pat="ghp_testtoken",
            github_repo="octo/landing",
            branch="main",
            commit_message="Deploy landing page",
            base_dir=str(tmp_path / "site"),
            excludes=list(SYSTEM_EXCLUDES),
            data_dir=str(tmp_path / "data"),
            description="Coming Soon",
            connector_hostname="",
            connector_identity="",
            sync_token="",
            host="127.0.0.1",
            port=5000,
        )
        values.update(overrides)
        os.makedirs(values["base_dir"], exist_ok=True)
        return Settings(**values)

    return factory
