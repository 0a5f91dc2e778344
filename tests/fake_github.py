"""
In-memory stand-in for the GitHub contents API.

Served through httpx.MockTransport so the real VersionedFileStore runs
unchanged against it. It enforces the same SHA rules GitHub does:
stale sha -> 409, create over an existing file -> 422 '"sha" wasn't
supplied', delete without sha -> 422.
"""

import base64
import hashlib
import itertools
import json
import textwrap

import httpx

from quire.config import Settings, load_settings

OWNER = "acme"
REPO = "site"
BRANCH = "main"


def make_settings(**overrides) -> Settings:
    values = {
        "GITHUB_REPO_OWNER": OWNER,
        "GITHUB_REPO_NAME": REPO,
        "GITHUB_BRANCH_NAME": BRANCH,
        "GITHUB_WRITE_TOKEN": "ghp_test",
        "GITHUB_API_URL": "https://api.github.test",
        "_env_file": None,
    }
    values.update(overrides)
    return load_settings(**values)


def git_blob_sha(path: str, data: bytes) -> str:
    return hashlib.sha1(b"blob %d\0" % len(data) + data).hexdigest()


class SequentialTokens:
    """Token factory yielding v1, v2, ... so scenarios can name versions."""

    def __init__(self):
        self._counter = itertools.count(1)

    def __call__(self, path: str, data: bytes) -> str:
        return f"v{next(self._counter)}"


def _json(status: int, body) -> httpx.Response:
    return httpx.Response(status, json=body, headers={
        "x-ratelimit-limit": "5000",
        "x-ratelimit-remaining": "4990",
        "x-ratelimit-reset": "1700000000",
    })


class FakeGitHub:
    def __init__(self, owner=OWNER, repo=REPO, branch=BRANCH, token_factory=git_blob_sha, login="quire-bot"):
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.login = login
        self.token_factory = token_factory
        self.files: dict[str, bytes] = {}
        self.shas: dict[str, str] = {}
        self.dirs: set[str] = set()
        self.commits: list[dict] = []
        self.requests: list[httpx.Request] = []
        # path -> (status, body, headers) returned instead of the normal response
        self.failures: dict[str, tuple] = {}
        self.inline_limit = None
        self.rate = {"limit": 5000, "remaining": 4990, "reset": 1700000000, "used": 10}

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    # -- setup helpers -----------------------------------------------------

    def seed(self, path: str, content) -> str:
        data = content.encode("utf-8") if isinstance(content, str) else content
        self.files[path] = data
        self.shas[path] = self.token_factory(path, data)
        return self.shas[path]

    def mkdir(self, path: str):
        self.dirs.add(path)

    def fail(self, path: str, status: int, message: str = "boom", headers=None):
        self.failures[path] = (status, {"message": message}, headers or {})

    def text(self, path: str) -> str:
        return self.files[path].decode("utf-8")

    @property
    def writes(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method in ("PUT", "DELETE")]

    # -- routing -----------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url_path = request.url.path

        if url_path == "/rate_limit":
            return _json(200, {"resources": {"core": self.rate}, "rate": self.rate})
        if url_path == "/user":
            return _json(200, {"login": self.login})

        prefix = f"/repos/{self.owner}/{self.repo}/"
        if not url_path.startswith(prefix):
            return _json(404, {"message": "Not Found"})
        rest = url_path[len(prefix):]

        if rest.startswith("branches/"):
            name = rest[len("branches/"):]
            if name != self.branch:
                return _json(404, {"message": "Branch not found"})
            return _json(200, {"name": name, "commit": {"sha": self._head()}})

        if rest.startswith("git/blobs/"):
            sha = rest[len("git/blobs/"):]
            for path, token in self.shas.items():
                if token == sha:
                    return _json(200, {"sha": sha, "encoding": "base64", "content": self._b64(self.files[path])})
            return _json(404, {"message": "Not Found"})

        if rest == "contents" or rest.startswith("contents/"):
            path = rest[len("contents"):].strip("/")
            if path in self.failures:
                status, body, headers = self.failures[path]
                return httpx.Response(status, json=body, headers=headers)
            if request.method == "GET":
                return self._get(path, request.url.params.get("ref"))
            body = json.loads(request.content)
            if body.get("branch") != self.branch:
                return _json(404, {"message": f"Branch {body.get('branch')} not found"})
            if request.method == "PUT":
                return self._put(path, body)
            if request.method == "DELETE":
                return self._delete(path, body)

        return _json(404, {"message": "Not Found"})

    # -- contents API ------------------------------------------------------

    @staticmethod
    def _b64(data: bytes) -> str:
        # GitHub wraps base64 payloads at 60 columns
        return "\n".join(textwrap.wrap(base64.b64encode(data).decode("ascii"), 60)) + "\n"

    def _head(self) -> str:
        return self.commits[-1]["sha"] if self.commits else "0" * 40

    def _is_dir(self, path: str) -> bool:
        if path == "" or path in self.dirs:
            return True
        prefix = path + "/"
        return any(p.startswith(prefix) for p in itertools.chain(self.files, self.dirs))

    def _get(self, path: str, ref):
        if ref not in (None, self.branch):
            return _json(404, {"message": f"No commit found for the ref {ref}"})
        if path in self.files:
            data = self.files[path]
            item = self._item(path, "file")
            if self.inline_limit is not None and len(data) > self.inline_limit:
                item.update(encoding="none", content="")
            else:
                item.update(encoding="base64", content=self._b64(data))
            return _json(200, item)
        if self._is_dir(path):
            prefix = path + "/" if path else ""
            children = {}
            for p in itertools.chain(self.files, self.dirs):
                if not p.startswith(prefix):
                    continue
                head, _, tail = p[len(prefix):].partition("/")
                child = prefix + head
                kind = "dir" if tail or child in self.dirs else "file"
                children.setdefault(child, kind)
            return _json(200, [self._item(p, kind) for p, kind in sorted(children.items())])
        return _json(404, {"message": "Not Found"})

    def _item(self, path: str, kind: str) -> dict:
        is_file = kind == "file"
        return {
            "type": kind,
            "name": path.rsplit("/", 1)[-1],
            "path": path,
            "sha": self.shas[path] if is_file else hashlib.sha1(path.encode()).hexdigest(),
            "size": len(self.files[path]) if is_file else 0,
        }

    def _commit(self, path: str, body: dict, action: str) -> str:
        sha = hashlib.sha1(f"{len(self.commits)}:{path}:{action}".encode()).hexdigest()
        self.commits.append({
            "sha": sha,
            "path": path,
            "action": action,
            "message": body["message"],
            "author": body.get("author"),
            "committer": body.get("committer"),
        })
        return sha

    def _put(self, path: str, body: dict):
        sha = body.get("sha")
        exists = path in self.files
        if self._is_dir(path) and not exists:
            return _json(422, {"message": "path is a directory"})
        if exists and sha is None:
            return _json(422, {"message": "Invalid request.\n\n\"sha\" wasn't supplied."})
        if exists and sha != self.shas[path]:
            return _json(409, {"message": f"{path} does not match {sha}"})
        if not exists and sha is not None:
            return _json(409, {"message": f"{path} does not match {sha}"})

        self.seed(path, base64.b64decode(body["content"]))
        commit_sha = self._commit(path, body, "update" if exists else "create")
        return _json(201 if not exists else 200, {
            "content": self._item(path, "file"),
            "commit": {"sha": commit_sha, "message": body["message"]},
        })

    def _delete(self, path: str, body: dict):
        sha = body.get("sha")
        if sha is None:
            return _json(422, {"message": "Invalid request.\n\n\"sha\" wasn't supplied."})
        if path not in self.files:
            return _json(404, {"message": "Not Found"})
        if sha != self.shas[path]:
            return _json(409, {"message": f"{path} does not match {sha}"})
        del self.files[path]
        del self.shas[path]
        commit_sha = self._commit(path, body, "delete")
        return _json(200, {"content": None, "commit": {"sha": commit_sha, "message": body["message"]}})
