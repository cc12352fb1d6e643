"""GitHub REST API client: repositories, contents, branches, pull requests, Actions."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

from .models import RemoteFile

API_BASE = "https://api.github.com"
_PER_PAGE = 100

logger = logging.getLogger(__name__)


class GitHubError(Exception):
    """Non-2xx response from the GitHub API."""

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        super().__init__(f"GitHub API Error: {status_code} {message}".rstrip())


# ---------------------------------------------------------------------------
# File tree
# ---------------------------------------------------------------------------

@dataclass
class FileNode:
    path: str
    name: str
    type: str = "file"


@dataclass
class DirNode:
    path: str
    name: str
    children: list[DirNode | FileNode] = field(default_factory=list)
    type: str = "dir"


def build_tree(items: list[dict]) -> list[DirNode | FileNode]:
    """Fold a flat recursive git tree into nested nodes.

    Only blobs are kept; each level lists directories first, then files,
    alphabetically.
    """
    root: dict[str, Any] = {}
    for item in items:
        if item.get("type") != "blob":
            continue
        parts = item["path"].split("/")
        level = root
        for index, part in enumerate(parts[:-1]):
            entry = level.setdefault(part, ("dir", "/".join(parts[: index + 1]), {}))
            level = entry[2]
        level.setdefault(parts[-1], ("file", item["path"], None))

    def convert(level: dict[str, Any]) -> list[DirNode | FileNode]:
        nodes: list[DirNode | FileNode] = []
        for name, (kind, path, children) in level.items():
            if kind == "dir":
                nodes.append(DirNode(path=path, name=name, children=convert(children)))
            else:
                nodes.append(FileNode(path=path, name=name))
        nodes.sort(key=lambda n: (n.type != "dir", n.name))
        return nodes

    return convert(root)


def all_file_paths(nodes: list[DirNode | FileNode]) -> list[str]:
    paths: list[str] = []
    for node in nodes:
        if isinstance(node, DirNode):
            paths.extend(all_file_paths(node.children))
        else:
            paths.append(node.path)
    return paths


def split_full_name(repo_full_name: str) -> tuple[str, str]:
    owner, _, repo = repo_full_name.partition("/")
    if not owner or not repo:
        raise ValueError(f"Expected 'owner/repo', got {repo_full_name!r}")
    return owner, repo


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class GitHubClient:
    """Thin async wrapper around the endpoints repoforge needs."""

    def __init__(self, token: str, api_base: str = API_BASE, timeout: float = 30):
        self.token = token
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    def _headers(self, accept: str = "application/vnd.github.v3+json") -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": accept,
            "X-GitHub-Api-Version": "2022-11-28",
        }

    async def _request(
        self,
        method: str,
        url: str,
        *,
        accept: str = "application/vnd.github.v3+json",
        **kwargs,
    ) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            resp = await client.request(
                method, f"{self.api_base}{url}", headers=self._headers(accept), **kwargs
            )
        if resp.is_error:
            raise GitHubError(resp.status_code, _error_message(resp))
        return resp

    async def _json(self, method: str, url: str, **kwargs) -> Any:
        resp = await self._request(method, url, **kwargs)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    # -- repositories -------------------------------------------------------

    async def list_repos(self) -> list[dict]:
        """All repositories owned by the authenticated user."""
        repos: list[dict] = []
        page = 1
        while True:
            batch = await self._json(
                "GET", "/user/repos",
                params={"type": "owner", "per_page": _PER_PAGE, "page": page},
            )
            repos.extend(batch)
            if len(batch) < _PER_PAGE:
                return repos
            page += 1

    async def create_repo(self, name: str, description: str, private: bool) -> dict:
        # auto_init avoids committing into an empty repository
        return await self._json(
            "POST", "/user/repos",
            json={"name": name, "description": description, "private": private, "auto_init": True},
        )

    async def get_tree(self, owner: str, repo: str, branch: str) -> list[DirNode | FileNode]:
        data = await self._json(
            "GET", f"/repos/{owner}/{repo}/git/trees/{quote(branch, safe='')}",
            params={"recursive": 1},
        )
        return build_tree(data.get("tree", []))

    # -- contents -----------------------------------------------------------

    async def get_file(self, owner: str, repo: str, path: str, ref: str | None = None) -> RemoteFile:
        params = {"ref": ref} if ref else None
        data = await self._json(
            "GET", f"/repos/{owner}/{repo}/contents/{quote(path)}", params=params,
        )
        content = base64.b64decode(data.get("content") or "").decode("utf-8")
        return RemoteFile(path=data.get("path", path), content=content, sha=data.get("sha"))

    async def get_file_if_exists(
        self, owner: str, repo: str, path: str, ref: str | None = None,
    ) -> RemoteFile:
        """Like ``get_file``, but a missing file reads as empty with no sha."""
        try:
            return await self.get_file(owner, repo, path, ref)
        except GitHubError as exc:
            if exc.status_code != 404:
                raise
            return RemoteFile(path=path, content="", sha=None)

    async def commit_file(
        self,
        owner: str,
        repo: str,
        branch: str,
        path: str,
        content: str,
        message: str,
        sha: str | None = None,
    ) -> str:
        """Create or update *path*; *sha* must name the blob being replaced.

        Returns the new blob sha.
        """
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if sha:
            body["sha"] = sha
        data = await self._json("PUT", f"/repos/{owner}/{repo}/contents/{quote(path)}", json=body)
        logger.info("Committed %s/%s:%s@%s", owner, repo, branch, path)
        return data["content"]["sha"]

    # -- branches & pull requests -------------------------------------------

    async def list_branches(self, owner: str, repo: str) -> list[dict]:
        return await self._json("GET", f"/repos/{owner}/{repo}/branches", params={"per_page": _PER_PAGE})

    async def get_branch(self, owner: str, repo: str, branch: str) -> dict:
        return await self._json("GET", f"/repos/{owner}/{repo}/branches/{quote(branch, safe='')}")

    async def create_branch(self, owner: str, repo: str, name: str, base_sha: str) -> dict:
        return await self._json(
            "POST", f"/repos/{owner}/{repo}/git/refs",
            json={"ref": f"refs/heads/{name}", "sha": base_sha},
        )

    async def create_pull_request(
        self, owner: str, repo: str, title: str, body: str, head: str, base: str,
    ) -> dict:
        return await self._json(
            "POST", f"/repos/{owner}/{repo}/pulls",
            json={"title": title, "body": body, "head": head, "base": base},
        )

    # -- Actions ------------------------------------------------------------

    async def list_workflows(self, owner: str, repo: str) -> list[dict]:
        data = await self._json("GET", f"/repos/{owner}/{repo}/actions/workflows")
        return data.get("workflows", [])

    async def trigger_workflow(self, owner: str, repo: str, workflow_id: str | int, branch: str) -> None:
        await self._json(
            "POST", f"/repos/{owner}/{repo}/actions/workflows/{workflow_id}/dispatches",
            json={"ref": branch},
        )

    async def list_workflow_runs(
        self, owner: str, repo: str, workflow_id: str | int, branch: str,
    ) -> list[dict]:
        """Runs for *workflow_id* on *branch*, newest first."""
        data = await self._json(
            "GET", f"/repos/{owner}/{repo}/actions/workflows/{workflow_id}/runs",
            params={"branch": branch},
        )
        return data.get("workflow_runs", [])

    async def get_workflow_run(self, owner: str, repo: str, run_id: int) -> dict:
        return await self._json("GET", f"/repos/{owner}/{repo}/actions/runs/{run_id}")

    async def get_workflow_run_logs(self, owner: str, repo: str, run_id: int) -> str:
        """Raw logs of the failed jobs of a run, or of all jobs if none failed."""
        data = await self._json("GET", f"/repos/{owner}/{repo}/actions/runs/{run_id}/jobs")
        jobs = data.get("jobs", [])
        failed = [j for j in jobs if j.get("conclusion") == "failure"]

        parts: list[str] = []
        for job in failed or jobs:
            try:
                resp = await self._request(
                    "GET", f"/repos/{owner}/{repo}/actions/jobs/{job['id']}/logs",
                    accept="application/vnd.github.v3.raw",
                )
            except (GitHubError, httpx.HTTPError) as exc:
                logger.warning("Could not fetch logs for job %s: %s", job["id"], exc)
                parts.append(f"\n\n--- FAILED TO FETCH LOGS FOR JOB {job['id']} ---")
                continue
            parts.append(
                f"\n\n--- LOGS FOR JOB {job['id']} (Conclusion: {job.get('conclusion')}) ---\n\n{resp.text}"
            )
        return "".join(parts)


def _error_message(resp: httpx.Response) -> str:
    if "application/json" in resp.headers.get("content-type", ""):
        try:
            data = resp.json()
        except ValueError:
            data = None
        if isinstance(data, dict):
            return str(data.get("message", ""))
    return resp.text
