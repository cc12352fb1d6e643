"""Shared fixtures and in-memory fakes for repoforge tests."""

from __future__ import annotations

import anyio
import pytest

from repoforge.config import VerificationConfig
from repoforge.github import GitHubError, build_tree
from repoforge.models import RemoteFile
from repoforge.notifier import Notifier


class FakeAI:
    """Scripted AI backend.

    ``json_responses`` are returned by ``generate_json`` in order (exception
    instances are raised). ``stream(model, prompt)`` returns the text to
    stream, an exception to raise, or ``(partial_text, exception)`` to
    stream some chunks and then fail.
    """

    def __init__(self, json_responses=None, stream=None, chunk_size=4):
        self.json_responses = list(json_responses or [])
        self.stream = stream or (lambda model, prompt: "generated")
        self.chunk_size = chunk_size
        self.json_calls: list[tuple[str, str]] = []
        self.stream_calls: list[tuple[str, str]] = []
        self.active = 0
        self.max_active = 0

    async def generate_json(self, model, prompt, schema):
        self.json_calls.append((model, prompt))
        await anyio.sleep(0)
        response = self.json_responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    async def stream_text(self, model, prompt, on_chunk):
        self.stream_calls.append((model, prompt))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await anyio.sleep(0)
            result = self.stream(model, prompt)
            error = None
            if isinstance(result, Exception):
                raise result
            if isinstance(result, tuple):
                result, error = result
            for i in range(0, len(result), self.chunk_size):
                on_chunk(result[i:i + self.chunk_size])
                await anyio.sleep(0)
            if error is not None:
                raise error
            return result
        finally:
            self.active -= 1


class FakeGitHub:
    """In-memory repository store with version tokens and scripted CI runs.

    Files are keyed by ``"owner/repo:path"``. A commit must carry the
    current sha of an existing file and no sha for a new one.
    ``conclusions`` lists the result of each triggered workflow run; a run
    completes on the second poll after it was triggered.
    """

    def __init__(self, files=None, conclusions=None, never_complete=False):
        self.files: dict[str, RemoteFile] = {}
        self._sha = 0
        for key, content in (files or {}).items():
            self.files[key] = RemoteFile(key.split(":", 1)[1], content, self._next_sha())
        self.commits: list[dict] = []
        self.fail_commits: set[str] = set()
        self.fail_reads: dict[str, int] = {}
        self.binary: set[str] = set()
        self.reads: list[str] = []
        self.conclusions = list(conclusions or [])
        self.never_complete = never_complete
        self.runs: list[dict] = [
            {"id": 1, "status": "completed", "conclusion": "failure", "html_url": "https://ci/runs/1"},
        ]
        self.triggers = 0
        self.polls = 0
        self.log_requests: list[int] = []
        self.created_repos: list[dict] = []

    def _next_sha(self) -> str:
        self._sha += 1
        return f"sha{self._sha}"

    def content(self, key: str) -> str:
        return self.files[key].content

    async def create_repo(self, name, description, private):
        self.created_repos.append({"name": name, "description": description, "private": private})
        self.files[f"me/{name}:README.md"] = RemoteFile("README.md", f"# {name}\n", self._next_sha())
        return {
            "full_name": f"me/{name}",
            "name": name,
            "owner": {"login": "me"},
            "default_branch": "main",
        }

    async def get_tree(self, owner, repo, branch):
        prefix = f"{owner}/{repo}:"
        return build_tree([
            {"path": k[len(prefix):], "type": "blob"} for k in self.files if k.startswith(prefix)
        ])

    async def get_file(self, owner, repo, path, ref=None):
        await anyio.sleep(0)
        self.reads.append(path)
        if path in self.fail_reads:
            raise GitHubError(self.fail_reads[path], "Forbidden")
        if path in self.binary:
            raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
        found = self.files.get(f"{owner}/{repo}:{path}")
        if found is None:
            raise GitHubError(404, "Not Found")
        return RemoteFile(found.path, found.content, found.sha)

    async def get_file_if_exists(self, owner, repo, path, ref=None):
        try:
            return await self.get_file(owner, repo, path, ref)
        except GitHubError:
            return RemoteFile(path, "", None)

    async def commit_file(self, owner, repo, branch, path, content, message, sha=None):
        await anyio.sleep(0)
        key = f"{owner}/{repo}:{path}"
        if path in self.fail_commits:
            raise GitHubError(500, "Server Error")
        current = self.files.get(key)
        if current is not None and current.sha != sha:
            raise GitHubError(409, f"{path} does not match {sha}")
        if current is None and sha is not None:
            raise GitHubError(404, "Not Found")
        new_sha = self._next_sha()
        self.files[key] = RemoteFile(path, content, new_sha)
        self.commits.append({"key": key, "content": content, "message": message, "sha": sha})
        return new_sha

    async def trigger_workflow(self, owner, repo, workflow_id, branch):
        self.triggers += 1
        run_id = 100 + self.triggers
        self.runs.insert(0, {
            "id": run_id,
            "status": "queued",
            "conclusion": None,
            "html_url": f"https://ci/runs/{run_id}",
            "_polls": 0,
        })

    async def list_workflow_runs(self, owner, repo, workflow_id, branch):
        self.polls += 1
        latest = self.runs[0]
        if "_polls" in latest and latest["status"] != "completed" and not self.never_complete:
            latest["_polls"] += 1
            if latest["_polls"] >= 2:
                latest["status"] = "completed"
                latest["conclusion"] = self.conclusions.pop(0)
            else:
                latest["status"] = "in_progress"
        return [dict(r) for r in self.runs]

    async def get_workflow_run_logs(self, owner, repo, run_id):
        self.log_requests.append(run_id)
        return f"error TS2304 in run {run_id}"


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def fast_verification():
    return VerificationConfig(
        max_attempts=3,
        settle_delay_sec=0,
        poll_interval_sec=0,
        poll_timeout_sec=5,
    )


@pytest.fixture
def tmp_project(tmp_path):
    """A project directory with a .repoforge/config.yaml."""
    config_dir = tmp_path / ".repoforge"
    config_dir.mkdir()
    (config_dir / "config.yaml").write_text("""\
ai:
  api_key: file-key
  primary_models:
    - m1
    - m2
  fallback_models:
    - m3
github:
  token: ghp_filetoken
concurrency:
  bulk_edit: 2
verification:
  max_attempts: 2
  poll_timeout_sec: 0
notify:
  webhook_url: ""
  events:
    - workflow.failed
""")
    return tmp_path
