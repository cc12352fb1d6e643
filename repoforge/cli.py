"""repoforge CLI — typer-based command interface."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import typer

from .config import CONFIG_DIR, Config, ConfigError, load_config
from .context import render_file
from .github import DirNode, GitHubClient, GitHubError, all_file_paths, split_full_name
from .models import Alert, Job, JobStatus, RemoteFile
from .notifier import Notifier
from .providers import GeminiClient
from .workflows import (
    BulkEditTarget,
    edit_single_file,
    run_advanced_edit,
    run_bulk_edit,
    run_project_expansion,
    run_project_generation,
)

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="repoforge",
    help="repoforge — AI multi-file edits, project generation and CI-verified changes on GitHub",
    no_args_is_help=True,
)

# -------------------------------------------------------------------
# Templates
# -------------------------------------------------------------------

DEFAULT_CONFIG_TEMPLATE = """\
# .repoforge/config.yaml — team-shared configuration
ai:
  timeout_sec: 120
  # primary_models and fallback_models override the built-in roster
  # primary_models:
  #   - gemini-2.5-pro

concurrency:
  bulk_edit: 4
  generation: 4
  expansion: 8

context:
  max_characters: 1000000

verification:
  max_attempts: 3
  settle_delay_sec: 5
  poll_interval_sec: 5
  poll_timeout_sec: 1800
  deployment_url_template: "https://{owner}.github.io/{repo}/"

notify:
  webhook_url: ""
  events:
    - workflow.completed
    - workflow.failed

log_level: INFO
"""

DEFAULT_LOCAL_CONFIG_TEMPLATE = """\
# .repoforge/local.config.yaml — personal overrides (DO NOT commit)
# ai:
#   api_key: AIza-xxx
# github:
#   token: ghp_xxx
"""

GITIGNORE_ENTRIES = [
    f"{CONFIG_DIR}/local.config.yaml",
]

_STATUS_ICONS = {
    JobStatus.SUCCESS: "✅",
    JobStatus.FAILED: "❌",
}


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------

def _get_project_root() -> Path:
    return Path.cwd()


def _run_async(coro):
    """Run an async coroutine from sync context."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None
    if loop and loop.is_running():
        import concurrent.futures
        with concurrent.futures.ThreadPoolExecutor() as pool:
            return pool.submit(asyncio.run, coro).result()
    return asyncio.run(coro)


def _load(verbose: bool = False) -> Config:
    try:
        config = load_config(_get_project_root())
    except ConfigError as e:
        typer.echo(f"  Config Error: {e}", err=True)
        raise typer.Exit(1)
    level = logging.DEBUG if verbose else getattr(logging, config.log_level, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    return config


def _clients(config: Config, need_ai: bool = True) -> tuple[GitHubClient, GeminiClient | None]:
    if not config.github.token:
        typer.echo("  Missing GitHub token (set GITHUB_TOKEN or github.token).", err=True)
        raise typer.Exit(1)
    ai = None
    if need_ai:
        if not config.ai.api_key:
            typer.echo("  Missing AI API key (set GEMINI_API_KEY or ai.api_key).", err=True)
            raise typer.Exit(1)
        ai = GeminiClient(config.ai.api_key, timeout=config.ai.timeout_sec)
    return GitHubClient(config.github.token, api_base=config.github.api_base), ai


def _notifier(config: Config) -> Notifier:
    def echo(alert: Alert) -> None:
        typer.echo(f"  [{alert.level}] {alert.message}")

    return Notifier(config.notify.webhook_url, config.notify.events, on_alert=echo)


def _echo_jobs(jobs: list[Job]) -> None:
    for job in jobs:
        icon = _STATUS_ICONS.get(job.status, "…")
        suffix = f" ({job.error})" if job.error else ""
        typer.echo(f"  {icon} {job.path}: {job.status.value}{suffix}")


def _echo_tree(nodes, indent: int = 0) -> None:
    for node in nodes:
        if isinstance(node, DirNode):
            typer.echo(f"  {'  ' * indent}{node.name}/")
            _echo_tree(node.children, indent + 1)
        else:
            typer.echo(f"  {'  ' * indent}{node.name}")


def _split(repo_full_name: str) -> tuple[str, str]:
    try:
        return split_full_name(repo_full_name)
    except ValueError as e:
        typer.echo(f"  {e}", err=True)
        raise typer.Exit(1)


# -------------------------------------------------------------------
# Setup commands
# -------------------------------------------------------------------

@app.command()
def init():
    """Initialize repoforge in the current directory."""
    root = _get_project_root()

    config_dir = root / CONFIG_DIR
    config_dir.mkdir(exist_ok=True)

    config_path = config_dir / "config.yaml"
    if not config_path.exists():
        config_path.write_text(DEFAULT_CONFIG_TEMPLATE)
        typer.echo(f"  Created {config_path.relative_to(root)}")
    else:
        typer.echo(f"  Exists  {config_path.relative_to(root)}")

    local_path = config_dir / "local.config.yaml"
    if not local_path.exists():
        local_path.write_text(DEFAULT_LOCAL_CONFIG_TEMPLATE)
        typer.echo(f"  Created {local_path.relative_to(root)}")

    gitignore_path = root / ".gitignore"
    existing = ""
    if gitignore_path.exists():
        existing = gitignore_path.read_text()
    additions = [e for e in GITIGNORE_ENTRIES if e not in existing]
    if additions:
        with open(gitignore_path, "a") as f:
            if existing and not existing.endswith("\n"):
                f.write("\n")
            f.write("# repoforge\n")
            for entry in additions:
                f.write(f"{entry}\n")
        typer.echo("  Updated .gitignore")

    typer.echo("\n  repoforge initialized. Run `repoforge config` to check settings.")


@app.command("config")
def config_show():
    """Show merged configuration with credentials masked."""
    import yaml
    from dataclasses import asdict

    config = _load()
    data = asdict(config)
    for section, key in (("ai", "api_key"), ("github", "token")):
        if data[section][key]:
            data[section][key] = data[section][key][:8] + "..."

    typer.echo("\n  repoforge — Merged Configuration")
    typer.echo("  " + "─" * 40)
    typer.echo(yaml.dump(data, default_flow_style=False, allow_unicode=True))


# -------------------------------------------------------------------
# Repository commands
# -------------------------------------------------------------------

@app.command()
def repos(
    create: str = typer.Option(None, "--create", help="Create a repository with this name"),
    private: bool = typer.Option(False, "--private", help="Make the created repository private"),
    description: str = typer.Option("", "--description"),
):
    """List your repositories, or create one."""
    config = _load()
    github, _ = _clients(config, need_ai=False)

    if create:
        repo = _run_async(github.create_repo(create, description, private))
        typer.echo(f"  Created {repo['full_name']}")
        return

    items = _run_async(github.list_repos())
    if not items:
        typer.echo("  No repositories found.")
        return
    for repo in items:
        visibility = "private" if repo.get("private") else "public"
        typer.echo(f"  {repo['full_name']:<40} {visibility:<8} {repo.get('default_branch', '')}")


@app.command()
def tree(
    repo: str = typer.Argument(..., help="owner/repo"),
    branch: str = typer.Option("main", "--branch", "-b"),
):
    """Show the file tree of a branch."""
    owner, name = _split(repo)
    config = _load()
    github, _ = _clients(config, need_ai=False)
    nodes = _run_async(github.get_tree(owner, name, branch))
    if not nodes:
        typer.echo("  Empty tree.")
        return
    _echo_tree(nodes)


@app.command()
def edit(
    repo: str = typer.Argument(..., help="owner/repo"),
    path: str = typer.Argument(..., help="File path in the repository"),
    instruction: str = typer.Argument(..., help="What to change"),
    branch: str = typer.Option("main", "--branch", "-b"),
    commit: bool = typer.Option(False, "--commit", help="Commit the result"),
    message: str = typer.Option(None, "--message", "-m"),
):
    """Rewrite one file with AI and print (or commit) the result."""
    owner, name = _split(repo)
    config = _load()
    github, ai = _clients(config)

    async def _edit():
        current = await github.get_file(owner, name, path, branch)
        content = await edit_single_file(ai, config.roster(), current.content, instruction, path)
        if commit:
            await github.commit_file(
                owner, name, branch, path, content,
                message or f"AI Edit: {instruction[:50]}...", sha=current.sha,
            )
        return content

    content = _run_async(_edit())
    if commit:
        typer.echo(f"  ✅ Committed {path} to {repo}@{branch}")
    else:
        typer.echo(content)


@app.command("commit")
def commit_cmd(
    repo: str = typer.Argument(..., help="owner/repo"),
    path: str = typer.Argument(..., help="File path in the repository"),
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="Local file to upload"),
    branch: str = typer.Option("main", "--branch", "-b"),
    message: str = typer.Option(None, "--message", "-m"),
):
    """Commit a local file to a repository path."""
    owner, name = _split(repo)
    config = _load()
    github, _ = _clients(config, need_ai=False)

    async def _commit():
        current = await github.get_file_if_exists(owner, name, path, branch)
        return await github.commit_file(
            owner, name, branch, path, source.read_text(),
            message or f"Update {path}", sha=current.sha,
        )

    sha = _run_async(_commit())
    typer.echo(f"  ✅ Committed {path} ({sha[:7]})")


@app.command()
def branch(
    repo: str = typer.Argument(..., help="owner/repo"),
    name: str = typer.Argument(None, help="Branch to create; omit to list branches"),
    base: str = typer.Option("main", "--base", help="Branch to start from"),
):
    """List branches, or create one from --base."""
    owner, repo_name = _split(repo)
    config = _load()
    github, _ = _clients(config, need_ai=False)

    if not name:
        for b in _run_async(github.list_branches(owner, repo_name)):
            typer.echo(f"  {b['name']}")
        return

    async def _create():
        source = await github.get_branch(owner, repo_name, base)
        return await github.create_branch(owner, repo_name, name, source["commit"]["sha"])

    _run_async(_create())
    typer.echo(f"  Created branch {name} from {base}")


@app.command()
def pr(
    repo: str = typer.Argument(..., help="owner/repo"),
    head: str = typer.Option(..., "--head", help="Branch with the changes"),
    base: str = typer.Option("main", "--base"),
    title: str = typer.Option(..., "--title"),
    body: str = typer.Option("", "--body"),
):
    """Open a pull request."""
    owner, name = _split(repo)
    config = _load()
    github, _ = _clients(config, need_ai=False)
    created = _run_async(github.create_pull_request(owner, name, title, body, head, base))
    typer.echo(f"  Opened #{created['number']}: {created.get('html_url', '')}")


@app.command()
def workflows(repo: str = typer.Argument(..., help="owner/repo")):
    """List the Actions workflows of a repository."""
    owner, name = _split(repo)
    config = _load()
    github, _ = _clients(config, need_ai=False)
    items = _run_async(github.list_workflows(owner, name))
    if not items:
        typer.echo("  No workflows found.")
        return
    for wf in items:
        typer.echo(f"  {wf['id']:<12} {wf.get('name', ''):<30} {wf.get('path', '')}")


# -------------------------------------------------------------------
# Workflow commands
# -------------------------------------------------------------------

@app.command("bulk-edit")
def bulk_edit(
    instruction: str = typer.Argument(..., help="Instruction applied to every file"),
    targets: list[str] = typer.Option(
        ..., "--file", "-f", help="owner/repo:path (repeatable)",
    ),
    branch: str = typer.Option("main", "--branch", "-b"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Apply one instruction to many files in parallel."""
    parsed = []
    for target in targets:
        repo, sep, path = target.partition(":")
        if not sep or not path:
            typer.echo(f"  Expected owner/repo:path, got '{target}'", err=True)
            raise typer.Exit(1)
        _split(repo)
        parsed.append(BulkEditTarget(repo_full_name=repo, path=path, branch=branch))

    config = _load(verbose)
    github, ai = _clients(config)
    session = _run_async(run_bulk_edit(
        github, ai, config.roster(), parsed, instruction,
        concurrency=config.concurrency.bulk_edit,
    ))
    _echo_jobs(session.jobs)
    if any(j.status == JobStatus.FAILED for j in session.jobs):
        raise typer.Exit(1)


@app.command("new-project")
def new_project(
    name: str = typer.Argument(..., help="Repository name"),
    prompt: str = typer.Argument(..., help="What the project should be"),
    private: bool = typer.Option(False, "--private"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Create a repository and generate a project into it."""
    config = _load(verbose)
    github, ai = _clients(config)
    session = _run_async(run_project_generation(
        github, ai, config.roster(), _notifier(config), name, prompt,
        private=private, concurrency=config.concurrency.generation,
    ))
    _echo_jobs(session.jobs)
    if session.error:
        raise typer.Exit(1)


@app.command()
def expand(
    repo: str = typer.Argument(..., help="owner/repo"),
    seed: str = typer.Argument(..., help="Seed file the project grows around"),
    prompt: str = typer.Argument(..., help="What to build around the seed"),
    branch: str = typer.Option("main", "--branch", "-b"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Generate new files around a single seed file."""
    _split(repo)
    config = _load(verbose)
    github, ai = _clients(config)
    session = _run_async(run_project_expansion(
        github, ai, config.roster(), _notifier(config), repo, branch, [seed], prompt,
        concurrency=config.concurrency.expansion,
    ))
    _echo_jobs(session.jobs)
    if session.error:
        raise typer.Exit(1)


async def _load_files(
    github: GitHubClient, owner: str, repo: str, branch: str,
    active_path: str | None, budget: int,
) -> list[RemoteFile]:
    """Fetch files in context order until the planning budget is full.

    Binary blobs are skipped; any other GitHub failure propagates.
    """
    paths = all_file_paths(await github.get_tree(owner, repo, branch))
    if active_path in paths:
        paths.remove(active_path)
        paths.insert(0, active_path)

    files: list[RemoteFile] = []
    remaining = budget
    for path in paths:
        try:
            remote = await github.get_file(owner, repo, path, branch)
        except UnicodeDecodeError:
            logger.warning("Skipping binary file %s", path)
            continue
        size = len(render_file(remote.path, remote.content))
        if size > remaining:
            if path == active_path:
                continue
            break
        files.append(remote)
        remaining -= size
    return files


@app.command("advanced-edit")
def advanced_edit(
    repo: str = typer.Argument(..., help="owner/repo"),
    instruction: str = typer.Argument(..., help="What to change"),
    workflow: str = typer.Option(..., "--workflow", "-w", help="Workflow id or file name"),
    branch: str = typer.Option("main", "--branch", "-b"),
    active: str = typer.Option(None, "--active", help="File to prioritise in the context"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Edit across the repository and iterate until the CI workflow passes."""
    owner, name = _split(repo)
    config = _load(verbose)
    github, ai = _clients(config)

    async def _advanced():
        files = await _load_files(
            github, owner, name, branch, active, config.context.max_characters,
        )
        return await run_advanced_edit(
            github, ai, config.roster(), _notifier(config),
            repo_full_name=repo,
            branch=branch,
            instruction=instruction,
            workflow_id=workflow,
            files=files,
            active_path=active,
            verification=config.verification,
            context_budget=config.context.max_characters,
        )

    try:
        session = _run_async(_advanced())
    except GitHubError as e:
        typer.echo(f"  {e}", err=True)
        raise typer.Exit(1)
    if session.reasoning:
        typer.echo(f"\n  Reasoning: {session.reasoning}\n")
    _echo_jobs(session.jobs)
    typer.echo(f"  Attempts: {session.attempt}")
    if session.workflow_run_url:
        typer.echo(f"  Last run: {session.workflow_run_url}")
    if session.deployment_url:
        typer.echo(f"  Deployment (guessed): {session.deployment_url}")
    if not session.succeeded:
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
