"""Tests for the pooled workflows: bulk edit, project generation, expansion."""

import pytest
from repoforge.models import ExpansionPhase, ExpansionPlan, FileEdit, FileSpec, JobStatus
from repoforge.workflows import (
    BulkEditTarget,
    edit_single_file,
    run_bulk_edit,
    run_project_expansion,
    run_project_generation,
)
from repoforge.workflows.expansion import screen_plan

from conftest import FakeAI, FakeGitHub


def _path_from(prompt):
    return prompt.split('File Path: "')[1].split('"')[0]


# --- bulk edit ---

@pytest.mark.asyncio
async def test_bulk_edit_commits_each_file():
    gh = FakeGitHub(files={
        "octo/app:a.py": "a = 1",
        "octo/app:b.py": "b = 1",
        "octo/lib:c.py": "c = 1",
    })
    ai = FakeAI(stream=lambda model, prompt: f"```py\n# edited {_path_from(prompt)}\n```")
    targets = [
        BulkEditTarget("octo/app", "a.py", "main"),
        BulkEditTarget("octo/app", "b.py", "main"),
        BulkEditTarget("octo/lib", "c.py", "main"),
    ]
    session = await run_bulk_edit(gh, ai, ["m1"], targets, "add a header comment", concurrency=2)

    assert [j.id for j in session.jobs] == ["octo/app::a.py", "octo/app::b.py", "octo/lib::c.py"]
    assert all(j.status == JobStatus.SUCCESS for j in session.jobs)
    assert gh.content("octo/lib:c.py") == "# edited c.py"
    assert {c["message"] for c in gh.commits} == {"AI Edit: add a header comment..."}
    assert ai.max_active <= 2


@pytest.mark.asyncio
async def test_bulk_edit_runs_at_most_limit_at_once():
    files = {f"octo/app:f{i}.py": f"v = {i}" for i in range(10)}
    gh = FakeGitHub(files=files)
    ai = FakeAI(stream=lambda model, prompt: f"# edited {_path_from(prompt)}")
    targets = [BulkEditTarget("octo/app", f"f{i}.py", "main") for i in range(10)]
    session = await run_bulk_edit(gh, ai, ["m1"], targets, "edit", concurrency=4)

    assert all(j.status == JobStatus.SUCCESS for j in session.jobs)
    assert len(gh.commits) == 10
    assert ai.max_active == 4


@pytest.mark.asyncio
async def test_bulk_edit_failures_stay_on_their_job():
    gh = FakeGitHub(files={"o/r:ok.py": "x", "o/r:bad.py": "y"})
    gh.fail_commits.add("bad.py")
    ai = FakeAI(stream=lambda model, prompt: "new")
    targets = [BulkEditTarget("o/r", "ok.py", "main"), BulkEditTarget("o/r", "bad.py", "main"),
               BulkEditTarget("o/r", "missing.py", "main")]
    session = await run_bulk_edit(gh, ai, ["m1", "m2"], targets, "edit")

    status = {j.path: j.status for j in session.jobs}
    assert status == {
        "ok.py": JobStatus.SUCCESS,
        "bad.py": JobStatus.FAILED,
        "missing.py": JobStatus.FAILED,
    }
    # commit failures are not retried with the next model
    assert sum(1 for _, p in ai.stream_calls if "bad.py" in p) == 1


@pytest.mark.asyncio
async def test_bulk_edit_rejects_bad_repo_name():
    with pytest.raises(ValueError):
        await run_bulk_edit(FakeGitHub(), FakeAI(), ["m1"], [BulkEditTarget("norepo", "a", "main")], "x")


@pytest.mark.asyncio
async def test_bulk_edit_reports_progress():
    gh = FakeGitHub(files={"o/r:a.py": "x"})
    snapshots = []
    await run_bulk_edit(
        gh, FakeAI(stream=lambda m, p: "abcdefgh"), ["m1"], [BulkEditTarget("o/r", "a.py", "main")], "x",
        on_update=lambda s: snapshots.append(s.jobs[0].streamed_content),
    )
    assert "abcd" in snapshots
    assert snapshots[-1] == "abcdefgh"


# --- project generation ---

@pytest.mark.asyncio
async def test_project_generation_creates_repo_and_files(notifier):
    plan = {"files": [
        {"path": "index.html", "description": "Page"},
        {"path": "README.md", "description": "Docs"},
        {"path": "src/app.js", "description": "Logic"},
    ]}
    gh = FakeGitHub()
    ai = FakeAI(json_responses=[plan], stream=lambda model, prompt: "```\ncontent\n```")
    messages = []
    session = await run_project_generation(
        gh, ai, ["m1"], notifier, "todo", "A todo app",
        on_update=lambda s: messages.append(s.status_message),
    )

    assert session.repo_full_name == "me/todo"
    assert gh.created_repos[0]["description"] == "AI Generated: A todo app..."
    assert all(j.status == JobStatus.SUCCESS for j in session.jobs)
    assert gh.content("me/todo:src/app.js") == "content"
    # auto-initialised README is overwritten with its current sha
    assert gh.content("me/todo:README.md") == "content"
    assert messages[0] == "Initializing repository..."
    assert "Planning structure..." in " ".join(messages)
    assert "Generating files..." in messages
    assert messages[-1] == "Complete"
    assert notifier.latest.level == "success"
    assert notifier.latest.message == "Generated 3/3 files in me/todo"


@pytest.mark.asyncio
async def test_project_generation_plan_falls_back(notifier):
    ai = FakeAI(json_responses=[RuntimeError("m1 down"), {"files": [{"path": "a", "description": "d"}]}])
    session = await run_project_generation(FakeGitHub(), ai, ["m1", "m2"], notifier, "x", "p")
    assert [m for m, _ in ai.json_calls] == ["m1", "m2"]
    assert session.error is None


@pytest.mark.asyncio
async def test_project_generation_plan_failure_alerts(notifier):
    ai = FakeAI(json_responses=[RuntimeError("a"), RuntimeError("b")])
    session = await run_project_generation(FakeGitHub(), ai, ["m1", "m2"], notifier, "x", "p")
    assert session.error == "All AI models failed."
    assert session.status_message.startswith("Error:")
    assert session.jobs == []
    assert notifier.latest.level == "error"
    assert notifier.latest.message.startswith("Project generation failed:")


# --- expansion ---

def test_screen_plan_flags_edits_and_seed_creates():
    plan = ExpansionPlan(
        files_to_create=[FileSpec("seed.py", "overwrite"), FileSpec("new.py", "n", agent_index=3)],
        files_to_edit=[FileEdit("other.py", "tweak")],
    )
    jobs, flagged = screen_plan(plan, "seed.py")
    assert [j.path for j in jobs] == ["new.py"]
    assert jobs[0].agent_index == 3
    assert sorted(f.path for f in flagged) == ["other.py", "seed.py"]


@pytest.mark.asyncio
async def test_expansion_never_edits_seed(notifier):
    """A plan that asks to edit the seed is flagged; the seed is untouched."""
    plan = {
        "filesToEdit": [{"path": "core.py", "changes": "refactor everything"}],
        "filesToCreate": [
            {"path": "api.py", "description": "API", "agentIndex": 0},
            {"path": "core.py", "description": "rewrite", "agentIndex": 1},
            {"path": "cli.py", "description": "CLI", "agentIndex": 2},
        ],
    }
    gh = FakeGitHub(files={"o/r:core.py": "SEED"})
    ai = FakeAI(json_responses=[plan], stream=lambda model, prompt: "generated")
    session = await run_project_expansion(gh, ai, ["m1"], notifier, "o/r", "main", ["core.py"], "grow it")

    assert gh.content("o/r:core.py") == "SEED"
    assert [j.path for j in session.jobs] == ["api.py", "cli.py"]
    assert all(j.status == JobStatus.SUCCESS for j in session.jobs)
    assert {f.path for f in session.flagged_edits} == {"core.py"}
    assert any(a.level == "warning" for a in notifier.alerts)
    assert session.phase == ExpansionPhase.COMPLETE
    assert all(c["message"].startswith("AI Expansion: ") for c in gh.commits)


@pytest.mark.asyncio
async def test_expansion_requires_exactly_one_seed(notifier):
    session = await run_project_expansion(
        FakeGitHub(), FakeAI(), ["m1"], notifier, "o/r", "main", ["a.py", "b.py"], "x",
    )
    assert session.error == "Please select exactly one seed file."
    assert session.phase == ExpansionPhase.COMPLETE


@pytest.mark.asyncio
async def test_expansion_does_not_overwrite_existing_files(notifier):
    plan = {"filesToCreate": [{"path": "exists.py", "description": "d", "agentIndex": 0}]}
    gh = FakeGitHub(files={"o/r:seed.py": "S", "o/r:exists.py": "keep me"})
    ai = FakeAI(json_responses=[plan])
    session = await run_project_expansion(gh, ai, ["m1"], notifier, "o/r", "main", ["seed.py"], "x")

    assert session.jobs[0].status == JobStatus.FAILED
    assert gh.content("o/r:exists.py") == "keep me"


@pytest.mark.asyncio
async def test_expansion_missing_seed_aborts(notifier):
    session = await run_project_expansion(
        FakeGitHub(), FakeAI(), ["m1"], notifier, "o/r", "main", ["nope.py"], "x",
    )
    assert "404" in session.error
    assert session.phase == ExpansionPhase.COMPLETE
    assert notifier.latest.message.startswith("Expansion failed:")


# --- single file edit ---

@pytest.mark.asyncio
async def test_edit_single_file_uses_primary_model():
    ai = FakeAI(stream=lambda model, prompt: "```js\nlet y = 2;\n```")
    chunks = []
    result = await edit_single_file(ai, ["m1", "m2"], "let y = 1;", "bump", "a.js", chunks.append)
    assert result == "let y = 2;"
    assert [m for m, _ in ai.stream_calls] == ["m1"]
    assert "".join(chunks) == "```js\nlet y = 2;\n```"
