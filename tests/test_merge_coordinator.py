from __future__ import annotations

from pathlib import Path
from typing import Optional

from conftest import commit_file, git

from ralphy.git import branch_exists, get_conflicted_files, has_uncommitted_changes, is_merge_in_progress, merge_agent_branch
from ralphy.runtime.domain.models import AIResult
from ralphy.runtime.orchestrator.conflict_resolver import ConflictResolver
from ralphy.runtime.orchestrator.merge_coordinator import MergeCoordinator
from ralphy.runtime.orchestrator.worker_adapter import ScriptedEngine


def _branch_with_file(repo: Path, branch: str, rel_path: str, content: str) -> None:
    git(repo, "checkout", "-b", branch, "main")
    commit_file(repo, rel_path, content, f"{branch} work")
    git(repo, "checkout", "main")


def _scenario(repo: Path) -> list[str]:
    _branch_with_file(repo, "ralphy/agent-1-a", "a.txt", "a\n")
    _branch_with_file(repo, "ralphy/agent-2-b", "README.md", "# from B\n")
    _branch_with_file(repo, "ralphy/agent-3-c", "c.txt", "c\n")
    commit_file(repo, "README.md", "# from main\n", "main moves on")
    return ["ralphy/agent-1-a", "ralphy/agent-2-b", "ralphy/agent-3-c"]


def test_conflicting_branch_is_preserved_and_others_merge(git_repo: Path) -> None:
    branches = _scenario(git_repo)
    engine = ScriptedEngine({"resolving a git merge conflict": [AIResult.failure("cannot resolve")]})

    report = MergeCoordinator(git_repo, engine).reconcile(branches, "main")

    assert report.merged == ["ralphy/agent-1-a", "ralphy/agent-3-c"]
    assert report.failed == ["ralphy/agent-2-b"]
    assert not branch_exists("ralphy/agent-1-a", git_repo)
    assert not branch_exists("ralphy/agent-3-c", git_repo)
    assert branch_exists("ralphy/agent-2-b", git_repo)
    assert (git_repo / "a.txt").exists() and (git_repo / "c.txt").exists()
    assert (git_repo / "README.md").read_text(encoding="utf-8") == "# from main\n"
    assert not is_merge_in_progress(git_repo)
    assert not has_uncommitted_changes(git_repo)
    assert engine.calls_matching('"ralphy/agent-2-b"') == 1


def _resolve_readme(staged: bool = True, commit: bool = False, content: str = "# from main and B\n"):
    def handler(prompt: str, work_dir: Path) -> Optional[AIResult]:
        (work_dir / "README.md").write_text(content, encoding="utf-8")
        if staged:
            git(work_dir, "add", "README.md")
        if commit:
            git(work_dir, "commit", "--no-edit")
        return AIResult.ok("resolved")

    return handler


def test_agent_resolution_completes_the_merge(git_repo: Path) -> None:
    branches = _scenario(git_repo)
    engine = ScriptedEngine(handler=_resolve_readme())

    report = MergeCoordinator(git_repo, engine).reconcile(branches, "main")

    assert report.failed == []
    assert report.merged == branches
    assert (git_repo / "README.md").read_text(encoding="utf-8") == "# from main and B\n"
    assert not is_merge_in_progress(git_repo)
    assert not any(branch_exists(b, git_repo) for b in branches)


def test_agent_that_already_committed_counts_as_resolved(git_repo: Path) -> None:
    _branch_with_file(git_repo, "b", "README.md", "# from B\n")
    commit_file(git_repo, "README.md", "# from main\n", "main moves on")
    merged = merge_agent_branch("b", "main", git_repo)

    resolver = ConflictResolver(ScriptedEngine(handler=_resolve_readme(commit=True)))

    assert resolver.resolve(merged.conflicted_files, "b", git_repo)
    assert not is_merge_in_progress(git_repo)


def test_agent_that_abandons_the_merge_keeps_the_branch(git_repo: Path) -> None:
    git(git_repo, "checkout", "-b", "ralphy/b", "main")
    commit_file(git_repo, "b_only.txt", "only on b\n", "b extra")
    commit_file(git_repo, "README.md", "# from B\n", "b readme")
    git(git_repo, "checkout", "main")
    commit_file(git_repo, "README.md", "# from main\n", "main moves on")

    def abandon(prompt: str, work_dir: Path) -> Optional[AIResult]:
        git(work_dir, "merge", "--abort")
        return AIResult.ok("resolved")

    report = MergeCoordinator(git_repo, ScriptedEngine(handler=abandon)).reconcile(["ralphy/b"], "main")

    assert report.merged == []
    assert report.failed == ["ralphy/b"]
    assert branch_exists("ralphy/b", git_repo)
    assert not (git_repo / "b_only.txt").exists()
    assert not is_merge_in_progress(git_repo)


def test_leftover_markers_fail_resolution(git_repo: Path) -> None:
    _branch_with_file(git_repo, "b", "README.md", "# from B\n")
    commit_file(git_repo, "README.md", "# from main\n", "main moves on")
    merged = merge_agent_branch("b", "main", git_repo)
    markers = "<<<<<<< HEAD\n# from main\n=======\n# from B\n>>>>>>> b\n"

    resolver = ConflictResolver(ScriptedEngine(handler=_resolve_readme(content=markers)))

    assert not resolver.resolve(merged.conflicted_files, "b", git_repo)
    assert is_merge_in_progress(git_repo)


def test_unstaged_resolution_fails(git_repo: Path) -> None:
    _branch_with_file(git_repo, "b", "README.md", "# from B\n")
    commit_file(git_repo, "README.md", "# from main\n", "main moves on")
    merged = merge_agent_branch("b", "main", git_repo)

    resolver = ConflictResolver(ScriptedEngine(handler=_resolve_readme(staged=False)))

    assert not resolver.resolve(merged.conflicted_files, "b", git_repo)
    assert get_conflicted_files(git_repo) == ["README.md"]


def test_empty_conflicts_and_engine_errors(git_repo: Path) -> None:
    engine = ScriptedEngine({"merge conflict": [RuntimeError("engine crashed")]})
    resolver = ConflictResolver(engine)

    assert resolver.resolve([], "b", git_repo)
    assert engine.calls == []
    assert not resolver.resolve(["README.md"], "b", git_repo)


def test_missing_branch_is_reported_failed(git_repo: Path) -> None:
    report = MergeCoordinator(git_repo, ScriptedEngine()).reconcile(["ralphy/ghost"], "main")

    assert report.failed == ["ralphy/ghost"]
    assert report.merged == []
    assert not is_merge_in_progress(git_repo)
