from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from conftest import commit_file, git

from ralphy.git import branch_exists, get_current_branch
from ralphy.runtime.orchestrator.worktree_manager import WorktreeManager


def test_concurrent_worktrees_get_distinct_branches_and_directories(git_repo: Path) -> None:
    manager = WorktreeManager(git_repo)
    titles = ["Add login", "Add logout", "Add profile"]

    with ThreadPoolExecutor(max_workers=3) as pool:
        handles = list(pool.map(lambda pair: manager.create_agent_worktree(pair[1], pair[0], "main"), enumerate(titles, start=1)))

    assert manager.active_count == 3
    assert len({h.worktree_dir for h in handles}) == 3
    assert len({h.branch_name for h in handles}) == 3
    assert handles[0].branch_name == "ralphy/agent-1-add-login"
    assert handles[0].worktree_dir == git_repo / ".ralphy-worktrees" / "agent-1"
    for handle in handles:
        assert (handle.worktree_dir / "README.md").exists()
        assert get_current_branch(handle.worktree_dir) == handle.branch_name
    assert sorted(p.name for p in manager.list_worktrees()) == ["agent-1", "agent-2", "agent-3"]

    for handle in handles:
        assert not manager.cleanup_agent_worktree(handle.worktree_dir, handle.branch_name).left_in_place
    assert manager.active_count == 0
    assert manager.max_active == 3
    assert manager.list_worktrees() == []
    assert all(branch_exists(h.branch_name, git_repo) for h in handles)


def test_dirty_worktree_is_left_in_place(git_repo: Path) -> None:
    manager = WorktreeManager(git_repo)
    handle = manager.create_agent_worktree("Dirty work", 1, "main")
    (handle.worktree_dir / "scratch.txt").write_text("wip", encoding="utf-8")

    result = manager.cleanup_agent_worktree(handle.worktree_dir, handle.branch_name)

    assert result.left_in_place
    assert handle.worktree_dir.exists()


def test_committed_work_survives_cleanup_on_the_branch(git_repo: Path) -> None:
    manager = WorktreeManager(git_repo)
    handle = manager.create_agent_worktree("Feature", 1, "main")
    commit_file(handle.worktree_dir, "feature.txt", "done\n", "feature")

    assert not manager.cleanup_agent_worktree(handle.worktree_dir, handle.branch_name).left_in_place
    assert not handle.worktree_dir.exists()
    assert git(git_repo, "show", f"{handle.branch_name}:feature.txt") == "done"


def test_leftovers_from_a_crashed_run_are_replaced(git_repo: Path) -> None:
    git(git_repo, "branch", "ralphy/agent-1-retry-me")
    stale = git_repo / ".ralphy-worktrees" / "agent-1"
    stale.mkdir(parents=True)
    (stale / "junk.txt").write_text("old", encoding="utf-8")

    handle = WorktreeManager(git_repo).create_agent_worktree("Retry me", 1, "main")

    assert handle.worktree_dir == stale
    assert not (stale / "junk.txt").exists()
    assert get_current_branch(stale) == "ralphy/agent-1-retry-me"


def test_cleanup_all_worktrees(git_repo: Path, tmp_path: Path) -> None:
    manager = WorktreeManager(git_repo, worktree_root=tmp_path / "trees")
    manager.create_agent_worktree("One", 1, "main")
    manager.create_agent_worktree("Two", 2, "main")

    manager.cleanup_all_worktrees()

    assert manager.list_worktrees() == []
    assert manager.active_count == 0
