"""End-to-end workflows: real git clones under a temporary managed root."""

import pytest

from conftest import commit_on_branch, requires_git
from vendman.exceptions import SourceUnavailableError
from vendman.manifest.models import Pinned, Tracking
from vendman.manifest.store import ManifestStore
from vendman.sync.engine import ListRow, SyncEngine, UpdateOutcome
from vendman.utils.git_ops import GitProvider

pytestmark = requires_git


@pytest.fixture
def git_engine(tmp_path):
    engine = SyncEngine(ManifestStore(tmp_path / "vendman"), GitProvider(timeout=60))
    engine.init()
    return engine


def test_vend_then_list_tracking(git_engine, make_upstream):
    upstream = make_upstream("repo-a")

    name = git_engine.vend(upstream.working_tree_dir).name

    assert name == "repo-a"
    assert git_engine.store.load().dependencies == {"repo-a": Tracking(upstream.working_tree_dir)}
    assert git_engine.list() == [
        ListRow(name="repo-a", ref="main", commit=upstream.heads.main.commit.hexsha)
    ]


def test_pinned_update_follows_branch_tip(git_engine, make_upstream):
    upstream = make_upstream("repo-a")
    git_engine.vend(upstream.working_tree_dir, branch="dev")
    new_tip = commit_on_branch(upstream, "dev", "dev.txt", "second dev change\n")

    outcomes = git_engine.update()

    assert outcomes == [UpdateOutcome.updated("repo-a", "dev")]
    assert git_engine.store.load().dependencies["repo-a"] == Pinned(upstream.working_tree_dir, "dev")
    assert git_engine.list() == [ListRow(name="repo-a", ref="dev", commit=new_tip)]


def test_tracking_update_pulls_default_branch(git_engine, make_upstream):
    upstream = make_upstream("repo-a")
    git_engine.vend(upstream.working_tree_dir)
    new_tip = commit_on_branch(upstream, "main", "README.md", "# moved on\n")

    assert git_engine.update() == [UpdateOutcome.updated("repo-a")]
    assert git_engine.list()[0].commit == new_tip


def test_one_broken_dependency_does_not_block_others(git_engine, make_upstream, tmp_path):
    a = make_upstream("repo-a")
    b = make_upstream("repo-b")
    c = make_upstream("repo-c")
    for upstream in (a, b, c):
        git_engine.vend(upstream.working_tree_dir)

    # Point repo-b's origin somewhere that no longer exists.
    from git import Repo

    Repo(git_engine.store.workspace_dir("repo-b")).remote("origin").set_url(str(tmp_path / "gone"))

    outcomes = git_engine.update()

    assert [o.name for o in outcomes] == ["repo-a", "repo-b", "repo-c"]
    assert [o.ok for o in outcomes] == [True, False, True]


def test_failed_vend_keeps_workspace_clean(git_engine, tmp_path):
    before = git_engine.store.manifest_path.read_bytes()

    with pytest.raises(SourceUnavailableError):
        git_engine.vend(str(tmp_path / "remotes" / "missing"))

    assert git_engine.store.manifest_path.read_bytes() == before
    assert sorted(p.name for p in git_engine.store.root.iterdir()) == ["config.yaml"]


def test_clean_removes_clones(git_engine, make_upstream):
    git_engine.vend(make_upstream("repo-a").working_tree_dir)

    git_engine.clean()

    assert not git_engine.store.root.exists()
