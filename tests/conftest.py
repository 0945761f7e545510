from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine

from github_hook_listener import config
from github_hook_listener.api import hooks_router, router as api_router
from github_hook_listener.database import init_db
from github_hook_listener.listener import GitHubWebHookListener
from github_hook_listener.registry import InMemoryRegistry, Project, VcsRoot
from github_hook_listener.repository_info import RepositoryInfo
from github_hook_listener.storage import HookInfo, WebHooksStorage

KOTLIN = RepositoryInfo("github.com", "JetBrains", "kotlin")
KOTLIN_URL = "https://github.com/JetBrains/kotlin.git"
GIT = config.GIT_VCS_NAME


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'webhooks.db'}",
        connect_args={"check_same_thread": False},
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def storage(engine):
    return WebHooksStorage(engine)


@pytest.fixture
def kotlin_hook(storage):
    hook = HookInfo(10, "https://api.github.com/repos/JetBrains/kotlin/hooks/10")
    storage.add(KOTLIN, hook)
    return hook


@pytest.fixture
def registry():
    """
    Kotlin project with two roots pointing to JetBrains/kotlin (https and
    scp-like URL), one unrelated root and one non-git root, plus an
    archived project and a kotlin root not attached to any build.
    """
    registry = InMemoryRegistry()
    registry.register_vcs_root(VcsRoot(1, "root1", GIT, {"url": KOTLIN_URL}))
    registry.register_vcs_root(
        VcsRoot(2, "root2", GIT, {"url": "git@github.com:JetBrains/kotlin.git"}, 3600)
    )
    registry.register_vcs_root(
        VcsRoot(3, "intellij", GIT, {"url": "https://github.com/JetBrains/intellij-community"})
    )
    registry.register_vcs_root(VcsRoot(4, "svn", "svn", {"url": KOTLIN_URL}))
    registry.register_vcs_root(VcsRoot(5, "archived", GIT, {"url": KOTLIN_URL}))
    registry.register_vcs_root(VcsRoot(6, "slow", GIT, {"url": KOTLIN_URL + "/"}, 100000))

    kotlin = Project("Kotlin")
    registry.register_build_type("Kotlin_Build", kotlin, ["root1", "root2", "intellij", "svn"])
    registry.register_build_type("Kotlin_Test", kotlin, ["root1"])
    registry.register_build_type("Old_Build", Project("Old", archived=True), ["archived"])
    return registry


@pytest.fixture
def checker():
    return MagicMock()


@pytest.fixture
def listener(registry, checker, storage):
    return GitHubWebHookListener(
        project_manager=registry,
        vcs_manager=registry,
        checker=checker,
        storage=storage,
    )


@pytest.fixture
def client(listener, storage, registry):
    app = FastAPI()
    app.include_router(hooks_router)
    app.include_router(api_router, prefix=config.API_PREFIX)
    app.state.listener = listener
    app.state.storage = storage
    app.state.registry = registry
    with TestClient(app) as client:
        yield client
