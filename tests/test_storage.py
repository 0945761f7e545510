import threading
import time
from datetime import datetime, timezone

import pytest

from github_hook_listener.database import session_scope
from github_hook_listener.models import WebHookEntry
from github_hook_listener.repository_info import RepositoryInfo
from github_hook_listener.storage import HookInfo

KOTLIN = RepositoryInfo("github.com", "JetBrains", "kotlin")


@pytest.mark.parametrize(
    "hook",
    [
        HookInfo(10, "abc"),
        HookInfo(10, "abc", True, datetime.now(timezone.utc), {"1": "2", "3": "4"}),
        HookInfo(10, "abc", False),
        HookInfo(10, "abc", False, datetime.fromtimestamp(10, tz=timezone.utc)),
        HookInfo(10, "abc", False, datetime.fromtimestamp(10, tz=timezone.utc), {"1": "2"}),
        HookInfo(10, "abc", True, datetime(2024, 5, 1, 12, 30, 15, 123456)),
    ],
)
def test_hook_info_serialization(hook):
    decoded = HookInfo.from_json(hook.to_json())

    assert decoded is not None
    assert decoded.id == hook.id
    assert decoded.url == hook.url
    assert decoded.correct == hook.correct
    assert decoded.last_used == hook.last_used
    assert decoded.last_branch_revisions == hook.last_branch_revisions
    assert decoded.to_json() == hook.to_json()
    assert hash(decoded) == hash(hook)
    assert decoded == hook


def test_hook_info_defaults_for_missing_fields():
    assert HookInfo.from_json('{"id": 1, "url": "u"}') == HookInfo(1, "u")


def test_hook_info_hash_ignores_revision_order():
    first = HookInfo(1, "u", last_branch_revisions={"a": "1", "b": "2"})
    second = HookInfo(1, "u", last_branch_revisions={"b": "2", "a": "1"})
    assert first == second
    assert hash(first) == hash(second)


@pytest.mark.parametrize(
    "text",
    [
        "",
        "{",
        "null",
        "[]",
        '"abc"',
        '{"url": "abc"}',
        '{"id": "10", "url": "abc"}',
        '{"id": true, "url": "abc"}',
        '{"id": 10}',
        '{"id": 10, "url": "abc", "correct": "yes"}',
        '{"id": 10, "url": "abc", "lastUsed": "yesterday"}',
        '{"id": 10, "url": "abc", "lastBranchRevisions": ["master"]}',
        '{"id": 10, "url": "abc", "lastBranchRevisions": []}',
        '{"id": 10, "url": "abc", "lastBranchRevisions": ""}',
        '{"id": 10, "url": "abc", "lastBranchRevisions": null}',
        '{"id": 10, "url": "abc", "lastBranchRevisions": {"master": 1}}',
        None,
    ],
)
def test_hook_info_from_malformed_json(text):
    assert HookInfo.from_json(text) is None


def test_add_and_get(storage):
    hook = HookInfo(10, "abc")
    storage.add(KOTLIN, hook)

    assert storage.get(KOTLIN) == hook
    assert storage.get(RepositoryInfo("github.com", "JetBrains", "intellij")) is None


def test_add_replaces_existing(storage):
    storage.add(KOTLIN, HookInfo(10, "abc"))
    storage.add(KOTLIN, HookInfo(11, "def"))

    assert storage.get(KOTLIN) == HookInfo(11, "def")
    assert len(storage.get_all()) == 1


def test_update_last_used(storage, kotlin_hook):
    used = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    assert storage.update_last_used(KOTLIN, used)
    assert storage.get(KOTLIN).last_used == used


def test_update_without_registered_hook(storage):
    assert not storage.update_last_used(KOTLIN, datetime.now(timezone.utc))
    assert not storage.update_branch_revisions(KOTLIN, {"refs/heads/master": "abc"})
    assert storage.get(KOTLIN) is None


def test_update_branch_revisions_merges(storage, kotlin_hook):
    storage.update_branch_revisions(KOTLIN, {"refs/heads/master": "1"})
    storage.update_branch_revisions(KOTLIN, {"refs/heads/dev": "2"})
    storage.update_branch_revisions(KOTLIN, {"refs/heads/master": "3"})

    assert storage.get(KOTLIN).last_branch_revisions == {
        "refs/heads/master": "3",
        "refs/heads/dev": "2",
    }


def test_delete(storage, kotlin_hook):
    assert storage.delete(KOTLIN)
    assert storage.get(KOTLIN) is None
    assert not storage.delete(KOTLIN)


def test_get_all_skips_malformed_records(storage, engine, kotlin_hook):
    with session_scope(engine) as session:
        session.add(WebHookEntry(key="github.com/JetBrains/broken", data="{"))

    assert storage.get_all() == [(KOTLIN, kotlin_hook)]
    assert storage.get(RepositoryInfo("github.com", "JetBrains", "broken")) is None
    assert not storage.update_last_used(
        RepositoryInfo("github.com", "JetBrains", "broken"), datetime.now(timezone.utc)
    )


def test_concurrent_branch_updates_are_all_kept(storage, kotlin_hook, monkeypatch):
    decode = storage._decode

    def slow_decode(entry):
        hook = decode(entry)
        # widen the window between reading and writing the record
        time.sleep(0.05)
        return hook

    monkeypatch.setattr(storage, "_decode", slow_decode)
    refs = {f"refs/heads/branch{i}": str(i) for i in range(5)}
    threads = [
        threading.Thread(target=storage.update_branch_revisions, args=(KOTLIN, {ref: rev}))
        for ref, rev in refs.items()
    ]
    threads.append(
        threading.Thread(
            target=storage.update_last_used,
            args=(KOTLIN, datetime(2024, 1, 1, tzinfo=timezone.utc)),
        )
    )
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    monkeypatch.setattr(storage, "_decode", decode)
    hook = storage.get(KOTLIN)
    assert hook.last_branch_revisions == refs
    assert hook.last_used == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_register_new_hook(storage):
    hook = storage.register(KOTLIN, 10, "abc")

    assert hook == HookInfo(10, "abc")
    assert storage.get(KOTLIN) == hook


def test_register_same_hook_keeps_bookkeeping(storage, kotlin_hook):
    used = datetime(2024, 1, 2, tzinfo=timezone.utc)
    storage.update_last_used(KOTLIN, used)
    storage.update_branch_revisions(KOTLIN, {"refs/heads/master": "1"})

    hook = storage.register(KOTLIN, kotlin_hook.id, kotlin_hook.url, correct=False)

    assert hook == HookInfo(
        kotlin_hook.id, kotlin_hook.url, False, used, {"refs/heads/master": "1"}
    )
    assert storage.get(KOTLIN) == hook


def test_register_other_hook_resets_bookkeeping(storage, kotlin_hook):
    storage.update_last_used(KOTLIN, datetime(2024, 1, 2, tzinfo=timezone.utc))

    hook = storage.register(KOTLIN, 11, "def")

    assert storage.get(KOTLIN) == hook == HookInfo(11, "def")
