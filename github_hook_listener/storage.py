"""
Hook Storage Module

Hook records (what is known about the webhook registered for a
repository) and the store that keeps them, keyed by repository key.
Records are kept as JSON documents in the webhooks table.
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from github_hook_listener.database import session_scope
from github_hook_listener.models import WebHookEntry
from github_hook_listener.repository_info import RepositoryInfo

logger = logging.getLogger(__name__)


@dataclass
class HookInfo:
    """
    Last known state of a webhook.

    `correct` is cleared by administrators when deliveries keep failing;
    `last_branch_revisions` maps a pushed ref to its head revision.
    """

    id: int
    url: str
    correct: bool = True
    last_used: Optional[datetime] = None
    last_branch_revisions: Dict[str, str] = field(default_factory=dict)

    def __hash__(self):
        return hash(
            (
                self.id,
                self.url,
                self.correct,
                self.last_used,
                frozenset(self.last_branch_revisions.items()),
            )
        )

    def to_json(self) -> str:
        data = {"id": self.id, "url": self.url, "correct": self.correct}
        if self.last_used is not None:
            data["lastUsed"] = self.last_used.isoformat()
        data["lastBranchRevisions"] = dict(self.last_branch_revisions)
        return json.dumps(data)

    @classmethod
    def from_json(cls, text) -> Optional["HookInfo"]:
        """
        Decode a record produced by `to_json`.

        Returns None for empty, malformed or incomplete input.
        """
        try:
            data = json.loads(text)
        except (TypeError, ValueError):
            return None
        if not isinstance(data, dict):
            return None

        hook_id = data.get("id")
        url = data.get("url")
        if isinstance(hook_id, bool) or not isinstance(hook_id, int):
            return None
        if not isinstance(url, str):
            return None

        correct = data.get("correct", True)
        if not isinstance(correct, bool):
            return None

        last_used = data.get("lastUsed")
        if last_used is not None:
            try:
                last_used = datetime.fromisoformat(last_used)
            except (TypeError, ValueError):
                return None

        revisions = data.get("lastBranchRevisions", {})
        if not isinstance(revisions, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in revisions.items()
        ):
            return None

        return cls(hook_id, url, correct, last_used, dict(revisions))


class WebHooksStorage:
    """
    Hook records keyed by repository, backed by the webhooks table.

    Writes are serialized with a lock: SQLite does not open a transaction
    on SELECT, so two concurrent read-modify-write updates of one record
    would otherwise overwrite each other.
    """

    def __init__(self, engine):
        self.engine = engine
        self._lock = threading.RLock()

    def get(self, info: RepositoryInfo) -> Optional[HookInfo]:
        with session_scope(self.engine) as session:
            entry = session.get(WebHookEntry, info.key)
            if entry is None:
                return None
            return self._decode(entry)

    def get_all(self) -> List[Tuple[RepositoryInfo, HookInfo]]:
        result = []
        with session_scope(self.engine) as session:
            for entry in session.query(WebHookEntry).order_by(WebHookEntry.key):
                info = RepositoryInfo.from_key(entry.key)
                hook = self._decode(entry)
                if info is None or hook is None:
                    continue
                result.append((info, hook))
        return result

    def add(self, info: RepositoryInfo, hook: HookInfo):
        """Store the hook for a repository, replacing any previous one."""
        with self._lock, session_scope(self.engine) as session:
            session.merge(WebHookEntry(key=info.key, data=hook.to_json()))
        logger.info(f"Stored webhook {hook.id} ({hook.url}) for {info}")

    def register(
        self, info: RepositoryInfo, hook_id: int, url: str, correct: bool = True
    ) -> HookInfo:
        """
        Store a registered webhook. Re-registering the same hook id keeps
        its last used time and branch revisions.
        """
        with self._lock:
            hook = HookInfo(hook_id, url, correct)
            existing = self.get(info)
            if existing is not None and existing.id == hook_id:
                hook.last_used = existing.last_used
                hook.last_branch_revisions = existing.last_branch_revisions
            self.add(info, hook)
            return hook

    def delete(self, info: RepositoryInfo) -> bool:
        with self._lock, session_scope(self.engine) as session:
            entry = session.get(WebHookEntry, info.key)
            if entry is None:
                return False
            session.delete(entry)
        logger.info(f"Deleted webhook record for {info}")
        return True

    def update_last_used(self, info: RepositoryInfo, used: datetime) -> bool:
        def update(hook: HookInfo):
            hook.last_used = used

        return self._update(info, update)

    def update_branch_revisions(
        self, info: RepositoryInfo, revisions: Dict[str, str]
    ) -> bool:
        """Merge ref -> revision pairs, overwriting known refs."""

        def update(hook: HookInfo):
            hook.last_branch_revisions.update(revisions)

        return self._update(info, update)

    def _update(self, info: RepositoryInfo, action: Callable[[HookInfo], None]) -> bool:
        with self._lock, session_scope(self.engine) as session:
            entry = session.get(WebHookEntry, info.key, with_for_update=True)
            if entry is None:
                logger.debug(f"No webhook registered for {info}, nothing to update")
                return False
            hook = self._decode(entry)
            if hook is None:
                return False
            action(hook)
            entry.data = hook.to_json()
        return True

    @staticmethod
    def _decode(entry: WebHookEntry) -> Optional[HookInfo]:
        hook = HookInfo.from_json(entry.data)
        if hook is None:
            logger.warning(f"Stored webhook record for {entry.key} is malformed: {entry.data}")
        return hook
