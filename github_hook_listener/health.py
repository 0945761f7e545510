"""
Webhook Health Module

Finds registered webhooks that no longer seem to deliver events, so
administrators can repair or re-create them.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from github_hook_listener import config
from github_hook_listener.registry import InMemoryRegistry, Project, VcsRoot
from github_hook_listener.repository_info import RepositoryInfo
from github_hook_listener.storage import HookInfo, WebHooksStorage

logger = logging.getLogger(__name__)

REASON_INCORRECT = "incorrect"
REASON_NEVER_USED = "never_used"
REASON_STALE = "stale"


@dataclass
class OutdatedHook:
    info: RepositoryInfo
    hook: HookInfo
    reason: str
    usages: List[VcsRoot] = field(default_factory=list)
    projects: List[Project] = field(default_factory=list)


def get_outdated_reason(
    hook: HookInfo, now: datetime, max_age: timedelta
) -> Optional[str]:
    if not hook.correct:
        return REASON_INCORRECT
    if hook.last_used is None:
        return REASON_NEVER_USED
    last_used = hook.last_used
    if last_used.tzinfo is None:
        last_used = last_used.replace(tzinfo=timezone.utc)
    if now - last_used > max_age:
        return REASON_STALE
    return None


def find_outdated_hooks(
    storage: WebHooksStorage,
    registry: InMemoryRegistry,
    now: Optional[datetime] = None,
    max_age: Optional[timedelta] = None,
) -> List[OutdatedHook]:
    """
    Hooks that are marked incorrect, never received an event, or have
    been silent longer than max_age. Hooks of repositories no VCS root
    points to any more are left out.
    """
    now = now or datetime.now(timezone.utc)
    if max_age is None:
        max_age = timedelta(hours=config.HOOK_OUTDATED_AFTER_HOURS)

    result = []
    for info, hook in storage.get_all():
        reason = get_outdated_reason(hook, now, max_age)
        if reason is None:
            continue
        usages = registry.find_vcs_roots(info)
        if not usages:
            logger.debug(f"Webhook for {info} is {reason} but not used by any VCS root")
            continue
        result.append(
            OutdatedHook(info, hook, reason, usages, registry.find_projects(usages))
        )
    return result
