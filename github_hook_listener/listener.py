"""
Webhook Listener Module

Reacts to GitHub webhook deliveries: keeps hook bookkeeping up to date
and triggers modification checks for the VCS roots of pushed
repositories.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import status

from github_hook_listener import config
from github_hook_listener.checker import ModificationChecker
from github_hook_listener.payloads import PingPayload, PushPayload
from github_hook_listener.registry import ProjectManager, VcsManager, VcsRootInstance
from github_hook_listener.repository_info import (
    RepositoryInfo,
    get_github_info,
    get_vcs_root_github_info,
)
from github_hook_listener.storage import WebHooksStorage

logger = logging.getLogger(__name__)


class GitHubWebHookListener:
    """
    Handles ping and push events.

    Every handler returns the HTTP status to answer GitHub with. All
    bookkeeping updates are idempotent, so redelivered events are safe.
    """

    def __init__(
        self,
        project_manager: ProjectManager,
        vcs_manager: VcsManager,
        checker: ModificationChecker,
        storage: WebHooksStorage,
        check_interval: Optional[int] = None,
    ):
        self.project_manager = project_manager
        self.vcs_manager = vcs_manager
        self.checker = checker
        self.storage = storage
        self.check_interval = check_interval or config.WEBHOOK_CHECK_INTERVAL_SECONDS

    def handle(self, event_type: str, body: bytes, vcs_root_id: Optional[str] = None) -> int:
        try:
            if event_type == "ping":
                return self.handle_ping(PingPayload.model_validate_json(body))
            if event_type == "push":
                return self.handle_push(PushPayload.model_validate_json(body), vcs_root_id)
            logger.info(f"Received unknown event type: {event_type}, ignoring")
            return status.HTTP_202_ACCEPTED
        except Exception:
            logger.warning(
                f"Failed to process request (event type is '{event_type}')",
                exc_info=True,
            )
            return status.HTTP_503_SERVICE_UNAVAILABLE

    def handle_ping(self, payload: PingPayload) -> int:
        repository = payload.repository
        hook_url = payload.hook.url if payload.hook else None
        logger.info(
            f"Received ping payload from webhook:{payload.hook_id}({hook_url}) for repo {repository.full_name if repository else None}"
        )
        url = repository.git_url if repository else None
        if url is None:
            logger.warning("Ping event payload has no repository url specified")
            return status.HTTP_400_BAD_REQUEST
        info = get_github_info(url)
        if info is None:
            logger.warning(f"Cannot determine repository info from url '{url}'")
            return status.HTTP_503_SERVICE_UNAVAILABLE

        self.update_last_used(info)
        self.set_modification_check_interval(info)
        return status.HTTP_202_ACCEPTED

    def handle_push(self, payload: PushPayload, vcs_root_id: Optional[str] = None) -> int:
        repository = payload.repository
        logger.info(
            f"Received push payload from webhook for repo {repository.full_name if repository else None}"
        )
        url = repository.git_url if repository else None
        if url is None:
            logger.warning("Push event payload has no repository url specified")
            return status.HTTP_400_BAD_REQUEST
        info = get_github_info(url)
        if info is None:
            logger.warning(f"Cannot determine repository info from url '{url}'")
            return status.HTTP_503_SERVICE_UNAVAILABLE

        self.update_last_used(info)
        self.update_branches(info, payload)
        roots = self.find_suitable_vcs_root_instances(info, vcs_root_id)
        logger.info(f"Scheduling modification check for {len(roots)} VCS root instances of {info}")
        self.checker.check_for_modifications_async(roots)
        return status.HTTP_202_ACCEPTED

    def update_last_used(self, info: RepositoryInfo):
        self.storage.update_last_used(info, datetime.now(timezone.utc))

    def update_branches(self, info: RepositoryInfo, payload: PushPayload):
        if payload.ref is None or payload.after is None:
            logger.warning(f"Push event for {info} has no ref or revision, branches not updated")
            return
        self.storage.update_branch_revisions(info, {payload.ref: payload.after})

    def find_suitable_vcs_root_instances(
        self, info: RepositoryInfo, vcs_root_id: Optional[str] = None
    ) -> List[VcsRootInstance]:
        """
        Root instances of non-archived build configurations that track the
        repository, optionally only those of the root with the given
        external id.
        """
        roots = {}
        for build_type in self.project_manager.all_build_types():
            if build_type.project.archived:
                continue
            for instance in build_type.vcs_root_instances:
                roots[id(instance)] = instance
        return [
            root
            for root in roots.values()
            if get_vcs_root_github_info(root) == info
            and (not vcs_root_id or root.parent.external_id == vcs_root_id)
        ]

    def set_modification_check_interval(self, info: RepositoryInfo):
        # All roots with the same repository, attached to a build configuration or not
        for root in self.vcs_manager.all_registered_vcs_roots():
            if get_vcs_root_github_info(root) != info:
                continue
            if (
                root.use_default_modification_check_interval
                or root.modification_check_interval < self.check_interval
            ):
                logger.info(
                    f"Setting modification check interval of VCS root {root.external_id} to {self.check_interval}s"
                )
                self.vcs_manager.set_modification_check_interval(root, self.check_interval)
