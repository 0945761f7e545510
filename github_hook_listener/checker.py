"""
Modification Checker Module

Queues modification checks for VCS root instances on the CI server.
Checks run on a background thread; callers never wait for them.
"""

import logging
import threading
from typing import List, Protocol

import requests

from github_hook_listener import config
from github_hook_listener.registry import VcsRootInstance

logger = logging.getLogger(__name__)


class ModificationChecker(Protocol):
    def check_for_modifications_async(self, roots: List[VcsRootInstance]):
        ...


class RestModificationChecker:
    """
    Puts root instances into the CI server's checking-for-changes queue
    through its REST API. Without a server URL checks are only logged.
    """

    QUEUE_PATH = "/app/rest/vcs-root-instances/checkingForChangesQueue"

    def __init__(self, server_url=None, token=None, timeout=None):
        self.server_url = (
            config.CI_SERVER_URL if server_url is None else server_url.rstrip("/")
        )
        self.timeout = timeout or config.CI_REQUEST_TIMEOUT_SECONDS
        self.headers = {"Accept": "application/json"}
        token = config.CI_SERVER_TOKEN if token is None else token
        if token:
            self.headers["Authorization"] = f"Bearer {token}"

    def check_for_modifications_async(self, roots: List[VcsRootInstance]):
        if not roots:
            logger.debug("No VCS root instances to check")
            return
        thread = threading.Thread(
            target=self.check_for_modifications, args=(list(roots),), daemon=True
        )
        thread.start()

    def check_for_modifications(self, roots: List[VcsRootInstance]) -> int:
        """Queue checks one root at a time. Returns the number queued."""
        if not self.server_url:
            logger.info(
                f"CI server URL is not configured, skipping check for roots {[r.id for r in roots]}"
            )
            return 0

        queued = 0
        for root in roots:
            try:
                response = requests.post(
                    f"{self.server_url}{self.QUEUE_PATH}",
                    params={"locator": f"id:{root.id}"},
                    headers=self.headers,
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                logger.error(f"Failed to queue check for VCS root instance {root.id}: {e}")
                continue
            if response.ok:
                queued += 1
                logger.info(f"Queued modification check for VCS root instance {root.id}")
            else:
                logger.error(
                    f"Failed to queue check for VCS root instance {root.id}: {response.status_code}"
                )
                logger.error(f"Response: {response.text}")
        return queued
