"""
API Module

The GitHub webhook endpoint plus administrative views of the stored
hook records and VCS roots. Collaborators live on app.state and are set
up by the application lifespan.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse

from github_hook_listener import config
from github_hook_listener.health import find_outdated_hooks
from github_hook_listener.listener import GitHubWebHookListener
from github_hook_listener.payloads import HookRegistration
from github_hook_listener.registry import InMemoryRegistry
from github_hook_listener.repository_info import RepositoryInfo
from github_hook_listener.storage import HookInfo, WebHooksStorage

logger = logging.getLogger(__name__)

hooks_router = APIRouter()
router = APIRouter()


def get_listener(request: Request) -> GitHubWebHookListener:
    return request.app.state.listener


def get_storage(request: Request) -> WebHooksStorage:
    return request.app.state.storage


def get_registry(request: Request) -> InMemoryRegistry:
    return request.app.state.registry


async def _receive(request: Request, listener: GitHubWebHookListener, vcs_root_id=None):
    event_type = request.headers.get(config.GITHUB_EVENT_HEADER)
    if event_type is None:
        return PlainTextResponse(
            f"'{config.GITHUB_EVENT_HEADER}' header is missing",
            status_code=status.HTTP_400_BAD_REQUEST,
        )
    if vcs_root_id:
        logger.debug(f"Received hook event with vcs root id in path: {vcs_root_id}")
    body = await request.body()
    code = await run_in_threadpool(listener.handle, event_type, body, vcs_root_id)
    return Response(status_code=code)


@hooks_router.post(config.WEBHOOK_PATH)
async def receive_webhook(
    request: Request, listener: GitHubWebHookListener = Depends(get_listener)
):
    """Receive a GitHub webhook delivery."""
    return await _receive(request, listener)


@hooks_router.post(config.WEBHOOK_PATH + "/{vcs_root_id:path}")
async def receive_webhook_for_root(
    vcs_root_id: str,
    request: Request,
    listener: GitHubWebHookListener = Depends(get_listener),
):
    """Receive a delivery meant only for the VCS root with this external id."""
    return await _receive(request, listener, vcs_root_id)


def _hook_to_dict(info: RepositoryInfo, hook: HookInfo) -> Dict[str, Any]:
    return {
        "key": info.key,
        "server": info.server,
        "owner": info.owner,
        "name": info.name,
        "id": hook.id,
        "url": hook.url,
        "correct": hook.correct,
        "last_used": hook.last_used.isoformat() if hook.last_used else None,
        "last_branch_revisions": hook.last_branch_revisions,
    }


@router.get("/hooks")
def get_hooks(storage: WebHooksStorage = Depends(get_storage)) -> List[Dict[str, Any]]:
    """
    List all stored webhook records.
    """
    try:
        return [_hook_to_dict(info, hook) for info, hook in storage.get_all()]
    except Exception as e:
        logger.error(f"Error listing webhooks: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/hooks/outdated")
def get_outdated_hooks(
    storage: WebHooksStorage = Depends(get_storage),
    registry: InMemoryRegistry = Depends(get_registry),
) -> List[Dict[str, Any]]:
    """
    Webhooks that look broken, with the VCS roots and projects affected.
    """
    try:
        report = []
        for outdated in find_outdated_hooks(storage, registry):
            item = _hook_to_dict(outdated.info, outdated.hook)
            item["reason"] = outdated.reason
            item["usages"] = [root.external_id for root in outdated.usages]
            item["projects"] = [project.id for project in outdated.projects]
            report.append(item)
        return report
    except Exception as e:
        logger.error(f"Error building outdated webhooks report: {str(e)}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.delete("/hooks/{key:path}", status_code=status.HTTP_204_NO_CONTENT)
def delete_hook(key: str, storage: WebHooksStorage = Depends(get_storage)):
    """
    Forget the webhook record stored under a repository key.
    """
    info = RepositoryInfo.from_key(key)
    if info is None:
        raise HTTPException(status_code=400, detail=f"Malformed repository key '{key}'")
    if not storage.delete(info):
        raise HTTPException(status_code=404, detail=f"No webhook stored for '{key}'")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/hooks/{key:path}")
def register_hook(
    key: str,
    registration: HookRegistration,
    storage: WebHooksStorage = Depends(get_storage),
) -> Dict[str, Any]:
    """
    Store the webhook registered for a repository, or mark it (in)correct.
    """
    info = RepositoryInfo.from_key(key)
    if info is None:
        raise HTTPException(status_code=400, detail=f"Malformed repository key '{key}'")
    hook = storage.register(info, registration.id, registration.url, registration.correct)
    return _hook_to_dict(info, hook)


@router.get("/vcs-roots")
def get_vcs_roots(
    registry: InMemoryRegistry = Depends(get_registry),
) -> List[Dict[str, Any]]:
    """
    Registered VCS roots with their modification check interval.
    """
    return [
        {
            "id": root.id,
            "external_id": root.external_id,
            "vcs_name": root.vcs_name,
            "url": root.properties.get("url"),
            "modification_check_interval": root.modification_check_interval,
        }
        for root in registry.all_registered_vcs_roots()
    ]
