from contextlib import asynccontextmanager
from pathlib import Path
from fastapi import FastAPI
import argparse
import logging

from github_hook_listener.api import hooks_router, router as api_router
from github_hook_listener.checker import RestModificationChecker
from github_hook_listener.database import dispose_engines, get_engine, init_db
from github_hook_listener.listener import GitHubWebHookListener
from github_hook_listener.registry import InMemoryRegistry
from github_hook_listener.storage import WebHooksStorage
from github_hook_listener import config


parser = argparse.ArgumentParser(description="GitHub webhook listener entry point.")
parser.add_argument(
    "--registry",
    type=Path,
    default=config.REGISTRY_FILE,
    help="JSON file describing projects, build configurations and VCS roots.",
)
args, _ = parser.parse_known_args()

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        engine = get_engine(config.HOOKS_DB_URL)
        init_db(engine)
        storage = WebHooksStorage(engine)
        logger.info(f"Webhook storage initialized at {config.HOOKS_DB_URL}")

        registry = InMemoryRegistry.load(args.registry)

        if not config.CI_SERVER_URL:
            logger.warning(
                "No CI server URL provided. Modification checks will only be logged. "
                "Set the CI_SERVER_URL environment variable to queue them on the server."
            )
        checker = RestModificationChecker()

        app.state.storage = storage
        app.state.registry = registry
        app.state.listener = GitHubWebHookListener(
            project_manager=registry,
            vcs_manager=registry,
            checker=checker,
            storage=storage,
        )
        logger.info(f"Listening for GitHub webhooks at {config.WEBHOOK_PATH}")
        yield
    finally:
        dispose_engines()
        logger.info("Application shutdown.")


app = FastAPI(
    title="GitHub Hook Listener",
    description="Receives GitHub webhooks and triggers VCS modification checks on the CI server",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(hooks_router)
app.include_router(api_router, prefix=config.API_PREFIX)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
