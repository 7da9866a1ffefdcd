import logging

from fastapi import FastAPI

from echoes import __version__
from echoes.api.routes import router
from echoes.config import load_env_file, settings_from_env
from echoes.session import get_session, init_session

load_env_file()
_settings = settings_from_env()

app = FastAPI(title="echoes", version=__version__)
app.include_router(router)
# Configure logging
logging.basicConfig(level=_settings.log_level)
logger = logging.getLogger(__name__)


@app.on_event("startup")
async def _startup() -> None:
    # Tests may have initialized a session with their own settings already.
    session = init_session(_settings)
    session.start()
    logger.info(
        "Voting every %.1fs (mock chat: %s)",
        session.votes.voting_period_s,
        "on" if session.mock_chat is not None else "off",
    )


@app.on_event("shutdown")
async def _shutdown() -> None:
    await get_session().stop()


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "echoes", "version": __version__}
