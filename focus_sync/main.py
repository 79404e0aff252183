from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
from contextlib import asynccontextmanager
import logging
import sys

from . import config
from .auth import authenticate_user, create_access_token
from .db import init_db
from .sync_api import router as sync_router

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    # package messages go to stdout unless the host configured handlers
    pkg_logger = logging.getLogger('focus_sync')
    if not pkg_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s:%(name)s: %(message)s'))
        pkg_logger.addHandler(handler)
    pkg_logger.setLevel(getattr(logging, config.SYNC_LOG_LEVEL, logging.INFO))


_configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info('config: NOTES_MAX_PER_OWNER=%s NOTE_CONTENT_MAX_LENGTH=%s',
                config.NOTES_MAX_PER_OWNER, config.NOTE_CONTENT_MAX_LENGTH)
    yield


app = FastAPI(lifespan=lifespan)
app.include_router(sync_router)


class TokenRequest(BaseModel):
    username: str
    password: str


@app.post('/auth/token')
async def login_for_access_token(req: TokenRequest):
    user = await authenticate_user(req.username, req.password)
    if not user:
        raise HTTPException(status_code=401, detail='Incorrect username or password')
    access_token = create_access_token(data={'sub': user.username})
    return {'access_token': access_token, 'token_type': 'bearer'}
