import logging
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import SETTINGS
from moderation_engine import ModerationEngine

logging.basicConfig(
    level=SETTINGS.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Foul Message Moderation API")
engine = ModerationEngine(SETTINGS)

MODERATE_PATHS = ("/api/moderate", "/moderate")


class Message(BaseModel):
    # loosely typed: a bad "text" is reported as text_required, not a 422
    text: Any = ""
    from_user: Any = Field("", alias="fromUser")
    bot_name: Any = Field("", alias="botName")


def cors_headers() -> dict:
    return {
        "Access-Control-Allow-Origin": SETTINGS.cors_allow_origin,
        "Access-Control-Allow-Methods": "POST,OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
    }


@app.middleware("http")
async def add_cors_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.update(cors_headers())
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 405:
        return JSONResponse(status_code=405, content={"error": "method_not_allowed"})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


async def _read_message(request: Request) -> Message:
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        payload = {}
    return Message.model_validate(payload)


async def preflight():
    return Response(status_code=204)


async def moderate(request: Request):
    try:
        msg = await _read_message(request)
        if not msg.text or not isinstance(msg.text, str):
            return JSONResponse(status_code=400, content={"error": "text_required"})

        return await engine.moderate(
            msg.text,
            from_user=msg.from_user or "",
            bot_name=msg.bot_name or "",
        )
    except Exception as exc:
        logger.exception("moderation_error: %s", exc)
        return JSONResponse(status_code=500, content={"error": "moderation_failed"})


for path in MODERATE_PATHS:
    app.add_api_route(path, preflight, methods=["OPTIONS"], status_code=204)
    app.add_api_route(path, moderate, methods=["POST"])
