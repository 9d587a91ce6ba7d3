# main.py
import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional, Type, TypeVar

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import AuthService, TokenService, bearer_token
from completion import CompletionClient
from context import Retriever
from errors import ApiError, UpstreamError
from history import build_turn, record_reply, sanitize, with_context
from models import (
    ChatInput,
    ChatMetrics,
    ChatRequest,
    ChatResponse,
    ClearRequest,
    ClearResponse,
    Credentials,
    TokenResponse,
    VerifyResponse,
    history_to_json,
)
from settings import Settings, get_settings
from store import KeyValueStore, build_stores

logging.basicConfig(level=get_settings().LOG_LEVEL, format="[%(asctime)s] %(levelname)s - %(message)s")
logger = logging.getLogger("baymax")

M = TypeVar("M", bound=BaseModel)

CORS_METHODS = "GET, POST, OPTIONS"
CORS_HEADERS = "Content-Type, Authorization"
# probes do not send an Origin header
ORIGIN_EXEMPT_PATHS = {"/healthz"}


@dataclass
class Services:
    settings: Settings
    history_store: KeyValueStore
    auth: AuthService
    retriever: Retriever
    completion: CompletionClient


def cors_headers(origin: str, allowed) -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": origin if origin and origin in allowed else "*",
        "Access-Control-Allow-Methods": CORS_METHODS,
        "Access-Control-Allow-Headers": CORS_HEADERS,
    }


# --- dependencies ---

def get_services(request: Request) -> Services:
    return request.app.state.services


async def json_body(request: Request) -> Dict[str, Any]:
    content_type = request.headers.get("content-type", "")
    if content_type.split(";")[0].strip().lower() != "application/json":
        raise ApiError(415, "Content-Type must be application/json")
    try:
        payload = json.loads(await request.body())
    except ValueError:
        raise ApiError(400, "Invalid JSON")
    if not isinstance(payload, dict):
        raise ApiError(400, "Invalid JSON")
    return payload


def parse(model: Type[M], payload: Dict[str, Any]) -> M:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        err = exc.errors()[0]
        field = err["loc"][0] if err["loc"] else "body"
        if err["type"] in {"missing", "string_too_short"} or err.get("input") is None:
            raise ApiError(400, f"Missing {field}")
        raise ApiError(400, f"Invalid {field}")


def current_user(request: Request, services: Services = Depends(get_services)) -> Optional[str]:
    """Resolve the bearer token when auth is required; ``None`` otherwise."""
    if not services.settings.REQUIRE_AUTH:
        return None
    token = bearer_token(request.headers.get("authorization"))
    if not token:
        raise ApiError(401, "Unauthorized: missing token")
    username, refresh = services.auth.authenticate(token)
    if refresh:
        request.state.refresh_token = refresh
    return username


router = APIRouter()


@router.get("/healthz")
def healthz():
    return {"ok": True}


@router.post("/signup", response_model=TokenResponse)
def signup(payload: Dict[str, Any] = Depends(json_body), services: Services = Depends(get_services)):
    creds = parse(Credentials, payload)
    return TokenResponse(token=services.auth.signup(creds.username, creds.password))


@router.post("/login", response_model=TokenResponse)
def login(payload: Dict[str, Any] = Depends(json_body), services: Services = Depends(get_services)):
    creds = parse(Credentials, payload)
    return TokenResponse(token=services.auth.login(creds.username, creds.password))


@router.get("/verify", response_model=VerifyResponse)
def verify(request: Request, services: Services = Depends(get_services)):
    token = bearer_token(request.headers.get("authorization"))
    if not token:
        raise ApiError(401, "Missing token")
    claims = services.auth.verify(token)
    return VerifyResponse(username=claims["sub"])


@router.post("/clear", response_model=ClearResponse)
def clear(
    user: Optional[str] = Depends(current_user),
    payload: Dict[str, Any] = Depends(json_body),
    services: Services = Depends(get_services),
):
    req = parse(ClearRequest, payload)
    services.history_store.delete(req.sessionId)
    logger.info("Cleared session=%s user=%s", req.sessionId, user)
    return ClearResponse(success=True, message="Session cleared")


@router.post("/", response_model=ChatResponse)
@router.post("/chat", response_model=ChatResponse)
def chat(
    request: Request,
    user: Optional[str] = Depends(current_user),
    payload: Dict[str, Any] = Depends(json_body),
    services: Services = Depends(get_services),
):
    settings = services.settings
    req = parse(ChatRequest, payload)

    user_message = req.userMessage.strip()
    if not user_message:
        raise ApiError(400, "Missing userMessage")
    if len(user_message) > settings.MAX_MESSAGE_LENGTH:
        raise ApiError(413, "userMessage too long")
    sanitized = sanitize(user_message)

    raw = services.history_store.get(req.sessionId)
    history = build_turn(raw, sanitized, settings.SYSTEM_PROMPT, settings.MAX_HISTORY)

    found = services.retriever.fetch(sanitized)
    context = found.text if found.available else ""

    result = services.completion.complete(with_context(history, context))

    history = record_reply(history, result.reply, settings.MAX_HISTORY)
    services.history_store.put(req.sessionId, history_to_json(history), ttl=settings.HISTORY_TTL)
    logger.info(
        "Chat turn session=%s user=%s history=%s context=%s latency_ms=%s",
        req.sessionId,
        user,
        len(history),
        bool(context),
        result.latency_ms,
    )

    return ChatResponse(
        reply=result.reply,
        context=context,
        choices=result.choices,
        input=ChatInput(original=user_message, sanitized=sanitized, embeddings=found.results),
        metrics=ChatMetrics(latencyMs=result.latency_ms, historyLength=len(history)),
        refreshToken=getattr(request.state, "refresh_token", None),
    )


# --- error rendering ---

def _with_refresh(request: Request, body: Dict[str, Any]) -> Dict[str, Any]:
    refresh = getattr(request.state, "refresh_token", None)
    if refresh:
        body["refreshToken"] = refresh
    return body


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(_with_refresh(request, exc.body()), status_code=exc.status_code)


async def upstream_error_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    body = {"error": "Upstream model error", "upstreamStatus": exc.status_code, "detail": exc.body}
    return JSONResponse(_with_refresh(request, body), status_code=502)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)


def create_app(
    settings: Optional[Settings] = None,
    history_store: Optional[KeyValueStore] = None,
    user_store: Optional[KeyValueStore] = None,
    retriever: Optional[Retriever] = None,
    completion: Optional[CompletionClient] = None,
) -> FastAPI:
    settings = settings or get_settings()
    if history_store is None or user_store is None:
        default_history, default_users = build_stores(settings)
        history_store = history_store or default_history
        user_store = user_store or default_users

    tokens = TokenService(settings.ISSUER_SECRET, settings.TOKEN_EXPIRY, settings.TOKEN_REFRESH_THRESHOLD)
    services = Services(
        settings=settings,
        history_store=history_store,
        auth=AuthService(user_store, tokens),
        retriever=retriever or Retriever(settings),
        completion=completion or CompletionClient(settings),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        services.retriever.close()
        services.completion.close()

    app = FastAPI(title="Baymax Chat Proxy", version="1.0.0", lifespan=lifespan)
    app.state.services = services
    allowed = settings.allowed_origins

    @app.middleware("http")
    async def edge(request: Request, call_next):
        origin = request.headers.get("origin", "")
        headers = cors_headers(origin, allowed)
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=headers)

        if settings.ENFORCE_ORIGIN and origin not in allowed and request.url.path not in ORIGIN_EXEMPT_PATHS:
            response = JSONResponse({"error": "Forbidden origin"}, status_code=403)
        else:
            try:
                response = await call_next(request)
            except Exception as exc:
                logger.exception("Request failed: %s %s", request.method, request.url.path)
                body = {"error": str(exc) or "Internal Server Error"}
                response = JSONResponse(_with_refresh(request, body), status_code=500)
        response.headers.update(headers)
        return response

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(UpstreamError, upstream_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.include_router(router)
    return app


app = create_app()
