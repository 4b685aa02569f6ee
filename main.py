from fastapi import FastAPI, Request
from starlette.exceptions import HTTPException as StarletteHTTPException
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from config import settings
from config.database import engine, Base, test_db_connection
from config.logging_config import setup_logging
from config.middleware import add_cors_middleware
from shared_utils.service_auth import verify_service_key
import models  # noqa: F401  registers every table on Base.metadata
import instances.router, contacts.router, conversations.router
import personas.router, departments.router, integrations.router
import providers.router, ai_responder.router, voice.router
import knowledge.router, bitrix24.router
import logging
import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError

# ------------- Logging -------------
setup_logging()
logger = logging.getLogger(__name__)

JWT_SECRET = settings.JWT_SECRET
JWT_ALGORITHM = settings.JWT_ALGORITHM


# ------------- Lifespan -------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown"""
    logger.info("Thoth backend starting up...")
    if not settings.LLM_GATEWAY_API_KEY:
        logger.warning("⚠️ LLM_GATEWAY_API_KEY not set, AI responses will fail")
    if not settings.INTERNAL_SERVICE_KEY:
        logger.warning("⚠️ INTERNAL_SERVICE_KEY not set, AI dispatch from webhooks is disabled")

    yield

    logger.info("Thoth backend shutting down...")


# ------------- Create app -------------
app = FastAPI(title="Thoth WhatsApp Backend", lifespan=lifespan)


# Vendor callbacks authenticate by instance id / portal, not by token
PUBLIC_PATHS = {
    "/",
    "/health",
    "/openapi.json",
    "/bitrix24/sms",
}
PUBLIC_PREFIXES = ("/docs", "/redoc", "/webhooks/")


# ------------- Dual Authentication Middleware (JWT + Service Key) -------------
async def jwt_middleware(request: Request, call_next):
    """
    Authentication middleware supporting:
    1. Public routes (no auth)
    2. Service-to-service authentication (X-Service-Key header)
    3. User JWT authentication (Authorization: Bearer token)
    """
    path = request.url.path

    # 1. Allow public routes
    if path in PUBLIC_PATHS or path.startswith(PUBLIC_PREFIXES) or request.method == "OPTIONS":
        return await call_next(request)

    # 2. Check for Service API Key (X-Service-Key header)
    service_key = request.headers.get("X-Service-Key")
    if service_key:
        if not verify_service_key(service_key):
            logger.warning("❌ Invalid service key attempted")
            return JSONResponse(
                status_code=403,
                content={"error": "forbidden", "message": "Invalid service key"}
            )

        request.state.is_service_request = True
        workspace_id = request.headers.get("X-Workspace-Id")
        if workspace_id:
            request.state.workspace_id = workspace_id
        logger.debug(f"Service request (workspace: {workspace_id or 'none'})")
        return await call_next(request)

    # 3. Check for User JWT Token (Authorization header)
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return JSONResponse(
            status_code=401,
            content={"error": "unauthorized", "message": "Authorization token missing"}
        )

    token = auth.replace("Bearer ", "")
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM], options={"verify_aud": False})
    except ExpiredSignatureError:
        return JSONResponse(
            status_code=401,
            content={"error": "token_expired", "message": "Access token has expired"}
        )
    except InvalidTokenError:
        return JSONResponse(
            status_code=401,
            content={"error": "invalid_token", "message": "Invalid token"}
        )

    request.state.user_id = payload.get("sub")
    request.state.workspace_id = payload.get("workspace_id") or request.headers.get("X-Workspace-Id")
    request.state.is_service_request = False
    return await call_next(request)


app.middleware("http")(jwt_middleware)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


# ------------- CORS + DB -------------
add_cors_middleware(app)
Base.metadata.create_all(bind=engine)

# ------------- Routers -------------
app.include_router(instances.router.router)
app.include_router(contacts.router.router)
app.include_router(conversations.router.router)
app.include_router(personas.router.router)
app.include_router(departments.router.router)
app.include_router(integrations.router.router)
app.include_router(providers.router.router)
app.include_router(ai_responder.router.router)
app.include_router(voice.router.router)
app.include_router(knowledge.router.router)
app.include_router(bitrix24.router.router)


# ------------- Health -------------
@app.get("/health")
def health_check():
    return {
        "status": "Thoth backend is healthy",
        "database": "connected" if test_db_connection() else "unreachable",
    }


@app.get("/")
def read_root():
    return {"message": "Thoth backend is running"}
