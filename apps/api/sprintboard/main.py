from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.trustedhost import TrustedHostMiddleware

from sprintboard.config import settings
from sprintboard.errors import DomainError, ErrorKind
from sprintboard.routers.audit import router as audit_router
from sprintboard.routers.backlog import router as backlog_router
from sprintboard.routers.boards import router as boards_router
from sprintboard.routers.comments import router as comments_router
from sprintboard.routers.labels import router as labels_router
from sprintboard.routers.members import router as members_router
from sprintboard.routers.sprints import router as sprints_router
from sprintboard.routers.tickets import router as tickets_router
from sprintboard.routers.users import router as users_router
from sprintboard.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

app = FastAPI(
  title="Sprintboard API",
  version="0.1.0",
  docs_url="/docs" if settings.api_docs_enabled else None,
  redoc_url="/redoc" if settings.api_docs_enabled else None,
  openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)


@app.exception_handler(DomainError)
async def _domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
  if exc.kind is ErrorKind.INTERNAL:
    logger.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
  else:
    logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind.value, exc.message)
  return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.kind.value})


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_origin_regex=settings.cors_origin_regex,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(users_router)
app.include_router(boards_router)
app.include_router(members_router)
app.include_router(backlog_router)
app.include_router(sprints_router)
app.include_router(tickets_router)
app.include_router(labels_router)
app.include_router(comments_router)
app.include_router(audit_router)


@app.middleware("http")
async def _security_headers_middleware(request, call_next):
  response = await call_next(request)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  return response


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


@app.on_event("startup")
async def _startup() -> None:
  setup_logging(settings.log_level)
  if settings.is_test_db():
    return
  if not settings.app_secret or settings.app_secret.strip().lower() in {"dev-secret-change-me", "replace_with_strong_random_secret"}:
    raise RuntimeError("APP_SECRET is required and must not be a placeholder")
  logger.info("sprintboard api %s (%s) started", settings.app_version, settings.build_sha)
