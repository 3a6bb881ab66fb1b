# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from keepsake.auth.gate import AccessGate, TimeSource
from keepsake.auth.keys import AdminKeyGate, RegistrationKeyRegistry
from keepsake.auth.passwords import Argon2Params, PasswordHasher
from keepsake.auth.tokens import Principal, TokenService
from keepsake.config import Settings, load_settings
from keepsake.errors import (
    AccessDenied,
    HashFormatError,
    InfrastructureError,
    InvalidCredentials,
    InvalidRegistrationKey,
    InvalidUsername,
    KeepsakeError,
    PathTraversal,
    PictureNotFound,
    TokenError,
    Unauthorized,
    UserAlreadyExists,
)
from keepsake.infra.store import SQLiteStore
from keepsake.metrics import Metrics
from keepsake.permissions import RequestAuthenticator, require_admin, require_principal
from keepsake.services.auth_service import AuthService
from keepsake.services.picture_service import IncomingFile, PictureService

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

ERROR_STATUS = {
    InvalidCredentials: 401,
    InvalidRegistrationKey: 401,
    InvalidUsername: 400,
    Unauthorized: 401,
    TokenError: 401,
    UserAlreadyExists: 409,
    AccessDenied: 403,
    PathTraversal: 400,
    PictureNotFound: 404,
    HashFormatError: 500,
    InfrastructureError: 500,
}


def status_for(exc: KeepsakeError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


# ------------------ request bodies ------------------


class RegisterRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    key: str = Field(min_length=1)


class LoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class AddKeyRequest(BaseModel):
    key: str = Field(min_length=1)


# ------------------ app factory ------------------


def create_app(
    settings: Optional[Settings] = None,
    *,
    clock: TimeSource = datetime.now,
    metrics: Optional[Metrics] = None,
) -> FastAPI:
    """Build the application.

    The database is migrated (and, when fresh, seeded with registration keys)
    here, before the app can serve a request.
    """
    settings = settings or load_settings()
    metrics = metrics or Metrics()

    store = SQLiteStore(settings.db_path)
    seeded = store.migrate(seed_keys=settings.seed_keys)
    if seeded:
        logger.info("seeded %d registration keys; list them with GET /api/auth/keys", len(seeded))

    tokens = TokenService(settings.jwt_key)
    auth_service = AuthService(
        store=store,
        hasher=PasswordHasher(
            Argon2Params(
                time_cost=settings.argon2_time,
                memory_cost=settings.argon2_memory,
                parallelism=settings.argon2_threads,
                hash_len=settings.argon2_keylen,
            )
        ),
        tokens=tokens,
        keys=RegistrationKeyRegistry(store),
        admin=AdminKeyGate(settings.api_key),
        metrics=metrics,
    )
    picture_service = PictureService(
        base_path=settings.images_dir,
        store=store,
        gate=AccessGate(settings.anniversary_day, settings.anniversary_month),
        metrics=metrics,
        clock=clock,
    )

    app = FastAPI(title="keepsake")
    app.state.settings = settings
    app.state.store = store
    app.state.metrics = metrics
    app.state.authenticator = auth_service.authenticator
    app.state.auth_service = auth_service
    app.state.picture_service = picture_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "Content-Type", "Accept", "Authorization", "X-Requested-With", "api_key"],
        expose_headers=["Content-Length", REQUEST_ID_HEADER],
        allow_credentials="*" not in settings.cors_origins,
    )

    @app.middleware("http")
    async def _request_id_middleware(request: Request, call_next):
        request.state.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request.state.request_id
        return response

    @app.exception_handler(KeepsakeError)
    async def _keepsake_error(request: Request, exc: KeepsakeError):
        status = status_for(exc)
        rid = getattr(request.state, "request_id", "-")
        if status >= 500:
            logger.error("request failed: kind=%s request_id=%s", exc.kind, rid, exc_info=exc)
            message = "internal server error"
        else:
            logger.warning("request rejected: kind=%s request_id=%s", exc.kind, rid)
            message = "Unauthorized" if isinstance(exc, TokenError) else str(exc)
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, TokenError) else None
        return JSONResponse({"error": message}, status_code=status, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def _invalid_body(request: Request, exc: RequestValidationError):
        logger.warning("invalid request body request_id=%s", getattr(request.state, "request_id", "-"))
        return JSONResponse({"error": "invalid request"}, status_code=400)

    _auth_routes(app, auth_service)
    _picture_routes(app, picture_service)
    _ops_routes(app, settings, metrics)
    return app


# ------------------ routes ------------------


def _auth_routes(app: FastAPI, svc: AuthService) -> None:
    @app.post("/api/auth/register")
    def register(body: RegisterRequest):
        return {"token": svc.register(body.username, body.password, body.key)}

    @app.post("/api/auth/login")
    def login(body: LoginRequest):
        return {"token": svc.login(body.username, body.password)}

    @app.get("/api/auth/refresh")
    def refresh(request: Request):
        return {"token": svc.refresh(request.headers.get("Authorization"))}

    @app.get("/api/auth/keys")
    def get_keys(request: Request):
        return {"keys": svc.list_keys(request.headers.get("api_key"))}

    # The dependency rejects a bad api_key before the body is validated.
    @app.post("/api/auth/keys", dependencies=[Depends(require_admin)])
    def add_key(body: AddKeyRequest):
        svc.add_key(body.key)
        return {"message": "key added"}


def _picture_routes(app: FastAPI, svc: PictureService) -> None:
    @app.get("/api/pictures")
    def get_pictures(
        limit: Optional[str] = None,
        offset: Optional[str] = None,
        principal: Principal = Depends(require_principal),
    ):
        return [img.to_dict() for img in svc.list_pictures(limit, offset)]

    @app.get("/api/picture")
    def get_picture(name: str = "", principal: Principal = Depends(require_principal)):
        return FileResponse(path=str(svc.resolve(name)))

    @app.get("/api/pictures_total")
    def get_total_pictures(principal: Principal = Depends(require_principal)):
        return {"total": svc.total()}

    @app.post("/api/pictures")
    async def upload_pictures(request: Request, principal: Principal = Depends(require_principal)):
        form = await request.form()
        incoming: List[IncomingFile] = []
        for item in form.getlist("pictures"):
            if isinstance(item, str):
                continue
            incoming.append(
                IncomingFile(
                    filename=item.filename or "",
                    content_type=item.content_type or "",
                    data=await item.read(),
                )
            )
        await form.close()

        result = await run_in_threadpool(svc.upload, incoming, principal)
        if not result.failures:
            return {"message": "Files uploaded successfully", "paths": result.stored}
        return JSONResponse(
            {
                "error": "some files failed to upload",
                "failed_files": [f.filename for f in result.failures],
                "reasons": [f.message for f in result.failures],
                "paths": result.stored,
            },
            status_code=result.status_code,
        )


def _ops_routes(app: FastAPI, settings: Settings, metrics: Metrics) -> None:
    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    if not settings.prometheus_key:
        return

    gate = AdminKeyGate(settings.prometheus_key)

    @app.get("/metrics")
    def prometheus_metrics(request: Request):
        gate.require(RequestAuthenticator.bearer_token(request.headers.get("Authorization")))
        return Response(content=metrics.render(), media_type=CONTENT_TYPE_LATEST)
