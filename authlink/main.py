# FastAPI application entry point that initialises
# the app, the code store and the expiry sweeper, and registers API routes.

import asyncio
import contextlib
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from authlink.core.config import settings
from authlink.db import SessionLocal, init_db
from authlink.routes.auth import router as auth_router
from authlink.services.errors import AuthLinkError
from authlink.services.sweeper import run_sweeper

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()

    sweeper = None
    if settings.SWEEP_INTERVAL_SECONDS > 0:
        sweeper = asyncio.create_task(run_sweeper(SessionLocal, settings.SWEEP_INTERVAL_SECONDS))

    yield

    if sweeper is not None:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper

app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# Issuance and polling are public, so origins are open unless configured
origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials="*" not in origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

@app.exception_handler(AuthLinkError)
async def auth_link_error_handler(request: Request, exc: AuthLinkError):
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc), "error": exc.error})

app.include_router(auth_router)

@app.get("/health")
def health():
    return {"ok": True}
