import logging
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from shopflows.config import settings
from shopflows.routers import access, auth_routes, features, platform

logging.basicConfig(level=settings.log_level.upper())


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    services = getattr(app.state, "services", None)
    if services is not None:
        services.stop()


app = FastAPI(title="ShopFlows Session Service", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def attach_request_id(request: Request, call_next):
    request_id = (
        request.headers.get("X-Request-ID")
        or request.headers.get("X-Correlation-ID")
        or str(uuid4())
    )
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response

app.include_router(auth_routes.router)
app.include_router(platform.router)
app.include_router(features.router)
app.include_router(access.router)


@app.get("/")
async def root():
    return {"status": "ok", "service": "shopflows"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
