"""FastAPI application entrypoint."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from blog_api.comment_store import create_comment_store
from blog_api.config import Settings
from blog_api.dispatcher import ApiRequest
from blog_api.handlers import ROUTES, AppContext
from blog_api.identity import TokenVerifier, VerifierConfig
from blog_api.post_store import create_post_store
from blog_api.telemetry import configure_logging, init_telemetry, shutdown_telemetry

configure_logging()

log = structlog.get_logger()

_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH", "HEAD"]


def build_context(settings: Settings) -> AppContext:
    """Create the stores and the token verifier shared by all requests."""
    return AppContext(
        posts=create_post_store(
            settings.state_backend, settings.redis_url, settings.posts_key_prefix
        ),
        comments=create_comment_store(
            settings.state_backend, settings.redis_url, settings.comments_key_prefix
        ),
        verifier=TokenVerifier(VerifierConfig.from_settings(settings)),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = Settings()
    configure_logging(settings.log_level)
    init_telemetry()
    app.state.settings = settings
    ctx = build_context(settings)
    app.state.ctx = ctx
    await log.ainfo(
        "service started", state_backend=settings.state_backend, issuer=settings.auth_issuer
    )
    yield

    await ctx.posts.aclose()
    await ctx.comments.aclose()
    await log.ainfo("service stopped")
    shutdown_telemetry()


app = FastAPI(
    title="Blog API", lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None
)
FastAPIInstrumentor.instrument_app(app)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.api_route("/{path:path}", methods=_METHODS, include_in_schema=False)
async def api(request: Request) -> Response:
    """Hand every other request to the route table."""
    raw = await request.body()
    api_request = ApiRequest(
        method=request.method,
        path=request.url.path,
        headers=dict(request.headers),
        body=raw or None,
    )
    result = await ROUTES.dispatch(api_request, request.app.state.ctx)
    return Response(content=result.body, status_code=result.status_code, headers=result.headers)
