"""FastAPI application serving the XRPC feed endpoints and health checks."""

from typing import Optional

from atproto import AtUri
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .algos import algos
from .config import AppContext
from .errors import InvalidRequestError
from .logging_setup import get_logger
from .metrics import feed_requests_total
from .pagination import clamp_limit
from .subscription import FirehoseSubscription

logger = get_logger(__name__)

FEED_GENERATOR_COLLECTION = "app.bsky.feed.generator"


def feed_uri(publisher_did: str, shortname: str) -> str:
    return f"at://{publisher_did}/{FEED_GENERATOR_COLLECTION}/{shortname}"


def did_document(service_did: str, hostname: str) -> dict:
    return {
        "@context": ["https://www.w3.org/ns/did/v1"],
        "id": service_did,
        "service": [
            {
                "id": "#atproto_pds",
                "type": "AtprotoPersonalDataServer",
                "serviceEndpoint": "https://bsky.social",
            },
            {
                "id": "#atproto_feed_generator",
                "type": "AtprotoFeedGenerator",
                "serviceEndpoint": f"https://{hostname}",
            },
        ],
    }


def _resolve_algo(ctx: AppContext, feed: str) -> str:
    try:
        uri = AtUri.from_str(feed)
    except Exception:
        raise InvalidRequestError("Unsupported algorithm", "UnsupportedAlgorithm") from None

    if (
        uri.host != ctx.settings.publisher_did
        or uri.collection != FEED_GENERATOR_COLLECTION
        or uri.rkey not in algos
    ):
        logger.warning(
            "unsupported_algorithm",
            host=uri.host,
            collection=uri.collection,
            rkey=uri.rkey,
        )
        raise InvalidRequestError("Unsupported algorithm", "UnsupportedAlgorithm")
    return uri.rkey


def create_app(ctx: AppContext, subscription: Optional[FirehoseSubscription] = None) -> FastAPI:
    settings = ctx.settings
    app = FastAPI(
        title="Community Feed Generator",
        description="Feed skeletons for the Swarm community",
        version="1.0.0",
    )

    @app.exception_handler(InvalidRequestError)
    async def invalid_request(request: Request, exc: InvalidRequestError):
        return JSONResponse(content={"error": exc.error, "message": exc.message}, status_code=400)

    @app.exception_handler(RequestValidationError)
    async def invalid_params(request: Request, exc: RequestValidationError):
        return JSONResponse(
            content={"error": "InvalidRequest", "message": str(exc.errors())},
            status_code=400,
        )

    @app.get("/xrpc/app.bsky.feed.getFeedSkeleton")
    async def get_feed_skeleton(feed: str, limit: Optional[int] = None, cursor: Optional[str] = None):
        shortname = _resolve_algo(ctx, feed)
        page_size = clamp_limit(limit, settings.feed_default_limit, settings.feed_max_limit)
        feed_requests_total.labels(algo=shortname).inc()
        return await algos[shortname](ctx, page_size, cursor)

    @app.get("/xrpc/app.bsky.feed.describeFeedGenerator")
    async def describe_feed_generator():
        return {
            "did": settings.service_did,
            "feeds": [{"uri": feed_uri(settings.publisher_did, name)} for name in algos],
        }

    @app.get("/.well-known/did.json")
    async def well_known_did():
        if not settings.service_did.endswith(settings.hostname):
            logger.warning(
                "did_document_rejected",
                service_did=settings.service_did,
                hostname=settings.hostname,
            )
            return Response(status_code=404)
        return did_document(settings.service_did, settings.hostname)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": settings.service_did}

    @app.get("/health/detailed")
    async def detailed_health():
        """Firehose connection stats and store size."""
        try:
            post_count = await ctx.db.count_posts()
        except Exception as e:
            logger.error("detailed_health_failed", error=str(e))
            return JSONResponse(
                content={"status": "unhealthy", "error": str(e), "service": settings.service_did},
                status_code=503,
            )
        firehose = subscription.get_connection_stats() if subscription is not None else None
        return {
            "status": "healthy",
            "service": settings.service_did,
            "posts": post_count,
            "community_members": len(ctx.members),
            "firehose": firehose,
        }

    if settings.metrics_enabled:
        @app.get("/metrics")
        async def metrics():
            return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
