"""GET /metrics in the Prometheus text format"""
from fastapi import APIRouter
from fastapi.responses import PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from habitforge import config

router = APIRouter()


@router.get("/metrics", include_in_schema=False)
async def metrics_endpoint() -> Response:
    if not config.ENABLE_PROMETHEUS:
        return PlainTextResponse("Prometheus metrics disabled", status_code=503)
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)
