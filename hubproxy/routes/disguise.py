"""Camouflage site relay.

Anything that is not registry traffic is relayed to an ordinary website so
the proxy looks like that site to casual visitors.
"""

import structlog
from fastapi import APIRouter, Request

from hubproxy.deps.relay import RelayEngineDep
from hubproxy.routes.registry_proxy import relay_request, request_target
from hubproxy.settings import settings

logger = structlog.stdlib.get_logger(__name__)

router = APIRouter(tags=["Disguise"])


@router.api_route(
    "/{path:path}",
    methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    include_in_schema=False,
)
async def relay_disguise_request(request: Request, relay: RelayEngineDep):
    target_url = f"{settings.DISGUISE_URL}{request_target(request)}"
    logger.debug("Relaying to disguise site", target_url=target_url)

    return await relay_request(
        request, relay, target_url=target_url, authenticate=False
    )
