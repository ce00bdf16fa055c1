from typing import Annotated

from fastapi import Depends, Request

from hubproxy.packages.registry_proxy import RelayEngine


def get_relay_engine(request: Request) -> RelayEngine:
    """Relay engine built once in the app lifespan."""
    return request.app.state.relay_engine


# Type alias for dependency injection
RelayEngineDep = Annotated[RelayEngine, Depends(get_relay_engine)]
