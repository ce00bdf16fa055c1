from typing import Optional

from fastapi.responses import JSONResponse


def docker_error_response(
    status_code: int,
    error_code: str,
    message: str,
    detail: Optional[str] = None,
) -> JSONResponse:
    """Create a Docker Registry v2 API compliant error response.

    See: https://distribution.github.io/distribution/spec/api/#errors
    """
    error_obj = {
        "code": error_code,
        "message": message,
    }
    if detail:
        error_obj["detail"] = detail

    return JSONResponse(
        status_code=status_code,
        content={"errors": [error_obj]},
        headers={"Docker-Distribution-API-Version": "registry/2.0"},
    )
