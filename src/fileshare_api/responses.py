"""Response envelope helpers shared by every route.

Success bodies are `{"success": true, "data": ...}`; failures are
`{"error": CODE, "message": ..., "details"?: ...}`. Every response carries the
same security headers.
"""

from typing import Any, Dict, Optional

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

SECURITY_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
}

NO_CACHE_HEADERS: Dict[str, str] = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
}


def _headers(extra: Optional[Dict[str, str]]) -> Dict[str, str]:
    return {**SECURITY_HEADERS, **(extra or {})}


def success_response(
    data: Any,
    status_code: int = status.HTTP_200_OK,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Wrap `data` (pydantic models are dumped by alias) in the success envelope."""
    return JSONResponse(
        status_code=status_code,
        content={"success": True, "data": jsonable_encoder(data, by_alias=True)},
        headers=_headers(headers),
    )


def created_response(data: Any, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return success_response(data, status_code=status.HTTP_201_CREATED, headers=headers)


def error_response(
    body: Dict[str, Any],
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body),
        headers=_headers(headers),
    )


def json_response(
    body: Any,
    status_code: int = status.HTTP_200_OK,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Plain (non-enveloped) JSON, used by the health endpoints."""
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body, by_alias=True),
        headers=_headers(headers),
    )
