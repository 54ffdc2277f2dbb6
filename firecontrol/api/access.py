"""
Access endpoints for firecontrol.

- GET|POST {endpoint}/add     - Allow a source in a zone for the grant window
- GET|POST {endpoint}/list    - Live rule summary of a zone (from firewalld)
- GET      {endpoint}/grants  - Active grants held by this service

Parameters come from the query string and the body (JSON or
urlencoded); body values win. Every request gets exactly one JSON
response with an explicit ``status`` flag.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Union
from urllib.parse import parse_qsl

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..service.errors import ExternalToolFailure, InvalidArgument
from .auth import check_secret

logger = logging.getLogger(__name__)

CLIENT_SOURCE = "client"


class AccessParams(BaseModel):
    """Parameters accepted by /add and /list."""

    zone: Optional[str] = None
    source: Optional[str] = None
    secret: Optional[str] = None


class GrantResponse(BaseModel):
    status: bool
    message: Optional[str] = None
    error: Optional[str] = None
    expiresAt: Optional[int] = None


class ZoneListResponse(BaseModel):
    status: bool
    title: Optional[str] = None
    config: Optional[Dict[str, Union[str, List[str]]]] = None
    error: Optional[str] = None


def _respond(model: BaseModel, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=model.model_dump(exclude_none=True),
    )


async def read_params(request: Request) -> Dict[str, Any]:
    params: Dict[str, Any] = dict(request.query_params)
    body = await request.body()
    if not body:
        return params

    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            data = json.loads(body)
        except ValueError:
            logger.debug("Ignoring unparsable JSON body")
            data = None
        if isinstance(data, dict):
            params.update(data)
    elif "application/x-www-form-urlencoded" in content_type:
        params.update(parse_qsl(body.decode("utf-8", errors="replace")))
    return params


def client_address(request: Request) -> Optional[str]:
    """The caller's address, preferring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


async def _authorized_params(request: Request) -> Union[AccessParams, JSONResponse]:
    settings = request.app.state.settings
    params = await read_params(request)

    if not check_secret(
        settings.secret, settings.plain, params, request.headers, await request.body()
    ):
        logger.warning(f"Rejected request to {request.url.path}: wrong secret")
        return _respond(GrantResponse(status=False, error="Wrong secret key."), 401)

    return AccessParams(
        **{
            k: str(v)
            for k, v in params.items()
            if k in AccessParams.model_fields and v is not None
        }
    )


def create_access_router(endpoint: str = "") -> APIRouter:
    """Create the access routes under ``endpoint``."""
    router = APIRouter(prefix=endpoint)

    @router.api_route("/add", methods=["GET", "POST"])
    async def add_source(request: Request):
        """Allow a source address in a zone."""
        params = await _authorized_params(request)
        if isinstance(params, JSONResponse):
            return params

        firecontrol = request.app.state.firecontrol
        zone = params.zone or firecontrol.default_zone
        if not zone:
            return _respond(GrantResponse(status=False, error="zone not provided."))

        source = params.source
        if not source:
            return _respond(GrantResponse(status=False, error="source not provided."))
        if source == CLIENT_SOURCE:
            source = client_address(request)

        result = await firecontrol.grant(zone, source)
        return _respond(GrantResponse(**result.to_dict()))

    @router.api_route("/list", methods=["GET", "POST"])
    async def list_zone(request: Request):
        """Return firewalld's rule summary for a zone."""
        params = await _authorized_params(request)
        if isinstance(params, JSONResponse):
            return params

        firecontrol = request.app.state.firecontrol
        zone = params.zone or firecontrol.default_zone
        if not zone:
            return _respond(ZoneListResponse(status=False, error="zone not provided."))

        try:
            summary = await firecontrol.list_zone(zone)
        except (InvalidArgument, ExternalToolFailure) as e:
            return _respond(ZoneListResponse(status=False, error=str(e)))

        return _respond(ZoneListResponse(status=True, **summary.to_dict()))

    @router.get("/grants")
    async def list_grants(request: Request, zone: Optional[str] = None):
        """Active grants from the in-memory table."""
        params = await _authorized_params(request)
        if isinstance(params, JSONResponse):
            return params

        firecontrol = request.app.state.firecontrol
        return {"status": True, "grants": firecontrol.grants(zone)}

    return router
