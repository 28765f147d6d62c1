from __future__ import annotations

from fastapi import HTTPException


class ConfigError(RuntimeError):
    """A required setting or secret is missing."""


class InvalidBoundsError(ValueError):
    """Bounding box is not a valid axis-aligned rectangle."""


class QueryFailed(RuntimeError):
    """The places store (or cache DB) failed to answer."""


class UpstreamError(RuntimeError):
    """A third-party API (Fourthwall, YouTube) failed or returned garbage."""


def bad_request(code: str, message: str):
    raise HTTPException(status_code=400, detail={"code": code, "message": message})


def unauthorized(code: str, message: str):
    raise HTTPException(status_code=401, detail={"code": code, "message": message})


def not_found(code: str, message: str):
    raise HTTPException(status_code=404, detail={"code": code, "message": message})


def server_error(code: str, message: str):
    raise HTTPException(status_code=500, detail={"code": code, "message": message})


def bad_gateway(code: str, message: str):
    raise HTTPException(status_code=502, detail={"code": code, "message": message})


def service_unavailable(code: str, message: str):
    raise HTTPException(status_code=503, detail={"code": code, "message": message})
