"""Dependency injection for FastAPI endpoints"""

from fastapi import Header, HTTPException, Request

from careflex_billing.infrastructure.clients.upstream import UpstreamClient


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_upstream_client() -> UpstreamClient:
    """Provide patient backend client instance"""
    return UpstreamClient()


def get_bearer_token(authorization: str | None = Header(default=None)) -> str:
    """Pass the caller's bearer token through to the patient backend"""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Not signed in")
    token = authorization[len("bearer "):].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Not signed in")
    return token
