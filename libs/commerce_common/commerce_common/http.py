"""FastAPI glue shared by the service shells: error mapping and role checks."""

from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .errors import CommerceError
from .policy import Role, is_allowed, parse_role


def register_error_handlers(app: FastAPI) -> None:
    """Map every CommerceError to its HTTP status and structured body."""

    @app.exception_handler(CommerceError)
    async def handle_commerce_error(request: Request, exc: CommerceError):
        return JSONResponse(status_code=int(exc.status_code), content=jsonable_encoder(exc.to_dict()))


def require(operation: str):
    """Build a dependency that enforces the policy table for ``operation``.

    The role travels in the ``X-User-Role`` header; authentication itself
    happens upstream.
    """

    def dependency(x_user_role: Optional[str] = Header(default=None)) -> Optional[Role]:
        if not is_allowed(operation, x_user_role):
            raise HTTPException(status_code=403, detail=f"Role not allowed to {operation}")
        return parse_role(x_user_role)

    return dependency
