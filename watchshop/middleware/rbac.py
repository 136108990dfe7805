from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from fastapi import Request

from watchshop.errors import ErrorKind, ShopError
from watchshop.utils.enums import UserRole

ADMIN_PREFIX = "/api/admin"

ACCESS_MATRIX = {
    UserRole.ADMIN.value: ["*"],  # full access
    UserRole.MANAGER.value: ["/api/admin/orders"],
    UserRole.CUSTOMER.value: [],
}


def _deny(kind: ErrorKind, message: str) -> JSONResponse:
    err = ShopError(kind, message)
    return JSONResponse(err.to_dict(), status_code=err.status_code)


class RBACMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        # only the back-office API is role-restricted
        if path.startswith(ADMIN_PREFIX):
            role = (request.session.get("role") or "").strip().lower()

            if not role or not request.session.get("user_id"):
                return _deny(ErrorKind.NOT_AUTHENTICATED, "Not authenticated")

            allowed_paths = ACCESS_MATRIX.get(role, [])
            if "*" in allowed_paths or any(path.startswith(p) for p in allowed_paths):
                return await call_next(request)

            return _deny(ErrorKind.FORBIDDEN, "Insufficient permissions")

        return await call_next(request)
