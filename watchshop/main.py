from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from watchshop import config
from watchshop.db import Database
from watchshop.errors import ShopError, from_validation_errors
from watchshop.logging_config import get_logger, setup_logging
from watchshop.middleware.rbac import RBACMiddleware
from watchshop.routers import admin_dashboard, admin_orders, orders

log = get_logger(__name__)


def create_app(database: Optional[Database] = None, create_tables: bool = True) -> FastAPI:
    """
    Builds the storefront API around an explicitly constructed Database.

    The database handle is owned by the application: tables are created at
    startup and the engine is disposed at shutdown.
    """
    setup_logging()
    db = database or Database(config.DATABASE_URL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        log.info(f"{config.APP_NAME} starting ({config.ENV}), database: {db.engine.url.render_as_string(hide_password=True)}")
        if create_tables:
            db.create_all()
        yield
        db.dispose()
        log.info(f"{config.APP_NAME} stopped")

    app = FastAPI(title=config.APP_NAME, lifespan=lifespan)
    app.state.db = db

    # ==== Middleware ====
    # role check for /api/admin, needs the session -> added before it
    app.add_middleware(RBACMiddleware)
    app.add_middleware(SessionMiddleware, secret_key=config.SECRET_KEY, same_site="lax")

    # ==== Errors ====
    @app.exception_handler(ShopError)
    async def shop_error_handler(request: Request, exc: ShopError):
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        err = from_validation_errors(exc.errors())
        log.info(f"Rejected {request.method} {request.url.path}: {err.kind.value} {err.message}")
        return JSONResponse(err.to_dict(), status_code=err.status_code)

    # ==== Routers ====
    app.include_router(orders.router)
    app.include_router(admin_orders.router)
    app.include_router(admin_dashboard.router)

    @app.get("/health")
    def health_check():
        return {"status": "ok"}

    return app


def run():
    import uvicorn

    uvicorn.run("watchshop.main:create_app", factory=True, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
