import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from spireworks.services.actions import ActionRejected


def register_error_handlers(app: FastAPI):
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        sentry_sdk.capture_exception(exc)
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "type": type(exc).__name__,
            },
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content={"detail": str(exc)},
        )

    @app.exception_handler(ActionRejected)
    async def action_rejected_handler(request: Request, exc: ActionRejected):
        return JSONResponse(
            status_code=409,
            content={
                "detail": exc.result.message,
                "reason": exc.result.reason.value,
            },
        )
