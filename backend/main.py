import time
from contextlib import asynccontextmanager
from typing import Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

import config
from keepalive import start_keepalive, stop_keepalive
from logging_setup import get_logger, setup_logging
from routers import health, quiz, report, users
from upstream import close_upstream

setup_logging(config.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Server started",
        extra={"port": config.PORT, "environment": config.ENVIRONMENT},
    )
    keepalive_task = start_keepalive() if config.KEEPALIVE_ENABLED else None

    yield

    logger.info("Shutting down server gracefully")
    if keepalive_task is not None:
        await stop_keepalive(keepalive_task)
    await close_upstream()


app = config.create_app(lifespan=lifespan)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    logger.info(
        "Request received",
        extra={
            "method": request.method,
            "url": str(request.url.path),
            "ip": request.client.host if request.client else None,
            "user_agent": request.headers.get("user-agent"),
        },
    )

    response = await call_next(request)

    logger.info(
        "Response sent",
        extra={
            "method": request.method,
            "url": str(request.url.path),
            "status_code": response.status_code,
            "duration": f"{(time.perf_counter() - start) * 1000:.0f}ms",
        },
    )
    return response


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.error(
        "Unhandled error",
        exc_info=exc,
        extra={"url": str(request.url.path), "method": request.method},
    )
    return JSONResponse(status_code=500, content={"error": "Erro interno do servidor"})


# Message for a body that is not an object at all, per route
BODY_ERROR_MESSAGES = {
    ("POST", "/generatepdf"): "Dados incompletos.",
    ("POST", "/api/register"): f"Campo {users.REGISTER_REQUIRED[0]} é obrigatório.",
    ("POST", "/api/quiz"): f"Campo {quiz.QUIZ_REQUIRED[0]} é obrigatório.",
    ("PUT", "/api/quiz"): "Campo idQuiz é obrigatório para atualização.",
}


def body_error_message(method: str, path: str, errors: Sequence[dict]) -> Optional[str]:
    """400 message for a rejected body on the proxy and report routes, if any.

    A bad value in a named field is reported as that field; a body that is
    not a JSON object gets the route's own message.
    """
    default = BODY_ERROR_MESSAGES.get((method, path.rstrip("/")))
    if default is None:
        return None
    if path.rstrip("/") == "/generatepdf":
        return default
    for error in errors:
        loc = error.get("loc", ())
        if len(loc) > 1 and loc[0] == "body":
            return f"Campo {loc[1]} é obrigatório."
    return default


@app.exception_handler(RequestValidationError)
async def invalid_request(request: Request, exc: RequestValidationError):
    message = body_error_message(request.method, request.url.path, exc.errors())
    if message is None:
        return await request_validation_exception_handler(request, exc)

    logger.warning(
        "Invalid request body",
        extra={"url": str(request.url.path), "method": request.method, "error": message},
    )
    return JSONResponse(status_code=400, content={"error": message})


app.include_router(health.router)
app.include_router(users.router)
app.include_router(quiz.router)
app.include_router(report.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.PORT)

# Run with:
# uvicorn main:app --reload
