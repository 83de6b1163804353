# newsdesk/main.py
from __future__ import annotations

from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response as StarletteResponse

from newsdesk.api.routers.scrape import CORS_HEADERS, router as scrape_router
from newsdesk.core.logging import configure_logging, logger
from newsdesk.core.request_id import request_scope
from newsdesk.services.db_service import close_pool

configure_logging(service_name="api")

app = FastAPI(
    title="newsdesk",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)


@app.on_event("shutdown")
async def _shutdown_cleanup() -> None:
    await close_pool()


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        with request_scope(request.headers.get("x-request-id")) as req_id:
            logger.info("request_started", method=request.method, path=str(request.url.path))
            try:
                response: StarletteResponse = await call_next(request)
            except Exception as exc:
                logger.error("request_exception", error=str(exc.__class__.__name__))
                raise
            logger.info("request_ended", status_code=response.status_code)
            response.headers["X-Request-Id"] = req_id
            return response


# Middleware added last runs outermost: request ids also cover CORS preflights.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    expose_headers=["X-Request-Id"],
)
app.add_middleware(RequestIdMiddleware)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    headers = dict(exc.headers or {})
    headers.update(CORS_HEADERS)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc.detail)},
        headers=headers,
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Runs outside the CORS middleware, so the headers are set here.
    logger.exception("unhandled_exception", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": str(exc) or exc.__class__.__name__},
        headers=CORS_HEADERS,
    )


@app.get("/health")
async def health():
    return {"ok": True}


@app.head("/")
async def root_head():
    return Response(status_code=200)


app.include_router(scrape_router)

logger.info("routers_registered", routers=["scrape"])
