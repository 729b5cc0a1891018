import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

from fastapi import FastAPI, Request, Response

from .config import get_settings
from .context import AppContext
from .routers import members, presence, reservations, venues
from .utils.logging_config import configure_logging
from .utils.request_id import REQUEST_ID_HEADER, bound_request_id, resolve_request_id

logger = logging.getLogger(__name__)


async def request_id_middleware(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
    with bound_request_id(request_id):
        response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    context = AppContext.create(get_settings())
    app.state.context = context
    logger.info("app_context_ready")
    try:
        yield
    finally:
        await context.close()
        logger.info("app_context_closed")


configure_logging()

app = FastAPI(title="Slot Booking API", lifespan=lifespan)
app.middleware("http")(request_id_middleware)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(venues.router)
app.include_router(reservations.router)
app.include_router(presence.router)
app.include_router(members.router)
