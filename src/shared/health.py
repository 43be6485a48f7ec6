from time import perf_counter

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

router = APIRouter(tags=["Health"])


@router.get("/_health/redis")
async def health_redis(request: Request):
    cache = request.app.state.container.cache
    if cache is None:
        return {"service": "redis", "status": "disabled"}
    if await cache.ping():
        return {"service": "redis", "status": "ok"}
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"service": "redis", "status": "unavailable"},
    )


@router.get("/_health/db", status_code=status.HTTP_200_OK)
async def health_db(request: Request):
    session_factory = request.app.state.container.database.session_factory
    t0 = perf_counter()
    try:
        async with session_factory() as s:
            await s.execute(text("SELECT 1"))
        dt_ms = int((perf_counter() - t0) * 1000)
        return {"ok": True, "checks": {"db_select_1_ms": dt_ms}}
    except (SQLAlchemyError, OSError) as e:
        # Return 503 with the error string so you can SEE the real cause
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "ok": False,
                "checks": {"db": "SELECT 1 failed"},
                "error": type(e).__name__,
                "detail": str(e),
            },
        )
