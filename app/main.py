import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routers.apply_bulk_update import APPLY_BULK_UPDATE_PATH
from app.api.routers.apply_bulk_update import router as apply_bulk_update_router
from app.api.routers.bulk_edit import router as bulk_edit_router
from app.api.routers.notifications import router as notifications_router
from app.core.config import settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


class ScopedCORSMiddleware(CORSMiddleware):
    """CORSMiddleware that leaves some paths to answer CORS themselves."""

    def __init__(self, app, *, exclude_paths=(), **kwargs):
        super().__init__(app, **kwargs)
        self.exclude_paths = frozenset(exclude_paths)

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope.get("path") in self.exclude_paths:
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)


app = FastAPI(title="Bulk Edit Reconciliation API")

# The proxy sends its own wildcard CORS headers and a 204 preflight.
app.add_middleware(
    ScopedCORSMiddleware,
    exclude_paths=(APPLY_BULK_UPDATE_PATH,),
    allow_origins=[o for o in settings.CORS_ALLOW_ORIGINS.split(",") if o] or ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(bulk_edit_router)
app.include_router(apply_bulk_update_router)
app.include_router(notifications_router)


@app.get("/health")
def health():
    return {"status": "up"}
