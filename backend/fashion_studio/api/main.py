from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from fashion_studio.core.config import API_TITLE, API_VERSION, STORAGE_DIR
from fashion_studio.core.errors import register_exception_handlers
from fashion_studio.core.logging import configure_logging
from fashion_studio.api.routes.admin import router as admin_router
from fashion_studio.api.routes.analytics import router as analytics_router
from fashion_studio.api.routes.api_keys import router as api_keys_router
from fashion_studio.api.routes.billing import router as billing_router
from fashion_studio.api.routes.generations import router as generations_router
from fashion_studio.api.routes.profile import router as profile_router
from fashion_studio.api.routes.queue import router as queue_router
from fashion_studio.api.routes.realtime import router as realtime_router
from fashion_studio.api.routes.templates import router as templates_router
from fashion_studio.api.routes.uploads import router as uploads_router


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=API_TITLE, version=API_VERSION)
    register_exception_handlers(app)

    STORAGE_DIR.mkdir(parents=True, exist_ok=True)
    app.mount("/storage", StaticFiles(directory=str(STORAGE_DIR)), name="storage")

    @app.get("/health")
    def health():
        return {"ok": True}

    app.include_router(generations_router)
    app.include_router(queue_router)
    app.include_router(templates_router)
    app.include_router(profile_router)
    app.include_router(uploads_router)
    app.include_router(billing_router)
    app.include_router(analytics_router)
    app.include_router(api_keys_router)
    app.include_router(admin_router)
    app.include_router(realtime_router)

    return app


app = create_app()
