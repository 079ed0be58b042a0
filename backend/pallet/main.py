from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from pallet.core.config import settings
from pallet.core.logging import configure_logging
from pallet.core.responses import register_exception_handlers
from pallet.core.storage import WEB_PREFIX
import pallet.models  # noqa: F401  # force model registration

from pallet.api.v1.auth import router as auth_router
from pallet.api.v1.users import router as users_router
from pallet.api.v1.brands import router as brands_router
from pallet.api.v1.products import router as products_router
from pallet.api.v1.price_tiers import router as price_tiers_router
from pallet.api.v1.recycle import router as recycle_router
from pallet.api.v1.share import router as share_router
from pallet.api.v1.attachments import router as attachments_router
from pallet.api.v1.stats import router as stats_router
from pallet.api.v1.dashboard import router as dashboard_router
from pallet.api.v1.pages import router as pages_router
from pallet.api.v1.pagination import router as pagination_router
from pallet.api.v1.search import router as search_router
from pallet.api.v1.health import router as health_router


def create_application() -> FastAPI:
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(title="Pallet API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Read-only access to stored attachments and QR codes
    app.mount(WEB_PREFIX, StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False), name="uploads")

    @app.get("/")
    def root():
        return {"status": "ok", "service": "pallet"}

    # Routers
    app.include_router(auth_router, prefix="/api/v1")
    app.include_router(users_router, prefix="/api/v1")
    app.include_router(brands_router, prefix="/api/v1")
    app.include_router(products_router, prefix="/api/v1")
    app.include_router(price_tiers_router, prefix="/api/v1")
    app.include_router(recycle_router, prefix="/api/v1")
    app.include_router(share_router, prefix="/api/v1")
    app.include_router(attachments_router, prefix="/api/v1")
    app.include_router(stats_router, prefix="/api/v1")
    app.include_router(dashboard_router, prefix="/api/v1")
    app.include_router(pages_router, prefix="/api/v1")
    app.include_router(pagination_router, prefix="/api/v1")
    app.include_router(search_router, prefix="/api/v1")
    app.include_router(health_router, prefix="/api/v1")

    return app


app = create_application()
