import os
from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

import models  # noqa: F401  registers every table on Base.metadata
from core.config import settings
from core.db import Base, engine
from core.celery import celery_app
from core.log import configure_logging
from routes import assistant, auth, notifications, orders, products, riders, tracking

configure_logging()

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Cash-on-delivery orders, rider dispatch, SMS notifications and live tracking",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


def custom_openapi():
    """Advertise JWT bearer auth so /docs can send the Authorization header."""
    if app.openapi_schema:
        return app.openapi_schema
    schema = get_openapi(title=app.title, version=app.version, description=app.description, routes=app.routes)
    schema.setdefault("components", {})["securitySchemes"] = {
        "BearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}
    }
    schema["security"] = [{"BearerAuth": []}]
    app.openapi_schema = schema
    return app.openapi_schema


app.openapi = custom_openapi

# Ensure tables exist (for dev/test; in prod use Alembic)
Base.metadata.create_all(bind=engine)

for module in (auth, products, orders, tracking, riders, notifications, assistant):
    app.include_router(module.router)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": settings.APP_NAME, "version": settings.APP_VERSION}


@app.get("/celery-health")
async def celery_health_check():
    """Report how many Celery workers answer a ping for SMS delivery."""
    try:
        stats = celery_app.control.inspect(timeout=1.0).stats()
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}
    if not stats:
        return {"status": "no_workers", "message": "No Celery workers running"}
    return {"status": "healthy", "workers": len(stats)}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", 8000)), reload=settings.DEBUG)
