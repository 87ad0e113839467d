from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from aihub.core.config import settings
from aihub.routers import statistics

OPENAPI_TAGS = [
    {
        "name": "Statistics",
        "description": "Usage, expense and revenue analytics for the admin console.",
    },
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Admin console API for the AI Backend Hub. "
        "Serves platform usage, provider expense and RevenueCat revenue statistics."
    ),
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

app.include_router(statistics.router, prefix="/admin", tags=["Statistics"])


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "status": "running",
    }
