from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.attendance.router import router as attendance_router
from app.api.v1.fees.router import router as fees_router
from app.api.v1.reports.router import router as reports_router
from app.core.config import settings
from app.core.logging import setup_logging
from app.db.session import create_tables


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.create_tables_on_startup:
        await create_tables()
    yield


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title="College Ledger", lifespan=lifespan)

    # CORS: the mobile app and admin web client call this API directly
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(fees_router)
    app.include_router(attendance_router)
    app.include_router(reports_router)

    return app


app = create_app()
