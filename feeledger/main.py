from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from feeledger.api.v1.payments.router import router as payments_router
from feeledger.api.v1.statistics.router import router as statistics_router
from feeledger.api.v1.students.router import router as students_router
from feeledger.core.clock import utc_now
from feeledger.core.config import configure_logging, settings
from feeledger.core.locks import KeyedLocks
from feeledger.core.notifier import ChangeNotifier
from feeledger.db.session import create_tables


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    if settings.create_tables_on_startup:
        await create_tables()
    yield


def create_app() -> FastAPI:
    app = FastAPI(title="Fee Ledger", lifespan=lifespan)

    # CORS: allow frontend to call this API
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Shared by every request: student locks must be process-wide to serialize writes.
    app.state.notifier = ChangeNotifier()
    app.state.locks = KeyedLocks()
    app.state.clock = utc_now

    # Routers
    app.include_router(students_router)
    app.include_router(payments_router)
    app.include_router(statistics_router)

    return app


app = create_app()
