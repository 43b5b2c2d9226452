from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pacemates.api.tracking import router as tracking_router
from pacemates.api.presence import router as presence_router
from pacemates.api.users import router as users_router
from pacemates.db import Base, engine
from pacemates.models.profile import Profile  # noqa: F401  (import ensures table is registered)
from pacemates.models.active_session import ActiveSession  # noqa: F401
from pacemates.models.completed_run import CompletedRunRow  # noqa: F401
from pacemates.models.user_statistics import UserStatisticsRow  # noqa: F401
from pacemates.core.config import settings
from pacemates.core.logging import configure_logging
from pacemates.runtime import shutdown_runtime


configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # cancel live runs and withdraw their presence records
    shutdown_runtime()


app = FastAPI(lifespan=lifespan)

# Allow CORS for local frontend
origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Create DB tables on startup
Base.metadata.create_all(bind=engine)

app.include_router(users_router)
app.include_router(tracking_router)
app.include_router(presence_router)


@app.get("/")
def root():
    return {"message": "Pacemates backend is running"}
