from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from courtside import config
from courtside.database import init_db
from courtside.logging_config import configure_logging, get_logger
from courtside.routes import groups, knockout, matches, schedule, teams

logger = get_logger(__name__)

app = FastAPI(title="Courtside Tournament Scheduling API")

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_cors_origins.extend(config.CORS_ORIGINS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(groups.router, prefix="/api", tags=["groups"])
app.include_router(teams.router, prefix="/api", tags=["teams"])
app.include_router(schedule.router, prefix="/api", tags=["schedule"])
app.include_router(knockout.router, prefix="/api", tags=["knockout"])
app.include_router(matches.router, prefix="/api", tags=["matches"])


@app.on_event("startup")
def on_startup():
    configure_logging()
    init_db()  # Use centralized init_db() which imports models and creates tables
    logger.info("startup complete", courts=config.COURT_IDS, scoring_mode=config.SCORING_MODE)


@app.get("/api/health")
def health_check():
    return {"app_name": "Courtside Tournament Scheduling API", "status": "healthy"}
