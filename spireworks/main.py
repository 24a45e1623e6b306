from contextlib import asynccontextmanager

import redis.asyncio as redis
import sentry_sdk
from fastapi import FastAPI
from sqlalchemy import text

from spireworks.config import settings
from spireworks.database import async_session_factory, engine
from spireworks.services.recommendation_service import create_provider
from spireworks.services.registry import QuizRegistry, TimerRegistry
from spireworks.services.scheduler import AsyncioScheduler
from spireworks.services.study_timer import TimerConfig

# Initialize Sentry
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        traces_sample_rate=0.2 if settings.ENVIRONMENT == "production" else 1.0,
        profiles_sample_rate=0.1,
        send_default_pii=False,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: verify DB connection and connect Redis
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))

    app.state.redis = redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
    )
    await app.state.redis.ping()

    scheduler = AsyncioScheduler()
    app.state.timers = TimerRegistry(
        scheduler,
        async_session_factory,
        provider=create_provider(settings),
        redis_client=app.state.redis,
        config=TimerConfig.from_settings(settings),
    )
    app.state.quizzes = QuizRegistry(
        scheduler,
        async_session_factory,
        question_seconds=settings.QUIZ_QUESTION_SECONDS,
        advance_delay=settings.QUIZ_ADVANCE_DELAY_SECONDS,
        results_ttl_seconds=settings.PRACTICE_RESULTS_TTL_SECONDS,
    )

    yield

    # Shutdown
    app.state.timers.close()
    app.state.quizzes.close()
    await scheduler.close()
    await app.state.redis.close()
    await engine.dispose()


app = FastAPI(
    title="SpireWorks API",
    version="0.1.0",
    lifespan=lifespan,
)

# Middleware
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402

_cors_origins = [
    "http://localhost:3000",
    "http://localhost:5173",
    "https://spireworks.app",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

from spireworks.middleware.error_handler import register_error_handlers  # noqa: E402

register_error_handlers(app)

# Routers
from spireworks.routers.achievements import router as achievements_router  # noqa: E402
from spireworks.routers.ai import router as ai_router  # noqa: E402
from spireworks.routers.practice import router as practice_router  # noqa: E402
from spireworks.routers.preferences import router as preferences_router  # noqa: E402
from spireworks.routers.sessions import router as sessions_router  # noqa: E402
from spireworks.routers.timer import router as timer_router  # noqa: E402

app.include_router(sessions_router)
app.include_router(ai_router)
app.include_router(preferences_router)
app.include_router(timer_router)
app.include_router(practice_router)
app.include_router(achievements_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
