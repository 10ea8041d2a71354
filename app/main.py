from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger
from tortoise.contrib.fastapi import RegisterTortoise

from app import credentials, settings
from app.crud import user_crud
from app.errors import register_exception_handlers
from app.middleware import configure_logging, log_requests
from app.routers import auth, bookings, experiences, health, tasks, users

API_PREFIX = "/api/v1"


async def bootstrap_admin() -> None:
    """Seed the configured admin account, since admins cannot self-register."""
    if not (settings.ADMIN_EMAIL and settings.ADMIN_PASSWORD):
        return
    email = settings.ADMIN_EMAIL.strip().lower()
    password_hash = await credentials.hash_password_async(settings.ADMIN_PASSWORD)
    if await user_crud.ensure_admin(email, password_hash):
        logger.info("Bootstrap admin {} created", email)
    else:
        logger.debug("Bootstrap admin {} already present", email)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    async with RegisterTortoise(
        app,
        config=settings.TORTOISE_ORM,
        generate_schemas=settings.GENERATE_SCHEMAS,
    ):
        await bootstrap_admin()
        logger.info("Experiences API ready")
        yield


def create_app() -> FastAPI:
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(title="Experiences API", lifespan=lifespan)
    register_exception_handlers(app)
    app.middleware("http")(log_requests)

    app.include_router(health.router)
    for module in (auth, users, experiences, bookings, tasks):
        app.include_router(module.router, prefix=API_PREFIX)
    return app


app = create_app()
