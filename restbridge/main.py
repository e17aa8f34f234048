import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from restbridge.config import Settings, settings as default_settings
from restbridge.controllers import gateway_controller, object_controller, user_group_controller
from restbridge.controllers.errors import install_exception_handlers
from restbridge.services.dql_service import DqlService
from restbridge.services.object_service import ObjectService
from restbridge.services.session_manager import SessionManager
from restbridge.services.type_service import TypeService
from restbridge.services.user_group_service import UserGroupService

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def create_app(
    config: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    config = config or default_settings
    logging.basicConfig(level=config.log_level.upper())

    # Core components (created once per process)
    session_manager = SessionManager(config, transport=transport)
    type_service = TypeService(session_manager, config)
    object_service = ObjectService(session_manager, type_service, config)
    dql_service = DqlService(session_manager, config)
    user_group_service = UserGroupService(session_manager, config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # --- startup ---
        session_manager.start()
        logger.info(
            "REST Bridge started (session timeout %d min, sweep every %gs)",
            config.session_timeout_minutes,
            config.session_cleanup_interval_seconds,
        )
        try:
            yield
        finally:
            # --- shutdown ---
            await session_manager.aclose()

    app = FastAPI(
        title="Documentum REST Bridge",
        description="Session-based gateway in front of Documentum REST Services.",
        version=gateway_controller.SERVICE_VERSION,
        lifespan=lifespan,
    )

    install_exception_handlers(app)

    # Routes
    app.include_router(gateway_controller.get_health_router())
    app.include_router(gateway_controller.get_router(session_manager, dql_service), prefix=API_PREFIX)
    app.include_router(object_controller.get_router(object_service, type_service), prefix=API_PREFIX)
    app.include_router(user_group_controller.get_router(user_group_service), prefix=API_PREFIX)

    return app


app = create_app()
