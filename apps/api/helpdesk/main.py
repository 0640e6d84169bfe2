import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .routers import admin, health, staff_tickets, tickets
from .models.user import Base
from .db import engine
from .deps import event_bus
from .core.errors import HelpdeskError
from .core.logging import configure_logging
from .core.settings import settings
from .services.notification_service import NotificationService

import helpdesk.models.department  # noqa: F401
import helpdesk.models.team  # noqa: F401
import helpdesk.models.staff  # noqa: F401
import helpdesk.models.ticket  # noqa: F401
import helpdesk.models.message  # noqa: F401
import helpdesk.models.attachment  # noqa: F401
import helpdesk.models.history  # noqa: F401

logger = logging.getLogger(__name__)

app = FastAPI(title="Helpdesk Ticket API")
notifications = NotificationService(event_bus)


@app.exception_handler(HelpdeskError)
async def handle_helpdesk_error(request: Request, exc: HelpdeskError):
    if exc.status_code >= 500:
        logger.error("request failed (%s %s): %s", request.method, request.url.path, exc.message, exc_info=exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.on_event("startup")
def on_startup():
    configure_logging()
    if settings.AUTO_DB_BOOTSTRAP:
        # Create tables in dev if missing.
        Base.metadata.create_all(bind=engine)

    # startup can run more than once per process; subscribe() ignores repeats
    notifications.register_handlers()


app.include_router(health.router)
app.include_router(tickets.router)
app.include_router(staff_tickets.router)
app.include_router(admin.router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
