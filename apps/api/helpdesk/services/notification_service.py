import logging

from ..core.settings import Settings, settings as default_settings
from .events import Event, EventBus, EventType

logger = logging.getLogger(__name__)


class NotificationService:
    """Logs the email/webhook notification each ticket event would trigger.

    Delivery itself is not implemented; a handler error is swallowed by the bus.
    """

    def __init__(self, bus: EventBus, settings: Settings | None = None):
        self.bus = bus
        self.settings = settings or default_settings

    def register_handlers(self) -> None:
        self.bus.subscribe(EventType.TICKET_CREATED, self.handle_ticket_created)
        self.bus.subscribe(EventType.TICKET_STATUS_CHANGED, self.handle_status_changed)
        self.bus.subscribe(EventType.TICKET_ASSIGNED, self.handle_assigned)
        self.bus.subscribe(EventType.TICKET_MESSAGE_ADDED, self.handle_message_added)

    def handle_ticket_created(self, event: Event) -> None:
        logger.info("TicketCreated ticket_id=%s payload=%s", event.ticket_id, event.payload)
        self._email(event)
        self._webhook(event)

    def handle_status_changed(self, event: Event) -> None:
        logger.info("TicketStatusChanged ticket_id=%s payload=%s", event.ticket_id, event.payload)
        self._webhook(event)

    def handle_assigned(self, event: Event) -> None:
        logger.info("TicketAssigned ticket_id=%s payload=%s", event.ticket_id, event.payload)
        self._webhook(event)

    def handle_message_added(self, event: Event) -> None:
        logger.info("TicketMessageAdded ticket_id=%s payload=%s", event.ticket_id, event.payload)
        self._email(event)

    def _email(self, event: Event) -> bool:
        sender = self.settings.NOTIFY_EMAIL_FROM.strip()
        if not sender:
            return False
        logger.debug("email notification from=%s ticket_id=%s event=%s", sender, event.ticket_id, event.type.value)
        return True

    def _webhook(self, event: Event) -> bool:
        url = self.settings.NOTIFY_WEBHOOK_URL.strip()
        if not url:
            return False
        logger.debug("webhook notification url=%s ticket_id=%s event=%s", url, event.ticket_id, event.type.value)
        return True
