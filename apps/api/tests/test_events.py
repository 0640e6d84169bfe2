import logging

from helpdesk.core.cancellation import CancelToken
from helpdesk.core.settings import Settings
from helpdesk.services.events import (
    Actor,
    Event,
    EventType,
    InMemoryEventBus,
    TicketStatusChangedPayload,
    body_preview,
    publish_event,
)
from helpdesk.services.notification_service import NotificationService
from helpdesk.services.ticket_service import TicketLifecycleEngine
from helpdesk.models.ticket import TicketStatus


def _event(event_type=EventType.TICKET_STATUS_CHANGED):
    return Event(
        type=event_type,
        ticket_id="t-1",
        actor=Actor.staff("s-1"),
        payload=TicketStatusChangedPayload(old_status="OPEN", new_status="IN_PROGRESS"),
    )


class TestInMemoryEventBus:
    def test_delivers_to_subscribers_of_type(self):
        bus = InMemoryEventBus()
        seen = []
        bus.subscribe(EventType.TICKET_STATUS_CHANGED, seen.append)
        bus.subscribe(EventType.TICKET_CREATED, lambda e: seen.append("wrong"))

        event = _event()
        bus.publish(event)

        assert seen == [event]

    def test_failing_handler_does_not_stop_others(self, caplog):
        bus = InMemoryEventBus()
        seen = []

        def boom(event):
            raise RuntimeError("smtp down")

        bus.subscribe(EventType.TICKET_STATUS_CHANGED, boom)
        bus.subscribe(EventType.TICKET_STATUS_CHANGED, seen.append)

        with caplog.at_level(logging.ERROR):
            bus.publish(_event())

        assert len(seen) == 1
        assert "event handler failed" in caplog.text

    def test_same_handler_subscribed_once(self):
        bus = InMemoryEventBus()
        seen = []
        bus.subscribe(EventType.TICKET_STATUS_CHANGED, seen.append)
        bus.subscribe(EventType.TICKET_STATUS_CHANGED, seen.append)

        bus.publish(_event())

        assert len(seen) == 1


class TestPublishEvent:
    def test_no_bus_is_a_noop(self):
        publish_event(None, _event())

    def test_bus_error_swallowed(self, caplog):
        class BrokenBus:
            def publish(self, event):
                raise ConnectionError("broker gone")

            def subscribe(self, event_type, handler):
                pass

        with caplog.at_level(logging.ERROR):
            publish_event(BrokenBus(), _event())
        assert "event publish failed" in caplog.text

    def test_cancelled_token_skips_publication(self, caplog):
        bus = InMemoryEventBus()
        seen = []
        bus.subscribe(EventType.TICKET_STATUS_CHANGED, seen.append)
        token = CancelToken()
        token.cancel()

        with caplog.at_level(logging.WARNING):
            publish_event(bus, _event(), token)

        assert seen == []
        assert "event dropped after cancellation" in caplog.text


def test_body_preview():
    assert body_preview("  short  ") == "short"
    assert body_preview("a" * 120) == "a" * 120
    assert body_preview("a" * 121) == "a" * 117 + "..."
    assert body_preview("abcdef", 3) == "abc"


def test_failing_handler_does_not_fail_operation(uow, make_ticket, org):
    bus = InMemoryEventBus()

    def boom(event):
        raise RuntimeError("webhook down")

    bus.subscribe(EventType.TICKET_STATUS_CHANGED, boom)
    engine = TicketLifecycleEngine(uow, bus)
    ticket = make_ticket()

    updated = engine.update_status(org.agent, ticket.id, TicketStatus.IN_PROGRESS)

    assert updated.status == "IN_PROGRESS"
    assert uow.tickets.get_by_id(ticket.id).status == "IN_PROGRESS"


class TestNotificationService:
    def test_registers_and_logs(self, caplog):
        bus = InMemoryEventBus()
        service = NotificationService(
            bus, Settings(NOTIFY_EMAIL_FROM="desk@example.com", NOTIFY_WEBHOOK_URL="https://hooks.example.com/x")
        )
        service.register_handlers()

        with caplog.at_level(logging.DEBUG, logger="helpdesk.services.notification_service"):
            bus.publish(_event(EventType.TICKET_STATUS_CHANGED))

        assert "TicketStatusChanged ticket_id=t-1" in caplog.text
        assert "webhook notification" in caplog.text

    def test_register_twice_delivers_once(self, caplog):
        bus = InMemoryEventBus()
        service = NotificationService(bus, Settings(NOTIFY_EMAIL_FROM="", NOTIFY_WEBHOOK_URL=""))
        service.register_handlers()
        service.register_handlers()

        with caplog.at_level(logging.INFO, logger="helpdesk.services.notification_service"):
            bus.publish(_event(EventType.TICKET_CREATED))

        assert caplog.text.count("TicketCreated ticket_id=t-1") == 1

    def test_channels_skipped_when_unconfigured(self):
        service = NotificationService(InMemoryEventBus(), Settings(NOTIFY_EMAIL_FROM="", NOTIFY_WEBHOOK_URL=""))
        assert service._email(_event()) is False
        assert service._webhook(_event()) is False
