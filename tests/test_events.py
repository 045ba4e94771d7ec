"""
Event sink and order status projector tests.
"""
import asyncio

import pytest

from order_api import tasks
from order_api.core.locks import KeyedLock
from order_api.events import PAYMENT_PAID, CeleryEventSink, InProcessEventBus, PaymentPaidEvent
from order_api.models import OrderStatus
from order_api.services.order_status import OrderStatusProjector

from tests.conftest import load_order


class FakeAsyncResult:
    id = "task-123"


class FakeTask:
    def __init__(self):
        self.calls = []

    def delay(self, *args):
        self.calls.append(args)
        return FakeAsyncResult()


class TestPaymentPaidEvent:

    def test_dict_round_trip(self) -> None:
        event = PaymentPaidEvent(order_id=7, payment_slug="abc123", status_code="completed")

        assert event.name == PAYMENT_PAID
        assert event.to_dict() == {"order_id": 7, "payment_slug": "abc123", "status_code": "completed"}
        assert PaymentPaidEvent.from_dict({"order_id": "7", "payment_slug": "abc123", "status_code": "completed"}) == event


class TestInProcessEventBus:

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self) -> None:
        bus = InProcessEventBus()
        received = []

        async def broken(event):
            raise RuntimeError("projector down")

        async def recorder(event):
            received.append(event)

        bus.subscribe(PAYMENT_PAID, broken)
        bus.subscribe(PAYMENT_PAID, recorder)

        event = PaymentPaidEvent(order_id=1, payment_slug="p1", status_code="completed")
        await bus.publish(event)

        assert received == [event]
        assert bus.published == [event]


class TestCeleryEventSink:

    @pytest.mark.asyncio
    async def test_publish_queues_projection_task(self, monkeypatch) -> None:
        fake = FakeTask()
        monkeypatch.setattr(tasks, "project_payment_event", fake)

        await CeleryEventSink().publish(PaymentPaidEvent(order_id=3, payment_slug="p3", status_code="failed"))

        assert fake.calls == [({"order_id": 3, "payment_slug": "p3", "status_code": "failed"},)]

    def test_worker_schedules_reconciliation(self) -> None:
        from order_api.celery_worker import celery_app

        schedule = celery_app.conf.beat_schedule["reconcile-pending-payments"]

        assert schedule["task"] == tasks.reconcile_pending_payments.name
        assert schedule["task"] in celery_app.tasks
        assert celery_app.conf.task_acks_late is True
        assert celery_app.conf.broker_connection_retry_on_startup is True


class TestOrderStatusProjector:

    @pytest.mark.asyncio
    async def test_completed_payment_marks_order_paid_once(self, db, session_maker, orders) -> None:
        from order_api.events import BaseEventSink
        from order_api.services.payment import build_payment_service
        from order_api.services.gateway import MockGatewayClient

        class Silent(BaseEventSink):
            async def publish(self, event):
                pass

        quiet = build_payment_service(MockGatewayClient(), events=Silent())
        payment = await quiet.initiate(db, "ORD1", "cash")
        assert (await load_order(session_maker, "ORD1")).status == OrderStatus.PENDING

        projector = OrderStatusProjector(session_maker)
        event = PaymentPaidEvent(order_id=payment.order_id, payment_slug=payment.slug, status_code="completed")

        assert await projector.handle(event) is True
        assert await projector.handle(event) is False
        assert (await load_order(session_maker, "ORD1")).status == OrderStatus.PAID

    @pytest.mark.asyncio
    async def test_failed_payment_leaves_order_pending(self, session_maker, orders) -> None:
        event = PaymentPaidEvent(order_id=orders["ORD2"].id, payment_slug="whatever", status_code="failed")

        assert await OrderStatusProjector(session_maker).handle(event) is False
        assert (await load_order(session_maker, "ORD2")).status == OrderStatus.PENDING

    @pytest.mark.asyncio
    async def test_payment_of_another_order_is_ignored(self, service, db, session_maker, orders) -> None:
        payment = await service.initiate(db, "ORD2", "bank-transfer")
        event = PaymentPaidEvent(order_id=orders["ORD1"].id, payment_slug=payment.slug, status_code="completed")

        assert await OrderStatusProjector(session_maker).handle(event) is False
        assert (await load_order(session_maker, "ORD1")).status == OrderStatus.PENDING

    @pytest.mark.asyncio
    async def test_event_for_unsettled_payment_is_ignored(self, service, db, session_maker, orders) -> None:
        payment = await service.initiate(db, "ORD2", "bank-transfer")
        event = PaymentPaidEvent(order_id=payment.order_id, payment_slug=payment.slug, status_code="completed")

        assert await OrderStatusProjector(session_maker).handle(event) is False
        assert (await load_order(session_maker, "ORD2")).status == OrderStatus.PENDING


class TestKeyedLock:

    @pytest.mark.asyncio
    async def test_same_key_is_serialized(self) -> None:
        locks = KeyedLock("test")
        active = 0
        peak = 0

        async def work():
            nonlocal active, peak
            async with locks.hold("ORD1"):
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1

        await asyncio.gather(*[work() for _ in range(5)])

        assert peak == 1
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_different_keys_run_concurrently(self) -> None:
        locks = KeyedLock("test")
        both_held = asyncio.Event()
        entered = []

        async def work(key):
            async with locks.hold(key):
                entered.append(key)
                if len(entered) == 2:
                    both_held.set()
                await asyncio.wait_for(both_held.wait(), timeout=1)

        await asyncio.gather(work("A"), work("B"))
        assert sorted(entered) == ["A", "B"]

    @pytest.mark.asyncio
    async def test_entry_released_after_error(self) -> None:
        locks = KeyedLock("test")

        with pytest.raises(ValueError):
            async with locks.hold("T1"):
                raise ValueError("boom")

        assert len(locks) == 0
