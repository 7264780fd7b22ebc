"""Tests for the realtime notifier."""

import asyncio
import threading
import uuid

import pytest

from app.services.credits import RealtimeNotifier
from app.services.credits.notifier import BALANCE_CHANGED, balance_changed_event


class TestBalanceChangedEvent:
    def test_payload_is_a_refetch_hint(self):
        account_id = uuid.uuid4()
        transaction_id = uuid.uuid4()

        event = balance_changed_event(account_id, transaction_id, "purchase")

        assert event == {
            "event": BALANCE_CHANGED,
            "account_id": str(account_id),
            "transaction_id": str(transaction_id),
            "transaction_type": "purchase",
        }


class TestRealtimeNotifier:
    @pytest.mark.asyncio
    async def test_subscriber_receives_event(self):
        notifier = RealtimeNotifier()
        account_id = uuid.uuid4()
        subscription = notifier.subscribe(account_id)

        delivered = notifier.publish(account_id, {"event": "balance_changed"})

        assert delivered == 1
        assert await subscription.get(timeout=1) == {"event": "balance_changed"}

    @pytest.mark.asyncio
    async def test_events_are_account_scoped(self):
        notifier = RealtimeNotifier()
        mine = notifier.subscribe(uuid.uuid4())

        delivered = notifier.publish(uuid.uuid4(), {"event": "balance_changed"})
        await asyncio.sleep(0)

        assert delivered == 0
        assert mine.queue.empty()

    @pytest.mark.asyncio
    async def test_every_subscriber_of_an_account_receives(self):
        notifier = RealtimeNotifier()
        account_id = uuid.uuid4()
        first = notifier.subscribe(account_id)
        second = notifier.subscribe(account_id)

        assert notifier.publish(account_id, {"n": 1}) == 2
        assert await first.get(timeout=1) == {"n": 1}
        assert await second.get(timeout=1) == {"n": 1}

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self):
        notifier = RealtimeNotifier()
        account_id = uuid.uuid4()
        subscription = notifier.subscribe(account_id)

        notifier.unsubscribe(subscription)

        assert notifier.subscriber_count(account_id) == 0
        assert notifier.publish(account_id, {"n": 1}) == 0

    @pytest.mark.asyncio
    async def test_unsubscribe_twice_is_harmless(self):
        notifier = RealtimeNotifier()
        subscription = notifier.subscribe(uuid.uuid4())
        notifier.unsubscribe(subscription)
        notifier.unsubscribe(subscription)

    @pytest.mark.asyncio
    async def test_full_queue_drops_events(self):
        notifier = RealtimeNotifier(max_queue_size=2)
        account_id = uuid.uuid4()
        subscription = notifier.subscribe(account_id)

        for n in range(4):
            notifier.publish(account_id, {"n": n})
        await asyncio.sleep(0)

        assert subscription.queue.qsize() == 2
        assert subscription.dropped == 2
        assert await subscription.get(timeout=1) == {"n": 0}

    @pytest.mark.asyncio
    async def test_publish_from_another_thread(self):
        notifier = RealtimeNotifier()
        account_id = uuid.uuid4()
        subscription = notifier.subscribe(account_id)

        thread = threading.Thread(target=notifier.publish, args=(account_id, {"from": "worker"}))
        thread.start()
        thread.join()

        assert await subscription.get(timeout=1) == {"from": "worker"}

    @pytest.mark.asyncio
    async def test_get_times_out_without_events(self):
        notifier = RealtimeNotifier()
        subscription = notifier.subscribe(uuid.uuid4())

        with pytest.raises(asyncio.TimeoutError):
            await subscription.get(timeout=0.01)

    def test_publish_to_closed_loop_does_not_raise(self):
        notifier = RealtimeNotifier()
        account_id = uuid.uuid4()

        async def _subscribe():
            return notifier.subscribe(account_id)

        loop = asyncio.new_event_loop()
        loop.run_until_complete(_subscribe())
        loop.close()

        assert notifier.publish(account_id, {"n": 1}) == 0
