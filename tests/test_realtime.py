import asyncio
from datetime import date, datetime, time

from threadfolio.models.appointment import AppointmentPublic, AppointmentStatus, AppointmentType
from threadfolio.services.realtime import EVENT_CREATED, EVENT_UPDATED, AppointmentBroadcaster


def _appointment(shop_id="shop-1"):
    return AppointmentPublic(
        id="apt-1",
        shop_id=shop_id,
        title="Fitting",
        date=date(2025, 3, 3),
        start_time=time(10),
        end_time=time(11),
        type=AppointmentType.fitting,
        status=AppointmentStatus.scheduled,
        created_at=datetime(2025, 3, 1),
        updated_at=datetime(2025, 3, 1),
    )


def test_publish_reaches_only_shop_subscribers():
    broadcaster = AppointmentBroadcaster(queue_size=10)

    async def scenario():
        async with broadcaster.subscribe("shop-1") as mine, broadcaster.subscribe("shop-2") as theirs:
            delivered = await broadcaster.publish("shop-1", EVENT_CREATED, _appointment())
            return delivered, mine.get_nowait(), theirs.empty()

    delivered, message, other_empty = asyncio.run(scenario())
    assert delivered == 1
    assert message["event"] == "created"
    assert message["appointment"]["start_time"] == "10:00:00"
    assert other_empty
    assert broadcaster.subscriber_count("shop-1") == 0


def test_full_subscriber_drops_messages():
    broadcaster = AppointmentBroadcaster(queue_size=1)

    async def scenario():
        async with broadcaster.subscribe("shop-1") as queue:
            first = await broadcaster.publish("shop-1", EVENT_CREATED, _appointment())
            second = await broadcaster.publish("shop-1", EVENT_UPDATED, _appointment())
            return first, second, queue.qsize()

    assert asyncio.run(scenario()) == (1, 0, 1)
