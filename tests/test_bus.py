"""Outcome bus tests."""

import pytest

from s3local.events.bus import OutcomeBus
from s3local.events.types import DispatchOutcome, OutcomeStatus


def outcome(status: OutcomeStatus, name: str = "fn") -> DispatchOutcome:
    return DispatchOutcome(status=status, function_name=name)


@pytest.mark.asyncio
async def test_publish_reaches_topic_and_wildcard() -> None:
    bus = OutcomeBus()
    _, failures = await bus.subscribe("failed")
    _, everything = await bus.subscribe("*")

    assert await bus.publish(outcome(OutcomeStatus.FAILED)) == 2
    assert await bus.publish(outcome(OutcomeStatus.COMPLETED)) == 1

    assert (await anext(failures)).status is OutcomeStatus.FAILED
    assert (await anext(everything)).status is OutcomeStatus.FAILED
    assert (await anext(everything)).status is OutcomeStatus.COMPLETED


@pytest.mark.asyncio
async def test_full_queue_drops_oldest() -> None:
    bus = OutcomeBus(queue_size=1)
    _, outcomes = await bus.subscribe()

    await bus.publish(outcome(OutcomeStatus.COMPLETED, "old"))
    await bus.publish(outcome(OutcomeStatus.COMPLETED, "new"))

    assert (await anext(outcomes)).function_name == "new"
    assert bus.dropped_outcomes == 1


@pytest.mark.asyncio
async def test_subscribe_limits() -> None:
    bus = OutcomeBus(max_subscribers=1)
    await bus.subscribe()

    with pytest.raises(ValueError, match="Maximum subscribers"):
        await bus.subscribe()
    with pytest.raises(ValueError, match="Unknown outcome topic"):
        await OutcomeBus().subscribe("exploded")
