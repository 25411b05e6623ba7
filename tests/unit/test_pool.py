import asyncio
import logging

import pytest

from noteweave.errors import IndexIntegrityError
from noteweave.pool import BoundedBatch


def test_submit_joins_when_limit_reached():
    started: list[int] = []

    async def work(value: int) -> int:
        started.append(value)
        return value * 2

    async def scenario():
        batch = BoundedBatch(limit=2)
        first = await batch.submit(work(1))
        assert first == []
        assert started == []
        second = await batch.submit(work(2))
        assert len(batch) == 0
        third = await batch.submit(work(3))
        rest = await batch.join()
        return second, third, rest

    second, third, rest = asyncio.run(scenario())

    assert second == [2, 4]
    assert third == []
    assert rest == [6]


def test_failures_are_logged_and_group_completes(caplog):
    finished: list[str] = []

    async def ok():
        finished.append("ok")

    async def boom():
        raise ValueError("broken note")

    async def scenario():
        batch = BoundedBatch(limit=4)
        await batch.submit(boom())
        await batch.submit(ok())
        return await batch.join()

    with caplog.at_level(logging.WARNING, logger="noteweave.pool"):
        results = asyncio.run(scenario())

    assert finished == ["ok"]
    assert isinstance(results[0], ValueError)
    assert "broken note" in caplog.text


def test_integrity_error_is_raised_after_group_settles():
    finished: list[str] = []

    async def ok():
        finished.append("ok")

    async def shrink():
        raise IndexIntegrityError("refused", new_size=1, existing_size=10)

    async def scenario():
        batch = BoundedBatch(limit=2)
        await batch.submit(shrink())
        await batch.submit(ok())

    with pytest.raises(IndexIntegrityError):
        asyncio.run(scenario())

    assert finished == ["ok"]


def test_limit_must_be_positive():
    with pytest.raises(ValueError):
        BoundedBatch(limit=0)
