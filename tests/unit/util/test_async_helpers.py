# pylint: disable=missing-docstring
import asyncio

import pytest

from taskgate.util.async_helpers import cancel_tasks_and_wait, create_task


class Owner:
    name = "owner"


async def sleeper(seconds):
    await asyncio.sleep(seconds)


class TestCreateTask:
    @pytest.mark.asyncio
    async def test_task_is_named_after_coroutine(self):
        task = create_task(asyncio.get_running_loop(), sleeper(0))
        assert task.get_name() == "sleeper"
        await task

    @pytest.mark.asyncio
    async def test_task_name_is_prefixed_with_owner_name(self):
        task = create_task(asyncio.get_running_loop(), sleeper(0), owner=Owner())
        assert task.get_name() == "owner.sleeper"
        await task

    @pytest.mark.asyncio
    async def test_task_name_falls_back_to_owner_class(self):
        task = create_task(asyncio.get_running_loop(), sleeper(0), owner=object())
        assert task.get_name() == "object.sleeper"
        await task


class TestCancelTasksAndWait:
    @pytest.mark.asyncio
    async def test_cancels_running_tasks(self):
        tasks = [asyncio.create_task(sleeper(10)) for _ in range(3)]
        await cancel_tasks_and_wait(tasks, timeout_s=1)
        assert all(task.cancelled() for task in tasks)

    @pytest.mark.asyncio
    async def test_empty_task_list_returns(self):
        await cancel_tasks_and_wait([], timeout_s=0)

    @pytest.mark.asyncio
    async def test_raises_if_task_ignores_cancellation(self):
        release = asyncio.Event()

        async def stubborn():
            while not release.is_set():
                try:
                    await asyncio.sleep(10)
                except asyncio.CancelledError:
                    continue

        task = asyncio.create_task(stubborn(), name="stubborn")
        await asyncio.sleep(0)
        with pytest.raises(TimeoutError, match="stubborn"):
            await cancel_tasks_and_wait([task], timeout_s=0.01)
        release.set()
        task.cancel()
        await asyncio.wait([task], timeout=1)
