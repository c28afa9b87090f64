import asyncio
import logging

import pytest

from devfusion.services.task_service import TaskService


async def fail():
    raise RuntimeError("worker crashed")


@pytest.mark.asyncio
async def test_failed_task_is_logged_and_forgotten(caplog):
    service = TaskService()

    with caplog.at_level(logging.ERROR, logger="devfusion.services.task_service"):
        await service.spawn(fail(), name="ai-reply:p1")
        await service.wait_idle()

    assert service.pending == 0
    assert "ai-reply:p1" in caplog.text


@pytest.mark.asyncio
async def test_shutdown_cancels_pending_tasks():
    service = TaskService()
    task = await service.spawn(asyncio.sleep(60), name="slow")

    await service.shutdown()

    assert task.cancelled()
    assert service.pending == 0
