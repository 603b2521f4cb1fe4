import asyncio

import pytest

from cloudbot.errors import ConnectivityError, ProbeError, SessionCreationError

from fakes import DEFAULT_ID


def test_default_session_is_reused_while_healthy(registry, provisioner) -> None:
    async def scenario():
        first = await registry.get_session()
        second = await registry.get_session(DEFAULT_ID)
        return first, second

    first, second = asyncio.run(scenario())

    assert first.remote_session_id == second.remote_session_id
    assert len(provisioner.provisioned) == 1
    assert registry.active_session_id == DEFAULT_ID


def test_named_session_is_reused_and_becomes_active(registry, provisioner) -> None:
    async def scenario():
        created = await registry.create_session("work")
        await registry.get_session()
        again = await registry.get_session("work")
        return created, again

    created, again = asyncio.run(scenario())

    assert created.remote_session_id == again.remote_session_id
    assert registry.active_session_id == "work"


def test_unknown_named_session_is_not_created(registry, provisioner) -> None:
    assert asyncio.run(registry.get_session("missing")) is None
    assert provisioner.provisioned == []


def test_disconnected_default_session_is_recreated(registry, provisioner) -> None:
    async def scenario():
        first = await registry.get_session()
        first.browser.connected = False
        second = await registry.get_session()
        return first, second

    first, second = asyncio.run(scenario())

    assert first.remote_session_id != second.remote_session_id
    assert first.browser.closed
    assert registry.peek(DEFAULT_ID) is second


def test_closed_page_counts_as_stale(registry) -> None:
    async def scenario():
        first = await registry.get_session()
        first.page.closed = True
        return first, await registry.get_session()

    first, second = asyncio.run(scenario())

    assert second is not first


def test_probe_with_disconnect_signature_triggers_recreation(registry) -> None:
    async def scenario():
        first = await registry.get_session()
        first.page.title_error = RuntimeError("Target page, context or browser has been closed")
        return first, await registry.get_session()

    first, second = asyncio.run(scenario())

    assert second.remote_session_id != first.remote_session_id


def test_unrecognized_probe_error_propagates(registry) -> None:
    async def scenario():
        first = await registry.get_session()
        first.page.title_error = RuntimeError("boom")
        await registry.get_session()

    with pytest.raises(RuntimeError, match="boom"):
        asyncio.run(scenario())


def test_default_creation_is_retried_once(registry, provisioner) -> None:
    provisioner.failures = 1

    record = asyncio.run(registry.get_session())

    assert record.remote_session_id == "remote-1"


def test_default_creation_fails_after_retry(registry, provisioner) -> None:
    provisioner.failures = 2

    with pytest.raises(SessionCreationError, match="after initial error and retry"):
        asyncio.run(registry.get_session())
    assert len(registry) == 0


def test_stale_named_session_is_dropped(registry, provisioner) -> None:
    async def scenario():
        record = await registry.create_session("work")
        record.browser.connected = False
        return await registry.get_session("work")

    assert asyncio.run(scenario()) is None
    assert "work" not in registry
    assert registry.active_session_id == DEFAULT_ID
    assert len(provisioner.provisioned) == 1


def test_close_all_resets_registry(registry, provisioner) -> None:
    async def scenario():
        await registry.get_session()
        await registry.create_session("work")
        await registry.close_all()
        assert len(registry) == 0
        assert registry.active_session_id == DEFAULT_ID
        return await registry.get_session(DEFAULT_ID)

    record = asyncio.run(scenario())

    assert record.remote_session_id == "remote-3"
    assert all(p.browser.closed for p in provisioner.provisioned[:2])


def test_disconnect_of_active_named_session_resets_active_id(registry) -> None:
    async def scenario():
        await registry.get_session()
        record = await registry.create_session("work")
        assert registry.active_session_id == "work"
        record.browser.disconnect()

    asyncio.run(scenario())

    assert "work" not in registry
    assert registry.active_session_id == DEFAULT_ID


def test_late_disconnect_does_not_remove_replacement(registry) -> None:
    async def scenario():
        old = await registry.create_session("work")
        new = await registry.create_session("work")
        old.browser.disconnect()
        return new

    new = asyncio.run(scenario())

    assert registry.peek("work") is new


def test_set_active_session_id_ignores_unknown_ids(registry) -> None:
    registry.set_active_session_id("nope")
    assert registry.active_session_id == DEFAULT_ID


def test_close_session_releases_remote(registry, provisioner) -> None:
    async def scenario():
        await registry.create_session("work")
        return await registry.close_session("work"), await registry.close_session("work")

    closed, closed_again = asyncio.run(scenario())

    assert closed is True
    assert closed_again is False
    assert provisioner.released == ["remote-1"]


def test_check_live_reports_connectivity_failures(registry) -> None:
    async def scenario():
        record = await registry.create_session("work")
        record.browser.connected = False
        with pytest.raises(ConnectivityError, match="disconnected"):
            await registry.check_live(record)
        record.browser.connected = True
        record.page.closed = True
        with pytest.raises(ConnectivityError, match="closed"):
            await registry.check_live(record)

    asyncio.run(scenario())


def test_check_live_wraps_disconnect_probe_errors(registry) -> None:
    async def scenario():
        record = await registry.create_session("work")
        record.page.title_error = RuntimeError("Target closed")
        with pytest.raises(ProbeError) as info:
            await registry.check_live(record)
        return info.value

    error = asyncio.run(scenario())

    assert isinstance(error, ConnectivityError)
    assert isinstance(error.__cause__, RuntimeError)
    assert "work" in str(error)
