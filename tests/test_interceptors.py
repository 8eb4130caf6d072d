"""Tests for reqflow.interceptors -- registry and chain execution."""

from __future__ import annotations

import pytest

from reqflow.exceptions import ApiError, NetworkError, UnknownError, classify_error
from reqflow.interceptors import InterceptorManager, Interceptors, run_chain


# ------------------------------------------------------------------ #
# Registry
# ------------------------------------------------------------------ #


class TestInterceptorManager:
    def test_use_returns_increasing_ids(self) -> None:
        manager = InterceptorManager()
        first = manager.use(lambda v: v)
        second = manager.use(lambda v: v)
        assert second > first
        assert len(manager) == 2

    def test_eject_removes_only_that_entry(self) -> None:
        manager = InterceptorManager()
        a = manager.use(lambda v: v)
        b = manager.use(lambda v: v)
        c = manager.use(lambda v: v)
        manager.eject(b)
        assert [e.id for e in manager] == [a, c]

    def test_eject_unknown_id_is_noop(self) -> None:
        manager = InterceptorManager()
        manager.use(lambda v: v)
        manager.eject(999)
        assert len(manager) == 1

    def test_ids_not_reused_after_eject(self) -> None:
        manager = InterceptorManager()
        a = manager.use(lambda v: v)
        manager.eject(a)
        b = manager.use(lambda v: v)
        assert b != a

    def test_snapshot_is_isolated_from_later_changes(self) -> None:
        manager = InterceptorManager()
        a = manager.use(lambda v: v)
        snapshot = manager.snapshot()
        manager.eject(a)
        manager.use(lambda v: v)
        assert [e.id for e in snapshot] == [a]

    def test_clear(self) -> None:
        manager = InterceptorManager()
        manager.use(lambda v: v)
        manager.clear()
        assert len(manager) == 0

    def test_interceptors_pair(self) -> None:
        interceptors = Interceptors()
        interceptors.request.use(lambda v: v)
        assert len(interceptors.request) == 1
        assert len(interceptors.response) == 0


# ------------------------------------------------------------------ #
# Chain execution
# ------------------------------------------------------------------ #


class TestRunChain:
    @pytest.mark.asyncio
    async def test_runs_in_registration_order(self) -> None:
        manager = InterceptorManager()
        manager.use(lambda v: v + ["a"])
        manager.use(lambda v: v + ["b"])
        result = await run_chain(manager.snapshot(), [], classify_error)
        assert result == ["a", "b"]

    @pytest.mark.asyncio
    async def test_none_keeps_current_value(self) -> None:
        manager = InterceptorManager()
        manager.use(lambda v: v.append("mutated"))
        value: list = []
        result = await run_chain(manager.snapshot(), value, classify_error)
        assert result is value
        assert value == ["mutated"]

    @pytest.mark.asyncio
    async def test_async_handlers_awaited(self) -> None:
        async def add(value):
            return value + 1

        manager = InterceptorManager()
        manager.use(add)
        manager.use(add)
        assert await run_chain(manager.snapshot(), 0, classify_error) == 2

    @pytest.mark.asyncio
    async def test_error_skips_to_next_rejected_handler(self) -> None:
        calls: list[str] = []

        def boom(value):
            raise ValueError("boom")

        def skipped(value):
            calls.append("skipped")
            return value

        def recover(error):
            calls.append(f"recover:{error.message}")
            return "recovered"

        manager = InterceptorManager()
        manager.use(boom)
        manager.use(skipped)
        manager.use(None, recover)
        manager.use(lambda v: v + "!")

        result = await run_chain(manager.snapshot(), "start", classify_error)
        assert result == "recovered!"
        assert calls == ["recover:boom"]

    @pytest.mark.asyncio
    async def test_own_rejected_handler_not_called_for_own_error(self) -> None:
        seen: list = []

        def boom(value):
            raise ValueError("boom")

        manager = InterceptorManager()
        manager.use(boom, seen.append)
        with pytest.raises(UnknownError) as exc_info:
            await run_chain(manager.snapshot(), 1, classify_error)
        assert seen == []
        assert isinstance(exc_info.value.cause, ValueError)

    @pytest.mark.asyncio
    async def test_rejected_handler_returning_none_stays_rejected(self) -> None:
        manager = InterceptorManager()
        manager.use(None, lambda error: None)
        initial = NetworkError("down")
        with pytest.raises(NetworkError) as exc_info:
            await run_chain(manager.snapshot(), None, classify_error, error=initial)
        assert exc_info.value is initial

    @pytest.mark.asyncio
    async def test_rejected_handler_can_replace_error(self) -> None:
        def rethrow(error):
            raise UnknownError(f"wrapped {error.kind.value}")

        manager = InterceptorManager()
        manager.use(None, rethrow)
        with pytest.raises(UnknownError, match="wrapped network"):
            await run_chain(manager.snapshot(), None, classify_error, error=NetworkError("down"))

    @pytest.mark.asyncio
    async def test_starting_rejected_skips_fulfilled(self) -> None:
        called: list = []
        manager = InterceptorManager()
        manager.use(called.append)
        with pytest.raises(ApiError):
            await run_chain(manager.snapshot(), None, classify_error, error=NetworkError("down"))
        assert called == []

    @pytest.mark.asyncio
    async def test_empty_chain_passes_value_through(self) -> None:
        assert await run_chain((), "value", classify_error) == "value"
