"""Unit tests for packsync.core.latch."""

import asyncio

import pytest

from packsync.core.latch import InitOnce


class TestInitOnce:
    """Tests for the one-shot initialization latch."""

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_run(self) -> None:
        latch = InitOnce()
        calls = 0

        async def initializer() -> None:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0)

        await asyncio.gather(*(latch.run(initializer) for _ in range(5)))

        assert calls == 1
        assert latch.done

    @pytest.mark.asyncio
    async def test_completed_latch_never_reruns(self) -> None:
        latch = InitOnce()
        calls = 0

        async def initializer() -> None:
            nonlocal calls
            calls += 1

        await latch.run(initializer)
        await latch.run(initializer)

        assert calls == 1

    @pytest.mark.asyncio
    async def test_failure_releases_latch(self) -> None:
        latch = InitOnce()
        attempts = 0

        async def initializer() -> None:
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise OSError("cache dir unavailable")

        with pytest.raises(OSError):
            await latch.run(initializer)
        assert not latch.done

        await latch.run(initializer)

        assert attempts == 2
        assert latch.done

    @pytest.mark.asyncio
    async def test_concurrent_callers_all_see_failure(self) -> None:
        latch = InitOnce()

        async def initializer() -> None:
            await asyncio.sleep(0)
            raise OSError("boom")

        results = await asyncio.gather(
            latch.run(initializer), latch.run(initializer), return_exceptions=True
        )

        assert all(isinstance(result, OSError) for result in results)

    @pytest.mark.asyncio
    async def test_reset_allows_rerun(self) -> None:
        latch = InitOnce()
        calls = 0

        async def initializer() -> None:
            nonlocal calls
            calls += 1

        await latch.run(initializer)
        latch.reset()
        await latch.run(initializer)

        assert calls == 2
