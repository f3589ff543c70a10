"""
SearchExecutor tests — submit/poll loop, timeout and the single retry.

Sleeping is replaced by a fake that advances a fake clock, so no test
waits in real time.
"""

import pytest

from src.adapters.ports import SearchBackendError
from src.adapters.simulator_search import SimulatorSearchBackend
from src.domain.search import SearchSpecification
from src.search_executor import SearchExecutor


class FakeTime:
    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def spec():
    return SearchSpecification(
        country_id=47,
        country_name="Turkey",
        nights_min=7,
        nights_max=10,
        budget_max=250_000,
        date_from="2026-06-01",
        date_to="2026-06-20",
    )


@pytest.fixture
def backend():
    return SimulatorSearchBackend(seed="executor")


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def executor(backend, fake_time):
    return SearchExecutor(
        backend,
        poll_interval=1.5,
        timeout=20,
        retry_delay=0.6,
        sleep=fake_time.sleep,
        clock=fake_time.clock,
    )


@pytest.mark.asyncio
async def test_results_sorted_and_paged(executor, spec):
    outcome = await executor.execute(spec)
    prices = [t.price for t in outcome.results]
    assert outcome.request_id.startswith("mock-")
    assert 0 < len(outcome.results) <= spec.limit
    assert prices == sorted(prices)
    assert all(t.price <= 250_000 for t in outcome.results)
    assert outcome.total >= len(outcome.results)
    assert outcome.polls == 1
    assert not outcome.timed_out


@pytest.mark.asyncio
async def test_price_desc_sort(executor, spec):
    outcome = await executor.execute(spec.with_changes(sort="price_desc"))
    prices = [t.price for t in outcome.results]
    assert prices == sorted(prices, reverse=True)


@pytest.mark.asyncio
async def test_polls_until_done(executor, backend, fake_time, spec):
    backend.delay_polls(2)
    outcome = await executor.execute(spec)
    assert outcome.polls == 3
    assert fake_time.sleeps == [1.5, 1.5]
    assert outcome.results


@pytest.mark.asyncio
async def test_timeout_returns_partial_outcome(executor, backend, spec):
    backend.delay_polls(100)
    outcome = await executor.execute(spec)
    assert outcome.timed_out
    assert outcome.results == []
    assert outcome.polls < 20


@pytest.mark.asyncio
async def test_retry_once_after_submit_failure(executor, backend, fake_time, spec):
    backend.fail_next(1, "submit")
    outcome = await executor.execute_with_retry(spec)
    assert outcome.results
    assert 0.6 in fake_time.sleeps


@pytest.mark.asyncio
async def test_second_failure_propagates(executor, backend, spec):
    backend.fail_next(1, "submit")
    backend.fail_next(1, "poll")
    with pytest.raises(SearchBackendError):
        await executor.execute_with_retry(spec)


@pytest.mark.asyncio
async def test_identical_specs_give_identical_results(executor, spec):
    first = await executor.execute(spec)
    second = await executor.execute(spec)
    assert first.request_id == second.request_id
    assert first.results == second.results
