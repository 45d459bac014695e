import asyncio

import httpx
import pytest

from conftest import DESCRIPTOR, FakeLocator, Recorder, ScriptedTransport
from lps_driver.client.auth import AuthState
from lps_driver.client.cursor_store import MemoryCursorStore
from lps_driver.client.locator import ServerLocator
from lps_driver.client.poll_loop import LoopState, PollLoop
from lps_driver.client.scheduler import RetryScheduler
from lps_driver.client.transport import HttpLongPollTransport
from lps_driver.shared.models import HistoryReset, MessageChanged, PresenceChanged


def make_loop(locator, transport, fake_sleep=None, **kwargs) -> PollLoop:  # noqa: ANN001
    scheduler = RetryScheduler(sleep=fake_sleep) if fake_sleep else RetryScheduler()
    return PollLoop(locator, transport, scheduler=scheduler, **kwargs)


async def run_to_end(loop: PollLoop, seed_ts: int | None = None) -> None:
    await asyncio.wait_for(loop.run(seed_ts), timeout=2)


def ts_of(url: str) -> str:
    return httpx.URL(url).params["ts"]


@pytest.mark.asyncio
async def test_cold_start_seed_overrides_descriptor_cursor() -> None:
    transport = ScriptedTransport()
    loop = make_loop(FakeLocator(DESCRIPTOR), transport, cursor_store=MemoryCursorStore(100))

    await asyncio.wait_for(loop.init(), timeout=2)

    assert transport.urls[0] == "http://h?act=a_check&key=k&ts=100&wait=25&mode=2"
    assert loop.state is LoopState.TERMINATED


@pytest.mark.asyncio
async def test_cold_start_without_persisted_cursor_uses_server_cursor() -> None:
    transport = ScriptedTransport()
    loop = make_loop(FakeLocator(DESCRIPTOR), transport, cursor_store=MemoryCursorStore())

    await asyncio.wait_for(loop.init(), timeout=2)

    assert ts_of(transport.urls[0]) == "999"


@pytest.mark.asyncio
async def test_success_advances_cursor_emits_coalesced_events_and_persists() -> None:
    store = MemoryCursorStore()
    transport = ScriptedTransport(
        {"ts": 1001, "updates": [[4, 1, 0], [4, 2, 0], [8, -7, 1], [9, -7, 0], [9, 8, 0], [61, 7, 1]]},
        {"ts": 1002, "updates": []},
    )
    loop = make_loop(FakeLocator(DESCRIPTOR), transport, cursor_store=store)
    recorder = Recorder(loop.sink)

    await run_to_end(loop)

    assert [ts_of(url) for url in transport.urls] == ["999", "1001", "1002"]
    assert recorder.events == [MessageChanged(), PresenceChanged(user_ids=frozenset({7, 8}))]
    assert store.ts == 1002
    assert loop.stats["polls_completed"] == 2


@pytest.mark.asyncio
async def test_unknown_and_ignored_updates_emit_nothing() -> None:
    transport = ScriptedTransport({"ts": 1000, "updates": [[114, {"peer_id": 1, "sound": 0}], [999, 1]]})
    loop = make_loop(FakeLocator(DESCRIPTOR), transport)
    recorder = Recorder(loop.sink)

    await run_to_end(loop)

    assert recorder.events == []
    assert loop.stats["unknown_updates"] == 1


@pytest.mark.asyncio
async def test_history_obsolete_resets_consumers_and_drops_cursor() -> None:
    locator = FakeLocator(DESCRIPTOR, {"server": "h2", "key": "k2", "ts": 5000})
    transport = ScriptedTransport({"failed": 1, "ts": 4000})
    loop = make_loop(locator, transport, cursor_store=MemoryCursorStore(100))
    recorder = Recorder(loop.sink)

    await asyncio.wait_for(loop.init(), timeout=2)

    assert recorder.events == [HistoryReset()]
    assert locator.calls == 2
    assert transport.urls[1] == "http://h2?act=a_check&key=k2&ts=5000&wait=25&mode=2"


@pytest.mark.asyncio
@pytest.mark.parametrize("code", [2, 3])
async def test_stale_key_reacquires_with_preserved_cursor(code: int, fake_sleep) -> None:  # noqa: ANN001
    locator = FakeLocator(DESCRIPTOR, {"server": "h2", "key": "k2", "ts": 5000})
    transport = ScriptedTransport({"ts": 1234, "updates": []}, {"failed": code})
    loop = make_loop(locator, transport, fake_sleep)
    recorder = Recorder(loop.sink)

    await run_to_end(loop)

    assert locator.calls == 2
    assert transport.urls[2] == "http://h2?act=a_check&key=k2&ts=1234&wait=25&mode=2"
    assert recorder.events == []
    assert fake_sleep.delays == []


@pytest.mark.asyncio
async def test_acquisition_failures_retry_at_constant_interval(fake_sleep) -> None:  # noqa: ANN001
    locator = FakeLocator(None, None, None, DESCRIPTOR)
    transport = ScriptedTransport()
    loop = make_loop(locator, transport, fake_sleep, cursor_store=MemoryCursorStore(100))

    await asyncio.wait_for(loop.init(), timeout=2)

    assert fake_sleep.delays == [5.0, 5.0, 5.0]
    assert locator.calls == 4
    assert loop.stats["acquisition_failures"] == 3
    # the persisted seed is not carried across a failed acquisition
    assert ts_of(transport.urls[0]) == "999"


@pytest.mark.asyncio
async def test_transport_error_reissues_identical_request_immediately(fake_sleep) -> None:  # noqa: ANN001
    transport = ScriptedTransport(httpx.ReadTimeout("timed out"), httpx.ConnectError("refused"), {"failed": 4})
    locator = FakeLocator(DESCRIPTOR)
    loop = make_loop(locator, transport, fake_sleep)
    recorder = Recorder(loop.sink)

    await run_to_end(loop)

    assert len(transport.urls) == 4
    assert len(set(transport.urls)) == 1
    assert locator.calls == 1
    assert loop.stats["transport_errors"] == 3
    assert fake_sleep.delays == []
    assert recorder.events == []


@pytest.mark.asyncio
async def test_undecodable_poll_body_is_reissued() -> None:
    bodies = [
        httpx.Response(200, content=b'{"ts": 1, "updates": ["\xff"]}'),
        httpx.Response(200, json={"ts": 1000, "updates": [[4, 1, 0]]}),
        httpx.Response(200, json={"error": {"type": "Unauthorized"}}),
    ]
    requests: list[httpx.URL] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request.url)
        return bodies.pop(0)

    transport = HttpLongPollTransport(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    loop = make_loop(FakeLocator(DESCRIPTOR), transport)
    recorder = Recorder(loop.sink)

    await run_to_end(loop)

    assert requests[0] == requests[1]
    assert len(requests) == 3
    assert loop.stats["transport_errors"] == 1
    assert recorder.events == [MessageChanged()]
    assert loop.state is LoopState.TERMINATED
    await transport.aclose()


class SequenceApi:
    def __init__(self, *payloads: dict) -> None:
        self.payloads = list(payloads)

    async def call(self, method: str, params=None) -> dict:  # noqa: ANN001
        return self.payloads.pop(0)


@pytest.mark.asyncio
async def test_unusable_host_takes_the_delayed_acquisition_path(fake_sleep) -> None:  # noqa: ANN001
    locator = ServerLocator(SequenceApi({"server": "h:notaport", "key": "k", "ts": 5}, DESCRIPTOR))
    transport = ScriptedTransport()
    loop = make_loop(locator, transport, fake_sleep)

    await run_to_end(loop)

    assert fake_sleep.delays == [5.0]
    assert loop.stats["acquisition_failures"] == 1
    assert transport.urls == ["http://h?act=a_check&key=k&ts=999&wait=25&mode=2"]
    assert loop.state is LoopState.TERMINATED


@pytest.mark.asyncio
async def test_auth_error_terminates_without_retry() -> None:
    locator = FakeLocator(DESCRIPTOR, DESCRIPTOR)
    transport = ScriptedTransport({"error": {"type": "Unauthorized"}}, {"ts": 1, "updates": [[4, 1]]})
    loop = make_loop(locator, transport)

    await run_to_end(loop)

    assert loop.state is LoopState.TERMINATED
    assert len(transport.urls) == 1
    assert locator.calls == 1


@pytest.mark.asyncio
async def test_auth_revoked_during_poll_terminates_and_ignores_late_response() -> None:
    release = asyncio.Event()
    requests: list[httpx.URL] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request.url)
        await release.wait()
        return httpx.Response(200, json={"ts": 1000, "updates": [[4, 1, 0]]})

    auth = AuthState()
    transport = HttpLongPollTransport(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    loop = make_loop(FakeLocator(DESCRIPTOR), transport, auth=auth)
    recorder = Recorder(loop.sink)

    task = loop.start()
    while not requests:
        await asyncio.sleep(0.01)
    auth.set_authorized(False)
    release.set()
    await asyncio.wait_for(task, timeout=1)

    assert loop.state is LoopState.TERMINATED
    assert len(requests) == 1
    assert recorder.events == []
    await transport.aclose()


@pytest.mark.asyncio
async def test_auth_revoked_while_idle_cancels_scheduled_restart() -> None:
    auth = AuthState()
    locator = FakeLocator(None, DESCRIPTOR)
    loop = make_loop(locator, ScriptedTransport(), auth=auth)

    task = loop.start()
    while not (locator.calls and loop.state is LoopState.IDLE):
        await asyncio.sleep(0.01)
    auth.set_authorized(False)
    await asyncio.wait_for(task, timeout=1)

    assert loop.state is LoopState.TERMINATED
    assert locator.calls == 1


@pytest.mark.asyncio
async def test_stop_cancels_scheduled_restart() -> None:
    locator = FakeLocator(None, DESCRIPTOR)
    loop = make_loop(locator, ScriptedTransport())

    loop.start()
    while not (locator.calls and loop.state is LoopState.IDLE):
        await asyncio.sleep(0.01)
    await loop.stop()

    assert loop.state is LoopState.TERMINATED
    assert locator.calls == 1


@pytest.mark.asyncio
async def test_not_authorized_at_start_never_acquires() -> None:
    locator = FakeLocator(DESCRIPTOR)
    loop = make_loop(locator, ScriptedTransport(), auth=AuthState(authorized=False))

    await run_to_end(loop)

    assert locator.calls == 0
    assert loop.state is LoopState.TERMINATED


@pytest.mark.asyncio
async def test_explicit_restart_after_termination() -> None:
    auth = AuthState()
    locator = FakeLocator(DESCRIPTOR, DESCRIPTOR)
    loop = make_loop(locator, ScriptedTransport(), auth=auth)

    await asyncio.wait_for(loop.start(), timeout=1)
    await asyncio.wait_for(loop.start(seed_ts=77), timeout=1)

    assert locator.calls == 2


@pytest.mark.asyncio
async def test_start_twice_is_rejected() -> None:
    loop = make_loop(FakeLocator(None), ScriptedTransport())
    loop.start()
    with pytest.raises(RuntimeError):
        loop.start()
    await loop.stop()


@pytest.mark.asyncio
async def test_many_polls_do_not_grow_the_stack() -> None:
    steps = [{"ts": 1000 + i, "updates": [[4, i, 0]]} for i in range(1, 2001)]
    transport = ScriptedTransport(*steps)
    loop = make_loop(FakeLocator(DESCRIPTOR), transport)

    await asyncio.wait_for(loop.run(), timeout=10)

    assert loop.stats["polls_completed"] == 2000
    assert ts_of(transport.urls[-1]) == "3000"


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_break_the_loop() -> None:
    transport = ScriptedTransport({"ts": 1000, "updates": [[4, 1, 0], [8, -2, 0]]})
    loop = make_loop(FakeLocator(DESCRIPTOR), transport)

    async def broken(event) -> None:  # noqa: ANN001
        raise RuntimeError("consumer bug")

    loop.sink.subscribe("message_changed", broken)
    recorder = Recorder(loop.sink)

    await run_to_end(loop)

    assert recorder.channels == ["message_changed", "users_changed"]
    assert len(transport.urls) == 2


@pytest.mark.asyncio
async def test_state_changes_are_reported() -> None:
    loop = make_loop(FakeLocator(DESCRIPTOR), ScriptedTransport())
    states: list[LoopState] = []
    loop.on_state_change = states.append

    await run_to_end(loop)

    assert states == [LoopState.ACQUIRING, LoopState.POLLING, LoopState.TERMINATED]
