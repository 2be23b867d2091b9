import asyncio

import pytest

import scanner.notify.telegram as tg
from scanner.notify.queue import NotifyQueue
from scanner.notify.telegram import TelegramConfig, TelegramNotifier, config_from_env

from tests.helpers.fake_http import FakeResponse, FakeSession


@pytest.fixture
def no_sleep(monkeypatch):
    slept = []

    async def _sleep(s):
        slept.append(s)

    monkeypatch.setattr(tg.asyncio, "sleep", _sleep)
    return slept


def cfg(**kw):
    return TelegramConfig(bot_token="TOKEN", chat_id="42", api_base="https://tg.test", **kw)


@pytest.mark.asyncio
async def test_deliver_posts_message():
    s = FakeSession(post=[FakeResponse(200, {"ok": True})])
    n = TelegramNotifier(cfg(parse_mode="HTML"), session=s)
    assert await n.deliver("hello") is True
    url, payload = s.post_calls[0]
    assert url == "https://tg.test/botTOKEN/sendMessage"
    assert payload == {"chat_id": "42", "text": "hello", "parse_mode": "HTML"}


@pytest.mark.asyncio
async def test_deliver_retries_5xx_then_succeeds(no_sleep):
    s = FakeSession(post=[FakeResponse(502, "bad gateway"), FakeResponse(200, {"ok": True})])
    n = TelegramNotifier(cfg(), session=s)
    assert await n.deliver("x") is True
    assert len(s.post_calls) == 2
    assert len(no_sleep) == 1


@pytest.mark.asyncio
async def test_deliver_honors_retry_after(no_sleep):
    s = FakeSession(post=[
        FakeResponse(429, {"ok": False, "parameters": {"retry_after": 3}}),
        FakeResponse(200, {"ok": True}),
    ])
    n = TelegramNotifier(cfg(), session=s)
    assert await n.deliver("x") is True
    assert no_sleep[0] == 3.0


@pytest.mark.asyncio
async def test_deliver_gives_up_on_4xx():
    s = FakeSession(post=[FakeResponse(400, {"ok": False, "description": "chat not found"})])
    n = TelegramNotifier(cfg(), session=s)
    assert await n.deliver("x") is False
    assert len(s.post_calls) == 1
    assert n.sent_failed == 1


@pytest.mark.asyncio
async def test_send_enqueues_and_drops_when_full():
    n = TelegramNotifier(cfg(), queue=NotifyQueue(maxsize=1), session=FakeSession())
    assert await n.send("a") is True
    assert await n.send("b") is False
    assert n.q.stats.enq_drop == 1


@pytest.mark.asyncio
async def test_worker_drains_queue():
    s = FakeSession(post=[FakeResponse(200, {"ok": True}), FakeResponse(200, {"ok": True})])
    n = TelegramNotifier(cfg(per_chat_burst=5), session=s)
    await n.start()
    await n.send("one")
    await n.send("two")
    for _ in range(100):
        if n.sent_ok == 2:
            break
        await asyncio.sleep(0)
    await n.stop()
    assert [p["text"] for _, p in s.post_calls] == ["one", "two"]
    assert s.closed is False  # injected session is not ours to close


@pytest.mark.asyncio
async def test_deliver_waits_the_full_retry_after(no_sleep):
    s = FakeSession(post=[
        FakeResponse(429, {"ok": False, "parameters": {"retry_after": 30}}),
        FakeResponse(200, {"ok": True}),
    ])
    n = TelegramNotifier(cfg(max_backoff_s=8.0), session=s)
    assert await n.deliver("x") is True
    assert no_sleep == [30.0]


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"ok": False, "parameters": None},
    {"ok": False, "parameters": {"retry_after": "soon"}},
    {"ok": False, "parameters": {"retry_after": [5]}},
    [1, 2, 3],
    "Too Many Requests",
])
async def test_retry_after_ignores_malformed_bodies(body):
    assert await tg._retry_after(FakeResponse(429, body)) is None


async def _wait_for(pred, rounds=200):
    for _ in range(rounds):
        if pred():
            return
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_worker_survives_429_with_null_parameters(monkeypatch):
    monkeypatch.setattr(tg, "jitter", lambda v: 0.0)
    s = FakeSession(post=[
        FakeResponse(429, {"ok": False, "parameters": None}),
        FakeResponse(200, {"ok": True}),
        FakeResponse(200, {"ok": True}),
    ])
    n = TelegramNotifier(cfg(per_chat_burst=5), session=s)
    await n.start()
    await n.send("one")
    await n.send("two")
    await _wait_for(lambda: n.sent_ok == 2)
    await n.stop()
    assert [p["text"] for _, p in s.post_calls] == ["one", "one", "two"]
    assert n.sent_ok == 2


@pytest.mark.asyncio
async def test_worker_keeps_running_after_delivery_error():
    s = FakeSession(post=[FakeResponse(200, {"ok": True})])
    n = TelegramNotifier(cfg(per_chat_burst=5), session=s)
    real_deliver = n.deliver
    calls = []

    async def flaky_deliver(text):
        calls.append(text)
        if len(calls) == 1:
            raise AttributeError("boom")
        return await real_deliver(text)

    n.deliver = flaky_deliver
    await n.start()
    await n.send("one")
    await n.send("two")
    await _wait_for(lambda: n.sent_ok == 1)
    await n.stop()  # must not re-raise the first failure
    assert calls == ["one", "two"]
    assert [p["text"] for _, p in s.post_calls] == ["two"]
    assert n.sent_failed == 1


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("TELEGRAM_TOKEN", " abc ")
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "-100")
    c = config_from_env()
    assert c.bot_token == "abc" and c.chat_id == "-100" and c.parse_mode is None


def test_config_from_env_missing(monkeypatch):
    monkeypatch.delenv("TELEGRAM_TOKEN", raising=False)
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "1")
    with pytest.raises(KeyError):
        config_from_env()
