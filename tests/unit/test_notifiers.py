import io

import pytest

from scanner.alerts.notifiers import ConsoleNotifier, MultiNotifier

from tests.helpers.fake_http import RecordingNotifier

@pytest.mark.asyncio
async def test_console_prints():
    buf = io.StringIO()
    assert await ConsoleNotifier(stream=buf).send("hi") is True
    assert buf.getvalue() == "hi\n"

@pytest.mark.asyncio
async def test_multi_any_success():
    bad = RecordingNotifier(exc=RuntimeError("x"))
    good = RecordingNotifier()
    assert await MultiNotifier([bad, good]).send("m") is True
    assert bad.sent == ["m"] and good.sent == ["m"]

@pytest.mark.asyncio
async def test_multi_all_fail():
    assert await MultiNotifier([RecordingNotifier(ok=False)]).send("m") is False
