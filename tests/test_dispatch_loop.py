import asyncio
import logging
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.models import VOD, Worker
from dispatch.base import AbstractBackend
from dispatch.exceptions import DecodeError, LaunchCategory, LaunchError
from dispatch.local import LocalBackend
from dispatch.loop import DispatchLoop, decode_vod
from engine import ScriptEngine
from services.plugin_service import PluginService


class RecordingBackend(AbstractBackend):
    """Backend that records launches instead of talking to a runtime."""

    def __init__(self, settings, plugins=None, fail=False):
        super().__init__(settings, plugins)
        self.fail = fail
        self.launched = []

    async def list_workers(self) -> List[Worker]:
        return []

    async def start_worker(self, data: bytes, vod: VOD) -> None:
        self.launched.append((data, vod.id))
        if self.fail:
            raise LaunchError(LaunchCategory.CREATION_FAILED, f"dggarchiver-worker-{vod.id}", RuntimeError("nope"))


def _plugins(write_plugin):
    source = """
calls = {}

function OnReceive(vod)
  table.insert(calls, "receive:" .. vod.id)
end

function OnContainer(vod, success)
  table.insert(calls, "container:" .. vod.id .. ":" .. tostring(success))
end
"""
    engine = ScriptEngine(write_plugin(source))
    engine.load()
    return PluginService(engine)


def test_decode_vod_keeps_extra_fields():
    vod = decode_vod(b'{"id":"a","platform":"kick","title":"Stream"}')
    assert vod.id == "a"
    assert vod.model_extra == {"title": "Stream"}


@pytest.mark.parametrize("payload", [b"not json", b"[]", b'{"platform":"youtube"}', b"\xff\xfe"])
def test_decode_vod_rejects_malformed_payloads(payload):
    with pytest.raises(DecodeError):
        decode_vod(payload)


@pytest.mark.asyncio
async def test_hooks_wrap_the_launch(settings, write_plugin):
    plugins = _plugins(write_plugin)
    backend = RecordingBackend(settings, plugins=plugins)

    ctx = await DispatchLoop(backend, MagicMock()).handle(b'{"id":"abc"}')

    assert ctx.success is True
    assert ctx.vod.id == "abc"
    assert backend.launched == [(b'{"id":"abc"}', "abc")]
    assert plugins.engine.get_global("calls") == ["receive:abc", "container:abc:true"]
    plugins.close()


@pytest.mark.asyncio
async def test_failed_launch_reports_failure_to_post_hook(settings, write_plugin, caplog):
    plugins = _plugins(write_plugin)
    backend = RecordingBackend(settings, plugins=plugins, fail=True)

    with caplog.at_level(logging.ERROR, logger="dispatch_loop"):
        ctx = await DispatchLoop(backend, MagicMock()).handle(b'{"id":"abc"}')

    assert ctx.success is False
    assert plugins.engine.get_global("calls")[-1] == "container:abc:false"
    assert any("creation-failed" in r.getMessage() for r in caplog.records)
    plugins.close()


@pytest.mark.asyncio
async def test_decode_error_drops_message_without_hooks(settings, write_plugin, caplog):
    plugins = _plugins(write_plugin)
    backend = RecordingBackend(settings, plugins=plugins)

    with caplog.at_level(logging.ERROR, logger="dispatch_loop"):
        ctx = await DispatchLoop(backend, MagicMock()).handle(b"{broken")

    assert ctx.vod is None
    assert ctx.success is False
    assert backend.launched == []
    assert not plugins.engine.get_global("calls")
    assert any("decode" in r.getMessage() for r in caplog.records)
    plugins.close()


@pytest.mark.asyncio
async def test_no_plugins_means_no_hook_calls(settings, caplog):
    backend = RecordingBackend(settings)
    assert backend.plugins is None

    with caplog.at_level(logging.DEBUG):
        ctx = await DispatchLoop(backend, MagicMock()).handle(b'{"id":"abc"}')

    assert ctx.success is True
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]


@pytest.mark.asyncio
async def test_malformed_hook_response_does_not_block_launch(settings, docker_client, write_plugin, caplog):
    source = """
function OnReceive(vod)
  ReceiveResponse = {filled = true, data = "oops"}
end
"""
    engine = ScriptEngine(write_plugin(source))
    engine.load()
    plugins = PluginService(engine)
    backend = LocalBackend(settings, docker_client, plugins=plugins)

    with caplog.at_level(logging.DEBUG):
        ctx = await DispatchLoop(backend, MagicMock()).handle(b'{"id":"abc"}')

    assert ctx.success is True
    docker_client.api.create_container.assert_called_once()
    assert docker_client.api.create_container.call_args.kwargs["name"] == "dggarchiver-worker-abc"
    docker_client.api.start.assert_called_once_with("c0ffee")
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]
    plugins.close()


@pytest.mark.asyncio
async def test_concurrent_messages_launch_independently(settings, docker_client, write_plugin):
    source = """
function OnReceive(vod)
  ReceiveResponse.filled = true
  local deadline = os.clock() + 0.02
  while os.clock() < deadline do end
  ReceiveResponse.message = vod.id
end
"""
    engine = ScriptEngine(write_plugin(source))
    engine.load()
    plugins = PluginService(engine)
    seen = []
    on_receive = plugins.on_receive

    async def recording_on_receive(vod):
        response = await on_receive(vod)
        seen.append((vod.id, response.message))
        return response

    plugins.on_receive = recording_on_receive
    docker_client.api.create_container.side_effect = lambda **kw: {"Id": kw["name"]}
    backend = LocalBackend(settings, docker_client, plugins=plugins)
    loop = DispatchLoop(backend, MagicMock())

    results = await asyncio.gather(loop.handle(b'{"id":"one"}'), loop.handle(b'{"id":"two"}'))

    assert all(ctx.success for ctx in results)
    started = sorted(c.args[0] for c in docker_client.api.start.call_args_list)
    assert started == ["dggarchiver-worker-one", "dggarchiver-worker-two"]
    assert sorted(seen) == [("one", "one"), ("two", "two")]
    plugins.close()


@pytest.mark.asyncio
async def test_run_subscribes_to_job_subject(settings):
    backend = RecordingBackend(settings)
    subscriber = MagicMock()
    subscriber.subscribe = AsyncMock()
    subscriber.wait = AsyncMock()

    await backend.listen(subscriber)

    subject, handler = subscriber.subscribe.await_args.args
    assert subject == "dggarchiver.job"
    assert callable(handler)
    subscriber.wait.assert_awaited_once()
