import pytest

from dispatch.exceptions import HookError, PluginLoadError
from engine import ScriptEngine


def test_load_defines_functions(write_plugin):
    engine = ScriptEngine(write_plugin("function OnReceive(vod)\nend\n"))
    engine.load()

    assert engine.has_function("OnReceive")
    assert not engine.has_function("OnContainer")


def test_load_missing_file_raises(tmp_path):
    engine = ScriptEngine(str(tmp_path / "missing.lua"))
    with pytest.raises(PluginLoadError, match="missing.lua"):
        engine.load()


def test_load_syntax_error_raises(write_plugin):
    engine = ScriptEngine(write_plugin("function OnReceive(vod\n"))
    with pytest.raises(PluginLoadError):
        engine.load()


def test_load_top_level_error_raises(write_plugin):
    engine = ScriptEngine(write_plugin("error('boom')\n"))
    with pytest.raises(PluginLoadError, match="boom"):
        engine.load()


def test_globals_are_visible_to_script_functions(write_plugin):
    engine = ScriptEngine(write_plugin("function read()\n  return Value\nend\n"))
    engine.load()

    engine.set_global("Value", 41)
    assert engine.call("read") == 41
    engine.set_global("Value", 42)
    assert engine.call("read") == 42


def test_mappings_cross_as_tables(write_plugin):
    source = """
function describe(vod)
  Seen = {id = vod.id, tags = {"live", "vod"}, extra = vod.extra}
  return vod.extra.title
end
"""
    engine = ScriptEngine(write_plugin(source))
    engine.load()

    title = engine.call("describe", {"id": "abc", "extra": {"title": "Stream"}})

    assert title == "Stream"
    assert engine.get_global("Seen") == {
        "id": "abc",
        "tags": ["live", "vod"],
        "extra": {"title": "Stream"},
    }


def test_unset_global_reads_as_none(write_plugin):
    engine = ScriptEngine(write_plugin("X = 1\n"))
    engine.load()

    assert engine.get_global("X") == 1
    assert engine.get_global("Missing") is None


def test_call_undefined_function_raises(write_plugin):
    engine = ScriptEngine(write_plugin("X = 1\n"))
    engine.load()

    with pytest.raises(HookError, match="not defined"):
        engine.call("X")


def test_call_wraps_script_errors(write_plugin):
    engine = ScriptEngine(write_plugin("function fail()\n  error('bad')\nend\n"))
    engine.load()

    with pytest.raises(HookError, match="bad"):
        engine.call("fail")
