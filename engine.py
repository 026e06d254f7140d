from pathlib import Path
from typing import Any, Mapping

from lupa import LuaError, LuaRuntime, lua_type

from dispatch.exceptions import HookError, PluginLoadError
from logging_config import get_logger

logger = get_logger("engine")


class ScriptEngine:
    """
    Runs a user-supplied Lua plugin script.

    The script is executed once at load time and keeps a single Lua state
    afterwards. Its functions read the globals bound with `set_global` on
    their next call, and what they leave in a global can be read back with
    `get_global`.

    Python mappings crossing into Lua become tables, and Lua tables coming
    back become dicts (or lists, for sequences).

    The engine is not thread-safe: callers must make sure only one call
    touches it at a time.
    """

    def __init__(self, path: str):
        self.path = path
        self.lua = LuaRuntime(register_eval=False)

    def load(self) -> None:
        """
        Reads and executes the script.

        Raises:
            PluginLoadError: If the file cannot be read or the script fails
                while executing its top level.
        """
        logger.info(f"Loading plugin script '{self.path}'...")
        try:
            source = Path(self.path).read_text(encoding="utf-8")
            self.lua.execute(source)
        except (OSError, LuaError) as e:
            raise PluginLoadError(
                f"Wasn't able to load the plugin script '{self.path}': {e}"
            ) from e
        logger.info(f"Plugin script '{self.path}' loaded.")

    def has_function(self, name: str) -> bool:
        return lua_type(self.lua.globals()[name]) == "function"

    def set_global(self, name: str, value: Any) -> None:
        self.lua.globals()[name] = self._to_lua(value)

    def get_global(self, name: str) -> Any:
        return self._to_python(self.lua.globals()[name])

    def call(self, name: str, *args: Any) -> Any:
        """
        Calls a function defined by the script.

        Raises:
            HookError: If the function does not exist or raises.
        """
        fn = self.lua.globals()[name]
        if lua_type(fn) != "function":
            raise HookError(f'function "{name}" is not defined')
        try:
            return self._to_python(fn(*(self._to_lua(arg) for arg in args)))
        except LuaError as e:
            raise HookError(f'function "{name}" raised: {e}') from e

    def _to_lua(self, value: Any) -> Any:
        if isinstance(value, Mapping):
            return self.lua.table_from(dict(value), recursive=True)
        return value

    def _to_python(self, value: Any) -> Any:
        if lua_type(value) != "table":
            return value
        items = {k: self._to_python(v) for k, v in value.items()}
        positions = range(1, len(items) + 1)
        if items and all(isinstance(k, int) for k in items) and sorted(items) == list(positions):
            return [items[i] for i in positions]
        return items
