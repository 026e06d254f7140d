import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict
from typing import Any, Optional

from core.config import Settings
from core.models import VOD, PluginResponse
from dispatch.exceptions import HookError
from engine import ScriptEngine
from logging_config import get_logger

logger = get_logger("plugin_service")

RECEIVE_FUNCTION = "OnReceive"
RECEIVE_RESPONSE = "ReceiveResponse"
CONTAINER_FUNCTION = "OnContainer"
CONTAINER_RESPONSE = "ContainerResponse"


class PluginService:
    """
    Invokes the plugin hooks around each dispatch.

    Every call rebinds a global in the shared script engine, so calls made
    for concurrently delivered messages would overwrite each other's
    response record. All hook calls are therefore funnelled through a
    single-threaded executor that owns the engine.
    """

    def __init__(self, engine: ScriptEngine):
        """
        Initializes the service with an already loaded engine.

        Args:
            engine: The script engine holding the loaded Lua state.
        """
        self.engine = engine
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="plugin-hooks"
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["PluginService"]:
        """
        Loads the configured plugin script, or returns None if plugins are off.

        Raises:
            PluginLoadError: If plugins are enabled and the script fails to load.
        """
        if not settings.PLUGINS_ENABLED:
            logger.info("Plugins are disabled.")
            return None
        engine = ScriptEngine(settings.PLUGINS_PATH)
        engine.load()
        return cls(engine)

    async def on_receive(self, vod: VOD) -> Optional[PluginResponse]:
        """Runs the pre-dispatch hook for a freshly decoded VOD."""
        return await self._run(RECEIVE_FUNCTION, RECEIVE_RESPONSE, vod.model_dump())

    async def on_container(self, vod: VOD, success: bool) -> Optional[PluginResponse]:
        """Runs the post-dispatch hook with the outcome of the launch."""
        return await self._run(CONTAINER_FUNCTION, CONTAINER_RESPONSE, vod.model_dump(), success)

    async def _run(self, function_name: str, response_name: str, *args: Any) -> Optional[PluginResponse]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor, self._call_hook, function_name, response_name, *args
        )

    def _call_hook(self, function_name: str, response_name: str, *args: Any) -> Optional[PluginResponse]:
        """
        Calls one hook on the executor thread.

        Returns:
            The response the script filled in, or None when the hook is not
            defined, failed to run or reported an error.
        """
        if not self.engine.has_function(function_name):
            logger.debug(
                f'The plugin script does not define "{function_name}", skipping.'
            )
            return None

        self.engine.set_global(response_name, asdict(PluginResponse()))
        try:
            self.engine.call(function_name, *args)
        except HookError as e:
            logger.debug(
                f'Wasn\'t able to execute the "{function_name}" function of the plugin script, skipping: {e}'
            )
            return None

        try:
            response = PluginResponse.coerce(self.engine.get_global(response_name))
        except (TypeError, ValueError) as e:
            logger.debug(f'Ignoring the "{response_name}" set by the plugin script: {e}')
            return None

        if response.error:
            logger.error(
                f'The "{function_name}" function of the plugin script reported an error: {response.message}'
            )
            return None

        return response

    def close(self) -> None:
        self._executor.shutdown(wait=False)
