from abc import ABC, abstractmethod
from typing import List, Optional

from core.config import Settings
from core.models import VOD, Worker
from services.bus_service import BusSubscriber
from services.plugin_service import PluginService
from .loop import DispatchLoop


class AbstractBackend(ABC):
    """
    Abstract base class for an execution backend.

    This interface defines the contract for launching archive workers.
    Concrete implementations decide how a worker is materialized (a local
    container or a cluster batch job); the dispatch loop and the plugin
    hooks are shared and behave the same for every backend.
    """

    #: Whether `list_workers` reports real data. Backends that cannot
    #: enumerate their workers return an empty list and set this to False.
    supports_listing: bool = True

    def __init__(self, settings: Settings, plugins: Optional[PluginService] = None):
        """
        Args:
            settings: The controller settings.
            plugins: The hook runtime to use. When omitted it is built from
                the settings, which loads the plugin script if enabled.
        """
        self.settings = settings
        self.plugins = plugins if plugins is not None else PluginService.from_settings(settings)

    @abstractmethod
    async def list_workers(self) -> List[Worker]:
        """
        Lists the running workers that belong to the controller.

        Returns:
            The workers whose name carries the worker prefix.
        """
        pass

    @abstractmethod
    async def start_worker(self, data: bytes, vod: VOD) -> None:
        """
        Launches one worker for a VOD.

        Args:
            data: The raw bus payload, passed to the worker verbatim.
            vod: The decoded VOD.

        Raises:
            LaunchError: If the backend could not create or start the worker.
        """
        pass

    async def listen(self, subscriber: BusSubscriber) -> None:
        """
        Runs the dispatch loop until the subscription ends.

        Raises:
            SubscriptionError: If the subscription cannot be established.
        """
        await DispatchLoop(self, subscriber).run()

    def close(self) -> None:
        if self.plugins is not None:
            self.plugins.close()
