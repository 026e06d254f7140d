import asyncio
from typing import List, Optional

import docker
from docker.types import Mount

from core.config import Settings
from core.models import VOD, Worker
from logging_config import get_logger
from services.plugin_service import PluginService
from utils import WORKER_NAME_PREFIX, worker_environment, worker_name
from .base import AbstractBackend
from .exceptions import LaunchCategory, LaunchError

logger = get_logger("local_backend")

VIDEOS_PATH = "/videos"


class LocalBackend(AbstractBackend):
    """
    An execution backend that runs every worker as a container on the local
    Docker engine.

    A launch is a create followed by a start. If the start fails the created
    container is left in place; a second VOD with the same id will then
    collide with it on the name.
    """

    def __init__(
        self,
        settings: Settings,
        docker_client: docker.DockerClient,
        plugins: Optional[PluginService] = None,
    ):
        """
        Initializes the backend with a Docker client.

        Args:
            settings: The controller settings.
            docker_client: A client connected to the Docker engine.
            plugins: The hook runtime; built from the settings if omitted.
        """
        super().__init__(settings, plugins)
        self.docker = docker_client
        logger.info(
            f"Initializing LocalBackend on network '{settings.DOCKER_NETWORK}' "
            f"(auto remove: {settings.DOCKER_AUTOREMOVE})."
        )

    async def list_workers(self) -> List[Worker]:
        containers = await asyncio.to_thread(
            self.docker.api.containers, filters={"name": WORKER_NAME_PREFIX}
        )

        workers = []
        for c in containers:
            # Docker reports names with a leading slash and matches the
            # filter anywhere in the name
            names = [n.lstrip("/") for n in c.get("Names") or []]
            name = next((n for n in names if n.startswith(WORKER_NAME_PREFIX)), None)
            if name is None:
                continue
            workers.append(
                Worker(id=c["Id"], name=name, image=c["Image"], status=c["Status"])
            )
        return workers

    def _create_container(self, name: str, data: bytes, vod: VOD) -> dict:
        api = self.docker.api
        host_config = api.create_host_config(
            mounts=[
                Mount(target=VIDEOS_PATH, source=self.settings.DOCKER_VOLUME, type="volume")
            ],
            auto_remove=self.settings.DOCKER_AUTOREMOVE,
        )
        networking_config = api.create_networking_config(
            {self.settings.DOCKER_NETWORK: api.create_endpoint_config()}
        )
        return api.create_container(
            image=self.settings.WORKER_IMAGE,
            name=name,
            environment=[f"{k}={v}" for k, v in worker_environment(data, vod, self.settings)],
            host_config=host_config,
            networking_config=networking_config,
        )

    async def start_worker(self, data: bytes, vod: VOD) -> None:
        """
        Creates and starts the worker container for a VOD.

        The start is only attempted once the create succeeded.
        """
        name = worker_name(vod.id)

        try:
            container = await asyncio.to_thread(self._create_container, name, data, vod)
        except Exception as e:
            raise LaunchError(LaunchCategory.CREATION_FAILED, name, e) from e

        container_id = container["Id"]
        logger.debug(f"Created container {container_id} for worker '{name}'.")

        try:
            await asyncio.to_thread(self.docker.api.start, container_id)
        except Exception as e:
            raise LaunchError(LaunchCategory.START_FAILED, name, e) from e

        logger.info(f"Started container {container_id} for worker '{name}'.")
