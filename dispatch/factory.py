import docker
from docker.errors import DockerException
from fastapi import Depends
from kubernetes import client, config

from core.config import Settings
from core.dependencies import get_settings
from .base import AbstractBackend
from .exceptions import BackendInitError
from .local import LocalBackend
from .cluster import ClusterBackend
from logging_config import get_logger

logger = get_logger("backend_factory")

_local_backend_instance = None
_cluster_backend_instance = None


def _create_docker_client() -> docker.DockerClient:
    try:
        return docker.from_env()
    except DockerException as e:
        raise BackendInitError(f"Wasn't able to connect to the Docker daemon: {e}") from e


def _create_batch_api(settings: Settings) -> client.BatchV1Api:
    try:
        if settings.K8S_IN_CLUSTER:
            config.load_incluster_config()
        else:
            config.load_kube_config()
    except (config.ConfigException, OSError) as e:
        raise BackendInitError(f"Wasn't able to load the Kubernetes configuration: {e}") from e
    return client.BatchV1Api()


def get_backend(settings: Settings = Depends(get_settings)) -> AbstractBackend:
    """
    Dependency function to get the execution backend based on settings.

    This factory reads the `EXECUTION_BACKEND` from the settings and returns
    a singleton instance of the corresponding backend. The first call
    connects to the runtime and loads the plugin script.

    Args:
        settings: The controller settings dependency.

    Returns:
        An instance of a class that implements the AbstractBackend interface.

    Raises:
        BackendInitError: If the Docker or Kubernetes client cannot be built.
        PluginLoadError: If plugins are enabled and the script fails to load.
    """
    global _local_backend_instance, _cluster_backend_instance

    if settings.EXECUTION_BACKEND == "docker":
        if _local_backend_instance is None:
            logger.info("Creating singleton instance of LocalBackend.")
            _local_backend_instance = LocalBackend(settings, _create_docker_client())
        return _local_backend_instance

    elif settings.EXECUTION_BACKEND == "k8s":
        if _cluster_backend_instance is None:
            logger.info("Creating singleton instance of ClusterBackend.")
            _cluster_backend_instance = ClusterBackend(
                settings, _create_batch_api(settings)
            )
        return _cluster_backend_instance

    else:
        # This case should ideally be prevented by Pydantic's Literal validation
        raise ValueError(f"Invalid EXECUTION_BACKEND: {settings.EXECUTION_BACKEND}")
