import asyncio
from typing import List, Optional

from kubernetes import client

from core.config import Settings
from core.models import VOD, Worker
from logging_config import get_logger
from services.plugin_service import PluginService
from utils import worker_environment, worker_name
from .base import AbstractBackend
from .exceptions import LaunchCategory, LaunchError

logger = get_logger("cluster_backend")

VOLUME_NAME = "dggworker-volume"
VIDEOS_PATH = "/videos"

# One pod, no scheduler retries. Retrying is up to whoever publishes the VOD.
COMPLETIONS = 1
PARALLELISM = 1
BACKOFF_LIMIT = 0
TTL_SECONDS_AFTER_FINISHED = 30


class ClusterBackend(AbstractBackend):
    """
    An execution backend that submits every worker as a Kubernetes Job.

    There is no separate start step: once the Job is accepted the scheduler
    decides when the pod runs. Listing workers is not implemented.
    """

    supports_listing = False

    def __init__(
        self,
        settings: Settings,
        batch_api: client.BatchV1Api,
        plugins: Optional[PluginService] = None,
    ):
        """
        Initializes the backend with a Kubernetes batch API client.

        Args:
            settings: The controller settings.
            batch_api: The BatchV1Api used to create Jobs.
            plugins: The hook runtime; built from the settings if omitted.
        """
        super().__init__(settings, plugins)
        self.batch_api = batch_api
        self.namespace = settings.K8S_NAMESPACE
        logger.info(f"Initializing ClusterBackend in namespace '{self.namespace}'.")

    async def list_workers(self) -> List[Worker]:
        # TODO: list the Jobs labelled app=dggarchiver-worker in the namespace
        logger.debug("Listing workers is not supported by the cluster backend.")
        return []

    def build_job(self, data: bytes, vod: VOD) -> client.V1Job:
        """
        Builds the Job manifest for a VOD.

        Args:
            data: The raw bus payload, passed to the worker verbatim.
            vod: The decoded VOD.

        Returns:
            The Job object to submit.
        """
        name = worker_name(vod.id)

        container = client.V1Container(
            name=name,
            image=self.settings.WORKER_IMAGE,
            env=[
                client.V1EnvVar(name=k, value=v)
                for k, v in worker_environment(data, vod, self.settings)
            ],
            volume_mounts=[client.V1VolumeMount(name=VOLUME_NAME, mount_path=VIDEOS_PATH)],
            resources=client.V1ResourceRequirements(
                limits={
                    "cpu": self.settings.K8S_CPU_LIMIT,
                    "memory": self.settings.K8S_MEMORY_LIMIT,
                }
            ),
        )

        pod_spec = client.V1PodSpec(
            containers=[container],
            restart_policy="Never",
            image_pull_secrets=[
                client.V1LocalObjectReference(name=self.settings.K8S_IMAGE_PULL_SECRET)
            ],
            volumes=[
                client.V1Volume(
                    name=VOLUME_NAME,
                    persistent_volume_claim=client.V1PersistentVolumeClaimVolumeSource(
                        claim_name=self.settings.K8S_PVC_NAME
                    ),
                )
            ],
        )

        return client.V1Job(
            api_version="batch/v1",
            kind="Job",
            metadata=client.V1ObjectMeta(
                name=name,
                namespace=self.namespace,
                labels={"app": "dggarchiver-worker"},
            ),
            spec=client.V1JobSpec(
                completions=COMPLETIONS,
                parallelism=PARALLELISM,
                backoff_limit=BACKOFF_LIMIT,
                ttl_seconds_after_finished=TTL_SECONDS_AFTER_FINISHED,
                template=client.V1PodTemplateSpec(spec=pod_spec),
            ),
        )

    async def start_worker(self, data: bytes, vod: VOD) -> None:
        """Submits the Job for a VOD."""
        job = self.build_job(data, vod)
        name = job.metadata.name

        try:
            await asyncio.to_thread(
                self.batch_api.create_namespaced_job, self.namespace, job
            )
        except Exception as e:
            raise LaunchError(LaunchCategory.CREATION_FAILED, name, e) from e

        logger.debug(f"Batch '{name}' created in namespace '{self.namespace}'.")
