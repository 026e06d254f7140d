from typing import Literal

from kubernetes.utils import parse_quantity
from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Controller settings, loaded from environment variables.
    Utilizes pydantic-settings for type validation and loading from .env files.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    VERBOSE: bool = False
    EXECUTION_BACKEND: Literal["docker", "k8s"] = "docker"

    # --- Message bus ---
    REDIS_URL: str = "redis://localhost:6379/0"
    BUS_TOPIC: str = "dggarchiver"

    # --- Workers ---
    WORKER_IMAGE: str = "ghcr.io/dgghq/dggarchiver-worker:main"

    # --- Docker backend ---
    DOCKER_NETWORK: str = ""
    DOCKER_AUTOREMOVE: bool = True
    DOCKER_VOLUME: str = "dggarchiver-lbrynet_videos"

    # --- Kubernetes backend ---
    K8S_NAMESPACE: str = ""
    K8S_IN_CLUSTER: bool = True
    K8S_CPU_LIMIT: str = "1"
    K8S_MEMORY_LIMIT: str = "1Gi"
    K8S_PVC_NAME: str = "dggworker-pvc"
    K8S_IMAGE_PULL_SECRET: str = "registry-1"

    # --- Plugins ---
    PLUGINS_ENABLED: bool = False
    PLUGINS_PATH: str = ""

    API_KEY: SecretStr = SecretStr("your-secret-api-key")  # This should be set in the environment

    @field_validator("K8S_CPU_LIMIT", "K8S_MEMORY_LIMIT")
    @classmethod
    def validate_quantity(cls, value: str) -> str:
        # Raises ValueError on anything the API server would reject
        parse_quantity(value)
        return value

    @model_validator(mode="after")
    def check_backend_requirements(self) -> "Settings":
        if self.EXECUTION_BACKEND == "docker" and not self.DOCKER_NETWORK:
            raise ValueError(
                "DOCKER_NETWORK must be set when using docker as the execution backend"
            )
        if self.EXECUTION_BACKEND == "k8s" and not self.K8S_NAMESPACE:
            raise ValueError(
                "K8S_NAMESPACE must be set when using k8s as the execution backend"
            )
        if self.PLUGINS_ENABLED and not self.PLUGINS_PATH:
            raise ValueError("PLUGINS_PATH must be set when plugins are enabled")
        return self

    @property
    def job_subject(self) -> str:
        """The bus subject carrying VOD jobs."""
        return f"{self.BUS_TOPIC}.job"
