from enum import Enum


class DispatchError(Exception):
    """Base class for every error raised by the controller."""


class DecodeError(DispatchError):
    """A bus payload could not be decoded into a VOD."""

    def __init__(self, payload: bytes, cause: Exception):
        self.payload = payload
        self.cause = cause
        super().__init__(f"unable to decode VOD payload: {cause}")


class LaunchCategory(str, Enum):
    CREATION_FAILED = "creation-failed"
    START_FAILED = "start-failed"


class LaunchError(DispatchError):
    """
    A worker could not be launched.

    `category` tells whether the runtime refused to create the worker or
    created it and then failed to start it. The SDK error is kept in `cause`.
    """

    def __init__(self, category: LaunchCategory, worker_name: str, cause: Exception):
        self.category = category
        self.worker_name = worker_name
        self.cause = cause
        super().__init__(f"{category.value}: worker '{worker_name}': {cause}")


class HookError(DispatchError):
    """A plugin hook is not defined or raised while running."""


class PluginLoadError(DispatchError):
    """The plugin script could not be loaded."""


class SubscriptionError(DispatchError):
    """The bus subscription could not be established."""


class BackendInitError(DispatchError):
    """The client for the execution backend could not be built."""
