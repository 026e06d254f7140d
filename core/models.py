from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict


class Platform(str, Enum):
    """
    Streaming platforms the controller knows how to build a playback URL for.
    """

    YOUTUBE = "youtube"
    RUMBLE = "rumble"
    KICK = "kick"


class VOD(BaseModel):
    """
    A streaming event that is ready to be archived.

    Only the fields the controller itself reads are declared. Anything else
    the notifier puts in the payload is kept, since the raw payload is what
    the worker receives anyway.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    platform: str = ""
    playback_url: str = ""
    downloader: str = ""


class Worker(BaseModel):
    """A running worker as reported by the execution backend."""

    id: str
    name: str
    image: str
    status: str


@dataclass
class PluginResponse:
    """
    Result record a plugin hook fills in by side effect.

    Scripts set `filled` when they actually wrote a result and `error`
    together with `message` to report a failure. `data` is free-form.
    """

    filled: bool = False
    error: bool = False
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def coerce(cls, value: Any) -> "PluginResponse":
        if isinstance(value, cls):
            return value
        if not isinstance(value, Mapping):
            raise TypeError(f"Cannot interpret {type(value).__name__} as a plugin response")
        data = value.get("data") or {}
        if not isinstance(data, Mapping):
            raise TypeError(f"Cannot interpret {type(data).__name__} as plugin response data")
        return cls(
            filled=bool(value.get("filled", False)),
            error=bool(value.get("error", False)),
            message=str(value.get("message", "")),
            data=dict(data),
        )


@dataclass
class DispatchContext:
    """State carried through the handling of a single bus message."""

    data: bytes
    vod: Optional[VOD] = None
    success: bool = False
