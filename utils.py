from typing import List, Tuple

from core.config import Settings
from core.models import VOD, Platform

WORKER_NAME_PREFIX = "dggarchiver-worker-"


def worker_name(vod_id: str) -> str:
    """
    Builds the container or job name for a VOD.

    Both backends rely on the runtime rejecting duplicate names, so this is
    the only thing standing between two messages with the same id.
    """
    return f"{WORKER_NAME_PREFIX}{vod_id}"


def livestream_url(vod: VOD) -> str:
    """
    Derives the URL the worker should download from.

    YouTube URLs are built from the video id, Rumble and Kick ship their own
    playback URL. Other platforms get an empty string.
    """
    if vod.platform == Platform.YOUTUBE.value:
        return f"https://youtu.be/{vod.id}"
    if vod.platform in (Platform.RUMBLE.value, Platform.KICK.value):
        return vod.playback_url
    return ""


def worker_environment(data: bytes, vod: VOD, settings: Settings) -> List[Tuple[str, str]]:
    """
    Returns the environment every worker is started with, in a stable order.

    Args:
        data: The raw bus payload, passed to the worker verbatim.
        vod: The decoded VOD.
        settings: The controller settings, for the bus coordinates.

    Returns:
        A list of (name, value) pairs.
    """
    return [
        ("LIVESTREAM_INFO", data.decode("utf-8", errors="replace")),
        ("LIVESTREAM_ID", vod.id),
        ("LIVESTREAM_URL", livestream_url(vod)),
        ("LIVESTREAM_PLATFORM", vod.platform),
        ("LIVESTREAM_DOWNLOADER", vod.downloader),
        ("BUS_HOST", settings.REDIS_URL),
        ("BUS_TOPIC", settings.BUS_TOPIC),
        ("VERBOSE", "true"),
    ]
