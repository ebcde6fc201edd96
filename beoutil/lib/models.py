# beoutil
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Data model for products, system topology and BeoNotify notifications.

Wire shapes (BeoRemote JSON API, port 8080):

  GET /BeoZone/System/Products   → {"products": [Product, ...]}
  GET /BeoNotify/Notifications   → {"notification": {...}}{"notification": {...}}...

Notification payloads are a closed set of variants keyed by the
(type, kind) pair; anything else decodes to UnknownData so new firmware
notifications never break the watch loop.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Union

from .errors import NotificationDecodeError, StreamEnded

log = logging.getLogger(__name__)

ROLE_MASTER = "master"
ROLE_SLAVE = "slave"
ROLE_NONE = "none"

_ROLE_NAMES = {
    "integratedMaster": ROLE_MASTER,
    "integratedSlave": ROLE_SLAVE,
}


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------
@dataclass
class DeviceRecord:
    """A product seen on the local network by mDNS."""

    jid: str
    addresses: list[str] = field(default_factory=list)
    name: str = ""

    def to_dict(self) -> dict:
        return {"addresses": list(self.addresses), "name": self.name, "jid": self.jid}

    @classmethod
    def from_dict(cls, data: dict) -> "DeviceRecord":
        return cls(
            jid=str(data["jid"]),
            addresses=[str(a) for a in data.get("addresses") or []],
            name=data.get("name") or "",
        )


# ---------------------------------------------------------------------------
# System products
# ---------------------------------------------------------------------------
@dataclass
class PairingRelation:
    role: str
    jid: str

    @classmethod
    def from_dict(cls, data: dict) -> "PairingRelation":
        return cls(
            role=_ROLE_NAMES.get(data.get("role", ""), ROLE_NONE),
            jid=data.get("jid") or "",
        )


@dataclass
class SourceInfo:
    id: str
    friendly_name: str = ""
    source_type: str = ""
    category: str = ""
    linkable: bool = False
    product_jid: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "SourceInfo":
        return cls(
            id=data.get("id", ""),
            friendly_name=data.get("friendlyName", ""),
            source_type=(data.get("sourceType") or {}).get("type", ""),
            category=data.get("category", ""),
            linkable=bool(data.get("linkable", False)),
            product_jid=(data.get("product") or {}).get("jid", ""),
        )


@dataclass
class PlaybackSummary:
    source_id: str = ""
    state: str = ""
    listeners: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> "PlaybackSummary":
        return cls(
            source_id=(data.get("source") or {}).get("id", ""),
            state=data.get("state", ""),
            listeners=list(data.get("listener") or []),
        )


@dataclass
class SystemDeviceView:
    """One product as reported by some product's /BeoZone/System/Products."""

    jid: str
    friendly_name: str = ""
    online: bool = False
    integrated: PairingRelation | None = None
    sources: list[SourceInfo] = field(default_factory=list)
    primary_experience: PlaybackSummary | None = None

    @property
    def role(self) -> str:
        return self.integrated.role if self.integrated else ROLE_NONE

    @classmethod
    def from_dict(cls, data: dict) -> "SystemDeviceView":
        integrated = data.get("integrated")
        experience = data.get("primaryExperience")
        return cls(
            jid=str(data["jid"]),
            friendly_name=data.get("friendlyName", ""),
            online=bool(data.get("online", False)),
            integrated=PairingRelation.from_dict(integrated) if integrated else None,
            sources=[SourceInfo.from_dict(s) for s in data.get("source") or []],
            primary_experience=PlaybackSummary.from_dict(experience) if experience else None,
        )


@dataclass
class TopologyEntry:
    view: SystemDeviceView
    addresses: list[str] = field(default_factory=list)


class Topology(dict):
    """Merged jid → TopologyEntry map.  Built fresh on every query."""

    def partner_of(self, jid: str) -> TopologyEntry | None:
        """Return the entry paired with *jid*, or None if unpaired or dangling."""
        entry = self.get(jid)
        if entry is None or entry.view.integrated is None:
            return None
        return self.get(entry.view.integrated.jid)

    def masters(self) -> list[TopologyEntry]:
        return [e for e in self.sorted_entries() if e.view.role == ROLE_MASTER]

    def ungrouped(self) -> list[TopologyEntry]:
        """Entries that are neither a master nor a slave."""
        return [e for e in self.sorted_entries() if e.view.role == ROLE_NONE]

    def sorted_entries(self) -> list[TopologyEntry]:
        return [self[jid] for jid in sorted(self)]


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
@dataclass
class NotificationEvent:
    """One outcome of the stream decoder: a raw JSON value or an error.

    When ``error`` is set the value is meaningless.
    """

    value: Any = None
    error: Exception | None = None

    @property
    def ended(self) -> bool:
        return isinstance(self.error, StreamEnded)


@dataclass
class ImageInfo:
    url: str = ""
    size: str = ""
    media_type: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "ImageInfo":
        return cls(url=data.get("url", ""), size=data.get("size", ""),
                   media_type=data.get("mediatype", ""))


def _images(items) -> list[ImageInfo]:
    return [ImageInfo.from_dict(i) for i in items or []]


@dataclass
class PrimaryExperienceInfo:
    source: SourceInfo
    state: str = ""
    listeners: list[str] = field(default_factory=list)
    last_used: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "PrimaryExperienceInfo":
        return cls(
            source=SourceInfo.from_dict(data.get("source") or {}),
            state=data.get("state", ""),
            listeners=list(data.get("listener") or []),
            last_used=data.get("lastUsed", ""),
        )


@dataclass
class SourceData:
    primary: str
    primary_jid: str
    primary_experience: PrimaryExperienceInfo

    @classmethod
    def from_dict(cls, data: dict) -> "SourceData":
        return cls(
            primary=data.get("primary", ""),
            primary_jid=data.get("primaryJid", ""),
            primary_experience=PrimaryExperienceInfo.from_dict(
                data.get("primaryExperience") or {}),
        )


@dataclass
class SourceExperienceChangedData:
    primary_experience: PrimaryExperienceInfo

    @classmethod
    def from_dict(cls, data: dict) -> "SourceExperienceChangedData":
        return cls(primary_experience=PrimaryExperienceInfo.from_dict(
            data.get("primaryExperience") or {}))


@dataclass
class NowPlayingStoredMusicData:
    name: str = ""
    album: str = ""
    artist: str = ""
    track_id: str = ""
    track_image: list[ImageInfo] = field(default_factory=list)
    play_queue_id: str = ""
    play_queue_item_id: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "NowPlayingStoredMusicData":
        return cls(
            name=data.get("name", ""),
            album=data.get("album", ""),
            artist=data.get("artist", ""),
            track_id=str(data.get("trackId", "")),
            track_image=_images(data.get("trackImage")),
            play_queue_id=data.get("playQueueId", ""),
            play_queue_item_id=data.get("playQueueItemId", ""),
        )


@dataclass
class NowPlayingNetRadioData:
    name: str = ""
    live_description: str = ""
    station_id: str = ""
    image: list[ImageInfo] = field(default_factory=list)
    play_queue_id: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "NowPlayingNetRadioData":
        return cls(
            name=data.get("name", ""),
            live_description=data.get("liveDescription", ""),
            station_id=data.get("stationId", ""),
            image=_images(data.get("image")),
            play_queue_id=data.get("playQueueId", ""),
        )


@dataclass
class PlayQueueChangedData:
    revision: int = 0
    play_queue_id: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "PlayQueueChangedData":
        return cls(revision=int(data.get("revision", 0)),
                   play_queue_id=data.get("playQueueId", ""))


@dataclass
class ProgressInformationData:
    state: str = ""
    position: int = 0
    total_duration: int = 0
    seek_supported: bool = False
    play_queue_id: str = ""
    play_queue_item_id: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "ProgressInformationData":
        return cls(
            state=data.get("state", ""),
            position=int(data.get("position", 0)),
            total_duration=int(data.get("totalDuration", 0)),
            seek_supported=bool(data.get("seekSupported", False)),
            play_queue_id=data.get("playQueueId", ""),
            play_queue_item_id=data.get("playQueueItemId", ""),
        )


@dataclass
class VolumeData:
    level: int = 0
    muted: bool = False
    minimum: int = 0
    maximum: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "VolumeData":
        speaker = data.get("speaker") or {}
        volume_range = speaker.get("range") or {}
        return cls(
            level=int(speaker.get("level", 0)),
            muted=bool(speaker.get("muted", False)),
            minimum=int(volume_range.get("minimum", 0)),
            maximum=int(volume_range.get("maximum", 0)),
        )


@dataclass
class SoftwareUpdateStatusData:
    state: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "SoftwareUpdateStatusData":
        return cls(state=data.get("state", ""))


@dataclass
class UnknownData:
    """Payload of a (type, kind) pair we have no decoder for; kept as-is."""

    raw: Any = None


NotificationData = Union[
    SourceData,
    SourceExperienceChangedData,
    NowPlayingStoredMusicData,
    NowPlayingNetRadioData,
    PlayQueueChangedData,
    ProgressInformationData,
    VolumeData,
    SoftwareUpdateStatusData,
    UnknownData,
]

NOTIFICATION_TYPES = {
    ("SOURCE", "source"): SourceData,
    ("SOURCE_EXPERIENCE_CHANGED", "source"): SourceExperienceChangedData,
    ("NOW_PLAYING_STORED_MUSIC", "playing"): NowPlayingStoredMusicData,
    ("NOW_PLAYING_NET_RADIO", "playing"): NowPlayingNetRadioData,
    ("PLAY_QUEUE_CHANGED", "playing"): PlayQueueChangedData,
    ("PROGRESS_INFORMATION", "playing"): ProgressInformationData,
    ("VOLUME", "renderer"): VolumeData,
    ("SOFTWARE_UPDATE_STATUS", "device"): SoftwareUpdateStatusData,
}


@dataclass
class Notification:
    timestamp: str
    type: str
    kind: str
    data: NotificationData
    raw_data: Any = None


def decode_notification(value: Any) -> Notification:
    """Decode a streamed ``{"notification": {...}}`` value.

    Raises NotificationDecodeError if the envelope is malformed or a known
    variant's payload is not an object.  Unknown (type, kind) pairs keep
    their payload undecoded in UnknownData.
    """
    if not isinstance(value, dict) or not isinstance(value.get("notification"), dict):
        raise NotificationDecodeError("missing notification envelope")
    envelope = value["notification"]
    timestamp = envelope.get("timestamp", "")
    ntype = envelope.get("type")
    kind = envelope.get("kind", "")
    if not isinstance(ntype, str) or not isinstance(kind, str) or not isinstance(timestamp, str):
        raise NotificationDecodeError("notification timestamp/type/kind must be strings")

    raw = envelope.get("data")
    variant = NOTIFICATION_TYPES.get((ntype, kind))
    if variant is None:
        log.debug("No decoder for notification %s/%s", ntype, kind)
        data = UnknownData(raw=raw)
    else:
        if not isinstance(raw, dict):
            raise NotificationDecodeError(f"{ntype}/{kind} payload is not an object")
        try:
            data = variant.from_dict(raw)
        except (TypeError, ValueError, AttributeError) as e:
            raise NotificationDecodeError(f"{ntype}/{kind} payload: {e}") from e
    return Notification(timestamp=timestamp, type=ntype, kind=kind, data=data, raw_data=raw)
