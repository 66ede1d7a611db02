"""Typed view over the vendor's key/value bucket snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, Mapping


class BucketType(str, Enum):
    """Bucket variants keyed by the vendor's object-key prefix."""

    remote_sensor = "kryptonite"
    shared_state = "shared"
    device = "device"
    location = "where"
    link_settings = "rcs_settings"
    other = "other"

    @classmethod
    def from_prefix(cls, prefix: str) -> "BucketType":
        for member in cls:
            if member is not cls.other and member.value == prefix:
                return member
        return cls.other


# Bucket types requested on every poll. The web app's own app_launch call
# omits the thermostat types, so a direct poll always asks for them.
KNOWN_BUCKET_TYPES = (
    "buckets",
    "structure",
    "where",
    "device",
    "shared",
    "kryptonite",
    "rcs_settings",
    "user",
)


@dataclass(slots=True, frozen=True)
class Bucket:
    """A single ``updated_buckets`` entry, classified by its key prefix."""

    key: str
    type: BucketType
    serial: str
    value: Mapping[str, Any]

    @classmethod
    def from_key(cls, key: str, value: Mapping[str, Any]) -> "Bucket":
        prefix, _, serial = key.partition(".")
        return cls(key=key, type=BucketType.from_prefix(prefix), serial=serial, value=value)


def flatten_buckets(entries: Iterable[Any]) -> Dict[str, Bucket]:
    """Map ``object_key`` to its bucket; the last entry for a key wins.

    A later entry whose value is not a mapping removes the key.
    """

    buckets: Dict[str, Bucket] = {}
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        key = entry.get("object_key")
        value = entry.get("value")
        if not isinstance(key, str) or not key:
            continue
        if not isinstance(value, Mapping):
            buckets.pop(key, None)
            continue
        buckets[key] = Bucket.from_key(key, value)
    return buckets


def buckets_of_type(buckets: Mapping[str, Bucket], bucket_type: BucketType) -> Iterator[Bucket]:
    for bucket in buckets.values():
        if bucket.type is bucket_type:
            yield bucket
