"""
Resource identifiers and records.

A resource is a named, versioned Feature or Label stream of entity-keyed
observations. Training sets are identified the same way.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Tuple

from offline_store.errors import (
    InvalidRecordError,
    InvalidResourceIDError,
    InvalidTrainingSetDefError,
)


class ResourceType(Enum):
    """Kinds of resource the offline store persists."""

    FEATURE = "feature"
    LABEL = "label"
    TRAINING_SET = "trainingset"


# Opaque identifier of a materialized snapshot, derived from a feature name.
MaterializationID = str


@dataclass(frozen=True)
class ResourceID:
    name: str
    variant: str
    type: ResourceType

    def check(self, *expected: ResourceType) -> None:
        """Raise InvalidResourceIDError unless the type is one of `expected`."""
        if self.type not in expected:
            raise InvalidResourceIDError(self, expected)


def _ensure_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


@dataclass(frozen=True)
class ResourceRecord:
    """
    One observation of a feature or label for one entity at one time.
    Naive timestamps are read as UTC.
    """

    entity: str
    value: Any
    ts: datetime

    def __post_init__(self):
        if isinstance(self.ts, datetime):
            object.__setattr__(self, "ts", _ensure_utc(self.ts))

    def check(self) -> None:
        if not self.entity:
            raise InvalidRecordError("resource record must have a non-empty entity")
        if not isinstance(self.ts, datetime):
            raise InvalidRecordError(
                f"resource record for entity {self.entity!r} has no valid timestamp"
            )


@dataclass(frozen=True)
class TrainingSetDef:
    """A label joined against an ordered list of features."""

    id: ResourceID
    label: Optional[ResourceID]
    features: Tuple[ResourceID, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "features", tuple(self.features))

    def check(self) -> None:
        self.id.check(ResourceType.TRAINING_SET)
        if self.label is None:
            raise InvalidTrainingSetDefError(
                f"training set {self.id.name} ({self.id.variant}) has no label"
            )
        if not self.features:
            raise InvalidTrainingSetDefError(
                f"training set {self.id.name} ({self.id.variant}) has no features"
            )
        self.label.check(ResourceType.LABEL)
        for feature in self.features:
            feature.check(ResourceType.FEATURE)
        # Each feature becomes a column named after its table.
        if len(set(self.features)) != len(self.features):
            raise InvalidTrainingSetDefError(
                f"training set {self.id.name} ({self.id.variant}) lists a feature twice"
            )
