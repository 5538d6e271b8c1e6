"""Single-frame observations and their height status.

An ImageObservation is one sighting of a hot object in one video frame: a
pixel bounding box plus heat statistics. It refers to the tracked object that
claimed it by integer id only; the object itself lives in the ObjectStore.

HeightStatus records whether a height/location has been derived for the
observation:

    NotComputed  -> nothing attempted yet
    ComputedBy   -> derived successfully, with the method used
    Failed       -> attempted and rejected, with the reason

``merge_height_status`` combines an existing status with a new attempt. A
successful computation is never replaced by a later attempt.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Union

from thermal_geolocation.types import Pixels, PixelsFloat


class HeightMethod(str, Enum):
    """How an observation's location and height were derived."""

    LINE_OF_SIGHT = "LOS"


@dataclass(frozen=True)
class NotComputed:
    @property
    def label(self) -> str:
        return ""


@dataclass(frozen=True)
class ComputedBy:
    method: HeightMethod

    @property
    def label(self) -> str:
        return self.method.value


@dataclass(frozen=True)
class Failed:
    reason: str

    @property
    def label(self) -> str:
        return "NoResult"


HeightStatus = Union[NotComputed, ComputedBy, Failed]

NOT_COMPUTED = NotComputed()


def merge_height_status(current: HeightStatus, attempt: HeightStatus) -> HeightStatus:
    """Combine an existing status with the outcome of a new attempt.

    A ComputedBy status is kept regardless of the attempt. Otherwise the
    attempt wins, except that NotComputed never overwrites a Failed.
    """
    if isinstance(current, ComputedBy):
        return current
    if isinstance(attempt, NotComputed):
        return current
    return attempt


@dataclass(frozen=True)
class ImageObservation:
    """One sighting of a hot object in one frame.

    Attributes:
        observation_id: Unique observation identifier.
        step_id: Flight step of the frame the object was seen in.
        box_x: Left edge of the bounding box in pixels.
        box_y: Top edge of the bounding box in pixels.
        box_width: Bounding box width in pixels.
        box_height: Bounding box height in pixels.
        num_hot_pixels: Hot pixels inside the box.
        min_heat: Minimum heat value inside the box.
        max_heat: Maximum heat value inside the box.
        object_id: Id of the tracked object that claimed this observation.
        height_status: Outcome of the latest location/height derivation.
    """

    observation_id: int
    step_id: int
    box_x: Pixels
    box_y: Pixels
    box_width: Pixels
    box_height: Pixels
    num_hot_pixels: int = 0
    min_heat: int = 0
    max_heat: int = 0
    object_id: Optional[int] = None
    height_status: HeightStatus = NOT_COMPUTED

    def __post_init__(self) -> None:
        if self.box_width < 0 or self.box_height < 0:
            raise ValueError(
                f"Observation {self.observation_id}: box size must be non-negative, "
                f"got {self.box_width}x{self.box_height}"
            )
        if self.num_hot_pixels < 0:
            raise ValueError(
                f"Observation {self.observation_id}: hot pixel count must be non-negative, "
                f"got {self.num_hot_pixels}"
            )

    @property
    def centroid(self) -> tuple:
        """Box centre as (px, py)."""
        return (
            PixelsFloat(self.box_x + self.box_width / 2.0),
            PixelsFloat(self.box_y + self.box_height / 2.0),
        )

    def claimed_by(self, object_id: int) -> ImageObservation:
        return replace(self, object_id=object_id)

    def with_height_status(self, attempt: HeightStatus) -> ImageObservation:
        return replace(self, height_status=merge_height_status(self.height_status, attempt))

    def reset_height_status(self) -> ImageObservation:
        return replace(self, height_status=NOT_COMPUTED)

    @classmethod
    def from_dict(cls, data: dict) -> ImageObservation:
        try:
            return cls(
                observation_id=int(data['observation_id']),
                step_id=int(data['step_id']),
                box_x=Pixels(int(data['box_x'])),
                box_y=Pixels(int(data['box_y'])),
                box_width=Pixels(int(data.get('box_width', 1))),
                box_height=Pixels(int(data.get('box_height', 1))),
                num_hot_pixels=int(data.get('num_hot_pixels', 0)),
                min_heat=int(data.get('min_heat', 0)),
                max_heat=int(data.get('max_heat', 0)),
            )
        except KeyError as e:
            raise ValueError(f"Observation entry missing required field: {e}") from e
