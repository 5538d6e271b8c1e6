"""
Segment calibration history persistence using YAML storage.

Stores the committed altitude bias and error totals of calibrated flight
segments so a later run can reapply the corrections without repeating the
search (see ``apply_committed_biases``).

Usage Example:
    >>> history = SegmentCalibrationHistory('flight_042_calibration.yaml')
    >>> history.add_entry(SegmentCalibrationEntry.from_segment('flight-042', segment))
    >>> history.save()
    >>>
    >>> segments = history.segments_for('flight-042')
    >>> corrected = apply_committed_biases(segments, poses)
"""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional
import logging

import yaml

from thermal_geolocation.segment_calibration import FlightSegment

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_DIR = '.thermal-geolocation'
DEFAULT_HISTORY_FILE = 'segment_calibration_history.yaml'


@dataclass
class SegmentCalibrationEntry:
    """
    One calibrated segment of one flight.

    Attributes:
        flight_name: Identifier of the flight (e.g., the video file stem)
        timestamp: When the calibration was performed
        segment: The calibrated segment and its error totals
    """
    flight_name: str
    timestamp: datetime
    segment: FlightSegment

    @classmethod
    def from_segment(cls, flight_name: str, segment: FlightSegment) -> 'SegmentCalibrationEntry':
        return cls(flight_name=flight_name, timestamp=datetime.now(), segment=segment)

    def to_dict(self) -> dict:
        return {
            'flight_name': self.flight_name,
            'timestamp': self.timestamp.isoformat(),
            'segment': self.segment.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'SegmentCalibrationEntry':
        """
        Create an entry from a dictionary loaded from YAML.

        Raises:
            ValueError: If required fields are missing or invalid
        """
        try:
            return cls(
                flight_name=str(data['flight_name']),
                timestamp=datetime.fromisoformat(data['timestamp']),
                segment=FlightSegment.from_dict(data['segment']),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid calibration history entry: {e}") from e


class SegmentCalibrationHistory:
    """
    Manages segment calibration results with YAML file persistence.

    Re-adding a segment for the same flight replaces the previous entry.
    The default storage location is ~/.thermal-geolocation/segment_calibration_history.yaml.

    Attributes:
        storage_path: Path to the YAML storage file
        entries: Entries currently loaded, newest first
    """

    def __init__(self, storage_path: Optional[str] = None):
        if storage_path is None:
            self.storage_path = Path.home() / DEFAULT_HISTORY_DIR / DEFAULT_HISTORY_FILE
        else:
            self.storage_path = Path(storage_path)

        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        self.entries: List[SegmentCalibrationEntry] = []

        if self.storage_path.exists():
            self.load()

    def add_entry(self, entry: SegmentCalibrationEntry) -> None:
        self.entries = [
            e for e in self.entries
            if not (e.flight_name == entry.flight_name and e.segment.segment_id == entry.segment.segment_id)
        ]
        self.entries.append(entry)
        self.entries.sort(key=lambda e: e.timestamp, reverse=True)

    def get_entries(self, flight_name: Optional[str] = None) -> List[SegmentCalibrationEntry]:
        if flight_name is None:
            return self.entries.copy()
        return [e for e in self.entries if e.flight_name == flight_name]

    def segments_for(self, flight_name: str) -> List[FlightSegment]:
        """Calibrated segments of a flight, ordered by segment id."""
        return sorted(
            (e.segment for e in self.get_entries(flight_name)),
            key=lambda s: s.segment_id,
        )

    def save(self) -> None:
        """
        Persist the history to the YAML file.

        Raises:
            IOError: If the file cannot be written
        """
        data = {'segments': [entry.to_dict() for entry in self.entries]}
        with open(self.storage_path, 'w') as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        logger.debug(f"Saved {len(self.entries)} segment calibration entries to {self.storage_path}")

    def load(self) -> None:
        """
        Load the history from the YAML file.

        Raises:
            yaml.YAMLError: If the YAML file is malformed
            ValueError: If entry data is invalid or missing required fields
        """
        if not self.storage_path.exists():
            self.entries = []
            return

        with open(self.storage_path, 'r') as f:
            data = yaml.safe_load(f)

        if data is None or 'segments' not in data:
            self.entries = []
            return

        self.entries = [SegmentCalibrationEntry.from_dict(d) for d in data['segments']]
        self.entries.sort(key=lambda e: e.timestamp, reverse=True)

    def clear(self, flight_name: Optional[str] = None) -> None:
        if flight_name is None:
            self.entries = []
        else:
            self.entries = [e for e in self.entries if e.flight_name != flight_name]
