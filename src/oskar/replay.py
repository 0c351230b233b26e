"""
Playback of sessions recorded by PoseLogger.

Provides functionality to:
- Parse a session file into header, detections, events and footer
- Iterate detections with recorded timing, scaled speed, or as fast as possible
- Act as a pose source by pushing detections into a callback from a thread
- Check a session file for missing detections and truncation
"""

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from .keypoints import Pose
from .logger import SCHEMA_VERSION


@dataclass
class LogHeader:
    schema_version: str
    capture_start: str
    log_format: str = "jsonl"
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_entry(cls, entry: Dict[str, Any]) -> "LogHeader":
        return cls(
            schema_version=entry.get("schema_version", "unknown"),
            capture_start=entry.get("capture_start", ""),
            log_format=entry.get("log_format", "jsonl"),
            metadata=entry.get("metadata") or {},
        )


@dataclass
class LogFooter:
    capture_end: str
    total_detections: int
    total_events: int = 0

    @classmethod
    def from_entry(cls, entry: Dict[str, Any]) -> "LogFooter":
        return cls(
            capture_end=entry.get("capture_end", ""),
            total_detections=int(entry.get("total_detections", 0)),
            total_events=int(entry.get("total_events", 0)),
        )


@dataclass
class DetectionEntry:
    """One recorded pose list."""
    received_at: str
    detection_index: int
    poses: List[Pose]
    timestamp: Optional[float] = None

    def seconds(self) -> float:
        """Source timestamp when recorded, otherwise the wall-clock receive time."""
        if self.timestamp is not None:
            return float(self.timestamp)
        return datetime.fromisoformat(self.received_at).timestamp()


@dataclass
class EventEntry:
    """A recorded stage event."""
    event_type: str
    timestamp: str
    data: Dict[str, Any]
    detection_index: int = 0


class PoseReplay:
    """
    Recorded session that can be stepped through or played back live.

    Usage:
        replay = PoseReplay("logs/20260301_200000.jsonl")

        for entry in replay.replay(realtime=False):
            stream.publish(entry.poses)

        # as a live pose source
        replay.start_realtime_replay(lambda e: stream.publish(e.poses), speed=2.0)
        ...
        replay.stop()
    """

    def __init__(self, log_file: str):
        """
        Args:
            log_file: Session file written by PoseLogger

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If a line is not JSON or holds a malformed pose
        """
        self.path = Path(log_file)
        if not self.path.is_file():
            raise FileNotFoundError(f"Log file not found: {log_file}")

        self.header: Optional[LogHeader] = None
        self.footer: Optional[LogFooter] = None
        self._detections: List[DetectionEntry] = []
        self._events: List[EventEntry] = []

        self._halt = threading.Event()
        self._worker: Optional[threading.Thread] = None

        with open(self.path, 'r', encoding='utf-8') as f:
            for line_no, raw in enumerate(f, start=1):
                if raw.strip():
                    self._ingest(line_no, raw)

    def _ingest(self, line_no: int, raw: str) -> None:
        where = f"{self.path}:{line_no}"
        try:
            entry = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"{where}: invalid JSON ({e})") from e
        if not isinstance(entry, dict):
            raise ValueError(f"{where}: expected an object")

        kind = entry.get("_type")
        if kind == "header":
            self.header = LogHeader.from_entry(entry)
        elif kind == "footer":
            self.footer = LogFooter.from_entry(entry)
        elif kind == "detection":
            try:
                poses = [Pose.from_dict(p) for p in entry.get("poses", [])]
            except ValueError as e:
                raise ValueError(f"{where}: {e}") from e
            self._detections.append(DetectionEntry(
                received_at=entry.get("received_at", ""),
                detection_index=int(entry.get("detection_index", len(self._detections))),
                poses=poses,
                timestamp=entry.get("timestamp"),
            ))
        elif kind == "event":
            self._events.append(EventEntry(
                event_type=entry.get("event_type", ""),
                timestamp=entry.get("timestamp", ""),
                data=entry.get("data") or {},
                detection_index=int(entry.get("detection_index", 0)),
            ))

    @property
    def detection_count(self) -> int:
        return len(self._detections)

    @property
    def detections(self) -> List[DetectionEntry]:
        return list(self._detections)

    @property
    def events(self) -> List[EventEntry]:
        return list(self._events)

    def get_detection_at(self, index: int) -> Optional[DetectionEntry]:
        if 0 <= index < len(self._detections):
            return self._detections[index]
        return None

    def get_events_by_type(self, event_type: str) -> List[EventEntry]:
        return [e for e in self._events if e.event_type == event_type]

    def get_duration_seconds(self) -> float:
        """Time between the first and last detection."""
        if len(self._detections) < 2:
            return 0.0
        return self._detections[-1].seconds() - self._detections[0].seconds()

    def replay(
        self,
        realtime: bool = True,
        speed: float = 1.0,
        start: int = 0,
        end: Optional[int] = None,
        loop: bool = False
    ) -> Iterator[DetectionEntry]:
        """
        Yield recorded detections in order.

        Args:
            realtime: Sleep for the recorded gap (divided by speed) between detections
            speed: Playback speed multiplier, must be positive
            start: First detection (list index)
            end: Stop before this detection (None = to the end)
            loop: Restart from `start` at the end until stop() is called

        Raises:
            ValueError: If speed is not positive

        Each call starts a fresh playback, so an earlier stop() does not
        silence it.
        """
        if speed <= 0:
            raise ValueError("speed must be positive")
        self._halt.clear()
        return self._play(realtime, speed, start, end, loop)

    def _play(
        self,
        realtime: bool,
        speed: float,
        start: int,
        end: Optional[int],
        loop: bool
    ) -> Iterator[DetectionEntry]:
        selected = self._detections[start:end]
        while selected:
            previous: Optional[float] = None
            for entry in selected:
                if self._halt.is_set():
                    return
                now = entry.seconds()
                if realtime and previous is not None and now > previous:
                    # Event.wait so stop() interrupts a long gap
                    if self._halt.wait((now - previous) / speed):
                        return
                previous = now
                yield entry
            if not loop:
                return

    def start_realtime_replay(
        self,
        callback: Callable[[DetectionEntry], None],
        speed: float = 1.0,
        loop: bool = False,
        on_complete: Optional[Callable[[], None]] = None
    ) -> None:
        """
        Play the session on a daemon thread, calling callback per detection.

        Args:
            callback: Receives each DetectionEntry at its recorded time
            speed: Playback speed multiplier
            loop: Repeat until stop()
            on_complete: Called once playback ends or is stopped

        Raises:
            ValueError: If speed is not positive
        """
        # Built here so a stop() racing the thread start is not undone
        entries = self.replay(realtime=True, speed=speed, loop=loop)

        def _run():
            try:
                for entry in entries:
                    callback(entry)
            finally:
                if on_complete:
                    on_complete()

        self._worker = threading.Thread(target=_run, daemon=True)
        self._worker.start()

    def stop(self) -> None:
        self._halt.set()
        if self._worker is not None:
            self._worker.join(timeout=2.0)
            self._worker = None

    @property
    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()


def _missing_indices(indices: List[int]) -> int:
    if not indices:
        return 0
    span = max(indices) - min(indices) + 1
    return span - len(set(indices))


def validate_log_integrity(log_file: str) -> Dict[str, Any]:
    """
    Check a session file.

    A missing header or an unreadable file makes the log invalid. A missing
    footer, a footer count that disagrees with the file, gaps in the
    detection indices and unknown schema versions are warnings.

    Returns:
        {"valid": bool, "errors": [...], "warnings": [...], "stats": {...}}
    """
    errors: List[str] = []
    warnings: List[str] = []

    try:
        replay = PoseReplay(log_file)
    except (FileNotFoundError, ValueError) as e:
        return {"valid": False, "errors": [str(e)], "warnings": [], "stats": {}}

    header = replay.header
    if header is None:
        errors.append("Missing header")
    elif header.schema_version != SCHEMA_VERSION:
        warnings.append(f"Unknown schema version: {header.schema_version}")

    footer = replay.footer
    if footer is None:
        warnings.append("Missing footer (log may be incomplete)")
    elif footer.total_detections != replay.detection_count:
        warnings.append(
            f"Footer reports {footer.total_detections} detection(s), "
            f"log contains {replay.detection_count}"
        )

    detections = replay.detections
    missing = _missing_indices([d.detection_index for d in detections])
    if missing:
        warnings.append(f"{missing} detection(s) missing")

    pose_counts = [len(d.poses) for d in detections]
    return {
        "valid": not errors,
        "errors": errors,
        "warnings": warnings,
        "stats": {
            "total_detections": len(detections),
            "total_poses": sum(pose_counts),
            "max_poses_per_detection": max(pose_counts, default=0),
            "duration_seconds": replay.get_duration_seconds(),
            "events_count": len(replay.events),
        },
    }


