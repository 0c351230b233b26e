"""
Session recording for the pose stream.

Provides functionality to:
- Record every published detection (smoothed, masked poses) to a JSONL file
- Record stage events (calibration, trail toggle, mask edits, variant changes)
- Frame each session with header/footer lines so it can be replayed and checked
"""

import json
import queue
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, TextIO

from .keypoints import Pose, poses_to_dicts


SCHEMA_VERSION = "1.0"


def _now() -> str:
    return datetime.now().isoformat()


class PoseLogger:
    """
    Thread-safe JSONL recorder for detections and stage events.

    Only the writer thread touches the open file; callers enqueue lines.
    The header is the first queued line and the footer the last, so the
    file order always matches the call order.

    Usage:
        logger = PoseLogger(log_dir="./logs")
        path = logger.start_recording(metadata={"source_size": [640, 480]})
        logger.log_detection(poses, timestamp=0.033)
        logger.log_event("calibration", {"base_length": 412.5})
        summary = logger.stop_recording()
    """

    SCHEMA_VERSION = SCHEMA_VERSION

    def __init__(self, log_dir: str = "./logs"):
        """
        Args:
            log_dir: Directory for session files (created if missing)
        """
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._pending: "queue.Queue[Optional[Dict[str, Any]]]" = queue.Queue()
        self._writer: Optional[threading.Thread] = None
        self._session_file: Optional[Path] = None
        self._started_at: Optional[str] = None
        self._recording = False
        self._detections = 0
        self._events = 0

    def start_recording(
        self,
        session_name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> str:
        """
        Open a new session file.

        Args:
            session_name: File stem (default: current date and time)
            metadata: Extra header fields, e.g. the source frame size

        Returns:
            Path of the session file

        Raises:
            RuntimeError: If a session is already open
        """
        with self._lock:
            if self._recording:
                raise RuntimeError("Recording already in progress")

            name = session_name or datetime.now().strftime("%Y%m%d_%H%M%S")
            path = self.log_dir / f"{name}.jsonl"
            handle = open(path, 'w', encoding='utf-8')

            self._started_at = _now()
            self._session_file = path
            self._detections = 0
            self._events = 0

            header: Dict[str, Any] = {
                "_type": "header",
                "schema_version": self.SCHEMA_VERSION,
                "capture_start": self._started_at,
                "log_format": "jsonl",
                "content": "poses",
            }
            if metadata:
                header["metadata"] = metadata
            self._pending.put(header)

            self._writer = threading.Thread(target=self._drain, args=(handle,), daemon=True)
            self._writer.start()
            self._recording = True
            return str(path)

    def stop_recording(self) -> Dict[str, Any]:
        """
        Write the footer, close the session file and summarize the session.

        Returns:
            Session summary, or {"status": "not_recording"} if none was open
        """
        with self._lock:
            if not self._recording:
                return {"status": "not_recording"}
            self._recording = False

            ended_at = _now()
            self._pending.put({
                "_type": "footer",
                "capture_end": ended_at,
                "total_detections": self._detections,
                "total_events": self._events,
            })
            self._pending.put(None)
            if self._writer is not None:
                self._writer.join(timeout=5.0)

            summary = {
                "log_file": str(self._session_file),
                "start_time": self._started_at,
                "end_time": ended_at,
                "total_detections": self._detections,
                "total_events": self._events,
            }
            self._writer = None
            self._session_file = None
            self._detections = 0
            self._events = 0
            return summary

    def log_detection(self, poses: Sequence[Pose], timestamp: Optional[float] = None) -> int:
        """
        Queue one published pose list.

        Args:
            poses: Poses as handed to the render loop
            timestamp: Source timestamp in seconds, when the source has one

        Returns:
            Zero-based index of this detection within the session

        Raises:
            RuntimeError: If no session is open
        """
        with self._lock:
            if not self._recording:
                raise RuntimeError("Not currently recording")
            index = self._detections
            self._detections += 1
            self._pending.put({
                "_type": "detection",
                "received_at": _now(),
                "detection_index": index,
                "timestamp": timestamp,
                "poses": poses_to_dicts(poses),
            })
        return index

    def log_event(self, event_type: str, event_data: Dict[str, Any]) -> None:
        """
        Queue a stage event, tagged with the number of detections so far.

        Raises:
            RuntimeError: If no session is open
        """
        with self._lock:
            if not self._recording:
                raise RuntimeError("Not currently recording")
            self._events += 1
            self._pending.put({
                "_type": "event",
                "event_type": event_type,
                "timestamp": _now(),
                "detection_index": self._detections,
                "data": event_data,
            })

    def _drain(self, handle: TextIO) -> None:
        with handle:
            while True:
                line = self._pending.get()
                if line is None:
                    return
                handle.write(json.dumps(line) + '\n')
                handle.flush()

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def current_log_file(self) -> Optional[str]:
        return str(self._session_file) if self._session_file else None

    @property
    def detection_count(self) -> int:
        return self._detections


def _read_header(path: Path) -> Optional[Dict[str, Any]]:
    with open(path, 'r', encoding='utf-8') as fp:
        first = fp.readline()
    try:
        header = json.loads(first)
    except json.JSONDecodeError:
        return None
    if isinstance(header, dict) and header.get("_type") == "header":
        return header
    return None


def list_log_files(log_dir: str = "./logs") -> List[Dict[str, Any]]:
    """
    Describe the session files in a directory, newest name first.

    Files without a readable header get schema_version "unknown".
    """
    root = Path(log_dir)
    if not root.exists():
        return []

    sessions = []
    for path in sorted(root.glob("*.jsonl"), reverse=True):
        stat = path.stat()
        header = _read_header(path) or {}
        sessions.append({
            "path": str(path),
            "name": path.stem,
            "size_bytes": stat.st_size,
            "modified": datetime.fromtimestamp(stat.st_mtime).isoformat(),
            "schema_version": header.get("schema_version", "unknown"),
            "capture_start": header.get("capture_start"),
        })
    return sessions
