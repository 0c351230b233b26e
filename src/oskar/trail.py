"""
Motion trails: a time-windowed buffer of past stick geometry.

Snapshots are captured every `interval` frames, aged once per frame and
evicted once older than `max_age`. Survivors fade linearly with age.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple, Union

from .geometry import Segment


@dataclass
class TrailSnapshot:
    """Segments captured at one instant."""
    age: int = 0
    segments: List[Segment] = field(default_factory=list)


@dataclass(frozen=True)
class NoTrail:
    """Trail policy for variants that never draw trails."""


@dataclass(frozen=True)
class DecayingTrail:
    """Trail policy: capture cadence, lifetime and full-strength stroke."""
    interval: int = 3
    max_age: int = 60
    opacity: float = 255.0
    stroke_weight: float = 6.0
    fade_width: bool = True


TrailPolicy = Union[NoTrail, DecayingTrail]


class TrailBuffer:
    """
    Ring of past segment snapshots with linear age-based fade.

    Usage:
        trail = TrailBuffer(interval=3, max_age=60)

        # once per render frame
        for segment, fade in trail.advance(lambda: current_segments):
            draw(segment, alpha=fade)
    """

    def __init__(self, interval: int = 3, max_age: int = 60):
        self.interval = int(interval)
        self.max_age = int(max_age)
        self._history: List[TrailSnapshot] = []
        self._frame_counter = 0

    @classmethod
    def from_policy(cls, policy: DecayingTrail) -> "TrailBuffer":
        return cls(interval=policy.interval, max_age=policy.max_age)

    def update_parameters(self, interval: Optional[int] = None, max_age: Optional[int] = None) -> None:
        """Change cadence or lifetime; stored snapshots keep their age."""
        if interval is not None:
            self.interval = int(interval)
        if max_age is not None:
            self.max_age = int(max_age)

    def capture(self, segments: Sequence[Segment]) -> None:
        if not segments:
            return
        self._history.append(TrailSnapshot(age=0, segments=list(segments)))

    def tick(self) -> List[Tuple[Segment, float]]:
        """
        Age every snapshot by one frame and evict expired ones.

        Returns:
            (segment, fade) for every surviving segment, oldest snapshot first.
            fade is 1 - age / max_age.
        """
        survivors: List[TrailSnapshot] = []
        for snapshot in self._history:
            snapshot.age += 1
            if snapshot.age > self.max_age:
                continue
            survivors.append(snapshot)
        self._history = survivors

        faded: List[Tuple[Segment, float]] = []
        for snapshot in self._history:
            fade = 1.0 - snapshot.age / self.max_age if self.max_age > 0 else 0.0
            for segment in snapshot.segments:
                faded.append((segment, fade))
        return faded

    def advance(self, segments_provider: Callable[[], Sequence[Segment]]) -> List[Tuple[Segment, float]]:
        """Per-frame entry point: throttled capture followed by tick()."""
        self._frame_counter += 1
        if self._frame_counter >= self.interval:
            self._frame_counter = 0
            self.capture(segments_provider())
        return self.tick()

    def clear(self) -> None:
        self._history = []
        self._frame_counter = 0

    @property
    def snapshots(self) -> List[TrailSnapshot]:
        return list(self._history)

    @property
    def frame_counter(self) -> int:
        return self._frame_counter

    def __len__(self) -> int:
        return len(self._history)
