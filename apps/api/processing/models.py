from dataclasses import dataclass
from typing import Literal, Optional


SensitivityLabel = Literal["safe", "flagged"]


@dataclass(frozen=True)
class VideoInfo:
    duration: float  # seconds
    width: int
    height: int
    codec: str


@dataclass(frozen=True)
class FrameSample:
    index: int
    path: str


@dataclass(frozen=True)
class FrameVerdict:
    index: int
    flagged: bool
    confidence: float
    reason: Optional[str] = None


@dataclass(frozen=True)
class SensitivityVerdict:
    status: SensitivityLabel
    reason: str
    confidence: float
    flagged_frames: int
    total_frames: int
