"""
Sensitivity classification for uploaded videos.

Frames are sampled from the start of the clip, classified one at a time by a
pluggable `FrameClassifier`, and the per-frame verdicts are reduced into a
single video-level verdict. The only classifier shipped today is
`RandomFrameClassifier`, a placeholder that flips a weighted coin per frame.
"""

from __future__ import annotations

import asyncio
import logging
import random
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple

from config import settings
from processing.models import FrameSample, FrameVerdict, SensitivityVerdict
from processing.video import sample_frames

logger = logging.getLogger(__name__)

DEFAULT_FLAG_REASONS: Tuple[str, ...] = (
    "Violence detected",
    "Adult content",
    "Disturbing imagery",
    "Hate symbols",
)
FALLBACK_FLAG_REASON = "Sensitive content detected"


@dataclass(frozen=True)
class SensitivityConfig:
    sample_window_seconds: float = 3.0
    sample_fps: float = 0.25
    sample_width: int = 640
    jpeg_quality: int = 5
    flag_probability: float = 0.10
    flag_ratio_threshold: float = 0.15
    random_override_probability: float = 0.0
    reasons: Tuple[str, ...] = DEFAULT_FLAG_REASONS

    @classmethod
    def from_settings(cls) -> "SensitivityConfig":
        return cls(
            sample_window_seconds=float(settings.SENSITIVITY_SAMPLE_WINDOW_SECONDS),
            sample_fps=float(settings.SENSITIVITY_SAMPLE_FPS),
            sample_width=int(settings.SENSITIVITY_SAMPLE_WIDTH),
            jpeg_quality=int(settings.SENSITIVITY_JPEG_QUALITY),
            flag_probability=float(settings.SENSITIVITY_FLAG_PROBABILITY),
            flag_ratio_threshold=float(settings.SENSITIVITY_FLAG_RATIO_THRESHOLD),
            random_override_probability=float(settings.SENSITIVITY_RANDOM_OVERRIDE_PROBABILITY),
        )


class FrameClassifier(ABC):
    """Classifies a single sampled frame."""

    @abstractmethod
    def classify(self, frame: FrameSample) -> FrameVerdict:
        raise NotImplementedError


class RandomFrameClassifier(FrameClassifier):
    """Placeholder model: flags each frame independently with a fixed probability."""

    def __init__(self, config: SensitivityConfig, rng: Optional[random.Random] = None) -> None:
        self.config = config
        self.rng = rng or random.Random()

    def classify(self, frame: FrameSample) -> FrameVerdict:
        if self.rng.random() < self.config.flag_probability:
            return FrameVerdict(
                index=frame.index,
                flagged=True,
                confidence=0.8 + self.rng.random() * 0.1,
                reason=self.rng.choice(self.config.reasons) if self.config.reasons else FALLBACK_FLAG_REASON,
            )
        return FrameVerdict(
            index=frame.index,
            flagged=False,
            confidence=0.85 + self.rng.random() * 0.1,
        )


def aggregate_verdicts(verdicts: Sequence[FrameVerdict], threshold: float) -> SensitivityVerdict:
    """Reduce frame verdicts to a video verdict: flagged iff flagged/total exceeds `threshold`."""
    total = len(verdicts)
    flagged = [v for v in verdicts if v.flagged]
    safe = [v for v in verdicts if not v.flagged]
    ratio = len(flagged) / total if total else 0.0

    if total and ratio > threshold:
        return SensitivityVerdict(
            status="flagged",
            reason=flagged[0].reason or FALLBACK_FLAG_REASON,
            confidence=max(v.confidence for v in flagged),
            flagged_frames=len(flagged),
            total_frames=total,
        )

    return SensitivityVerdict(
        status="safe",
        reason="",
        confidence=sum(v.confidence for v in safe) / max(len(safe), 1),
        flagged_frames=len(flagged),
        total_frames=total,
    )


class SensitivityAnalyzer:
    """Samples frames from a local video and runs them through a frame classifier."""

    def __init__(
        self,
        classifier: Optional[FrameClassifier] = None,
        config: Optional[SensitivityConfig] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config or SensitivityConfig.from_settings()
        self.rng = rng or random.Random()
        self.classifier = classifier or RandomFrameClassifier(self.config, self.rng)

    def classify_frames(self, frames: Sequence[FrameSample]) -> SensitivityVerdict:
        verdicts = [self.classifier.classify(frame) for frame in frames]
        verdict = aggregate_verdicts(verdicts, self.config.flag_ratio_threshold)
        if (
            verdict.status == "safe"
            and self.config.random_override_probability > 0
            and self.rng.random() < self.config.random_override_probability
        ):
            logger.info("Random override flagged an otherwise safe verdict")
            verdict = SensitivityVerdict(
                status="flagged",
                reason=self.rng.choice(self.config.reasons) if self.config.reasons else FALLBACK_FLAG_REASON,
                confidence=verdict.confidence,
                flagged_frames=verdict.flagged_frames,
                total_frames=verdict.total_frames,
            )
        return verdict

    def analyze(self, video_path: str) -> SensitivityVerdict:
        with tempfile.TemporaryDirectory(prefix="vsa_frames_", dir=_temp_root()) as frames_dir:
            frames = sample_frames(
                video_path,
                frames_dir,
                window_seconds=self.config.sample_window_seconds,
                fps=self.config.sample_fps,
                width=self.config.sample_width,
                quality=self.config.jpeg_quality,
            )
            logger.info("Extracted %s frames for sensitivity analysis", len(frames))
            return self.classify_frames(frames)

    async def analyze_async(self, video_path: str) -> SensitivityVerdict:
        return await asyncio.to_thread(self.analyze, video_path)


def _temp_root() -> Optional[str]:
    root = Path(settings.MEDIA_TEMP_DIR)
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError:
        return None
    return str(root)
