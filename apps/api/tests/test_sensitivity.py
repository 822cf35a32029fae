import os
import random
from pathlib import Path
from unittest.mock import patch

import pytest

from processing.models import FrameSample, FrameVerdict
from processing.sensitivity import (
    DEFAULT_FLAG_REASONS,
    FALLBACK_FLAG_REASON,
    FrameClassifier,
    RandomFrameClassifier,
    SensitivityAnalyzer,
    SensitivityConfig,
    aggregate_verdicts,
)


THRESHOLD = 0.15


def _verdicts(flagged: int, total: int):
    verdicts = []
    for index in range(total):
        if index < flagged:
            verdicts.append(FrameVerdict(index=index, flagged=True, confidence=0.8 + index / 100, reason=f"reason-{index}"))
        else:
            verdicts.append(FrameVerdict(index=index, flagged=False, confidence=0.9))
    return verdicts


@pytest.mark.parametrize(
    "flagged,expected",
    [
        (0, "safe"),
        (1, "flagged"),
        (5, "flagged"),
    ],
)
def test_aggregate_status_depends_only_on_flag_ratio(flagged, expected):
    result = aggregate_verdicts(_verdicts(flagged, 5), THRESHOLD)

    assert result.status == expected
    assert result.flagged_frames == flagged
    assert result.total_frames == 5


def test_aggregate_ratio_at_threshold_is_safe():
    result = aggregate_verdicts(_verdicts(1, 5), threshold=0.2)

    assert result.status == "safe"
    assert result.reason == ""


def test_aggregate_flagged_uses_first_flagged_reason_and_max_confidence():
    result = aggregate_verdicts(_verdicts(3, 5), THRESHOLD)

    assert result.reason == "reason-0"
    assert result.confidence == pytest.approx(0.82)


def test_aggregate_flagged_frame_without_reason_falls_back():
    verdicts = [FrameVerdict(index=0, flagged=True, confidence=0.85)]

    assert aggregate_verdicts(verdicts, THRESHOLD).reason == FALLBACK_FLAG_REASON


def test_aggregate_with_no_frames_is_safe():
    result = aggregate_verdicts([], THRESHOLD)

    assert result.status == "safe"
    assert result.total_frames == 0
    assert result.confidence == 0.0


def test_aggregate_safe_confidence_is_mean_of_safe_frames():
    verdicts = [
        FrameVerdict(index=0, flagged=False, confidence=0.86),
        FrameVerdict(index=1, flagged=False, confidence=0.94),
    ]

    assert aggregate_verdicts(verdicts, THRESHOLD).confidence == pytest.approx(0.90)


def test_random_classifier_respects_probability_extremes():
    frames = [FrameSample(index=i, path=f"/frames/{i}.jpg") for i in range(10)]
    never = RandomFrameClassifier(SensitivityConfig(flag_probability=0.0), random.Random(1))
    always = RandomFrameClassifier(SensitivityConfig(flag_probability=1.0), random.Random(1))

    assert not any(never.classify(frame).flagged for frame in frames)
    flagged = [always.classify(frame) for frame in frames]
    assert all(v.flagged for v in flagged)
    assert all(v.reason in DEFAULT_FLAG_REASONS for v in flagged)
    assert [v.index for v in flagged] == list(range(10))


def test_random_classifier_is_reproducible_with_seeded_rng():
    config = SensitivityConfig(flag_probability=0.35)
    frames = [FrameSample(index=i, path=f"/frames/{i}.jpg") for i in range(20)]

    first = [RandomFrameClassifier(config, random.Random(42)).classify(f) for f in frames]
    second = [RandomFrameClassifier(config, random.Random(42)).classify(f) for f in frames]

    assert first == second


class _StaticClassifier(FrameClassifier):
    def __init__(self, flagged_indexes):
        self.flagged_indexes = set(flagged_indexes)
        self.seen = []

    def classify(self, frame):
        self.seen.append(frame.index)
        if frame.index in self.flagged_indexes:
            return FrameVerdict(index=frame.index, flagged=True, confidence=0.99, reason="Custom model flag")
        return FrameVerdict(index=frame.index, flagged=False, confidence=0.9)


def test_analyzer_accepts_pluggable_classifier_in_frame_order():
    classifier = _StaticClassifier({2})
    analyzer = SensitivityAnalyzer(classifier=classifier, config=SensitivityConfig(flag_ratio_threshold=0.15))
    frames = [FrameSample(index=i, path=f"/frames/{i}.jpg") for i in range(4)]

    verdict = analyzer.classify_frames(frames)

    assert classifier.seen == [0, 1, 2, 3]
    assert verdict.status == "flagged"
    assert verdict.reason == "Custom model flag"


def test_random_override_flags_safe_verdict_when_enabled():
    analyzer = SensitivityAnalyzer(
        classifier=_StaticClassifier(set()),
        config=SensitivityConfig(random_override_probability=1.0),
        rng=random.Random(3),
    )

    verdict = analyzer.classify_frames([FrameSample(index=0, path="/frames/0.jpg")])

    assert verdict.status == "flagged"
    assert verdict.reason in DEFAULT_FLAG_REASONS


def test_random_override_disabled_by_default():
    analyzer = SensitivityAnalyzer(classifier=_StaticClassifier(set()), config=SensitivityConfig())

    verdict = analyzer.classify_frames([FrameSample(index=0, path="/frames/0.jpg")])

    assert verdict.status == "safe"


def test_analyze_samples_into_temp_dir_and_cleans_up(media_dirs):
    captured = {}

    def _fake_sample_frames(video_path, output_dir, window_seconds, fps, width, quality=5):
        captured["dir"] = output_dir
        captured["args"] = (video_path, window_seconds, fps, width, quality)
        frame = Path(output_dir) / "frame_001.jpg"
        frame.write_bytes(b"jpeg")
        return [FrameSample(index=0, path=str(frame))]

    config = SensitivityConfig(sample_window_seconds=2.0, sample_fps=0.5, sample_width=320, jpeg_quality=7)
    analyzer = SensitivityAnalyzer(classifier=_StaticClassifier(set()), config=config)
    with patch("processing.sensitivity.sample_frames", side_effect=_fake_sample_frames):
        verdict = analyzer.analyze("/videos/clip.mp4")

    assert verdict.status == "safe"
    assert verdict.total_frames == 1
    assert captured["args"] == ("/videos/clip.mp4", 2.0, 0.5, 320, 7)
    assert not os.path.exists(captured["dir"])


def test_config_from_settings_reads_sensitivity_knobs():
    with (
        patch("processing.sensitivity.settings.SENSITIVITY_FLAG_RATIO_THRESHOLD", 0.4),
        patch("processing.sensitivity.settings.SENSITIVITY_FLAG_PROBABILITY", 0.25),
        patch("processing.sensitivity.settings.SENSITIVITY_RANDOM_OVERRIDE_PROBABILITY", 0.35),
    ):
        config = SensitivityConfig.from_settings()

    assert config.flag_ratio_threshold == 0.4
    assert config.flag_probability == 0.25
    assert config.random_override_probability == 0.35
