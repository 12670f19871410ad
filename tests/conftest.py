"""Synthetic stop-consonant clips shared across the test suite."""

import numpy as np
import pytest

from votdetect.types import Waveform

SR = 16000


def _square(n: int, amplitude: float, f0: float, sr: int = SR) -> np.ndarray:
    """Square wave starting on a positive half period."""
    half_period = int(sr / (2 * f0))
    idx = np.arange(n)
    return np.where((idx // half_period) % 2 == 0, amplitude, -amplitude)


def make_positive_clip(
    burst_ms: float = 100.0,
    voicing_ms: float = 110.0,
    total_ms: float = 300.0,
    amplitude: float = 0.5,
    f0: float = 100.0,
    sr: int = SR,
) -> Waveform:
    """Low noise, 10 ms of silence, a one-sample burst, decaying aspiration,
    then a square-wave 'vowel' from voicing_ms to the end."""
    n = int(sr * total_ms / 1000)
    burst = int(sr * burst_ms / 1000)
    voicing = int(sr * voicing_ms / 1000)
    silence = burst - int(sr * 0.010)

    samples = np.zeros(n)
    rng = np.random.RandomState(0)
    samples[:silence] = 0.001 * rng.randn(silence)
    samples[burst] = 1.0
    i = np.arange(voicing - burst - 1)
    samples[burst + 1:voicing] = (
        0.3 * np.exp(-i / 32) * np.sin(2 * np.pi * 4000 * i / sr + 0.3)
    )
    samples[voicing:] = _square(n - voicing, amplitude, f0, sr)
    return Waveform(samples=samples, sample_rate=sr, source="positive.wav")


def make_negative_clip(
    prevoicing_ms: float = 50.0,
    burst_ms: float = 150.0,
    total_ms: float = 400.0,
    sr: int = SR,
) -> Waveform:
    """Low noise, 10 ms of silence, quiet square-wave prevoicing, a click
    release with a 1 ms gap on either side, then a loud square-wave vowel."""
    n = int(sr * total_ms / 1000)
    prevoicing = int(sr * prevoicing_ms / 1000)
    burst = int(sr * burst_ms / 1000)
    gap = int(sr * 0.00125)
    silence = prevoicing - int(sr * 0.010)
    vowel = burst + int(sr * 0.001)

    samples = np.zeros(n)
    rng = np.random.RandomState(0)
    samples[:silence] = 0.001 * rng.randn(silence)
    samples[prevoicing:burst - gap] = _square(burst - gap - prevoicing, 0.1, 100.0, sr)
    samples[burst] = 1.0
    samples[vowel:] = _square(n - vowel, 0.8, 100.0, sr)
    return Waveform(samples=samples, sample_rate=sr, source="negative.wav")


@pytest.fixture
def positive_clip() -> Waveform:
    return make_positive_clip()


@pytest.fixture
def negative_clip() -> Waveform:
    return make_negative_clip()


@pytest.fixture
def clip_factory():
    """Access to the clip builders with custom timings."""
    return {"positive": make_positive_clip, "negative": make_negative_clip}


@pytest.fixture
def positive_examples():
    """Three annotated positive clips with different burst/voicing timings."""
    from votdetect.types import LandmarkSet, TrainingExample

    examples = []
    for burst_ms, voicing_ms in [(80, 95), (100, 110), (120, 140)]:
        wave = make_positive_clip(burst_ms=burst_ms, voicing_ms=voicing_ms)
        truth = LandmarkSet(
            closure=(burst_ms - 5) / 1000,
            release=burst_ms / 1000,
            voicing_onset=voicing_ms / 1000,
            sign="positive",
        )
        examples.append(TrainingExample(waveform=wave, truth=truth))
    return examples
