"""Signal analysis primitives: WAV I/O, windowed statistics, autocorrelation,
spectral slices, a frame-wise pitch tracker and DCT smoothing.

All functions operate on numpy arrays (float64, normalized to [-1, 1]) and
are pure: the same input always gives the same output.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator

import numpy as np
import scipy.fft
import scipy.io.wavfile as wavfile


# ---------------------------------------------------------------------------
# WAV I/O
# ---------------------------------------------------------------------------

def read_wav(path: str | Path) -> tuple[np.ndarray, int]:
    """Read a WAV file and return (samples, sample_rate).

    Integer PCM is scaled to float64 in [-1, 1], float WAVs pass through,
    and only the first channel of a multi-channel file is kept.

    Raises:
        FileNotFoundError: if the file does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    sr, data = wavfile.read(str(path))

    if data.ndim > 1:
        data = data[:, 0]

    if np.issubdtype(data.dtype, np.integer):
        info = np.iinfo(data.dtype)
        samples = data.astype(np.float64) / max(abs(info.min), abs(info.max))
    else:
        samples = data.astype(np.float64)

    return samples, sr


def write_wav(path: str | Path, samples: np.ndarray, sr: int) -> None:
    """Write float64 samples to a 16-bit PCM WAV file, clipping to [-1, 1]."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    clipped = np.clip(samples, -1.0, 1.0)
    int16 = (clipped * 32767).astype(np.int16)
    wavfile.write(str(path), sr, int16)


def ms_to_samples(ms: float, sr: int) -> int:
    """Duration in ms to a sample count, never below one sample."""
    return max(1, int(round(sr * ms / 1000)))


# ---------------------------------------------------------------------------
# Window aggregates
# ---------------------------------------------------------------------------

def mean_abs(frame: np.ndarray) -> float:
    return float(np.mean(np.abs(frame)))


def max_abs(frame: np.ndarray) -> float:
    return float(np.max(np.abs(frame)))


def autocorrelation(frame: np.ndarray) -> np.ndarray:
    """Autocorrelation at lags 0..n-1, normalized by lag 0.

    The frame is not mean-removed, so a slowly varying (voiced) frame keeps
    high values across lags while noise falls to about 1/n after lag 0.
    A silent frame returns all zeros.
    """
    n = len(frame)
    if n == 0:
        return np.array([])
    r = np.correlate(frame, frame, mode="full")[n - 1:]
    if r[0] <= 0:
        return np.zeros(n)
    return r / r[0]


def mean_autocorrelation(frame: np.ndarray) -> float:
    """Mean of the normalized autocorrelation across all computed lags."""
    if len(frame) == 0:
        return 0.0
    return float(np.mean(autocorrelation(frame)))


STATISTICS: dict[str, Callable[[np.ndarray], float]] = {
    "mean_abs": mean_abs,
    "max_abs": max_abs,
    "mean_autocorrelation": mean_autocorrelation,
}


# ---------------------------------------------------------------------------
# Windowed-statistic engine
# ---------------------------------------------------------------------------

def _span(n_samples: int, start: int, stop: int | None) -> tuple[int, int]:
    start = max(0, start)
    stop = n_samples if stop is None else min(stop, n_samples)
    return start, max(start, stop)


def window_starts(
    n_samples: int,
    window: int,
    start: int = 0,
    stop: int | None = None,
    partial: str = "discard",
) -> np.ndarray:
    """Start indices of the windows windowed_statistic() would produce."""
    if window < 1:
        raise ValueError(f"window must be at least 1 sample, got {window}")
    start, stop = _span(n_samples, start, stop)
    length = stop - start
    n_windows = length // window
    if partial == "keep" and length % window:
        n_windows += 1
    elif partial not in ("keep", "discard"):
        raise ValueError(f"partial must be 'keep' or 'discard', got {partial!r}")
    return start + np.arange(n_windows) * window


def windowed_statistic(
    samples: np.ndarray,
    window: int,
    start: int = 0,
    stop: int | None = None,
    statistic: str = "mean_abs",
    partial: str = "discard",
) -> np.ndarray:
    """Aggregate consecutive non-overlapping windows of samples[start:stop].

    Args:
        samples: Sample sequence.
        window: Window length in samples.
        start: Index of the first window.
        stop: Exclusive end of the span (default: end of samples).
        statistic: One of STATISTICS ("mean_abs", "max_abs",
            "mean_autocorrelation").
        partial: "discard" drops a trailing window shorter than `window`;
            "keep" aggregates it over its actual length. Windows are never
            zero-padded.

    Returns:
        One aggregate per window, in time order.
    """
    if statistic not in STATISTICS:
        raise ValueError(
            f"Unknown statistic: {statistic!r}. Available: {list(STATISTICS)}"
        )
    starts = window_starts(len(samples), window, start, stop, partial)
    _, stop = _span(len(samples), start, stop)
    if len(starts) == 0:
        return np.array([])

    func = STATISTICS[statistic]
    n_full = (stop - starts[0]) // window
    values = np.empty(len(starts))

    if statistic in ("mean_abs", "max_abs") and n_full:
        # Vectorized path over the full windows
        block = np.abs(samples[starts[0]:starts[0] + n_full * window]).reshape(n_full, window)
        values[:n_full] = block.mean(axis=1) if statistic == "mean_abs" else block.max(axis=1)
    else:
        for i in range(n_full):
            values[i] = func(samples[starts[i]:starts[i] + window])

    if len(starts) > n_full:
        values[-1] = func(samples[starts[-1]:stop])

    return values


# ---------------------------------------------------------------------------
# Spectral slice
# ---------------------------------------------------------------------------

def spectral_slice(samples: np.ndarray, sr: int) -> tuple[np.ndarray, np.ndarray]:
    """Hann-windowed power spectrum of a short frame.

    Returns (frequencies_hz, power), ordered by frequency.
    """
    n = len(samples)
    if n == 0:
        return np.array([]), np.array([])
    spectrum = np.fft.rfft(samples * np.hanning(n))
    freqs = np.fft.rfftfreq(n, d=1.0 / sr)
    return freqs, np.abs(spectrum) ** 2


def spectral_smoothness(power: np.ndarray) -> float:
    """Standard deviation of the bin-to-bin change in normalized power.

    Lower is smoother; a broadband transient approaches zero. Returns inf for
    a slice with no energy so silent stretches never win a minimum search.
    """
    total = float(np.sum(power))
    if len(power) < 2 or total <= 0:
        return float("inf")
    return float(np.std(np.diff(power / total)))


# ---------------------------------------------------------------------------
# Smoothing
# ---------------------------------------------------------------------------

def dct_smooth(values: np.ndarray, n_coefficients: int = 25) -> np.ndarray:
    """Low-pass a series by keeping its first n DCT-II coefficients."""
    values = np.asarray(values, dtype=np.float64)
    if len(values) == 0:
        return values.copy()
    coeffs = scipy.fft.dct(values, norm="ortho")
    coeffs[n_coefficients:] = 0.0
    return scipy.fft.idct(coeffs, norm="ortho")


# ---------------------------------------------------------------------------
# Pitch tracking
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PitchFrame:
    """One analysis frame of the pitch tracker."""
    time: float             # frame centre, seconds
    f0: float | None        # None when unvoiced
    strength: float         # normalized autocorrelation at the chosen lag

    @property
    def voiced(self) -> bool:
        return self.f0 is not None


def _lag_autocorrelation(
    samples: np.ndarray, sr: int, f0_min: float, f0_max: float,
) -> tuple[int, np.ndarray] | None:
    """Normalized autocorrelation over the lags of [f0_min, f0_max]."""
    if len(samples) == 0:
        return None
    # Check for silence
    if np.sqrt(np.mean(samples ** 2)) < 1e-6:
        return None

    # lag_min -> f0_max, lag_max -> f0_min
    lag_min = max(1, int(sr / f0_max))
    lag_max = min(int(sr / f0_min), len(samples) - 1)
    if lag_min >= lag_max:
        return None

    x = samples - np.mean(samples)
    n = len(x)
    full = np.correlate(x, x, mode="full")[n - 1:]
    if full[0] < 1e-12:
        return None
    return lag_min, full[lag_min:lag_max + 1] / full[0]


def estimate_pitch(
    samples: np.ndarray,
    sr: int,
    f0_min: float = 50,
    f0_max: float = 400,
    min_acf: float = 0.3,
) -> tuple[float | None, float]:
    """Estimate F0 of one frame by autocorrelation peak picking.

    Takes the first local maximum at or above min_acf, scanning from the
    shortest lag (highest frequency) to avoid octave errors.

    Returns (f0_hz or None, strength).
    """
    found = _lag_autocorrelation(samples, sr, f0_min, f0_max)
    if found is None:
        return None, 0.0
    lag_min, acf = found

    if len(acf) >= 2 and acf[0] >= min_acf and acf[0] >= acf[1]:
        return float(sr / lag_min), float(acf[0])

    for i in range(1, len(acf) - 1):
        if acf[i] >= min_acf and acf[i] >= acf[i - 1] and acf[i] >= acf[i + 1]:
            return float(sr / (lag_min + i)), float(acf[i])

    return None, float(np.max(acf))


def periodicity(
    samples: np.ndarray, sr: int, f0_min: float = 50, f0_max: float = 400,
) -> float:
    """Peak normalized autocorrelation in the pitch lag range (0 if silent)."""
    found = _lag_autocorrelation(samples, sr, f0_min, f0_max)
    if found is None:
        return 0.0
    return float(max(0.0, np.max(found[1])))


def track_pitch(
    samples: np.ndarray,
    sr: int,
    window_length_ms: float = 30.0,
    min_acf: float = 0.45,
    start: int = 0,
    stop: int | None = None,
    f0_min: float = 50,
    f0_max: float = 400,
) -> Iterator[PitchFrame]:
    """Lazily yield pitch frames over samples[start:stop].

    Frames are window_length_ms long with a hop of a quarter window; each
    frame is stamped with the time of its centre.
    """
    window = ms_to_samples(window_length_ms, sr)
    hop = max(1, window // 4)
    start, stop = _span(len(samples), start, stop)
    for frame_start in range(start, stop - window + 1, hop):
        frame = samples[frame_start:frame_start + window]
        f0, strength = estimate_pitch(frame, sr, f0_min, f0_max, min_acf)
        yield PitchFrame(
            time=(frame_start + window / 2) / sr,
            f0=f0,
            strength=strength,
        )
