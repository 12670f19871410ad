"""Landmark locators: closure, burst/release, voicing onset and the two
negative-VOT release methods.

Every locator takes a Waveform plus a search start (sample index) and returns
a sample index. Failures raise a DetectionError subclass.
"""

import numpy as np

from votdetect.analysis import (
    dct_smooth,
    ms_to_samples,
    spectral_slice,
    spectral_smoothness,
    track_pitch,
    window_starts,
    windowed_statistic,
)
from votdetect.errors import (
    InsufficientSamples,
    NoReleaseFound,
    NoTransientFound,
    NoVoicingFound,
)
from votdetect.types import Waveform

# Width of the window scanned for the burst before an f0-first voiced stretch
F0_FIRST_LOOKBACK_MS = 200.0


def find_closure(wave: Waveform, closure_interval_ms: float = 10.0) -> int:
    """Midpoint of the quietest window in the first half of the clip.

    The first half is cut into closure_interval_ms windows and scored by mean
    absolute amplitude; the earliest window wins a tie.
    """
    window = ms_to_samples(closure_interval_ms, wave.sample_rate)
    half = len(wave) // 2
    if half < window:
        raise InsufficientSamples(
            f"First half of the clip ({half} samples) is shorter than one "
            f"{closure_interval_ms} ms closure window ({window} samples)"
        )
    levels = windowed_statistic(wave.samples, window, 0, half, "mean_abs")
    quietest = int(np.argmin(levels))
    return quietest * window + window // 2


def find_release(
    wave: Waveform,
    start: int,
    release_param: float = 15.0,
    stop: int | None = None,
) -> int:
    """Start of the first 1 ms window after `start` with a spike.

    A spike is a window whose peak absolute amplitude exceeds the clip's
    global peak divided by release_param.
    """
    peak = float(np.max(np.abs(wave.samples))) if len(wave) else 0.0
    if peak <= 0:
        raise NoReleaseFound("Clip is silent")
    spike_threshold = peak / release_param

    window = ms_to_samples(1.0, wave.sample_rate)
    peaks = windowed_statistic(wave.samples, window, start, stop, "max_abs", partial="keep")
    starts = window_starts(len(wave), window, start, stop, partial="keep")
    above = np.flatnonzero(peaks > spike_threshold)
    if len(above) == 0:
        raise NoReleaseFound(
            f"No window after {wave.to_seconds(start):.4f}s exceeds "
            f"{spike_threshold:.4f} (peak / {release_param})"
        )
    return int(starts[above[0]])


def find_voicing_onset_autocorrelation(
    wave: Waveform,
    start: int,
    granularity_ms: float = 1.0,
    threshold: float = 0.85,
) -> int:
    """Voicing onset from mean autocorrelation of short windows.

    Windows of granularity_ms from `start` are scored by mean normalized
    autocorrelation. The onset is the second window above threshold x the
    best score, plus one window length. Requiring a second window skips
    isolated high-correlation noise right after the release.
    """
    window = ms_to_samples(granularity_ms, wave.sample_rate)
    scores = windowed_statistic(wave.samples, window, start, None, "mean_autocorrelation")
    if len(scores) == 0:
        raise NoVoicingFound(
            f"No {granularity_ms} ms window fits after {wave.to_seconds(start):.4f}s"
        )
    best = float(np.max(scores))
    if best <= 0:
        raise NoVoicingFound("No correlated window after the search start")

    above = np.flatnonzero(scores > threshold * best)
    if len(above) < 2:
        raise NoVoicingFound(
            f"Only {len(above)} window(s) exceed {threshold:.2f} of the peak autocorrelation"
        )
    onset = start + int(above[1]) * window + window
    return min(onset, len(wave))


def find_voicing_onset_pitch(
    wave: Waveform,
    start: int,
    window_length_ms: float = 30.0,
    min_acf: float = 0.45,
    f0_min: float = 50.0,
    f0_max: float = 400.0,
) -> int:
    """Time of the first voiced pitch frame after `start`.

    Frames are stamped at their centre, so the onset can trail the first
    voiced sample by up to half of window_length_ms.
    """
    frames = track_pitch(
        wave.samples, wave.sample_rate,
        window_length_ms=window_length_ms, min_acf=min_acf,
        start=start, f0_min=f0_min, f0_max=f0_max,
    )
    for frame in frames:
        if frame.voiced:
            return min(int(round(frame.time * wave.sample_rate)), len(wave))
    raise NoVoicingFound(
        f"Pitch tracker found no voiced frame after {wave.to_seconds(start):.4f}s"
    )


def find_longest_voiced_stretch(
    wave: Waveform,
    window_length_ms: float = 30.0,
    min_acf: float = 0.45,
    f0_min: float = 50.0,
    f0_max: float = 400.0,
    start: int = 0,
) -> tuple[int, int]:
    """(start, end) sample indices of the longest run of voiced frames.

    Only frames from `start` onwards are considered; the first of equally
    long runs wins. Both indices are frame centres, so the stretch start
    lies up to half a window after the first voiced sample, as in
    find_voicing_onset_pitch().
    """
    best: tuple[int, int] | None = None
    best_len = 0
    run_start = None
    run_len = 0
    last_time = 0.0
    frames = track_pitch(
        wave.samples, wave.sample_rate,
        window_length_ms=window_length_ms, min_acf=min_acf,
        start=start, f0_min=f0_min, f0_max=f0_max,
    )
    for frame in frames:
        if frame.voiced:
            if run_len == 0:
                run_start = frame.time
            run_len += 1
            if run_len > best_len:
                best_len = run_len
                best = (run_start, frame.time)
        else:
            run_len = 0
        last_time = frame.time

    if best is None:
        raise NoVoicingFound(
            f"Pitch tracker found no voiced frame in {last_time:.3f}s of audio"
        )
    sr = wave.sample_rate
    return int(round(best[0] * sr)), int(round(best[1] * sr))


def find_transient_release(
    wave: Waveform,
    voicing_onset: int,
    window_ms: float = 1.0,
    step: int = 10,
    search_fraction: float = 0.5,
) -> int:
    """Release of a prevoiced stop from the smoothest spectral slice.

    Every `step` samples after voicing onset, a window_ms slice is scored by
    spectral_smoothness(); the search covers search_fraction of the rest of
    the clip. Returns the end of the smoothest slice. Noisy audio may give a
    false positive rather than an error.

    Raises NoTransientFound when the range is empty, and also when every
    slice in it is silent: silence has no spectral shape to score, so there
    is no candidate to return.
    """
    window = ms_to_samples(window_ms, wave.sample_rate)
    remaining = len(wave) - voicing_onset
    search_end = voicing_onset + int(remaining * search_fraction)
    positions = range(voicing_onset, min(search_end, len(wave) - window) + 1, step)
    if len(positions) == 0:
        raise NoTransientFound(
            f"Empty transient search range after {wave.to_seconds(voicing_onset):.4f}s"
        )

    best_pos = None
    best_score = float("inf")
    for pos in positions:
        _, power = spectral_slice(wave.samples[pos:pos + window], wave.sample_rate)
        score = spectral_smoothness(power)
        if score < best_score:
            best_score = score
            best_pos = pos

    if best_pos is None:
        raise NoTransientFound("Every slice in the transient search range is silent")
    return best_pos + window


def find_velocity_release(
    wave: Waveform,
    voicing_onset: int,
    n_coefficients: int = 25,
    span_ms: float = 500.0,
    lead_ms: float = 5.0,
) -> int:
    """Release placed lead_ms before the fastest rise in smoothed amplitude.

    This tracks the onset of the following vowel rather than the burst
    itself, so it is less precise than find_transient_release().
    """
    sr = wave.sample_rate
    window = ms_to_samples(1.0, sr)
    stop = voicing_onset + ms_to_samples(span_ms, sr)
    peaks = windowed_statistic(wave.samples, window, voicing_onset, stop, "max_abs")
    if len(peaks) < 2:
        raise InsufficientSamples(
            f"Need at least two 1 ms windows after {wave.to_seconds(voicing_onset):.4f}s"
        )
    smoothed = dct_smooth(peaks, min(n_coefficients, len(peaks)))
    velocity = np.diff(smoothed)
    rise = int(np.argmax(velocity)) + 1
    release = voicing_onset + rise * window - int(round(sr * lead_ms / 1000))
    return max(release, voicing_onset)
