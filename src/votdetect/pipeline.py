"""Positive- and negative-VOT pipelines and the sign heuristic."""

import dataclasses
import logging
from dataclasses import dataclass

from votdetect.analysis import ms_to_samples, periodicity
from votdetect.config import (
    AmplitudeVelocityRelease,
    AutocorrelationVoicing,
    NegativeParams,
    PitchTrackVoicing,
    PositiveParams,
)
from votdetect.errors import AmbiguousSign, NoReleaseFound
from votdetect.landmarks import (
    F0_FIRST_LOOKBACK_MS,
    find_closure,
    find_longest_voiced_stretch,
    find_release,
    find_transient_release,
    find_velocity_release,
    find_voicing_onset_autocorrelation,
    find_voicing_onset_pitch,
)
from votdetect.types import LandmarkSet, Sign, Waveform

logger = logging.getLogger(__name__)


def _voicing_onset(
    wave: Waveform, start: int, method: AutocorrelationVoicing | PitchTrackVoicing,
) -> int:
    if isinstance(method, PitchTrackVoicing):
        return find_voicing_onset_pitch(
            wave, start,
            window_length_ms=method.window_length_ms,
            min_acf=method.min_acf,
            f0_min=method.f0_min,
            f0_max=method.f0_max,
        )
    return find_voicing_onset_autocorrelation(
        wave, start,
        granularity_ms=method.granularity_ms,
        threshold=method.threshold,
    )


def predict_positive(wave: Waveform, params: PositiveParams | None = None) -> LandmarkSet:
    """Closure, then the burst after it, then voicing after the burst.

    With PitchTrackVoicing(f0_first=True) the longest voiced stretch after
    the closure is found first, and the burst is searched only in the 200 ms
    before it, never reaching back past the closure.
    """
    params = params or PositiveParams()
    closure = find_closure(wave, params.closure_interval_ms)
    voicing = params.voicing

    if isinstance(voicing, PitchTrackVoicing) and voicing.f0_first:
        onset, _ = find_longest_voiced_stretch(
            wave,
            window_length_ms=voicing.window_length_ms,
            min_acf=voicing.min_acf,
            f0_min=voicing.f0_min,
            f0_max=voicing.f0_max,
            start=closure + 1,
        )
        # Burst window: the lookback before the stretch, never before the closure
        lookback = max(closure, onset - ms_to_samples(F0_FIRST_LOOKBACK_MS, wave.sample_rate))
        if lookback >= onset:
            raise NoReleaseFound(
                f"No room for a burst between closure {wave.to_seconds(closure):.4f}s "
                f"and voicing {wave.to_seconds(onset):.4f}s"
            )
        release = find_release(wave, lookback, params.release_param, stop=onset)
    else:
        release = find_release(wave, closure, params.release_param)
        onset = _voicing_onset(wave, release, voicing)

    sr = wave.sample_rate
    result = LandmarkSet(
        closure=closure / sr,
        release=release / sr,
        voicing_onset=onset / sr,
        sign=Sign.POSITIVE,
    )
    logger.debug(
        f"{wave.source or 'clip'}: closure {result.closure:.4f}s, "
        f"release {result.release:.4f}s, voicing {result.voicing_onset:.4f}s"
    )
    return result


def predict_negative(wave: Waveform, params: NegativeParams | None = None) -> LandmarkSet:
    """Closure, then voicing after it, then the release after voicing."""
    params = params or NegativeParams()
    closure = find_closure(wave, params.closure_interval_ms)
    onset = _voicing_onset(wave, closure, params.voicing)

    method = params.release
    if isinstance(method, AmplitudeVelocityRelease):
        release = find_velocity_release(
            wave, onset,
            n_coefficients=method.n_coefficients,
            span_ms=method.span_ms,
            lead_ms=method.lead_ms,
        )
    else:
        release = find_transient_release(
            wave, onset,
            window_ms=method.window_ms,
            step=method.step,
            search_fraction=method.search_fraction,
        )

    sr = wave.sample_rate
    result = LandmarkSet(
        closure=closure / sr,
        release=release / sr,
        voicing_onset=onset / sr,
        sign=Sign.NEGATIVE,
    )
    logger.debug(
        f"{wave.source or 'clip'}: closure {result.closure:.4f}s, "
        f"voicing {result.voicing_onset:.4f}s, release {result.release:.4f}s"
    )
    return result


def run_pipeline(wave: Waveform, params: PositiveParams | NegativeParams) -> LandmarkSet:
    """Dispatch on the parameter type."""
    if isinstance(params, NegativeParams):
        return predict_negative(wave, params)
    return predict_positive(wave, params)


# ---------------------------------------------------------------------------
# Sign heuristic
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SignEstimate:
    """Best-effort sign guess. `confident` is False between the thresholds."""
    sign: Sign
    periodicity: float
    confident: bool


def detect_sign(
    wave: Waveform,
    closure_interval_ms: float = 10.0,
    burst_param: float = 3.0,
    segment_ms: float = 40.0,
    lower: float = 0.25,
    upper: float = 0.5,
) -> SignEstimate:
    """Guess whether the stop is prevoiced.

    Looks at the segment_ms before the first strong spike after the closure
    (peak / burst_param). Periodic energy there means prevoicing. This is a
    rough heuristic with no correctness guarantee: periodicity >= upper
    gives a confident negative, <= lower a confident positive, and anything
    in between a non-confident guess.
    """
    if not 0 <= lower < upper <= 1:
        raise ValueError(f"Need 0 <= lower < upper <= 1, got {lower} and {upper}")
    closure = find_closure(wave, closure_interval_ms)
    try:
        burst = find_release(wave, closure, burst_param)
    except NoReleaseFound as e:
        raise AmbiguousSign(f"Cannot locate a burst to judge the sign: {e}") from e

    segment_start = max(closure, burst - ms_to_samples(segment_ms, wave.sample_rate))
    score = periodicity(wave.samples[segment_start:burst], wave.sample_rate)

    if score >= upper:
        return SignEstimate(Sign.NEGATIVE, score, confident=True)
    if score <= lower:
        return SignEstimate(Sign.POSITIVE, score, confident=True)
    guess = Sign.NEGATIVE if score >= (lower + upper) / 2 else Sign.POSITIVE
    return SignEstimate(guess, score, confident=False)


def predict(
    wave: Waveform,
    sign: Sign | str = Sign.UNKNOWN,
    positive: PositiveParams | None = None,
    negative: NegativeParams | None = None,
    allow_guess: bool = False,
) -> LandmarkSet:
    """Predict landmarks for a clip of known or unknown sign.

    With an unknown sign, detect_sign() chooses the pipeline. A non-confident
    guess raises AmbiguousSign unless allow_guess is set, in which case the
    result is marked guessed=True.
    """
    sign = Sign.parse(sign)
    if sign == Sign.POSITIVE:
        return predict_positive(wave, positive)
    if sign == Sign.NEGATIVE:
        return predict_negative(wave, negative)

    estimate = detect_sign(
        wave,
        closure_interval_ms=(positive or PositiveParams()).closure_interval_ms,
    )
    if not estimate.confident:
        if not allow_guess:
            raise AmbiguousSign(
                f"Sign heuristic is undecided (periodicity {estimate.periodicity:.2f})",
                periodicity=estimate.periodicity,
            )
        logger.warning(
            f"{wave.source or 'clip'}: guessing {estimate.sign.value} VOT "
            f"(periodicity {estimate.periodicity:.2f})"
        )

    if estimate.sign == Sign.NEGATIVE:
        result = predict_negative(wave, negative)
    else:
        result = predict_positive(wave, positive)
    if not estimate.confident:
        result = dataclasses.replace(result, guessed=True)
    return result
