"""Typed detection failures.

Every locator raises one of these instead of returning a sentinel time, so the
caller decides whether to skip, flag or abort.
"""


class DetectionError(Exception):
    """Base class for landmark detection failures."""

    kind = "detection_error"


class InsufficientSamples(DetectionError):
    """The waveform is too short for a required analysis window."""

    kind = "insufficient_samples"


class NoReleaseFound(DetectionError):
    """No window after the closure rose above the spike threshold."""

    kind = "no_release_found"


class NoVoicingFound(DetectionError):
    """Voicing onset could not be located after the search start."""

    kind = "no_voicing_found"


class NoTransientFound(DetectionError):
    """The transient-phase search range was empty."""

    kind = "no_transient_found"


class AmbiguousSign(DetectionError):
    """The sign heuristic could not decide between positive and negative VOT."""

    kind = "ambiguous_sign"

    def __init__(self, message: str, periodicity: float | None = None):
        super().__init__(message)
        self.periodicity = periodicity


class OptimizationCancelled(Exception):
    """A grid search was cancelled before all combinations were compared."""
