"""votdetect: voice onset time landmark prediction."""

from votdetect.config import (
    AmplitudeVelocityRelease,
    AutocorrelationVoicing,
    NegativeParams,
    PitchTrackVoicing,
    PositiveParams,
    TransientRelease,
)
from votdetect.errors import (
    AmbiguousSign,
    DetectionError,
    InsufficientSamples,
    NoReleaseFound,
    NoTransientFound,
    NoVoicingFound,
    OptimizationCancelled,
)
from votdetect.optimize import optimize
from votdetect.pipeline import detect_sign, predict, predict_negative, predict_positive
from votdetect.types import LandmarkSet, Sign, TrainingExample, Waveform

__version__ = "0.1.0"
