"""Core data types for votdetect."""

import enum
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from votdetect.config import (
    NegativeParams,
    PositiveParams,
    overrides_to_dict,
    params_to_dict,
)


class Sign(str, enum.Enum):
    """Direction of the VOT interval."""
    POSITIVE = "positive"   # release precedes voicing
    NEGATIVE = "negative"   # prevoicing precedes release
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: "str | Sign") -> "Sign":
        """Accept 'positive'/'pos'/'+', 'negative'/'neg'/'-', 'unknown'/'auto'."""
        if isinstance(value, Sign):
            return value
        key = value.strip().lower()
        aliases = {
            "positive": cls.POSITIVE, "pos": cls.POSITIVE, "+": cls.POSITIVE,
            "negative": cls.NEGATIVE, "neg": cls.NEGATIVE, "-": cls.NEGATIVE,
            "unknown": cls.UNKNOWN, "auto": cls.UNKNOWN, "?": cls.UNKNOWN,
        }
        if key not in aliases:
            raise ValueError(f"Unknown sign: {value!r}")
        return aliases[key]


@dataclass(frozen=True)
class Waveform:
    """Mono samples (float64, normalized to [-1, 1]) plus their sample rate."""
    samples: np.ndarray
    sample_rate: int
    source: str = ""

    def __post_init__(self):
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        samples = np.array(self.samples, dtype=np.float64)
        if samples.ndim != 1:
            raise ValueError("Waveform samples must be one-dimensional")
        samples.setflags(write=False)
        object.__setattr__(self, "samples", samples)

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def duration(self) -> float:
        """Length in seconds."""
        return len(self.samples) / self.sample_rate

    def to_samples(self, ms: float) -> int:
        """Convert a duration in milliseconds to a whole number of samples."""
        return int(round(self.sample_rate * ms / 1000))

    def to_seconds(self, index: int) -> float:
        return index / self.sample_rate

    @classmethod
    def from_file(cls, path: str | Path) -> "Waveform":
        from votdetect.analysis import read_wav

        samples, sr = read_wav(path)
        return cls(samples=samples, sample_rate=sr, source=str(path))


@dataclass(frozen=True)
class LandmarkSet:
    """Predicted or annotated VOT landmarks, in seconds."""
    closure: float | None = None
    release: float | None = None
    voicing_onset: float | None = None
    sign: Sign = Sign.UNKNOWN
    guessed: bool = False   # sign came from a low-confidence heuristic

    def __post_init__(self):
        object.__setattr__(self, "sign", Sign.parse(self.sign))
        if self.release is None or self.voicing_onset is None:
            return
        if self.sign == Sign.POSITIVE and self.release > self.voicing_onset:
            raise ValueError(
                f"Positive VOT requires release <= voicing onset "
                f"({self.release:.4f} > {self.voicing_onset:.4f})"
            )
        if self.sign == Sign.NEGATIVE and self.voicing_onset > self.release:
            raise ValueError(
                f"Negative VOT requires voicing onset <= release "
                f"({self.voicing_onset:.4f} > {self.release:.4f})"
            )

    @property
    def vot(self) -> float | None:
        """Voicing onset minus release, in seconds (negative when prevoiced)."""
        if self.release is None or self.voicing_onset is None:
            return None
        return self.voicing_onset - self.release

    def get(self, landmark: str) -> float | None:
        return getattr(self, landmark)

    def to_dict(self) -> dict:
        return {
            "closure": self.closure,
            "release": self.release,
            "voicing_onset": self.voicing_onset,
            "sign": self.sign.value,
            "guessed": self.guessed,
            "vot": self.vot,
        }


LANDMARKS = ("closure", "release", "voicing_onset")


@dataclass(frozen=True)
class TrainingExample:
    """A waveform paired with its manual annotation."""
    waveform: Waveform
    truth: LandmarkSet


@dataclass
class LandmarkError:
    """Absolute time error statistics for one landmark, in seconds."""
    mean: float
    variance: float
    count: int


@dataclass
class OptimizationResult:
    """Output of a grid search."""
    params: PositiveParams | NegativeParams
    score: float
    errors: dict[str, LandmarkError]
    failed: int                     # examples the winner could not process
    n_examples: int
    n_combinations: int
    overrides: dict = field(default_factory=dict)

    def summary(self) -> str:
        lines = [
            f"Best of {self.n_combinations} combinations on {self.n_examples} examples",
            f"  score: {self.score * 1000:.2f} ms",
        ]
        for name, value in self.overrides.items():
            lines.append(f"  {name} = {value}")
        for landmark, err in self.errors.items():
            lines.append(
                f"  {landmark}: mean {err.mean * 1000:.2f} ms, "
                f"sd {np.sqrt(err.variance) * 1000:.2f} ms (n={err.count})"
            )
        lines.append(f"  failed examples: {self.failed}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "params": params_to_dict(self.params),
            "score": self.score,
            "errors": {
                name: {"mean": e.mean, "variance": e.variance, "count": e.count}
                for name, e in self.errors.items()
            },
            "failed": self.failed,
            "n_examples": self.n_examples,
            "n_combinations": self.n_combinations,
            "overrides": overrides_to_dict(self.overrides),
        }
