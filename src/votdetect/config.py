"""Detection parameters for the positive and negative VOT pipelines.

Each pipeline has one frozen parameter structure. Method choices are tagged
variants that carry only their own knobs; every value is range-checked at
construction so a bad setting fails here rather than deep inside a scan.
"""

import dataclasses
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar


def _check_range(name: str, value: float, low: float, high: float,
                 low_inclusive: bool = True) -> None:
    ok_low = value >= low if low_inclusive else value > low
    if not (ok_low and value <= high):
        bracket = "[" if low_inclusive else "("
        raise ValueError(f"{name} must be in {bracket}{low}, {high}], got {value}")


# ---------------------------------------------------------------------------
# Voicing-onset methods
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AutocorrelationVoicing:
    """Second window above a fraction of the peak mean autocorrelation."""
    method: ClassVar[str] = "autocorrelation"
    granularity_ms: float = 1.0     # analysis window length
    threshold: float = 0.85         # fraction of the maximum

    def __post_init__(self):
        _check_range("granularity_ms", self.granularity_ms, 0, 50, low_inclusive=False)
        _check_range("threshold", self.threshold, 0, 1, low_inclusive=False)


@dataclass(frozen=True)
class PitchTrackVoicing:
    """First voiced frame of the pitch tracker."""
    method: ClassVar[str] = "pitch"
    window_length_ms: float = 30.0
    min_acf: float = 0.45           # minimum normalized autocorrelation peak
    f0_min: float = 50.0
    f0_max: float = 400.0
    f0_first: bool = False          # positive VOT only

    def __post_init__(self):
        _check_range("window_length_ms", self.window_length_ms, 5, 200)
        _check_range("min_acf", self.min_acf, 0, 1, low_inclusive=False)
        if not 0 < self.f0_min < self.f0_max:
            raise ValueError(
                f"Need 0 < f0_min < f0_max, got {self.f0_min} and {self.f0_max}"
            )


# ---------------------------------------------------------------------------
# Negative-VOT release methods
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransientRelease:
    """Smoothest short-time spectrum after voicing onset."""
    method: ClassVar[str] = "transient"
    window_ms: float = 1.0
    step: int = 10                  # samples between slices
    search_fraction: float = 0.5    # share of the remaining waveform searched

    def __post_init__(self):
        _check_range("window_ms", self.window_ms, 0, 20, low_inclusive=False)
        if self.step < 1:
            raise ValueError(f"step must be at least 1 sample, got {self.step}")
        _check_range("search_fraction", self.search_fraction, 0, 1, low_inclusive=False)


@dataclass(frozen=True)
class AmplitudeVelocityRelease:
    """A fixed lead before the fastest rise of the smoothed amplitude."""
    method: ClassVar[str] = "velocity"
    n_coefficients: int = 25
    span_ms: float = 500.0
    lead_ms: float = 5.0

    def __post_init__(self):
        if self.n_coefficients < 1:
            raise ValueError(f"n_coefficients must be positive, got {self.n_coefficients}")
        _check_range("span_ms", self.span_ms, 2, 5000)
        _check_range("lead_ms", self.lead_ms, 0, 100)


VOICING_METHODS = {
    cls.method: cls for cls in (AutocorrelationVoicing, PitchTrackVoicing)
}
RELEASE_METHODS = {
    cls.method: cls for cls in (TransientRelease, AmplitudeVelocityRelease)
}


# ---------------------------------------------------------------------------
# Per-sign parameters
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PositiveParams:
    """Knobs of the positive-VOT pipeline (closure -> burst -> voicing)."""
    sign: ClassVar[str] = "positive"
    closure_interval_ms: float = 10.0
    release_param: float = 15.0     # spike threshold = global peak / release_param
    voicing: AutocorrelationVoicing | PitchTrackVoicing = field(
        default_factory=lambda: AutocorrelationVoicing(granularity_ms=1.0, threshold=0.85)
    )

    def __post_init__(self):
        _check_range("closure_interval_ms", self.closure_interval_ms, 1, 100)
        _check_range("release_param", self.release_param, 1, 1000)
        if not isinstance(self.voicing, (AutocorrelationVoicing, PitchTrackVoicing)):
            raise ValueError(f"Unsupported voicing method: {self.voicing!r}")


@dataclass(frozen=True)
class NegativeParams:
    """Knobs of the negative-VOT pipeline (closure -> voicing -> release)."""
    sign: ClassVar[str] = "negative"
    closure_interval_ms: float = 10.0
    voicing: AutocorrelationVoicing | PitchTrackVoicing = field(
        default_factory=lambda: AutocorrelationVoicing(granularity_ms=1.2, threshold=0.90)
    )
    release: TransientRelease | AmplitudeVelocityRelease = field(
        default_factory=TransientRelease
    )

    def __post_init__(self):
        _check_range("closure_interval_ms", self.closure_interval_ms, 1, 100)
        if not isinstance(self.voicing, (AutocorrelationVoicing, PitchTrackVoicing)):
            raise ValueError(f"Unsupported voicing method: {self.voicing!r}")
        if isinstance(self.voicing, PitchTrackVoicing) and self.voicing.f0_first:
            raise ValueError("f0_first is only available for positive VOT")
        if not isinstance(self.release, (TransientRelease, AmplitudeVelocityRelease)):
            raise ValueError(f"Unsupported release method: {self.release!r}")


# ---------------------------------------------------------------------------
# Overrides by dotted name
# ---------------------------------------------------------------------------

def with_overrides(params, overrides: dict):
    """Return a copy of params with dotted-name fields replaced.

    Top-level names ("release_param") replace fields directly; dotted names
    ("voicing.threshold") replace a field of a nested method variant. A value
    for "voicing" or "release" may also be a method name, which swaps in that
    method with its defaults, or a method instance, used as is. Validation runs again on the rebuilt objects.
    """
    top: dict = {}
    nested: dict[str, dict] = {}
    for name, value in overrides.items():
        if "." in name:
            outer, inner = name.split(".", 1)
            nested.setdefault(outer, {})[inner] = value
        else:
            top[name] = value

    for name in ("voicing", "release"):
        if isinstance(top.get(name), str):
            registry = VOICING_METHODS if name == "voicing" else RELEASE_METHODS
            if top[name] not in registry:
                raise ValueError(f"Unknown {name} method: {top[name]!r}")
            top[name] = registry[top[name]]()

    for outer, fields in nested.items():
        base = top.get(outer, getattr(params, outer, None))
        if base is None or not dataclasses.is_dataclass(base):
            raise ValueError(f"Unknown parameter group: {outer!r}")
        unknown = set(fields) - {f.name for f in dataclasses.fields(base)}
        if unknown:
            raise ValueError(
                f"{type(base).__name__} has no parameter(s) {sorted(unknown)}"
            )
        top[outer] = dataclasses.replace(base, **fields)

    unknown = set(top) - {f.name for f in dataclasses.fields(params)}
    if unknown:
        raise ValueError(f"{type(params).__name__} has no parameter(s) {sorted(unknown)}")
    return dataclasses.replace(params, **top)


# ---------------------------------------------------------------------------
# JSON form
# ---------------------------------------------------------------------------

def _variant_to_dict(variant) -> dict:
    return {"method": variant.method, **dataclasses.asdict(variant)}


def _variant_from_dict(data: dict, registry: dict):
    data = dict(data)
    method = data.pop("method", None)
    if method not in registry:
        raise ValueError(f"Unknown method: {method!r}. Available: {list(registry)}")
    return registry[method](**data)


def params_to_dict(params: PositiveParams | NegativeParams) -> dict:
    data = {"sign": params.sign, "closure_interval_ms": params.closure_interval_ms}
    if isinstance(params, PositiveParams):
        data["release_param"] = params.release_param
        data["voicing"] = _variant_to_dict(params.voicing)
    else:
        data["voicing"] = _variant_to_dict(params.voicing)
        data["release"] = _variant_to_dict(params.release)
    return data


def overrides_to_dict(overrides: dict) -> dict:
    """JSON-ready copy of a grid combination; method instances become tagged dicts."""
    return {
        name: _variant_to_dict(value) if dataclasses.is_dataclass(value) else value
        for name, value in overrides.items()
    }


def params_from_dict(data: dict) -> PositiveParams | NegativeParams:
    data = dict(data)
    sign = data.pop("sign", None)
    if "voicing" in data:
        data["voicing"] = _variant_from_dict(data["voicing"], VOICING_METHODS)
    if sign == PositiveParams.sign:
        return PositiveParams(**data)
    if sign == NegativeParams.sign:
        if "release" in data:
            data["release"] = _variant_from_dict(data["release"], RELEASE_METHODS)
        return NegativeParams(**data)
    raise ValueError(f"Parameter file must declare sign 'positive' or 'negative', got {sign!r}")


def save_params(path: str | Path, params: PositiveParams | NegativeParams) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(params_to_dict(params), indent=2) + "\n")
    return path


def load_params(path: str | Path) -> PositiveParams | NegativeParams:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return params_from_dict(json.loads(path.read_text()))


# ---------------------------------------------------------------------------
# Grid value parsing
# ---------------------------------------------------------------------------

def _parse_scalar(s: str):
    s = s.strip()
    for cast in (int, float):
        try:
            return cast(s)
        except ValueError:
            continue
    lowered = s.lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    return s


def parse_values(s: str) -> list:
    """Parse candidate values: '0.8,0.85,0.9', '5-25:5' (min-max:step) or '15'."""
    s = s.strip()
    if not s:
        raise ValueError("Empty value list")
    if "," in s:
        return [_parse_scalar(part) for part in s.split(",") if part.strip()]
    if ":" in s and "-" in s:
        span, step_s = s.split(":", 1)
        lo_s, hi_s = span.split("-", 1)
        lo, hi, step = float(lo_s), float(hi_s), float(step_s)
        if step <= 0 or hi < lo:
            raise ValueError(f"Invalid range: {s!r}")
        n = int(round((hi - lo) / step)) + 1
        values = [round(lo + i * step, 10) for i in range(n)]
        if all(v == int(v) for v in values) and all(
            p.strip().lstrip("-").isdigit() for p in (lo_s, hi_s, step_s)
        ):
            return [int(v) for v in values]
        return values
    return [_parse_scalar(s)]


def parse_grid_option(s: str) -> tuple[str, list]:
    """Parse a CLI grid option 'name=values' into (name, values)."""
    if "=" not in s:
        raise ValueError(f"Grid option must look like name=values, got {s!r}")
    name, values = s.split("=", 1)
    return name.strip(), parse_values(values)


def default_workers() -> int:
    """Worker count from VOTDETECT_WORKERS, else 1 (in-process)."""
    value = os.environ.get("VOTDETECT_WORKERS", "1")
    try:
        workers = int(value)
    except ValueError:
        raise ValueError(f"VOTDETECT_WORKERS must be an integer, got {value!r}") from None
    return max(1, workers)
