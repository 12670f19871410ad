"""Grid search over detection parameters against annotated examples."""

import itertools
import logging
import threading
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass

import numpy as np

from votdetect.config import (
    AmplitudeVelocityRelease,
    AutocorrelationVoicing,
    NegativeParams,
    PitchTrackVoicing,
    PositiveParams,
    TransientRelease,
    with_overrides,
)
from votdetect.errors import DetectionError, OptimizationCancelled
from votdetect.pipeline import run_pipeline
from votdetect.types import (
    LANDMARKS,
    LandmarkError,
    OptimizationResult,
    Sign,
    TrainingExample,
)

logger = logging.getLogger(__name__)

_AUTOCORRELATION_THRESHOLDS = [0.75, 0.8, 0.85, 0.9, 0.95]
_PITCH_MIN_ACF = [0.35, 0.45, 0.55]

# Method variants are listed whole, so each combination only sets fields its
# method has.
DEFAULT_POSITIVE_GRID: dict[str, list] = {
    "closure_interval_ms": [5, 10, 15, 20],
    "release_param": [5, 10, 15, 20, 30],
    "voicing": [
        AutocorrelationVoicing(granularity_ms=g, threshold=t)
        for g in (0.5, 1.0, 1.5, 2.0)
        for t in _AUTOCORRELATION_THRESHOLDS
    ] + [
        PitchTrackVoicing(min_acf=a, f0_first=f0_first)
        for f0_first in (False, True)
        for a in _PITCH_MIN_ACF
    ],
}

DEFAULT_NEGATIVE_GRID: dict[str, list] = {
    "closure_interval_ms": [5, 10, 15, 20],
    "voicing": [
        AutocorrelationVoicing(granularity_ms=g, threshold=t)
        for g in (0.8, 1.0, 1.2, 1.5, 2.0)
        for t in _AUTOCORRELATION_THRESHOLDS[1:]
    ] + [PitchTrackVoicing(min_acf=a) for a in _PITCH_MIN_ACF],
    "release": [
        TransientRelease(step=s, search_fraction=f)
        for s in (5, 10, 20)
        for f in (0.3, 0.5, 0.7)
    ] + [
        AmplitudeVelocityRelease(n_coefficients=n, lead_ms=lead)
        for n in (15, 25, 40)
        for lead in (0.0, 5.0, 10.0)
    ],
}


@dataclass
class Evaluation:
    """Absolute errors of one parameter set over a training set."""
    errors: dict[str, list[float]]
    failed: int

    def score(self, weights: dict[str, float] | None = None) -> float:
        """Weighted mean over landmarks of the mean error per landmark."""
        total = 0.0
        weight_sum = 0.0
        for landmark, errs in self.errors.items():
            if not errs:
                continue
            w = 1.0 if weights is None else weights.get(landmark, 0.0)
            total += w * float(np.mean(errs))
            weight_sum += w
        if weight_sum == 0:
            return float("inf")
        return total / weight_sum

    def statistics(self) -> dict[str, LandmarkError]:
        return {
            landmark: LandmarkError(
                mean=float(np.mean(errs)),
                variance=float(np.var(errs)),
                count=len(errs),
            )
            for landmark, errs in self.errors.items()
            if errs
        }


def evaluate(
    examples: list[TrainingExample],
    params: PositiveParams | NegativeParams,
) -> Evaluation:
    """Run one parameter set over every example and collect errors.

    Only landmarks annotated in an example's ground truth are compared. A
    detection failure counts as the example's full duration of error for each
    of them, so one bad clip cannot make a combination look good.
    """
    errors: dict[str, list[float]] = {name: [] for name in LANDMARKS}
    failed = 0
    for example in examples:
        wanted = [name for name in LANDMARKS if example.truth.get(name) is not None]
        try:
            predicted = run_pipeline(example.waveform, params)
        except DetectionError as e:
            logger.debug(f"{example.waveform.source or 'example'}: {e.kind}: {e}")
            failed += 1
            for name in wanted:
                errors[name].append(example.waveform.duration)
            continue
        for name in wanted:
            errors[name].append(abs(predicted.get(name) - example.truth.get(name)))
    return Evaluation(errors=errors, failed=failed)


def expand_grid(grid: dict[str, list]) -> list[dict]:
    """Cartesian product of the grid, in a fixed order (last name varies fastest)."""
    if not grid:
        return [{}]
    names = list(grid)
    for name in names:
        if len(grid[name]) == 0:
            raise ValueError(f"Grid entry {name!r} has no candidate values")
    return [dict(zip(names, values)) for values in itertools.product(*(grid[n] for n in names))]


# Worker-process state: the training set is shipped once per worker
_worker_examples: list[TrainingExample] = []


def _init_worker(examples: list[TrainingExample]) -> None:
    global _worker_examples
    _worker_examples = examples


def _evaluate_in_worker(params: PositiveParams | NegativeParams) -> Evaluation:
    return evaluate(_worker_examples, params)


def _infer_base_params(examples: list[TrainingExample]) -> PositiveParams | NegativeParams:
    signs = {ex.truth.sign for ex in examples}
    if signs == {Sign.NEGATIVE}:
        return NegativeParams()
    if signs <= {Sign.POSITIVE, Sign.UNKNOWN}:
        return PositiveParams()
    raise ValueError(
        "Training examples mix positive and negative VOT; optimize one sign at a time"
    )


def optimize(
    examples: list[TrainingExample],
    base_params: PositiveParams | NegativeParams | None = None,
    grid: dict[str, list] | None = None,
    weights: dict[str, float] | None = None,
    workers: int = 1,
    cancel: threading.Event | None = None,
) -> OptimizationResult:
    """Find the grid combination with the lowest mean absolute error.

    Args:
        examples: Annotated clips, all of one sign.
        base_params: Parameters the grid overrides. Defaults to the default
            params of the examples' sign.
        grid: Dotted parameter name -> candidate values. Defaults to
            DEFAULT_POSITIVE_GRID or DEFAULT_NEGATIVE_GRID.
        weights: Per-landmark weights for the score (equal by default).
        workers: Worker processes; 1 evaluates in-process.
        cancel: Checked between batches of combinations. When set, the
            search stops dispatching and raises OptimizationCancelled.

    Returns:
        OptimizationResult for the winning combination. Ties keep the first
        combination in grid order, so repeated runs pick the same winner.
    """
    if not examples:
        raise ValueError("No training examples")
    base_params = base_params or _infer_base_params(examples)
    if grid is None:
        grid = (DEFAULT_NEGATIVE_GRID if isinstance(base_params, NegativeParams)
                else DEFAULT_POSITIVE_GRID)

    candidates: list[tuple[dict, PositiveParams | NegativeParams]] = []
    for overrides in expand_grid(grid):
        try:
            candidates.append((overrides, with_overrides(base_params, overrides)))
        except ValueError as e:
            logger.warning(f"Skipping combination {overrides}: {e}")
    if not candidates:
        raise ValueError("No valid parameter combination in the grid")

    logger.info(
        f"Evaluating {len(candidates)} {base_params.sign} combinations "
        f"on {len(examples)} examples with {workers} worker(s)"
    )

    if workers <= 1:
        evaluations = []
        for i, (_, params) in enumerate(candidates):
            if cancel is not None and cancel.is_set():
                raise OptimizationCancelled(
                    f"Cancelled after {i} of {len(candidates)} combinations"
                )
            evaluations.append(evaluate(examples, params))
    else:
        evaluations = _evaluate_parallel(examples, candidates, workers, cancel)

    best_index = 0
    best_score = float("inf")
    for i, evaluation in enumerate(evaluations):
        score = evaluation.score(weights)
        if score < best_score:
            best_index, best_score = i, score

    overrides, params = candidates[best_index]
    winner = evaluations[best_index]
    result = OptimizationResult(
        params=params,
        score=best_score,
        errors=winner.statistics(),
        failed=winner.failed,
        n_examples=len(examples),
        n_combinations=len(candidates),
        overrides=overrides,
    )
    logger.info(f"Best combination {overrides}: {best_score * 1000:.2f} ms")
    return result


def _evaluate_parallel(
    examples: list[TrainingExample],
    candidates: list[tuple[dict, PositiveParams | NegativeParams]],
    workers: int,
    cancel: threading.Event | None,
) -> list[Evaluation]:
    batch_size = workers * 4
    evaluations: list[Evaluation] = []
    with ProcessPoolExecutor(
        max_workers=workers, initializer=_init_worker, initargs=(examples,),
    ) as executor:
        for batch_start in range(0, len(candidates), batch_size):
            if cancel is not None and cancel.is_set():
                raise OptimizationCancelled(
                    f"Cancelled after {batch_start} of {len(candidates)} combinations"
                )
            batch = [params for _, params in candidates[batch_start:batch_start + batch_size]]
            evaluations.extend(executor.map(_evaluate_in_worker, batch))
            logger.debug(f"Evaluated {len(evaluations)}/{len(candidates)} combinations")
    return evaluations
