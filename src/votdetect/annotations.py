"""Read and write landmark annotations as Praat TextGrids.

Layout: an interval tier ("vot") holding one labelled interval from the
earlier to the later of release and voicing onset, and an optional point tier
("closure"). Labels are "pos" or "neg"; a trailing "?" marks a guessed sign.
"""

import logging
from pathlib import Path

from textgrid import IntervalTier, PointTier, TextGrid

from votdetect.types import LandmarkSet, Sign

logger = logging.getLogger(__name__)

VOT_TIER = "vot"
CLOSURE_TIER = "closure"


def _find_tier(tg: TextGrid, name: str):
    for tier in tg.tiers:
        if tier.name == name:
            return tier
    return None


def _parse_label(label: str) -> tuple[Sign, bool]:
    text = label.strip().lower()
    guessed = text.endswith("?")
    text = text.rstrip("?").strip()
    if "neg" in text or text.startswith("-"):
        return Sign.NEGATIVE, guessed
    return Sign.POSITIVE, guessed


def read_landmarks(
    path: str | Path,
    tier_name: str = VOT_TIER,
    closure_tier: str = CLOSURE_TIER,
) -> LandmarkSet:
    """Read the first labelled VOT interval (and closure point, if any).

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the VOT tier is missing or has no labelled interval.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    tg = TextGrid.fromFile(str(path))

    tier = _find_tier(tg, tier_name)
    if tier is None:
        raise ValueError(f"Tier '{tier_name}' not found in {path.name}")
    labelled = [interval for interval in tier if interval.mark and interval.mark.strip()]
    if not labelled:
        raise ValueError(f"Tier '{tier_name}' in {path.name} has no labelled interval")
    if len(labelled) > 1:
        logger.warning(
            f"{path.name}: {len(labelled)} labelled intervals in '{tier_name}', using the first"
        )
    interval = labelled[0]
    sign, guessed = _parse_label(interval.mark)

    if sign == Sign.NEGATIVE:
        voicing_onset, release = interval.minTime, interval.maxTime
    else:
        release, voicing_onset = interval.minTime, interval.maxTime

    closure = None
    points = _find_tier(tg, closure_tier)
    if points is not None and isinstance(points, PointTier) and len(points) > 0:
        closure = points[0].time

    return LandmarkSet(
        closure=closure,
        release=float(release),
        voicing_onset=float(voicing_onset),
        sign=sign,
        guessed=guessed,
    )


def write_landmarks(
    path: str | Path,
    landmarks: LandmarkSet,
    duration: float,
    tier_name: str = VOT_TIER,
    closure_tier: str = CLOSURE_TIER,
) -> Path:
    """Write landmarks to a TextGrid spanning [0, duration]."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    tg = TextGrid(minTime=0.0, maxTime=duration)
    vot = IntervalTier(name=tier_name, minTime=0.0, maxTime=duration)
    if landmarks.release is not None and landmarks.voicing_onset is not None:
        start = max(0.0, min(landmarks.release, landmarks.voicing_onset))
        end = min(duration, max(landmarks.release, landmarks.voicing_onset))
        label = "neg" if landmarks.sign == Sign.NEGATIVE else "pos"
        if landmarks.guessed:
            label += "?"
        if end > start:
            vot.add(start, end, label)
        else:
            logger.warning(f"{path.name}: zero-length VOT interval at {start:.4f}s not written")
    tg.append(vot)

    if landmarks.closure is not None:
        points = PointTier(name=closure_tier, minTime=0.0, maxTime=duration)
        points.add(min(max(landmarks.closure, 0.0), duration), "closure")
        tg.append(points)

    tg.write(str(path))
    return path
