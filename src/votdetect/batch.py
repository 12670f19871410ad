"""Directory driver: pair WAVs with TextGrids, load training sets, and run
predictions over many files."""

import json
import logging
from concurrent.futures import ProcessPoolExecutor
from pathlib import Path

from votdetect.annotations import read_landmarks, write_landmarks
from votdetect.config import NegativeParams, PositiveParams
from votdetect.errors import DetectionError
from votdetect.pipeline import predict
from votdetect.types import LandmarkSet, Sign, TrainingExample, Waveform

logger = logging.getLogger(__name__)

REPORT_NAME = "predictions.json"


def _textgrid_for(wav_path: Path) -> Path | None:
    for suffix in (".TextGrid", ".textgrid", ".Textgrid"):
        candidate = wav_path.with_suffix(suffix)
        if candidate.exists():
            return candidate
    return None


def iter_items(directory: str | Path) -> list[tuple[Path, Path | None]]:
    """(wav, textgrid-or-None) pairs in a directory, sorted by file name."""
    directory = Path(directory)
    if not directory.is_dir():
        raise FileNotFoundError(f"Directory not found: {directory}")
    wavs = sorted(
        p for p in directory.iterdir() if p.is_file() and p.suffix.lower() == ".wav"
    )
    return [(wav, _textgrid_for(wav)) for wav in wavs]


def collect_wavs(inputs: list[str | Path]) -> list[Path]:
    """Expand files and directories into a flat list of WAV paths."""
    paths: list[Path] = []
    for item in inputs:
        item = Path(item)
        if item.is_dir():
            paths.extend(wav for wav, _ in iter_items(item))
        elif item.exists():
            paths.append(item)
        else:
            raise FileNotFoundError(f"File not found: {item}")
    return paths


def load_training_examples(
    directory: str | Path,
    sign: Sign | str | None = None,
    tier_name: str = "vot",
) -> list[TrainingExample]:
    """Load annotated clips from a directory.

    WAVs without a TextGrid, or whose annotation cannot be read, are skipped
    with a warning. With `sign` set, examples of the other sign are dropped.
    """
    wanted = Sign.parse(sign) if sign is not None else None
    examples = []
    for wav, tg_path in iter_items(directory):
        if tg_path is None:
            logger.warning(f"No TextGrid for {wav.name}, skipping")
            continue
        try:
            truth = read_landmarks(tg_path, tier_name=tier_name)
        except ValueError as e:
            logger.warning(f"Skipping {wav.name}: {e}")
            continue
        if wanted is not None and wanted != Sign.UNKNOWN and truth.sign != wanted:
            logger.debug(f"Skipping {wav.name}: {truth.sign.value} VOT")
            continue
        examples.append(TrainingExample(waveform=Waveform.from_file(wav), truth=truth))
    logger.info(f"Loaded {len(examples)} training example(s) from {directory}")
    return examples


def predict_file(
    path: str | Path,
    sign: Sign | str = Sign.UNKNOWN,
    positive: PositiveParams | None = None,
    negative: NegativeParams | None = None,
    allow_guess: bool = False,
) -> dict:
    """Predict one file. Detection failures are reported, not raised."""
    path = Path(path)
    wave = Waveform.from_file(path)
    entry = {"file": path.name, "path": str(path), "duration": wave.duration}
    try:
        landmarks = predict(wave, sign, positive, negative, allow_guess=allow_guess)
    except DetectionError as e:
        entry.update(error=e.kind, message=str(e))
        return entry
    entry["landmarks"] = landmarks.to_dict()
    return entry


def _predict_task(args: tuple) -> dict:
    return predict_file(*args)


def predict_directory(
    inputs: list[str | Path],
    output_dir: str | Path,
    sign: Sign | str = Sign.UNKNOWN,
    positive: PositiveParams | None = None,
    negative: NegativeParams | None = None,
    allow_guess: bool = False,
    workers: int = 1,
    tier_name: str = "vot",
) -> list[dict]:
    """Predict every WAV in `inputs`, writing one TextGrid per file and a
    JSON report. The VOT interval goes on the `tier_name` tier. Returns the
    report entries in input order."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    wavs = collect_wavs(inputs)
    tasks = [(wav, sign, positive, negative, allow_guess) for wav in wavs]

    if workers > 1 and len(tasks) > 1:
        with ProcessPoolExecutor(max_workers=workers) as executor:
            entries = list(executor.map(_predict_task, tasks))
    else:
        entries = [_predict_task(task) for task in tasks]

    failed = 0
    for entry in entries:
        if "error" in entry:
            failed += 1
            logger.warning(f"{entry['file']}: {entry['error']}: {entry['message']}")
            continue
        d = entry["landmarks"]
        landmarks = LandmarkSet(
            closure=d["closure"],
            release=d["release"],
            voicing_onset=d["voicing_onset"],
            sign=d["sign"],
            guessed=d["guessed"],
        )
        out = output_dir / f"{Path(entry['file']).stem}.TextGrid"
        write_landmarks(out, landmarks, entry["duration"], tier_name=tier_name)
        entry["textgrid"] = str(out)

    report = output_dir / REPORT_NAME
    report.write_text(json.dumps(entries, indent=2) + "\n")
    logger.info(f"Predicted {len(entries) - failed}/{len(entries)} file(s), report: {report}")
    return entries
