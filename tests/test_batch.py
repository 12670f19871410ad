"""Tests for directory-level prediction and training-set loading."""

import json

import numpy as np
import pytest
from textgrid import IntervalTier, TextGrid

from votdetect.analysis import write_wav
from votdetect.annotations import read_landmarks, write_landmarks
from votdetect.batch import (
    REPORT_NAME,
    collect_wavs,
    iter_items,
    load_training_examples,
    predict_directory,
    predict_file,
)
from votdetect.types import LandmarkSet, Sign


@pytest.fixture
def corpus(tmp_path, clip_factory):
    """Two annotated positive clips, one negative, one unannotated, one silent."""
    d = tmp_path / "corpus"
    wave_sr = 16000
    for name, (burst_ms, voicing_ms) in {"ka": (100, 110), "ta": (120, 140)}.items():
        wave = clip_factory["positive"](burst_ms=burst_ms, voicing_ms=voicing_ms)
        write_wav(d / f"{name}.wav", wave.samples, wave_sr)
        write_landmarks(
            d / f"{name}.TextGrid",
            LandmarkSet(release=burst_ms / 1000, voicing_onset=voicing_ms / 1000, sign="pos"),
            duration=wave.duration,
        )
    neg = clip_factory["negative"]()
    write_wav(d / "ba.wav", neg.samples, wave_sr)
    write_landmarks(
        d / "ba.TextGrid",
        LandmarkSet(voicing_onset=0.05, release=0.15, sign="neg"),
        duration=neg.duration,
    )
    write_wav(d / "pa.wav", clip_factory["positive"]().samples, wave_sr)
    write_wav(d / "silence.wav", np.zeros(wave_sr // 4), wave_sr)
    return d


class TestDiscovery:
    def test_iter_items_pairs_textgrids(self, corpus):
        items = iter_items(corpus)
        assert [wav.name for wav, _ in items] == [
            "ba.wav", "ka.wav", "pa.wav", "silence.wav", "ta.wav",
        ]
        pairs = {wav.name: tg for wav, tg in items}
        assert pairs["ka.wav"].name == "ka.TextGrid"
        assert pairs["pa.wav"] is None

    def test_iter_items_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            iter_items(tmp_path / "missing")

    def test_collect_wavs_mixes_files_and_dirs(self, corpus):
        paths = collect_wavs([corpus / "ka.wav", corpus])
        assert paths[0].name == "ka.wav"
        assert len(paths) == 6

    def test_collect_wavs_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            collect_wavs([tmp_path / "x.wav"])


class TestTrainingExamples:
    def test_filters_by_sign(self, corpus):
        examples = load_training_examples(corpus, sign="pos")
        assert len(examples) == 2
        assert all(ex.truth.sign == Sign.POSITIVE for ex in examples)
        assert examples[0].waveform.source.endswith("ka.wav")

    def test_negative_only(self, corpus):
        examples = load_training_examples(corpus, sign="neg")
        assert len(examples) == 1
        assert examples[0].truth.voicing_onset == pytest.approx(0.05)

    def test_all_signs(self, corpus):
        assert len(load_training_examples(corpus)) == 3

    def test_bad_textgrid_skipped(self, corpus):
        tg = TextGrid(minTime=0.0, maxTime=0.3)
        tg.append(IntervalTier(name="words", minTime=0.0, maxTime=0.3))
        tg.write(str(corpus / "pa.TextGrid"))
        assert len(load_training_examples(corpus, sign="pos")) == 2


class TestPrediction:
    def test_predict_file_success(self, corpus):
        entry = predict_file(corpus / "ka.wav", sign="pos")
        assert entry["file"] == "ka.wav"
        assert entry["duration"] == pytest.approx(0.3)
        assert entry["landmarks"]["release"] == pytest.approx(0.1)
        assert entry["landmarks"]["sign"] == "positive"

    def test_predict_file_failure_reported(self, corpus):
        entry = predict_file(corpus / "silence.wav", sign="pos")
        assert entry["error"] == "no_release_found"
        assert "landmarks" not in entry

    def test_predict_directory(self, corpus, tmp_path):
        out = tmp_path / "out"
        entries = predict_directory([corpus], out, sign="pos")
        assert len(entries) == 5
        assert (out / "ka.TextGrid").exists()
        assert not (out / "silence.TextGrid").exists()
        report = json.loads((out / REPORT_NAME).read_text())
        assert [e["file"] for e in report] == [e["file"] for e in entries]
        failed = [e["file"] for e in report if "error" in e]
        assert failed == ["silence.wav"]

    def test_predict_directory_tier_name(self, corpus, tmp_path):
        out = tmp_path / "out"
        predict_directory([corpus / "ka.wav"], out, sign="pos", tier_name="stops")
        lm = read_landmarks(out / "ka.TextGrid", tier_name="stops")
        assert lm.sign == Sign.POSITIVE
        with pytest.raises(ValueError):
            read_landmarks(out / "ka.TextGrid")

    def test_predict_directory_parallel_matches_serial(self, corpus, tmp_path):
        serial = predict_directory([corpus / "ka.wav", corpus / "ta.wav"], tmp_path / "a", sign="pos")
        parallel = predict_directory(
            [corpus / "ka.wav", corpus / "ta.wav"], tmp_path / "b", sign="pos", workers=2,
        )
        assert [e["landmarks"] for e in serial] == [e["landmarks"] for e in parallel]

    def test_auto_sign_on_positive_clip(self, corpus, tmp_path):
        entries = predict_directory([corpus / "ka.wav"], tmp_path / "out", sign="auto")
        assert entries[0]["landmarks"]["sign"] == "positive"
        assert entries[0]["landmarks"]["guessed"] is False
