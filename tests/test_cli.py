"""Tests for CLI argument parsing and subcommand dispatch."""

import json
from unittest.mock import patch

import pytest
from textgrid import TextGrid

from votdetect.analysis import write_wav
from votdetect.annotations import read_landmarks, write_landmarks
from votdetect.cli import main, parse_args
from votdetect.config import PositiveParams, load_params, save_params
from votdetect.types import LandmarkSet


class TestParseArgs:
    def test_no_command_exits(self):
        with pytest.raises(SystemExit):
            parse_args([])

    def test_predict_defaults(self, monkeypatch):
        monkeypatch.delenv("VOTDETECT_WORKERS", raising=False)
        args = parse_args(["predict", "a.wav"])
        assert args.command == "predict"
        assert args.inputs == ["a.wav"]
        assert args.output_dir == "./votdetect-output"
        assert args.sign == "auto"
        assert args.params == []
        assert args.allow_guess is False
        assert args.workers == 1
        assert args.tier == "vot"

    def test_workers_from_environment(self, monkeypatch):
        monkeypatch.setenv("VOTDETECT_WORKERS", "3")
        assert parse_args(["predict", "a.wav"]).workers == 3
        assert parse_args(["predict", "a.wav", "--workers", "2"]).workers == 2

    def test_train_requires_sign(self):
        with pytest.raises(SystemExit):
            parse_args(["train", "data"])

    def test_train_grid_options(self):
        args = parse_args([
            "train", "data", "--sign", "pos",
            "--grid", "release_param=5-15:5", "--grid", "voicing.threshold=0.8,0.9",
        ])
        assert args.sign == "pos"
        assert args.grid == ["release_param=5-15:5", "voicing.threshold=0.8,0.9"]
        assert str(args.output) == "params.json"

    def test_invalid_sign_choice(self):
        with pytest.raises(SystemExit):
            parse_args(["predict", "a.wav", "--sign", "maybe"])


class TestPredictCommand:
    def test_missing_input_exits(self, tmp_path):
        with pytest.raises(SystemExit):
            main(["predict", str(tmp_path / "missing.wav")])

    def test_dispatches_with_loaded_params(self, tmp_path, capsys):
        wav = tmp_path / "a.wav"
        wav.write_bytes(b"")
        params_path = tmp_path / "pos.json"
        save_params(params_path, PositiveParams(release_param=20))
        entries = [{
            "file": "a.wav", "path": str(wav), "duration": 0.3,
            "landmarks": {
                "closure": 0.095, "release": 0.1, "voicing_onset": 0.112,
                "sign": "positive", "guessed": False, "vot": 0.012,
            },
        }]
        with patch("votdetect.batch.predict_directory", return_value=entries) as mock:
            main(["predict", str(wav), "--sign", "pos", "--params", str(params_path),
                  "--output-dir", str(tmp_path / "out")])
        kwargs = mock.call_args.kwargs
        assert kwargs["sign"] == "pos"
        assert kwargs["positive"] == PositiveParams(release_param=20)
        assert kwargs["negative"] is None
        assert kwargs["tier_name"] == "vot"
        out = capsys.readouterr().out
        assert "Processed 1 file(s), 0 failed" in out
        assert "VOT 12.0 ms" in out

    def test_end_to_end(self, tmp_path, positive_clip, capsys):
        write_wav(tmp_path / "ka.wav", positive_clip.samples, positive_clip.sample_rate)
        main(["predict", str(tmp_path / "ka.wav"), "--sign", "pos",
              "--output-dir", str(tmp_path / "out")])
        assert (tmp_path / "out" / "ka.TextGrid").exists()
        assert (tmp_path / "out" / "predictions.json").exists()
        assert "positive VOT" in capsys.readouterr().out

    def test_tier_option_names_written_tier(self, tmp_path, positive_clip):
        write_wav(tmp_path / "ka.wav", positive_clip.samples, positive_clip.sample_rate)
        main(["predict", str(tmp_path / "ka.wav"), "--sign", "pos", "--tier", "VOT",
              "--output-dir", str(tmp_path / "out")])
        tg = TextGrid.fromFile(str(tmp_path / "out" / "ka.TextGrid"))
        assert [t.name for t in tg.tiers] == ["VOT", "closure"]
        lm = read_landmarks(tmp_path / "out" / "ka.TextGrid", tier_name="VOT")
        assert lm.release == pytest.approx(0.1)


class TestTrainCommand:
    @pytest.fixture
    def training_dir(self, tmp_path, clip_factory):
        d = tmp_path / "train"
        for name, (burst_ms, voicing_ms) in {"a": (80, 95), "b": (100, 110)}.items():
            wave = clip_factory["positive"](burst_ms=burst_ms, voicing_ms=voicing_ms)
            write_wav(d / f"{name}.wav", wave.samples, wave.sample_rate)
            write_landmarks(
                d / f"{name}.TextGrid",
                LandmarkSet(release=burst_ms / 1000, voicing_onset=voicing_ms / 1000,
                            sign="pos"),
                duration=wave.duration,
            )
        return d

    def test_train_writes_params_and_report(self, training_dir, tmp_path, capsys):
        output = tmp_path / "best.json"
        main(["train", str(training_dir), "--sign", "pos",
              "--grid", "voicing.threshold=0.85,0.95", "--output", str(output)])
        params = load_params(output)
        assert isinstance(params, PositiveParams)
        assert params.voicing.threshold in (0.85, 0.95)
        report = json.loads((tmp_path / "best.report.json").read_text())
        assert report["n_examples"] == 2
        assert report["n_combinations"] == 2
        assert "Best of 2 combinations" in capsys.readouterr().out

    def test_train_no_examples_exits(self, training_dir, tmp_path):
        with pytest.raises(SystemExit):
            main(["train", str(training_dir), "--sign", "neg",
                  "--output", str(tmp_path / "x.json")])

    def test_train_bad_grid_exits(self, training_dir, tmp_path):
        with pytest.raises(SystemExit):
            main(["train", str(training_dir), "--sign", "pos", "--grid", "nonsense"])

    def test_train_missing_directory_exits(self, tmp_path):
        with pytest.raises(SystemExit):
            main(["train", str(tmp_path / "nope"), "--sign", "pos"])
