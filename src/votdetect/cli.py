"""CLI entrypoint for votdetect: subcommand dispatcher."""

import argparse
import json
import logging
import sys
from pathlib import Path

from votdetect.config import default_workers, parse_grid_option


def _add_shared_args(parser: argparse.ArgumentParser) -> None:
    """Add arguments shared between predict and train subcommands."""
    parser.add_argument("--workers", type=int, default=None,
                        help="Worker processes (default: $VOTDETECT_WORKERS or 1)")
    parser.add_argument("--tier", default="vot",
                        help="TextGrid interval tier holding the VOT (default: vot)")
    parser.add_argument("-v", "--verbose", action="store_true", default=False,
                        help="Debug logging")


def _add_predict_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "inputs", nargs="*", default=[],
        help="WAV files or directories of WAV files.",
    )
    parser.add_argument("--output-dir", default="./votdetect-output",
                        help="Output directory (default: ./votdetect-output)")
    parser.add_argument("--sign", default="auto",
                        choices=["pos", "neg", "auto"],
                        help="VOT sign; 'auto' uses the sign heuristic (default: auto)")
    parser.add_argument("--params", type=Path, action="append", default=[],
                        help="Parameter JSON from 'train' (repeat for both signs)")
    parser.add_argument("--allow-guess", action="store_true", default=False,
                        help="Accept low-confidence sign guesses instead of failing")


def _add_train_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("directory", help="Directory of WAV + TextGrid pairs.")
    parser.add_argument("--sign", required=True, choices=["pos", "neg"],
                        help="Sign of the examples to train on")
    parser.add_argument("--grid", action="append", default=[], metavar="NAME=VALUES",
                        help="Candidate values, e.g. release_param=5-25:5 or "
                             "voicing.threshold=0.8,0.85 (default: built-in grid)")
    parser.add_argument("--base-params", type=Path, default=None,
                        help="Parameter JSON the grid overrides (default: built-in)")
    parser.add_argument("--output", type=Path, default=Path("params.json"),
                        help="Where to write the winning parameters (default: params.json)")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments with subcommands."""
    parser = argparse.ArgumentParser(
        prog="votdetect",
        description="Predict voice onset time landmarks from speech recordings",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    predict_parser = subparsers.add_parser(
        "predict",
        help="Predict closure, release and voicing onset",
        description="Predict VOT landmarks and write one TextGrid per WAV",
    )
    _add_shared_args(predict_parser)
    _add_predict_args(predict_parser)

    train_parser = subparsers.add_parser(
        "train",
        help="Tune detection parameters on annotated examples",
        description="Grid-search detection parameters against manual TextGrids",
    )
    _add_shared_args(train_parser)
    _add_train_args(train_parser)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.workers is None:
        args.workers = default_workers()

    return args


def _run_predict(args: argparse.Namespace) -> None:
    """Run predictions over the input files."""
    from votdetect.batch import predict_directory
    from votdetect.config import NegativeParams, PositiveParams, load_params

    if not args.inputs:
        print("Error: at least one input file or directory is required", file=sys.stderr)
        sys.exit(1)
    for p in args.inputs:
        if not Path(p).exists():
            print(f"Error: file not found: {p}", file=sys.stderr)
            sys.exit(1)

    positive, negative = None, None
    for path in args.params:
        params = load_params(path)
        if isinstance(params, NegativeParams):
            negative = params
        elif isinstance(params, PositiveParams):
            positive = params

    entries = predict_directory(
        args.inputs,
        args.output_dir,
        sign=args.sign,
        positive=positive,
        negative=negative,
        allow_guess=args.allow_guess,
        workers=args.workers,
        tier_name=args.tier,
    )

    failed = [e for e in entries if "error" in e]
    print(f"Processed {len(entries)} file(s), {len(failed)} failed")
    for entry in entries:
        if "error" in entry:
            print(f"  {entry['file']}: {entry['error']}")
            continue
        lm = entry["landmarks"]
        vot_ms = lm["vot"] * 1000 if lm["vot"] is not None else float("nan")
        flag = " (guessed sign)" if lm["guessed"] else ""
        print(f"  {entry['file']}: {lm['sign']} VOT {vot_ms:.1f} ms{flag}")
    print(f"Output: {args.output_dir}")


def _run_train(args: argparse.Namespace) -> None:
    """Run the grid search and save the winning parameters."""
    from votdetect.batch import load_training_examples
    from votdetect.config import NegativeParams, PositiveParams, load_params, save_params
    from votdetect.optimize import optimize

    directory = Path(args.directory)
    if not directory.is_dir():
        print(f"Error: directory not found: {directory}", file=sys.stderr)
        sys.exit(1)

    try:
        grid = dict(parse_grid_option(option) for option in args.grid) or None
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.base_params is not None:
        base = load_params(args.base_params)
    else:
        base = NegativeParams() if args.sign == "neg" else PositiveParams()
    if base.sign != ("negative" if args.sign == "neg" else "positive"):
        print(f"Error: {args.base_params} holds {base.sign} parameters", file=sys.stderr)
        sys.exit(1)

    examples = load_training_examples(directory, sign=args.sign, tier_name=args.tier)
    if not examples:
        print(f"Error: no {args.sign} training examples in {directory}", file=sys.stderr)
        sys.exit(1)

    result = optimize(examples, base_params=base, grid=grid, workers=args.workers)
    save_params(args.output, result.params)

    report = args.output.with_suffix(".report.json")
    report.write_text(json.dumps(result.to_dict(), indent=2) + "\n")

    print(result.summary())
    print(f"Parameters: {args.output}")
    print(f"Report: {report}")


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint."""
    args = parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=level, format="%(name)s %(levelname)s: %(message)s")

    if args.command == "predict":
        _run_predict(args)
    elif args.command == "train":
        _run_train(args)


if __name__ == "__main__":
    main()
