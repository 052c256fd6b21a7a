from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from rich.console import Console
from rich.table import Table

from .dx import arender_many, render
from .indicators import RichIndicator
from .logging_utils import configure_logging, debug_enabled, log_exception, setup_file_logger
from .parser import explain, parse
from .spinner import Spinner, render_error

_LOGGER = logging.getLogger("moodscore.cli")
_CONSOLE = Console()


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--log-file", type=str, default=None)

    parser = argparse.ArgumentParser(prog="moodscore")
    sub = parser.add_subparsers(dest="command", required=True)

    render_cmd = sub.add_parser(
        "render", parents=[common], help="Render one description to a WAV file."
    )
    render_cmd.add_argument("description", type=str)
    render_cmd.add_argument("--output", type=str, default="preview.wav")
    render_cmd.add_argument("--seed", type=int, default=None)
    render_cmd.add_argument("--parallel", action="store_true")

    inspect_cmd = sub.add_parser(
        "inspect", parents=[common], help="Show the parameters parsed from a description."
    )
    inspect_cmd.add_argument("description", type=str)

    batch_cmd = sub.add_parser(
        "batch", parents=[common], help="Render one preview per line of a text file."
    )
    batch_cmd.add_argument("file", type=str)
    batch_cmd.add_argument("--output-dir", type=str, default="previews")
    batch_cmd.add_argument("--seed", type=int, default=None)
    batch_cmd.add_argument("--concurrency", type=int, default=4)
    return parser


def _inspect(description: str) -> None:
    params = parse(description)
    rules = explain(description)
    table = Table(title="Synthesis parameters")
    table.add_column("field")
    table.add_column("value")
    table.add_column("rule")
    for field, value in params.model_dump().items():
        table.add_row(field, str(value), rules.get(field, "-"))
    _CONSOLE.print(table)


def _read_descriptions(path: Path) -> list[str]:
    lines = path.read_text(encoding="utf-8").splitlines()
    return [line.strip() for line in lines if line.strip()]


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        if args.log_file:
            setup_file_logger("moodscore", args.log_file, level=logging.DEBUG)

        if args.command == "render":
            # main reports failures itself
            indicator = RichIndicator(report_errors=False)
            preview = render(
                args.description,
                seed=args.seed,
                parallel=args.parallel,
                hooks=indicator.render_hooks(),
            )
            path = preview.save(args.output)
            _CONSOLE.print(
                f"Wrote {path} ({preview.duration:.1f}s, {preview.parameters.beats_per_minute} bpm)"
            )
            return 0

        if args.command == "inspect":
            _inspect(args.description)
            return 0

        if args.command == "batch":
            descriptions = _read_descriptions(Path(args.file))
            output_dir = Path(args.output_dir)
            with Spinner(f"Rendering {len(descriptions)} previews"):
                previews = asyncio.run(
                    arender_many(
                        descriptions,
                        max_concurrency=args.concurrency,
                        seed=args.seed,
                    )
                )
            for index, preview in enumerate(previews):
                path = preview.save(output_dir / f"preview-{index:02d}.wav")
                _CONSOLE.print(f"{path}: {preview.description[:60]}")
            return 0

        parser.print_help()
        return 1
    except Exception as exc:
        _LOGGER.warning("moodscore CLI failed: %s", exc, exc_info=debug_enabled())
        log_exception("moodscore CLI", exc)
        render_error("moodscore CLI", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
