"""Command line entry point: run a configured documentation build over a topic directory."""

import argparse
import logging
from pathlib import Path

from docbuild.build_report import BuildReport
from docbuild.errors import FatalBuildError
from docbuild.pipeline_config import (
    compute_config_hash,
    load_config,
    parse_declarations,
    validate_settings,
)
from docbuild.pipeline_engine import PipelineEngine
from docbuild.topic import load_topics

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_TOPIC_ERRORS = 1
EXIT_FATAL = 2


def run_build(args: argparse.Namespace) -> int:
    """Execute the full build and return the process exit code."""
    config = load_config(args.config)
    if args.workers is not None:
        config["max_workers"] = args.workers
    if args.out_dir is not None:
        for decl in config.get("components") or []:
            if isinstance(decl, dict) and decl.get("type") == "save":
                decl["config"] = {
                    **(decl.get("config") or {}),
                    "output_dir": str(args.out_dir),
                }
    validate_settings(config)

    logging.getLogger().setLevel(args.log_level or config["log_level"])

    report = BuildReport(compute_config_hash(config))
    declarations = parse_declarations(config)
    topics = load_topics(args.topics_dir, report)
    if not topics:
        msg = f"No .xml topics found under: {args.topics_dir}"
        raise FatalBuildError(msg)

    base_dir = Path(args.config).resolve().parent
    with PipelineEngine(
        max_workers=config["max_workers"],
        report=report,
        base_dir=base_dir,
        settings=config,
    ) as engine:
        engine.initialize(declarations)
        engine.run(topics)

    # Config-relative unless given on the command line.
    report_path = args.report
    if report_path is None and config.get("report_path"):
        report_path = base_dir / str(config["report_path"])
    if report_path is not None:
        report.generate_report(str(report_path))

    summary = report.summary()
    print(
        f"Processed {summary['topics_processed']} topics: "
        f"{summary['failed_topics']} failed, "
        f"{summary['unresolved_links']} unresolved links"
    )
    return EXIT_TOPIC_ERRORS if report.topic_errors else EXIT_OK


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and run the build."""
    ap = argparse.ArgumentParser(
        description="Run topics through a configured documentation build pipeline.",
    )
    ap.add_argument("config", type=Path, help="Pipeline configuration (YAML)")
    ap.add_argument("topics_dir", type=Path, help="Directory containing topic *.xml files")
    ap.add_argument(
        "--out-dir",
        type=Path,
        default=None,
        help="Override output_dir of every 'save' component",
    )
    ap.add_argument(
        "--report",
        type=Path,
        default=None,
        help="Where to write the JSON build report (default: report_path from config)",
    )
    ap.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of topics processed concurrently",
    )
    ap.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: log_level from config)",
    )
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return run_build(args)
    except FatalBuildError as e:
        logger.error("Build aborted: %s", e)
        return EXIT_FATAL


if __name__ == "__main__":
    raise SystemExit(main())
