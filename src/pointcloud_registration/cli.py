"""
Command line entry point.

3D-3D registration: aligns a source (moving) 3D model onto a target (fixed)
3D model, e.g. a photogrammetry reconstruction onto a LiDAR scan, and
optionally writes the transformed source.

Exit status is 0 on success (including runs without an output file) and
non-zero when arguments are missing or a pipeline stage fails.
"""

import argparse
import sys
from typing import List, Optional

from .alignment.types import AlignmentMethod
from .errors import RegistrationError
from .pipeline.registration_pipeline import RegistrationPipeline
from .utils.config import load_config
from .utils.logging import VERBOSE_LEVELS, set_log_level, setup_logger

logger = setup_logger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


def _str_to_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise argparse.ArgumentTypeError(f"Expected a boolean, got '{value}'")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pointcloud-registration",
        description=(
            "3D 3D registration. Perform registration of 3D models "
            "(e.g. SfM & LiDAR model)."
        ),
    )

    required = parser.add_argument_group("Required parameters")
    required.add_argument(
        "-s", "--source-file", "--sourceFile",
        dest="source_file",
        required=True,
        help="Path to the source (moving) 3D model.",
    )
    required.add_argument(
        "-t", "--target-file", "--targetFile",
        dest="target_file",
        required=True,
        help="Path to the target (fixed) 3D model.",
    )

    # Optional values default to None so the YAML config (or its defaults) applies
    optional = parser.add_argument_group("Optional parameters")
    optional.add_argument(
        "-o", "--output-file", "--outputFile",
        dest="output_file",
        default=None,
        help="Path to save the transformed source 3D model.",
    )
    optional.add_argument(
        "-m", "--method",
        dest="method",
        default=None,
        help=f"Alignment method: {AlignmentMethod.describe()} (default: GICP).",
    )
    optional.add_argument(
        "--scale-ratio", "--scaleRatio",
        dest="scale_ratio",
        type=float,
        default=None,
        help="Scale ratio between the two 3D models (= target size / source size).",
    )
    optional.add_argument(
        "--source-measurement", "--sourceMeasurement",
        dest="source_measurement",
        type=float,
        default=None,
        help="Measurement made on the source 3D model (same unit as --target-measurement).",
    )
    optional.add_argument(
        "--target-measurement", "--targetMeasurement",
        dest="target_measurement",
        type=float,
        default=None,
        help="Measurement made on the target 3D model (same unit as --source-measurement).",
    )
    optional.add_argument(
        "--voxel-size", "--voxelSize",
        dest="voxel_size",
        type=float,
        default=None,
        help="Voxel grid size used to downsample both models (default: 0.1, <= 0 disables).",
    )
    optional.add_argument(
        "--show-timeline", "--showTimeline",
        dest="show_timeline",
        type=_str_to_bool,
        default=None,
        help="Show the duration of each stage of the alignment pipeline (default: true).",
    )
    optional.add_argument(
        "--transform-file", "--transformFile",
        dest="transform_file",
        default=None,
        help="Path to save the estimated 4x4 transform as text.",
    )
    optional.add_argument(
        "--config",
        dest="config",
        default=None,
        help="Path to YAML configuration file (defaults to config/default.yaml).",
    )

    log_params = parser.add_argument_group("Log parameters")
    log_params.add_argument(
        "-v", "--verbose-level", "--verboseLevel",
        dest="verbose_level",
        type=str.lower,
        choices=list(VERBOSE_LEVELS),
        default=None,
        help="Verbosity level (fatal, error, warning, info, debug, trace).",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Parse arguments, run the registration pipeline and return the exit status.
    """
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        # argparse exits with 0 for --help and 2 for usage errors
        return int(e.code or 0)

    overrides = {
        "source_file": args.source_file,
        "target_file": args.target_file,
        "output_file": args.output_file,
        "transform_file": args.transform_file,
        "method": args.method,
        "scale_ratio": args.scale_ratio,
        "source_measurement": args.source_measurement,
        "target_measurement": args.target_measurement,
        "voxel_size": args.voxel_size,
        "show_timeline": args.show_timeline,
    }

    try:
        cfg = load_config(args.config, allow_missing=args.config is None, overrides=overrides)
    except (ValueError, FileNotFoundError) as e:
        logger.error(f"ERROR: {e}")
        parser.print_usage(sys.stderr)
        return EXIT_FAILURE

    set_log_level(args.verbose_level or cfg.logging.level, log_file=cfg.logging.file)
    logger.info("Program called with the following parameters:")
    for key, value in cfg.model_dump(exclude={"solvers", "logging"}).items():
        logger.info(f"  {key}: {value}")
    logger.debug(f"Solver settings ({cfg.method.name}): {cfg.solver.model_dump()}")

    try:
        result = RegistrationPipeline(cfg).run()
    except RegistrationError as e:
        logger.error(f"3D3DRegistration failed: {e}")
        return EXIT_FAILURE

    logger.info(f"Registration finished with status '{result.alignment.status.value}'.")
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
