"""Command-line interface for tissuealign."""

import argparse
import csv
import inspect
import logging
import os
import sys
import time
from typing import List

import tqdm

from . import __version__
from .models import AlignmentResult, AlignmentStrategy, AlignmentTask, RegistrationKind

log = logging.getLogger(__name__)


def configure_matplotlib_backend():
    """Uses a non-interactive backend; QC plots are only written to disk."""
    import matplotlib

    try:
        matplotlib.use("Agg")
        log.debug("Using 'Agg' matplotlib backend.")
    except ImportError:
        log.error("Failed to set 'Agg' matplotlib backend.")


def create_parser() -> argparse.ArgumentParser:
    """Creates the argument parser for the CLI."""
    os.environ["COLUMNS"] = "80"
    parser = argparse.ArgumentParser(
        description="Align a selected image onto a base image.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    mode_group = parser.add_mutually_exclusive_group(required=True)
    mode_group.add_argument(
        "--batch-csv",
        metavar="FILE",
        help="Path to CSV file for batch processing.",
    )
    mode_group.add_argument(
        "--base",
        dest="base_path",
        metavar="PATH",
        help="Image the selected image is aligned onto.",
    )
    parser.add_argument(
        "--selected",
        dest="selected_path",
        metavar="PATH",
        help="Image to align.",
    )
    parser.add_argument(
        "--base-annotations",
        metavar="GEOJSON",
        help="Annotations of the base image.",
    )
    parser.add_argument(
        "--selected-annotations",
        metavar="GEOJSON",
        help="Annotations of the selected image.",
    )
    parser.add_argument(
        "--strategy",
        default=AlignmentStrategy.INTENSITY.value,
        choices=[ss.value for ss in AlignmentStrategy],
        help="What the alignment is computed from.",
    )
    parser.add_argument(
        "--registration",
        default=RegistrationKind.AFFINE.value,
        choices=[kk.value for kk in RegistrationKind],
        help="Degrees of freedom of the estimated transform.",
    )
    parser.add_argument(
        "--pixel-size",
        type=float,
        default=20.0,
        metavar="MICRONS",
        help="Pixel size images are registered at.",
    )
    parser.add_argument(
        "--initial-transform",
        default="1, 0, 0, 0, 1, 0",
        metavar="M00,M01,M02,M10,M11,M12",
        help="Transform that seeds intensity-based registration.",
    )
    parser.add_argument(
        "--base-pixel-size",
        type=float,
        metavar="MICRONS",
        help="Override the base image's pixel size.",
    )
    parser.add_argument(
        "--selected-pixel-size",
        type=float,
        metavar="MICRONS",
        help="Override the selected image's pixel size.",
    )
    parser.add_argument(
        "--channel",
        type=int,
        metavar="CH",
        help="Channel to register on; all channels are combined when omitted.",
    )
    parser.add_argument(
        "--qc-out-dir",
        type=str,
        metavar="DIR",
        help="Output directory for QC plots.",
    )
    parser.add_argument(
        "--propagate-out",
        metavar="GEOJSON",
        help="Write the base annotations mapped onto the selected image.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run alignment but do not write propagated annotations.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging.",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "t", "y", "yes")


def prepare_batch_tasks(args: argparse.Namespace) -> List[AlignmentTask]:
    """Reads CSV and prepares a list of AlignmentTask objects."""
    log.info(f"Reading batch tasks from: {args.batch_csv}")
    tasks: List[AlignmentTask] = []
    required_headers = ["base-path", "selected-path"]
    task_annot = {
        kk: vv
        for kk, vv in inspect.get_annotations(AlignmentTask).items()
        if kk.replace("_", "-") not in required_headers and kk != "row_num"
    }
    casters = {}
    for kk, vv in task_annot.items():
        # Optional[X] -> X
        caster = getattr(vv, "__args__", (vv,))[0]
        casters[kk] = _parse_bool if caster is bool else caster

    try:
        with open(args.batch_csv, mode="r", encoding="utf-8-sig") as infile:
            reader = csv.DictReader(infile)
            if not reader.fieldnames:
                raise ValueError("CSV file appears to be empty or has no header.")
            # replace all - with _ in the header
            reader.fieldnames = [f.strip().replace("-", "_") for f in reader.fieldnames]
            missing = [
                h for h in required_headers if h.replace("-", "_") not in reader.fieldnames
            ]
            if missing:
                raise ValueError(f"CSV missing required headers: {', '.join(missing)}")

            for i, row in enumerate(reader):
                row_num = i + 2
                try:
                    kwargs = {
                        "base_path": row["base_path"].strip(),
                        "selected_path": row["selected_path"].strip(),
                    }
                    for kk, caster in casters.items():
                        val_from_arg = getattr(args, kk)
                        val_from_csv = row.get(kk)

                        if val_from_csv is not None and val_from_csv.strip() != "":
                            kwargs[kk] = caster(val_from_csv.strip())
                        else:
                            kwargs[kk] = val_from_arg
                    kwargs["row_num"] = row_num
                    task = AlignmentTask(**kwargs)
                    AlignmentStrategy.parse(task.strategy)
                    RegistrationKind.parse(task.registration)
                    tasks.append(task)
                except (ValueError, TypeError, KeyError, AttributeError) as ve:
                    log.warning(
                        f"Skipping CSV row {row_num} due to invalid value: {ve}. Row: {row}"
                    )
                    continue
        log.info(f"Prepared {len(tasks)} tasks from CSV file.")
        return tasks
    except FileNotFoundError:
        log.error(f"Batch CSV file not found: {args.batch_csv}")
        raise


def task_from_args(args: argparse.Namespace) -> AlignmentTask:
    return AlignmentTask(
        base_path=args.base_path,
        selected_path=args.selected_path,
        strategy=args.strategy,
        registration=args.registration,
        pixel_size=args.pixel_size,
        initial_transform=args.initial_transform,
        base_annotations=args.base_annotations,
        selected_annotations=args.selected_annotations,
        base_pixel_size=args.base_pixel_size,
        selected_pixel_size=args.selected_pixel_size,
        channel=args.channel,
        qc_out_dir=args.qc_out_dir,
        propagate_out=args.propagate_out,
        dry_run=args.dry_run,
        row_num=None,
    )


def run_task(task: AlignmentTask) -> AlignmentResult:
    """Executes a single alignment task and returns the result."""
    from .local_aligner import LocalAligner

    try:
        log.info(f"Processing pair: {task.selected_path} on {task.base_path}")
        result = LocalAligner(task).run()
        print(f"\n{task.selected_path} -> {task.base_path}")
        print(result.transform.format())
        return result
    except Exception as e:
        log.error(
            f"Failed to align {task.selected_path} on {task.base_path}: {e}",
            exc_info=True,
        )
        return AlignmentResult(
            base_path=task.base_path,
            selected_path=task.selected_path,
            success=False,
            message=str(e),
            row_num=task.row_num,
        )


def report_summary(
    successful_results: List[AlignmentResult],
    failed_results: List[AlignmentResult],
    duration: float,
):
    """Prints the final summary to the console."""
    total_tasks = len(successful_results) + len(failed_results)
    print("\n--- Processing Summary ---")
    print(f"Total tasks attempted: {total_tasks}")
    print(f"Successful tasks: {len(successful_results)}")
    print(f"Failed tasks: {len(failed_results)}")
    if failed_results:
        print("\nFailures occurred:", file=sys.stderr)
        failed_results.sort(
            key=lambda r: r.row_num if r.row_num is not None else float("inf")
        )
        error_msgs = []
        for result in failed_results:
            row_info = f"(CSV Row {result.row_num})" if result.row_num else ""
            msg = f"Pair {result.selected_path} on {result.base_path} {row_info}: {result.message}"
            error_msgs.append(msg)
            print(f"  - {msg}", file=sys.stderr)
        log.warning("Failures occurred:")
        for msg in error_msgs:
            log.warning(msg)
    print(f"\nTotal execution time: {duration:.2f} seconds")


def main(argv=None):
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.base_path is not None and args.selected_path is None:
        parser.error("--selected is required when --base is provided.")

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    configure_matplotlib_backend()

    successful_results: List[AlignmentResult] = []
    failed_results: List[AlignmentResult] = []
    start_time = time.time()

    try:
        tasks: List[AlignmentTask] = []
        if args.batch_csv:
            tasks.extend(prepare_batch_tasks(args))
        else:
            tasks.append(task_from_args(args))

        if not tasks:
            log.info("No tasks to process. Exiting.")
        else:
            log.info(f"Starting processing for {len(tasks)} task(s).")
            for task in tqdm.tqdm(tasks, desc="Processing Tasks", disable=len(tasks) == 1):
                result = run_task(task)
                if result.success:
                    successful_results.append(result)
                else:
                    failed_results.append(result)
    except Exception as e:
        log.critical(f"A critical error occurred: {e}", exc_info=True)
        print(f"\nError: A critical error occurred: {e}", file=sys.stderr)
        sys.exit(1)

    duration = time.time() - start_time
    report_summary(successful_results, failed_results, duration)

    if failed_results:
        sys.exit(1)
    else:
        sys.exit(0)


if __name__ == "__main__":
    main()
