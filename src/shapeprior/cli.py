"""
Command-line interface for shapeprior.

Provides commands for computing lower bounds, fitting mean shapes and
writing a default configuration.
"""

import argparse
import json
import sys

from shapeprior.config import load_config, save_default_config
from shapeprior.tracer import configure_tracer, get_tracer


def _add_trace_arguments(parser):
    parser.add_argument(
        "--trace",
        action="store_true",
        help="Enable runtime tracing",
    )
    parser.add_argument(
        "--trace-level",
        default="INFO",
        choices=["ERROR", "WARN", "INFO", "DEBUG"],
        help="Trace log level",
    )
    parser.add_argument(
        "--trace-file",
        default=None,
        help="Path to write trace logs",
    )
    parser.add_argument(
        "--trace-json",
        action="store_true",
        help="Enable JSON trace output",
    )


def build_parser():
    parser = argparse.ArgumentParser(
        prog="shapeprior",
        description="Shapeprior: lower bounds for segmentation with shape priors",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Lower bound command
    bound_parser = subparsers.add_parser("lower-bound", help="Compute the energy lower bound of a problem")
    bound_parser.add_argument(
        "--problem", "-p",
        required=True,
        help="Path to the problem YAML file",
    )
    bound_parser.add_argument(
        "--out", "-o",
        required=True,
        help="Output directory",
    )
    bound_parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to YAML configuration file",
    )
    bound_parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug artifact generation",
    )
    _add_trace_arguments(bound_parser)

    # Mean shape command
    mean_parser = subparsers.add_parser("mean-shape", help="Fit the mean shape of a model into a rectangle")
    mean_parser.add_argument(
        "--problem", "-p",
        required=True,
        help="Path to the problem YAML file",
    )
    mean_parser.add_argument("--width", type=float, required=True, help="Rectangle width")
    mean_parser.add_argument("--height", type=float, required=True, help="Rectangle height")
    mean_parser.add_argument(
        "--out", "-o",
        default=None,
        help="Write the shape JSON here instead of printing it",
    )
    mean_parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to YAML configuration file",
    )

    # Init config command
    init_parser = subparsers.add_parser("init-config", help="Create default config file")
    init_parser.add_argument(
        "--out", "-o",
        default="shapeprior_config.yaml",
        help="Output path for config file",
    )

    return parser


def main(argv=None):
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "lower-bound":
        return handle_lower_bound(args)
    elif args.command == "mean-shape":
        return handle_mean_shape(args)
    elif args.command == "init-config":
        return handle_init_config(args)

    return 0


def _format_bound(value):
    return "n/a" if value is None else f"{value:.6g}"


def handle_lower_bound(args):
    """Handle the lower-bound command."""
    tracer = get_tracer()

    try:
        config = load_config(args.config)
        configure_tracer(
            enabled=args.trace or config.tracing.enabled,
            level=args.trace_level if args.trace else config.tracing.level,
            file_path=args.trace_file or config.tracing.file_path,
            json_output=args.trace_json or config.tracing.json_output,
        )

        from shapeprior.pipeline import load_problem, run_lower_bound

        with tracer.span("cli_lower_bound", module="cli"):
            problem = load_problem(args.problem)
            summary = run_lower_bound(problem, config=config, out_dir=args.out, debug=args.debug)

        result = summary["result"]
        print("\nLower bound computed.")
        print(f"  Iterations: {result['completed_iterations']}")
        if result["cancelled"]:
            print("  Cancelled before all iterations ran")
        print(f"  Segmentation lower bound: {_format_bound(summary['segmentation_lower_bound'])}")
        print(f"  Shape energy lower bound: {_format_bound(summary['shape_energy_lower_bound'])}")
        print(f"  Total lower bound: {_format_bound(summary['total_lower_bound'])}")
        print(f"\nOutputs saved to: {args.out}/")
        print("  - lower_bound.json")
        return 0

    except Exception as e:
        tracer.event(f"Lower bound failed: {str(e)}", level="ERROR")
        print(f"\nError: {str(e)}", file=sys.stderr)
        return 1


def handle_mean_shape(args):
    """Handle the mean-shape command."""
    tracer = get_tracer()

    try:
        from shapeprior.io.save_artifacts import save_json
        from shapeprior.pipeline import load_problem, run_mean_shape

        problem = load_problem(args.problem)
        shape = run_mean_shape(problem, args.width, args.height, config=load_config(args.config))

        if args.out:
            save_json(shape.to_dict(), args.out)
            print(f"Mean shape saved to: {args.out}")
        else:
            print(json.dumps(shape.to_dict(), indent=2))
        return 0

    except Exception as e:
        tracer.event(f"Mean shape failed: {str(e)}", level="ERROR")
        print(f"\nError: {str(e)}", file=sys.stderr)
        return 1


def handle_init_config(args):
    """Handle the init-config command."""
    save_default_config(args.out)
    print(f"Default configuration saved to: {args.out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
