"""Command line entry point."""

import argparse
import logging
import signal
import sys
import threading
from typing import Iterable, Optional

from keezer.base.process import NS_PER_SECOND
from keezer.base.runner import StandardRunner
from keezer.config import Configuration, load_config, resolve_probes
from keezer.environments.hardware import GpioActuator, W1ProbeReader
from keezer.errors import ActuatorFailureError, ConfigurationError
from keezer.logsink import CsvFileLogSink
from keezer.loop import ControlLoop
from keezer.simulate import (
    SimulationReport,
    run_simulation,
    simulation_config,
)

logger = logging.getLogger("keezer")

EXIT_OK = 0
EXIT_HARDWARE = 1
EXIT_CONFIG = 2

# Fields a simulation replaces with its own probes and log
SIMULATION_EXCLUDED = {
    "enclosure_probe_id",
    "secondary_probe_id",
    "log_paths",
    "target_temperature",
}


def build_arg_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "-v", "--verbose", action="store_true", help="Log debug messages"
    )

    parser = argparse.ArgumentParser(
        prog="keezer",
        description="Hold a freezer at a target temperature without "
        "short-cycling its compressor.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser(
        "run", parents=[common], help="Control the appliance"
    )
    run.add_argument(
        "--config",
        required=True,
        help="Path to the JSON configuration file",
    )
    run.add_argument(
        "--w1-path",
        default="/sys/bus/w1/devices",
        help="1-Wire sysfs device directory",
    )

    sim = commands.add_parser(
        "simulate",
        parents=[common],
        help="Run the controller against the thermal model",
    )
    sim.add_argument(
        "--config",
        help="Optional JSON configuration; probe ids are ignored",
    )
    sim.add_argument(
        "--hours", type=float, default=24.0, help="Simulated duration"
    )
    sim.add_argument(
        "--start-temp",
        type=float,
        default=72.0,
        help="Starting enclosure temperature",
    )
    sim.add_argument(
        "--target",
        type=float,
        default=60.0,
        help="Target temperature without --config",
    )
    return parser


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run_controller(config_path: str, w1_path: str) -> int:
    """Control real hardware until SIGINT or SIGTERM."""
    try:
        config = load_config(config_path)
        probes = W1ProbeReader(name="w1", devices_path=w1_path)
        config = resolve_probes(config, probes.discover())
    except ConfigurationError as e:
        logger.critical(f"Fatal configuration error: {e}")
        return EXIT_CONFIG

    try:
        actuator = GpioActuator(
            name="compressor",
            pin=config.power_pin,
            active_low=config.power_pin_active_low,
        )
    except ActuatorFailureError as e:
        logger.critical(f"Cannot claim the power output: {e}")
        return EXIT_HARDWARE

    sink = CsvFileLogSink(name="control-log", paths=config.log_paths)
    loop = ControlLoop.build(config, probes, actuator, sink)
    runner = StandardRunner(name="keezer", main_process=loop)

    stop_event = threading.Event()

    def request_stop(signum: int, _frame: object) -> None:
        logger.info(f"Received signal {signum}, stopping")
        stop_event.set()

    signal.signal(signal.SIGINT, request_stop)
    signal.signal(signal.SIGTERM, request_stop)

    runner.start()
    try:
        stop_event.wait()
    finally:
        runner.stop()
    return EXIT_OK


def format_report(
    report: SimulationReport, config: Configuration, hours: float
) -> str:
    def seconds(value: int | None) -> str:
        return "n/a" if value is None else f"{value / NS_PER_SECOND:.0f}s"

    def temperature(value: float | None) -> str:
        return "n/a" if value is None else f"{value:.1f}F"

    low = temperature(report.min_enclosure_temp)
    high = temperature(report.max_enclosure_temp)
    lines = [
        f"Simulated {hours:g} hours at target "
        f"{config.target_temperature}F",
        f"  ticks:            {report.ticks}",
        f"  compressor starts: {report.power_on_count}",
        f"  first start:      {seconds(report.first_power_on)}",
        f"  shortest run:     {seconds(report.shortest_run)}",
        f"  shortest rest:    {seconds(report.shortest_rest)}",
        f"  enclosure range:  {low} .. {high}",
    ]
    if report.ok:
        lines.append("  timing: OK")
    else:
        lines.append(f"  timing: {len(report.violations)} violation(s)")
        lines.extend(f"    {violation}" for violation in report.violations)
    return "\n".join(lines)


def simulate(
    config_path: str | None, hours: float, start_temp: float, target: float
) -> int:
    if config_path is not None:
        try:
            loaded = load_config(config_path)
        except ConfigurationError as e:
            logger.critical(f"Fatal configuration error: {e}")
            return EXIT_CONFIG
        overrides = loaded.model_dump(exclude=SIMULATION_EXCLUDED)
        config = simulation_config(loaded.target_temperature, **overrides)
    else:
        config = simulation_config(target)

    report, _ = run_simulation(config, hours, start_temperature=start_temp)
    print(format_report(report, config, hours))
    return EXIT_OK if report.ok else EXIT_HARDWARE


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    configure_logging(args.verbose)

    if args.command == "run":
        return run_controller(args.config, args.w1_path)
    return simulate(args.config, args.hours, args.start_temp, args.target)


if __name__ == "__main__":
    sys.exit(main())


__all__ = ["main", "build_arg_parser", "run_controller", "simulate"]
