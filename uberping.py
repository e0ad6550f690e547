import argparse
import sys
import logging
from probe_client.config import load_config
from probe_client.logger import logger
from probe_client.output_sink import OutputSink, default_log_path
from probe_client.prober import SystemPingProber
from spike_detector.results import find_session, load_session_results
from spike_detector.session import (
    CancellationToken, SessionCoordinator, install_signal_handlers, restore_signal_handlers
)
from spike_detector.statistics_engine import JITTER_QUALITY


def setup_logging(log_level: str) -> None:
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f'Invalid log level: {log_level}')

    logging.getLogger().setLevel(numeric_level)
    logger.setLevel(numeric_level)


def create_parser():
    parser = argparse.ArgumentParser(
        prog="uberping",
        description='UberPing - Network Connectivity Monitor with Adaptive Spike Detection',
        epilog='Use "uberping <command> --help" for command-specific options.'
    )

    # Global options
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Set logging level (default: INFO)'
    )

    subparsers = parser.add_subparsers(dest='command', required=True, help='Available commands')

    # Monitoring session
    run_parser = subparsers.add_parser('run', help='Ping a destination and detect latency spikes')
    run_parser.add_argument('-d', '--destination', help='Target hostname or IP address')
    run_parser.add_argument('-t', '--time-limit', type=float, dest='time_limit_seconds',
                            help='Time limit in seconds (0 = continuous, default: 0)')
    run_parser.add_argument('-i', '--interval', type=int, dest='interval_ms',
                            help='Ping interval in milliseconds (default: 1000)')
    run_parser.add_argument('-s', '--spike-multiplier', type=float, dest='spike_multiplier_percent',
                            help='Adaptive spike detection multiplier in percent (default: 200)')
    run_parser.add_argument('--recompute-interval', type=int,
                            help='Successful pings between threshold recalculations (default: 10)')
    run_parser.add_argument('--min-threshold', type=float, dest='min_threshold_ms',
                            help='Lower bound for the spike threshold in ms (default: 20)')
    run_parser.add_argument('--max-threshold', type=float, dest='max_threshold_ms',
                            help='Upper bound for the spike threshold in ms (default: 500)')
    run_parser.add_argument('--initial-threshold', type=float, dest='initial_threshold_ms',
                            help='Spike threshold in ms used until enough samples exist (default: 20)')
    run_parser.add_argument('--min-samples', type=int,
                            help='Successful pings required before spike detection starts (default: 15)')
    run_parser.add_argument('--timeout', type=int, dest='timeout_ms',
                            help='Per-ping timeout in milliseconds (default: 5000)')
    run_parser.add_argument('-l', '--log-file', help='Session log file path (default: auto-generated)')
    run_parser.add_argument('--logs-dir', help='Directory for auto-generated log files (default: uberping_logs)')
    run_parser.add_argument('--results-dir', help='Directory for JSON session results (default: session_results)')
    run_parser.add_argument('--config', help='YAML configuration file')
    run_parser.add_argument('--debug', action='store_true', default=None,
                            help='Show threshold recalculation details')

    # Persisted sessions
    sessions_parser = subparsers.add_parser('sessions', help='Show summaries of recorded sessions')
    sessions_parser.add_argument('--results-dir', default='session_results',
                                 help='Directory with JSON session results (default: session_results)')
    sessions_parser.add_argument('--session-id', help='Show a single session only')
    sessions_parser.add_argument('--detailed', action='store_true', help='List spikes of each session')

    plot_parser = subparsers.add_parser('plot', help='Plot latency and spikes of a recorded session')
    plot_parser.add_argument('--results-dir', default='session_results',
                             help='Directory with JSON session results (default: session_results)')
    plot_parser.add_argument('--session-id', help='Session to plot (default: most recent)')
    plot_parser.add_argument('--output-dir', default='visualization/plots',
                             help='Directory for generated plots (default: visualization/plots)')

    export_parser = subparsers.add_parser('export', help='Serve session metrics for Prometheus')
    export_parser.add_argument('--results-dir', default='session_results',
                               help='Directory with JSON session results (default: session_results)')
    export_parser.add_argument('--host', default='0.0.0.0', help='Bind address (default: 0.0.0.0)')
    export_parser.add_argument('--port', type=int, default=8000, help='Port (default: 8000)')

    return parser


def build_overrides(args):
    return {
        "probe": {
            "destination": args.destination,
            "interval_ms": args.interval_ms,
            "timeout_ms": args.timeout_ms,
            "time_limit_seconds": args.time_limit_seconds,
        },
        "detection": {
            "spike_multiplier_percent": args.spike_multiplier_percent,
            "recompute_interval": args.recompute_interval,
            "min_threshold_ms": args.min_threshold_ms,
            "max_threshold_ms": args.max_threshold_ms,
            "initial_threshold_ms": args.initial_threshold_ms,
            "min_samples": args.min_samples,
        },
        "output": {
            "log_file": args.log_file,
            "logs_dir": args.logs_dir,
            "results_dir": args.results_dir,
            "debug": args.debug,
        },
    }


# This function runs one monitoring session until the time limit or Ctrl+C
# Configuration errors are raised before the first ping is sent
def handle_run_command(args, prober=None):
    config = load_config(config_path=args.config, overrides=build_overrides(args))

    prober = prober or SystemPingProber()
    if hasattr(prober, "check_available"):
        prober.check_available()

    output = config["output"]
    log_file = output["log_file"] or str(default_log_path(output["logs_dir"]))
    sink = OutputSink(log_file=log_file)

    logger.info(f"Starting ping to {config['probe']['destination']}")
    logger.info(f"Log file: {log_file}")

    token = CancellationToken()
    previous_handlers = install_signal_handlers(token)
    try:
        coordinator = SessionCoordinator(config, prober, sink, cancel_token=token)
        summary = coordinator.run()
    finally:
        restore_signal_handlers(previous_handlers)

    logger.info(f"Log saved to: {log_file}")
    return summary


def handle_sessions_command(args):
    logger.info("=== Recorded Sessions ===")

    sessions = load_session_results(args.results_dir)
    if not sessions:
        logger.warning(f"No session results found in {args.results_dir}")
        logger.info("Run 'uberping run -d <destination>' to record a session")
        return

    shown = 0
    total_spikes = 0
    for session in sessions:
        session_id = session.get("session_id")
        if args.session_id and str(session_id) != args.session_id:
            continue

        shown += 1
        counts = session.get("counts", {})
        stats = session.get("statistics") or {}
        spikes = session.get("spikes", [])
        threshold = session.get("threshold", {})
        total_spikes += len(spikes)

        logger.info(f"\nSession {session_id} -> {session.get('destination')}:")
        logger.info(f"  Pings: {counts.get('total_attempts', 0)} sent, "
                    f"{counts.get('successes', 0)} ok, {counts.get('failures', 0)} failed "
                    f"({counts.get('success_rate', 0):.2f}% success)")
        if stats:
            logger.info(f"  Latency: min {stats.get('min')}ms, max {stats.get('max')}ms, "
                        f"avg {stats.get('mean', 0):.2f}ms")
            quality = stats.get("jitter_quality")
            if quality:
                logger.info(f"  Jitter: {stats.get('jitter', 0):.2f}ms - {quality} "
                            f"({JITTER_QUALITY.get(quality, 'Unknown')})")
        logger.info(f"  Final threshold: {threshold.get('final_threshold_ms')}ms "
                    f"@ {threshold.get('multiplier_percent')}%")
        logger.info(f"  Spikes: {len(spikes)}")

        if args.detailed:
            for i, spike in enumerate(spikes[:10]):
                logger.info(f"    {i+1}. {spike.get('timestamp')}: {spike.get('latency_ms')}ms "
                            f"> {spike.get('threshold_ms')}ms")
            if len(spikes) > 10:
                logger.info(f"    ... and {len(spikes) - 10} more spikes")

    if args.session_id and shown == 0:
        logger.info(f"No session found with ID: {args.session_id}")
    elif not args.session_id:
        logger.info(f"\n=== Global Summary ===")
        logger.info(f"Total sessions: {shown}")
        logger.info(f"Total spikes detected: {total_spikes}")


def handle_plot_command(args):
    from visualization.session_plotter import SessionPlotter

    session = find_session(args.results_dir, args.session_id)
    if session is None:
        logger.error(f"No matching session found in {args.results_dir}")
        return []

    plotter = SessionPlotter(args.output_dir)
    return plotter.plot_session(session)


def handle_export_command(args):
    from exporter.prometheus_exporter import serve

    logger.info(f"Serving metrics for {args.results_dir} on {args.host}:{args.port}")
    serve(args.results_dir, host=args.host, port=args.port)


# Main entry point for UberPing
def main(argv=None):
    parser = create_parser()
    args = parser.parse_args(argv)

    # Set up logging
    try:
        setup_logging(args.log_level)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    logger.debug(f"UberPing - Command: {args.command}")

    try:
        if args.command == 'run':
            handle_run_command(args)

        elif args.command == 'sessions':
            handle_sessions_command(args)

        elif args.command == 'plot':
            handle_plot_command(args)

        elif args.command == 'export':
            handle_export_command(args)

        else:
            parser.print_help()
            sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Operation cancelled by user")
        sys.exit(1)
    except (ValueError, FileNotFoundError) as e:
        logger.error(f"Error: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Command failed: {e}")
        if args.log_level == 'DEBUG':
            logger.exception("Full traceback:")
        sys.exit(1)


if __name__ == "__main__":
    main()
