import logging
import time
from pathlib import Path
from flask import Flask, Response
from spike_detector.results import RESULT_GLOB, read_session_file

app = Flask(__name__)
app.config.setdefault("RESULTS_DIR", "session_results")


def _escape(value) -> str:
    # Label values may only carry escaped backslashes, quotes and newlines
    return str(value).replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _labels(session):
    return (f'session_id="{_escape(session.get("session_id"))}",'
            f'destination="{_escape(session.get("destination", "unknown"))}"')


def _session_metrics(session):
    labels = _labels(session)
    counts = session.get("counts", {})
    stats = session.get("statistics") or {}
    threshold = session.get("threshold", {})

    metrics = [
        f'uberping_session_attempts_total{{{labels}}} {counts.get("total_attempts", 0)}',
        f'uberping_session_successes_total{{{labels}}} {counts.get("successes", 0)}',
        f'uberping_session_failures_total{{{labels}}} {counts.get("failures", 0)}',
        f'uberping_session_success_rate_percent{{{labels}}} {counts.get("success_rate", 0)}',
        f'uberping_session_duration_seconds{{{labels}}} {session.get("elapsed_seconds", 0)}',
    ]

    for key in ("min", "max", "mean"):
        if stats.get(key) is not None:
            metrics.append(f'uberping_latency_{key}_ms{{{labels}}} {stats[key]}')
    if stats.get("jitter") is not None:
        quality = _escape(stats.get("jitter_quality", "unknown"))
        metrics.append(f'uberping_jitter_ms{{{labels},quality="{quality}"}} {stats["jitter"]}')

    metrics.append(f'uberping_threshold_ms{{{labels}}} {threshold.get("final_threshold_ms", 0)}')
    metrics.append(f'uberping_threshold_recomputes_total{{{labels}}} {len(threshold.get("history", []))}')
    metrics.append(f'uberping_spikes_total{{{labels}}} {len(session.get("spikes", []))}')
    return metrics


def collect_metrics(results_dir=None):
    results_path = Path(results_dir or app.config["RESULTS_DIR"])
    metrics = []
    errors = 0

    for result_file in sorted(results_path.glob(RESULT_GLOB)):
        try:
            metrics.extend(_session_metrics(read_session_file(result_file)))
        except Exception as e:
            logging.error(f"Error processing session file {result_file}: {e}")
            errors += 1

    if errors:
        metrics.append(f'uberping_exporter_errors{{type="session_processing"}} {errors}')
    metrics.append(f'uberping_exporter_last_scrape_timestamp {int(time.time())}')

    return "\n".join(metrics) + "\n"


@app.route("/metrics")
def metrics():
    return Response(collect_metrics(), mimetype="text/plain")


@app.route("/health")
def health():
    return {"status": "healthy", "service": "uberping-prometheus-exporter"}


def serve(results_dir: str, host: str = "0.0.0.0", port: int = 8000) -> None:
    app.config["RESULTS_DIR"] = results_dir
    app.run(host=host, port=port)


if __name__ == "__main__":
    serve("session_results")
