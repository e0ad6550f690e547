import matplotlib
matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from pathlib import Path
from typing import Any, Dict, List
from probe_client.logger import logger


class SessionPlotter:
    # Renders one persisted session: latency timeline and latency distribution

    def __init__(self, output_dir: str = "visualization/plots"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        plt.style.use('default')
        sns.set_palette("husl")
        logger.info(f"SessionPlotter initialized with output dir: {self.output_dir}")

    def plot_session(self, session: Dict[str, Any]) -> List[Path]:
        session_id = session.get("session_id", "unknown")
        samples = self._samples_frame(session)

        if samples.empty:
            logger.warning(f"Session {session_id} has no successful samples - nothing to plot")
            return []

        outputs = [
            self._plot_latency_timeline(session, samples),
            self._plot_latency_distribution(session, samples),
        ]
        logger.info(f"Saved {len(outputs)} plots for session {session_id} to: {self.output_dir}")
        return outputs

    def _samples_frame(self, session: Dict[str, Any]) -> pd.DataFrame:
        samples = pd.DataFrame(session.get("samples", []), columns=["index", "latency_ms", "timestamp"])
        if samples.empty:
            return samples

        spike_indexes = {s.get("sample_index") for s in session.get("spikes", [])}
        samples["is_spike"] = samples["index"].isin(spike_indexes)
        return samples

    def _threshold_steps(self, session: Dict[str, Any], last_index: int):
        threshold = session.get("threshold", {})

        # Cold state threshold holds until the first recompute
        xs = [1]
        ys = [threshold.get("initial_threshold_ms", threshold.get("final_threshold_ms"))]
        for update in threshold.get("history", []):
            xs.append(update["sample_count"])
            ys.append(update["threshold"])

        xs.append(last_index)
        ys.append(ys[-1])
        return xs, ys

    def _plot_latency_timeline(self, session: Dict[str, Any], samples: pd.DataFrame) -> Path:
        session_id = session.get("session_id", "unknown")
        plt.figure(figsize=(14, 6))

        plt.plot(samples["index"], samples["latency_ms"], color="steelblue",
                 linewidth=1, alpha=0.8, label="Latency")

        xs, ys = self._threshold_steps(session, int(samples["index"].max()))
        plt.step(xs, ys, where="post", color="orange", linewidth=1.5, label="Spike threshold")

        spikes = samples[samples["is_spike"]]
        if not spikes.empty:
            plt.scatter(spikes["index"], spikes["latency_ms"], color="red", s=40, zorder=3,
                        label=f"Spikes ({len(spikes)})")

        plt.xlabel("Sample")
        plt.ylabel("Latency (ms)")
        plt.title(f"Latency to {session.get('destination', 'unknown')} - session {session_id}")
        plt.legend(loc="upper right")
        plt.grid(True, alpha=0.3)
        plt.tight_layout()

        output_file = self.output_dir / f"session_{session_id}_timeline.png"
        plt.savefig(output_file, dpi=150, bbox_inches='tight')
        plt.close()
        logger.info(f"Saved latency timeline plot: {output_file}")
        return output_file

    def _plot_latency_distribution(self, session: Dict[str, Any], samples: pd.DataFrame) -> Path:
        session_id = session.get("session_id", "unknown")
        latencies = samples["latency_ms"].to_numpy(dtype=float)

        plt.figure(figsize=(10, 6))
        sns.histplot(latencies, bins=min(50, max(5, len(latencies) // 2)), kde=bool(np.std(latencies) > 0),
                     color="steelblue")

        median = float(np.median(latencies))
        p95 = float(np.percentile(latencies, 95))
        plt.axvline(median, color="green", linestyle="--", label=f"Median {median:.1f}ms")
        plt.axvline(p95, color="purple", linestyle=":", label=f"P95 {p95:.1f}ms")

        final_threshold = session.get("threshold", {}).get("final_threshold_ms")
        if final_threshold is not None:
            plt.axvline(final_threshold, color="orange", label=f"Final threshold {final_threshold:.1f}ms")

        plt.xlabel("Latency (ms)")
        plt.ylabel("Samples")
        plt.title(f"Latency distribution - session {session_id}")
        plt.legend()
        plt.grid(True, alpha=0.3)
        plt.tight_layout()

        output_file = self.output_dir / f"session_{session_id}_distribution.png"
        plt.savefig(output_file, dpi=150, bbox_inches='tight')
        plt.close()
        logger.info(f"Saved latency distribution plot: {output_file}")
        return output_file
