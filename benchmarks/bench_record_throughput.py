"""Benchmark: DemonstrationRecorder.record() throughput — steps per second.

Records steps carrying one 64-value vector observation into an in-memory
file system, so the figure measures encoding and framing rather than disk.
"""
from __future__ import annotations

import json
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np

from agent_demo_recorder.demonstrations.models import SessionParameters, StepRecord
from agent_demo_recorder.demonstrations.recorder import DemonstrationRecorder
from agent_demo_recorder.filesystem import InMemoryFileSystem
from agent_demo_recorder.sensors.base import VectorSensor

_ITERATIONS: int = 10_000
_OBSERVATION_SIZE: int = 64


def bench_record_throughput() -> dict[str, object]:
    """Benchmark DemonstrationRecorder.record() throughput.

    Returns
    -------
    dict with keys: operation, iterations, total_seconds, ops_per_second,
    avg_latency_ms, file_bytes.
    """
    rng = np.random.default_rng(0)
    sensor = VectorSensor("bench", size=_OBSERVATION_SIZE)
    fs = InMemoryFileSystem()
    recorder = DemonstrationRecorder(file_system=fs)
    path = recorder.initialize(
        "bench", SessionParameters.from_sensors("Bench", [sensor], action_shape=(4,))
    )
    observations = rng.standard_normal((_ITERATIONS, _OBSERVATION_SIZE)).astype(np.float32)
    action = np.zeros(4, dtype=np.float32)

    start = time.perf_counter()
    for i in range(_ITERATIONS):
        sensor.observe(observations[i])
        recorder.record(
            StepRecord(action=action, reward=1.0, done=(i % 100 == 99)),
            sensors=[sensor],
        )
    recorder.close()
    total = time.perf_counter() - start

    result: dict[str, object] = {
        "operation": "record_throughput",
        "iterations": _ITERATIONS,
        "total_seconds": round(total, 4),
        "ops_per_second": round(_ITERATIONS / total, 1),
        "avg_latency_ms": round(total / _ITERATIONS * 1000, 4),
        "file_bytes": len(fs.read_bytes(path)),
    }
    print(
        f"[bench_record_throughput] {result['operation']}: "
        f"{result['ops_per_second']:,.0f} steps/sec  "
        f"avg {result['avg_latency_ms']:.4f} ms"
    )
    return result


def run_benchmark() -> dict[str, object]:
    """Entry point returning the benchmark result dict."""
    return bench_record_throughput()


if __name__ == "__main__":
    result = run_benchmark()
    results_dir = Path(__file__).parent / "results"
    results_dir.mkdir(exist_ok=True)
    output_path = results_dir / "record_throughput_baseline.json"
    with open(output_path, "w", encoding="utf-8") as fh:
        json.dump(result, fh, indent=2)
    print(f"Results saved to {output_path}")
