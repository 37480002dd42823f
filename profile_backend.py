"""
Profile the compute endpoint across body counts and integrators, capturing
server-side physics and serialization timings plus response sizes. Results
are printed and appended to profiling_runs.csv.

Run from repo root:
    python profile_backend.py
"""

from __future__ import annotations

import csv
import json
import math
import subprocess
import sys
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

BACKEND_HOST = "127.0.0.1"
BACKEND_PORT = 8000
BASE_URL = f"http://{BACKEND_HOST}:{BACKEND_PORT}"
APP_IMPORT_PATH = "gravsim.main:app"
DEFAULT_DT = 1.0 / 40.0  # one frame at 40 fps
ITERATIONS_PER_SCENARIO = 4  # first = cold, remaining warm


@dataclass
class Scenario:
    name: str
    body_count: int
    duration_sec: float
    integrator: str


SCENARIOS: List[Scenario] = [
    Scenario(name="joint_8_bodies", body_count=8, duration_sec=10.0, integrator="joint"),
    Scenario(name="per_body_8_bodies", body_count=8, duration_sec=10.0, integrator="per_body"),
    Scenario(name="joint_32_bodies", body_count=32, duration_sec=10.0, integrator="joint"),
]

CSV_FIELDS = [
    "timestamp",
    "scenario",
    "iteration",
    "run_kind",
    "post_compute_ms",
    "server_samples_ms",
    "server_serialize_ms",
    "payload_bytes",
    "energy_drift",
    "body_count",
    "integrator",
]


def _ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


def _ring_payload(count: int, duration_sec: float, integrator: str) -> Dict[str, object]:
    """A unit-mass star with light bodies on circular orbits at growing radii."""
    bodies: List[Dict[str, object]] = [
        {"name": "Star", "mass": 1.0, "radius": 0.05, "position": [0, 0, 0], "velocity": [0, 0, 0]}
    ]
    for idx in range(count - 1):
        r = 1.0 + 0.35 * idx
        angle = idx * 2.399963  # golden angle spreads bodies around the star
        speed = math.sqrt(1.0 / r)
        bodies.append(
            {
                "name": f"Body-{idx + 1}",
                "mass": 1e-5,
                "radius": 0.01,
                "position": [r * math.cos(angle), 0.0, r * math.sin(angle)],
                "velocity": [-speed * math.sin(angle), 0.0, speed * math.cos(angle)],
                "tilt": 10.0 * idx,
                "rotationalSpeed": 0.5,
            }
        )
    return {
        "system": {"name": "Ring", "g": 1.0, "scale": 1.0, "bodies": bodies},
        "durationSec": duration_sec,
        "dtSec": DEFAULT_DT,
        "integrator": integrator,
        "profile": True,
    }


def start_backend() -> subprocess.Popen:
    cmd = [
        sys.executable,
        "-m",
        "uvicorn",
        APP_IMPORT_PATH,
        "--host",
        BACKEND_HOST,
        "--port",
        str(BACKEND_PORT),
    ]
    return subprocess.Popen(cmd)


def wait_for_backend(
    backend_proc: subprocess.Popen, timeout_sec: float = 20.0, poll_interval: float = 0.25
) -> None:
    url = f"{BASE_URL}/openapi.json"
    start = time.perf_counter()
    while time.perf_counter() - start < timeout_sec:
        if backend_proc.poll() is not None:
            raise RuntimeError(
                f"Backend process exited early with code {backend_proc.returncode}"
            )
        try:
            with urllib.request.urlopen(url, timeout=2) as resp:
                if resp.status == 200:
                    return
        except (urllib.error.URLError, ConnectionRefusedError):
            time.sleep(poll_interval)
    raise RuntimeError("Backend did not become ready in time")


def post_compute(payload: Dict[str, object]) -> Dict[str, object]:
    req = urllib.request.Request(
        f"{BASE_URL}/api/compute",
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json"},
    )
    start = time.perf_counter()
    with urllib.request.urlopen(req, timeout=300) as resp:
        body = resp.read()
    request_ms = _ms(start)

    decoded = json.loads(body)
    profile_meta = decoded.get("meta", {}).get("profile", {})
    timings = profile_meta.get("timingsMs", {})
    return {
        "post_compute_ms": request_ms,
        "server_samples_ms": timings.get("samples_for_system"),
        "server_serialize_ms": timings.get("serialize_response_json"),
        "payload_bytes": profile_meta.get("payloadBytes", len(body)),
        "energy_drift": decoded.get("diagnostics", {}).get("relativeEnergyDrift"),
    }


def _write_trace(rows: List[Dict[str, object]]) -> None:
    with open("profiling_runs.csv", "a", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        if f.tell() == 0:
            writer.writeheader()
        writer.writerows(rows)


def main() -> None:
    run_timestamp = datetime.now(timezone.utc).isoformat()
    backend_proc: Optional[subprocess.Popen] = None
    rows: List[Dict[str, object]] = []

    try:
        backend_proc = start_backend()
        wait_for_backend(backend_proc)

        for scenario in SCENARIOS:
            payload = _ring_payload(
                scenario.body_count, scenario.duration_sec, scenario.integrator
            )
            physics_ms: List[float] = []
            for iteration in range(ITERATIONS_PER_SCENARIO):
                result = post_compute(payload)
                rows.append(
                    {
                        "timestamp": run_timestamp,
                        "scenario": scenario.name,
                        "iteration": iteration,
                        "run_kind": "cold" if iteration == 0 else "warm",
                        "body_count": scenario.body_count,
                        "integrator": scenario.integrator,
                        **result,
                    }
                )
                if result["server_samples_ms"] is not None:
                    physics_ms.append(result["server_samples_ms"])

            print(f"\nScenario: {scenario.name} ({scenario.body_count} bodies, "
                  f"{scenario.duration_sec}s, dt={DEFAULT_DT:.3f})")
            if physics_ms:
                print(f"- physics: min={min(physics_ms):.1f} ms "
                      f"max={max(physics_ms):.1f} ms")
            drift = rows[-1]["energy_drift"]
            if drift is not None:
                print(f"- energy drift: {drift:.3e}")

        _write_trace(rows)
    finally:
        if backend_proc is not None:
            backend_proc.terminate()
            try:
                backend_proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                backend_proc.kill()

    print("\nPer-run traces appended to profiling_runs.csv")


if __name__ == "__main__":
    main()
