"""
scripts/bench_ops_reference_vs_webgpu.py

Reference (NumPy) vs WebGPU operation microbenchmark (NOT a unit test).

Benchmarks forward-only matmul, add, and softmax through the two operation
sets directly, bypassing the dispatcher.

Timing policy
-------------
- Each WebGPU call includes upload, dispatch, and readback; that round trip
  is what the dispatcher pays per operation.
- Pipelines are compiled during warmup, outside the timed region.

Usage
-----
python scripts/bench_ops_reference_vs_webgpu.py --presets
python scripts/bench_ops_reference_vs_webgpu.py --M 1024 --K 1024 --N 1024 --sanity
"""

from __future__ import annotations

import argparse
import os
import statistics
import sys
import time
from dataclasses import dataclass
from typing import Callable

import numpy as np

THIS_DIR = os.path.dirname(os.path.abspath(__file__))
ROOT_DIR = os.path.abspath(os.path.join(THIS_DIR, ".."))
SRC_DIR = os.path.join(ROOT_DIR, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from petard.infrastructure._config import AcceleratorConfig
from petard.infrastructure.backends.webgpu import WebGPUOperations, WebGPUSession
from petard.infrastructure.ops._reference import ReferenceOperations
from petard.infrastructure.tensor import Tensor


def _time_one(fn: Callable[[], None], *, warmup: int, repeats: int) -> list[float]:
    for _ in range(warmup):
        fn()
    ts: list[float] = []
    for _ in range(repeats):
        t0 = time.perf_counter()
        fn()
        ts.append(time.perf_counter() - t0)
    return ts


def _fmt_seconds(x: float) -> str:
    if x < 1e-3:
        return f"{x*1e6:.2f} us"
    if x < 1:
        return f"{x*1e3:.2f} ms"
    return f"{x:.3f} s"


@dataclass(frozen=True)
class Case:
    name: str
    M: int
    K: int
    N: int


def _bench_case(
    case: Case,
    *,
    ref: ReferenceOperations,
    gpu: WebGPUOperations,
    warmup: int,
    repeats: int,
    sanity: bool,
    rng_seed: int,
) -> None:
    rng = np.random.default_rng(rng_seed)
    M, K, N = case.M, case.K, case.N

    a = Tensor.from_numpy(rng.standard_normal((M, K)))
    b = Tensor.from_numpy(rng.standard_normal((K, N)))
    c = Tensor.from_numpy(rng.standard_normal((M, K)))

    workloads = {
        "matmul": (lambda ops: ops.matmul(a, b), 2.0 * M * K * N),
        "add": (lambda ops: ops.add(a, c), float(M * K)),
        "softmax": (lambda ops: ops.softmax(a), 5.0 * M * K),
    }

    for op, (call, flops) in workloads.items():
        if sanity:
            np.testing.assert_allclose(
                call(gpu).to_numpy(), call(ref).to_numpy(), rtol=1e-3, atol=1e-3
            )

        ref_med = statistics.median(
            _time_one(lambda: call(ref), warmup=warmup, repeats=repeats)
        )
        gpu_med = statistics.median(
            _time_one(lambda: call(gpu), warmup=warmup, repeats=repeats)
        )
        speedup = ref_med / gpu_med if gpu_med > 0 else float("inf")
        print(
            f"{op:<8} ({case.name}: M={M} K={K} N={N})  "
            f"reference={_fmt_seconds(ref_med):>10} "
            f"({flops / ref_med / 1e9:8.2f} GFLOP/s)  "
            f"webgpu={_fmt_seconds(gpu_med):>10} "
            f"({flops / gpu_med / 1e9:8.2f} GFLOP/s)  "
            f"speedup={speedup:>7.2f}x"
        )


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--M", type=int, default=512)
    ap.add_argument("--K", type=int, default=512)
    ap.add_argument("--N", type=int, default=512)
    ap.add_argument("--warmup", type=int, default=3)
    ap.add_argument("--repeats", type=int, default=20)
    ap.add_argument("--presets", action="store_true", help="Run a preset suite.")
    ap.add_argument(
        "--sanity",
        action="store_true",
        help="Check WebGPU output against the reference (not timed).",
    )
    ap.add_argument("--seed", type=int, default=0, help="RNG seed.")
    ap.add_argument(
        "--power-preference",
        choices=["high-performance", "low-power"],
        default="high-performance",
    )
    args = ap.parse_args()

    session = WebGPUSession(AcceleratorConfig(power_preference=args.power_preference))
    if not session.open():
        raise SystemExit("No WebGPU adapter available on this machine.")

    info = session.adapter_info
    print("\n" + "=" * 98)
    print(
        f"petard reference vs WebGPU benchmark  device={info.get('device', '?')}  "
        f"(warmup={args.warmup}, repeats={args.repeats})"
    )
    print("=" * 98)

    if args.presets:
        cases = [
            Case("small-256", 256, 256, 256),
            Case("mid-512", 512, 512, 512),
            Case("mid-1024", 1024, 1024, 1024),
            Case("rect-1024x2048x512", 1024, 2048, 512),
        ]
    else:
        cases = [Case("single", args.M, args.K, args.N)]

    ref = ReferenceOperations()
    gpu = WebGPUOperations(session, ref)
    try:
        for case in cases:
            _bench_case(
                case,
                ref=ref,
                gpu=gpu,
                warmup=args.warmup,
                repeats=args.repeats,
                sanity=args.sanity,
                rng_seed=args.seed,
            )
    finally:
        session.close()


if __name__ == "__main__":
    main()
