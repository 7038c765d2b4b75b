"""
WGSL compute kernels for the WebGPU backend.

Binding conventions
-------------------
- Binary elementwise kernels bind ``(input_a, input_b, output)``.
- Unary kernels bind ``(input, output)``.
- matmul binds ``(input_a, input_b, output, dims)`` where ``dims`` is a
  uniform ``{M, K, N, pad}`` block of u32.
- softmax binds ``(input, output, rows)`` where ``rows`` is a uniform
  ``{row_size, row_stride, pad, pad}`` block of u32.

Elementwise kernels use 256-wide workgroups. When an operation needs more
than `MAX_WORKGROUPS_PER_DIM` workgroups, the grid is folded into a second
dimension and the kernel recovers the flat index from ``num_workgroups``.
"""

from __future__ import annotations

from dataclasses import dataclass

WORKGROUP_SIZE = 256
TILE_SIZE = 16
MAX_WORKGROUPS_PER_DIM = 65535


@dataclass(frozen=True)
class KernelSpec:
    """
    A self-contained device program and its binding kinds.

    Attributes
    ----------
    code : str
        WGSL source with a ``main`` entry point.
    bindings : tuple[str, ...]
        Kind of each binding in order: ``"read"``, ``"read_write"`` or
        ``"uniform"``.
    """

    code: str
    bindings: tuple[str, ...]


_BINARY_TEMPLATE = """
@group(0) @binding(0)
var<storage, read> input_a: array<f32>;
@group(0) @binding(1)
var<storage, read> input_b: array<f32>;
@group(0) @binding(2)
var<storage, read_write> output: array<f32>;

@compute @workgroup_size(256)
fn main(
    @builtin(global_invocation_id) gid: vec3<u32>,
    @builtin(num_workgroups) groups: vec3<u32>,
) {
    let idx = gid.x + gid.y * groups.x * 256u;
    if (idx < arrayLength(&output)) {
        let a = input_a[idx];
        let b = input_b[idx];
        output[idx] = $EXPR;
    }
}
"""

_UNARY_TEMPLATE = """
@group(0) @binding(0)
var<storage, read> input: array<f32>;
@group(0) @binding(1)
var<storage, read_write> output: array<f32>;

@compute @workgroup_size(256)
fn main(
    @builtin(global_invocation_id) gid: vec3<u32>,
    @builtin(num_workgroups) groups: vec3<u32>,
) {
    let idx = gid.x + gid.y * groups.x * 256u;
    if (idx < arrayLength(&output)) {
        let x = input[idx];
$BODY
    }
}
"""


def _binary(expr: str) -> KernelSpec:
    return KernelSpec(
        code=_BINARY_TEMPLATE.replace("$EXPR", expr),
        bindings=("read", "read", "read_write"),
    )


def _unary(body: str) -> KernelSpec:
    return KernelSpec(
        code=_UNARY_TEMPLATE.replace("$BODY", body),
        bindings=("read", "read_write"),
    )


WGSL_MATMUL = """
struct Dims {
    m: u32,
    k: u32,
    n: u32,
    pad: u32,
};

@group(0) @binding(0)
var<storage, read> input_a: array<f32>;
@group(0) @binding(1)
var<storage, read> input_b: array<f32>;
@group(0) @binding(2)
var<storage, read_write> output: array<f32>;
@group(0) @binding(3)
var<uniform> dims: Dims;

var<workgroup> tile_a: array<f32, 256>;
var<workgroup> tile_b: array<f32, 256>;

@compute @workgroup_size(16, 16)
fn main(
    @builtin(local_invocation_id) lid: vec3<u32>,
    @builtin(workgroup_id) wid: vec3<u32>,
) {
    let row = wid.y * 16u + lid.y;
    let col = wid.x * 16u + lid.x;
    let slot = lid.y * 16u + lid.x;

    var acc = 0.0;
    var t = 0u;
    loop {
        if (t >= dims.k) { break; }

        let a_col = t + lid.x;
        var a_val = 0.0;
        if (row < dims.m && a_col < dims.k) {
            a_val = input_a[row * dims.k + a_col];
        }
        tile_a[slot] = a_val;

        let b_row = t + lid.y;
        var b_val = 0.0;
        if (b_row < dims.k && col < dims.n) {
            b_val = input_b[b_row * dims.n + col];
        }
        tile_b[slot] = b_val;

        workgroupBarrier();

        for (var i = 0u; i < 16u; i = i + 1u) {
            acc = acc + tile_a[lid.y * 16u + i] * tile_b[i * 16u + lid.x];
        }

        workgroupBarrier();
        t = t + 16u;
    }

    if (row < dims.m && col < dims.n) {
        output[row * dims.n + col] = acc;
    }
}
"""

WGSL_SOFTMAX = """
struct Rows {
    row_size: u32,
    row_stride: u32,
    pad0: u32,
    pad1: u32,
};

@group(0) @binding(0)
var<storage, read> input: array<f32>;
@group(0) @binding(1)
var<storage, read_write> output: array<f32>;
@group(0) @binding(2)
var<uniform> rows: Rows;

var<workgroup> scratch: array<f32, 256>;

@compute @workgroup_size(256)
fn main(
    @builtin(local_invocation_id) lid: vec3<u32>,
    @builtin(workgroup_id) wid: vec3<u32>,
) {
    let base = wid.x * rows.row_stride;
    let tid = lid.x;

    // Phase 1: row maximum.
    var local_max = -3.402823e38;
    var col = tid;
    loop {
        if (col >= rows.row_size) { break; }
        local_max = max(local_max, input[base + col]);
        col = col + 256u;
    }
    scratch[tid] = local_max;
    workgroupBarrier();

    var s = 128u;
    loop {
        if (s == 0u) { break; }
        if (tid < s) {
            scratch[tid] = max(scratch[tid], scratch[tid + s]);
        }
        workgroupBarrier();
        s = s >> 1u;
    }
    let row_max = scratch[0];
    workgroupBarrier();

    // Phase 2: sum of shifted exponentials.
    var local_sum = 0.0;
    col = tid;
    loop {
        if (col >= rows.row_size) { break; }
        local_sum = local_sum + exp(input[base + col] - row_max);
        col = col + 256u;
    }
    scratch[tid] = local_sum;
    workgroupBarrier();

    s = 128u;
    loop {
        if (s == 0u) { break; }
        if (tid < s) {
            scratch[tid] = scratch[tid] + scratch[tid + s];
        }
        workgroupBarrier();
        s = s >> 1u;
    }
    let row_sum = scratch[0];

    col = tid;
    loop {
        if (col >= rows.row_size) { break; }
        output[base + col] = exp(input[base + col] - row_max) / row_sum;
        col = col + 256u;
    }
}
"""

KERNELS: dict[str, KernelSpec] = {
    "add": _binary("a + b"),
    "sub": _binary("a - b"),
    "mul": _binary("a * b"),
    "relu": _unary("        output[idx] = max(x, 0.0);"),
    "sigmoid": _unary(
        "        let e = exp(-abs(x));\n"
        "        let s = 1.0 / (1.0 + e);\n"
        "        output[idx] = select(e * s, s, x >= 0.0);"
    ),
    # tanh(x) rounds to +-1 in f32 for |x| > 9; the clamp keeps exp finite.
    "tanh": _unary("        output[idx] = tanh(clamp(x, -15.0, 15.0));"),
    "matmul": KernelSpec(
        code=WGSL_MATMUL, bindings=("read", "read", "read_write", "uniform")
    ),
    "softmax": KernelSpec(
        code=WGSL_SOFTMAX, bindings=("read", "read_write", "uniform")
    ),
}


def elementwise_grid(numel: int) -> tuple[int, int]:
    """
    Workgroup counts covering `numel` elements with 256-wide workgroups.

    Returns
    -------
    tuple[int, int]
        ``(x, y)`` counts; ``y > 1`` only above `MAX_WORKGROUPS_PER_DIM`.
    """
    groups = (numel + WORKGROUP_SIZE - 1) // WORKGROUP_SIZE
    if groups <= MAX_WORKGROUPS_PER_DIM:
        return max(groups, 1), 1
    return MAX_WORKGROUPS_PER_DIM, (groups + MAX_WORKGROUPS_PER_DIM - 1) // MAX_WORKGROUPS_PER_DIM
