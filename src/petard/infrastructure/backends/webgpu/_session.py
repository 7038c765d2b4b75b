"""
WebGPU session: device lifecycle, pipeline cache, and synchronous round trips.

A `WebGPUSession` owns the adapter, device, and queue obtained from `wgpu`,
plus a cache of compiled compute pipelines keyed by kernel name. It exposes a
single blocking primitive, `run`, which uploads operands, dispatches one
kernel, and reads the result back to the host.

Design notes
------------
- Sessions are plain objects, not process-wide globals. Tests pass a fake
  ``gpu`` root object to exercise the full lifecycle without hardware.
- Every naturally asynchronous step (adapter/device acquisition, staging
  buffer mapping) runs on a single worker thread and is awaited through a
  future with an explicit timeout. On expiry the worker is abandoned and a
  `DeviceTimeoutError` is raised; the next call gets a fresh worker.
- An abandoned readback still owns its transient buffers. They are destroyed
  when that worker finishes, and the next round trip waits for it (bounded by
  the readback timeout) before submitting anything.
- Round trips are serialized with a re-entrant lock: upload, compute, and
  readback of one call complete before the next call starts.
- Bring-up failures are logged and leave the session UNAVAILABLE. They never
  raise, so a missing GPU only costs the reference-path speed.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Sequence

import numpy as np
import wgpu

from ....domain._backend import SessionState
from ....domain._errors import BackendResourceError, DeviceTimeoutError
from ..._config import AcceleratorConfig
from ._shaders import KERNELS, KernelSpec

logger = logging.getLogger(__name__)

_BINDING_TYPES = {
    "read": "read-only-storage",
    "read_write": "storage",
    "uniform": "uniform",
}

DEFAULT_MAX_BINDING_BYTES = 128 * 1024 * 1024


@dataclass(frozen=True)
class CachedPipeline:
    """
    A compiled compute pipeline together with its bind-group layout.
    """

    pipeline: Any
    bind_group_layout: Any


def _load_default_gpu() -> Any:
    """
    Return the ``wgpu.gpu`` root object with the native backend selected.

    Raises
    ------
    BackendResourceError
        If the native runtime cannot be loaded on this machine.
    """
    try:
        import wgpu.backends.wgpu_native  # noqa: F401
    except (ImportError, OSError, RuntimeError) as exc:
        raise BackendResourceError("webgpu", "native runtime", str(exc)) from exc
    return wgpu.gpu


class WebGPUSession:
    """
    One WebGPU adapter/device pair and its compiled pipelines.

    Parameters
    ----------
    config : Optional[AcceleratorConfig], optional
        Timeouts and adapter preference. Defaults to `AcceleratorConfig()`.
    gpu : Any, optional
        Root object providing ``request_adapter_sync``. Defaults to
        ``wgpu.gpu`` with the native backend.
    kernels : Optional[Mapping[str, KernelSpec]], optional
        Kernel table. Defaults to the built-in `KERNELS`.
    """

    def __init__(
        self,
        config: Optional[AcceleratorConfig] = None,
        *,
        gpu: Any = None,
        kernels: Optional[Mapping[str, KernelSpec]] = None,
    ) -> None:
        self.config = config if config is not None else AcceleratorConfig()
        self._gpu = gpu
        self._kernels = dict(KERNELS if kernels is None else kernels)

        self._state = SessionState.UNINITIALIZED
        self._adapter: Any = None
        self._device: Any = None
        self._queue: Any = None
        self._pipelines: dict[str, CachedPipeline] = {}

        self._lock = threading.RLock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._abandoned: Optional[Future] = None

    def __repr__(self) -> str:
        return f"WebGPUSession(state={self._state.value})"

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state is SessionState.READY

    @property
    def adapter_info(self) -> dict:
        info = getattr(self._adapter, "info", None)
        return dict(info) if info else {}

    @property
    def max_binding_bytes(self) -> int:
        """
        Largest storage buffer the device can bind, in bytes.
        """
        limits = getattr(self._device, "limits", None) or {}
        for key in ("max-storage-buffer-binding-size", "max_storage_buffer_binding_size"):
            if key in limits:
                return int(limits[key])
        return DEFAULT_MAX_BINDING_BYTES

    def cached_pipelines(self) -> list[str]:
        return sorted(self._pipelines)

    # ------------------------------------------------------------------
    # Bounded waits
    # ------------------------------------------------------------------
    def _wait(
        self,
        step: str,
        fn: Callable[[], Any],
        timeout: float,
        on_abandon: Optional[Callable[[Future], None]] = None,
    ) -> Any:
        """
        Run `fn` on the worker thread and wait at most `timeout` seconds.

        Parameters
        ----------
        on_abandon : Optional[Callable[[Future], None]], optional
            Called with the still-running future before the timeout is raised.

        Raises
        ------
        DeviceTimeoutError
            If `fn` has not finished in time.
        """
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="petard-webgpu"
            )
        executor = self._executor
        future = executor.submit(fn)
        try:
            return future.result(timeout=timeout)
        except FuturesTimeoutError:
            if future.done():
                raise
            executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
            if on_abandon is not None:
                on_abandon(future)
            raise DeviceTimeoutError(step, timeout) from None

    def _drain_abandoned(self) -> None:
        """
        Wait for a previously abandoned readback before touching the device.

        Raises
        ------
        DeviceTimeoutError
            If the abandoned worker is still running after
            ``config.readback_timeout`` seconds.
        """
        pending = self._abandoned
        if pending is None:
            return
        timeout = self.config.readback_timeout
        wait_futures([pending], timeout=timeout)
        if not pending.done():
            raise DeviceTimeoutError("previous readback", timeout)
        self._abandoned = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def open(self) -> bool:
        """
        Acquire adapter, device, and queue.

        Returns
        -------
        bool
            True if the session is READY. False if acquisition failed now or
            earlier, or if the session was already torn down.
        """
        with self._lock:
            if self._state is SessionState.READY:
                return True
            if self._state.is_terminal():
                return False

            self._state = SessionState.INITIALIZING
            try:
                self._acquire()
            except (BackendResourceError, DeviceTimeoutError) as exc:
                logger.warning(
                    "WebGPU unavailable, reference operations will be used: %s", exc
                )
                self._release_handles()
                self._state = SessionState.UNAVAILABLE
                return False

            self._state = SessionState.READY
            info = self.adapter_info
            logger.info(
                "WebGPU session ready (device=%s, backend=%s)",
                info.get("device", "unknown"),
                info.get("backend_type", "unknown"),
            )
            return True

    def _request_adapter(self, gpu: Any) -> Any:
        preference = self.config.power_preference
        try:
            adapter = gpu.request_adapter_sync(power_preference=preference)
        except Exception as exc:  # driver-specific failure types
            logger.debug("Adapter request with %s failed: %s", preference, exc)
            adapter = None
        if adapter is not None:
            return adapter

        logger.debug("Retrying adapter request without a power preference")
        try:
            return gpu.request_adapter_sync()
        except Exception as exc:
            raise BackendResourceError("webgpu", "adapter", str(exc)) from exc

    def _acquire(self) -> None:
        gpu = self._gpu if self._gpu is not None else _load_default_gpu()
        timeout = self.config.init_timeout

        adapter = self._wait("adapter", lambda: self._request_adapter(gpu), timeout)
        if adapter is None:
            raise BackendResourceError("webgpu", "adapter", "no compatible adapter")
        self._adapter = adapter

        def _request_device() -> Any:
            try:
                return adapter.request_device_sync()
            except Exception as exc:
                raise BackendResourceError("webgpu", "device", str(exc)) from exc

        device = self._wait("device", _request_device, timeout)
        if device is None:
            raise BackendResourceError("webgpu", "device", "adapter returned no device")
        self._device = device
        self._queue = device.queue

    def _release_handles(self) -> None:
        self._queue = None
        device, self._device = self._device, None
        self._adapter = None
        if device is None:
            return
        pending, self._abandoned = self._abandoned, None
        if pending is not None and not pending.done():
            # the abandoned readback still maps a buffer on this device
            pending.add_done_callback(lambda _f: device.destroy())
        else:
            device.destroy()

    def close(self) -> None:
        """
        Release queue, device, and adapter in reverse acquisition order.

        An UNAVAILABLE session stays UNAVAILABLE; every other state moves to
        TORN_DOWN. Closing twice is a no-op.
        """
        with self._lock:
            if self._state is SessionState.TORN_DOWN:
                return
            self._pipelines.clear()
            self._release_handles()
            if self._executor is not None:
                self._executor.shutdown(wait=False, cancel_futures=True)
                self._executor = None
            if self._state is not SessionState.UNAVAILABLE:
                self._state = SessionState.TORN_DOWN
            logger.debug("WebGPU session closed (%s)", self._state.value)

    def __enter__(self) -> "WebGPUSession":
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------
    def pipeline(self, name: str) -> CachedPipeline:
        """
        Return the compiled pipeline for kernel `name`, compiling on first use.

        Raises
        ------
        KeyError
            If `name` is not a known kernel.
        BackendResourceError
            If shader or pipeline creation fails.
        """
        cached = self._pipelines.get(name)
        if cached is not None:
            return cached

        kernel = self._kernels[name]
        device = self._device
        try:
            module = device.create_shader_module(label=name, code=kernel.code)
            layout_entries = [
                {
                    "binding": i,
                    "visibility": wgpu.ShaderStage.COMPUTE,
                    "buffer": {"type": _BINDING_TYPES[kind]},
                }
                for i, kind in enumerate(kernel.bindings)
            ]
            bind_group_layout = device.create_bind_group_layout(entries=layout_entries)
            pipeline_layout = device.create_pipeline_layout(
                bind_group_layouts=[bind_group_layout]
            )
            pipeline = device.create_compute_pipeline(
                layout=pipeline_layout,
                compute={"module": module, "entry_point": "main"},
            )
        except Exception as exc:
            raise BackendResourceError("webgpu", f"pipeline '{name}'", str(exc)) from exc

        cached = CachedPipeline(pipeline=pipeline, bind_group_layout=bind_group_layout)
        self._pipelines[name] = cached
        logger.debug("Compiled WebGPU pipeline '%s'", name)
        return cached

    # ------------------------------------------------------------------
    # Round trip
    # ------------------------------------------------------------------
    def _storage_buffer(self, nbytes: int, usage: int, transient: list) -> Any:
        buf = self._device.create_buffer(size=nbytes, usage=usage)
        transient.append(buf)
        return buf

    @staticmethod
    def _map_and_read(staging: Any) -> bytes:
        staging.map_sync(wgpu.MapMode.READ)
        try:
            return bytes(staging.read_mapped())
        finally:
            staging.unmap()

    def run(
        self,
        name: str,
        inputs: Sequence[np.ndarray],
        out_count: int,
        workgroups: tuple[int, int],
        uniform: Optional[bytes] = None,
    ) -> np.ndarray:
        """
        Execute kernel `name` once and return its output on the host.

        Parameters
        ----------
        name : str
            Kernel name in the kernel table.
        inputs : Sequence[np.ndarray]
            Operand arrays, bound in order as read-only storage.
        out_count : int
            Number of float32 elements in the output buffer.
        workgroups : tuple[int, int]
            Dispatch grid ``(x, y)``.
        uniform : Optional[bytes], optional
            Packed uniform block, bound after the output.

        Returns
        -------
        np.ndarray
            Flat float32 array of `out_count` elements.

        Raises
        ------
        BackendResourceError
            If the session is not READY or a pipeline cannot be built.
        DeviceTimeoutError
            If the result does not become host-visible within
            ``config.readback_timeout`` seconds, or if an earlier timed-out
            readback is still running after that long.
        """
        with self._lock:
            if not self.ready:
                raise BackendResourceError(
                    "webgpu", "session", f"state is {self._state.value}"
                )
            self._drain_abandoned()
            device = self._device
            cached = self.pipeline(name)
            usage = wgpu.BufferUsage
            out_nbytes = int(out_count) * 4
            transient: list = []
            try:
                bound = []
                for arr in inputs:
                    host = np.ascontiguousarray(arr, dtype=np.float32)
                    buf = self._storage_buffer(
                        host.nbytes, usage.STORAGE | usage.COPY_DST, transient
                    )
                    self._queue.write_buffer(buf, 0, host)
                    bound.append(buf)

                out_buf = self._storage_buffer(
                    out_nbytes, usage.STORAGE | usage.COPY_SRC, transient
                )
                bound.append(out_buf)

                if uniform is not None:
                    ubuf = self._storage_buffer(
                        len(uniform), usage.UNIFORM | usage.COPY_DST, transient
                    )
                    self._queue.write_buffer(ubuf, 0, uniform)
                    bound.append(ubuf)

                staging = self._storage_buffer(
                    out_nbytes, usage.MAP_READ | usage.COPY_DST, transient
                )

                bind_group = device.create_bind_group(
                    layout=cached.bind_group_layout,
                    entries=[
                        {
                            "binding": i,
                            "resource": {"buffer": buf, "offset": 0, "size": buf.size},
                        }
                        for i, buf in enumerate(bound)
                    ],
                )

                encoder = device.create_command_encoder()
                compute_pass = encoder.begin_compute_pass()
                compute_pass.set_pipeline(cached.pipeline)
                compute_pass.set_bind_group(0, bind_group)
                compute_pass.dispatch_workgroups(int(workgroups[0]), int(workgroups[1]), 1)
                compute_pass.end()
                encoder.copy_buffer_to_buffer(out_buf, 0, staging, 0, out_nbytes)
                self._queue.submit([encoder.finish()])

                raw = self._wait(
                    "readback",
                    lambda: self._map_and_read(staging),
                    self.config.readback_timeout,
                    on_abandon=lambda future: self._abandon(future, transient),
                )
                return np.frombuffer(raw, dtype=np.float32, count=out_count).copy()
            finally:
                _destroy_buffers(transient)

    def _abandon(self, future: Future, transient: list) -> None:
        # hand buffer ownership to the stuck worker
        owned = list(transient)
        transient.clear()
        future.add_done_callback(lambda _f: _destroy_buffers(owned))
        self._abandoned = future
        logger.warning(
            "WebGPU readback exceeded %.3fs; the next round trip will wait for it",
            self.config.readback_timeout,
        )


def _destroy_buffers(buffers: list) -> None:
    for buf in buffers:
        buf.destroy()
