import unittest
import warnings

import numpy as np

from petard.domain._operations import OPERATION_NAMES
from petard.infrastructure import _functional as F
from petard.infrastructure._config import AcceleratorConfig
from petard.infrastructure._context import ExecutionContext
from petard.infrastructure.backends.webgpu import (
    ACCELERATED_OPS,
    WebGPUBackend,
    WebGPUOperations,
    WebGPUSession,
)
from petard.infrastructure.ops._reference import ReferenceOperations
from petard.infrastructure.registry import OperationRegistry
from petard.infrastructure.tensor import Tensor

from ._fake_gpu import FakeDevice, FakeGPU


def _config(**kwargs):
    kwargs.setdefault("init_timeout", 1.0)
    kwargs.setdefault("readback_timeout", 1.0)
    return AcceleratorConfig(**kwargs)


def _t(values):
    return Tensor.from_numpy(np.asarray(values, dtype=np.float32))


class TestWebGPUOperationsParity(unittest.TestCase):
    def setUp(self):
        self.device = FakeDevice()
        self.session = WebGPUSession(_config(), gpu=FakeGPU(self.device))
        self.session.open()
        self.ops = WebGPUOperations(self.session)
        self.ref = ReferenceOperations()
        rng = np.random.default_rng(0)
        self.a = _t(rng.standard_normal((5, 7)))
        self.b = _t(rng.standard_normal((5, 7)))

    def tearDown(self):
        self.session.close()

    def test_binary_ops(self):
        for name in ("add", "sub", "mul"):
            got = getattr(self.ops, name)(self.a, self.b)
            want = getattr(self.ref, name)(self.a, self.b)
            self.assertEqual(got.shape, (5, 7))
            np.testing.assert_allclose(got.to_numpy(), want.to_numpy(), rtol=1e-6)
        self.assertEqual([d[0] for d in self.device.dispatches], ["add", "sub", "mul"])

    def test_unary_ops(self):
        for name in ("relu", "sigmoid", "tanh"):
            got = getattr(self.ops, name)(self.a)
            want = getattr(self.ref, name)(self.a)
            np.testing.assert_allclose(got.to_numpy(), want.to_numpy(), rtol=1e-5, atol=1e-6)
        self.assertEqual(len(self.device.dispatches), 3)

    def test_matmul(self):
        rng = np.random.default_rng(1)
        a = _t(rng.standard_normal((33, 17)))
        b = _t(rng.standard_normal((17, 20)))
        got = self.ops.matmul(a, b)
        self.assertEqual(got.shape, (33, 20))
        np.testing.assert_allclose(
            got.to_numpy(), self.ref.matmul(a, b).to_numpy(), rtol=1e-4, atol=1e-4
        )
        # 16x16 tiles: ceil(20/16) x ceil(33/16)
        self.assertEqual(self.device.dispatches, [("matmul", (2, 3, 1))])

    def test_softmax(self):
        x = _t(np.random.default_rng(2).standard_normal((2, 3, 6)))
        got = self.ops.softmax(x)
        self.assertEqual(got.shape, (2, 3, 6))
        np.testing.assert_allclose(
            got.to_numpy(), self.ref.softmax(x).to_numpy(), rtol=1e-5, atol=1e-6
        )
        self.assertEqual(self.device.dispatches, [("softmax", (6, 1, 1))])

    def test_result_is_fresh_owner(self):
        out = self.ops.add(self.a, self.b)
        self.assertTrue(out.owns_data)
        self.assertIsNone(out._get_ctx())


class TestWebGPUOperationsFallback(unittest.TestCase):
    def setUp(self):
        self.device = FakeDevice(limits={"max-storage-buffer-binding-size": 4096})
        self.session = WebGPUSession(_config(), gpu=FakeGPU(self.device))
        self.session.open()
        self.ops = WebGPUOperations(self.session)
        self.ref = ReferenceOperations()

    def tearDown(self):
        self.session.close()

    def _assert_fallback(self, name, *args):
        got = getattr(self.ops, name)(*args)
        want = getattr(self.ref, name)(*args)
        np.testing.assert_array_equal(got.to_numpy(), want.to_numpy())
        self.assertEqual(self.device.dispatches, [])

    def test_broadcasting_falls_back(self):
        self._assert_fallback("add", _t(np.ones((3, 4))), _t([1, 2, 3, 4]))

    def test_matmul_vector_forms_fall_back(self):
        self._assert_fallback("matmul", _t(np.ones((3, 4))), _t([1, 2, 3, 4]))
        self._assert_fallback("matmul", _t([1, 2]), _t([3, 4]))

    def test_one_dimensional_softmax_falls_back(self):
        self._assert_fallback("softmax", _t([1.0, 2.0, 3.0]))

    def test_empty_tensor_falls_back(self):
        self._assert_fallback("relu", Tensor.zeros((0, 3)))
        self._assert_fallback("matmul", Tensor.zeros((0, 3)), Tensor.zeros((3, 2)))

    def test_oversized_buffer_falls_back(self):
        big = Tensor.ones((2048,))
        self._assert_fallback("mul", big, big)
        self._assert_fallback("matmul", Tensor.ones((40, 2)), Tensor.ones((2, 40)))

    def test_not_ready_session_falls_back(self):
        self.session.close()
        self._assert_fallback("tanh", _t([0.5, -0.5]))
        self._assert_fallback("matmul", _t(np.eye(2)), _t(np.ones((2, 2))))

    def test_mismatch_still_raises_through_reference(self):
        from petard.domain._errors import ShapeMismatchError

        with self.assertRaises(ShapeMismatchError):
            self.ops.matmul(_t(np.ones((2, 3))), _t(np.ones((2, 3))))
        self.assertEqual(self.device.dispatches, [])


class TestWebGPUBackend(unittest.TestCase):
    def test_registers_accelerated_ops_at_priority(self):
        config = _config(priority=7)
        session = WebGPUSession(config, gpu=FakeGPU())
        backend = WebGPUBackend(config, session=session)
        registry = OperationRegistry()
        registry.register_set(ReferenceOperations(), OPERATION_NAMES, priority=0)

        self.assertTrue(backend.init())
        self.assertTrue(backend.available())
        won = backend.register_ops(registry)

        self.assertEqual(sorted(won), sorted(ACCELERATED_OPS))
        for name in OPERATION_NAMES:
            expected = 7 if name in ACCELERATED_OPS else 0
            self.assertEqual(registry.priority_of(name), expected)
        backend.cleanup()
        self.assertFalse(backend.available())

    def test_unavailable_backend_registers_nothing(self):
        config = _config()
        session = WebGPUSession(config, gpu=FakeGPU(adapter_available=False))
        backend = WebGPUBackend(config, session=session)
        registry = OperationRegistry()
        with self.assertLogs("petard.infrastructure.backends.webgpu._session", "WARNING"):
            self.assertFalse(backend.init())
        self.assertEqual(backend.register_ops(registry), [])
        self.assertEqual(registry.names(), [])


class TestAcceleratedContext(unittest.TestCase):
    def setUp(self):
        self.device = FakeDevice()
        config = _config()
        self.ctx = ExecutionContext.with_accelerator(
            config, session=WebGPUSession(config, gpu=FakeGPU(self.device))
        )

    def tearDown(self):
        self.ctx.close()

    def test_table_uses_accelerated_ops(self):
        table = self.ctx.table
        self.assertEqual(self.ctx.operations.priority_of("matmul"), 10)
        self.assertEqual(self.ctx.operations.priority_of("mse"), 0)
        self.assertIsInstance(table.add.__self__, WebGPUOperations)
        self.assertIsInstance(table.transpose2d.__self__, ReferenceOperations)

    def test_close_returns_to_reference(self):
        self.ctx.bootstrap()
        self.ctx.close()
        self.assertTrue(self.device.destroyed)
        for name in OPERATION_NAMES:
            self.assertEqual(self.ctx.operations.priority_of(name), 0)
        out = F.add(_t([1.0]), _t([2.0]), context=self.ctx)
        self.assertEqual(out.item(), 3.0)

    def test_autograd_through_accelerated_ops(self):
        rng = np.random.default_rng(9)
        x_np = rng.standard_normal((4, 3))
        w_np = rng.standard_normal((3, 2))
        onehot = np.eye(2)[[0, 1, 1, 0]]

        def run(ctx):
            x = Tensor.from_numpy(x_np)
            w = Tensor.from_numpy(w_np, requires_grad=True)
            h = F.tanh(F.matmul(x, w, context=ctx), context=ctx)
            loss = F.cross_entropy(
                F.softmax(h, context=ctx), Tensor.from_numpy(onehot), context=ctx
            )
            F.backward(loss)
            return loss.item(), w.grad.to_numpy()

        loss_gpu, grad_gpu = run(self.ctx)
        loss_ref, grad_ref = run(ExecutionContext())

        self.assertEqual(
            sorted({d[0] for d in self.device.dispatches}), ["matmul", "softmax", "tanh"]
        )
        self.assertAlmostEqual(loss_gpu, loss_ref, places=4)
        np.testing.assert_allclose(grad_gpu, grad_ref, rtol=1e-3, atol=1e-5)

    def test_unavailable_accelerator_warns_and_uses_reference(self):
        config = _config()
        ctx = ExecutionContext.with_accelerator(
            config, session=WebGPUSession(config, gpu=FakeGPU(adapter_available=False))
        )
        with self.assertLogs("petard.infrastructure.backends.webgpu._session", "WARNING"):
            with self.assertWarns(RuntimeWarning):
                ctx.bootstrap()
        for name in OPERATION_NAMES:
            self.assertEqual(ctx.operations.priority_of(name), 0)

        with warnings.catch_warnings():
            warnings.simplefilter("error")
            ctx.bootstrap()
        ctx.close()


if __name__ == "__main__":
    unittest.main()
