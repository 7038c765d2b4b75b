import unittest

import numpy as np

import petard
from petard.domain._errors import NullTensorError, TensorReleasedError
from petard.infrastructure import _functional as F
from petard.infrastructure._context import ExecutionContext, set_default_context
from petard.infrastructure.tensor import Tensor

_previous = None


def setUpModule():
    global _previous
    _previous = set_default_context(ExecutionContext())


def tearDownModule():
    set_default_context(_previous)


class TestOperandChecks(unittest.TestCase):
    def test_none_operands_rejected(self):
        a = Tensor.ones((2,))
        with self.assertRaises(NullTensorError) as cm:
            F.add(a, None)
        self.assertEqual(cm.exception.position, 1)
        with self.assertRaises(NullTensorError):
            F.relu(None)
        with self.assertRaises(NullTensorError):
            F.matmul(np.ones((2, 2)), a)
        with self.assertRaises(NullTensorError):
            F.release(None)

    def test_released_operand_rejected(self):
        a = Tensor.ones((2,))
        b = Tensor.ones((2,))
        b.release()
        with self.assertRaises(TensorReleasedError):
            F.mul(a, b)
        with self.assertRaises(TensorReleasedError):
            F.fill(b, 1.0)


class TestFunctionalApi(unittest.TestCase):
    def test_factories(self):
        self.assertEqual(F.zeros((2, 2)).shape, (2, 2))
        np.testing.assert_array_equal(F.ones(3).to_numpy(), [1, 1, 1])
        self.assertEqual(F.empty((4,)).shape, (4,))
        np.testing.assert_array_equal(
            F.randn((3,), seed=5).to_numpy(), F.randn((3,), seed=5).to_numpy()
        )
        self.assertTrue(F.rand((2,), seed=1, requires_grad=True).requires_grad)
        np.testing.assert_array_equal(F.tensor([[1, 2]]).to_numpy(), [[1.0, 2.0]])

    def test_fill_and_copy(self):
        dst = F.zeros((2,))
        F.fill(dst, 4.0)
        np.testing.assert_array_equal(dst.to_numpy(), [4.0, 4.0])
        F.copy(dst, F.tensor([1.0, 2.0]))
        np.testing.assert_array_equal(dst.to_numpy(), [1.0, 2.0])

    def test_operator_sugar_uses_default_context(self):
        a = Tensor.from_numpy([[1.0, 2.0], [3.0, 4.0]], requires_grad=True)
        b = Tensor.from_numpy([[0.5, 0.5], [0.5, 0.5]])
        out = (a * 2.0 + b - 1) @ a.T
        expected = (a.to_numpy() * 2 + 0.5 - 1) @ a.to_numpy().T
        np.testing.assert_allclose(out.to_numpy(), expected, rtol=1e-6)
        self.assertTrue(out.requires_grad)

        np.testing.assert_allclose((1.0 - b).to_numpy(), np.full((2, 2), 0.5))
        np.testing.assert_allclose((3 * b).to_numpy(), np.full((2, 2), 1.5))
        with self.assertRaises(TypeError):
            a + "x"

    def test_activation_methods(self):
        x = Tensor.from_numpy([[-1.0, 0.0, 1.0]])
        np.testing.assert_array_equal(x.relu().to_numpy(), [[0.0, 0.0, 1.0]])
        np.testing.assert_allclose(x.sigmoid().to_numpy()[0, 1], 0.5)
        np.testing.assert_allclose(x.tanh().to_numpy(), np.tanh(x.to_numpy()), rtol=1e-6)
        np.testing.assert_allclose(x.softmax().to_numpy().sum(), 1.0, rtol=1e-6)

    def test_zero_grad_and_release(self):
        x = Tensor.from_numpy([2.0], requires_grad=True)
        F.backward(F.mul(x, x))
        np.testing.assert_allclose(x.grad.to_numpy(), [4.0])
        F.zero_grad(x)
        np.testing.assert_array_equal(x.grad.to_numpy(), [0.0])
        F.release(x)
        self.assertTrue(x.released)

    def test_package_exports(self):
        self.assertIs(petard.Tensor, Tensor)
        self.assertIs(petard.add, F.add)
        for name in (
            "ExecutionContext",
            "AcceleratorConfig",
            "Linear",
            "Sequential",
            "Optimizer",
            "ShapeMismatchError",
        ):
            self.assertTrue(hasattr(petard, name), name)


if __name__ == "__main__":
    unittest.main()
