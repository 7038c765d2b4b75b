import unittest

import numpy as np

from petard.domain._errors import ShapeMismatchError
from petard.infrastructure.ops._reference import ReferenceOperations
from petard.infrastructure.ops._shape_utils import broadcast_shape, sum_to_shape
from petard.infrastructure.tensor import Tensor


def _t(values):
    return Tensor.from_numpy(np.asarray(values, dtype=np.float32))


class TestElementwise(unittest.TestCase):
    def setUp(self):
        self.ops = ReferenceOperations()

    def test_add_sub_mul(self):
        a = _t([[1.0, 2.0], [3.0, 4.0]])
        b = _t([[0.5, -1.0], [2.0, 0.0]])
        np.testing.assert_allclose(self.ops.add(a, b).to_numpy(), [[1.5, 1.0], [5.0, 4.0]])
        np.testing.assert_allclose(self.ops.sub(a, b).to_numpy(), [[0.5, 3.0], [1.0, 4.0]])
        np.testing.assert_allclose(self.ops.mul(a, b).to_numpy(), [[0.5, -2.0], [6.0, 0.0]])

    def test_add_commutes_and_sub_inverts(self):
        rng = np.random.default_rng(0)
        a = _t(rng.standard_normal((3, 4)))
        b = _t(rng.standard_normal((3, 4)))
        np.testing.assert_array_equal(
            self.ops.add(a, b).to_numpy(), self.ops.add(b, a).to_numpy()
        )
        back = self.ops.sub(self.ops.add(a, b), b).to_numpy()
        np.testing.assert_allclose(back, a.to_numpy(), atol=1e-6)

    def test_trailing_broadcast(self):
        a = _t([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
        bias = _t([10.0, 20.0, 30.0])
        out = self.ops.add(a, bias)
        self.assertEqual(out.shape, (2, 3))
        np.testing.assert_allclose(out.to_numpy(), [[11, 22, 33], [14, 25, 36]])

    def test_result_is_fresh_owner(self):
        a = _t([1.0, 2.0])
        out = self.ops.add(a, a)
        self.assertTrue(out.owns_data)
        self.assertIsNone(out._get_ctx())
        self.assertFalse(out.requires_grad)

    def test_incompatible_shapes_raise(self):
        with self.assertRaises(ShapeMismatchError):
            self.ops.add(_t(np.zeros((2, 3))), _t(np.zeros((4,))))
        with self.assertRaises(ShapeMismatchError):
            self.ops.mul(_t(np.zeros((2, 3))), _t(np.zeros((3, 2))))


class TestLinalg(unittest.TestCase):
    def setUp(self):
        self.ops = ReferenceOperations()

    def test_matmul_2d(self):
        a = _t([[1, 2, 3], [4, 5, 6]])
        b = _t([[1, 2], [3, 4], [5, 6]])
        np.testing.assert_allclose(self.ops.matmul(a, b).to_numpy(), [[22, 28], [49, 64]])

    def test_matmul_matrix_vector(self):
        a = _t([[1, 2, 3], [4, 5, 6]])
        v = _t([1, 0, -1])
        out = self.ops.matmul(a, v)
        self.assertEqual(out.shape, (2,))
        np.testing.assert_allclose(out.to_numpy(), [-2, -2])

    def test_matmul_vector_matrix(self):
        out = self.ops.matmul(_t([1, 0, -1]), _t([[1, 2], [3, 4], [5, 6]]))
        self.assertEqual(out.shape, (2,))
        np.testing.assert_allclose(out.to_numpy(), [-4, -4])

    def test_matmul_dot_keeps_one_element(self):
        out = self.ops.matmul(_t([1, 2, 3]), _t([4, 5, 6]))
        self.assertEqual(out.shape, (1,))
        self.assertEqual(out.item(), 32.0)

    def test_matmul_mismatch(self):
        with self.assertRaises(ShapeMismatchError):
            self.ops.matmul(_t(np.zeros((2, 3))), _t(np.zeros((2, 3))))
        with self.assertRaises(ShapeMismatchError):
            self.ops.matmul(_t(np.zeros(4)), _t(np.zeros((3, 2))))
        with self.assertRaises(ShapeMismatchError):
            self.ops.matmul(_t(np.zeros((1, 2, 2))), _t(np.zeros((2, 2))))

    def test_transpose(self):
        a = _t([[1, 2, 3], [4, 5, 6]])
        out = self.ops.transpose2d(a)
        self.assertEqual(out.shape, (3, 2))
        np.testing.assert_array_equal(out.to_numpy(), [[1, 4], [2, 5], [3, 6]])

        out.fill(0.0)
        np.testing.assert_array_equal(a.to_numpy()[0], [1, 2, 3])

    def test_transpose_requires_2d(self):
        with self.assertRaises(ShapeMismatchError):
            self.ops.transpose2d(_t([1, 2, 3]))


class TestActivations(unittest.TestCase):
    def setUp(self):
        self.ops = ReferenceOperations()

    def test_relu(self):
        out = self.ops.relu(_t([-2.0, -0.5, 0.0, 1.5]))
        np.testing.assert_array_equal(out.to_numpy(), [0.0, 0.0, 0.0, 1.5])

    def test_sigmoid_is_stable(self):
        out = self.ops.sigmoid(_t([-1000.0, 0.0, 1000.0])).to_numpy()
        self.assertTrue(np.all(np.isfinite(out)))
        np.testing.assert_allclose(out, [0.0, 0.5, 1.0], atol=1e-6)

    def test_tanh(self):
        x = np.array([-3.0, -0.1, 0.0, 2.0], dtype=np.float32)
        np.testing.assert_allclose(self.ops.tanh(_t(x)).to_numpy(), np.tanh(x), rtol=1e-6)

    def test_softmax_rows(self):
        x = np.array([[1.0, 2.0, 3.0], [1000.0, 1000.0, 1000.0]], dtype=np.float32)
        out = self.ops.softmax(_t(x)).to_numpy()
        self.assertTrue(np.all(out > 0.0))
        np.testing.assert_allclose(out.sum(axis=-1), [1.0, 1.0], rtol=1e-6)
        np.testing.assert_allclose(out[1], [1 / 3, 1 / 3, 1 / 3], rtol=1e-6)

    def test_softmax_shift_invariant(self):
        x = np.array([[0.5, -1.0, 2.0]], dtype=np.float32)
        a = self.ops.softmax(_t(x)).to_numpy()
        b = self.ops.softmax(_t(x + 50.0)).to_numpy()
        np.testing.assert_allclose(a, b, rtol=1e-5)


class TestLosses(unittest.TestCase):
    def setUp(self):
        self.ops = ReferenceOperations()

    def test_mse(self):
        out = self.ops.mse(_t([1, 2, 3, 4]), _t([1.5, 2.5, 2.5, 4.5]))
        self.assertEqual(out.shape, (1,))
        self.assertAlmostEqual(out.item(), 0.25, places=6)

    def test_cross_entropy_mean_over_rows(self):
        pred = _t([[0.7, 0.2, 0.1], [0.1, 0.8, 0.1]])
        target = _t([[1, 0, 0], [0, 1, 0]])
        expected = -(np.log(0.7) + np.log(0.8)) / 2
        self.assertAlmostEqual(self.ops.cross_entropy(pred, target).item(), expected, places=5)

    def test_cross_entropy_clips_zero_probability(self):
        out = self.ops.cross_entropy(_t([[0.0, 1.0]]), _t([[1.0, 0.0]]))
        self.assertTrue(np.isfinite(out.item()))

    def test_binary_cross_entropy(self):
        p = np.array([0.9, 0.2, 0.6], dtype=np.float64)
        t = np.array([1.0, 0.0, 1.0])
        expected = -np.mean(t * np.log(p) + (1 - t) * np.log(1 - p))
        out = self.ops.binary_cross_entropy(_t(p), _t(t))
        self.assertAlmostEqual(out.item(), expected, places=5)

    def test_loss_shape_mismatch(self):
        with self.assertRaises(ShapeMismatchError):
            self.ops.mse(_t([1, 2]), _t([1, 2, 3]))


class TestShapeUtils(unittest.TestCase):
    def test_broadcast_shape(self):
        self.assertEqual(broadcast_shape("add", (4, 3), (3,)), (4, 3))
        self.assertEqual(broadcast_shape("add", (4, 1), (1, 5)), (4, 5))
        with self.assertRaises(ShapeMismatchError):
            broadcast_shape("add", (4, 3), (4,))

    def test_sum_to_shape(self):
        g = np.ones((4, 3), dtype=np.float32)
        np.testing.assert_array_equal(sum_to_shape(g, (3,)), [4, 4, 4])
        np.testing.assert_array_equal(sum_to_shape(g, (4, 1)), np.full((4, 1), 3))
        self.assertIs(sum_to_shape(g, (4, 3)), g)
        with self.assertRaises(ValueError):
            sum_to_shape(g, (2,))


if __name__ == "__main__":
    unittest.main()
