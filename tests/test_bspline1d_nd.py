"""
bspline1d_nd 模块单元测试
"""

import numpy as np
import pytest

from bspline_kernel.core.bspline1d_nd import BSpline1dNd
from bspline_kernel.core.knot_vector import BSplineWrapMode, KnotVector


def _sample(bspline: BSpline1dNd, knots) -> np.ndarray:
    result = []
    for u in knots:
        bspline.evaluate_buffers_at_knot(u)
        result.append(bspline.pole_buffer.copy())
    return np.array(result)


@pytest.fixture
def cubic_buffer():
    poles = np.array([
        [0.0, 0.0, 0.0],
        [1.0, 2.0, 0.0],
        [2.0, 2.5, 1.0],
        [3.0, 0.5, 1.0],
        [4.0, 1.0, 0.0],
    ])
    return BSpline1dNd(poles, KnotVector.create_uniform_clamped(5, 3))


class TestBSpline1dNd:
    """打包极点 B样条测试"""

    def test_sizes(self, cubic_buffer):
        """测试尺寸属性"""
        assert cubic_buffer.degree == 3
        assert cubic_buffer.order == 4
        assert cubic_buffer.num_poles == 5
        assert cubic_buffer.pole_length == 3
        assert cubic_buffer.num_span == 2

    def test_get_pole_out_of_range(self, cubic_buffer):
        """测试极点下标越界"""
        np.testing.assert_allclose(cubic_buffer.get_pole(1), [1.0, 2.0, 0.0])
        with pytest.raises(IndexError):
            cubic_buffer.get_pole(5)
        with pytest.raises(IndexError):
            cubic_buffer.get_pole(-1)

    def test_clamped_end_interpolation(self, cubic_buffer):
        """测试夹紧曲线经过首末极点"""
        cubic_buffer.evaluate_buffers_at_knot(0.0)
        np.testing.assert_allclose(cubic_buffer.pole_buffer, [0.0, 0.0, 0.0], atol=1e-14)
        cubic_buffer.evaluate_buffers_at_knot(1.0)
        np.testing.assert_allclose(cubic_buffer.pole_buffer, [4.0, 1.0, 0.0], atol=1e-14)

    def test_derivative_buffers(self, cubic_buffer):
        """测试导数缓冲与有限差分一致"""
        u = 0.4
        h = 1e-6
        cubic_buffer.evaluate_buffers_at_knot(u, 2)
        d1 = cubic_buffer.pole_buffer1.copy()
        d2 = cubic_buffer.pole_buffer2.copy()
        p_plus, p_minus = _sample(cubic_buffer, [u + h, u - h])
        np.testing.assert_allclose(d1, (p_plus - p_minus) / (2 * h), atol=1e-5)
        cubic_buffer.evaluate_buffers_at_knot(u + h, 1)
        d1_plus = cubic_buffer.pole_buffer1.copy()
        cubic_buffer.evaluate_buffers_at_knot(u - h, 1)
        d1_minus = cubic_buffer.pole_buffer1.copy()
        np.testing.assert_allclose(d2, (d1_plus - d1_minus) / (2 * h), atol=1e-3)

    def test_span_evaluation_matches_knot_evaluation(self, cubic_buffer):
        """测试跨度求值与节点求值一致"""
        point = cubic_buffer.evaluate_buffers_in_span(1, 0.5).copy()
        cubic_buffer.evaluate_buffers_at_knot(0.75)
        np.testing.assert_allclose(point, cubic_buffer.pole_buffer)

    def test_add_knot_preserves_shape(self, cubic_buffer):
        """测试节点插入不改变曲线"""
        samples = np.linspace(0.0, 1.0, 17)
        before = _sample(cubic_buffer, samples)
        assert cubic_buffer.add_knot(0.3, 1)
        assert cubic_buffer.num_poles == 6
        assert cubic_buffer.add_knot(0.5, 3)
        assert cubic_buffer.knots.get_knot_multiplicity(0.5) == 3
        assert cubic_buffer.num_poles == 8
        after = _sample(cubic_buffer, samples)
        np.testing.assert_allclose(before, after, atol=1e-12)

    def test_add_knot_existing_multiplicity(self, cubic_buffer):
        """测试重数已足够时不修改"""
        assert cubic_buffer.add_knot(0.0, 3)
        assert cubic_buffer.num_poles == 5

    def test_add_knot_outside_range(self, cubic_buffer):
        """测试区间外插入失败"""
        assert not cubic_buffer.add_knot(1.5, 1)
        assert cubic_buffer.num_poles == 5

    def test_reverse(self, cubic_buffer):
        """测试反向后 u 与 1-u 对应"""
        samples = np.linspace(0.0, 1.0, 9)
        before = _sample(cubic_buffer, samples)
        cubic_buffer.reverse_in_place()
        after = _sample(cubic_buffer, 1.0 - samples)
        np.testing.assert_allclose(before, after, atol=1e-12)

    def test_closeable_polygon(self):
        """测试周期极点检查"""
        poles = np.array([[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0], [0, 0, 0], [1, 0, 0]], dtype=float)
        knots = KnotVector.create_uniform_wrapped(4, 2)
        bspline = BSpline1dNd(poles, knots)
        assert bspline.test_closeable_polygon(BSplineWrapMode.OPEN_BY_ADDING_CONTROL_POINTS)
        bspline.packed_data[5] = [2.0, 0.0, 0.0]
        assert not bspline.test_closeable_polygon(BSplineWrapMode.OPEN_BY_ADDING_CONTROL_POINTS)
        assert not bspline.test_closeable_polygon(BSplineWrapMode.NONE)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
