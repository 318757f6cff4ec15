"""
knot_vector 模块单元测试
"""

import numpy as np
import pytest

from bspline_kernel.core.knot_vector import BSplineWrapMode, KnotVector


@pytest.fixture
def clamped_cubic():
    """5 个极点的三次夹紧节点向量 [0,0,0,0.5,1,1,1]"""
    return KnotVector.create_uniform_clamped(5, 3)


class TestKnotVectorConstruction:
    """节点向量构造测试"""

    def test_uniform_clamped(self, clamped_cubic):
        """测试均匀夹紧节点"""
        np.testing.assert_allclose(clamped_cubic.knots, [0.0, 0.0, 0.0, 0.5, 1.0, 1.0, 1.0])
        assert clamped_cubic.num_poles == 5
        assert clamped_cubic.num_spans == 2
        assert clamped_cubic.left_knot == 0.0
        assert clamped_cubic.right_knot == 1.0

    def test_create_skip_first_and_last(self):
        """测试经典长度节点向量去掉首尾"""
        kv = KnotVector.create([0, 0, 0, 0, 1, 1, 1, 1], 3, True)
        np.testing.assert_allclose(kv.knots, [0, 0, 0, 1, 1, 1])
        assert kv.num_poles == 4

    def test_uniform_wrapped_is_closable(self):
        """测试周期节点满足平移闭合条件"""
        kv = KnotVector.create_uniform_wrapped(5, 3)
        assert len(kv.knots) == 10
        assert kv.left_knot == pytest.approx(0.0)
        assert kv.right_knot == pytest.approx(1.0)
        assert kv.test_closable(BSplineWrapMode.OPEN_BY_ADDING_CONTROL_POINTS)

    def test_clamped_closable_by_removing_knots(self, clamped_cubic):
        """测试夹紧节点只能按去节点方式闭合"""
        assert clamped_cubic.test_closable(BSplineWrapMode.OPEN_BY_REMOVING_KNOTS)
        assert not clamped_cubic.test_closable(BSplineWrapMode.OPEN_BY_ADDING_CONTROL_POINTS)
        assert not clamped_cubic.test_closable(BSplineWrapMode.NONE)


class TestBasisFunctions:
    """基函数测试"""

    def test_partition_of_unity(self, clamped_cubic):
        """测试基函数之和为 1 且非负"""
        for u in np.linspace(0.0, 1.0, 21):
            k0 = clamped_cubic.knot_to_left_knot_index(u)
            f = clamped_cubic.evaluate_basis_functions(k0, u)
            assert np.isclose(f.sum(), 1.0)
            assert np.all(f >= -1e-14)

    def test_derivatives_sum_to_zero(self, clamped_cubic):
        """测试基函数导数之和为 0"""
        f = np.zeros(4)
        df = np.zeros(4)
        ddf = np.zeros(4)
        for u in [0.1, 0.5, 0.77]:
            k0 = clamped_cubic.knot_to_left_knot_index(u)
            clamped_cubic.evaluate_basis_functions1(k0, u, f, df, ddf)
            assert np.isclose(df.sum(), 0.0, atol=1e-12)
            assert np.isclose(ddf.sum(), 0.0, atol=1e-10)

    def test_derivative_matches_finite_difference(self, clamped_cubic):
        """测试一阶导数与有限差分一致"""
        u = 0.3
        h = 1e-6
        k0 = clamped_cubic.knot_to_left_knot_index(u)
        f = np.zeros(4)
        df = np.zeros(4)
        clamped_cubic.evaluate_basis_functions1(k0, u, f, df)
        f_plus = clamped_cubic.evaluate_basis_functions(k0, u + h)
        f_minus = clamped_cubic.evaluate_basis_functions(k0, u - h)
        np.testing.assert_allclose(df, (f_plus - f_minus) / (2 * h), atol=1e-6)

    def test_left_knot_index_at_ends(self, clamped_cubic):
        """测试右端点落在最后一个非零跨度"""
        assert clamped_cubic.knot_to_left_knot_index(0.0) == 2
        assert clamped_cubic.knot_to_left_knot_index(0.5) == 3
        assert clamped_cubic.knot_to_left_knot_index(1.0) == 3


class TestKnotQueries:
    """重数、Greville 与参数换算测试"""

    def test_multiplicity(self, clamped_cubic):
        """测试节点重数"""
        assert clamped_cubic.get_knot_multiplicity(0.0) == 3
        assert clamped_cubic.get_knot_multiplicity(0.5) == 1
        assert clamped_cubic.get_knot_multiplicity(0.25) == 0
        assert clamped_cubic.get_knot_multiplicity_at_index(5) == 3
        assert clamped_cubic.get_knot_multiplicity_at_index(99) == 0

    def test_greville(self, clamped_cubic):
        """测试 Greville 横坐标"""
        expected = [0.0, 1.0 / 6.0, 0.5, 5.0 / 6.0, 1.0]
        for i, value in enumerate(expected):
            assert np.isclose(clamped_cubic.greville_knot(i), value)
        assert clamped_cubic.greville_knot(-1) == 0.0

    def test_fraction_knot_conversion(self):
        """测试分数与节点值互换及截断"""
        kv = KnotVector.create([2, 2, 3, 4, 4], 2)
        assert kv.fraction_to_knot(0.5) == pytest.approx(3.0)
        assert kv.knot_to_fraction(3.5) == pytest.approx(0.75)
        assert kv.fraction_to_knot(1.5) == pytest.approx(4.0)
        assert kv.span_fraction_to_fraction(1, 0.5) == pytest.approx(0.75)

    def test_real_span(self):
        """测试零长度跨度判定"""
        kv = KnotVector.create([0, 0, 0.5, 0.5, 1, 1], 2)
        assert kv.is_index_of_real_span(0)
        assert not kv.is_index_of_real_span(1)
        assert kv.is_index_of_real_span(2)
        assert not kv.is_index_of_real_span(3)


class TestKnotModification:
    """原地修改测试"""

    def test_reflect(self):
        """测试节点反射"""
        kv = KnotVector.create([0, 0, 0, 0.2, 1, 1, 1], 3)
        kv.reflect_knots()
        np.testing.assert_allclose(kv.knots, [0, 0, 0, 0.8, 1, 1, 1])

    def test_normalize(self):
        """测试归一化到 [0, 1]"""
        kv = KnotVector.create([2, 2, 2, 3, 4, 4, 4], 3)
        assert kv.normalize()
        np.testing.assert_allclose(kv.knots, [0, 0, 0, 0.5, 1, 1, 1])
        assert kv.knots[-1] == 1.0

    def test_normalize_rejects_empty_range(self):
        """测试零长度区间不归一化"""
        kv = KnotVector.create([1, 1, 1, 1], 2)
        assert not kv.normalize()
        np.testing.assert_allclose(kv.knots, [1, 1, 1, 1])

    def test_copy_knots_with_extra_end_knots(self, clamped_cubic):
        """测试导出经典长度节点"""
        knots = clamped_cubic.copy_knots(True)
        assert knots == [0.0, 0.0, 0.0, 0.0, 0.5, 1.0, 1.0, 1.0, 1.0]
        assert clamped_cubic.copy_knots(False) == [0.0, 0.0, 0.0, 0.5, 1.0, 1.0, 1.0]

    def test_copy_knots_periodic(self):
        """测试周期节点导出时按周期补端点"""
        kv = KnotVector.create_uniform_wrapped(4, 3)
        kv.wrappable = BSplineWrapMode.OPEN_BY_ADDING_CONTROL_POINTS
        knots = kv.copy_knots(True)
        assert len(knots) == len(kv.knots) + 2
        np.testing.assert_allclose(np.diff(knots), 0.25)

    def test_almost_equal(self, clamped_cubic):
        """测试节点向量比较"""
        other = clamped_cubic.clone()
        assert clamped_cubic.is_almost_equal(other)
        other.knots[3] += 1e-6
        assert not clamped_cubic.is_almost_equal(other)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
