"""
utils 模块单元测试
"""

import numpy as np
import pytest

from bspline_kernel.utils.geometry import (
    Plane3d,
    Range3d,
    conditional_divide_fraction,
    is_almost_equal_number,
    is_rigid_or_affine,
    normalize,
    normalize_or_none,
    step_count,
    transform_points,
    transform_points4d,
)
from bspline_kernel.utils.integrals import (
    adaptive_quadrature,
    arc_length_integral,
    gauss_legendre,
    simpson,
)
from bspline_kernel.utils.bezier_polynomials import (
    UnivariateBezier,
    bernstein_evaluate,
    bernstein_product,
    bernstein_roots_01,
)


class TestGeometry:
    """几何工具函数测试"""

    def test_normalize_single_vector(self):
        """测试单向量归一化"""
        v = np.array([3.0, 4.0, 0.0])
        result = normalize(v)
        assert np.isclose(np.linalg.norm(result), 1.0)
        np.testing.assert_allclose(result, [0.6, 0.8, 0.0])

    def test_normalize_batch(self):
        """测试批量向量归一化"""
        vectors = np.array([[3.0, 4.0, 0.0], [0.0, 0.0, 5.0]])
        result = normalize(vectors)
        norms = np.linalg.norm(result, axis=1)
        np.testing.assert_allclose(norms, [1.0, 1.0])

    def test_normalize_or_none(self):
        """测试零向量归一化返回 None"""
        assert normalize_or_none(np.zeros(3)) is None
        assert normalize_or_none(None) is None
        np.testing.assert_allclose(normalize_or_none(np.array([0.0, 2.0, 0.0])), [0.0, 1.0, 0.0])

    def test_conditional_divide_fraction(self):
        """测试安全除法"""
        assert conditional_divide_fraction(1.0, 4.0) == pytest.approx(0.25)
        assert conditional_divide_fraction(1.0, 0.0) is None
        assert conditional_divide_fraction(1.0, 1e-12) is None

    def test_is_almost_equal_number(self):
        """测试相对容差比较"""
        assert is_almost_equal_number(1.0, 1.0 + 1e-14)
        assert is_almost_equal_number(1e6, 1e6 * (1.0 + 1e-14))
        assert not is_almost_equal_number(1.0, 1.0 + 1e-9)

    def test_step_count(self):
        """测试步长分段数"""
        assert step_count(0.0, 10.0, 3) == 3
        assert step_count(1.0, 0.5, 2) == 2
        assert step_count(1.0, 10.0) == 10
        assert step_count(1.0, 10.5) == 11
        assert step_count(1e-6, 10.0, 1, 100) == 100

    def test_range_extend(self):
        """测试包围盒扩展"""
        r = Range3d()
        assert r.is_null
        r.extend_array(np.zeros((0, 3)))
        assert r.is_null
        r.extend_array(np.array([[0.0, 1.0, 2.0], [-1.0, 3.0, 0.5]]))
        np.testing.assert_allclose(r.low, [-1.0, 1.0, 0.5])
        np.testing.assert_allclose(r.high, [0.0, 3.0, 2.0])
        assert r.contains_point(np.array([-0.5, 2.0, 1.0]))
        assert not r.contains_point(np.array([1.0, 2.0, 1.0]))

    def test_range_with_transform(self):
        """测试带变换的包围盒扩展"""
        transform = np.eye(4)
        transform[:3, 3] = [10.0, 0.0, 0.0]
        r = Range3d()
        r.extend_point(np.array([1.0, 1.0, 1.0]), transform)
        np.testing.assert_allclose(r.low, [11.0, 1.0, 1.0])

    def test_plane_altitude(self):
        """测试平面高度与齐次高度"""
        plane = Plane3d(np.array([0.0, 0.0, 1.0]), np.array([0.0, 0.0, 2.0]))
        assert plane.altitude(np.array([5.0, 5.0, 3.0])) == pytest.approx(2.0)
        # 齐次点 (w*x, w*y, w*z, w) 的高度按 w 缩放
        assert plane.weighted_altitude(np.array([1.0, 1.0, 6.0, 2.0])) == pytest.approx(4.0)
        assert plane.is_point_in_plane(np.array([7.0, -3.0, 1.0]))

    def test_transform_points(self):
        """测试仿射变换"""
        transform = np.array([
            [0.0, -1.0, 0.0, 1.0],
            [1.0, 0.0, 0.0, 2.0],
            [0.0, 0.0, 1.0, 3.0],
            [0.0, 0.0, 0.0, 1.0],
        ])
        points = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
        np.testing.assert_allclose(transform_points(transform, points), [[1.0, 3.0, 3.0], [0.0, 2.0, 3.0]])
        # 齐次点的平移按权重缩放
        xyzw = np.array([[2.0, 0.0, 0.0, 2.0]])
        np.testing.assert_allclose(transform_points4d(transform, xyzw), [[2.0, 6.0, 6.0, 2.0]])

    def test_is_rigid_or_affine(self):
        """测试变换合法性检查"""
        assert is_rigid_or_affine(np.eye(4))
        singular = np.eye(4)
        singular[2, 2] = 0.0
        assert not is_rigid_or_affine(singular)
        perspective = np.eye(4)
        perspective[3, 0] = 1.0
        assert not is_rigid_or_affine(perspective)


class TestIntegrals:
    """数值积分测试"""

    def test_simpson_rule_polynomial(self):
        """测试 Simpson 自适应积分"""
        result = adaptive_quadrature(lambda x: x**2, 0.0, 1.0, rule=simpson)
        assert np.isclose(result, 1.0 / 3.0, atol=1e-10)

    def test_adaptive_trig(self):
        """测试三角函数积分"""
        result = adaptive_quadrature(np.sin, 0.0, np.pi)
        assert np.isclose(result, 2.0, atol=1e-9)
        assert np.isclose(adaptive_quadrature(np.sin, 0.0, np.pi, rule=simpson), 2.0, atol=1e-8)

    def test_adaptive_reversed_interval(self):
        """测试下限大于上限时结果取负"""
        assert np.isclose(adaptive_quadrature(np.exp, 1.0, 0.0), 1.0 - np.e)

    def test_gauss_legendre_exact_for_low_degree(self):
        """测试 Gauss-Legendre 对低次多项式精确"""
        result = gauss_legendre(lambda x: x**5 - 2.0 * x, 0.0, 2.0)
        assert np.isclose(result, 64.0 / 6.0 - 4.0)

    def test_arc_length_circle(self):
        """测试圆弧弧长计算"""
        r = 2.0

        def circle_derivative(t):
            return np.array([-r * np.sin(t), r * np.cos(t), 0.0])

        length = arc_length_integral(circle_derivative, 0.0, 2 * np.pi)
        assert np.isclose(length, 2 * np.pi * r, rtol=1e-6)


class TestBernstein:
    """Bernstein 多项式测试"""

    def test_evaluate_matches_power_form(self):
        """测试 de Casteljau 求值"""
        # (1-u)^2 * 1 + 2u(1-u) * 3 + u^2 * 2
        coffs = np.array([1.0, 3.0, 2.0])
        for u in [0.0, 0.3, 0.5, 1.0]:
            expected = (1 - u) ** 2 + 6.0 * u * (1 - u) + 2.0 * u**2
            assert np.isclose(bernstein_evaluate(coffs, u), expected)

    def test_product(self):
        """测试乘积的阶数与取值"""
        a = np.array([1.0, -2.0, 0.5])
        b = np.array([0.0, 1.0])
        product = bernstein_product(a, b)
        assert len(product) == 4
        for u in np.linspace(0.0, 1.0, 7):
            assert np.isclose(
                bernstein_evaluate(product, u),
                bernstein_evaluate(a, u) * bernstein_evaluate(b, u),
            )

    def test_roots_in_unit_interval(self):
        """测试 [0,1] 内求根"""
        # 线性: -1 + 2u -> 根 0.5
        np.testing.assert_allclose(bernstein_roots_01(np.array([-1.0, 1.0])), [0.5])
        # (u - 0.25)(u - 0.75) 的 Bernstein 系数
        coffs = np.array([0.1875, -0.3125, 0.1875])
        np.testing.assert_allclose(bernstein_roots_01(coffs), [0.25, 0.75], atol=1e-10)

    def test_roots_none_when_same_sign(self):
        """测试同号系数无根"""
        assert bernstein_roots_01(np.array([1.0, 2.0, 0.5])) == []
        assert bernstein_roots_01(np.zeros(4)) == []

    def test_univariate_accumulate(self):
        """测试累加乘积与目标值求根"""
        bezier = UnivariateBezier(3)
        bezier.accumulate_product(np.array([0.0, 1.0]), np.array([0.0, 1.0]))
        # u^2 = 0.25 -> u = 0.5
        np.testing.assert_allclose(bezier.roots(0.25), [0.5], atol=1e-10)
        with pytest.raises(ValueError):
            bezier.accumulate_product(np.array([1.0, 1.0, 1.0]), np.array([1.0, 1.0]))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
