"""
curve_ops 模块单元测试 (过点拟合)
"""

import numpy as np
import pytest

from bspline_kernel.core.curve_ops import (
    construct_fit_parameters_from_points,
    convert_cubic_knot_vector_to_fit_params,
    convert_fit_params_to_cubic_knot_vector,
    convert_to_json_knots,
    create_through_points,
    create_through_points_c2_cubic,
    validate_options,
)
from bspline_kernel.core.knot_vector import BSplineWrapMode
from bspline_kernel.datasets import (
    closed_ring_points,
    helix_points,
    open_polyline_points,
    wavy_polyline_points,
)
from bspline_kernel.interpolation import InterpolationCurve3dOptions


def _chord_params(points: np.ndarray) -> np.ndarray:
    distances = np.linalg.norm(np.diff(points, axis=0), axis=1)
    cumulative = np.concatenate([[0.0], np.cumsum(distances)])
    return cumulative / cumulative[-1]


def _unit(v) -> np.ndarray:
    v = np.asarray(v, dtype=float)
    return v / np.linalg.norm(v)


class TestCreateThroughPoints:
    """任意阶插值测试"""

    @pytest.mark.parametrize("order", [2, 3, 4, 5])
    def test_interpolates_at_greville(self, order):
        """测试在 Greville 参数处经过拟合点"""
        points = helix_points(12)
        curve = create_through_points(points, order)
        assert curve is not None
        assert curve.order == order
        assert curve.num_poles == len(points)
        for i, point in enumerate(points):
            u = curve.knots.greville_knot(i)
            np.testing.assert_allclose(curve.fraction_to_point(u), point, atol=1e-9)

    def test_order_equals_point_count(self):
        """测试阶数等于点数 (单段 Bezier)"""
        points = open_polyline_points()[:4]
        curve = create_through_points(points, 4)
        assert curve.num_span == 1
        np.testing.assert_allclose(curve.fraction_to_point(1.0 / 3.0), points[1], atol=1e-10)

    def test_2d_points(self):
        """测试二维输入补 z = 0"""
        curve = create_through_points([[0.0, 0.0], [1.0, 1.0], [2.0, 0.0], [3.0, 1.0]], 3)
        assert curve is not None
        assert curve.end_point()[2] == 0.0
        np.testing.assert_allclose(curve.end_point(), [3.0, 1.0, 0.0], atol=1e-12)

    def test_rejects_bad_order(self):
        """测试阶数超过点数或小于 2"""
        points = open_polyline_points()
        assert create_through_points(points, 6) is None
        assert create_through_points(points, 1) is None
        assert create_through_points(np.zeros((3, 4)), 2) is None


class TestC2CubicOpen:
    """开曲线 C2 三次插值测试"""

    def test_interpolates_fit_points(self):
        """测试在弦长参数处经过拟合点"""
        points = open_polyline_points()
        curve = create_through_points_c2_cubic(InterpolationCurve3dOptions(fit_points=points))
        assert curve is not None
        assert curve.order == 4
        assert curve.num_poles == len(points) + 2
        for u, point in zip(_chord_params(points), points):
            np.testing.assert_allclose(curve.fraction_to_point(u), point, atol=1e-10)

    def test_c2_continuity_at_fit_points(self):
        """测试内部拟合点处二阶导数连续"""
        points = wavy_polyline_points()
        curve = create_through_points_c2_cubic(InterpolationCurve3dOptions(fit_points=points))
        h = 1e-7
        for u in _chord_params(points)[1:-1]:
            _, _, d2_left = curve.fraction_to_point_and_2_derivatives(u - h)
            _, _, d2_right = curve.fraction_to_point_and_2_derivatives(u + h)
            np.testing.assert_allclose(d2_left, d2_right, atol=1e-3 * (1.0 + np.linalg.norm(d2_left)))

    def test_options_not_modified(self):
        """测试调用者的选项保持不变"""
        points = open_polyline_points()
        options = InterpolationCurve3dOptions(fit_points=points, order=3)
        create_through_points_c2_cubic(options)
        assert options.knots is None
        assert options.order == 3
        np.testing.assert_allclose(options.fit_points, points)

    @pytest.mark.parametrize("chord_length_tangents", [True, False])
    def test_end_tangents(self, chord_length_tangents):
        """测试给定的端点切向 (均指向曲线内部)"""
        points = open_polyline_points()
        options = InterpolationCurve3dOptions(
            fit_points=points,
            start_tangent=[0.0, 2.0, 0.0],
            end_tangent=[-1.0, 0.0, 0.0],
            is_chord_len_tangents=chord_length_tangents,
        )
        curve = create_through_points_c2_cubic(options)
        _, start_derivative = curve.fraction_to_point_and_derivative(0.0)
        _, end_derivative = curve.fraction_to_point_and_derivative(1.0)
        np.testing.assert_allclose(_unit(start_derivative), [0.0, 1.0, 0.0], atol=1e-10)
        np.testing.assert_allclose(_unit(end_derivative), [1.0, 0.0, 0.0], atol=1e-10)
        for u, point in zip(_chord_params(points), points):
            np.testing.assert_allclose(curve.fraction_to_point(u), point, atol=1e-10)

    def test_chord_length_tangent_magnitude(self):
        """测试弦长缩放切向的极点位置"""
        points = open_polyline_points()
        options = InterpolationCurve3dOptions(
            fit_points=points, start_tangent=[1.0, 0.0, 0.0], is_chord_len_tangents=True
        )
        curve = create_through_points_c2_cubic(options)
        chord = np.linalg.norm(points[1] - points[0])
        np.testing.assert_allclose(curve.get_pole_point3d(1), points[0] + [chord / 3.0, 0.0, 0.0], atol=1e-12)

    def test_natural_end_conditions(self):
        """测试自然端点条件下端点二阶导数为零"""
        points = wavy_polyline_points()
        curve = create_through_points_c2_cubic(
            InterpolationCurve3dOptions(fit_points=points, is_natural_tangents=True)
        )
        _, _, d2_start = curve.fraction_to_point_and_2_derivatives(0.0)
        _, _, d2_end = curve.fraction_to_point_and_2_derivatives(1.0)
        np.testing.assert_allclose(d2_start, 0.0, atol=1e-8)
        np.testing.assert_allclose(d2_end, 0.0, atol=1e-8)
        for u, point in zip(_chord_params(points), points):
            np.testing.assert_allclose(curve.fraction_to_point(u), point, atol=1e-10)

    def test_natural_with_one_tangent(self):
        """测试一端给定切向、另一端自然"""
        points = wavy_polyline_points()
        curve = create_through_points_c2_cubic(
            InterpolationCurve3dOptions(fit_points=points, is_natural_tangents=True, start_tangent=[1.0, 1.0, 0.0])
        )
        _, d1_start = curve.fraction_to_point_and_derivative(0.0)
        np.testing.assert_allclose(_unit(d1_start), _unit([1.0, 1.0, 0.0]), atol=1e-10)
        _, _, d2_end = curve.fraction_to_point_and_2_derivatives(1.0)
        np.testing.assert_allclose(d2_end, 0.0, atol=1e-8)

    def test_two_points_is_line(self):
        """测试两点拟合为直线"""
        curve = create_through_points_c2_cubic(
            InterpolationCurve3dOptions(fit_points=[[0.0, 0.0, 0.0], [3.0, 0.0, 0.0]])
        )
        assert curve.num_poles == 4
        for f in [0.0, 0.25, 0.5, 1.0]:
            np.testing.assert_allclose(curve.fraction_to_point(f), [3.0 * f, 0.0, 0.0], atol=1e-12)

    def test_three_points(self):
        """测试三点拟合经过中间点"""
        points = np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 0.0], [3.0, 1.0, 0.0]])
        curve = create_through_points_c2_cubic(InterpolationCurve3dOptions(fit_points=points))
        params = _chord_params(points)
        np.testing.assert_allclose(curve.fraction_to_point(params[1]), points[1], atol=1e-10)
        np.testing.assert_allclose(curve.end_point(), points[2], atol=1e-12)

    def test_duplicate_points_removed(self):
        """测试连续重复点被忽略"""
        points = open_polyline_points()
        with_duplicates = np.vstack([points[:2], points[1:2], points[2:], points[-1:]])
        reference = create_through_points_c2_cubic(InterpolationCurve3dOptions(fit_points=points))
        curve = create_through_points_c2_cubic(InterpolationCurve3dOptions(fit_points=with_duplicates))
        assert curve.is_almost_equal(reference)

    def test_colinear_tangents_at_physical_closure(self):
        """测试首尾重合的开曲线两端切向共线"""
        ring = closed_ring_points()
        points = np.vstack([ring, ring[:1]])
        curve = create_through_points_c2_cubic(
            InterpolationCurve3dOptions(fit_points=points, is_colinear_tangents=True)
        )
        assert curve.is_closable == BSplineWrapMode.NONE
        np.testing.assert_allclose(curve.start_point(), curve.end_point(), atol=1e-12)
        _, d_start = curve.fraction_to_point_and_derivative(0.0)
        _, d_end = curve.fraction_to_point_and_derivative(1.0)
        np.testing.assert_allclose(_unit(d_start), _unit(d_end), atol=1e-10)

    def test_rejects_degenerate_input(self):
        """测试无法拟合的输入"""
        assert create_through_points_c2_cubic(InterpolationCurve3dOptions(fit_points=[[1.0, 2.0, 3.0]])) is None
        assert create_through_points_c2_cubic(
            InterpolationCurve3dOptions(fit_points=[[1.0, 2.0, 3.0], [1.0, 2.0, 3.0]])
        ) is None
        assert create_through_points_c2_cubic(InterpolationCurve3dOptions()) is None


class TestC2CubicClosed:
    """闭曲线 C2 三次插值测试"""

    def test_closed_uniform_parameters(self):
        """测试闭合曲线在均匀参数处经过拟合点"""
        ring = closed_ring_points()
        curve = create_through_points_c2_cubic(InterpolationCurve3dOptions(fit_points=ring, closed=True))
        assert curve is not None
        assert curve.num_poles == len(ring) + 3
        assert curve.is_closable == BSplineWrapMode.OPEN_BY_ADDING_CONTROL_POINTS
        n = len(ring)
        for i in range(n + 1):
            np.testing.assert_allclose(curve.fraction_to_point(i / n), ring[i % n], atol=1e-10)

    def test_closed_is_periodic_c2(self):
        """测试闭合处一阶、二阶导数连续"""
        ring = closed_ring_points()
        curve = create_through_points_c2_cubic(InterpolationCurve3dOptions(fit_points=ring, closed=True))
        _, d1_start, d2_start = curve.fraction_to_point_and_2_derivatives(0.0)
        _, d1_end, d2_end = curve.fraction_to_point_and_2_derivatives(1.0)
        np.testing.assert_allclose(d1_start, d1_end, atol=1e-9)
        np.testing.assert_allclose(d2_start, d2_end, atol=1e-7)

    def test_closed_chord_length_parameters(self):
        """测试闭合曲线使用弦长参数"""
        ring = closed_ring_points()
        closed_points = np.vstack([ring, ring[:1]])
        curve = create_through_points_c2_cubic(
            InterpolationCurve3dOptions(fit_points=closed_points, closed=True, is_chord_len_knots=True)
        )
        assert curve.num_poles == len(ring) + 3
        for u, point in zip(_chord_params(closed_points), closed_points):
            np.testing.assert_allclose(curve.fraction_to_point(u), point, atol=1e-10)

    def test_too_few_points_falls_back_to_open(self):
        """测试点数不足时按开曲线拟合"""
        triangle = np.array([[0.0, 0.0, 0.0], [2.0, 0.0, 0.0], [1.0, 2.0, 0.0]])
        curve = create_through_points_c2_cubic(InterpolationCurve3dOptions(fit_points=triangle, closed=True))
        assert curve is not None
        assert curve.is_closable == BSplineWrapMode.NONE
        np.testing.assert_allclose(curve.end_point(), triangle[0], atol=1e-12)


class TestValidateOptions:
    """选项规范化测试"""

    def test_normalizes_parameters(self):
        """测试给定参数归一化"""
        options = InterpolationCurve3dOptions(fit_points=open_polyline_points()[:3], knots=[0.0, 2.0, 4.0])
        assert validate_options(options)
        np.testing.assert_allclose(options.knots, [0.0, 0.5, 1.0])

    def test_converts_full_knot_vector(self):
        """测试完整三次节点向量换算为拟合参数"""
        options = InterpolationCurve3dOptions(
            fit_points=open_polyline_points(), knots=[0, 0, 0, 0.2, 0.5, 0.7, 1, 1, 1]
        )
        assert validate_options(options)
        np.testing.assert_allclose(options.knots, [0.0, 0.2, 0.5, 0.7, 1.0])

    def test_closed_appends_closure_point(self):
        """测试闭合时补闭合点且参数仍在 [0, 1]"""
        ring = closed_ring_points()
        options = InterpolationCurve3dOptions(fit_points=ring, closed=True, knots=[0, 1, 2, 3, 4, 5])
        assert validate_options(options)
        assert len(options.fit_points) == len(ring) + 1
        np.testing.assert_allclose(options.fit_points[-1], ring[0])
        np.testing.assert_allclose(options.knots, np.arange(7) / 6.0)

    def test_closure_point_with_two_points(self):
        """测试两点加闭合点退化为两点开曲线"""
        options = InterpolationCurve3dOptions(
            fit_points=[[0, 0, 0], [1, 0, 0], [0, 0, 0]], closed=True
        )
        assert validate_options(options)
        assert len(options.fit_points) == 2
        assert not options.closed

    def test_tangents_normalized(self):
        """测试切向单位化，零向量视为未给出"""
        options = InterpolationCurve3dOptions(
            fit_points=open_polyline_points(), start_tangent=[0, 0, 5], end_tangent=[0, 0, 0]
        )
        assert validate_options(options)
        np.testing.assert_allclose(options.start_tangent, [0.0, 0.0, 1.0])
        assert options.end_tangent is None
        assert options.order == 4


class TestKnotConversion:
    """节点向量换算测试"""

    def test_open_conversion(self):
        """测试开曲线参数与节点互换"""
        params = [0.0, 0.5, 1.0]
        assert convert_fit_params_to_cubic_knot_vector(params) == [0.0, 0.0, 0.0, 0.5, 1.0, 1.0, 1.0]
        legacy = convert_fit_params_to_cubic_knot_vector(params, legacy=True)
        assert legacy == [0.0, 0.0, 0.0, 0.0, 0.5, 1.0, 1.0, 1.0, 1.0]
        assert convert_cubic_knot_vector_to_fit_params(legacy, 3) == params
        assert convert_cubic_knot_vector_to_fit_params(params, 3) == params
        assert convert_cubic_knot_vector_to_fit_params([0, 0.5, 1, 1], 3) is None
        assert convert_cubic_knot_vector_to_fit_params(None, 3) is None

    def test_closed_conversion(self):
        """测试闭曲线按周期补节点"""
        knots = convert_fit_params_to_cubic_knot_vector([0.0, 0.25, 0.5, 0.75, 1.0], closed=True)
        np.testing.assert_allclose(knots, [-0.5, -0.25, 0.0, 0.25, 0.5, 0.75, 1.0, 1.25, 1.5])

    def test_fit_parameters(self):
        """测试弦长与均匀参数"""
        points = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [4.0, 0.0, 0.0]])
        np.testing.assert_allclose(construct_fit_parameters_from_points(points), [0.0, 0.25, 1.0])
        np.testing.assert_allclose(construct_fit_parameters_from_points(points, closed=True), [0.0, 0.5, 1.0])
        np.testing.assert_allclose(
            construct_fit_parameters_from_points(points, is_chord_length=True, closed=True), [0.0, 0.25, 1.0]
        )

    def test_zero_length_falls_back_to_uniform(self):
        """测试总弦长为零时使用均匀参数"""
        points = np.zeros((4, 3))
        np.testing.assert_allclose(construct_fit_parameters_from_points(points), [0.0, 1.0 / 3.0, 2.0 / 3.0, 1.0])

    def test_json_knots(self):
        """测试 JSON 记录改写为旧格式节点"""
        props = {"fitPoints": [[0, 0, 0], [1, 0, 0], [4, 0, 0]]}
        convert_to_json_knots(props)
        np.testing.assert_allclose(props["knots"], [0, 0, 0, 0, 0.25, 1, 1, 1, 1])
        props = {"fitPoints": [[0, 0, 0], [1, 0, 0], [4, 0, 0]], "knots": [0.0, 0.5, 1.0]}
        convert_to_json_knots(props)
        np.testing.assert_allclose(props["knots"], [0, 0, 0, 0, 0.5, 1, 1, 1, 1])


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
