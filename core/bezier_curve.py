"""
bezier_curve - Bezier 曲线 (普通与有理)

BezierCurve3d 保存三维极点，BezierCurve3dH 保存齐次极点 (wx, wy, wz, w)。
二者都是 B样条跨度饱和后的载体，同时也可独立使用。

最近点与包围盒都化为 Bernstein 多项式求根:
- 最近点: (C(u) - Q) · C'(u) = 0
- 包围盒: 各坐标分量的导数为零处
"""

import math

import numpy as np

from .bezier1d_nd import Bezier1dNd
from .curve_primitive import CurveLocationDetail, CurvePrimitive, GeometryHandler, StrokeOptions
from .knot_vector import KnotVector
from ..config import DEFAULT_STROKE_ANGLE_RADIANS, DERIVATIVE_EPSILON, UNIT_WEIGHT_TOLERANCE
from ..utils.bezier_polynomials import UnivariateBezier, bernstein_difference, bernstein_product
from ..utils.geometry import (
    Plane3d,
    Range3d,
    conditional_divide_fraction,
    radians_between_vectors,
    transform_points,
    transform_points4d,
)


class BezierCurveBase(CurvePrimitive):
    """普通/有理 Bezier 曲线的公共部分"""

    def __init__(self, block_size: int, data: np.ndarray):
        self._polygon = Bezier1dNd(block_size, data)
        self._work_bezier: UnivariateBezier | None = None

    @property
    def degree(self) -> int:
        return self._polygon.order - 1

    @property
    def order(self) -> int:
        return self._polygon.order

    @property
    def num_poles(self) -> int:
        return self._polygon.order

    @property
    def polygon(self) -> Bezier1dNd:
        return self._polygon

    def get_pole_point3d(self, i: int) -> np.ndarray | None:
        raise NotImplementedError

    def get_pole_point4d(self, i: int) -> np.ndarray | None:
        raise NotImplementedError

    def pole_points3d(self) -> np.ndarray:
        """(order, 3) 笛卡尔极点"""
        return np.array([self.get_pole_point3d(i) for i in range(self.order)])

    def _allocate_work_bezier(self, order: int) -> UnivariateBezier:
        """按阶数复用同一个工作多项式"""
        if self._work_bezier is None or self._work_bezier.order != order:
            self._work_bezier = UnivariateBezier(order)
        else:
            self._work_bezier.zero()
        return self._work_bezier

    def reverse_in_place(self):
        self._polygon.reverse_in_place()

    def saturate_in_place(self, knot_vector: KnotVector, span_index: int) -> bool:
        """饱和后把区间设为该跨度在父曲线中的分数区间"""
        ok = self._polygon.saturate_in_place(knot_vector, span_index)
        if ok:
            self.set_interval(
                knot_vector.span_fraction_to_fraction(span_index, 0.0),
                knot_vector.span_fraction_to_fraction(span_index, 1.0),
            )
        return ok

    def set_interval(self, a: float, b: float):
        self._polygon.set_interval(a, b)

    def fraction_to_parent_fraction(self, fraction: float) -> float:
        return self._polygon.fraction_to_parent_fraction(fraction)

    def start_point(self) -> np.ndarray:
        return self.get_pole_point3d(0)

    def end_point(self) -> np.ndarray:
        return self.get_pole_point3d(self.order - 1)

    def is_in_plane(self, plane: Plane3d) -> bool:
        return all(plane.is_point_in_plane(p) for p in self.pole_points3d())

    def polygon_length(self) -> float:
        points = self.pole_points3d()
        if len(points) < 2:
            return 0.0
        return float(np.sum(np.linalg.norm(np.diff(points, axis=0), axis=1)))

    def quick_length(self) -> float:
        return self.polygon_length()

    def fraction_to_point_and_2_derivatives(self, fraction: float) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """二阶导数由一阶导数的中心差分得到"""
        epsilon = DERIVATIVE_EPSILON
        a = 1.0 / (2.0 * epsilon)
        point, d1 = self.fraction_to_point_and_derivative(fraction)
        _, d1_minus = self.fraction_to_point_and_derivative(fraction - epsilon)
        _, d1_plus = self.fraction_to_point_and_derivative(fraction + epsilon)
        return point, d1, a * (d1_plus - d1_minus)

    def compute_stroke_count_for_options(self, options: StrokeOptions | None = None) -> int:
        """
        根据控制多边形估计离散步数。

        边长总和/最大值与相邻边转角总和/最大值分别给出长度和角度估计，
        再依次套用 max_edge_length、angle_tol、chord_tol。
        """
        points = self.pole_points3d()
        if len(points) < 2:
            return 1
        edges = np.diff(points, axis=0)
        lengths = np.linalg.norm(edges, axis=1)
        sum_length = float(lengths.sum())
        max_length = float(lengths.max())
        sum_radians = 0.0
        max_radians = 0.0
        for e0, e1 in zip(edges[:-1], edges[1:]):
            radians = radians_between_vectors(e0, e1)
            sum_radians += radians
            max_radians = max(max_radians, abs(radians))
        length1 = max_length * self.degree
        length2 = math.sqrt(length1 * sum_length)
        radians1 = max_radians * (self.degree - 1)
        if self.degree < 3:
            radians1 *= 3.0
        radians2 = math.sqrt(radians1 * sum_radians)
        num_strokes = StrokeOptions.apply_angle_tol(
            options,
            StrokeOptions.apply_max_edge_length(options, self.degree, length2),
            radians2,
            DEFAULT_STROKE_ANGLE_RADIANS,
        )
        if options is not None:
            num_strokes = options.apply_chord_tol_to_length_and_radians(num_strokes, sum_length, radians1)
        return num_strokes

    def clone_partial_curve(self, fraction_a: float, fraction_b: float) -> "BezierCurveBase":
        partial = self.clone()
        partial._polygon.subdivide_to_interval_in_place(fraction_a, fraction_b)
        return partial

    def _update_detail_at_fraction(self, detail: CurveLocationDetail, fraction: float, space_point: np.ndarray) -> bool:
        xyz = self.fraction_to_point(fraction)
        if detail.update_if_closer(fraction, xyz, float(np.linalg.norm(xyz - space_point))):
            detail.curve = self
            return True
        return False

    def _update_detail_at_roots(self, roots: list[float], detail: CurveLocationDetail, space_point: np.ndarray) -> int:
        return sum(1 for u in roots if self._update_detail_at_fraction(detail, u, space_point))


class BezierCurve3d(BezierCurveBase):
    """非有理三维 Bezier 曲线"""

    def __init__(self, polygon: np.ndarray):
        super().__init__(3, polygon)

    @classmethod
    def create(cls, points) -> "BezierCurve3d | None":
        """从 (N, 2) 或 (N, 3) 点列构造，二维点补 z = 0"""
        points = np.asarray(points, dtype=float)
        if points.ndim != 2 or len(points) < 1 or points.shape[1] not in (2, 3):
            return None
        if points.shape[1] == 2:
            points = np.column_stack([points, np.zeros(len(points))])
        return cls(points)

    @classmethod
    def create_order(cls, order: int) -> "BezierCurve3d":
        return cls(np.zeros((order, 3)))

    def load_span_poles(self, data: np.ndarray, span_index: int):
        self._polygon.load_span_poles(data, span_index)

    def get_pole_point3d(self, i: int) -> np.ndarray | None:
        return self._polygon.get_polygon_point(i)

    def get_pole_point4d(self, i: int) -> np.ndarray | None:
        data = self._polygon.get_polygon_point(i)
        if data is None:
            return None
        return np.append(data, 1.0)

    def clone(self) -> "BezierCurve3d":
        result = BezierCurve3d(self._polygon.clone_polygon())
        result._polygon.interval = self._polygon.interval
        return result

    def fraction_to_point(self, fraction: float) -> np.ndarray:
        return self._polygon.evaluate(fraction)

    def fraction_to_point_and_derivative(self, fraction: float) -> tuple[np.ndarray, np.ndarray]:
        return self._polygon.evaluate(fraction), self._polygon.evaluate_derivative(fraction)

    def is_almost_equal(self, other) -> bool:
        if isinstance(other, BezierCurve3d):
            return self._polygon.is_almost_equal(other._polygon)
        return False

    def dispatch_to_handler(self, handler: GeometryHandler):
        return handler.handle_bezier_curve3d(self)

    def try_transform_in_place(self, transform: np.ndarray) -> bool:
        self._polygon.packed_data[:] = transform_points(transform, self._polygon.packed_data)
        return True

    def extend_range(self, range_to_extend: Range3d, transform: np.ndarray | None = None):
        """端点加上各坐标分量导数零点处的点"""
        data = self._polygon.packed_data
        if transform is not None:
            data = transform_points(transform, data)
        range_to_extend.extend_point(data[0])
        range_to_extend.extend_point(data[-1])
        for axis in range(3):
            bezier = self._allocate_work_bezier(self.order - 1)
            bezier.coffs[:] = bernstein_difference(data[:, axis])
            for u in bezier.roots():
                range_to_extend.extend_point(self.fraction_to_point(u), transform)

    def update_closest_point_by_true_perpendicular(
        self,
        space_point: np.ndarray,
        detail: CurveLocationDetail,
        test_at0: bool = False,
        test_at1: bool = False,
    ) -> bool:
        """Σ (X_i - Q_i) * ΔX_i = 0 的根即垂足"""
        space_point = np.asarray(space_point, dtype=float)
        data = self._polygon.packed_data
        bezier = self._allocate_work_bezier(2 * self.order - 2)
        for axis in range(3):
            bezier.accumulate_product(data[:, axis] - space_point[axis], bernstein_difference(data[:, axis]))
        num_updates = self._update_detail_at_roots(bezier.roots(), detail, space_point)
        if test_at0 and self._update_detail_at_fraction(detail, 0.0, space_point):
            num_updates += 1
        if test_at1 and self._update_detail_at_fraction(detail, 1.0, space_point):
            num_updates += 1
        return num_updates > 0


class BezierCurve3dH(BezierCurveBase):
    """
    有理 Bezier 曲线，极点为齐次坐标 (wx, wy, wz, w)。

    笛卡尔点 = (wx, wy, wz) / w。
    """

    def __init__(self, polygon: np.ndarray):
        super().__init__(4, polygon)

    @classmethod
    def create(cls, points) -> "BezierCurve3dH | None":
        """(N, 2|3) 点列权重取 1；(N, 4) 按齐次点原样使用"""
        points = np.asarray(points, dtype=float)
        if points.ndim != 2 or len(points) < 1 or points.shape[1] not in (2, 3, 4):
            return None
        if points.shape[1] == 4:
            return cls(points)
        if points.shape[1] == 2:
            points = np.column_stack([points, np.zeros(len(points))])
        return cls(np.column_stack([points, np.ones(len(points))]))

    @classmethod
    def create_order(cls, order: int) -> "BezierCurve3dH":
        return cls(np.zeros((order, 4)))

    def load_span3d_poles_with_weight(self, data: np.ndarray, span_index: int, weight: float):
        self._polygon.load_span_poles_with_weight(data, span_index, weight)

    def load_span4d_poles(self, data: np.ndarray, span_index: int):
        self._polygon.load_span_poles(data, span_index)

    def get_pole_point4d(self, i: int) -> np.ndarray | None:
        return self._polygon.get_polygon_point(i)

    def get_pole_point3d(self, i: int) -> np.ndarray | None:
        data = self._polygon.get_polygon_point(i)
        if data is None:
            return None
        return _deweight(data)

    def is_unit_weight(self, tolerance: float = UNIT_WEIGHT_TOLERANCE) -> bool:
        weights = self._polygon.packed_data[:, 3]
        return bool(np.all(np.abs(weights - 1.0) <= tolerance))

    def clone(self) -> "BezierCurve3dH":
        result = BezierCurve3dH(self._polygon.clone_polygon())
        result._polygon.interval = self._polygon.interval
        return result

    def fraction_to_point4d(self, fraction: float) -> np.ndarray:
        return self._polygon.evaluate(fraction)

    def fraction_to_point(self, fraction: float) -> np.ndarray:
        return _deweight(self._polygon.evaluate(fraction))

    def fraction_to_point_and_derivative(self, fraction: float) -> tuple[np.ndarray, np.ndarray]:
        return _weighted_derivative(self._polygon.evaluate(fraction), self._polygon.evaluate_derivative(fraction))

    def is_almost_equal(self, other) -> bool:
        if isinstance(other, BezierCurve3dH):
            return self._polygon.is_almost_equal(other._polygon)
        return False

    def dispatch_to_handler(self, handler: GeometryHandler):
        return handler.handle_bezier_curve3dh(self)

    def try_transform_in_place(self, transform: np.ndarray) -> bool:
        self._polygon.packed_data[:] = transform_points4d(transform, self._polygon.packed_data)
        return True

    def update_closest_point_by_true_perpendicular(
        self,
        space_point: np.ndarray,
        detail: CurveLocationDetail,
        test_at0: bool = False,
        test_at1: bool = False,
    ) -> bool:
        """
        垂足条件 (C - Q) · C' = 0 在齐次形式下的多项式根。

        单位权重: Σ (X_i - Q_i) ΔX_i，阶数 2*order-2。
        一般权重: Σ (w Q_i - X_i)(w ΔX_i - X_i Δw)，阶数 3*order-3。

        Args:
            space_point: 查询点 (3,)
            detail: 输入当前最优结果，更近时原地更新
            test_at0: 是否额外检查 fraction = 0
            test_at1: 是否额外检查 fraction = 1

        Returns:
            detail 是否被更新
        """
        space_point = np.asarray(space_point, dtype=float)
        data = self._polygon.packed_data
        order = self.order
        w = data[:, 3]
        delta_w = bernstein_difference(w)
        if self.is_unit_weight():
            bezier = self._allocate_work_bezier(2 * order - 2)
            for axis in range(3):
                bezier.accumulate_product(data[:, axis] - space_point[axis], bernstein_difference(data[:, axis]))
        else:
            bezier = self._allocate_work_bezier(3 * order - 3)
            for axis in range(3):
                x = data[:, axis]
                work_a = space_point[axis] * w - x
                work_b = bernstein_product(w, bernstein_difference(x)) - bernstein_product(x, delta_w)
                bezier.accumulate_product(work_a, work_b)
        num_updates = self._update_detail_at_roots(bezier.roots(), detail, space_point)
        if test_at0 and self._update_detail_at_fraction(detail, 0.0, space_point):
            num_updates += 1
        if test_at1 and self._update_detail_at_fraction(detail, 1.0, space_point):
            num_updates += 1
        return num_updates > 0

    def extend_range(self, range_to_extend: Range3d, transform: np.ndarray | None = None):
        """分量 X_i / w 的导数分子 X_i Δw - w ΔX_i 的零点"""
        data = self._polygon.packed_data
        if transform is not None:
            data = transform_points4d(transform, data)
        range_to_extend.extend_point(_deweight(data[0]))
        range_to_extend.extend_point(_deweight(data[-1]))
        order = self.order
        w = data[:, 3]
        delta_w = bernstein_difference(w)
        for axis in range(3):
            x = data[:, axis]
            bezier = self._allocate_work_bezier(2 * order - 2)
            bezier.accumulate_product(x, delta_w)
            bezier.accumulate_product(w, bernstein_difference(x), -1.0)
            for u in bezier.roots():
                range_to_extend.extend_point(self.fraction_to_point(u), transform)


def _deweight(xyzw: np.ndarray) -> np.ndarray:
    """齐次点转笛卡尔点；权重近零时按 1 处理"""
    w = xyzw[3]
    scale = conditional_divide_fraction(1.0, w)
    if scale is None:
        return np.array(xyzw[:3], dtype=float)
    return xyzw[:3] * scale


def _weighted_derivative(xyzw: np.ndarray, d_xyzw: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """商法则: C = X / w, C' = (X' w - X w') / w²"""
    w = xyzw[3]
    dw = d_xyzw[3]
    point = _deweight(xyzw)
    if conditional_divide_fraction(1.0, w) is None:
        return point, np.array(d_xyzw[:3], dtype=float)
    derivative = (d_xyzw[:3] * w - xyzw[:3] * dw) / (w * w)
    return point, derivative
