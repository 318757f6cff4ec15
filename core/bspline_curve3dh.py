"""
bspline_curve3dh - 有理 (齐次) B样条曲线

极点为 (wx, wy, wz, w)。求值先在齐次空间求和，再除以权重；
导数用商法则。权重为零的极点在去权重时按 w = 1 处理。
"""

import logging

import numpy as np

from .bezier_curve import BezierCurve3dH, BezierCurveBase
from .bspline1d_nd import BSpline1dNd
from .bspline_curve import BSplineCurve3dBase, infer_skip_first_and_last
from .curve_primitive import GeometryHandler
from .knot_vector import BSplineWrapMode, KnotVector
from ..utils.geometry import conditional_divide_fraction, is_same_point, transform_points4d

logger = logging.getLogger(__name__)


def assemble_packed_xyzw(control_points) -> np.ndarray | None:
    """
    把多种输入整理为 (N, 4) 齐次极点。

    支持:
    - (N, 4) 齐次点，原样使用
    - (N, 3) 笛卡尔点，权重取 1
    - {"xyz": (N, 3), "weights": (N,)}，xyz 为笛卡尔坐标，乘以权重后打包
    """
    if isinstance(control_points, dict):
        xyz = np.asarray(control_points.get("xyz"), dtype=float).reshape(-1, 3)
        weights = np.asarray(control_points.get("weights"), dtype=float).ravel()
        if len(xyz) != len(weights):
            return None
        return np.column_stack([xyz * weights[:, None], weights])
    points = np.asarray(control_points, dtype=float)
    if points.ndim != 2 or len(points) == 0:
        return None
    if points.shape[1] == 4:
        return points.copy()
    if points.shape[1] == 3:
        return np.column_stack([points, np.ones(len(points))])
    return None


def _deweight(xyzw: np.ndarray) -> np.ndarray:
    scale = conditional_divide_fraction(1.0, xyzw[3])
    if scale is None:
        return np.array(xyzw[:3], dtype=float)
    return xyzw[:3] * scale


class BSplineCurve3dH(BSplineCurve3dBase):
    """三维有理 B样条曲线"""

    @classmethod
    def create_uniform_knots(cls, control_points, order: int) -> "BSplineCurve3dH | None":
        poles = assemble_packed_xyzw(control_points)
        if poles is None or order < 2 or len(poles) < order:
            logger.debug("create_uniform_knots rejected: order=%s", order)
            return None
        knots = KnotVector.create_uniform_clamped(len(poles), order - 1, 0.0, 1.0)
        return cls(BSpline1dNd(poles, knots))

    @classmethod
    def create(cls, control_points, knots, order: int) -> "BSplineCurve3dH | None":
        """
        由齐次极点与显式节点构造。

        Args:
            control_points: 见 assemble_packed_xyzw
            knots: 节点，长度 N + order (经典) 或 N + order - 2
            order: 阶数 (>= 2)
        """
        if order < 2:
            return None
        poles = assemble_packed_xyzw(control_points)
        if poles is None or len(poles) < order:
            logger.debug("create rejected: unusable control points for order %s", order)
            return None
        knot_array = np.asarray(knots, dtype=float)
        skip = infer_skip_first_and_last(len(poles), order, len(knot_array))
        if skip is None:
            logger.debug("create rejected: %s knots for %s poles of order %s", len(knot_array), len(poles), order)
            return None
        knot_vector = KnotVector.create(knot_array, order - 1, skip)
        if knot_vector.knot_length01 <= 0.0:
            return None
        return cls(BSpline1dNd(poles, knot_vector))

    @classmethod
    def from_json(cls, data: dict) -> "BSplineCurve3dH | None":
        curve = cls.create(data["poles"], data["knots"], data["order"])
        if curve is not None and data.get("closed"):
            curve.set_wrappable(BSplineWrapMode.OPEN_BY_ADDING_CONTROL_POINTS)
        return curve

    def clone(self) -> "BSplineCurve3dH":
        return BSplineCurve3dH(self._bcurve.clone())

    def get_pole_point4d(self, pole_index: int) -> np.ndarray | None:
        if 0 <= pole_index < self.num_poles:
            return self._bcurve.packed_data[pole_index].copy()
        return None

    def get_pole_point3d(self, pole_index: int) -> np.ndarray | None:
        if 0 <= pole_index < self.num_poles:
            return _deweight(self._bcurve.packed_data[pole_index])
        return None

    def copy_xyz_array(self, deweighted: bool) -> np.ndarray:
        """(N, 3) 坐标；deweighted 时除以权重 (w == 0 按 1 处理)"""
        data = self._bcurve.packed_data
        xyz = data[:, :3].copy()
        if deweighted:
            w = data[:, 3].copy()
            w[w == 0.0] = 1.0
            xyz /= w[:, None]
        return xyz

    def copy_weights(self) -> np.ndarray:
        return self._bcurve.packed_data[:, 3].copy()

    def span_fraction_to_knot(self, span: int, local_fraction: float) -> float:
        return self._bcurve.span_fraction_to_knot(span, local_fraction)

    # ------------------------------------------------------------------
    # 求值 (商法则)
    # ------------------------------------------------------------------

    @staticmethod
    def _point_and_derivative(xyzw: np.ndarray, d_xyzw: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        point = _deweight(xyzw)
        inverse_w = conditional_divide_fraction(1.0, xyzw[3])
        if inverse_w is None:
            return point, np.zeros(3)
        derivative = (d_xyzw[:3] - point * d_xyzw[3]) * inverse_w
        return point, derivative

    def fraction_to_point4d(self, fraction: float) -> np.ndarray:
        self._bcurve.evaluate_buffers_at_knot(self._bcurve.knots.fraction_to_knot(fraction))
        return self._bcurve.pole_buffer.copy()

    def evaluate_point_in_span(self, span_index: int, span_fraction: float) -> np.ndarray:
        return _deweight(self._bcurve.evaluate_buffers_in_span(span_index, span_fraction))

    def evaluate_point_and_derivative_in_span(self, span_index: int, span_fraction: float) -> tuple[np.ndarray, np.ndarray]:
        xyzw, d_xyzw = self._bcurve.evaluate_buffers_in_span1(span_index, span_fraction)
        return self._point_and_derivative(xyzw, d_xyzw)

    def knot_to_point(self, knot: float) -> np.ndarray:
        self._bcurve.evaluate_buffers_at_knot(knot)
        return _deweight(self._bcurve.pole_buffer)

    def knot_to_point_and_derivative(self, knot: float) -> tuple[np.ndarray, np.ndarray]:
        self._bcurve.evaluate_buffers_at_knot(knot, 1)
        return self._point_and_derivative(self._bcurve.pole_buffer, self._bcurve.pole_buffer1)

    def knot_to_point_and_2_derivatives(self, knot: float) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """C'' = (X'' - 2 w' C' - w'' C) / w"""
        self._bcurve.evaluate_buffers_at_knot(knot, 2)
        xyzw = self._bcurve.pole_buffer
        d_xyzw = self._bcurve.pole_buffer1
        dd_xyzw = self._bcurve.pole_buffer2
        point, d1 = self._point_and_derivative(xyzw, d_xyzw)
        inverse_w = conditional_divide_fraction(1.0, xyzw[3])
        if inverse_w is None:
            return point, d1, np.zeros(3)
        d2 = (dd_xyzw[:3] - 2.0 * d_xyzw[3] * d1 - dd_xyzw[3] * point) * inverse_w
        return point, d1, d2

    # ------------------------------------------------------------------
    # Bezier 段
    # ------------------------------------------------------------------

    def _initialize_work_bezier(self) -> BezierCurveBase:
        if self._work_bezier is None or self._work_bezier.order != self.order:
            self._work_bezier = BezierCurve3dH.create_order(self.order)
        return self._work_bezier

    def get_saturated_bezier_span3dh(self, span_index: int, result: BezierCurveBase | None = None) -> BezierCurve3dH | None:
        if span_index < 0 or span_index >= self.num_span:
            return None
        if not isinstance(result, BezierCurve3dH) or result.order != self.order:
            result = BezierCurve3dH.create_order(self.order)
        result.load_span4d_poles(self._bcurve.packed_data, span_index)
        if result.saturate_in_place(self._bcurve.knots, span_index):
            return result
        return None

    def get_saturated_bezier_span3d_or_3dh(
        self, span_index: int, prefer3dh: bool, result: BezierCurveBase | None = None
    ) -> BezierCurveBase | None:
        return self.get_saturated_bezier_span3dh(span_index, result)

    # ------------------------------------------------------------------

    def is_almost_equal(self, other) -> bool:
        if isinstance(other, BSplineCurve3dH):
            return self._bcurve.knots.is_almost_equal(other._bcurve.knots) and is_same_point(
                self._bcurve.packed_data, other._bcurve.packed_data
            )
        return False

    def try_transform_in_place(self, transform: np.ndarray) -> bool:
        self._bcurve.packed_data = transform_points4d(transform, self._bcurve.packed_data)
        return True

    def dispatch_to_handler(self, handler: GeometryHandler):
        return handler.handle_bspline_curve3dh(self)

    def __repr__(self):
        return f"BSplineCurve3dH(order={self.order}, num_poles={self.num_poles})"
