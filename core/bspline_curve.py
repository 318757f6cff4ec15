"""
bspline_curve - B样条曲线

BSplineCurve3dBase 承载普通/有理两种极点表示的公共算法:
- 分数求值 (经节点空间, 导数按有效区间长度缩放)
- 逐跨度饱和为 Bezier 段, 用于离散化、最近点、长度
- 部分曲线提取 (节点插入 + 切片)、反转、闭合检测、平面求交

BSplineCurve3d 为三维非有理曲线 (极点长度 3)。
"""

import logging
from abc import abstractmethod

import numpy as np

from .bezier1d_nd import Bezier1dNd
from .bezier_curve import BezierCurve3d, BezierCurve3dH, BezierCurveBase
from .bspline1d_nd import BSpline1dNd
from .curve_primitive import (
    CurveLocationDetail,
    CurvePrimitive,
    GeometryHandler,
    IStrokeHandler,
    StrokeOptions,
)
from .knot_vector import BSplineWrapMode, KnotVector
from ..utils.bezier_polynomials import UnivariateBezier
from ..utils.geometry import (
    Plane3d,
    Range3d,
    is_almost_equal_number,
    is_same_point,
    transform_points,
)

logger = logging.getLogger(__name__)


def infer_skip_first_and_last(num_poles: int, order: int, num_knots: int) -> bool | None:
    """
    由节点数推断节点约定。

    num_poles + order == num_knots: 经典约定 (需去掉首尾)；
    num_poles + order == num_knots + 2: 已是去掉首尾的约定；
    其他情况返回 None。
    """
    if num_poles + order == num_knots:
        return True
    if num_poles + order == num_knots + 2:
        return False
    return None


class BSplineCurve3dBase(CurvePrimitive):
    """B样条曲线公共基类，极点保存在 BSpline1dNd 中"""

    def __init__(self, bcurve: BSpline1dNd):
        self._bcurve = bcurve
        self._work_bezier: BezierCurveBase | None = None

    @property
    def degree(self) -> int:
        return self._bcurve.degree

    @property
    def order(self) -> int:
        return self._bcurve.order

    @property
    def num_span(self) -> int:
        return self._bcurve.num_span

    @property
    def num_poles(self) -> int:
        return self._bcurve.num_poles

    @property
    def knots(self) -> KnotVector:
        return self._bcurve.knots

    @property
    def packed_data(self) -> np.ndarray:
        return self._bcurve.packed_data

    def copy_knots(self, include_extra_end_knot: bool) -> list[float]:
        return self._bcurve.knots.copy_knots(include_extra_end_knot)

    def set_wrappable(self, value: BSplineWrapMode):
        self._bcurve.knots.wrappable = BSplineWrapMode(value)

    def copy_points(self) -> list[list[float]]:
        return self._bcurve.packed_data.tolist()

    # ------------------------------------------------------------------
    # 求值
    # ------------------------------------------------------------------

    @abstractmethod
    def knot_to_point(self, knot: float) -> np.ndarray: ...

    @abstractmethod
    def knot_to_point_and_derivative(self, knot: float) -> tuple[np.ndarray, np.ndarray]: ...

    @abstractmethod
    def knot_to_point_and_2_derivatives(self, knot: float) -> tuple[np.ndarray, np.ndarray, np.ndarray]: ...

    @abstractmethod
    def evaluate_point_in_span(self, span_index: int, span_fraction: float) -> np.ndarray: ...

    @abstractmethod
    def evaluate_point_and_derivative_in_span(
        self, span_index: int, span_fraction: float
    ) -> tuple[np.ndarray, np.ndarray]: ...

    @abstractmethod
    def get_pole_point3d(self, pole_index: int) -> np.ndarray | None: ...

    @abstractmethod
    def get_pole_point4d(self, pole_index: int) -> np.ndarray | None: ...

    @abstractmethod
    def get_saturated_bezier_span3d_or_3dh(
        self, span_index: int, prefer3dh: bool, result: BezierCurveBase | None = None
    ) -> BezierCurveBase | None: ...

    def fraction_to_point(self, fraction: float) -> np.ndarray:
        return self.knot_to_point(self._bcurve.knots.fraction_to_knot(fraction))

    def fraction_to_point_and_derivative(self, fraction: float) -> tuple[np.ndarray, np.ndarray]:
        """导数对全局分数求导，即节点导数乘以有效区间长度"""
        knots = self._bcurve.knots
        point, derivative = self.knot_to_point_and_derivative(knots.fraction_to_knot(fraction))
        return point, derivative * knots.knot_length01

    def fraction_to_point_and_2_derivatives(self, fraction: float) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        knots = self._bcurve.knots
        point, d1, d2 = self.knot_to_point_and_2_derivatives(knots.fraction_to_knot(fraction))
        a = knots.knot_length01
        return point, d1 * a, d2 * (a * a)

    def start_point(self) -> np.ndarray:
        return self.evaluate_point_in_span(0, 0.0)

    def end_point(self) -> np.ndarray:
        return self.evaluate_point_in_span(self.num_span - 1, 1.0)

    def pole_points3d(self) -> np.ndarray:
        return np.array([self.get_pole_point3d(i) for i in range(self.num_poles)])

    # ------------------------------------------------------------------
    # Bezier 分解
    # ------------------------------------------------------------------

    def collect_bezier_spans(self, prefer3dh: bool) -> list[BezierCurveBase]:
        """每个非零长度跨度一个独立的 Bezier 段"""
        result = []
        for i in range(self.num_span):
            if self._bcurve.knots.is_index_of_real_span(i):
                span = self.get_saturated_bezier_span3d_or_3dh(i, prefer3dh)
                if span is not None:
                    result.append(span)
        return result

    def _initialize_work_bezier(self) -> BezierCurveBase:
        raise NotImplementedError

    def closest_point(self, space_point: np.ndarray, extend: bool = False) -> CurveLocationDetail:
        """
        曲线上距 space_point 最近的点。

        逐跨度在齐次 Bezier 段上求垂足，局部分数映射回全局分数。
        B样条不可外延，extend 参数被忽略。
        """
        space_point = np.asarray(space_point, dtype=float)
        point = self.fraction_to_point(0.0)
        result = CurveLocationDetail(self, 0.0, point, float(np.linalg.norm(point - space_point)))
        span = None
        for i in range(self.num_span):
            if not self._bcurve.knots.is_index_of_real_span(i):
                continue
            span = self.get_saturated_bezier_span3d_or_3dh(i, True, span)
            if span is None:
                continue
            if span.update_closest_point_by_true_perpendicular(space_point, result, False, True):
                result.curve = self
                result.fraction = span.fraction_to_parent_fraction(result.fraction)
        return result

    # ------------------------------------------------------------------
    # 修改 / 复制
    # ------------------------------------------------------------------

    def reverse_in_place(self):
        self._bcurve.reverse_in_place()

    def clone_partial_curve(self, fraction_a: float, fraction_b: float) -> "BSplineCurve3dBase":
        """
        提取 [fraction_a, fraction_b] 部分。

        两端插入重数 degree 的节点后切出对应的极点与节点。
        若两端都无需插入节点，返回未修改的完整副本。
        fraction_a > fraction_b 时结果方向反转。
        """
        clone = self.clone()
        bcurve = clone._bcurve
        knots = bcurve.knots
        degree = clone.degree
        original_num_knots = len(knots.knots)
        knot_a = knots.fraction_to_knot(fraction_a)
        knot_b = knots.fraction_to_knot(fraction_b)
        bcurve.add_knot(knot_a, degree)
        bcurve.add_knot(knot_b, degree)
        if original_num_knots == len(knots.knots):
            return clone
        reverse = knot_a > knot_b
        if reverse:
            knot_a, knot_b = knot_b, knot_a
        i_start_knot = knots.knot_to_left_knot_index(knot_a) - degree + 1
        i_last_knot = knots.knot_to_left_knot_index(knot_b)
        i_last_knot_left_multiple = i_last_knot - knots.get_knot_multiplicity_at_index(i_last_knot) + 1
        if knots.knots[i_last_knot] < knot_b:
            i_last_knot_left_multiple = i_last_knot + 1
        i_end_pole = i_last_knot_left_multiple + 1
        i_end_knot = i_last_knot_left_multiple + degree
        knots.knots = knots.knots[i_start_knot:i_end_knot].copy()
        bcurve.packed_data = bcurve.packed_data[i_start_knot:i_end_pole].copy()
        clone.set_wrappable(BSplineWrapMode.NONE)
        if reverse:
            clone.reverse_in_place()
        return clone

    @property
    def is_closable(self) -> BSplineWrapMode:
        """节点与极点都满足周期条件时返回存储方式，否则 NONE"""
        mode = self._bcurve.knots.wrappable
        if mode == BSplineWrapMode.NONE:
            return BSplineWrapMode.NONE
        if not self._bcurve.knots.test_closable(mode):
            return BSplineWrapMode.NONE
        if not self._bcurve.test_closeable_polygon(mode):
            return BSplineWrapMode.NONE
        return mode

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def append_plane_intersection_points(self, plane: Plane3d, result: list[CurveLocationDetail]) -> int:
        """
        求与平面的交点，追加到 result。

        每个极点的加权高度构成标量 B样条，逐跨度饱和后求根。

        Returns:
            找到的根数 (去重前)
        """
        knots = self._bcurve.knots
        order = self.order
        all_coffs = np.array([plane.weighted_altitude(self.get_pole_point4d(i)) for i in range(self.num_poles)])
        num_found = 0
        previous_fraction = -1000.0
        if not (all_coffs.min() <= 0.0 <= all_coffs.max()):
            return 0
        for span_index in range(self.num_span):
            if not knots.is_index_of_real_span(span_index):
                continue
            coffs = all_coffs[span_index : span_index + order].copy()
            if not (coffs.min() <= 0.0 <= coffs.max()):
                continue
            Bezier1dNd.saturate_1d_in_place(coffs, knots, span_index)
            for span_fraction in UnivariateBezier.create_coffs(coffs).roots():
                num_found += 1
                fraction = knots.span_fraction_to_fraction(span_index, span_fraction)
                if not is_almost_equal_number(fraction, previous_fraction):
                    result.append(CurveLocationDetail(self, fraction, self.fraction_to_point(fraction), 0.0))
                    previous_fraction = fraction
        return num_found

    def is_in_plane(self, plane: Plane3d) -> bool:
        return all(plane.is_point_in_plane(p) for p in self.pole_points3d())

    def quick_length(self) -> float:
        """控制多边形长度"""
        points = self.pole_points3d()
        return float(np.sum(np.linalg.norm(np.diff(points, axis=0), axis=1)))

    def curve_length(self) -> float:
        """逐 Bezier 段积分弧长"""
        return sum(span.curve_length() for span in self.collect_bezier_spans(False))

    def extend_range(self, range_to_extend: Range3d, transform: np.ndarray | None = None):
        """极点凸包包含曲线，直接用极点扩展"""
        range_to_extend.extend_array(self.pole_points3d(), transform)

    # ------------------------------------------------------------------
    # 离散化
    # ------------------------------------------------------------------

    def compute_stroke_count_for_options(self, options: StrokeOptions | None = None) -> int:
        work = self._initialize_work_bezier()
        num_stroke = 0
        for span_index in range(self.num_span):
            bezier = self.get_saturated_bezier_span3d_or_3dh(span_index, False, work)
            if bezier is not None:
                num_stroke += bezier.compute_stroke_count_for_options(options)
        return num_stroke

    def emit_strokable_parts(self, handler: IStrokeHandler, options: StrokeOptions | None = None):
        """
        逐跨度回调。handler 若实现 announce_bezier_curve 则传递 Bezier 段，
        否则传递区间与步数。
        """
        need_beziers = hasattr(handler, "announce_bezier_curve")
        knots = self._bcurve.knots
        work = self._initialize_work_bezier()
        for span_index in range(self.num_span):
            bezier = self.get_saturated_bezier_span3d_or_3dh(span_index, False, work)
            if bezier is None:
                continue
            num_strokes = bezier.compute_stroke_count_for_options(options)
            fraction0 = knots.span_fraction_to_fraction(span_index, 0.0)
            fraction1 = knots.span_fraction_to_fraction(span_index, 1.0)
            if need_beziers:
                handler.announce_bezier_curve(bezier, num_strokes, self, span_index, fraction0, fraction1)
            else:
                handler.announce_interval_for_uniform_step_strokes(self, num_strokes, fraction0, fraction1)

    # ------------------------------------------------------------------
    # 序列化
    # ------------------------------------------------------------------

    def to_json(self) -> dict:
        """{"poles", "knots" (含首尾补充节点), "order", "closed"?}"""
        data = {
            "poles": self.copy_points(),
            "knots": self.copy_knots(True),
            "order": self.order,
        }
        if self.is_closable != BSplineWrapMode.NONE:
            data["closed"] = True
        return data


class BSplineCurve3d(BSplineCurve3dBase):
    """三维非有理 B样条曲线"""

    @classmethod
    def _from_poles_and_knots(cls, poles: np.ndarray, knots: KnotVector) -> "BSplineCurve3d":
        return cls(BSpline1dNd(poles, knots))

    @staticmethod
    def _pole_array(poles) -> np.ndarray | None:
        poles = np.asarray(poles, dtype=float)
        if poles.ndim == 1:
            if len(poles) % 3 != 0:
                return None
            poles = poles.reshape(-1, 3)
        if poles.ndim != 2 or poles.shape[1] != 3:
            return None
        return poles

    @classmethod
    def create_uniform_knots(cls, poles, order: int) -> "BSplineCurve3d | None":
        """均匀夹紧节点"""
        poles = cls._pole_array(poles)
        if poles is None or order < 2 or len(poles) < order:
            logger.debug("create_uniform_knots rejected: order=%s, poles=%s", order, None if poles is None else len(poles))
            return None
        knots = KnotVector.create_uniform_clamped(len(poles), order - 1, 0.0, 1.0)
        return cls._from_poles_and_knots(poles, knots)

    @classmethod
    def create_periodic_uniform_knots(cls, poles, order: int) -> "BSplineCurve3d | None":
        """
        周期 (闭合) 曲线。

        末尾与首点重合的闭合点先被去掉，再在末尾重复前 degree 个极点。
        """
        poles = cls._pole_array(poles)
        if poles is None or order < 2:
            return None
        num_poles = len(poles)
        while num_poles > 1 and is_same_point(poles[0], poles[num_poles - 1]):
            num_poles -= 1
        if num_poles < order:
            logger.debug("create_periodic_uniform_knots rejected: %s distinct poles for order %s", num_poles, order)
            return None
        degree = order - 1
        knots = KnotVector.create_uniform_wrapped(num_poles, degree, 0.0, 1.0)
        knots.wrappable = BSplineWrapMode.OPEN_BY_ADDING_CONTROL_POINTS
        packed = np.concatenate([poles[:num_poles], poles[:degree]])
        return cls._from_poles_and_knots(packed, knots)

    @classmethod
    def create(cls, poles, knots, order: int) -> "BSplineCurve3d | None":
        """
        由极点与显式节点构造。

        Args:
            poles: (N, 3) 或展平的 (3N,) 极点
            knots: 节点，长度 N + order (经典) 或 N + order - 2
            order: 阶数 (>= 2)

        Returns:
            BSplineCurve3d，参数不一致时为 None
        """
        poles = cls._pole_array(poles)
        if poles is None or order < 2 or len(poles) < order:
            logger.debug("create rejected: order=%s", order)
            return None
        knot_array = np.asarray(knots, dtype=float)
        skip = infer_skip_first_and_last(len(poles), order, len(knot_array))
        if skip is None:
            logger.debug("create rejected: %s knots for %s poles of order %s", len(knot_array), len(poles), order)
            return None
        knot_vector = KnotVector.create(knot_array, order - 1, skip)
        if knot_vector.knot_length01 <= 0.0:
            logger.debug("create rejected: empty knot range")
            return None
        return cls._from_poles_and_knots(poles, knot_vector)

    @classmethod
    def from_json(cls, data: dict) -> "BSplineCurve3d | None":
        curve = cls.create(data["poles"], data["knots"], data["order"])
        if curve is not None and data.get("closed"):
            curve.set_wrappable(BSplineWrapMode.OPEN_BY_ADDING_CONTROL_POINTS)
        return curve

    def clone(self) -> "BSplineCurve3d":
        return BSplineCurve3d(self._bcurve.clone())

    def get_pole_point3d(self, pole_index: int) -> np.ndarray | None:
        if 0 <= pole_index < self.num_poles:
            return self._bcurve.packed_data[pole_index].copy()
        return None

    def get_pole_point4d(self, pole_index: int) -> np.ndarray | None:
        if 0 <= pole_index < self.num_poles:
            return np.append(self._bcurve.packed_data[pole_index], 1.0)
        return None

    def span_fraction_to_knot(self, span: int, local_fraction: float) -> float:
        return self._bcurve.span_fraction_to_knot(span, local_fraction)

    def evaluate_point_in_span(self, span_index: int, span_fraction: float) -> np.ndarray:
        return self._bcurve.evaluate_buffers_in_span(span_index, span_fraction).copy()

    def evaluate_point_and_derivative_in_span(self, span_index: int, span_fraction: float) -> tuple[np.ndarray, np.ndarray]:
        point, derivative = self._bcurve.evaluate_buffers_in_span1(span_index, span_fraction)
        return point.copy(), derivative.copy()

    def knot_to_point(self, knot: float) -> np.ndarray:
        self._bcurve.evaluate_buffers_at_knot(knot)
        return self._bcurve.pole_buffer.copy()

    def knot_to_point_and_derivative(self, knot: float) -> tuple[np.ndarray, np.ndarray]:
        self._bcurve.evaluate_buffers_at_knot(knot, 1)
        return self._bcurve.pole_buffer.copy(), self._bcurve.pole_buffer1.copy()

    def knot_to_point_and_2_derivatives(self, knot: float) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        self._bcurve.evaluate_buffers_at_knot(knot, 2)
        return self._bcurve.pole_buffer.copy(), self._bcurve.pole_buffer1.copy(), self._bcurve.pole_buffer2.copy()

    def _initialize_work_bezier(self) -> BezierCurveBase:
        if self._work_bezier is None or self._work_bezier.order != self.order:
            self._work_bezier = BezierCurve3d.create_order(self.order)
        return self._work_bezier

    def get_saturated_bezier_span3d(self, span_index: int, result: BezierCurveBase | None = None) -> BezierCurve3d | None:
        if span_index < 0 or span_index >= self.num_span:
            return None
        if not isinstance(result, BezierCurve3d) or result.order != self.order:
            result = BezierCurve3d.create_order(self.order)
        result.load_span_poles(self._bcurve.packed_data, span_index)
        if result.saturate_in_place(self._bcurve.knots, span_index):
            return result
        return None

    def get_saturated_bezier_span3dh(self, span_index: int, result: BezierCurveBase | None = None) -> BezierCurve3dH | None:
        if span_index < 0 or span_index >= self.num_span:
            return None
        if not isinstance(result, BezierCurve3dH) or result.order != self.order:
            result = BezierCurve3dH.create_order(self.order)
        result.load_span3d_poles_with_weight(self._bcurve.packed_data, span_index, 1.0)
        if result.saturate_in_place(self._bcurve.knots, span_index):
            return result
        return None

    def get_saturated_bezier_span3d_or_3dh(
        self, span_index: int, prefer3dh: bool, result: BezierCurveBase | None = None
    ) -> BezierCurveBase | None:
        if prefer3dh:
            return self.get_saturated_bezier_span3dh(span_index, result)
        return self.get_saturated_bezier_span3d(span_index, result)

    def is_almost_equal(self, other) -> bool:
        if isinstance(other, BSplineCurve3d):
            return self._bcurve.knots.is_almost_equal(other._bcurve.knots) and is_same_point(
                self._bcurve.packed_data, other._bcurve.packed_data
            )
        return False

    def try_transform_in_place(self, transform: np.ndarray) -> bool:
        self._bcurve.packed_data = transform_points(transform, self._bcurve.packed_data)
        return True

    def dispatch_to_handler(self, handler: GeometryHandler):
        return handler.handle_bspline_curve3d(self)

    def __repr__(self):
        return f"BSplineCurve3d(order={self.order}, num_poles={self.num_poles})"
