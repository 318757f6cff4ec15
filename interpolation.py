"""
interpolation - 插值曲线 (拟合点定义的三次 B样条)

InterpolationCurve3dOptions 保存拟合点、参数与端点切向选项；
InterpolationCurve3d 持有选项及由 C2 三次拟合得到的 B样条代理曲线，
所有求值都委托给代理曲线，序列化时只输出选项。
"""

import logging
from dataclasses import dataclass, field

import numpy as np

from .config import DEFAULT_FIT_ORDER
from .core.bspline_curve import BSplineCurve3d
from .core.curve_ops import (
    construct_fit_parameters_from_points,
    convert_cubic_knot_vector_to_fit_params,
    create_through_points_c2_cubic,
)
from .core.curve_primitive import CurvePrimitive, GeometryHandler, IStrokeHandler, StrokeOptions
from .utils.geometry import (
    Range3d,
    is_almost_equal_number,
    is_same_point,
    transform_points,
)

logger = logging.getLogger(__name__)


def _optional_vector(value) -> np.ndarray | None:
    if value is None:
        return None
    return np.array(value, dtype=float)


def _tangents_almost_equal(a: np.ndarray | None, b: np.ndarray | None) -> bool:
    """全零切向与未给出视为相同"""
    if a is not None and not np.any(a):
        a = None
    if b is not None and not np.any(b):
        b = None
    if a is not None and b is not None:
        return is_same_point(a, b)
    return a is None and b is None


@dataclass
class InterpolationCurve3dOptions:
    """
    三次插值曲线的定义。

    Attributes:
        fit_points: (N, 3) 拟合点
        knots: 拟合参数 (N 个) 或完整三次节点向量 (N + 4 / N + 6 个)，None 表示自动计算
        order: 阶数，拟合时固定为 4
        closed: 是否闭合
        is_chord_len_knots: 闭合曲线也使用弦长参数
        is_colinear_tangents: 首尾重合时使两端切向共线
        is_chord_len_tangents: 给定切向按弦长的 1/3 缩放 (否则按 Bessel 长度)
        is_natural_tangents: 未给定切向的一端使用自然端点条件
        start_tangent: 起点切向 (指向曲线内部)
        end_tangent: 终点切向 (指向曲线内部)
    """

    fit_points: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    knots: list[float] | None = None
    order: int = DEFAULT_FIT_ORDER
    closed: bool = False
    is_chord_len_knots: bool = False
    is_colinear_tangents: bool = False
    is_chord_len_tangents: bool = False
    is_natural_tangents: bool = False
    start_tangent: np.ndarray | None = None
    end_tangent: np.ndarray | None = None

    def __post_init__(self):
        self.fit_points = np.array(self.fit_points, dtype=float)
        if self.fit_points.size == 0:
            self.fit_points = np.zeros((0, 3))
        if self.knots is not None:
            self.knots = [float(k) for k in self.knots]
        self.start_tangent = _optional_vector(self.start_tangent)
        self.end_tangent = _optional_vector(self.end_tangent)

    def clone(self) -> "InterpolationCurve3dOptions":
        return InterpolationCurve3dOptions(
            fit_points=self.fit_points.copy(),
            knots=None if self.knots is None else list(self.knots),
            order=self.order,
            closed=self.closed,
            is_chord_len_knots=self.is_chord_len_knots,
            is_colinear_tangents=self.is_colinear_tangents,
            is_chord_len_tangents=self.is_chord_len_tangents,
            is_natural_tangents=self.is_natural_tangents,
            start_tangent=self.start_tangent,
            end_tangent=self.end_tangent,
        )

    def reverse_in_place(self):
        """
        反转拟合点顺序。

        参数按 k -> k_first + k_last - k 镜像后反序，两端切向互换
        (切向都指向曲线内部，互换后无需取反)。
        """
        self.fit_points = self.fit_points[::-1].copy()
        if self.knots is not None:
            a = self.knots[0]
            b = self.knots[-1]
            self.knots = [a + b - k for k in reversed(self.knots)]
        self.start_tangent, self.end_tangent = self.end_tangent, self.start_tangent

    def to_json(self) -> dict:
        data = {"fitPoints": self.fit_points.tolist()}
        if self.knots is not None:
            data["knots"] = list(self.knots)
        data["order"] = self.order
        data["closed"] = self.closed
        data["isChordLenKnots"] = int(self.is_chord_len_knots)
        data["isColinearTangents"] = int(self.is_colinear_tangents)
        data["isChordLenTangents"] = int(self.is_chord_len_tangents)
        data["isNaturalTangents"] = int(self.is_natural_tangents)
        if self.start_tangent is not None:
            data["startTangent"] = self.start_tangent.tolist()
        if self.end_tangent is not None:
            data["endTangent"] = self.end_tangent.tolist()
        return data

    @classmethod
    def from_json(cls, data: dict) -> "InterpolationCurve3dOptions":
        return cls(
            fit_points=data.get("fitPoints", []),
            knots=data.get("knots"),
            order=data.get("order") or DEFAULT_FIT_ORDER,
            closed=bool(data.get("closed", False)),
            is_chord_len_knots=bool(data.get("isChordLenKnots", 0)),
            is_colinear_tangents=bool(data.get("isColinearTangents", 0)),
            is_chord_len_tangents=bool(data.get("isChordLenTangents", 0)),
            is_natural_tangents=bool(data.get("isNaturalTangents", 0)),
            start_tangent=data.get("startTangent"),
            end_tangent=data.get("endTangent"),
        )

    @staticmethod
    def are_almost_equal(a: "InterpolationCurve3dOptions | None", b: "InterpolationCurve3dOptions | None") -> bool:
        """
        比较两组选项。

        一方缺少参数时由其拟合点计算；两组参数都先换算为拟合参数再比较。
        """
        if a is None or b is None:
            return a is None and b is None
        if (
            a.order != b.order
            or a.closed != b.closed
            or a.is_chord_len_knots != b.is_chord_len_knots
            or a.is_colinear_tangents != b.is_colinear_tangents
            or a.is_natural_tangents != b.is_natural_tangents
        ):
            return False
        if not (_tangents_almost_equal(a.start_tangent, b.start_tangent) and _tangents_almost_equal(a.end_tangent, b.end_tangent)):
            return False
        if not is_same_point(a.fit_points, b.fit_points):
            return False
        if a.knots == b.knots:
            return True
        knots_a = a.knots
        knots_b = b.knots
        if knots_a is None:
            knots_a = construct_fit_parameters_from_points(a.fit_points, a.is_chord_len_knots, a.closed)
        elif knots_b is None:
            knots_b = construct_fit_parameters_from_points(b.fit_points, b.is_chord_len_knots, b.closed)
        knots_a = convert_cubic_knot_vector_to_fit_params(knots_a, len(a.fit_points), False)
        knots_b = convert_cubic_knot_vector_to_fit_params(knots_b, len(b.fit_points), False)
        if knots_a is None or knots_b is None:
            return knots_a is None and knots_b is None
        if len(knots_a) != len(knots_b):
            return False
        return all(is_almost_equal_number(x, y) for x, y in zip(knots_a, knots_b))


class InterpolationCurve3d(CurvePrimitive):
    """
    拟合点定义的插值曲线。

    Attributes:
        options: 定义曲线的选项 (保留调用者给出的原始形式)
        proxy_curve: 拟合得到的三次 B样条
    """

    def __init__(self, options: InterpolationCurve3dOptions, proxy_curve: BSplineCurve3d):
        self._options = options
        self._proxy_curve = proxy_curve

    @classmethod
    def create(cls, options: "InterpolationCurve3dOptions | dict") -> "InterpolationCurve3d | None":
        """
        由选项 (或其 JSON 形式) 拟合曲线。

        Returns:
            InterpolationCurve3d；拟合失败时为 None
        """
        if isinstance(options, InterpolationCurve3dOptions):
            options = options.clone()
        else:
            options = InterpolationCurve3dOptions.from_json(options)
        proxy = create_through_points_c2_cubic(options)
        if proxy is None:
            logger.debug("InterpolationCurve3d.create: fit failed for %s points", len(options.fit_points))
            return None
        return cls(options, proxy)

    @classmethod
    def from_json(cls, data: dict) -> "InterpolationCurve3d | None":
        return cls.create(data)

    @property
    def options(self) -> InterpolationCurve3dOptions:
        return self._options

    @property
    def proxy_curve(self) -> BSplineCurve3d:
        return self._proxy_curve

    def copy_fit_points(self) -> np.ndarray:
        return self._options.fit_points.copy()

    # 求值全部委托给代理曲线

    def fraction_to_point(self, fraction: float) -> np.ndarray:
        return self._proxy_curve.fraction_to_point(fraction)

    def fraction_to_point_and_derivative(self, fraction: float) -> tuple[np.ndarray, np.ndarray]:
        return self._proxy_curve.fraction_to_point_and_derivative(fraction)

    def fraction_to_point_and_2_derivatives(self, fraction: float) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        return self._proxy_curve.fraction_to_point_and_2_derivatives(fraction)

    def start_point(self) -> np.ndarray:
        return self._proxy_curve.start_point()

    def end_point(self) -> np.ndarray:
        return self._proxy_curve.end_point()

    def curve_length(self) -> float:
        return self._proxy_curve.curve_length()

    def closest_point(self, space_point: np.ndarray, extend: bool = False):
        detail = self._proxy_curve.closest_point(space_point, extend)
        detail.curve = self
        return detail

    def extend_range(self, range_to_extend: Range3d, transform: np.ndarray | None = None):
        self._proxy_curve.extend_range(range_to_extend, transform)

    def compute_stroke_count_for_options(self, options: StrokeOptions | None = None) -> int:
        return self._proxy_curve.compute_stroke_count_for_options(options)

    def emit_strokable_parts(self, handler: IStrokeHandler, options: StrokeOptions | None = None):
        self._proxy_curve.emit_strokable_parts(handler, options)

    def clone_partial_curve(self, fraction_a: float, fraction_b: float) -> BSplineCurve3d:
        """部分曲线不再由拟合点定义，返回代理曲线的部分"""
        return self._proxy_curve.clone_partial_curve(fraction_a, fraction_b)

    # 修改

    def reverse_in_place(self):
        self._proxy_curve.reverse_in_place()
        self._options.reverse_in_place()

    def try_transform_in_place(self, transform: np.ndarray) -> bool:
        if not self._proxy_curve.try_transform_in_place(transform):
            return False
        options = self._options
        if len(options.fit_points) > 0:
            options.fit_points = transform_points(transform, options.fit_points)
        matrix = np.asarray(transform, dtype=float)[:3, :3]
        if options.start_tangent is not None:
            options.start_tangent = matrix @ options.start_tangent
        if options.end_tangent is not None:
            options.end_tangent = matrix @ options.end_tangent
        return True

    def clone(self) -> "InterpolationCurve3d":
        return InterpolationCurve3d(self._options.clone(), self._proxy_curve.clone())

    def is_almost_equal(self, other) -> bool:
        if isinstance(other, InterpolationCurve3d):
            return InterpolationCurve3dOptions.are_almost_equal(self._options, other._options)
        return False

    def dispatch_to_handler(self, handler: GeometryHandler):
        """handler 不处理插值曲线时转交代理曲线"""
        result = handler.handle_interpolation_curve3d(self)
        if result is None:
            result = self._proxy_curve.dispatch_to_handler(handler)
        return result

    def to_json(self) -> dict:
        return self._options.to_json()

    def __repr__(self):
        return f"InterpolationCurve3d(num_fit_points={len(self._options.fit_points)}, closed={self._options.closed})"


if __name__ == "__main__":
    print("=== 三次插值曲线测试 ===")

    points = np.array([
        [0, 0, 0],
        [1, 2, 0],
        [3, 3, 0],
        [4, 2, 0],
        [5, 0, 0],
        [6, -1, 0],
        [7, 0, 0],
    ], dtype=float)

    curve = InterpolationCurve3d.create(InterpolationCurve3dOptions(fit_points=points))
    params = construct_fit_parameters_from_points(points)
    print(f"拟合点数: {len(points)}")
    print(f"极点数: {curve.proxy_curve.num_poles}")
    print(f"曲线长度: {curve.curve_length():.4f}")

    errors = [np.linalg.norm(curve.fraction_to_point(u) - p) for u, p in zip(params, points)]
    print(f"插值误差: max={max(errors):.2e}, mean={np.mean(errors):.2e}")

    closed = InterpolationCurve3d.create(
        InterpolationCurve3dOptions(fit_points=points[:5] * [1, 1, 0] + [0, 0, 1], closed=True)
    )
    if closed is not None:
        print(f"闭合: 首尾距离 {np.linalg.norm(closed.start_point() - closed.end_point()):.2e}")
