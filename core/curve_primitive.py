"""
curve_primitive - 曲线公共接口

内核与外部 (裁剪、渲染、通用几何处理) 之间的最小约定:
- CurvePrimitive: 分数求值、离散化、部分曲线、相等比较、访问者分派
- StrokeOptions: 离散化容差
- CurveLocationDetail: 曲线上一点的查询结果
- GeometryHandler / IStrokeHandler: 访问者与离散化回调
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Protocol

import numpy as np

from ..config import DEFAULT_STROKE_ANGLE_RADIANS
from ..utils.geometry import Range3d, step_count
from ..utils.integrals import arc_length_integral


@dataclass
class StrokeOptions:
    """
    离散化 (stroke) 容差。

    Attributes:
        angle_tol: 相邻折线段的最大转角 (弧度)
        chord_tol: 弦高误差上限
        max_edge_length: 单段最大长度
    """

    angle_tol: float | None = None
    chord_tol: float | None = None
    max_edge_length: float | None = None

    @classmethod
    def create_for_curves(cls) -> "StrokeOptions":
        return cls(angle_tol=math.radians(15.0))

    @staticmethod
    def apply_angle_tol(
        options: "StrokeOptions | None",
        min_count: int,
        sweep_radians: float,
        default_step_radians: float | None = None,
    ) -> int:
        """保证每步转角不超过 angle_tol (未设置时用默认步长)"""
        sweep_radians = abs(sweep_radians)
        step_radians = default_step_radians if default_step_radians else math.pi / 8.0
        if options is not None and options.angle_tol is not None and options.angle_tol > 0.0:
            step_radians = options.angle_tol
        if min_count * step_radians < sweep_radians:
            min_count = math.ceil(sweep_radians / step_radians)
        return min_count

    @staticmethod
    def apply_max_edge_length(options: "StrokeOptions | None", min_count: int, edge_length: float) -> int:
        edge_length = abs(edge_length)
        min_count = max(1, min_count)
        if (
            options is not None
            and options.max_edge_length
            and options.max_edge_length * min_count < edge_length
        ):
            min_count = step_count(options.max_edge_length, edge_length, min_count)
        return min_count

    def apply_chord_tol_to_length_and_radians(self, min_count: int, length: float, sweep_radians: float) -> int:
        """按等效圆弧半径 length / sweep_radians 把弦高误差换算成角度步长"""
        if self.chord_tol and self.chord_tol > 0.0 and length > 0.0 and sweep_radians > 0.0:
            radius = length / sweep_radians
            step_radians = math.sqrt(8.0 * self.chord_tol / radius)
            min_count = step_count(step_radians, sweep_radians, min_count)
        return min_count


@dataclass
class CurveLocationDetail:
    """
    曲线上一点的查询结果。

    Attributes:
        curve: 所属曲线
        fraction: 全局分数
        point: 曲线上的点
        a: 与查询点的距离
    """

    curve: Any = None
    fraction: float = 0.0
    point: np.ndarray | None = None
    a: float = math.inf

    def set_fp(self, fraction: float, point: np.ndarray, distance: float):
        self.fraction = float(fraction)
        self.point = np.array(point, dtype=float)
        self.a = float(distance)

    def update_if_closer(self, fraction: float, point: np.ndarray, distance: float) -> bool:
        """仅当 distance 更小时更新；返回是否更新"""
        if distance < self.a:
            self.set_fp(fraction, point, distance)
            return True
        return False


class IStrokeHandler(Protocol):
    """离散化回调，按 "区间 + 均匀步数" 接收曲线片段"""

    def announce_interval_for_uniform_step_strokes(
        self, curve: Any, num_strokes: int, fraction0: float, fraction1: float
    ) -> None: ...


class StrokeCollector:
    """收集 announce 回调中的均匀采样点"""

    def __init__(self):
        self.fractions: list[float] = []
        self.points: list[np.ndarray] = []
        self.num_announced = 0

    def announce_interval_for_uniform_step_strokes(self, curve, num_strokes: int, fraction0: float, fraction1: float):
        self.num_announced += 1
        for i in range(num_strokes + 1):
            fraction = fraction0 + (fraction1 - fraction0) * i / num_strokes
            if self.fractions and i == 0 and abs(self.fractions[-1] - fraction) < 1e-14:
                continue
            self.fractions.append(fraction)
            self.points.append(curve.fraction_to_point(fraction))


class GeometryHandler:
    """
    访问者基类: 每种几何类型一个 handle_* 方法，默认返回 None。

    子类覆盖关心的方法即可。
    """

    def handle_bspline_curve3d(self, curve) -> Any:
        return None

    def handle_bspline_curve3dh(self, curve) -> Any:
        return None

    def handle_bezier_curve3d(self, curve) -> Any:
        return None

    def handle_bezier_curve3dh(self, curve) -> Any:
        return None

    def handle_interpolation_curve3d(self, curve) -> Any:
        return None

    def handle_bspline_surface3d(self, surface) -> Any:
        return None

    def handle_bspline_surface3dh(self, surface) -> Any:
        return None


class CurvePrimitive(ABC):
    """分数参数化曲线 [0, 1] 的公共约定"""

    @abstractmethod
    def fraction_to_point(self, fraction: float) -> np.ndarray: ...

    @abstractmethod
    def fraction_to_point_and_derivative(self, fraction: float) -> tuple[np.ndarray, np.ndarray]: ...

    @abstractmethod
    def clone(self) -> "CurvePrimitive": ...

    @abstractmethod
    def clone_partial_curve(self, fraction_a: float, fraction_b: float) -> "CurvePrimitive | None": ...

    @abstractmethod
    def is_almost_equal(self, other) -> bool: ...

    @abstractmethod
    def dispatch_to_handler(self, handler: GeometryHandler) -> Any: ...

    @abstractmethod
    def extend_range(self, range_to_extend: Range3d, transform: np.ndarray | None = None): ...

    @abstractmethod
    def try_transform_in_place(self, transform: np.ndarray) -> bool: ...

    def start_point(self) -> np.ndarray:
        return self.fraction_to_point(0.0)

    def end_point(self) -> np.ndarray:
        return self.fraction_to_point(1.0)

    def curve_length_between_fractions(self, fraction0: float, fraction1: float) -> float:
        def derivative(f):
            return self.fraction_to_point_and_derivative(f)[1]

        return abs(arc_length_integral(derivative, fraction0, fraction1))

    def curve_length(self) -> float:
        return self.curve_length_between_fractions(0.0, 1.0)

    def range(self, transform: np.ndarray | None = None) -> Range3d:
        result = Range3d()
        self.extend_range(result, transform)
        return result

    def clone_transformed(self, transform: np.ndarray) -> "CurvePrimitive | None":
        result = self.clone()
        if not result.try_transform_in_place(transform):
            return None
        return result

    def emit_strokes(self, options: StrokeOptions | None = None) -> np.ndarray:
        """均匀离散为 (N, 3) 点列"""
        collector = StrokeCollector()
        self.emit_strokable_parts(collector, options)
        return np.array(collector.points)

    def emit_strokable_parts(self, handler: IStrokeHandler, options: StrokeOptions | None = None):
        handler.announce_interval_for_uniform_step_strokes(
            self, self.compute_stroke_count_for_options(options), 0.0, 1.0
        )

    def compute_stroke_count_for_options(self, options: StrokeOptions | None = None) -> int:
        return StrokeOptions.apply_angle_tol(options, 1, math.pi, DEFAULT_STROKE_ANGLE_RADIANS)
