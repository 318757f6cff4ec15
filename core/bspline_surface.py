"""
bspline_surface - 张量积 B样条曲面

极点按 u 方向优先存储: coffs[i + j * num_poles_u] 为 (u 下标 i, v 下标 j) 的极点。
两个方向各自一个 KnotVector，约定与曲线相同 (去掉首尾节点)。

- BSplineSurface3d: 极点长度 3
- BSplineSurface3dH: 极点长度 4 (wx, wy, wz, w)，求值后除以权重
"""

import logging
from abc import ABC, abstractmethod
from enum import IntEnum

import numpy as np

from ..config import SMALL_METRIC_DISTANCE
from .curve_primitive import GeometryHandler
from .knot_vector import BSplineWrapMode, KnotVector
from ..utils.geometry import (
    Plane3d,
    Range3d,
    conditional_divide_fraction,
    is_same_point,
    normalize_or_none,
    transform_points,
    transform_points4d,
)

logger = logging.getLogger(__name__)


class UVSelect(IntEnum):
    U_DIRECTION = 0
    V_DIRECTION = 1


class WeightStyle(IntEnum):
    """点网格中权重的存储方式"""

    UN_WEIGHTED = 0
    WEIGHTS_ALREADY_APPLIED_TO_COORDINATES = 1
    WEIGHTS_SEPARATE_FROM_COORDINATES = 2


def valid_order_and_pole_counts(order_u: int, num_poles_u: int, order_v: int, num_poles_v: int, num_uv: int) -> bool:
    if order_u < 2 or num_poles_u < order_u:
        return False
    if order_v < 2 or num_poles_v < order_v:
        return False
    return num_poles_u * num_poles_v == num_uv


def _create_knot_vector(knot_array, num_poles: int, order: int) -> KnotVector | None:
    """knot_array 为 None 时取均匀夹紧节点；否则按节点数推断是否去掉首尾"""
    if knot_array is None:
        return KnotVector.create_uniform_clamped(num_poles, order - 1, 0.0, 1.0)
    knot_array = np.asarray(knot_array, dtype=float)
    if num_poles + order == len(knot_array):
        knots = KnotVector.create(knot_array, order - 1, True)
    elif num_poles + order == len(knot_array) + 2:
        knots = KnotVector.create(knot_array, order - 1, False)
    else:
        return None
    if knots.knot_length01 <= 0.0:
        return None
    return knots


class BSpline2dNd(ABC):
    """
    张量积 B样条公共部分。

    Attributes:
        knots: [u 方向节点, v 方向节点]
        coffs: (num_poles_v * num_poles_u, pole_length) 极点
    """

    def __init__(self, num_poles_u: int, num_poles_v: int, knots_u: KnotVector, knots_v: KnotVector, coffs: np.ndarray):
        self.knots = [knots_u, knots_v]
        self.coffs = np.array(coffs, dtype=float)
        self._num_poles = [int(num_poles_u), int(num_poles_v)]

    @property
    def pole_dimension(self) -> int:
        return self.coffs.shape[1]

    def degree_uv(self, select: UVSelect) -> int:
        return self.knots[select].degree

    def order_uv(self, select: UVSelect) -> int:
        return self.knots[select].degree + 1

    def num_span_uv(self, select: UVSelect) -> int:
        return self._num_poles[select] - self.knots[select].degree

    def num_poles_uv(self, select: UVSelect) -> int:
        return self._num_poles[select]

    def num_poles_total(self) -> int:
        return len(self.coffs)

    def pole_step_uv(self, select: UVSelect) -> int:
        return 1 if select == UVSelect.U_DIRECTION else self._num_poles[0]

    def pole_grid(self) -> np.ndarray:
        """(num_poles_v, num_poles_u, pole_length) 视图"""
        return self.coffs.reshape(self._num_poles[1], self._num_poles[0], -1)

    def get_pole(self, i: int, j: int) -> np.ndarray:
        if not (0 <= i < self._num_poles[0] and 0 <= j < self._num_poles[1]):
            raise IndexError(f"pole ({i}, {j}) out of range")
        return self.coffs[i + j * self._num_poles[0]].copy()

    def copy_knots(self, select: UVSelect, include_extra_end_knot: bool) -> list[float]:
        return self.knots[select].copy_knots(include_extra_end_knot)

    def set_wrappable(self, select: UVSelect, value: BSplineWrapMode):
        self.knots[select].wrappable = value

    # ------------------------------------------------------------------
    # 求值
    # ------------------------------------------------------------------

    def span_fraction_to_knot(self, select: UVSelect, span: int, local_fraction: float) -> float:
        return self.knots[select].span_fraction_to_knot(span, local_fraction)

    def _basis_at_knot(self, select: UVSelect, knot: float, num_derivative: int):
        knots = self.knots[select]
        k0 = knots.knot_to_left_knot_index(knot)
        f = knots.create_basis_array()
        if num_derivative < 1:
            knots.evaluate_basis_functions(k0, knot, f)
            return k0 - knots.degree + 1, f, None
        df = knots.create_basis_array()
        knots.evaluate_basis_functions1(k0, knot, f, df)
        return k0 - knots.degree + 1, f, df

    def evaluate_buffers_at_knot(self, u: float, v: float, num_derivative: int = 0):
        """
        求 (u, v) 处的极点加权和。

        Returns:
            (point, d/du, d/dv)；num_derivative 为 0 时两个导数为 None
        """
        pole_u, fu, dfu = self._basis_at_knot(UVSelect.U_DIRECTION, u, num_derivative)
        pole_v, fv, dfv = self._basis_at_knot(UVSelect.V_DIRECTION, v, num_derivative)
        block = self.pole_grid()[pole_v : pole_v + len(fv), pole_u : pole_u + len(fu)]
        point = np.einsum("j,i,jim->m", fv, fu, block)
        if num_derivative < 1:
            return point, None, None
        d_u = np.einsum("j,i,jim->m", fv, dfu, block)
        d_v = np.einsum("j,i,jim->m", dfv, fu, block)
        return point, d_u, d_v

    # ------------------------------------------------------------------
    # 修改 / 查询
    # ------------------------------------------------------------------

    def reverse_in_place(self, select: UVSelect):
        grid = self.pole_grid()
        if select == UVSelect.U_DIRECTION:
            grid = grid[:, ::-1]
        else:
            grid = grid[::-1]
        self.coffs = grid.reshape(-1, self.pole_dimension).copy()
        self.knots[select].reflect_knots()

    def is_closable(self, select: UVSelect) -> bool:
        """节点可周期闭合，且首 degree 排极点与末 degree 排极点重合"""
        knots = self.knots[select]
        if knots.wrappable == BSplineWrapMode.NONE:
            return False
        if not knots.test_closable():
            return False
        grid = self.pole_grid()
        degree = knots.degree
        if select == UVSelect.U_DIRECTION:
            return is_same_point(grid[:, :degree], grid[:, -degree:])
        return is_same_point(grid[:degree], grid[-degree:])

    def fraction_to_rigid_frame(self, fraction_u: float, fraction_v: float) -> np.ndarray | None:
        """
        曲面上的正交标架 (4x4)。

        x 轴沿 u 方向导数，z 轴为法向；导数退化时返回 None。
        """
        origin, d_u, d_v = self.fraction_to_point_and_derivatives(fraction_u, fraction_v)
        x_axis = normalize_or_none(d_u)
        z_axis = normalize_or_none(np.cross(d_u, d_v))
        if x_axis is None or z_axis is None:
            return None
        frame = np.eye(4)
        frame[:3, 0] = x_axis
        frame[:3, 1] = np.cross(z_axis, x_axis)
        frame[:3, 2] = z_axis
        frame[:3, 3] = origin
        return frame

    def fraction_to_point_and_derivatives(self, fraction_u: float, fraction_v: float) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """点与对分数的偏导 (节点导数乘以各方向有效区间长度)"""
        knots_u, knots_v = self.knots
        point, d_u, d_v = self.knot_to_point_and_derivatives(
            knots_u.fraction_to_knot(fraction_u), knots_v.fraction_to_knot(fraction_v)
        )
        return point, d_u * knots_u.knot_length01, d_v * knots_v.knot_length01

    def fraction_to_point(self, fraction_u: float, fraction_v: float) -> np.ndarray:
        return self.knot_to_point(
            self.knots[0].fraction_to_knot(fraction_u), self.knots[1].fraction_to_knot(fraction_v)
        )

    def clone_transformed(self, transform: np.ndarray):
        result = self.clone()
        result.try_transform_in_place(transform)
        return result

    def range(self, transform: np.ndarray | None = None) -> Range3d:
        result = Range3d()
        self.extend_range(result, transform)
        return result

    @abstractmethod
    def knot_to_point(self, u: float, v: float) -> np.ndarray: ...

    @abstractmethod
    def knot_to_point_and_derivatives(self, u: float, v: float) -> tuple[np.ndarray, np.ndarray, np.ndarray]: ...

    @abstractmethod
    def clone(self) -> "BSpline2dNd": ...

    @abstractmethod
    def try_transform_in_place(self, transform: np.ndarray) -> bool: ...

    @abstractmethod
    def extend_range(self, range_to_extend: Range3d, transform: np.ndarray | None = None): ...


class BSplineSurface3d(BSpline2dNd):
    """非有理曲面"""

    @classmethod
    def create(
        cls,
        control_points,
        num_poles_u: int,
        order_u: int,
        knots_u,
        num_poles_v: int,
        order_v: int,
        knots_v,
    ) -> "BSplineSurface3d | None":
        """
        由 u 优先排列的极点构造。

        Args:
            control_points: (num_poles_u * num_poles_v, 3) 或展平数组
            knots_u / knots_v: 节点，None 表示均匀夹紧

        Returns:
            BSplineSurface3d；阶数、极点数或节点数不一致时为 None
        """
        points = np.asarray(control_points, dtype=float).reshape(-1, 3)
        if not valid_order_and_pole_counts(order_u, num_poles_u, order_v, num_poles_v, len(points)):
            logger.debug("BSplineSurface3d.create rejected: %s poles for %sx%s", len(points), num_poles_u, num_poles_v)
            return None
        vector_u = _create_knot_vector(knots_u, num_poles_u, order_u)
        vector_v = _create_knot_vector(knots_v, num_poles_v, order_v)
        if vector_u is None or vector_v is None:
            logger.debug("BSplineSurface3d.create rejected: knot count mismatch")
            return None
        return cls(num_poles_u, num_poles_v, vector_u, vector_v, points)

    @classmethod
    def create_grid(cls, points, order_u: int, knots_u, order_v: int, knots_v) -> "BSplineSurface3d | None":
        """points[j][i] 为第 j 行 (v 方向)、第 i 列 (u 方向) 的极点"""
        grid = np.asarray(points, dtype=float)
        if grid.ndim != 3 or grid.shape[2] < 3:
            return None
        num_poles_v, num_poles_u = grid.shape[:2]
        return cls.create(grid[:, :, :3].reshape(-1, 3), num_poles_u, order_u, knots_u, num_poles_v, order_v, knots_v)

    def clone(self) -> "BSplineSurface3d":
        return BSplineSurface3d(
            self._num_poles[0], self._num_poles[1], self.knots[0].clone(), self.knots[1].clone(), self.coffs.copy()
        )

    def knot_to_point(self, u: float, v: float) -> np.ndarray:
        return self.evaluate_buffers_at_knot(u, v)[0]

    def knot_to_point_and_derivatives(self, u: float, v: float) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        return self.evaluate_buffers_at_knot(u, v, 1)

    def get_point_grid_json(self) -> dict:
        return {
            "points": self.pole_grid().tolist(),
            "weightStyle": int(WeightStyle.UN_WEIGHTED),
            "numCartesianDimensions": 3,
        }

    def is_almost_equal(self, other) -> bool:
        if isinstance(other, BSplineSurface3d):
            return (
                self.knots[0].is_almost_equal(other.knots[0])
                and self.knots[1].is_almost_equal(other.knots[1])
                and is_same_point(self.coffs, other.coffs)
            )
        return False

    def is_in_plane(self, plane: Plane3d) -> bool:
        return all(plane.is_point_in_plane(p) for p in self.coffs)

    def try_transform_in_place(self, transform: np.ndarray) -> bool:
        self.coffs = transform_points(transform, self.coffs)
        return True

    def extend_range(self, range_to_extend: Range3d, transform: np.ndarray | None = None):
        range_to_extend.extend_array(self.coffs, transform)

    def dispatch_to_handler(self, handler: GeometryHandler):
        return handler.handle_bspline_surface3d(self)

    def __repr__(self):
        return f"BSplineSurface3d(poles={self._num_poles[0]}x{self._num_poles[1]}, order=({self.order_uv(0)}, {self.order_uv(1)}))"


class BSplineSurface3dH(BSpline2dNd):
    """有理曲面"""

    @classmethod
    def create(
        cls,
        control_points,
        weights,
        num_poles_u: int,
        order_u: int,
        knots_u,
        num_poles_v: int,
        order_v: int,
        knots_v,
        weight_style: WeightStyle = WeightStyle.WEIGHTS_ALREADY_APPLIED_TO_COORDINATES,
    ) -> "BSplineSurface3dH | None":
        """
        由三维极点与权重构造。

        weight_style 为 WEIGHTS_SEPARATE_FROM_COORDINATES 时 control_points 是笛卡尔坐标，
        打包时乘以权重；否则视为已乘过权重。
        """
        points = np.asarray(control_points, dtype=float).reshape(-1, 3)
        weights = np.asarray(weights, dtype=float).ravel()
        if len(points) != len(weights):
            logger.debug("BSplineSurface3dH.create rejected: %s points, %s weights", len(points), len(weights))
            return None
        if not valid_order_and_pole_counts(order_u, num_poles_u, order_v, num_poles_v, len(points)):
            logger.debug("BSplineSurface3dH.create rejected: %s poles for %sx%s", len(points), num_poles_u, num_poles_v)
            return None
        vector_u = _create_knot_vector(knots_u, num_poles_u, order_u)
        vector_v = _create_knot_vector(knots_v, num_poles_v, order_v)
        if vector_u is None or vector_v is None:
            logger.debug("BSplineSurface3dH.create rejected: knot count mismatch")
            return None
        if weight_style == WeightStyle.WEIGHTS_SEPARATE_FROM_COORDINATES:
            points = points * weights[:, None]
        return cls(num_poles_u, num_poles_v, vector_u, vector_v, np.column_stack([points, weights]))

    @classmethod
    def create_grid(
        cls,
        xyzw_grid,
        weight_style: WeightStyle,
        order_u: int,
        knots_u,
        order_v: int,
        knots_v,
    ) -> "BSplineSurface3dH | None":
        """xyzw_grid[j][i] = [x, y, z, w]，坐标是否已乘权重由 weight_style 指定"""
        grid = np.asarray(xyzw_grid, dtype=float)
        if grid.ndim != 3 or grid.shape[2] != 4:
            return None
        num_poles_v, num_poles_u = grid.shape[:2]
        flat = grid.reshape(-1, 4)
        return cls.create(
            flat[:, :3], flat[:, 3], num_poles_u, order_u, knots_u, num_poles_v, order_v, knots_v, weight_style
        )

    def clone(self) -> "BSplineSurface3dH":
        return BSplineSurface3dH(
            self._num_poles[0], self._num_poles[1], self.knots[0].clone(), self.knots[1].clone(), self.coffs.copy()
        )

    def copy_xyz(self, unweight: bool) -> np.ndarray:
        xyz = self.coffs[:, :3].copy()
        if unweight:
            w = self.coffs[:, 3].copy()
            w[w == 0.0] = 1.0
            xyz /= w[:, None]
        return xyz

    def copy_weights(self) -> np.ndarray:
        return self.coffs[:, 3].copy()

    def knot_to_point4d(self, u: float, v: float) -> np.ndarray:
        return self.evaluate_buffers_at_knot(u, v)[0]

    def fraction_to_point4d(self, fraction_u: float, fraction_v: float) -> np.ndarray:
        return self.knot_to_point4d(
            self.knots[0].fraction_to_knot(fraction_u), self.knots[1].fraction_to_knot(fraction_v)
        )

    def knot_to_point(self, u: float, v: float) -> np.ndarray:
        """权重为零时返回原点"""
        xyzw = self.knot_to_point4d(u, v)
        scale = conditional_divide_fraction(1.0, xyzw[3])
        if scale is None:
            return np.zeros(3)
        return xyzw[:3] * scale

    def knot_to_point_and_derivatives(self, u: float, v: float) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """商法则: (X / w)' = (X' - P w') / w"""
        xyzw, d_u, d_v = self.evaluate_buffers_at_knot(u, v, 1)
        scale = conditional_divide_fraction(1.0, xyzw[3])
        if scale is None:
            return np.zeros(3), np.zeros(3), np.zeros(3)
        point = xyzw[:3] * scale
        return point, (d_u[:3] - point * d_u[3]) * scale, (d_v[:3] - point * d_v[3]) * scale

    def get_point_grid_json(self) -> dict:
        return {
            "points": self.pole_grid().tolist(),
            "weightStyle": int(WeightStyle.WEIGHTS_ALREADY_APPLIED_TO_COORDINATES),
            "numCartesianDimensions": 3,
        }

    def is_almost_equal(self, other) -> bool:
        if isinstance(other, BSplineSurface3dH):
            return (
                self.knots[0].is_almost_equal(other.knots[0])
                and self.knots[1].is_almost_equal(other.knots[1])
                and is_same_point(self.coffs, other.coffs)
            )
        return False

    def is_in_plane(self, plane: Plane3d) -> bool:
        return all(abs(plane.weighted_altitude(p)) < SMALL_METRIC_DISTANCE for p in self.coffs)

    def try_transform_in_place(self, transform: np.ndarray) -> bool:
        self.coffs = transform_points4d(transform, self.coffs)
        return True

    def extend_range(self, range_to_extend: Range3d, transform: np.ndarray | None = None):
        """跳过权重为零的极点"""
        weights = self.coffs[:, 3]
        mask = weights != 0.0
        range_to_extend.extend_array(self.coffs[mask, :3] / weights[mask, None], transform)

    def dispatch_to_handler(self, handler: GeometryHandler):
        return handler.handle_bspline_surface3dh(self)

    def __repr__(self):
        return f"BSplineSurface3dH(poles={self._num_poles[0]}x{self._num_poles[1]}, order=({self.order_uv(0)}, {self.order_uv(1)}))"
