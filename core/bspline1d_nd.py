"""
bspline1d_nd - 打包极点缓冲 + 节点向量

极点存放在 (num_poles, pole_length) 的连续数组中，每行一个极点:
- pole_length = 3: 普通三维点
- pole_length = 4: 齐次点 (wx, wy, wz, w)

所有曲线/曲面求值最终都落到 evaluate_buffers_at_knot 上。
"""

import numpy as np

from .knot_vector import BSplineWrapMode, KnotVector
from ..utils.geometry import is_same_coordinate


class BSpline1dNd:
    """
    一维参数、N 维极点的 B样条。

    Attributes:
        knots: 节点向量
        packed_data: (num_poles, pole_length) 极点数组
        pole_buffer: 最近一次求值的点
        pole_buffer1: 最近一次求值的一阶导数
        pole_buffer2: 最近一次求值的二阶导数
    """

    def __init__(self, packed_data: np.ndarray, knots: KnotVector):
        self.knots = knots
        self.packed_data = np.array(packed_data, dtype=float)
        order = knots.degree + 1
        self.basis_buffer = np.zeros(order)
        self.basis_buffer1 = np.zeros(order)
        self.basis_buffer2 = np.zeros(order)
        self.pole_buffer = np.zeros(self.pole_length)
        self.pole_buffer1 = np.zeros(self.pole_length)
        self.pole_buffer2 = np.zeros(self.pole_length)

    @classmethod
    def create(cls, num_poles: int, pole_length: int, knots: KnotVector) -> "BSpline1dNd":
        return cls(np.zeros((num_poles, pole_length)), knots)

    @property
    def degree(self) -> int:
        return self.knots.degree

    @property
    def order(self) -> int:
        return self.knots.degree + 1

    @property
    def num_poles(self) -> int:
        return self.packed_data.shape[0]

    @property
    def pole_length(self) -> int:
        return self.packed_data.shape[1]

    @property
    def num_span(self) -> int:
        return self.num_poles - self.degree

    def get_pole(self, index: int) -> np.ndarray:
        """第 index 个极点 (下标越界抛出 IndexError)"""
        if not 0 <= index < self.num_poles:
            raise IndexError(f"Pole index {index} out of range [0, {self.num_poles})")
        return self.packed_data[index].copy()

    def clone(self) -> "BSpline1dNd":
        return BSpline1dNd(self.packed_data.copy(), self.knots.clone())

    def span_fraction_to_knot(self, span: int, local_fraction: float) -> float:
        return self.knots.span_fraction_to_knot(span, local_fraction)

    def _clamp_span(self, span_index: int) -> int:
        return max(0, min(span_index, self.num_span - 1))

    def evaluate_basis_functions_in_span(
        self,
        span_index: int,
        span_fraction: float,
        f: np.ndarray,
        df: np.ndarray | None = None,
        ddf: np.ndarray | None = None,
    ):
        span_index = self._clamp_span(span_index)
        knot_index0 = span_index + self.degree - 1
        global_knot = self.knots.base_knot_fraction_to_knot(knot_index0, span_fraction)
        if df is None:
            self.knots.evaluate_basis_functions(knot_index0, global_knot, f)
        else:
            self.knots.evaluate_basis_functions1(knot_index0, global_knot, f, df, ddf)

    def _sum_poles(self, basis: np.ndarray, first_pole: int) -> np.ndarray:
        return basis @ self.packed_data[first_pole : first_pole + self.order]

    def evaluate_buffers_in_span(self, span_index: int, span_fraction: float) -> np.ndarray:
        span_index = self._clamp_span(span_index)
        self.evaluate_basis_functions_in_span(span_index, span_fraction, self.basis_buffer)
        self.pole_buffer = self._sum_poles(self.basis_buffer, span_index)
        return self.pole_buffer

    def evaluate_buffers_in_span1(self, span_index: int, span_fraction: float) -> tuple[np.ndarray, np.ndarray]:
        """跨度内求值，一阶导数是对节点值的导数"""
        span_index = self._clamp_span(span_index)
        self.evaluate_basis_functions_in_span(span_index, span_fraction, self.basis_buffer, self.basis_buffer1)
        self.pole_buffer = self._sum_poles(self.basis_buffer, span_index)
        self.pole_buffer1 = self._sum_poles(self.basis_buffer1, span_index)
        return self.pole_buffer, self.pole_buffer1

    def evaluate_buffers_at_knot(self, u: float, num_derivative: int = 0):
        """
        在节点值 u 处求值，结果写入 pole_buffer / pole_buffer1 / pole_buffer2。

        Args:
            u: 节点值
            num_derivative: 需要的导数阶数 (0, 1, 2)
        """
        knot_index0 = self.knots.knot_to_left_knot_index(u)
        first_pole = knot_index0 - self.degree + 1
        if num_derivative < 1:
            self.knots.evaluate_basis_functions(knot_index0, u, self.basis_buffer)
        elif num_derivative == 1:
            self.knots.evaluate_basis_functions1(knot_index0, u, self.basis_buffer, self.basis_buffer1)
        else:
            self.knots.evaluate_basis_functions1(
                knot_index0, u, self.basis_buffer, self.basis_buffer1, self.basis_buffer2
            )
        self.pole_buffer = self._sum_poles(self.basis_buffer, first_pole)
        if num_derivative >= 1:
            self.pole_buffer1 = self._sum_poles(self.basis_buffer1, first_pole)
        if num_derivative >= 2:
            self.pole_buffer2 = self._sum_poles(self.basis_buffer2, first_pole)

    def reverse_in_place(self):
        self.packed_data = self.packed_data[::-1].copy()
        self.knots.reflect_knots()

    def test_closeable_polygon(self, mode: BSplineWrapMode | None = None) -> bool:
        """周期存储时，前 degree 个极点必须与末尾 degree 个极点一致"""
        if mode is None:
            mode = self.knots.wrappable
        if mode == BSplineWrapMode.OPEN_BY_ADDING_CONTROL_POINTS:
            degree = self.degree
            offset = self.num_poles - degree
            head = self.packed_data[:degree]
            tail = self.packed_data[offset : offset + degree]
            return all(is_same_coordinate(a, b) for a, b in zip(head.ravel(), tail.ravel()))
        if mode == BSplineWrapMode.OPEN_BY_REMOVING_KNOTS:
            return True
        return False

    def add_knot(self, knot: float, total_multiplicity: int) -> bool:
        """
        Boehm 节点插入，把 knot 的重数提高到 min(total_multiplicity, degree)。

        曲线形状不变。已有足够重数时不修改并返回 True；
        knot 在有效区间外时返回 False 且不修改。
        """
        knot_vector = self.knots
        if knot < knot_vector.left_knot or knot > knot_vector.right_knot:
            return False
        degree = self.degree
        tol = knot_vector.knot_tolerance
        i_left = knot_vector.knot_to_left_knot_index(knot)
        if abs(knot - knot_vector.knots[i_left]) < tol:
            knot = float(knot_vector.knots[i_left])
        elif abs(knot - knot_vector.knots[i_left + 1]) < tol:
            i_left += knot_vector.get_knot_multiplicity_at_index(i_left + 1)
            if i_left > knot_vector.right_knot_index:
                return True
            knot = float(knot_vector.knots[i_left])
        num_knots_to_add = min(total_multiplicity, degree) - knot_vector.get_knot_multiplicity(knot)
        if num_knots_to_add <= 0:
            return True

        knots = knot_vector.knots.copy()
        poles = self.packed_data.copy()
        for _ in range(num_knots_to_add):
            i_start = i_left - degree + 2
            new_poles = np.empty((degree, self.pole_length))
            for row, i in enumerate(range(i_start, i_start + degree)):
                fraction = (knot - knots[i - 1]) / (knots[i + degree - 1] - knots[i - 1])
                new_poles[row] = poles[i - 1] + fraction * (poles[i] - poles[i - 1])
            poles = np.concatenate([poles[:i_start], new_poles, poles[i_start + degree - 1 :]])
            knots = np.insert(knots, i_left + 1, knot)
            i_left += 1
        knot_vector.knots = knots
        self.packed_data = poles
        return True
