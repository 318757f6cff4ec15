"""
bezier1d_nd - 打包 Bezier 控制多边形

保存 order 个极点 (每行 block_size 个数)，不含节点。
B样条的每个跨度经 "饱和" (saturate) 后都可表示成这样一个 Bezier 段，
interval 记录该段在父曲线全局分数空间中的区间。
"""

from math import comb

import numpy as np

from .knot_vector import KnotVector
from ..utils.geometry import is_almost_equal_number, is_same_point


def bernstein_basis(order: int, u: float) -> np.ndarray:
    """order 个 Bernstein 基函数在 u 处的值"""
    degree = order - 1
    v = 1.0 - u
    return np.array([comb(degree, i) * u**i * v ** (degree - i) for i in range(order)])


class Bezier1dNd:
    """
    Bezier 控制多边形。

    Attributes:
        packed_data: (order, block_size) 极点数组
        interval: 在父曲线中的分数区间 (f0, f1)，未饱和时为 None
    """

    def __init__(self, block_size: int, polygon: np.ndarray | None = None, order: int | None = None):
        if polygon is None:
            polygon = np.zeros((order, block_size))
        self.packed_data = np.array(polygon, dtype=float).reshape(-1, block_size)
        self.interval: tuple[float, float] | None = None

    @classmethod
    def create(cls, points) -> "Bezier1dNd | None":
        """从点列 (N, 2|3|4) 构造"""
        points = np.asarray(points, dtype=float)
        if points.ndim != 2 or len(points) < 1 or points.shape[1] not in (2, 3, 4):
            return None
        return cls(points.shape[1], points)

    @property
    def order(self) -> int:
        return self.packed_data.shape[0]

    @property
    def degree(self) -> int:
        return self.order - 1

    @property
    def block_size(self) -> int:
        return self.packed_data.shape[1]

    def clone_polygon(self) -> np.ndarray:
        return self.packed_data.copy()

    def evaluate(self, s: float) -> np.ndarray:
        return bernstein_basis(self.order, s) @ self.packed_data

    def evaluate_derivative(self, s: float) -> np.ndarray:
        """对局部参数 s 的导数"""
        if self.order < 2:
            return np.zeros(self.block_size)
        differences = self.packed_data[1:] - self.packed_data[:-1]
        return self.degree * (bernstein_basis(self.order - 1, s) @ differences)

    def get_polygon_point(self, i: int) -> np.ndarray | None:
        if 0 <= i < self.order:
            return self.packed_data[i].copy()
        return None

    def load_span_poles(self, data: np.ndarray, span_index: int):
        """从 B样条极点数组中复制 order 个极点 (从 span_index 开始)"""
        self.packed_data[:] = data[span_index : span_index + self.order]

    def load_span_poles_with_weight(self, data: np.ndarray, span_index: int, weight: float):
        """复制三维极点并在末列追加权重，得到齐次多边形"""
        block = data[span_index : span_index + self.order]
        self.packed_data[:, :-1] = block
        self.packed_data[:, -1] = weight

    def is_almost_equal(self, other) -> bool:
        if not isinstance(other, Bezier1dNd):
            return False
        if self.order != other.order or self.block_size != other.block_size:
            return False
        return is_same_point(self.packed_data, other.packed_data)

    def reverse_in_place(self):
        self.packed_data[:] = self.packed_data[::-1].copy()

    def interpolate_pole_in_place(self, pole_index_a: int, fraction: float, pole_index_b: int):
        """极点 a 原地替换为 a + fraction * (b - a)"""
        data = self.packed_data
        data[pole_index_a] += fraction * (data[pole_index_b] - data[pole_index_a])

    def saturate_in_place(self, knots: KnotVector, span_index: int) -> bool:
        """
        把已加载的跨度极点转换为该跨度的精确 Bezier 极点。

        相当于在跨度两端插入节点直至重数为 degree。调用前需先 load_span_poles。

        Returns:
            跨度无效或长度为零时返回 False
        """
        degree = knots.degree
        k_a = span_index + degree - 1
        k_b = k_a + 1
        if span_index < 0 or span_index >= knots.num_spans:
            return False
        knot_array = knots.knots
        knot_a = knot_array[k_a]
        knot_b = knot_array[k_b]
        self.set_interval(knot_a, knot_b)
        if knot_b <= knot_a + knots.knot_tolerance:
            return False
        for num_insert in range(degree - 1, 0, -1):
            # 在左端插入 knot_a
            k0 = k_a - num_insert
            if knot_array[k0] < knot_a:
                k1 = k_b
                for i in range(num_insert):
                    fraction = (knot_a - knot_array[k0]) / (knot_array[k1] - knot_array[k0])
                    self.interpolate_pole_in_place(i, fraction, i + 1)
                    k0 += 1
                    k1 += 1
        for num_insert in range(degree - 1, 0, -1):
            # 在右端插入 knot_b
            k2 = k_b + num_insert
            if knot_array[k2] > knot_b:
                for i in range(num_insert):
                    fraction = (knot_b - knot_array[k2]) / (knot_a - knot_array[k2])
                    self.interpolate_pole_in_place(degree - i, fraction, degree - i - 1)
                    k2 -= 1
        return True

    @staticmethod
    def saturate_1d_in_place(coffs: np.ndarray, knots: KnotVector, span_index: int) -> bool:
        """标量系数版本的 saturate_in_place，coffs 为长度 order 的数组"""
        degree = knots.degree
        k_a = span_index + degree - 1
        k_b = k_a + 1
        if span_index < 0 or span_index >= knots.num_spans:
            return False
        knot_array = knots.knots
        knot_a = knot_array[k_a]
        knot_b = knot_array[k_b]
        if knot_b <= knot_a + knots.knot_tolerance:
            return False
        for num_insert in range(degree - 1, 0, -1):
            k0 = k_a - num_insert
            if knot_array[k0] < knot_a:
                k1 = k_b
                for i in range(num_insert):
                    fraction = (knot_a - knot_array[k0]) / (knot_array[k1] - knot_array[k0])
                    coffs[i] += fraction * (coffs[i + 1] - coffs[i])
                    k0 += 1
                    k1 += 1
        for num_insert in range(degree - 1, 0, -1):
            k2 = k_b + num_insert
            if knot_array[k2] > knot_b:
                for i in range(num_insert):
                    fraction = (knot_b - knot_array[k2]) / (knot_a - knot_array[k2])
                    coffs[degree - i] += fraction * (coffs[degree - i - 1] - coffs[degree - i])
                    k2 -= 1
        return True

    def subdivide_in_place_keep_left(self, fraction: float) -> bool:
        """de Casteljau 细分，保留 [0, fraction] 部分"""
        if is_almost_equal_number(fraction, 1.0):
            return True
        if is_almost_equal_number(fraction, 0.0):
            return False
        g = 1.0 - fraction
        order = self.order
        data = self.packed_data
        for level in range(1, order):
            for i1 in range(order - 1, level - 1, -1):
                data[i1] += g * (data[i1 - 1] - data[i1])
        return True

    def subdivide_in_place_keep_right(self, fraction: float) -> bool:
        """de Casteljau 细分，保留 [fraction, 1] 部分"""
        if is_almost_equal_number(fraction, 0.0):
            return True
        if is_almost_equal_number(fraction, 1.0):
            return False
        order = self.order
        data = self.packed_data
        for level in range(1, order):
            for i0 in range(order - level):
                data[i0] += fraction * (data[i0 + 1] - data[i0])
        return True

    def subdivide_to_interval_in_place(self, fraction0: float, fraction1: float) -> bool:
        """
        保留 [fraction0, fraction1] 部分并重新参数化到 [0, 1]。

        fraction1 < fraction0 时结果方向反转。
        """
        if is_almost_equal_number(fraction0, fraction1):
            return False
        if fraction1 < fraction0:
            self.subdivide_to_interval_in_place(fraction1, fraction0)
            self.reverse_in_place()
            return True
        self.subdivide_in_place_keep_left(fraction1)
        self.subdivide_in_place_keep_right(fraction0 / fraction1)
        return True

    def set_interval(self, a: float, b: float):
        self.interval = (float(a), float(b))

    def fraction_to_parent_fraction(self, fraction: float) -> float:
        if self.interval is None:
            return fraction
        a, b = self.interval
        return a + fraction * (b - a)
