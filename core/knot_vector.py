"""
knot_vector - B样条节点向量

采用 "去掉首尾" 的节点约定: len(knots) == num_poles + degree - 1。
有效参数区间为 [knots[degree-1], knots[len-degree]]。

实现:
1. 分数 / 节点 / 跨度之间的换算
2. Cox-de Boor 基函数递推 (含一阶、二阶导数)
3. 节点重数查询、周期闭合检测、反转、归一化
"""

from enum import IntEnum

import numpy as np

from ..config import KNOT_TOLERANCE
from ..utils.geometry import is_same_coordinate, is_small_metric_distance


class BSplineWrapMode(IntEnum):
    """周期曲线的存储方式"""

    NONE = 0
    # 在末尾重复 degree 个首极点
    OPEN_BY_ADDING_CONTROL_POINTS = 1
    # 两端节点重复, 去掉多余节点后闭合
    OPEN_BY_REMOVING_KNOTS = 2


class KnotVector:
    """
    非递减节点序列 + 次数。

    Attributes:
        knots: (num_poles + degree - 1,) 节点数组
        degree: 次数 (阶数 - 1)
        wrappable: 周期存储方式
    """

    knot_tolerance = KNOT_TOLERANCE

    def __init__(self, knots, degree: int, wrappable: BSplineWrapMode = BSplineWrapMode.NONE):
        self.knots = np.array(knots, dtype=float)
        self.degree = int(degree)
        self.wrappable = BSplineWrapMode(wrappable)

    # ------------------------------------------------------------------
    # 构造
    # ------------------------------------------------------------------

    @classmethod
    def create(cls, knot_array, degree: int, skip_first_and_last: bool = False) -> "KnotVector":
        """
        从节点数组构造。

        Args:
            knot_array: 节点值
            degree: 次数
            skip_first_and_last: 为 True 时丢弃首尾各一个节点 (经典 "夹紧" 约定)
        """
        knots = np.asarray(knot_array, dtype=float)
        if skip_first_and_last:
            knots = knots[1:-1]
        return cls(knots, degree)

    @classmethod
    def create_uniform_clamped(cls, num_poles: int, degree: int, a0: float = 0.0, a1: float = 1.0) -> "KnotVector":
        """端点重复 degree 次、内部均匀分布的节点向量"""
        du = 1.0 / (num_poles - degree)
        interior = [a0 + i * du * (a1 - a0) for i in range(1, num_poles - degree)]
        knots = [a0] * degree + interior + [a1] * degree
        return cls(knots, degree)

    @classmethod
    def create_uniform_wrapped(cls, num_interval: int, degree: int, a0: float = 0.0, a1: float = 1.0) -> "KnotVector":
        """两端向外均匀延伸的周期节点向量，共 num_interval + 2*degree - 1 个"""
        du = 1.0 / num_interval
        knots = [a0 + i * du * (a1 - a0) for i in range(1 - degree, num_interval + degree)]
        return cls(knots, degree)

    def clone(self) -> "KnotVector":
        return KnotVector(self.knots.copy(), self.degree, self.wrappable)

    # ------------------------------------------------------------------
    # 固定值
    # ------------------------------------------------------------------

    @property
    def left_knot_index(self) -> int:
        return self.degree - 1

    @property
    def right_knot_index(self) -> int:
        return len(self.knots) - self.degree

    @property
    def left_knot(self) -> float:
        return float(self.knots[self.left_knot_index])

    @property
    def right_knot(self) -> float:
        return float(self.knots[self.right_knot_index])

    @property
    def knot_length01(self) -> float:
        return self.right_knot - self.left_knot

    @property
    def num_spans(self) -> int:
        return self.right_knot_index - self.left_knot_index

    @property
    def num_poles(self) -> int:
        return len(self.knots) - self.degree + 1

    def create_basis_array(self) -> np.ndarray:
        return np.zeros(self.degree + 1)

    # ------------------------------------------------------------------
    # 参数换算
    # ------------------------------------------------------------------

    def fraction_to_knot(self, fraction: float) -> float:
        """全局分数 [0,1] 映射到节点值 (B样条不可外延，先截断)"""
        fraction = min(1.0, max(0.0, fraction))
        return self.left_knot + fraction * (self.right_knot - self.left_knot)

    def knot_to_fraction(self, knot: float) -> float:
        return (knot - self.left_knot) / (self.right_knot - self.left_knot)

    def span_index_to_left_knot_index(self, span_index: int) -> int:
        d = self.degree
        if span_index <= 0:
            return d - 1
        return min(span_index + d - 1, len(self.knots) - d - 1)

    def span_index_to_span_length(self, span_index: int) -> float:
        k = self.span_index_to_left_knot_index(span_index)
        return float(self.knots[k + 1] - self.knots[k])

    def is_index_of_real_span(self, span_index: int) -> bool:
        """跨度存在且长度不为零"""
        if 0 <= span_index < self.num_spans:
            return not is_small_metric_distance(self.span_index_to_span_length(span_index))
        return False

    def span_fraction_to_knot(self, span_index: int, local_fraction: float) -> float:
        k = self.span_index_to_left_knot_index(span_index)
        local_fraction = min(1.0, max(0.0, local_fraction))
        return float(self.knots[k] + local_fraction * (self.knots[k + 1] - self.knots[k]))

    def span_fraction_to_fraction(self, span_index: int, local_fraction: float) -> float:
        return self.knot_to_fraction(self.span_fraction_to_knot(span_index, local_fraction))

    def base_knot_fraction_to_knot(self, knot_index0: int, local_fraction: float) -> float:
        knot0 = self.knots[knot_index0]
        local_fraction = min(1.0, max(0.0, local_fraction))
        return float(knot0 + local_fraction * (self.knots[knot_index0 + 1] - knot0))

    def knot_to_left_knot_index(self, u: float) -> int:
        """
        返回包含 u 的跨度左端节点下标。

        先从左向右找第一个右端大于 u 的跨度；否则 (u 位于右端或右侧)
        从右向左找最后一个非零长度跨度。
        """
        left = self.left_knot_index
        right = self.right_knot_index
        for i in range(left, right):
            if u < self.knots[i + 1]:
                return i
        for i in range(right, left, -1):
            if self.knots[i] - self.knots[i - 1] >= self.knot_tolerance:
                return i - 1
        return right - 1

    def greville_knot(self, knot_index: int) -> float:
        """极点 knot_index 对应的 Greville 横坐标 (连续 degree 个节点的均值)"""
        if knot_index < 0:
            return self.left_knot
        if knot_index > self.right_knot_index:
            return self.right_knot
        return float(np.mean(self.knots[knot_index : knot_index + self.degree]))

    # ------------------------------------------------------------------
    # 基函数
    # ------------------------------------------------------------------

    def evaluate_basis_functions(self, knot_index0: int, u: float, f: np.ndarray | None = None) -> np.ndarray:
        """
        计算跨度 [knots[k0], knots[k0+1]] 上 degree+1 个非零基函数值。

        Args:
            knot_index0: 跨度左端节点下标 k0
            u: 节点值
            f: 可选输出数组 (degree+1,)，原地写入

        Returns:
            f
        """
        if f is None:
            f = self.create_basis_array()
        knots = self.knots
        f[0] = 1.0
        if self.degree < 1:
            return f
        u0 = knots[knot_index0]
        u1 = knots[knot_index0 + 1]
        f[1] = (u - u0) / (u1 - u0)
        f[0] = 1.0 - f[1]
        for depth in range(1, self.degree):
            k_left = knot_index0 - depth
            k_right = k_left + depth + 1
            g_carry = 0.0
            for step in range(depth + 1):
                t_left = knots[k_left + step]
                t_right = knots[k_right + step]
                fraction = (u - t_left) / (t_right - t_left)
                g1 = f[step] * fraction
                g0 = f[step] * (1.0 - fraction)
                f[step] = g_carry + g0
                g_carry = g1
            f[depth + 1] = g_carry
        return f

    def evaluate_basis_functions1(
        self,
        knot_index0: int,
        u: float,
        f: np.ndarray,
        df: np.ndarray,
        ddf: np.ndarray | None = None,
    ):
        """
        同时计算基函数值及其一阶 (可选二阶) 导数。

        对凸组合 g = f * t 求导: g' = f' * t + f * t'，其中 t' = 1 / (tR - tL)。
        """
        knots = self.knots
        f[0] = 1.0
        df[0] = 0.0
        if self.degree < 1:
            return
        u0 = knots[knot_index0]
        u1 = knots[knot_index0 + 1]
        ah = 1.0 / (u1 - u0)
        f[1] = (u - u0) * ah
        f[0] = 1.0 - f[1]
        df[0] = -ah
        df[1] = ah
        if ddf is not None:
            ddf[0] = 0.0
            ddf[1] = 0.0
        for depth in range(1, self.degree):
            k_left = knot_index0 - depth
            k_right = k_left + depth + 1
            g_carry = 0.0
            dg_carry = 0.0
            ddg_carry = 0.0
            for step in range(depth + 1):
                t_left = knots[k_left + step]
                t_right = knots[k_right + step]
                ah = 1.0 / (t_right - t_left)
                fraction = (u - t_left) * ah
                fraction1 = 1.0 - fraction
                g1 = f[step] * fraction
                g0 = f[step] * fraction1
                dg1 = df[step] * fraction + f[step] * ah
                dg0 = df[step] * fraction1 - f[step] * ah
                df_save = 2.0 * df[step] * ah
                f[step] = g_carry + g0
                df[step] = dg_carry + dg0
                g_carry = g1
                dg_carry = dg1
                if ddf is not None:
                    ddg1 = ddf[step] * fraction + df_save
                    ddg0 = ddf[step] * fraction1 - df_save
                    ddf[step] = ddg_carry + ddg0
                    ddg_carry = ddg1
            f[depth + 1] = g_carry
            df[depth + 1] = dg_carry
            if ddf is not None:
                ddf[depth + 1] = ddg_carry

    # ------------------------------------------------------------------
    # 重数与闭合
    # ------------------------------------------------------------------

    def get_knot_multiplicity(self, knot: float) -> int:
        m = 0
        for k in self.knots:
            if abs(k - knot) < self.knot_tolerance:
                m += 1
            elif knot < k:
                break
        return m

    def get_knot_multiplicity_at_index(self, knot_index: int) -> int:
        if not 0 <= knot_index < len(self.knots):
            return 0
        knot = self.knots[knot_index]
        m = 1
        for i in range(knot_index - 1, -1, -1):
            k = self.knots[i]
            if abs(k - knot) < self.knot_tolerance:
                m += 1
            elif knot > k:
                break
        for i in range(knot_index + 1, len(self.knots)):
            k = self.knots[i]
            if abs(k - knot) < self.knot_tolerance:
                m += 1
            elif knot < k:
                break
        return m

    def test_closable(self, mode: BSplineWrapMode | None = None) -> bool:
        """
        检查节点序列能否按给定方式闭合。

        OPEN_BY_ADDING_CONTROL_POINTS: 有效区间两侧各 degree-1 个节点按周期平移对应。
        OPEN_BY_REMOVING_KNOTS: 两端节点各重复 degree 次。
        """
        if mode is None:
            mode = self.wrappable
        left = self.left_knot_index
        right = self.right_knot_index
        period = self.right_knot - self.left_knot
        degree = self.degree
        index_delta = right - left
        if mode == BSplineWrapMode.OPEN_BY_ADDING_CONTROL_POINTS:
            for k0 in range(left - degree + 1, left + degree - 1):
                k1 = k0 + index_delta
                if not is_same_coordinate(self.knots[k0] + period, self.knots[k1]):
                    return False
            return True
        if mode == BSplineWrapMode.OPEN_BY_REMOVING_KNOTS:
            left_knot = self.left_knot
            right_knot = self.right_knot
            for i in range(degree - 1):
                if not is_same_coordinate(left_knot, self.knots[left - i - 1]):
                    return False
                if not is_same_coordinate(right_knot, self.knots[right + i + 1]):
                    return False
            return True
        return False

    # ------------------------------------------------------------------
    # 原地修改
    # ------------------------------------------------------------------

    def reflect_knots(self):
        """u -> left + right - u，并反转顺序"""
        a = self.left_knot
        b = self.right_knot
        self.knots = (a + (b - self.knots))[::-1].copy()

    def normalize(self) -> bool:
        """
        把有效区间线性映射到 [0, 1]。

        Returns:
            区间长度小于节点容差时返回 False 且不修改
        """
        if self.knot_length01 < self.knot_tolerance:
            return False
        left_knot = self.left_knot
        right_value = self.knots[self.right_knot_index]
        at_right = self.knots == right_value
        self.knots = (self.knots - left_knot) / self.knot_length01
        # 与右端节点相同的节点精确置为 1
        self.knots[at_right] = 1.0
        return True

    # ------------------------------------------------------------------
    # 比较与导出
    # ------------------------------------------------------------------

    def is_almost_equal(self, other: "KnotVector") -> bool:
        if self.degree != other.degree or len(self.knots) != len(other.knots):
            return False
        return bool(np.all(np.abs(self.knots - other.knots) < self.knot_tolerance))

    def copy_knots(self, include_extra_end_knot: bool) -> list[float]:
        """
        导出节点列表。

        include_extra_end_knot 为 True 时在两端各补一个节点，得到经典的
        num_poles + order 长度节点向量。周期曲线补的是按周期平移的节点。
        """
        wrap = self.wrappable == BSplineWrapMode.OPEN_BY_ADDING_CONTROL_POINTS and self.test_closable()
        degree = self.degree
        delta = self.right_knot - self.left_knot
        values = [float(u) for u in self.knots]
        if include_extra_end_knot:
            if wrap:
                first = float(self.knots[self.right_knot_index - degree] - delta)
                last = float(self.knots[self.left_knot_index + degree] + delta)
            else:
                first = values[0]
                last = values[-1]
            values = [first] + values + [last]
        return values

    def __repr__(self):
        return f"KnotVector(degree={self.degree}, knots={self.knots.tolist()}, wrappable={self.wrappable.name})"
