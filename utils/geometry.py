"""
geometry - 几何计算工具函数

提供带容差的数值/坐标比较、安全除法、向量夹角、包围盒、平面与仿射变换等基础操作。
内核中所有"是否相等"的判断都应通过这里的函数完成，以保证容差一致。
"""

import math

import numpy as np

from ..config import (
    LARGE_FRACTION_RESULT,
    MAX_STROKE_COUNT,
    SMALL_FLOAT_RELATIVE,
    SMALL_METRIC_DISTANCE,
)

EPSILON = 1e-16


def normalize(vectors: np.ndarray) -> np.ndarray:
    """
    将向量归一化为单位向量。

    Args:
        vectors: 单个向量 (n,) 或向量数组 (m, n)

    Returns:
        归一化后的单位向量，与输入形状相同
    """
    vectors = np.asarray(vectors, dtype=float)
    if vectors.ndim == 1:
        norm = np.linalg.norm(vectors)
        return vectors / (norm + EPSILON)
    norm = np.linalg.norm(vectors, axis=-1, keepdims=True)
    return vectors / (norm + EPSILON)


def normalize_or_none(vector: np.ndarray | None) -> np.ndarray | None:
    """
    归一化单个向量；长度小于微小距离时返回 None。

    用于切向量等"零向量即视为未给出"的场合。
    """
    if vector is None:
        return None
    vector = np.asarray(vector, dtype=float)
    magnitude = np.linalg.norm(vector)
    if magnitude < SMALL_METRIC_DISTANCE:
        return None
    return vector / magnitude


def is_small_metric_distance(distance: float) -> bool:
    return abs(distance) < SMALL_METRIC_DISTANCE


def is_same_coordinate(a: float, b: float, tol: float = SMALL_METRIC_DISTANCE) -> bool:
    return abs(a - b) < tol


def is_almost_equal_number(a: float, b: float) -> bool:
    """相对容差比较: |a - b| < 1e-12 * max(1, |a|, |b|)"""
    scale = max(1.0, abs(a), abs(b))
    return abs(a - b) < SMALL_FLOAT_RELATIVE * scale


def is_same_point(a: np.ndarray, b: np.ndarray, tol: float = SMALL_METRIC_DISTANCE) -> bool:
    """逐坐标比较两个点 (任意维度)"""
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    if a.shape != b.shape:
        return False
    return bool(np.all(np.abs(a - b) < tol))


def conditional_divide_fraction(numerator: float, denominator: float) -> float | None:
    """
    安全除法。

    仅当 |denominator| * 1e10 > |numerator| 时返回商，否则返回 None。
    """
    if abs(denominator) * LARGE_FRACTION_RESULT > abs(numerator):
        return numerator / denominator
    return None


def interpolate(a, fraction: float, b):
    """线性插值 a + fraction * (b - a)，对标量和数组都适用"""
    return a + fraction * (b - a)


def radians_between_vectors(u: np.ndarray, v: np.ndarray) -> float:
    """两向量夹角 [0, π]，使用 atan2 保证小角度精度"""
    cross = np.linalg.norm(np.cross(u, v))
    dot = float(np.dot(u, v))
    return math.atan2(cross, dot)


def step_count(step_size: float, total: float, min_count: int = 1, max_count: int = MAX_STROKE_COUNT) -> int:
    """
    根据步长计算分段数。

    Args:
        step_size: 单步允许的最大值 (<= 0 时直接返回 min_count)
        total: 待分割的总量
        min_count: 分段数下限
        max_count: 分段数上限

    Returns:
        clamp(floor((total + 0.999999 * step_size) / step_size), min_count, max_count)
    """
    if step_size <= 0.0:
        return min_count
    total = abs(total)
    if total <= step_size:
        return min_count
    count = int(math.floor((total + 0.999999 * step_size) / step_size))
    return max(min_count, min(count, max_count))


class Range3d:
    """
    三维轴对齐包围盒。

    空盒的 low 为 +inf, high 为 -inf。
    """

    def __init__(self):
        self.low = np.full(3, np.inf)
        self.high = np.full(3, -np.inf)

    @property
    def is_null(self) -> bool:
        return bool(np.any(self.low > self.high))

    def extend_point(self, point: np.ndarray, transform: np.ndarray | None = None):
        point = np.asarray(point, dtype=float)
        if transform is not None:
            point = transform_points(transform, point)
        self.low = np.minimum(self.low, point)
        self.high = np.maximum(self.high, point)

    def extend_array(self, points: np.ndarray, transform: np.ndarray | None = None):
        points = np.asarray(points, dtype=float).reshape(-1, 3)
        if len(points) == 0:
            return
        if transform is not None:
            points = transform_points(transform, points)
        self.low = np.minimum(self.low, points.min(axis=0))
        self.high = np.maximum(self.high, points.max(axis=0))

    def contains_point(self, point: np.ndarray, tol: float = SMALL_METRIC_DISTANCE) -> bool:
        if self.is_null:
            return False
        point = np.asarray(point, dtype=float)
        return bool(np.all(point >= self.low - tol) and np.all(point <= self.high + tol))

    def __repr__(self):
        if self.is_null:
            return "Range3d(null)"
        return f"Range3d(low={self.low.tolist()}, high={self.high.tolist()})"


class Plane3d:
    """
    由原点和单位法向定义的平面。

    altitude(X) = (X - origin) · normal 为有符号距离。
    """

    def __init__(self, origin: np.ndarray, normal: np.ndarray):
        self.origin = np.asarray(origin, dtype=float)
        self.normal = normalize(normal)

    def altitude(self, point: np.ndarray) -> float:
        return float(np.dot(np.asarray(point, dtype=float) - self.origin, self.normal))

    def weighted_altitude(self, point4d: np.ndarray) -> float:
        """齐次点 (wx, wy, wz, w) 的加权高度: w * altitude(X)"""
        x, y, z, w = point4d
        return float(np.dot(np.array([x, y, z]), self.normal) - w * np.dot(self.origin, self.normal))

    def is_point_in_plane(self, point: np.ndarray, tol: float = SMALL_METRIC_DISTANCE) -> bool:
        return abs(self.altitude(point)) < tol


def transform_points(transform: np.ndarray, points: np.ndarray) -> np.ndarray:
    """
    用 4x4 仿射矩阵变换三维点。

    Args:
        transform: (4, 4) 齐次变换矩阵，最后一行为 [0, 0, 0, 1]
        points: (3,) 或 (N, 3)

    Returns:
        与输入同形状的变换后坐标
    """
    transform = np.asarray(transform, dtype=float)
    points = np.asarray(points, dtype=float)
    return points @ transform[:3, :3].T + transform[:3, 3]


def transform_points4d(transform: np.ndarray, points: np.ndarray) -> np.ndarray:
    """用 4x4 仿射矩阵变换齐次点 (N, 4)，平移量按各点权重缩放"""
    transform = np.asarray(transform, dtype=float)
    points = np.asarray(points, dtype=float)
    return points @ transform.T


def is_rigid_or_affine(transform: np.ndarray) -> bool:
    """仅接受最后一行为 [0, 0, 0, 1] 且可逆的变换"""
    transform = np.asarray(transform, dtype=float)
    if transform.shape != (4, 4):
        return False
    if not np.allclose(transform[3], [0.0, 0.0, 0.0, 1.0]):
        return False
    return abs(np.linalg.det(transform[:3, :3])) > EPSILON
