"""
nurbs_circle - 精确有理二次圆

整圆由 4 段二次有理 Bezier 拼成: 9 个极点 (首尾重合)，
角点权重 √2/2，节点在 1/4, 1/2, 3/4 处二重。

数据说明:
- poles: 笛卡尔坐标 (未乘权重)
- weights: 每个极点的权重
- knots: 经典约定节点向量 (num_poles + order 个)
"""

from dataclasses import dataclass, field

import numpy as np

_CORNER_WEIGHT = np.sqrt(0.5)

# 单位圆控制多边形 (z = 0)，从 (1, 0) 逆时针
_UNIT_POLES = np.array(
    [
        [1.0, 0.0, 0.0],
        [1.0, 1.0, 0.0],
        [0.0, 1.0, 0.0],
        [-1.0, 1.0, 0.0],
        [-1.0, 0.0, 0.0],
        [-1.0, -1.0, 0.0],
        [0.0, -1.0, 0.0],
        [1.0, -1.0, 0.0],
        [1.0, 0.0, 0.0],
    ],
    dtype=np.float64,
)

_WEIGHTS = np.array([1.0, _CORNER_WEIGHT, 1.0, _CORNER_WEIGHT, 1.0, _CORNER_WEIGHT, 1.0, _CORNER_WEIGHT, 1.0])

_KNOTS = np.array([0.0, 0.0, 0.0, 0.25, 0.25, 0.5, 0.5, 0.75, 0.75, 1.0, 1.0, 1.0])


@dataclass
class NurbsCircle:
    """圆心、半径与对应的 NURBS 定义"""

    center: np.ndarray
    radius: float
    poles: np.ndarray
    weights: np.ndarray
    knots: np.ndarray
    order: int = 3
    # 各段端点 (权重为 1 的极点) 所在的全局分数
    joint_fractions: tuple = field(default=(0.0, 0.25, 0.5, 0.75, 1.0))

    def packed_xyzw(self) -> np.ndarray:
        """(9, 4) 齐次极点 (wx, wy, wz, w)"""
        return np.column_stack([self.poles * self.weights[:, None], self.weights])


def nurbs_circle(radius: float = 1.0, center=(0.0, 0.0, 0.0)) -> NurbsCircle:
    """
    获取 xy 平面内的精确 NURBS 圆。

    Args:
        radius: 半径
        center: 圆心

    Returns:
        NurbsCircle
    """
    center = np.asarray(center, dtype=float)
    return NurbsCircle(
        center=center,
        radius=float(radius),
        poles=_UNIT_POLES * radius + center,
        weights=_WEIGHTS.copy(),
        knots=_KNOTS.copy(),
    )
