"""
integrals - 数值积分工具函数

曲线弧长 L = ∫_a^b ||C'(u)|| du 的自适应求积。

B样条曲线逐 Bezier 段积分，每段内被积函数光滑，
因此基本求积公式默认取 Gauss-Legendre，Simpson 作为低阶备选。
"""

from typing import Callable

import numpy as np

QuadratureRule = Callable[[Callable[[float], float], float, float], float]


def simpson(f: Callable[[float], float], a: float, b: float) -> float:
    """(b-a)/6 * [f(a) + 4f((a+b)/2) + f(b)]"""
    c = (a + b) / 2
    return (b - a) / 6 * (f(a) + 4 * f(c) + f(b))


def gauss_legendre(f: Callable[[float], float], a: float, b: float, num_gauss: int = 5) -> float:
    """固定点数 Gauss-Legendre 积分，对 2*num_gauss-1 次多项式精确"""
    nodes, weights = np.polynomial.legendre.leggauss(num_gauss)
    half = 0.5 * (b - a)
    mid = 0.5 * (a + b)
    return half * sum(w * f(mid + half * x) for x, w in zip(nodes, weights))


def adaptive_quadrature(
    f: Callable[[float], float],
    a: float,
    b: float,
    tol: float = 1e-10,
    rule: QuadratureRule = gauss_legendre,
    max_depth: int = 30,
) -> float:
    """
    自适应求积。

    整段估计与两半估计之差超过容差时二分区间递归，容差随之减半。

    Args:
        f: 被积函数
        a: 积分下限
        b: 积分上限
        tol: 误差容差
        rule: 基本求积公式 rule(f, a, b)
        max_depth: 最大递归深度，达到后直接接受当前估计

    Returns:
        积分值
    """
    whole = rule(f, a, b)
    return _refine(f, a, b, whole, tol, rule, max_depth)


def _refine(f, a, b, whole, tol, rule, depth):
    c = (a + b) / 2
    left = rule(f, a, c)
    right = rule(f, c, b)
    if depth <= 0 or abs(left + right - whole) < tol:
        return left + right
    return _refine(f, a, c, left, tol / 2, rule, depth - 1) + _refine(f, c, b, right, tol / 2, rule, depth - 1)


def arc_length_integral(
    derivative_func: Callable[[float], np.ndarray],
    a: float,
    b: float,
    tol: float = 1e-10,
) -> float:
    """
    参数曲线在 [a, b] 上的有向弧长 (b < a 时为负)。

    Args:
        derivative_func: 曲线的导数函数，返回 (3,) 向量
        a: 参数下限
        b: 参数上限
        tol: 积分误差容差

    Returns:
        弧长值
    """
    if a == b:
        return 0.0

    def integrand(u: float) -> float:
        return float(np.linalg.norm(derivative_func(u)))

    return adaptive_quadrature(integrand, a, b, tol)
