"""
bezier_polynomials - Bernstein 基多项式代数

Bezier 曲线的每个坐标分量都是 [0,1] 上的 Bernstein 多项式。
本模块提供最近点、包围盒等查询所需的代数运算:

1. 求值 (de Casteljau)
2. 差分 (导数方向, 阶数减一)
3. 乘积 (阶数 m + n - 1)
4. [0,1] 内实根求解
"""

from math import comb

import numpy as np
from numpy.polynomial import polynomial as P

from ..config import ROOT_IMAGINARY_TOLERANCE


def bernstein_evaluate(coffs: np.ndarray, u: float) -> float:
    """de Casteljau 求值"""
    work = np.array(coffs, dtype=float)
    order = len(work)
    if order == 0:
        return 0.0
    for level in range(1, order):
        work[: order - level] += u * (work[1 : order - level + 1] - work[: order - level])
    return float(work[0])


def bernstein_difference(coffs: np.ndarray) -> np.ndarray:
    """
    相邻系数差分 c[i+1] - c[i]。

    结果是导数的 Bernstein 系数除以次数，阶数减一；求根时二者等价。
    """
    coffs = np.asarray(coffs, dtype=float)
    return coffs[1:] - coffs[:-1]


def bernstein_product(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    两个 Bernstein 多项式的乘积。

    h_k = Σ_{i+j=k} C(m,i) C(n,j) / C(m+n,k) * a_i * b_j

    Args:
        a: (m+1,) 系数
        b: (n+1,) 系数

    Returns:
        (m+n+1,) 乘积系数
    """
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    m = len(a) - 1
    n = len(b) - 1
    result = np.zeros(m + n + 1)
    for i in range(m + 1):
        ci = comb(m, i) * a[i]
        for j in range(n + 1):
            result[i + j] += ci * comb(n, j) * b[j]
    for k in range(m + n + 1):
        result[k] /= comb(m + n, k)
    return result


def bernstein_to_power(coffs: np.ndarray) -> np.ndarray:
    """Bernstein 系数转为幂基系数 (低次在前)"""
    coffs = np.asarray(coffs, dtype=float)
    n = len(coffs) - 1
    power = np.zeros(n + 1)
    for i in range(n + 1):
        scale = comb(n, i) * coffs[i]
        if scale == 0.0:
            continue
        for k in range(i, n + 1):
            power[k] += scale * comb(n - i, k - i) * (-1.0) ** (k - i)
    return power


def _polish_root(coffs: np.ndarray, derivative: np.ndarray, u: float, iterations: int = 3) -> float:
    degree = len(coffs) - 1
    for _ in range(iterations):
        f = bernstein_evaluate(coffs, u)
        df = degree * bernstein_evaluate(derivative, u) if degree > 0 else 0.0
        if df == 0.0:
            break
        step = f / df
        candidate = u - step
        if candidate < 0.0 or candidate > 1.0:
            break
        u = candidate
        if abs(step) < 1e-15:
            break
    return u


def bernstein_roots_01(coffs: np.ndarray, tol: float = 1e-10) -> list[float]:
    """
    求 Bernstein 多项式在 [0,1] 内的实根。

    恒为零的多项式返回空列表。

    Args:
        coffs: Bernstein 系数
        tol: 端点外扩容差

    Returns:
        升序、去重后的根
    """
    coffs = np.asarray(coffs, dtype=float)
    if len(coffs) < 2:
        return []
    scale = np.max(np.abs(coffs))
    if scale == 0.0:
        return []
    # 所有系数同号时 (凸包性质) 无根
    normalized = coffs / scale
    if np.all(normalized > 0.0) or np.all(normalized < 0.0):
        return []

    power = P.polytrim(bernstein_to_power(normalized), 1e-14)
    if len(power) < 2:
        return []
    derivative = bernstein_difference(normalized)
    roots = []
    for root in P.polyroots(power):
        if abs(root.imag) > ROOT_IMAGINARY_TOLERANCE * (1.0 + abs(root.real)):
            continue
        u = root.real
        if u < -tol or u > 1.0 + tol:
            continue
        u = min(1.0, max(0.0, u))
        roots.append(_polish_root(normalized, derivative, u))
    roots.sort()
    unique = []
    for u in roots:
        if not unique or abs(u - unique[-1]) > 1e-12:
            unique.append(u)
    return unique


class UnivariateBezier:
    """
    单变量 Bernstein 多项式，系数数组可原地累加。

    主要用于把若干 "分量多项式乘积" 累加为一个多项式再求根。
    """

    def __init__(self, order: int):
        self.coffs = np.zeros(order)

    @property
    def order(self) -> int:
        return len(self.coffs)

    @classmethod
    def create_coffs(cls, coffs: np.ndarray) -> "UnivariateBezier":
        result = cls(len(coffs))
        result.coffs[:] = coffs
        return result

    def evaluate(self, u: float) -> float:
        return bernstein_evaluate(self.coffs, u)

    def zero(self):
        self.coffs[:] = 0.0

    def accumulate_product(self, a: np.ndarray, b: np.ndarray, scale: float = 1.0):
        """self += scale * a * b，要求阶数匹配"""
        product = bernstein_product(a, b)
        if len(product) != self.order:
            raise ValueError(f"Product order {len(product)} does not match {self.order}")
        self.coffs += scale * product

    def roots(self, target: float = 0.0) -> list[float]:
        """多项式等于 target 的 [0,1] 内参数"""
        return bernstein_roots_01(self.coffs - target)
