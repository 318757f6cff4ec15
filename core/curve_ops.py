"""
curve_ops - 过点拟合 B样条曲线

实现:
1. create_through_points: 任意阶插值。Greville 参数 + 均匀夹紧节点，
   带宽 2*degree+1 的带状方程组
2. create_through_points_c2_cubic: C2 连续三次插值
   - 去重、参数化 (弦长 / 均匀)、闭合点处理
   - 三对角系数 alpha / beta / gamma
   - 端点条件: Bessel、自然、弦长缩放切向、Bessel 长度缩放切向、物理闭合共线切向
   - 开曲线用三对角带状求解；闭曲线用循环近三对角消元后轮转极点
3. 三次节点向量与拟合参数之间的换算

拟合选项对象需提供 fit_points, knots, order, closed, is_chord_len_knots,
is_colinear_tangents, is_chord_len_tangents, is_natural_tangents,
start_tangent, end_tangent 以及 clone() (见 interpolation.InterpolationCurve3dOptions)。
"""

import logging

import numpy as np
from scipy.linalg import LinAlgError, solve_banded

from ..config import DEFAULT_FIT_ORDER, SMALL_METRIC_DISTANCE
from .bspline_curve import BSplineCurve3d
from .knot_vector import BSplineWrapMode, KnotVector
from ..utils.geometry import (
    conditional_divide_fraction,
    interpolate,
    is_same_point,
    normalize_or_none,
)

logger = logging.getLogger(__name__)


def _as_xyz(points) -> np.ndarray | None:
    points = np.asarray(points, dtype=float)
    if points.ndim != 2 or points.shape[1] not in (2, 3):
        return None
    if points.shape[1] == 2:
        points = np.column_stack([points, np.zeros(len(points))])
    return points


def create_through_points(points, order: int) -> BSplineCurve3d | None:
    """
    任意阶 B样条插值。

    节点取均匀夹紧节点，第 i 个点对应第 i 个极点的 Greville 横坐标。

    Args:
        points: (N, 3) 或 (N, 2) 待插值点
        order: 阶数, 2 <= order <= N

    Returns:
        插值曲线；参数不合法或方程组奇异时为 None
    """
    points = _as_xyz(points)
    if points is None:
        return None
    num_points = len(points)
    if order > num_points or order < 2:
        logger.debug("create_through_points rejected: order %s for %s points", order, num_points)
        return None
    degree = order - 1
    knots = KnotVector.create_uniform_clamped(num_points, degree, 0.0, 1.0)
    # solve_banded 对角存储: ab[degree + row - column, column] = A[row, column]
    ab = np.zeros((2 * degree + 1, num_points))
    basis = knots.create_basis_array()
    for row in range(num_points):
        u = knots.greville_knot(row)
        k0 = knots.knot_to_left_knot_index(u)
        knots.evaluate_basis_functions(k0, u, basis)
        first_pole = k0 - degree + 1
        for i in range(order):
            column = first_pole + i
            ab[degree + row - column, column] = basis[i]
    try:
        poles = solve_banded((degree, degree), ab, points)
    except LinAlgError as e:
        logger.debug("create_through_points: singular system (%s)", e)
        return None
    return BSplineCurve3d.create(poles, knots.knots, order)


def create_through_points_c2_cubic(options) -> BSplineCurve3d | None:
    """
    C2 三次插值。

    Args:
        options: 拟合选项，不会被修改 (内部先 clone 再规范化)

    Returns:
        插值曲线；闭合时 wrappable 为 OPEN_BY_ADDING_CONTROL_POINTS。
        选项不合法或方程组奇异时为 None
    """
    validated = options.clone()
    if not validate_options(validated):
        logger.debug("create_through_points_c2_cubic: options rejected")
        return None
    poles = construct_poles(validated)
    if poles is None:
        return None
    full_knots = convert_fit_params_to_cubic_knot_vector(validated.knots, validated.closed)
    if full_knots is None:
        return None
    curve = BSplineCurve3d.create(poles, full_knots, validated.order)
    if curve is not None and validated.closed:
        curve.set_wrappable(BSplineWrapMode.OPEN_BY_ADDING_CONTROL_POINTS)
    return curve


# ----------------------------------------------------------------------
# 参数化
# ----------------------------------------------------------------------


def _normalize_knots(knots) -> list[float] | None:
    if knots is None or len(knots) < 2:
        return None
    vector = KnotVector.create(knots, 1, False)
    if not vector.normalize():
        return None
    return vector.knots.tolist()


def _construct_chord_length_parameters(fit_points: np.ndarray) -> list[float] | None:
    if len(fit_points) < 2:
        return None
    distances = np.linalg.norm(np.diff(fit_points, axis=0), axis=1)
    return _normalize_knots(np.concatenate([[0.0], np.cumsum(distances)]))


def _construct_uniform_parameters(num_params: int) -> list[float] | None:
    if num_params < 2:
        return None
    knots = KnotVector.create_uniform_clamped(num_params + 2, 3, 0.0, 1.0)
    return knots.knots[knots.left_knot_index : knots.right_knot_index + 1].tolist()


def construct_fit_parameters_from_points(fit_points, is_chord_length: bool = False, closed: bool = False) -> list[float] | None:
    """
    由拟合点计算参数 (归一化到 [0, 1])。

    弦长参数用于 is_chord_length 为真或开曲线；失败 (例如总长为零) 时退回均匀参数。
    """
    fit_points = np.asarray(fit_points, dtype=float)
    params = None
    if is_chord_length or not closed:
        params = _construct_chord_length_parameters(fit_points)
    if params is None:
        params = _construct_uniform_parameters(len(fit_points))
    return params


def _construct_fit_parameters(options) -> bool:
    if options.knots is None:
        options.knots = construct_fit_parameters_from_points(
            options.fit_points, options.is_chord_len_knots, options.closed
        )
    return options.knots is not None and len(options.knots) == len(options.fit_points)


def _remove_duplicate_fit_points(options):
    """删除与前一保留点重合的点，以及与之配对的参数"""
    if options.knots is not None and len(options.knots) != len(options.fit_points):
        options.knots = None
    points = options.fit_points
    kept = [0] if len(points) > 0 else []
    for j in range(1, len(points)):
        if np.linalg.norm(points[j] - points[kept[-1]]) >= SMALL_METRIC_DISTANCE:
            kept.append(j)
    options.fit_points = points[kept].copy()
    if options.knots is not None:
        options.knots = [options.knots[j] for j in kept]


def validate_options(options) -> bool:
    """
    原地规范化拟合选项。

    - 阶数固定为 4，节点换算为拟合参数并归一化
    - 去掉连续重复点
    - 闭合曲线补上闭合点；不足 5 个点 (含闭合点) 时按开曲线处理
    - 切向量单位化，零向量视为未给出
    """
    options.order = DEFAULT_FIT_ORDER
    options.fit_points = _as_xyz(options.fit_points)
    if options.fit_points is None or len(options.fit_points) == 0:
        return False
    options.knots = convert_cubic_knot_vector_to_fit_params(options.knots, len(options.fit_points), True)
    _remove_duplicate_fit_points(options)

    points = options.fit_points
    has_closure_point = is_same_point(points[0], points[-1])
    if len(points) == 3 and has_closure_point:
        points = points[:-1]
        options.fit_points = points
        if options.knots is not None:
            options.knots = options.knots[:-1]
        has_closure_point = is_same_point(points[0], points[-1])

    if len(points) <= 2:
        if has_closure_point:
            return False
        options.closed = False

    if options.closed:
        if not has_closure_point:
            options.fit_points = np.vstack([points, points[:1]])
            if options.knots is not None:
                knots = options.knots
                knots.append(knots[-1] + (knots[-1] - knots[0]) / (len(knots) - 1))
                # 周期节点按 [0, 1] 绕回
                options.knots = _normalize_knots(knots)
        if len(options.fit_points) <= 4:
            options.closed = False

    if len(options.fit_points) < 2:
        return False
    options.start_tangent = normalize_or_none(options.start_tangent)
    options.end_tangent = normalize_or_none(options.end_tangent)
    return True


# ----------------------------------------------------------------------
# 节点向量换算
# ----------------------------------------------------------------------


def convert_cubic_knot_vector_to_fit_params(knots, num_fit_points: int, normalize: bool = False) -> list[float] | None:
    """
    三次节点向量 -> 拟合参数。

    允许节点数比拟合点数多 0 个 (已是参数)、4 个或 6 个 (旧格式)，
    多出的节点两端各去掉一半。其他长度返回 None。
    """
    if knots is None:
        return None
    params = list(knots)
    num_extra = len(params) - num_fit_points
    if num_extra in (4, 6):
        half = num_extra // 2
        params = params[half:-half]
    elif num_extra != 0:
        return None
    if normalize:
        return _normalize_knots(params)
    return params


def convert_fit_params_to_cubic_knot_vector(params, closed: bool = False, legacy: bool = False) -> list[float] | None:
    """
    拟合参数 -> 三次节点向量。

    开曲线两端补 0 和 1；闭曲线按周期平移补节点。
    legacy 为 True 时每端补 3 个 (经典约定)，否则补 2 个。
    """
    if params is None:
        return None
    knots = list(params)
    num_extra = 6 if legacy else 4
    if closed:
        i_tail = len(knots) - 2
        for i_head in range(2, num_extra + 1, 2):
            knots.insert(0, knots[i_tail] - 1.0)
            knots.append(1.0 + knots[i_head])
    else:
        for _ in range(num_extra // 2):
            knots.insert(0, 0.0)
            knots.append(1.0)
    return knots


def convert_to_json_knots(props: dict):
    """把 JSON 记录中的 knots 原地改写为旧格式的完整三次节点向量"""
    fit_points = np.asarray(props["fitPoints"], dtype=float)
    closed = bool(props.get("closed", False))
    if props.get("knots") is not None:
        params = convert_cubic_knot_vector_to_fit_params(props["knots"], len(fit_points), False)
    else:
        params = construct_fit_parameters_from_points(
            fit_points, bool(props.get("isChordLenKnots", False)), closed
        )
    props["knots"] = convert_fit_params_to_cubic_knot_vector(params, closed, True)


# ----------------------------------------------------------------------
# 方程组系数
# ----------------------------------------------------------------------


def _compute_alpha_beta_gamma(alpha, beta, gamma, index: int, d_plus1: float, d_i: float, d_minus1: float, d_minus2: float):
    denominator = 1.0 / (d_minus2 + d_minus1 + d_i)
    alpha[index] = d_i * d_i * denominator
    beta[index] = d_i * (d_minus2 + d_minus1) * denominator
    denominator = 1.0 / (d_minus1 + d_i + d_plus1)
    beta[index] += d_minus1 * (d_i + d_plus1) * denominator
    gamma[index] = d_minus1 * d_minus1 * denominator
    denominator = 1.0 / (d_minus1 + d_i)
    alpha[index] *= denominator
    beta[index] *= denominator
    gamma[index] *= denominator


def _set_natural_start_row(alpha, beta, gamma, knots):
    d_i = knots[1] - knots[0]
    d_plus1 = knots[2] - knots[1]
    total = d_i + d_plus1
    alpha[0] = 0.0
    beta[0] = (d_i + total) / total
    gamma[0] = -d_i / total


def _set_natural_end_row(alpha, beta, gamma, knots, last: int):
    d_minus1 = knots[last] - knots[last - 1]
    d_minus2 = knots[last - 1] - knots[last - 2]
    total = d_minus2 + d_minus1
    alpha[last] = -d_minus1 / total
    beta[last] = (d_minus1 + total) / total
    gamma[last] = 0.0


def _set_identity_row(alpha, beta, gamma, index: int):
    alpha[index] = gamma[index] = 0.0
    beta[index] = 1.0


def _set_up_system_3_points(alpha, beta, gamma, knots, natural_start: bool, natural_end: bool) -> bool:
    if len(knots) != 3:
        return False
    if natural_start:
        _set_natural_start_row(alpha, beta, gamma, knots)
    else:
        _set_identity_row(alpha, beta, gamma, 0)
    d_minus1 = knots[1] - knots[0]
    d_i = knots[2] - knots[1]
    scale = 1.0 / (d_minus1 + d_i) ** 2
    alpha[1] = d_i * d_i * scale
    beta[1] = 2.0 * d_i * d_minus1 * scale
    gamma[1] = d_minus1 * d_minus1 * scale
    if natural_end:
        _set_natural_end_row(alpha, beta, gamma, knots, 2)
    else:
        _set_identity_row(alpha, beta, gamma, 2)
    return True


def _set_up_system_4_points_or_more(alpha, beta, gamma, knots, closed: bool, natural_start: bool, natural_end: bool) -> bool:
    num_intervals = len(knots) - 1
    last_row = num_intervals - 1
    if closed:
        # 首行与末行的差分按周期绕回
        d_i = knots[1] - knots[0]
        d_minus2 = knots[last_row] - knots[last_row - 1]
        d_minus1 = knots[last_row + 1] - knots[last_row]
        d_plus1 = knots[2] - knots[1]
        _compute_alpha_beta_gamma(alpha, beta, gamma, 0, d_plus1, d_i, d_minus1, d_minus2)
        d_minus2 = d_minus1
        d_minus1 = d_i
        d_i = knots[2] - knots[1]
        d_plus1 = knots[3] - knots[2]
        _compute_alpha_beta_gamma(alpha, beta, gamma, 1, d_plus1, d_i, d_minus1, d_minus2)
        d_plus1 = d_minus1
        d_i = knots[last_row + 1] - knots[last_row]
        d_minus2 = knots[last_row - 1] - knots[last_row - 2]
        d_minus1 = knots[last_row] - knots[last_row - 1]
        _compute_alpha_beta_gamma(alpha, beta, gamma, last_row, d_plus1, d_i, d_minus1, d_minus2)
    else:
        if natural_start:
            _set_natural_start_row(alpha, beta, gamma, knots)
        else:
            _set_identity_row(alpha, beta, gamma, 0)
        d_i = knots[2] - knots[1]
        d_minus1 = knots[1] - knots[0]
        d_plus1 = knots[3] - knots[2]
        _compute_alpha_beta_gamma(alpha, beta, gamma, 1, d_plus1, d_i, d_minus1, 0.0)
        d_i = knots[last_row + 1] - knots[last_row]
        d_minus1 = knots[last_row] - knots[last_row - 1]
        d_minus2 = knots[last_row - 1] - knots[last_row - 2]
        _compute_alpha_beta_gamma(alpha, beta, gamma, last_row, 0.0, d_i, d_minus1, d_minus2)
        if natural_end:
            _set_natural_end_row(alpha, beta, gamma, knots, num_intervals)
        else:
            _set_identity_row(alpha, beta, gamma, num_intervals)
    for i in range(2, last_row):
        d_i = knots[i + 1] - knots[i]
        d_minus2 = knots[i - 1] - knots[i - 2]
        d_minus1 = knots[i] - knots[i - 1]
        d_plus1 = knots[i + 2] - knots[i + 1]
        _compute_alpha_beta_gamma(alpha, beta, gamma, i, d_plus1, d_i, d_minus1, d_minus2)
    return True


def _set_up_system(alpha, beta, gamma, options) -> bool:
    """填写每行三对角系数 (alpha: 左, beta: 对角, gamma: 右)"""
    knots = options.knots
    if knots is None or len(knots) != len(options.fit_points):
        return False
    natural_start = natural_end = False
    if options.is_natural_tangents and not options.closed:
        natural_start = options.start_tangent is None
        natural_end = options.end_tangent is None
    num_points = len(options.fit_points)
    if num_points == 2:
        _set_identity_row(alpha, beta, gamma, 0)
        _set_identity_row(alpha, beta, gamma, 1)
        return True
    if num_points == 3:
        return _set_up_system_3_points(alpha, beta, gamma, knots, natural_start, natural_end)
    if num_points >= 4:
        return _set_up_system_4_points_or_more(
            alpha, beta, gamma, knots, options.closed, natural_start, natural_end
        )
    return False


# ----------------------------------------------------------------------
# 端点条件
# data_pts = [P0, D0, P1, ..., P(n-1), D1, Pn]，D0 / D1 为待定的两个内侧极点
# ----------------------------------------------------------------------


def _set_bessel_end_condition(data_pts: list, options, at_start: bool) -> bool:
    knots = options.knots
    points = options.fit_points
    num_intervals = len(points) - 1
    third = 1.0 / 3.0
    if num_intervals == 1:
        if at_start:
            data_pts[1] = interpolate(points[0], third, points[1])
        else:
            data_pts[2] = interpolate(points[1], third, points[0])
        return True
    if at_start:
        # 过前三点的抛物线在起点的切向
        alpha = (knots[2] - knots[1]) / (knots[2] - knots[0])
        beta = 1.0 - alpha
        temp = points[1] - alpha * alpha * points[0] - beta * beta * points[2]
        tangent_point = temp / (2.0 * alpha) + alpha * points[0]
        data_pts[1] = interpolate(tangent_point, third, points[0])
    else:
        n = num_intervals
        alpha = (knots[n] - knots[n - 1]) / (knots[n] - knots[n - 2])
        beta = 1.0 - alpha
        temp = points[n - 1] - alpha * alpha * points[n - 2] - beta * beta * points[n]
        tangent_point = temp / (2.0 * beta) + beta * points[n]
        data_pts[-2] = interpolate(tangent_point, third, points[n])
    return True


def _set_natural_end_condition(data_pts: list, options, at_start: bool) -> bool:
    if len(options.fit_points) == 2:
        return _set_bessel_end_condition(data_pts, options, at_start)
    if at_start:
        data_pts[1] = data_pts[0].copy()
    else:
        data_pts[-2] = data_pts[-1].copy()
    return True


def _set_chord_length_scaled_end_condition(data_pts: list, options, at_start: bool) -> bool:
    tangent = options.start_tangent if at_start else options.end_tangent
    if tangent is None:
        return False
    points = options.fit_points
    if at_start:
        chord = np.linalg.norm(points[1] - points[0])
        data_pts[1] = points[0] + tangent * (chord / 3.0)
    else:
        chord = np.linalg.norm(points[-1] - points[-2])
        data_pts[-2] = points[-1] + tangent * (chord / 3.0)
    return True


def _set_bessel_length_scaled_end_condition(data_pts: list, options, at_start: bool) -> bool:
    tangent = options.start_tangent if at_start else options.end_tangent
    if tangent is None:
        return False
    if not _set_bessel_end_condition(data_pts, options, at_start):
        return False
    i_ext, i_set = (0, 1) if at_start else (-1, -2)
    length = np.linalg.norm(data_pts[i_ext] - data_pts[i_set])
    data_pts[i_set] = data_pts[i_ext] + tangent * length
    return True


def _set_physically_closed_end_condition(data_pts: list, options) -> bool:
    """首尾重合且要求共线切向时，使两端切向共线 (保留各自长度)"""
    num_intervals = len(options.fit_points) - 1
    if (
        not options.is_colinear_tangents
        or num_intervals <= 2
        or (options.start_tangent is not None and options.end_tangent is not None)
        or options.is_natural_tangents
        or not is_same_point(data_pts[0], data_pts[-1])
    ):
        return True
    start_length = np.linalg.norm(data_pts[0] - data_pts[1])
    end_length = np.linalg.norm(data_pts[-1] - data_pts[-2])
    if options.start_tangent is not None:
        outward = normalize_or_none(data_pts[0] - data_pts[1])
        if outward is not None:
            data_pts[-2] = data_pts[-1] + outward * end_length
    elif options.end_tangent is not None:
        outward = normalize_or_none(data_pts[-1] - data_pts[-2])
        if outward is not None:
            data_pts[1] = data_pts[0] + outward * start_length
    else:
        common = normalize_or_none(data_pts[1] - data_pts[-2])
        if common is not None:
            data_pts[1] = data_pts[0] + common * start_length
            data_pts[-2] = data_pts[-1] - common * end_length
    return True


def _set_end_condition(data_pts: list, options, at_start: bool) -> bool:
    tangent = options.start_tangent if at_start else options.end_tangent
    if tangent is None:
        if options.is_natural_tangents:
            return _set_natural_end_condition(data_pts, options, at_start)
        return _set_bessel_end_condition(data_pts, options, at_start)
    if options.is_chord_len_tangents:
        return _set_chord_length_scaled_end_condition(data_pts, options, at_start)
    return _set_bessel_length_scaled_end_condition(data_pts, options, at_start)


def _set_end_conditions(options) -> list | None:
    points = options.fit_points
    data_pts = [points[0].copy(), np.zeros(3)]
    data_pts.extend(p.copy() for p in points[1:-1])
    data_pts.extend([np.zeros(3), points[-1].copy()])
    if not _set_end_condition(data_pts, options, True):
        return None
    if not _set_end_condition(data_pts, options, False):
        return None
    if not _set_physically_closed_end_condition(data_pts, options):
        return None
    return data_pts


# ----------------------------------------------------------------------
# 求解
# ----------------------------------------------------------------------


def _solve_near_tridiagonal(fit_points: np.ndarray, alpha, beta, gamma) -> np.ndarray | None:
    """
    循环三对角方程组 (首行 alpha 与末行 gamma 绕回耦合)。

    fit_points 含闭合点，共 n+1 个；解出 n 个周期极点。任何主元过小时返回 None。
    """
    num_intervals = len(fit_points) - 1
    last = num_intervals - 1
    left = np.array(fit_points[:-1], dtype=float)
    alpha = np.array(alpha, dtype=float)
    beta = np.array(beta, dtype=float)
    gamma = np.array(gamma, dtype=float)
    for i in range(1, num_intervals):
        factor = conditional_divide_fraction(-alpha[i], beta[i - 1])
        if factor is None:
            return None
        beta[i] += factor * gamma[i - 1]
        alpha[i] = factor * alpha[i - 1]
        left[i] += factor * left[i - 1]
    factor = conditional_divide_fraction(1.0, beta[last] + alpha[last])
    if factor is None:
        return None
    gamma[last] *= factor
    left[last] *= factor
    for i in range(last - 1, -1, -1):
        factor = conditional_divide_fraction(1.0, beta[i])
        if factor is None:
            return None
        left[i] = (left[i] - gamma[i] * left[i + 1] - alpha[i] * left[last]) * factor
        gamma[i] = -(gamma[i] * gamma[i + 1] + alpha[i] * gamma[last]) * factor
    factor = conditional_divide_fraction(1.0, 1.0 + gamma[0])
    if factor is None:
        return None
    poles = np.empty_like(left)
    poles[0] = left[0] * factor
    for i in range(1, num_intervals):
        poles[i] = left[i] - gamma[i] * poles[0]
    return poles


def construct_poles(options) -> np.ndarray | None:
    """
    由已规范化的选项求极点。

    开曲线返回 N + 2 个极点 (首尾为拟合端点)；
    闭曲线返回 N - 1 个周期极点，轮转后在末尾重复前 order - 1 个。
    """
    if not _construct_fit_parameters(options):
        return None
    num_row = len(options.fit_points)
    alpha = np.zeros(num_row)
    beta = np.zeros(num_row)
    gamma = np.zeros(num_row)
    if not _set_up_system(alpha, beta, gamma, options):
        return None

    if not options.closed:
        data_pts = _set_end_conditions(options)
        if data_pts is None or len(data_pts) != num_row + 2:
            return None
        ab = np.zeros((3, num_row))
        ab[0, 1:] = gamma[:-1]
        ab[1] = beta
        ab[2, :-1] = alpha[1:]
        rhs = np.array(data_pts[1 : num_row + 1])
        try:
            solution = solve_banded((1, 1), ab, rhs)
        except LinAlgError as e:
            logger.debug("construct_poles: singular tridiagonal system (%s)", e)
            return None
        return np.vstack([options.fit_points[:1], solution, options.fit_points[-1:]])

    poles = _solve_near_tridiagonal(options.fit_points, alpha, beta, gamma)
    if poles is None:
        logger.debug("construct_poles: singular cyclic system")
        return None
    if len(poles) > 2:
        poles = np.roll(poles, 1, axis=0)
        poles = np.vstack([poles, poles[: options.order - 1]])
    return poles
