"""
Refund Policy
=============
Deterministic refund rules for access codes. No network, no storage.

Policy:
  - A code is refundable only when its remaining uses are exactly one of the
    refundable tiers (10, 20 or 100 by default). Ranges do not count.
  - isActive and processingMode are reported but never affect eligibility;
    deactivation is an admin action, not something a customer can trigger.
  - Refund amount = remaining uses × price per use (0.5 by default).
  - Refund percentage = remaining / initial uses, rounded half-up.

The remote record does not always say how many uses were originally granted,
so `initial_uses` falls back to the record's own value and then to a default.
"""
import logging
import math
from collections.abc import Iterable
from datetime import datetime

from .models import AccessCodeInfo, RefundEvaluation

logger = logging.getLogger(__name__)

REFUNDABLE_TIERS: frozenset[int] = frozenset({10, 20, 100})
DEFAULT_INITIAL_USES = 10
DEFAULT_PRICE_PER_USE = 0.5


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _money(value: float) -> str:
    return f"{value:.2f}"


def format_tiers(tiers: Iterable[int]) -> str:
    return "、".join(str(t) for t in sorted(tiers))


def evaluate(
    info: AccessCodeInfo,
    initial_uses: int | None = None,
    *,
    price_per_use: float = DEFAULT_PRICE_PER_USE,
    tiers: Iterable[int] = REFUNDABLE_TIERS,
    default_initial_uses: int = DEFAULT_INITIAL_USES,
) -> RefundEvaluation:
    """
    Compute eligibility, percentage and amount for one access code snapshot.

    Args:
        info:          The freshly fetched record.
        initial_uses:  Original grant size, if the caller knows it. Otherwise
                       info.initial_uses, otherwise default_initial_uses.
        price_per_use: Currency value of one use.
        tiers:         Exact remaining-use counts that qualify.

    Inconsistent inputs (more uses remaining than were granted) are reported
    in `anomaly` and logged; they never raise.
    """
    tiers = frozenset(tiers)
    if initial_uses is None:
        initial_uses = info.initial_uses or default_initial_uses
    initial   = initial_uses
    remaining = info.uses_remaining
    used      = initial - remaining
    total     = initial * price_per_use

    anomalies: list[str] = []
    if used < 0:
        anomalies.append(
            f"剩余次数 {remaining} 大于总次数 {initial}，已使用次数为负（{used}）"
        )

    if remaining not in tiers:
        reason = (
            f"Access code 剩余次数为 {remaining}，不在退款范围内。"
            f"退款范围：{format_tiers(tiers)}次"
        )
        evaluation = RefundEvaluation(
            eligible=False,
            refund_percentage=0,
            refund_amount=0.0,
            reason=reason,
            initial_uses=initial,
            used_times=used,
            remaining_uses=remaining,
            total_price=total,
            anomaly="；".join(anomalies) or None,
        )
    else:
        if initial > 0:
            percentage = _round_half_up(remaining / initial * 100)
        else:
            anomalies.append(f"总次数 {initial} 无效，退款比例按 0% 计算")
            percentage = 0
        if percentage > 100:
            anomalies.append(f"退款比例 {percentage}% 超过 100%，按 100% 计算")
            percentage = 100
        amount = remaining * price_per_use
        reason = (
            f"Access code 剩余 {remaining} 次，符合退款条件，"
            f"可退款 {percentage}%（¥{_money(amount)}）"
        )
        evaluation = RefundEvaluation(
            eligible=True,
            refund_percentage=percentage,
            refund_amount=amount,
            reason=reason,
            initial_uses=initial,
            used_times=used,
            remaining_uses=remaining,
            total_price=total,
            anomaly="；".join(anomalies) or None,
        )

    if evaluation.anomaly:
        logger.warning("[policy] %s: %s", info.code, evaluation.anomaly)
    return evaluation


# ── Rendering ──────────────────────────────────────────────────────────────

def render_report(info: AccessCodeInfo, evaluation: RefundEvaluation) -> str:
    """The check_access_code_refund output. Field order is fixed."""
    lines = [
        "查询结果：",
        f"- Access Code: {info.code}",
        f"- 总次数: {evaluation.initial_uses} 次",
        f"- 已使用: {evaluation.used_times} 次",
        f"- 剩余次数: {evaluation.remaining_uses} 次",
        f"- 状态: {'激活' if info.is_active else '停用'}",
        f"- 处理模式: {info.processing_mode}",
        f"- 退款资格: {'符合' if evaluation.eligible else '不符合'}",
        f"- 退款比例: {evaluation.refund_percentage}%",
        f"- 价格信息: 总价¥{_money(evaluation.total_price)}，"
        f"可退款¥{_money(evaluation.refund_amount)}",
        f"- 原因: {evaluation.reason}",
    ]
    if evaluation.anomaly:
        lines.append(f"- 数据异常: {evaluation.anomaly}")
    return "\n".join(lines)


def render_deactivation(
    info: AccessCodeInfo,
    evaluation: RefundEvaluation,
    reason: str,
    *,
    price_per_use: float = DEFAULT_PRICE_PER_USE,
    now: datetime | None = None,
) -> str:
    """Confirmation shown after a successful deactivate_access_code."""
    refundable = evaluation.remaining_uses * price_per_use
    timestamp = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    return (
        "✅ 停用成功！\n"
        f"Access Code: {info.code}\n"
        "状态: 已停用 (inactive)\n"
        "\n"
        "📊 使用情况：\n"
        f"- 总次数: {evaluation.initial_uses} 次\n"
        f"- 已使用: {evaluation.used_times} 次\n"
        f"- 剩余: {evaluation.remaining_uses} 次\n"
        f"- 退款资格: {'符合' if evaluation.eligible else '不符合'}\n"
        "\n"
        "💰 退款信息：\n"
        f"- 总价: ¥{_money(evaluation.total_price)}\n"
        f"- 已使用: ¥{_money(evaluation.used_times * price_per_use)}\n"
        f"- 剩余价值: ¥{_money(refundable)}\n"
        f"- 可退金额: ¥{_money(evaluation.refund_amount)}\n"
        "\n"
        f"停用原因: {reason}\n"
        f"时间: {timestamp}\n"
        "\n"
        "该 access code 已无法继续使用。"
    )
