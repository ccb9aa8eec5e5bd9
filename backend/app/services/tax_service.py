"""
税费服务
- breakdown(): 含税总额反算净额与分税明细（报表、房费使用）
- exclusive_tax(): 在净价上加税（套餐组件入账使用）
- TaxConfigService: 税率表的读取与维护，格式错误时回退默认税率
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from app.models.ontology import TaxRate
from app.services.errors import InvalidTaxConfiguration

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class TaxRateConfig:
    """单个命名税率（百分比）"""
    name: str
    rate: Decimal


DEFAULT_TAX_RATES: Tuple[TaxRateConfig, ...] = (
    TaxRateConfig("VAT", Decimal("18")),
    TaxRateConfig("Service", Decimal("10")),
)


@dataclass
class TaxBreakdown:
    """含税金额的分税结果"""
    gross_revenue: Decimal
    net_revenue: Decimal
    total_tax: Decimal
    per_tax: Dict[str, Decimal] = field(default_factory=dict)
    rates: List[TaxRateConfig] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gross_revenue": self.gross_revenue,
            "net_revenue": self.net_revenue,
            "total_tax": self.total_tax,
            "per_tax": dict(self.per_tax),
            "rates": [{"name": r.name, "rate": r.rate} for r in self.rates],
        }

    def to_tax_details(self) -> List[Dict[str, str]]:
        """转换为流水上的 tax_details（JSON 友好）"""
        return [
            {
                "tax_type": r.name,
                "rate": str(r.rate),
                "amount": str(self.per_tax.get(r.name, ZERO)),
                "base": str(self.net_revenue),
            }
            for r in self.rates
        ]


def quantize(amount: Decimal) -> Decimal:
    """金额保留两位小数（四舍五入）"""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Decimal:
    """数值转 Decimal；float 先转字符串避免二进制误差"""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def parse_tax_rates(raw: Iterable[Any]) -> List[TaxRateConfig]:
    """
    校验并规范化税率表

    接受 TaxRateConfig、TaxRate ORM 对象或 {name, rate} 字典（rate 也可写作 value）。

    Raises:
        InvalidTaxConfiguration: 结构错误、名称缺失/重复、税率非数字或为负
    """
    if isinstance(raw, (str, bytes, dict)) or not hasattr(raw, "__iter__"):
        raise InvalidTaxConfiguration("税率表必须是列表")

    result: List[TaxRateConfig] = []
    seen = set()
    for item in raw:
        if isinstance(item, TaxRateConfig):
            name, rate = item.name, item.rate
        elif isinstance(item, dict):
            name = item.get("name") or item.get("key")
            rate = item.get("rate", item.get("value"))
        elif hasattr(item, "name") and hasattr(item, "rate"):
            name, rate = item.name, item.rate
        else:
            raise InvalidTaxConfiguration(f"无法识别的税率项: {item!r}")

        if not name or not isinstance(name, str):
            raise InvalidTaxConfiguration("税率名称不能为空")
        if name in seen:
            raise InvalidTaxConfiguration(f"税率名称重复: {name}")
        if rate is None or isinstance(rate, bool):
            raise InvalidTaxConfiguration(f"税率 {name} 缺少数值")
        try:
            rate = to_decimal(rate)
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidTaxConfiguration(f"税率 {name} 不是数字: {rate!r}")
        if not rate.is_finite() or rate < 0:
            raise InvalidTaxConfiguration(f"税率 {name} 无效: {rate}")

        seen.add(name)
        result.append(TaxRateConfig(name=name, rate=rate))
    return result


def resolve_tax_rates(raw: Optional[Iterable[Any]]) -> List[TaxRateConfig]:
    """返回可用税率表；缺失或格式错误时回退默认税率（不抛异常）"""
    if raw is None:
        return list(DEFAULT_TAX_RATES)
    try:
        rates = parse_tax_rates(raw)
    except InvalidTaxConfiguration as e:
        logger.warning(f"税率配置无效，使用默认税率: {e}")
        return list(DEFAULT_TAX_RATES)
    if not rates:
        return list(DEFAULT_TAX_RATES)
    return rates


def breakdown(gross_revenue: Any, tax_rates: Optional[Iterable[Any]] = None) -> TaxBreakdown:
    """
    含税反算

    net = gross / (1 + R/100)，R 为税率之和；每个税种 = net * rate/100，各自独立四舍五入。
    total_tax = gross - net，保证 net + total_tax == gross。
    gross 为 0 或 R 为 0 时返回零税额，net = gross。
    """
    try:
        gross = quantize(to_decimal(gross_revenue))
    except (InvalidOperation, TypeError, ValueError):
        logger.warning(f"无效的含税金额 {gross_revenue!r}，按 0 处理")
        gross = quantize(ZERO)

    rates = resolve_tax_rates(tax_rates)
    total_rate = sum((r.rate for r in rates), ZERO)

    if gross == 0 or total_rate == 0:
        return TaxBreakdown(
            gross_revenue=gross,
            net_revenue=gross,
            total_tax=quantize(ZERO),
            per_tax={r.name: quantize(ZERO) for r in rates},
            rates=rates,
        )

    net_exact = gross / (1 + total_rate / HUNDRED)
    per_tax = {r.name: quantize(net_exact * r.rate / HUNDRED) for r in rates}
    net = quantize(net_exact)

    return TaxBreakdown(
        gross_revenue=gross,
        net_revenue=net,
        total_tax=gross - net,
        per_tax=per_tax,
        rates=rates,
    )


def exclusive_tax(net_amount: Any, rate: Any) -> Tuple[Decimal, Decimal]:
    """
    不含税价加税

    Returns:
        (tax, gross)，gross = net + tax
    """
    net = to_decimal(net_amount)
    tax = quantize(net * to_decimal(rate) / HUNDRED)
    return tax, quantize(net) + tax


class TaxConfigService:
    """税率配置服务"""

    def __init__(self, db: Session):
        self.db = db

    def get_rates(self) -> List[TaxRateConfig]:
        """读取启用的税率；表为空或数据异常时回退默认税率"""
        rows = self.db.query(TaxRate).filter(
            TaxRate.is_active == True  # noqa: E712
        ).order_by(TaxRate.sort_order, TaxRate.id).all()
        if not rows:
            return list(DEFAULT_TAX_RATES)
        return resolve_tax_rates(rows)

    def set_rates(self, raw: Iterable[Any]) -> List[TaxRateConfig]:
        """
        整表替换税率

        Raises:
            InvalidTaxConfiguration: 新税率表无效（旧表保持不变）
        """
        rates = parse_tax_rates(raw)
        self.db.query(TaxRate).delete()
        for index, rate in enumerate(rates):
            self.db.add(TaxRate(name=rate.name, rate=rate.rate, is_active=True, sort_order=index))
        self.db.commit()
        logger.info(f"税率表已更新: {[(r.name, str(r.rate)) for r in rates]}")
        return rates
