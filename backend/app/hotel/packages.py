"""
app/hotel/packages.py

套餐目录 - 静态注册的套餐定义
每个套餐拆分为若干定价组件，组件按入账规则在夜审 / 消费时 / 退房时入账
"""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple


class PackageType(str, Enum):
    """套餐类型"""
    RO = "RO"    # 仅住宿
    BB = "BB"    # 含早
    HB = "HB"    # 半膳
    FB = "FB"    # 全膳
    AI = "AI"    # 全包


class PostingTime(str, Enum):
    """组件入账时机"""
    NIGHT_AUDIT = "night-audit"
    CONSUMPTION = "consumption"
    CHECK_OUT = "check-out"


@dataclass(frozen=True)
class PackageComponent:
    """套餐组件（零售价为不含税单价）"""
    id: str
    category: str
    name: str
    retail_value: Decimal
    cost_value: Decimal
    tax_rate: Decimal
    department: str = "F&B"
    post_time: str = ""
    mandatory: bool = True
    allow_substitution: bool = False
    max_quantity: Optional[int] = None


@dataclass(frozen=True)
class PostingRule:
    """组件入账规则"""
    component: str
    posting_time: PostingTime
    split_by_nights: bool
    account_code: str


@dataclass(frozen=True)
class PackageDefinition:
    """套餐定义"""
    id: str
    code: str
    name: str
    type: PackageType
    price_per_person: Decimal
    price_per_child: Decimal
    child_age_limit: int
    components: Tuple[PackageComponent, ...] = ()
    posting_rules: Tuple[PostingRule, ...] = ()
    active: bool = True

    def get_rule(self, component_id: str) -> Optional[PostingRule]:
        for rule in self.posting_rules:
            if rule.component == component_id:
                return rule
        return None

    def get_component(self, component_id: str) -> Optional[PackageComponent]:
        for component in self.components:
            if component.id == component_id:
                return component
        return None

    def components_for(self, posting_time: PostingTime) -> List[PackageComponent]:
        """按入账时机筛选组件（保持目录中的顺序）"""
        return [
            c for c in self.components
            if (rule := self.get_rule(c.id)) is not None and rule.posting_time == posting_time
        ]


def _meal(component_id: str, category: str, name: str, retail: str, cost: str,
          post_time: str, substitution: bool = False) -> PackageComponent:
    return PackageComponent(
        id=component_id,
        category=category,
        name=name,
        retail_value=Decimal(retail),
        cost_value=Decimal(cost),
        tax_rate=Decimal("18"),
        department="F&B",
        post_time=post_time,
        mandatory=True,
        allow_substitution=substitution,
    )


def _nightly(component_id: str, account_code: str) -> PostingRule:
    return PostingRule(
        component=component_id,
        posting_time=PostingTime.NIGHT_AUDIT,
        split_by_nights=True,
        account_code=account_code,
    )


PACKAGES: Tuple[PackageDefinition, ...] = (
    PackageDefinition(
        id="PKG-RO",
        code="RO",
        name="Room Only",
        type=PackageType.RO,
        price_per_person=Decimal("0"),
        price_per_child=Decimal("0"),
        child_age_limit=12,
    ),
    PackageDefinition(
        id="PKG-BB",
        code="BB",
        name="Bed & Breakfast",
        type=PackageType.BB,
        price_per_person=Decimal("25"),
        price_per_child=Decimal("15"),
        child_age_limit=12,
        components=(
            _meal("BB-BF", "breakfast", "Breakfast Buffet", "25", "10", "07:00"),
        ),
        posting_rules=(
            _nightly("BB-BF", "FOOD-BF"),
        ),
    ),
    PackageDefinition(
        id="PKG-HB",
        code="HB",
        name="Half Board",
        type=PackageType.HB,
        price_per_person=Decimal("75"),
        price_per_child=Decimal("40"),
        child_age_limit=12,
        components=(
            _meal("HB-BF", "breakfast", "Breakfast Buffet", "25", "10", "07:00"),
            _meal("HB-DN", "dinner", "Dinner (3 Course)", "50", "20", "19:00", substitution=True),
        ),
        posting_rules=(
            _nightly("HB-BF", "FOOD-BF"),
            _nightly("HB-DN", "FOOD-DN"),
        ),
    ),
    PackageDefinition(
        id="PKG-FB",
        code="FB",
        name="Full Board",
        type=PackageType.FB,
        price_per_person=Decimal("120"),
        price_per_child=Decimal("60"),
        child_age_limit=12,
        components=(
            _meal("FB-BF", "breakfast", "Breakfast Buffet", "25", "10", "07:00"),
            _meal("FB-LN", "lunch", "Lunch (2 Course)", "45", "18", "12:00", substitution=True),
            _meal("FB-DN", "dinner", "Dinner (3 Course)", "50", "20", "19:00", substitution=True),
        ),
        posting_rules=(
            _nightly("FB-BF", "FOOD-BF"),
            _nightly("FB-LN", "FOOD-LN"),
            _nightly("FB-DN", "FOOD-DN"),
        ),
    ),
    PackageDefinition(
        id="PKG-AI",
        code="AI",
        name="All Inclusive",
        type=PackageType.AI,
        price_per_person=Decimal("180"),
        price_per_child=Decimal("90"),
        child_age_limit=12,
        components=(
            _meal("AI-BF", "breakfast", "Breakfast Buffet", "25", "10", "07:00"),
            _meal("AI-LN", "lunch", "Lunch Buffet", "45", "18", "12:00"),
            _meal("AI-DN", "dinner", "Dinner Buffet", "50", "20", "19:00"),
            PackageComponent(
                id="AI-BV",
                category="beverage",
                name="Unlimited Beverages",
                retail_value=Decimal("40"),
                cost_value=Decimal("15"),
                tax_rate=Decimal("18"),
                department="BAR",
                post_time="10:00",
            ),
            PackageComponent(
                id="AI-SPA",
                category="spa",
                name="Spa Access",
                retail_value=Decimal("20"),
                cost_value=Decimal("5"),
                tax_rate=Decimal("18"),
                department="SPA",
                post_time="09:00",
                mandatory=False,
                max_quantity=1,
            ),
        ),
        posting_rules=(
            _nightly("AI-BF", "AI-FOOD"),
            _nightly("AI-LN", "AI-FOOD"),
            _nightly("AI-DN", "AI-FOOD"),
            _nightly("AI-BV", "AI-BEV"),
            PostingRule(
                component="AI-SPA",
                posting_time=PostingTime.CONSUMPTION,
                split_by_nights=False,
                account_code="AI-EXTRAS",
            ),
        ),
    ),
)

_PACKAGES_BY_ID: Dict[str, PackageDefinition] = {p.id: p for p in PACKAGES}


def get_package(package_id: str) -> Optional[PackageDefinition]:
    """按 ID 查找套餐定义"""
    return _PACKAGES_BY_ID.get(package_id)


def list_packages(active_only: bool = True) -> List[PackageDefinition]:
    """列出套餐目录"""
    return [p for p in PACKAGES if p.active or not active_only]
