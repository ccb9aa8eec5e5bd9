"""
夜审批处理结果
各入账步骤统一返回 posted / failed / skipped / total_amount / details
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List


@dataclass
class PostingSummary:
    """入账批次汇总"""
    posted: int = 0
    failed: int = 0
    skipped: int = 0
    total_amount: Decimal = Decimal("0")
    details: List[Dict[str, Any]] = field(default_factory=list)

    def record_posted(self, detail: Dict[str, Any], amount: Decimal) -> None:
        self.posted += 1
        self.total_amount += amount
        self.details.append({**detail, "status": "posted", "amount": amount})

    def record_skipped(self, detail: Dict[str, Any], message: str) -> None:
        self.skipped += 1
        self.details.append({**detail, "status": "skipped", "message": message})

    def record_failed(self, detail: Dict[str, Any], error: str) -> None:
        self.failed += 1
        self.details.append({**detail, "status": "failed", "error": error})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "posted": self.posted,
            "failed": self.failed,
            "skipped": self.skipped,
            "total_amount": self.total_amount,
            "details": list(self.details),
        }


@dataclass
class AutoCloseSummary:
    """自动关账批次汇总"""
    closed: int = 0
    skipped: int = 0
    errors: int = 0
    details: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "closed": self.closed,
            "skipped": self.skipped,
            "errors": self.errors,
            "details": list(self.details),
        }
