"""
账务与夜审的领域异常

批处理中的单条失败（套餐定义缺失、账户写入失败）只计入结果的 failed/errors，
不会中断整个批次；预订查询失败使该条目被跳过；税率配置错误在本地回退默认值。
"""
from datetime import date
from typing import Optional


class FolioError(Exception):
    """账务异常基类"""


class PackageDefinitionMissing(FolioError):
    """预订引用的套餐不在套餐目录中"""

    def __init__(self, package_id: str):
        self.package_id = package_id
        super().__init__(f"套餐定义不存在: {package_id}")


class FolioPersistenceFailure(FolioError):
    """账户写入持久化存储失败"""

    def __init__(self, folio_id: Optional[int], cause: Exception):
        self.folio_id = folio_id
        self.cause = cause
        super().__init__(f"账户 {folio_id} 保存失败: {cause}")


class ReservationLookupFailure(FolioError):
    """预订来源不可达或预订不存在"""

    def __init__(self, message: str, reservation_id: Optional[int] = None):
        self.reservation_id = reservation_id
        super().__init__(message)


class InvalidTaxConfiguration(FolioError, ValueError):
    """税率表格式错误（调用方只会看到回退后的默认税率）"""


class FolioNotFoundError(FolioError, ValueError):
    """账户不存在"""

    def __init__(self, folio_id: int):
        self.folio_id = folio_id
        super().__init__(f"账户不存在: {folio_id}")


class FolioClosedError(FolioError, ValueError):
    """账户已关闭，不能再入账"""

    def __init__(self, folio_number: str):
        self.folio_number = folio_number
        super().__init__(f"账户 {folio_number} 已关闭")


class NightAuditError(FolioError):
    """夜审某个步骤整体无法执行（需要对同一日期重跑）"""

    def __init__(self, audit_date: date, step: str, cause: Exception):
        self.audit_date = audit_date
        self.step = step
        self.cause = cause
        super().__init__(f"夜审 {audit_date.isoformat()} 在步骤 {step} 失败: {cause}")
