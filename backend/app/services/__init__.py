# Business Services
from app.services.folio_service import FolioService
from app.services.room_charge_service import RoomChargePostingService
from app.services.package_posting_service import PackagePostingService
from app.services.folio_auto_close_service import FolioAutoCloseService
from app.services.night_audit_service import NightAuditService
from app.services.financial_report_service import FinancialReportService
from app.services.tax_service import TaxConfigService
from app.services.employee_service import EmployeeService

__all__ = [
    'FolioService', 'RoomChargePostingService', 'PackagePostingService',
    'FolioAutoCloseService', 'NightAuditService', 'FinancialReportService',
    'TaxConfigService', 'EmployeeService'
]
