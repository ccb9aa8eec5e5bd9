"""
本体对象定义 (Ontology Objects)
账户（Folio）、账户流水、套餐分配、税率表、夜审记录等持久化实体
金额统一使用 Numeric(12, 2) + Decimal
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, DateTime, Date, JSON,
    ForeignKey, Text, Enum as SQLEnum, Boolean, Numeric
)
from sqlalchemy.orm import relationship
from app.database import Base


# ============== 枚举定义 ==============

class ReservationStatus(str, Enum):
    """预订状态枚举"""
    CONFIRMED = "confirmed"      # 已确认
    CHECKED_IN = "checked_in"    # 已入住
    CHECKED_OUT = "checked_out"  # 已退房
    NO_SHOW = "no_show"          # 未到店
    CANCELLED = "cancelled"      # 已取消


class FolioStatus(str, Enum):
    """账户状态（只能 open -> closed）"""
    OPEN = "open"
    CLOSED = "closed"


class TransactionType(str, Enum):
    """流水类型"""
    CHARGE = "charge"            # 消费
    PAYMENT = "payment"          # 付款
    ADJUSTMENT = "adjustment"    # 调整


class PaymentMethod(str, Enum):
    """支付方式"""
    CASH = "cash"
    CARD = "card"
    BANK = "bank"
    COMPANY = "company"          # 挂公司账
    DEBIT = "debit"
    ONLINE = "online"
    VOUCHER = "voucher"
    DEPOSIT = "deposit"          # 押金抵扣


class EmployeeRole(str, Enum):
    """员工角色"""
    MANAGER = "manager"              # 经理
    RECEPTIONIST = "receptionist"    # 前台


class NightAuditStatus(str, Enum):
    """夜审状态"""
    COMPLETED = "completed"
    FAILED = "failed"


# ============== 本体对象定义 ==============

class HotelProperty(Base):
    """
    物业对象
    last_audit_date 是物业级的"最后夜审日期"标记，由夜审编排器返回后写回
    """
    __tablename__ = "hotel_properties"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    last_audit_date = Column(Date)                       # 最后夜审日期
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Room(Base):
    """房间对象（外部库存的只读副本，用于入住率统计）"""
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True)
    room_number = Column(String(10), unique=True, nullable=False)  # 房间号
    floor = Column(Integer, default=1)
    is_active = Column(Boolean, default=True)                      # 是否启用

    reservations = relationship("Reservation", back_populates="room")


class Reservation(Base):
    """
    预订对象
    外部预订系统的记录；核心逻辑只通过 ReservationView 读取
    """
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    reservation_no = Column(String(20), unique=True, nullable=False)  # 预订号
    guest_name = Column(String(100), nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=True)
    check_in_date = Column(Date, nullable=False)         # 入住日期
    check_out_date = Column(Date, nullable=False)        # 离店日期
    adult_count = Column(Integer, default=1)             # 成人数
    child_count = Column(Integer, default=0)             # 儿童数
    status = Column(SQLEnum(ReservationStatus), default=ReservationStatus.CONFIRMED)
    total_amount = Column(Numeric(12, 2), default=0)     # 整个住店期间的房费（含税）
    discount_percent = Column(Numeric(5, 2), default=0)  # 折扣百分比
    weekend_surcharge = Column(Boolean, default=True)    # 是否收取周末加价
    payment_method = Column(String(20), default="cash")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    room = relationship("Room", back_populates="reservations")
    folio = relationship("Folio", back_populates="reservation", uselist=False)
    package = relationship("ReservationPackage", back_populates="reservation", uselist=False)


class Folio(Base):
    """
    账户对象 - 一次住店的账务聚合根
    不变式：balance == Σdebit - Σcredit
    """
    __tablename__ = "folios"

    id = Column(Integer, primary_key=True, index=True)
    folio_number = Column(String(40), unique=True, nullable=False)   # 账户号 F<YYMMDD>-<房号>-<预订ID>
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=False, index=True)
    guest_name = Column(String(100))
    room_number = Column(String(10))
    balance = Column(Numeric(12, 2), default=Decimal("0"))
    credit_limit = Column(Numeric(12, 2), default=Decimal("5000"))
    payment_method = Column(String(20), default="cash")
    status = Column(SQLEnum(FolioStatus), default=FolioStatus.OPEN)
    open_date = Column(Date)
    closed_date = Column(Date)
    closed_by = Column(String(100))
    close_reason = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    reservation = relationship("Reservation", back_populates="folio")
    transactions = relationship(
        "FolioTransaction", back_populates="folio", order_by="FolioTransaction.id"
    )

    @property
    def is_over_credit_limit(self) -> bool:
        """余额是否超过信用额度"""
        return (self.balance or 0) > (self.credit_limit or 0)


class FolioTransaction(Base):
    """
    账户流水 - 只追加
    balance 是入账后账户余额的快照，之后不再重算
    """
    __tablename__ = "folio_transactions"

    id = Column(Integer, primary_key=True, index=True)
    folio_id = Column(Integer, ForeignKey("folios.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)                  # 营业日期
    time = Column(String(8))                             # HH:MM:SS
    type = Column(SQLEnum(TransactionType), nullable=False)
    category = Column(String(30), default="misc")
    description = Column(Text)
    debit = Column(Numeric(12, 2), default=Decimal("0"))
    credit = Column(Numeric(12, 2), default=Decimal("0"))
    balance = Column(Numeric(12, 2), nullable=False)
    posted_by = Column(String(100))
    posted_at = Column(DateTime, default=datetime.now)
    reference_id = Column(String(120), unique=True, index=True)  # 幂等键
    night_audit_date = Column(Date)
    payment_method = Column(String(20))                  # 仅付款流水
    tax_details = Column(JSON)                           # [{tax_type, rate, amount, base}]

    folio = relationship("Folio", back_populates="transactions")


class ReservationPackage(Base):
    """
    预订-套餐分配
    posted_dates 是夜审入账的幂等账本，只在流水成功入账后追加
    """
    __tablename__ = "reservation_packages"

    id = Column(Integer, primary_key=True, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), unique=True, nullable=False)
    package_id = Column(String(20), nullable=False)
    adults = Column(Integer, default=1)
    children = Column(Integer, default=0)
    start_date = Column(Date)
    end_date = Column(Date)
    posted_dates = Column(JSON, default=list)            # ["YYYY-MM-DD", ...]
    consumptions = Column(JSON, default=list)            # [{component_id, date, quantity, amount, reference_id}]
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    reservation = relationship("Reservation", back_populates="package")


class TaxRate(Base):
    """税率配置表（含税价反算用）"""
    __tablename__ = "tax_rates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False)
    rate = Column(Numeric(5, 2), nullable=False)         # 百分比，如 18
    is_active = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)


class NightAudit(Base):
    """夜审记录 - 每个营业日一条"""
    __tablename__ = "night_audits"

    id = Column(Integer, primary_key=True, index=True)
    audit_date = Column(Date, unique=True, nullable=False)
    status = Column(SQLEnum(NightAuditStatus), nullable=False)
    summary = Column(JSON)                               # 夜审报告
    error_message = Column(Text)
    run_by = Column(String(100))
    started_at = Column(DateTime)
    completed_at = Column(DateTime)


class Employee(Base):
    """员工对象（登录与权限）"""
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False)  # 登录账号
    password_hash = Column(String(255), nullable=False)  # 密码哈希
    name = Column(String(100), nullable=False)           # 姓名
    role = Column(SQLEnum(EmployeeRole), nullable=False)
    is_active = Column(Boolean, default=True)            # 是否启用
    created_at = Column(DateTime, default=datetime.utcnow)
