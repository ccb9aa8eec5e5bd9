"""
app/hotel/revenue_categories.py

收入分类 - 流水原始类别到报表分类 / 部门 / 付款方式的全函数映射
未知类别一律归入 misc，未知付款方式归入 cash
"""
from enum import Enum
from typing import Optional


class RevenueCategory(str, Enum):
    """报表收入分类"""
    ROOM = "room"
    FOOD = "food"
    BEVERAGE = "beverage"
    SPA = "spa"
    LAUNDRY = "laundry"
    TRANSPORT = "transport"
    PHONE = "phone"
    MINIBAR = "minibar"
    EXTRAS = "extras"
    MISC = "misc"


class Department(str, Enum):
    """收入部门"""
    ROOMS = "ROOMS"
    FOOD_AND_BEVERAGE = "F&B"
    SPA = "SPA"
    OTHER = "OTHER"


class PaymentBucket(str, Enum):
    """付款方式汇总分类"""
    CASH = "cash"
    CARD = "card"
    BANK = "bank"
    COMPANY = "company"
    DEBIT = "debit"
    ONLINE = "online"
    VOUCHER = "voucher"
    DEPOSIT = "deposit"


# 套餐餐饮组件按餐别记账，分类归 misc，部门归 F&B
_MEAL_CATEGORIES = {"breakfast", "lunch", "dinner"}

_DEPARTMENTS = {
    RevenueCategory.ROOM: Department.ROOMS,
    RevenueCategory.MINIBAR: Department.ROOMS,
    RevenueCategory.FOOD: Department.FOOD_AND_BEVERAGE,
    RevenueCategory.BEVERAGE: Department.FOOD_AND_BEVERAGE,
    RevenueCategory.SPA: Department.SPA,
}


def category_of(raw_category: Optional[str]) -> RevenueCategory:
    """原始类别 -> 报表分类"""
    key = (raw_category or "").strip().lower()
    try:
        return RevenueCategory(key)
    except ValueError:
        return RevenueCategory.MISC


def department_of(raw_category: Optional[str]) -> Department:
    """原始类别 -> 部门"""
    if (raw_category or "").strip().lower() in _MEAL_CATEGORIES:
        return Department.FOOD_AND_BEVERAGE
    return _DEPARTMENTS.get(category_of(raw_category), Department.OTHER)


def payment_bucket_of(method: Optional[str]) -> PaymentBucket:
    """付款方式 -> 汇总分类"""
    try:
        return PaymentBucket((method or "").strip().lower())
    except ValueError:
        return PaymentBucket.CASH
