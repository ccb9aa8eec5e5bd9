"""
初始化数据脚本
创建：物业、房间、员工、默认税率，以及几条演示用在住预订与套餐

默认账号（密码均为 123456）：
  manager        张经理
  front1         李前台
"""
import sys
sys.path.insert(0, '.')

from datetime import date, timedelta
from decimal import Decimal
from app.config import settings
from app.database import SessionLocal, init_db
from app.models.ontology import (
    HotelProperty, Room, Reservation, ReservationStatus, Employee, EmployeeRole, TaxRate
)
from app.security.auth import get_password_hash
from app.services.package_posting_service import PackagePostingService
from app.services.tax_service import DEFAULT_TAX_RATES


def init_property(db):
    """初始化物业记录"""
    prop = db.query(HotelProperty).first()
    if not prop:
        db.add(HotelProperty(name=settings.PROPERTY_NAME))
        db.commit()
        print(f"物业初始化完成: {settings.PROPERTY_NAME}")


def init_rooms(db):
    """初始化房间：2F(201-210)、3F(301-310)"""
    created = 0
    for floor in (2, 3):
        for i in range(1, 11):
            number = f"{floor}{i:02d}"
            if not db.query(Room).filter(Room.room_number == number).first():
                db.add(Room(room_number=number, floor=floor, is_active=True))
                created += 1
    db.commit()
    print(f"房间初始化完成: 新增 {created} 间，共 {db.query(Room).count()} 间")


def init_employees(db):
    """初始化员工"""
    employees = [
        {'username': 'manager', 'password': '123456', 'name': '张经理', 'role': EmployeeRole.MANAGER},
        {'username': 'front1', 'password': '123456', 'name': '李前台', 'role': EmployeeRole.RECEPTIONIST},
    ]

    created = []
    for emp_data in employees:
        existing = db.query(Employee).filter(Employee.username == emp_data['username']).first()
        if not existing:
            db.add(Employee(
                username=emp_data['username'],
                password_hash=get_password_hash(emp_data['password']),
                name=emp_data['name'],
                role=emp_data['role'],
            ))
            created.append(emp_data['name'])

    db.commit()
    print(f"员工初始化完成: {created if created else '已存在'}")


def init_tax_rates(db):
    """初始化默认税率（VAT 18% + Service 10%）"""
    if db.query(TaxRate).count():
        return
    for index, rate in enumerate(DEFAULT_TAX_RATES):
        db.add(TaxRate(name=rate.name, rate=rate.rate, is_active=True, sort_order=index))
    db.commit()
    print("税率初始化完成")


def init_demo_reservations(db):
    """演示数据：两条在住预订，其中一条为半膳套餐"""
    today = date.today()
    demos = [
        {'no': 'DEMO-0001', 'guest': '王先生', 'room': '201', 'nights': 3,
         'total': Decimal('2040.00'), 'adults': 2, 'children': 1, 'package': 'PKG-HB'},
        {'no': 'DEMO-0002', 'guest': '赵女士', 'room': '305', 'nights': 2,
         'total': Decimal('1200.00'), 'adults': 1, 'children': 0, 'package': None},
    ]

    for demo in demos:
        if db.query(Reservation).filter(Reservation.reservation_no == demo['no']).first():
            continue
        room = db.query(Room).filter(Room.room_number == demo['room']).first()
        reservation = Reservation(
            reservation_no=demo['no'],
            guest_name=demo['guest'],
            room_id=room.id if room else None,
            check_in_date=today - timedelta(days=1),
            check_out_date=today - timedelta(days=1) + timedelta(days=demo['nights']),
            adult_count=demo['adults'],
            child_count=demo['children'],
            status=ReservationStatus.CHECKED_IN,
            total_amount=demo['total'],
        )
        db.add(reservation)
        db.commit()
        if demo['package']:
            PackagePostingService(db).assign_package(reservation.id, demo['package'])
        print(f"演示预订已创建: {demo['no']} 房间 {demo['room']}")


def main():
    """主函数"""
    print("=" * 50)
    print("初始化数据")
    print("=" * 50)

    init_db()
    print("数据库表创建完成")

    db = SessionLocal()
    try:
        init_property(db)
        init_rooms(db)
        init_employees(db)
        init_tax_rates(db)
        init_demo_reservations(db)

        print("=" * 50)
        print("初始化完成！")
        print("默认账号（密码均为 123456）：manager（经理）、front1（前台）")
        print("=" * 50)
    finally:
        db.close()


if __name__ == "__main__":
    main()
