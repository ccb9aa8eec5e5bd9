"""
Pytest 配置和共享 fixtures
"""
import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from app.database import Base, get_db
from app.models import ontology  # noqa: F401
from app.models.ontology import (
    Employee, EmployeeRole, Room, Reservation, ReservationStatus, HotelProperty
)
from app.security.auth import get_password_hash, create_access_token
from app.main import app

# 2026-03-10 是周二；2026-03-14 是周六
AUDIT_DATE = date(2026, 3, 10)


@pytest.fixture(scope="function")
def db_engine():
    """创建内存数据库引擎"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine):
    """创建数据库会话"""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture(scope="function")
def client(db_session):
    """创建测试客户端"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ============== 事件捕获 ==============

@pytest.fixture
def captured_events():
    """收集服务发布的事件（作为 event_publisher 注入）"""
    events = []
    return events


@pytest.fixture
def publisher(captured_events):
    return captured_events.append


# ============== 认证相关 Fixtures ==============

def _make_employee(db_session, username, name, role):
    employee = Employee(
        username=username,
        password_hash=get_password_hash("123456"),
        name=name,
        role=role,
        is_active=True
    )
    db_session.add(employee)
    db_session.commit()
    db_session.refresh(employee)
    return employee


@pytest.fixture
def manager_token(db_session):
    """创建经理用户并返回token"""
    manager = _make_employee(db_session, "manager", "张经理", EmployeeRole.MANAGER)
    return create_access_token(manager.id, manager.role)


@pytest.fixture
def receptionist_token(db_session):
    """创建前台用户并返回token"""
    receptionist = _make_employee(db_session, "front1", "前台小王", EmployeeRole.RECEPTIONIST)
    return create_access_token(receptionist.id, receptionist.role)


@pytest.fixture
def manager_auth_headers(manager_token):
    """返回经理认证的请求头"""
    return {"Authorization": f"Bearer {manager_token}"}


@pytest.fixture
def receptionist_auth_headers(receptionist_token):
    """返回前台认证的请求头"""
    return {"Authorization": f"Bearer {receptionist_token}"}


# ============== 实体相关 Fixtures ==============

@pytest.fixture
def make_room(db_session):
    """房间构造器"""
    def _make_room(room_number="101", floor=1, is_active=True):
        room = Room(room_number=room_number, floor=floor, is_active=is_active)
        db_session.add(room)
        db_session.commit()
        db_session.refresh(room)
        return room
    return _make_room


@pytest.fixture
def make_reservation(db_session, make_room):
    """
    预订构造器
    默认：2026-03-09 入住、2026-03-12 离店（3 晚），总房费 2040（每晚 680），已入住
    """
    counter = {"n": 0}

    def _make_reservation(
        room_number="101",
        check_in=date(2026, 3, 9),
        check_out=date(2026, 3, 12),
        status=ReservationStatus.CHECKED_IN,
        total_amount=Decimal("2040.00"),
        adults=2,
        children=0,
        guest_name="张三",
        discount_percent=Decimal("0"),
        weekend_surcharge=True,
        payment_method="cash",
    ):
        room = db_session.query(Room).filter(Room.room_number == room_number).first()
        if not room:
            room = make_room(room_number)
        counter["n"] += 1
        reservation = Reservation(
            reservation_no=f"R{counter['n']:04d}",
            guest_name=guest_name,
            room_id=room.id,
            check_in_date=check_in,
            check_out_date=check_out,
            adult_count=adults,
            child_count=children,
            status=status,
            total_amount=total_amount,
            discount_percent=discount_percent,
            weekend_surcharge=weekend_surcharge,
            payment_method=payment_method,
        )
        db_session.add(reservation)
        db_session.commit()
        db_session.refresh(reservation)
        return reservation
    return _make_reservation


@pytest.fixture
def hotel_property(db_session):
    """物业记录"""
    prop = HotelProperty(name="Test Hotel")
    db_session.add(prop)
    db_session.commit()
    db_session.refresh(prop)
    return prop
