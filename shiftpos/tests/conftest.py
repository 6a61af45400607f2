"""Shared test fixtures.

Each test runs inside an outer DB transaction that is rolled back after the
test completes.  The session joins it through a SAVEPOINT, so service code
can commit and roll back freely without leaking rows between tests.
Fixtures commit their rows so a service-level rollback never removes them.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from shiftpos.app.core.database import Database, get_db
from shiftpos.app.core.security import create_access_token
from shiftpos.app.main import app
from shiftpos.app.models import audit, returns  # noqa: F401  (register tables)
from shiftpos.app.models.customer import Customer, CustomerType
from shiftpos.app.models.inventory import Brand, Category, Product
from shiftpos.app.models.pos import Shift
from shiftpos.app.models.user import RoleEnum, User
from shiftpos.app.services.loyalty import update_loyalty_settings
from shiftpos.app.services.shifts import open_shift


# ─── Database ────────────────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def database(tmp_path_factory: pytest.TempPathFactory) -> Generator[Database, None, None]:
    path: Path = tmp_path_factory.mktemp("db") / "shiftpos_test.db"
    database = Database(f"sqlite:///{path}")
    database.create_all()
    yield database
    database.dispose()


@pytest.fixture()
def db(database: Database) -> Generator[Session, None, None]:
    """Yield a session bound to an outer transaction; rolled back after the test."""
    connection = database.engine.connect()
    transaction = connection.begin()
    session = Session(
        bind=connection,
        join_transaction_mode="create_savepoint",
        autoflush=False,
    )

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture()
def client(db: Session) -> Generator[TestClient, None, None]:
    """FastAPI TestClient wired to the transactional test session."""

    def _override_get_db() -> Generator[Session, None, None]:
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ─── Users & auth ────────────────────────────────────────────────────────────


def _make_user(db: Session, username: str, role: RoleEnum) -> User:
    user = User(username=username, full_name=username.title(), role=role, is_active=True)
    db.add(user)
    db.commit()
    return user


@pytest.fixture()
def admin_user(db: Session) -> User:
    return _make_user(db, "test_admin", RoleEnum.ADMIN)


@pytest.fixture()
def supervisor_user(db: Session) -> User:
    return _make_user(db, "test_supervisor", RoleEnum.SUPERVISOR)


@pytest.fixture()
def cashier_user(db: Session) -> User:
    return _make_user(db, "test_cashier", RoleEnum.CASHIER)


@pytest.fixture()
def cashier2_user(db: Session) -> User:
    return _make_user(db, "test_cashier_2", RoleEnum.CASHIER)


@pytest.fixture()
def admin_token(admin_user: User) -> str:
    return create_access_token(subject=str(admin_user.id))


@pytest.fixture()
def supervisor_token(supervisor_user: User) -> str:
    return create_access_token(subject=str(supervisor_user.id))


@pytest.fixture()
def cashier_token(cashier_user: User) -> str:
    return create_access_token(subject=str(cashier_user.id))


def auth(token: str) -> dict[str, str]:
    """Return Authorization header dict."""
    return {"Authorization": f"Bearer {token}"}


# ─── Catalogue ───────────────────────────────────────────────────────────────


@pytest.fixture()
def category(db: Session) -> Category:
    cat = Category(name="Test Category")
    db.add(cat)
    db.commit()
    return cat


@pytest.fixture()
def brand(db: Session) -> Brand:
    b = Brand(name="Test Brand")
    db.add(b)
    db.commit()
    return b


@pytest.fixture()
def product_a(db: Session, category: Category, brand: Brand) -> Product:
    """100.00 per piece, 50 in stock."""
    p = Product(
        name="Product A",
        sku="SKU-A",
        category_id=category.id,
        brand_id=brand.id,
        price=10000,
        stock=50,
    )
    db.add(p)
    db.commit()
    return p


@pytest.fixture()
def product_b(db: Session, category: Category) -> Product:
    """200.00 per piece, 30 in stock."""
    p = Product(
        name="Product B",
        sku="SKU-B",
        category_id=category.id,
        price=20000,
        stock=30,
    )
    db.add(p)
    db.commit()
    return p


@pytest.fixture()
def carton_product(db: Session) -> Product:
    """15.00 per piece or 150.00 per carton of 12."""
    p = Product(
        name="Water 600ml",
        sku="SKU-WATER",
        price=1500,
        carton_price=15000,
        pcs_per_carton=12,
        supports_carton=True,
        stock=100,
    )
    db.add(p)
    db.commit()
    return p


# ─── Customers & loyalty ─────────────────────────────────────────────────────


@pytest.fixture()
def loyalty(db: Session, admin_user: User) -> None:
    """One point per 10.00 spent; one point is worth 1.00 when redeemed."""
    update_loyalty_settings(
        db,
        admin_user.id,
        {"earn_amount_per_point": 1000, "redeem_amount_per_point": 100},
    )


@pytest.fixture()
def customer(db: Session, loyalty: None) -> Customer:
    c = Customer(name="Loyal Customer", phone="0501234567", customer_type=CustomerType.MEMBER)
    db.add(c)
    db.commit()
    return c


@pytest.fixture()
def rich_customer(db: Session, loyalty: None) -> Customer:
    c = Customer(
        name="Points Customer",
        phone="0509876543",
        customer_type=CustomerType.MEMBER,
        total_points=100,
    )
    db.add(c)
    db.commit()
    return c


# ─── Shifts ──────────────────────────────────────────────────────────────────


@pytest.fixture()
def cashier_shift(db: Session, cashier_user: User) -> Shift:
    """Cashier shift on terminal T1 opened with 1000.00."""
    return open_shift(db, cashier_user.id, 100000, "T1")


@pytest.fixture()
def supervisor_shift(db: Session, supervisor_user: User) -> Shift:
    """Supervisor shift on terminal T2 opened with 500.00."""
    return open_shift(db, supervisor_user.id, 50000, "T2")


@pytest.fixture()
def shift_state(db: Session) -> Callable[[Shift], Shift]:
    """Reload a shift from the database."""

    def _reload(shift: Shift) -> Shift:
        db.expire_all()
        return db.get(Shift, shift.id)

    return _reload
