"""Shared fixtures: an in-memory database per test, the API client and factories."""

from datetime import datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from affiliate_hub import models  # noqa: F401
from affiliate_hub.core.security import create_admin_token
from affiliate_hub.database import Base, get_db
from affiliate_hub.main import app
from affiliate_hub.models import (
    Click,
    CommissionType,
    Conversion,
    ConversionPayoutStatus,
    ConversionStatus,
    DeviceType,
    Partner,
    PartnerStatus,
    Product,
)
from affiliate_hub.services import LinkService
from affiliate_hub.utils.helpers import round_money, utc_now
from affiliate_hub.workers import dispatch

TEST_DB_URL = "sqlite+aiosqlite://"

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
GOOGLEBOT_UA = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"


class DispatchRecorder:
    def __init__(self):
        self.click_increments: list[str] = []
        self.conversion_increments: list[str] = []
        self.emails: list[dict] = []

    def schedule_click_increment(self, link_id: str) -> None:
        self.click_increments.append(link_id)

    def schedule_conversion_increment(self, link_id: str) -> None:
        self.conversion_increments.append(link_id)

    def enqueue_email(self, to_email, template, context=None, name=None) -> bool:
        self.emails.append({"to": to_email, "template": template, "context": context or {}})
        return True

    def templates(self) -> list[str]:
        return [email["template"] for email in self.emails]


@pytest.fixture(autouse=True)
def dispatched(monkeypatch) -> DispatchRecorder:
    """Capture background work instead of sending it to Celery."""
    recorder = DispatchRecorder()
    monkeypatch.setattr(dispatch, "schedule_click_increment", recorder.schedule_click_increment)
    monkeypatch.setattr(
        dispatch, "schedule_conversion_increment", recorder.schedule_conversion_increment
    )
    monkeypatch.setattr(dispatch, "enqueue_email", recorder.enqueue_email)
    return recorder


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {create_admin_token('test-admin')}"}


@pytest.fixture
def make_partner(db):
    counter = {"n": 0}

    async def factory(**overrides) -> Partner:
        counter["n"] += 1
        values = {
            "company_name": f"Partner {counter['n']}",
            "slug": f"partner{counter['n']}",
            "contact_email": f"partner{counter['n']}@example.com",
            "commission_type": CommissionType.PERCENTAGE,
            "commission_rate": Decimal("10"),
            "status": PartnerStatus.ACTIVE,
            "min_payout_threshold": Decimal("50"),
            "cookie_duration_days": 30,
        }
        values.update(overrides)
        partner = Partner(**values)
        db.add(partner)
        await db.commit()
        return partner

    return factory


@pytest.fixture
def make_product(db):
    async def factory(partner: Partner, **overrides) -> Product:
        values = {
            "partner_id": partner.id,
            "name": "Sequence Aligner",
            "slug": "aligner",
            "affiliate_url": "https://vendor.example.com/aligner",
            "tags": [],
        }
        values.update(overrides)
        product = Product(**values)
        db.add(product)
        await db.commit()
        return product

    return factory


@pytest.fixture
def make_link(db):
    async def factory(partner: Partner, product: Product | None = None, **overrides):
        values = {
            "partner_id": partner.id,
            "original_url": "https://vendor.example.com/tool",
            "product_id": product.id if product else None,
        }
        values.update(overrides)
        link = await LinkService(db).create_link(**values)
        await db.commit()
        return link

    return factory


@pytest.fixture
def make_click(db):
    async def factory(
        link,
        session_id: str = "session-1",
        ip_address: str | None = "203.0.113.0",
        is_bot: bool = False,
        clicked_at: datetime | None = None,
        user_agent: str | None = CHROME_UA,
    ) -> Click:
        click = Click(
            link_id=link.id,
            partner_id=link.partner_id,
            product_id=link.product_id,
            session_id=session_id,
            ip_address=ip_address,
            user_agent=user_agent,
            device_type=DeviceType.DESKTOP,
            is_bot=is_bot,
            bot_type="googlebot" if is_bot else None,
            clicked_at=clicked_at or utc_now(),
        )
        db.add(click)
        await db.commit()
        return click

    return factory


@pytest.fixture
def make_conversion(db):
    counter = {"n": 0}

    async def factory(
        partner: Partner,
        click: Click | None = None,
        commission: str = "10.00",
        sale_amount: str | None = "100.00",
        status: ConversionStatus = ConversionStatus.PENDING,
        payout_status: ConversionPayoutStatus = ConversionPayoutStatus.UNPAID,
        order_id: str | None = None,
        converted_at: datetime | None = None,
    ) -> Conversion:
        counter["n"] += 1
        conversion = Conversion(
            partner_id=partner.id,
            click_id=click.id if click else None,
            order_id=order_id or f"order-{counter['n']}",
            sale_amount=round_money(sale_amount) if sale_amount is not None else None,
            commission_amount=round_money(commission),
            commission_rate=Decimal("10"),
            conversion_status=status,
            payout_status=payout_status,
            converted_at=converted_at or utc_now(),
        )
        db.add(conversion)
        await db.commit()
        return conversion

    return factory
