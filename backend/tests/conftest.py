# backend/tests/conftest.py
"""
Pytest configuration for the Hustle Village backend.

Every test gets a fresh in-memory SQLite database with the full schema, a
buyer, a seller (with a payout recipient) and one verified, active service
priced 50.00. Payment calls go to FakePaystackClient; Resend is patched so
no test can send real email.
"""

import os

# CRITICAL: Set test configuration BEFORE any hustle imports
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["PAYSTACK_SECRET_KEY"] = "sk_test_hustle_webhook_secret"
os.environ["USE_FAKE_PAYMENT_GATEWAY"] = "true"
os.environ["RESEND_API_KEY"] = ""
os.environ.pop("JWT_AUDIENCE", None)

import unittest.mock

# Mock Resend globally to prevent real emails in ANY test
global_resend_mock = unittest.mock.patch("resend.Emails.send")
mocked_send = global_resend_mock.start()
mocked_send.return_value = {"id": "test-email-id"}

from decimal import Decimal
from typing import Dict, Iterator

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import Session, sessionmaker

from hustle.api.dependencies import get_db as dependency_get_db
from hustle.api.dependencies import get_payment_gateway
from hustle.auth import create_access_token
from hustle.database import Base, build_engine
from hustle.integrations import FakePaystackClient
from hustle.main import app
import hustle.models  # noqa: F401
from hustle.models.profile import Profile, Service
from hustle.services.booking_service import BookingService
from hustle.services.invoice_service import InvoiceService
from hustle.services.notification_service import NotificationService
from hustle.services.payment_service import PaymentService
from hustle.services.review_service import ReviewService

BUYER_ID = "user_buyer_ama"
SELLER_ID = "user_seller_kofi"
OTHER_ID = "user_other_yaw"
SERVICE_ID = "svc_logo_design"
SELLER_RECIPIENT_CODE = "RCP_kofi_payouts"


@pytest.fixture
def engine():
    test_engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def db(engine) -> Iterator[Session]:
    TestSession = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    session = TestSession()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def buyer(db: Session) -> Profile:
    profile = Profile(id=BUYER_ID, email="ama@example.com", first_name="Ama", last_name="Mensah")
    db.add(profile)
    db.commit()
    return profile


@pytest.fixture
def seller(db: Session) -> Profile:
    profile = Profile(
        id=SELLER_ID,
        email="kofi@example.com",
        first_name="Kofi",
        last_name="Asante",
        paystack_recipient_code=SELLER_RECIPIENT_CODE,
    )
    db.add(profile)
    db.commit()
    return profile


@pytest.fixture
def other_user(db: Session) -> Profile:
    profile = Profile(id=OTHER_ID, email="yaw@example.com", first_name="Yaw")
    db.add(profile)
    db.commit()
    return profile


@pytest.fixture
def service(db: Session, seller: Profile) -> Service:
    svc = Service(
        id=SERVICE_ID,
        user_id=seller.id,
        title="Logo design",
        category="design",
        default_price=Decimal("50.00"),
        is_verified=True,
        is_active=True,
    )
    db.add(svc)
    db.commit()
    return svc


@pytest.fixture
def fake_gateway() -> FakePaystackClient:
    return FakePaystackClient()


@pytest.fixture
def notification_service(db: Session) -> NotificationService:
    return NotificationService(db)


@pytest.fixture
def invoice_service(db: Session) -> InvoiceService:
    return InvoiceService(db, prefix="HV")


@pytest.fixture
def payment_service(
    db: Session,
    fake_gateway: FakePaystackClient,
    invoice_service: InvoiceService,
    notification_service: NotificationService,
) -> PaymentService:
    return PaymentService(
        db,
        fake_gateway,
        invoice_service=invoice_service,
        notification_service=notification_service,
        currency="GHS",
        callback_url="https://hustlevillage.test/payment/callback",
    )


@pytest.fixture
def booking_service(
    db: Session,
    payment_service: PaymentService,
    notification_service: NotificationService,
) -> BookingService:
    return BookingService(db, payment_service=payment_service, notification_service=notification_service)


@pytest.fixture
def review_service(db: Session) -> ReviewService:
    return ReviewService(db)


@pytest.fixture
def client(db: Session, fake_gateway: FakePaystackClient) -> Iterator[TestClient]:
    def _override_get_db() -> Iterator[Session]:
        yield db

    app.dependency_overrides[dependency_get_db] = _override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: fake_gateway
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


def auth_headers_for(user_id: str, email: str | None = None) -> Dict[str, str]:
    claims = {"sub": user_id}
    if email:
        claims["email"] = email
    return {"Authorization": f"Bearer {create_access_token(claims)}"}


@pytest.fixture
def buyer_headers(buyer: Profile) -> Dict[str, str]:
    return auth_headers_for(buyer.id, buyer.email)


@pytest.fixture
def seller_headers(seller: Profile) -> Dict[str, str]:
    return auth_headers_for(seller.id, seller.email)


@pytest.fixture
def other_headers(other_user: Profile) -> Dict[str, str]:
    return auth_headers_for(other_user.id, other_user.email)


@pytest.fixture
def make_auth_headers():
    """Factory for bearer headers of arbitrary users."""
    return auth_headers_for
