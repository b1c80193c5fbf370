"""
Configuración de tests y fixtures compartidos.
"""

import json
import os
import time
from decimal import Decimal
from typing import Any, AsyncGenerator
from uuid import uuid4

# Settings exige DATABASE_URL: se fija antes de importar la app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "development")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.adapters.base import (
    InitPaymentParams,
    PaymentProvider,
    PaymentResult,
    TransactionStatusResult,
    WebhookEvent,
    WebhookVerification,
)
from app.db.database import get_db
from app.db.models import Base, Candidate
from app.db.repositories import TransactionRepository, VoteRepository
from app.schemas.payment import PaymentStatus
from app.services import PaymentService, get_payment_service
from app.utils.hmac_utils import generate_signature
from app.utils.idempotency import InMemoryIdempotencyManager, get_idempotency_manager


# Base de datos de testing en memoria
TEST_DATABASE_URL = "sqlite+aiosqlite://"


class FakeProvider(PaymentProvider):
    """
    Proveedor en memoria que registra las llamadas.

    Los resultados se configuran por atributo antes de cada test.
    """

    STATUS_MAP = {
        "SUCCESSFUL": PaymentStatus.COMPLETED,
        "PENDING": PaymentStatus.PROCESSING,
        "FAILED": PaymentStatus.FAILED,
    }

    def __init__(self, name: str):
        self._name = name
        self.init_calls: list[InitPaymentParams] = []
        self.status_calls: list[str] = []
        self.init_result: PaymentResult | None = None
        self.init_exception: Exception | None = None
        self.status_result: TransactionStatusResult | None = None

    @property
    def provider_name(self) -> str:
        return self._name

    async def initialize_payment(self, params: InitPaymentParams) -> PaymentResult:
        self.init_calls.append(params)
        if self.init_exception is not None:
            raise self.init_exception
        if self.init_result is not None:
            return self.init_result
        provider_reference = f"{self._name}-{uuid4().hex[:10]}"
        return PaymentResult(
            success=True,
            provider=self._name,
            provider_reference=provider_reference,
            payment_url=f"https://pay.example.com/{provider_reference}",
            message="Payment initiated",
            raw_data={"id": provider_reference},
        )

    async def get_transaction_status(self, provider_reference: str) -> TransactionStatusResult:
        self.status_calls.append(provider_reference)
        if self.status_result is not None:
            return self.status_result
        return TransactionStatusResult(
            status=PaymentStatus.PENDING,
            provider_reference=provider_reference,
        )

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> WebhookVerification:
        return WebhookVerification(is_valid=True, data=json.loads(payload))

    def parse_webhook_event(self, data: dict[str, Any]) -> WebhookEvent:
        return WebhookEvent(
            provider=self._name,
            native_status=data["status"],
            provider_reference=data.get("referenceId"),
            reference=data.get("externalId"),
            event_label=data["status"],
            raw_data=data,
        )


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Crea un engine de testing para cada test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Crea una sesión de testing."""
    async_session = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session


@pytest.fixture
def fake_providers() -> dict[str, FakeProvider]:
    return {name: FakeProvider(name) for name in ("mtn", "orange", "stripe")}


@pytest.fixture
def payment_service(fake_providers) -> PaymentService:
    return PaymentService(providers=fake_providers)


@pytest.fixture
def idempotency_manager() -> InMemoryIdempotencyManager:
    return InMemoryIdempotencyManager()


@pytest_asyncio.fixture(scope="function")
async def client(
    test_session: AsyncSession,
    payment_service: PaymentService,
    idempotency_manager: InMemoryIdempotencyManager,
) -> AsyncGenerator[AsyncClient, None]:
    """Cliente HTTP para tests de API."""

    async def override_get_db():
        yield test_session

    async def override_get_idempotency_manager():
        return idempotency_manager

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_service] = lambda: payment_service
    app.dependency_overrides[get_idempotency_manager] = override_get_idempotency_manager

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def candidate(test_session: AsyncSession) -> Candidate:
    """Candidato sin votos."""
    candidate = Candidate(name="Awa Traoré", vote_count=0, total_revenue=Decimal(0))
    test_session.add(candidate)
    await test_session.commit()
    await test_session.refresh(candidate)
    return candidate


@pytest.fixture
def make_pending_vote(test_session: AsyncSession, candidate: Candidate):
    """
    Fábrica de votos PENDING con su transacción ya aceptada por el proveedor.

    Returns:
        Corutina que retorna (vote, transaction)
    """
    methods = {
        "mtn": "MTN_MOBILE_MONEY",
        "orange": "ORANGE_MONEY",
        "stripe": "CARD",
    }

    async def create(
        provider: str = "mtn",
        reference: str = "TXN-20260101-ABCDEF123456",
        provider_reference: str = "7b1d4f7e-3c1a-4f0e-9d55-5a0b3c2d1e0f",
    ):
        vote = await VoteRepository(test_session).create(
            candidate_id=candidate.id,
            amount=Decimal(500),
            currency="XOF",
            payment_method=methods[provider],
            phone="+22670000000",
            email="fan@example.com",
        )
        repo = TransactionRepository(test_session)
        transaction = await repo.create(
            vote_id=vote.id,
            provider=provider,
            reference=reference,
            amount=Decimal(500),
            currency="XOF",
        )
        await repo.set_provider_data(
            transaction,
            provider_reference=provider_reference,
            payment_url=None,
            payload={},
        )
        await test_session.commit()
        return vote, transaction

    return create


@pytest_asyncio.fixture
async def pending_vote(make_pending_vote):
    """Voto MTN PENDING: (vote, transaction)."""
    return await make_pending_vote()


@pytest.fixture
def sample_vote_data(candidate) -> dict[str, Any]:
    """Datos de ejemplo para crear un voto mobile money."""
    return {
        "candidate_id": str(candidate.id),
        "payment_method": "MTN_MOBILE_MONEY",
        "phone": "+22670000000",
        "voter_name": "Moussa",
        "message": "Allez!",
    }


@pytest.fixture
def stripe_signature():
    """
    Firma un payload con el esquema de Stripe-Signature.

    Formato "t=<timestamp>,v1=<hmac>", con el HMAC calculado sobre
    "<timestamp>.<payload>".
    """

    def sign(payload: bytes, secret: str, timestamp: int | None = None) -> str:
        if timestamp is None:
            timestamp = int(time.time())
        signed_payload = f"{timestamp}.".encode("utf-8") + payload
        return f"t={timestamp},v1={generate_signature(signed_payload, secret)}"

    return sign
