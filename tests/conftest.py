import os

# Settings and the engine are built at import time, so the environment goes first
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PNCP_BASE_URL"] = "https://pncp.test/api/consulta"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["JWT_AUDIENCE"] = "authenticated"
os.environ["REQUIRE_SUBSCRIPTION"] = "true"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_123"
os.environ["STRIPE_PRICE_ID"] = "price_123"
os.environ["FRONTEND_URL"] = "http://app.test"

import time
import uuid
import httpx
import pytest
from fastapi.testclient import TestClient
from jose import jwt

from licitahub.api.routes import get_pncp_client
from licitahub.core.config import settings
from licitahub.database import Base, SessionLocal, engine
from licitahub.main import app
from licitahub.models import Profile
from licitahub.services.pncp_client import PNCPClientService


@pytest.fixture(autouse=True)
def reset_database():
    import licitahub.models  # noqa: F401
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_token():
    def _make(user_id=None, email=None, full_name=None, expires_in=3600, audience="authenticated", secret=None):
        user_id = user_id or str(uuid.uuid4())
        claims = {
            "sub": user_id,
            "email": email or f"{user_id[:8]}@example.com",
            "aud": audience,
            "exp": int(time.time()) + expires_in,
            "user_metadata": {"full_name": full_name or "Maria Silva"},
        }
        return jwt.encode(claims, secret or settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return _make


@pytest.fixture
def auth_headers(make_token):
    def _headers(user_id=None, **kwargs):
        return {"Authorization": f"Bearer {make_token(user_id, **kwargs)}"}
    return _headers


@pytest.fixture
def subscriber(db):
    """A profile with an open-ended active subscription"""
    user_id = str(uuid.uuid4())
    db.add(Profile(id=user_id, email="assinante@example.com", subscribed=True))
    db.commit()
    return user_id


@pytest.fixture
def pncp_item():
    def _item(seq=1, cnpj="12345678000199", year=2024, objeto="Aquisição de medicamentos",
              orgao="Prefeitura Municipal de Campinas", valor=1000.0, opening="2024-05-10T09:00:00", **extra):
        item = {
            "numeroControlePNCP": f"{cnpj}-1-{seq:06d}/{year}",
            "objetoCompra": objeto,
            "orgaoEntidade": {"cnpj": cnpj, "razaoSocial": orgao},
            "unidadeOrgao": {"ufSigla": "SP", "municipioNome": "Campinas"},
            "anoCompra": year,
            "sequencialCompra": seq,
            "numeroCompra": f"{seq}/{year}",
            "valorTotalEstimado": valor,
            "modalidadeId": 6,
            "modalidadeNome": "Pregão - Eletrônico",
            "situacaoCompraNome": "Divulgada no PNCP",
            "dataAberturaProposta": opening,
            "dataPublicacaoPncp": "2024-05-02T10:00:00",
        }
        item.update(extra)
        return item
    return _item


@pytest.fixture
def pncp_service():
    """Build a PNCPClientService whose HTTP traffic goes to `handler`"""
    def _service(handler):
        return PNCPClientService(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    return _service


@pytest.fixture
def mock_pncp(pncp_service):
    """Route the API's PNCP dependency to a mock handler"""
    def _install(handler):
        async def override():
            service = pncp_service(handler)
            try:
                yield service
            finally:
                await service.close()
        app.dependency_overrides[get_pncp_client] = override
    return _install
