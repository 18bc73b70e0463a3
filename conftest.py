"""Fixtures partilhadas pelos testes dos módulos."""

import os

# Antes de importar a aplicação: base de dados em memória e sem create_all no arranque
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"

import pytest
from decimal import Decimal
from uuid import uuid4
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gestfiscal.database.database import Base, get_db
from gestfiscal.dependencies.tenantDependencies import TenantContext
from gestfiscal.main import app
from gestfiscal.modules.clientes.models import Cliente, TipoCliente
from gestfiscal.modules.produtos.schemas import ProdutoCreate
from gestfiscal.modules.produtos.models import TipoProduto
from gestfiscal.modules.produtos.service import ProdutoService


engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Sessão sobre uma base de dados limpa por teste."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def tenant_id():
    return uuid4()


@pytest.fixture
def ctx(tenant_id):
    return TenantContext(tenant_id=tenant_id, user_id=uuid4())


@pytest.fixture
def headers(ctx):
    return {"X-Tenant-ID": str(ctx.tenant_id), "X-User-ID": str(ctx.user_id)}


@pytest.fixture
def outro_ctx():
    """Contexto de um segundo tenant, para testes de isolamento"""
    return TenantContext(tenant_id=uuid4())


@pytest.fixture
def cliente(db_session, ctx):
    cliente = Cliente(
        tenant_id=ctx.tenant_id,
        nome="Kianda Comércio, Lda",
        nif="5417000123",
        tipo=TipoCliente.EMPRESA,
        telefone="+244923456789",
        email="geral@kianda.co.ao"
    )
    db_session.add(cliente)
    db_session.commit()
    db_session.refresh(cliente)
    return cliente


@pytest.fixture
def produto(db_session, ctx):
    """Produto físico com 10 unidades em stock, preço 1000, IVA 14%"""
    return ProdutoService(db_session).criar_produto(ProdutoCreate(
        nome="Cadeira de escritório",
        codigo="CAD-001",
        preco_compra=Decimal("600"),
        preco_venda=Decimal("1000"),
        taxa_iva=Decimal("14"),
        estoque_minimo=Decimal("3"),
        estoque_inicial=Decimal("10")
    ), ctx)


@pytest.fixture
def servico(db_session, ctx):
    """Serviço com retenção por omissão (6,5%)"""
    return ProdutoService(db_session).criar_produto(ProdutoCreate(
        nome="Instalação de rede",
        codigo="SRV-001",
        tipo=TipoProduto.SERVICO,
        preco_venda=Decimal("20000"),
        taxa_iva=Decimal("14")
    ), ctx)
