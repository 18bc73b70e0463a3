from gestfiscal.database.database import Base
from sqlalchemy import Column, String, Boolean, ForeignKey, Numeric, Enum, Text, Integer, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from decimal import Decimal
from uuid import uuid4
from gestfiscal.common.mixins import TenantMixin, TimestampMixin, SoftDeleteMixin
import enum


class TipoProduto(enum.Enum):
    PRODUTO = "produto"
    SERVICO = "servico"


class StatusProduto(enum.Enum):
    ATIVO = "ativo"
    INATIVO = "inativo"


class Categoria(Base, TenantMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "categorias"

    id = Column(Uuid, primary_key=True, default=uuid4)
    nome = Column(String(100), nullable=False)
    descricao = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    produtos = relationship("Produto", back_populates="categoria")

    __table_args__ = (
        UniqueConstraint("tenant_id", "nome", name="uq_categoria_tenant_nome"),
    )


class Fornecedor(Base, TenantMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "fornecedores"

    id = Column(Uuid, primary_key=True, default=uuid4)
    nome = Column(String(200), nullable=False)
    nif = Column(String(20), nullable=True)
    telefone = Column(String(30), nullable=True)
    email = Column(String(150), nullable=True)
    endereco = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    produtos = relationship("Produto", back_populates="fornecedor")

    __table_args__ = (
        UniqueConstraint("tenant_id", "nif", name="uq_fornecedor_tenant_nif"),
    )


class Produto(Base, TenantMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "produtos"

    id = Column(Uuid, primary_key=True, default=uuid4)
    categoria_id = Column(Uuid, ForeignKey("categorias.id"), nullable=True)
    fornecedor_id = Column(Uuid, ForeignKey("fornecedores.id"), nullable=True)

    nome = Column(String(200), nullable=False, index=True)
    codigo = Column(String(50), nullable=True)  # Código interno / código de barras
    tipo = Column(Enum(TipoProduto), nullable=False, default=TipoProduto.PRODUTO)
    status = Column(Enum(StatusProduto), nullable=False, default=StatusProduto.ATIVO)
    descricao = Column(Text, nullable=True)
    unidade_medida = Column(String(10), nullable=False, default="un")

    # Preços
    preco_compra = Column(Numeric(15, 2), nullable=False, default=0)
    preco_venda = Column(Numeric(15, 2), nullable=False, default=0)
    custo_medio = Column(Numeric(15, 2), nullable=False, default=0)

    # Fiscal
    taxa_iva = Column(Numeric(5, 2), nullable=False, default=Decimal("14"))
    sujeito_iva = Column(Boolean, nullable=False, default=True)
    retencao = Column(Numeric(5, 2), nullable=True)  # % de retenção na fonte (serviços)

    # Stock (sempre zero para serviços)
    estoque_atual = Column(Numeric(15, 3), nullable=False, default=0)
    estoque_minimo = Column(Numeric(15, 3), nullable=False, default=5)

    # Serviços
    duracao_estimada = Column(Integer, nullable=True)  # minutos

    categoria = relationship("Categoria", back_populates="produtos")
    fornecedor = relationship("Fornecedor", back_populates="produtos")
    movimentos = relationship("MovimentoStock", back_populates="produto", order_by="MovimentoStock.sequencia")

    __table_args__ = (
        UniqueConstraint("tenant_id", "codigo", name="uq_produto_tenant_codigo"),
    )

    @property
    def is_servico(self) -> bool:
        return self.tipo == TipoProduto.SERVICO

    @property
    def is_ativo(self) -> bool:
        return self.status == StatusProduto.ATIVO and not self.is_deleted

    @property
    def esta_estoque_baixo(self) -> bool:
        """0 < estoque ≤ mínimo; nunca para serviços"""
        if self.is_servico:
            return False
        return 0 < (self.estoque_atual or 0) <= (self.estoque_minimo or 0)

    @property
    def esta_sem_estoque(self) -> bool:
        if self.is_servico:
            return False
        return (self.estoque_atual or 0) == 0

    @property
    def margem_lucro(self) -> Decimal:
        """Margem percentual sobre o custo médio"""
        custo = Decimal(self.custo_medio or 0)
        if custo <= 0:
            return Decimal("0")
        return ((Decimal(self.preco_venda or 0) - custo) / custo * 100).quantize(Decimal("0.01"))

    def zerar_campos_stock(self):
        """Serviços não têm stock nem custo de compra"""
        self.estoque_atual = 0
        self.estoque_minimo = 0
        self.custo_medio = 0
        self.preco_compra = 0
