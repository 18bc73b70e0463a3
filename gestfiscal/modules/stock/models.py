from gestfiscal.database.database import Base
from sqlalchemy import Column, String, ForeignKey, Numeric, Enum, Integer, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from uuid import uuid4
from gestfiscal.common.mixins import TenantMixin, TimestampMixin
import enum


class TipoMovimento(enum.Enum):
    ENTRADA = "entrada"
    SAIDA = "saida"


class OrigemMovimento(enum.Enum):
    COMPRA = "compra"
    VENDA = "venda"
    AJUSTE = "ajuste"
    NOTA_CREDITO = "nota_credito"
    CANCELAMENTO = "cancelamento"


class MovimentoStock(Base, TenantMixin, TimestampMixin):
    """Linha do ledger de stock; nunca é alterada nem apagada"""
    __tablename__ = "movimentos_stock"

    id = Column(Uuid, primary_key=True, default=uuid4)
    produto_id = Column(Uuid, ForeignKey("produtos.id"), nullable=False, index=True)
    sequencia = Column(Integer, nullable=False)  # Posição no ledger do produto
    user_id = Column(Uuid, nullable=True)

    tipo = Column(Enum(TipoMovimento), nullable=False)
    tipo_movimento = Column(Enum(OrigemMovimento), nullable=False)

    quantidade = Column(Numeric(15, 3), nullable=False)  # Negativa nas saídas
    estoque_anterior = Column(Numeric(15, 3), nullable=False)
    estoque_novo = Column(Numeric(15, 3), nullable=False)
    custo_medio = Column(Numeric(15, 2), nullable=True)

    referencia = Column(String(100), nullable=True)  # Documento fiscal, compra, etc.
    observacao = Column(String(255), nullable=True)

    produto = relationship("Produto", back_populates="movimentos")

    __table_args__ = (
        UniqueConstraint("produto_id", "sequencia", name="uq_movimento_produto_sequencia"),
    )
