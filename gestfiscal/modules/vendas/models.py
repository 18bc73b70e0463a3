from gestfiscal.database.database import Base
from sqlalchemy import Column, String, Date, ForeignKey, Numeric, Enum, Text, Integer, Uuid
from sqlalchemy.orm import relationship
from datetime import date
from uuid import uuid4
from gestfiscal.common.mixins import TenantMixin, TimestampMixin
import enum


class StatusVenda(enum.Enum):
    ABERTA = "aberta"        # Registada, ainda sem documento fiscal
    FATURADA = "faturada"    # Documento fiscal emitido (FT/FR)
    CANCELADA = "cancelada"


class Venda(Base, TenantMixin, TimestampMixin):
    __tablename__ = "vendas"

    id = Column(Uuid, primary_key=True, default=uuid4)
    cliente_id = Column(Uuid, ForeignKey("clientes.id"), nullable=True, index=True)
    user_id = Column(Uuid, nullable=True)

    data_venda = Column(Date, nullable=False, default=date.today)
    status = Column(Enum(StatusVenda), nullable=False, default=StatusVenda.ABERTA)
    observacoes = Column(Text, nullable=True)

    # Totais
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)        # Base após descontos
    total_desconto = Column(Numeric(15, 2), nullable=False, default=0)
    total_iva = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False, default=0)

    # Documento fiscal que faturou a venda (sem FK: o documento referencia a venda)
    documento_fiscal_id = Column(Uuid, nullable=True)
    tipo_documento_fiscal = Column(String(5), nullable=True)

    cliente = relationship("Cliente")
    itens = relationship("ItemVenda", back_populates="venda", cascade="all, delete-orphan", order_by="ItemVenda.ordem")


class ItemVenda(Base, TenantMixin, TimestampMixin):
    __tablename__ = "itens_venda"

    id = Column(Uuid, primary_key=True, default=uuid4)
    venda_id = Column(Uuid, ForeignKey("vendas.id"), nullable=False, index=True)
    produto_id = Column(Uuid, ForeignKey("produtos.id"), nullable=False)
    ordem = Column(Integer, nullable=False, default=0)

    descricao = Column(String(255), nullable=False)
    quantidade = Column(Numeric(15, 3), nullable=False)
    preco_venda = Column(Numeric(15, 2), nullable=False)
    desconto = Column(Numeric(5, 2), nullable=False, default=0)  # Percentagem
    valor_desconto = Column(Numeric(15, 2), nullable=False, default=0)
    taxa_iva = Column(Numeric(5, 2), nullable=False, default=0)
    valor_iva = Column(Numeric(15, 2), nullable=False, default=0)
    subtotal = Column(Numeric(15, 2), nullable=False)  # Base da linha (após desconto)

    venda = relationship("Venda", back_populates="itens")
    produto = relationship("Produto")
