from gestfiscal.database.database import Base
from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, ForeignKey, Numeric, Enum, Text, Uuid, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import date
from decimal import Decimal
from uuid import uuid4
from gestfiscal.common.mixins import TenantMixin, TimestampMixin
from gestfiscal.modules.documentos_fiscais.tipos import (
    TipoDocumento, EstadoDocumento, MetodoPagamento, ESTADOS_TERMINAIS, configuracao
)


class SerieFiscal(Base, TenantMixin, TimestampMixin):
    """Contador de numeração por tipo de documento e ano; bloqueado com FOR UPDATE ao emitir"""
    __tablename__ = "series_fiscais"

    id = Column(Uuid, primary_key=True, default=uuid4)
    tipo_documento = Column(Enum(TipoDocumento), nullable=False)
    serie = Column(String(20), nullable=False)
    ano = Column(Integer, nullable=False)
    ultimo_numero = Column(Integer, nullable=False, default=0)
    digitos = Column(Integer, nullable=False, default=5)
    ativa = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "serie", name="uq_serie_tenant_serie"),
        UniqueConstraint("tenant_id", "tipo_documento", "ano", "serie", name="uq_serie_tenant_tipo_ano"),
    )

    def formatar_numero(self, numero: int) -> str:
        return f"{self.serie}-{numero:0{self.digitos}d}"


class DocumentoFiscal(Base, TenantMixin, TimestampMixin):
    __tablename__ = "documentos_fiscais"

    id = Column(Uuid, primary_key=True, default=uuid4)

    # Referências
    user_id = Column(Uuid, nullable=True)
    venda_id = Column(Uuid, ForeignKey("vendas.id"), nullable=True, index=True)
    cliente_id = Column(Uuid, ForeignKey("clientes.id"), nullable=True, index=True)
    fatura_id = Column(Uuid, ForeignKey("documentos_fiscais.id"), nullable=True, index=True)  # Documento de origem

    # Cliente avulso (snapshot no momento da emissão)
    cliente_nome = Column(String(200), nullable=True)
    cliente_nif = Column(String(20), nullable=True)

    # Numeração
    serie = Column(String(20), nullable=False)
    numero = Column(Integer, nullable=False)
    numero_documento = Column(String(50), nullable=False)

    tipo_documento = Column(Enum(TipoDocumento), nullable=False, index=True)
    estado = Column(Enum(EstadoDocumento), nullable=False, default=EstadoDocumento.EMITIDO, index=True)

    # Datas
    data_emissao = Column(Date, nullable=False, default=date.today, index=True)
    data_vencimento = Column(Date, nullable=True)
    data_cancelamento = Column(DateTime(timezone=True), nullable=True)

    # Totais
    base_tributavel = Column(Numeric(15, 2), nullable=False, default=0)
    total_desconto = Column(Numeric(15, 2), nullable=False, default=0)
    total_iva = Column(Numeric(15, 2), nullable=False, default=0)
    total_retencao = Column(Numeric(15, 2), nullable=False, default=0)
    total_liquido = Column(Numeric(15, 2), nullable=False, default=0)

    # Pagamento (FR e RC)
    metodo_pagamento = Column(Enum(MetodoPagamento), nullable=True)
    referencia_pagamento = Column(String(100), nullable=True)

    motivo = Column(Text, nullable=True)
    motivo_cancelamento = Column(Text, nullable=True)
    user_cancelamento_id = Column(Uuid, nullable=True)
    referencia_externa = Column(String(100), nullable=True)
    hash_fiscal = Column(String(64), nullable=False)

    # Relationships
    cliente = relationship("Cliente")
    itens = relationship(
        "ItemDocumentoFiscal", back_populates="documento",
        cascade="all, delete-orphan", order_by="ItemDocumentoFiscal.ordem"
    )
    documento_origem = relationship(
        "DocumentoFiscal", remote_side=[id], back_populates="documentos_derivados"
    )
    documentos_derivados = relationship("DocumentoFiscal", back_populates="documento_origem")
    vinculos_adiantamento = relationship(
        "AdiantamentoFatura", foreign_keys="AdiantamentoFatura.adiantamento_id",
        back_populates="adiantamento"
    )
    vinculos_fatura = relationship(
        "AdiantamentoFatura", foreign_keys="AdiantamentoFatura.fatura_id",
        back_populates="fatura"
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "serie", "numero", name="uq_documento_tenant_serie_numero"),
        UniqueConstraint("tenant_id", "numero_documento", name="uq_documento_tenant_numero_documento"),
    )

    @property
    def nome_tipo(self) -> str:
        return configuracao(self.tipo_documento).nome

    @property
    def is_cancelado(self) -> bool:
        return self.estado == EstadoDocumento.CANCELADO

    @property
    def is_terminal(self) -> bool:
        return self.estado in ESTADOS_TERMINAIS

    @property
    def nome_cliente(self) -> str:
        if self.cliente is not None:
            return self.cliente.nome
        return self.cliente_nome or "Consumidor Final"

    def total_recibos(self) -> Decimal:
        """Soma dos recibos não cancelados emitidos sobre este documento"""
        return sum(
            (Decimal(d.total_liquido) for d in self.documentos_derivados
             if d.tipo_documento == TipoDocumento.RC and not d.is_cancelado),
            Decimal("0")
        )

    def total_adiantamentos_utilizados(self) -> Decimal:
        """Como fatura: valor de adiantamentos abatido"""
        return sum((Decimal(v.valor_utilizado) for v in self.vinculos_fatura), Decimal("0"))

    def total_utilizado_como_adiantamento(self) -> Decimal:
        """Como FA: valor já aplicado em faturas"""
        return sum((Decimal(v.valor_utilizado) for v in self.vinculos_adiantamento), Decimal("0"))

    @property
    def valor_pendente(self) -> Decimal:
        """
        FT: total − recibos − adiantamentos aplicados
        FA: total − recibos
        Restantes tipos (e documentos cancelados): nada a cobrar
        """
        if self.is_cancelado:
            return Decimal("0")
        total = Decimal(self.total_liquido or 0)
        if self.tipo_documento == TipoDocumento.FT:
            pendente = total - self.total_recibos() - self.total_adiantamentos_utilizados()
        elif self.tipo_documento == TipoDocumento.FA:
            pendente = total - self.total_recibos()
        else:
            return Decimal("0")
        return max(Decimal("0"), pendente)

    @property
    def saldo_adiantamento(self) -> Decimal:
        """Valor de uma FA ainda disponível para aplicar em faturas"""
        if self.tipo_documento != TipoDocumento.FA or self.is_cancelado:
            return Decimal("0")
        return max(Decimal("0"), Decimal(self.total_liquido or 0) - self.total_utilizado_como_adiantamento())


class ItemDocumentoFiscal(Base, TenantMixin, TimestampMixin):
    __tablename__ = "itens_documento_fiscal"

    id = Column(Uuid, primary_key=True, default=uuid4)
    documento_id = Column(Uuid, ForeignKey("documentos_fiscais.id"), nullable=False, index=True)
    produto_id = Column(Uuid, ForeignKey("produtos.id"), nullable=True)  # Nulo em linhas de texto livre
    ordem = Column(Integer, nullable=False, default=0)

    descricao = Column(String(255), nullable=False)
    quantidade = Column(Numeric(15, 3), nullable=False)
    preco_unitario = Column(Numeric(15, 2), nullable=False)
    desconto = Column(Numeric(5, 2), nullable=False, default=0)  # Percentagem
    valor_desconto = Column(Numeric(15, 2), nullable=False, default=0)
    taxa_iva = Column(Numeric(5, 2), nullable=False, default=0)
    valor_iva = Column(Numeric(15, 2), nullable=False, default=0)
    taxa_retencao = Column(Numeric(5, 2), nullable=False, default=0)
    valor_retencao = Column(Numeric(15, 2), nullable=False, default=0)
    total_linha = Column(Numeric(15, 2), nullable=False)  # Base tributável da linha

    documento = relationship("DocumentoFiscal", back_populates="itens")
    produto = relationship("Produto")


class AdiantamentoFatura(Base, TenantMixin, TimestampMixin):
    """Aplicação de uma FA (adiantamento) a uma FT"""
    __tablename__ = "adiantamento_fatura"

    id = Column(Uuid, primary_key=True, default=uuid4)
    adiantamento_id = Column(Uuid, ForeignKey("documentos_fiscais.id"), nullable=False, index=True)
    fatura_id = Column(Uuid, ForeignKey("documentos_fiscais.id"), nullable=False, index=True)
    valor_utilizado = Column(Numeric(15, 2), nullable=False)
    user_id = Column(Uuid, nullable=True)

    adiantamento = relationship("DocumentoFiscal", foreign_keys=[adiantamento_id], back_populates="vinculos_adiantamento")
    fatura = relationship("DocumentoFiscal", foreign_keys=[fatura_id], back_populates="vinculos_fatura")
