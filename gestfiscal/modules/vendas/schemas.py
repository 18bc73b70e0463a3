from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from gestfiscal.modules.vendas.models import StatusVenda
from gestfiscal.modules.documentos_fiscais.tipos import TipoDocumento
from gestfiscal.modules.documentos_fiscais.schemas import DadosPagamento, DocumentoFiscalOut


class ItemVendaCreate(BaseModel):
    produto_id: UUID
    quantidade: Decimal = Field(..., gt=0)
    preco_venda: Optional[Decimal] = Field(None, ge=0, description="Por omissão, o preço de venda do produto")
    desconto: Decimal = Field(Decimal("0"), ge=0, le=100, description="Desconto em percentagem")
    taxa_iva: Optional[Decimal] = Field(None, ge=0, le=100)


class VendaCreate(BaseModel):
    cliente_id: Optional[UUID] = None
    itens: List[ItemVendaCreate] = Field(..., min_length=1)
    observacoes: Optional[str] = Field(None, max_length=1000)


class FaturarVendaRequest(BaseModel):
    tipo_documento: TipoDocumento = TipoDocumento.FT
    dados_pagamento: Optional[DadosPagamento] = None

    @field_validator('tipo_documento')
    @classmethod
    def validate_tipo(cls, v):
        if v not in (TipoDocumento.FT, TipoDocumento.FR):
            raise ValueError('Uma venda só pode ser faturada com FT ou FR')
        return v

    @model_validator(mode='after')
    def validate_pagamento(self):
        if self.tipo_documento == TipoDocumento.FR and self.dados_pagamento is None:
            raise ValueError('Os dados de pagamento são obrigatórios para Fatura-Recibo')
        return self


class ItemVendaOut(BaseModel):
    id: UUID
    produto_id: UUID
    descricao: str
    quantidade: Decimal
    preco_venda: Decimal
    desconto: Decimal
    valor_desconto: Decimal
    taxa_iva: Decimal
    valor_iva: Decimal
    subtotal: Decimal

    class Config:
        from_attributes = True


class VendaOut(BaseModel):
    id: UUID
    cliente_id: Optional[UUID] = None
    data_venda: date
    status: StatusVenda
    observacoes: Optional[str] = None
    subtotal: Decimal
    total_desconto: Decimal
    total_iva: Decimal
    total: Decimal
    documento_fiscal_id: Optional[UUID] = None
    tipo_documento_fiscal: Optional[str] = None
    itens: List[ItemVendaOut] = []
    created_at: datetime

    class Config:
        from_attributes = True


class VendaList(BaseModel):
    vendas: List[VendaOut]
    total: int
    limit: int
    offset: int


class VendaFaturada(BaseModel):
    venda: VendaOut
    documento: DocumentoFiscalOut
