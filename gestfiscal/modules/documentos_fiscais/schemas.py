from pydantic import BaseModel, Field, field_validator, model_validator, ValidationInfo
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from gestfiscal.modules.documentos_fiscais.tipos import (
    TipoDocumento, EstadoDocumento, MetodoPagamento, configuracao
)


class ItemDocumentoCreate(BaseModel):
    produto_id: Optional[UUID] = None
    descricao: Optional[str] = Field(None, max_length=255)
    quantidade: Decimal = Field(..., ge=Decimal("0.01"), description="Mínimo 0.01")
    preco_unitario: Optional[Decimal] = Field(None, ge=0, description="Por omissão, o preço de venda do produto")
    taxa_iva: Optional[Decimal] = Field(None, ge=0, le=100, description="Por omissão, a taxa do produto")
    desconto: Decimal = Field(Decimal("0"), ge=0, le=100, description="Desconto em percentagem")
    taxa_retencao: Optional[Decimal] = Field(None, ge=0, le=100)

    @model_validator(mode='after')
    def linha_livre_completa(self):
        if self.produto_id is None and (not self.descricao or self.preco_unitario is None):
            raise ValueError('Linhas sem produto exigem descrição e preço unitário')
        return self


class DadosPagamento(BaseModel):
    metodo: MetodoPagamento
    valor: Decimal = Field(..., ge=Decimal("0.01"))
    referencia: Optional[str] = Field(None, max_length=100)
    data: Optional[date] = None


def _tipo(info: ValidationInfo) -> Optional[TipoDocumento]:
    return info.data.get('tipo_documento')


class DocumentoFiscalCreate(BaseModel):
    """Pedido de emissão; os campos obrigatórios variam com o tipo de documento"""
    tipo_documento: TipoDocumento
    cliente_id: Optional[UUID] = None
    cliente_nome: Optional[str] = Field(None, max_length=200)
    cliente_nif: Optional[str] = Field(None, max_length=20)
    venda_id: Optional[UUID] = None
    fatura_id: Optional[UUID] = Field(None, validate_default=True)
    itens: List[ItemDocumentoCreate] = Field(default_factory=list, validate_default=True)
    dados_pagamento: Optional[DadosPagamento] = Field(None, validate_default=True)
    motivo: Optional[str] = Field(None, max_length=500, validate_default=True)
    data_vencimento: Optional[date] = None
    referencia_externa: Optional[str] = Field(None, max_length=100)

    @field_validator('fatura_id')
    @classmethod
    def validate_origem(cls, v, info: ValidationInfo):
        tipo = _tipo(info)
        if tipo and configuracao(tipo).exige_origem and v is None:
            raise ValueError(f'O documento de origem é obrigatório para {configuracao(tipo).nome}')
        return v

    @field_validator('itens')
    @classmethod
    def validate_itens(cls, v, info: ValidationInfo):
        tipo = _tipo(info)
        if tipo and configuracao(tipo).exige_itens and not v:
            raise ValueError('O documento deve ter pelo menos um item')
        return v

    @field_validator('dados_pagamento')
    @classmethod
    def validate_dados_pagamento(cls, v, info: ValidationInfo):
        tipo = _tipo(info)
        if tipo is None or v is not None:
            return v
        if configuracao(tipo).exige_dados_pagamento:
            raise ValueError(f'Os dados de pagamento são obrigatórios para {configuracao(tipo).nome}')
        if tipo == TipoDocumento.FA and not info.data.get('itens'):
            raise ValueError('Adiantamento sem itens exige os dados de pagamento')
        return v

    @field_validator('motivo')
    @classmethod
    def validate_motivo(cls, v, info: ValidationInfo):
        tipo = _tipo(info)
        if tipo and configuracao(tipo).exige_motivo and not (v and v.strip()):
            raise ValueError(f'O motivo é obrigatório para {configuracao(tipo).nome}')
        return v

    @field_validator('data_vencimento')
    @classmethod
    def validate_data_vencimento(cls, v):
        if v is not None and v < date.today():
            raise ValueError('A data de vencimento não pode ser anterior a hoje')
        return v


class ReciboCreate(BaseModel):
    valor: Decimal = Field(..., ge=Decimal("0.01"))
    metodo_pagamento: MetodoPagamento
    referencia: Optional[str] = Field(None, max_length=100)
    data_pagamento: Optional[date] = None


class NotaCreditoCreate(BaseModel):
    itens: List[ItemDocumentoCreate] = Field(..., min_length=1)
    motivo: Optional[str] = Field(None, max_length=500)


class NotaDebitoCreate(BaseModel):
    itens: List[ItemDocumentoCreate] = Field(..., min_length=1)
    motivo: Optional[str] = Field(None, max_length=500)


class VincularAdiantamentoRequest(BaseModel):
    fatura_id: UUID
    valor: Decimal = Field(..., ge=Decimal("0.01"))


class CancelamentoRequest(BaseModel):
    motivo: str = Field(..., min_length=10, max_length=500)
    reverter_stock: bool = Field(False, description="Lança movimentos inversos no stock")


class DocumentoFiltros(BaseModel):
    tipo_documento: Optional[TipoDocumento] = None
    estado: Optional[EstadoDocumento] = None
    cliente_id: Optional[UUID] = None
    cliente_nome: Optional[str] = None
    data_inicio: Optional[date] = None
    data_fim: Optional[date] = None
    apenas_vendas: bool = False
    apenas_nao_vendas: bool = False
    pendentes: bool = False
    adiantamentos_pendentes: bool = False
    proformas_pendentes: bool = False


class ItemDocumentoOut(BaseModel):
    id: UUID
    produto_id: Optional[UUID] = None
    descricao: str
    quantidade: Decimal
    preco_unitario: Decimal
    desconto: Decimal
    valor_desconto: Decimal
    taxa_iva: Decimal
    valor_iva: Decimal
    taxa_retencao: Decimal
    valor_retencao: Decimal
    total_linha: Decimal

    class Config:
        from_attributes = True


class DocumentoFiscalOut(BaseModel):
    id: UUID
    tipo_documento: TipoDocumento
    nome_tipo: str
    estado: EstadoDocumento
    serie: str
    numero: int
    numero_documento: str
    cliente_id: Optional[UUID] = None
    cliente_nome: Optional[str] = None
    cliente_nif: Optional[str] = None
    nome_cliente: str
    venda_id: Optional[UUID] = None
    fatura_id: Optional[UUID] = None
    data_emissao: date
    data_vencimento: Optional[date] = None
    base_tributavel: Decimal
    total_desconto: Decimal
    total_iva: Decimal
    total_retencao: Decimal
    total_liquido: Decimal
    valor_pendente: Decimal
    metodo_pagamento: Optional[MetodoPagamento] = None
    referencia_pagamento: Optional[str] = None
    motivo: Optional[str] = None
    motivo_cancelamento: Optional[str] = None
    data_cancelamento: Optional[datetime] = None
    hash_fiscal: str
    created_at: datetime

    class Config:
        from_attributes = True


class VinculoAdiantamentoOut(BaseModel):
    id: UUID
    adiantamento_id: UUID
    fatura_id: UUID
    valor_utilizado: Decimal
    created_at: datetime

    class Config:
        from_attributes = True


class DocumentoFiscalDetail(DocumentoFiscalOut):
    itens: List[ItemDocumentoOut] = []
    documento_origem: Optional[DocumentoFiscalOut] = None
    documentos_derivados: List[DocumentoFiscalOut] = []
    vinculos_adiantamento: List[VinculoAdiantamentoOut] = []
    vinculos_fatura: List[VinculoAdiantamentoOut] = []
    saldo_adiantamento: Decimal = Decimal("0")


class DocumentoFiscalList(BaseModel):
    documentos: List[DocumentoFiscalOut]
    total: int
    limit: int
    offset: int


class ResultadoProcessamento(BaseModel):
    processados: int
