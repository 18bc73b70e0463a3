from pydantic import BaseModel, Field, model_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import datetime

from gestfiscal.core.config import settings
from gestfiscal.modules.produtos.models import TipoProduto, StatusProduto


class ProdutoBase(BaseModel):
    nome: str = Field(..., min_length=1, max_length=200)
    codigo: Optional[str] = Field(None, max_length=50)
    tipo: TipoProduto = TipoProduto.PRODUTO
    descricao: Optional[str] = None
    unidade_medida: str = Field("un", max_length=10)
    categoria_id: Optional[UUID] = None
    fornecedor_id: Optional[UUID] = None
    preco_compra: Decimal = Field(Decimal("0"), ge=0)
    preco_venda: Decimal = Field(..., ge=0)
    taxa_iva: Decimal = Field(settings.IVA_TAXA_PADRAO, ge=0, le=100)
    sujeito_iva: bool = True
    retencao: Optional[Decimal] = Field(None, ge=0, le=100, description="% de retenção (serviços)")
    estoque_minimo: Decimal = Field(Decimal(settings.ESTOQUE_MINIMO_PADRAO), ge=0)
    duracao_estimada: Optional[int] = Field(None, ge=0, description="Duração em minutos (serviços)")


class ProdutoCreate(ProdutoBase):
    estoque_inicial: Decimal = Field(Decimal("0"), ge=0, description="Registado como entrada no stock")

    @model_validator(mode='after')
    def servico_sem_stock(self):
        if self.tipo == TipoProduto.SERVICO and self.estoque_inicial > 0:
            raise ValueError('Serviços não podem ter stock inicial')
        return self


class ProdutoUpdate(BaseModel):
    nome: Optional[str] = Field(None, min_length=1, max_length=200)
    codigo: Optional[str] = Field(None, max_length=50)
    tipo: Optional[TipoProduto] = None
    status: Optional[StatusProduto] = None
    descricao: Optional[str] = None
    unidade_medida: Optional[str] = Field(None, max_length=10)
    categoria_id: Optional[UUID] = None
    fornecedor_id: Optional[UUID] = None
    preco_compra: Optional[Decimal] = Field(None, ge=0)
    preco_venda: Optional[Decimal] = Field(None, ge=0)
    taxa_iva: Optional[Decimal] = Field(None, ge=0, le=100)
    sujeito_iva: Optional[bool] = None
    retencao: Optional[Decimal] = Field(None, ge=0, le=100)
    estoque_minimo: Optional[Decimal] = Field(None, ge=0)
    duracao_estimada: Optional[int] = Field(None, ge=0)


class ProdutoOut(BaseModel):
    id: UUID
    nome: str
    codigo: Optional[str] = None
    tipo: TipoProduto
    status: StatusProduto
    descricao: Optional[str] = None
    unidade_medida: str
    categoria_id: Optional[UUID] = None
    fornecedor_id: Optional[UUID] = None
    preco_compra: Decimal
    preco_venda: Decimal
    custo_medio: Decimal
    taxa_iva: Decimal
    sujeito_iva: bool
    retencao: Optional[Decimal] = None
    estoque_atual: Decimal
    estoque_minimo: Decimal
    duracao_estimada: Optional[int] = None
    esta_estoque_baixo: bool
    esta_sem_estoque: bool
    margem_lucro: Decimal
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProdutoList(BaseModel):
    produtos: List[ProdutoOut]
    total: int
    limit: int
    offset: int
