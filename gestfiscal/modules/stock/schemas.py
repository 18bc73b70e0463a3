from pydantic import BaseModel, Field
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import datetime

from gestfiscal.modules.stock.models import TipoMovimento, OrigemMovimento


class AjusteStockCreate(BaseModel):
    produto_id: UUID
    tipo: TipoMovimento
    quantidade: Decimal = Field(..., gt=0, description="Quantidade sempre positiva; o tipo define o sinal")
    motivo: str = Field(..., min_length=3, max_length=255)


class EntradaCompraCreate(BaseModel):
    produto_id: UUID
    quantidade: Decimal = Field(..., gt=0)
    preco_compra: Decimal = Field(..., ge=0, description="Custo unitário da compra")
    referencia: Optional[str] = Field(None, max_length=100)


class MovimentoStockOut(BaseModel):
    id: UUID
    produto_id: UUID
    sequencia: int
    user_id: Optional[UUID] = None
    tipo: TipoMovimento
    tipo_movimento: OrigemMovimento
    quantidade: Decimal
    estoque_anterior: Decimal
    estoque_novo: Decimal
    custo_medio: Optional[Decimal] = None
    referencia: Optional[str] = None
    observacao: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class MovimentoStockList(BaseModel):
    movimentos: List[MovimentoStockOut]
    total: int
    limit: int
    offset: int


class ProdutoEmRisco(BaseModel):
    id: UUID
    nome: str
    codigo: Optional[str] = None
    estoque_atual: Decimal
    estoque_minimo: Decimal
    sem_estoque: bool


class VerificacaoLedger(BaseModel):
    produto_id: UUID
    consistente: bool
    estoque_atual: Decimal
    estoque_ledger: Decimal
    total_movimentos: int
    quebras: List[UUID] = []
