"""
Router do ledger de stock

Movimentos manuais (ajustes, compras), consulta do histórico,
produtos em risco e verificação de consistência do ledger.
"""

from fastapi import APIRouter, Query, status
from typing import List, Optional
from uuid import UUID

from gestfiscal.common.responses import RespostaApi, resposta
from gestfiscal.core.config import settings
from gestfiscal.dependencies.dbDependecies import db_dependency
from gestfiscal.dependencies.tenantDependencies import TenantCtx
from gestfiscal.modules.stock.models import TipoMovimento, OrigemMovimento
from gestfiscal.modules.stock.service import StockService
from gestfiscal.modules.stock.schemas import (
    AjusteStockCreate, EntradaCompraCreate, MovimentoStockOut, MovimentoStockList,
    ProdutoEmRisco, VerificacaoLedger
)

router = APIRouter(prefix="/stock", tags=["Stock"])


@router.post("/ajustes", response_model=RespostaApi[MovimentoStockOut], status_code=status.HTTP_201_CREATED)
def registar_ajuste(dados: AjusteStockCreate, db: db_dependency, ctx: TenantCtx):
    """Ajuste manual de stock (entrada ou saída) com motivo obrigatório"""
    movimento = StockService(db).registar_ajuste(dados, ctx)
    return resposta(MovimentoStockOut.model_validate(movimento), "Ajuste de stock registado")


@router.post("/compras", response_model=RespostaApi[MovimentoStockOut], status_code=status.HTTP_201_CREATED)
def registar_entrada_compra(dados: EntradaCompraCreate, db: db_dependency, ctx: TenantCtx):
    """Entrada por compra; recalcula o custo médio ponderado do produto"""
    movimento = StockService(db).registar_entrada_compra(dados, ctx)
    return resposta(MovimentoStockOut.model_validate(movimento), "Entrada de compra registada")


@router.get("/movimentos", response_model=RespostaApi[MovimentoStockList])
def listar_movimentos(
    db: db_dependency,
    ctx: TenantCtx,
    produto_id: Optional[UUID] = Query(None),
    tipo: Optional[TipoMovimento] = Query(None),
    tipo_movimento: Optional[OrigemMovimento] = Query(None),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0)
):
    resultado = StockService(db).listar_movimentos(ctx, produto_id, tipo, tipo_movimento, limit, offset)
    return resposta(MovimentoStockList.model_validate(resultado))


@router.get("/produtos-em-risco", response_model=RespostaApi[List[ProdutoEmRisco]])
def produtos_em_risco(db: db_dependency, ctx: TenantCtx):
    return resposta(StockService(db).produtos_em_risco(ctx))


@router.get("/dashboard", response_model=RespostaApi[dict])
def dashboard_stock(db: db_dependency, ctx: TenantCtx):
    return resposta(StockService(db).dashboard(ctx))


@router.get("/produtos/{produto_id}/verificar", response_model=RespostaApi[VerificacaoLedger])
def verificar_ledger(produto_id: UUID, db: db_dependency, ctx: TenantCtx):
    """Confere que o ledger do produto é contínuo e bate com o stock atual"""
    return resposta(StockService(db).verificar_ledger(produto_id, ctx))
