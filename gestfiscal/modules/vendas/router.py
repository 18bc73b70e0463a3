from fastapi import APIRouter, Query, status
from typing import Optional
from uuid import UUID
from datetime import date

from gestfiscal.common.responses import RespostaApi, resposta
from gestfiscal.core.config import settings
from gestfiscal.dependencies.dbDependecies import db_dependency
from gestfiscal.dependencies.tenantDependencies import TenantCtx
from gestfiscal.modules.vendas.models import StatusVenda
from gestfiscal.modules.vendas.service import VendaService
from gestfiscal.modules.vendas.schemas import (
    VendaCreate, FaturarVendaRequest, VendaOut, VendaList, VendaFaturada
)
from gestfiscal.modules.documentos_fiscais.schemas import DocumentoFiscalOut

router = APIRouter(
    prefix="/vendas",
    tags=["Vendas"],
    responses={404: {"description": "Not found"}}
)


@router.post("/", response_model=RespostaApi[VendaOut], status_code=status.HTTP_201_CREATED)
def criar_venda(dados: VendaCreate, db: db_dependency, ctx: TenantCtx):
    """Registar uma venda (sem movimento de stock até ser faturada)"""
    venda = VendaService(db).criar_venda(dados, ctx)
    return resposta(VendaOut.model_validate(venda), "Venda registada com sucesso")


@router.get("/", response_model=RespostaApi[VendaList])
def listar_vendas(
    db: db_dependency,
    ctx: TenantCtx,
    status_filtro: Optional[StatusVenda] = Query(None, alias="status"),
    cliente_id: Optional[UUID] = Query(None),
    data_inicio: Optional[date] = Query(None),
    data_fim: Optional[date] = Query(None),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0)
):
    resultado = VendaService(db).listar_vendas(ctx, status_filtro, cliente_id, data_inicio, data_fim, limit, offset)
    return resposta(VendaList.model_validate(resultado))


@router.get("/{venda_id}", response_model=RespostaApi[VendaOut])
def obter_venda(venda_id: UUID, db: db_dependency, ctx: TenantCtx):
    return resposta(VendaOut.model_validate(VendaService(db).obter_venda(venda_id, ctx)))


@router.post("/{venda_id}/faturar", response_model=RespostaApi[VendaFaturada], status_code=status.HTTP_201_CREATED)
def faturar_venda(venda_id: UUID, dados: FaturarVendaRequest, db: db_dependency, ctx: TenantCtx):
    """
    Faturar a venda

    - **FT**: fatura; dados_pagamento opcional gera logo o recibo
    - **FR**: fatura-recibo; exige cliente e dados_pagamento
    """
    venda, documento = VendaService(db).faturar_venda(venda_id, dados, ctx)
    return resposta(
        VendaFaturada(venda=VendaOut.model_validate(venda), documento=DocumentoFiscalOut.model_validate(documento)),
        f"Venda faturada com {documento.numero_documento}"
    )


@router.post("/{venda_id}/cancelar", response_model=RespostaApi[VendaOut])
def cancelar_venda(venda_id: UUID, db: db_dependency, ctx: TenantCtx):
    venda = VendaService(db).cancelar_venda(venda_id, ctx)
    return resposta(VendaOut.model_validate(venda), "Venda cancelada")
