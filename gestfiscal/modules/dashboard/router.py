from fastapi import APIRouter, Query
from typing import List, Optional

from gestfiscal.common.responses import RespostaApi, resposta
from gestfiscal.dependencies.dbDependecies import db_dependency
from gestfiscal.dependencies.tenantDependencies import TenantCtx
from gestfiscal.modules.dashboard.service import DashboardService

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@router.get("/", response_model=RespostaApi[dict])
def dashboard_geral(db: db_dependency, ctx: TenantCtx):
    """KPIs do mês, documentos, pagamentos, alertas, clientes, produtos e vendas"""
    return resposta(DashboardService(db, ctx).dashboard_geral())


@router.get("/alertas", response_model=RespostaApi[dict])
def alertas(db: db_dependency, ctx: TenantCtx):
    return resposta(DashboardService(db, ctx).alertas())


@router.get("/evolucao-mensal", response_model=RespostaApi[List[dict]])
def evolucao_mensal(
    db: db_dependency,
    ctx: TenantCtx,
    ano: Optional[int] = Query(None, ge=2000, le=2100)
):
    return resposta(DashboardService(db, ctx).evolucao_mensal(ano))
