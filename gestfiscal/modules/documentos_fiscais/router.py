"""
Router de Documentos Fiscais

Emissão (FT, FR, FP, FA, NC, ND, RC, FRt), recibos, notas de crédito e
débito, vinculação de adiantamentos, cancelamento e painel de documentos.

As rotas fixas estão declaradas antes de /{documento_id}.
"""

from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional
from uuid import UUID

from gestfiscal.common.responses import RespostaApi, resposta
from gestfiscal.core.config import settings
from gestfiscal.dependencies.dbDependecies import db_dependency
from gestfiscal.dependencies.tenantDependencies import TenantCtx
from gestfiscal.modules.dashboard.service import DashboardService
from gestfiscal.modules.documentos_fiscais.service import DocumentoFiscalService
from gestfiscal.modules.documentos_fiscais.schemas import (
    DocumentoFiscalCreate, ReciboCreate, NotaCreditoCreate, NotaDebitoCreate,
    VincularAdiantamentoRequest, CancelamentoRequest, DocumentoFiltros,
    DocumentoFiscalOut, DocumentoFiscalDetail, DocumentoFiscalList,
    VinculoAdiantamentoOut, ResultadoProcessamento
)

router = APIRouter(
    prefix="/documentos-fiscais",
    tags=["Documentos Fiscais"],
    responses={404: {"description": "Not found"}}
)


@router.get("/", response_model=RespostaApi[DocumentoFiscalList])
def listar_documentos(
    db: db_dependency,
    ctx: TenantCtx,
    filtros: DocumentoFiltros = Depends(),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0)
):
    """
    Listar documentos fiscais

    - **tipo_documento**, **estado**, **cliente_id**, **cliente_nome**
    - **data_inicio** / **data_fim**: intervalo da data de emissão
    - **apenas_vendas** / **apenas_nao_vendas**
    - **pendentes**: FT/FA em aberto
    """
    resultado = DocumentoFiscalService(db).listar_documentos(ctx, filtros, limit, offset)
    return resposta(DocumentoFiscalList.model_validate(resultado))


@router.post("/emitir", response_model=RespostaApi[DocumentoFiscalDetail], status_code=status.HTTP_201_CREATED)
def emitir_documento(dados: DocumentoFiscalCreate, db: db_dependency, ctx: TenantCtx):
    """
    Emitir um documento fiscal

    Os campos exigidos dependem do tipo:
    - **FR**: cliente e dados_pagamento
    - **FA**: itens ou dados_pagamento
    - **NC / FRt**: fatura_id e motivo
    - **ND**: fatura_id
    - **RC**: fatura_id e dados_pagamento
    """
    documento = DocumentoFiscalService(db).emitir(dados, ctx)
    return resposta(
        DocumentoFiscalDetail.model_validate(documento),
        f"{documento.nome_tipo} {documento.numero_documento} emitida com sucesso"
    )


@router.get("/adiantamentos/pendentes", response_model=RespostaApi[List[DocumentoFiscalDetail]])
def adiantamentos_pendentes(
    db: db_dependency,
    ctx: TenantCtx,
    cliente_id: Optional[UUID] = Query(None)
):
    """Faturas de adiantamento com saldo disponível"""
    documentos = DocumentoFiscalService(db).adiantamentos_pendentes(ctx, cliente_id)
    return resposta([DocumentoFiscalDetail.model_validate(d) for d in documentos])


@router.post("/adiantamentos/{adiantamento_id}/vincular", response_model=RespostaApi[dict])
def vincular_adiantamento(
    adiantamento_id: UUID,
    dados: VincularAdiantamentoRequest,
    db: db_dependency,
    ctx: TenantCtx
):
    """Aplicar parte ou a totalidade de uma FA a uma FT em aberto"""
    vinculo = DocumentoFiscalService(db).vincular_adiantamento(adiantamento_id, dados, ctx)
    return resposta(
        {
            "vinculo": VinculoAdiantamentoOut.model_validate(vinculo),
            "adiantamento": DocumentoFiscalDetail.model_validate(vinculo.adiantamento),
            "fatura": DocumentoFiscalDetail.model_validate(vinculo.fatura),
        },
        "Adiantamento vinculado com sucesso"
    )


@router.get("/proformas/pendentes", response_model=RespostaApi[List[DocumentoFiscalOut]])
def proformas_pendentes(
    db: db_dependency,
    ctx: TenantCtx,
    cliente_id: Optional[UUID] = Query(None)
):
    documentos = DocumentoFiscalService(db).proformas_pendentes(ctx, cliente_id)
    return resposta([DocumentoFiscalOut.model_validate(d) for d in documentos])


@router.post("/processar-expirados", response_model=RespostaApi[ResultadoProcessamento])
def processar_expirados(db: db_dependency, ctx: TenantCtx):
    """Marca como expiradas as FA do tenant com vencimento ultrapassado"""
    total = DocumentoFiscalService(db).processar_adiantamentos_expirados(ctx.tenant_id)
    return resposta(ResultadoProcessamento(processados=total), f"{total} adiantamento(s) expirado(s)")


@router.get("/dashboard", response_model=RespostaApi[dict])
def dashboard_documentos(db: db_dependency, ctx: TenantCtx):
    return resposta(DashboardService(db, ctx).resumo_documentos())


@router.get("/alertas", response_model=RespostaApi[dict])
def alertas_documentos(db: db_dependency, ctx: TenantCtx):
    return resposta(DashboardService(db, ctx).alertas())


@router.get("/evolucao-mensal", response_model=RespostaApi[List[dict]])
def evolucao_mensal(
    db: db_dependency,
    ctx: TenantCtx,
    ano: Optional[int] = Query(None, ge=2000, le=2100)
):
    return resposta(DashboardService(db, ctx).evolucao_mensal(ano))


@router.get("/{documento_id}", response_model=RespostaApi[DocumentoFiscalDetail])
def obter_documento(documento_id: UUID, db: db_dependency, ctx: TenantCtx):
    documento = DocumentoFiscalService(db).obter_documento(documento_id, ctx)
    return resposta(DocumentoFiscalDetail.model_validate(documento))


@router.post("/{documento_id}/recibo", response_model=RespostaApi[DocumentoFiscalDetail], status_code=status.HTTP_201_CREATED)
def gerar_recibo(documento_id: UUID, dados: ReciboCreate, db: db_dependency, ctx: TenantCtx):
    """Registar um pagamento (RC) sobre uma FT ou FA"""
    recibo = DocumentoFiscalService(db).gerar_recibo(documento_id, dados, ctx)
    return resposta(DocumentoFiscalDetail.model_validate(recibo), f"Recibo {recibo.numero_documento} gerado")


@router.get("/{documento_id}/recibos", response_model=RespostaApi[List[DocumentoFiscalOut]])
def listar_recibos(documento_id: UUID, db: db_dependency, ctx: TenantCtx):
    recibos = DocumentoFiscalService(db).listar_recibos(documento_id, ctx)
    return resposta([DocumentoFiscalOut.model_validate(r) for r in recibos])


@router.post("/{documento_id}/nota-credito", response_model=RespostaApi[DocumentoFiscalDetail], status_code=status.HTTP_201_CREATED)
def criar_nota_credito(documento_id: UUID, dados: NotaCreditoCreate, db: db_dependency, ctx: TenantCtx):
    nota = DocumentoFiscalService(db).criar_nota_credito(documento_id, dados, ctx)
    return resposta(DocumentoFiscalDetail.model_validate(nota), f"Nota de crédito {nota.numero_documento} emitida")


@router.post("/{documento_id}/nota-debito", response_model=RespostaApi[DocumentoFiscalDetail], status_code=status.HTTP_201_CREATED)
def criar_nota_debito(documento_id: UUID, dados: NotaDebitoCreate, db: db_dependency, ctx: TenantCtx):
    nota = DocumentoFiscalService(db).criar_nota_debito(documento_id, dados, ctx)
    return resposta(DocumentoFiscalDetail.model_validate(nota), f"Nota de débito {nota.numero_documento} emitida")


@router.post("/{documento_id}/cancelar", response_model=RespostaApi[DocumentoFiscalDetail])
def cancelar_documento(documento_id: UUID, dados: CancelamentoRequest, db: db_dependency, ctx: TenantCtx):
    """
    Cancelar um documento

    Bloqueado para documentos pagos (exceto FR/RC), com documentos
    derivados ativos ou com adiantamentos vinculados.
    """
    documento = DocumentoFiscalService(db).cancelar(documento_id, dados, ctx)
    return resposta(
        DocumentoFiscalDetail.model_validate(documento),
        f"Documento {documento.numero_documento} cancelado"
    )
