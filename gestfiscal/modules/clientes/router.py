"""
Router do módulo de Clientes

- CRUD com validação de NIF angolano
- Activação / inactivação
- Soft delete e restore

Todos os endpoints são scoped pelo tenant do cabeçalho X-Tenant-ID.
"""

from fastapi import APIRouter, Query, status
from typing import Optional
from uuid import UUID

from gestfiscal.common.responses import RespostaApi, resposta
from gestfiscal.dependencies.dbDependecies import db_dependency
from gestfiscal.dependencies.tenantDependencies import TenantCtx
from gestfiscal.core.config import settings
from gestfiscal.modules.clientes.models import TipoCliente, StatusCliente
from gestfiscal.modules.clientes.service import ClienteService
from gestfiscal.modules.clientes.schemas import (
    ClienteCreate, ClienteUpdate, ClienteStatusUpdate, ClienteOut, ClienteList
)

router = APIRouter(
    prefix="/clientes",
    tags=["Clientes"],
    responses={404: {"description": "Not found"}}
)


@router.post("/", response_model=RespostaApi[ClienteOut], status_code=status.HTTP_201_CREATED)
def criar_cliente(dados: ClienteCreate, db: db_dependency, ctx: TenantCtx):
    """
    Criar um cliente

    - **tipo**: consumidor_final ou empresa
    - **nif**: obrigatório para empresas (10 dígitos ou número do BI)
    """
    cliente = ClienteService(db).criar_cliente(dados, ctx)
    return resposta(ClienteOut.model_validate(cliente), "Cliente criado com sucesso")


@router.get("/", response_model=RespostaApi[ClienteList])
def listar_clientes(
    db: db_dependency,
    ctx: TenantCtx,
    search: Optional[str] = Query(None, description="Pesquisa por nome, NIF ou email"),
    tipo: Optional[TipoCliente] = Query(None),
    status_filtro: Optional[StatusCliente] = Query(None, alias="status"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0)
):
    resultado = ClienteService(db).listar_clientes(ctx, search, tipo, status_filtro, limit, offset)
    return resposta(ClienteList.model_validate(resultado))


@router.get("/{cliente_id}", response_model=RespostaApi[ClienteOut])
def obter_cliente(cliente_id: UUID, db: db_dependency, ctx: TenantCtx):
    cliente = ClienteService(db).obter_cliente(cliente_id, ctx)
    return resposta(ClienteOut.model_validate(cliente))


@router.put("/{cliente_id}", response_model=RespostaApi[ClienteOut])
def atualizar_cliente(cliente_id: UUID, dados: ClienteUpdate, db: db_dependency, ctx: TenantCtx):
    cliente = ClienteService(db).atualizar_cliente(cliente_id, dados, ctx)
    return resposta(ClienteOut.model_validate(cliente), "Cliente atualizado com sucesso")


@router.patch("/{cliente_id}/status", response_model=RespostaApi[ClienteOut])
def alterar_status_cliente(cliente_id: UUID, dados: ClienteStatusUpdate, db: db_dependency, ctx: TenantCtx):
    cliente = ClienteService(db).alterar_status(cliente_id, dados.status, ctx)
    return resposta(ClienteOut.model_validate(cliente), "Status do cliente atualizado")


@router.delete("/{cliente_id}", response_model=RespostaApi[ClienteOut])
def eliminar_cliente(cliente_id: UUID, db: db_dependency, ctx: TenantCtx):
    cliente = ClienteService(db).eliminar_cliente(cliente_id, ctx)
    return resposta(ClienteOut.model_validate(cliente), "Cliente eliminado com sucesso")


@router.post("/{cliente_id}/restaurar", response_model=RespostaApi[ClienteOut])
def restaurar_cliente(cliente_id: UUID, db: db_dependency, ctx: TenantCtx):
    cliente = ClienteService(db).restaurar_cliente(cliente_id, ctx)
    return resposta(ClienteOut.model_validate(cliente), "Cliente restaurado com sucesso")
