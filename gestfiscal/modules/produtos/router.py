"""
Router do módulo de Produtos e Serviços

- CRUD de produtos físicos e serviços
- Filtros de stock baixo / sem stock
- Lixeira (soft delete) e restauro
"""

from fastapi import APIRouter, Query, status
from typing import Optional
from uuid import UUID

from gestfiscal.common.responses import RespostaApi, resposta
from gestfiscal.core.config import settings
from gestfiscal.dependencies.dbDependecies import db_dependency
from gestfiscal.dependencies.tenantDependencies import TenantCtx
from gestfiscal.modules.produtos.models import TipoProduto, StatusProduto
from gestfiscal.modules.produtos.service import ProdutoService
from gestfiscal.modules.produtos.schemas import ProdutoCreate, ProdutoUpdate, ProdutoOut, ProdutoList

router = APIRouter(
    prefix="/produtos",
    tags=["Produtos"],
    responses={404: {"description": "Not found"}}
)


@router.post("/", response_model=RespostaApi[ProdutoOut], status_code=status.HTTP_201_CREATED)
def criar_produto(dados: ProdutoCreate, db: db_dependency, ctx: TenantCtx):
    """
    Criar produto ou serviço

    - **tipo**: produto (com stock) ou servico (sem stock, sujeito a retenção)
    - **estoque_inicial**: registado no ledger como entrada
    """
    produto = ProdutoService(db).criar_produto(dados, ctx)
    return resposta(ProdutoOut.model_validate(produto), "Produto criado com sucesso")


@router.get("/", response_model=RespostaApi[ProdutoList])
def listar_produtos(
    db: db_dependency,
    ctx: TenantCtx,
    search: Optional[str] = Query(None, description="Pesquisa por nome ou código"),
    tipo: Optional[TipoProduto] = Query(None),
    status_filtro: Optional[StatusProduto] = Query(None, alias="status"),
    categoria_id: Optional[UUID] = Query(None),
    estoque_baixo: bool = Query(False),
    sem_estoque: bool = Query(False),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0)
):
    resultado = ProdutoService(db).listar_produtos(
        ctx, search, tipo, status_filtro, categoria_id, estoque_baixo, sem_estoque, limit, offset
    )
    return resposta(ProdutoList.model_validate(resultado))


@router.get("/lixeira", response_model=RespostaApi[ProdutoList])
def listar_lixeira(
    db: db_dependency,
    ctx: TenantCtx,
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0)
):
    resultado = ProdutoService(db).listar_lixeira(ctx, limit, offset)
    return resposta(ProdutoList.model_validate(resultado))


@router.get("/{produto_id}", response_model=RespostaApi[ProdutoOut])
def obter_produto(produto_id: UUID, db: db_dependency, ctx: TenantCtx):
    produto = ProdutoService(db).obter_produto(produto_id, ctx)
    return resposta(ProdutoOut.model_validate(produto))


@router.put("/{produto_id}", response_model=RespostaApi[ProdutoOut])
def atualizar_produto(produto_id: UUID, dados: ProdutoUpdate, db: db_dependency, ctx: TenantCtx):
    produto = ProdutoService(db).atualizar_produto(produto_id, dados, ctx)
    return resposta(ProdutoOut.model_validate(produto), "Produto atualizado com sucesso")


@router.delete("/{produto_id}", response_model=RespostaApi[ProdutoOut])
def eliminar_produto(produto_id: UUID, db: db_dependency, ctx: TenantCtx):
    produto = ProdutoService(db).eliminar_produto(produto_id, ctx)
    return resposta(ProdutoOut.model_validate(produto), "Produto movido para a lixeira")


@router.post("/{produto_id}/restaurar", response_model=RespostaApi[ProdutoOut])
def restaurar_produto(produto_id: UUID, db: db_dependency, ctx: TenantCtx):
    produto = ProdutoService(db).restaurar_produto(produto_id, ctx)
    return resposta(ProdutoOut.model_validate(produto), "Produto restaurado com sucesso")
