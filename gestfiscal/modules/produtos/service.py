from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy import or_, and_
from typing import Optional
from uuid import UUID
import logging

from gestfiscal.core.config import settings
from gestfiscal.dependencies.tenantDependencies import TenantContext
from gestfiscal.modules.produtos.models import Produto, Categoria, Fornecedor, TipoProduto, StatusProduto
from gestfiscal.modules.produtos.schemas import ProdutoCreate, ProdutoUpdate
from gestfiscal.modules.stock.models import TipoMovimento, OrigemMovimento
from gestfiscal.modules.stock.service import StockService

logger = logging.getLogger(__name__)


class ProdutoService:
    def __init__(self, db: Session):
        self.db = db

    def _query(self, ctx: TenantContext, incluir_eliminados: bool = False):
        query = self.db.query(Produto).filter(Produto.tenant_id == ctx.tenant_id)
        if not incluir_eliminados:
            query = query.filter(Produto.deleted_at.is_(None))
        return query

    def _validar_referencias(self, dados: dict, ctx: TenantContext):
        if dados.get("categoria_id"):
            existe = self.db.query(Categoria.id).filter(
                Categoria.id == dados["categoria_id"],
                Categoria.tenant_id == ctx.tenant_id,
                Categoria.deleted_at.is_(None)
            ).first()
            if not existe:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Categoria não encontrada")
        if dados.get("fornecedor_id"):
            existe = self.db.query(Fornecedor.id).filter(
                Fornecedor.id == dados["fornecedor_id"],
                Fornecedor.tenant_id == ctx.tenant_id,
                Fornecedor.deleted_at.is_(None)
            ).first()
            if not existe:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Fornecedor não encontrado")

    def _verificar_codigo_unico(self, codigo: Optional[str], ctx: TenantContext, exclude_id: Optional[UUID] = None):
        if not codigo:
            return
        query = self._query(ctx, incluir_eliminados=True).filter(Produto.codigo == codigo)
        if exclude_id:
            query = query.filter(Produto.id != exclude_id)
        if query.first():
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Já existe um produto com o código {codigo}"
            )

    def obter_produto(self, produto_id: UUID, ctx: TenantContext, incluir_eliminados: bool = False) -> Produto:
        produto = self._query(ctx, incluir_eliminados).filter(Produto.id == produto_id).first()
        if not produto:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Produto não encontrado"
            )
        return produto

    def criar_produto(self, dados: ProdutoCreate, ctx: TenantContext) -> Produto:
        """
        Criar produto ou serviço. O stock inicial entra pelo ledger
        (ajuste de entrada) para que o histórico comece em zero.
        """
        try:
            valores = dados.model_dump(exclude={"estoque_inicial"})
            self._validar_referencias(valores, ctx)
            self._verificar_codigo_unico(dados.codigo, ctx)

            produto = Produto(tenant_id=ctx.tenant_id, estoque_atual=0, custo_medio=dados.preco_compra, **valores)
            if produto.is_servico:
                produto.zerar_campos_stock()
                if produto.retencao is None:
                    produto.retencao = settings.RETENCAO_TAXA_PADRAO

            self.db.add(produto)
            self.db.flush()

            if dados.estoque_inicial > 0:
                StockService(self.db).movimentar(
                    produto.id, dados.estoque_inicial, TipoMovimento.ENTRADA, OrigemMovimento.AJUSTE, ctx,
                    referencia="STOCK-INICIAL",
                    observacao="Stock inicial"
                )

            self.db.commit()
            self.db.refresh(produto)
            logger.info(f"Produto criado: {produto.id} ({produto.nome}, {produto.tipo.value})")
            return produto

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Erro ao criar produto: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Erro ao criar produto"
            )

    def listar_produtos(
        self,
        ctx: TenantContext,
        search: Optional[str] = None,
        tipo: Optional[TipoProduto] = None,
        status_filtro: Optional[StatusProduto] = None,
        categoria_id: Optional[UUID] = None,
        estoque_baixo: bool = False,
        sem_estoque: bool = False,
        limit: int = 20,
        offset: int = 0
    ) -> dict:
        query = self._query(ctx)

        if search:
            termo = f"%{search}%"
            query = query.filter(or_(Produto.nome.ilike(termo), Produto.codigo.ilike(termo)))
        if tipo:
            query = query.filter(Produto.tipo == tipo)
        if status_filtro:
            query = query.filter(Produto.status == status_filtro)
        if categoria_id:
            query = query.filter(Produto.categoria_id == categoria_id)
        if estoque_baixo:
            query = query.filter(and_(
                Produto.tipo == TipoProduto.PRODUTO,
                Produto.estoque_atual > 0,
                Produto.estoque_atual <= Produto.estoque_minimo
            ))
        if sem_estoque:
            query = query.filter(and_(
                Produto.tipo == TipoProduto.PRODUTO,
                Produto.estoque_atual == 0
            ))

        total = query.count()
        produtos = query.order_by(Produto.nome).offset(offset).limit(limit).all()
        return {"produtos": produtos, "total": total, "limit": limit, "offset": offset}

    def atualizar_produto(self, produto_id: UUID, dados: ProdutoUpdate, ctx: TenantContext) -> Produto:
        """Atualiza dados cadastrais; o stock só muda pelo ledger"""
        try:
            produto = self.obter_produto(produto_id, ctx)
            alteracoes = dados.model_dump(exclude_unset=True)
            self._validar_referencias(alteracoes, ctx)

            if "codigo" in alteracoes:
                self._verificar_codigo_unico(alteracoes["codigo"], ctx, exclude_id=produto.id)

            if alteracoes.get("tipo") == TipoProduto.SERVICO and not produto.is_servico:
                if (produto.estoque_atual or 0) != 0:
                    raise HTTPException(
                        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                        detail="Não é possível converter em serviço um produto com stock. Faça primeiro um ajuste de saída"
                    )

            for campo, valor in alteracoes.items():
                setattr(produto, campo, valor)

            if produto.is_servico:
                produto.zerar_campos_stock()

            self.db.commit()
            self.db.refresh(produto)
            logger.info(f"Produto atualizado: {produto.id}")
            return produto

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Erro ao atualizar produto {produto_id}: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Erro ao atualizar produto"
            )

    def eliminar_produto(self, produto_id: UUID, ctx: TenantContext) -> Produto:
        produto = self.obter_produto(produto_id, ctx)
        produto.soft_delete()
        self.db.commit()
        self.db.refresh(produto)
        logger.info(f"Produto movido para a lixeira: {produto.id}")
        return produto

    def restaurar_produto(self, produto_id: UUID, ctx: TenantContext) -> Produto:
        produto = self.obter_produto(produto_id, ctx, incluir_eliminados=True)
        if not produto.is_deleted:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="O produto não está na lixeira"
            )
        produto.restore()
        self.db.commit()
        self.db.refresh(produto)
        logger.info(f"Produto restaurado: {produto.id}")
        return produto

    def listar_lixeira(self, ctx: TenantContext, limit: int = 20, offset: int = 0) -> dict:
        query = self.db.query(Produto).filter(
            Produto.tenant_id == ctx.tenant_id,
            Produto.deleted_at.isnot(None)
        )
        total = query.count()
        produtos = query.order_by(Produto.deleted_at.desc()).offset(offset).limit(limit).all()
        return {"produtos": produtos, "total": total, "limit": limit, "offset": offset}
