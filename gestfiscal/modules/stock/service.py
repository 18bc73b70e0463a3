from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy import func
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional
from uuid import UUID
from datetime import datetime, time, timezone
import logging

from gestfiscal.dependencies.tenantDependencies import TenantContext
from gestfiscal.modules.produtos.models import Produto, TipoProduto, StatusProduto
from gestfiscal.modules.stock.models import MovimentoStock, TipoMovimento, OrigemMovimento
from gestfiscal.modules.stock.schemas import AjusteStockCreate, EntradaCompraCreate
from gestfiscal.modules.documentos_fiscais.tipos import configuracao

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")


class StockService:
    """
    Ledger de stock. Os métodos internos (movimentar, processar/reverter
    documento) só fazem flush e participam na transação de quem os chama;
    os métodos públicos fazem commit.
    """

    def __init__(self, db: Session):
        self.db = db

    def _obter_produto_bloqueado(
        self, produto_id: UUID, ctx: TenantContext, incluir_eliminados: bool = False
    ) -> Produto:
        query = self.db.query(Produto).filter(
            Produto.id == produto_id,
            Produto.tenant_id == ctx.tenant_id
        )
        if not incluir_eliminados:
            query = query.filter(Produto.deleted_at.is_(None))
        produto = query.with_for_update().populate_existing().first()

        if not produto:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Produto não encontrado"
            )
        return produto

    def _proxima_sequencia(self, produto_id: UUID) -> int:
        ultima = self.db.query(func.max(MovimentoStock.sequencia)).filter(
            MovimentoStock.produto_id == produto_id
        ).scalar()
        return (ultima or 0) + 1

    def movimentar(
        self,
        produto_id: UUID,
        quantidade: Decimal,
        tipo: TipoMovimento,
        tipo_movimento: OrigemMovimento,
        ctx: TenantContext,
        referencia: Optional[str] = None,
        observacao: Optional[str] = None,
        incluir_eliminados: bool = False
    ) -> MovimentoStock:
        """
        Regista um movimento e atualiza o stock do produto (linha bloqueada).

        Com incluir_eliminados aceita produtos na lixeira (movimentos de
        documentos fiscais e respetivos cancelamentos).
        """
        quantidade = Decimal(str(quantidade))
        if quantidade <= 0:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="A quantidade do movimento deve ser maior que zero"
            )

        produto = self._obter_produto_bloqueado(produto_id, ctx, incluir_eliminados)

        if produto.is_servico:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"O serviço {produto.nome} não movimenta stock"
            )

        estoque_anterior = Decimal(produto.estoque_atual or 0)
        if tipo == TipoMovimento.SAIDA:
            if estoque_anterior < quantidade:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail=(
                        f"Stock insuficiente para {produto.nome}. "
                        f"Disponível: {estoque_anterior}, solicitado: {quantidade}"
                    )
                )
            quantidade_assinada = -quantidade
        else:
            quantidade_assinada = quantidade

        estoque_novo = estoque_anterior + quantidade_assinada
        produto.estoque_atual = estoque_novo

        movimento = MovimentoStock(
            tenant_id=ctx.tenant_id,
            produto_id=produto.id,
            sequencia=self._proxima_sequencia(produto.id),
            user_id=ctx.user_id,
            tipo=tipo,
            tipo_movimento=tipo_movimento,
            quantidade=quantidade_assinada,
            estoque_anterior=estoque_anterior,
            estoque_novo=estoque_novo,
            custo_medio=produto.custo_medio,
            referencia=referencia,
            observacao=observacao
        )
        self.db.add(movimento)
        self.db.flush()

        logger.info(
            f"Stock {tipo.value} ({tipo_movimento.value}) produto {produto.id}: "
            f"{estoque_anterior} -> {estoque_novo} ref={referencia}"
        )
        return movimento

    def processar_documento_fiscal(self, documento, ctx: TenantContext) -> List[MovimentoStock]:
        """Movimenta o stock das linhas de um documento conforme o tipo (FT/FR saída, NC entrada)."""
        cfg = configuracao(documento.tipo_documento)
        if not cfg.afeta_stock:
            return []
        return self._movimentar_linhas(
            documento, cfg.direcao_stock, cfg.origem_stock, ctx,
            observacao=f"{cfg.nome} {documento.numero_documento}"
        )

    def reverter_documento_fiscal(self, documento, ctx: TenantContext) -> List[MovimentoStock]:
        """Movimentos inversos aos de processar_documento_fiscal, usados no cancelamento."""
        cfg = configuracao(documento.tipo_documento)
        if not cfg.afeta_stock:
            return []
        inverso = TipoMovimento.ENTRADA if cfg.direcao_stock == TipoMovimento.SAIDA else TipoMovimento.SAIDA
        return self._movimentar_linhas(
            documento, inverso, OrigemMovimento.CANCELAMENTO, ctx,
            observacao=f"Cancelamento de {documento.numero_documento}"
        )

    def _movimentar_linhas(self, documento, tipo, origem, ctx, observacao):
        movimentos = []
        for item in documento.itens:
            # Linhas de texto livre e serviços não têm stock
            if not item.produto_id:
                continue
            produto = self.db.query(Produto).filter(
                Produto.id == item.produto_id,
                Produto.tenant_id == ctx.tenant_id
            ).first()
            if not produto or produto.is_servico:
                continue
            movimentos.append(self.movimentar(
                item.produto_id, item.quantidade, tipo, origem, ctx,
                referencia=documento.numero_documento,
                observacao=observacao,
                incluir_eliminados=True
            ))
        return movimentos

    def registar_ajuste(self, dados: AjusteStockCreate, ctx: TenantContext) -> MovimentoStock:
        """Ajuste manual (inventário físico, quebras, ofertas)"""
        try:
            movimento = self.movimentar(
                dados.produto_id, dados.quantidade, dados.tipo, OrigemMovimento.AJUSTE, ctx,
                referencia="AJUSTE",
                observacao=dados.motivo
            )
            self.db.commit()
            self.db.refresh(movimento)
            return movimento
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Erro no ajuste de stock: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Erro ao registar ajuste de stock"
            )

    def registar_entrada_compra(self, dados: EntradaCompraCreate, ctx: TenantContext) -> MovimentoStock:
        """Entrada por compra com atualização do custo médio ponderado"""
        try:
            produto = self._obter_produto_bloqueado(dados.produto_id, ctx)
            estoque = Decimal(produto.estoque_atual or 0)
            custo_atual = Decimal(produto.custo_medio or 0)

            if not produto.is_servico:
                total_unidades = estoque + dados.quantidade
                novo_custo = (estoque * custo_atual + dados.quantidade * dados.preco_compra) / total_unidades
                produto.custo_medio = novo_custo.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
                produto.preco_compra = dados.preco_compra
                self.db.flush()

            movimento = self.movimentar(
                produto.id, dados.quantidade, TipoMovimento.ENTRADA, OrigemMovimento.COMPRA, ctx,
                referencia=dados.referencia,
                observacao=f"Compra a {dados.preco_compra}/un"
            )
            self.db.commit()
            self.db.refresh(movimento)
            return movimento
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Erro na entrada de compra: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Erro ao registar entrada de compra"
            )

    def listar_movimentos(
        self,
        ctx: TenantContext,
        produto_id: Optional[UUID] = None,
        tipo: Optional[TipoMovimento] = None,
        tipo_movimento: Optional[OrigemMovimento] = None,
        limit: int = 20,
        offset: int = 0
    ) -> dict:
        query = self.db.query(MovimentoStock).filter(MovimentoStock.tenant_id == ctx.tenant_id)
        if produto_id:
            query = query.filter(MovimentoStock.produto_id == produto_id)
        if tipo:
            query = query.filter(MovimentoStock.tipo == tipo)
        if tipo_movimento:
            query = query.filter(MovimentoStock.tipo_movimento == tipo_movimento)

        total = query.count()
        movimentos = query.order_by(
            MovimentoStock.created_at.desc(), MovimentoStock.sequencia.desc()
        ).offset(offset).limit(limit).all()
        return {"movimentos": movimentos, "total": total, "limit": limit, "offset": offset}

    def _produtos_fisicos(self, ctx: TenantContext):
        return self.db.query(Produto).filter(
            Produto.tenant_id == ctx.tenant_id,
            Produto.deleted_at.is_(None),
            Produto.tipo == TipoProduto.PRODUTO,
            Produto.status == StatusProduto.ATIVO
        )

    def produtos_em_risco(self, ctx: TenantContext) -> List[dict]:
        """Produtos físicos activos com stock no mínimo ou abaixo"""
        produtos = self._produtos_fisicos(ctx).filter(
            Produto.estoque_atual <= Produto.estoque_minimo
        ).order_by(Produto.estoque_atual).all()
        return [
            {
                "id": p.id,
                "nome": p.nome,
                "codigo": p.codigo,
                "estoque_atual": p.estoque_atual,
                "estoque_minimo": p.estoque_minimo,
                "sem_estoque": p.esta_sem_estoque,
            }
            for p in produtos
        ]

    def dashboard(self, ctx: TenantContext) -> dict:
        produtos = self._produtos_fisicos(ctx).all()
        inicio_dia = datetime.combine(datetime.now(timezone.utc).date(), time.min)

        movimentos_hoje = self.db.query(MovimentoStock.tipo, func.count(MovimentoStock.id)).filter(
            MovimentoStock.tenant_id == ctx.tenant_id,
            MovimentoStock.created_at >= inicio_dia
        ).group_by(MovimentoStock.tipo).all()
        por_tipo = {tipo.value: total for tipo, total in movimentos_hoje}

        valor_stock = sum(
            (Decimal(p.estoque_atual or 0) * Decimal(p.custo_medio or 0) for p in produtos),
            Decimal("0")
        )

        return {
            "total_produtos": len(produtos),
            "produtos_estoque_baixo": sum(1 for p in produtos if p.esta_estoque_baixo),
            "produtos_sem_estoque": sum(1 for p in produtos if p.esta_sem_estoque),
            "valor_total_stock": valor_stock.quantize(TWO_PLACES, rounding=ROUND_HALF_UP),
            "entradas_hoje": por_tipo.get(TipoMovimento.ENTRADA.value, 0),
            "saidas_hoje": por_tipo.get(TipoMovimento.SAIDA.value, 0),
        }

    def verificar_ledger(self, produto_id: UUID, ctx: TenantContext) -> dict:
        """
        Confere a continuidade do ledger: cada movimento começa onde o
        anterior terminou e o stock do produto é o estoque_novo do último.
        """
        produto = self.db.query(Produto).filter(
            Produto.id == produto_id,
            Produto.tenant_id == ctx.tenant_id
        ).first()
        if not produto:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Produto não encontrado"
            )

        movimentos = self.db.query(MovimentoStock).filter(
            MovimentoStock.produto_id == produto.id
        ).order_by(MovimentoStock.sequencia).all()

        quebras = []
        esperado = Decimal("0")
        for movimento in movimentos:
            if Decimal(movimento.estoque_anterior) != esperado:
                quebras.append(movimento.id)
            if Decimal(movimento.estoque_anterior) + Decimal(movimento.quantidade) != Decimal(movimento.estoque_novo):
                quebras.append(movimento.id)
            esperado = Decimal(movimento.estoque_novo)

        estoque_atual = Decimal(produto.estoque_atual or 0)
        return {
            "produto_id": produto.id,
            "consistente": not quebras and estoque_atual == esperado,
            "estoque_atual": estoque_atual,
            "estoque_ledger": esperado,
            "total_movimentos": len(movimentos),
            "quebras": quebras,
        }
