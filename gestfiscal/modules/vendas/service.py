from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from decimal import Decimal
from typing import Optional, Tuple
from uuid import UUID
from datetime import date
import logging

from gestfiscal.dependencies.tenantDependencies import TenantContext
from gestfiscal.modules.clientes.models import Cliente
from gestfiscal.modules.produtos.models import Produto
from gestfiscal.modules.vendas.models import Venda, ItemVenda, StatusVenda
from gestfiscal.modules.vendas.schemas import VendaCreate, FaturarVendaRequest
from gestfiscal.modules.documentos_fiscais.calculator import calcular_linha, calcular_totais
from gestfiscal.modules.documentos_fiscais.models import DocumentoFiscal
from gestfiscal.modules.documentos_fiscais.schemas import DocumentoFiscalCreate, ItemDocumentoCreate
from gestfiscal.modules.documentos_fiscais.service import DocumentoFiscalService

logger = logging.getLogger(__name__)


class VendaService:
    """
    Vendas. Registar uma venda não mexe no stock: a saída acontece quando
    a venda é faturada, através do documento fiscal.
    """

    def __init__(self, db: Session):
        self.db = db

    def _query(self, ctx: TenantContext):
        return self.db.query(Venda).filter(Venda.tenant_id == ctx.tenant_id)

    def obter_venda(self, venda_id: UUID, ctx: TenantContext) -> Venda:
        venda = self._query(ctx).filter(Venda.id == venda_id).first()
        if not venda:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Venda não encontrada"
            )
        return venda

    def _validar_aberta(self, venda: Venda):
        if venda.status != StatusVenda.ABERTA:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"A venda já se encontra {venda.status.value}"
            )

    def criar_venda(self, dados: VendaCreate, ctx: TenantContext) -> Venda:
        try:
            if dados.cliente_id:
                cliente = self.db.query(Cliente).filter(
                    Cliente.id == dados.cliente_id,
                    Cliente.tenant_id == ctx.tenant_id,
                    Cliente.deleted_at.is_(None)
                ).first()
                if not cliente:
                    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cliente não encontrado")

            venda = Venda(
                tenant_id=ctx.tenant_id,
                cliente_id=dados.cliente_id,
                user_id=ctx.user_id,
                data_venda=date.today(),
                status=StatusVenda.ABERTA,
                observacoes=dados.observacoes
            )

            linhas = []
            for ordem, item in enumerate(dados.itens):
                produto = self.db.query(Produto).filter(
                    Produto.id == item.produto_id,
                    Produto.tenant_id == ctx.tenant_id,
                    Produto.deleted_at.is_(None)
                ).first()
                if not produto:
                    raise HTTPException(
                        status_code=status.HTTP_404_NOT_FOUND,
                        detail=f"Produto {item.produto_id} não encontrado"
                    )
                if not produto.is_ativo:
                    raise HTTPException(
                        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                        detail=f"O produto {produto.nome} está inativo"
                    )

                if item.taxa_iva is not None:
                    taxa_iva = item.taxa_iva
                else:
                    taxa_iva = produto.taxa_iva if produto.sujeito_iva else Decimal("0")

                linha = calcular_linha(
                    descricao=produto.nome,
                    quantidade=item.quantidade,
                    preco_unitario=item.preco_venda if item.preco_venda is not None else produto.preco_venda,
                    taxa_iva=taxa_iva,
                    desconto=item.desconto,
                    produto_id=produto.id
                )
                linhas.append(linha)
                venda.itens.append(ItemVenda(
                    tenant_id=ctx.tenant_id,
                    produto_id=produto.id,
                    ordem=ordem,
                    descricao=linha.descricao,
                    quantidade=linha.quantidade,
                    preco_venda=linha.preco_unitario,
                    desconto=linha.desconto,
                    valor_desconto=linha.valor_desconto,
                    taxa_iva=linha.taxa_iva,
                    valor_iva=linha.valor_iva,
                    subtotal=linha.total_linha
                ))

            totais = calcular_totais(linhas)
            venda.subtotal = totais.base_tributavel
            venda.total_desconto = totais.total_desconto
            venda.total_iva = totais.total_iva
            venda.total = totais.base_tributavel + totais.total_iva

            self.db.add(venda)
            self.db.commit()
            self.db.refresh(venda)

            logger.info(f"Venda criada: {venda.id} total {venda.total} tenant {ctx.tenant_id}")
            return venda

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Erro ao criar venda: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Erro ao criar venda"
            )

    def listar_vendas(
        self,
        ctx: TenantContext,
        status_filtro: Optional[StatusVenda] = None,
        cliente_id: Optional[UUID] = None,
        data_inicio: Optional[date] = None,
        data_fim: Optional[date] = None,
        limit: int = 20,
        offset: int = 0
    ) -> dict:
        query = self._query(ctx)

        if status_filtro:
            query = query.filter(Venda.status == status_filtro)
        if cliente_id:
            query = query.filter(Venda.cliente_id == cliente_id)
        if data_inicio:
            query = query.filter(Venda.data_venda >= data_inicio)
        if data_fim:
            query = query.filter(Venda.data_venda <= data_fim)

        total = query.count()
        vendas = query.order_by(Venda.data_venda.desc(), Venda.created_at.desc()).offset(offset).limit(limit).all()

        return {"vendas": vendas, "total": total, "limit": limit, "offset": offset}

    def faturar_venda(
        self,
        venda_id: UUID,
        dados: FaturarVendaRequest,
        ctx: TenantContext
    ) -> Tuple[Venda, DocumentoFiscal]:
        """Emite a FT/FR da venda; o stock sai com o documento"""
        venda = self.obter_venda(venda_id, ctx)
        self._validar_aberta(venda)

        pedido = DocumentoFiscalCreate(
            tipo_documento=dados.tipo_documento,
            cliente_id=venda.cliente_id,
            venda_id=venda.id,
            itens=[
                ItemDocumentoCreate(
                    produto_id=item.produto_id,
                    descricao=item.descricao,
                    quantidade=item.quantidade,
                    preco_unitario=item.preco_venda,
                    taxa_iva=item.taxa_iva,
                    desconto=item.desconto
                )
                for item in venda.itens
            ],
            dados_pagamento=dados.dados_pagamento
        )
        documento = DocumentoFiscalService(self.db).emitir(pedido, ctx)
        self.db.refresh(venda)

        logger.info(f"Venda {venda.id} faturada com {documento.numero_documento}")
        return venda, documento

    def cancelar_venda(self, venda_id: UUID, ctx: TenantContext) -> Venda:
        try:
            venda = self.obter_venda(venda_id, ctx)
            self._validar_aberta(venda)

            venda.status = StatusVenda.CANCELADA
            self.db.commit()
            self.db.refresh(venda)

            logger.info(f"Venda cancelada: {venda.id}")
            return venda

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Erro ao cancelar venda: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Erro ao cancelar venda"
            )
