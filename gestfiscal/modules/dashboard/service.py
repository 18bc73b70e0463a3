"""
Serviço do dashboard

Carrega os dados do tenant e delega os cálculos em aggregations.
"""

from datetime import date
from sqlalchemy.orm import Session
from sqlalchemy import func
from typing import List, Optional

from gestfiscal.core.config import settings
from gestfiscal.dependencies.tenantDependencies import TenantContext
from gestfiscal.modules.clientes.models import Cliente, StatusCliente
from gestfiscal.modules.produtos.models import Produto, TipoProduto, StatusProduto
from gestfiscal.modules.vendas.models import Venda, StatusVenda
from gestfiscal.modules.documentos_fiscais.models import (
    DocumentoFiscal, ItemDocumentoFiscal, AdiantamentoFatura
)
from gestfiscal.modules.documentos_fiscais.tipos import TipoDocumento, EstadoDocumento
from gestfiscal.modules.documentos_fiscais.calculator import arredondar
from gestfiscal.modules.dashboard import aggregations


class DashboardService:

    def __init__(self, db: Session, ctx: TenantContext, hoje: Optional[date] = None):
        self.db = db
        self.tenant_id = ctx.tenant_id
        self.hoje = hoje or date.today()

    def _documentos(self) -> List[DocumentoFiscal]:
        return self.db.query(DocumentoFiscal).filter(
            DocumentoFiscal.tenant_id == self.tenant_id
        ).all()

    def _vinculos(self) -> List[AdiantamentoFatura]:
        return self.db.query(AdiantamentoFatura).filter(
            AdiantamentoFatura.tenant_id == self.tenant_id
        ).all()

    def _linhas_vendidas(self):
        return self.db.query(
            ItemDocumentoFiscal.produto_id,
            ItemDocumentoFiscal.descricao,
            ItemDocumentoFiscal.quantidade,
            ItemDocumentoFiscal.total_linha
        ).join(DocumentoFiscal, DocumentoFiscal.id == ItemDocumentoFiscal.documento_id).filter(
            DocumentoFiscal.tenant_id == self.tenant_id,
            DocumentoFiscal.tipo_documento.in_([TipoDocumento.FT, TipoDocumento.FR]),
            DocumentoFiscal.estado != EstadoDocumento.CANCELADO
        ).all()

    def resumo_documentos(self) -> dict:
        return aggregations.resumo_documentos(self._documentos(), self.hoje, self._vinculos())

    def alertas(self) -> dict:
        return aggregations.alertas(
            self._documentos(),
            self.hoje,
            self._vinculos(),
            dias_alerta=settings.DIAS_ALERTA_VENCIMENTO,
            dias_proforma=settings.DIAS_PROFORMA_PENDENTE
        )

    def evolucao_mensal(self, ano: Optional[int] = None) -> List[dict]:
        return aggregations.evolucao_mensal(self._documentos(), ano or self.hoje.year, self._vinculos())

    def _resumo_clientes(self) -> dict:
        base = self.db.query(Cliente).filter(
            Cliente.tenant_id == self.tenant_id,
            Cliente.deleted_at.is_(None)
        )
        inicio_mes = self.hoje.replace(day=1)
        return {
            "total": base.count(),
            "ativos": base.filter(Cliente.status == StatusCliente.ATIVO).count(),
            "novos_mes": base.filter(Cliente.data_registro >= inicio_mes).count(),
        }

    def _resumo_produtos(self) -> dict:
        base = self.db.query(Produto).filter(
            Produto.tenant_id == self.tenant_id,
            Produto.deleted_at.is_(None)
        )
        fisicos = base.filter(Produto.tipo == TipoProduto.PRODUTO)
        return {
            "total": base.count(),
            "ativos": base.filter(Produto.status == StatusProduto.ATIVO).count(),
            "servicos": base.filter(Produto.tipo == TipoProduto.SERVICO).count(),
            "estoque_baixo": fisicos.filter(
                Produto.estoque_atual > 0,
                Produto.estoque_atual <= Produto.estoque_minimo
            ).count(),
            "sem_estoque": fisicos.filter(Produto.estoque_atual <= 0).count(),
        }

    def _resumo_vendas(self) -> dict:
        inicio_mes = self.hoje.replace(day=1)
        base = self.db.query(Venda).filter(Venda.tenant_id == self.tenant_id)
        faturadas_mes = base.filter(
            Venda.status == StatusVenda.FATURADA,
            Venda.data_venda >= inicio_mes
        )
        total_mes = faturadas_mes.with_entities(func.coalesce(func.sum(Venda.total), 0)).scalar()
        return {
            "abertas": base.filter(Venda.status == StatusVenda.ABERTA).count(),
            "faturadas_mes": faturadas_mes.count(),
            "total_faturado_mes": arredondar(total_mes or 0),
        }

    def dashboard_geral(self) -> dict:
        """Painel completo: KPIs, documentos, pagamentos, alertas e entidades"""
        documentos = self._documentos()
        vinculos = self._vinculos()
        hoje = self.hoje

        return {
            "data_referencia": hoje,
            "kpis": aggregations.kpis(documentos, hoje),
            "documentos": {
                "resumo": aggregations.resumo_documentos(documentos, hoje, vinculos),
                "por_tipo": aggregations.por_tipo(documentos),
                "por_estado": aggregations.por_estado(documentos),
                "por_mes": aggregations.por_mes(documentos, hoje),
                "por_dia": aggregations.por_dia(documentos, hoje),
            },
            "pagamentos": aggregations.pagamentos(documentos, hoje, vinculos),
            "alertas": aggregations.alertas(
                documentos, hoje, vinculos,
                dias_alerta=settings.DIAS_ALERTA_VENCIMENTO,
                dias_proforma=settings.DIAS_PROFORMA_PENDENTE
            ),
            "clientes": {
                **self._resumo_clientes(),
                "saldos": aggregations.saldos_clientes(documentos, vinculos),
            },
            "produtos": {
                **self._resumo_produtos(),
                "mais_vendidos": aggregations.top_produtos(self._linhas_vendidas()),
            },
            "vendas": self._resumo_vendas(),
        }
