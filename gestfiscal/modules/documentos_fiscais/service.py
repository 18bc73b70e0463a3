from fastapi import HTTPException, status
from fastapi.exceptions import RequestValidationError
from sqlalchemy.orm import Session
from sqlalchemy import or_
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID
from datetime import date, datetime, timezone
import hashlib
import logging

from gestfiscal.core.config import settings
from gestfiscal.common.responses import erro_validacao
from gestfiscal.dependencies.tenantDependencies import TenantContext
from gestfiscal.modules.clientes.models import Cliente
from gestfiscal.modules.produtos.models import Produto
from gestfiscal.modules.stock.service import StockService
from gestfiscal.modules.vendas.models import Venda, StatusVenda
from gestfiscal.modules.documentos_fiscais.calculator import (
    LinhaCalculada, calcular_linha, calcular_totais, arredondar
)
from gestfiscal.modules.documentos_fiscais.models import (
    DocumentoFiscal, ItemDocumentoFiscal, SerieFiscal, AdiantamentoFatura
)
from gestfiscal.modules.documentos_fiscais.schemas import (
    DocumentoFiscalCreate, DadosPagamento, ItemDocumentoCreate, ReciboCreate,
    NotaCreditoCreate, NotaDebitoCreate, VincularAdiantamentoRequest,
    CancelamentoRequest, DocumentoFiltros
)
from gestfiscal.modules.documentos_fiscais.tipos import (
    TipoDocumento, EstadoDocumento, MetodoPagamento, TIPOS_VENDA,
    configuracao, calcular_data_vencimento
)

logger = logging.getLogger(__name__)

CONSUMIDOR_FINAL = "Consumidor Final"
ESTADOS_EM_ABERTO = (EstadoDocumento.EMITIDO, EstadoDocumento.PARCIALMENTE_PAGA)
# Instrumentos de pagamento nascem pagos e podem ser cancelados
TIPOS_PAGAMENTO = (TipoDocumento.FR, TipoDocumento.RC)


def _erro_negocio(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class DocumentoFiscalService:
    """
    Motor de documentos fiscais. Cada operação pública corre numa única
    transação: documento, linhas, stock, recibos e contador de série são
    confirmados juntos ou revertidos juntos.
    """

    def __init__(self, db: Session):
        self.db = db
        self.stock = StockService(db)

    # ===== LEITURA =====

    def _query(self, ctx: TenantContext):
        return self.db.query(DocumentoFiscal).filter(DocumentoFiscal.tenant_id == ctx.tenant_id)

    def obter_documento(self, documento_id: UUID, ctx: TenantContext, bloquear: bool = False) -> DocumentoFiscal:
        query = self._query(ctx).filter(DocumentoFiscal.id == documento_id)
        if bloquear:
            query = query.with_for_update().populate_existing()
        documento = query.first()
        if not documento:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Documento fiscal não encontrado"
            )
        return documento

    def calcular_valor_pendente(self, documento: DocumentoFiscal) -> Decimal:
        return documento.valor_pendente

    def listar_documentos(
        self,
        ctx: TenantContext,
        filtros: DocumentoFiltros,
        limit: int = 20,
        offset: int = 0
    ) -> dict:
        query = self._query(ctx)

        if filtros.tipo_documento:
            query = query.filter(DocumentoFiscal.tipo_documento == filtros.tipo_documento)
        if filtros.estado:
            query = query.filter(DocumentoFiscal.estado == filtros.estado)
        if filtros.cliente_id:
            query = query.filter(DocumentoFiscal.cliente_id == filtros.cliente_id)
        if filtros.cliente_nome:
            termo = f"%{filtros.cliente_nome}%"
            query = query.outerjoin(Cliente, Cliente.id == DocumentoFiscal.cliente_id).filter(
                or_(DocumentoFiscal.cliente_nome.ilike(termo), Cliente.nome.ilike(termo))
            )
        if filtros.data_inicio:
            query = query.filter(DocumentoFiscal.data_emissao >= filtros.data_inicio)
        if filtros.data_fim:
            query = query.filter(DocumentoFiscal.data_emissao <= filtros.data_fim)
        if filtros.apenas_vendas:
            query = query.filter(DocumentoFiscal.tipo_documento.in_(TIPOS_VENDA))
        if filtros.apenas_nao_vendas:
            query = query.filter(DocumentoFiscal.tipo_documento.notin_(TIPOS_VENDA))
        if filtros.pendentes:
            query = query.filter(
                DocumentoFiscal.tipo_documento.in_([TipoDocumento.FT, TipoDocumento.FA]),
                DocumentoFiscal.estado.in_(ESTADOS_EM_ABERTO)
            )
        if filtros.adiantamentos_pendentes:
            query = query.filter(
                DocumentoFiscal.tipo_documento == TipoDocumento.FA,
                DocumentoFiscal.estado == EstadoDocumento.EMITIDO
            )
        if filtros.proformas_pendentes:
            query = query.filter(
                DocumentoFiscal.tipo_documento == TipoDocumento.FP,
                DocumentoFiscal.estado == EstadoDocumento.EMITIDO
            )

        total = query.count()
        documentos = query.order_by(
            DocumentoFiscal.data_emissao.desc(), DocumentoFiscal.created_at.desc()
        ).offset(offset).limit(limit).all()

        return {"documentos": documentos, "total": total, "limit": limit, "offset": offset}

    def listar_recibos(self, documento_id: UUID, ctx: TenantContext) -> List[DocumentoFiscal]:
        documento = self.obter_documento(documento_id, ctx)
        return self._query(ctx).filter(
            DocumentoFiscal.tipo_documento == TipoDocumento.RC,
            DocumentoFiscal.fatura_id == documento.id
        ).order_by(DocumentoFiscal.created_at).all()

    def adiantamentos_pendentes(self, ctx: TenantContext, cliente_id: Optional[UUID] = None) -> List[DocumentoFiscal]:
        """Adiantamentos com saldo por aplicar"""
        query = self._query(ctx).filter(
            DocumentoFiscal.tipo_documento == TipoDocumento.FA,
            DocumentoFiscal.estado.notin_([EstadoDocumento.CANCELADO, EstadoDocumento.EXPIRADO])
        )
        if cliente_id:
            query = query.filter(DocumentoFiscal.cliente_id == cliente_id)
        documentos = query.order_by(DocumentoFiscal.data_emissao).all()
        return [d for d in documentos if d.saldo_adiantamento > 0]

    def proformas_pendentes(self, ctx: TenantContext, cliente_id: Optional[UUID] = None) -> List[DocumentoFiscal]:
        query = self._query(ctx).filter(
            DocumentoFiscal.tipo_documento == TipoDocumento.FP,
            DocumentoFiscal.estado == EstadoDocumento.EMITIDO
        )
        if cliente_id:
            query = query.filter(DocumentoFiscal.cliente_id == cliente_id)
        return query.order_by(DocumentoFiscal.data_emissao.desc()).all()

    # ===== AUXILIARES DE EMISSÃO =====

    def _proximo_numero(self, tipo: TipoDocumento, ano: int, ctx: TenantContext) -> Tuple[str, int, str]:
        """Reserva o próximo número da série ativa (linha bloqueada até ao commit)."""
        serie = self.db.query(SerieFiscal).filter(
            SerieFiscal.tenant_id == ctx.tenant_id,
            SerieFiscal.tipo_documento == tipo,
            SerieFiscal.ano == ano,
            SerieFiscal.ativa.is_(True)
        ).order_by(SerieFiscal.created_at).with_for_update().populate_existing().first()

        if not serie:
            serie = SerieFiscal(
                tenant_id=ctx.tenant_id,
                tipo_documento=tipo,
                serie=f"{tipo.value}{ano}",
                ano=ano,
                ultimo_numero=0,
                digitos=settings.SERIE_DIGITOS
            )
            self.db.add(serie)
            self.db.flush()
            logger.info(f"Série {serie.serie} criada para tenant {ctx.tenant_id}")

        serie.ultimo_numero = (serie.ultimo_numero or 0) + 1
        numero = serie.ultimo_numero
        return serie.serie, numero, serie.formatar_numero(numero)

    def _gerar_hash(self, numero_documento: str, data_emissao: date, total: Decimal, cliente_ref: str) -> str:
        conteudo = (
            f"{numero_documento}{data_emissao.isoformat()}{Decimal(total):.2f}"
            f"{cliente_ref}{settings.FISCAL_HASH_SECRET}"
        )
        return hashlib.sha256(conteudo.encode("utf-8")).hexdigest()

    def _resolver_cliente(
        self,
        dados: DocumentoFiscalCreate,
        origem: Optional[DocumentoFiscal],
        ctx: TenantContext
    ) -> Tuple[Optional[UUID], Optional[str], Optional[str]]:
        """Cliente registado, herdado da origem, avulso ou Consumidor Final"""
        cfg = configuracao(dados.tipo_documento)

        if dados.cliente_id:
            cliente = self.db.query(Cliente).filter(
                Cliente.id == dados.cliente_id,
                Cliente.tenant_id == ctx.tenant_id,
                Cliente.deleted_at.is_(None)
            ).first()
            if not cliente:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cliente não encontrado")
            return cliente.id, cliente.nome, cliente.nif

        if origem is not None:
            return origem.cliente_id, origem.cliente_nome, origem.cliente_nif

        nome = (dados.cliente_nome or "").strip()
        if nome:
            return None, nome, dados.cliente_nif

        if cfg.exige_cliente:
            raise _erro_negocio(f"{cfg.nome} exige a identificação do cliente")
        return None, CONSUMIDOR_FINAL, None

    def _resolver_linhas(self, itens: List[ItemDocumentoCreate], ctx: TenantContext) -> List[LinhaCalculada]:
        linhas = []
        for item in itens:
            produto = None
            if item.produto_id:
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
                    raise _erro_negocio(f"O produto {produto.nome} está inativo")

            if item.taxa_iva is not None:
                taxa_iva = item.taxa_iva
            elif produto is not None:
                taxa_iva = produto.taxa_iva if produto.sujeito_iva else Decimal("0")
            else:
                taxa_iva = settings.IVA_TAXA_PADRAO

            # Retenção na fonte aplica-se a serviços
            if item.taxa_retencao is not None:
                taxa_retencao = item.taxa_retencao
            elif produto is not None and produto.is_servico:
                taxa_retencao = produto.retencao if produto.retencao is not None else settings.RETENCAO_TAXA_PADRAO
            else:
                taxa_retencao = Decimal("0")

            linhas.append(calcular_linha(
                descricao=item.descricao or produto.nome,
                quantidade=item.quantidade,
                preco_unitario=item.preco_unitario if item.preco_unitario is not None else produto.preco_venda,
                taxa_iva=taxa_iva,
                desconto=item.desconto,
                taxa_retencao=taxa_retencao,
                produto_id=produto.id if produto else None
            ))
        return linhas

    def _obter_venda_aberta(self, venda_id: UUID, ctx: TenantContext) -> Venda:
        venda = self.db.query(Venda).filter(
            Venda.id == venda_id,
            Venda.tenant_id == ctx.tenant_id
        ).with_for_update().populate_existing().first()
        if not venda:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Venda não encontrada")
        if venda.status != StatusVenda.ABERTA:
            raise _erro_negocio(f"A venda já se encontra {venda.status.value}")
        return venda

    def _validar_origem(self, tipo: TipoDocumento, origem: DocumentoFiscal):
        cfg = configuracao(tipo)
        if not cfg.exige_origem:
            raise _erro_negocio(f"{cfg.nome} não aceita documento de origem")
        if origem.tipo_documento not in cfg.origens:
            permitidos = ", ".join(sorted(t.value for t in cfg.origens))
            raise _erro_negocio(
                f"{cfg.nome} só pode referenciar documentos do tipo {permitidos} "
                f"(recebido {origem.tipo_documento.value})"
            )
        if origem.is_cancelado:
            raise _erro_negocio(f"O documento {origem.numero_documento} está cancelado")

    def _atualizar_estado_pagamento(self, documento: DocumentoFiscal):
        """paga quando nada fica por cobrar, senão parcialmente_paga"""
        if documento.valor_pendente <= 0:
            documento.estado = EstadoDocumento.PAGA
        else:
            documento.estado = EstadoDocumento.PARCIALMENTE_PAGA

    def _validar_limite_notas_credito(self, origem: DocumentoFiscal, total_nota: Decimal):
        creditado = sum(
            (Decimal(d.total_liquido) for d in origem.documentos_derivados
             if d.tipo_documento == TipoDocumento.NC and not d.is_cancelado),
            Decimal("0")
        )
        disponivel = Decimal(origem.total_liquido) - creditado
        if total_nota > disponivel:
            raise _erro_negocio(
                f"O total das notas de crédito ({creditado + total_nota}) excede o valor "
                f"do documento {origem.numero_documento} ({origem.total_liquido})"
            )

    # ===== ESCRITA (sem commit) =====

    def _gerar_recibo(
        self,
        origem: DocumentoFiscal,
        pagamento: DadosPagamento,
        ctx: TenantContext
    ) -> DocumentoFiscal:
        self._validar_origem(TipoDocumento.RC, origem)

        if origem.estado == EstadoDocumento.PAGA:
            raise _erro_negocio(
                f"O documento {origem.numero_documento} já se encontra pago; "
                "o valor do pagamento excede o valor pendente (0.00)"
            )
        if origem.estado == EstadoDocumento.EXPIRADO:
            raise _erro_negocio(f"O documento {origem.numero_documento} está expirado")

        pendente = origem.valor_pendente
        valor = arredondar(pagamento.valor)
        if valor > pendente:
            raise _erro_negocio(f"O valor do pagamento ({valor}) excede o valor pendente ({pendente})")

        data_emissao = pagamento.data or date.today()
        serie, numero, numero_documento = self._proximo_numero(TipoDocumento.RC, data_emissao.year, ctx)
        cliente_ref = str(origem.cliente_id) if origem.cliente_id else (origem.cliente_nome or "consumidor_final")

        recibo = DocumentoFiscal(
            tenant_id=ctx.tenant_id,
            user_id=ctx.user_id,
            cliente_id=origem.cliente_id,
            cliente_nome=origem.cliente_nome,
            cliente_nif=origem.cliente_nif,
            documento_origem=origem,
            serie=serie,
            numero=numero,
            numero_documento=numero_documento,
            tipo_documento=TipoDocumento.RC,
            estado=configuracao(TipoDocumento.RC).estado_inicial,
            data_emissao=data_emissao,
            base_tributavel=valor,
            total_iva=Decimal("0"),
            total_retencao=Decimal("0"),
            total_desconto=Decimal("0"),
            total_liquido=valor,
            metodo_pagamento=pagamento.metodo,
            referencia_pagamento=pagamento.referencia,
            hash_fiscal=self._gerar_hash(numero_documento, data_emissao, valor, cliente_ref)
        )
        self.db.add(recibo)
        self.db.flush()

        self._atualizar_estado_pagamento(origem)
        logger.info(
            f"Recibo {numero_documento} de {valor} sobre {origem.numero_documento}; "
            f"origem passa a {origem.estado.value}"
        )
        return recibo

    def _emitir(self, dados: DocumentoFiscalCreate, ctx: TenantContext) -> DocumentoFiscal:
        tipo = dados.tipo_documento
        cfg = configuracao(tipo)

        origem = None
        if dados.fatura_id:
            origem = self.obter_documento(dados.fatura_id, ctx, bloquear=True)
            self._validar_origem(tipo, origem)

        if tipo == TipoDocumento.RC:
            return self._gerar_recibo(origem, dados.dados_pagamento, ctx)

        cliente_id, cliente_nome, cliente_nif = self._resolver_cliente(dados, origem, ctx)

        if dados.itens:
            linhas = self._resolver_linhas(dados.itens, ctx)
        elif tipo == TipoDocumento.FA:
            linhas = [calcular_linha(
                descricao="Adiantamento",
                quantidade=Decimal("1"),
                preco_unitario=dados.dados_pagamento.valor,
                taxa_iva=Decimal("0")
            )]
        else:
            linhas = []
        totais = calcular_totais(linhas)

        if tipo == TipoDocumento.NC:
            self._validar_limite_notas_credito(origem, totais.total_liquido)
        if tipo == TipoDocumento.FR and dados.dados_pagamento.valor < totais.total_liquido:
            raise _erro_negocio(
                f"O valor pago ({dados.dados_pagamento.valor}) não cobre o total da fatura-recibo "
                f"({totais.total_liquido})"
            )

        venda = self._obter_venda_aberta(dados.venda_id, ctx) if dados.venda_id else None

        data_emissao = date.today()
        serie, numero, numero_documento = self._proximo_numero(tipo, data_emissao.year, ctx)
        cliente_ref = str(cliente_id) if cliente_id else (cliente_nome or "consumidor_final")

        documento = DocumentoFiscal(
            tenant_id=ctx.tenant_id,
            user_id=ctx.user_id,
            venda_id=venda.id if venda else None,
            cliente_id=cliente_id,
            cliente_nome=cliente_nome,
            cliente_nif=cliente_nif,
            documento_origem=origem,
            serie=serie,
            numero=numero,
            numero_documento=numero_documento,
            tipo_documento=tipo,
            estado=cfg.estado_inicial,
            data_emissao=data_emissao,
            data_vencimento=calcular_data_vencimento(tipo, data_emissao, dados.data_vencimento),
            base_tributavel=totais.base_tributavel,
            total_desconto=totais.total_desconto,
            total_iva=totais.total_iva,
            total_retencao=totais.total_retencao,
            total_liquido=totais.total_liquido,
            motivo=dados.motivo,
            referencia_externa=dados.referencia_externa,
            hash_fiscal=self._gerar_hash(numero_documento, data_emissao, totais.total_liquido, cliente_ref)
        )

        if tipo == TipoDocumento.FR:
            documento.metodo_pagamento = dados.dados_pagamento.metodo
            documento.referencia_pagamento = dados.dados_pagamento.referencia

        for ordem, linha in enumerate(linhas):
            documento.itens.append(ItemDocumentoFiscal(
                tenant_id=ctx.tenant_id,
                ordem=ordem,
                produto_id=linha.produto_id,
                descricao=linha.descricao,
                quantidade=linha.quantidade,
                preco_unitario=linha.preco_unitario,
                desconto=linha.desconto,
                valor_desconto=linha.valor_desconto,
                taxa_iva=linha.taxa_iva,
                valor_iva=linha.valor_iva,
                taxa_retencao=linha.taxa_retencao,
                valor_retencao=linha.valor_retencao,
                total_linha=linha.total_linha
            ))

        self.db.add(documento)
        self.db.flush()

        self.stock.processar_documento_fiscal(documento, ctx)

        if venda is not None:
            venda.status = StatusVenda.FATURADA
            venda.documento_fiscal_id = documento.id
            venda.tipo_documento_fiscal = tipo.value

        if tipo == TipoDocumento.FT and dados.dados_pagamento is not None:
            self._gerar_recibo(documento, dados.dados_pagamento, ctx)

        logger.info(
            f"{cfg.nome} {numero_documento} emitida: total {totais.total_liquido}, "
            f"estado {documento.estado.value}, tenant {ctx.tenant_id}"
        )
        return documento

    # ===== OPERAÇÕES PÚBLICAS =====

    def _executar(self, operacao: str, func, *args):
        """Corre func numa transação: commit no fim, rollback em qualquer erro"""
        try:
            resultado = func(*args)
            self.db.commit()
            return resultado
        except (HTTPException, RequestValidationError):
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Erro ao {operacao}: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Erro ao {operacao}"
            )

    def emitir(self, dados: DocumentoFiscalCreate, ctx: TenantContext) -> DocumentoFiscal:
        """Emitir documento fiscal de qualquer tipo"""
        documento = self._executar("emitir documento fiscal", self._emitir, dados, ctx)
        self.db.refresh(documento)
        return documento

    def gerar_recibo(self, documento_id: UUID, dados: ReciboCreate, ctx: TenantContext) -> DocumentoFiscal:
        """Recibo (RC) sobre uma FT ou FA com valor pendente"""
        def _operacao():
            origem = self.obter_documento(documento_id, ctx, bloquear=True)
            pagamento = DadosPagamento(
                metodo=dados.metodo_pagamento,
                valor=dados.valor,
                referencia=dados.referencia,
                data=dados.data_pagamento
            )
            return self._gerar_recibo(origem, pagamento, ctx)

        recibo = self._executar("gerar recibo", _operacao)
        self.db.refresh(recibo)
        return recibo

    def criar_nota_credito(self, documento_id: UUID, dados: NotaCreditoCreate, ctx: TenantContext) -> DocumentoFiscal:
        def _operacao():
            origem = self.obter_documento(documento_id, ctx)
            pedido = DocumentoFiscalCreate(
                tipo_documento=TipoDocumento.NC,
                fatura_id=origem.id,
                itens=dados.itens,
                motivo=dados.motivo or f"Correção de {origem.numero_documento}"
            )
            return self._emitir(pedido, ctx)

        nota = self._executar("criar nota de crédito", _operacao)
        self.db.refresh(nota)
        return nota

    def criar_nota_debito(self, documento_id: UUID, dados: NotaDebitoCreate, ctx: TenantContext) -> DocumentoFiscal:
        def _operacao():
            origem = self.obter_documento(documento_id, ctx)
            pedido = DocumentoFiscalCreate(
                tipo_documento=TipoDocumento.ND,
                fatura_id=origem.id,
                itens=dados.itens,
                motivo=dados.motivo or f"Débito adicional referente à {origem.numero_documento}"
            )
            return self._emitir(pedido, ctx)

        nota = self._executar("criar nota de débito", _operacao)
        self.db.refresh(nota)
        return nota

    def vincular_adiantamento(
        self,
        adiantamento_id: UUID,
        dados: VincularAdiantamentoRequest,
        ctx: TenantContext
    ) -> AdiantamentoFatura:
        """Aplicar (parte de) uma FA a uma FT em aberto"""
        def _operacao():
            adiantamento = self.obter_documento(adiantamento_id, ctx, bloquear=True)
            if adiantamento.tipo_documento != TipoDocumento.FA:
                raise _erro_negocio("O documento indicado não é uma fatura de adiantamento")
            if adiantamento.is_terminal:
                raise _erro_negocio(f"O adiantamento {adiantamento.numero_documento} está {adiantamento.estado.value}")

            valor = arredondar(dados.valor)
            if valor > Decimal(adiantamento.total_liquido):
                raise erro_validacao(
                    "valor", f"O valor não pode exceder o total do adiantamento ({adiantamento.total_liquido})"
                )
            saldo = adiantamento.saldo_adiantamento
            if valor > saldo:
                raise _erro_negocio(f"O valor ({valor}) excede o saldo disponível do adiantamento ({saldo})")

            fatura = self.obter_documento(dados.fatura_id, ctx, bloquear=True)
            if not configuracao(fatura.tipo_documento).aceita_adiantamento:
                raise _erro_negocio("Adiantamentos só podem ser aplicados a faturas (FT)")
            if fatura.is_cancelado:
                raise _erro_negocio(f"A fatura {fatura.numero_documento} está cancelada")
            if fatura.estado == EstadoDocumento.PAGA:
                raise _erro_negocio(f"A fatura {fatura.numero_documento} já se encontra paga")
            if adiantamento.cliente_id and fatura.cliente_id and adiantamento.cliente_id != fatura.cliente_id:
                raise _erro_negocio("O adiantamento pertence a outro cliente")

            pendente = fatura.valor_pendente
            if valor > pendente:
                raise _erro_negocio(f"O valor ({valor}) excede o valor pendente da fatura ({pendente})")

            vinculo = AdiantamentoFatura(
                tenant_id=ctx.tenant_id,
                adiantamento=adiantamento,
                fatura=fatura,
                valor_utilizado=valor,
                user_id=ctx.user_id
            )
            self.db.add(vinculo)
            self.db.flush()

            self._atualizar_estado_pagamento(fatura)
            if adiantamento.saldo_adiantamento <= 0:
                adiantamento.estado = EstadoDocumento.PAGA
            elif adiantamento.estado == EstadoDocumento.EMITIDO:
                adiantamento.estado = EstadoDocumento.PARCIALMENTE_PAGA

            logger.info(
                f"Adiantamento {adiantamento.numero_documento} aplicado em {fatura.numero_documento}: {valor}"
            )
            return vinculo

        vinculo = self._executar("vincular adiantamento", _operacao)
        self.db.refresh(vinculo)
        return vinculo

    def cancelar(self, documento_id: UUID, dados: CancelamentoRequest, ctx: TenantContext) -> DocumentoFiscal:
        """
        Cancelar documento. O stock só é revertido quando pedido
        explicitamente (reverter_stock).
        """
        def _operacao():
            documento = self.obter_documento(documento_id, ctx, bloquear=True)

            if documento.is_cancelado:
                raise _erro_negocio(f"O documento {documento.numero_documento} já se encontra cancelado")
            if documento.estado == EstadoDocumento.EXPIRADO:
                raise _erro_negocio("Documentos expirados não podem ser cancelados")
            if documento.estado == EstadoDocumento.PAGA and documento.tipo_documento not in TIPOS_PAGAMENTO:
                raise _erro_negocio("Documentos pagos não podem ser cancelados. Cancele primeiro os recibos")

            derivados_ativos = [d.numero_documento for d in documento.documentos_derivados if not d.is_cancelado]
            if derivados_ativos:
                raise _erro_negocio(
                    f"Existem documentos associados ativos ({', '.join(derivados_ativos)}). Cancele-os primeiro"
                )
            if documento.vinculos_fatura or documento.vinculos_adiantamento:
                raise _erro_negocio("O documento tem adiantamentos vinculados e não pode ser cancelado")

            if dados.reverter_stock:
                self.stock.reverter_documento_fiscal(documento, ctx)

            documento.estado = EstadoDocumento.CANCELADO
            documento.motivo_cancelamento = dados.motivo
            documento.data_cancelamento = datetime.now(timezone.utc)
            documento.user_cancelamento_id = ctx.user_id

            origem = documento.documento_origem
            if documento.tipo_documento == TipoDocumento.RC and origem is not None:
                self.db.flush()
                if origem.estado == EstadoDocumento.PAGA and origem.valor_pendente > 0:
                    origem.estado = EstadoDocumento.PARCIALMENTE_PAGA

            logger.info(
                f"Documento {documento.numero_documento} cancelado "
                f"(reverter_stock={dados.reverter_stock}): {dados.motivo}"
            )
            return documento

        documento = self._executar("cancelar documento", _operacao)
        self.db.refresh(documento)
        return documento

    def processar_adiantamentos_expirados(self, tenant_id: Optional[UUID] = None) -> int:
        """FA emitidas com vencimento ultrapassado passam a expirado"""
        def _operacao():
            query = self.db.query(DocumentoFiscal).filter(
                DocumentoFiscal.tipo_documento == TipoDocumento.FA,
                DocumentoFiscal.estado == EstadoDocumento.EMITIDO,
                DocumentoFiscal.data_vencimento.isnot(None),
                DocumentoFiscal.data_vencimento < date.today()
            )
            if tenant_id:
                query = query.filter(DocumentoFiscal.tenant_id == tenant_id)

            expirados = query.with_for_update().all()
            for documento in expirados:
                documento.estado = EstadoDocumento.EXPIRADO
            return len(expirados)

        total = self._executar("processar adiantamentos expirados", _operacao)
        logger.info(f"Adiantamentos expirados processados: {total} (tenant {tenant_id or 'todos'})")
        return total
