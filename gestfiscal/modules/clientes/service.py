from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy import or_
from typing import Optional
from uuid import UUID
import logging

from gestfiscal.dependencies.tenantDependencies import TenantContext
from gestfiscal.modules.clientes.models import Cliente, TipoCliente, StatusCliente
from gestfiscal.modules.clientes.schemas import ClienteCreate, ClienteUpdate

logger = logging.getLogger(__name__)


class ClienteService:
    def __init__(self, db: Session):
        self.db = db

    def _query(self, ctx: TenantContext, incluir_eliminados: bool = False):
        query = self.db.query(Cliente).filter(Cliente.tenant_id == ctx.tenant_id)
        if not incluir_eliminados:
            query = query.filter(Cliente.deleted_at.is_(None))
        return query

    def _verificar_nif_unico(self, nif: Optional[str], ctx: TenantContext, exclude_id: Optional[UUID] = None):
        if not nif:
            return
        query = self._query(ctx, incluir_eliminados=True).filter(Cliente.nif == nif)
        if exclude_id:
            query = query.filter(Cliente.id != exclude_id)
        existente = query.first()
        if existente:
            if existente.is_deleted:
                detail = f"Já existe um cliente eliminado com o NIF {nif}. Restaure-o em vez de criar outro"
            else:
                detail = f"Já existe um cliente com o NIF {nif}"
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)

    def obter_cliente(self, cliente_id: UUID, ctx: TenantContext, incluir_eliminados: bool = False) -> Cliente:
        cliente = self._query(ctx, incluir_eliminados).filter(Cliente.id == cliente_id).first()
        if not cliente:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Cliente não encontrado"
            )
        return cliente

    def criar_cliente(self, dados: ClienteCreate, ctx: TenantContext) -> Cliente:
        """Criar um novo cliente"""
        try:
            self._verificar_nif_unico(dados.nif, ctx)

            cliente = Cliente(tenant_id=ctx.tenant_id, **dados.model_dump())
            self.db.add(cliente)
            self.db.commit()
            self.db.refresh(cliente)

            logger.info(f"Cliente criado: {cliente.id} ({cliente.nome}) tenant {ctx.tenant_id}")
            return cliente

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Erro ao criar cliente: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Erro ao criar cliente"
            )

    def listar_clientes(
        self,
        ctx: TenantContext,
        search: Optional[str] = None,
        tipo: Optional[TipoCliente] = None,
        status_filtro: Optional[StatusCliente] = None,
        limit: int = 20,
        offset: int = 0
    ) -> dict:
        query = self._query(ctx)

        if search:
            termo = f"%{search}%"
            query = query.filter(or_(
                Cliente.nome.ilike(termo),
                Cliente.nif.ilike(termo),
                Cliente.email.ilike(termo)
            ))
        if tipo:
            query = query.filter(Cliente.tipo == tipo)
        if status_filtro:
            query = query.filter(Cliente.status == status_filtro)

        total = query.count()
        clientes = query.order_by(Cliente.nome).offset(offset).limit(limit).all()

        return {"clientes": clientes, "total": total, "limit": limit, "offset": offset}

    def atualizar_cliente(self, cliente_id: UUID, dados: ClienteUpdate, ctx: TenantContext) -> Cliente:
        try:
            cliente = self.obter_cliente(cliente_id, ctx)
            alteracoes = dados.model_dump(exclude_unset=True)

            if "nif" in alteracoes:
                self._verificar_nif_unico(alteracoes["nif"], ctx, exclude_id=cliente.id)

            tipo_final = alteracoes.get("tipo", cliente.tipo)
            nif_final = alteracoes.get("nif", cliente.nif)
            if tipo_final == TipoCliente.EMPRESA and not nif_final:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail="O NIF é obrigatório para clientes do tipo empresa"
                )

            for campo, valor in alteracoes.items():
                setattr(cliente, campo, valor)

            self.db.commit()
            self.db.refresh(cliente)
            logger.info(f"Cliente atualizado: {cliente.id}")
            return cliente

        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Erro ao atualizar cliente {cliente_id}: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Erro ao atualizar cliente"
            )

    def alterar_status(self, cliente_id: UUID, novo_status: StatusCliente, ctx: TenantContext) -> Cliente:
        cliente = self.obter_cliente(cliente_id, ctx)
        cliente.status = novo_status
        self.db.commit()
        self.db.refresh(cliente)
        logger.info(f"Cliente {cliente.id} passou a {novo_status.value}")
        return cliente

    def eliminar_cliente(self, cliente_id: UUID, ctx: TenantContext) -> Cliente:
        """Eliminação lógica; os documentos fiscais do cliente mantêm-se intactos"""
        cliente = self.obter_cliente(cliente_id, ctx)
        cliente.soft_delete()
        self.db.commit()
        self.db.refresh(cliente)
        logger.info(f"Cliente eliminado (soft delete): {cliente.id}")
        return cliente

    def restaurar_cliente(self, cliente_id: UUID, ctx: TenantContext) -> Cliente:
        cliente = self.obter_cliente(cliente_id, ctx, incluir_eliminados=True)
        if not cliente.is_deleted:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="O cliente não está eliminado"
            )
        cliente.restore()
        self.db.commit()
        self.db.refresh(cliente)
        logger.info(f"Cliente restaurado: {cliente.id}")
        return cliente
