from dataclasses import dataclass
from typing import Annotated, Optional
from fastapi import Depends, Request, HTTPException, status
from uuid import UUID

from gestfiscal.core.config import settings


@dataclass(frozen=True)
class TenantContext:
    """Contexto do pedido passado explicitamente aos serviços."""
    tenant_id: UUID
    user_id: Optional[UUID] = None


def get_tenant_id(request: Request) -> UUID:
    """Extrai o tenant_id colocado em request.state pelo TenantMiddleware"""
    if not hasattr(request.state, 'tenant_id'):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Contexto de tenant não encontrado. Envie o cabeçalho {settings.TENANT_HEADER}."
        )
    return request.state.tenant_id


def get_tenant_context(request: Request) -> TenantContext:
    """
    Constrói o contexto do pedido. O utilizador é opcional: a autenticação
    fica a cargo do gateway, que propaga o id no cabeçalho USER_HEADER.
    """
    tenant_id = get_tenant_id(request)
    user_id = None
    user_header = request.headers.get(settings.USER_HEADER)
    if user_header:
        try:
            user_id = UUID(user_header)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"{settings.USER_HEADER} inválido. Deve ser um UUID"
            )
    return TenantContext(tenant_id=tenant_id, user_id=user_id)


TenantCtx = Annotated[TenantContext, Depends(get_tenant_context)]
