"""
Mixins comuns aos modelos multi-tenant
"""
from sqlalchemy import Column, DateTime, Uuid
from sqlalchemy.sql import func
from datetime import datetime, timezone


def agora_utc() -> datetime:
    return datetime.now(timezone.utc)


class TenantMixin:
    """Acrescenta tenant_id; todas as queries de negócio filtram por esta coluna"""

    tenant_id = Column(Uuid, nullable=False, index=True)


class TimestampMixin:
    """Mixin for models that need timestamp tracking"""

    # default em Python garante ordenação por criação mesmo em SQLite
    created_at = Column(DateTime(timezone=True), default=agora_utc, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=agora_utc, server_default=func.now(), onupdate=agora_utc, nullable=False)


class SoftDeleteMixin:
    """Eliminação lógica: a linha fica, mas deixa de aparecer nas listagens"""

    deleted_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    def soft_delete(self):
        self.deleted_at = agora_utc()

    def restore(self):
        self.deleted_at = None
