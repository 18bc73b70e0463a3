from gestfiscal.database.database import Base
from sqlalchemy import Column, String, Text, Date, Enum, Uuid, UniqueConstraint
from datetime import date
from uuid import uuid4
from gestfiscal.common.mixins import TenantMixin, TimestampMixin, SoftDeleteMixin
import enum


class TipoCliente(enum.Enum):
    CONSUMIDOR_FINAL = "consumidor_final"
    EMPRESA = "empresa"


class StatusCliente(enum.Enum):
    ATIVO = "ativo"
    INATIVO = "inativo"


class Cliente(Base, TenantMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "clientes"

    id = Column(Uuid, primary_key=True, default=uuid4)

    nome = Column(String(200), nullable=False, index=True)
    nif = Column(String(20), nullable=True)
    tipo = Column(Enum(TipoCliente), nullable=False, default=TipoCliente.CONSUMIDOR_FINAL)
    status = Column(Enum(StatusCliente), nullable=False, default=StatusCliente.ATIVO)

    # Contactos
    telefone = Column(String(30), nullable=True)
    email = Column(String(150), nullable=True)
    endereco = Column(Text, nullable=True)

    data_registro = Column(Date, nullable=False, default=date.today)

    __table_args__ = (
        UniqueConstraint("tenant_id", "nif", name="uq_cliente_tenant_nif"),
    )

    @property
    def is_ativo(self) -> bool:
        return self.status == StatusCliente.ATIVO and not self.is_deleted

    @property
    def is_empresa(self) -> bool:
        return self.tipo == TipoCliente.EMPRESA
