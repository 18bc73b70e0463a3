from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from gestfiscal.common.validators import (
    normalize_nif, validate_angola_nif, validate_angola_phone, format_angola_phone
)
from gestfiscal.modules.clientes.models import TipoCliente, StatusCliente


def _nif_normalizado(v: Optional[str]) -> Optional[str]:
    if v is None or not v.strip():
        return None
    if not validate_angola_nif(v):
        raise ValueError('NIF inválido. Use 10 dígitos (empresa) ou o número do BI (ex.: 008693558LA042)')
    return normalize_nif(v)


def _telefone_valido(v: Optional[str]) -> Optional[str]:
    if not v:
        return v
    if not validate_angola_phone(v):
        raise ValueError('Telefone angolano inválido')
    return format_angola_phone(v)


class ClienteBase(BaseModel):
    nome: str = Field(..., min_length=1, max_length=200)
    nif: Optional[str] = Field(None, max_length=20)
    tipo: TipoCliente = TipoCliente.CONSUMIDOR_FINAL
    telefone: Optional[str] = Field(None, max_length=30)
    email: Optional[str] = Field(None, max_length=150)
    endereco: Optional[str] = None

    @field_validator('nome')
    @classmethod
    def strip_nome(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('O nome é obrigatório')
        return v

    @field_validator('nif')
    @classmethod
    def validate_nif(cls, v):
        return _nif_normalizado(v)

    @field_validator('telefone')
    @classmethod
    def validate_telefone(cls, v):
        return _telefone_valido(v)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        if v and '@' not in v:
            raise ValueError('Email inválido')
        return v


class ClienteCreate(ClienteBase):

    @model_validator(mode='after')
    def nif_obrigatorio_para_empresas(self):
        if self.tipo == TipoCliente.EMPRESA and not self.nif:
            raise ValueError('O NIF é obrigatório para clientes do tipo empresa')
        return self


class ClienteUpdate(BaseModel):
    nome: Optional[str] = Field(None, min_length=1, max_length=200)
    nif: Optional[str] = Field(None, max_length=20)
    tipo: Optional[TipoCliente] = None
    telefone: Optional[str] = Field(None, max_length=30)
    email: Optional[str] = Field(None, max_length=150)
    endereco: Optional[str] = None

    @field_validator('nif')
    @classmethod
    def validate_nif(cls, v):
        return _nif_normalizado(v)

    @field_validator('telefone')
    @classmethod
    def validate_telefone(cls, v):
        return _telefone_valido(v)


class ClienteStatusUpdate(BaseModel):
    status: StatusCliente


class ClienteOut(BaseModel):
    id: UUID
    nome: str
    nif: Optional[str] = None
    tipo: TipoCliente
    status: StatusCliente
    telefone: Optional[str] = None
    email: Optional[str] = None
    endereco: Optional[str] = None
    data_registro: date
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ClienteList(BaseModel):
    clientes: List[ClienteOut]
    total: int
    limit: int
    offset: int
