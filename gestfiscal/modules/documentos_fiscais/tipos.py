"""
Tipos de documento fiscal e as regras associadas a cada um

Cada TipoDocumento tem uma ConfiguracaoTipo; o dicionário CONFIGURACOES
é verificado no import para cobrir todos os tipos, por isso qualquer tipo
novo tem de declarar explicitamente o seu comportamento.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, FrozenSet, Optional
import enum

from gestfiscal.core.config import settings
from gestfiscal.modules.stock.models import TipoMovimento, OrigemMovimento


class TipoDocumento(enum.Enum):
    FT = "FT"    # Fatura
    FR = "FR"    # Fatura-Recibo
    FP = "FP"    # Fatura Proforma
    FA = "FA"    # Fatura de Adiantamento
    NC = "NC"    # Nota de Crédito
    ND = "ND"    # Nota de Débito
    RC = "RC"    # Recibo
    FRT = "FRt"  # Fatura de Retificação


class EstadoDocumento(enum.Enum):
    EMITIDO = "emitido"
    PARCIALMENTE_PAGA = "parcialmente_paga"
    PAGA = "paga"
    CANCELADO = "cancelado"
    EXPIRADO = "expirado"


ESTADOS_TERMINAIS = frozenset({EstadoDocumento.CANCELADO, EstadoDocumento.EXPIRADO})


class MetodoPagamento(enum.Enum):
    TRANSFERENCIA = "transferencia"
    MULTIBANCO = "multibanco"
    DINHEIRO = "dinheiro"
    CHEQUE = "cheque"
    CARTAO = "cartao"


@dataclass(frozen=True)
class ConfiguracaoTipo:
    nome: str
    estado_inicial: EstadoDocumento
    direcao_stock: Optional[TipoMovimento] = None
    origem_stock: Optional[OrigemMovimento] = None
    eh_venda: bool = False
    exige_cliente: bool = False
    aceita_recibo: bool = False
    aceita_adiantamento: bool = False
    origens: FrozenSet[TipoDocumento] = frozenset()
    exige_itens: bool = True
    exige_motivo: bool = False
    exige_dados_pagamento: bool = False
    prazo_vencimento: Optional[Callable[[], int]] = None  # None: documento sem vencimento

    @property
    def afeta_stock(self) -> bool:
        return self.direcao_stock is not None

    @property
    def exige_origem(self) -> bool:
        return bool(self.origens)


CONFIGURACOES = {
    TipoDocumento.FT: ConfiguracaoTipo(
        nome="Fatura",
        estado_inicial=EstadoDocumento.EMITIDO,
        direcao_stock=TipoMovimento.SAIDA,
        origem_stock=OrigemMovimento.VENDA,
        eh_venda=True,
        aceita_recibo=True,
        aceita_adiantamento=True,
        prazo_vencimento=lambda: settings.PRAZO_VENCIMENTO_DIAS,
    ),
    TipoDocumento.FR: ConfiguracaoTipo(
        nome="Fatura-Recibo",
        estado_inicial=EstadoDocumento.PAGA,
        direcao_stock=TipoMovimento.SAIDA,
        origem_stock=OrigemMovimento.VENDA,
        eh_venda=True,
        exige_cliente=True,
        exige_dados_pagamento=True,
        prazo_vencimento=lambda: 0,
    ),
    TipoDocumento.FP: ConfiguracaoTipo(
        nome="Fatura Proforma",
        estado_inicial=EstadoDocumento.EMITIDO,
    ),
    TipoDocumento.FA: ConfiguracaoTipo(
        nome="Fatura de Adiantamento",
        estado_inicial=EstadoDocumento.EMITIDO,
        aceita_recibo=True,
        exige_itens=False,
        prazo_vencimento=lambda: settings.PRAZO_ADIANTAMENTO_DIAS,
    ),
    TipoDocumento.NC: ConfiguracaoTipo(
        nome="Nota de Crédito",
        estado_inicial=EstadoDocumento.EMITIDO,
        direcao_stock=TipoMovimento.ENTRADA,
        origem_stock=OrigemMovimento.NOTA_CREDITO,
        origens=frozenset({TipoDocumento.FT, TipoDocumento.FR}),
        exige_motivo=True,
    ),
    TipoDocumento.ND: ConfiguracaoTipo(
        nome="Nota de Débito",
        estado_inicial=EstadoDocumento.EMITIDO,
        origens=frozenset({TipoDocumento.FT, TipoDocumento.FR}),
        prazo_vencimento=lambda: settings.PRAZO_VENCIMENTO_ND_DIAS,
    ),
    TipoDocumento.RC: ConfiguracaoTipo(
        nome="Recibo",
        estado_inicial=EstadoDocumento.PAGA,
        eh_venda=True,
        origens=frozenset({TipoDocumento.FT, TipoDocumento.FA}),
        exige_itens=False,
        exige_dados_pagamento=True,
    ),
    TipoDocumento.FRT: ConfiguracaoTipo(
        nome="Fatura de Retificação",
        estado_inicial=EstadoDocumento.EMITIDO,
        origens=frozenset({TipoDocumento.FT, TipoDocumento.FR}),
        exige_itens=False,
        exige_motivo=True,
    ),
}

_sem_configuracao = set(TipoDocumento) - set(CONFIGURACOES)
if _sem_configuracao:
    raise RuntimeError(f"Tipos de documento sem configuração: {sorted(t.value for t in _sem_configuracao)}")


TIPOS_VENDA = frozenset(t for t, cfg in CONFIGURACOES.items() if cfg.eh_venda)


def configuracao(tipo: TipoDocumento) -> ConfiguracaoTipo:
    return CONFIGURACOES[tipo]


def calcular_data_vencimento(
    tipo: TipoDocumento,
    data_emissao: date,
    data_informada: Optional[date] = None
) -> Optional[date]:
    """Data informada tem prioridade; tipos sem prazo nunca vencem."""
    cfg = configuracao(tipo)
    if cfg.prazo_vencimento is None:
        return None
    if data_informada is not None:
        return data_informada
    return data_emissao + timedelta(days=cfg.prazo_vencimento())
