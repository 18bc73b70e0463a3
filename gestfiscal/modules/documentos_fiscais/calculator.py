"""
Cálculo de linhas e totais de documentos fiscais

Regras (IVA angolano):
- base da linha = quantidade × preço unitário − desconto (%)
- IVA arredondado à linha, 2 casas decimais
- retenção na fonte só em serviços, sobre a base
- total líquido do documento = base + IVA − retenção
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional
from uuid import UUID

TWO_PLACES = Decimal("0.01")
HUNDRED = Decimal("100")


def arredondar(valor: Decimal) -> Decimal:
    return Decimal(valor).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass
class LinhaCalculada:
    descricao: str
    quantidade: Decimal
    preco_unitario: Decimal
    desconto: Decimal
    valor_desconto: Decimal
    taxa_iva: Decimal
    valor_iva: Decimal
    taxa_retencao: Decimal
    valor_retencao: Decimal
    total_linha: Decimal
    produto_id: Optional[UUID] = None


@dataclass
class TotaisDocumento:
    base_tributavel: Decimal
    total_desconto: Decimal
    total_iva: Decimal
    total_retencao: Decimal
    total_liquido: Decimal


def calcular_linha(
    descricao: str,
    quantidade: Decimal,
    preco_unitario: Decimal,
    taxa_iva: Decimal,
    desconto: Decimal = Decimal("0"),
    taxa_retencao: Decimal = Decimal("0"),
    produto_id: Optional[UUID] = None
) -> LinhaCalculada:
    """
    Calcular uma linha

    Args:
        desconto: percentagem de desconto (0-100)
        taxa_retencao: percentagem de retenção; zero para bens
    """
    quantidade = Decimal(str(quantidade))
    preco_unitario = Decimal(str(preco_unitario))
    desconto = Decimal(str(desconto or 0))
    taxa_iva = Decimal(str(taxa_iva or 0))
    taxa_retencao = Decimal(str(taxa_retencao or 0))

    valor_bruto = quantidade * preco_unitario
    valor_desconto = arredondar(valor_bruto * desconto / HUNDRED)
    base = arredondar(valor_bruto - valor_desconto)
    valor_iva = arredondar(base * taxa_iva / HUNDRED)
    valor_retencao = arredondar(base * taxa_retencao / HUNDRED)

    return LinhaCalculada(
        descricao=descricao,
        quantidade=quantidade,
        preco_unitario=preco_unitario,
        desconto=desconto,
        valor_desconto=valor_desconto,
        taxa_iva=taxa_iva,
        valor_iva=valor_iva,
        taxa_retencao=taxa_retencao,
        valor_retencao=valor_retencao,
        total_linha=base,
        produto_id=produto_id
    )


def calcular_totais(linhas: Iterable[LinhaCalculada]) -> TotaisDocumento:
    linhas: List[LinhaCalculada] = list(linhas)
    base = sum((l.total_linha for l in linhas), Decimal("0"))
    desconto = sum((l.valor_desconto for l in linhas), Decimal("0"))
    iva = sum((l.valor_iva for l in linhas), Decimal("0"))
    retencao = sum((l.valor_retencao for l in linhas), Decimal("0"))

    return TotaisDocumento(
        base_tributavel=arredondar(base),
        total_desconto=arredondar(desconto),
        total_iva=arredondar(iva),
        total_retencao=arredondar(retencao),
        total_liquido=arredondar(base + iva - retencao)
    )
