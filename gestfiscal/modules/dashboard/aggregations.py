"""
Agregações de leitura sobre documentos fiscais

Funções puras: recebem a coleção de documentos (e os vínculos de
adiantamento) e devolvem dicionários prontos a serializar. Nada aqui
escreve na base de dados nem guarda cache; tudo é recalculado por pedido.
Documentos cancelados não entram em somas monetárias.
"""

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from gestfiscal.modules.documentos_fiscais.tipos import (
    TipoDocumento, EstadoDocumento, MetodoPagamento, ESTADOS_TERMINAIS
)

ZERO = Decimal("0")
TWO_PLACES = Decimal("0.01")
TIPOS_FATURACAO = (TipoDocumento.FT, TipoDocumento.FR)
ESTADOS_EM_ABERTO = (EstadoDocumento.EMITIDO, EstadoDocumento.PARCIALMENTE_PAGA)

NOMES_MESES = [
    "Janeiro", "Fevereiro", "Março", "Abril", "Maio", "Junho",
    "Julho", "Agosto", "Setembro", "Outubro", "Novembro", "Dezembro"
]


def _r(valor: Decimal) -> Decimal:
    return Decimal(valor).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _ativos(documentos: Iterable) -> List:
    return [d for d in documentos if d.estado != EstadoDocumento.CANCELADO]


def _soma(documentos: Iterable, campo: str = "total_liquido") -> Decimal:
    return _r(sum((Decimal(getattr(d, campo) or 0) for d in documentos), ZERO))


def _do_tipo(documentos: Iterable, *tipos: TipoDocumento) -> List:
    return [d for d in documentos if d.tipo_documento in tipos]


def _no_mes(documentos: Iterable, ano: int, mes: int) -> List:
    return [d for d in documentos if d.data_emissao.year == ano and d.data_emissao.month == mes]


def _mes_anterior(hoje: date):
    primeiro = hoje.replace(day=1)
    anterior = primeiro - timedelta(days=1)
    return anterior.year, anterior.month


def _nome_cliente(documento) -> str:
    return getattr(documento, "cliente_nome", None) or "Consumidor Final"


def _resumo(documento, hoje: date, valor: Optional[Decimal] = None) -> dict:
    vencimento = documento.data_vencimento
    return {
        "id": documento.id,
        "numero_documento": documento.numero_documento,
        "tipo_documento": documento.tipo_documento.value,
        "estado": documento.estado.value,
        "cliente": _nome_cliente(documento),
        "valor": _r(valor if valor is not None else documento.total_liquido),
        "data_emissao": documento.data_emissao,
        "data_vencimento": vencimento,
        "dias": (hoje - vencimento).days if vencimento else (hoje - documento.data_emissao).days,
    }


def calcular_pendentes(documentos: Sequence, vinculos: Sequence = ()) -> Dict[UUID, Decimal]:
    """
    Valor por cobrar de cada FT/FA não cancelada:
    FT = total − recibos − adiantamentos aplicados; FA = total − recibos
    """
    recibos: Dict[UUID, Decimal] = defaultdict(lambda: ZERO)
    for d in _ativos(documentos):
        if d.tipo_documento == TipoDocumento.RC and d.fatura_id:
            recibos[d.fatura_id] += Decimal(d.total_liquido)

    usados: Dict[UUID, Decimal] = defaultdict(lambda: ZERO)
    for v in vinculos:
        usados[v.fatura_id] += Decimal(v.valor_utilizado)

    pendentes = {}
    for d in _ativos(documentos):
        if d.tipo_documento == TipoDocumento.FT:
            pendentes[d.id] = max(ZERO, Decimal(d.total_liquido) - recibos[d.id] - usados[d.id])
        elif d.tipo_documento == TipoDocumento.FA:
            pendentes[d.id] = max(ZERO, Decimal(d.total_liquido) - recibos[d.id])
    return pendentes


def saldos_adiantamento(documentos: Sequence, vinculos: Sequence = ()) -> Dict[UUID, Decimal]:
    """Saldo por aplicar de cada FA não terminal"""
    usados: Dict[UUID, Decimal] = defaultdict(lambda: ZERO)
    for v in vinculos:
        usados[v.adiantamento_id] += Decimal(v.valor_utilizado)
    return {
        d.id: max(ZERO, Decimal(d.total_liquido) - usados[d.id])
        for d in documentos
        if d.tipo_documento == TipoDocumento.FA and d.estado not in ESTADOS_TERMINAIS
    }


def kpis(documentos: Sequence, hoje: date) -> dict:
    ativos = _ativos(documentos)
    do_mes = _no_mes(ativos, hoje.year, hoje.month)
    ano_ant, mes_ant = _mes_anterior(hoje)
    mes_anterior = _no_mes(ativos, ano_ant, mes_ant)

    faturas = _do_tipo(do_mes, *TIPOS_FATURACAO)
    total_faturado = _soma(faturas)
    total_nc = _soma(_do_tipo(do_mes, TipoDocumento.NC))
    total_nd = _soma(_do_tipo(do_mes, TipoDocumento.ND))
    faturado_anterior = _soma(_do_tipo(mes_anterior, *TIPOS_FATURACAO))

    if faturado_anterior > 0:
        crescimento = _r((total_faturado - faturado_anterior) / faturado_anterior * 100)
    else:
        crescimento = Decimal("100.00") if total_faturado > 0 else Decimal("0.00")

    iva = (
        _soma(_do_tipo(do_mes, TipoDocumento.FT, TipoDocumento.FR, TipoDocumento.ND), "total_iva")
        - _soma(_do_tipo(do_mes, TipoDocumento.NC), "total_iva")
    )

    return {
        "total_faturado": total_faturado,
        "total_notas_credito": total_nc,
        "total_notas_debito": total_nd,
        "total_liquido": _r(total_faturado - total_nc + total_nd),
        "quantidade_faturas": len(faturas),
        "ticket_medio": _r(total_faturado / len(faturas)) if faturas else Decimal("0.00"),
        "faturado_mes_anterior": faturado_anterior,
        "crescimento_percentual": crescimento,
        "iva_arrecadado": _r(iva),
    }


def por_tipo(documentos: Sequence) -> Dict[str, dict]:
    """Quantidade e valor por tipo (todos os tipos presentes, mesmo a zero)"""
    ativos = _ativos(documentos)
    resultado = {}
    for tipo in TipoDocumento:
        do_tipo = _do_tipo(ativos, tipo)
        resultado[tipo.value] = {"quantidade": len(do_tipo), "valor": _soma(do_tipo)}
    return resultado


def por_estado(documentos: Sequence) -> Dict[str, Dict[str, dict]]:
    """tipo -> estado -> {quantidade, valor}; inclui cancelados (valor a zero)"""
    resultado: Dict[str, Dict[str, dict]] = {}
    for d in documentos:
        por_tipo_doc = resultado.setdefault(d.tipo_documento.value, {})
        entrada = por_tipo_doc.setdefault(d.estado.value, {"quantidade": 0, "valor": ZERO})
        entrada["quantidade"] += 1
        if d.estado != EstadoDocumento.CANCELADO:
            entrada["valor"] = _r(entrada["valor"] + Decimal(d.total_liquido))
    return resultado


def por_mes(documentos: Sequence, hoje: date, meses: int = 12) -> List[dict]:
    """Últimos N meses (mais antigo primeiro), valores por tipo"""
    ativos = _ativos(documentos)
    ano, mes = hoje.year, hoje.month
    periodos = []
    for _ in range(meses):
        periodos.append((ano, mes))
        mes -= 1
        if mes == 0:
            ano, mes = ano - 1, 12

    resultado = []
    for ano, mes in reversed(periodos):
        do_mes = _no_mes(ativos, ano, mes)
        linha = {"mes": f"{ano}-{mes:02d}"}
        for tipo in (TipoDocumento.FT, TipoDocumento.FR, TipoDocumento.NC, TipoDocumento.ND, TipoDocumento.RC):
            linha[tipo.value] = _soma(_do_tipo(do_mes, tipo))
        linha["total_vendas"] = _r(linha[TipoDocumento.FT.value] + linha[TipoDocumento.FR.value])
        resultado.append(linha)
    return resultado


def por_dia(documentos: Sequence, hoje: date, dias: int = 30) -> List[dict]:
    faturas = _do_tipo(_ativos(documentos), *TIPOS_FATURACAO)
    resultado = []
    for i in range(dias - 1, -1, -1):
        dia = hoje - timedelta(days=i)
        do_dia = [d for d in faturas if d.data_emissao == dia]
        resultado.append({"data": dia, "quantidade": len(do_dia), "valor": _soma(do_dia)})
    return resultado


def evolucao_mensal(documentos: Sequence, ano: int, vinculos: Sequence = ()) -> List[dict]:
    """Os 12 meses de um ano: faturação, recebimentos, pendentes e notas de crédito"""
    ativos = _ativos(documentos)
    pendentes = calcular_pendentes(documentos, vinculos)
    resultado = []
    for mes in range(1, 13):
        do_mes = _no_mes(ativos, ano, mes)
        faturas = _do_tipo(do_mes, *TIPOS_FATURACAO)
        notas_credito = _do_tipo(do_mes, TipoDocumento.NC)
        resultado.append({
            "mes": mes,
            "nome": NOMES_MESES[mes - 1],
            "faturas_emitidas": len(faturas),
            "valor_faturado": _soma(faturas),
            "valor_pago": _soma(_do_tipo(do_mes, TipoDocumento.RC, TipoDocumento.FR)),
            "valor_pendente": _r(sum(
                (pendentes.get(d.id, ZERO) for d in _do_tipo(do_mes, TipoDocumento.FT)), ZERO
            )),
            "notas_credito": len(notas_credito),
            "valor_notas_credito": _soma(notas_credito),
        })
    return resultado


def pagamentos(documentos: Sequence, hoje: date, vinculos: Sequence = ()) -> dict:
    ativos = _ativos(documentos)
    # Recebimentos: recibos e faturas-recibo
    recebimentos = _do_tipo(ativos, TipoDocumento.RC, TipoDocumento.FR)
    pendentes = calcular_pendentes(documentos, vinculos)
    por_id = {d.id: d for d in ativos}

    atrasado = ZERO
    for doc_id, valor in pendentes.items():
        d = por_id[doc_id]
        if d.tipo_documento == TipoDocumento.FT and d.data_vencimento and d.data_vencimento < hoje:
            atrasado += valor

    metodos = {m.value: {"quantidade": 0, "valor": ZERO} for m in MetodoPagamento}
    for d in recebimentos:
        if d.metodo_pagamento is not None:
            entrada = metodos[d.metodo_pagamento.value]
            entrada["quantidade"] += 1
            entrada["valor"] = _r(entrada["valor"] + Decimal(d.total_liquido))

    # Prazo médio entre a emissão da FT e o primeiro recibo
    primeiro_recibo: Dict[UUID, date] = {}
    for d in _do_tipo(ativos, TipoDocumento.RC):
        if d.fatura_id and (d.fatura_id not in primeiro_recibo or d.data_emissao < primeiro_recibo[d.fatura_id]):
            primeiro_recibo[d.fatura_id] = d.data_emissao
    prazos = [
        (data_recibo - por_id[fatura_id].data_emissao).days
        for fatura_id, data_recibo in primeiro_recibo.items()
        if fatura_id in por_id and por_id[fatura_id].tipo_documento == TipoDocumento.FT
    ]

    return {
        "recebido_hoje": _soma([d for d in recebimentos if d.data_emissao == hoje]),
        "recebido_mes": _soma(_no_mes(recebimentos, hoje.year, hoje.month)),
        "recebido_ano": _soma([d for d in recebimentos if d.data_emissao.year == hoje.year]),
        "pendente": _r(sum(pendentes.values(), ZERO)),
        "atrasado": _r(atrasado),
        "metodos": metodos,
        "prazo_medio_pagamento_dias": round(sum(prazos) / len(prazos), 1) if prazos else None,
    }


def alertas(
    documentos: Sequence,
    hoje: date,
    vinculos: Sequence = (),
    dias_alerta: int = 3,
    dias_proforma: int = 30
) -> dict:
    ativos = _ativos(documentos)
    pendentes = calcular_pendentes(documentos, vinculos)
    saldos = saldos_adiantamento(documentos, vinculos)

    faturas_em_aberto = [
        d for d in _do_tipo(ativos, TipoDocumento.FT)
        if d.estado in ESTADOS_EM_ABERTO and pendentes.get(d.id, ZERO) > 0
    ]
    # Notas de débito não recebem recibos: em aberto enquanto emitidas, pelo total
    notas_debito = [d for d in _do_tipo(ativos, TipoDocumento.ND) if d.estado in ESTADOS_EM_ABERTO]
    for d in notas_debito:
        pendentes[d.id] = Decimal(d.total_liquido)

    cobraveis = faturas_em_aberto + notas_debito
    vencidos = [d for d in cobraveis if d.data_vencimento and d.data_vencimento < hoje]
    a_vencer = [
        d for d in cobraveis
        if d.data_vencimento and hoje <= d.data_vencimento <= hoje + timedelta(days=dias_alerta)
    ]
    adiantamentos_vencidos = [
        d for d in _do_tipo(ativos, TipoDocumento.FA)
        if d.estado == EstadoDocumento.EMITIDO and d.data_vencimento and d.data_vencimento < hoje
    ]

    clientes_com_saldo = {
        d.cliente_id for d in _do_tipo(ativos, TipoDocumento.FA)
        if d.cliente_id and saldos.get(d.id, ZERO) > 0
    }
    com_adiantamentos = [d for d in faturas_em_aberto if d.cliente_id in clientes_com_saldo]

    limite_proforma = hoje - timedelta(days=dias_proforma)
    proformas = [
        d for d in _do_tipo(ativos, TipoDocumento.FP)
        if d.estado == EstadoDocumento.EMITIDO and d.data_emissao < limite_proforma
    ]

    resultado = {
        "documentos_vencidos": [_resumo(d, hoje, pendentes[d.id]) for d in vencidos],
        "documentos_a_vencer": [_resumo(d, hoje, pendentes[d.id]) for d in a_vencer],
        "adiantamentos_vencidos": [_resumo(d, hoje) for d in adiantamentos_vencidos],
        "faturas_com_adiantamentos_disponiveis": [_resumo(d, hoje, pendentes[d.id]) for d in com_adiantamentos],
        "proformas_pendentes": [_resumo(d, hoje) for d in proformas],
    }
    resultado["total_alertas"] = sum(len(v) for v in resultado.values())
    return resultado


def resumo_documentos(documentos: Sequence, hoje: date, vinculos: Sequence = ()) -> dict:
    """Contadores do painel de documentos fiscais"""
    do_mes = _no_mes(documentos, hoje.year, hoje.month)
    ativos_mes = _ativos(do_mes)
    ativos = _ativos(documentos)
    pendentes = calcular_pendentes(documentos, vinculos)

    faturas_pendentes = [
        d for d in _do_tipo(ativos, TipoDocumento.FT)
        if d.estado in ESTADOS_EM_ABERTO and pendentes.get(d.id, ZERO) > 0
    ]
    vendas = (TipoDocumento.FT, TipoDocumento.FR, TipoDocumento.RC)

    return {
        "faturas_emitidas_mes": len(_do_tipo(ativos_mes, *TIPOS_FATURACAO)),
        "faturas_pendentes": len(faturas_pendentes),
        "total_pendente_cobranca": _r(sum((pendentes[d.id] for d in faturas_pendentes), ZERO)),
        "adiantamentos_pendentes": len([
            d for d in _do_tipo(ativos, TipoDocumento.FA) if d.estado == EstadoDocumento.EMITIDO
        ]),
        "proformas_pendentes": len([
            d for d in _do_tipo(ativos, TipoDocumento.FP) if d.estado == EstadoDocumento.EMITIDO
        ]),
        "documentos_cancelados_mes": len([d for d in do_mes if d.estado == EstadoDocumento.CANCELADO]),
        "total_vendas_mes": _soma(_do_tipo(ativos_mes, *TIPOS_FATURACAO)),
        "total_nao_vendas_mes": _soma([d for d in ativos_mes if d.tipo_documento not in vendas]),
    }


def saldos_clientes(documentos: Sequence, vinculos: Sequence = (), limite: int = 10) -> List[dict]:
    """
    Saldo a receber por cliente registado:
    faturas pendentes + notas de débito − notas de crédito
    """
    ativos = _ativos(documentos)
    pendentes = calcular_pendentes(documentos, vinculos)
    saldos: Dict[UUID, dict] = {}

    for d in ativos:
        if not d.cliente_id:
            continue
        entrada = saldos.setdefault(d.cliente_id, {
            "cliente_id": d.cliente_id,
            "cliente_nome": _nome_cliente(d),
            "pendente_faturas": ZERO,
            "notas_debito": ZERO,
            "notas_credito": ZERO,
        })
        if d.tipo_documento == TipoDocumento.FT:
            entrada["pendente_faturas"] += pendentes.get(d.id, ZERO)
        elif d.tipo_documento == TipoDocumento.ND:
            entrada["notas_debito"] += Decimal(d.total_liquido)
        elif d.tipo_documento == TipoDocumento.NC:
            entrada["notas_credito"] += Decimal(d.total_liquido)

    resultado = []
    for entrada in saldos.values():
        entrada = {k: (_r(v) if isinstance(v, Decimal) else v) for k, v in entrada.items()}
        entrada["saldo"] = _r(entrada["pendente_faturas"] + entrada["notas_debito"] - entrada["notas_credito"])
        resultado.append(entrada)
    resultado.sort(key=lambda e: e["saldo"], reverse=True)
    return resultado[:limite]


def top_produtos(linhas: Iterable, limite: int = 5) -> List[dict]:
    """
    Produtos mais vendidos a partir das linhas de FT/FR não canceladas.
    Cada linha: (produto_id, descricao, quantidade, total_linha)
    """
    agregado: Dict[UUID, dict] = {}
    for produto_id, descricao, quantidade, total_linha in linhas:
        if produto_id is None:
            continue
        entrada = agregado.setdefault(produto_id, {
            "produto_id": produto_id, "nome": descricao, "quantidade": ZERO, "valor": ZERO
        })
        entrada["quantidade"] += Decimal(quantidade)
        entrada["valor"] = _r(entrada["valor"] + Decimal(total_linha))
    return sorted(agregado.values(), key=lambda e: e["quantidade"], reverse=True)[:limite]
