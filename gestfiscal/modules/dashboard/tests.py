"""
Testes do dashboard

As agregações são funções puras e são testadas com documentos simples
(SimpleNamespace); os endpoints são verificados contra a API real.
"""

import pytest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

from gestfiscal.modules.dashboard import aggregations
from gestfiscal.modules.documentos_fiscais.tipos import TipoDocumento, EstadoDocumento, MetodoPagamento

HOJE = date(2025, 6, 15)
FT, FR, FP, FA = TipoDocumento.FT, TipoDocumento.FR, TipoDocumento.FP, TipoDocumento.FA
NC, ND, RC = TipoDocumento.NC, TipoDocumento.ND, TipoDocumento.RC


def doc(tipo, total, estado=EstadoDocumento.EMITIDO, emissao=HOJE, vencimento=None,
        cliente_id=None, cliente_nome=None, fatura_id=None, metodo=None, iva="0"):
    return SimpleNamespace(
        id=uuid4(),
        numero_documento=f"{tipo.value}2025-{uuid4().hex[:5]}",
        tipo_documento=tipo,
        estado=estado,
        data_emissao=emissao,
        data_vencimento=vencimento,
        total_liquido=Decimal(str(total)),
        total_iva=Decimal(str(iva)),
        cliente_id=cliente_id,
        cliente_nome=cliente_nome,
        fatura_id=fatura_id,
        metodo_pagamento=metodo,
    )


def recibo(origem, valor, emissao=HOJE, estado=EstadoDocumento.PAGA, metodo=MetodoPagamento.DINHEIRO):
    return doc(RC, valor, estado=estado, emissao=emissao, cliente_id=origem.cliente_id,
               fatura_id=origem.id, metodo=metodo)


def vinculo(adiantamento, fatura, valor):
    return SimpleNamespace(
        adiantamento_id=adiantamento.id, fatura_id=fatura.id, valor_utilizado=Decimal(str(valor))
    )


# ===== AGREGAÇÕES =====

class TestPendentes:

    def test_fatura_com_recibos_e_adiantamento(self):
        fatura = doc(FT, 1000)
        adiantamento = doc(FA, 500)
        documentos = [
            fatura, adiantamento,
            recibo(fatura, 600),
            recibo(fatura, 100, estado=EstadoDocumento.CANCELADO),
            recibo(adiantamento, 200),
        ]

        pendentes = aggregations.calcular_pendentes(documentos, [vinculo(adiantamento, fatura, 100)])
        assert pendentes[fatura.id] == Decimal("300")
        assert pendentes[adiantamento.id] == Decimal("300")

    def test_saldo_adiantamento(self):
        fatura = doc(FT, 1000)
        adiantamento = doc(FA, 500)
        expirado = doc(FA, 300, estado=EstadoDocumento.EXPIRADO)

        saldos = aggregations.saldos_adiantamento(
            [fatura, adiantamento, expirado], [vinculo(adiantamento, fatura, 350)]
        )
        assert saldos == {adiantamento.id: Decimal("150")}


class TestKpis:

    def test_mes_corrente(self):
        documentos = [
            doc(FT, 1140, iva=140),
            doc(FR, 570, iva=70),
            doc(NC, 228, iva=28),
            doc(ND, 50),
            doc(FT, 999, estado=EstadoDocumento.CANCELADO),
            doc(FT, 855, emissao=date(2025, 5, 20)),
        ]
        kpis = aggregations.kpis(documentos, HOJE)

        assert kpis["total_faturado"] == Decimal("1710.00")
        assert kpis["total_notas_credito"] == Decimal("228.00")
        assert kpis["total_notas_debito"] == Decimal("50.00")
        assert kpis["total_liquido"] == Decimal("1532.00")
        assert kpis["quantidade_faturas"] == 2
        assert kpis["ticket_medio"] == Decimal("855.00")
        assert kpis["faturado_mes_anterior"] == Decimal("855.00")
        assert kpis["crescimento_percentual"] == Decimal("100.00")
        assert kpis["iva_arrecadado"] == Decimal("182.00")

    def test_crescimento_negativo(self):
        documentos = [doc(FT, 1000), doc(FT, 2000, emissao=date(2025, 5, 2))]
        assert aggregations.kpis(documentos, HOJE)["crescimento_percentual"] == Decimal("-50.00")

    def test_sem_historico(self):
        assert aggregations.kpis([doc(FT, 10)], HOJE)["crescimento_percentual"] == Decimal("100.00")

        vazio = aggregations.kpis([], HOJE)
        assert vazio["crescimento_percentual"] == Decimal("0.00")
        assert vazio["ticket_medio"] == Decimal("0.00")

    def test_mes_anterior_em_janeiro(self):
        documentos = [doc(FT, 400, emissao=date(2024, 12, 31)), doc(FT, 500, emissao=date(2025, 1, 3))]
        kpis = aggregations.kpis(documentos, date(2025, 1, 10))
        assert kpis["faturado_mes_anterior"] == Decimal("400.00")
        assert kpis["crescimento_percentual"] == Decimal("25.00")


class TestDistribuicoes:

    def test_por_tipo_inclui_todos_os_tipos(self):
        resultado = aggregations.por_tipo([doc(FT, 100), doc(FT, 50), doc(FT, 70, estado=EstadoDocumento.CANCELADO)])

        assert set(resultado) == {t.value for t in TipoDocumento}
        assert resultado["FT"] == {"quantidade": 2, "valor": Decimal("150.00")}
        assert resultado["FRt"]["quantidade"] == 0

    def test_por_estado(self):
        resultado = aggregations.por_estado([
            doc(FT, 100),
            doc(FT, 300, estado=EstadoDocumento.PAGA),
            doc(FT, 70, estado=EstadoDocumento.CANCELADO),
        ])
        assert resultado["FT"]["emitido"] == {"quantidade": 1, "valor": Decimal("100.00")}
        assert resultado["FT"]["cancelado"] == {"quantidade": 1, "valor": Decimal("0")}

    def test_por_mes(self):
        documentos = [
            doc(FT, 100),
            doc(FR, 40),
            doc(FT, 10, emissao=date(2024, 7, 1)),
            doc(FT, 99, emissao=date(2024, 6, 30)),
        ]
        meses = aggregations.por_mes(documentos, HOJE)

        assert len(meses) == 12
        assert meses[0]["mes"] == "2024-07"
        assert meses[0]["FT"] == Decimal("10.00")
        assert meses[-1]["mes"] == "2025-06"
        assert meses[-1]["total_vendas"] == Decimal("140.00")

    def test_por_dia(self):
        dias = aggregations.por_dia([doc(FT, 100), doc(FP, 500)], HOJE)
        assert len(dias) == 30
        assert dias[-1] == {"data": HOJE, "quantidade": 1, "valor": Decimal("100.00")}
        assert dias[0]["data"] == date(2025, 5, 17)


class TestEvolucaoMensal:

    def test_meses_do_ano(self):
        fatura = doc(FT, 1000, emissao=date(2025, 3, 5))
        documentos = [
            fatura,
            recibo(fatura, 400, emissao=date(2025, 3, 20)),
            doc(FR, 250, emissao=date(2025, 3, 21), metodo=MetodoPagamento.CARTAO),
            doc(NC, 100, emissao=date(2025, 3, 25), fatura_id=fatura.id),
            doc(FT, 777, emissao=date(2024, 3, 5)),
        ]
        evolucao = aggregations.evolucao_mensal(documentos, 2025)

        assert [m["mes"] for m in evolucao] == list(range(1, 13))
        marco = evolucao[2]
        assert marco["nome"] == "Março"
        assert marco["faturas_emitidas"] == 2
        assert marco["valor_faturado"] == Decimal("1250.00")
        assert marco["valor_pago"] == Decimal("650.00")
        assert marco["valor_pendente"] == Decimal("600.00")
        assert marco["notas_credito"] == 1
        assert marco["valor_notas_credito"] == Decimal("100.00")
        assert evolucao[0]["faturas_emitidas"] == 0


class TestPagamentos:

    def test_recebimentos_e_atrasos(self):
        atrasada = doc(FT, 1000, emissao=date(2025, 5, 1), vencimento=date(2025, 5, 31))
        em_dia = doc(FT, 300, emissao=date(2025, 6, 5), vencimento=date(2025, 7, 5))
        documentos = [
            atrasada,
            em_dia,
            recibo(atrasada, 200, emissao=date(2025, 5, 11), metodo=MetodoPagamento.TRANSFERENCIA),
            recibo(em_dia, 100, metodo=MetodoPagamento.DINHEIRO),
            doc(FR, 50, emissao=date(2025, 6, 2), metodo=MetodoPagamento.DINHEIRO),
        ]
        resultado = aggregations.pagamentos(documentos, HOJE)

        assert resultado["recebido_hoje"] == Decimal("100.00")
        assert resultado["recebido_mes"] == Decimal("150.00")
        assert resultado["recebido_ano"] == Decimal("350.00")
        assert resultado["pendente"] == Decimal("1000.00")
        assert resultado["atrasado"] == Decimal("800.00")
        assert resultado["metodos"]["dinheiro"] == {"quantidade": 2, "valor": Decimal("150.00")}
        assert resultado["metodos"]["cheque"]["quantidade"] == 0
        # 10 dias para a primeira, 10 para a segunda
        assert resultado["prazo_medio_pagamento_dias"] == 10.0

    def test_sem_recibos(self):
        assert aggregations.pagamentos([doc(FT, 100)], HOJE)["prazo_medio_pagamento_dias"] is None


class TestAlertas:

    def test_categorias(self):
        cliente_id = uuid4()
        vencida = doc(FT, 1000, vencimento=date(2025, 6, 10), cliente_nome="Bar Kizomba")
        a_vencer = doc(FT, 500, vencimento=date(2025, 6, 17), cliente_id=cliente_id)
        longe = doc(FT, 300, vencimento=date(2025, 6, 30))
        paga = doc(FT, 200, estado=EstadoDocumento.PAGA, vencimento=date(2025, 6, 1))
        nota_debito = doc(ND, 80, vencimento=date(2025, 6, 12))
        adiantamento = doc(FA, 400, emissao=date(2025, 6, 1), vencimento=date(2025, 7, 1), cliente_id=cliente_id)
        adiantamento_vencido = doc(FA, 100, emissao=date(2025, 5, 1), vencimento=date(2025, 6, 1))
        proforma_antiga = doc(FP, 50, emissao=date(2025, 4, 1))
        proforma_recente = doc(FP, 60, emissao=date(2025, 6, 10))

        documentos = [
            vencida, a_vencer, longe, paga, recibo(paga, 200), nota_debito,
            adiantamento, adiantamento_vencido, proforma_antiga, proforma_recente,
        ]
        resultado = aggregations.alertas(documentos, HOJE)

        assert [a["id"] for a in resultado["documentos_vencidos"]] == [vencida.id, nota_debito.id]
        assert resultado["documentos_vencidos"][0]["dias"] == 5
        assert resultado["documentos_vencidos"][0]["cliente"] == "Bar Kizomba"
        assert resultado["documentos_vencidos"][0]["valor"] == Decimal("1000.00")
        assert [a["id"] for a in resultado["documentos_a_vencer"]] == [a_vencer.id]
        assert [a["id"] for a in resultado["adiantamentos_vencidos"]] == [adiantamento_vencido.id]
        assert [a["id"] for a in resultado["faturas_com_adiantamentos_disponiveis"]] == [a_vencer.id]
        assert [a["id"] for a in resultado["proformas_pendentes"]] == [proforma_antiga.id]
        assert resultado["total_alertas"] == 6

    def test_adiantamento_esgotado_nao_alerta(self):
        cliente_id = uuid4()
        fatura = doc(FT, 1000, vencimento=date(2025, 7, 15), cliente_id=cliente_id)
        adiantamento = doc(FA, 300, estado=EstadoDocumento.PAGA, cliente_id=cliente_id)

        resultado = aggregations.alertas([fatura, adiantamento], HOJE, [vinculo(adiantamento, fatura, 300)])
        assert resultado["faturas_com_adiantamentos_disponiveis"] == []
        assert resultado["total_alertas"] == 0


class TestResumos:

    def test_resumo_documentos(self):
        fatura = doc(FT, 1000)
        documentos = [
            fatura,
            recibo(fatura, 250),
            doc(FR, 300),
            doc(FA, 500),
            doc(FP, 80),
            doc(ND, 20),
            doc(FT, 70, estado=EstadoDocumento.CANCELADO),
        ]
        resumo = aggregations.resumo_documentos(documentos, HOJE)

        assert resumo["faturas_emitidas_mes"] == 2
        assert resumo["faturas_pendentes"] == 1
        assert resumo["total_pendente_cobranca"] == Decimal("750.00")
        assert resumo["adiantamentos_pendentes"] == 1
        assert resumo["proformas_pendentes"] == 1
        assert resumo["documentos_cancelados_mes"] == 1
        assert resumo["total_vendas_mes"] == Decimal("1300.00")
        assert resumo["total_nao_vendas_mes"] == Decimal("600.00")

    def test_saldos_clientes(self):
        kianda, zungueira = uuid4(), uuid4()
        fatura = doc(FT, 1000, cliente_id=kianda, cliente_nome="Kianda")
        documentos = [
            fatura,
            recibo(fatura, 600),
            doc(ND, 100, cliente_id=kianda, cliente_nome="Kianda"),
            doc(NC, 50, cliente_id=kianda, cliente_nome="Kianda"),
            doc(FT, 200, cliente_id=zungueira, cliente_nome="Zungueira"),
            doc(FT, 9999),
        ]
        saldos = aggregations.saldos_clientes(documentos)

        assert [s["cliente_id"] for s in saldos] == [kianda, zungueira]
        assert saldos[0]["saldo"] == Decimal("450.00")
        assert saldos[0]["pendente_faturas"] == Decimal("400.00")
        assert saldos[1]["saldo"] == Decimal("200.00")
        assert len(aggregations.saldos_clientes(documentos, limite=1)) == 1

    def test_top_produtos(self):
        cadeira, mesa = uuid4(), uuid4()
        linhas = [
            (cadeira, "Cadeira", Decimal("2"), Decimal("2000")),
            (mesa, "Mesa", Decimal("1"), Decimal("5000")),
            (cadeira, "Cadeira", Decimal("3"), Decimal("3000")),
            (None, "Portes", Decimal("10"), Decimal("100")),
        ]
        top = aggregations.top_produtos(linhas)

        assert [p["produto_id"] for p in top] == [cadeira, mesa]
        assert top[0]["quantidade"] == Decimal("5")
        assert top[0]["valor"] == Decimal("5000.00")


# ===== API =====

def _d(valor) -> Decimal:
    return Decimal(str(valor))


@pytest.fixture
def fatura(client, headers, cliente, produto):
    response = client.post("/documentos-fiscais/emitir", json={
        "tipo_documento": "FT",
        "cliente_id": str(cliente.id),
        "itens": [{"produto_id": str(produto.id), "quantidade": "2"}]
    }, headers=headers)
    assert response.status_code == 201
    return response.json()["data"]


class TestDashboardApi:

    def test_dashboard_geral(self, client, headers, fatura, produto):
        response = client.get("/dashboard/", headers=headers)
        assert response.status_code == 200
        data = response.json()["data"]

        assert data["data_referencia"] == date.today().isoformat()
        assert _d(data["kpis"]["total_faturado"]) == Decimal("2280")
        assert data["kpis"]["quantidade_faturas"] == 1
        assert data["documentos"]["resumo"]["faturas_pendentes"] == 1
        assert data["documentos"]["por_tipo"]["FT"]["quantidade"] == 1
        assert _d(data["pagamentos"]["pendente"]) == Decimal("2280")
        assert data["clientes"]["total"] == 1
        assert data["clientes"]["saldos"][0]["cliente_id"] == fatura["cliente_id"]
        assert data["produtos"]["total"] == 1
        assert data["produtos"]["mais_vendidos"][0]["produto_id"] == str(produto.id)
        assert _d(data["produtos"]["mais_vendidos"][0]["quantidade"]) == Decimal("2")
        assert data["vendas"]["abertas"] == 0

    def test_dashboard_isolado_por_tenant(self, client, fatura):
        data = client.get("/dashboard/", headers={"X-Tenant-ID": str(uuid4())}).json()["data"]
        assert _d(data["kpis"]["total_faturado"]) == Decimal("0")
        assert data["clientes"]["total"] == 0

    def test_resumo_documentos_fiscais(self, client, headers, fatura):
        data = client.get("/documentos-fiscais/dashboard", headers=headers).json()["data"]
        assert data["faturas_emitidas_mes"] == 1
        assert _d(data["total_pendente_cobranca"]) == Decimal("2280")

    def test_alertas(self, client, headers, fatura):
        for url in ("/dashboard/alertas", "/documentos-fiscais/alertas"):
            data = client.get(url, headers=headers).json()["data"]
            assert data["total_alertas"] == 0
            assert data["documentos_vencidos"] == []

    def test_evolucao_mensal(self, client, headers, fatura):
        data = client.get("/dashboard/evolucao-mensal", headers=headers).json()["data"]
        assert len(data) == 12
        atual = data[date.today().month - 1]
        assert atual["faturas_emitidas"] == 1

        data = client.get(
            "/documentos-fiscais/evolucao-mensal", params={"ano": 2001}, headers=headers
        ).json()["data"]
        assert all(m["faturas_emitidas"] == 0 for m in data)

    def test_evolucao_mensal_ano_invalido(self, client, headers):
        response = client.get("/dashboard/evolucao-mensal", params={"ano": 1999}, headers=headers)
        assert response.status_code == 422
        assert "ano" in response.json()["errors"]
