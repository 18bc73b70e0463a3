"""
Testes do motor de documentos fiscais

- Cálculo de linhas e totais (IVA, desconto, retenção)
- Numeração sequencial por série e tenant
- Recibos, notas de crédito/débito e adiantamentos
- Regras de cancelamento e expiração de adiantamentos
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4
from pydantic import ValidationError

from gestfiscal.modules.documentos_fiscais.calculator import calcular_linha, calcular_totais
from gestfiscal.modules.documentos_fiscais.models import DocumentoFiscal
from gestfiscal.modules.documentos_fiscais.schemas import DocumentoFiscalCreate
from gestfiscal.modules.documentos_fiscais.service import DocumentoFiscalService
from gestfiscal.modules.documentos_fiscais.tipos import (
    TipoDocumento, EstadoDocumento, CONFIGURACOES, configuracao, calcular_data_vencimento
)
from gestfiscal.modules.produtos.models import Produto
from gestfiscal.modules.stock.models import MovimentoStock, OrigemMovimento, TipoMovimento

ANO = date.today().year
MOTIVO = "Erro na emissão do documento"


def _d(valor) -> Decimal:
    return Decimal(str(valor))


def linha_livre(preco="1000", quantidade="1", taxa_iva="0", descricao="Consultoria"):
    return {"descricao": descricao, "quantidade": quantidade, "preco_unitario": preco, "taxa_iva": taxa_iva}


def emitir(client, headers, **payload):
    response = client.post("/documentos-fiscais/emitir", json=payload, headers=headers)
    assert response.status_code == 201, response.json()
    return response.json()["data"]


def estoque(db_session, produto) -> Decimal:
    db_session.expire_all()
    return db_session.query(Produto).filter(Produto.id == produto.id).one().estoque_atual


# ===== FIXTURES =====

@pytest.fixture
def fatura_1000(client, headers, cliente):
    """FT de 1000 Kz (sem IVA) para um cliente registado"""
    return emitir(client, headers, tipo_documento="FT", cliente_id=str(cliente.id), itens=[linha_livre()])


@pytest.fixture
def adiantamento_500(client, headers, cliente):
    """FA de 500 Kz criada só com os dados de pagamento"""
    return emitir(
        client, headers,
        tipo_documento="FA",
        cliente_id=str(cliente.id),
        dados_pagamento={"metodo": "transferencia", "valor": "500"}
    )


# ===== CÁLCULO =====

class TestCalculo:

    def test_exemplo_dois_itens(self):
        linhas = [
            calcular_linha("Cadeira", Decimal("1"), Decimal("1000"), Decimal("14")),
            calcular_linha("Caixa", Decimal("2"), Decimal("500"), Decimal("0")),
        ]
        totais = calcular_totais(linhas)

        assert totais.base_tributavel == Decimal("2000.00")
        assert totais.total_iva == Decimal("140.00")
        assert totais.total_liquido == Decimal("2140.00")

    def test_desconto_percentual(self):
        linha = calcular_linha("Mesa", Decimal("3"), Decimal("1000"), Decimal("14"), desconto=Decimal("10"))
        assert linha.valor_desconto == Decimal("300.00")
        assert linha.total_linha == Decimal("2700.00")
        assert linha.valor_iva == Decimal("378.00")

    def test_retencao_em_servicos(self):
        linha = calcular_linha(
            "Instalação", Decimal("1"), Decimal("20000"), Decimal("14"), taxa_retencao=Decimal("6.5")
        )
        totais = calcular_totais([linha])
        assert totais.total_retencao == Decimal("1300.00")
        assert totais.total_liquido == Decimal("21500.00")

    def test_arredondamento_half_up(self):
        linha = calcular_linha("Parafuso", Decimal("1"), Decimal("0.25"), Decimal("14"))
        # 0.035 arredonda para 0.04
        assert linha.valor_iva == Decimal("0.04")


# ===== TIPOS =====

class TestTipos:

    def test_todos_os_tipos_configurados(self):
        assert set(CONFIGURACOES) == set(TipoDocumento)

    def test_regras_por_tipo(self):
        assert configuracao(TipoDocumento.FR).estado_inicial == EstadoDocumento.PAGA
        assert configuracao(TipoDocumento.RC).estado_inicial == EstadoDocumento.PAGA
        assert configuracao(TipoDocumento.FT).afeta_stock
        assert configuracao(TipoDocumento.NC).afeta_stock
        assert not configuracao(TipoDocumento.FP).afeta_stock
        assert configuracao(TipoDocumento.NC).origens == frozenset({TipoDocumento.FT, TipoDocumento.FR})
        assert configuracao(TipoDocumento.RC).origens == frozenset({TipoDocumento.FT, TipoDocumento.FA})

    def test_data_vencimento(self):
        hoje = date(2025, 1, 10)
        assert calcular_data_vencimento(TipoDocumento.FT, hoje) == date(2025, 2, 9)
        assert calcular_data_vencimento(TipoDocumento.ND, hoje) == date(2025, 1, 25)
        assert calcular_data_vencimento(TipoDocumento.FT, hoje, date(2025, 3, 1)) == date(2025, 3, 1)


class TestDocumentoFiscalCreate:

    def test_nc_exige_origem_e_motivo(self):
        with pytest.raises(ValidationError) as exc:
            DocumentoFiscalCreate(tipo_documento=TipoDocumento.NC, itens=[linha_livre()])
        campos = {e["loc"][0] for e in exc.value.errors()}
        assert campos == {"fatura_id", "motivo"}

    def test_fr_exige_dados_pagamento(self):
        with pytest.raises(ValidationError):
            DocumentoFiscalCreate(tipo_documento=TipoDocumento.FR, cliente_nome="Ana", itens=[linha_livre()])

    def test_fa_sem_itens_nem_pagamento(self):
        with pytest.raises(ValidationError):
            DocumentoFiscalCreate(tipo_documento=TipoDocumento.FA, cliente_nome="Ana")

    def test_ft_exige_itens(self):
        with pytest.raises(ValidationError):
            DocumentoFiscalCreate(tipo_documento=TipoDocumento.FT)

    def test_rc_sem_itens(self):
        dados = DocumentoFiscalCreate(
            tipo_documento=TipoDocumento.RC,
            fatura_id=uuid4(),
            dados_pagamento={"metodo": "dinheiro", "valor": "10"}
        )
        assert dados.itens == []

    def test_vencimento_no_passado(self):
        with pytest.raises(ValidationError):
            DocumentoFiscalCreate(
                tipo_documento=TipoDocumento.FT,
                itens=[linha_livre()],
                data_vencimento=date.today() - timedelta(days=1)
            )

    def test_linha_livre_sem_preco(self):
        with pytest.raises(ValidationError):
            DocumentoFiscalCreate(
                tipo_documento=TipoDocumento.FT,
                itens=[{"descricao": "Sem preço", "quantidade": "1"}]
            )


# ===== EMISSÃO =====

class TestEmissao:

    def test_ft_exemplo_2140(self, client, headers, cliente, produto, db_session):
        data = emitir(
            client, headers,
            tipo_documento="FT",
            cliente_id=str(cliente.id),
            itens=[
                {"produto_id": str(produto.id), "quantidade": "1"},
                linha_livre(preco="500", quantidade="2", descricao="Caixa"),
            ]
        )

        assert _d(data["base_tributavel"]) == Decimal("2000")
        assert _d(data["total_iva"]) == Decimal("140")
        assert _d(data["total_liquido"]) == Decimal("2140")
        assert _d(data["valor_pendente"]) == Decimal("2140")
        assert data["estado"] == "emitido"
        assert data["numero_documento"] == f"FT{ANO}-00001"
        assert data["nome_cliente"] == cliente.nome
        assert data["data_vencimento"] == (date.today() + timedelta(days=30)).isoformat()
        assert len(data["hash_fiscal"]) == 64
        assert len(data["itens"]) == 2

        # Só a linha com produto movimenta stock
        assert estoque(db_session, produto) == Decimal("9")

    def test_totais_consistentes(self, client, headers, servico):
        data = emitir(
            client, headers,
            tipo_documento="FT",
            cliente_nome="Hotel Presidente",
            itens=[{"produto_id": str(servico.id), "quantidade": "1"}]
        )
        base, iva, ret = _d(data["base_tributavel"]), _d(data["total_iva"]), _d(data["total_retencao"])
        assert ret == Decimal("1300")
        assert abs(_d(data["total_liquido"]) - (base + iva - ret)) <= Decimal("0.01")

    def test_numeracao_sequencial_por_serie(self, client, headers, cliente):
        numeros = [
            emitir(client, headers, tipo_documento="FT", itens=[linha_livre()])["numero_documento"]
            for _ in range(3)
        ]
        assert numeros == [f"FT{ANO}-00001", f"FT{ANO}-00002", f"FT{ANO}-00003"]

        proforma = emitir(client, headers, tipo_documento="FP", itens=[linha_livre()])
        assert proforma["numero_documento"] == f"FP{ANO}-00001"

    def test_numeracao_independente_por_tenant(self, client, headers):
        emitir(client, headers, tipo_documento="FT", itens=[linha_livre()])
        outro = emitir(client, {"X-Tenant-ID": str(uuid4())}, tipo_documento="FT", itens=[linha_livre()])
        assert outro["numero_documento"] == f"FT{ANO}-00001"

    def test_consumidor_final_por_omissao(self, client, headers):
        data = emitir(client, headers, tipo_documento="FT", itens=[linha_livre()])
        assert data["cliente_id"] is None
        assert data["nome_cliente"] == "Consumidor Final"

    def test_stock_insuficiente_nao_emite(self, client, headers, produto, db_session):
        response = client.post("/documentos-fiscais/emitir", json={
            "tipo_documento": "FT",
            "itens": [{"produto_id": str(produto.id), "quantidade": "11"}]
        }, headers=headers)

        assert response.status_code == 422
        assert "Stock insuficiente" in response.json()["message"]
        # Nada ficou gravado: nem documento nem série consumida
        assert db_session.query(DocumentoFiscal).count() == 0
        assert emitir(client, headers, tipo_documento="FT", itens=[linha_livre()])["numero_documento"] == f"FT{ANO}-00001"

    def test_produto_inexistente(self, client, headers):
        response = client.post("/documentos-fiscais/emitir", json={
            "tipo_documento": "FT",
            "itens": [{"produto_id": str(uuid4()), "quantidade": "1"}]
        }, headers=headers)
        assert response.status_code == 404

    def test_proforma_nao_movimenta_stock(self, client, headers, produto, db_session):
        emitir(client, headers, tipo_documento="FP", itens=[{"produto_id": str(produto.id), "quantidade": "2"}])
        assert estoque(db_session, produto) == Decimal("10")

    def test_ft_com_pagamento_gera_recibo(self, client, headers, cliente):
        data = emitir(
            client, headers,
            tipo_documento="FT",
            cliente_id=str(cliente.id),
            itens=[linha_livre()],
            dados_pagamento={"metodo": "multibanco", "valor": "1000"}
        )
        assert data["estado"] == "paga"
        recibos = client.get(f"/documentos-fiscais/{data['id']}/recibos", headers=headers).json()["data"]
        assert len(recibos) == 1
        assert recibos[0]["numero_documento"] == f"RC{ANO}-00001"


class TestFaturaRecibo:

    def test_fr_paga_na_emissao(self, client, headers, cliente, produto, db_session):
        data = emitir(
            client, headers,
            tipo_documento="FR",
            cliente_id=str(cliente.id),
            itens=[{"produto_id": str(produto.id), "quantidade": "2"}],
            dados_pagamento={"metodo": "dinheiro", "valor": "2280"}
        )
        assert data["estado"] == "paga"
        assert data["metodo_pagamento"] == "dinheiro"
        assert _d(data["valor_pendente"]) == Decimal("0")
        assert estoque(db_session, produto) == Decimal("8")

    def test_fr_exige_cliente(self, client, headers):
        response = client.post("/documentos-fiscais/emitir", json={
            "tipo_documento": "FR",
            "itens": [linha_livre()],
            "dados_pagamento": {"metodo": "dinheiro", "valor": "1000"}
        }, headers=headers)
        assert response.status_code == 422
        assert "cliente" in response.json()["message"]

    def test_fr_pagamento_insuficiente(self, client, headers, cliente):
        response = client.post("/documentos-fiscais/emitir", json={
            "tipo_documento": "FR",
            "cliente_id": str(cliente.id),
            "itens": [linha_livre()],
            "dados_pagamento": {"metodo": "dinheiro", "valor": "999.99"}
        }, headers=headers)
        assert response.status_code == 422

    def test_fr_sem_dados_pagamento(self, client, headers, cliente):
        response = client.post("/documentos-fiscais/emitir", json={
            "tipo_documento": "FR", "cliente_id": str(cliente.id), "itens": [linha_livre()]
        }, headers=headers)
        assert response.status_code == 422
        assert "dados_pagamento" in response.json()["errors"]


# ===== RECIBOS =====

class TestRecibos:

    def test_pagamento_parcial_e_total(self, client, headers, fatura_1000):
        url = f"/documentos-fiscais/{fatura_1000['id']}/recibo"

        response = client.post(url, json={"valor": "600", "metodo_pagamento": "transferencia"}, headers=headers)
        assert response.status_code == 201
        recibo = response.json()["data"]
        assert recibo["tipo_documento"] == "RC"
        assert recibo["fatura_id"] == fatura_1000["id"]

        fatura = client.get(f"/documentos-fiscais/{fatura_1000['id']}", headers=headers).json()["data"]
        assert fatura["estado"] == "parcialmente_paga"
        assert _d(fatura["valor_pendente"]) == Decimal("400")

        client.post(url, json={"valor": "400", "metodo_pagamento": "dinheiro"}, headers=headers)
        fatura = client.get(f"/documentos-fiscais/{fatura_1000['id']}", headers=headers).json()["data"]
        assert fatura["estado"] == "paga"
        assert _d(fatura["valor_pendente"]) == Decimal("0")

        response = client.post(url, json={"valor": "1", "metodo_pagamento": "dinheiro"}, headers=headers)
        assert response.status_code == 422
        assert "excede o valor pendente" in response.json()["message"]

    def test_recibo_acima_do_pendente(self, client, headers, fatura_1000):
        response = client.post(
            f"/documentos-fiscais/{fatura_1000['id']}/recibo",
            json={"valor": "1000.01", "metodo_pagamento": "dinheiro"},
            headers=headers
        )
        assert response.status_code == 422

    def test_recibo_via_emitir(self, client, headers, fatura_1000):
        recibo = emitir(
            client, headers,
            tipo_documento="RC",
            fatura_id=fatura_1000["id"],
            dados_pagamento={"metodo": "cheque", "valor": "250", "referencia": "CHQ-778"}
        )
        assert recibo["referencia_pagamento"] == "CHQ-778"
        assert _d(recibo["total_liquido"]) == Decimal("250")

    def test_recibo_sobre_proforma(self, client, headers):
        proforma = emitir(client, headers, tipo_documento="FP", itens=[linha_livre()])
        response = client.post(
            f"/documentos-fiscais/{proforma['id']}/recibo",
            json={"valor": "10", "metodo_pagamento": "dinheiro"},
            headers=headers
        )
        assert response.status_code == 422

    def test_recibo_documento_inexistente(self, client, headers):
        response = client.post(
            f"/documentos-fiscais/{uuid4()}/recibo",
            json={"valor": "10", "metodo_pagamento": "dinheiro"},
            headers=headers
        )
        assert response.status_code == 404

    def test_recibos_nunca_excedem_total(self, client, headers, fatura_1000, db_session):
        url = f"/documentos-fiscais/{fatura_1000['id']}/recibo"
        for valor in ("300", "300", "300", "300"):
            client.post(url, json={"valor": valor, "metodo_pagamento": "dinheiro"}, headers=headers)

        recibos = client.get(f"/documentos-fiscais/{fatura_1000['id']}/recibos", headers=headers).json()["data"]
        assert len(recibos) == 3
        assert sum(_d(r["total_liquido"]) for r in recibos) <= Decimal("1000")


# ===== NOTAS DE CRÉDITO E DÉBITO =====

class TestNotas:

    def test_nota_credito_repoe_stock(self, client, headers, cliente, produto, db_session):
        fatura = emitir(
            client, headers,
            tipo_documento="FT",
            cliente_id=str(cliente.id),
            itens=[{"produto_id": str(produto.id), "quantidade": "2"}]
        )
        assert estoque(db_session, produto) == Decimal("8")

        response = client.post(
            f"/documentos-fiscais/{fatura['id']}/nota-credito",
            json={"itens": [{"produto_id": str(produto.id), "quantidade": "1"}], "motivo": "Devolução"},
            headers=headers
        )
        assert response.status_code == 201
        nota = response.json()["data"]
        assert nota["numero_documento"] == f"NC{ANO}-00001"
        assert nota["cliente_id"] == str(cliente.id)
        assert _d(nota["total_liquido"]) == Decimal("1140")
        assert estoque(db_session, produto) == Decimal("9")

    def test_nota_credito_motivo_por_omissao(self, client, headers, fatura_1000):
        response = client.post(
            f"/documentos-fiscais/{fatura_1000['id']}/nota-credito",
            json={"itens": [linha_livre(preco="100")]},
            headers=headers
        )
        assert response.json()["data"]["motivo"] == f"Correção de {fatura_1000['numero_documento']}"

    def test_notas_credito_nao_excedem_origem(self, client, headers, fatura_1000):
        url = f"/documentos-fiscais/{fatura_1000['id']}/nota-credito"
        assert client.post(url, json={"itens": [linha_livre(preco="600")]}, headers=headers).status_code == 201

        response = client.post(url, json={"itens": [linha_livre(preco="500")]}, headers=headers)
        assert response.status_code == 422

    def test_nota_credito_sobre_proforma(self, client, headers):
        proforma = emitir(client, headers, tipo_documento="FP", itens=[linha_livre()])
        response = client.post(
            f"/documentos-fiscais/{proforma['id']}/nota-credito",
            json={"itens": [linha_livre(preco="100")]},
            headers=headers
        )
        assert response.status_code == 422

    def test_nota_debito(self, client, headers, fatura_1000):
        response = client.post(
            f"/documentos-fiscais/{fatura_1000['id']}/nota-debito",
            json={"itens": [linha_livre(preco="150", descricao="Juros de mora")]},
            headers=headers
        )
        assert response.status_code == 201
        nota = response.json()["data"]
        assert nota["tipo_documento"] == "ND"
        assert nota["documento_origem"]["id"] == fatura_1000["id"]
        assert nota["data_vencimento"] == (date.today() + timedelta(days=15)).isoformat()

    def test_retificacao_exige_motivo(self, client, headers, fatura_1000):
        response = client.post("/documentos-fiscais/emitir", json={
            "tipo_documento": "FRt", "fatura_id": fatura_1000["id"], "itens": [linha_livre()]
        }, headers=headers)
        assert response.status_code == 422
        assert "motivo" in response.json()["errors"]


# ===== ADIANTAMENTOS =====

class TestAdiantamentos:

    def test_adiantamento_sem_itens(self, adiantamento_500):
        assert adiantamento_500["tipo_documento"] == "FA"
        assert _d(adiantamento_500["total_liquido"]) == Decimal("500")
        assert adiantamento_500["itens"][0]["descricao"] == "Adiantamento"
        assert _d(adiantamento_500["saldo_adiantamento"]) == Decimal("500")

    def test_vincular_parcial(self, client, headers, fatura_1000, adiantamento_500):
        response = client.post(
            f"/documentos-fiscais/adiantamentos/{adiantamento_500['id']}/vincular",
            json={"fatura_id": fatura_1000["id"], "valor": "300"},
            headers=headers
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert _d(data["vinculo"]["valor_utilizado"]) == Decimal("300")
        assert data["fatura"]["estado"] == "parcialmente_paga"
        assert _d(data["fatura"]["valor_pendente"]) == Decimal("700")
        assert data["adiantamento"]["estado"] == "parcialmente_paga"
        assert _d(data["adiantamento"]["saldo_adiantamento"]) == Decimal("200")

    def test_vincular_total_fecha_adiantamento(self, client, headers, fatura_1000, adiantamento_500):
        data = client.post(
            f"/documentos-fiscais/adiantamentos/{adiantamento_500['id']}/vincular",
            json={"fatura_id": fatura_1000["id"], "valor": "500"},
            headers=headers
        ).json()["data"]
        assert data["adiantamento"]["estado"] == "paga"

        pendentes = client.get("/documentos-fiscais/adiantamentos/pendentes", headers=headers).json()["data"]
        assert pendentes == []

    def test_adiantamento_utilizado_nao_aceita_recibo(self, client, headers, fatura_1000, adiantamento_500):
        client.post(
            f"/documentos-fiscais/adiantamentos/{adiantamento_500['id']}/vincular",
            json={"fatura_id": fatura_1000["id"], "valor": "500"},
            headers=headers
        )

        response = client.post(
            f"/documentos-fiscais/{adiantamento_500['id']}/recibo",
            json={"valor": "500", "metodo_pagamento": "dinheiro"},
            headers=headers
        )
        assert response.status_code == 422
        assert "pago" in response.json()["message"]

        recibos = client.get(f"/documentos-fiscais/{adiantamento_500['id']}/recibos", headers=headers).json()["data"]
        assert recibos == []

    def test_valor_acima_do_total_rejeitado_na_validacao(self, client, headers, fatura_1000, adiantamento_500):
        response = client.post(
            f"/documentos-fiscais/adiantamentos/{adiantamento_500['id']}/vincular",
            json={"fatura_id": fatura_1000["id"], "valor": "600"},
            headers=headers
        )
        assert response.status_code == 422
        body = response.json()
        assert body["message"] == "Erro de validação"
        assert "valor" in body["errors"]

    def test_valor_acima_do_saldo(self, client, headers, fatura_1000, adiantamento_500):
        url = f"/documentos-fiscais/adiantamentos/{adiantamento_500['id']}/vincular"
        client.post(url, json={"fatura_id": fatura_1000["id"], "valor": "300"}, headers=headers)

        response = client.post(url, json={"fatura_id": fatura_1000["id"], "valor": "300"}, headers=headers)
        assert response.status_code == 422
        assert "saldo" in response.json()["message"]

    def test_vincular_a_proforma(self, client, headers, cliente, adiantamento_500):
        proforma = emitir(client, headers, tipo_documento="FP", cliente_id=str(cliente.id), itens=[linha_livre()])
        response = client.post(
            f"/documentos-fiscais/adiantamentos/{adiantamento_500['id']}/vincular",
            json={"fatura_id": proforma["id"], "valor": "100"},
            headers=headers
        )
        assert response.status_code == 422

    def test_vincular_outro_cliente(self, client, headers, adiantamento_500, db_session, ctx):
        outro = emitir(
            client, headers,
            tipo_documento="FT",
            cliente_id=str(self._novo_cliente(db_session, ctx).id),
            itens=[linha_livre()]
        )
        response = client.post(
            f"/documentos-fiscais/adiantamentos/{adiantamento_500['id']}/vincular",
            json={"fatura_id": outro["id"], "valor": "100"},
            headers=headers
        )
        assert response.status_code == 422

    def test_fatura_com_adiantamento_nao_pode_ser_cancelada(self, client, headers, fatura_1000, adiantamento_500):
        client.post(
            f"/documentos-fiscais/adiantamentos/{adiantamento_500['id']}/vincular",
            json={"fatura_id": fatura_1000["id"], "valor": "100"},
            headers=headers
        )
        response = client.post(
            f"/documentos-fiscais/{fatura_1000['id']}/cancelar", json={"motivo": MOTIVO}, headers=headers
        )
        assert response.status_code == 422

    @staticmethod
    def _novo_cliente(db_session, ctx):
        from gestfiscal.modules.clientes.models import Cliente
        cliente = Cliente(tenant_id=ctx.tenant_id, nome="Outro Cliente")
        db_session.add(cliente)
        db_session.commit()
        return cliente


class TestExpiracao:

    def _vencer(self, db_session, documento_id):
        documento = db_session.query(DocumentoFiscal).filter(DocumentoFiscal.id == UUID(documento_id)).one()
        documento.data_vencimento = date.today() - timedelta(days=1)
        db_session.commit()

    def test_processar_expirados(self, client, headers, adiantamento_500, db_session):
        self._vencer(db_session, adiantamento_500["id"])

        response = client.post("/documentos-fiscais/processar-expirados", headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["processados"] == 1

        documento = client.get(f"/documentos-fiscais/{adiantamento_500['id']}", headers=headers).json()["data"]
        assert documento["estado"] == "expirado"

        # Segunda passagem não encontra nada
        assert client.post("/documentos-fiscais/processar-expirados", headers=headers).json()["data"]["processados"] == 0

    def test_so_afeta_fa_emitidas(self, client, headers, fatura_1000, adiantamento_500, db_session):
        self._vencer(db_session, fatura_1000["id"])
        assert client.post("/documentos-fiscais/processar-expirados", headers=headers).json()["data"]["processados"] == 0

    def test_outros_tenants_nao_processados(self, client, headers, adiantamento_500, db_session):
        self._vencer(db_session, adiantamento_500["id"])
        response = client.post("/documentos-fiscais/processar-expirados", headers={"X-Tenant-ID": str(uuid4())})
        assert response.json()["data"]["processados"] == 0

    def test_sweep_global(self, db_session, adiantamento_500):
        self._vencer(db_session, adiantamento_500["id"])
        assert DocumentoFiscalService(db_session).processar_adiantamentos_expirados() == 1

    def test_tarefa_celery(self, db_session, ctx, adiantamento_500, monkeypatch):
        from gestfiscal.modules.documentos_fiscais import tasks

        self._vencer(db_session, adiantamento_500["id"])
        monkeypatch.setattr(tasks, "SessionLocal", lambda: db_session)

        resultado = tasks.processar_adiantamentos_expirados(str(ctx.tenant_id))
        assert resultado == {"status": "success", "processados": 1}

    def test_expirado_nao_aceita_recibo_nem_vinculo(self, client, headers, fatura_1000, adiantamento_500, db_session):
        self._vencer(db_session, adiantamento_500["id"])
        client.post("/documentos-fiscais/processar-expirados", headers=headers)

        response = client.post(
            f"/documentos-fiscais/{adiantamento_500['id']}/recibo",
            json={"valor": "10", "metodo_pagamento": "dinheiro"},
            headers=headers
        )
        assert response.status_code == 422

        response = client.post(
            f"/documentos-fiscais/adiantamentos/{adiantamento_500['id']}/vincular",
            json={"fatura_id": fatura_1000["id"], "valor": "100"},
            headers=headers
        )
        assert response.status_code == 422


# ===== CANCELAMENTO =====

class TestCancelamento:

    def _cancelar(self, client, headers, documento_id, **extra):
        return client.post(
            f"/documentos-fiscais/{documento_id}/cancelar", json={"motivo": MOTIVO, **extra}, headers=headers
        )

    def test_cancelar_e_bloquear_mutacoes(self, client, headers, fatura_1000, adiantamento_500):
        response = self._cancelar(client, headers, fatura_1000["id"])
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["estado"] == "cancelado"
        assert data["motivo_cancelamento"] == MOTIVO
        assert _d(data["valor_pendente"]) == Decimal("0")

        response = client.post(
            f"/documentos-fiscais/{fatura_1000['id']}/recibo",
            json={"valor": "100", "metodo_pagamento": "dinheiro"},
            headers=headers
        )
        assert response.status_code == 422

        response = client.post(
            f"/documentos-fiscais/adiantamentos/{adiantamento_500['id']}/vincular",
            json={"fatura_id": fatura_1000["id"], "valor": "100"},
            headers=headers
        )
        assert response.status_code == 422

        assert self._cancelar(client, headers, fatura_1000["id"]).status_code == 422

    def test_motivo_curto(self, client, headers, fatura_1000):
        response = client.post(
            f"/documentos-fiscais/{fatura_1000['id']}/cancelar", json={"motivo": "erro"}, headers=headers
        )
        assert response.status_code == 422
        assert "motivo" in response.json()["errors"]

    def test_fatura_paga_nao_cancela(self, client, headers, fatura_1000):
        client.post(
            f"/documentos-fiscais/{fatura_1000['id']}/recibo",
            json={"valor": "1000", "metodo_pagamento": "dinheiro"},
            headers=headers
        )
        assert self._cancelar(client, headers, fatura_1000["id"]).status_code == 422

    def test_fatura_com_recibo_ativo_nao_cancela(self, client, headers, fatura_1000):
        client.post(
            f"/documentos-fiscais/{fatura_1000['id']}/recibo",
            json={"valor": "100", "metodo_pagamento": "dinheiro"},
            headers=headers
        )
        response = self._cancelar(client, headers, fatura_1000["id"])
        assert response.status_code == 422
        assert "RC" in response.json()["message"]

    def test_cancelar_recibo_reabre_fatura(self, client, headers, fatura_1000):
        recibo = client.post(
            f"/documentos-fiscais/{fatura_1000['id']}/recibo",
            json={"valor": "1000", "metodo_pagamento": "dinheiro"},
            headers=headers
        ).json()["data"]

        assert self._cancelar(client, headers, recibo["id"]).status_code == 200

        fatura = client.get(f"/documentos-fiscais/{fatura_1000['id']}", headers=headers).json()["data"]
        assert fatura["estado"] == "parcialmente_paga"
        assert _d(fatura["valor_pendente"]) == Decimal("1000")

        # Depois de cancelado o recibo a fatura já pode ser cancelada
        assert self._cancelar(client, headers, fatura_1000["id"]).status_code == 200

    def test_cancelar_sem_reverter_stock(self, client, headers, produto, db_session):
        fatura = emitir(client, headers, tipo_documento="FT", itens=[{"produto_id": str(produto.id), "quantidade": "3"}])
        self._cancelar(client, headers, fatura["id"])
        assert estoque(db_session, produto) == Decimal("7")

    def test_cancelar_com_reverter_stock(self, client, headers, produto, db_session):
        fatura = emitir(client, headers, tipo_documento="FT", itens=[{"produto_id": str(produto.id), "quantidade": "3"}])
        response = self._cancelar(client, headers, fatura["id"], reverter_stock=True)
        assert response.status_code == 200
        assert estoque(db_session, produto) == Decimal("10")

        ledger = client.get(f"/stock/produtos/{produto.id}/verificar", headers=headers).json()["data"]
        assert ledger["consistente"] is True
        assert ledger["total_movimentos"] == 3

    def test_reverter_stock_de_produto_na_lixeira(self, client, headers, produto, db_session):
        fatura = emitir(client, headers, tipo_documento="FT", itens=[{"produto_id": str(produto.id), "quantidade": "2"}])
        assert client.delete(f"/produtos/{produto.id}", headers=headers).status_code == 200

        response = self._cancelar(client, headers, fatura["id"], reverter_stock=True)
        assert response.status_code == 200
        assert response.json()["data"]["estado"] == "cancelado"
        assert estoque(db_session, produto) == Decimal("10")

        ultimo = db_session.query(MovimentoStock).filter(
            MovimentoStock.produto_id == produto.id
        ).order_by(MovimentoStock.sequencia.desc()).first()
        assert ultimo.tipo == TipoMovimento.ENTRADA
        assert ultimo.tipo_movimento == OrigemMovimento.CANCELAMENTO
        assert ultimo.estoque_anterior == Decimal("8")

    def test_fr_paga_pode_ser_cancelada(self, client, headers, cliente):
        fatura_recibo = emitir(
            client, headers,
            tipo_documento="FR",
            cliente_id=str(cliente.id),
            itens=[linha_livre()],
            dados_pagamento={"metodo": "dinheiro", "valor": "1000"}
        )
        assert self._cancelar(client, headers, fatura_recibo["id"]).status_code == 200


# ===== LEITURA =====

class TestLeitura:

    def test_isolamento_tenant(self, client, fatura_1000):
        response = client.get(f"/documentos-fiscais/{fatura_1000['id']}", headers={"X-Tenant-ID": str(uuid4())})
        assert response.status_code == 404

    def test_listar_com_filtros(self, client, headers, fatura_1000, adiantamento_500):
        emitir(client, headers, tipo_documento="FP", itens=[linha_livre()])

        data = client.get("/documentos-fiscais/", headers=headers).json()["data"]
        assert data["total"] == 3

        data = client.get("/documentos-fiscais/", params={"tipo_documento": "FT"}, headers=headers).json()["data"]
        assert [d["id"] for d in data["documentos"]] == [fatura_1000["id"]]

        data = client.get("/documentos-fiscais/", params={"apenas_vendas": True}, headers=headers).json()["data"]
        assert data["total"] == 1

        data = client.get("/documentos-fiscais/", params={"cliente_nome": "kianda"}, headers=headers).json()["data"]
        assert data["total"] == 2

    def test_proformas_pendentes(self, client, headers):
        proforma = emitir(client, headers, tipo_documento="FP", itens=[linha_livre()])
        data = client.get("/documentos-fiscais/proformas/pendentes", headers=headers).json()["data"]
        assert [d["id"] for d in data] == [proforma["id"]]

    def test_adiantamentos_pendentes_por_cliente(self, client, headers, cliente, adiantamento_500):
        data = client.get(
            "/documentos-fiscais/adiantamentos/pendentes", params={"cliente_id": str(cliente.id)}, headers=headers
        ).json()["data"]
        assert len(data) == 1

        data = client.get(
            "/documentos-fiscais/adiantamentos/pendentes", params={"cliente_id": str(uuid4())}, headers=headers
        ).json()["data"]
        assert data == []

    def test_calcular_valor_pendente(self, client, headers, ctx, db_session, fatura_1000, adiantamento_500):
        client.post(
            f"/documentos-fiscais/{fatura_1000['id']}/recibo",
            json={"valor": "150", "metodo_pagamento": "dinheiro"},
            headers=headers
        )
        client.post(
            f"/documentos-fiscais/adiantamentos/{adiantamento_500['id']}/vincular",
            json={"fatura_id": fatura_1000["id"], "valor": "250"},
            headers=headers
        )

        service = DocumentoFiscalService(db_session)
        fatura = service.obter_documento(UUID(fatura_1000["id"]), ctx)
        adiantamento = service.obter_documento(UUID(adiantamento_500["id"]), ctx)
        assert service.calcular_valor_pendente(fatura) == Decimal("600")
        # Vínculos não abatem o pendente da FA, só o seu saldo
        assert service.calcular_valor_pendente(adiantamento) == Decimal("500")
        assert adiantamento.saldo_adiantamento == Decimal("250")

    def test_hash_deterministico(self, db_session):
        service = DocumentoFiscalService(db_session)
        a = service._gerar_hash("FT2025-00001", date(2025, 1, 1), Decimal("2140"), "consumidor_final")
        b = service._gerar_hash("FT2025-00001", date(2025, 1, 1), Decimal("2140.00"), "consumidor_final")
        c = service._gerar_hash("FT2025-00002", date(2025, 1, 1), Decimal("2140"), "consumidor_final")
        assert a == b
        assert a != c
