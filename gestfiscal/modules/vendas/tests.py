"""
Testes do módulo de Vendas

- A venda não movimenta stock até ser faturada
- Faturação com FT ou FR e transição para faturada
- Só vendas abertas podem ser faturadas ou canceladas
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4
from pydantic import ValidationError

from gestfiscal.modules.produtos.models import Produto
from gestfiscal.modules.stock.models import MovimentoStock
from gestfiscal.modules.vendas.schemas import FaturarVendaRequest

ANO = date.today().year


def _d(valor) -> Decimal:
    return Decimal(str(valor))


def estoque(db_session, produto) -> Decimal:
    db_session.expire_all()
    return db_session.query(Produto).filter(Produto.id == produto.id).one().estoque_atual


@pytest.fixture
def venda(client, headers, cliente, produto):
    response = client.post("/vendas/", json={
        "cliente_id": str(cliente.id),
        "itens": [{"produto_id": str(produto.id), "quantidade": "2", "desconto": "10"}],
        "observacoes": "Entrega em Viana"
    }, headers=headers)
    assert response.status_code == 201, response.json()
    return response.json()["data"]


class TestFaturarVendaRequest:

    def test_tipo_por_omissao(self):
        assert FaturarVendaRequest().tipo_documento.value == "FT"

    def test_so_ft_ou_fr(self):
        with pytest.raises(ValidationError):
            FaturarVendaRequest(tipo_documento="FP")

    def test_fr_exige_pagamento(self):
        with pytest.raises(ValidationError):
            FaturarVendaRequest(tipo_documento="FR")


class TestVendasApi:

    def test_criar_venda_sem_movimentar_stock(self, venda, produto, db_session):
        assert venda["status"] == "aberta"
        # 2 × 1000 com 10% de desconto, IVA 14%
        assert _d(venda["subtotal"]) == Decimal("1800")
        assert _d(venda["total_desconto"]) == Decimal("200")
        assert _d(venda["total_iva"]) == Decimal("252")
        assert _d(venda["total"]) == Decimal("2052")
        assert venda["itens"][0]["descricao"] == "Cadeira de escritório"

        assert estoque(db_session, produto) == Decimal("10")
        assert db_session.query(MovimentoStock).filter(MovimentoStock.produto_id == produto.id).count() == 1

    def test_cliente_inexistente(self, client, headers, produto):
        response = client.post("/vendas/", json={
            "cliente_id": str(uuid4()),
            "itens": [{"produto_id": str(produto.id), "quantidade": "1"}]
        }, headers=headers)
        assert response.status_code == 404

    def test_produto_de_outro_tenant(self, client, produto):
        response = client.post("/vendas/", json={
            "itens": [{"produto_id": str(produto.id), "quantidade": "1"}]
        }, headers={"X-Tenant-ID": str(uuid4())})
        assert response.status_code == 404

    def test_sem_itens(self, client, headers):
        response = client.post("/vendas/", json={"itens": []}, headers=headers)
        assert response.status_code == 422
        assert "itens" in response.json()["errors"]

    def test_faturar_com_ft(self, client, headers, venda, produto, db_session):
        response = client.post(f"/vendas/{venda['id']}/faturar", json={}, headers=headers)

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["venda"]["status"] == "faturada"
        assert data["venda"]["tipo_documento_fiscal"] == "FT"
        assert data["venda"]["documento_fiscal_id"] == data["documento"]["id"]
        assert data["documento"]["numero_documento"] == f"FT{ANO}-00001"
        assert data["documento"]["venda_id"] == venda["id"]
        assert _d(data["documento"]["total_liquido"]) == _d(venda["total"])

        assert estoque(db_session, produto) == Decimal("8")

    def test_faturar_com_fr(self, client, headers, venda, produto, db_session):
        response = client.post(f"/vendas/{venda['id']}/faturar", json={
            "tipo_documento": "FR",
            "dados_pagamento": {"metodo": "cartao", "valor": "2052"}
        }, headers=headers)

        assert response.status_code == 201
        documento = response.json()["data"]["documento"]
        assert documento["tipo_documento"] == "FR"
        assert documento["estado"] == "paga"
        assert estoque(db_session, produto) == Decimal("8")

    def test_fr_sem_cliente(self, client, headers, produto, db_session):
        criada = client.post("/vendas/", json={
            "itens": [{"produto_id": str(produto.id), "quantidade": "1"}]
        }, headers=headers).json()["data"]

        response = client.post(f"/vendas/{criada['id']}/faturar", json={
            "tipo_documento": "FR",
            "dados_pagamento": {"metodo": "dinheiro", "valor": "1140"}
        }, headers=headers)
        assert response.status_code == 422

        # A venda continua aberta e o stock intacto
        assert client.get(f"/vendas/{criada['id']}", headers=headers).json()["data"]["status"] == "aberta"
        assert estoque(db_session, produto) == Decimal("10")

    def test_faturar_duas_vezes(self, client, headers, venda):
        client.post(f"/vendas/{venda['id']}/faturar", json={}, headers=headers)
        response = client.post(f"/vendas/{venda['id']}/faturar", json={}, headers=headers)

        assert response.status_code == 422
        assert "faturada" in response.json()["message"]

    def test_cancelar_venda_aberta(self, client, headers, venda):
        response = client.post(f"/vendas/{venda['id']}/cancelar", headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "cancelada"

        response = client.post(f"/vendas/{venda['id']}/faturar", json={}, headers=headers)
        assert response.status_code == 422

    def test_cancelar_venda_faturada(self, client, headers, venda):
        client.post(f"/vendas/{venda['id']}/faturar", json={}, headers=headers)
        response = client.post(f"/vendas/{venda['id']}/cancelar", headers=headers)
        assert response.status_code == 422

    def test_listar_por_status(self, client, headers, venda, produto):
        outra = client.post("/vendas/", json={
            "itens": [{"produto_id": str(produto.id), "quantidade": "1"}]
        }, headers=headers).json()["data"]
        client.post(f"/vendas/{outra['id']}/faturar", json={}, headers=headers)

        data = client.get("/vendas/", params={"status": "aberta"}, headers=headers).json()["data"]
        assert data["total"] == 1
        assert data["vendas"][0]["id"] == venda["id"]

        data = client.get("/vendas/", headers=headers).json()["data"]
        assert data["total"] == 2

    def test_isolamento_tenant(self, client, venda):
        response = client.get(f"/vendas/{venda['id']}", headers={"X-Tenant-ID": str(uuid4())})
        assert response.status_code == 404
