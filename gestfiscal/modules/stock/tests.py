"""
Testes do ledger de stock

- Movimentos com sequência contínua por produto
- Bloqueio de saídas acima do disponível
- Custo médio ponderado nas compras
- Serviços não movimentam stock
"""

import pytest
from decimal import Decimal
from uuid import uuid4
from fastapi import HTTPException

from gestfiscal.modules.stock.models import MovimentoStock, TipoMovimento, OrigemMovimento
from gestfiscal.modules.stock.schemas import AjusteStockCreate, EntradaCompraCreate
from gestfiscal.modules.stock.service import StockService


class TestMovimentar:

    def test_saida_atualiza_stock_e_ledger(self, db_session, ctx, produto):
        service = StockService(db_session)
        movimento = service.movimentar(
            produto.id, Decimal("3"), TipoMovimento.SAIDA, OrigemMovimento.VENDA, ctx, referencia="FT2025-00001"
        )
        db_session.commit()

        assert movimento.sequencia == 2
        assert movimento.quantidade == Decimal("-3")
        assert movimento.estoque_anterior == Decimal("10")
        assert movimento.estoque_novo == Decimal("7")
        db_session.refresh(produto)
        assert produto.estoque_atual == Decimal("7")

    def test_stock_insuficiente(self, db_session, ctx, produto):
        with pytest.raises(HTTPException) as exc:
            StockService(db_session).movimentar(
                produto.id, Decimal("11"), TipoMovimento.SAIDA, OrigemMovimento.VENDA, ctx
            )
        assert exc.value.status_code == 422
        assert "Stock insuficiente" in exc.value.detail

    def test_quantidade_nao_positiva(self, db_session, ctx, produto):
        with pytest.raises(HTTPException) as exc:
            StockService(db_session).movimentar(
                produto.id, Decimal("0"), TipoMovimento.ENTRADA, OrigemMovimento.AJUSTE, ctx
            )
        assert exc.value.status_code == 422

    def test_servico_nao_movimenta(self, db_session, ctx, servico):
        with pytest.raises(HTTPException) as exc:
            StockService(db_session).movimentar(
                servico.id, Decimal("1"), TipoMovimento.ENTRADA, OrigemMovimento.AJUSTE, ctx
            )
        assert exc.value.status_code == 422

    def test_produto_de_outro_tenant(self, db_session, outro_ctx, produto):
        with pytest.raises(HTTPException) as exc:
            StockService(db_session).movimentar(
                produto.id, Decimal("1"), TipoMovimento.ENTRADA, OrigemMovimento.AJUSTE, outro_ctx
            )
        assert exc.value.status_code == 404


class TestLedger:

    def test_ledger_consistente(self, db_session, ctx, produto):
        service = StockService(db_session)
        service.registar_ajuste(AjusteStockCreate(
            produto_id=produto.id, tipo=TipoMovimento.SAIDA, quantidade=Decimal("2"), motivo="Quebra"
        ), ctx)
        service.registar_ajuste(AjusteStockCreate(
            produto_id=produto.id, tipo=TipoMovimento.ENTRADA, quantidade=Decimal("5"), motivo="Inventário"
        ), ctx)

        resultado = service.verificar_ledger(produto.id, ctx)
        assert resultado["consistente"] is True
        assert resultado["total_movimentos"] == 3
        assert resultado["estoque_ledger"] == Decimal("13")

        sequencias = [
            m.sequencia for m in db_session.query(MovimentoStock)
            .filter(MovimentoStock.produto_id == produto.id)
            .order_by(MovimentoStock.sequencia)
        ]
        assert sequencias == [1, 2, 3]

    def test_ledger_detecta_alteracao_direta(self, db_session, ctx, produto):
        produto.estoque_atual = Decimal("99")
        db_session.commit()

        resultado = StockService(db_session).verificar_ledger(produto.id, ctx)
        assert resultado["consistente"] is False
        assert resultado["estoque_atual"] == Decimal("99")
        assert resultado["estoque_ledger"] == Decimal("10")


class TestCompras:

    def test_custo_medio_ponderado(self, db_session, ctx, produto):
        # 10 un a 600 + 10 un a 800 -> 700
        movimento = StockService(db_session).registar_entrada_compra(EntradaCompraCreate(
            produto_id=produto.id, quantidade=Decimal("10"), preco_compra=Decimal("800"), referencia="GR-001"
        ), ctx)

        db_session.refresh(produto)
        assert produto.estoque_atual == Decimal("20")
        assert produto.custo_medio == Decimal("700")
        assert produto.preco_compra == Decimal("800")
        assert movimento.tipo_movimento == OrigemMovimento.COMPRA
        assert movimento.custo_medio == Decimal("700")


class TestStockApi:

    def test_ajuste_via_api(self, client, headers, produto):
        response = client.post("/stock/ajustes", json={
            "produto_id": str(produto.id), "tipo": "saida", "quantidade": "4", "motivo": "Oferta a cliente"
        }, headers=headers)

        assert response.status_code == 201
        data = response.json()["data"]
        assert Decimal(str(data["estoque_novo"])) == Decimal("6")
        assert data["sequencia"] == 2

    def test_ajuste_excede_stock(self, client, headers, produto):
        response = client.post("/stock/ajustes", json={
            "produto_id": str(produto.id), "tipo": "saida", "quantidade": "50", "motivo": "Teste"
        }, headers=headers)

        assert response.status_code == 422
        assert response.json()["success"] is False

    def test_quantidade_negativa_rejeitada(self, client, headers, produto):
        response = client.post("/stock/ajustes", json={
            "produto_id": str(produto.id), "tipo": "entrada", "quantidade": "-1", "motivo": "Teste"
        }, headers=headers)
        assert response.status_code == 422
        assert "quantidade" in response.json()["errors"]

    def test_listar_movimentos(self, client, headers, produto):
        response = client.get("/stock/movimentos", params={"produto_id": str(produto.id)}, headers=headers)
        data = response.json()["data"]
        assert data["total"] == 1
        assert data["movimentos"][0]["referencia"] == "STOCK-INICIAL"

    def test_movimentos_isolados_por_tenant(self, client, produto):
        response = client.get("/stock/movimentos", headers={"X-Tenant-ID": str(uuid4())})
        assert response.json()["data"]["total"] == 0

    def test_produtos_em_risco(self, client, headers, produto):
        client.post("/stock/ajustes", json={
            "produto_id": str(produto.id), "tipo": "saida", "quantidade": "8", "motivo": "Inventário"
        }, headers=headers)

        response = client.get("/stock/produtos-em-risco", headers=headers)
        data = response.json()["data"]
        assert len(data) == 1
        assert data[0]["id"] == str(produto.id)
        assert data[0]["sem_estoque"] is False

    def test_dashboard(self, client, headers, produto, servico):
        data = client.get("/stock/dashboard", headers=headers).json()["data"]
        assert data["total_produtos"] == 1
        assert Decimal(str(data["valor_total_stock"])) == Decimal("6000")

    def test_verificar_ledger(self, client, headers, produto):
        response = client.get(f"/stock/produtos/{produto.id}/verificar", headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["consistente"] is True
