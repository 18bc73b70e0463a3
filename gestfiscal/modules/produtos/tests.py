"""
Testes do módulo de Produtos

- Produtos físicos vs serviços (serviços nunca têm stock)
- Stock inicial registado no ledger
- Filtros, lixeira e restore
"""

import pytest
from decimal import Decimal
from uuid import uuid4
from pydantic import ValidationError

from gestfiscal.modules.produtos.models import Produto, Categoria, TipoProduto
from gestfiscal.modules.produtos.schemas import ProdutoCreate
from gestfiscal.modules.stock.models import MovimentoStock, OrigemMovimento


class TestProdutoModel:

    def test_estoque_baixo_e_sem_estoque(self):
        produto = Produto(tipo=TipoProduto.PRODUTO, estoque_atual=Decimal("3"), estoque_minimo=Decimal("5"))
        assert produto.esta_estoque_baixo
        assert not produto.esta_sem_estoque

        produto.estoque_atual = Decimal("0")
        assert not produto.esta_estoque_baixo
        assert produto.esta_sem_estoque

        produto.estoque_atual = Decimal("6")
        assert not produto.esta_estoque_baixo

    def test_servico_nunca_alerta_stock(self):
        servico = Produto(tipo=TipoProduto.SERVICO, estoque_atual=Decimal("0"), estoque_minimo=Decimal("0"))
        assert not servico.esta_estoque_baixo
        assert not servico.esta_sem_estoque

    def test_margem_lucro(self):
        produto = Produto(preco_venda=Decimal("1000"), custo_medio=Decimal("600"))
        assert produto.margem_lucro == Decimal("66.67")

    def test_margem_sem_custo(self):
        produto = Produto(preco_venda=Decimal("1000"), custo_medio=Decimal("0"))
        assert produto.margem_lucro == Decimal("0")


class TestProdutoSchemas:

    def test_servico_com_stock_inicial(self):
        with pytest.raises(ValidationError):
            ProdutoCreate(nome="Consultoria", tipo=TipoProduto.SERVICO, preco_venda=Decimal("100"),
                          estoque_inicial=Decimal("1"))

    def test_valores_por_omissao(self):
        dados = ProdutoCreate(nome="Mesa", preco_venda=Decimal("5000"))
        assert dados.taxa_iva == Decimal("14")
        assert dados.estoque_minimo == Decimal("5")
        assert dados.sujeito_iva is True


class TestProdutoService:

    def test_stock_inicial_no_ledger(self, db_session, produto):
        assert produto.estoque_atual == Decimal("10")
        assert produto.custo_medio == Decimal("600")

        movimentos = db_session.query(MovimentoStock).filter(MovimentoStock.produto_id == produto.id).all()
        assert len(movimentos) == 1
        assert movimentos[0].sequencia == 1
        assert movimentos[0].tipo_movimento == OrigemMovimento.AJUSTE
        assert movimentos[0].estoque_anterior == Decimal("0")
        assert movimentos[0].estoque_novo == Decimal("10")

    def test_servico_zera_campos_de_stock(self, servico):
        assert servico.is_servico
        assert servico.estoque_atual == 0
        assert servico.estoque_minimo == 0
        assert servico.preco_compra == 0
        assert servico.retencao == Decimal("6.5")


class TestProdutosApi:

    def test_criar_produto(self, client, headers):
        response = client.post("/produtos/", json={
            "nome": "Impressora",
            "codigo": "IMP-01",
            "preco_compra": "80000",
            "preco_venda": "120000",
            "estoque_inicial": "4"
        }, headers=headers)

        assert response.status_code == 201
        data = response.json()["data"]
        assert Decimal(str(data["estoque_atual"])) == Decimal("4")
        assert data["esta_estoque_baixo"] is True
        assert Decimal(str(data["margem_lucro"])) == Decimal("50.00")

    def test_codigo_duplicado(self, client, headers, produto):
        response = client.post("/produtos/", json={
            "nome": "Outra cadeira", "codigo": produto.codigo, "preco_venda": "10"
        }, headers=headers)
        assert response.status_code == 422

    def test_categoria_inexistente(self, client, headers):
        response = client.post("/produtos/", json={
            "nome": "Mesa", "preco_venda": "10", "categoria_id": str(uuid4())
        }, headers=headers)
        assert response.status_code == 404

    def test_categoria_de_outro_tenant(self, client, headers, db_session):
        categoria = Categoria(tenant_id=uuid4(), nome="Mobiliário")
        db_session.add(categoria)
        db_session.commit()

        response = client.post("/produtos/", json={
            "nome": "Mesa", "preco_venda": "10", "categoria_id": str(categoria.id)
        }, headers=headers)
        assert response.status_code == 404

    def test_filtros(self, client, headers, produto, servico):
        response = client.get("/produtos/", params={"tipo": "servico"}, headers=headers)
        data = response.json()["data"]
        assert data["total"] == 1
        assert data["produtos"][0]["id"] == str(servico.id)

        response = client.get("/produtos/", params={"search": "CAD"}, headers=headers)
        assert response.json()["data"]["total"] == 1

        response = client.get("/produtos/", params={"sem_estoque": True}, headers=headers)
        assert response.json()["data"]["total"] == 0

    def test_converter_em_servico_com_stock(self, client, headers, produto):
        response = client.put(f"/produtos/{produto.id}", json={"tipo": "servico"}, headers=headers)
        assert response.status_code == 422

    def test_atualizar_preco(self, client, headers, produto):
        response = client.put(f"/produtos/{produto.id}", json={"preco_venda": "1200"}, headers=headers)
        assert response.status_code == 200
        assert Decimal(str(response.json()["data"]["preco_venda"])) == Decimal("1200")
        # O stock não é alterado por atualização cadastral
        assert Decimal(str(response.json()["data"]["estoque_atual"])) == Decimal("10")

    def test_lixeira_e_restore(self, client, headers, produto):
        assert client.delete(f"/produtos/{produto.id}", headers=headers).status_code == 200
        assert client.get(f"/produtos/{produto.id}", headers=headers).status_code == 404

        lixeira = client.get("/produtos/lixeira", headers=headers).json()["data"]
        assert lixeira["total"] == 1
        assert lixeira["produtos"][0]["id"] == str(produto.id)

        response = client.post(f"/produtos/{produto.id}/restaurar", headers=headers)
        assert response.status_code == 200
        assert client.get("/produtos/lixeira", headers=headers).json()["data"]["total"] == 0

    def test_restaurar_produto_ativo(self, client, headers, produto):
        assert client.post(f"/produtos/{produto.id}/restaurar", headers=headers).status_code == 422
