"""
Testes do módulo de Clientes

- Validação de NIF e telefone angolanos
- CRUD via API com isolamento por tenant
- Soft delete e restore
"""

import pytest
from uuid import uuid4
from pydantic import ValidationError

from gestfiscal.common.validators import (
    validate_angola_nif, validate_angola_phone, format_angola_phone, normalize_nif
)
from gestfiscal.modules.clientes.models import Cliente, TipoCliente
from gestfiscal.modules.clientes.schemas import ClienteCreate, ClienteUpdate


# ===== FIXTURES =====

@pytest.fixture
def dados_empresa():
    return {
        "nome": "Sonangol Distribuição, SA",
        "nif": "5000000123",
        "tipo": "empresa",
        "telefone": "923 456 789",
        "email": "compras@exemplo.co.ao",
        "endereco": "Rua Major Kanhangulo, Luanda"
    }


# ===== VALIDADORES =====

class TestValidadoresAngola:

    def test_nif_empresa_dez_digitos(self):
        assert validate_angola_nif("5417000123")
        assert validate_angola_nif("541-700-0123")

    def test_nif_bilhete_identidade(self):
        assert validate_angola_nif("008693558LA042")
        assert validate_angola_nif("008693558la042")

    def test_nif_invalido(self):
        assert not validate_angola_nif("")
        assert not validate_angola_nif("12345")
        assert not validate_angola_nif("008693558L0042")

    def test_normalize_nif(self):
        assert normalize_nif(" 008.693.558-la042 ") == "008693558LA042"

    def test_telefone(self):
        assert validate_angola_phone("+244923456789")
        assert validate_angola_phone("244923456789")
        assert validate_angola_phone("923 456 789")
        assert validate_angola_phone("222123456")
        assert not validate_angola_phone("823456789")
        assert not validate_angola_phone("+351912345678")

    def test_formatar_telefone(self):
        assert format_angola_phone("923-456-789") == "+244923456789"
        assert format_angola_phone("244923456789") == "+244923456789"
        assert format_angola_phone("123") is None


class TestClienteSchemas:

    def test_empresa_exige_nif(self):
        with pytest.raises(ValidationError):
            ClienteCreate(nome="Empresa sem NIF", tipo=TipoCliente.EMPRESA)

    def test_consumidor_final_sem_nif(self):
        dados = ClienteCreate(nome="João Manuel")
        assert dados.nif is None
        assert dados.tipo == TipoCliente.CONSUMIDOR_FINAL

    def test_nif_opcional_validado_quando_presente(self):
        with pytest.raises(ValidationError):
            ClienteCreate(nome="João Manuel", nif="999")

    def test_nif_normalizado(self):
        dados = ClienteCreate(nome="Maria", nif="008693558la042")
        assert dados.nif == "008693558LA042"

    def test_telefone_normalizado(self):
        dados = ClienteCreate(nome="Maria", telefone="923 456 789")
        assert dados.telefone == "+244923456789"

    def test_nome_em_branco(self):
        with pytest.raises(ValidationError):
            ClienteCreate(nome="   ")

    def test_update_parcial(self):
        dados = ClienteUpdate(email="novo@exemplo.co.ao")
        assert dados.model_dump(exclude_unset=True) == {"email": "novo@exemplo.co.ao"}


# ===== API =====

class TestClientesApi:

    def test_criar_cliente(self, client, headers, dados_empresa):
        response = client.post("/clientes/", json=dados_empresa, headers=headers)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["nome"] == dados_empresa["nome"]
        assert body["data"]["status"] == "ativo"
        assert body["data"]["telefone"] == "+244923456789"

    def test_sem_cabecalho_tenant(self, client, dados_empresa):
        response = client.post("/clientes/", json=dados_empresa)
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_tenant_invalido(self, client, dados_empresa):
        response = client.post("/clientes/", json=dados_empresa, headers={"X-Tenant-ID": "nao-e-uuid"})
        assert response.status_code == 400

    def test_erro_validacao_envelope(self, client, headers):
        response = client.post("/clientes/", json={"nome": "Empresa", "tipo": "empresa"}, headers=headers)

        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Erro de validação"
        assert "errors" in body

    def test_nif_duplicado(self, client, headers, dados_empresa):
        client.post("/clientes/", json=dados_empresa, headers=headers)
        response = client.post("/clientes/", json={**dados_empresa, "nome": "Outra"}, headers=headers)

        assert response.status_code == 422
        assert "NIF" in response.json()["message"]

    def test_mesmo_nif_noutro_tenant(self, client, headers, dados_empresa):
        client.post("/clientes/", json=dados_empresa, headers=headers)
        response = client.post("/clientes/", json=dados_empresa, headers={"X-Tenant-ID": str(uuid4())})
        assert response.status_code == 201

    def test_obter_cliente_inexistente(self, client, headers):
        response = client.get(f"/clientes/{uuid4()}", headers=headers)
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Cliente não encontrado"}

    def test_isolamento_tenant(self, client, headers, cliente):
        response = client.get(f"/clientes/{cliente.id}", headers={"X-Tenant-ID": str(uuid4())})
        assert response.status_code == 404

    def test_listar_com_pesquisa(self, client, headers, cliente):
        client.post("/clientes/", json={"nome": "Ana Paula"}, headers=headers)

        response = client.get("/clientes/", params={"search": "kianda"}, headers=headers)
        data = response.json()["data"]
        assert data["total"] == 1
        assert data["clientes"][0]["id"] == str(cliente.id)

        response = client.get("/clientes/", params={"tipo": "consumidor_final"}, headers=headers)
        assert response.json()["data"]["total"] == 1

    def test_atualizar_cliente(self, client, headers, cliente):
        response = client.put(f"/clientes/{cliente.id}", json={"endereco": "Talatona"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["endereco"] == "Talatona"

    def test_atualizar_empresa_sem_nif(self, client, headers):
        criado = client.post("/clientes/", json={"nome": "Ana Paula"}, headers=headers).json()["data"]
        response = client.put(f"/clientes/{criado['id']}", json={"tipo": "empresa"}, headers=headers)
        assert response.status_code == 422

    def test_inativar_cliente(self, client, headers, cliente):
        response = client.patch(f"/clientes/{cliente.id}/status", json={"status": "inativo"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "inativo"

        response = client.get("/clientes/", params={"status": "inativo"}, headers=headers)
        assert response.json()["data"]["total"] == 1

    def test_eliminar_e_restaurar(self, client, headers, cliente, db_session):
        response = client.delete(f"/clientes/{cliente.id}", headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["deleted_at"] is not None

        assert client.get(f"/clientes/{cliente.id}", headers=headers).status_code == 404
        assert client.get("/clientes/", headers=headers).json()["data"]["total"] == 0

        # O registo continua na base de dados
        assert db_session.query(Cliente).filter(Cliente.id == cliente.id).count() == 1

        response = client.post(f"/clientes/{cliente.id}/restaurar", headers=headers)
        assert response.status_code == 200
        assert response.json()["data"]["deleted_at"] is None

    def test_restaurar_cliente_ativo(self, client, headers, cliente):
        response = client.post(f"/clientes/{cliente.id}/restaurar", headers=headers)
        assert response.status_code == 422

    def test_nif_de_cliente_eliminado(self, client, headers, cliente):
        client.delete(f"/clientes/{cliente.id}", headers=headers)
        response = client.post(
            "/clientes/",
            json={"nome": "Novo", "nif": cliente.nif, "tipo": "empresa"},
            headers=headers
        )
        assert response.status_code == 422
        assert "Restaure" in response.json()["message"]
