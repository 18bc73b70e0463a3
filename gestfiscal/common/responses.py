"""
Envelope de resposta {success, message, data} e handlers de erro da API
"""
from typing import Any, Dict, Generic, List, Optional, TypeVar
import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RespostaApi(BaseModel, Generic[T]):
    success: bool = True
    message: str = "OK"
    data: Optional[T] = None


def resposta(data: Any = None, message: str = "OK") -> Dict[str, Any]:
    return {"success": True, "message": message, "data": data}


def erro_validacao(campo: str, mensagem: str) -> RequestValidationError:
    """Erro de validação de um campo, com o mesmo formato dos erros do pydantic."""
    return RequestValidationError([
        {"loc": ("body", campo), "msg": mensagem, "type": "value_error"}
    ])


def agrupar_erros(errors: List[Dict[str, Any]]) -> Dict[str, List[str]]:
    """Agrupa os erros por caminho do campo (ex.: itens.0.quantidade)."""
    agrupados: Dict[str, List[str]] = {}
    for erro in errors:
        loc = [str(parte) for parte in erro.get("loc", ())]
        if loc and loc[0] in ("body", "query", "path", "header"):
            loc = loc[1:]
        campo = ".".join(loc) or "__root__"
        msg = str(erro.get("msg", "Valor inválido"))
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        agrupados.setdefault(campo, []).append(msg)
    return agrupados


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Erro no pedido"
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": message},
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=jsonable_encoder({
            "success": False,
            "message": "Erro de validação",
            "errors": agrupar_erros(exc.errors())
        })
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": "Erro interno do servidor"}
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
