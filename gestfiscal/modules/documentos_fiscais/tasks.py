"""
Tarefas periódicas de documentos fiscais
"""
from typing import Optional
from uuid import UUID
import logging

from gestfiscal.core.celery import celery_app
from gestfiscal.database.database import SessionLocal
from gestfiscal.modules.documentos_fiscais.service import DocumentoFiscalService

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def processar_adiantamentos_expirados(self, tenant_id: Optional[str] = None):
    """
    Marca como expiradas as faturas de adiantamento emitidas cujo
    vencimento já passou. Sem tenant_id percorre todos os tenants.
    """
    db = SessionLocal()
    try:
        total = DocumentoFiscalService(db).processar_adiantamentos_expirados(
            UUID(tenant_id) if tenant_id else None
        )
        return {"status": "success", "processados": total}
    except Exception as exc:
        logger.error(f"Falha ao processar adiantamentos expirados: {str(exc)}")
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))
        raise
    finally:
        db.close()
