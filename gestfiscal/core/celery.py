"""
Configuração do Celery para tarefas em segundo plano
"""
from celery import Celery
from celery.schedules import crontab
import logging

from gestfiscal.core.config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "gestfiscal",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "gestfiscal.modules.documentos_fiscais.tasks",
    ]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Africa/Luanda",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutos
    task_soft_time_limit=25 * 60,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    result_expires=3600,

    task_routes={
        "gestfiscal.modules.documentos_fiscais.tasks.*": {"queue": "fiscal"},
    },

    beat_schedule={
        "processar-adiantamentos-expirados": {
            "task": "gestfiscal.modules.documentos_fiscais.tasks.processar_adiantamentos_expirados",
            "schedule": crontab(hour=0, minute=5),  # Diariamente
        },
    }
)


if __name__ == "__main__":
    celery_app.start()
