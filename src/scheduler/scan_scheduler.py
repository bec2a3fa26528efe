# src/scheduler/scan_scheduler.py
# Programador de tareas del Redactor IA
# =====================================

"""
Tres trabajos sobre un ``BackgroundScheduler`` de APScheduler en hora de Cuba:

- escaneo de fuentes según la frecuencia configurada (cron);
- publicación de borradores programados, cada minuto;
- auto-publicador de Facebook, cada dos minutos.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from config.settings import DEFAULT_TENANT
from src.publishing import DraftPublisher, FacebookAutoPublisher
from src.scanner import ScanInProgressError, TopicScanner
from src.storage import DatabaseManager, get_database_manager
from src.utils.datetime_utils import CUBA_TZ
from src.utils.logger import create_module_logger

from .frequency import frequency_to_cron

logger = create_module_logger("scheduler")

SCAN_JOB_ID = "redactor-scan"
PUBLISH_JOB_ID = "redactor-publish-due"
FACEBOOK_JOB_ID = "redactor-facebook"
PUBLISH_INTERVAL_MINUTES = 1
FACEBOOK_INTERVAL_MINUTES = 2


class RedactorScheduler:
    def __init__(
        self,
        db_manager: Optional[DatabaseManager] = None,
        scanner: Optional[TopicScanner] = None,
        draft_publisher: Optional[DraftPublisher] = None,
        facebook_publisher: Optional[FacebookAutoPublisher] = None,
        tenant_id: str = DEFAULT_TENANT,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self.db = db_manager or get_database_manager()
        self.tenant_id = tenant_id
        self.scanner = scanner or TopicScanner(self.db)
        self.draft_publisher = draft_publisher or DraftPublisher(self.db)
        self.facebook_publisher = facebook_publisher or FacebookAutoPublisher(self.db)
        self.scheduler = scheduler or BackgroundScheduler(timezone=CUBA_TZ)
        self.current_frequency: Optional[str] = None

    # Trabajos
    # ========

    def run_scan_job(self) -> Dict[str, Any]:
        config = self.db.get_ai_config(self.tenant_id)
        if config.is_scanning:
            logger.info("⏭️ Escaneo programado omitido: ya hay uno en curso")
            return {"skipped": True, "reason": "scan_in_progress"}

        scan_type = "cuba_estricto" if config.strict_cuba else "scheduled"
        logger.info(f"⏰ Escaneo programado ({scan_type}) para tenant {self.tenant_id}")
        try:
            topics = self.scanner.scan_sources(self.tenant_id, scan_type=scan_type)
        except ScanInProgressError:
            logger.info("⏭️ Escaneo programado omitido: candado ocupado")
            return {"skipped": True, "reason": "scan_in_progress"}
        except Exception as exc:
            logger.error(f"❌ Error en escaneo programado: {exc}")
            return {"skipped": False, "error": str(exc)}
        return {"skipped": False, "topics": len(topics)}

    def run_publish_job(self, now: Optional[datetime] = None) -> Dict[str, int]:
        try:
            return self.draft_publisher.publish_scheduled_drafts(now)
        except Exception as exc:
            logger.error(f"❌ Error publicando borradores programados: {exc}")
            return {"found": 0, "published": 0, "failed": 0, "released": 0, "skipped": 0}

    def run_facebook_job(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        try:
            result = self.facebook_publisher.run(self.tenant_id, now)
        except Exception as exc:
            logger.error(f"❌ Error en el auto-publicador de Facebook: {exc}")
            return {"published": False, "reason": "system_error", "error": str(exc)}
        if result.get("published"):
            logger.info(f"📘 Facebook: publicada noticia {result.get('newsId')}")
        else:
            logger.debug(f"📘 Facebook: {result.get('reason')}")
        return result

    def run_once(self) -> Dict[str, Any]:
        """Un ciclo completo sin arrancar el programador."""
        return {
            "scan": self.run_scan_job(),
            "publish": self.run_publish_job(),
            "facebook": self.run_facebook_job(),
        }

    # Control
    # =======

    def reschedule_scan(self, frequency: Optional[str]) -> Optional[str]:
        """Reprograma el escaneo; ``manual`` lo elimina. Devuelve el cron aplicado."""
        cron = frequency_to_cron(frequency)
        if self.scheduler.get_job(SCAN_JOB_ID):
            self.scheduler.remove_job(SCAN_JOB_ID)
        self.current_frequency = frequency

        if cron is None:
            logger.info("⏸️ Escaneo automático desactivado (frecuencia manual)")
            return None

        self.scheduler.add_job(
            self.run_scan_job,
            CronTrigger.from_crontab(cron, timezone=CUBA_TZ),
            id=SCAN_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        logger.info(f"📅 Escaneo programado: {frequency} ({cron})")
        return cron

    def start(self):
        if self.scheduler.running:
            logger.warning("⚠️ El programador ya está en marcha")
            return
        config = self.db.get_ai_config(self.tenant_id)
        self.reschedule_scan(config.scan_frequency)
        self.scheduler.add_job(
            self.run_publish_job,
            "interval",
            minutes=PUBLISH_INTERVAL_MINUTES,
            id=PUBLISH_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.run_facebook_job,
            "interval",
            minutes=FACEBOOK_INTERVAL_MINUTES,
            id=FACEBOOK_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("🚀 Programador del Redactor IA iniciado (America/Havana)")

    def shutdown(self, wait: bool = False):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("🛑 Programador detenido")

    def get_status(self) -> Dict[str, Any]:
        jobs = {}
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs[job.id] = next_run.isoformat() if next_run else None
        return {
            "running": bool(self.scheduler.running),
            "frequency": self.current_frequency,
            "cron": frequency_to_cron(self.current_frequency) if self.current_frequency else None,
            "jobs": jobs,
        }
