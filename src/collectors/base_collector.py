# src/collectors/base_collector.py
# Clase base para los colectores del escáner de temas
# ===================================================

"""
Contrato común de los colectores del Redactor IA.

Cada colector (RSS, NewsAPI) recibe un identificador de fuente y su
configuración, y devuelve un ``CollectorResult`` con los artículos ya
convertidos a ``ScannedArticle``. La clase base se encarga de lo que todos
comparten: logs estructurados con campos de correlación, claves de
idempotencia por corrida, la cola de mensajes muertos (DLQ) y el reporte de
una recolección sobre varias fuentes.
"""

import hashlib
import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from config.settings import DLQ_DIR

from src.contracts import ScannedArticle
from src.utils.logger import get_logger


@dataclass
class CollectorResult:
    """Resultado de recolectar una fuente."""

    source_id: str
    success: bool = False
    articles: List[ScannedArticle] = field(default_factory=list)
    error_message: Optional[str] = None
    status_code: Optional[int] = None
    processing_time: float = 0.0
    skipped: bool = False

    @property
    def articles_found(self) -> int:
        return len(self.articles)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "success": self.success,
            "articles_found": self.articles_found,
            "error_message": self.error_message,
            "status_code": self.status_code,
            "processing_time": round(self.processing_time, 3),
            "skipped": self.skipped,
        }


class BaseCollector(ABC):
    """
    Clase base abstracta de los colectores.

    Usa el patrón Template Method: ``collect_from_multiple_sources`` recorre
    las fuentes y delega en ``collect_from_source``, que cada subclase
    implementa. Un fallo en una fuente se registra y no detiene al resto.
    """

    def __init__(self, logger_factory=None) -> None:
        self.collector_type = self.__class__.__name__
        self.start_time: Optional[datetime] = None
        self.stats = self._empty_stats()

        self.logger_factory = logger_factory or get_logger()
        self.module_logger = self.logger_factory.create_module_logger(
            f"collectors.{self.collector_type.lower()}"
        )
        self._active_trace_id: Optional[str] = None
        self._active_session_id: Optional[str] = None

        # Claves de trabajos ya ejecutados en esta corrida
        self._job_keys_seen: set[str] = set()

    @abstractmethod
    def collect_from_source(
        self, source_id: str, source_config: Dict[str, Any]
    ) -> CollectorResult:
        """
        Recolecta una fuente.

        Args:
            source_id: Identificador único de la fuente
            source_config: Configuración de la fuente (``name``, ``url``,
                ``candidates``, ``language``, ``category``)
        """

    def collect_from_multiple_sources(
        self,
        sources_config: Dict[str, Dict[str, Any]],
        *,
        session_id: Optional[str] = None,
        trace_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Recolecta varias fuentes y devuelve el reporte con los artículos."""

        self._set_runtime_context(session_id=session_id, trace_id=trace_id)
        self.start_time = datetime.now(timezone.utc)
        self.stats = self._empty_stats()

        self._emit_log(
            "info",
            "collector.batch.start",
            latency=0.0,
            details={"sources": len(sources_config)},
        )

        results: Dict[str, CollectorResult] = {}
        articles: List[ScannedArticle] = []

        for source_id, source_config in sources_config.items():
            try:
                result = self.collect_from_source(source_id, source_config)
            except Exception as exc:
                result = CollectorResult(
                    source_id=source_id,
                    error_message=f"Error inesperado: {exc}",
                )
                self._emit_log(
                    "error",
                    "collector.source.exception",
                    source_id=source_id,
                    details={"error": str(exc)},
                )

            if not validate_collector_result(result):
                # Éxito con mensaje de error: no se confía en sus artículos
                self._emit_log(
                    "warning",
                    "collector.source.inconsistent",
                    source_id=source_id,
                    details={"error_message": result.error_message},
                )
                result.success = False
                result.articles = []

            results[source_id] = result
            articles.extend(result.articles)
            self._update_global_stats(result)

            self._emit_log(
                "info" if result.success else "warning",
                "collector.source.completed" if result.success else "collector.source.failed",
                source_id=source_id,
                latency=result.processing_time,
                details={
                    "articles_found": result.articles_found,
                    "error_message": result.error_message,
                },
            )

        end_time = datetime.now(timezone.utc)
        self.stats["processing_time_seconds"] = (end_time - self.start_time).total_seconds()

        report = self._generate_collection_report(results)
        report["articles"] = articles

        self._emit_log(
            "info",
            "collector.batch.completed",
            latency=self.stats["processing_time_seconds"],
            details={
                "articles_found": self.stats["total_articles_found"],
                "sources_processed": self.stats["total_sources_processed"],
                "errors": self.stats["total_errors"],
            },
        )

        self._reset_runtime_context()
        return report

    def _set_runtime_context(
        self, *, session_id: Optional[str], trace_id: Optional[str]
    ) -> None:
        self._active_session_id = session_id
        self._active_trace_id = trace_id

    def _reset_runtime_context(self) -> None:
        self._active_session_id = None
        self._active_trace_id = None

    def _build_log_payload(
        self,
        event: str,
        *,
        source_id: Optional[str] = None,
        latency: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Payload de log estructurado con campos de correlación."""

        payload: Dict[str, Any] = {
            "event": event,
            "trace_id": self._active_trace_id,
            "session_id": self._active_session_id,
            "source_id": source_id,
            "collector_type": self.collector_type,
            "latency": latency,
        }
        if details:
            payload["details"] = details
        return {key: value for key, value in payload.items() if value is not None}

    def _emit_log(
        self,
        level: str,
        event: str,
        *,
        source_id: Optional[str] = None,
        latency: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        payload = self._build_log_payload(
            event, source_id=source_id, latency=latency, details=details
        )
        log_method = getattr(self.module_logger, level, self.module_logger.info)
        log_method(payload)

    @staticmethod
    def _empty_stats() -> Dict[str, Any]:
        return {
            "total_sources_processed": 0,
            "total_articles_found": 0,
            "total_errors": 0,
            "processing_time_seconds": 0.0,
        }

    def _update_global_stats(self, result: CollectorResult) -> None:
        self.stats["total_sources_processed"] += 1
        self.stats["total_articles_found"] += result.articles_found
        if not result.success:
            self.stats["total_errors"] += 1

    def _generate_collection_report(
        self, results: Dict[str, CollectorResult]
    ) -> Dict[str, Any]:
        processed = self.stats["total_sources_processed"]
        successful = sum(1 for r in results.values() if r.success)
        success_rate = (successful / processed) * 100 if processed else 0.0

        return {
            "collection_summary": {
                "collector_type": self.collector_type,
                "start_time": self.start_time.isoformat() if self.start_time else None,
                "end_time": datetime.now(timezone.utc).isoformat(),
                "duration_seconds": self.stats["processing_time_seconds"],
                "sources_processed": processed,
                "articles_found": self.stats["total_articles_found"],
                "errors_encountered": self.stats["total_errors"],
                "success_rate_percent": round(success_rate, 2),
            },
            "source_details": {sid: r.as_dict() for sid, r in results.items()},
            "failed_sources": [
                {"source_id": sid, "error_message": r.error_message}
                for sid, r in results.items()
                if not r.success
            ],
            "recommendations": self._generate_recommendations(results),
        }

    def _generate_recommendations(self, results: Dict[str, CollectorResult]) -> List[str]:
        recommendations = []
        failed = [sid for sid, r in results.items() if not r.success]
        if failed and len(failed) > len(results) * 0.2:
            recommendations.append(
                f"🔧 Revisar configuración de fuentes - {len(failed)} fuentes fallaron"
            )
        empty = [sid for sid, r in results.items() if r.success and not r.articles]
        if empty:
            recommendations.append(
                f"📭 {len(empty)} fuentes sin artículos - revisar feeds o ventana de frescura"
            )
        return recommendations

    # Idempotencia
    # ============
    def _make_job_key(self, source_id: str, target: str) -> str:
        raw = f"{self.collector_type}|{source_id}|{target}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def _is_duplicate_job(self, job_key: str) -> bool:
        return job_key in self._job_keys_seen

    def _register_job(self, job_key: str) -> None:
        self._job_keys_seen.add(job_key)

    def reset_jobs(self) -> None:
        """Olvida las claves de idempotencia y las estadísticas (nueva corrida del escáner)."""
        self._job_keys_seen.clear()
        self.stats = self._empty_stats()

    # Dead-letter queue
    # =================
    def _send_to_dlq(
        self,
        source_id: str,
        url: str,
        reason: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> Path:
        ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        safe_hash = hashlib.sha256(f"{source_id}|{url}|{ts}".encode("utf-8")).hexdigest()[:12]
        path = Path(DLQ_DIR) / f"{self.collector_type}_{source_id}_{safe_hash}.json"
        payload = {
            "timestamp": ts,
            "collector": self.collector_type,
            "source_id": source_id,
            "url": url,
            "reason": reason,
            "context": context or {},
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        except OSError as exc:
            self._emit_log(
                "error",
                "collector.dlq.write_failed",
                source_id=source_id,
                details={"error": str(exc), "path": str(path)},
            )
        return path

    def get_stats(self) -> Dict[str, Any]:
        return self.stats.copy()

    def is_healthy(self) -> bool:
        """Saludable si menos del 30% de las fuentes fallaron."""
        if self.stats["total_sources_processed"] == 0:
            return True
        error_rate = self.stats["total_errors"] / self.stats["total_sources_processed"]
        return error_rate < 0.3

    @staticmethod
    def _elapsed(start: float) -> float:
        return time.time() - start


def validate_collector_result(result: CollectorResult) -> bool:
    """Un resultado exitoso nunca trae mensaje de error."""
    return isinstance(result, CollectorResult) and not (result.success and result.error_message)
