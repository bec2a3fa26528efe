# src/utils/logger.py
# Sistema de logging del Redactor IA
# ==================================

"""
Configuración central de logging con loguru.

Hay dos destinos: la consola (colorida y detallada en modo debug, compacta
en producción) y un archivo rotativo comprimido. Los servicios obtienen un
logger con contexto mediante ``create_module_logger`` y los escaneos usan
``ScanSessionLogger`` para que cada línea lleve el ``scan_id``.
"""

import functools
import sys
import time
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

from config.settings import DEBUG, LOGGING_CONFIG


class RedactorLogger:
    """
    Configurador de logging para todos los procesos (API, CLI y scheduler).

    Se configura una sola vez por proceso; las llamadas posteriores a
    ``configure_logging`` sin ``force`` no hacen nada.
    """

    def __init__(self):
        self.is_configured = False
        self.log_file_path = None

    def configure_logging(self, config: Optional[Dict[str, Any]] = None, force: bool = False):
        """
        Instala los handlers de consola y archivo.

        Args:
            config: Configuración de logging; por defecto LOGGING_CONFIG
            force: Reconfigura aunque ya se haya configurado antes
        """
        if self.is_configured and not force:
            logger.debug("Logger ya configurado, omitiendo reconfiguración")
            return

        config = config or LOGGING_CONFIG
        logger.remove()
        self._configure_console_handler(config)
        if config.get("file_path"):
            self._configure_file_handler(config)

        self.is_configured = True
        logger.info("🎯 Sistema de logging configurado")
        logger.debug(f"Configuración aplicada: {config}")

    def _configure_console_handler(self, config: Dict[str, Any]):
        if DEBUG:
            console_format = (
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{extra[module]}</cyan> | "
                "<level>{message}</level>"
            )
            console_level = "DEBUG"
        else:
            console_format = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}"
            console_level = config.get("level", "INFO")

        logger.configure(extra={"module": "-"})
        logger.add(
            sys.stdout,
            format=console_format,
            level=console_level,
            colorize=True,
            backtrace=DEBUG,
            diagnose=DEBUG,
            filter=_quiet_third_party,
        )

    def _configure_file_handler(self, config: Dict[str, Any]):
        self.log_file_path = Path(config["file_path"])
        self.log_file_path.parent.mkdir(parents=True, exist_ok=True)

        file_format = (
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{process.id: <6} | "
            "{extra[module]} | "
            "{name}:{function}:{line} | "
            "{message}"
        )
        logger.add(
            str(self.log_file_path),
            format=file_format,
            level=config.get("level", "INFO"),
            rotation=config.get("max_file_size", "10 MB"),
            retention=config.get("retention", "30 days"),
            compression="gz",
            enqueue=True,
            backtrace=True,
            diagnose=False,  # los prompts y tokens no deben terminar en disco
        )

    def create_module_logger(self, module_name: str) -> Any:
        if not self.is_configured:
            self.configure_logging()
        return create_module_logger(module_name)

    def log_system_startup(self, version: str = "1.0", config_summary: Dict[str, Any] = None):
        logger.info("=" * 60)
        logger.info("🚀 REDACTOR IA INICIADO")
        logger.info("=" * 60)
        logger.info(f"Versión: {version}")
        logger.info(f"Modo debug: {DEBUG}")
        if config_summary:
            logger.info("Configuración principal:")
            for key, value in config_summary.items():
                logger.info(f"  {key}: {value}")
        if self.log_file_path:
            logger.info(f"Logs guardándose en: {self.log_file_path}")
        logger.info("=" * 60)

    def log_performance_metrics(self, metrics: Dict[str, Any], context: str = ""):
        logger.info(f"📊 MÉTRICAS {context}".rstrip())
        for metric, value in metrics.items():
            if isinstance(value, float):
                logger.info(f"  {metric}: {value:.3f}")
            else:
                logger.info(f"  {metric}: {value}")

    def log_error_with_context(self, error: Exception, context: Dict[str, Any] = None):
        logger.error(f"💥 ERROR: {error}")
        for key, value in (context or {}).items():
            logger.error(f"  {key}: {value}")
        logger.exception("Stack trace completo:")


def _quiet_third_party(record) -> bool:
    """Oculta el DEBUG de httpx/openai/apscheduler fuera del modo debug."""
    if DEBUG:
        return True
    noisy = ("httpx", "httpcore", "openai", "anthropic", "apscheduler")
    return not (record["name"].startswith(noisy) and record["level"].no < 20)


def create_module_logger(module_name: str) -> Any:
    """Logger de loguru con el módulo en ``extra`` (no fuerza configuración)."""
    return logger.bind(module=module_name)


class ScanSessionLogger:
    """
    Logger de una corrida del escáner.

    Todas las líneas llevan ``scan_id`` y ``tenant_id`` en ``extra`` para
    poder seguir un escaneo completo en el archivo de logs.
    """

    def __init__(self, scan_id: str, tenant_id: str, scan_type: str = "manual"):
        self.scan_id = scan_id
        self.tenant_id = tenant_id
        self.scan_type = scan_type
        self.logger = logger.bind(module="scanner", scan_id=scan_id, tenant_id=tenant_id)

    def log_scan_start(self, config_summary: Dict[str, Any]):
        self.logger.info(f"🎯 ESCANEO INICIADO ({self.scan_type}) tenant={self.tenant_id}")
        for key, value in config_summary.items():
            self.logger.debug(f"  {key}: {value}")

    def log_origin(self, origin: str, count: int, error: Optional[str] = None):
        if error:
            self.logger.warning(f"❌ {origin}: {error}")
        else:
            self.logger.info(f"✅ {origin}: {count} artículos")

    def log_stage(self, stage: str, before: int, after: int):
        self.logger.info(f"🧹 {stage}: {before} → {after}")

    def log_scan_summary(self, summary: Dict[str, Any]):
        self.logger.info("📈 RESUMEN DE ESCANEO:")
        self.logger.info(f"  • Artículos recolectados: {summary.get('articles_collected', 0)}")
        self.logger.info(f"  • Temas agrupados: {summary.get('topics_grouped', 0)}")
        self.logger.info(f"  • Temas guardados: {summary.get('topics_saved', 0)}")
        self.logger.info(f"  • Duplicados omitidos: {summary.get('duplicates_skipped', 0)}")
        self.logger.info(f"  • Tiempo total: {summary.get('duration_seconds', 0):.1f}s")


# Instancia global del configurador de logging
# ============================================
_logger_instance = None


def get_logger() -> RedactorLogger:
    """Singleton del configurador; lo configura en el primer uso."""
    global _logger_instance
    if _logger_instance is None:
        _logger_instance = RedactorLogger()
        _logger_instance.configure_logging()
    return _logger_instance


def setup_logging(config: Optional[Dict[str, Any]] = None) -> RedactorLogger:
    logger_instance = get_logger()
    if config:
        logger_instance.configure_logging(config, force=True)
    return logger_instance


def log_function_calls(logger_instance=None):
    """Decorador que registra duración y errores de la función decorada."""

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            func_logger = logger_instance or logger
            func_logger.debug(f"🔄 Ejecutando {func.__name__}")
            start_time = time.time()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration = time.time() - start_time
                func_logger.error(f"❌ {func.__name__} falló después de {duration:.3f}s: {e}")
                raise
            func_logger.debug(f"✅ {func.__name__} completada en {time.time() - start_time:.3f}s")
            return result

        return wrapper

    return decorator
