# main.py
# Punto de entrada principal del Redactor IA
# ==========================================

"""
Coordinador del Redactor IA para uso desde línea de comandos.

``RedactorSystem`` configura logging, valida la configuración, abre la
base de datos y conecta los servicios: escáner de temas, generador de
borradores, publicador, auto-publicador de Facebook y estadísticas.

Uso:
    python main.py --scan [--strict]
    python main.py --generate 12 15 --mode opinion
    python main.py --publish-due
    python main.py --auto-schedule
    python main.py --facebook
    python main.py --stats
    python main.py --topics 10
    python main.py --suggest-frequency
    python main.py --cleanup 30
    python main.py --serve --host 0.0.0.0 --port 8000
"""

import argparse
import json
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from config import API_CONFIG, DEFAULT_TENANT, validate_config
from config.version import PROJECT_VERSION
from src.storage import DatabaseManager, get_database_manager
from src.utils.logger import log_function_calls, setup_logging


class RedactorSystem:
    """Reúne los servicios del pipeline editorial detrás de una interfaz simple."""

    def __init__(self, tenant_id: str = DEFAULT_TENANT, config_override: Optional[Dict[str, Any]] = None):
        self.system_id = str(uuid.uuid4())[:8]
        self.start_time = datetime.now(timezone.utc)
        self.tenant_id = tenant_id
        self.config_override = config_override or {}

        self.logger = None
        self.db_manager = None
        self.scanner = None
        self.generator = None
        self.publisher = None
        self.facebook = None
        self.stats = None

        self.is_initialized = False

    def initialize(self) -> bool:
        """
        Prepara logging, configuración, base de datos y servicios.

        Returns:
            True si todo quedó listo, False si algo falló (el error queda en el log)
        """
        try:
            self.logger = setup_logging()
            validate_config()

            database_config = self.config_override.get("database")
            self.db_manager = DatabaseManager(database_config) if database_config else get_database_manager()
            self._setup_services()

            health = self.db_manager.get_health_status()
            self.logger.log_system_startup(
                version=PROJECT_VERSION,
                config_summary={
                    "system_id": self.system_id,
                    "tenant": self.tenant_id,
                    "database_type": health["database_type"],
                    "pending_topics": health["pending_topics"],
                    "pending_drafts": health["pending_drafts"],
                },
            )
            self.is_initialized = True
            return True

        except Exception as e:
            if self.logger:
                self.logger.log_error_with_context(
                    e, {"system_id": self.system_id, "initialization_phase": "failed"}
                )
            return False

    def _setup_services(self):
        from src.generation import DraftGenerator
        from src.publishing import DraftPublisher, FacebookAutoPublisher
        from src.scanner import TopicScanner
        from src.stats import StatsService

        self.stats = StatsService(self.db_manager)
        self.scanner = TopicScanner(self.db_manager)
        self.generator = DraftGenerator(self.db_manager, stats=self.stats)
        self.publisher = DraftPublisher(self.db_manager)
        self.facebook = FacebookAutoPublisher(self.db_manager)

    def _require_initialized(self):
        if not self.is_initialized:
            raise RuntimeError("Sistema no inicializado. Ejecutar initialize() primero.")

    # Operaciones
    # ===========

    @log_function_calls()
    def run_scan(self, strict: bool = False) -> List[Dict[str, Any]]:
        self._require_initialized()
        scan_type = "cuba_estricto" if strict else "manual"
        start = time.time()
        topics = self.scanner.scan_sources(self.tenant_id, scan_type=scan_type)
        self.logger.log_performance_metrics(
            {"temas_guardados": len(topics), "duracion_segundos": time.time() - start},
            context=f"escaneo {scan_type}",
        )
        return [topic.to_dict() for topic in topics]

    @log_function_calls()
    def generate(self, topic_ids: List[int], mode: str = "factual", format_style: str = "standard"):
        self._require_initialized()
        drafts = self.generator.generate_drafts(
            topic_ids, user="cli", mode=mode, format_style=format_style, tenant_id=self.tenant_id
        )
        return [draft.to_dict() for draft in drafts]

    @log_function_calls()
    def publish_due(self) -> Dict[str, int]:
        self._require_initialized()
        return self.publisher.publish_scheduled_drafts()

    def auto_schedule(self) -> List[Dict[str, Any]]:
        self._require_initialized()
        return self.publisher.auto_schedule_drafts(self.tenant_id)

    def run_facebook(self) -> Dict[str, Any]:
        self._require_initialized()
        return self.facebook.run(self.tenant_id)

    def get_statistics(self) -> Dict[str, Any]:
        self._require_initialized()
        return {
            "system_info": {
                "system_id": self.system_id,
                "uptime_seconds": (datetime.now(timezone.utc) - self.start_time).total_seconds(),
                "tenant": self.tenant_id,
            },
            "database_health": self.db_manager.get_health_status(),
            "usage": self.stats.get_usage_stats(tenant_id=self.tenant_id),
        }

    def get_pending_topics(self, limit: int = 10) -> List[Dict[str, Any]]:
        self._require_initialized()
        return [topic.to_dict() for topic in self.db_manager.get_topics("pending", self.tenant_id, limit)]

    def suggest_frequency(self) -> Dict[str, Any]:
        self._require_initialized()
        return self.stats.suggest_frequency(self.tenant_id)

    def cleanup(self, days_to_keep: int) -> Dict[str, Any]:
        self._require_initialized()
        return self.db_manager.cleanup_old_data(days_to_keep, self.tenant_id)


# Funciones de utilidad para uso externo
# =====================================


def create_system(tenant_id: str = DEFAULT_TENANT, config_override: Optional[Dict[str, Any]] = None) -> RedactorSystem:
    return RedactorSystem(tenant_id, config_override)


def serve(host: str, port: int):
    import uvicorn

    from src.serving import create_app

    uvicorn.run(create_app(), host=host, port=port)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Redactor IA")
    parser.add_argument("--tenant", default=DEFAULT_TENANT, help="Tenant sobre el que operar")

    actions = parser.add_mutually_exclusive_group(required=True)
    actions.add_argument("--scan", action="store_true", help="Escanear fuentes y guardar temas")
    actions.add_argument("--generate", nargs="+", type=int, metavar="TOPIC_ID", help="Generar borradores")
    actions.add_argument("--publish-due", action="store_true", help="Publicar borradores programados vencidos")
    actions.add_argument("--auto-schedule", action="store_true", help="Programar borradores pendientes")
    actions.add_argument("--facebook", action="store_true", help="Ejecutar una vuelta del auto-publicador")
    actions.add_argument("--stats", action="store_true", help="Mostrar estadísticas del sistema")
    actions.add_argument("--topics", type=int, metavar="N", help="Listar N temas pendientes")
    actions.add_argument("--suggest-frequency", action="store_true", help="Sugerir frecuencia de escaneo")
    actions.add_argument("--cleanup", type=int, metavar="DAYS", help="Limpiar datos más viejos que DAYS")
    actions.add_argument("--serve", action="store_true", help="Levantar la API HTTP")

    parser.add_argument("--strict", action="store_true", help="Escaneo estricto de Cuba")
    parser.add_argument("--mode", choices=("factual", "opinion"), default="factual")
    parser.add_argument("--format-style", choices=("standard", "lectura_viva"), default="standard")
    parser.add_argument("--host", default=API_CONFIG.get("host", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=API_CONFIG.get("port", 8000))
    return parser


def _print_json(data: Any):
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def main(argv: Optional[List[str]] = None):
    """Función principal para ejecución desde línea de comandos."""
    args = build_parser().parse_args(argv)

    if args.serve:
        print(f"🌐 Sirviendo API en http://{args.host}:{args.port}")
        serve(args.host, args.port)
        return

    try:
        system = create_system(args.tenant)

        print("🔧 Inicializando sistema...")
        if not system.initialize():
            print("❌ Error durante inicialización")
            sys.exit(1)

        if args.scan:
            topics = system.run_scan(strict=args.strict)
            print(f"\n🔎 {len(topics)} temas nuevos:")
            for i, topic in enumerate(topics, 1):
                print(f"  {i}. [{topic['impacto']}] {topic['titulo_sugerido'][:80]}")

        elif args.generate:
            drafts = system.generate(args.generate, mode=args.mode, format_style=args.format_style)
            print(f"\n✍️ {len(drafts)}/{len(args.generate)} borradores generados")
            for draft in drafts:
                print(f"  • #{draft['id']} {draft['titulo'][:80]}")

        elif args.publish_due:
            result = system.publish_due()
            print(f"\n📅 Programados: {result['published']}/{result['found']} publicados, {result['failed']} fallidos")

        elif args.auto_schedule:
            scheduled = system.auto_schedule()
            print(f"\n🗓️ {len(scheduled)} borradores programados")
            for item in scheduled:
                print(f"  • #{item['id']} → {item['scheduled_at']}")

        elif args.facebook:
            _print_json(system.run_facebook())

        elif args.stats:
            print("\n📊 ESTADÍSTICAS DEL SISTEMA:")
            _print_json(system.get_statistics())

        elif args.topics is not None:
            topics = system.get_pending_topics(args.topics)
            print(f"\n📰 {len(topics)} temas pendientes:")
            for i, topic in enumerate(topics, 1):
                print(f"  {i}. #{topic['id']} [{topic['impacto']}] {topic['titulo_sugerido'][:80]}")

        elif args.suggest_frequency:
            suggestion = system.suggest_frequency()
            print(f"\n⏱️ Actual: {suggestion['current']} → sugerida: {suggestion['suggested']}")
            print(f"  {suggestion['reason']}")

        elif args.cleanup is not None:
            _print_json(system.cleanup(args.cleanup))

        print("\n✅ Ejecución completada exitosamente!")

    except KeyboardInterrupt:
        print("\n⚠️  Ejecución interrumpida por usuario")
        sys.exit(1)
    except Exception as e:
        print(f"\n❌ Error durante ejecución: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
