#!/usr/bin/env python3
# run_scheduler.py
# Proceso programador del Redactor IA
# ===================================

"""
Arranca el programador (escaneos, publicación de programados y Facebook)
y se queda esperando hasta Ctrl+C o SIGTERM.

Uso:
    python run_scheduler.py             # Proceso de larga duración
    python run_scheduler.py --once      # Un solo ciclo y salir
"""

import argparse
import json
import signal
import sys
import threading

from config import DEFAULT_TENANT, validate_config
from src.scheduler.scan_scheduler import RedactorScheduler
from src.utils.logger import create_module_logger, setup_logging


def main(argv=None):
    parser = argparse.ArgumentParser(description="Programador del Redactor IA")
    parser.add_argument("--tenant", default=DEFAULT_TENANT)
    parser.add_argument("--once", action="store_true", help="Ejecutar un ciclo y salir")
    args = parser.parse_args(argv)

    setup_logging()
    logger = create_module_logger("run_scheduler")
    validate_config()

    scheduler = RedactorScheduler(tenant_id=args.tenant)

    if args.once:
        result = scheduler.run_once()
        print(json.dumps(result, indent=2, ensure_ascii=False, default=str))
        return 0

    stop = threading.Event()

    def _handle_signal(signum, _frame):
        logger.info(f"🛑 Señal {signum} recibida, deteniendo programador...")
        stop.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    scheduler.start()
    logger.info(f"📋 Estado: {scheduler.get_status()}")
    try:
        stop.wait()
    finally:
        scheduler.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
