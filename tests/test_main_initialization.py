"""Tests for RedactorSystem initialization and the command line entry point."""

import pytest

import main
from main import RedactorSystem, build_parser

from conftest import make_topic_payload


class MockLogger:
    """Logger stub that records startup and error events."""

    def __init__(self):
        self.startup = None
        self.errors = []
        self.metrics = []

    def log_system_startup(self, **kwargs):
        self.startup = kwargs

    def log_error_with_context(self, error, context=None):
        self.errors.append((error, context))

    def log_performance_metrics(self, metrics, context=""):
        self.metrics.append((context, metrics))


@pytest.fixture()
def test_logger(monkeypatch):
    logger = MockLogger()
    monkeypatch.setattr(main, "setup_logging", lambda: logger)
    return logger


@pytest.fixture()
def database_override(tmp_path):
    return {"database": {"type": "sqlite", "path": tmp_path / "cli.db"}}


def test_initialize_wires_services(test_logger, database_override):
    system = RedactorSystem("levantatecuba", database_override)

    assert system.initialize() is True

    assert system.is_initialized
    assert system.scanner is not None
    assert system.generator.stats is system.stats
    summary = test_logger.startup["config_summary"]
    assert summary["tenant"] == "levantatecuba"
    assert summary["database_type"] == "sqlite"
    assert summary["pending_topics"] == 0


def test_initialize_reports_failures(test_logger, monkeypatch, database_override):
    def broken_config():
        raise RuntimeError("config rota")

    monkeypatch.setattr(main, "validate_config", broken_config)
    system = RedactorSystem(config_override=database_override)

    assert system.initialize() is False
    assert not system.is_initialized
    error, context = test_logger.errors[0]
    assert str(error) == "config rota"
    assert context["initialization_phase"] == "failed"


def test_operations_require_initialization():
    with pytest.raises(RuntimeError, match="no inicializado"):
        RedactorSystem().get_pending_topics()


def test_pending_topics_and_statistics(test_logger, database_override):
    system = RedactorSystem("levantatecuba", database_override)
    system.initialize()
    system.db_manager.save_topics([make_topic_payload(impacto=80), make_topic_payload(impacto=40)])

    topics = system.get_pending_topics(limit=1)
    stats = system.get_statistics()

    assert [topic["impacto"] for topic in topics] == [80]
    assert stats["system_info"]["tenant"] == "levantatecuba"
    assert stats["database_health"]["pending_topics"] == 2
    assert stats["usage"]["scans"] == 0
    assert system.suggest_frequency()["current"] == "3h"


def test_parser_requires_exactly_one_action():
    parser = build_parser()

    args = parser.parse_args(["--generate", "3", "5", "--mode", "opinion"])
    assert args.generate == [3, 5]
    assert args.mode == "opinion"

    with pytest.raises(SystemExit):
        parser.parse_args([])
    with pytest.raises(SystemExit):
        parser.parse_args(["--scan", "--stats"])


def test_main_lists_topics(test_logger, monkeypatch, database_override, capsys):
    monkeypatch.setattr(main, "create_system", lambda tenant: RedactorSystem(tenant, database_override))

    main.main(["--topics", "5"])

    output = capsys.readouterr().out
    assert "0 temas pendientes" in output
    assert "Ejecución completada" in output


def test_main_exits_when_initialization_fails(monkeypatch, capsys):
    class FailingSystem:
        def initialize(self):
            return False

    monkeypatch.setattr(main, "create_system", lambda tenant: FailingSystem())

    with pytest.raises(SystemExit) as excinfo:
        main.main(["--stats"])

    assert excinfo.value.code == 1
    assert "Error durante inicialización" in capsys.readouterr().out


class StubScanner:
    def __init__(self, topics=None, error=None):
        self.topics = topics or []
        self.error = error
        self.calls = []

    def scan_sources(self, tenant_id, scan_type="manual"):
        self.calls.append((tenant_id, scan_type))
        if self.error:
            raise self.error
        return self.topics


def test_run_scan_records_metrics(test_logger, database_override):
    system = RedactorSystem("levantatecuba", database_override)
    system.initialize()
    topic = system.db_manager.save_topics([make_topic_payload()])[0]
    system.scanner = StubScanner([topic])

    result = system.run_scan(strict=True)

    assert [item["id"] for item in result] == [topic.id]
    assert system.scanner.calls == [("levantatecuba", "cuba_estricto")]
    context, metrics = test_logger.metrics[0]
    assert context == "escaneo cuba_estricto"
    assert metrics["temas_guardados"] == 1
    assert metrics["duracion_segundos"] >= 0


def test_run_scan_errors_propagate_without_metrics(test_logger, database_override):
    system = RedactorSystem("levantatecuba", database_override)
    system.initialize()
    system.scanner = StubScanner(error=RuntimeError("feeds caídos"))

    with pytest.raises(RuntimeError, match="feeds caídos"):
        system.run_scan()

    assert test_logger.metrics == []
