import logging

from codegen_cli.logging_utils import LOGGER_NAME, configure_logging


def test_file_receives_debug_records(tmp_path):
    log_path = configure_logging(log_dir=tmp_path)
    logging.getLogger(f"{LOGGER_NAME}.runner").debug("CMD npm install")

    for h in logging.getLogger(LOGGER_NAME).handlers:
        h.flush()
    assert log_path == tmp_path / "codegen-cli.log"
    assert "CMD npm install" in log_path.read_text(encoding="utf-8")


def test_console_handler_level_follows_verbosity(tmp_path):
    handler = logging.StreamHandler()

    configure_logging(handler, log_dir=tmp_path)
    assert handler.level == logging.WARNING

    configure_logging(handler, verbose=True, log_dir=tmp_path)
    assert handler.level == logging.INFO


def test_reconfiguring_replaces_handlers(tmp_path):
    configure_logging(logging.StreamHandler(), log_dir=tmp_path)
    configure_logging(logging.StreamHandler(), log_dir=tmp_path)

    assert len(logging.getLogger(LOGGER_NAME).handlers) == 2


def test_log_dir_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("CODEGEN_LOG_DIR", str(tmp_path / "logs"))

    log_path = configure_logging()

    assert log_path == tmp_path / "logs" / "codegen-cli.log"
    assert log_path.exists()
