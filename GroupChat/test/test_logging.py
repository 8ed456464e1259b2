"""
Tests for the logging presets.
"""

import logging

from GroupChat.core.logging import (
    ColoredFormatter,
    LogConfig,
    auto_configure,
    configure_logging,
    create_testing_config,
    get_logging_manager,
)


class TestLoggingManager:

    def teardown_method(self):
        configure_logging(create_testing_config())

    def test_singleton(self):
        assert get_logging_manager() is get_logging_manager()

    def test_reconfigure_replaces_handlers(self):
        root = logging.getLogger()
        configure_logging(LogConfig(level="INFO", file_output=False))
        before = len(root.handlers)

        configure_logging(LogConfig(level="WARNING", file_output=False))

        assert len(root.handlers) == before
        assert root.level == logging.WARNING

    def test_file_output(self, tmp_path):
        configure_logging(LogConfig(level="INFO", log_dir=str(tmp_path), console_output=False))

        logging.getLogger("GroupChat.test").error("written to disk")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "written to disk" in (tmp_path / "groupchat.log").read_text(encoding="utf-8")
        assert "written to disk" in (tmp_path / "groupchat_errors.log").read_text(encoding="utf-8")

    def test_auto_configure_from_env(self, monkeypatch):
        monkeypatch.setenv("GROUPCHAT_ENV", "testing")

        applied = auto_configure()

        assert applied.file_output is False
        assert get_logging_manager().config is applied

    def test_unknown_env_falls_back(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)

        applied = auto_configure("staging")

        assert applied.level == "DEBUG"


def test_colored_formatter_leaves_record_alone():
    formatter = ColoredFormatter("%(levelname)s %(message)s", use_colors=True)
    record = logging.LogRecord("x", logging.ERROR, __file__, 1, "boom", None, None)

    formatter.format(record)

    assert record.levelname == "ERROR"
