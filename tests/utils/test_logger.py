import logging

from scanguard.util.logger import (
    ROOT_LOGGER_NAME,
    ColorFormatter,
    get_log_filepath,
    get_logger,
    handle_exception,
    should_use_color,
)


class DummyStream:
    def __init__(self, tty):
        self.tty = tty

    def write(self, msg):
        pass

    def isatty(self):
        return self.tty


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


def test_component_loggers_share_root_handlers():
    first = get_logger("escalation")
    second = get_logger("alerts")
    root = logging.getLogger(ROOT_LOGGER_NAME)

    assert first.name == "scanguard.escalation"
    assert first.handlers == [] and second.handlers == []
    assert len(root.handlers) == 2
    get_logger("escalation")
    assert len(root.handlers) == 2


def test_noisy_libraries_are_quieted():
    get_logger("any")
    assert logging.getLogger("discord").level == logging.ERROR


def test_color_formatter_applies_color():
    formatter = ColorFormatter("%(levelname)s %(message)s")
    record = logging.LogRecord("test", logging.ERROR, "", 0, "error occurred", None, None)
    formatted = formatter.format(record)
    assert formatted.startswith("\033[31m") and "error occurred" in formatted


def test_should_use_color(monkeypatch):
    monkeypatch.setattr("sys.stderr", DummyStream(True))
    assert should_use_color() is True
    monkeypatch.setattr("sys.stderr", DummyStream(False))
    assert should_use_color() is False


def test_get_log_filepath_is_stable():
    path = get_log_filepath()
    assert path.parent.exists()
    assert get_log_filepath() == path


def test_handle_exception_logs_critical():
    handler = ListHandler()
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.addHandler(handler)
    try:
        try:
            raise RuntimeError("fail")
        except RuntimeError as exc:
            handle_exception(RuntimeError, exc, exc.__traceback__)
    finally:
        root.removeHandler(handler)

    records = [r for r in handler.records if r.getMessage() == "Uncaught exception"]
    assert records and records[0].levelno == logging.CRITICAL
    assert records[0].name == "scanguard.main"
