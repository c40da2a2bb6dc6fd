import logging

from mail_composer.logger import configure_logging, get_logger


def test_get_logger_reuses_existing_logger():
    logger = get_logger("TestLogger")
    handler_count = len(logger.handlers)

    same_logger = get_logger("TestLogger")
    assert logger is same_logger
    assert len(same_logger.handlers) == handler_count
    assert logger.name == "mail_composer.TestLogger"


def test_library_installs_no_handlers():
    assert get_logger().handlers == []


def test_configure_logging_applies_level(monkeypatch):
    calls = []
    monkeypatch.setattr("mail_composer.logger.logging.basicConfig", lambda **kwargs: calls.append(kwargs))

    configure_logging("debug")
    configure_logging("bogus")

    assert calls[0]["level"] == logging.DEBUG
    assert calls[0]["force"] is True
    assert calls[1]["level"] == logging.INFO
