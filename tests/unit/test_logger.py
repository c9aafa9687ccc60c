"""Unit tests for logger utilities."""
from loguru import logger as loguru_logger

from simple_signal.utils.logger import get_logger, setup_logging


def test_get_logger():
    """Test getting a logger instance."""
    logger = get_logger(__name__)

    assert logger is not None
    assert hasattr(logger, 'info')
    assert hasattr(logger, 'debug')
    assert hasattr(logger, 'warning')
    assert hasattr(logger, 'error')


def test_setup_logging_default():
    """Test setup logging with default settings."""
    setup_logging()

    logger = get_logger(__name__)
    logger.info("Test message")


def test_setup_logging_with_file(temp_dir):
    """Test setup logging with file output."""
    log_file = temp_dir / "logs" / "test.log"

    setup_logging(log_level="DEBUG", log_file=log_file)
    logger = get_logger("simple_signal.test")
    logger.debug("Debug message")
    logger.info("Info message")

    content = log_file.read_text()
    loguru_logger.remove()

    assert "Debug message" in content
    assert "simple_signal.test" in content


def test_level_filters_file_output(temp_dir):
    log_file = temp_dir / "warn.log"

    setup_logging(log_level="WARNING", log_file=log_file)
    logger = get_logger(__name__)
    logger.info("quiet")
    logger.warning("loud")

    content = log_file.read_text()
    loguru_logger.remove()
    assert "loud" in content
    assert "quiet" not in content


def test_unbound_records_get_a_name(temp_dir):
    """Records logged without get_logger still format."""
    log_file = temp_dir / "plain.log"

    setup_logging(log_level="INFO", log_file=log_file)
    loguru_logger.info("plain record")

    content = log_file.read_text()
    loguru_logger.remove()
    assert "plain record" in content


def test_setup_logging_levels():
    """Test different logging levels."""
    for level in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        setup_logging(log_level=level)
        logger = get_logger(__name__)
        logger.info(f"Testing level {level}")
