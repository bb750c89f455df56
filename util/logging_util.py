import logging
import sys

# Configure logging format
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_default_level = logging.INFO


def set_default_level(level) -> None:
    """
    Sets the level used by loggers created after this call, and updates
    the loggers that setup_logger has already configured.

    Args:
        level: A logging level int or a level name such as "DEBUG"
    """
    global _default_level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    _default_level = level

    for name in list(logging.root.manager.loggerDict):
        logger = logging.getLogger(name)
        if getattr(logger, "_configured_by_setup_logger", False):
            logger.setLevel(level)
            for handler in logger.handlers:
                handler.setLevel(level)


def setup_logger(name: str, level=None) -> logging.Logger:
    """
    Sets up a logger with consistent formatting.

    Args:
        name: Name of the logger (typically __name__ from the calling module)
        level: Logging level (default: the level given to set_default_level, INFO otherwise)

    Returns:
        Configured logger instance
    """
    if level is None:
        level = _default_level

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid adding handlers multiple times
    if not logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)

        formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
        console_handler.setFormatter(formatter)

        logger.addHandler(console_handler)
        logger._configured_by_setup_logger = True

    return logger


def log_telegram_update_received(logger: logging.Logger, update_id, chat_id,
                                 kind: str, text: str = None):
    """
    Logs a received Telegram update.

    Args:
        logger: Logger instance to use
        update_id: Telegram update id
        chat_id: Chat ID the update came from (may be None)
        kind: "callback" or "message"
        text: Callback data or message text
    """
    logger.info(f"📥 Telegram Update Received - Update: {update_id}, Chat: {chat_id}, Kind: {kind}")
    if text:
        logger.debug(f"  Text: {text[:200]}{'...' if len(text) > 200 else ''}")


def log_telegram_message_sent(logger: logging.Logger, chat_id: str, text: str):
    """
    Logs a sent Telegram message.

    Args:
        logger: Logger instance to use
        chat_id: Chat ID where message was sent
        text: Message text
    """
    logger.info(f"📤 Telegram Message Sent - Chat: {chat_id}")
    logger.debug(f"  Text: {text[:200]}{'...' if len(text) > 200 else ''}")
