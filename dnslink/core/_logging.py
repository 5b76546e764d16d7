import logging
import sys

from loguru import logger
from rich.traceback import install as rich_tb_install

_LOG_FORMAT = (
    '<green>{time:YYYY-MM-DD HH:mm:ss}</green> | '
    '<level>{level: <8}</level> | '
    '<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - '
    '<level>{message}</level>'
)

_NOISEY_LOGGERS = (
    'httpx',
    'httpcore',
    'hpack',
    'asyncio',
)

_LIB_NAME = 'dnslink'


class _InterceptHandler(logging.Handler):
    """
    Routes stdlib logging records (httpx, httpcore, asyncio)
    through loguru so everything lands in one sink.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back  # type: ignore[assignment]
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def configure_lib_logger(
    *,
    level_name: str = "INFO",
    rich_tracebacks: bool = False,
) -> None:
    '''
    Configures logging for dnslink when run via the CLI.
    Logs go to stderr so they never mix with resolved output.

    Parameters
    ----------
    level_name : str, optional
        by default "INFO"
    rich_tracebacks : bool, optional
        by default False
    '''
    root_logger = logging.getLogger()
    root_logger.handlers = [_InterceptHandler()]
    root_logger.setLevel(level_name)

    for handle in _NOISEY_LOGGERS:
        logging.getLogger(handle).handlers = [_InterceptHandler()]
        logging.getLogger(handle).setLevel(level_name)

    logger.enable(_LIB_NAME)
    logger.remove()
    logger.add(
        sys.stderr,
        format=_LOG_FORMAT,
        level=level_name,
        colorize=True,
        enqueue=True,
        backtrace=False,
        diagnose=False,
        catch=True,
    )
    if rich_tracebacks:
        rich_tb_install(show_locals=True, word_wrap=True)

    logger.debug('dnslink logger configured.')

