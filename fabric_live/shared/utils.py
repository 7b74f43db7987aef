import sys

from loguru import logger


def format_error(ex: BaseException) -> str:
    try:
        from traceback import TracebackException
        return ''.join(TracebackException.from_exception(ex).format())
    except Exception:
        import traceback
        return ''.join(traceback.format_exception(type(ex), ex, ex.__traceback__))


def init_logger(debug: bool = False):
    import logging

    # httpx logs every request at INFO
    for name in ('httpx', 'httpcore'):
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.remove()

    if debug:
        logger_level = 'DEBUG'
        logger_format = (
            '<green>{time:MM-DD HH:mm:ss.SSS}</green> | '
            '<level>{level: <8}</level> | '
            '<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | '
            '<level>{message}</level>'
        )
    else:
        logger_level = 'INFO'
        logger_format = (
            '{time:MM-DD HH:mm:ss.SSS} | '
            '{level: <8} | '
            '{message}'
        )
    logger.add(sys.stderr, level=logger_level, format=logger_format)
