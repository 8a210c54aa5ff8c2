import logging
import os

LOG_FORMAT = '%(asctime)s %(levelname)s %(module)s %(label)s: %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class SafeLabelFormatter(logging.Formatter):
    def format(self, record):
        # Records emitted by third-party loggers (tenacity, uvicorn) carry no label
        if not hasattr(record, 'label'):
            record.label = '-'
        return super().format(record)


class LabelLoggerAdapter(logging.LoggerAdapter):
    def __init__(self, logger, label):
        super().__init__(logger, {'label': label})

    @property
    def label(self):
        return self.extra['label']

    def process(self, msg, kwargs):
        # The formatter renders the label, so the message itself stays untouched
        kwargs.setdefault('extra', {}).update(self.extra)
        return msg, kwargs


def _resolve_level():
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(level_name)
    return level if isinstance(level, int) else logging.INFO


def new_logger(label, module_name=None):
    """
    Return a logger adapter that prefixes every message with ``label``.

    The underlying logger is named after the calling module unless
    ``module_name`` is given, so log lines can be filtered per module.
    """
    if module_name is None:
        import inspect
        frame = inspect.currentframe()
        try:
            module_name = frame.f_back.f_globals['__name__']
        finally:
            del frame
    logger = logging.getLogger(module_name)
    logger.propagate = False  # Prevent duplicate log messages

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(SafeLabelFormatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(_resolve_level())
    return LabelLoggerAdapter(logger, label)
