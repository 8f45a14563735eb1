# utils/logger.py
import logging
import sys
from pathlib import Path

_settings = {"log_dir": "logs", "level": logging.DEBUG}


def _resolve_level(level):
    if isinstance(level, str):
        value = logging.getLevelName(level.upper())
        if not isinstance(value, int):
            raise ValueError(f"Unknown log level: {level}")
        return value
    return level


def _managed_loggers():
    for name in list(logging.Logger.manager.loggerDict):
        existing = logging.getLogger(name)
        if getattr(existing, "_wrn_managed", False):
            yield existing


def _file_handler(filename, fmt):
    path = Path(_settings["log_dir"]) / filename
    path.parent.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(path)
    fh.setFormatter(fmt)
    fh._wrn_logfile = filename  # lives in the log dir, moved by configure()
    return fh


def configure(log_dir=None, level=None):
    """
    Set the log directory and level. Loggers that already exist get the new
    level, and their files in the log directory are reopened under the new one.
    """
    if level is not None:
        _settings["level"] = _resolve_level(level)
        for existing in _managed_loggers():
            existing.setLevel(_settings["level"])

    if log_dir is not None and str(log_dir) != str(_settings["log_dir"]):
        _settings["log_dir"] = log_dir
        for existing in _managed_loggers():
            for handler in list(existing.handlers):
                filename = getattr(handler, "_wrn_logfile", None)
                if filename is None:
                    continue
                existing.removeHandler(handler)
                handler.close()
                existing.addHandler(_file_handler(filename, handler.formatter))


def get_logger(name=__name__, level=None, logfile=None):
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger  # already configured

    logger.setLevel(_resolve_level(level) if level is not None else _settings["level"])
    logger._wrn_managed = True
    fmt = logging.Formatter(fmt="%(asctime)s | %(levelname)7s | %(name)s | %(message)s",
                            datefmt="%Y-%m-%d %H:%M:%S")

    sh = logging.StreamHandler(sys.stdout)
    sh.setFormatter(fmt)
    logger.addHandler(sh)

    if logfile:
        path = Path(logfile)
        if not path.is_absolute() and len(path.parts) == 1:
            logger.addHandler(_file_handler(logfile, fmt))
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            fh = logging.FileHandler(path)
            fh.setFormatter(fmt)
            logger.addHandler(fh)

    return logger
