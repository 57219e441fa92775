from __future__ import annotations

import logging
from typing import Any

from ctmrgkit import config as _cfg_mod  # uses the global config instance

_LOGGERS = {
    "ctmrgkit.ctmrg": "log_level_ctmrg",
    "ctmrgkit.projectors": "log_level_projectors",
}


class TqdmWriteHandler(logging.Handler):
    """Writes messages via tqdm.write (thread-safe)."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            from tqdm import tqdm

            tqdm.write(str(msg))
        except Exception:
            self.handleError(record)


_LOGGING_INITIALIZED = False


def _to_py_log_level(level: Any) -> int:
    # Accept both enum values and raw ints; OFF disables effectively
    try:
        val = int(level)
    except (TypeError, ValueError):
        val = logging.INFO
    if val == 0:  # OFF
        return logging.CRITICAL + 10
    return val


def init_logging(cfg: Any | None = None) -> None:
    """
    Initialize logging based on the provided config (or global config).
    Safe to call multiple times; replaces handlers to avoid duplicates.

    Args:
      cfg (:obj:`~ctmrgkit.config.CTMRGKit_Config`, optional):
        Config object to read the log options from. Defaults to the global
        config instance.
    """
    global _LOGGING_INITIALIZED
    if cfg is None:
        cfg = _cfg_mod.config

    root = logging.getLogger("ctmrgkit")
    # Remove old handlers to prevent duplicate logs
    for h in list(root.handlers):
        root.removeHandler(h)

    root.setLevel(_to_py_log_level(cfg.log_level_global))
    root.propagate = False

    if cfg.log_tqdm:
        fmt = logging.Formatter(fmt="%(message)s")
    else:
        fmt = logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    if cfg.log_to_console:
        if cfg.log_tqdm:
            sh = TqdmWriteHandler()
        else:
            sh = logging.StreamHandler()
        sh.setFormatter(fmt)
        root.addHandler(sh)

    if cfg.log_to_file:
        fh = logging.FileHandler(cfg.log_file)
        fh.setFormatter(fmt)
        root.addHandler(fh)

    # Per-module levels
    for name, option in _LOGGERS.items():
        logging.getLogger(name).setLevel(_to_py_log_level(getattr(cfg, option)))

    _LOGGING_INITIALIZED = True


def ensure_logging_configured(cfg: Any | None = None) -> None:
    """
    Initialize logging once on first call; subsequent calls are no-ops.
    """
    global _LOGGING_INITIALIZED
    if not _LOGGING_INITIALIZED:
        init_logging(cfg)
