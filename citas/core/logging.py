"""
Process-wide logging setup.

Modules log through `logging.getLogger(__name__)`; this only attaches a
single stdout handler so Railway / Render / gunicorn capture everything.
"""
import logging
import sys

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())
    if any(getattr(h, "_citas", False) for h in root.handlers):
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler._citas = True  # marks our handler so reloads don't stack duplicates
    root.addHandler(handler)
