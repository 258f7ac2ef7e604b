import logging
import sys
from pathlib import Path
from typing import Optional, Union

# Libraries that are chatty at INFO/DEBUG.
_NOISY_LOGGERS = ("uvicorn.access", "bcrypt", "httpx", "urllib3")


def setup_logging(level: Union[int, str] = logging.INFO, log_dir: Optional[str] = None) -> None:
    """
    Configure the root logger with a console handler and, when ``log_dir`` is
    given, a file handler writing ``todo.log`` there.

    Safe to call more than once: previous handlers are replaced.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    root = logging.getLogger()
    root.setLevel(level)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setFormatter(fmt)
    root.addHandler(ch)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(path / "todo.log"), encoding="utf-8")
        fh.setFormatter(fmt)
        root.addHandler(fh)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
