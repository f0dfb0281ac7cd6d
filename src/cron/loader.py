from __future__ import annotations

import importlib
import pkgutil

from src.utils.logging import get_logger

logger = get_logger(__name__)


def discover_and_register_jobs(package: str = "src.cron.jobs") -> list[str]:
    """
    Import every public module in `package` so its @cron decorators register
    jobs into CRON_REGISTRY. Returns the imported module names.
    """
    pkg = importlib.import_module(package)
    imported = []
    for _, modname, ispkg in pkgutil.iter_modules(pkg.__path__, pkg.__name__ + "."):
        if ispkg or modname.rsplit(".", 1)[-1].startswith("_"):
            continue
        importlib.import_module(modname)
        imported.append(modname)
    logger.info(f"Loaded {len(imported)} cron job module(s)", package=package)
    return imported
