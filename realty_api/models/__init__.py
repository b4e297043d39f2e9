# realty_api/models/__init__.py
"""Importing a model module registers its tables on ``db.metadata``."""
import importlib
import pkgutil


def load_all():
    """Import every model module so metadata is complete for create_all/autogenerate."""
    for info in pkgutil.walk_packages(__path__, prefix=f"{__name__}."):
        importlib.import_module(info.name)
