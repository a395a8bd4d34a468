"""
Catalog adapters.

``PostgresCatalog`` lives in ``indexadvisor.catalog.postgres`` and is not
imported here, so offline use never needs a database driver.
"""

from indexadvisor.catalog.base import Catalog, ColumnDef, ExistingIndex, column_names
from indexadvisor.catalog.static import SchemaSpec, StaticCatalog, TableSpec

__all__ = [
    "Catalog",
    "ColumnDef",
    "ExistingIndex",
    "SchemaSpec",
    "StaticCatalog",
    "TableSpec",
    "column_names",
]
