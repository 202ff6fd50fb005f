"""Lazy, read-only access to the built API catalog."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List, Optional

from datadog_api_mcp.constants import CATALOG_FILE, PRODUCTS_FILE
from datadog_api_mcp.errors import CatalogNotFoundError

logger = logging.getLogger(__name__)


class CatalogStore:
    """Loads ``spec.json`` and ``products.json`` on first use and caches them.

    Loading is deferred so server startup does not block on parsing a
    multi-megabyte file.
    """

    def __init__(self, data_dir: str) -> None:
        self._data_dir = data_dir
        self._spec: Optional[Dict[str, Any]] = None
        self._products: Optional[List[str]] = None

    @property
    def data_dir(self) -> str:
        return self._data_dir

    @property
    def spec_path(self) -> str:
        return os.path.join(self._data_dir, CATALOG_FILE)

    @property
    def products_path(self) -> str:
        return os.path.join(self._data_dir, PRODUCTS_FILE)

    def exists(self) -> bool:
        return os.path.isfile(self.spec_path)

    def _load_json(self, path: str) -> Any:
        if not os.path.isfile(path):
            raise CatalogNotFoundError(path)
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    @property
    def spec(self) -> Dict[str, Any]:
        """The reduced catalog: ``{"paths": {path: {method: operation}}}``."""
        if self._spec is None:
            self._spec = self._load_json(self.spec_path)
            logger.info(
                "Loaded API catalog from %s (%d paths)",
                self.spec_path,
                len(self._spec.get("paths", {})),
            )
        return self._spec

    @property
    def products(self) -> List[str]:
        """Products ranked by endpoint count; empty if the file is absent."""
        if self._products is None:
            try:
                self._products = list(self._load_json(self.products_path))
            except CatalogNotFoundError:
                logger.warning("Products list not found at %s", self.products_path)
                self._products = []
        return self._products
