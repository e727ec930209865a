"""
In-memory result storage for one crawl job, with text and JSON export.
"""

import json
import threading
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from ..crawler.parser import Product
from ..utils.logger import get_crawler_logger


class SaveError(Exception):
    """Raised when crawl results cannot be written."""
    pass


class ResultStore:
    """
    Accumulates deduplicated text blocks and product records.
    Safe for concurrent writers; products are never mutated or removed.
    """

    def __init__(self, job_id: Optional[str] = None):
        self._texts: Set[str] = set()
        self._products: List[Product] = []
        self._lock = threading.Lock()
        self.logger = get_crawler_logger(__name__, job_id=job_id)

    def add_text(self, text: str) -> bool:
        """Add a text block. Returns False if an identical block is already stored."""
        with self._lock:
            if text in self._texts:
                return False
            self._texts.add(text)
            return True

    def add_product(self, product: Product):
        with self._lock:
            self._products.append(product)

    @property
    def text_count(self) -> int:
        with self._lock:
            return len(self._texts)

    @property
    def product_count(self) -> int:
        with self._lock:
            return len(self._products)

    def get_texts(self) -> List[str]:
        with self._lock:
            return list(self._texts)

    def get_products(self) -> List[Product]:
        with self._lock:
            return list(self._products)

    def all_text(self) -> str:
        """Return all text blocks separated by a blank line."""
        return "\n\n".join(self.get_texts())

    def products_as_dicts(self) -> List[Dict[str, Any]]:
        return [asdict(product) for product in self.get_products()]

    def products_as_json(self) -> str:
        """Return all products as a pretty-printed JSON array."""
        return json.dumps(self.products_as_dicts(), ensure_ascii=False, indent=2)

    def save_text(self, path: str):
        """
        Write all text blocks to a UTF-8 file, creating parent directories.

        Raises:
            SaveError: if the file cannot be written
        """
        self._write(Path(path), self.all_text())
        self.logger.info(f"All text data saved to {path}")

    def save_products(self, path: str):
        """
        Write all products as a JSON array, creating parent directories.

        Raises:
            SaveError: if the file cannot be written
        """
        self._write(Path(path), self.products_as_json())
        self.logger.info(f"Products saved to {path}")

    def _write(self, file_path: Path, data: str):
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, 'w', encoding='utf-8') as f:
                f.write(data)
        except OSError as e:
            raise SaveError(f"Error writing {file_path}: {e}") from e

    def get_stats(self) -> Dict[str, int]:
        return {
            'text_blocks': self.text_count,
            'products': self.product_count,
        }
