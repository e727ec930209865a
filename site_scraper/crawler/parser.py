"""
Page parser for extracting visible text, links and product records.
"""

import re
from typing import Dict, List, Mapping, Optional, Protocol
from urllib.parse import urljoin, urlparse
from dataclasses import dataclass, field
from bs4 import BeautifulSoup, Comment
from soupsieve import SelectorSyntaxError

from ..utils.config import PRODUCT_FIELDS, load_selectors
from ..utils.logger import get_crawler_logger


IMAGE_FIELD = 'main_image_link'


class ExtractionError(Exception):
    """Raised when a single product field cannot be extracted."""
    pass


@dataclass
class Product:
    """A product record extracted from one page. Field order is the export order."""
    name: str
    price: str
    description: Optional[str] = None
    availability: Optional[str] = None
    specifications: Optional[str] = None
    brand: Optional[str] = None
    image: Optional[str] = None
    url: str = ''


@dataclass
class ParsedPage:
    """Container for the data extracted from one page."""
    url: str
    text: str = ''
    links: List[str] = field(default_factory=list)
    product: Optional[Product] = None


class SelectorProvider(Protocol):
    """Supplies the field to CSS selector mapping used for product extraction."""

    def get_selectors(self) -> Optional[Mapping[str, str]]:
        ...


class StaticSelectorProvider:
    """Selector mapping configured by hand."""

    def __init__(self, selectors: Optional[Mapping[str, str]] = None):
        self._selectors = dict(selectors) if selectors else None

    def get_selectors(self) -> Optional[Mapping[str, str]]:
        return self._selectors


class FileSelectorProvider:
    """Selector mapping read once from a YAML or JSON file, e.g. one written by a discovery step."""

    def __init__(self, path: str):
        self.path = path
        self._selectors: Optional[Dict[str, str]] = None

    def get_selectors(self) -> Optional[Mapping[str, str]]:
        if self._selectors is None:
            self._selectors = load_selectors(self.path)
        return self._selectors or None


class ProductExtractor:
    """
    Extracts product fields from a document using CSS selectors.
    Where the selectors come from is irrelevant here.
    """

    def __init__(self, base_url: str, job_id: Optional[str] = None):
        self.base_url = base_url
        self.logger = get_crawler_logger(__name__, job_id=job_id)

    def extract(self, document: BeautifulSoup, selectors: Mapping[str, str]) -> Dict[str, Optional[str]]:
        """
        Extract a partial product from the document.

        Returns a mapping with every field of PRODUCT_FIELDS; fields whose
        selector is missing, malformed or matches nothing are None.
        """
        fields: Dict[str, Optional[str]] = {}
        for field_name in PRODUCT_FIELDS:
            selector = selectors.get(field_name)
            if not selector:
                fields[field_name] = None
                continue
            try:
                fields[field_name] = self._select_field(document, field_name, selector)
            except ExtractionError as e:
                self.logger.debug(f"Skipping field {field_name}: {e}")
                fields[field_name] = None

        if fields[IMAGE_FIELD] is not None:
            fields[IMAGE_FIELD] = self.resolve_image(fields[IMAGE_FIELD])

        return fields

    def _select_field(self, document: BeautifulSoup, field_name: str, selector: str) -> Optional[str]:
        try:
            element = document.select_one(selector)
        except (SelectorSyntaxError, ValueError, NotImplementedError) as e:
            raise ExtractionError(f"Malformed selector {selector!r}: {e}") from e

        if element is None:
            return None

        if field_name == IMAGE_FIELD:
            return element.get('src')

        return clean_text(element.get_text(separator=' '))

    def resolve_image(self, image: str) -> str:
        """Make a root-relative image path absolute against the base URL host."""
        if not image.startswith('/'):
            return image

        try:
            base = urlparse(self.base_url)
            if not base.scheme or not base.hostname:
                return image
            return f"{base.scheme}://{base.hostname}{image}"
        except ValueError:
            return image

    @staticmethod
    def build_product(fields: Mapping[str, Optional[str]], page_url: str) -> Optional[Product]:
        """Create a Product only when both name and price are non-blank."""
        name = fields.get('name')
        price = fields.get('price')
        if not name or not name.strip() or not price or not price.strip():
            return None

        return Product(
            name=name,
            price=price,
            description=fields.get('description'),
            availability=fields.get('availability'),
            specifications=fields.get('specifications'),
            brand=fields.get('brand'),
            image=fields.get(IMAGE_FIELD),
            url=page_url,
        )


_whitespace_pattern = re.compile(r'\s+')


def clean_text(text: str) -> str:
    """Collapse whitespace and trim."""
    if not text:
        return ""
    return _whitespace_pattern.sub(' ', text).strip()


class ContentParser:
    """
    Parses HTML content into visible text, outgoing links and an optional product.
    """

    def __init__(self, base_url: str, selector_provider: Optional[SelectorProvider] = None,
                 job_id: Optional[str] = None):
        self.selector_provider = selector_provider or StaticSelectorProvider()
        self.product_extractor = ProductExtractor(base_url, job_id=job_id)
        self.logger = get_crawler_logger(__name__, job_id=job_id)

    def parse(self, url: str, html_content: str) -> ParsedPage:
        """
        Parse HTML content.

        Args:
            url: The final URL of the page, used to resolve relative links
            html_content: Raw HTML content

        Returns:
            ParsedPage with extracted data
        """
        soup = BeautifulSoup(html_content, 'lxml')

        # Links and products are read before text cleanup removes elements
        links = self._extract_links(soup, url)
        product = self._extract_product(soup, url)

        parsed = ParsedPage(
            url=url,
            text=self._extract_text(soup),
            links=links,
            product=product,
        )

        self.logger.debug(f"Parsed {url}: {len(parsed.text)} chars, {len(parsed.links)} links")
        return parsed

    def _extract_text(self, soup: BeautifulSoup) -> str:
        """Extract all human-visible text of the page."""
        for element in soup(["script", "style", "noscript", "template"]):
            element.decompose()

        for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
            comment.extract()

        return clean_text(soup.get_text(separator=' '))

    def _extract_links(self, soup: BeautifulSoup, base_url: str) -> List[str]:
        """Resolve every anchor href to an absolute URL, in document order."""
        links = []

        for link in soup.find_all('a', href=True):
            href = link['href'].strip()
            if not href or href.startswith('#'):
                continue
            if href.lower().startswith(('javascript:', 'mailto:', 'tel:')):
                continue

            try:
                links.append(urljoin(base_url, href))
            except ValueError:
                self.logger.debug(f"Skipping unresolvable link {href!r} on {base_url}")

        return links

    def _extract_product(self, soup: BeautifulSoup, page_url: str) -> Optional[Product]:
        selectors = self.selector_provider.get_selectors()
        if not selectors:
            return None

        fields = self.product_extractor.extract(soup, selectors)
        return self.product_extractor.build_product(fields, page_url)
