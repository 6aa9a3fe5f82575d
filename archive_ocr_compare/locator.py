from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup, Tag

from .config import ArchiveConfig
from .errors import NetworkError, ParseError
from .types import SearchResult
from .utils import ensure_dir, normalize_whitespace, safe_filename_token

PDF_MAGIC = b"%PDF"


@dataclass(frozen=True)
class ResultSelectors:
    """CSS selectors describing the archive's results page."""

    container: str = "#results, .results"
    item: str = "li.result, div.result"
    link: str = "a[href]"
    snippet: str = ".snippet, .context"
    no_results: str = ".no-results, #no-results"


@dataclass(frozen=True)
class SearchForm:
    action: str
    method: str  # get|post
    fields: dict[str, str]


@dataclass
class DocumentLocator:
    config: ArchiveConfig
    session: Any = None  # requests.Session or a compatible fake
    selectors: ResultSelectors = field(default_factory=ResultSelectors)

    def __post_init__(self) -> None:
        if self.session is None:
            self.session = requests.Session()

    @property
    def headers(self) -> dict[str, str]:
        # Some archives serve partial result pages to unknown clients.
        return {"User-Agent": self.config.user_agent}

    @property
    def search_url(self) -> str:
        return urljoin(self.config.base_url, self.config.search_path)

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            resp = self.session.request(method, url, headers=self.headers, timeout=self.config.timeout_s, **kwargs)
            resp.raise_for_status()
            return resp
        except requests.RequestException as e:
            raise NetworkError(f"{method} {url} failed: {e}") from e

    def search(self, keywords: str, field: str | None = None) -> list[SearchResult]:
        """Submit the archive's search form and return the results in page order."""
        page_url = self.search_url
        resp = self._request("GET", page_url)
        form = self.locate_form(resp.text, page_url)

        fields = dict(form.fields)
        fields[self.config.keyword_field] = keywords
        if field is not None:
            fields[self.config.scope_field] = field

        if form.method == "post":
            results = self._request("POST", form.action, data=fields)
        else:
            results = self._request("GET", form.action, params=fields)
        return self.parse_results(results.text, results.url or form.action)

    def locate_form(self, html: str, page_url: str) -> SearchForm:
        """Find the search form by the keyword input it contains.

        Archive pages often nest the form inside broken tables, which makes the
        parser close ``<form>`` early; the inputs then end up outside of it.
        """
        soup = BeautifulSoup(html, "html.parser")
        kw = self.config.keyword_field
        keyword_input = soup.select_one(f'input[name="{kw}"], textarea[name="{kw}"]')
        if keyword_input is None:
            raise ParseError(f"search form not found: no input named {kw!r} at {page_url}")

        form = keyword_input.find_parent("form") or keyword_input.find_previous("form")
        if form is not None and form.select_one(f'[name="{kw}"]') is not None:
            scope: Tag = form
        else:
            # Inputs were orphaned from the form; collect them from the enclosing block.
            scope = keyword_input.find_parent(["table", "div", "td", "body"]) or soup

        action = (form.get("action") if form is not None else None) or page_url
        method = str((form.get("method") if form is not None else None) or "get").strip().lower()
        if method not in ("get", "post"):
            raise ParseError(f"unsupported form method: {method}")

        return SearchForm(action=urljoin(page_url, str(action)), method=method, fields=_default_fields(scope))

    def parse_results(self, html: str, page_url: str) -> list[SearchResult]:
        soup = BeautifulSoup(html, "html.parser")
        items = soup.select(self.selectors.item)
        if not items:
            if soup.select_one(self.selectors.no_results) or soup.select_one(self.selectors.container):
                return []
            raise ParseError(f"results page has no results container: {page_url}")

        out: list[SearchResult] = []
        for idx, item in enumerate(items):
            link = item.select_one(self.selectors.link)
            if link is None:
                raise ParseError(f"result[{idx}] has no link: {page_url}")
            snippet = item.select_one(self.selectors.snippet) or item
            out.append(
                SearchResult(
                    url=urljoin(page_url, str(link.get("href"))),
                    context=normalize_whitespace(snippet.get_text(" ")),
                )
            )
        return out

    def download(self, url: str, dest_dir: str | Path) -> Path:
        """Stream a located PDF to ``dest_dir``.

        A non-PDF body is kept on disk for inspection and reported as ParseError.
        """
        ensure_dir(dest_dir)
        name = Path(urlparse(url).path).name or "document.pdf"
        stem = safe_filename_token(Path(name).stem)
        dest = Path(dest_dir) / f"{stem}.pdf"

        resp = self._request("GET", url, stream=True)
        try:
            with open(dest, "wb") as f:
                for chunk in resp.iter_content(chunk_size=64 * 1024):
                    if chunk:
                        f.write(chunk)
        except requests.RequestException as e:
            raise NetworkError(f"GET {url} failed mid-download: {e}") from e
        finally:
            resp.close()

        with open(dest, "rb") as f:
            head = f.read(len(PDF_MAGIC))
        if head != PDF_MAGIC:
            raise ParseError(f"not a PDF: {url} (saved to {dest})")
        return dest


def _default_fields(scope: Tag | BeautifulSoup) -> dict[str, str]:
    """Values a browser would submit for the form's untouched controls."""
    fields: dict[str, str] = {}
    for inp in scope.select("input[name]"):
        typ = str(inp.get("type") or "text").lower()
        if typ in ("submit", "button", "image", "reset", "file"):
            continue
        if typ in ("checkbox", "radio") and not inp.has_attr("checked"):
            continue
        fields[str(inp["name"])] = str(inp.get("value") or "")
    for sel in scope.select("select[name]"):
        opt = sel.select_one("option[selected]") or sel.select_one("option")
        if opt is not None:
            fields[str(sel["name"])] = str(opt.get("value", opt.get_text(strip=True)))
    return fields
