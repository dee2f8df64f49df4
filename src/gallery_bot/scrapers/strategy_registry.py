"""
Strategy Registry - Scrapers

Loads per-site extraction rules and resolves URLs to them by domain.

A strategy store is either a single JSON file mapping domain -> rules, or a
directory of JSON files with one strategy each (domain taken from the
"domain" key, or from the file name).
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

from ..shared.errors import StrategyLoadError, UnsupportedSiteError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SelectorRule:
    """CSS selector plus the attribute holding the link."""
    selector: str
    attr: str


@dataclass(frozen=True)
class ImageRule(SelectorRule):
    """Image selector with substring filters for thumbnails/previews."""
    filter_patterns: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Strategy:
    """Declarative extraction rules for one site."""
    domain: str
    galleries: SelectorRule
    images: ImageRule


def extract_domain(url: str) -> str:
    """
    Get the lowercase host of a URL without a leading "www.".

    Args:
        url: Absolute URL

    Returns:
        Domain string, or '' if the URL has no host
    """
    host = (urlparse(url.strip()).hostname or '').rstrip('.').lower()
    if host.startswith('www.'):
        host = host[4:]
    return host


def _parse_rule(raw: Dict, kind: str) -> SelectorRule:
    if not isinstance(raw, dict):
        raise ValueError(f"'{kind}' must be an object")

    selector = raw.get('selector')
    attr = raw.get('attr')
    if not isinstance(selector, str) or not selector.strip():
        raise ValueError(f"'{kind}.selector' is required")
    if not isinstance(attr, str) or not attr.strip():
        raise ValueError(f"'{kind}.attr' is required")

    if kind == 'galleries':
        return SelectorRule(selector=selector.strip(), attr=attr.strip())

    patterns = raw.get('filterPatterns', raw.get('filter_patterns', []))
    if not isinstance(patterns, list) or not all(isinstance(p, str) for p in patterns):
        raise ValueError(f"'{kind}.filterPatterns' must be a list of strings")

    return ImageRule(
        selector=selector.strip(),
        attr=attr.strip(),
        filter_patterns=tuple(p for p in patterns if p)
    )


def parse_strategy(domain: str, raw: Dict) -> Strategy:
    """
    Build a Strategy from its JSON record.

    Raises:
        ValueError: If the record is malformed
    """
    if not isinstance(raw, dict):
        raise ValueError("strategy must be an object")

    domain = (domain or '').strip().lower()
    if domain.startswith('www.'):
        domain = domain[4:]
    if not domain:
        raise ValueError("strategy has no domain")

    return Strategy(
        domain=domain,
        galleries=_parse_rule(raw.get('galleries'), 'galleries'),
        images=_parse_rule(raw.get('images'), 'images')
    )


class StrategyRegistry:
    """
    Strategy Registry - Data-driven site support

    New sites are added by dropping a JSON record into the store; the
    extractors contain no site-specific logic.
    """

    def __init__(self, source: str, match_subdomains: bool = True):
        """
        Initialize registry.

        Args:
            source: Path to a JSON file or a directory of JSON files
            match_subdomains: Also match subdomains of a known domain
        """
        self.source = source
        self.match_subdomains = match_subdomains
        self._strategies: Dict[str, Strategy] = {}

    def load(self) -> Dict[str, Strategy]:
        """
        Load all strategies from the store, replacing any loaded before.

        Returns:
            Mapping of domain -> Strategy

        Raises:
            StrategyLoadError: If the store itself is unreadable
        """
        records = self._read_records()

        strategies: Dict[str, Strategy] = {}
        for domain, raw, origin in records:
            try:
                strategy = parse_strategy(domain, raw)
            except ValueError as e:
                logger.warning(f"Skipping malformed strategy in {origin}: {e}")
                continue

            if strategy.domain in strategies:
                logger.warning(f"Duplicate strategy for {strategy.domain} in {origin}, overriding")
            strategies[strategy.domain] = strategy

        self._strategies = strategies
        logger.info(f"Loaded {len(strategies)} strategies from {self.source}")
        return dict(strategies)

    def _read_records(self) -> List[Tuple[str, Dict, str]]:
        """Read raw (domain, record, origin) tuples from the store."""
        if os.path.isdir(self.source):
            records = []
            try:
                names = sorted(os.listdir(self.source))
            except OSError as e:
                raise StrategyLoadError(f"Cannot read strategy directory {self.source}: {e}") from e

            for name in names:
                if not name.endswith('.json'):
                    continue
                path = os.path.join(self.source, name)
                try:
                    with open(path, 'r', encoding='utf-8') as f:
                        raw = json.load(f)
                except (OSError, ValueError) as e:
                    logger.warning(f"Skipping unreadable strategy file {path}: {e}")
                    continue

                domain = raw.get('domain') if isinstance(raw, dict) else None
                records.append((domain or name[:-len('.json')], raw, path))
            return records

        try:
            with open(self.source, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StrategyLoadError(f"Cannot read strategy file {self.source}: {e}") from e

        if not isinstance(data, dict):
            raise StrategyLoadError(f"Strategy file {self.source} must contain an object")

        return [(domain, raw, self.source) for domain, raw in data.items()]

    def resolve(self, url: str) -> Strategy:
        """
        Find the strategy for a URL.

        Exact domain match wins; with subdomain matching enabled the
        longest known parent domain is used next.

        Raises:
            UnsupportedSiteError: If no strategy matches
        """
        strategy = self.find(url)
        if strategy is None:
            raise UnsupportedSiteError(extract_domain(url) or url, self.list_supported_domains())
        return strategy

    def find(self, url: str) -> Optional[Strategy]:
        """Like resolve() but returns None for unsupported URLs."""
        domain = extract_domain(url)
        if not domain:
            return None

        if domain in self._strategies:
            return self._strategies[domain]

        if self.match_subdomains:
            labels = domain.split('.')
            for i in range(1, len(labels) - 1):
                parent = '.'.join(labels[i:])
                if parent in self._strategies:
                    return self._strategies[parent]

        return None

    def is_supported(self, url: str) -> bool:
        return self.find(url) is not None

    def list_supported_domains(self) -> List[str]:
        return sorted(self._strategies)
