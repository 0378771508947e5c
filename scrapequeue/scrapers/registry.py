"""Platform → scraper mapping.

Scrapers are registered explicitly or loaded from ``SCRAPER_PLUGINS``
entries of the form ``"package.module:ClassName"``.

Typical usage::

    registry = ScraperRegistry()
    registry.load_plugins(settings.scraper_plugins)
    scraper = registry.get("dice")
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Iterable

from scrapequeue.core.exceptions import ConfigError, OrchestratorError
from scrapequeue.scrapers.base import BaseScraper

__all__ = ["ScraperRegistry"]

logger = logging.getLogger(__name__)


class ScraperRegistry:
    """Holds one scraper instance per platform key."""

    def __init__(self, scrapers: Iterable[BaseScraper] = ()) -> None:
        self._scrapers: dict[str, BaseScraper] = {}
        for scraper in scrapers:
            self.register(scraper)

    def register(self, scraper: BaseScraper) -> None:
        """Add *scraper* under its ``platform`` key.

        Raises:
            OrchestratorError: The platform already has a scraper, or the
                scraper declares no platform.
        """
        platform = getattr(scraper, "platform", "")
        if not platform:
            raise OrchestratorError(f"{type(scraper).__name__} does not declare a platform")
        key = platform.lower()
        if key in self._scrapers:
            raise OrchestratorError(
                f"Platform {key!r} already registered by {type(self._scrapers[key]).__name__}"
            )
        self._scrapers[key] = scraper
        logger.debug("Registered scraper %s for %r", type(scraper).__name__, key)

    def get(self, platform: str) -> BaseScraper | None:
        return self._scrapers.get(platform.lower())

    def __contains__(self, platform: object) -> bool:
        return isinstance(platform, str) and platform.lower() in self._scrapers

    def __len__(self) -> int:
        return len(self._scrapers)

    @property
    def platforms(self) -> list[str]:
        return list(self._scrapers)

    def scrapers(self) -> list[BaseScraper]:
        return list(self._scrapers.values())

    def load_plugins(self, paths: Iterable[str]) -> None:
        """Import, instantiate and register each ``module:ClassName`` entry.

        Raises:
            ConfigError: An entry cannot be imported or is not a
                :class:`BaseScraper` subclass.
        """
        for path in paths:
            module_name, _, attr = path.partition(":")
            try:
                module = importlib.import_module(module_name)
                scraper_cls = getattr(module, attr)
            except (ImportError, AttributeError) as exc:
                raise ConfigError(f"Cannot load scraper plugin {path!r}: {exc}") from exc

            if not (isinstance(scraper_cls, type) and issubclass(scraper_cls, BaseScraper)):
                raise ConfigError(f"Scraper plugin {path!r} is not a BaseScraper subclass")

            self.register(scraper_cls())
            logger.info("Loaded scraper plugin %s for %r", path, scraper_cls.platform)
