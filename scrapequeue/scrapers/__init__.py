"""Scraper contract and platform registry."""

from scrapequeue.scrapers.base import BaseScraper, LoginSignal
from scrapequeue.scrapers.registry import ScraperRegistry

__all__ = ["BaseScraper", "LoginSignal", "ScraperRegistry"]
