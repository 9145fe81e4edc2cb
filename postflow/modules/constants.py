"""Общие константы для модулей приложения."""

from __future__ import annotations

REMOVABLE_SUBDOMAINS = frozenset({"www", "www1", "www2", "www3", "www4"})

# Контентные, сервисные, языковые и служебные поддомены.
MEANINGFUL_SUBDOMAINS = frozenset({
    "blog",
    "news",
    "shop",
    "store",
    "forum",
    "community",
    "support",
    "help",
    "docs",
    "wiki",
    "app",
    "api",
    "portal",
    "mail",
    "m",
    "mobile",
    "en",
    "de",
    "fr",
    "es",
    "uk",
    "us",
    "dev",
    "staging",
    "test",
    "beta",
})

COMPOUND_TLDS = frozenset({"co.uk", "com.au", "co.nz", "co.za", "com.br"})

STOP_WORDS = frozenset({
    "a",
    "an",
    "and",
    "are",
    "as",
    "at",
    "be",
    "by",
    "for",
    "from",
    "has",
    "he",
    "in",
    "is",
    "it",
    "its",
    "of",
    "on",
    "that",
    "the",
    "to",
    "was",
    "will",
    "with",
    "or",
    "but",
})

AHREFS_MAX_KEYWORDS_PER_URL = 50
AHREFS_ORGANIC_KEYWORDS_URL = "https://app.ahrefs.com/v2-site-explorer/organic-keywords"
