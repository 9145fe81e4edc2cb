"""Нормализация доменов сайтов для сравнения и поиска дубликатов."""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from postflow.modules.constants import COMPOUND_TLDS, MEANINGFUL_SUBDOMAINS, REMOVABLE_SUBDOMAINS

LOGGER = logging.getLogger("postflow.normalize")

_PROTOCOL_RE = re.compile(r"^(https?)://", re.IGNORECASE)
_DOMAIN_RE = re.compile(r"([a-z0-9-]+\.)+[a-z]{2,}")


class DomainNormalizationError(ValueError):
    """Базовая ошибка нормализации домена."""


class InvalidInput(DomainNormalizationError):
    """Пустое значение или не строка."""


class InvalidFormat(DomainNormalizationError):
    """Значение не похоже на доменное имя."""


@dataclass(frozen=True)
class NormalizedDomain:
    """Результат нормализации домена."""

    domain: str
    subdomain: Optional[str]
    is_www: bool
    protocol: Optional[str]
    path: Optional[str]
    original: str


@dataclass(frozen=True)
class BatchNormalizationResult:
    """Результат нормализации одного значения из пакета."""

    input: str
    normalized: Optional[NormalizedDomain]
    error: Optional[str]


def normalize_domain(value: str) -> NormalizedDomain:
    """Приводит URL или домен к каноническому виду.

    Протокол и путь сохраняются отдельно, порт отбрасывается. Поддомены из
    ``REMOVABLE_SUBDOMAINS`` удаляются, любые другие (включая неизвестные)
    остаются частью домена: лучше различить два сайта, чем ошибочно склеить их.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput("Домен должен быть непустой строкой.")

    candidate = value.strip()
    protocol: Optional[str] = None
    match = _PROTOCOL_RE.match(candidate)
    if match:
        protocol = match.group(1).lower()
        candidate = candidate[match.end():]

    path: Optional[str] = None
    slash = candidate.find("/")
    if slash != -1:
        path = candidate[slash:]
        candidate = candidate[:slash]

    colon = candidate.rfind(":")
    if colon != -1 and colon > candidate.rfind("."):
        candidate = candidate[:colon]

    candidate = candidate.lower()
    if "." not in candidate:
        raise InvalidFormat(f"Некорректный формат домена: {value!r}")

    labels = candidate.split(".")
    domain = candidate
    subdomain: Optional[str] = None
    is_www = False
    if len(labels) > 2:
        first = labels[0]
        if first in REMOVABLE_SUBDOMAINS:
            domain = ".".join(labels[1:])
            is_www = first == "www"
        else:
            if first not in MEANINGFUL_SUBDOMAINS:
                LOGGER.debug("Неизвестный поддомен %r в %r сохранён как часть домена.", first, value)
            subdomain = first

    if not _DOMAIN_RE.fullmatch(domain):
        raise InvalidFormat(f"Некорректный формат домена: {value!r}")

    return NormalizedDomain(
        domain=domain,
        subdomain=subdomain,
        is_www=is_www,
        protocol=protocol,
        path=path,
        original=value,
    )


def are_domains_equivalent(first: str, second: str) -> bool:
    """Проверяет, указывают ли два значения на один и тот же сайт."""
    try:
        return normalize_domain(first).domain == normalize_domain(second).domain
    except DomainNormalizationError:
        return False


def get_root_domain(value: str) -> str:
    """Возвращает регистрируемый корневой домен (с учётом co.uk и подобных)."""
    labels = normalize_domain(value).domain.split(".")
    if len(labels) >= 3 and ".".join(labels[-2:]) in COMPOUND_TLDS:
        return ".".join(labels[-3:])
    return ".".join(labels[-2:])


def _strip_for_display(value: str) -> str:
    candidate = _PROTOCOL_RE.sub("", value.strip())
    candidate = candidate.split("/", 1)[0].lower()
    if candidate.startswith("www."):
        candidate = candidate[4:]
    return candidate


def format_domain_for_display(value: str) -> str:
    """Готовит домен к показу пользователю, не выбрасывая исключений."""
    if not isinstance(value, str):
        return ""
    try:
        return normalize_domain(value).domain
    except DomainNormalizationError:
        LOGGER.debug("Домен %r не нормализован, используем упрощённую очистку.", value)
        return _strip_for_display(value)


def batch_normalize_domains(values: Iterable[str]) -> List[BatchNormalizationResult]:
    """Нормализует список доменов, фиксируя ошибки по каждому элементу."""
    results: List[BatchNormalizationResult] = []
    for value in values:
        try:
            normalized = normalize_domain(value)
        except DomainNormalizationError as exc:
            results.append(BatchNormalizationResult(input=value, normalized=None, error=str(exc)))
            continue
        results.append(BatchNormalizationResult(input=value, normalized=normalized, error=None))
    return results


def find_duplicate_domains(values: Iterable[str]) -> Dict[str, List[str]]:
    """Группирует исходные значения по нормализованному домену.

    Возвращаются только группы из двух и более значений; некорректные домены
    пропускаются.
    """
    groups: Dict[str, List[str]] = defaultdict(list)
    for value in values:
        try:
            domain = normalize_domain(value).domain
        except DomainNormalizationError:
            LOGGER.debug("Пропущен некорректный домен: %r", value)
            continue
        groups[domain].append(value)
    return {domain: originals for domain, originals in groups.items() if len(originals) > 1}
