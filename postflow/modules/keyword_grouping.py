"""Группировка ключевых слов по темам и ссылки на отчёты Ahrefs."""

from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Set
from urllib.parse import quote, urlencode

from postflow.modules.constants import (
    AHREFS_MAX_KEYWORDS_PER_URL,
    AHREFS_ORGANIC_KEYWORDS_URL,
    STOP_WORDS,
)

CORE_MIN_FREQUENCY = 3
CORE_FREQUENCY_RATIO = 0.1
MIN_GROUP_SIZE = 3
SIMILARITY_THRESHOLD = 0.4
SHARED_TERM_RATIO = 0.5


class Relevance(str, Enum):
    CORE = "core"
    RELATED = "related"
    WIDER = "wider"


@dataclass
class KeywordGroup:
    """Тематическая группа ключевых слов."""

    name: str
    keywords: List[str] = field(default_factory=list)
    relevance: Relevance = Relevance.WIDER
    priority: int = 4


@dataclass
class AhrefsGroupUrl:
    """Ссылка на отчёт Ahrefs для группы (или её части)."""

    name: str
    url: str
    relevance: str
    keyword_count: int


def _terms(keyword: str) -> List[str]:
    return [term for term in keyword.split() if len(term) > 2 and term not in STOP_WORDS]


def _capitalize(term: str) -> str:
    return term[:1].upper() + term[1:]


def _jaccard(first: Set[str], second: Set[str]) -> float:
    union = first | second
    if not union:
        return 0.0
    return len(first & second) / len(union)


def _term_frequency(keywords: Sequence[str]) -> Counter:
    frequency: Counter = Counter()
    for keyword in keywords:
        frequency.update(_terms(keyword))
    return frequency


def _most_common_shared_term(keywords: Sequence[str]) -> Optional[str]:
    counts = _term_frequency(keywords)
    required = len(keywords) * SHARED_TERM_RATIO
    shared = [(term, count) for term, count in counts.items() if count >= required]
    if not shared:
        return None
    # sorted() стабилен: при равенстве выигрывает термин, встреченный раньше.
    return sorted(shared, key=lambda item: -item[1])[0][0]


def _cluster_by_similarity(keywords: Sequence[str]) -> List[List[str]]:
    token_sets = [set(keyword.split()) for keyword in keywords]
    used = [False] * len(keywords)
    clusters: List[List[str]] = []
    for seed_index, seed in enumerate(keywords):
        if used[seed_index]:
            continue
        used[seed_index] = True
        cluster = [seed]
        for index in range(seed_index + 1, len(keywords)):
            if used[index]:
                continue
            if _jaccard(token_sets[seed_index], token_sets[index]) > SIMILARITY_THRESHOLD:
                used[index] = True
                cluster.append(keywords[index])
        clusters.append(cluster)
    return clusters


def group_keywords_by_topic(keywords: Optional[Iterable[str]]) -> List[KeywordGroup]:
    """Разбивает список ключевых слов на тематические группы.

    Порядок проходов: ядро (ключи с двумя и более частотными терминами),
    группы по отдельным частотным терминам, кластеры по сходству Жаккара и
    остаток. Каждый ключ попадает ровно в одну группу. Кластеризация жадная,
    поэтому при равных оценках состав кластера зависит от порядка на входе.
    """
    clean = [keyword.strip().lower() for keyword in keywords or []]
    clean = [keyword for keyword in clean if keyword]
    if not clean:
        return []

    frequency = _term_frequency(clean)
    threshold = max(CORE_MIN_FREQUENCY, CORE_FREQUENCY_RATIO * len(clean))
    core_terms = [term for term, count in frequency.items() if count >= threshold]
    core_set = set(core_terms)
    term_sets: Dict[str, Set[str]] = {keyword: set(_terms(keyword)) for keyword in clean}

    groups: List[KeywordGroup] = []

    core_keywords = [keyword for keyword in clean if len(term_sets[keyword] & core_set) >= 2]
    remaining = [keyword for keyword in clean if len(term_sets[keyword] & core_set) < 2]
    if core_keywords:
        groups.append(KeywordGroup("Core Keywords", core_keywords, Relevance.CORE, 1))

    for term in core_terms:
        matched = [keyword for keyword in remaining if term in term_sets[keyword]]
        if len(matched) < MIN_GROUP_SIZE:
            continue
        groups.append(KeywordGroup(f"{_capitalize(term)} Keywords", matched, Relevance.RELATED, 2))
        remaining = [keyword for keyword in remaining if term not in term_sets[keyword]]

    leftovers: List[str] = []
    topic_index = 0
    for cluster in _cluster_by_similarity(remaining):
        if len(cluster) < MIN_GROUP_SIZE:
            leftovers.extend(cluster)
            continue
        shared = _most_common_shared_term(cluster)
        if shared:
            name = f"{_capitalize(shared)} Keywords"
        else:
            topic_index += 1
            name = f"Topic Group {topic_index}"
        groups.append(KeywordGroup(name, cluster, Relevance.WIDER, 3))

    if leftovers:
        # Остаток выводим в исходном порядке ключей.
        order = {keyword: position for position, keyword in enumerate(remaining)}
        leftovers.sort(key=lambda keyword: order[keyword])
        groups.append(KeywordGroup("Other Keywords", leftovers, Relevance.WIDER, 4))

    return sorted(groups, key=lambda group: group.priority)


def _build_ahrefs_url(target_url: str, keywords: Sequence[str], position_range: str, country: str) -> str:
    keyword_rules = json.dumps(
        [["contains", "all"], ", ".join(keywords), "any"],
        ensure_ascii=False,
        separators=(",", ":"),
    )
    params = [
        ("brandedMode", "all"),
        ("chartGranularity", "daily"),
        ("chartInterval", "year5"),
        ("compareDate", "dontCompare"),
        ("country", country),
        ("currentDate", "today"),
        ("dataMode", "text"),
        ("hiddenColumns", ""),
        ("intentsAttrs", ""),
        ("keywordRules", keyword_rules),
        ("limit", "100"),
        ("localMode", "all"),
        ("mainOnly", "0"),
        ("mode", "subdomains"),
        ("multipleUrlsOnly", "0"),
        ("offset", "0"),
        ("performanceChartTopPosition", "top11_20||top21_50||top3||top4_10||top51"),
        ("positionChanges", ""),
    ]
    if position_range != "1-100":
        params.append(("positions", position_range))
    params.extend(
        [
            ("serpFeatures", ""),
            ("sort", "OrganicTrafficInitial"),
            ("sortDirection", "desc"),
            ("target", target_url),
            ("urlRules", ""),
            ("volume_type", "average"),
        ]
    )
    query = urlencode(params, quote_via=quote, safe="-_.!~*'()")
    return f"{AHREFS_ORGANIC_KEYWORDS_URL}?{query}"


def generate_grouped_ahrefs_urls(
    domain: str,
    groups: Sequence[KeywordGroup],
    position_range: str = "1-50",
    country: str = "us",
) -> List[AhrefsGroupUrl]:
    """Строит ссылки Ahrefs Organic Keywords для каждой группы.

    Ahrefs ограничивает длину URL, поэтому в одну ссылку попадает не более
    50 ключей; большие группы делятся на части "Имя (i/n)".
    """
    clean_domain = domain.strip()
    for prefix in ("https://", "http://"):
        if clean_domain.lower().startswith(prefix):
            clean_domain = clean_domain[len(prefix):]
            break
    clean_domain = clean_domain.rstrip("/")
    target_url = f"https://{clean_domain}/"

    results: List[AhrefsGroupUrl] = []
    for group in groups:
        chunks = [
            group.keywords[start:start + AHREFS_MAX_KEYWORDS_PER_URL]
            for start in range(0, len(group.keywords), AHREFS_MAX_KEYWORDS_PER_URL)
        ]
        for index, chunk in enumerate(chunks, start=1):
            name = f"{group.name} ({index}/{len(chunks)})" if len(chunks) > 1 else group.name
            results.append(
                AhrefsGroupUrl(
                    name=name,
                    url=_build_ahrefs_url(target_url, chunk, position_range, country),
                    relevance=Relevance(group.relevance).value,
                    keyword_count=len(chunk),
                )
            )
    return results
