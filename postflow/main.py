"""Командная строка для нормализации доменов и группировки ключевых слов."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional, Sequence

from postflow.config import get_settings
from postflow.modules.domain_normalization import DomainNormalizationService, NormalizationConflictError
from postflow.modules.keyword_grouping import generate_grouped_ahrefs_urls, group_keywords_by_topic
from postflow.modules.utils.db import run_sql_migrations
from postflow.modules.utils.normalize import batch_normalize_domains, find_duplicate_domains

LOGGER = logging.getLogger("postflow.main")


def _read_values(path: Optional[str], inline: Sequence[str]) -> List[str]:
    values = list(inline)
    if path:
        source = sys.stdin if path == "-" else Path(path).open(encoding="utf-8")
        with source as handle:
            values.extend(line.strip() for line in handle if line.strip())
    return values


def _dump(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _cmd_normalize(args: argparse.Namespace) -> int:
    results = batch_normalize_domains(_read_values(args.file, args.domains))
    _dump([asdict(result) for result in results])
    return 1 if any(result.error for result in results) else 0


def _cmd_duplicates(args: argparse.Namespace) -> int:
    _dump(find_duplicate_domains(_read_values(args.file, args.domains)))
    return 0


def _cmd_group_keywords(args: argparse.Namespace) -> int:
    settings = get_settings()
    groups = group_keywords_by_topic(_read_values(args.file, args.keywords))
    if args.domain:
        urls = generate_grouped_ahrefs_urls(
            args.domain,
            groups,
            position_range=args.positions or settings.ahrefs.position_range,
            country=settings.ahrefs.country,
        )
        _dump([asdict(url) for url in urls])
    else:
        _dump([asdict(group) for group in groups])
    return 0


def _cmd_normalize_db(args: argparse.Namespace) -> int:
    service = DomainNormalizationService()
    if not args.execute:
        _dump(asdict(service.preview()))
        return 0
    try:
        stats = service.execute()
    except NormalizationConflictError as exc:
        LOGGER.error("%s, нормализация отменена.", exc)
        _dump([asdict(conflict) for conflict in exc.conflicts])
        return 2
    _dump(asdict(stats))
    return 0


def _cmd_migrate(args: argparse.Namespace) -> int:
    applied = run_sql_migrations(dry_run=args.dry_run)
    LOGGER.info("Миграции%s: %s", " (dry-run)" if args.dry_run else "", ", ".join(applied) or "нет")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="postflow", description="PostFlow domain qualification tools")
    subparsers = parser.add_subparsers(dest="command", required=True)

    normalize = subparsers.add_parser("normalize", help="Нормализовать домены")
    normalize.add_argument("domains", nargs="*")
    normalize.add_argument("--file", help="Файл со списком доменов ('-' для stdin)")
    normalize.set_defaults(handler=_cmd_normalize)

    duplicates = subparsers.add_parser("duplicates", help="Найти дубликаты доменов")
    duplicates.add_argument("domains", nargs="*")
    duplicates.add_argument("--file", help="Файл со списком доменов ('-' для stdin)")
    duplicates.set_defaults(handler=_cmd_duplicates)

    keywords = subparsers.add_parser("group-keywords", help="Сгруппировать ключевые слова")
    keywords.add_argument("keywords", nargs="*")
    keywords.add_argument("--file", help="Файл с ключевыми словами ('-' для stdin)")
    keywords.add_argument("--domain", help="Построить ссылки Ahrefs для домена")
    keywords.add_argument("--positions", help="Диапазон позиций, например 1-50")
    keywords.set_defaults(handler=_cmd_group_keywords)

    normalize_db = subparsers.add_parser("normalize-db", help="Нормализовать домены в таблице websites")
    normalize_db.add_argument("--execute", action="store_true", help="Применить изменения (по умолчанию только предпросмотр)")
    normalize_db.set_defaults(handler=_cmd_normalize_db)

    migrate = subparsers.add_parser("migrate", help="Применить SQL-миграции")
    migrate.add_argument("--dry-run", action="store_true")
    migrate.set_defaults(handler=_cmd_migrate)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Разбирает аргументы и запускает выбранную команду."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, get_settings().log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s :: %(message)s",
    )

    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
