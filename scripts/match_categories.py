#!/usr/bin/env python3
import argparse
import logging
import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from config import settings
from models import EntityType, SessionLocal, init_db
from services.catalog_store import SqlCatalogStore
from services.diagnostics import compare_texts, preview_entity
from services.errors import SourceError
from services.reconciliation import RecordResult, RecordStatus, reconcile_file
from services.run_report import recommendations, summarize, verdict
from services.thresholds import MatchingThresholds


def _format_bytes(size: float) -> str:
    for unit in ["B", "KB", "MB"]:
        if size < 1024:
            return f"{size:.2f} {unit}"
        size /= 1024
    return f"{size:.2f} GB"


def _print_result(result: RecordResult) -> None:
    icon = {
        RecordStatus.MATCHED: "[OK]",
        RecordStatus.NOT_FOUND: "[--]",
        RecordStatus.INVALID: "[!!]",
        RecordStatus.FAILED: "[ERR]",
    }[result.status]
    line = f"#{result.index + 1} {icon} {result.title or '<no title>'}"
    if result.product_id is not None:
        line += f" -> product {result.product_id} ({result.phase})"
    if result.error:
        line += f" [{result.error}]"
    print(line)


def cmd_run(args):
    path = Path(args.file_path)
    user_id = args.user_id

    init_db()
    db = SessionLocal()
    try:
        store = SqlCatalogStore(db)
        product_count = store.count_products(user_id)
        if product_count == 0:
            print(f"Warning: user {user_id} has no products in the catalog")
        else:
            print(f"Products for user {user_id}: {product_count}")
        if path.exists():
            print(f"File: {path} ({_format_bytes(path.stat().st_size)})")
        if args.dry_run:
            print("Dry run: no changes will be written")

        try:
            run = reconcile_file(
                path,
                store,
                user_id=user_id,
                dry_run=args.dry_run,
                on_record=_print_result if args.show_details else None,
            )
        except SourceError as exc:
            print(f"Error: {exc}")
            sys.exit(1)
    finally:
        db.close()

    stats = run.stats
    print("\n" + "=" * 60)
    print("SUMMARY")
    print("=" * 60)
    for label, count, percent in summarize(stats):
        print(f"  {label:<22} {count:>8}  {percent:>6.1f}%")
    print(f"\nSuccess rate: {stats.success_rate * 100:.2f}% ({verdict(stats)})")

    advice = recommendations(stats)
    if advice:
        print("\nRecommendations:")
        for line in advice:
            print(f"  - {line}")

    if args.dry_run:
        print("\nRun again without --dry-run to apply the changes")


def cmd_similarity(args):
    parts = args.pair.split("|")
    if len(parts) != 2:
        print('Error: expected --pair "first text|second text"')
        sys.exit(1)

    comparison = compare_texts(parts[0].strip(), parts[1].strip(), MatchingThresholds.from_settings())
    print(f"Text 1:            {comparison.text_a}")
    print(f"Text 2:            {comparison.text_b}")
    print(f"Normalized 1:      {comparison.normalized_a}")
    print(f"Normalized 2:      {comparison.normalized_b}")
    print(f"Char similarity:   {comparison.char_similarity:.2f}")
    print(f"Word bonus:        {comparison.word_bonus:.2f}")
    print(f"Score:             {comparison.score:.2f}")
    print(f"Meaningful words:  {comparison.words_a} / {comparison.words_b}")
    print(f"Shared words:      {comparison.shared_words}")


def cmd_products(args):
    db = SessionLocal()
    try:
        store = SqlCatalogStore(db)
        products = store.recent_products(args.user_id, args.limit)
        total = store.count_products(args.user_id)
    finally:
        db.close()

    if not products:
        print(f"No products for user {args.user_id}")
        return

    for product in products:
        title = product.title if len(product.title) <= 60 else product.title[:60] + "..."
        print(f"  {product.id:>6}  {title}")
    print(f"\nTotal products: {total}")


def cmd_categories(args):
    db = SessionLocal()
    try:
        store = SqlCatalogStore(db)
        if args.check:
            result = preview_entity(store, EntityType.CATEGORY, args.check, MatchingThresholds.from_settings())
            if result.match is None:
                print(f"No category above {result.threshold} for '{args.check}' (best {result.score})")
            else:
                how = "exact" if result.exact else f"similarity {result.score}"
                print(f"'{args.check}' -> {result.match.id} '{result.match.name}' ({how})")
            return

        categories = store.list_entities(EntityType.CATEGORY)
    finally:
        db.close()

    for category in sorted(categories, key=lambda c: c.name)[: args.limit]:
        print(f"  {category.id:>6}  {category.name}  ({category.slug})")
    print(f"\nTotal categories: {len(categories)}")


def main():
    parser = argparse.ArgumentParser(
        description="Match scraped product records to catalog products and assign categories and brands"
    )
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Reconcile a JSON file of product records")
    run_parser.add_argument("file_path", help="Path to the JSON file")
    run_parser.add_argument("--user-id", type=int, default=settings.default_user_id, help="Catalog owner id")
    run_parser.add_argument("--dry-run", action="store_true", help="Run everything, then roll back")
    run_parser.add_argument("--show-details", action="store_true", help="Print every record outcome")
    run_parser.set_defaults(func=cmd_run)

    similarity_parser = subparsers.add_parser("similarity", help="Show how two texts score")
    similarity_parser.add_argument("--pair", required=True, help='"first text|second text"')
    similarity_parser.set_defaults(func=cmd_similarity)

    products_parser = subparsers.add_parser("products", help="List catalog products of a user")
    products_parser.add_argument("--user-id", type=int, default=settings.default_user_id)
    products_parser.add_argument("--limit", type=int, default=20)
    products_parser.set_defaults(func=cmd_products)

    categories_parser = subparsers.add_parser("categories", help="List categories or check a name")
    categories_parser.add_argument("--check", help="Category name to look up without creating it")
    categories_parser.add_argument("--limit", type=int, default=30)
    categories_parser.set_defaults(func=cmd_categories)

    if len(sys.argv) == 1:
        parser.print_help()
        print("\nExamples:")
        print("  python scripts/match_categories.py run data/items.json --dry-run --show-details")
        print("  python scripts/match_categories.py similarity --pair 'گوشی سامسونگ|گوشی موبایل سامسونگ'")
        print("  python scripts/match_categories.py categories --check 'Mobile Phones'")
        sys.exit(0)

    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper())

    if hasattr(args, "func"):
        args.func(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
