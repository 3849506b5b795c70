"""
Herbful - Treatment Catalog Back-Office

CLI entry point for catalog maintenance tasks.
"""

import argparse
import logging
import sys

from herbful.backoffice import BackOffice
from herbful.errors import HerbfulError, NotFound, ValidationFailed
import config.settings as settings


def setup_logging(log_level: str = "INFO"):
    """Configure logging for the entire application."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format=settings.LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(settings.LOG_FILE)
        ]
    )


def list_treatments(office: BackOffice, args) -> None:
    page = office.catalog.list_treatments(
        page=args.page,
        page_size=args.page_size,
        search_term=args.search,
        sort_by=args.sort_by,
        sort_order=args.sort_order
    )
    for t in page.items:
        print(f"{t.id:<30} {t.name:<30} {t.source_type:<16} {t.average_rating:.1f} ({t.total_reviews})")
    print(f"\nPage {args.page} of {page.total_pages} - {page.total_count} treatments")


def show_treatment(office: BackOffice, args) -> None:
    t = office.catalog.get_treatment(args.treatment_id)
    live = office.ratings.live_rating(t)
    print(f"Name: {t.name}")
    print(f"Source: {t.source_type}")
    for source in t.sources:
        print(f"  - {source.authority}: {source.url}")
    print(f"Symptoms: {', '.join(t.symptoms) or '-'}")
    print(f"Preparation: {t.preparation}")
    print(f"Usage: {t.usage}")
    print(f"Dosage: {t.dosage}")
    print(f"Rating: {live.average_rating} from {live.total_reviews} reviews "
          f"(cached {t.average_rating} / {t.total_reviews})")


def list_reviews(office: BackOffice, args) -> None:
    page = office.reviews.list_reviews(
        page=args.page,
        page_size=args.page_size,
        search_term=args.search,
        rating_filter=args.rating,
        treatment_filter=args.treatment,
        sort_by=args.sort_by
    )
    for r in page.items:
        who = "Anonymous" if r.anonymous else (r.user_name or "-")
        print(f"{r.created_at}  {r.rating}*  {r.treatment_name:<25} {who:<20} {r.comment[:40]}")
    counts = ", ".join(f"{star}*: {page.rating_counts.get(star, 0)}" for star in range(5, 0, -1))
    print(f"\nPage {args.page} of {page.total_pages} - {page.total_count} matching, {page.stats_total} total")
    print(f"Ratings: {counts}")


def recompute_ratings(office: BackOffice, args) -> None:
    if args.treatment_id:
        summary = office.reviews.recompute_treatment_rating(args.treatment_id)
        if summary is None:
            raise NotFound("treatment", args.treatment_id)
        print(f"{args.treatment_id}: {summary.average_rating} from {summary.total_reviews} reviews")
        return
    results = office.reviews.repair_ratings()
    print(f"Recomputed ratings for {len(results)} treatments")


def rebuild_symptoms(office: BackOffice, args) -> None:
    count = office.symptom_index.rebuild()
    print(f"Symptom index rebuilt: {count} symptoms")


def rename_symptom(office: BackOffice, args) -> None:
    changed = office.symptom_index.rename_symptom(args.old_name, args.new_name)
    print(f"Renamed '{args.old_name}' to '{args.new_name}' in {changed} treatments")


def check_symptoms(office: BackOffice, args) -> None:
    problems = office.symptom_index.check()
    stale = office.ratings.find_stale_ratings()
    for problem in problems:
        print(f"  - {problem}")
    for treatment_id in stale:
        print(f"  - Stale cached rating: {treatment_id}")
    if problems or stale:
        raise HerbfulError(f"{len(problems)} index problems, {len(stale)} stale ratings")
    print("Symptom index and cached ratings are consistent")


def export_treatments(office: BackOffice, args) -> None:
    count = office.transfer.export_treatments(args.path)
    print(f"Exported {count} treatments to {args.path}")


def import_treatments(office: BackOffice, args) -> None:
    count = office.transfer.import_treatments(args.path)
    print(f"Imported {count} treatments from {args.path}")


def rating_report(office: BackOffice, args) -> None:
    path = office.ratings.export_rating_report(args.path)
    summary = office.ratings.dashboard_summary()
    print(f"Rating report: {path}")
    print(f"Treatments: {summary['totalTreatments']} ({summary['verifiedTreatments']} verified)")
    print(f"Reviews: {summary['totalReviews']}")


def clear(office: BackOffice, args) -> None:
    if not args.yes:
        answer = input("Delete ALL treatments and reviews? Type 'yes' to continue: ")
        if answer.strip().lower() != "yes":
            print("Aborted")
            return
    counts = office.transfer.clear()
    print(f"Deleted {counts['treatments']} treatments and {counts['reviews']} reviews")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Herbful - Treatment Catalog Back-Office",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Search the catalog
  python main.py list-treatments --search malunggay

  # Recompute every cached rating
  python main.py recompute-ratings

  # Back up and restore the treatments collection
  python main.py export-treatments output/treatments.json
  python main.py import-treatments output/treatments.json

Note: Set HERBFUL_STORE_BACKEND=firebase plus FIREBASE_CREDENTIALS and
FIREBASE_DATABASE_URL to work against the live database.
        """
    )

    parser.add_argument(
        "--backend",
        default=settings.STORE_BACKEND,
        choices=["json", "firebase"],
        help=f"Storage backend (default: {settings.STORE_BACKEND})"
    )

    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Logging level (default: {settings.LOG_LEVEL})"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    cmd = commands.add_parser("list-treatments", help="List treatments")
    cmd.add_argument("--page", type=int, default=1)
    cmd.add_argument("--page-size", type=int, default=settings.DEFAULT_PAGE_SIZE)
    cmd.add_argument("--search", help="Case-insensitive name, benefit or symptom search")
    cmd.add_argument("--sort-by", help="Treatment field to sort by (default: newest first)")
    cmd.add_argument("--sort-order", choices=["asc", "desc"])
    cmd.set_defaults(handler=list_treatments)

    cmd = commands.add_parser("show-treatment", help="Show one treatment with its live rating")
    cmd.add_argument("treatment_id")
    cmd.set_defaults(handler=show_treatment)

    cmd = commands.add_parser("list-reviews", help="List reviews")
    cmd.add_argument("--page", type=int, default=1)
    cmd.add_argument("--page-size", type=int, default=settings.DEFAULT_PAGE_SIZE)
    cmd.add_argument("--search")
    cmd.add_argument("--rating", type=int, choices=[1, 2, 3, 4, 5])
    cmd.add_argument("--treatment", help="Treatment name to filter on")
    cmd.add_argument("--sort-by", default="newest", choices=["newest", "oldest", "highest", "lowest"])
    cmd.set_defaults(handler=list_reviews)

    cmd = commands.add_parser("recompute-ratings", help="Recompute cached treatment ratings")
    cmd.add_argument("treatment_id", nargs="?", help="Only this treatment (default: all)")
    cmd.set_defaults(handler=recompute_ratings)

    cmd = commands.add_parser("rebuild-symptoms", help="Rebuild the symptom index from treatments")
    cmd.set_defaults(handler=rebuild_symptoms)

    cmd = commands.add_parser("rename-symptom", help="Rename a symptom across all treatments")
    cmd.add_argument("old_name")
    cmd.add_argument("new_name")
    cmd.set_defaults(handler=rename_symptom)

    cmd = commands.add_parser("check", help="Check the symptom index and cached ratings")
    cmd.set_defaults(handler=check_symptoms)

    cmd = commands.add_parser("export-treatments", help="Export treatments to a JSON file")
    cmd.add_argument("path")
    cmd.set_defaults(handler=export_treatments)

    cmd = commands.add_parser("import-treatments", help="Replace treatments from a JSON file")
    cmd.add_argument("path")
    cmd.set_defaults(handler=import_treatments)

    cmd = commands.add_parser("rating-report", help="Write the rating consistency report (CSV)")
    cmd.add_argument("--path", default=str(settings.OUTPUT_ROOT / "rating_report.csv"))
    cmd.set_defaults(handler=rating_report)

    cmd = commands.add_parser("clear", help="Delete all treatments and reviews")
    cmd.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    cmd.set_defaults(handler=clear)

    return parser


def main():
    """Main CLI entry point."""
    args = build_parser().parse_args()

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    print("=" * 60)
    print("Herbful - Treatment Catalog Back-Office")
    print("=" * 60)
    print(f"Command: {args.command}")
    print(f"Backend: {args.backend}")
    if args.backend == "json":
        print(f"Data File: {settings.STORE_FILE}")
    print("=" * 60)
    print()

    try:
        office = BackOffice.from_settings(args.backend)
    except (HerbfulError, ValueError) as e:
        logger.error(f"Back-office initialization failed: {e}", exc_info=True)
        print(f"\n❌ Initialization failed: {e}")
        sys.exit(1)

    try:
        with office:
            args.handler(office, args)

        logger.info(f"Command {args.command} completed successfully")
        sys.exit(0)

    except KeyboardInterrupt:
        logger.warning("Command interrupted by user")
        print("\n⚠️  Command interrupted")
        sys.exit(1)

    except ValidationFailed as e:
        logger.error(f"Validation failed: {e.errors}")
        print("\n❌ Validation failed:")
        for field, message in e.errors.items():
            print(f"  {field}: {message}")
        sys.exit(1)

    except HerbfulError as e:
        logger.error(f"Command failed: {e}", exc_info=True)
        print(f"\n❌ Command failed: {e}")
        print(f"Check {settings.LOG_FILE} for details")
        sys.exit(1)


if __name__ == "__main__":
    main()
