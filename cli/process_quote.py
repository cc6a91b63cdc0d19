"""
CLI tool for pricing a quote and optionally driving it to an issued policy.
Usage: python -m cli.process_quote --product term-life-10 --coverage 150000 --age 35
"""

import sys
import json
import argparse
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from policyflow.config import get_settings
from policyflow.core.exceptions import PolicyflowError
from policyflow.pipeline.catalog import seed_products
from policyflow.pipeline.models import (
    Applicant,
    ApplicationInput,
    QuoteInput,
    UnderwritingDecision,
)
from policyflow.pipeline.orchestrator import InsurancePipeline
from policyflow.store.factory import build_memory_repositories, build_repositories


# ANSI color codes for terminal output
class Colors:
    HEADER = '\033[95m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'


STAGES = ["quote", "application", "underwriting", "policy"]


def print_step(step_num: int, name: str, status: str, total: int):
    """Print step progress."""
    if status == "complete":
        icon = "done"
        color = Colors.GREEN
    elif status == "stopped":
        icon = "stopped"
        color = Colors.YELLOW
    else:
        icon = "!"
        color = Colors.RED

    print(f"  [{step_num}/{total}] {name:<25} {color}{icon}{Colors.ENDC}")


def print_summary(result: dict):
    """Print the collected entities in a formatted way."""
    print("\n" + "=" * 70)
    print(f"{Colors.BOLD}{Colors.GREEN}        QUOTE PROCESSED{Colors.ENDC}")
    print("=" * 70)

    quote = result["quote"]
    print(f"\n{Colors.BOLD}Quote:{Colors.ENDC} {quote.id}")
    print(f"  Product: {quote.product_slug} ({quote.term_years} years)")
    print(f"  Coverage: ${quote.coverage_amount:,}")
    print(f"  Monthly premium: ${quote.monthly_premium}")
    print(f"  Expires: {quote.expires_at.isoformat()}")

    application = result.get("application")
    if application:
        print(f"\n{Colors.BOLD}Application:{Colors.ENDC} {application.id} ({application.status.value})")

    case = result.get("case")
    if case:
        print(f"\n{Colors.BOLD}Underwriting:{Colors.ENDC}")
        print(f"  Score: {case.risk_score.score}/100")
        if case.risk_score.flags:
            print(f"  Flags: {', '.join(case.risk_score.flags)}")
        if case.decision == UnderwritingDecision.REFERRED:
            print(f"  {Colors.YELLOW}Referred for manual review (case {case.id}){Colors.ENDC}")
        else:
            print(f"  Decision: {case.decision.value} ({case.reason})")

    policy = result.get("policy")
    if policy:
        print(f"\n{Colors.BOLD}Policy:{Colors.ENDC} {policy.number}")
        print(f"  Effective: {policy.effective_date.date().isoformat()}")
        print(f"  Expires: {policy.expiry_date.date().isoformat()}")


def run(pipeline: InsurancePipeline, args, progress) -> dict:
    """Drive the pipeline up to the requested stage."""
    result = {}
    total = STAGES.index(args.through) + 1

    product = pipeline.repositories.products.get_by_slug(args.product)
    quote = pipeline.quotes.price(QuoteInput(
        product_slug=args.product,
        coverage_amount=args.coverage,
        term_years=args.term or product.term_years,
        age=args.age,
        smoker=args.smoker,
    ))
    result["quote"] = quote
    progress(1, "Price quote", "complete", total)
    if args.through == "quote":
        return result

    applicant = Applicant(
        first_name=args.first_name,
        last_name=args.last_name,
        email=args.email,
        date_of_birth=args.dob,
        age=args.age,
        smoker=args.smoker,
        state=args.state,
    )
    application = pipeline.applications.create(ApplicationInput(quote_id=quote.id, applicant=applicant))
    application = pipeline.applications.submit(application.id)
    result["application"] = application
    progress(2, "Create and submit", "complete", total)
    if args.through == "application":
        return result

    case = pipeline.underwriting.process_application(application.id)
    result["case"] = case
    result["application"] = pipeline.applications.get(application.id)
    progress(3, "Underwrite", "complete", total)
    if args.through == "underwriting":
        return result

    if case.decision != UnderwritingDecision.APPROVED:
        progress(4, "Issue policy", "stopped", total)
        return result

    offer = pipeline.offers.get_by_application_id(application.id)
    pipeline.offers.accept(offer.id)
    result["policy"] = pipeline.policies.issue_from_offer(offer.id)
    progress(4, "Accept offer and issue", "complete", total)
    return result


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Price an insurance quote and optionally take it through to a policy",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m cli.process_quote --product term-life-10 --coverage 150000 --age 35
  python -m cli.process_quote --product term-life-20 --coverage 400000 --age 52 --smoker --through policy
  python -m cli.process_quote --product whole-life --coverage 100000 --age 40 --memory --json
        """
    )

    parser.add_argument("--product", "-p", required=True, help="Product slug")
    parser.add_argument("--coverage", "-c", type=int, required=True, help="Coverage amount")
    parser.add_argument("--age", "-a", type=int, required=True, help="Applicant age")
    parser.add_argument("--term", type=int, help="Term in years (defaults to the product term)")
    parser.add_argument("--smoker", action="store_true", help="Applicant is a smoker")
    parser.add_argument(
        "--through",
        choices=STAGES,
        default="quote",
        help="Last stage to run (default: quote)"
    )
    parser.add_argument("--first-name", default="Jane")
    parser.add_argument("--last-name", default="Doe")
    parser.add_argument("--email", default="jane.doe@example.com")
    parser.add_argument("--dob", default="1990-01-01", help="Date of birth (YYYY-MM-DD)")
    parser.add_argument("--state", default="TX")
    parser.add_argument(
        "--memory",
        action="store_true",
        help="Use a throwaway in-memory store seeded with the default catalog"
    )
    parser.add_argument(
        "--json", "-j",
        action="store_true",
        help="Output result as JSON only"
    )

    args = parser.parse_args()
    settings = get_settings()

    if args.memory:
        repositories = build_memory_repositories()
        for product in seed_products():
            repositories.products.upsert_by_slug(product)
    else:
        repositories = build_repositories(settings)

    def progress_callback(step: int, name: str, status: str, total: int):
        if not args.json:
            print_step(step, name, status, total)

    if not args.json:
        print(f"\n{Colors.BOLD}Policyflow Quote Processing{Colors.ENDC}")
        print("-" * 40)

    try:
        result = run(InsurancePipeline(repositories, settings=settings), args, progress_callback)
    except PolicyflowError as e:
        if args.json:
            print(json.dumps({"success": False, "error": e.message}))
        else:
            print(f"\n{Colors.RED}Error: {e.message}{Colors.ENDC}")
        sys.exit(1)
    finally:
        repositories.close()

    if args.json:
        output = {"success": True}
        output.update({key: value.model_dump(mode="json") for key, value in result.items()})
        print(json.dumps(output, indent=2))
    else:
        print_summary(result)


if __name__ == "__main__":
    main()
