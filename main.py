"""deepsearch - autonomous research loop

Simple CLI for answering one question within a token budget.
"""

import argparse
import asyncio
import sys

from deepsearch.agents.orchestrator import ResearchOrchestrator
from deepsearch.config import settings
from deepsearch.errors import ConfigurationError


def check_credentials() -> None:
    missing = settings.missing_credentials()
    if missing:
        raise ConfigurationError(f"Missing credentials: {', '.join(missing)}")


async def run_research(query: str, budget: int | None = None, model: str | None = None) -> int:
    """Run research on the given question. Returns the process exit code."""
    print(f"Question: {query}")
    print("-" * 50)

    orchestrator = ResearchOrchestrator(model=model)

    exit_code = 1
    async for event in orchestrator.research(query, token_budget=budget):
        event_type = event.event.value
        data = event.data

        if event_type == "progress":
            print(f"[~] {data}")

        elif event_type == "answer":
            print(f"\n{'='*50}")
            print("ANSWER:")
            print(f"{'='*50}")
            print(data.get("answer", ""))
            references = data.get("references", [])
            if references:
                print("\nReferences:")
                for i, ref in enumerate(references, 1):
                    print(f"  {i}. {ref.get('title', '')} - {ref.get('url', '')}")
            exit_code = 0

        elif event_type == "error":
            print(f"\n[!] Error: {data}")

        if event.is_terminal:
            break

    return exit_code


def main():
    parser = argparse.ArgumentParser(description="deepsearch research loop")
    parser.add_argument("query", nargs="?", help="Question to research")
    parser.add_argument("--query", "-q", dest="query_flag", help="Question to research")
    parser.add_argument("--budget", "-b", type=int, help="Token budget (default: from config)")
    parser.add_argument("--model", "-m", help="Model to use (default: from config)")

    args = parser.parse_args()
    query = args.query_flag or args.query
    if not query:
        parser.error("a question is required")

    try:
        check_credentials()
    except ConfigurationError as e:
        print(f"[!] {e}", file=sys.stderr)
        sys.exit(2)

    sys.exit(asyncio.run(run_research(query, args.budget, args.model)))


if __name__ == "__main__":
    main()
