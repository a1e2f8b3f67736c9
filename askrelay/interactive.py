#!/usr/bin/env python3
"""
AskRelay Interactive CLI

A command-line client for the orchestration service's ask operation.
"""

import argparse
import json
import logging
import os
import sys
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_ORCHESTRATOR_URL = "http://localhost:3000"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def print_banner() -> None:
    """Print the welcome banner."""
    banner = """
AskRelay CLI client

Available commands:
  /help     - Show this help message
  /quit     - Exit the CLI (or type 'exit')

Type your questions below.
"""
    print(banner)


class RequestFailed(Exception):
    """The orchestrator answered with a non-success status."""

    def __init__(self, status_code: int, reason: str):
        super().__init__(f"Request failed: {status_code} {reason}")
        self.status_code = status_code
        self.reason = reason


def ask(base_url: str, question: str, timeout: Optional[float] = None) -> dict[str, Any]:
    """
    Post a question to the orchestrator.

    Returns:
        The decoded response body

    Raises:
        RequestFailed: Non-2xx response.
        requests.exceptions.RequestException: Transport failure.
    """
    url = f"{base_url.rstrip('/')}/api/ask"
    logger.debug(f"POST {url}")
    response = requests.post(url, json={"question": question}, timeout=timeout)
    if not response.ok:
        raise RequestFailed(response.status_code, response.reason)
    return response.json()


def format_result(result: Any) -> str:
    """
    Render a result for display.

    Several non-empty lines that each hold JSON are shown as one pretty
    printed list; a single JSON document is pretty printed; anything else is
    returned unchanged.
    """
    if not isinstance(result, str):
        return json.dumps(result, indent=2, ensure_ascii=False)

    parts = [p.strip() for p in result.split("\n") if p.strip()]
    try:
        if len(parts) > 1:
            parsed = [json.loads(p) for p in parts]
        else:
            parsed = json.loads(result)
    except ValueError:
        return result
    return json.dumps(parsed, indent=2, ensure_ascii=False)


class InteractiveCLI:
    """Interactive REPL against a running orchestrator."""

    def __init__(self, base_url: str, raw_json: bool = False):
        self.base_url = base_url
        self.raw_json = raw_json

    def process_query(self, question: str) -> None:
        """Ask one question and print the outcome."""
        try:
            data = ask(self.base_url, question)
        except RequestFailed as e:
            print(str(e), file=sys.stderr)
            return
        except requests.exceptions.RequestException as e:
            print(f"Error: {e}", file=sys.stderr)
            return

        if self.raw_json:
            print(json.dumps(data, indent=2, ensure_ascii=False))
        else:
            print("→", format_result(data.get("result")))

    def run(self) -> None:
        """Run the interactive loop."""
        print_banner()

        while True:
            try:
                user_input = input("> ").strip()
            except KeyboardInterrupt:
                print("\n\nType /quit to exit.\n")
                continue
            except EOFError:
                break

            if not user_input:
                continue

            command = user_input.lower()
            if command in ("exit", "/quit", "/exit", "/q"):
                break
            elif command in ("/help", "/h", "/?"):
                print_banner()
            elif user_input.startswith("/"):
                print(f"\nUnknown command: {user_input}")
                print("Type /help for available commands.\n")
            else:
                self.process_query(user_input)

        print("Bye!")


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="AskRelay CLI client",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                              # Start interactive mode
  %(prog)s -q "Weather in Dubai?"       # Ask a single question
  %(prog)s -q "What is 2+2?" --json     # Print the raw response body
""",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    parser.add_argument(
        "-q",
        "--query",
        type=str,
        help="Ask a single question and exit",
    )

    parser.add_argument(
        "--url",
        type=str,
        default=os.getenv("ORCHESTRATOR_URL", DEFAULT_ORCHESTRATOR_URL),
        help=f"Orchestrator base URL (default: from ORCHESTRATOR_URL env or {DEFAULT_ORCHESTRATOR_URL})",
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Output the raw response body as JSON (for scripting)",
    )

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if not args.query:
        InteractiveCLI(base_url=args.url, raw_json=args.json).run()
        return 0

    try:
        data = ask(args.url, args.query)
    except RequestFailed as e:
        print(str(e), file=sys.stderr)
        return 1
    except requests.exceptions.RequestException as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(data, indent=2, ensure_ascii=False))
    else:
        print(format_result(data.get("result")))
    return 0


if __name__ == "__main__":
    sys.exit(main())
