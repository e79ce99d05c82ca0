"""Command-line interface for the gateway"""

from __future__ import annotations

import argparse
import asyncio
import json

from .config import load_config, setup_logging
from .executor import build_executor
from .models import ExecutionOptions, Priority


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="AI Gateway CLI")
    parser.add_argument("prompt", nargs="?", help="The prompt to send")
    parser.add_argument(
        "--priority",
        "-p",
        choices=[p.value for p in Priority],
        help="Provider selection policy",
    )
    parser.add_argument("--system", "-s", help="System prompt")
    parser.add_argument("--no-cache", action="store_true", help="Bypass the response cache")
    parser.add_argument("--no-tools", action="store_true", help="Do not offer tools")
    parser.add_argument("--cost-limit", type=float, help="Refuse tasks estimated above this (USD)")
    parser.add_argument("--timeout", type=float, help="Per-attempt timeout in seconds")
    parser.add_argument("--retries", type=int, help="Attempts on the primary provider")
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--configure", action="store_true", help="Configure API keys")
    parser.add_argument("--status", action="store_true", help="Show providers and breaker state")
    return parser


async def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.configure:
        from .credentials import configure_credentials_interactive

        configure_credentials_interactive()
        return 0

    config = load_config()
    setup_logging(config, verbose=args.verbose)
    executor = build_executor(config)

    try:
        if args.status:
            print(json.dumps(executor.get_system_status(), indent=2))
            return 0

        if not args.prompt:
            parser.print_help()
            return 0

        options = ExecutionOptions.from_config(
            config.defaults,
            priority=args.priority,
            system_prompt=args.system,
            use_cache=False if args.no_cache else None,
            use_tools=False if args.no_tools else None,
            cost_limit=args.cost_limit,
            timeout=args.timeout,
            retry_attempts=args.retries,
        )
        result = await executor.execute(args.prompt, options)
    finally:
        await executor.aclose()

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    elif result.success:
        source = "cache" if result.from_cache else f"{result.duration_ms:.0f}ms"
        print(f"\n[{result.provider}] ({source}, {result.attempts} attempts)")
        print("-" * 60)
        print(result.response)
        print("-" * 60)
        print(
            f"Tokens: {result.tokens_used.get('input_tokens', 0)} in / "
            f"{result.tokens_used.get('output_tokens', 0)} out, cost ${result.cost:.4f}"
        )
    else:
        print(f"\nError ({result.error_kind}): {result.error}")
    return 0 if result.success else 1


def run() -> None:
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    run()
