"""Main entrypoint for the consensus oracle."""

import argparse
import asyncio
import json
import sys
from typing import Any

from consensus_oracle.config import settings
from consensus_oracle.consensus import (
    ConsensusEngine,
    assess_consensus,
    format_consensus_summary,
)
from consensus_oracle.errors import OracleError
from consensus_oracle.logging import get_logger, setup_logging
from consensus_oracle.models import build_question

logger = get_logger(__name__)


def _print_json(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2))


async def run_evaluation(
    question: str,
    option_a: str,
    option_b: str,
    providers: list[str] | None = None,
    detailed: bool = False,
) -> dict[str, Any]:
    """Run one consensus evaluation and return the JSON-ready payload."""
    query = build_question(question, option_a, option_b)
    engine = ConsensusEngine(settings=settings)
    try:
        if not detailed:
            result = await engine.evaluate(query, providers)
            return result.model_dump(mode="json", by_alias=True)
        report = await engine.evaluate_detailed(query, providers)
        payload = report.model_dump(mode="json", by_alias=True)
        payload["assessment"] = assess_consensus(report.result).to_dict()
        payload["summary"] = format_consensus_summary(query, report.result)
        return payload
    finally:
        await engine.aclose()


def serve(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run(
        "consensus_oracle.api.app:app",
        host=host,
        port=port,
        reload=settings.debug_mode,
        log_level=settings.log_level.lower(),
    )


def main(argv: list[str] | None = None) -> None:
    """Main entrypoint."""
    parser = argparse.ArgumentParser(description="Consensus Oracle")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default=settings.host, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=settings.port, help="Bind port")

    evaluate_parser = subparsers.add_parser("evaluate", help="Evaluate one question")
    evaluate_parser.add_argument("--question", required=True)
    evaluate_parser.add_argument("--option-a", required=True)
    evaluate_parser.add_argument("--option-b", required=True)
    evaluate_parser.add_argument(
        "--providers", default=None, help="Comma-separated provider ids, e.g. openai,gemini"
    )
    evaluate_parser.add_argument(
        "--detailed", action="store_true", help="Include every provider attempt"
    )

    subparsers.add_parser("providers", help="Show the configured provider roster")

    args = parser.parse_args(argv)
    setup_logging()

    if args.command == "serve":
        serve(args.host, args.port)

    elif args.command == "evaluate":
        providers = None
        if args.providers:
            providers = [p.strip() for p in args.providers.split(",") if p.strip()]
        try:
            payload = asyncio.run(
                run_evaluation(
                    args.question,
                    args.option_a,
                    args.option_b,
                    providers=providers,
                    detailed=args.detailed,
                )
            )
        except OracleError as exc:
            logger.error("Evaluation failed: %s", exc.detail)
            _print_json(exc.to_dict())
            sys.exit(1)
        _print_json(payload)

    elif args.command == "providers":
        _print_json(
            {
                "providers": [
                    spec.model_dump(by_alias=True, exclude_none=True) for spec in settings.roster()
                ],
                "minConfidence": settings.min_confidence,
                "threshold": settings.threshold_policy().describe(),
            }
        )

    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
