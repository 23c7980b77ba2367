#!/usr/bin/env python3
"""CLI entry point for running a plan against a live browser."""
import argparse
import asyncio
import json
import sys
from pathlib import Path

from lulo.errors import PlannerError
from lulo.executor.browser_session import BrowserSession
from lulo.executor.dispatcher import StepDispatcher
from lulo.executor.feedback import VisualFeedbackSynchronizer, TabSurface
from lulo.executor.request_handler import RequestHandler
from lulo.models.step import Plan, StepUpdate
from lulo.utils.config import config
from lulo.utils.planner_client import PlannerClient
from lulo.utils.tasks import BackgroundTasks


def _print_step(update: StepUpdate):
    marker = {"running": "▶", "completed": "✓", "failed": "✗"}.get(update.status, "•")
    print(f"  {marker} [{update.index}] {update.action.value} {update.description}")


async def run(args) -> int:
    if args.plan and not args.plan.exists():
        print(f"❌ Plan not found: {args.plan}")
        return 1

    async with BrowserSession(headless=args.headless or None) as session:
        tab = await session.launch(args.url)

        tasks = BackgroundTasks("dispatcher")
        feedback = VisualFeedbackSynchronizer([TabSurface(session)], tasks=tasks)
        dispatcher = StepDispatcher(session, feedback=feedback, tasks=tasks)
        dispatcher.add_step_listener(_print_step)

        await dispatcher.waiter.wait_until_ready(tab.tab_id)

        if args.plan:
            plan = Plan.load(args.plan)
            print(f"\nLoaded plan: {args.plan} ({len(plan)} steps)")
            report = await dispatcher.dispatch(plan, tab_id=tab.tab_id)
        else:
            async with PlannerClient() as planner:
                handler = RequestHandler(session, dispatcher, planner)
                print(f"\nPrompt: {args.prompt}")
                report = await handler.handle(args.prompt, tab_id=tab.tab_id)

        print("\n" + "=" * 60)
        print(json.dumps(report.to_dict(), indent=2))
        print("=" * 60)

        await dispatcher.drain(timeout=config.readiness_timeout + config.new_tab_glow_duration + 5)

        if args.hold > 0:
            print(f"\nKeeping the browser open for {args.hold:.0f}s...")
            await asyncio.sleep(args.hold)

    return 0 if report.success else 1


def main():
    """Run a plan (from the planner or a JSON file) in a fresh browser."""
    parser = argparse.ArgumentParser(
        description="Execute a Lulo plan in a browser session",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Ask the planner
  python -m lulo.cli.run --prompt "find the pricing page" --url https://example.com

  # Replay a saved plan
  python -m lulo.cli.run --plan plans/newsletter.json --hold 30
        """
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--prompt",
        type=str,
        help="Natural-language request sent to the planner"
    )
    source.add_argument(
        "--plan",
        type=Path,
        help="Path to a plan JSON file ({\"steps\": [...]} or a bare list)"
    )

    parser.add_argument(
        "--url",
        type=str,
        default=None,
        help=f"Starting URL (default: {config.browser_default_url})"
    )

    parser.add_argument(
        "--headless",
        action="store_true",
        help="Run browser in headless mode"
    )

    parser.add_argument(
        "--hold",
        type=float,
        default=0,
        help="Seconds to keep the browser open after the plan"
    )

    parser.add_argument(
        "--status",
        action="store_true",
        help="Print configuration status first"
    )

    args = parser.parse_args()

    if args.status:
        config.print_status()

    if args.prompt and not config.api_token:
        print("⚠️  LULO_API_TOKEN is not set; the planner will likely refuse the request")

    try:
        exit_code = asyncio.run(run(args))
    except PlannerError as e:
        print(f"❌ {e}")
        exit_code = 1
    except KeyboardInterrupt:
        print("\n⚠️  Interrupted")
        exit_code = 130

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
