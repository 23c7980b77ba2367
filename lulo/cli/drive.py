#!/usr/bin/env python3
"""CLI entry point for the external automation driver."""
import argparse
import asyncio
import base64
import sys
from pathlib import Path

from lulo.executor.external_driver import ExternalAutomationDriver
from lulo.utils.config import config


def _point(value: str):
    try:
        x, y = value.split(",", 1)
        return float(x), float(y)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected X,Y, got {value!r}")


def _report(label: str, result) -> bool:
    if result.success:
        print(f"  ✓ {label}")
    else:
        print(f"  ✗ {label}: {result.error}")
    return result.success


async def drive(args) -> int:
    driver = ExternalAutomationDriver(headless=args.headless or None)
    ok = True

    result = await driver.launch(width=args.width, height=args.height)
    if not _report("launch", result):
        return 1

    try:
        if args.url:
            ok &= _report(f"navigate {args.url}", await driver.navigate(args.url))

        for x, y in args.click or []:
            ok &= _report(f"click ({x:.0f}, {y:.0f})", await driver.click(x, y))

        if args.type:
            ok &= _report(f"type {len(args.type)} chars", await driver.type(args.type))

        if args.screenshot:
            data_url = await driver.screenshot()
            if data_url:
                args.screenshot.parent.mkdir(parents=True, exist_ok=True)
                args.screenshot.write_bytes(base64.b64decode(data_url.split(",", 1)[1]))
                print(f"  ✓ screenshot -> {args.screenshot}")
            else:
                print("  ✗ screenshot failed")
                ok = False

        if args.hold > 0:
            print(f"\nKeeping the browser open for {args.hold:.0f}s...")
            await asyncio.sleep(args.hold)
    finally:
        await driver.close()

    return 0 if ok else 1


def main():
    """Drive a Lulo-controlled browser from the command line."""
    parser = argparse.ArgumentParser(
        description="Drive an external browser with the Lulo overlay",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m lulo.cli.drive --url https://example.com --screenshot out/example.png
  python -m lulo.cli.drive --url https://duckduckgo.com --click 600,300 --type "lulo"
        """
    )

    parser.add_argument("--url", type=str, help="URL to open")
    parser.add_argument(
        "--click",
        type=_point,
        action="append",
        metavar="X,Y",
        help="Click at viewport coordinates (repeatable)"
    )
    parser.add_argument("--type", type=str, help="Text to type into the focused element")
    parser.add_argument("--screenshot", type=Path, help="Save a PNG screenshot here")
    parser.add_argument("--headless", action="store_true", help="Run browser in headless mode")
    parser.add_argument("--width", type=int, default=config.viewport_width, help="Viewport width")
    parser.add_argument("--height", type=int, default=config.viewport_height, help="Viewport height")
    parser.add_argument("--hold", type=float, default=0, help="Seconds to keep the browser open")

    args = parser.parse_args()

    try:
        exit_code = asyncio.run(drive(args))
    except KeyboardInterrupt:
        print("\n⚠️  Interrupted")
        exit_code = 130

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
