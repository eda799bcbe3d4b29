"""CLI for downloading social media posts through provider APIs."""

import argparse
import asyncio
import sys

from .config import get_settings
from .core import MediaGrabError, Platform, PlatformResolver, ProviderKind
from .core.downloader import download_media
from .logging_config import configure_logging, new_download_id

# Corrective hint printed for each error kind
SUGGESTIONS = {
    "validation": "Check the URL, --platform and --provider values, and that the "
    "provider's API key is configured (LATE_DEV_API_KEY / INSTAG_API_KEY).",
    "provider": "Reconfigure provider credentials, or try the alternate provider "
    "for this platform with --provider.",
    "parse": "The provider returned an unexpected response. Try the alternate "
    "provider for this platform with --provider.",
    "timeout": "The provider is still working on this job. Try again later.",
    "cancelled": "The download was cancelled. Files already saved were kept.",
    "io": "Check that the output location exists and is writable.",
}


def report_error(kind, message, details=None, verbose=False, heading="Download failed"):
    """Print an error with its kind and the matching suggestion to stderr."""
    print(f"\n{heading} [{kind}]: {message}", file=sys.stderr)
    if verbose and details:
        print(f"Details: {details}", file=sys.stderr)
    suggestion = SUGGESTIONS.get(kind)
    if suggestion:
        print(suggestion, file=sys.stderr)


async def download_command(args):
    """Handle download command."""
    new_download_id()
    print(f"Downloading: {args.url}")

    outcome = await download_media(
        args.url,
        platform=args.platform,
        provider=args.provider,
        output=args.output,
        format=args.format,
        quality=args.quality,
    )

    if not outcome.success:
        report_error(
            outcome.error_kind, outcome.error, outcome.details, verbose=args.verbose
        )
        sys.exit(1)

    print(f"\nPlatform: {outcome.platform}  Provider: {outcome.provider}")
    if len(outcome.results) == 1:
        print(f"Downloaded successfully: {outcome.results[0].file_path}")
    else:
        print(f"Downloaded {len(outcome.results)} files:")
        for i, result in enumerate(outcome.results, 1):
            print(f"  {i}. {result.file_path}")

    for result in outcome.results:
        if result.file_size_mb:
            print(f"Size: {result.file_size_mb:.2f} MB ({result.file_path.name})")
        for warning in result.warnings:
            print(f"Warning: {warning}", file=sys.stderr)


def detect_command(args):
    """Handle detect command: show the platform and provider a URL would use."""
    platform = PlatformResolver.detect(args.url)
    if platform is None:
        print(f"Could not detect platform from URL: {args.url}", file=sys.stderr)
        sys.exit(1)

    try:
        config = get_settings().to_provider_config()
    except MediaGrabError as e:
        report_error(e.kind, e.message, e.details, verbose=args.verbose, heading="Error")
        sys.exit(1)

    print(f"Platform: {platform}")
    print(f"Provider: {config.provider_for_platform(platform.value)}")


async def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="mediagrab - Download media from social platforms",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    platforms = ", ".join(p.value for p in Platform)
    providers = ", ".join(p.value for p in ProviderKind if p != ProviderKind.CUSTOM)

    download_parser = subparsers.add_parser(
        "download",
        help="Download media from a URL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  mediagrab download "https://youtube.com/watch?v=..."
  mediagrab download "https://x.com/user/status/..." --provider instag
  mediagrab download "https://instagram.com/p/..." -o ./downloads/
  mediagrab download "https://youtube.com/watch?v=..." --format mp4 --quality 720p

Platforms: {platforms}
Providers: {providers}
        """,
    )
    download_parser.add_argument("url", help="URL to download")
    download_parser.add_argument(
        "-o", "--output",
        help="Output directory (trailing /) or exact file path",
    )
    download_parser.add_argument("-p", "--platform", help="Platform (auto-detected)")
    download_parser.add_argument("--provider", help="Provider (from config by default)")
    download_parser.add_argument("-f", "--format", help="Format, e.g. mp4 (YouTube only)")
    download_parser.add_argument("-q", "--quality", help="Quality, e.g. 720p (YouTube only)")

    detect_parser = subparsers.add_parser(
        "detect",
        help="Show which platform and provider a URL resolves to",
    )
    detect_parser.add_argument("url", help="URL to inspect")

    args = parser.parse_args()

    try:
        settings = get_settings()
    except MediaGrabError as e:
        report_error(
            e.kind, e.message, e.details, verbose=args.verbose, heading="Configuration error"
        )
        sys.exit(1)

    configure_logging(
        json_logs=settings.json_logs,
        log_level="DEBUG" if args.verbose else settings.log_level,
    )

    if args.command == "download":
        await download_command(args)
    elif args.command == "detect":
        detect_command(args)
    else:
        parser.print_help()
        sys.exit(0)


def cli():
    """Synchronous CLI wrapper."""
    asyncio.run(main())


if __name__ == "__main__":
    cli()
