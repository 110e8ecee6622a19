"""Print details of a SharePoint site.

Authenticates with the configured certificate credentials, calls the
site's web endpoint and prints what it reports. Useful for checking a
new app registration end to end.

Usage:
    python -m sharepoint_fs.scripts.site_info
    python -m sharepoint_fs.scripts.site_info --site-url https://example.sharepoint.com/sites/Site
"""

import argparse
import asyncio
import sys

from sharepoint_fs.config import get_settings
from sharepoint_fs.core.exceptions import (
    SharePointConfigurationError,
    SharePointError,
)
from sharepoint_fs.core.filesystem import SharePointFileSystem
from sharepoint_fs.core.logging import configure_logging, get_logger
from sharepoint_fs.schemas import WebInfo

logger = get_logger(__name__)


def print_site_details(info: WebInfo) -> None:
    """Print site details to the console.

    Args:
        info: Site details from the web endpoint
    """
    print()
    print("Site details")
    print("------------")
    print(f"ID: {info.id}")
    print(f"Title: {info.title}")
    print(f"Description: {info.description}")
    print(f"Created: {info.created}")
    print(f"Modified: {info.modified}")
    print()


async def run_site_info(site_url: str | None = None) -> int:
    """Authenticate and print the site details.

    Args:
        site_url: Site to query (default: SHAREPOINT_SITE_URL)

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    settings = get_settings()
    site_url = site_url or settings.sharepoint_site_url

    print("SharePoint Authentication")
    print("-------------------------")

    if not site_url:
        print("ERROR: No site URL given. Pass --site-url or set SHAREPOINT_SITE_URL.")
        return 1

    try:
        settings.require_sharepoint()
    except SharePointConfigurationError as e:
        logger.error(
            "sharepoint_not_configured",
            missing=settings.missing_sharepoint_settings,
        )
        print(f"ERROR: {e}")
        return 1

    print(f"SharePoint URL: {site_url}")
    print(f"Client ID: {settings.sharepoint_client_id}")

    try:
        async with SharePointFileSystem(site_url) as fs:
            await fs.authenticate()
            print("Authenticated")
            info = await fs.get_web_endpoint()
    except SharePointError as e:
        logger.error("sharepoint_site_info_failed", error=str(e))
        print(f"ERROR: {e}")
        return 1

    print_site_details(info)
    return 0


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Authenticate against SharePoint and print site details",
    )
    parser.add_argument(
        "--site-url",
        default=None,
        help="Site URL (default: SHAREPOINT_SITE_URL)",
    )

    args = parser.parse_args()

    configure_logging()

    exit_code = asyncio.run(run_site_info(site_url=args.site_url))

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
