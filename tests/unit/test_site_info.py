"""Tests for the site info script."""

import os
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from sharepoint_fs.config import Settings
from sharepoint_fs.core.exceptions import SharePointAuthenticationError
from sharepoint_fs.schemas import WebInfo
from sharepoint_fs.scripts.site_info import main, print_site_details, run_site_info

SITE_URL = "https://contoso.sharepoint.com/sites/Test"


def make_web_info():
    return WebInfo(
        id="c6a4d8a1-0000-4000-8000-000000000001",
        title="Test Site",
        description="Integration site",
        created=datetime(2024, 1, 2, 3, 4, 5),
        modified=datetime(2024, 6, 7, 8, 9, 10),
        server_relative_url="/sites/Test",
    )


def make_settings(site_url=SITE_URL):
    settings = MagicMock()
    settings.sharepoint_site_url = site_url
    settings.sharepoint_client_id = "test-client"
    settings.is_sharepoint_configured = True
    settings.missing_sharepoint_settings = []
    return settings


def make_filesystem(info=None, error=None):
    fs = MagicMock()
    fs.__aenter__ = AsyncMock(return_value=fs)
    fs.__aexit__ = AsyncMock(return_value=None)
    fs.authenticate = AsyncMock(side_effect=error)
    fs.get_web_endpoint = AsyncMock(return_value=info)
    return fs


class TestPrintSiteDetails:
    def test_prints_all_fields(self, capsys):
        print_site_details(make_web_info())

        out = capsys.readouterr().out
        assert "ID: c6a4d8a1-0000-4000-8000-000000000001" in out
        assert "Title: Test Site" in out
        assert "Description: Integration site" in out
        assert "Created: 2024-01-02 03:04:05" in out
        assert "Modified: 2024-06-07 08:09:10" in out


class TestRunSiteInfo:
    """Tests for the async script body."""

    @pytest.mark.asyncio
    async def test_success_prints_details(self, capsys):
        fs = make_filesystem(info=make_web_info())

        with (
            patch(
                "sharepoint_fs.scripts.site_info.get_settings",
                return_value=make_settings(),
            ),
            patch(
                "sharepoint_fs.scripts.site_info.SharePointFileSystem",
                return_value=fs,
            ) as mock_fs_class,
        ):
            exit_code = await run_site_info()

        assert exit_code == 0
        mock_fs_class.assert_called_once_with(SITE_URL)
        fs.authenticate.assert_awaited_once()
        fs.get_web_endpoint.assert_awaited_once()
        out = capsys.readouterr().out
        assert "Authenticated" in out
        assert "Title: Test Site" in out

    @pytest.mark.asyncio
    async def test_site_url_argument_overrides_settings(self):
        fs = make_filesystem(info=make_web_info())
        other_url = "https://contoso.sharepoint.com/sites/Other"

        with (
            patch(
                "sharepoint_fs.scripts.site_info.get_settings",
                return_value=make_settings(),
            ),
            patch(
                "sharepoint_fs.scripts.site_info.SharePointFileSystem",
                return_value=fs,
            ) as mock_fs_class,
        ):
            exit_code = await run_site_info(site_url=other_url)

        assert exit_code == 0
        mock_fs_class.assert_called_once_with(other_url)

    @pytest.mark.asyncio
    async def test_missing_site_url_fails(self, capsys):
        with (
            patch(
                "sharepoint_fs.scripts.site_info.get_settings",
                return_value=make_settings(site_url=""),
            ),
            patch(
                "sharepoint_fs.scripts.site_info.SharePointFileSystem"
            ) as mock_fs_class,
        ):
            exit_code = await run_site_info()

        assert exit_code == 1
        mock_fs_class.assert_not_called()
        assert "No site URL given" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_not_configured_lists_missing_settings(self, capsys):
        """Every missing variable is reported and nothing is sent."""
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(
                _env_file=None,
                sharepoint_site_url=SITE_URL,
                sharepoint_auth_scope="https://contoso.sharepoint.com/.default",
            )

        with (
            patch(
                "sharepoint_fs.scripts.site_info.get_settings",
                return_value=settings,
            ),
            patch(
                "sharepoint_fs.scripts.site_info.SharePointFileSystem"
            ) as mock_fs_class,
        ):
            exit_code = await run_site_info()

        assert exit_code == 1
        mock_fs_class.assert_not_called()
        out = capsys.readouterr().out
        assert "SHAREPOINT_CLIENT_ID environment variable has not been set" in out
        assert "SHAREPOINT_CERT_PRIVATE_KEY_FILE" in out
        assert "SHAREPOINT_AUTH_SCOPE" not in out

    @pytest.mark.asyncio
    async def test_sharepoint_error_returns_failure(self, capsys):
        fs = make_filesystem(
            error=SharePointAuthenticationError("Failed to acquire app token")
        )

        with (
            patch(
                "sharepoint_fs.scripts.site_info.get_settings",
                return_value=make_settings(),
            ),
            patch(
                "sharepoint_fs.scripts.site_info.SharePointFileSystem",
                return_value=fs,
            ),
        ):
            exit_code = await run_site_info()

        assert exit_code == 1
        fs.get_web_endpoint.assert_not_awaited()
        assert "ERROR: Failed to acquire app token" in capsys.readouterr().out


class TestMain:
    def test_main_exits_with_script_result(self):
        with (
            patch("sys.argv", ["sharepoint-site-info", "--site-url", SITE_URL]),
            patch("sharepoint_fs.scripts.site_info.configure_logging"),
            patch(
                "sharepoint_fs.scripts.site_info.run_site_info",
                new=AsyncMock(return_value=0),
            ) as mock_run,
            pytest.raises(SystemExit) as exc_info,
        ):
            main()

        assert exc_info.value.code == 0
        mock_run.assert_awaited_once_with(site_url=SITE_URL)
