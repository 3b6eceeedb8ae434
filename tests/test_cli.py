"""Tests for sso-helper command-line interface."""

import io
import os
import shutil
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from types import MappingProxyType
from unittest.mock import patch

from ssohelper.cli import duration_minutes, main
from ssohelper.console import Credentials
from ssohelper.core import DEFAULT_START_MARKER, ShellHelper, ShellScript


class CliTestCase(unittest.TestCase):
    """Shared fixtures: a ShellHelper writing into a temp directory."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.rc_file = os.path.join(self.temp_dir, ".bash_profile")
        self.helper = ShellHelper(
            scripts=MappingProxyType({"bash": ShellScript("bash_profile.sh", self.rc_file)}),
            get_executable=lambda: "/opt/bin/sso-helper",
        )

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def run_cli(self, *argv):
        stdout, stderr = io.StringIO(), io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            rc = main(list(argv), helper=self.helper)
        return rc, stdout.getvalue(), stderr.getvalue()


class TestShellCommands(CliTestCase):
    """Test install, uninstall, source and config-files."""

    def test_install_then_uninstall(self):
        """Test the block is added and removed again."""
        rc, out, _ = self.run_cli("install", "--shell", "bash")
        self.assertEqual(rc, 0)
        self.assertIn("installed", out)
        with open(self.rc_file) as f:
            content = f.read()
        self.assertIn(DEFAULT_START_MARKER, content)
        self.assertIn('"/opt/bin/sso-helper" console', content)

        rc, out, _ = self.run_cli("install", "--shell", "bash")
        self.assertEqual(rc, 0)
        self.assertIn("already up to date", out)

        rc, out, _ = self.run_cli("uninstall", "--shell", "bash")
        self.assertEqual(rc, 0)
        self.assertIn("removed", out)
        self.assertFalse(os.path.exists(self.rc_file))

    def test_install_corrupted_file(self):
        """Test a corrupted block is reported and the file left alone."""
        original = f"export A=1\n{DEFAULT_START_MARKER}\n"
        with open(self.rc_file, "w") as f:
            f.write(original)

        rc, _, err = self.run_cli("install", "--shell", "bash")

        self.assertEqual(rc, 1)
        self.assertIn("Error:", err)
        self.assertIn("no matching end marker", err)
        with open(self.rc_file) as f:
            self.assertEqual(f.read(), original)

    def test_uninstall_corrupted_file_fails(self):
        """Test uninstall errors propagate instead of being ignored."""
        with open(self.rc_file, "w") as f:
            f.write(f"{DEFAULT_START_MARKER}\n")
        rc, _, err = self.run_cli("uninstall", "--shell", "bash")
        self.assertEqual(rc, 1)
        self.assertIn("Error:", err)

    def test_unsupported_shell(self):
        """Test an unknown shell is an error."""
        rc, _, err = self.run_cli("install", "--shell", "tcsh")
        self.assertEqual(rc, 1)
        self.assertIn("unsupported shell: tcsh", err)

    def test_install_explicit_path(self):
        """Test --path overrides the default file."""
        other = os.path.join(self.temp_dir, "nested", "profile")
        rc, _, _ = self.run_cli("install", "--shell", "bash", "--path", other)
        self.assertEqual(rc, 0)
        self.assertTrue(os.path.exists(other))
        self.assertFalse(os.path.exists(self.rc_file))

    def test_source(self):
        """Test source prints the script without markers."""
        rc, out, _ = self.run_cli("source", "--shell", "bash")
        self.assertEqual(rc, 0)
        self.assertIn("/opt/bin/sso-helper", out)
        self.assertNotIn(DEFAULT_START_MARKER, out)
        self.assertFalse(os.path.exists(self.rc_file))

    def test_config_files(self):
        """Test config-files lists the registry paths."""
        rc, out, _ = self.run_cli("config-files")
        self.assertEqual(rc, 0)
        self.assertEqual(out.strip(), self.rc_file)


class TestConsoleCommand(CliTestCase):
    """Test the console command wiring."""

    @patch("ssohelper.cli.get_console_url", return_value="https://signin.aws.amazon.com/federation?x")
    @patch("ssohelper.cli.get_role_credentials", return_value=Credentials("AK", "SK", "TOK"))
    def test_console_print(self, mock_creds, mock_url):
        """Test --print shows the URL and the duration is converted to seconds."""
        rc, out, _ = self.run_cli("console", "--arn", "123456789012:Admin", "--duration", "90", "--print")
        self.assertEqual(rc, 0)
        self.assertIn("https://signin.aws.amazon.com/federation?x", out)
        mock_creds.assert_called_once_with(
            profile_name=None, role_arn="arn:aws:iam::123456789012:role/Admin"
        )
        self.assertEqual(mock_url.call_args[0][1], 5400)

    @patch("ssohelper.cli.webbrowser.open", return_value=True)
    @patch("ssohelper.cli.get_console_url", return_value="https://example/login")
    @patch("ssohelper.cli.get_role_credentials", return_value=Credentials("AK", "SK", "TOK"))
    def test_console_opens_browser(self, mock_creds, mock_url, mock_open):
        """Test the URL is opened in the default browser."""
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("BROWSER", None)
            rc, _, _ = self.run_cli("console", "--profile", "dev")
        self.assertEqual(rc, 0)
        mock_open.assert_called_once_with("https://example/login")
        mock_creds.assert_called_once_with(profile_name="dev", role_arn=None)

    def test_console_account_without_role(self):
        """Test --account alone is rejected."""
        rc, _, err = self.run_cli("console", "--account", "123456789012", "--role", "")
        self.assertEqual(rc, 2)
        self.assertIn("both --account and --role", err)

    def test_console_invalid_arn(self):
        """Test a malformed --arn is reported."""
        rc, _, err = self.run_cli("console", "--arn", "not-an-arn")
        self.assertEqual(rc, 1)
        self.assertIn("Invalid role", err)


class TestDurationMinutes(unittest.TestCase):
    """Test --duration validation."""

    def test_valid(self):
        """Test bounds are inclusive."""
        self.assertEqual(duration_minutes("15"), 15)
        self.assertEqual(duration_minutes("720"), 720)

    def test_invalid(self):
        """Test out-of-range and non-numeric values are rejected."""
        import argparse

        for value in ("14", "721", "abc"):
            with self.subTest(value=value):
                with self.assertRaises(argparse.ArgumentTypeError):
                    duration_minutes(value)


if __name__ == "__main__":
    unittest.main()
