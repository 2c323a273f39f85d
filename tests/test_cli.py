import io
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import patch

from joara_scrap.cli import parse_args, run


class TestParseArgs(unittest.TestCase):
    def test_ids_urls_and_wait_time(self) -> None:
        settings, requests, show_help = parse_args(["12345", "https://example/book/6789", "-waitTime", "3000"])

        self.assertFalse(show_help)
        self.assertEqual([r.work_id for r in requests], ["12345", "6789"])
        self.assertEqual(settings.wait_time_ms, 3000)

    def test_defaults(self) -> None:
        settings, _, _ = parse_args(["1"])
        self.assertEqual(settings.wait_time_ms, 5000)
        self.assertEqual(settings.book_wait_ms, 0)
        self.assertFalse(settings.cooldown_enabled)
        self.assertIsNone(settings.max_challenge_cycles)
        self.assertEqual(settings.out_dir, Path("."))

    def test_options_between_ids(self) -> None:
        settings, requests, _ = parse_args(["1", "-bookWait", "60000", "2", "-cooldown", "5", "10", "3"])
        self.assertEqual([r.work_id for r in requests], ["1", "2", "3"])
        self.assertEqual(settings.book_wait_ms, 60000)
        self.assertEqual((settings.cooldown_every, settings.cooldown_minutes), (5, 10))

    def test_invalid_wait_time_keeps_default(self) -> None:
        with self.assertLogs("joara_scrap.cli", level="WARNING"):
            settings, _, _ = parse_args(["1", "-waitTime", "0"])
        self.assertEqual(settings.wait_time_ms, 5000)

    def test_negative_book_wait_keeps_default(self) -> None:
        with self.assertLogs("joara_scrap.cli", level="WARNING"):
            settings, _, _ = parse_args(["1", "-bookWait", "-5"])
        self.assertEqual(settings.book_wait_ms, 0)

    def test_invalid_cooldown_is_disabled(self) -> None:
        with self.assertLogs("joara_scrap.cli", level="WARNING"):
            settings, _, _ = parse_args(["1", "-cooldown", "0", "10"])
        self.assertFalse(settings.cooldown_enabled)

    def test_truncated_cooldown_is_disabled(self) -> None:
        with self.assertLogs("joara_scrap.cli", level="WARNING"):
            settings, requests, _ = parse_args(["1", "-cooldown", "5"])
        self.assertIsNone(settings.cooldown_every)
        self.assertEqual([r.work_id for r in requests], ["1"])

    def test_cooldown_short_of_values_before_another_option(self) -> None:
        with self.assertLogs("joara_scrap.cli", level="WARNING") as logs:
            settings, requests, _ = parse_args(["12345", "-cooldown", "5", "-waitTime", "3000"])
        self.assertFalse(settings.cooldown_enabled)
        self.assertEqual(settings.wait_time_ms, 3000)
        self.assertEqual([r.work_id for r in requests], ["12345"])
        self.assertIn("-cooldown", logs.output[0])

    def test_cooldown_accepts_negative_minutes_as_a_value(self) -> None:
        with self.assertLogs("joara_scrap.cli", level="WARNING") as logs:
            settings, requests, _ = parse_args(["1", "-cooldown", "5", "-1", "2"])
        self.assertFalse(settings.cooldown_enabled)
        self.assertEqual([r.work_id for r in requests], ["1", "2"])
        self.assertIn("invalid values for -cooldown", logs.output[0])

    def test_invalid_tokens_are_dropped(self) -> None:
        with self.assertLogs("joara_scrap.cli", level="ERROR"):
            _, requests, _ = parse_args(["abc", "42", "https://www.joara.com/viewer?x=1"])
        self.assertEqual([r.work_id for r in requests], ["42"])

    def test_challenge_cycles(self) -> None:
        settings, _, _ = parse_args(["1", "-challengeCycles", "4"])
        self.assertEqual(settings.max_challenge_cycles, 4)

    def test_help_supersedes_everything(self) -> None:
        settings, requests, show_help = parse_args(["12345", "-waitTime", "nope", "-help"])
        self.assertTrue(show_help)
        self.assertEqual(requests, [])


class TestRun(unittest.TestCase):
    def test_help_exits_before_scraping(self) -> None:
        out = io.StringIO()
        with patch("joara_scrap.cli.scrape") as scrape, redirect_stdout(out):
            code = run(["12345", "-help"])
        self.assertEqual(code, 0)
        scrape.assert_not_called()
        self.assertIn("-cooldown", out.getvalue())

    def test_no_valid_ids_is_an_error(self) -> None:
        with patch("joara_scrap.cli.scrape") as scrape, redirect_stdout(io.StringIO()):
            code = run(["nope"])
        self.assertEqual(code, 1)
        scrape.assert_not_called()

    def test_verbose_flag_turns_on_debug_logging(self) -> None:
        for argv, verbose in ((["nope", "-verbose"], True), (["nope"], False)):
            with patch("joara_scrap.cli.setup_logging") as setup, redirect_stdout(io.StringIO()):
                run(argv)
            setup.assert_called_once_with(verbose)


if __name__ == "__main__":
    unittest.main()
