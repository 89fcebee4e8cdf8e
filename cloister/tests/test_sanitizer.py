import unittest

from cloister.parsers.sanitizer import clean_system_content


class CleanSystemContentTests(unittest.TestCase):
    def test_reminder_only_text_becomes_empty(self) -> None:
        text = "<system-reminder>\nThe user opened a file.\n</system-reminder>"
        self.assertEqual(clean_system_content(text), "")

    def test_removes_every_internal_tag_family(self) -> None:
        text = (
            "<command-name>/model</command-name>\n"
            "<command-args>opus</command-args>\n"
            "<local-command-stdout>Set model</local-command-stdout>\n"
            "<user-prompt-submit-hook>ok</user-prompt-submit-hook>\n"
            "<session-start-hook>loaded</session-start-hook>\n"
            "<important-caveat>careful</important-caveat>\n"
            "Please fix the login bug"
        )
        self.assertEqual(clean_system_content(text), "Please fix the login bug")

    def test_removes_caveat_lines_and_collapses_blank_runs(self) -> None:
        text = "Caveat: generated by the CLI\nfirst\n\n\n\n\nsecond"
        self.assertEqual(clean_system_content(text), "first\n\nsecond")

    def test_tag_regions_are_matched_non_greedily(self) -> None:
        text = "<system-note>a</system-note>keep me<system-note>b</system-note>"
        self.assertEqual(clean_system_content(text), "keep me")

    def test_sanitizing_twice_is_a_no_op(self) -> None:
        samples = [
            "plain text",
            "<system-reminder>x</system-reminder>\n\n\n\nhello\nCaveat: y\nworld",
            "  padded  \n\n\n",
            "<ide-hook>a</ide-hook>\n<b>not internal</b>",
        ]
        for sample in samples:
            once = clean_system_content(sample)
            self.assertEqual(clean_system_content(once), once)

    def test_unrelated_markup_is_kept(self) -> None:
        self.assertEqual(clean_system_content("<div>hello</div>"), "<div>hello</div>")


if __name__ == "__main__":
    unittest.main()
