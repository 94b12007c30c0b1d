from datetime import datetime

from termcolor import cprint

from libs.g_listing import (
    FileEntry,
    ListingParser,
    format_size,
    is_binary_name,
    parse_local_listing,
    parse_remote_listing,
)

REMOTE_LISTING = """total 24
drwxrwx--x 2 root sdcard_rw 4096 2024-01-01 10:00 Download
-rw-rw---- 1 root sdcard_rw 1234 2024-01-02 11:30 My Document.txt
drwxrwx--x 2 root sdcard_rw 4096 2024-01-01 10:00 .
drwxrwx--x 2 root sdcard_rw 4096 2024-01-01 10:00 ..
lrwxrwxrwx 1 root root 21 2024-01-03 09:15 sdcard -> /storage/self/primary
"""


class TestRemoteListing:
    """Test suite for remote `ls -l` parsing."""

    def test_parse_names_with_spaces(self):
        """Test that names with internal spaces are reconstructed."""
        cprint(f"\n--- {self.test_parse_names_with_spaces.__doc__}", "yellow")
        entries = parse_remote_listing(REMOTE_LISTING)
        names = [entry.name for entry in entries]
        assert names == ["Download", "My Document.txt", "sdcard"]

        document = entries[1]
        assert document == FileEntry(
            "My Document.txt", False, 1234, datetime(2024, 1, 2, 11, 30)
        )

    def test_directories_report_zero_size(self):
        """Test that directory entries always have size 0."""
        cprint(f"\n--- {self.test_directories_report_zero_size.__doc__}", "yellow")
        download = parse_remote_listing(REMOTE_LISTING)[0]
        assert download.is_directory
        assert download.size == 0

    def test_short_lines_are_dropped(self):
        """Test that lines with fewer than eight tokens are discarded."""
        cprint(f"\n--- {self.test_short_lines_are_dropped.__doc__}", "yellow")
        text = "-rw-r--r-- 1 root root 10 2024-01-01 name\nfoo bar\n\n"
        assert parse_remote_listing(text) == []

    def test_unparseable_size_defaults_to_zero(self):
        """Test that a non-numeric size field becomes 0."""
        cprint(f"\n--- {self.test_unparseable_size_defaults_to_zero.__doc__}", "yellow")
        text = "-rw-r--r-- 1 root root big 2024-01-01 10:00 file.txt"
        assert parse_remote_listing(text)[0].size == 0

    def test_symlink_arrow_is_stripped(self):
        """Test that a link entry keeps only its own name, not its target."""
        cprint(f"\n--- {self.test_symlink_arrow_is_stripped.__doc__}", "yellow")
        text = (
            "lrwxrwxrwx 1 root root 21 2024-01-03 09:15 my link -> /storage/self/primary\n"
            "-rw-r--r-- 1 root root 4 2024-01-03 09:15 a -> b.txt\n"
        )
        entries = parse_remote_listing(text)
        assert [entry.name for entry in entries] == ["my link", "a -> b.txt"]
        assert not entries[0].is_directory

    def test_unexpected_date_leaves_modified_empty(self):
        """Test that an unknown date format still yields the entry."""
        cprint(f"\n--- {self.test_unexpected_date_leaves_modified_empty.__doc__}", "yellow")
        text = "-rw-r--r-- 1 root root 5 Jan-01 10:00 notes.txt"
        entry = parse_remote_listing(text)[0]
        assert entry.name == "notes.txt"
        assert entry.modified is None

    def test_empty_or_error_listing(self):
        """Test that empty and error text produce an empty listing."""
        cprint(f"\n--- {self.test_empty_or_error_listing.__doc__}", "yellow")
        assert parse_remote_listing("") == []
        assert parse_remote_listing("ls: /x: Permission denied") == []


class TestLocalListing:
    """Test suite for local stat record mapping."""

    def test_records_are_mapped(self):
        """Test that records map to entries and unreadable ones are dropped."""
        cprint(f"\n--- {self.test_records_are_mapped.__doc__}", "yellow")
        records = [
            ("a.txt", False, 12, 0.0),
            None,
            ("sub", True, 4096, None),
            ("..", True, 0, None),
        ]
        entries = parse_local_listing(records)
        assert [e.name for e in entries] == ["a.txt", "sub"]
        assert entries[0].size == 12
        assert entries[0].modified == datetime.fromtimestamp(0.0)
        assert entries[1].size == 0

    def test_parser_instance_is_replaceable(self):
        """Test that a parser subclass can change remote parsing."""
        cprint(f"\n--- {self.test_parser_instance_is_replaceable.__doc__}", "yellow")

        class NameOnlyParser(ListingParser):
            def parse_remote(self, raw_text):
                return [FileEntry(line, False) for line in raw_text.split()]

        assert NameOnlyParser().parse_remote("x y")[1].name == "y"


class TestHelpers:
    """Test suite for listing helpers."""

    def test_binary_names(self):
        """Test binary extension detection."""
        cprint(f"\n--- {self.test_binary_names.__doc__}", "yellow")
        assert is_binary_name("photo.JPG")
        assert is_binary_name("app.apk")
        assert not is_binary_name("notes.txt")
        assert not is_binary_name("Makefile")

    def test_format_size(self):
        """Test human readable sizes."""
        cprint(f"\n--- {self.test_format_size.__doc__}", "yellow")
        assert format_size(0) == "0 B"
        assert format_size(512) == "512 B"
        assert format_size(2048) == "2.0 KB"
        assert format_size(5 * 1024 * 1024) == "5.0 MB"
