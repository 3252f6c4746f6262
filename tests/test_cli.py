from pathlib import Path

import pytest

from pagepack.cli import parse_args


def test_defaults():
    args = parse_args(["https://example.com"])
    assert args.urls == ["https://example.com"]
    assert args.output == Path("output")
    assert args.archive is None
    assert args.timeout == 60.0
    assert not args.no_scripts
    assert not args.headed


def test_archive_with_single_url():
    args = parse_args(["https://example.com", "--archive", "site.zip", "--workers", "8"])
    assert args.archive == Path("site.zip")
    assert args.workers == 8


def test_archive_rejected_with_several_urls():
    with pytest.raises(SystemExit):
        parse_args(["https://a.com", "https://b.com", "--archive", "site.zip"])
