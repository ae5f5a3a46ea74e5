import unittest

import pytest

from sast_triage.domain.finding import Criticality, Finding, FindingStatus, Pattern, ScanRequest, split_csv


class TestCriticality(unittest.TestCase):
    def test_order(self) -> None:
        self.assertLess(Criticality.UNMAPPED, Criticality.INFO)
        self.assertLess(Criticality.INFO, Criticality.LOW)
        self.assertLess(Criticality.HIGH, Criticality.CRITICAL)

    def test_parse(self) -> None:
        self.assertIs(Criticality.parse("medium"), Criticality.MEDIUM)
        self.assertIs(Criticality.parse(4), Criticality.HIGH)
        self.assertIs(Criticality.parse("DID NOT MATCH - INFO LOW MEDIUM HIGH CRITICAL"), Criticality.UNMAPPED)
        self.assertIs(Criticality.parse(None), Criticality.UNMAPPED)
        self.assertIs(Criticality.parse(42), Criticality.UNMAPPED)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("falsePositive", FindingStatus.FALSE_POSITIVE),
        ("false-positive", FindingStatus.FALSE_POSITIVE),
        ("false_positive", FindingStatus.FALSE_POSITIVE),
        ("SAVE_FOR_LATER", FindingStatus.SAVE_FOR_LATER),
        ("finding", FindingStatus.FINDING),
        (FindingStatus.UNPROCESSED, FindingStatus.UNPROCESSED),
    ],
)
def test_status_parse(raw, expected) -> None:
    assert FindingStatus.parse(raw) is expected


def test_status_parse_rejects_unknown() -> None:
    with pytest.raises(ValueError):
        FindingStatus.parse("maybe")


def test_split_csv() -> None:
    assert split_csv(" a, ,b ,, c") == ("a", "b", "c")
    assert split_csv("") == ()
    assert split_csv(None) == ()


def test_scan_request_from_strings() -> None:
    req = ScanRequest.from_strings(config="  ", include="src/**, lib/**", exclude="", output=" out ", dry_run=True)
    assert req.config_spec == "auto"
    assert req.include_globs == ("src/**", "lib/**")
    assert req.exclude_globs == ()
    assert req.output_path == "out"
    assert req.is_dry_run


def test_finding_selection_is_not_part_of_equality() -> None:
    p = Pattern(id="r", description="d")
    a = Finding(pattern=p, file_path="a.py", line_number=1, snippet_text="x", id=1)
    b = Finding(pattern=p, file_path="a.py", line_number=1, snippet_text="x", id=1, selected=True)
    assert a == b
    assert "selected" not in b.to_dict()
    assert "comment" not in a.to_dict()
    assert a.dedup_key == ("a.py", 1, "x")
