import pytest

from sdr.runtime import clean_lead_phone, normalize_phone_br, strip_jid


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("11987654321", "5511987654321"),
        ("(11) 98765-4321", "5511987654321"),
        ("+55 11 98765-4321", "5511987654321"),
        ("551187654321", "551187654321"),
        ("551198765432199", "5511987654321"),
        ("119876543", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_phone_br_cases(raw, expected):
    assert normalize_phone_br(raw) == expected


@pytest.mark.parametrize("raw", ["11987654321", "5511987654321", "551187654321", "+55 (11) 98765-4321"])
def test_normalize_phone_br_is_idempotent(raw):
    once = normalize_phone_br(raw)
    assert normalize_phone_br(once) == once


def test_strip_jid_removes_whatsapp_suffix():
    assert strip_jid("5511987654321@s.whatsapp.net") == "5511987654321"
    assert strip_jid(None) == ""


def test_clean_lead_phone_prefixes_local_numbers():
    assert clean_lead_phone("(11) 3456-7890") == "551134567890"
    assert clean_lead_phone("11 98765-4321") == "5511987654321"
    assert clean_lead_phone("5511987654321") == "5511987654321"
    assert clean_lead_phone("abc") is None
