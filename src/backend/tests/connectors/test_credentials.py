import pytest

from connectors.crm.credentials import REQUIRED_CREDENTIALS, missing_credentials, validate_credentials


@pytest.mark.parametrize(
    "provider, credentials",
    [
        ("salesforce", {"clientId": "cid", "clientSecret": "secret", "refreshToken": "refresh"}),
        ("hubspot", {"apiKey": "key"}),
        ("zoho", {"clientId": "cid", "clientSecret": "secret", "refreshToken": "refresh"}),
        ("pipedrive", {"apiToken": "token"}),
    ],
)
def test_complete_credentials_validate(provider, credentials):
    assert validate_credentials(provider, credentials) is True
    assert missing_credentials(provider.upper(), credentials) == []


def test_blank_values_count_as_missing():
    assert missing_credentials("hubspot", {"apiKey": "   "}) == ["apiKey"]
    assert missing_credentials("salesforce", None) == list(REQUIRED_CREDENTIALS["salesforce"])
    assert validate_credentials("pipedrive", {"apiKey": "wrong field"}) is False


def test_unknown_provider():
    with pytest.raises(ValueError):
        missing_credentials("dynamics", {"apiKey": "x"})
    assert validate_credentials("dynamics", {"apiKey": "x"}) is False
