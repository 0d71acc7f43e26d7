from jose import jwe
import pytest

import kodofs.url as url_codec


def test_make_url_parse():
    url = url_codec.make_url("photos", "access", "secret")

    assert url.startswith("kodo:photos?")
    assert url_codec.parse(url) == ("photos", "access", "secret")


def test_token_hides_keys():
    url = url_codec.make_url("photos", "access", "secret")

    assert "access" not in url
    assert "secret" not in url


def test_token_is_randomized():
    assert url_codec.make_url("b", "ak", "sk") != url_codec.make_url("b", "ak", "sk")


def test_parse_without_scheme():
    url = url_codec.make_url("photos", "ak", "sk")

    assert url_codec.parse(url[len("kodo:") :]) == ("photos", "ak", "sk")


def test_special_characters():
    url = url_codec.make_url("b", "a&k=1", "s k/+")

    assert url_codec.parse(url) == ("b", "a&k=1", "s k/+")


def test_parse_without_token():
    with pytest.raises(PermissionError):
        url_codec.parse("kodo:photos")


def test_parse_garbage_token():
    with pytest.raises(PermissionError):
        url_codec.parse("kodo:photos?!!!")

    with pytest.raises(PermissionError):
        url_codec.parse("kodo:photos?abc")


def test_token_is_jwe():
    url = url_codec.make_url("photos", "ak", "sk")
    token = url.split("?", 1)[1]

    header = jwe.get_unverified_header(token)

    assert header["alg"] == "dir"
    assert header["enc"] == "A256GCM"


def test_parse_tampered_token():
    url = url_codec.make_url("photos", "ak", "sk")
    bucket, token = url.split("?")

    parts = token.split(".")
    ciphertext = parts[3]
    parts[3] = ("B" if ciphertext[0] == "A" else "A") + ciphertext[1:]

    with pytest.raises(PermissionError):
        url_codec.parse(f"{bucket}?{'.'.join(parts)}")


def test_parse_other_key(monkeypatch):
    monkeypatch.setenv(url_codec.ENV_KEY_NAME, "one")
    url = url_codec.make_url("photos", "ak", "sk")

    monkeypatch.setenv(url_codec.ENV_KEY_NAME, "two")
    with pytest.raises(PermissionError):
        url_codec.parse(url)

    monkeypatch.setenv(url_codec.ENV_KEY_NAME, "one")
    assert url_codec.parse(url) == ("photos", "ak", "sk")


def test_explicit_key():
    url = url_codec.make_url("photos", "ak", "sk", key="k")

    assert url_codec.parse(url, key="k") == ("photos", "ak", "sk")

    with pytest.raises(PermissionError):
        url_codec.parse(url, key="other")


@pytest.mark.parametrize("params", [{"ak": "ak"}, {"sk": "sk"}, {"ak": "", "sk": "sk"}])
def test_parse_missing_keys(params):
    token = url_codec.encode_token(params)

    with pytest.raises(PermissionError):
        url_codec.parse(f"kodo:photos?{token}")


def test_decode_token():
    token = url_codec.encode_token({"ak": "1", "extra": "x"})

    assert url_codec.decode_token(token) == {"ak": "1", "extra": "x"}
