import pytest

from dialogcast.infra.storage import LocalStorage


def test_upload_and_url(tmp_path):
    storage = LocalStorage(tmp_path)
    key = storage.upload(b"WEBVTT\n\n", "ep01/dialogue.vtt", "text/vtt")
    assert key == "ep01/dialogue.vtt"
    assert storage.exists(key)
    assert (tmp_path / "ep01" / "dialogue.vtt").read_bytes() == b"WEBVTT\n\n"
    assert storage.content_type(key) == "text/vtt"
    assert storage.get_signed_url(key) == (tmp_path / "ep01" / "dialogue.vtt").resolve().as_uri()


def test_upload_overwrites(tmp_path):
    storage = LocalStorage(tmp_path)
    storage.upload(b"one", "a.txt", "text/plain")
    storage.upload(b"two", "a.txt", "text/plain")
    assert (tmp_path / "a.txt").read_bytes() == b"two"
    assert not list(tmp_path.glob("*.tmp"))


def test_missing_object(tmp_path):
    storage = LocalStorage(tmp_path)
    assert not storage.exists("nope.wav")
    assert storage.content_type("nope.wav") is None
    with pytest.raises(FileNotFoundError):
        storage.get_signed_url("nope.wav")


def test_key_cannot_escape_root(tmp_path):
    storage = LocalStorage(tmp_path / "root")
    with pytest.raises(ValueError):
        storage.upload(b"x", "../outside.txt", "text/plain")
