from translate_glue.utils.url import remote_media_host


def test_remote_media_host_basic() -> None:
    assert remote_media_host("https://www.youtube.com/watch?v=abc123") == "youtube.com"


def test_remote_media_host_adds_scheme() -> None:
    assert remote_media_host("vimeo.com/12345") == "vimeo.com"


def test_plain_values_are_not_urls() -> None:
    assert remote_media_host("voice-note.mp3") is None
    assert remote_media_host("not a url at all") is None
    assert remote_media_host("ftp://example.com/file.mp3") is None
