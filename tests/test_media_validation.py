import base64

import pytest

from utils.media_validation import ensure_base64_audio, ensure_base64_image


class TestEnsureBase64Image:
    def test_accepts_data_url(self):
        assert ensure_base64_image("data:image/jpeg;base64,aGVsbG8=") == "aGVsbG8="

    def test_encodes_raw_bytes(self):
        raw = b"\xff\xd8\xff\xe0binary"

        assert ensure_base64_image(raw) == base64.b64encode(raw).decode("ascii")

    @pytest.mark.parametrize("value", ["", "   ", "not base64!"])
    def test_rejects_invalid_text(self, value):
        with pytest.raises(ValueError):
            ensure_base64_image(value)


class TestEnsureBase64Audio:
    def test_accepts_even_length_pcm(self):
        chunk = base64.b64encode(b"\x00\x01\x02\x03").decode("ascii")

        assert ensure_base64_audio(chunk) == chunk

    def test_rejects_odd_length_pcm(self):
        with pytest.raises(ValueError):
            ensure_base64_audio(base64.b64encode(b"\x00\x01\x02").decode("ascii"))

    @pytest.mark.parametrize("value", ["", None, "@@@"])
    def test_rejects_missing_or_invalid(self, value):
        with pytest.raises(ValueError):
            ensure_base64_audio(value)
