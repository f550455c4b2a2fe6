from shc.errors import ChunkCountMismatch, SignatureInvalid
from shc.settings import Settings


def test_defaults():
    s = Settings()
    assert s.jws_alg == "ES256"
    assert s.jws_zip == "DEF"
    assert s.qr_max_chars_per_chunk == 1195


def test_trusted_issuers_env(monkeypatch):
    monkeypatch.setenv("TRUSTED_ISSUERS", "https://a.example/shc/, https://b.example ,")
    assert Settings().trusted_issuers == ["https://a.example/shc", "https://b.example"]


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("QR_MAX_CHARS_PER_CHUNK", "600")
    assert Settings().qr_max_chars_per_chunk == 600


def test_error_detail_shape():
    e = SignatureInvalid("bad", kid="k1")
    assert e.to_dict() == {"error": "SignatureInvalid", "message": "bad", "recoverable": False, "kid": "k1"}
    assert not ChunkCountMismatch("totals differ", totals=[2, 3]).recoverable
    assert ChunkCountMismatch("short", missing=[2]).recoverable
