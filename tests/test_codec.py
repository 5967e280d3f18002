import pytest

from mixdrop_save.codec import (
    COMPRESSION_PREFIX,
    ENCRYPTION_PREFIX,
    PayloadCodec,
    compress_text,
    decompress_text,
)
from mixdrop_save.crypto import SaveCipher, is_valid_key
from mixdrop_save.errors import DecodeError, EncryptionKeyError

TEXT = '{"version":"1.0.0","levels":[{"levelId":"ü-1","starsAchieved":"3"}]}'


@pytest.mark.parametrize("text", ["", "a", TEXT, "x" * 10_000, "日本語 ✓"])
def test_compression_round_trip(text):
    assert decompress_text(compress_text(text)) == text


def test_compression_is_deterministic():
    assert compress_text(TEXT) == compress_text(TEXT)


@pytest.mark.parametrize("length", [16, 24, 32])
def test_encryption_round_trip_for_valid_key_lengths(length):
    cipher = SaveCipher("k" * length)
    assert cipher.key_size_bits == length * 8
    for text in ("", "short", TEXT):
        assert cipher.decrypt(cipher.encrypt(text)) == text


@pytest.mark.parametrize("key", ["", "short", "MixDropGameKey123", "k" * 33, None])
def test_invalid_keys_are_rejected(key):
    assert not is_valid_key(key)
    if key is not None:
        with pytest.raises(EncryptionKeyError):
            SaveCipher(key)


def test_key_length_counts_utf8_bytes():
    # 8 two-byte characters
    assert is_valid_key("é" * 8)


def test_zero_iv_makes_encryption_deterministic():
    cipher = SaveCipher("0123456789abcdef")
    assert cipher.encrypt(TEXT) == cipher.encrypt(TEXT)


def test_wrong_key_does_not_recover_plaintext():
    payload = SaveCipher("0123456789abcdef").encrypt(TEXT)
    try:
        plain = SaveCipher("fedcba9876543210").decrypt(payload)
    except DecodeError:
        return
    assert plain != TEXT


def test_codec_tag_order_encrypt_outer_compress_inner():
    cipher = SaveCipher("0123456789abcdef")
    codec = PayloadCodec(compress=True, cipher=cipher)
    payload = codec.encode(TEXT)
    assert payload.startswith(ENCRYPTION_PREFIX)
    inner = cipher.decrypt(payload[len(ENCRYPTION_PREFIX):])
    assert inner.startswith(COMPRESSION_PREFIX)
    assert codec.decode(payload) == TEXT


@pytest.mark.parametrize("compress,encrypt", [(False, False), (True, False), (False, True), (True, True)])
def test_codec_round_trip_all_stage_combinations(compress, encrypt):
    codec = PayloadCodec(compress=compress, cipher=SaveCipher("k" * 24) if encrypt else None)
    assert codec.decode(codec.encode(TEXT)) == TEXT


def test_plain_codec_leaves_text_untagged():
    assert PayloadCodec(compress=False).encode(TEXT) == TEXT


def test_decoding_encrypted_payload_without_cipher_fails():
    payload = PayloadCodec(cipher=SaveCipher("k" * 16)).encode(TEXT)
    with pytest.raises(DecodeError):
        PayloadCodec().decode(payload)


def test_compressed_payloads_are_readable_with_or_without_compression_enabled():
    payload = PayloadCodec(compress=True).encode(TEXT)
    assert PayloadCodec(compress=False).decode(payload) == TEXT


@pytest.mark.parametrize("payload", ["COMP_not-base64!", "COMP_" + "QUJD", "ENC_@@@", "ENC_QUJD"])
def test_corrupt_frames_raise_decode_error(payload):
    codec = PayloadCodec(cipher=SaveCipher("k" * 16))
    with pytest.raises(DecodeError):
        codec.decode(payload)
