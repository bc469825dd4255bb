import pytest

from pkdomain.keys import (
    Keypair,
    SeedError,
    generate_keypair,
    is_valid_public_key,
    parse_public_key,
    parse_seed,
    parse_seed_hex,
    parse_seed_zbase32,
    read_seed_file,
    zbase32_decode,
    zbase32_encode,
)

SECRET_HEX = "9d61b19deffd5a60ba844af492ec2cc44449c5697b326919703bac031cae7f60"
PUBLIC_HEX = "d75a980182b10ab7d54bfed3c964073a0ee172f3daa62325af021a68f707511a"
KNOWN_PUBKEY = "7fmjpcuuzf54hw18bsgi3zihzyh4awseeuq5tmojefaezjbd64cy"


def test_rfc8032_public_key():
    keypair = parse_seed_hex(SECRET_HEX)
    assert keypair.public_key().hex() == PUBLIC_HEX


def test_zbase32_round_trip():
    data = bytes(range(32))
    encoded = zbase32_encode(data)
    assert len(encoded) == 52
    assert zbase32_decode(encoded) == data


def test_zbase32_invalid_character():
    with pytest.raises(ValueError):
        zbase32_decode("l0v2")


def test_parse_seed_hex_and_zbase32_agree():
    secret = bytes.fromhex(SECRET_HEX)
    z32_seed = zbase32_encode(secret)
    assert parse_seed(z32_seed) == parse_seed(SECRET_HEX)
    assert parse_seed_zbase32(z32_seed).secret_key == secret


def test_parse_seed_strips_whitespace():
    assert parse_seed(f"  {SECRET_HEX}\n").secret_key == bytes.fromhex(SECRET_HEX)


def test_parse_seed_too_short():
    with pytest.raises(SeedError):
        parse_seed("abcd")


def test_parse_seed_bad_hex():
    with pytest.raises(SeedError):
        parse_seed("zz" * 32)


def test_parse_seed_bad_zbase32():
    with pytest.raises(SeedError):
        parse_seed_zbase32("0" * 52)


def test_generated_keypair_public_key_parses():
    keypair = generate_keypair()
    assert parse_public_key(keypair.to_z32()) == keypair.public_key()
    assert parse_seed(keypair.secret_key.hex()) == keypair


def test_read_seed_file(tmp_path):
    seed_file = tmp_path / "seed.txt"
    seed_file.write_text(SECRET_HEX + "\n")
    assert read_seed_file(seed_file).public_key().hex() == PUBLIC_HEX


def test_read_seed_file_missing(tmp_path):
    with pytest.raises(SeedError):
        read_seed_file(tmp_path / "missing.txt")


def test_public_key_validation():
    assert is_valid_public_key(KNOWN_PUBKEY)
    assert is_valid_public_key("pk:" + KNOWN_PUBKEY)
    assert not is_valid_public_key("nopubkey")
    assert not is_valid_public_key("pkd")


def test_keypair_wrong_length():
    with pytest.raises(SeedError):
        Keypair(b"\x00" * 5)