import pytest
import responses

from pkdomain.cli import DEFAULT_RELAYS, build_parser, main
from pkdomain.keys import generate_keypair, parse_seed, read_seed_file
from pkdomain.pkarr_packet import PkarrPacket

IPV4_URLS_TEXT = ["https://ipv4.icanhazip.com", "https://v4.ident.me", "https://api.ipify.org"]
IPV4_URLS_JSON = ["https://ipinfo.io", "https://4.myip.is/"]


@pytest.fixture
def seed_file(tmp_path):
    keypair = generate_keypair()
    path = tmp_path / "seed.txt"
    path.write_text(keypair.secret_key.hex() + "\n")
    return path, keypair


def _publish(tmp_path, seed_path, zone_text, status=200):
    zone_path = tmp_path / "pkarr.zone"
    zone_path.write_text(zone_text)
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        for relay in DEFAULT_RELAYS:
            rsps.put(f"{relay}/{read_seed_file(seed_path).to_z32()}", status=status)
        for url in IPV4_URLS_TEXT:
            rsps.get(url, body="203.0.113.7")
        for url in IPV4_URLS_JSON:
            rsps.get(url, json={"ip": "203.0.113.7"})
        code = main(["publish", str(seed_path), str(zone_path)])
        bodies = [call.request.body for call in rsps.calls if call.request.method == "PUT"]
    return code, bodies


def test_parser_defaults():
    args = build_parser().parse_args(["publish"])
    assert (args.seed, args.zonefile) == ("./seed.txt", "./pkarr.zone")
    assert build_parser().parse_args(["publickey"]).seed == "./seed.txt"


def test_no_command_prints_help():
    assert main([]) == 2


def test_generate_outputs_hex_seed(capsys):
    assert main(["generate"]) == 0
    seed = capsys.readouterr().out.strip()
    assert len(seed) == 64
    assert parse_seed(seed).secret_key.hex() == seed


def test_publickey_matches_keypair(seed_file, capsys):
    path, keypair = seed_file
    assert main(["publickey", str(path)]) == 0
    assert capsys.readouterr().out.strip() == keypair.to_z32()


def test_publickey_missing_file(tmp_path, capsys):
    assert main(["publickey", str(tmp_path / "missing.txt")]) == 1
    assert "Failed to read seed" in capsys.readouterr().err


def test_resolve_invalid_pubkey(capsys):
    assert main(["resolve", "notakey"]) == 1
    assert "pubkey is not a valid pkarr public key." in capsys.readouterr().err


def test_resolve_without_pubkey_prints_help():
    assert main(["resolve"]) == 2


def test_publish_signs_and_uploads(tmp_path, seed_file, capsys):
    seed_path, keypair = seed_file
    code, bodies = _publish(tmp_path, seed_path, "@ IN A 203.0.113.1\n")
    assert code == 0
    out = capsys.readouterr().out
    assert "Successfully announced." in out
    assert f"Packet {keypair.to_z32()}" in out
    assert len(bodies) >= 1
    packet = PkarrPacket(bodies[0][72:])
    assert [record.data_as_strings() for record in packet.to_records()] == [("A", "203.0.113.1")]


def test_publish_fills_external_ip(tmp_path, seed_file, capsys):
    seed_path, _ = seed_file
    code, bodies = _publish(tmp_path, seed_path, "@ IN A {external_ipv4}\n")
    assert code == 0
    packet = PkarrPacket(bodies[0][72:])
    assert packet.to_records()[0].data_as_strings() == ("A", "203.0.113.7")


def test_publish_relay_failure_reports_error(tmp_path, seed_file, capsys):
    seed_path, _ = seed_file
    code, _ = _publish(tmp_path, seed_path, "@ IN A 203.0.113.1\n", status=500)
    assert code == 0
    out = capsys.readouterr().out
    assert "Error" in out
    assert "Successfully announced." not in out


def test_publish_bad_zone(tmp_path, seed_file, capsys):
    seed_path, _ = seed_file
    zone_path = tmp_path / "pkarr.zone"
    zone_path.write_text("@ IN A not-an-address\n")
    assert main(["publish", str(seed_path), str(zone_path)]) == 1
    assert "Failed to parse zone file." in capsys.readouterr().err


def test_publish_then_resolve_round_trip(tmp_path, seed_file, capsys):
    seed_path, keypair = seed_file
    _, bodies = _publish(tmp_path, seed_path, "www IN A 203.0.113.1\n")
    capsys.readouterr()
    z32 = keypair.to_z32()
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        for relay in DEFAULT_RELAYS:
            rsps.get(f"{relay}/{z32}", body=bodies[0])
        assert main(["resolve", z32]) == 0
    out = capsys.readouterr().out
    assert f"Resolve dns records of pk:{z32}" in out
    assert f"Packet {z32}" in out
    assert "203.0.113.1" in out
    assert "Last updated at:" in out


def test_resolve_rejects_tampered_packet(tmp_path, seed_file, capsys):
    seed_path, keypair = seed_file
    _, bodies = _publish(tmp_path, seed_path, "@ IN A 203.0.113.1\n")
    capsys.readouterr()
    tampered = bytearray(bodies[0])
    tampered[0] ^= 0xFF
    z32 = keypair.to_z32()
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        for relay in DEFAULT_RELAYS:
            rsps.get(f"{relay}/{z32}", body=bytes(tampered))
        assert main(["resolve", z32]) == 0
    out = capsys.readouterr().out
    assert "Failed to find the packet." in out
    assert "Last updated at:" not in out


def test_resolve_not_found(capsys):
    z32 = generate_keypair().to_z32()
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        for relay in DEFAULT_RELAYS:
            rsps.get(f"{relay}/{z32}", status=404)
        assert main(["resolve", f"pk:{z32}"]) == 0
    out = capsys.readouterr().out
    assert "Failed to find the packet." in out
    assert "Packet is empty." in out