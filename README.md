# pkdomain

Tools for Public Key Domains: domains whose name is an ed25519 public key
(written in z-base-32) and whose DNS records are signed by the matching
secret key.

The package holds:

- `pkdomain.keys`: keypairs, z-base-32 encoding, seed parsing and public
  key validation;
- `pkdomain.simple_zone`: zone files written without an SOA record, turned
  into a DNS packet of answers for a public key;
- `pkdomain.pkarr_packet`: reading such packets record by record and
  printing them as a table;
- `pkdomain.external_ip`: looking up this machine's external IPv4/IPv6
  address to fill `{external_ipv4}` and `{external_ipv6}` in a zone;
- `pkdomain.cli`: the `pkdomain` command;
- `pkdomain.dns_packets`, `pkdomain.top_level_domain`, `pkdomain.config`,
  `pkdomain.doh` and `pkdomain.logging_setup`: building blocks for a
  Public Key Domain resolver (packet validation, top level domain
  handling, configuration, a DNS-over-HTTPS web app and logging set-up).

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Command line

```
pkdomain generate                      # print a new seed (64 hex characters)
pkdomain publickey [SEED]              # print the public key of a seed file (default ./seed.txt)
pkdomain publish [SEED] [ZONEFILE]     # sign and publish a zone (defaults ./seed.txt, ./pkarr.zone)
pkdomain resolve PUBKEY                # fetch and print the records of a public key
pkdomain --version
```

Store a seed and look up its domain:

```
pkdomain generate > seed.txt
pkdomain publickey seed.txt
```

Seed files hold 64 hex characters, or the older 52-character z-base-32
form; surrounding whitespace is ignored and `~` and environment variables
in paths are expanded.

`publish` reads the seed and zone file, fills the external IP
placeholders, prints the resulting records, signs the packet with the
current time (packets larger than 1000 bytes are refused) and uploads it
over HTTP to the relays built into the tool. `resolve` accepts the public
key with or without a `pk:` prefix, asks the same relays, keeps only
packets whose signature checks out, and prints the most recent one with
the time it was last updated.

## Writing a zone

A zone is written without SOA; `@` stands for the public key itself:

```
@        IN  A      127.0.0.1
dns1     IN  A      10.0.1.1
@  400   IN  NS     dns1.example.com.
@  301   IN  MX     10 mail.example.com.
www      IN  CNAME  example.com.
text     IN  TXT    hero=satoshi
home     IN  A      {external_ipv4}
```

Supported record types are A, AAAA, NS, MX, CNAME and TXT; any other type
raises `SimpleZoneError`. Records without an explicit TTL get 300 seconds.

## Library use

```python
from pkdomain.keys import generate_keypair, parse_seed
from pkdomain.simple_zone import SimpleZone

keypair = generate_keypair()
pubkey = keypair.to_z32()

zone = SimpleZone.read("@ IN A 127.0.0.1\ntext IN TXT hero=satoshi", pubkey)
print(zone.packet)                      # table of name, TTL, type and data
for record in zone.packet.to_records():
    record_type, data = record.data_as_strings()
    print(record.name(), record.ttl(), record_type, data)
```

Filling dynamic addresses before reading a zone (five public lookup
services are tried in random order; `ExternalIpError` is raised if all
fail):

```python
from pkdomain.external_ip import fill_dyndns_variables

zone_text = fill_dyndns_variables("home IN A {external_ipv4}")
```

### Resolver building blocks

`ParsedQuery(raw_bytes)` validates a DNS query (must be a query, with a
question and a non-empty name) and raises `ParseQueryError` otherwise;
`ParsedPacket` keeps raw bytes and the parsed `dns.message.Message` and can
build empty REFUSED or SERVFAIL replies.

`TopLevelDomain("key")` checks whether names end in `<public key>.key`,
strips the label from a query's question (`remove`) and appends it to the
questions and answers of a reply (`add`).

Configuration is read from TOML; missing values fall back to their
defaults (listen on `0.0.0.0:53`, forward to `8.8.8.8:53`, top level
domain `key`, an empty string disabling it):

```python
from pkdomain.config import AppContext, ConfigToml, PersistentDataDir

config = ConfigToml.from_str("[dht]\ntop_level_domain = \"test\"")
context = AppContext.from_data_dir(PersistentDataDir("~/.pkdns"))
```

`PersistentDataDir` creates the directory, checks it is writable and
writes a commented-out sample `config.toml` the first time it is read
(`ConfigToml.commented_out_sample()`); an invalid file raises
`ConfigReadError`. `MockDataDir` is a temporary directory with an
in-memory configuration for tests.

`pkdomain.doh.create_app(resolver)` returns a Starlette app answering GET
(`?dns=` base64url) and POST on `/dns-query`. The accept header must be
`application/dns-message`; replies carry `cache-control: max-age=` set to
the lowest answer TTL (300 when there is none). `resolver` is a callable
taking the query bytes and the client IP (from `x-forwarded-for` when
present) and returning reply bytes, directly or as an awaitable.
`serve_doh(host, port, resolver)` runs the app in a background thread and
returns the bound address and the `uvicorn.Server`; setting its
`should_exit` stops it.

`pkdomain.logging_setup.enable_logging(verbose)` sends logs to stderr at
INFO (DEBUG when verbose) for the package; the `PKDNS_LOG` environment
variable, such as `info` or `pkdomain=debug,mainline=warn`, overrides it.

## What this package does not do

- It contains no DNS resolver or DNS server: nothing listens on UDP port
  53, forwards queries or looks records up on the Mainline DHT. The
  DNS-over-HTTPS app only wraps a resolver function you supply, and there
  is no command that starts a server.
- `publish` and `resolve` talk to HTTP relays only; they do not join the
  DHT themselves.