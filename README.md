# grossd

Building blocks for a greylisting mail policy service. Such a service marks
suspicious sources as grey and remembers the sender/recipient/client tuples
it has already seen. It keeps that memory in a rotating ring of Bloom
filters, so no database is needed.

The package uses only the standard library.

## Modules

- `grossd.bloom`: `BloomFilter`, `BloomFilterGroup` and `BloomRingQueue`,
  all keyed by SHA-256 digests given as eight 32-bit words (`sha256_words`).
  A ring forgets old entries one buffer at a time. The sizing helpers are
  `optimal_size`, `bloom_required_size` and `bloom_error_rate`.
- `grossd.bloommgr`: `BloomManager` applies `UpdateMessage`s to a ring
  behind one lock. The message kinds are the `UpdateType` values `UPDATE`,
  `UPDATE_OPER`, `ABSOLUTE_UPDATE`, `ROTATE` and `SYNC_AGGREGATE`. The
  manager can also read these messages from a queue in a background thread
  (`start`, `stop`).
- `grossd.msgqueue`: `MessageQueue`, a thread-safe FIFO whose messages are
  time-stamped. `DelayQueue` holds each message back for a fixed delay
  before it can be read. It also supports `instant` delivery,
  enabling/disabling the delay, `freeze`/`thaw`, and walking the queued
  messages.
- `grossd.counter`: a `CounterRegistry` that hands out thread-safe numeric
  counters by id. Released ids are reused.
- `grossd.addrutils`: `reverse_inet_addr` reverses IPv4 and IPv6 addresses
  for DNS list queries. `grey_mask` masks a client address down to its
  network prefix. Both raise `ValueError` for an invalid address.
- `grossd.sjsms`: the datagram framing for query and log messages
  (`encode_message`, `decode_message`) and the query string
  (`build_query_string`). It also parses the comma-separated mapping
  argument (`parse_map_argument`) and turns a server reply into the mapping
  result (`map_response`).
- `grossd.conf`: `name = value ; param ; param` configuration files, with
  `#` comments. `read_config` reads them into a `Config`, which handles
  default values and multi-valued names. Errors raise `ConfigError`.
- `grossd.checks`: the verdict logic of the DNS list, HELO, reverse-DNS and
  random checks. Each one returns a `CheckResult` carrying a `Judgment`.
  `Dnsbl` tracks a list's weight and its timeout tolerance counter.

## Examples

Reversing and masking addresses:

```python
from grossd.addrutils import reverse_inet_addr, grey_mask

reverse_inet_addr("1.2.3.4")        # "4.3.2.1"
grey_mask("1.2.3.4", 24, 64)        # "1.2.3.0"
grey_mask("2600:abcd::f03c:91ff:fe50:d2", 24, 32)   # "2600:abcd::"
```

A ring of eight filters of 2**21 bits each:

```python
from grossd.bloom import BloomRingQueue, sha256_words

ring = BloomRingQueue(8, 21)
digest = sha256_words(b"192.0.2.1 sender@example.com rcpt@example.com")
ring.insert(digest)
assert digest in ring

# Rotating clears the oldest buffer; after a full turn the entry is gone.
ring.rotate()
```

A delay queue:

```python
from grossd.msgqueue import DelayQueue

with DelayQueue(0.5) as q:
    q.put("later")
    q.instant("now")
    q.get()               # "now"
    q.get(timeout=2)      # "later", once half a second has passed
```

Counters:

```python
from grossd.counter import CounterRegistry

counters = CounterRegistry()
cid = counters.create("queries", "queries served")
counters.increment(cid)
counters.read(cid)      # 1
counters.restart(cid)   # returns 1 and resets to 0
counters.release(cid)
```

Mapping arguments and replies:

```python
from grossd.sjsms import parse_map_argument, map_response, STATUS_GREYLIST

req = parse_map_argument(
    "127.0.0.1,127.0.0.1,1111,192.0.2.2,rcpt@example.com,sender@example.com"
)
req.servers        # ("127.0.0.1", "127.0.0.1")
req.query_string   # "sender=sender@example.com\nrecipient=...\n\n"
map_response("G") == STATUS_GREYLIST   # True
```

Check verdicts:

```python
from grossd.checks import valid_dn, helo_result, Judgment

valid_dn("mail.example.com")   # True
valid_dn("-bad.example.com")   # False
helo_result("mail.example.com", "192.0.2.1", "192.0.2.1", "mail.example.com").judgment
# Judgment.UNDEFINED
```

## What the package does not do

There is no daemon and no command-line program. The package does not listen
for policy requests, and it does not send queries to a server over the
network. It does not resolve DNS names or cache DNS answers either. The
checks in `grossd.checks` score answers that the caller has already looked
up, such as a resolved HELO address or a PTR name. Filter state is kept in
memory only; nothing is written to disk.