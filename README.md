# carbon-clickhouse

Metric receivers for Graphite-style data that turn incoming points into
ClickHouse `RowBinary` rows, together with the helpers they rely on: tag
normalisation, URL escaping, a small protobuf reader, a reader for
`RowBinary` chunk files (plain or `.lz4`), a pattern blacklist and parsers
for configuration values.

The receivers accept:

- the Graphite plaintext protocol over TCP and UDP, with optional
  `name;tag=value` tags (`carbon_clickhouse.receiver.tcp.TCP`,
  `carbon_clickhouse.receiver.udp.UDP`);
- Prometheus remote-write requests over HTTP, snappy-compressed
  (`carbon_clickhouse.receiver.prometheus.PrometheusRemoteWrite`);
- Telegraf `http` output in JSON format
  (`carbon_clickhouse.receiver.telegraf.TelegrafHttpJson`).

Every receiver packs accepted points into `rowbinary.WriteBuffer` objects and
puts them on its `write_queue` (a `queue.Queue`). Points that are too far in
the future or past, or whose names are too long, are dropped according to the
`drop_future`, `drop_past` and `drop_longer_than` options and listed by
`dropped_report()`. Counters are reported through `stat(send)`.

## Package layout

| Module | What it holds |
| --- | --- |
| `carbon_clickhouse.escape` | `path()` and `query()` URL escaping for metric names and tags |
| `carbon_clickhouse.pb` | protobuf wire-format primitives (`read_bytes`, `skip`, `uint64`, ...) |
| `carbon_clickhouse.settings` | `parse_duration`, `format_duration`, `parse_size`, `parse_compression`, `CompAlgo`, `ChunkAutoInterval` |
| `carbon_clickhouse.tags` | `graphite()` and `prometheus()` name normalisation, `TagConfig` templates |
| `carbon_clickhouse.rowbinary` | `WriteBuffer`, `PointWriter`, `Reader`, `timestamp_to_days`, `reverse_metric` |
| `carbon_clickhouse.filter` | `Blacklist` of ignored metric patterns |
| `carbon_clickhouse.lifecycle` | `Service`, start/stop handling for background threads |
| `carbon_clickhouse.receiver.listener` | `Receiver` base class and `Buffer` |
| `carbon_clickhouse.receiver.plain` | plaintext line parsing (`parse_line`, `parse_buffer`) |
| `carbon_clickhouse.receiver.prometheus` | remote-write receiver and `snappy_decode` |
| `carbon_clickhouse.receiver.telegraf` | Telegraf JSON receiver and `encode_tags` |
| `carbon_clickhouse.receiver.tcp`, `.udp` | plaintext network receivers |
| `carbon_clickhouse.receiver.registry` | `new_receiver()` from a `proto://host:port` address |
| `carbon_clickhouse.uploader.config` | `UploaderConfig`, `city_hash64`, `path_level` |

## Examples

Normalise a tagged Graphite name. Tags are sorted by key, and for a repeated
key the last value is kept:

```python
from carbon_clickhouse.tags import TagConfig, graphite

graphite(TagConfig(), "some.metric;c=1;b=2;a=3")
# 'some.metric?a=3&b=2&c=1'
```

Escape name parts the way the receivers do:

```python
from carbon_clickhouse import escape

escape.query("10.33.10.10:9100")
# '10.33.10.10%3A9100'
```

Parse one plaintext line (a timestamp of `-1` means "now"):

```python
from carbon_clickhouse.receiver.plain import parse_line

parse_line(b"metric..name 42.15 1422642189\n", now=0)
# (b'metric.name', 42.15, 1422642189)
```

Start a TCP receiver and collect what it produces:

```python
import queue
from carbon_clickhouse.receiver.registry import new_receiver
from carbon_clickhouse.tags import TagConfig

out = queue.Queue()
receiver = new_receiver("tcp://127.0.0.1:2003", TagConfig(), write_queue=out)
# ... send "name value timestamp\n" lines to receiver.address ...
buffer = out.get()          # a rowbinary.WriteBuffer
receiver.stop()
```

`new_receiver` knows the schemes `tcp`, `udp`, `prometheus` and
`telegraf+http+json`; any other scheme raises `ValueError`.

Read the records of a chunk file:

```python
from carbon_clickhouse.rowbinary import Reader

with Reader("default.1559465733030407809") as reader:
    for record in reader:
        print(record.name, record.value, record.timestamp, record.days_string)
```

Skip metrics with a blacklist. `*` matches exactly one path segment:

```python
from carbon_clickhouse.filter import Blacklist

blacklist = Blacklist(["aa.*.bb", "*.*.*.*"])
blacklist.contains("aa.cc.bb", False)   # True
blacklist.contains("aa.bb", False)      # False
```

Parse configuration values:

```python
from carbon_clickhouse.settings import parse_size, ChunkAutoInterval

parse_size("16m")                          # 16777216
rules = ChunkAutoInterval.parse("5:10s,20:60s")
```

Reverse a metric path:

```python
from carbon_clickhouse.rowbinary import reverse_metric

reverse_metric(b"a1.b2.c3")   # b'c3.b2.a1'
```

## What this package does not do

- It does not write the buffers on a receiver's `write_queue` to chunk files
  on disk; the caller takes them off the queue and stores them.
- It does not upload anything to ClickHouse. `carbon_clickhouse.uploader`
  holds only the uploader settings (`UploaderConfig`), the `city64` key hash
  and `path_level`; there are no uploaders for table layouts.
- It has no pickle or gRPC receiver.
- It has no command-line program and no configuration-file loader; receivers
  are created and started from Python code.

## Running the tests

Install the `test` extra and run `pytest` from the project root.