# milliframe

Building blocks for backend services:

- **Configuration.** Values come from memory, from environment variables, or from JSON,
  YAML and TOML files. Nested documents are flattened to dotted keys. Typed readers check
  the type of each value.
- **Broker interfaces** for publish/subscribe messaging: `Message`, `Broker`, `Subscriber`
  and the option dataclasses `BrokerOptions`, `PublishOptions` and `SubscribeOptions`.
- **Connectors** for Redis, MongoDB, MySQL and Elasticsearch. They all share one lifecycle:
  `connect()`, `ping()`, `disconnect()`. A `Registry` holds connectors by name.

Requires Python 3.11 or later.

## Installation

```
pip install milliframe
```

## Configuration

Sources live in `milliframe.sources` and `milliframe.file_source`:

- `MemorySource(values)` keeps values in a dict. `set(key, value)` and `delete(key)` notify
  anyone watching it.
- `EnvSource(prefix)` reads environment variables. It keeps only the names that start with
  the prefix and removes the prefix. It then lower-cases the name and turns underscores into
  dots, so `APP_SERVER_HOST` with prefix `APP_` becomes `server.host`. Values are strings.
- `FileSource(path, format=None, watch_interval=5.0)` reads `json`, `yaml`/`yml` or `toml`.
  If no format is given, it is taken from the file extension. An unknown format raises
  `ValueError`.
- `CompositeSource(*sources)` merges sources in order. A later source overrides an earlier
  one.

`Config` in `milliframe.config` holds the values read from a source:

```python
from milliframe.config import Config, InvalidTypeError, KeyNotFoundError
from milliframe.file_source import FileSource
from milliframe.sources import CompositeSource, EnvSource, MemorySource

source = CompositeSource(
    FileSource("settings.yaml"),   # server: {port: 8080}  ->  "server.port": 8080
    EnvSource("APP_"),             # APP_SERVER_HOST       ->  "server.host": "..."
    MemorySource({"debug": True}),
)
config = Config(source)
config.load()

port = config.get_int("server.port")
host = config.get_string("server.host")
debug = config.get_bool("debug")

try:
    config.get_string("missing.key")
except KeyNotFoundError:
    ...
```

The typed readers are:

- `get_string`
- `get_int`, which truncates floats
- `get_bool`
- `get_float`
- `get_string_map`
- `get_string_slice`
- `get_string_map_string`

A missing key raises `KeyNotFoundError`, which is a `LookupError`. A value of the wrong
type raises `InvalidTypeError`, which is a `TypeError`. Both derive from `ConfigError`.
Values from `EnvSource` are always strings, so read them with `get_string`.

### Watching for changes

`watch()` returns a change signal, or `None` if the source never changes (`EnvSource`).
You can iterate over the signal, or call `wait(timeout)`, which returns `True` when a change
arrived. `FileSource` polls the file's modification time on a background thread, and its
first poll always signals. Watching the same `FileSource` twice raises `RuntimeError`.
`close()` stops the polling.

### Managing several configurations

`Manager` in `milliframe.config_manager` holds configurations by name. `global_manager()`
returns one manager shared by the whole process:

```python
from milliframe.config_manager import global_manager

manager = global_manager()
manager.register("app", config)
manager.load_all()
manager.get("app")      # None if no configuration has that name
manager.close_all()
```

## Connectors

Each connector takes a config dataclass. Keyword arguments override fields of that config.
All durations are in seconds.

```python
from milliframe.connector import Registry
from milliframe.redis_connector import RedisConfig, RedisConnector

cache = RedisConnector(RedisConfig(address="localhost:6379"), db=1)
cache.connect()
cache.ping()
cache.client().set("greeting", "hello")

registry = Registry()
registry.register("cache", cache)
registry.close()   # disconnects every connected connector
```

- `RedisConnector` / `RedisConfig`: the `mode` field is `single`, `sentinel` or `cluster`.
  `address` may list several comma-separated `host:port` entries. Sentinel mode needs
  `master_name`.
- `MongoConnector` / `MongoConfig`: `address` is a MongoDB connection string.
  `database()` and `collection(name)` return `None` when no `database` is set.
- `MySQLConnector` / `MySQLConfig`: `build_dsn()` returns a
  `user:password@tcp(address)/database?...` string. Entries in `params` override the
  generated parameters.
- `ElasticsearchConnector` / `ElasticsearchConfig`: `client()` returns an
  `ElasticsearchClient`. That client sends requests in turn to the configured nodes
  (`perform`, `ping`). It retries on `retry_on_status`, can discover nodes, and reports
  `metrics()` when `enable_metrics` is set. You can use `cloud_id` instead of `address`.
  Set `transport` to swap in a different `httpx` transport.

TLS is switched on with `enable_tls`. The related fields are `tls_ca_path`,
`tls_cert_path`, `tls_key_path` and `tls_skip_verify`. `build_ssl_context(config)` in
`milliframe.connector` checks these settings.

These errors come from `milliframe.connector`, and all derive from `ConnectorError`:

- `AlreadyConnectedError` when `connect()` is called a second time.
- `NotConnectedError` when a connector is used before it is connected.
- `InvalidConfigError` when the settings cannot work, for example an unknown Redis mode.
- `ConnectorError` when a connection or ping fails.

`register`, `get`, `list_connectors` and `close_all` do the same as the `Registry` methods,
on a registry shared by the whole process.

## What the package does not do

- `Broker` and `Subscriber` are abstract. The package includes no broker implementation
  that talks to a real message system.
- There is no application runner or lifecycle manager, and no command-line tool.

## Running the tests

```
pip install -e .[test]
pytest
```