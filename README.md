# liftsync

This package holds building blocks for a live meet server. At a powerlifting
meet, several scoring tables share one consistent state, and these pieces help
keep it that way. liftsync is a library. It has no command-line entry point and
no dependencies outside the standard library.

## Modules

### Tokens: `liftsync.tokens`

- `generate_secure_token()` returns 32 random bytes as URL-safe base64 with no padding.
- `generate_secure_token_with_size(size)` does the same for `size` bytes. A negative size raises `ValueError`.

### Security logging: `liftsync.security`

- `SecurityEvent` is an enum of session-related events, for example `SESSION_CREATED`, `CSRF_VALIDATION_FAILED` and `SESSION_DECRYPTION_FAILED`.
- `log_security_event(event, details)` prints a line of the form `[SECURITY] [YYYY-MM-DD HH:MM:SS.mmm] [Event] details` and returns that line.
- `constant_time_compare(a, b)` compares two strings in a way that takes the same time wherever they differ.

### Authentication rate limiting: `liftsync.rate_limit`

`AuthRateLimiter(max_attempts=5, lockout_duration=300.0)` counts failed attempts for each IP address. It accepts a string or an `ipaddress` object, and an invalid address raises `ValueError`.

- `record_failed_attempt(ip)` records a failure. When the count reaches `max_attempts`, the address is locked out for `lockout_duration` seconds. Each failure past the limit doubles the lockout, up to 64 times the base duration. Once a lockout has expired, the next failure starts the count again.
- `check_rate_limit(ip)` returns `False` while a lockout is in force.
- `record_success(ip)` forgets the address.
- `cleanup()` drops expired lockouts, and failures more than a day old.

### Configuration: `liftsync.config`

`Settings` holds three sections, each a frozen dataclass:

- `ServerSettings`: `host`, `port`
- `StorageSettings`: `path`
- `RateLimitSettings`: `window_secs`, `max_requests`

Built with no arguments, `Settings()` has these defaults: `127.0.0.1:8080`, `data`, and 100 requests per 60 seconds.

`Settings.load(path="config/default", environ=None)` reads a TOML or JSON file. Without an extension, `.toml` and then `.json` are tried. Variables named `APP_<SECTION>__<FIELD>` then override the file, for example `APP_SERVER__PORT=9000`. These come from `os.environ` unless `environ` is given.

`Settings.from_mapping(data)` builds settings from nested mappings. Every field is required, and integers are range-checked.

`load_settings(path)` loads settings using the process environment.

Problems raise `ConfigError`: a missing file, a field that cannot be parsed, or a field that is missing or invalid.

```python
from liftsync.config import Settings

settings = Settings.load("config/default", environ={"APP_SERVER__PORT": "9000"})
print(settings.server.port)  # 9000
```

### Updates: `liftsync.updates`

- `Update(update_key, update_value, local_seq_num, after_server_seq_num=0)` is one change a client makes to the meet state.
- `UpdateWithServerSeq` is an update stamped with its server sequence number, the id of the source client and that client's priority. `to_json()` and `from_json(text)` convert it to and from compact JSON. Malformed input raises `ValueError`.
- `RecoveryUpdate(location, value, timestamp)` is an update that a client sends to rebuild server state. `to_update()` parses `value` as JSON. If parsing fails, the value becomes `None`.
- `UpdateStorage` is the protocol a storage backend must satisfy. It needs two async methods: `append_update(meet_id, update_json)` and `store_meet_csv(meet_id, opl_csv, return_email)`.
- `SequenceTracker.detect_gaps(client_id, updates)` reports whether a batch skips any local sequence numbers for a client.
- `NeedsRecoveryError` carries `meet_id` and `last_known_seq`.

### Meet actors: `liftsync.meet_actor`

`MeetActor(meet_id, storage)` owns the state and the ordered update log for one meet.

- `handle_update` gives each update in a batch the next server sequence number. It then applies the update to the state, appends it to storage and relays it to subscribers. It returns one `(seq, seq)` acknowledgement per update. It raises `NeedsRecoveryError` in two cases: when a client's sequence numbers have a gap, and when more than 300 seconds have passed without updates.
- `handle_state_recovery` applies `RecoveryUpdate`s in timestamp order. A key that is already known is overwritten only by a client of strictly higher priority. It returns `(server_seq, applied)`, and recovered updates are not relayed.
- `get_updates_since(since)` returns the accepted updates with a server sequence number above `since`.
- `get_state()` returns a copy of the state.
- `store_csv_data(opl_csv, return_email)` stores the published results.
- `subscribe()` returns an `asyncio.Queue` holding up to 32 updates. When the queue is full, the oldest update is dropped.

`spawn_meet_actor(meet_id, storage)` runs an actor as a task on the current event loop and returns a `MeetHandle`. The handle offers the same operations as async calls: `apply_updates`, `get_updates_since`, `store_csv_data`, `recover_state` and `subscribe`. `close()` finishes the queued commands and then stops the actor.

```python
import asyncio
from liftsync.meet_actor import spawn_meet_actor
from liftsync.updates import Update


class MemoryStorage:
    def __init__(self):
        self.log = []
        self.results = {}

    async def append_update(self, meet_id, update_json):
        self.log.append((meet_id, update_json))

    async def store_meet_csv(self, meet_id, opl_csv, return_email):
        self.results[meet_id] = (opl_csv, return_email)


async def main():
    handle = await spawn_meet_actor("123-456-789", MemoryStorage())
    try:
        acks = await handle.apply_updates(
            "Platform A", 1, [Update("plate.weight", 25, 1, 0)]
        )
        print(acks)  # [(1, 1)]
        updates = await handle.get_updates_since(0)
        print(updates[0].update.update_value)  # 25
        await handle.store_csv_data("Name,Total\n", "results@example.com")
    finally:
        await handle.close()


asyncio.run(main())
```

## What it does not do

- **No session store.** There is no component that creates, validates, rotates or persists sessions. `liftsync.tokens` and `liftsync.security` supply the tokens, the comparison and the logging such a store would use.
- **No authentication service.** Nothing checks meet passwords.
- **No manager for many meets.** Each actor is started and tracked by the caller.
- **No storage backend.** You must provide an object that satisfies `UpdateStorage`.
- **No server.** There is no WebSocket or HTTP server and no command to start one.

## Installation

```
pip install .
```

## Running the tests

```
pip install .[test]
pytest
```