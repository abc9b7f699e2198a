# phev2mqtt

A Python library for the protocol that a Mitsubishi Outlander PHEV speaks
over its own Wi-Fi access point: frame checksums and session keys, message
encoding and decoding, typed register values, a threaded TCP client, and an
emulated car for testing clients without a vehicle.

It uses only the standard library.

## Installing

```
pip install .
```

For running the tests:

```
pip install ".[test]"
pytest
```

## Decoding traffic

```python
from phev2mqtt.decoder import new_from_bytes
from phev2mqtt.raw import SecurityKey

key = SecurityKey()
for message in new_from_bytes(bytes.fromhex("f60400060303"), key):
    print(message.short_form())   # REGISTER SET  (reg 0x06 data 03)
```

`new_from_bytes` finds every valid frame in a buffer, skipping leading
garbage, and updates the `SecurityKey` as start requests and register
messages go by, so one key should be kept for a whole capture.
`decode_from_bytes` decodes a single frame and raises `DecodeError` when it
is too short.

For register notifications, `PhevMessage.reg` holds a typed value from
`phev2mqtt.registers`: `RegisterVIN`, `RegisterECUVersion`,
`RegisterBatteryLevel`, `RegisterBatteryWarning`, `RegisterDoorStatus`,
`RegisterChargeStatus`, `RegisterChargePlug`, `RegisterPreACState`,
`RegisterACOperStatus`, `RegisterACMode`, `RegisterLightStatus`,
`RegisterTime`, `RegisterSettings`, `RegisterWIFISSID`, or
`RegisterGeneric` for registers without a specific decoding.
`register_for(message)` builds the same value on its own.

`phev2mqtt.decode_cli` has two helpers that log and return the decoded
messages: `decode_hex_args(strings)` decodes a list of hex strings with one
shared key, skipping ones that are not hex, and `decode_file(path)` decodes
a file of hex, ignoring line breaks.

## Building messages

`phev2mqtt.message` holds `PhevMessage`, the command constants
(`CMD_OUT_SEND`, `CMD_IN_RESP`, ...) and `new_message`,
`new_ping_request_message` and `new_ping_response_message`.
`PhevMessage.encode_to_bytes(key)` returns the obscured wire frame.

`phev2mqtt.raw` holds the low-level pieces: `checksum`,
`validate_checksum`, `xor_message_with`, `validate_and_decode_message` and
`SecurityKey` with its `SecurityState`.

## Talking to a car

```python
from phev2mqtt.client import Client

client = Client("192.168.8.46:8080")   # the default address
client.connect()
client.start()                  # waits up to 20 s for the car's start request
print(client.model_year)        # ModelYear.MY14, MY18 or MY24
client.set_register(0x0B, b"\x02")
message = client.recv(timeout=5)
client.close()
```

The client runs reader, writer, ping and control threads. It answers the
car's start request for each model year, pings when the link is idle, and
records settings register values in `client.settings`. `recv` raises
`TimeoutError` on timeout and `ClientError` once the connection has ended;
`set_register` resends with the car's requested XOR on a bad-encoding reply
and raises `ClientError` after 10 seconds without an acknowledgement.
`add_listener()` returns a `Listener` that receives a copy of each incoming
message.

## Emulating a car

```python
from phev2mqtt.emulator import Car

car = Car(":8080")
car.begin()
...
car.set_register(0x1D, bytes.fromhex("50000000"))
car.close()
```

The emulated car accepts connections, answers pings, proposes a session key
after the tenth ping, then plays back a set of default registers followed by
the default settings, one per client acknowledgement. Setting register
`0x05` is answered with the time and battery level registers.
`Car.set_register` pushes a value to every connected client and waits for
each to acknowledge it.

## Climate state

`phev2mqtt.climate.Climate` combines the separately reported AC mode and
pre-conditioning state into topic suffixes and payloads such as
`{"/climate/state": "heat", "/climate/heat": "on", ...}`.

## Settings

`phev2mqtt.settings.Settings` records the distinct 8-byte settings register
values in arrival order; `from_register` raises `ValueError` on malformed
data, `dump()` lists them as hex, and `messages()` yields them as settings
notifications.

## Logging

Modules log through the standard `logging` module under `phev2mqtt.*`.
Raw byte dumps are logged at level 5 (`phev2mqtt.raw.TRACE`), below
`DEBUG`.

## What this package does not do

There is no command-line program and no MQTT bridge: nothing here connects
to an MQTT broker, publishes vehicle state, sends Home Assistant discovery
messages, reads a configuration file or restarts a Wi-Fi interface. The
library covers the protocol, the client and the emulator; wiring them to a
broker is left to the caller.