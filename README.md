# m3services

A set of small API service classes and two command-line tools:

- `m3services.db` – `Database`, a JSON record store kept in SQLite
  (in memory by default), with per-tenant tables and a small query language
  (`m3services.query`).
- `m3services.currency` – `Currency`: currency codes, latest rates, historic
  rates and conversions from an exchange-rate HTTP API, cached in an
  `ExpiringCache`.
- `m3services.finance` – `Crypto` and `Forex`: quotes, prices and
  previous-close history, plus crypto news, from a market-data HTTP API.
- `m3services.geocoding` – `Geocoding` on top of `MapsClient`: address
  lookup and reverse geocoding.
- `m3services.helloworld` – `Helloworld`, a greeting with a streaming variant.
- `m3services.publisher` – assembles and publishes service API descriptions.
- `m3services.tsgen` – generates TypeScript interfaces from OpenAPI schemas.

Service errors are raised as `m3services.errors.ServiceError` (with `id`,
`code`, `detail` and `status`), built by `bad_request`,
`internal_server_error` and `not_found`.

## Installation

```
pip install m3services
```

For the tests:

```
pip install "m3services[test]"
pytest
```

## Record store

```python
from m3services.db import Database

with Database() as db:
    record_id = db.create({"name": "nandos", "rating": 4}, table="places")
    db.update({"rating": 5}, table="places", id=record_id)
    print(db.read('rating >= 5 and name == "nandos"', table="places"))
    db.delete(record_id, table="places")
```

Tables are named `<tenant>_<table>` (tenant `micro` and table `default` when
not given; `/` and `-` in the tenant become `_`). `read` returns at most 25
records by default and refuses a limit above 1000; `order` is `asc` or
`desc`, and `order_by` defaults to the creation time. A record without a
string `id` gets a UUID. Bad input raises `ServiceError`; a malformed query
raises `m3services.query.QueryError`.

## The query language

`m3services.query.parse` turns a filter into a list of `Query` conditions
(`field`, `op`, `value`). Conditions are joined with `and`; the operators
are `==`, `!=`, `<`, `<=`, `>` and `>=`; values are integers, `true`/`false`,
or strings in double, single or back quotes (a doubled quote inside a string
stands for one quote). Strings and booleans may only be compared with `==`
and `!=`.

```python
from m3services.query import parse

for condition in parse('age >= 21 and name != "nandos"'):
    print(condition.field, condition.op, condition.value)
```

Nested fields use dots; `m3services.db.correct_field_name` renders them as
JSON accessors:

```python
from m3services.db import correct_field_name

correct_field_name("a.b.c")  # "data ->> 'a' ->> 'b' ->> 'c'"
```

## HTTP-backed services

```python
from m3services.currency import Currency
from m3services.finance import Crypto
from m3services.geocoding import Geocoding, MapsClient, lookup_string

rates = Currency("https://rates.example.com/v6/placeholder").rates("USD")
price = Crypto("https://market.example.com/", "placeholder").price("BTCUSD")
geo = Geocoding(MapsClient(api_key="placeholder"))
address, location = geo.lookup("160 Grays Inn Road", postcode="WC1X 8ED")

lookup_string("160 Grays Inn Road", "", "WC1X 8ED", "United Kingdom")
# "160 Grays Inn Road, WC1X 8ED, United Kingdom"
```

`Crypto` and `Forex` append their paths straight to the API base, so it
should end with `/`. `Currency` caches codes for an hour, latest rates and
pairs for five minutes and historic rates for a day.

## TypeScript generation

```python
from m3services.tsgen import schema_to_ts, next_version

schema = {"properties": {"id": {"type": "string"}, "limit": {"type": "number"}}}
print(schema_to_ts("QueryRequest", schema))
```

prints

```
export interface QueryRequest {
  id?: string;
  limit?: number;
}
```

`next_version` picks the highest of a list of semantic versions and returns
the next patch release (`0.0.1` for an empty list).

## Commands

Both commands take a directory whose subdirectories name the services; each
service directory is then looked up under the current working directory, and
directories containing a file named `skip` are left out.

```
m3services-publish path/to/services
```

runs `make api` and `openapi2postmanv2` in each service directory, builds a
`PublicAPI` from `README.md`, `api-<name>.json` (or `api-protobuf.json`) and
the optional `publicapi.json`, `examples.json`, `pricing.json` and
`postman.json`, and posts it to `MICRO_PUBLISH_URL` (default
`http://localhost:8080/publicapi/Publish`) with the bearer token from
`MICRO_ADMIN_TOKEN`.

```
m3services-gen-clients path/to/services
```

appends the interfaces of each service's OpenAPI schemas to
`clients/ts/<service>/index.ts`, writes the `NPM_TOKEN` environment variable
into `clients/ts/.npmrc`, asks `npm show @micro/services` for the published
versions and replaces `1.0.1` in `clients/ts/package.json` with the next
patch version.

## What this package does not do

The service classes are plain Python objects: there is no network server or
RPC layer that exposes them, and no configuration loading — API bases and
keys are passed to the constructors.