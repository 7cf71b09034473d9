# regsvc

Building blocks for a user registration service. The package has no runtime dependencies beyond the standard library.

| Module | What it holds |
| --- | --- |
| `regsvc.log` | Structured JSON logging that carries request and user context |
| `regsvc.metrics` | Histogram vectors, a registry, and text exposition output |
| `regsvc.resources` | Plural resource names and well-known object names |
| `regsvc.labels` | Label requirements, selectors, and MD5 hashing of label values |
| `regsvc.kubeclient` | Clients for toolchain resources, plus an in-memory transport |
| `regsvc.middleware` | Bearer-token extraction and authentication middleware |

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Logging

```python
import io
from regsvc import log

stream = io.StringIO()
log.init("registration-service", stream)   # later calls do nothing until log.reset()

ctx = log.RequestContext()
ctx.set("subject", "some-user-id")
ctx.set("username", "johnsmith")
log.infof(ctx, "signup %s", "created")
```

Each call writes one JSON object on its own line.

- **Where lines go.** Output goes to the stream given to `init`, or to standard error when no stream is given.
- **Before `init`.** The module-level functions raise `RuntimeError` until `init` has been called.
- **Fields in every line.**
  - `level`, `ts`, `logger` and `msg`.
  - `timestamp`, in RFC 1123 format with a numeric zone.
  - `commit`.
  - `user_id` and `username`, when the context holds them.
  - `error`, for `error` and `errorf`.
- **Request fields.** When a `log.Request` is attached to the context, the line also carries:
  - `req_url`: scheme, host and path.
  - `req_params`: the query parameters. A `token` parameter is masked as `*****`.
  - `req_headers`: the headers. `Authorization` and `Cookie` are masked.
  - `req_payload`: the body, when it is not empty.
- **Formatting.** `infof` and `errorf` take printf-style `%s`, `%v` and `%q` verbs. Missing or extra arguments are reported inline instead of raising.
- **Workspace requests.** `info_echof` logs the `workspace`, `method` and `url` of the request.
- **Fixed extra fields.** `log.with_values({...})` returns a `Logger` that adds the given pairs to every line. An empty dict or `None` returns the same logger.

## Metrics

```python
from regsvc import metrics

vec = metrics.new_histogram_vec("request_time", "time per request", "status_code", "kube_verb")
registry = metrics.register_custom_metrics()
vec.with_label_values("200", "get").observe(0.3)
print(vec.to_text())
```

Histogram vectors:

- Names get the `sandbox_` prefix.
- The buckets are 0.05, 0.1, 0.25, 0.5, 1, 5 and 10.
- `with_label_values` raises `ValueError` when the number of values is wrong.
- Every vector made by `new_histogram_vec` is tracked.
- Two vectors are created at import: `reg_serv_proxy_api_histogram_vec` and `reg_serv_workspace_histogram_vec`.

The registry:

- `register_custom_metrics()` puts every tracked vector into a new `Registry` and returns it. The same registry is also stored as `metrics.registry`.
- `Registry.register` raises `ValueError` for a duplicate name.
- `Registry.unregister` returns whether the vector was removed.
- `Registry.gather()` returns the families that hold at least one metric, sorted by name.

`metrics.reset()` drops every tracked vector and creates the two built-in vectors again.

## Labels

```python
from regsvc.labels import Operator, Requirement, Selector, encode_string

selector = Selector().add(
    Requirement("toolchain.dev.openshift.com/state", Operator.NOT_EQUALS, ("deactivated",)),
    Requirement("toolchain.dev.openshift.com/phone-hash", Operator.EQUALS, (encode_string("+1-555-0100"),)),
)
selector.matches({"toolchain.dev.openshift.com/phone-hash": encode_string("+1-555-0100")})  # True
str(selector)
```

- **Validation.** A `Requirement` checks its key, its values and how many values its operator needs. It raises `ValueError` when any of these is invalid.
- **Selectors.** `Selector.add` returns a new selector with its requirements sorted by key.
- **Hashing.** `encode_string` returns the hex MD5 digest of a value.
- **Hash detection.** `is_md5_hash` tells whether a string ends in 32 hexadecimal digits.

## Resource clients

```python
from regsvc import kubeclient

transport = kubeclient.InMemoryTransport()
client = kubeclient.new_crt_rest_client(transport, None, "toolchain-host-operator")
signups = client.v1alpha1().user_signups()
signups.create({"metadata": {"name": "johnsmith", "labels": {}}})
signups.get("johnsmith")
```

Resources are plain dicts, with labels held under `metadata.labels`.

`client.v1alpha1()` gives access to the clients below.

| Accessor | Returns | Operations |
| --- | --- | --- |
| `user_signups()` | `UserSignupClient` | `get`, `create`, `update`, `list_active_signups_by_phone_number_or_hash` |
| `master_user_records()` | `MasterUserRecordClient` | `get` |
| `banned_users()` | `BannedUserClient` | `list_by_email`, `list_by_phone_number_or_hash` |
| `toolchain_statuses()` | `ToolchainStatusClient` | `get`, which reads the object named `toolchain-status` |
| `social_events()` | `SocialEventClient` | `get` |
| `spaces()` | `SpaceClient` | `get` |
| `space_bindings()` | `SpaceBindingClient` | `list_space_bindings(*requirements)` |

**Lookups by phone number.** You may pass either the number itself or its MD5 hash. A value that is already a hash is used as is. Any other value is hashed first.

**Active signups.** `list_active_signups_by_phone_number_or_hash` skips signups in the `deactivated` state. When an informer was given to `new_crt_rest_client`, it reads through that informer. The informer is any object with a `list(namespace, resource, selector)` method.

**Errors.**
- A lookup or update of a missing object raises `kubeclient.NotFoundError`, which is a `LookupError`.
- Creating an object that already exists raises `ValueError`.
- Creating or updating an object without `metadata.name` raises `ValueError`.

## Authentication middleware

```python
from regsvc import log, middleware

log.init("registration-service")
mw = middleware.new_auth_middleware(token_parser)

ctx = log.RequestContext(request=log.Request(headers={"Authorization": ["Bearer token"]}))
try:
    claims = mw.handle(ctx)
except middleware.AuthError as exc:
    exc.status_code, exc.payload   # 401, {"error": "..."}
```

**The token parser.** `token_parser` is any object with a `from_string(token)` method. It returns an object that carries the claims as attributes:

- `user_id`
- `account_id`
- `preferred_username`
- `email`
- `subject`
- `original_sub`
- `given_name`
- `family_name`
- `company`

`new_auth_middleware(None)` raises `RuntimeError`.

**Extracting the token.** `extract_token` requires an `Authorization: Bearer <token>` header. It raises `AuthError` in three cases:

- the header is missing;
- the header holds no token after `Bearer`;
- the header uses any other scheme.

**Parser errors.** Any exception from the parser is turned into an `AuthError`.

**What `handle` does.** On success it returns the parsed token and stores its claims in the context. The `subject` claim is stored under the key `subject` and `preferred_username` under `username`. The other claims keep their own names as keys, and the whole token is stored under `jwtClaims`.

**Missing claims.** When `user_id` or `account_id` is missing, `handle` writes an info line to the log. This requires `log.init` to have been called.

## What this package does not do

- **No cluster connection.** It does not talk to a real cluster API. `InMemoryTransport` is the only transport it provides.
- **No token verification.** It does not parse or verify JWTs. The token parser must be supplied by the caller.
- **No server or command.** It has no HTTP server, no routes and no command-line entry point. `JWTMiddleware.handle` is meant to be called from whatever web framework you use.