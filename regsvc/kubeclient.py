"""Typed clients for the toolchain resources stored in a cluster."""

from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Protocol

from regsvc import resources
from regsvc.labels import Operator, Requirement, Selector, encode_string, is_md5_hash

BANNED_USER_EMAIL_HASH_LABEL_KEY = "toolchain.dev.openshift.com/email-hash"
PHONE_NUMBER_HASH_LABEL_KEY = "toolchain.dev.openshift.com/phone-hash"
USER_SIGNUP_STATE_LABEL_KEY = "toolchain.dev.openshift.com/state"
USER_SIGNUP_STATE_LABEL_VALUE_DEACTIVATED = "deactivated"

_log = logging.getLogger("kubeclient")


class NotFoundError(LookupError):
    """The requested resource does not exist."""

    def __init__(self, resource: str, name: str):
        super().__init__(f'{resource} "{name}" not found')
        self.resource = resource
        self.name = name


class _Lister(Protocol):
    def list(self, namespace: str, resource: str, selector: Selector) -> list[dict[str, Any]]: ...


def _metadata(obj: dict[str, Any]) -> dict[str, Any]:
    return obj.setdefault("metadata", {})


def _name_of(obj: dict[str, Any]) -> str:
    name = obj.get("metadata", {}).get("name")
    if not name:
        raise ValueError("object has no metadata.name")
    return name


class InMemoryTransport:
    """Stores resources in memory, keyed by namespace, resource type and name."""

    def __init__(self) -> None:
        self._store: dict[tuple[str, str], dict[str, dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def get(self, namespace: str, resource: str, name: str) -> dict[str, Any]:
        with self._lock:
            try:
                return copy.deepcopy(self._store[(namespace, resource)][name])
            except KeyError:
                raise NotFoundError(resource, name) from None

    def create(self, namespace: str, resource: str, obj: dict[str, Any]) -> dict[str, Any]:
        stored = copy.deepcopy(obj)
        name = _name_of(stored)
        _metadata(stored)["namespace"] = namespace
        with self._lock:
            bucket = self._store.setdefault((namespace, resource), {})
            if name in bucket:
                raise ValueError(f'{resource} "{name}" already exists')
            bucket[name] = stored
            return copy.deepcopy(stored)

    def update(self, namespace: str, resource: str, name: str, obj: dict[str, Any]) -> dict[str, Any]:
        stored = copy.deepcopy(obj)
        _metadata(stored)["namespace"] = namespace
        with self._lock:
            bucket = self._store.get((namespace, resource), {})
            if name not in bucket:
                raise NotFoundError(resource, name)
            bucket[name] = stored
            return copy.deepcopy(stored)

    def list(self, namespace: str, resource: str, selector: Selector) -> list[dict[str, Any]]:
        with self._lock:
            bucket = self._store.get((namespace, resource), {})
            found = [
                copy.deepcopy(obj)
                for name, obj in sorted(bucket.items())
                if selector.matches(obj.get("metadata", {}).get("labels"))
            ]
        return found


class _ResourceClient:
    def __init__(self, client: CRTClient):
        self.transport = client.transport
        self.informer = client.informer
        self.namespace = client.namespace


class UserSignupClient(_ResourceClient):
    """Reads, creates and updates UserSignup resources."""

    def get(self, name: str) -> dict[str, Any]:
        """Return the named UserSignup; raise NotFoundError if absent."""
        return self.transport.get(self.namespace, resources.USER_SIGNUP_RESOURCE_PLURAL, name)

    def create(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Create a UserSignup and return the stored result."""
        return self.transport.create(self.namespace, resources.USER_SIGNUP_RESOURCE_PLURAL, obj)

    def update(self, obj: dict[str, Any]) -> dict[str, Any]:
        """Replace an existing UserSignup and return the stored result."""
        return self.transport.update(
            self.namespace, resources.USER_SIGNUP_RESOURCE_PLURAL, _name_of(obj), obj
        )

    def list_active_signups_by_phone_number_or_hash(self, phone_number_or_hash: str) -> list[dict[str, Any]]:
        """List non-deactivated signups whose phone hash label matches the number or hash given."""
        value = phone_number_or_hash if is_md5_hash(phone_number_or_hash) else encode_string(phone_number_or_hash)
        selector = Selector().add(
            Requirement(
                USER_SIGNUP_STATE_LABEL_KEY,
                Operator.NOT_EQUALS,
                (USER_SIGNUP_STATE_LABEL_VALUE_DEACTIVATED,),
            ),
            Requirement(PHONE_NUMBER_HASH_LABEL_KEY, Operator.EQUALS, (value,)),
        )
        lister: _Lister = self.informer if self.informer is not None else self.transport
        return lister.list(self.namespace, resources.USER_SIGNUP_RESOURCE_PLURAL, selector)


class MasterUserRecordClient(_ResourceClient):
    """Reads MasterUserRecord resources."""

    def get(self, name: str) -> dict[str, Any]:
        return self.transport.get(self.namespace, resources.MUR_RESOURCE_PLURAL, name)


class BannedUserClient(_ResourceClient):
    """Queries BannedUser resources by hashed e-mail or phone number."""

    def list_by_email(self, email: str) -> list[dict[str, Any]]:
        return self._list_by_label(BANNED_USER_EMAIL_HASH_LABEL_KEY, encode_string(email))

    def list_by_phone_number_or_hash(self, phone_number_or_hash: str) -> list[dict[str, Any]]:
        """List banned users by phone number, or by its hash when a hash is given."""
        if is_md5_hash(phone_number_or_hash):
            return self._list_by_label(PHONE_NUMBER_HASH_LABEL_KEY, phone_number_or_hash)
        return self._list_by_label(PHONE_NUMBER_HASH_LABEL_KEY, encode_string(phone_number_or_hash))

    def _list_by_label(self, key: str, value: str) -> list[dict[str, Any]]:
        selector = Selector().add(Requirement(key, Operator.EQUALS, (value,)))
        return self.transport.list(self.namespace, resources.BANNED_USER_RESOURCE_PLURAL, selector)


class ToolchainStatusClient(_ResourceClient):
    """Reads the single ToolchainStatus resource."""

    def get(self) -> dict[str, Any]:
        return self.transport.get(
            self.namespace, resources.TOOLCHAIN_STATUS_PLURAL, resources.TOOLCHAIN_STATUS_NAME
        )


class SocialEventClient(_ResourceClient):
    """Reads SocialEvent resources."""

    def get(self, name: str) -> dict[str, Any]:
        return self.transport.get(self.namespace, resources.SOCIAL_EVENT_RESOURCE_PLURAL, name)


class SpaceClient(_ResourceClient):
    """Reads Space resources."""

    def get(self, name: str) -> dict[str, Any]:
        return self.transport.get(self.namespace, resources.SPACE_RESOURCE_PLURAL, name)


class SpaceBindingClient(_ResourceClient):
    """Lists SpaceBinding resources by label requirements."""

    def list_space_bindings(self, *args: Requirement) -> list[dict[str, Any]]:
        selector = Selector().add(*args)
        _log.info("Listing SpaceBindings with selector: %s", selector)
        return self.transport.list(self.namespace, resources.SPACE_BINDING_RESOURCE_PLURAL, selector)


class V1Alpha1:
    """Entry point to the per-resource clients of API version v1alpha1."""

    def __init__(self, client: CRTClient):
        self._client = client

    def user_signups(self) -> UserSignupClient:
        return UserSignupClient(self._client)

    def master_user_records(self) -> MasterUserRecordClient:
        return MasterUserRecordClient(self._client)

    def banned_users(self) -> BannedUserClient:
        return BannedUserClient(self._client)

    def toolchain_statuses(self) -> ToolchainStatusClient:
        return ToolchainStatusClient(self._client)

    def social_events(self) -> SocialEventClient:
        return SocialEventClient(self._client)

    def spaces(self) -> SpaceClient:
        return SpaceClient(self._client)

    def space_bindings(self) -> SpaceBindingClient:
        return SpaceBindingClient(self._client)


class CRTClient:
    """Client for toolchain resources in one namespace."""

    def __init__(self, transport: InMemoryTransport, informer: _Lister | None, namespace: str):
        self.transport = transport
        self.informer = informer
        self.namespace = namespace
        self._v1alpha1 = V1Alpha1(self)

    def v1alpha1(self) -> V1Alpha1:
        return self._v1alpha1


def new_crt_rest_client(transport: InMemoryTransport, informer: _Lister | None, namespace: str) -> CRTClient:
    """Create a client over ``transport``; signup lookups go through ``informer`` when given."""
    return CRTClient(transport, informer, namespace)